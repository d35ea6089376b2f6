"""Initial schema: recipes, embeddings, meal plans, shopping lists, chat sessions, metrics

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Recipe corpus, keyed by CMS post ID
    op.create_table(
        "recipes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False, server_default=""),
        sa.Column("ingredients", sa.JSON, nullable=False),
        sa.Column("instructions", sa.JSON, nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("prep_time", sa.String(100), nullable=False, server_default=""),
        sa.Column("servings", sa.String(100), nullable=False, server_default=""),
        sa.Column("source_updated_at", sa.String(64), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # One float32 vector per recipe
    op.create_table(
        "recipe_embeddings",
        sa.Column("recipe_id", sa.String(64), sa.ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("embedding", sa.LargeBinary, nullable=False),
        sa.Column("text_hash", sa.String(64), nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "meal_plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("week_start", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Draft"),
        sa.Column("plan_json", sa.JSON, nullable=False),
        sa.Column("shopping_list_json", sa.JSON, nullable=True),
        sa.Column("request_text", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_meal_plans_user_id", "meal_plans", ["user_id"])
    op.create_index("ix_meal_plans_user_week", "meal_plans", ["user_id", "week_start"])

    op.create_table(
        "shopping_lists",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("meal_plan_id", sa.Integer, sa.ForeignKey("meal_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week_start", sa.Date, nullable=False),
        sa.Column("items", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_shopping_lists_meal_plan_id", "shopping_lists", ["meal_plan_id"])
    op.create_index("ix_shopping_lists_user_week", "shopping_lists", ["user_id", "week_start"])

    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("session_type", sa.String(40), nullable=False),
        sa.Column("state", sa.String(40), nullable=False),
        sa.Column("context_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_chat_sessions_user_expires", "chat_sessions", ["user_id", "expires_at"])

    op.create_table(
        "execution_metrics",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("agent_name", sa.String(50), nullable=False),
        sa.Column("model", sa.String(100), nullable=False, server_default=""),
        sa.Column("prompt_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("latency_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_execution_metrics_timestamp", "execution_metrics", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_execution_metrics_timestamp", table_name="execution_metrics")
    op.drop_table("execution_metrics")
    op.drop_index("ix_chat_sessions_user_expires", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_index("ix_shopping_lists_user_week", table_name="shopping_lists")
    op.drop_index("ix_shopping_lists_meal_plan_id", table_name="shopping_lists")
    op.drop_table("shopping_lists")
    op.drop_index("ix_meal_plans_user_week", table_name="meal_plans")
    op.drop_index("ix_meal_plans_user_id", table_name="meal_plans")
    op.drop_table("meal_plans")
    op.drop_table("recipe_embeddings")
    op.drop_table("recipes")
