"""SQLAlchemy ORM models for the meal planner.

Tables:
- recipes: Recipe corpus ingested from the CMS
- recipe_embeddings: One float32 vector per recipe plus the hash of the text it was built from
- meal_plans: Weekly plans with lifecycle status (Draft / Final / Adjusting)
- shopping_lists: Shopping list materialized when a plan is confirmed
- chat_sessions: Short-lived conversational state (adjustment feedback)
- execution_metrics: Per-stage token usage and latency
"""

from __future__ import annotations

from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    LargeBinary,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanStatus:
    DRAFT = "Draft"
    FINAL = "Final"
    # Superseded by a newer draft for the same week
    ADJUSTING = "Adjusting"


class Recipe(Base):
    """A recipe from the corpus, keyed by the CMS post ID."""
    __tablename__ = "recipes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    ingredients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    instructions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    prep_time: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    servings: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    source_updated_at: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    embedding: Mapped[Optional["RecipeEmbedding"]] = relationship(
        "RecipeEmbedding", back_populates="recipe", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )


class RecipeEmbedding(Base):
    """Little-endian float32 vector for a recipe.

    text_hash always reflects the last text embedded, including cache hits.
    """
    __tablename__ = "recipe_embeddings"

    recipe_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True
    )
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    text_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="embedding")


class MealPlan(Base):
    """Weekly meal plan. Every save is a new row; only status changes in place."""
    __tablename__ = "meal_plans"
    __table_args__ = (
        Index("ix_meal_plans_user_week", "user_id", "week_start"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PlanStatus.DRAFT)
    plan_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    shopping_list_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    request_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    shopping_lists: Mapped[list["ShoppingList"]] = relationship(
        "ShoppingList", back_populates="meal_plan", cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ShoppingList(Base):
    __tablename__ = "shopping_lists"
    __table_args__ = (
        Index("ix_shopping_lists_user_week", "user_id", "week_start"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meal_plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("meal_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    meal_plan: Mapped["MealPlan"] = relationship("MealPlan", back_populates="shopping_lists")


class ChatSession(Base):
    """Marks the next message from a user as feedback on a draft plan."""
    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_user_expires", "user_id", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_type: Mapped[str] = mapped_column(String(40), nullable=False)
    state: Mapped[str] = mapped_column(String(40), nullable=False)
    context_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ExecutionMetric(Base):
    __tablename__ = "execution_metrics"
    __table_args__ = (
        Index("ix_execution_metrics_timestamp", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_name: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
