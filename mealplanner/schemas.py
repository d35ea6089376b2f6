"""Pydantic schemas for the meal planner.

- Provider contract (token usage, content responses, stage metadata)
- Structured model outputs (extraction, analyst, chef, reviewer, shopping list)
- Plan / session / metrics shapes shared by the services, the chat bot and the API
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

WEEK_SLOTS = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday Lunch",
    "Saturday Dinner",
    "Sunday Lunch",
    "Sunday Dinner",
]


# --- Provider contract ---

class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model: str = ""


class ContentResponse(BaseModel):
    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class AgentMeta(BaseModel):
    agent_name: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    latency_ms: int = 0


# --- Model outputs ---

def _as_list(value: Any) -> Any:
    # Models sometimes return a single newline-separated string instead of a list
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if value is None:
        return []
    return value


class ExtractedRecipe(BaseModel):
    title: str = ""
    ingredients: list[str] = []
    instructions: list[str] = []
    tags: list[str] = []
    prep_time: str = ""
    servings: str = ""

    @field_validator("ingredients", "instructions", "tags", mode="before")
    @classmethod
    def _coerce_lists(cls, v):
        return _as_list(v)

    @field_validator("prep_time", "servings", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else str(v)


class ClippedRecipe(BaseModel):
    title: str
    ingredients: list[str] = []
    steps: list[str] = []
    prep_time: str = ""
    servings: str = ""

    @field_validator("ingredients", "steps", mode="before")
    @classmethod
    def _coerce_lists(cls, v):
        return _as_list(v)

    @field_validator("prep_time", "servings", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else str(v)


class PlannedMeal(BaseModel):
    day: str
    action: Literal["Cook", "Reuse"]
    recipe_id: str = ""
    recipe_title: str = ""
    note: str = ""

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, v):
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered == "cook":
                return "Cook"
            if lowered in ("reuse", "leftovers", "leftover"):
                return "Reuse"
        return v


class AnalystOutput(BaseModel):
    planned_meals: list[PlannedMeal]


class DayPlan(BaseModel):
    day: str
    recipe_id: str = ""
    recipe_title: str = ""
    prep_time: str = ""
    note: str = ""


class ChefOutput(BaseModel):
    plan: list[DayPlan]
    shopping_list: list[str] = []


class ReviewerOutput(BaseModel):
    plan: list[DayPlan]


class ShoppingListOutput(BaseModel):
    shopping_list: list[str]


# --- Planning domain ---

class HouseholdContext(BaseModel):
    adults: int = 2
    children: int = 0
    children_ages: list[int] = []
    cooking_frequency: int = 5

    @property
    def people(self) -> int:
        return self.adults + self.children


@dataclass
class MealProposal:
    """Analyst output: the 9 planned slots plus the recipes they resolved to."""
    planned_meals: list[PlannedMeal]
    recipes: list = field(default_factory=list)
    household: HouseholdContext = field(default_factory=HouseholdContext)


class WeeklyPlan(BaseModel):
    id: Optional[int] = None
    user_id: str = ""
    week_start: Optional[date] = None
    status: str = "Draft"
    plan: list[DayPlan] = []
    shopping_list: Optional[list[str]] = None
    request: str = ""
    cadence_warnings: list[str] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "WeeklyPlan":
        return cls(
            id=row.id,
            user_id=row.user_id,
            week_start=row.week_start,
            status=row.status,
            plan=[DayPlan(**d) for d in (row.plan_json or [])],
            shopping_list=row.shopping_list_json,
            request=row.request_text or "",
            created_at=row.created_at,
        )


class SessionContext(BaseModel):
    plan_id: int
    original_request: str = ""


class DailyUsage(BaseModel):
    date: str
    total_prompt: int
    total_completion: int
    total_executions: int


class IngestionReport(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    removed: int = 0
