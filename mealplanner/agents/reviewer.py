import json
from typing import Optional

from ..core.ai_client import TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..errors import ModelOutputError
from ..models import Recipe
from ..schemas import AgentMeta, HouseholdContext, ReviewerOutput, WeeklyPlan
from .chef import attach_recipe_ids
from .output import parse_model_output, require_slots
from .prompts import CADENCE_RULES, REVIEWER_PROMPT, format_ages, format_recipe_block


def build_reviewer_prompt(
    current: WeeklyPlan,
    request: str,
    feedback: str,
    household: HouseholdContext,
    recipes: list[Recipe],
) -> str:
    current_plan = [d.model_dump() for d in current.plan]
    return REVIEWER_PROMPT.format(
        adults=household.adults,
        children=household.children,
        children_ages=format_ages(household.children_ages),
        request=request or "weekly meal plan",
        current_plan=json.dumps(current_plan, indent=2, ensure_ascii=False),
        feedback=feedback,
        cadence_rules=CADENCE_RULES.format(cooking_frequency=household.cooking_frequency),
        recipes="\n".join(format_recipe_block(r) for r in recipes),
    )


def run_reviewer(
    text_gen: TextGenerator,
    current: WeeklyPlan,
    request: str,
    feedback: str,
    household: HouseholdContext,
    recipes: list[Recipe],
    current_recipes: Optional[list[Recipe]] = None,
    deadline: Optional[Deadline] = None,
) -> tuple[WeeklyPlan, AgentMeta]:
    """Revise a plan from free-text feedback.

    Keeps week_start and status of the plan being revised and emits no
    shopping list; that is produced again on confirm.
    """
    timer = TimedCall()
    prompt = build_reviewer_prompt(current, request, feedback, household, recipes)
    resp = text_gen.generate(prompt, deadline=deadline)
    meta = AgentMeta(agent_name="PlanReviewer", usage=resp.usage, latency_ms=timer.elapsed_ms)

    try:
        raw = parse_model_output("PlanReviewer", resp.content, ReviewerOutput)
        require_slots("PlanReviewer", resp.content, raw.plan)
    except ModelOutputError as e:
        e.meta = meta
        raise

    known = list(recipes) + [r for r in (current_recipes or []) if r not in recipes]
    revised = WeeklyPlan(
        user_id=current.user_id,
        week_start=current.week_start,
        status=current.status,
        plan=attach_recipe_ids(raw.plan, known),
        shopping_list=None,
        request=current.request,
    )
    return revised, meta
