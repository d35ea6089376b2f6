import json
import logging
from datetime import date
from typing import Optional

from ..core.ai_client import TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..errors import ModelOutputError
from ..models import PlanStatus, Recipe
from ..schemas import AgentMeta, ChefOutput, DayPlan, MealProposal, WeeklyPlan
from .cadence import LEFTOVERS_PREFIX, strip_title_prefix
from .output import parse_model_output, require_slots
from .prompts import CHEF_PROMPT, format_ages

logger = logging.getLogger("mealplanner.planner")


def build_chef_prompt(proposal: MealProposal) -> str:
    by_id = {r.id: r for r in proposal.recipes}
    schedule = []
    for meal in proposal.planned_meals:
        recipe = by_id.get(meal.recipe_id)
        schedule.append({
            "day": meal.day,
            "action": meal.action,
            "recipe_id": meal.recipe_id,
            "recipe_title": meal.recipe_title,
            "note": meal.note,
            "ingredients": list(recipe.ingredients or []) if recipe else [],
            "prep_time": recipe.prep_time if recipe else "",
        })
    household = proposal.household
    return CHEF_PROMPT.format(
        adults=household.adults,
        children=household.children,
        children_ages=format_ages(household.children_ages),
        schedule=json.dumps(schedule, indent=2, ensure_ascii=False),
    )


def attach_recipe_ids(days: list[DayPlan], recipes: list[Recipe]) -> list[DayPlan]:
    """Make every day's recipe_id point at a known recipe.

    An echoed ID is kept when it is known; otherwise the title (minus its
    Cook/Leftovers prefix) is matched against `recipes`. Leftover days with
    no match inherit the previous day's recipe.
    """
    known_ids = {r.id for r in recipes}
    by_title = {r.title: r.id for r in recipes}
    by_title_ci = {r.title.strip().lower(): r.id for r in recipes}

    previous = ""
    for day in days:
        resolved = day.recipe_id if day.recipe_id in known_ids else ""
        if not resolved:
            title = strip_title_prefix(day.recipe_title)
            resolved = by_title.get(title) or by_title_ci.get(title.lower(), "")
        if not resolved and day.recipe_title.startswith(LEFTOVERS_PREFIX):
            resolved = previous
        if not resolved:
            logger.warning("Could not resolve a recipe for %s ('%s')", day.day, day.recipe_title)
        day.recipe_id = resolved
        previous = resolved
    return days


def run_chef(
    text_gen: TextGenerator,
    proposal: MealProposal,
    week_start: date,
    deadline: Optional[Deadline] = None,
) -> tuple[WeeklyPlan, AgentMeta]:
    """Render the final day-by-day plan and a consolidated shopping list."""
    timer = TimedCall()
    resp = text_gen.generate(build_chef_prompt(proposal), deadline=deadline)
    meta = AgentMeta(agent_name="Chef", usage=resp.usage, latency_ms=timer.elapsed_ms)

    try:
        raw = parse_model_output("Chef", resp.content, ChefOutput)
        require_slots("Chef", resp.content, raw.plan)
    except ModelOutputError as e:
        e.meta = meta
        raise

    plan = WeeklyPlan(
        week_start=week_start,
        status=PlanStatus.DRAFT,
        plan=attach_recipe_ids(raw.plan, proposal.recipes),
        shopping_list=raw.shopping_list,
    )
    return plan, meta
