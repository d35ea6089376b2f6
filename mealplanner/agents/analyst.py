import logging
from typing import Optional

from ..core.ai_client import TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..errors import ModelOutputError
from ..models import Recipe
from ..schemas import AgentMeta, AnalystOutput, HouseholdContext, MealProposal
from .output import parse_model_output, require_slots
from .prompts import ANALYST_PROMPT, CADENCE_RULES, format_ages, format_recipe_block

logger = logging.getLogger("mealplanner.planner")


def build_analyst_prompt(request: str, household: HouseholdContext, recipes: list[Recipe]) -> str:
    return ANALYST_PROMPT.format(
        adults=household.adults,
        children=household.children,
        children_ages=format_ages(household.children_ages),
        request=request,
        cadence_rules=CADENCE_RULES.format(cooking_frequency=household.cooking_frequency),
        recipes="\n".join(format_recipe_block(r) for r in recipes),
    )


def run_analyst(
    text_gen: TextGenerator,
    request: str,
    household: HouseholdContext,
    candidates: list[Recipe],
    deadline: Optional[Deadline] = None,
) -> tuple[MealProposal, AgentMeta]:
    """Select and schedule recipes for the 9 weekly slots."""
    timer = TimedCall()
    resp = text_gen.generate(build_analyst_prompt(request, household, candidates), deadline=deadline)
    meta = AgentMeta(agent_name="Analyst", usage=resp.usage, latency_ms=timer.elapsed_ms)

    try:
        raw = parse_model_output("Analyst", resp.content, AnalystOutput)
        require_slots("Analyst", resp.content, raw.planned_meals)
    except ModelOutputError as e:
        e.meta = meta
        raise

    by_title = {r.title: r for r in candidates}
    selected: list[Recipe] = []
    seen: set[str] = set()
    last_cook_id = ""

    for meal in raw.planned_meals:
        if meal.action != "Cook":
            # Reuse slots point back at the last Cook slot; not a new selection
            if not meal.recipe_id:
                meal.recipe_id = last_cook_id
            continue

        recipe = by_title.get(meal.recipe_title)
        if recipe is None:
            logger.warning("Analyst picked unknown recipe '%s'; skipping", meal.recipe_title)
            meal.recipe_id = ""
            last_cook_id = ""
            continue

        meal.recipe_id = recipe.id
        last_cook_id = recipe.id
        if meal.recipe_title in seen:
            continue
        seen.add(meal.recipe_title)
        selected.append(recipe)

    proposal = MealProposal(planned_meals=raw.planned_meals, recipes=selected, household=household)
    return proposal, meta
