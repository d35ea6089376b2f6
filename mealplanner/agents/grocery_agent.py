"""Shopping List Agent."""
from typing import Optional

from ..core.ai_client import TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..core.text import clean_md
from ..errors import ModelOutputError
from ..models import Recipe
from ..schemas import AgentMeta, HouseholdContext, ShoppingListOutput, WeeklyPlan
from .cadence import LEFTOVERS_PREFIX, strip_title_prefix
from .output import parse_model_output
from .prompts import SHOPPING_LIST_PROMPT, format_ages


def cooked_meals(plan: WeeklyPlan, recipes_by_id: dict[str, Recipe]) -> list[str]:
    """One prompt line per Cook day; leftover days add nothing to buy."""
    lines = []
    for day in plan.plan:
        if day.recipe_title.startswith(LEFTOVERS_PREFIX):
            continue
        recipe = recipes_by_id.get(day.recipe_id)
        title = recipe.title if recipe else strip_title_prefix(day.recipe_title)
        if recipe and recipe.ingredients:
            ingredients = ", ".join(recipe.ingredients)
        else:
            ingredients = "(use a typical ingredient list for this dish)"
        servings = f" (recipe serves {recipe.servings})" if recipe and recipe.servings else ""
        lines.append(f"- {day.day}: {title}{servings}\n  Ingredients: {ingredients}")
    return lines


def generate_shopping_list(
    text_gen: TextGenerator,
    plan: WeeklyPlan,
    recipes_by_id: dict[str, Recipe],
    household: HouseholdContext,
    deadline: Optional[Deadline] = None,
) -> tuple[list[str], AgentMeta]:
    """Consolidated, portion-scaled shopping list for a plan."""
    timer = TimedCall()
    prompt = SHOPPING_LIST_PROMPT.format(
        people=household.people,
        adults=household.adults,
        children=household.children,
        children_ages=format_ages(household.children_ages),
        meals="\n".join(cooked_meals(plan, recipes_by_id)) or "- (no cooking days)",
    )
    resp = text_gen.generate(prompt, deadline=deadline)
    meta = AgentMeta(agent_name="ShoppingList", usage=resp.usage, latency_ms=timer.elapsed_ms)

    try:
        raw = parse_model_output("ShoppingList", resp.content, ShoppingListOutput)
    except ModelOutputError as e:
        e.meta = meta
        raise

    # Drop blanks, bullets and exact duplicates; keep the model's order
    cleaned = (clean_md(i) for i in raw.shopping_list if i)
    items = list(dict.fromkeys(i for i in cleaned if i))
    return items, meta
