"""Prompt templates for every model-backed stage.

All templates are rendered with str.format, so literal braces in the JSON
examples are doubled.
"""

CADENCE_RULES = """Cadence rules (batch cooking with leftovers):
1. Exactly 9 slots, in this order: Monday, Tuesday, Wednesday, Thursday, Friday,
   Saturday Lunch, Saturday Dinner, Sunday Lunch, Sunday Dinner.
2. Monday is always "Cook".
3. Never put two "Cook" slots on consecutive weekdays (Monday to Friday). A weekday after a Cook day is "Reuse".
4. A "Reuse" slot eats the leftovers of the closest previous "Cook" slot and repeats its recipe_title and recipe_id exactly.
5. Saturday Dinner is "Cook" and Sunday Lunch is "Reuse" of that same recipe.
6. Sunday Dinner is always "Cook" with a light recipe.
7. Aim for about {cooking_frequency} cooking sessions in the week.
"""

EXTRACTOR_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You extract structured recipe information from HTML content.
Extract the recipe title, ingredients (with quantities), step-by-step instructions and relevant tags.
Also extract or estimate the preparation time (e.g. "30 mins") and the number of servings (e.g. "4 people").

Output schema:
{{
  "title": "Recipe Name",
  "ingredients": ["quantity + name", "quantity + name"],
  "instructions": ["Step 1", "Step 2"],
  "tags": ["tag1", "tag2"],
  "prep_time": "Estimated time",
  "servings": "Estimated servings"
}}

HTML content for "{title}":
{html}
"""

ANALYST_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You are a Strategic Meal Planning Analyst. Build next week's cooking schedule for this household.

Household:
- Adults: {adults}
- Children: {children} (ages: {children_ages})

User request: "{request}"

{cadence_rules}
Only use recipes from the list below. Copy recipe_title and recipe_id exactly as written.
Prefer recipes that match the user's request and give variety across the week.

Available recipes:
{recipes}

Output schema:
{{
  "planned_meals": [
    {{"day": "Monday", "action": "Cook", "recipe_id": "...", "recipe_title": "...", "note": "why this fits"}},
    {{"day": "Tuesday", "action": "Reuse", "recipe_id": "...", "recipe_title": "...", "note": "leftovers from Monday"}}
  ]
}}
"""

CHEF_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You are a practical home Chef turning a cooking schedule into the final weekly plan.

Household: {adults} adults, {children} children (ages: {children_ages}).

Schedule (one entry per slot, in order):
{schedule}

For every slot, in the same order:
- "day": the slot name, unchanged.
- "recipe_id": copy it unchanged from the schedule.
- "recipe_title": "Cook: <recipe title>" for Cook slots, "Leftovers: <recipe title>" for Reuse slots.
- "prep_time": a realistic active time for that day. Reuse days only need reheating (e.g. "10 mins").
- "note": one short practical tip.

Then write one consolidated shopping list covering every Cook slot, scaled to the household size.
Merge duplicates and use quantities (e.g. "600g chicken thighs").

Output schema:
{{
  "plan": [
    {{"day": "Monday", "recipe_id": "...", "recipe_title": "Cook: ...", "prep_time": "40 mins", "note": "..."}}
  ],
  "shopping_list": ["item 1", "item 2"]
}}
"""

REVIEWER_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You are a Meal Plan Reviewer. Revise the draft plan below according to the user's feedback.
Change only what the feedback asks for and keep everything else as it is.

Household: {adults} adults, {children} children (ages: {children_ages}).
Original request: "{request}"

Current plan:
{current_plan}

User feedback: "{feedback}"

{cadence_rules}
Replacement recipes must come from this list (copy recipe_title and recipe_id exactly):
{recipes}

Use "Cook: <title>" / "Leftovers: <title>" for recipe_title and keep a realistic prep_time per slot.
Do not write a shopping list.

Output schema:
{{
  "plan": [
    {{"day": "Monday", "recipe_id": "...", "recipe_title": "Cook: ...", "prep_time": "40 mins", "note": "..."}}
  ]
}}
"""

SHOPPING_LIST_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You write the weekly shopping list for a confirmed meal plan.

Household: {people} people ({adults} adults, {children} children, ages: {children_ages}).

Meals to cook this week:
{meals}

Consolidate every ingredient into one list, scaled to the household size.
Merge duplicates, include quantities and group similar items next to each other.

Output schema:
{{
  "shopping_list": ["item 1", "item 2"]
}}
"""

CLIPPER_PROMPT = """Return VALID JSON only. No markdown. No extra keys.

You are a recipe extraction expert. Extract the recipe from the web page text below.

Output schema:
{{
  "title": "Recipe Title",
  "ingredients": ["item 1", "item 2"],
  "steps": ["Step 1 description", "Step 2 description"],
  "prep_time": "e.g. 30 mins",
  "servings": "e.g. 4 people"
}}

Page text:
{content}
"""


def format_recipe_block(recipe) -> str:
    """Compact description of a candidate recipe for prompts."""
    return (
        f"- recipe_id: {recipe.id}\n"
        f"  Title: {recipe.title}\n"
        f"  Tags: {', '.join(recipe.tags or [])}\n"
        f"  Ingredients: {', '.join(recipe.ingredients or [])}\n"
        f"  Prep Time: {recipe.prep_time or 'unknown'}"
    )


def format_ages(ages: list[int]) -> str:
    return ", ".join(str(a) for a in ages) if ages else "n/a"
