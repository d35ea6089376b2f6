"""Post-hoc checks for the batch-cook / leftovers cadence.

The cadence is only a prompted instruction to the models; these checks turn
it into something the planner can flag or reject.
"""

from ..schemas import DayPlan, PlannedMeal, WEEK_SLOTS

COOK_PREFIX = "Cook: "
LEFTOVERS_PREFIX = "Leftovers: "

WEEKDAY_SLOTS = 5
SATURDAY_DINNER = WEEK_SLOTS.index("Saturday Dinner")
SUNDAY_LUNCH = WEEK_SLOTS.index("Sunday Lunch")
SUNDAY_DINNER = WEEK_SLOTS.index("Sunday Dinner")


def strip_title_prefix(title: str) -> str:
    for prefix in (COOK_PREFIX, LEFTOVERS_PREFIX):
        if title.startswith(prefix):
            return title[len(prefix):].strip()
    return title.strip()


def validate_cadence(meals: list[PlannedMeal]) -> list[str]:
    """Return a list of cadence problems (empty when the schedule is valid)."""
    slots = [(m.action, strip_title_prefix(m.recipe_title)) for m in meals]
    return _check(slots)


def validate_plan_cadence(days: list[DayPlan]) -> list[str]:
    """Same checks on a rendered plan, reading the action from the title prefix."""
    slots = [
        ("Reuse" if d.recipe_title.startswith(LEFTOVERS_PREFIX) else "Cook", strip_title_prefix(d.recipe_title))
        for d in days
    ]
    return _check(slots)


def _check(slots: list[tuple[str, str]]) -> list[str]:
    problems = []
    if len(slots) != len(WEEK_SLOTS):
        problems.append(f"expected {len(WEEK_SLOTS)} slots, got {len(slots)}")
        if not slots:
            return problems

    def action(i: int) -> str:
        return slots[i][0] if i < len(slots) else ""

    for i, name in ((0, "Monday"), (SATURDAY_DINNER, "Saturday Dinner"), (SUNDAY_DINNER, "Sunday Dinner")):
        if i < len(slots) and action(i) != "Cook":
            problems.append(f"{name} must be Cook")

    for i in range(1, min(WEEKDAY_SLOTS, len(slots))):
        if action(i) == "Cook" and action(i - 1) == "Cook":
            problems.append(f"{WEEK_SLOTS[i - 1]} and {WEEK_SLOTS[i]} are both Cook")

    if action(SATURDAY_DINNER) == "Cook" and SUNDAY_LUNCH < len(slots) and action(SUNDAY_LUNCH) != "Reuse":
        problems.append("Sunday Lunch must reuse Saturday Dinner")

    last_cook_title = None
    for i, (act, title) in enumerate(slots):
        if act == "Cook":
            last_cook_title = title
        elif last_cook_title is None:
            problems.append(f"{_slot_name(i)} reuses leftovers before anything was cooked")
        elif title != last_cook_title:
            problems.append(f"{_slot_name(i)} reuses '{title}' but the last Cook was '{last_cook_title}'")
    return problems


def _slot_name(i: int) -> str:
    return WEEK_SLOTS[i] if i < len(WEEK_SLOTS) else f"slot {i}"
