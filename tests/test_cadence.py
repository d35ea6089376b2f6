import pytest

from mealplanner.agents.cadence import strip_title_prefix, validate_cadence, validate_plan_cadence
from mealplanner.agents.output import parse_model_output, strip_code_fences
from mealplanner.errors import ModelOutputError
from mealplanner.schemas import AnalystOutput, DayPlan, PlannedMeal, WEEK_SLOTS


def _meals(actions, titles):
    return [
        PlannedMeal(day=day, action=action, recipe_title=title)
        for day, action, title in zip(WEEK_SLOTS, actions, titles)
    ]


VALID_ACTIONS = ["Cook", "Reuse", "Cook", "Reuse", "Cook", "Reuse", "Cook", "Reuse", "Cook"]
VALID_TITLES = ["A", "A", "B", "B", "C", "C", "D", "D", "E"]


def test_valid_schedule_has_no_problems():
    assert validate_cadence(_meals(VALID_ACTIONS, VALID_TITLES)) == []


def test_consecutive_weekday_cooks_are_flagged():
    actions = ["Cook", "Cook"] + VALID_ACTIONS[2:]
    problems = validate_cadence(_meals(actions, ["A", "B"] + VALID_TITLES[2:]))
    assert "Monday and Tuesday are both Cook" in problems


def test_monday_must_cook():
    actions = ["Reuse"] + VALID_ACTIONS[1:]
    problems = validate_cadence(_meals(actions, VALID_TITLES))
    assert "Monday must be Cook" in problems
    assert any("before anything was cooked" in p for p in problems)


def test_sunday_lunch_reuses_saturday_dinner():
    actions = VALID_ACTIONS[:7] + ["Cook", "Cook"]
    problems = validate_cadence(_meals(actions, VALID_TITLES[:7] + ["X", "E"]))
    assert "Sunday Lunch must reuse Saturday Dinner" in problems


def test_reuse_must_repeat_last_cook():
    titles = ["A", "Z"] + VALID_TITLES[2:]
    problems = validate_cadence(_meals(VALID_ACTIONS, titles))
    assert "Tuesday reuses 'Z' but the last Cook was 'A'" in problems


def test_wrong_slot_count():
    problems = validate_cadence(_meals(VALID_ACTIONS[:7], VALID_TITLES[:7]))
    assert problems[0] == "expected 9 slots, got 7"


def test_rendered_plan_reads_action_from_prefix():
    days = [
        DayPlan(day=day, recipe_title=("Cook: " if a == "Cook" else "Leftovers: ") + t)
        for day, a, t in zip(WEEK_SLOTS, VALID_ACTIONS, VALID_TITLES)
    ]
    assert validate_plan_cadence(days) == []


def test_strip_title_prefix():
    assert strip_title_prefix("Cook: Pasta") == "Pasta"
    assert strip_title_prefix("Leftovers: Pasta ") == "Pasta"
    assert strip_title_prefix("Pasta") == "Pasta"


def test_code_fences_are_stripped():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


def test_action_aliases_are_normalized():
    parsed = parse_model_output(
        "Analyst",
        '{"planned_meals": [{"day": "Tuesday", "action": "leftovers", "recipe_title": "A"}]}',
        AnalystOutput,
    )
    assert parsed.planned_meals[0].action == "Reuse"


def test_schema_mismatch_is_terminal():
    with pytest.raises(ModelOutputError) as exc:
        parse_model_output("Chef", '{"days": []}', AnalystOutput)
    assert exc.value.raw_text == '{"days": []}'
