import re

from ..schemas import WeeklyPlan

# Characters with meaning in Telegram's legacy Markdown
_MD_SPECIAL = re.compile(r"([_*`\[])")


def clean_md(text: str) -> str:
    """
    Strip markdown artifacts models put around list items.
    Removes:
    - Bold markers (**, __)
    - Leading headers (#, ##)
    - Leading bullets (-, *, •)
    """
    if not text:
        return ""
    text = re.sub(r"(\*\*|__)(.*?)\1", r"\2", text)
    text = re.sub(r"^\s*#+\s+", "", text)
    text = re.sub(r"^\s*[-*•]\s+", "", text)
    return text.strip()


def escape_md(text: str) -> str:
    return _MD_SPECIAL.sub(r"\\\1", text or "")


def clamp(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[:length - 1].rstrip() + "…"


def _plan_lines(plan: WeeklyPlan) -> list[str]:
    lines = []
    for day in plan.plan:
        line = f"*{escape_md(day.day)}*: {escape_md(day.recipe_title)}"
        if day.prep_time:
            line += f" ({escape_md(day.prep_time)})"
        lines.append(line)
        if day.note:
            lines.append(f"_{escape_md(day.note)}_")
    return lines


def format_draft_plan(plan: WeeklyPlan) -> str:
    header = "📋 *DRAFT Meal Plan*"
    if plan.week_start:
        header += f" (week of {plan.week_start.isoformat()})"
    parts = [header, "", *_plan_lines(plan)]
    if plan.cadence_warnings:
        parts += ["", "⚠️ _Schedule notes:_"]
        parts += [f"• {escape_md(w)}" for w in plan.cadence_warnings]
    parts += ["", "_Review your plan and choose an action below:_"]
    return "\n".join(parts)


def format_final_plan(plan: WeeklyPlan) -> str:
    return "\n".join(["✅ *Plan Confirmed!*", "", "📅 *Weekly Meal Plan*", "", *_plan_lines(plan)])


def format_shopping_list(items: list[str]) -> str:
    if not items:
        return "🛒 *Shopping List*\n\n_Nothing to buy this week._"
    return "\n".join(["🛒 *Shopping List*", ""] + [f"• {escape_md(i)}" for i in items])


def format_error(prefix: str, message: str) -> str:
    return f"❌ *{prefix}:*\n{escape_md(message)}"
