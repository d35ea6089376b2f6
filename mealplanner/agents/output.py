import json
import logging
import re
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ModelOutputError
from ..schemas import WEEK_SLOTS

logger = logging.getLogger("mealplanner.ai")

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.match(text or "")
    return match.group(1) if match else (text or "").strip()


def parse_model_output(stage: str, raw: str, model: Type[M]) -> M:
    """Validate a stage's raw text against its schema.

    Any failure is terminal for the stage and carries the raw text.
    """
    try:
        data = json.loads(strip_code_fences(raw))
        return model.model_validate(data)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.error("%s returned malformed output: %s. Raw: %s", stage, e, raw)
        raise ModelOutputError(stage, raw, reason=(str(e).splitlines() or [""])[0]) from e


def require_slots(stage: str, raw: str, slots: list) -> None:
    """A stage must fill every weekly slot; a short or long schedule is terminal."""
    if len(slots) != len(WEEK_SLOTS):
        reason = f"expected {len(WEEK_SLOTS)} slots, got {len(slots)}"
        logger.error("%s returned %s. Raw: %s", stage, reason, raw)
        raise ModelOutputError(stage, raw, reason=reason)
