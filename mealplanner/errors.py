"""Exception hierarchy for the meal planner.

Every error that can end a planning, ingestion or chat flow derives from
MealPlannerError so the HTTP and chat layers can turn it into a short
message while the full detail goes to the log.
"""

from typing import Optional


class MealPlannerError(Exception):
    user_message = "Something went wrong. Please try again."
    # Usage of the failing stage, and of every stage run before it
    meta = None
    metas: tuple = ()


class ProviderError(MealPlannerError):
    """Transient failure talking to a text or embedding provider."""

    user_message = "The AI service is unavailable right now. Please try again shortly."

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        if retryable is None:
            # Timeouts / connection errors carry no status code
            retryable = status_code is None or status_code == 429 or status_code >= 500
        self.retryable = retryable

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class RateLimitExhausted(ProviderError):
    user_message = "The AI service is busy (rate limited). Please try again in a minute."


class DeadlineExceeded(MealPlannerError):
    user_message = "That took too long. Please try again."


class ModelOutputError(MealPlannerError):
    """A stage returned text that is not the JSON shape it promised."""

    user_message = "The planner returned an unexpected answer. Please try again."

    def __init__(self, stage: str, raw_text: str, reason: str = ""):
        super().__init__(f"{stage}: could not parse model output ({reason}). Response: {raw_text}")
        self.stage = stage
        self.raw_text = raw_text
        self.reason = reason


class NoCandidatesError(MealPlannerError):
    user_message = "No recipes are available yet. Add some recipes first."


class VectorCorruptionError(MealPlannerError):
    def __init__(self, byte_length: int):
        super().__init__(f"stored vector has {byte_length} bytes, not a multiple of 4")
        self.byte_length = byte_length


class PersistenceError(MealPlannerError):
    user_message = "Could not save your data. Please try again."


class PlanNotFoundError(MealPlannerError):
    user_message = "Could not find that plan. Please start a new one."

    def __init__(self, plan_id: int):
        super().__init__(f"meal plan {plan_id} not found")
        self.plan_id = plan_id


class InvalidPlanTransition(MealPlannerError):
    user_message = "That plan can no longer be changed."

    def __init__(self, plan_id: int, current: str, target: str):
        super().__init__(f"meal plan {plan_id}: cannot move from {current} to {target}")
        self.plan_id = plan_id
        self.current = current
        self.target = target


class WeekOccupiedError(MealPlannerError):
    user_message = "A plan already exists for that week."

    def __init__(self, user_id: str, week_start):
        super().__init__(f"user {user_id} already has a plan for week {week_start}")
        self.user_id = user_id
        self.week_start = week_start


class CadenceViolation(MealPlannerError):
    user_message = "The planner produced an invalid schedule. Please try again."

    def __init__(self, problems: list[str]):
        super().__init__("cadence violations: " + "; ".join(problems))
        self.problems = problems


class ExternalServiceError(MealPlannerError):
    """Non-LLM HTTP collaborator (CMS, chat transport, web page) failed."""

    user_message = "An external service failed. Please try again later."

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


def user_message(exc: BaseException) -> str:
    """Short, human-readable text for a terminal error."""
    if isinstance(exc, MealPlannerError):
        return exc.user_message
    return MealPlannerError.user_message


def status_for(exc: BaseException) -> int:
    """HTTP status for an error surfaced through the API."""
    if isinstance(exc, PlanNotFoundError):
        return 404
    if isinstance(exc, (InvalidPlanTransition, WeekOccupiedError)):
        return 409
    if isinstance(exc, NoCandidatesError):
        return 422
    if isinstance(exc, DeadlineExceeded):
        return 504
    if isinstance(exc, (ProviderError, ModelOutputError, CadenceViolation, ExternalServiceError)):
        return 502
    return 500
