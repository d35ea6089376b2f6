import time
from typing import Optional

from ..errors import DeadlineExceeded


class Deadline:
    """Absolute point in (monotonic) time shared by every stage of one request.

    A single Deadline is created by the caller and handed down through the
    retriever, the agents and the provider clients so that a retry sleep
    never outlives the request it belongs to.
    """

    def __init__(self, expires_at: float):
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, what: str = "request"):
        if self.expired:
            raise DeadlineExceeded(f"deadline expired before {what}")

    def sleep(self, seconds: float):
        """Sleep for `seconds`, or raise as soon as the deadline passes."""
        remaining = self.remaining()
        if seconds >= remaining:
            time.sleep(remaining)
            raise DeadlineExceeded(f"deadline expired while waiting {seconds:.1f}s to retry")
        time.sleep(seconds)


def sleep_within(seconds: float, deadline: Optional[Deadline]):
    if deadline is None:
        time.sleep(seconds)
    else:
        deadline.sleep(seconds)


def timeout_for(default: float, deadline: Optional[Deadline]) -> float:
    """HTTP timeout bounded by the remaining deadline."""
    if deadline is None:
        return default
    deadline.check("provider call")
    return max(0.1, min(default, deadline.remaining()))
