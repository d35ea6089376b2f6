import time
from unittest.mock import MagicMock

import pytest
import requests

from mealplanner.core.ai_client import (
    GroqClient,
    RetryPolicy,
    call_with_retry,
    parse_retry_after,
)
from mealplanner.core.deadline import Deadline, timeout_for
from mealplanner.errors import DeadlineExceeded, ProviderError, RateLimitExhausted


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(time, "sleep", lambda s: recorded.append(s))
    return recorded


def _flaky(*outcomes):
    """Callable that raises / returns each outcome in turn."""
    queue = list(outcomes)
    calls = []

    def call():
        calls.append(1)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    call.calls = calls
    return call


def _response(status, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload or {}
    return resp


@pytest.mark.parametrize(
    "body,expected",
    [
        ("Rate limit reached. Please try again in 9.24s.", 9.74),
        ("Resource exhausted. Please retry in 14s", 14.5),
        ("slow down", 5.0),
        ("", 5.0),
    ],
)
def test_parse_retry_after(body, expected):
    assert parse_retry_after(body) == pytest.approx(expected)


def test_rate_limit_waits_for_server_hint(sleeps):
    call = _flaky(ProviderError("429", status_code=429, body="Please try again in 2s"), "ok")

    assert call_with_retry(call, RetryPolicy()) == "ok"
    assert sleeps == [pytest.approx(2.5)]


def test_server_errors_back_off_exponentially(sleeps):
    call = _flaky(ProviderError("503", status_code=503), ProviderError("timeout"), "ok")

    assert call_with_retry(call, RetryPolicy()) == "ok"
    assert sleeps == [1.0, 2.0]


def test_client_errors_are_not_retried(sleeps):
    call = _flaky(ProviderError("bad request", status_code=400), "ok")

    with pytest.raises(ProviderError) as exc:
        call_with_retry(call, RetryPolicy())
    assert exc.value.status_code == 400
    assert len(call.calls) == 1
    assert sleeps == []


def test_rate_limit_exhaustion(sleeps):
    errors = [ProviderError("429", status_code=429, body="") for _ in range(3)]
    call = _flaky(*errors)

    with pytest.raises(RateLimitExhausted):
        call_with_retry(call, RetryPolicy(max_attempts=3))
    assert len(call.calls) == 3
    assert sleeps == [5.0, 5.0]


def test_server_error_exhaustion_is_terminal(sleeps):
    call = _flaky(*[ProviderError("502", status_code=502) for _ in range(3)])

    with pytest.raises(ProviderError) as exc:
        call_with_retry(call, RetryPolicy())
    assert exc.value.retryable is False
    assert not isinstance(exc.value, RateLimitExhausted)


def test_retry_wait_never_outlives_deadline(sleeps):
    call = _flaky(ProviderError("429", status_code=429, body="Please try again in 30s"), "ok")

    with pytest.raises(DeadlineExceeded):
        call_with_retry(call, RetryPolicy(), deadline=Deadline.after(5))
    assert len(call.calls) == 1
    assert sleeps[0] <= 5


def test_expired_deadline_stops_before_calling():
    call = _flaky("ok")
    with pytest.raises(DeadlineExceeded):
        call_with_retry(call, RetryPolicy(), deadline=Deadline(time.monotonic() - 1))
    assert call.calls == []


def test_timeout_for_is_bounded_by_deadline():
    assert timeout_for(30.0, None) == 30.0
    assert timeout_for(30.0, Deadline.after(2)) <= 2
    with pytest.raises(DeadlineExceeded):
        timeout_for(30.0, Deadline(time.monotonic() - 1))


def test_groq_client_parses_usage_and_retries(sleeps):
    session = MagicMock()
    session.post.side_effect = [
        _response(429, text="Please try again in 1.5s"),
        _response(
            200,
            {
                "choices": [{"message": {"content": '{"plan": []}'}}],
                "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
            },
        ),
    ]
    client = GroqClient("key", "llama-test", session=session)

    resp = client.generate("prompt")

    assert resp.content == '{"plan": []}'
    assert resp.usage.prompt_tokens == 120
    assert resp.usage.model == "llama-test"
    assert sleeps == [pytest.approx(2.0)]
    body = session.post.call_args.kwargs["json"]
    assert body["model"] == "llama-test"
    assert body["response_format"] == {"type": "json_object"}
    assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer key"


def test_groq_client_timeouts_are_retryable(sleeps):
    session = MagicMock()
    session.post.side_effect = [
        requests.Timeout("read timed out"),
        _response(200, {"choices": [{"message": {"content": "{}"}}]}),
    ]

    resp = GroqClient("key", "llama-test", session=session).generate("prompt")

    assert resp.content == "{}"
    assert resp.usage.prompt_tokens == 0
    assert sleeps == [1.0]


def test_groq_client_empty_choices():
    session = MagicMock()
    session.post.return_value = _response(200, {"choices": []})

    with pytest.raises(ProviderError) as exc:
        GroqClient("key", "llama-test", session=session).generate("prompt")
    assert exc.value.retryable is False
