import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TypeVar

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import ProviderError, RateLimitExhausted
from ..schemas import ContentResponse, TokenUsage
from .deadline import Deadline, sleep_within, timeout_for

logger = logging.getLogger("mealplanner.ai")

GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"

T = TypeVar("T")

# "Please try again in 9.24s" (Groq) / "Please retry in 14.5s" (Gemini)
_RETRY_AFTER_RE = re.compile(r"(?:try again|retry) in ([0-9]+(?:\.[0-9]+)?)\s*s", re.IGNORECASE)


class TextGenerator(Protocol):
    def generate(self, prompt: str, deadline: Optional[Deadline] = None) -> ContentResponse:
        ...


class EmbeddingGenerator(Protocol):
    def embed(self, text: str, deadline: Optional[Deadline] = None) -> list[float]:
        ...


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    default_wait: float = 5.0
    buffer: float = 0.5
    backoff: float = 1.0

    def wait_for(self, error: ProviderError, attempt: int) -> float:
        if error.rate_limited:
            return parse_retry_after(error.body or str(error), self.default_wait, self.buffer)
        return self.backoff * (2 ** (attempt - 1))


def parse_retry_after(body: str, default: float = 5.0, buffer: float = 0.5) -> float:
    """Seconds to wait before retrying a rate-limited call.

    Uses the server hint plus `buffer`, or `default` when there is no hint.
    """
    match = _RETRY_AFTER_RE.search(body or "")
    if match:
        seconds = float(match.group(1))
        if seconds > 0:
            return seconds + buffer
    return default


def call_with_retry(
    call: Callable[[], T],
    policy: RetryPolicy,
    deadline: Optional[Deadline] = None,
    label: str = "llm",
) -> T:
    """Run `call`, retrying transient ProviderErrors up to policy.max_attempts.

    Sleeps never extend past `deadline`; DeadlineExceeded propagates as is.
    """
    last_error: Optional[ProviderError] = None
    for attempt in range(1, policy.max_attempts + 1):
        if deadline is not None:
            deadline.check(label)
        try:
            return call()
        except ProviderError as e:
            if not e.retryable:
                raise
            last_error = e
            if attempt == policy.max_attempts:
                break
            wait = policy.wait_for(e, attempt)
            logger.warning(
                "%s: %s. Waiting %.1fs before retry %d/%d",
                label, e, wait, attempt, policy.max_attempts,
            )
            sleep_within(wait, deadline)

    if last_error is not None and last_error.rate_limited:
        raise RateLimitExhausted(
            f"{label}: exceeded {policy.max_attempts} attempts after rate limit: {last_error}",
            status_code=429,
            body=last_error.body,
            retryable=False,
        ) from last_error
    raise ProviderError(
        f"{label}: exceeded {policy.max_attempts} attempts: {last_error}",
        status_code=last_error.status_code if last_error else None,
        retryable=False,
    ) from last_error


class GroqClient:
    """Text generation over Groq's OpenAI-compatible chat completions API.

    One instance per model id (analyst vs normalizer).
    """

    def __init__(
        self,
        api_key: str,
        model_id: str,
        retry: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str, deadline: Optional[Deadline] = None) -> ContentResponse:
        body = {
            "model": self.model_id,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }
        return call_with_retry(
            lambda: self._post(body, deadline), self.retry, deadline, label=f"groq:{self.model_id}"
        )

    def _post(self, body: dict, deadline: Optional[Deadline]) -> ContentResponse:
        try:
            resp = self.session.post(
                GROQ_API_URL,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout_for(self.timeout, deadline),
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ProviderError(f"groq request failed: {e}") from e

        if resp.status_code == 429:
            raise ProviderError(f"groq api rate limit: {resp.text}", status_code=429, body=resp.text)
        if resp.status_code != 200:
            raise ProviderError(
                f"groq api error: status={resp.status_code} body={resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("groq: no content generated", status_code=200, retryable=False)

        usage = data.get("usage") or {}
        return ContentResponse(
            content=choices[0].get("message", {}).get("content") or "",
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
                model=self.model_id,
            ),
        )


class GeminiClient:
    """Gemini text generation (JSON mode) and embeddings via google-genai."""

    def __init__(
        self,
        api_key: Optional[str],
        text_model: str,
        embedding_model: str,
        retry: Optional[RetryPolicy] = None,
        client: Optional[genai.Client] = None,
    ):
        self.text_model = text_model
        self.embedding_model = embedding_model
        self.retry = retry or RetryPolicy()
        self._client = client or genai.Client(api_key=api_key)

    def generate(self, prompt: str, deadline: Optional[Deadline] = None) -> ContentResponse:
        def _call() -> ContentResponse:
            try:
                response = self._client.models.generate_content(
                    model=self.text_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(response_mime_type="application/json"),
                )
            except genai_errors.APIError as e:
                raise _provider_error(e) from e

            meta = response.usage_metadata
            return ContentResponse(
                content=response.text or "",
                usage=TokenUsage(
                    prompt_tokens=(meta.prompt_token_count or 0) if meta else 0,
                    completion_tokens=(meta.candidates_token_count or 0) if meta else 0,
                    total_tokens=(meta.total_token_count or 0) if meta else 0,
                    model=self.text_model,
                ),
            )

        return call_with_retry(_call, self.retry, deadline, label=f"gemini:{self.text_model}")

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> list[float]:
        def _call() -> list[float]:
            try:
                response = self._client.models.embed_content(
                    model=self.embedding_model,
                    contents=text,
                )
            except genai_errors.APIError as e:
                raise _provider_error(e) from e
            if not response.embeddings:
                raise ProviderError("gemini: no embedding returned", status_code=200, retryable=False)
            return list(response.embeddings[0].values or [])

        return call_with_retry(_call, self.retry, deadline, label=f"gemini:{self.embedding_model}")


def _provider_error(e: genai_errors.APIError) -> ProviderError:
    message = f"{e.__class__.__name__}: {e}"
    code = getattr(e, "code", None)
    if code is None and ("quota" in str(e).lower() or "429" in str(e)):
        code = 429
    return ProviderError(message, status_code=code, body=str(e))


class TimedCall:
    """Measures wall-clock latency of a stage in milliseconds."""

    def __init__(self):
        self.started = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)
