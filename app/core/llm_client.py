"""
Shared LLM client with retry logic for upstream rate limits and overload.

The retry loop is expressed as a RetryPolicy value applied by the generic
`retry_with_backoff` combinator, so the policy can be exercised without
the model and the model call stays unaware of backoff.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from langchain_groq import ChatGroq

from app.core.config import settings
from app.core.errors import UpstreamError, UpstreamTransient

logger = logging.getLogger(__name__)

T = TypeVar("T")

llm = ChatGroq(
    api_key=settings.GROQ_API_KEY,
    model_name=settings.LLM_MODEL,
    temperature=settings.LLM_TEMPERATURE,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them.

    `base_delay_for` returns the base delay in seconds for a retryable
    error, or None when the error must not be retried. The wait before
    retry n (0-based) is `base * 2 ** n`.
    """
    max_attempts: int
    base_delay_for: Callable[[BaseException], Optional[float]]

    def delay(self, exc: BaseException, attempt: int) -> Optional[float]:
        base = self.base_delay_for(exc)
        if base is None:
            return None
        return base * (2 ** attempt)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Call `fn` until it succeeds, the error is not retryable, or attempts run out.

    The last error is re-raised unchanged.
    """
    sleep = sleep or asyncio.sleep
    for attempt in range(policy.max_attempts):
        try:
            return await fn()
        except Exception as e:
            wait_time = policy.delay(e, attempt)
            if wait_time is None or attempt == policy.max_attempts - 1:
                raise
            logger.warning(
                f"Retryable upstream error (attempt {attempt + 1}/{policy.max_attempts}): {e}. "
                f"Retrying in {wait_time:.1f}s..."
            )
            await sleep(wait_time)
    raise RuntimeError("RetryPolicy.max_attempts must be at least 1")


def upstream_status(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status of an upstream error (429, 503 or None)."""
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(status, int):
        return status

    error_str = str(exc).lower()
    if "429" in error_str or "rate limit" in error_str or "resource exhausted" in error_str:
        return 429
    if "503" in error_str or "overloaded" in error_str or "service unavailable" in error_str:
        return 503
    return None


def llm_base_delay(exc: BaseException) -> Optional[float]:
    status = upstream_status(exc)
    if status == 429:
        return settings.RATE_LIMIT_BASE_DELAY
    if status == 503:
        return settings.OVERLOAD_BASE_DELAY
    return None


DEFAULT_LLM_POLICY = RetryPolicy(
    max_attempts=settings.TRANSLATION_MAX_RETRIES,
    base_delay_for=llm_base_delay,
)


@dataclass
class LLMResult:
    text: str
    total_tokens: int


def _total_tokens(response) -> int:
    usage = getattr(response, "usage_metadata", None) or {}
    if usage.get("total_tokens"):
        return int(usage["total_tokens"])
    token_usage = (getattr(response, "response_metadata", None) or {}).get("token_usage") or {}
    return int(token_usage.get("total_tokens") or 0)


async def invoke_with_retry(prompt: str, policy: RetryPolicy = DEFAULT_LLM_POLICY) -> LLMResult:
    """Invoke the LLM once for `prompt`, retrying 429/503 with exponential backoff.

    Raises UpstreamTransient if retries are exhausted and UpstreamError for
    any other failure.
    """
    async def _call():
        return await llm.ainvoke(prompt)

    try:
        response = await retry_with_backoff(_call, policy)
    except Exception as e:
        status = upstream_status(e)
        if status in (429, 503):
            logger.error(f"LLM still unavailable after {policy.max_attempts} attempts: {e}")
            raise UpstreamTransient(
                "AI service is temporarily busy. Please try again in a few minutes.", status
            ) from e
        logger.error(f"LLM invocation error: {e}")
        raise UpstreamError(f"Translation service error: {e}") from e

    return LLMResult(text=response.content, total_tokens=_total_tokens(response))
