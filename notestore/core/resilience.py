"""
Retry policy for transient SQLite failures.

SQLite reports lock contention as "database is locked" or "busy". Those
surface here as StorageError with ``transient`` set, and only those are
retried; a rejected call is never repeated.

Usage:
    from notestore.core.resilience import transient_retry

    async for attempt in transient_retry(config.database.retry):
        with attempt:
            result = await unit_of_work()
"""

from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from notestore.core.config_schema import RetrySchema
from notestore.core.exceptions import StorageError
from notestore.core.logging import get_logger

logger = get_logger(__name__)


def log_retry(retry_state: Any) -> None:
    """before_sleep hook: one structured warning per retried attempt."""
    failure = retry_state.outcome
    elapsed = None
    if retry_state.outcome_timestamp and retry_state.start_time:
        elapsed = round((retry_state.outcome_timestamp - retry_state.start_time) * 1000)

    logger.warning(
        f"Retrying {getattr(retry_state.fn, '__name__', None) or 'unit_of_work'} "
        f"(attempt {retry_state.attempt_number})",
        extra={
            "resilience_event": "retry_attempt",
            "dependency": "sqlite",
            "attempt": retry_state.attempt_number,
            "duration_ms": elapsed,
            "error": str(failure.exception()) if failure is not None and failure.failed else None,
        },
    )


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, StorageError) and exc.transient


def transient_retry(policy: RetrySchema | None = None) -> AsyncRetrying:
    """Retry controller for one unit of work, configured by ``policy``."""
    policy = policy or RetrySchema()
    return AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(
            multiplier=policy.backoff_min_seconds,
            min=policy.backoff_min_seconds,
            max=policy.backoff_max_seconds,
        ),
        retry=retry_if_exception(is_transient),
        before_sleep=log_retry,
        reraise=True,
    )
