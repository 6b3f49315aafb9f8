from __future__ import annotations

from typing import Any, Callable, TypeVar

import structlog
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from .errors import TransientError

T = TypeVar("T")

log = structlog.get_logger(__name__)


class DeterministicExponentialBackoff(wait_base):
    """
    0, base, 2*base, 4*base ... capped at `cap`. No jitter, so tests can assert sleeps.
    """

    def __init__(self, *, base: float = 1.0, cap: float = 8.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        n = retry_state.attempt_number
        if n <= 0:
            return 0.0
        return min(self._cap, self._base * (2 ** (n - 1)))


def call_with_retries(
    fn: Callable[[], T],
    *,
    what: str,
    max_attempts: int,
    backoff_base: float,
    backoff_cap: float,
    retry_on: tuple[type[BaseException], ...] = (TransientError,),
    sleep: Callable[[float], None] | None = None,
    **log_fields: Any,
) -> T:
    """
    Run `fn` until it succeeds, raises a non-retryable error, or `max_attempts`
    is exhausted. On exhaustion the last retryable exception is re-raised as-is,
    so callers see the same error type as a single failed attempt.
    """

    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        log.warning(
            "retry",
            what=what,
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            sleep_s=delay,
            error=str(exc) if exc else None,
            **log_fields,
        )

    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=DeterministicExponentialBackoff(base=backoff_base, cap=backoff_cap),
        retry=retry_if_exception_type(retry_on),
        reraise=False,
        before_sleep=_before_sleep,
        **kwargs,
    )

    try:
        for attempt in retrying:
            with attempt:
                return fn()
    except RetryError as re:
        last = re.last_attempt.exception()
        if last is None:
            raise
        log.error(
            "retries.exhausted",
            what=what,
            attempts=re.last_attempt.attempt_number,
            error=str(last),
            **log_fields,
        )
        raise last from None

    raise RuntimeError("unreachable")
