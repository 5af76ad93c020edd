"""Resilient Request Executor: retry with exponential backoff on rate limits.

Every remote read/write in the services goes through one
``ResilientExecutor`` so all of them share the same backoff curve:
``base * 2**(attempt-1)`` (1s, 2s, 4s, 8s with the defaults), a bounded
symmetric jitter, and an optional server ``Retry-After`` hint. Delays never
decrease from one attempt to the next.

Only rate-limit signals are retried (HTTP 429, or an error message saying
"too many requests"). Anything else surfaces on the first attempt.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import RateLimitError, RemoteError
from .logging_setup import get_logger
from .remote import Response

_logger = get_logger("fnzo.retry")

_MAX_JITTER = 1 / 3


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 1.0
    # Fraction of the nominal delay; capped at 1/3 so consecutive
    # delays stay non-decreasing even at the jitter extremes.
    jitter: float = 0.2
    honor_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if not 0 <= self.jitter <= _MAX_JITTER:
            raise ValueError("jitter must be within [0, 1/3]")

    def nominal_delay(self, attempt_no: int) -> float:
        """Un-jittered delay after failed attempt ``attempt_no`` (1-based)."""

        return self.base_delay * (2 ** (attempt_no - 1))


def _is_rate_limited_exc(exc: BaseException) -> bool:
    sc = getattr(exc, "status_code", None)
    if sc is None:
        sc = getattr(exc, "status", None)
    if isinstance(sc, int) and sc == 429:
        return True
    return "too many requests" in str(exc).lower()


def _retry_after_of(exc: BaseException) -> float | None:
    value = getattr(exc, "retry_after", None)
    return float(value) if isinstance(value, int | float) else None


class ResilientExecutor:
    """Run zero-argument Remote Store thunks with rate-limit retries."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _delay(self, attempt_no: int, retry_after: float | None, previous: float) -> float:
        p = self.policy
        nominal = p.nominal_delay(attempt_no)
        delay = nominal + self._rng.uniform(-p.jitter, p.jitter) * nominal
        if p.honor_retry_after and retry_after is not None:
            delay = max(delay, retry_after)
        return max(0.0, delay, previous)

    def run(self, call: Callable[[], Response], *, op: str = "remote") -> Response:
        """Execute ``call`` and return its successful ``Response``.

        Raises ``RemoteError`` for non-rate-limit failures (immediately) and
        ``RateLimitError`` once ``max_attempts`` rate-limited attempts have
        been observed. Exceptions raised by ``call`` that are not rate-limit
        signals propagate unchanged.
        """

        previous = 0.0
        attempt = 1
        while True:
            retry_after: float | None
            try:
                resp = call()
            except RemoteError:
                raise
            except Exception as e:  # noqa: BLE001
                if not _is_rate_limited_exc(e):
                    raise
                last_error, status, code = str(e), 429, None
                retry_after = _retry_after_of(e)
            else:
                if resp.ok:
                    if attempt > 1:
                        _logger.info("retry:recovered op=%s attempts=%d", op, attempt)
                    return resp
                if not resp.is_rate_limited:
                    raise RemoteError(
                        resp.error or "remote call failed",
                        status=resp.status,
                        code=resp.code,
                        operation=op,
                    )
                last_error, status, code = resp.error or "rate limited", resp.status, resp.code
                retry_after = resp.retry_after

            if attempt >= self.policy.max_attempts:
                _logger.error(
                    "retry:exhausted op=%s attempts=%d error=%s", op, attempt, last_error
                )
                raise RateLimitError(
                    f"Rate limited after {attempt} attempts: {last_error}",
                    status=status,
                    code=code,
                    operation=op,
                )
            delay = self._delay(attempt, retry_after, previous)
            _logger.warning(
                "retry:rate_limited op=%s attempt=%d delay_s=%.2f", op, attempt, delay
            )
            self._sleep(delay)
            previous = delay
            attempt += 1


__all__ = ["RetryPolicy", "ResilientExecutor"]
