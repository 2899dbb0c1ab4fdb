"""Retry/backoff executor for provider calls.

execute_with_retry() runs one logical call under a RetryPolicy using
tenacity. Transient failures (retryable statuses, network errors) are
retried with capped, jittered exponential backoff; non-retryable statuses
and exhausted quotas are returned after a single call; any other exception
propagates unretried.

Cancellation is cooperative. A CancellationToken is checked before every
attempt, and backoff sleeps wait on the token's event so an early cancel()
ends the sleep at once.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Protocol, TypeVar

import tenacity

from signa.llm.errors import CancelledError, NetworkError
from signa.models.config import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUOTA_CODES = frozenset({"insufficient_quota", "billing_hard_limit_reached"})

# 2.0 ** 1100 overflows a float; any policy caps far below this anyway.
_MAX_EXPONENT = 64


class AttemptOutcome(str, enum.Enum):
    """How a single attempt ended."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    QUOTA_EXHAUSTED = "quota_exhausted"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AttemptRecord:
    """One attempt of a logical call.

    Attributes:
        index: 0-based attempt number.
        backoff: Seconds slept after this attempt (0.0 when none).
        outcome: How the attempt ended.
        status_code: HTTP status, or None when no response was obtained.
        error: Short description of the failure, if any.
    """

    index: int
    backoff: float = 0.0
    outcome: AttemptOutcome = AttemptOutcome.SUCCESS
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Result of a retry-guarded call.

    Attributes:
        value: What the final attempt returned.
        attempts: Total attempts (1 = first try returned).
        records: One record per attempt, in order.
        outcome: Outcome of the final attempt. ``RETRYABLE`` means the
            budget ran out and ``value`` is the last transient response.
    """

    value: T
    attempts: int
    records: tuple[AttemptRecord, ...] = ()
    outcome: AttemptOutcome = AttemptOutcome.SUCCESS

    def pprint(self, *, file: Any = None) -> None:
        """Pretty-print the attempt history using rich formatting."""
        from signa.formatting import pprint_retry_result

        pprint_retry_result(self, file=file)


class _ResponseLike(Protocol):
    status_code: int
    text: str


class CancellationToken:
    """Cooperative cancellation signal with an optional deadline.

    Usage::

        token = CancellationToken(timeout=30.0)
        threading.Timer(5.0, token.cancel).start()
        provider.generate(request, cancel=token)
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self.deadline: float | None = None if timeout is None else time.monotonic() + timeout

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, remaining={self.remaining()})"

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``. Return True if cancelled meanwhile."""
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        if self._event.wait(max(timeout, 0.0)):
            return True
        return self.cancelled

    def raise_if_cancelled(self, *, attempts: int = 0, last_error: str | None = None) -> None:
        if self.cancelled:
            raise CancelledError(attempts=attempts, last_error=last_error)


def compute_backoff(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """Delay in seconds after the 0-based ``attempt``.

    ``min(initial_backoff * 2**attempt, max_backoff)`` scaled by a uniform
    factor in ``[1 - jitter, 1 + jitter]``.
    """
    base = min(policy.initial_backoff * (2.0 ** min(attempt, _MAX_EXPONENT)), policy.max_backoff)
    factor = 1.0 + (rng or random).uniform(-policy.jitter, policy.jitter)
    return max(0.0, base * factor)


def _is_quota_code(value: Any) -> bool:
    return isinstance(value, str) and value in _QUOTA_CODES


def is_quota_exhausted(status_code: int, body: str) -> bool:
    """Default quota classifier for OpenAI-compatible providers.

    True only for a 429 whose JSON body carries ``insufficient_quota`` or
    ``billing_hard_limit_reached`` as ``error.code`` / ``error.type`` (or
    as top-level ``code`` / ``type``).
    """
    if status_code != 429 or not body:
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    candidates = [payload]
    if isinstance(payload.get("error"), dict):
        candidates.append(payload["error"])
    return any(_is_quota_code(c.get("code")) or _is_quota_code(c.get("type")) for c in candidates)


def classify_response(response: _ResponseLike, policy: RetryPolicy) -> AttemptOutcome:
    """Classify a provider response under ``policy``."""
    status = response.status_code
    if 200 <= status < 300:
        return AttemptOutcome.SUCCESS
    classifier = policy.quota_classifier or is_quota_exhausted
    if classifier(status, response.text):
        return AttemptOutcome.QUOTA_EXHAUSTED
    if status in policy.retryable_statuses:
        return AttemptOutcome.RETRYABLE
    return AttemptOutcome.NON_RETRYABLE


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def execute_with_retry(
    call: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    cancel: CancellationToken | None = None,
    rng: random.Random | None = None,
) -> RetryResult[T]:
    """Run ``call`` under a retry policy.

    ``call`` performs one attempt. It either returns a response-like object
    (anything with ``status_code`` and ``text``, classified by
    :func:`classify_response`), returns any other value (treated as
    success), or raises.

    Args:
        call: Zero-argument callable performing one attempt.
        policy: Retry policy. Defaults to ``RetryPolicy()``.
        cancel: Optional cancellation token.
        rng: Random source for jitter (tests pass a seeded one).

    Returns:
        RetryResult with the final attempt's value. A response that is
        still retryable on the last attempt is returned, not raised.

    Raises:
        NetworkError: Every attempt failed without a response.
        CancelledError: The token was cancelled before an attempt or
            during a backoff wait. Its ``records`` end with a ``CANCELLED``
            entry for the attempt that never ran.
        Exception: Any non-network exception from ``call``, unretried.
    """
    policy = policy or RetryPolicy()
    records: list[AttemptRecord] = []
    network_errors = (NetworkError, *policy.network_errors)

    def last_error() -> str | None:
        return records[-1].error if records else None

    def attempt() -> T:
        index = len(records)
        try:
            value = call()
        except network_errors as exc:
            records.append(AttemptRecord(index, outcome=AttemptOutcome.RETRYABLE, error=_describe(exc)))
            raise
        except Exception as exc:
            records.append(AttemptRecord(index, outcome=AttemptOutcome.NON_RETRYABLE, error=_describe(exc)))
            raise
        status = getattr(value, "status_code", None)
        if status is None:
            records.append(AttemptRecord(index))
            return value
        outcome = classify_response(value, policy)  # type: ignore[arg-type]
        error = None if outcome is AttemptOutcome.SUCCESS else f"HTTP {status}"
        records.append(AttemptRecord(index, outcome=outcome, status_code=status, error=error))
        return value

    def is_retryable_result(value: Any) -> bool:
        return bool(records) and records[-1].outcome is AttemptOutcome.RETRYABLE

    def wait(retry_state: tenacity.RetryCallState) -> float:
        delay = compute_backoff(retry_state.attempt_number - 1, policy, rng)
        records[-1] = dataclasses.replace(records[-1], backoff=delay)
        return delay

    def cancelled(*, during_backoff: bool) -> CancelledError:
        # the attempt that would have run next is recorded as cancelled
        attempts, error = len(records), last_error()
        records.append(AttemptRecord(attempts, outcome=AttemptOutcome.CANCELLED, error="cancelled"))
        return CancelledError(
            attempts=attempts,
            last_error=error,
            during_backoff=during_backoff,
            records=records,
        )

    def sleep(seconds: float) -> None:
        if cancel is None:
            time.sleep(seconds)
        elif cancel.wait(seconds):
            raise cancelled(during_backoff=True)

    def before(retry_state: tenacity.RetryCallState) -> None:
        if cancel is not None and cancel.cancelled:
            raise cancelled(during_backoff=False)

    def on_exhausted(retry_state: tenacity.RetryCallState) -> T:
        # tenacity computes the wait before checking stop; no sleep follows
        records[-1] = dataclasses.replace(records[-1], backoff=0.0)
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            raise NetworkError(attempts=len(records), last_error=exc) from exc
        logger.warning("Retry budget exhausted after %d attempt(s): %s", len(records), last_error())
        return outcome.result()  # type: ignore[union-attr]

    retryer = tenacity.Retrying(
        retry=(
            tenacity.retry_if_exception_type(network_errors)
            | tenacity.retry_if_result(is_retryable_result)
        ),
        wait=wait,
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        sleep=sleep,
        before=before,
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        retry_error_callback=on_exhausted,
    )
    value = retryer(attempt)
    return RetryResult(
        value=value,
        attempts=len(records),
        records=tuple(records),
        outcome=records[-1].outcome,
    )
