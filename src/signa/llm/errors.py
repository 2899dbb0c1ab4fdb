"""Provider-side error hierarchy.

All LLM errors inherit from SignaError for consistent exception handling.
The retry executor raises NetworkError and CancelledError itself; the
client turns terminal HTTP outcomes into the status errors below.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from signa.exceptions import SignaError

if TYPE_CHECKING:
    from signa.retry import AttemptRecord


def _body_preview(body: str, limit: int = 300) -> str:
    body = body.strip()
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class LLMClientError(SignaError):
    """Base for all LLM client errors."""


class LLMConfigError(LLMClientError):
    """Missing or invalid LLM configuration (e.g., no API key)."""


class LLMResponseError(LLMClientError):
    """Unexpected response format from LLM API."""


class LLMStatusError(LLMClientError):
    """The provider answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by the provider.
        body: Raw response body, kept for operators.
        attempts: Number of attempts made for the logical call.
    """

    def __init__(
        self,
        status_code: int,
        body: str = "",
        *,
        attempts: int = 1,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.attempts = attempts
        if message is None:
            message = f"Provider returned HTTP {status_code}"
        message = f"{message} after {attempts} attempt(s)"
        if body:
            message = f"{message}: {_body_preview(body)}"
        super().__init__(message)


class LLMAuthError(LLMStatusError):
    """Authentication failed (401/403)."""


class RetryableStatusError(LLMStatusError):
    """A transient status (429/5xx) persisted through the whole retry budget.

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header),
            or None if not provided.
    """

    def __init__(
        self,
        status_code: int,
        body: str = "",
        *,
        attempts: int = 1,
        retry_after: float | None = None,
    ) -> None:
        self.retry_after = retry_after
        message = f"Transient HTTP {status_code} persisted"
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(status_code, body, attempts=attempts, message=message)


class QuotaExhaustedError(LLMStatusError):
    """The account's quota or billing limit is exhausted. Never retried."""

    def __init__(self, status_code: int = 429, body: str = "", *, attempts: int = 1) -> None:
        super().__init__(
            status_code,
            body,
            attempts=attempts,
            message="Provider quota exhausted",
        )


class NetworkError(LLMClientError):
    """No response could be obtained from the provider.

    Raised by providers for a single failed attempt and by the retry
    executor once the attempt budget is spent.

    Attributes:
        attempts: Attempts made before giving up (0 for a single attempt
            error raised by a provider).
        last_error: The underlying transport exception, if any.
    """

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        attempts: int = 0,
        last_error: BaseException | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        if attempts:
            message = f"{message} after {attempts} attempt(s)"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class CancelledError(LLMClientError):
    """The caller cancelled the call (explicitly or via deadline).

    Attributes:
        attempts: Attempts that completed before cancellation was seen.
        last_error: Description of the last failed attempt, if any.
        during_backoff: Whether cancellation ended a backoff wait.
        records: Attempt history up to and including the cancelled attempt,
            when raised by the retry executor.
    """

    def __init__(
        self,
        *,
        attempts: int = 0,
        last_error: str | None = None,
        during_backoff: bool = False,
        records: Sequence[AttemptRecord] = (),
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.during_backoff = during_backoff
        self.records = tuple(records)
        where = "during backoff" if during_backoff else "before attempt"
        message = f"Call cancelled {where} after {attempts} attempt(s)"
        if last_error:
            message = f"{message} (last error: {last_error})"
        super().__init__(message)
