"""Built-in OpenAI-compatible httpx provider with retry.

Implements the Provider protocol over the chat completions endpoint. Each
POST runs through execute_with_retry(); terminal HTTP outcomes become the
errors in signa.llm.errors.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from signa.engine.cache import cache_key
from signa.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMResponseError,
    LLMStatusError,
    QuotaExhaustedError,
    RetryableStatusError,
)
from signa.models.config import ClientConfig, RetryPolicy
from signa.protocols import RawResult, RenderedRequest, ResponseCache
from signa.retry import AttemptOutcome, CancellationToken, RetryResult, execute_with_retry

logger = logging.getLogger(__name__)

_AUTH_ERROR_STATUS_CODES = {401, 403}


def _parse_retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


class OpenAIClient:
    """Sync httpx provider for OpenAI-compatible chat completions.

    Retries transient failures (429, 5xx, transport errors) according to
    its RetryPolicy and fails immediately on authentication errors and
    exhausted quotas.

    Usage::

        with OpenAIClient(api_key="sk-...") as client:
            result = client.generate(adapter.format(sig, inputs))
            print(result.text)

    Args:
        config: Connection settings. When omitted, built from the
            environment plus any keyword overrides (``api_key=``,
            ``base_url=``, ``model=``, ...).
        policy: Retry policy for every call. Defaults to ``RetryPolicy()``.
        cache: Optional response cache consulted before each call.
        client: Optional pre-built ``httpx.Client`` (e.g. with a mock
            transport). The caller keeps ownership of it.

    Raises:
        LLMConfigError: If no API key is configured.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        policy: RetryPolicy | None = None,
        cache: ResponseCache | None = None,
        client: httpx.Client | None = None,
        **overrides: Any,
    ) -> None:
        self.config = config or ClientConfig.from_env(**overrides)
        if not self.config.api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set SIGNA_OPENAI_API_KEY "
                "environment variable."
            )
        self.policy = policy or RetryPolicy()
        self.cache = cache
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.config.timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def __repr__(self) -> str:
        return f"OpenAIClient(model={self.config.model!r}, base_url={self.config.base_url!r})"

    def build_payload(self, request: RenderedRequest) -> dict[str, Any]:
        """Build the chat completions request body for ``request``."""
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": request.to_dicts(),
        }
        if self.config.temperature is not None:
            payload["temperature"] = self.config.temperature
        if self.config.max_tokens is not None:
            payload["max_tokens"] = self.config.max_tokens
        if request.response_format:
            payload["response_format"] = dict(request.response_format)
        return payload

    def generate(
        self,
        request: RenderedRequest,
        *,
        cancel: CancellationToken | None = None,
    ) -> RawResult:
        """Send ``request`` and return the provider's result.

        Raises:
            LLMAuthError: On 401/403 (no retry).
            QuotaExhaustedError: On an exhausted quota (exactly one call).
            RetryableStatusError: A transient status outlasted the policy.
            LLMStatusError: On other non-success statuses.
            NetworkError: No response after every attempt.
            CancelledError: ``cancel`` fired before or between attempts.
            LLMResponseError: On a malformed success payload.
        """
        key: str | None = None
        if self.cache is not None:
            key = cache_key(
                self.config.model,
                request,
                {"temperature": self.config.temperature, "max_tokens": self.config.max_tokens},
            )
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key[:12])
                return cached
            logger.debug("Cache miss for %s", key[:12])

        payload = self.build_payload(request)
        url = f"{self.config.base_url}/chat/completions"

        def post() -> httpx.Response:
            timeout = self.config.timeout
            remaining = cancel.remaining() if cancel is not None else None
            if remaining is not None:
                timeout = min(timeout, remaining)
            return self._client.post(url, json=payload, headers=self._headers, timeout=timeout)

        result = execute_with_retry(post, self.policy, cancel=cancel)
        self._raise_for_outcome(result)

        response = result.value
        try:
            data = response.json()
        except ValueError as exc:
            raise LLMResponseError(
                f"Response is not valid JSON: {exc}. Body: {response.text[:300]}"
            ) from exc
        try:
            raw = RawResult.from_openai(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Unexpected response format: missing {exc}. Response: {data}"
            ) from exc

        if self.cache is not None and key is not None:
            self.cache.set(key, raw)
        return raw

    @staticmethod
    def _raise_for_outcome(result: RetryResult[httpx.Response]) -> None:
        if result.outcome is AttemptOutcome.SUCCESS:
            return
        response = result.value
        status = response.status_code
        body = response.text
        if status in _AUTH_ERROR_STATUS_CODES:
            raise LLMAuthError(status, body, attempts=result.attempts, message="Authentication failed")
        if result.outcome is AttemptOutcome.QUOTA_EXHAUSTED:
            raise QuotaExhaustedError(status, body, attempts=result.attempts)
        if result.outcome is AttemptOutcome.RETRYABLE:
            raise RetryableStatusError(
                status,
                body,
                attempts=result.attempts,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        raise LLMStatusError(status, body, attempts=result.attempts)

    def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> OpenAIClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
