"""Configuration models for Signa.

RetryPolicy is the immutable policy handed to the retry executor.
ClientConfig holds provider connection settings for the reference client.
Both are passed explicitly; there is no global configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from pydantic import BaseModel, field_validator

QuotaClassifier = Callable[[int, str], bool]

DEFAULT_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

DEFAULT_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff policy for one logical provider call.

    Example::

        policy = RetryPolicy(max_retries=5, max_backoff=10.0)

    Attributes:
        max_retries: Retries after the first attempt (3 means 4 attempts).
        initial_backoff: Delay in seconds after the first failed attempt.
        max_backoff: Cap on the un-jittered delay.
        jitter: Relative jitter applied to every delay (0.1 = +/-10%).
        retryable_statuses: Status codes treated as transient.
        quota_classifier: ``(status_code, body) -> bool`` deciding whether a
            response means a permanently exhausted quota. None selects
            :func:`signa.retry.is_quota_exhausted`.
        network_errors: Exception types meaning "no response obtained",
            in addition to :class:`signa.llm.errors.NetworkError`.
    """

    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    jitter: float = 0.1
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES
    quota_classifier: Optional[QuotaClassifier] = None
    network_errors: tuple[type[BaseException], ...] = field(default=DEFAULT_NETWORK_ERRORS)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff durations must be >= 0")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def none(cls) -> RetryPolicy:
        """Policy that makes exactly one attempt."""
        return cls(max_retries=0)


class ClientConfig(BaseModel):
    """Connection settings for the OpenAI-compatible reference client."""

    model_config = {"frozen": True}

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout: float = 120.0
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_env(cls, **overrides: object) -> ClientConfig:
        """Build a config from SIGNA_* environment variables.

        Explicit keyword overrides win over the environment. ``None``
        overrides are ignored so callers can pass optional arguments
        straight through.
        """
        values: dict[str, object] = {}
        env_map = {
            "api_key": "SIGNA_OPENAI_API_KEY",
            "base_url": "SIGNA_OPENAI_BASE_URL",
            "model": "SIGNA_MODEL",
        }
        for name, var in env_map.items():
            env_value = os.environ.get(var)
            if env_value:
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
