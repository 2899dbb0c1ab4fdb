"""LLM provider infrastructure for Signa.

Provides the provider-side error hierarchy and an OpenAI-compatible
reference client built on httpx.
"""

from signa.llm.errors import (
    CancelledError,
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMResponseError,
    LLMStatusError,
    NetworkError,
    QuotaExhaustedError,
    RetryableStatusError,
)
from signa.llm.client import OpenAIClient

__all__ = [
    "OpenAIClient",
    "LLMClientError",
    "LLMConfigError",
    "LLMAuthError",
    "LLMResponseError",
    "LLMStatusError",
    "NetworkError",
    "RetryableStatusError",
    "QuotaExhaustedError",
    "CancelledError",
]
