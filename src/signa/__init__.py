"""Signa: typed, resilient calls to language models.

Declare a Signature, run it against a Provider, and get back typed,
validated outputs. Transient provider failures are retried with backoff;
loosely-structured responses are recovered through a chain of parsing
strategies with JSON repair.
"""

from signa._version import __version__
from signa.exceptions import (
    ChainExhaustedError,
    EnumViolationError,
    FieldMissingError,
    FieldTypeError,
    FieldValidationError,
    ParseError,
    SignaError,
    SignatureError,
    StructuredDecodeError,
)
from signa.models import ClientConfig, Example, Field, FieldKind, RetryPolicy, Signature
from signa.protocols import (
    Adapter,
    Message,
    Provider,
    RawResult,
    RenderedRequest,
    ResponseCache,
    TokenUsage,
    ToolCall,
)
from signa.repair import decode_json, find_object_candidates, repair_json
from signa.adapters import (
    FallbackAdapter,
    MarkerAdapter,
    ParseDiagnostics,
    StructuredAdapter,
    parse_with_diagnostics,
)
from signa.engine import LRUResponseCache
from signa.llm import (
    CancelledError,
    LLMClientError,
    NetworkError,
    OpenAIClient,
    QuotaExhaustedError,
    RetryableStatusError,
)
from signa.retry import (
    AttemptOutcome,
    CancellationToken,
    RetryResult,
    compute_backoff,
    execute_with_retry,
)
from signa.pipeline import CallResult, run_signature

__all__ = [
    "__version__",
    # Signatures
    "Signature",
    "Field",
    "FieldKind",
    "Example",
    # Config
    "RetryPolicy",
    "ClientConfig",
    # Protocols
    "Adapter",
    "Provider",
    "ResponseCache",
    "Message",
    "RenderedRequest",
    "RawResult",
    "TokenUsage",
    "ToolCall",
    # Adapters
    "MarkerAdapter",
    "StructuredAdapter",
    "FallbackAdapter",
    "ParseDiagnostics",
    "parse_with_diagnostics",
    # Repair
    "repair_json",
    "decode_json",
    "find_object_candidates",
    # Retry
    "execute_with_retry",
    "compute_backoff",
    "CancellationToken",
    "AttemptOutcome",
    "RetryResult",
    # Provider
    "OpenAIClient",
    "LRUResponseCache",
    # Pipeline
    "run_signature",
    "CallResult",
    # Exceptions
    "SignaError",
    "SignatureError",
    "ParseError",
    "FieldValidationError",
    "FieldMissingError",
    "FieldTypeError",
    "EnumViolationError",
    "StructuredDecodeError",
    "ChainExhaustedError",
    "LLMClientError",
    "NetworkError",
    "RetryableStatusError",
    "QuotaExhaustedError",
    "CancelledError",
]
