"""Data models: signatures, demonstrations, configuration."""

from signa.models.config import ClientConfig, RetryPolicy
from signa.models.example import Example
from signa.models.signature import (
    Field,
    FieldKind,
    FieldViolation,
    Signature,
    ValidationDiagnostics,
)

__all__ = [
    "ClientConfig",
    "Example",
    "Field",
    "FieldKind",
    "FieldViolation",
    "RetryPolicy",
    "Signature",
    "ValidationDiagnostics",
]
