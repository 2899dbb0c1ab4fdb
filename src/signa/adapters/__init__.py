"""Adapters: render signatures into messages and parse responses back."""

from signa.adapters.coercion import coerce_outputs, coerce_value, normalise_keys
from signa.adapters.fallback import (
    AdapterFailure,
    FallbackAdapter,
    ParseDiagnostics,
    ParseOutcome,
    parse_with_diagnostics,
)
from signa.adapters.marker import MarkerAdapter
from signa.adapters.structured import StructuredAdapter

__all__ = [
    "AdapterFailure",
    "FallbackAdapter",
    "MarkerAdapter",
    "ParseDiagnostics",
    "ParseOutcome",
    "StructuredAdapter",
    "coerce_outputs",
    "coerce_value",
    "normalise_keys",
    "parse_with_diagnostics",
]
