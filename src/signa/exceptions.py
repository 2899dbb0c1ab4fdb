"""Signa exception hierarchy.

All Signa-specific exceptions inherit from SignaError. Provider-side
errors live in signa.llm.errors and share the same root.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from signa.adapters.fallback import AdapterFailure
    from signa.models.signature import FieldViolation


def _preview(text: str, limit: int = 500) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class SignaError(Exception):
    """Base exception for all Signa errors."""


class SignatureError(SignaError):
    """Raised when a signature is constructed with invalid fields."""


class ParseError(SignaError):
    """Base for failures to recover typed outputs from a response.

    Attributes:
        raw_text: The response text that failed to parse, when known.
            Attached by the pipeline so callers can see what the model
            actually returned.
    """

    raw_text: str | None = None


class FieldValidationError(ParseError):
    """A decoded value does not satisfy its field descriptor.

    Attributes:
        field: Name of the first failing field.
        reason: Human-readable reason for that field.
        violations: Every violation found in the same check, so callers
            can report all failing fields at once.
    """

    def __init__(
        self,
        field: str,
        reason: str,
        violations: Sequence[FieldViolation] = (),
    ) -> None:
        self.field = field
        self.reason = reason
        self.violations = tuple(violations)
        msg = f"Field '{field}': {reason}"
        others = [v for v in self.violations if v.field != field]
        if others:
            msg += " (also: " + "; ".join(str(v) for v in others) + ")"
        super().__init__(msg)


class FieldMissingError(FieldValidationError):
    """A required field is absent from the response."""


class FieldTypeError(FieldValidationError):
    """A field value could not be coerced to its declared kind."""


class EnumViolationError(FieldValidationError):
    """A class field's value is not one of its legal values."""


class StructuredDecodeError(ParseError):
    """Structured text failed strict decoding even after repair.

    Both the original decode error and the repaired candidate are kept
    so diagnostics can show what repair attempted.
    """

    def __init__(self, original_error: str, candidate: str, repaired: str) -> None:
        self.original_error = original_error
        self.candidate = candidate
        self.repaired = repaired
        super().__init__(
            f"Invalid structured output: {original_error}. "
            f"Repaired candidate still invalid: {_preview(repaired, 200)!r}"
        )


class ChainExhaustedError(ParseError):
    """Every adapter in a fallback chain failed to parse the response."""

    def __init__(self, failures: Sequence[AdapterFailure], raw_text: str) -> None:
        self.failures = tuple(failures)
        self.raw_text = raw_text
        lines = [f"All {len(self.failures)} adapter(s) failed to parse response:"]
        for failure in self.failures:
            lines.append(f"  - {failure}")
        lines.append(f"Raw response (length={len(raw_text)}):")
        lines.append(_preview(raw_text))
        super().__init__("\n".join(lines))
