"""Value coercion shared by every adapter.

Models answer with loosely-typed text ("about 0.92", "High", "Yes.").
The helpers here turn those raw values into the kinds declared on a
signature's output fields, or raise the matching FieldValidationError.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from signa.exceptions import FieldValidationError, StructuredDecodeError
from signa.models.signature import (
    Field,
    FieldKind,
    FieldViolation,
    Signature,
    ValidationDiagnostics,
)
from signa.repair import decode_json, strip_code_fence

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")

_QUALITATIVE_SCORES = {
    "very high": 0.95,
    "high": 0.9,
    "medium": 0.7,
    "moderate": 0.7,
    "low": 0.3,
    "very low": 0.1,
}

_TRUE_WORDS = frozenset({"true", "yes", "t", "y", "1"})
_FALSE_WORDS = frozenset({"false", "no", "f", "n", "0"})

# Only applied when the signature has an ``answer`` output and no field
# already claims the synonym.
_ANSWER_SYNONYMS = ("final", "finalanswer", "finalresult", "result", "response")

_PUNCTUATION = "\"'`*.,;:!()[] "


def _violation(spec: Field, reason: str, code: str = "type") -> FieldValidationError:
    return FieldViolation(spec.name, code, reason).to_error()  # type: ignore[arg-type]


def normalise_key(key: str) -> str:
    """Lowercase a key and drop spaces, underscores and hyphens."""
    return re.sub(r"[\s_\-]", "", key.strip().lower())


def normalise_keys(signature: Signature, mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Map decoded keys onto the signature's output field names.

    Matching ignores case, spaces, ``_`` and ``-``. Keys that match no
    output field are kept as-is. When two keys map to the same field, the
    first non-null value wins.
    """
    canonical = {normalise_key(f.name): f.name for f in signature.output_fields}
    if "answer" in canonical:
        for synonym in _ANSWER_SYNONYMS:
            canonical.setdefault(synonym, "answer")

    out: dict[str, Any] = {}
    for key, value in mapping.items():
        name = canonical.get(normalise_key(str(key)))
        if name is None:
            out[key] = value
        elif out.get(name) is None:
            out[name] = value
    return out


def extract_number(text: str) -> float | None:
    """Pull a number out of prose, or map a qualitative confidence word."""
    match = _NUMBER_RE.search(text)
    if match:
        return float(match.group(0))
    word = " ".join(text.strip().strip(_PUNCTUATION).lower().split())
    return _QUALITATIVE_SCORES.get(word)


def _coerce_number(spec: Field, value: Any) -> float:
    if isinstance(value, bool):
        raise _violation(spec, f"expected {spec.kind.value}, got bool")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        number = extract_number(value)
        if number is not None:
            return number
        raise _violation(spec, f"no number found in {value!r:.60}")
    raise _violation(spec, f"expected {spec.kind.value}, got {type(value).__name__}")


def coerce_value(spec: Field, value: Any, *, join_lists: bool = False) -> Any:
    """Coerce one raw value to the kind declared by ``spec``.

    Args:
        spec: Output field descriptor.
        value: Raw value recovered from the response (never None).
        join_lists: Join list values with newlines for string fields.

    Raises:
        FieldTypeError: The value cannot be converted to the field's kind.
        EnumViolationError: A class value is not one of the legal values.
    """
    kind = spec.kind

    if kind is FieldKind.STRING:
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, list):
            if not join_lists:
                raise _violation(spec, "expected string, got list")
            return "\n".join(render_value(item) for item in value)
        if isinstance(value, dict):
            raise _violation(spec, "expected string, got object")
        return render_value(value)

    if kind is FieldKind.INT:
        number = _coerce_number(spec, value)
        if isinstance(number, int):
            return number
        if not number.is_integer():
            raise _violation(spec, f"expected int, got non-integral {number}")
        return int(number)

    if kind is FieldKind.FLOAT:
        return float(_coerce_number(spec, value))

    if kind is FieldKind.BOOL:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            word = value.strip().strip(_PUNCTUATION).lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        raise _violation(spec, f"expected bool, got {value!r:.60}")

    if kind is FieldKind.JSON:
        if isinstance(value, (dict, list)):
            return value
        if isinstance(value, str):
            try:
                decoded = decode_json(strip_code_fence(value)).value
            except StructuredDecodeError as exc:
                raise _violation(spec, f"invalid JSON: {exc.original_error}") from exc
            if isinstance(decoded, (dict, list)):
                return decoded
            raise _violation(spec, f"expected JSON object or array, got {type(decoded).__name__}")
        raise _violation(spec, f"expected JSON object or array, got {type(value).__name__}")

    # class
    label = value if isinstance(value, str) else render_value(value)
    canonical = spec.normalise_class(label)
    if canonical is None and label.split():
        canonical = spec.normalise_class(label.split()[0])
    if canonical is None:
        raise _violation(spec, f"{label!r:.60} is not one of {list(spec.classes)}", code="enum")
    return canonical


def coerce_outputs(
    signature: Signature,
    raw: Mapping[str, Any],
    *,
    join_lists: bool = False,
) -> dict[str, Any]:
    """Coerce and validate a raw field map against the output fields.

    Every failing field is collected first so the raised error reports all
    of them. Absent optional fields are omitted from the result.

    Raises:
        FieldMissingError, FieldTypeError, EnumViolationError: For the first
            failing field, carrying every violation.
    """
    outputs: dict[str, Any] = {}
    violations: dict[str, FieldViolation] = {}
    for spec in signature.output_fields:
        value = raw.get(spec.name)
        if value is None or (
            isinstance(value, str) and not value.strip() and spec.kind is not FieldKind.STRING
        ):
            continue
        try:
            outputs[spec.name] = coerce_value(spec, value, join_lists=join_lists)
        except FieldValidationError as exc:
            for violation in exc.violations:
                violations[violation.field] = violation

    for violation in signature.check_outputs(outputs).violations:
        violations.setdefault(violation.field, violation)

    ordered = tuple(violations[f.name] for f in signature.output_fields if f.name in violations)
    ValidationDiagnostics(ordered).raise_for_violations()
    return outputs


def render_value(value: Any) -> str:
    """Render a value the way adapters show it to the model."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render_inputs(signature: Signature, inputs: Mapping[str, Any]) -> list[str]:
    """Render ``name: value`` lines for the inputs, in signature order."""
    lines = []
    for spec in signature.input_fields:
        if spec.name not in inputs:
            continue
        label = f"{spec.name} ({spec.description})" if spec.description else spec.name
        lines.append(f"{label}: {render_value(inputs[spec.name])}")
    return lines
