"""Signature and field descriptors.

A Signature declares the inputs a call needs and the typed outputs it
should produce. It has no network behavior; adapters use it to render
prompts and to validate what they recover from a response.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping

from signa.exceptions import (
    EnumViolationError,
    FieldMissingError,
    FieldTypeError,
    FieldValidationError,
    SignatureError,
)


class FieldKind(str, enum.Enum):
    """Primitive kind of a signature field."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    JSON = "json"
    CLASS = "class"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Field:
    """A single input or output field.

    Attributes:
        name: Field name, unique within its signature.
        kind: Primitive kind the value must have.
        description: Human description shown to the model.
        optional: Whether the field may be absent.
        classes: Legal values for CLASS fields.
        aliases: Synonyms for class values, e.g. ``{"pos": "positive"}``.
    """

    name: str
    kind: FieldKind = FieldKind.STRING
    description: str = ""
    optional: bool = False
    classes: tuple[str, ...] = ()
    aliases: Mapping[str, str] = field(default_factory=dict)

    def normalise_class(self, value: str) -> str | None:
        """Map a raw label to its canonical legal value, or None."""
        label = value.strip().strip("\"'`*.,;:!").strip()
        if not label:
            return None
        lowered = label.lower()
        for legal in self.classes:
            if legal.lower() == lowered:
                return legal
        for alias, target in self.aliases.items():
            if alias.lower() == lowered:
                return target
        return None

    def hint(self) -> str:
        """Short type hint used in rendered prompts."""
        if self.kind is FieldKind.CLASS and self.classes:
            return f"one of: {', '.join(self.classes)}"
        return self.kind.value


# Characters that would break the marker a field is rendered with.
_RESERVED_NAME_CHARS = frozenset("[]#\r\n")

ViolationCode = Literal["missing", "type", "enum"]


@dataclass(frozen=True)
class FieldViolation:
    """One field that failed validation."""

    field: str
    code: ViolationCode
    reason: str

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"

    def to_error(self, violations: Iterable[FieldViolation] = ()) -> FieldValidationError:
        error_cls = _ERROR_FOR_CODE[self.code]
        return error_cls(self.field, self.reason, tuple(violations) or (self,))


_ERROR_FOR_CODE: dict[str, type[FieldValidationError]] = {
    "missing": FieldMissingError,
    "type": FieldTypeError,
    "enum": EnumViolationError,
}


@dataclass(frozen=True)
class ValidationDiagnostics:
    """Per-field outcome of checking a value map against a signature."""

    violations: tuple[FieldViolation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def missing_fields(self) -> list[str]:
        return [v.field for v in self.violations if v.code == "missing"]

    def for_field(self, name: str) -> FieldViolation | None:
        for violation in self.violations:
            if violation.field == name:
                return violation
        return None

    def raise_for_violations(self) -> None:
        """Raise the error for the first violation, carrying all of them."""
        if self.violations:
            raise self.violations[0].to_error(self.violations)


def check_value(spec: Field, value: Any) -> FieldViolation | None:
    """Check one value against its descriptor's runtime kind."""
    kind = spec.kind
    if kind is FieldKind.STRING:
        ok = isinstance(value, str)
    elif kind is FieldKind.INT:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif kind is FieldKind.FLOAT:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif kind is FieldKind.BOOL:
        ok = isinstance(value, bool)
    elif kind is FieldKind.JSON:
        ok = isinstance(value, (dict, list))
    else:
        if not isinstance(value, str):
            return FieldViolation(spec.name, "type", f"expected class label, got {type(value).__name__}")
        if value not in spec.classes:
            return FieldViolation(
                spec.name,
                "enum",
                f"{value!r} is not one of {list(spec.classes)}",
            )
        return None
    if not ok:
        return FieldViolation(
            spec.name,
            "type",
            f"expected {kind.value}, got {type(value).__name__} ({value!r:.60})",
        )
    return None


def _check_fields(fields: Iterable[Field], values: Mapping[str, Any]) -> ValidationDiagnostics:
    violations: list[FieldViolation] = []
    for spec in fields:
        if spec.name not in values or values[spec.name] is None:
            if not spec.optional:
                violations.append(FieldViolation(spec.name, "missing", "required field is missing"))
            continue
        violation = check_value(spec, values[spec.name])
        if violation is not None:
            violations.append(violation)
    return ValidationDiagnostics(tuple(violations))


class Signature:
    """Declarative description of a call's inputs and typed outputs.

    Usage::

        sig = (
            Signature("Classify the sentiment of the text.")
            .add_input("text", FieldKind.STRING, "Text to classify")
            .add_class_output("sentiment", ["positive", "negative", "neutral"])
            .add_output("confidence", FieldKind.FLOAT, "Confidence 0-1")
        )
    """

    def __init__(self, description: str = "") -> None:
        self.description = description
        self.input_fields: list[Field] = []
        self.output_fields: list[Field] = []

    def __repr__(self) -> str:
        ins = ", ".join(f.name for f in self.input_fields)
        outs = ", ".join(f.name for f in self.output_fields)
        return f"Signature({ins} -> {outs})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _add(self, target: list[Field], spec: Field) -> Signature:
        if not spec.name or not spec.name.strip():
            raise SignatureError("Field name must be non-empty")
        if any(ch in spec.name for ch in _RESERVED_NAME_CHARS):
            raise SignatureError(
                f"Field name {spec.name!r} may not contain brackets, '#' or line breaks"
            )
        if self.input_field(spec.name) or self.output_field(spec.name):
            raise SignatureError(f"Duplicate field name: {spec.name!r}")
        if spec.kind is FieldKind.CLASS:
            if not spec.classes:
                raise SignatureError(f"Class field {spec.name!r} needs at least one legal value")
            unknown = [t for t in spec.aliases.values() if t not in spec.classes]
            if unknown:
                raise SignatureError(
                    f"Aliases for {spec.name!r} point at unknown classes: {unknown}"
                )
        target.append(spec)
        return self

    def add_input(
        self,
        name: str,
        kind: FieldKind | str = FieldKind.STRING,
        description: str = "",
        *,
        optional: bool = False,
    ) -> Signature:
        return self._add(
            self.input_fields,
            Field(name=name, kind=_as_kind(kind), description=description, optional=optional),
        )

    def add_output(
        self,
        name: str,
        kind: FieldKind | str = FieldKind.STRING,
        description: str = "",
        *,
        optional: bool = False,
        classes: Iterable[str] | None = None,
        aliases: Mapping[str, str] | None = None,
    ) -> Signature:
        return self._add(
            self.output_fields,
            Field(
                name=name,
                kind=_as_kind(kind),
                description=description,
                optional=optional,
                classes=tuple(classes or ()),
                aliases=dict(aliases or {}),
            ),
        )

    def add_class_output(
        self,
        name: str,
        classes: Iterable[str],
        description: str = "",
        *,
        optional: bool = False,
        aliases: Mapping[str, str] | None = None,
    ) -> Signature:
        return self.add_output(
            name,
            FieldKind.CLASS,
            description,
            optional=optional,
            classes=classes,
            aliases=aliases,
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def input_field(self, name: str) -> Field | None:
        for spec in self.input_fields:
            if spec.name == name:
                return spec
        return None

    def output_field(self, name: str) -> Field | None:
        for spec in self.output_fields:
            if spec.name == name:
                return spec
        return None

    @property
    def output_names(self) -> list[str]:
        return [f.name for f in self.output_fields]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_inputs(self, inputs: Mapping[str, Any]) -> None:
        """Raise if a required input is missing or an input has the wrong kind."""
        _check_fields(self.input_fields, inputs).raise_for_violations()

    def check_outputs(self, outputs: Mapping[str, Any]) -> ValidationDiagnostics:
        """Check a typed field map against the output fields.

        Pure function shared by every adapter. Never raises.
        """
        return _check_fields(self.output_fields, outputs)


def _as_kind(kind: FieldKind | str) -> FieldKind:
    if isinstance(kind, FieldKind):
        return kind
    try:
        return FieldKind(kind)
    except ValueError:
        raise SignatureError(f"Unknown field kind: {kind!r}") from None
