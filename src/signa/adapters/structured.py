"""Structured-object (JSON) adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Sequence

from signa.adapters.coercion import coerce_outputs, normalise_keys, render_inputs, render_value
from signa.exceptions import FieldValidationError, ParseError, StructuredDecodeError
from signa.models.example import Example
from signa.models.signature import Field, FieldKind, Signature
from signa.protocols import Message, RenderedRequest
from signa.repair import decode_json, find_object_candidates

logger = logging.getLogger(__name__)

REASONING_FIELD = "reasoning"

JSON_OBJECT_FORMAT: Mapping[str, str] = {"type": "json_object"}


def _key_line(spec: Field) -> str:
    hints = [spec.hint()]
    if spec.description:
        hints.append(spec.description)
    if spec.optional:
        hints.append("optional")
    return f'- "{spec.name}" ({"; ".join(hints)})'


class StructuredAdapter:
    """Adapter that asks for one JSON object keyed by the output names.

    Parsing locates object candidates in the response (code fences first,
    then prose), decodes them with repair, and validates the first object
    found against the signature.

    Args:
        include_reasoning: Ask for a ``reasoning`` key and return it when
            present.
        native_json: Attach ``response_format={"type": "json_object"}`` to
            rendered requests for providers with a JSON-object mode.
    """

    name = "structured"

    def __init__(self, *, include_reasoning: bool = False, native_json: bool = False) -> None:
        self.include_reasoning = include_reasoning
        self.native_json = native_json

    def __repr__(self) -> str:
        return (
            f"StructuredAdapter(include_reasoning={self.include_reasoning}, "
            f"native_json={self.native_json})"
        )

    def format(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Example] = (),
        history: Iterable[Message] | None = None,
    ) -> RenderedRequest:
        messages: list[Message] = []
        for index, demo in enumerate(demos, 1):
            user_lines = [f"--- Example {index} (Inputs) ---"]
            user_lines += [f"{k}: {render_value(v)}" for k, v in demo.ordered_inputs(signature)]
            messages.append(Message("user", "\n".join(user_lines)))
            outputs = dict(demo.ordered_outputs(signature))
            if outputs:
                messages.append(Message("assistant", json.dumps(outputs, indent=2, ensure_ascii=False)))
        if history:
            messages.extend(history)
        messages.append(Message("user", self._render_prompt(signature, inputs)))
        return RenderedRequest(
            messages=tuple(messages),
            response_format=JSON_OBJECT_FORMAT if self.native_json else None,
            adapter=self.name,
        )

    def _render_prompt(self, signature: Signature, inputs: Mapping[str, Any]) -> str:
        parts: list[str] = []
        if signature.description:
            parts.append(signature.description)
        input_lines = render_inputs(signature, inputs)
        if input_lines:
            parts.append("--- Inputs ---\n" + "\n".join(input_lines))
        if signature.output_fields:
            lines = [
                "--- Required Output Format ---",
                "Respond with a single JSON object with these keys:",
            ]
            if self.include_reasoning:
                lines.append(f'- "{REASONING_FIELD}" (string; your step-by-step reasoning)')
            lines += [_key_line(spec) for spec in signature.output_fields]
            lines.append("")
            lines.append("Return only the JSON object, with no markdown fences or extra text.")
            parts.append("\n".join(lines))
        return "\n\n".join(parts)

    def parse(self, signature: Signature, text: str) -> dict[str, Any]:
        """Recover typed outputs from a JSON object in the response.

        Raises:
            StructuredDecodeError: Object candidates exist but none decode.
            ParseError: No object is present and no single-string fallback
                applies.
            FieldValidationError: No decoded object satisfies the signature.
                The error from the first such object is raised.
        """
        first_error: StructuredDecodeError | None = None
        first_invalid: FieldValidationError | None = None
        for candidate in find_object_candidates(text):
            try:
                result = decode_json(candidate)
            except StructuredDecodeError as exc:
                first_error = first_error or exc
                continue
            if not isinstance(result.value, dict):
                continue
            if result.repaired:
                logger.debug("Structured candidate needed repair")
            try:
                return self._outputs_from_object(signature, result.value)
            except FieldValidationError as exc:
                logger.debug("Structured candidate rejected: %s", exc)
                first_invalid = first_invalid or exc

        if first_invalid is not None:
            raise first_invalid
        single = self._single_string_output(signature)
        if single is not None and text.strip():
            logger.debug("No JSON object found; using whole text for %r", single.name)
            return {single.name: text.strip()}
        if first_error is not None:
            raise first_error
        raise ParseError("No JSON object found in response")

    def _outputs_from_object(self, signature: Signature, obj: dict[str, Any]) -> dict[str, Any]:
        obj = {k: v for k, v in obj.items() if not str(k).startswith("__")}
        normalised = normalise_keys(signature, obj)
        outputs = coerce_outputs(signature, normalised, join_lists=True)
        if (
            self.include_reasoning
            and signature.output_field(REASONING_FIELD) is None
            and normalised.get(REASONING_FIELD) is not None
        ):
            outputs[REASONING_FIELD] = render_value(normalised[REASONING_FIELD]).strip()
        return outputs

    @staticmethod
    def _single_string_output(signature: Signature) -> Field | None:
        if len(signature.output_fields) == 1 and signature.output_fields[0].kind is FieldKind.STRING:
            return signature.output_fields[0]
        return None
