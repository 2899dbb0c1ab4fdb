"""Marker-delimited text adapter.

Asks the model to write each output field after a ``[[ ## name ## ]]``
marker on its own line, then slices the response between markers.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Sequence

from signa.adapters.coercion import coerce_outputs, normalise_keys, render_inputs, render_value
from signa.models.example import Example
from signa.models.signature import Field, FieldKind, Signature
from signa.protocols import Message, RenderedRequest

logger = logging.getLogger(__name__)

# Tolerates ``[[## name ##]]``, ``[[ ## name ## ]`` and ``[[ ## name ##``. Names may
# hold any character except brackets, ``#`` and line breaks.
MARKER_RE = re.compile(r"\[\[\s*##\s*([^\[\]#\r\n]+?)\s*##[ \t]*\]{0,2}")

_TRAILING_FRAGMENT_RE = re.compile(r"\[\[\s*#*\s*\Z")

REASONING_FIELD = "reasoning"


def marker(name: str) -> str:
    return f"[[ ## {name} ## ]]"


def split_sections(text: str) -> dict[str, str]:
    """Split marked text into ``{marker name: raw value}``.

    Every marker bounds the previous value, including markers for names the
    signature does not know (e.g. ``completed``). When a marker repeats,
    the first occurrence wins.
    """
    matches = list(MARKER_RE.finditer(text))
    sections: dict[str, str] = {}
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        value = text[match.end() : end].strip().lstrip("]").strip()
        value = _TRAILING_FRAGMENT_RE.sub("", value).strip()
        sections.setdefault(match.group(1).strip(), value)
    return sections


def _field_hint(spec: Field) -> str:
    hints = [spec.hint()]
    if spec.description:
        hints.append(spec.description)
    if spec.optional:
        hints.append("optional")
    return " (" + ", ".join(hints) + ")"


class MarkerAdapter:
    """Adapter for marker-delimited responses.

    Usage::

        adapter = MarkerAdapter()
        request = adapter.format(sig, {"text": "I love it"})
        outputs = adapter.parse(sig, response_text)

    Args:
        include_reasoning: Ask for a leading ``reasoning`` section and
            return it under ``"reasoning"`` when present.
    """

    name = "marker"

    def __init__(self, *, include_reasoning: bool = False) -> None:
        self.include_reasoning = include_reasoning

    def __repr__(self) -> str:
        return f"MarkerAdapter(include_reasoning={self.include_reasoning})"

    # ------------------------------------------------------------------
    # Format
    # ------------------------------------------------------------------

    def format(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Example] = (),
        history: Iterable[Message] | None = None,
    ) -> RenderedRequest:
        messages: list[Message] = []
        for index, demo in enumerate(demos, 1):
            messages.extend(self._format_demo(signature, demo, index))
        if history:
            messages.extend(history)
        messages.append(Message("user", self._render_prompt(signature, inputs)))
        return RenderedRequest(messages=tuple(messages), adapter=self.name)

    def _render_prompt(self, signature: Signature, inputs: Mapping[str, Any]) -> str:
        parts: list[str] = []
        if signature.description:
            parts.append(signature.description)
        if self.include_reasoning:
            parts.append("Think through this step-by-step before giving your final answer.")

        input_lines = render_inputs(signature, inputs)
        if input_lines:
            parts.append("--- Inputs ---\n" + "\n".join(input_lines))

        if signature.output_fields:
            lines = [
                "--- Required Output Format ---",
                "Respond using the following format with field markers:",
                "",
            ]
            if self.include_reasoning:
                lines += [f"{marker(REASONING_FIELD)} (your step-by-step reasoning)", ""]
            for spec in signature.output_fields:
                lines += [marker(spec.name) + _field_hint(spec), ""]
            lines.append(
                "Use the exact marker format shown above. "
                "Start each field with [[ ## field_name ## ]] on its own line."
            )
            parts.append("\n".join(lines))
        return "\n\n".join(parts)

    def _format_demo(self, signature: Signature, demo: Example, index: int) -> list[Message]:
        user_lines = [f"--- Example {index} (Inputs) ---"]
        user_lines += [f"{key}: {render_value(value)}" for key, value in demo.ordered_inputs(signature)]
        messages = [Message("user", "\n".join(user_lines))]
        outputs = list(demo.ordered_outputs(signature))
        if outputs:
            blocks = [f"{marker(key)}\n{render_value(value)}" for key, value in outputs]
            messages.append(Message("assistant", "\n\n".join(blocks)))
        return messages

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(self, signature: Signature, text: str) -> dict[str, Any]:
        """Recover typed outputs from marker-delimited text.

        Raises:
            FieldMissingError: A required field's marker is absent.
            FieldTypeError: A value cannot be coerced to its kind.
            EnumViolationError: A class value is not a legal value.
        """
        sections = normalise_keys(signature, split_sections(text))
        logger.debug("Marker sections found: %s", list(sections))

        raw: dict[str, Any] = {}
        for spec in signature.output_fields:
            value = sections.get(spec.name)
            if value is not None and spec.kind is FieldKind.CLASS:
                value = next((line.strip() for line in value.splitlines() if line.strip()), "")
            raw[spec.name] = value

        outputs = coerce_outputs(signature, raw)
        if (
            self.include_reasoning
            and signature.output_field(REASONING_FIELD) is None
            and sections.get(REASONING_FIELD)
        ):
            outputs[REASONING_FIELD] = sections[REASONING_FIELD]
        return outputs
