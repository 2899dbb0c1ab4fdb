"""Few-shot demonstrations rendered into prompts by adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from signa.models.signature import Signature


@dataclass(frozen=True)
class Example:
    """A single input/output demonstration."""

    inputs: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    label: str | None = None

    def ordered_inputs(self, signature: Signature) -> Iterator[tuple[str, Any]]:
        """Yield inputs in signature order, then any extra keys."""
        seen: set[str] = set()
        for spec in signature.input_fields:
            if spec.name in self.inputs:
                seen.add(spec.name)
                yield spec.name, self.inputs[spec.name]
        for key, value in self.inputs.items():
            if key not in seen:
                yield key, value

    def ordered_outputs(self, signature: Signature) -> Iterator[tuple[str, Any]]:
        """Yield outputs that belong to the signature, in declared order."""
        for spec in signature.output_fields:
            if spec.name in self.outputs:
                yield spec.name, self.outputs[spec.name]
