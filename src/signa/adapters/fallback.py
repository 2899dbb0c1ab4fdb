"""Fallback chain over parsing strategies.

FallbackAdapter tries each adapter in order against the same response text
and returns the first fully valid field map together with diagnostics that
say which strategy succeeded and why the earlier ones failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import IO, Any, Iterable, Mapping, Sequence

from signa.adapters.marker import MarkerAdapter
from signa.adapters.structured import StructuredAdapter
from signa.exceptions import ChainExhaustedError, ParseError
from signa.models.example import Example
from signa.models.signature import Signature
from signa.protocols import Adapter, Message, RenderedRequest

logger = logging.getLogger(__name__)


def adapter_name(adapter: object) -> str:
    return getattr(adapter, "name", None) or type(adapter).__name__


@dataclass(frozen=True)
class AdapterFailure:
    """Why one strategy in a chain failed."""

    index: int
    adapter: str
    reason: str

    def __str__(self) -> str:
        return f"[{self.index}] {self.adapter}: {self.reason}"


@dataclass(frozen=True)
class ParseDiagnostics:
    """Outcome metadata for one parse.

    Attributes:
        adapter_used: Name of the strategy that succeeded, or None.
        success_index: Position of that strategy in the chain, or None.
        attempts: Strategies tried, including the successful one.
        failures: Failures of the strategies tried before it.
    """

    adapter_used: str | None
    success_index: int | None
    attempts: int
    failures: tuple[AdapterFailure, ...] = ()

    @property
    def fallback_used(self) -> bool:
        return self.success_index is not None and self.success_index > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter_used": self.adapter_used,
            "success_index": self.success_index,
            "attempts": self.attempts,
            "fallback_used": self.fallback_used,
            "failures": [str(f) for f in self.failures],
        }

    def pprint(self, *, file: IO[str] | None = None) -> None:
        """Pretty-print these diagnostics using rich formatting."""
        from signa.formatting import pprint_diagnostics

        pprint_diagnostics(self, file=file)


@dataclass(frozen=True)
class ParseOutcome:
    outputs: dict[str, Any] = field(default_factory=dict)
    diagnostics: ParseDiagnostics = field(
        default_factory=lambda: ParseDiagnostics(None, None, 0)
    )


class FallbackAdapter:
    """Chain of adapters tried in order until one parses the response.

    ``format`` delegates to the first adapter, so the prompt asks for the
    format the chain prefers. The chain keeps no per-call state and is safe
    to share across threads.

    Usage::

        chain = FallbackAdapter()  # MarkerAdapter -> StructuredAdapter
        outcome = chain.parse_with_diagnostics(sig, response_text)
        if outcome.diagnostics.fallback_used:
            ...
    """

    name = "fallback"

    def __init__(self, adapters: Sequence[Adapter] | None = None) -> None:
        if adapters is None:
            adapters = (MarkerAdapter(), StructuredAdapter())
        self.adapters: tuple[Adapter, ...] = tuple(adapters)
        if not self.adapters:
            raise ValueError("FallbackAdapter needs at least one adapter")

    def __repr__(self) -> str:
        chain = " -> ".join(adapter_name(a) for a in self.adapters)
        return f"FallbackAdapter({chain})"

    def format(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Example] = (),
        history: Iterable[Message] | None = None,
    ) -> RenderedRequest:
        return self.adapters[0].format(signature, inputs, demos, history)

    def parse(self, signature: Signature, text: str) -> dict[str, Any]:
        return self.parse_with_diagnostics(signature, text).outputs

    def parse_with_diagnostics(self, signature: Signature, text: str) -> ParseOutcome:
        """Try each adapter in order against ``text``.

        Raises:
            ChainExhaustedError: Every adapter failed. Lists each failure
                and carries the raw response text.
        """
        failures: list[AdapterFailure] = []
        for index, adapter in enumerate(self.adapters):
            name = adapter_name(adapter)
            try:
                outputs = adapter.parse(signature, text)
            except ParseError as exc:
                logger.debug("Adapter %s failed to parse response: %s", name, exc)
                failures.append(AdapterFailure(index, name, str(exc)))
                continue
            if index > 0:
                logger.info("Parsed with fallback adapter %s after %d failure(s)", name, index)
            diagnostics = ParseDiagnostics(
                adapter_used=name,
                success_index=index,
                attempts=index + 1,
                failures=tuple(failures),
            )
            return ParseOutcome(outputs, diagnostics)
        raise ChainExhaustedError(failures, text)


def parse_with_diagnostics(adapter: Adapter, signature: Signature, text: str) -> ParseOutcome:
    """Parse ``text`` with any adapter and report diagnostics.

    Chains report their own diagnostics. A single adapter reports one
    attempt; its ParseError propagates unchanged.
    """
    chained = getattr(adapter, "parse_with_diagnostics", None)
    if chained is not None:
        return chained(signature, text)
    outputs = adapter.parse(signature, text)
    return ParseOutcome(outputs, ParseDiagnostics(adapter_name(adapter), 0, 1))
