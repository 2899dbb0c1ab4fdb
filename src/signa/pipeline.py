"""One signature call: format, provider call under retry, parse.

run_signature() is the entry point upstream modules build on. It owns no
state; the provider applies its own retry policy and cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import IO, Any, Iterable, Mapping, Sequence

from signa.adapters.fallback import FallbackAdapter, ParseDiagnostics, parse_with_diagnostics
from signa.exceptions import ParseError
from signa.models.example import Example
from signa.models.signature import Signature
from signa.protocols import Adapter, Message, Provider, RawResult, TokenUsage
from signa.retry import CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    """Typed outputs of one call plus how they were obtained.

    Attributes:
        outputs: Typed field map keyed by output field name.
        diagnostics: Which adapter parsed the response and what failed first.
        usage: Token usage reported by the provider, if any.
        raw: The provider's raw result.
    """

    outputs: dict[str, Any]
    diagnostics: ParseDiagnostics
    usage: TokenUsage | None = None
    raw: RawResult = field(default_factory=lambda: RawResult(text=""))

    def __getitem__(self, name: str) -> Any:
        return self.outputs[name]

    def pprint(self, *, abbreviate: bool = False, file: IO[str] | None = None) -> None:
        """Pretty-print this result using rich formatting."""
        from signa.formatting import pprint_call_result

        pprint_call_result(self, abbreviate=abbreviate, file=file)


def run_signature(
    signature: Signature,
    inputs: Mapping[str, Any],
    *,
    provider: Provider,
    adapter: Adapter | None = None,
    demos: Sequence[Example] = (),
    history: Iterable[Message] | None = None,
    cancel: CancellationToken | None = None,
) -> CallResult:
    """Run one signature call end to end.

    Args:
        signature: The input/output contract.
        inputs: Input values keyed by input field name.
        provider: Anything implementing ``generate(request, *, cancel=)``.
        adapter: Format/parse strategy. Defaults to ``FallbackAdapter()``.
        demos: Few-shot demonstrations rendered before the prompt.
        history: Prior conversation messages rendered before the prompt.
        cancel: Optional cancellation token passed to the provider.

    Raises:
        FieldValidationError: ``inputs`` do not satisfy the signature.
        ParseError: The response could not be parsed. ``raw_text`` holds
            the response text.
        LLMClientError: The provider call failed.
    """
    signature.validate_inputs(inputs)
    adapter = adapter or FallbackAdapter()

    request = adapter.format(signature, inputs, demos, history)
    logger.debug("Rendered %d message(s) with %s", len(request.messages), request.adapter)

    raw = provider.generate(request, cancel=cancel)

    try:
        outcome = parse_with_diagnostics(adapter, signature, raw.text)
    except ParseError as exc:
        exc.raw_text = raw.text
        raise

    return CallResult(
        outputs=outcome.outputs,
        diagnostics=outcome.diagnostics,
        usage=raw.usage,
        raw=raw,
    )
