"""Protocol definitions for Signa.

Defines the pluggable interfaces (Adapter, Provider, ResponseCache) and the
frozen dataclasses that flow between them (Message, RenderedRequest,
ToolCall, TokenUsage, RawResult).
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Literal, Mapping, Protocol, Sequence, TypedDict, runtime_checkable

from signa.exceptions import StructuredDecodeError
from signa.repair import decode_json

if TYPE_CHECKING:
    from signa.models.example import Example
    from signa.models.signature import Signature
    from signa.retry import CancellationToken

Role = Literal["system", "user", "assistant", "tool"]


class _ToolCallOpenAIFunction(TypedDict):
    name: str
    arguments: str


class ToolCallOpenAIDict(TypedDict):
    """OpenAI wire format for a single tool call."""

    id: str
    type: str
    function: _ToolCallOpenAIFunction


@dataclass(frozen=True)
class Message:
    """A single role-tagged message."""

    role: Role
    content: str
    name: str | None = None

    def to_dict(self) -> dict[str, str]:
        d = {"role": self.role, "content": self.content}
        if self.name is not None:
            d["name"] = self.name
        return d


@dataclass(frozen=True)
class RenderedRequest:
    """Provider-ready request produced by an adapter.

    Attributes:
        messages: Messages in send order.
        response_format: Optional provider hint, e.g.
            ``{"type": "json_object"}`` for JSON-object mode.
        adapter: Name of the adapter that rendered the request.
    """

    messages: tuple[Message, ...] = ()
    response_format: Mapping[str, Any] | None = None
    adapter: str = ""

    def to_dicts(self) -> list[dict[str, str]]:
        """Convert messages to a list of dicts with role/content keys."""
        return [m.to_dict() for m in self.messages]

    def to_cache_payload(self) -> dict[str, Any]:
        return {
            "messages": self.to_dicts(),
            "response_format": dict(self.response_format) if self.response_format else None,
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool/function invocation requested by the model.

    Arguments arrive from OpenAI-compatible providers as a JSON string and
    are decoded (with repair) at ingestion time. When decoding fails, the
    raw string is kept under ``"_raw"`` and the reason in ``decode_error``.
    """

    id: str
    name: str
    arguments: dict
    type: str = "function"
    decode_error: str | None = None

    @classmethod
    def from_openai(cls, tc: Mapping[str, Any]) -> ToolCall:
        """Parse from OpenAI/compatible format."""
        function = tc.get("function") or {}
        raw_args = function.get("arguments", "")
        decode_error: str | None = None
        if isinstance(raw_args, dict):
            arguments = raw_args
        elif not raw_args:
            arguments = {}
        else:
            try:
                value = decode_json(str(raw_args)).value
            except StructuredDecodeError as exc:
                arguments = {"_raw": raw_args}
                decode_error = exc.original_error
            else:
                if isinstance(value, dict):
                    arguments = value
                else:
                    arguments = {"_raw": raw_args}
                    decode_error = f"arguments decoded to {type(value).__name__}, expected object"
        return cls(
            id=tc.get("id", ""),
            name=function.get("name", ""),
            arguments=arguments,
            type=tc.get("type", "function"),
            decode_error=decode_error,
        )

    def to_openai(self) -> ToolCallOpenAIDict:
        """Serialize to OpenAI wire format."""
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.name,
                "arguments": _json.dumps(self.arguments),
            },
        }


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by an LLM API response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_openai(cls, usage: Mapping[str, Any] | None) -> TokenUsage | None:
        if not usage:
            return None
        prompt = int(usage.get("prompt_tokens") or 0)
        completion = int(usage.get("completion_tokens") or 0)
        total = int(usage.get("total_tokens") or prompt + completion)
        return cls(prompt, completion, total)


@dataclass(frozen=True)
class RawResult:
    """What a provider returned for one logical call.

    Attributes:
        text: Assistant text content ("" when the model only called tools).
        tool_calls: Tool call fragments, arguments already decoded.
        usage: Token usage, or None if not reported.
        finish_reason: Provider finish reason, if any.
        model: Model name reported by the provider.
        raw: The full provider payload.
    """

    text: str
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage | None = None
    finish_reason: str | None = None
    model: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_openai(cls, data: Mapping[str, Any]) -> RawResult:
        """Build from an OpenAI-compatible chat completion payload.

        Raises:
            KeyError, IndexError, TypeError: If the payload has no first
                choice with a message.
        """
        choice = data["choices"][0]
        message = choice["message"]
        return cls(
            text=message.get("content") or "",
            tool_calls=tuple(ToolCall.from_openai(tc) for tc in message.get("tool_calls") or ()),
            usage=TokenUsage.from_openai(data.get("usage")),
            finish_reason=choice.get("finish_reason"),
            model=data.get("model"),
            raw=data,
        )


@runtime_checkable
class Adapter(Protocol):
    """Renders a signature into messages and recovers typed outputs from text."""

    name: str

    def format(
        self,
        signature: Signature,
        inputs: Mapping[str, Any],
        demos: Sequence[Example] = (),
        history: Iterable[Message] | None = None,
    ) -> RenderedRequest:
        ...

    def parse(self, signature: Signature, text: str) -> dict[str, Any]:
        """Return the typed field map, or raise a ParseError subclass."""
        ...


@runtime_checkable
class Provider(Protocol):
    """Protocol for anything that can answer a rendered request."""

    def generate(
        self,
        request: RenderedRequest,
        *,
        cancel: CancellationToken | None = None,
    ) -> RawResult:
        ...


@runtime_checkable
class ResponseCache(Protocol):
    """Key/value store for provider results."""

    def get(self, key: str) -> RawResult | None:
        ...

    def set(self, key: str, result: RawResult) -> None:
        ...
