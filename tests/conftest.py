"""Shared test fixtures for Signa.

Provides the sentiment signature used across scenarios, a scripted
provider that replays canned responses, and a retry policy with no
backoff delay.
"""

from __future__ import annotations

import pytest

from signa.models.config import RetryPolicy
from signa.models.signature import FieldKind, Signature
from signa.protocols import RawResult, RenderedRequest, TokenUsage


def make_sentiment_signature() -> Signature:
    return (
        Signature("Classify the sentiment of the text.")
        .add_input("text", FieldKind.STRING, "Text to classify")
        .add_class_output("sentiment", ["positive", "negative", "neutral"])
        .add_output("confidence", FieldKind.FLOAT, "Confidence between 0 and 1")
    )


class ScriptedProvider:
    """Provider that returns canned response texts in order.

    The last text is repeated once the script runs out. Every request is
    recorded for inspection.
    """

    def __init__(self, *texts: str) -> None:
        self.texts = list(texts) or [""]
        self.requests: list[RenderedRequest] = []
        self.cancel_tokens: list[object] = []

    def generate(self, request: RenderedRequest, *, cancel=None) -> RawResult:
        self.requests.append(request)
        self.cancel_tokens.append(cancel)
        text = self.texts.pop(0) if len(self.texts) > 1 else self.texts[0]
        return RawResult(
            text=text,
            usage=TokenUsage(prompt_tokens=12, completion_tokens=8, total_tokens=20),
            model="scripted",
        )


class FakeResponse:
    """Minimal response object for the retry executor."""

    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text

    def __repr__(self) -> str:
        return f"FakeResponse({self.status_code})"


class CallSequence:
    """Callable returning (or raising) scripted items, counting calls."""

    def __init__(self, *items: object) -> None:
        self.items = list(items)
        self.calls = 0

    def __call__(self):
        item = self.items[min(self.calls, len(self.items) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def sentiment_signature() -> Signature:
    return make_sentiment_signature()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Default retry budget with zero backoff."""
    return RetryPolicy(initial_backoff=0.0, max_backoff=0.0, jitter=0.0)
