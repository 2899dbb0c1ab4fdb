"""Tests for value coercion and the marker / structured adapters."""

from __future__ import annotations

import json

import pytest

from signa.adapters import MarkerAdapter, StructuredAdapter
from signa.adapters.coercion import coerce_value, extract_number, normalise_keys
from signa.adapters.marker import split_sections
from signa.exceptions import (
    EnumViolationError,
    FieldMissingError,
    FieldTypeError,
    ParseError,
    StructuredDecodeError,
)
from signa.models import Example, FieldKind, Signature
from signa.protocols import Adapter, Message


def _field(kind, **kwargs):
    sig = Signature()
    if kind is FieldKind.CLASS:
        sig.add_class_output("value", kwargs.pop("classes"), **kwargs)
    else:
        sig.add_output("value", kind, **kwargs)
    return sig.output_field("value")


@pytest.fixture
def answer_signature():
    return Signature("Answer the question.").add_input("question").add_output("answer")


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


class TestCoerceValue:
    """coerce_value() converts loosely-typed model output."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("0.92", 0.92),
            ("about 0.92", 0.92),
            ("High (0.95)", 0.95),
            ("High", 0.9),
            ("very low", 0.1),
            ("Moderate.", 0.7),
            (1, 1.0),
        ],
    )
    def test_float(self, raw, expected):
        assert coerce_value(_field(FieldKind.FLOAT), raw) == pytest.approx(expected)

    def test_float_without_number(self):
        with pytest.raises(FieldTypeError):
            coerce_value(_field(FieldKind.FLOAT), "no idea")

    @pytest.mark.parametrize(("raw", "expected"), [("95%", 95), (3.0, 3), ("42 apples", 42), (7, 7)])
    def test_int(self, raw, expected):
        value = coerce_value(_field(FieldKind.INT), raw)
        assert value == expected and isinstance(value, int)

    def test_int_rejects_fraction(self):
        with pytest.raises(FieldTypeError, match="non-integral"):
            coerce_value(_field(FieldKind.INT), 3.5)

    def test_int_rejects_bool(self):
        with pytest.raises(FieldTypeError):
            coerce_value(_field(FieldKind.INT), True)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("Yes.", True), ("t", True), ("1", True), ("no", False), ("F", False), (0, False)],
    )
    def test_bool(self, raw, expected):
        assert coerce_value(_field(FieldKind.BOOL), raw) is expected

    def test_bool_rejects_other_words(self):
        with pytest.raises(FieldTypeError):
            coerce_value(_field(FieldKind.BOOL), "maybe")

    def test_json_repairs_text(self):
        assert coerce_value(_field(FieldKind.JSON), "{'a': 1,}") == {"a": 1}

    def test_json_strips_fence(self):
        assert coerce_value(_field(FieldKind.JSON), "```json\n[1, 2]\n```") == [1, 2]

    def test_json_rejects_scalar(self):
        with pytest.raises(FieldTypeError):
            coerce_value(_field(FieldKind.JSON), "42")

    def test_string_from_scalar(self):
        assert coerce_value(_field(FieldKind.STRING), 42) == "42"

    def test_string_list_joined_only_when_allowed(self):
        spec = _field(FieldKind.STRING)
        assert coerce_value(spec, ["a", "b"], join_lists=True) == "a\nb"
        with pytest.raises(FieldTypeError):
            coerce_value(spec, ["a", "b"])

    def test_class_uses_first_word_as_fallback(self):
        spec = _field(FieldKind.CLASS, classes=["positive", "negative"])
        assert coerce_value(spec, "Positive - the text is upbeat") == "positive"

    def test_class_violation(self):
        spec = _field(FieldKind.CLASS, classes=["positive", "negative"])
        with pytest.raises(EnumViolationError):
            coerce_value(spec, "angry")

    def test_extract_number_none_for_prose(self):
        assert extract_number("nothing numeric") is None


class TestNormaliseKeys:

    def test_case_and_separators(self, sentiment_signature):
        keys = normalise_keys(sentiment_signature, {"Sentiment": "positive", "CONFIDENCE": 0.5, "other": 1})
        assert keys == {"sentiment": "positive", "confidence": 0.5, "other": 1}

    def test_answer_synonyms(self, answer_signature):
        assert normalise_keys(answer_signature, {"final_answer": "42"}) == {"answer": "42"}
        assert normalise_keys(answer_signature, {"Result": "42"}) == {"answer": "42"}

    def test_synonym_does_not_shadow_real_field(self):
        sig = Signature().add_output("answer").add_output("result")
        assert normalise_keys(sig, {"result": "r"}) == {"result": "r"}

    def test_first_non_null_wins(self, answer_signature):
        assert normalise_keys(answer_signature, {"answer": None, "response": "x"}) == {"answer": "x"}


# ---------------------------------------------------------------------------
# MarkerAdapter
# ---------------------------------------------------------------------------


class TestMarkerFormat:

    def test_satisfies_protocol(self):
        assert isinstance(MarkerAdapter(), Adapter)

    def test_prompt_lists_inputs_and_markers(self, sentiment_signature):
        request = MarkerAdapter().format(sentiment_signature, {"text": "I love it"})
        assert request.adapter == "marker"
        assert request.response_format is None
        assert len(request.messages) == 1
        prompt = request.messages[0].content
        assert request.messages[0].role == "user"
        assert prompt.startswith("Classify the sentiment of the text.")
        assert "text (Text to classify): I love it" in prompt
        assert "[[ ## sentiment ## ]] (one of: positive, negative, neutral)" in prompt
        assert "[[ ## confidence ## ]] (float, Confidence between 0 and 1)" in prompt
        assert "[[ ## reasoning ## ]]" not in prompt

    def test_message_order_demos_history_prompt(self, sentiment_signature):
        demos = [Example(inputs={"text": "awful"}, outputs={"sentiment": "negative", "confidence": 0.8})]
        history = [Message("user", "earlier"), Message("assistant", "reply")]
        request = MarkerAdapter().format(sentiment_signature, {"text": "great"}, demos, history)
        roles = [m.role for m in request.messages]
        assert roles == ["user", "assistant", "user", "assistant", "user"]
        assert request.messages[0].content == "--- Example 1 (Inputs) ---\ntext: awful"
        assert request.messages[1].content == (
            "[[ ## sentiment ## ]]\nnegative\n\n[[ ## confidence ## ]]\n0.8"
        )
        assert request.messages[2].content == "earlier"

    def test_reasoning_requested(self, sentiment_signature):
        request = MarkerAdapter(include_reasoning=True).format(sentiment_signature, {"text": "x"})
        assert "[[ ## reasoning ## ]]" in request.messages[-1].content


class TestMarkerParse:
    """Marker parsing with spacing variants and marker debris."""

    def test_well_formed(self, sentiment_signature):
        text = "[[ ## sentiment ## ]]\npositive\n\n[[ ## confidence ## ]]\n0.92\n\n[[ ## completed ## ]]"
        assert MarkerAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.92}

    def test_spacing_and_single_bracket_variants(self, sentiment_signature):
        text = "[[## sentiment ##]]\nNegative\n[[ ## confidence ## ]\n0.3"
        assert MarkerAdapter().parse(sentiment_signature, text) == {"sentiment": "negative", "confidence": 0.3}

    def test_missing_closing_brackets_inline_values(self, sentiment_signature):
        text = "[[ ## sentiment ## positive\n[[ ## confidence ## 0.8"
        assert MarkerAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.8}

    def test_class_uses_first_line(self, sentiment_signature):
        text = "[[ ## sentiment ## ]]\npositive\nBecause it is upbeat.\n[[ ## confidence ## ]]\nHigh"
        assert MarkerAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.9}

    def test_unknown_marker_ends_value(self, answer_signature):
        text = "[[ ## answer ## ]]\n42 is the answer\n\n[[ ## completed ## ]]"
        assert MarkerAdapter().parse(answer_signature, text) == {"answer": "42 is the answer"}

    def test_marker_names_normalised(self, sentiment_signature):
        text = "[[ ## Sentiment ## ]]\nneutral\n[[ ## Confidence ## ]]\n0.5"
        assert MarkerAdapter().parse(sentiment_signature, text)["sentiment"] == "neutral"

    def test_missing_marker(self, sentiment_signature):
        with pytest.raises(FieldMissingError) as exc_info:
            MarkerAdapter().parse(sentiment_signature, "[[ ## sentiment ## ]]\npositive")
        assert exc_info.value.field == "confidence"

    def test_plain_json_has_no_markers(self, sentiment_signature):
        with pytest.raises(FieldMissingError):
            MarkerAdapter().parse(sentiment_signature, '{"sentiment": "positive", "confidence": 0.92}')

    def test_enum_violation(self, sentiment_signature):
        text = "[[ ## sentiment ## ]]\nangry\n[[ ## confidence ## ]]\n0.5"
        with pytest.raises(EnumViolationError):
            MarkerAdapter().parse(sentiment_signature, text)

    def test_reasoning_returned(self, sentiment_signature):
        text = (
            "[[ ## reasoning ## ]]\nIt sounds upbeat.\n"
            "[[ ## sentiment ## ]]\npositive\n[[ ## confidence ## ]]\n0.9"
        )
        outputs = MarkerAdapter(include_reasoning=True).parse(sentiment_signature, text)
        assert outputs["reasoning"] == "It sounds upbeat."

    def test_json_field_between_markers(self):
        sig = Signature().add_output("data", FieldKind.JSON)
        text = '[[ ## data ## ]]\n```json\n{"a": [1, 2]}\n```\n[[ ## completed ## ]]'
        assert MarkerAdapter().parse(sig, text) == {"data": {"a": [1, 2]}}

    @pytest.mark.parametrize("name", ["final-answer", "final answer", "answer.v2"])
    def test_non_identifier_field_names(self, name):
        sig = Signature().add_input("question").add_output(name)
        prompt = MarkerAdapter().format(sig, {"question": "Capital of France?"}).messages[-1].content
        assert f"[[ ## {name} ## ]]" in prompt
        text = f"[[ ## {name} ## ]]\nParis\n\n[[ ## completed ## ]]"
        assert MarkerAdapter().parse(sig, text) == {name: "Paris"}

    def test_split_sections_first_occurrence_wins(self):
        sections = split_sections("[[ ## a ## ]]\none\n[[ ## a ## ]]\ntwo")
        assert sections == {"a": "one"}


# ---------------------------------------------------------------------------
# StructuredAdapter
# ---------------------------------------------------------------------------


class TestStructuredFormat:

    def test_prompt_lists_keys(self, sentiment_signature):
        request = StructuredAdapter().format(sentiment_signature, {"text": "hi"})
        prompt = request.messages[-1].content
        assert request.adapter == "structured"
        assert '- "sentiment" (one of: positive, negative, neutral)' in prompt
        assert '- "confidence" (float; Confidence between 0 and 1)' in prompt
        assert request.response_format is None

    def test_native_json_mode(self, sentiment_signature):
        request = StructuredAdapter(native_json=True).format(sentiment_signature, {"text": "hi"})
        assert request.response_format == {"type": "json_object"}

    def test_demo_rendered_as_json(self, sentiment_signature):
        demos = [Example(inputs={"text": "meh"}, outputs={"sentiment": "neutral", "confidence": 0.5})]
        request = StructuredAdapter().format(sentiment_signature, {"text": "hi"}, demos)
        assert json.loads(request.messages[1].content) == {"sentiment": "neutral", "confidence": 0.5}


class TestStructuredParse:

    def test_plain_json(self, sentiment_signature):
        text = '{"sentiment": "positive", "confidence": 0.92}'
        assert StructuredAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.92}

    def test_near_json_in_prose(self, sentiment_signature):
        text = "Sure! {'sentiment': 'Positive', 'confidence': '0.92',} Hope that helps."
        assert StructuredAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.92}

    def test_fenced_json(self, sentiment_signature):
        text = 'Here:\n```json\n{"Sentiment": "negative", "Confidence": 0.2}\n```'
        assert StructuredAdapter().parse(sentiment_signature, text) == {"sentiment": "negative", "confidence": 0.2}

    def test_skips_non_object_candidates(self, sentiment_signature):
        text = '{not: valid: json: [} then {"sentiment": "neutral", "confidence": 0.5}'
        assert StructuredAdapter().parse(sentiment_signature, text)["sentiment"] == "neutral"

    def test_later_candidate_after_invalid_objects(self, sentiment_signature):
        text = 'For example {} or {"sentiment": "x"}; answer: {"sentiment": "positive", "confidence": 0.9}'
        assert StructuredAdapter().parse(sentiment_signature, text) == {"sentiment": "positive", "confidence": 0.9}

    def test_first_validation_error_when_no_candidate_fits(self, sentiment_signature):
        text = '{} then {"sentiment": "bogus", "confidence": 0.4}'
        with pytest.raises(FieldMissingError):
            StructuredAdapter().parse(sentiment_signature, text)

    def test_internal_keys_ignored(self, answer_signature):
        text = '{"__meta": {"id": 1}, "answer": "42"}'
        assert StructuredAdapter().parse(answer_signature, text) == {"answer": "42"}

    def test_list_joined_for_string_field(self, answer_signature):
        assert StructuredAdapter().parse(answer_signature, '{"answer": ["a", "b"]}') == {"answer": "a\nb"}

    def test_single_string_output_fallback(self, answer_signature):
        assert StructuredAdapter().parse(answer_signature, "The answer is 42.") == {"answer": "The answer is 42."}

    def test_no_object(self, sentiment_signature):
        with pytest.raises(ParseError) as exc_info:
            StructuredAdapter().parse(sentiment_signature, "I think it's positive.")
        assert not isinstance(exc_info.value, StructuredDecodeError)

    def test_undecodable_candidate(self, sentiment_signature):
        with pytest.raises(StructuredDecodeError) as exc_info:
            StructuredAdapter().parse(sentiment_signature, "{not: valid: json: [}")
        assert exc_info.value.repaired

    def test_missing_field(self, sentiment_signature):
        with pytest.raises(FieldMissingError):
            StructuredAdapter().parse(sentiment_signature, '{"sentiment": "positive"}')

    def test_reasoning_returned(self, sentiment_signature):
        text = '{"reasoning": "upbeat", "sentiment": "positive", "confidence": 1}'
        outputs = StructuredAdapter(include_reasoning=True).parse(sentiment_signature, text)
        assert outputs == {"sentiment": "positive", "confidence": 1.0, "reasoning": "upbeat"}
