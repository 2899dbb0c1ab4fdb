"""Best-effort repair of near-valid JSON emitted by language models.

Models routinely produce structured text that is *almost* JSON: single
quotes, unquoted keys, trailing commas, Python literals, comments, or an
object cut off before its closing brace. ``repair_json`` normalises those
fragments so that a strict decoder can read them.

This is a heuristic text transform, not a parser. Two properties hold for
every input:

- already-valid JSON is returned unchanged;
- ``repair_json(repair_json(x)) == repair_json(x)``.

When the repaired text still fails to decode, ``decode_json`` raises
:class:`~signa.exceptions.StructuredDecodeError` carrying both the
original decode error and the repaired candidate.
"""

from __future__ import annotations

import json
import logging
import re
import string
from dataclasses import dataclass
from typing import Any, Iterator

from signa.exceptions import StructuredDecodeError

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}
_VALID_ESCAPES = frozenset('"\\/bfnrt')
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}
_BAREWORD_EXTRA = frozenset("_$.+-")
_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}

# Each pass may expose new fixes (e.g. dropping a stray bracket joins two
# slashes into a comment), so passes repeat until the text stops changing.
_MAX_PASSES = 32

_FENCE_RE = re.compile(r"```(?:json|JSON|jsonc|json5)?[ \t]*\r?\n(.*?)```", re.DOTALL)
_WRAPPING_FENCE_RE = re.compile(r"\A\s*```[\w-]*[ \t]*\r?\n?(.*?)\r?\n?```\s*\Z", re.DOTALL)


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of :func:`decode_json`.

    Attributes:
        value: The decoded value.
        repaired: Whether repair was needed to decode it.
        candidate: The exact text that decoded.
    """

    value: Any
    repaired: bool
    candidate: str


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except (ValueError, RecursionError):
        return False
    return True


def repair_json(text: str) -> str:
    """Return a best-effort corrected version of near-valid JSON text.

    Fixes single-quoted strings, unquoted keys, Python literals, trailing
    and duplicate commas, comments, raw control characters and invalid
    escapes inside strings, unterminated strings, unbalanced brackets, a
    dangling ``:`` at the end, and trailing text after the top-level value.
    """
    if is_valid_json(text):
        return text
    candidate = text
    for _ in range(_MAX_PASSES):
        repaired = _repair_pass(candidate)
        if repaired == candidate:
            break
        candidate = repaired
        if is_valid_json(candidate):
            break
    return candidate


def decode_json(text: str) -> DecodeResult:
    """Decode JSON strictly, falling back to :func:`repair_json`.

    Raises:
        StructuredDecodeError: If the repaired text still fails to decode.
    """
    try:
        return DecodeResult(json.loads(text), False, text)
    except (ValueError, RecursionError) as exc:
        original_error = str(exc)
    repaired = repair_json(text)
    try:
        value = json.loads(repaired)
    except (ValueError, RecursionError):
        raise StructuredDecodeError(original_error, text, repaired) from None
    logger.debug("Decoded JSON after repair (%d -> %d chars)", len(text), len(repaired))
    return DecodeResult(value, True, repaired)


def strip_code_fence(text: str) -> str:
    """Return the body of a markdown code fence wrapping the whole text."""
    match = _WRAPPING_FENCE_RE.match(text)
    return match.group(1).strip() if match else text.strip()


def find_object_candidates(text: str) -> Iterator[str]:
    """Yield object-like ``{...}`` spans found in text, in order.

    Contents of JSON (or unlabelled) markdown code fences are searched
    first, then the full text. Brace matching ignores braces inside
    double-quoted strings. An opening brace that is never closed yields
    the rest of the text as a final, truncated candidate.
    """
    sources = [m.group(1) for m in _FENCE_RE.finditer(text)]
    sources.append(text)
    seen: set[str] = set()
    for source in sources:
        for span in _balanced_spans(source):
            if span not in seen:
                seen.add(span)
                yield span


# ---------------------------------------------------------------------------
# Object location
# ---------------------------------------------------------------------------


def _balanced_spans(text: str) -> Iterator[str]:
    pos = 0
    while True:
        start = text.find("{", pos)
        if start < 0:
            return
        end = _matching_brace(text, start)
        if end < 0:
            yield text[start:].rstrip()
            return
        yield text[start : end + 1]
        pos = end + 1


def _matching_brace(text: str, start: int) -> int:
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


# ---------------------------------------------------------------------------
# Repair pass
# ---------------------------------------------------------------------------


def _repair_pass(text: str) -> str:
    out: list[str] = []
    stack: list[str] = []
    opened = False
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            out.append(ch)
            i += 1
        elif text.startswith("//", i) or text.startswith("/*", i):
            i = _skip_comment(text, i)
        elif ch in "\"'":
            token, i = _read_string(text, i)
            out.append(token)
        elif ch in "{[":
            stack.append(ch)
            opened = True
            out.append(ch)
            i += 1
        elif ch in "}]":
            i += 1
            if not any(_CLOSERS[s] == ch for s in stack):
                continue
            if _last_significant(out) == ":":
                out.append(" null")
            while stack:
                top = stack.pop()
                _drop_trailing_comma(out)
                out.append(_CLOSERS[top])
                if _CLOSERS[top] == ch:
                    break
            if not stack and opened:
                # top-level value complete; anything after it is prose
                return "".join(out)
        elif ch == ",":
            if _last_significant(out) not in (",", "{", "[", None):
                out.append(",")
            i += 1
        elif ch.isalnum() or ch in _BAREWORD_EXTRA:
            j = i
            while j < n and (text[j].isalnum() or text[j] in _BAREWORD_EXTRA):
                j += 1
            word = text[i:j]
            nxt = _skip_insignificant(text, j)
            if stack and stack[-1] == "{" and nxt < n and text[nxt] == ":":
                out.append(f'"{word}"')
            else:
                out.append(_PY_LITERALS.get(word, word))
            i = j
        else:
            out.append(ch)
            i += 1

    if stack:
        if _last_significant(out) == ":":
            out.append(" null")
        while stack:
            _drop_trailing_comma(out)
            out.append(_CLOSERS[stack.pop()])
    return "".join(out)


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Read a single- or double-quoted string starting at ``start``.

    Returns the equivalent valid JSON string token and the index after it.
    Unterminated strings are closed at the end of the text.
    """
    quote = text[start]
    out = ['"']
    i, n = start + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            if i + 1 >= n:
                out.append("\\\\")
                i += 1
                break
            nxt = text[i + 1]
            if nxt == "u":
                digits = text[i + 2 : i + 6]
                if len(digits) == 4 and all(c in string.hexdigits for c in digits):
                    out.append(text[i : i + 6])
                    i += 6
                else:
                    out.append("\\\\u")
                    i += 2
            elif nxt in _VALID_ESCAPES:
                out.append(ch + nxt)
                i += 2
            elif nxt == "'":
                out.append("'")
                i += 2
            else:
                out.append("\\\\")
                i += 1
            continue
        if ch == quote:
            out.append('"')
            return "".join(out), i + 1
        if ch == '"':
            out.append('\\"')
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
        i += 1
    out.append('"')
    return "".join(out), n


def _skip_comment(text: str, i: int) -> int:
    if text.startswith("//", i):
        end = text.find("\n", i)
        return len(text) if end < 0 else end
    end = text.find("*/", i + 2)
    return len(text) if end < 0 else end + 2


def _skip_insignificant(text: str, i: int) -> int:
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
        elif text.startswith("//", i) or text.startswith("/*", i):
            i = _skip_comment(text, i)
        else:
            break
    return i


def _last_significant(out: list[str]) -> str | None:
    for token in reversed(out):
        stripped = token.rstrip()
        if stripped:
            return stripped[-1]
    return None


def _drop_trailing_comma(out: list[str]) -> None:
    for idx in range(len(out) - 1, -1, -1):
        if not out[idx].strip():
            continue
        if out[idx] == ",":
            del out[idx]
        return
