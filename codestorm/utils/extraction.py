"""Pull structured payloads out of free-form model replies.

Model output is treated as untrusted input: the extractor locates the most
likely JSON span, removes the malformations models commonly produce
(comments, trailing commas, raw newlines inside strings) and then performs a
strict parse. It never guesses at missing structure; anything that does not
parse raises :class:`ExtractionError` with the original text attached.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from codestorm.exceptions import ExtractionError

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json|JSON)[ \t]*\n?(.*?)```", re.DOTALL)
_FENCED_BLOCK = re.compile(r"```([\w#+.\-]*)[ \t]*\n(.*?)```", re.DOTALL)

_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def _candidate_payloads(text: str) -> List[str]:
    """Spans that may hold the JSON payload, most likely first.

    A fenced block is the only candidate when present. Otherwise the greedy
    ``{...}`` span comes before the greedy ``[...]`` span, so brackets in
    prose ahead of an object do not hide it.
    """
    match = _FENCED_JSON.search(text)
    if match:
        return [match.group(1)]

    for _, body in extract_code_blocks(text):
        if body.lstrip()[:1] in ("{", "["):
            return [body]

    candidates = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])
    return candidates


def clean_json_string(payload: str) -> str:
    """Strip comments and trailing commas and collapse whitespace.

    Only text outside string literals is touched. Raw control characters
    inside strings are escaped so the strict parser accepts them with their
    value unchanged.
    """
    out: List[str] = []
    i = 0
    length = len(payload)
    in_string = False

    while i < length:
        ch = payload[i]

        if in_string:
            if ch == "\\" and i + 1 < length:
                out.append(payload[i : i + 2])
                i += 2
                continue
            if ch == '"':
                in_string = False
                out.append(ch)
            elif ch in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[ch])
            elif ord(ch) < 0x20:
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue

        if payload.startswith("//", i):
            newline = payload.find("\n", i)
            i = length if newline == -1 else newline
            continue

        if payload.startswith("/*", i):
            close = payload.find("*/", i + 2)
            i = length if close == -1 else close + 2
            continue

        if ch.isspace():
            if out and out[-1] != " ":
                out.append(" ")
            i += 1
            continue

        if ch in "}]":
            j = len(out) - 1
            while j >= 0 and out[j] == " ":
                j -= 1
            if j >= 0 and out[j] == ",":
                del out[j]

        out.append(ch)
        i += 1

    return "".join(out).strip()


def extract_json(text: str) -> Any:
    """Parse the JSON payload embedded in ``text``.

    Raises:
        ExtractionError: no candidate span was found, or the cleaned span is
            still not valid JSON.
    """
    if not isinstance(text, str) or not text.strip():
        raise ExtractionError("Empty model response", raw_text=text or "")

    candidates = _candidate_payloads(text)
    if not candidates:
        raise ExtractionError("No JSON payload found in model response", raw_text=text)

    first_error: Optional[json.JSONDecodeError] = None
    for candidate in candidates:
        try:
            return json.loads(clean_json_string(candidate))
        except json.JSONDecodeError as exc:
            logger.debug("JSON parse failed at position %s: %s", exc.pos, exc.msg)
            if first_error is None:
                first_error = exc

    raise ExtractionError(
        f"Malformed JSON payload: {first_error.msg}",
        raw_text=text,
        details={"position": first_error.pos},
        cause=first_error,
    ) from first_error


def extract_code_blocks(text: str) -> List[Tuple[str, str]]:
    """All fenced blocks as ``(lowercased tag, body)`` pairs, in order."""
    return [(m.group(1).lower(), m.group(2)) for m in _FENCED_BLOCK.finditer(text)]


def extract_code_block(
    text: str, language: Optional[str] = None, skip_json: bool = False
) -> Optional[str]:
    """Return the body of the first fenced code block, or ``None``.

    With ``language`` a block tagged with that language wins over earlier
    untagged ones. ``skip_json`` ignores blocks tagged ``json``.
    """
    if not text:
        return None

    blocks = extract_code_blocks(text)
    if skip_json:
        blocks = [block for block in blocks if block[0] != "json"]
    if not blocks:
        return None

    if language:
        wanted = language.lower()
        for tag, body in blocks:
            if tag == wanted:
                return body.rstrip("\n")

    return blocks[0][1].rstrip("\n")


def extract_json_block(text: str) -> Optional[Any]:
    """Parse only an explicit fenced ```json block; ``None`` when absent or invalid."""
    match = _FENCED_JSON.search(text or "")
    if not match:
        return None
    try:
        return json.loads(clean_json_string(match.group(1)))
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed fenced json block")
        return None


__all__ = [
    "clean_json_string",
    "extract_json",
    "extract_code_block",
    "extract_code_blocks",
    "extract_json_block",
]
