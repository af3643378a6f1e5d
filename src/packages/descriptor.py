"""Reading ``package.json`` descriptors.

Descriptors in the wild are not always strict JSON: single-quoted strings
and trailing commas are accepted and normalized before decoding.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

from common.errors import ParseError


def _normalize(text: str) -> str:
    """Rewrite single-quoted strings and drop trailing commas."""
    out: List[str] = []
    i, size = 0, len(text)
    while i < size:
        char = text[i]
        if char in ("'", '"'):
            quote = char
            i += 1
            chunk: List[str] = []
            while i < size and text[i] != quote:
                if text[i] == "\\" and i + 1 < size:
                    escaped = text[i + 1]
                    chunk.append("'" if escaped == "'" else text[i:i + 2])
                    i += 2
                    continue
                chunk.append('\\"' if text[i] == '"' else text[i])
                i += 1
            if i >= size:
                raise ParseError("Unterminated string in descriptor.")
            out.append('"' + "".join(chunk) + '"')
            i += 1
            continue
        if char == ",":
            j = i + 1
            while j < size and text[j].isspace():
                j += 1
            if j < size and text[j] in "}]":
                i += 1
                continue
        out.append(char)
        i += 1
    return "".join(out)


def parse_descriptor(text: str) -> Dict[str, Any]:
    """Decode descriptor text into a dict.

    Raises:
        ParseError: if the text is not (tolerant) JSON or not an object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = json.loads(_normalize(text))
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid package descriptor: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Package descriptor must be an object.")
    return data


def load_descriptor(path: str) -> Dict[str, Any]:
    """Read and decode the descriptor at ``path``."""
    with open(path, "r", encoding="utf-8") as handle:
        return parse_descriptor(handle.read())
