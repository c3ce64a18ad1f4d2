"""Decode reviewer verdicts from free-form model replies.

Models wrap JSON in prose or ```json fences, and batch replies sometimes come
back as a bare array instead of ``{"results": [...]}``. ``load_reply`` scans a
reply for every embedded JSON value and returns the first one that validates
against the expected pydantic shape.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_VALUE_START_RE = re.compile(r"[\[{]")
_DECODER = json.JSONDecoder()


class ReplyDecodeError(ValueError):
    """The reply holds no JSON object or array."""


class ReplyShapeError(ValueError):
    """JSON was found but none of it matches the expected shape."""


def iter_json_values(text: str, *, prefer_code_block: bool = True) -> Iterator[Any]:
    """Yield each top-level JSON object or array embedded in ``text``.

    Fenced blocks come first unless ``prefer_code_block`` is False. Values
    nested inside an already decoded value are not yielded again.
    """
    source = text or ""
    chunks = [match.group(1) for match in _FENCE_RE.finditer(source)] if prefer_code_block else []
    chunks.append(source)
    for chunk in chunks:
        yield from _scan(chunk)


def _scan(text: str) -> Iterator[Any]:
    pos = 0
    while True:
        match = _VALUE_START_RE.search(text, pos)
        if match is None:
            return
        try:
            value, end = _DECODER.raw_decode(text, match.start())
        except json.JSONDecodeError:
            pos = match.start() + 1
            continue
        yield value
        pos = end


def load_reply(
    text: str,
    shape: Type[ModelT],
    *,
    list_key: Optional[str] = None,
    prefer_code_block: bool = True,
) -> ModelT:
    """Validate the first embedded JSON value that fits ``shape``.

    With ``list_key`` set, a bare array is read as ``{list_key: [...]}``.
    """
    found = False
    last_error: Optional[ValidationError] = None
    for value in iter_json_values(text, prefer_code_block=prefer_code_block):
        if isinstance(value, list) and list_key is not None:
            value = {list_key: value}
        if not isinstance(value, dict):
            continue
        found = True
        try:
            return shape.model_validate(value)
        except ValidationError as exc:
            last_error = exc
    if not found:
        raise ReplyDecodeError("No JSON object found in model response")
    raise ReplyShapeError(f"Model JSON does not match {shape.__name__}") from last_error


__all__ = ["ReplyDecodeError", "ReplyShapeError", "iter_json_values", "load_reply"]
