"""Defensive JSON extraction from reasoning service output."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from shared.utils import ResponseParseError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_decoder = json.JSONDecoder()


def extract_json(text: str) -> Any:
    """
    Extract the first JSON object or array from model output.

    Handles bare JSON, fenced code blocks and JSON surrounded by prose.

    Raises:
        ResponseParseError: if no JSON value can be decoded
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty response", raw=text or "")

    candidates = [m.group(1) for m in _FENCE.finditer(text)] + [text]
    for candidate in candidates:
        candidate = candidate.strip()
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass

        for i, char in enumerate(candidate):
            if char not in "{[":
                continue
            try:
                value, _ = _decoder.raw_decode(candidate, i)
                return value
            except json.JSONDecodeError:
                continue

    raise ResponseParseError("No JSON value found in response", raw=text)


def parse_model(text: str, model: type[ModelT]) -> ModelT:
    """Extract JSON from text and validate it against a pydantic model."""
    data = extract_json(text)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Response does not match {model.__name__}: {e}", raw=text) from e
