"""
Recovery of JSON values from free-form model output.

Models wrap their answers in prose, code fences and <think> blocks, so a
single regex is not enough. ``extract_json`` applies a sequence of cleaning
stages and only raises once every stage has failed.
"""

import json
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from polaris.exceptions import MalformedStructuredOutput
from polaris.logger import logger

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)
_UNTERMINATED_THINK = re.compile(r"<think>.*\Z", re.DOTALL)
_FENCE = re.compile(r"```[ \t]*[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)

ModelT = TypeVar("ModelT", bound=BaseModel)


def strip_monologue(text: str) -> str:
    """Remove <think>...</think> blocks and an unterminated trailing <think>."""
    text = _THINK_BLOCK.sub("", text)
    return _UNTERMINATED_THINK.sub("", text)


def _fenced_content(text: str) -> Optional[str]:
    match = _FENCE.search(text)
    return match.group(1) if match else None


def _brace_slice(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def _try_parse(candidate: Optional[str]) -> tuple[bool, Any]:
    if candidate is None:
        return False, None
    try:
        return True, json.loads(candidate.strip())
    except (json.JSONDecodeError, TypeError):
        return False, None


def extract_json(text: str) -> Any:
    """
    Parse the JSON object embedded in model text.

    Args:
        text: Raw model output expected to contain one JSON object.

    Returns:
        The parsed value.

    Raises:
        MalformedStructuredOutput: if no stage produced parseable JSON. The
            exception carries both the raw and the cleaned text.
    """
    raw = text or ""
    cleaned = strip_monologue(raw)

    fenced = _fenced_content(cleaned)
    if fenced is not None:
        ok, value = _try_parse(fenced)
        if ok:
            return value
        # Fence content may still carry prose around the object.
        sliced = _brace_slice(fenced)
        ok, value = _try_parse(sliced)
        if ok:
            return value

    sliced = _brace_slice(cleaned)
    candidate = (sliced if sliced is not None else cleaned).strip()
    ok, value = _try_parse(candidate)
    if ok:
        return value

    # The cleaning stages can over-strip, e.g. a "<think>" inside a JSON string.
    ok, value = _try_parse(_brace_slice(raw))
    if ok:
        logger.debug("Structured output recovered from the raw text")
        return value

    raise MalformedStructuredOutput(raw_text=raw, cleaned_text=candidate)


def extract_model(text: str, model_cls: Type[ModelT]) -> ModelT:
    """Extract JSON from model text and validate it into ``model_cls``."""
    value = extract_json(text)
    if not isinstance(value, dict):
        raise MalformedStructuredOutput(
            raw_text=text,
            cleaned_text=json.dumps(value),
            reason=f"expected a JSON object, got {type(value).__name__}",
        )
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        raise MalformedStructuredOutput(
            raw_text=text, cleaned_text=json.dumps(value), reason=str(e)
        )
