"""
Streaming transform shared by all providers.

Raw backend lines are decoded into text deltas by an envelope decoder, then
run through a ``MonologueFilter`` that removes <think>...</think> segments
even when a marker is split across two chunks.
"""

import json
from typing import AsyncIterator, Callable, NamedTuple, Optional

from openai.types.chat import ChatCompletionChunk
from pydantic import ValidationError

from polaris.logger import logger
from polaris.utils.extraction import THINK_CLOSE, THINK_OPEN


class StreamEvent(NamedTuple):
    delta: str
    done: bool = False


Decoder = Callable[[str], Optional[StreamEvent]]


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest proper prefix of ``marker`` that ``text`` ends with."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


class MonologueFilter:
    """
    Incremental remover of internal-monologue segments.

    State lives for a single stream: ``buffer`` holds text that cannot be
    decided yet (an unterminated monologue or a possible partial marker) and
    ``inside`` tells whether the scan is currently within a monologue.
    """

    def __init__(self, open_marker: str = THINK_OPEN, close_marker: str = THINK_CLOSE):
        self.open_marker = open_marker
        self.close_marker = close_marker
        self.buffer = ""
        self.inside = False

    def feed(self, delta: str) -> str:
        """Append a delta and return whatever text is now safe to emit."""
        self.buffer += delta
        buf = self.buffer
        output = []
        i = 0

        while i < len(buf):
            if self.inside:
                end = buf.find(self.close_marker, i)
                if end == -1:
                    # Discard monologue text but keep a possible partial close marker.
                    i = len(buf) - _partial_suffix(buf[i:], self.close_marker)
                    break
                i = end + len(self.close_marker)
                self.inside = False
                continue

            start = buf.find(self.open_marker, i)
            if start == -1:
                hold = _partial_suffix(buf[i:], self.open_marker)
                output.append(buf[i : len(buf) - hold])
                i = len(buf) - hold
                break
            output.append(buf[i:start])
            i = start + len(self.open_marker)
            self.inside = True

        self.buffer = buf[i:]
        return "".join(output)

    def flush(self) -> str:
        """Return held text at end of stream. An unclosed monologue is dropped."""
        remainder = "" if self.inside else self.buffer
        self.buffer = ""
        self.inside = False
        return remainder


def decode_ndjson_line(line: str) -> Optional[StreamEvent]:
    """Decode one line of the local backend's stream: {"response": ..., "done": ...}."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse streaming response line: {line}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Unexpected streaming record: {line}")
        return None
    delta = data.get("response") or ""
    if not isinstance(delta, str):
        delta = str(delta)
    return StreamEvent(delta=delta, done=bool(data.get("done", False)))


def decode_sse_line(line: str) -> Optional[StreamEvent]:
    """Decode one server-sent-event line of an OpenAI-compatible stream."""
    line = line.strip()
    if not line.startswith("data:"):
        # Blank keep-alives, comments and "event:" lines carry no content
        return None
    payload = line[len("data:"):].strip()
    if payload == "[DONE]":
        return StreamEvent(delta="", done=True)
    try:
        chunk = ChatCompletionChunk.model_validate_json(payload)
    except (ValidationError, ValueError):
        logger.warning(f"Failed to parse streaming response line: {line}")
        return None
    if not chunk.choices:
        return None
    return StreamEvent(delta=chunk.choices[0].delta.content or "")


async def transform_stream(lines: AsyncIterator[str], decode: Decoder) -> AsyncIterator[str]:
    """
    Turn raw backend lines into cleaned text fragments.

    Args:
        lines: Async iterator of raw lines from the backend. It is closed when
               this generator finishes or is abandoned by its consumer.
        decode: Envelope decoder returning a StreamEvent, or None to skip a line.

    Yields:
        Text fragments with every monologue segment removed.
    """
    monologue = MonologueFilter()
    try:
        async for line in lines:
            event = decode(line)
            if event is None:
                continue
            if event.delta:
                output = monologue.feed(event.delta)
                if output:
                    yield output
            if event.done:
                break
        tail = monologue.flush()
        if tail:
            yield tail
    finally:
        aclose = getattr(lines, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                logger.warning(f"Error releasing stream source: {e}")
