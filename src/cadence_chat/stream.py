"""Decoder for the server-sent-event stream of a run.

Lines look like ``data: <json>`` and the stream ends with ``data: [DONE]``.
Each data payload is either a run record (``object == "thread.run"``) or a
message delta/content record carrying a text fragment.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Union

from .core import Run, RunStatus
from .errors import DecodingFailed

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class TextDelta:
    text: str  # cumulative buffer so far
    fragment: str


@dataclass(frozen=True)
class RunUpdate:
    run: Run


@dataclass(frozen=True)
class ToolCallsRequired:
    run: Run


@dataclass(frozen=True)
class StreamEnd:
    # A tool-call interruption was not followed by any content; the final
    # assistant message has to be fetched explicitly.
    awaiting_final_message: bool


StreamEvent = Union[TextDelta, RunUpdate, ToolCallsRequired, StreamEnd]


class EventStreamDecoder:
    """Turns raw stream lines into events, accumulating assistant text."""

    def __init__(self):
        self.buffer = ""
        self.awaiting_final_message = False
        self.done = False

    async def decode(self, lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
        """Yield events for *lines*, ending with exactly one StreamEnd."""
        async for line in lines:
            event = self.feed(line)
            if event is not None:
                yield event
            if self.done:
                return
        yield StreamEnd(self.awaiting_final_message)

    def feed(self, line: str) -> StreamEvent | None:
        """Decode a single line. Returns None for lines that carry nothing."""
        line = line.strip()
        if not line or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            return StreamEnd(self.awaiting_final_message)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.debug("Skipping undecodable stream line: %s", e)
            return None
        if not isinstance(data, dict):
            return None

        if data.get("object") == "thread.run":
            try:
                run = Run.from_dict(data)
            except DecodingFailed as e:
                logger.debug("Skipping malformed run record: %s", e)
                return None
            if run.status == RunStatus.REQUIRES_ACTION and run.tool_calls:
                self.awaiting_final_message = True
                return ToolCallsRequired(run)
            return RunUpdate(run)

        fragment = _extract_fragment(data)
        if fragment is None:
            return None
        self.buffer += fragment
        self.awaiting_final_message = False
        return TextDelta(text=self.buffer, fragment=fragment)


def _extract_fragment(data: dict) -> str | None:
    """Return the text fragment of a delta record, falling back to full content."""
    for container in ("delta", "data"):
        section = data.get(container)
        if not isinstance(section, dict):
            continue
        value = _first_text(section.get("content"))
        if value is not None:
            return value
    return None


def _first_text(content) -> str | None:
    if not isinstance(content, list):
        return None
    for block in content:
        if not isinstance(block, dict) or block.get("type", "text") != "text":
            continue
        text = block.get("text")
        if isinstance(text, dict) and isinstance(text.get("value"), str):
            return text["value"]
    return None
