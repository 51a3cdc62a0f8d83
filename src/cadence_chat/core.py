"""Core data models for cadence-chat."""

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union

from .errors import DecodingFailed

LOCAL_ID_PREFIX = "local_"


@dataclass(frozen=True)
class Thread:
    """A server-side conversation container."""

    id: str
    created_at: int  # epoch seconds

    @classmethod
    def from_dict(cls, data: dict) -> "Thread":
        try:
            return cls(id=str(data["id"]), created_at=int(data.get("created_at") or 0))
        except (KeyError, TypeError, ValueError) as e:
            raise DecodingFailed(f"Malformed thread: {e}") from e

    def to_dict(self) -> dict:
        return {"id": self.id, "object": "thread", "created_at": self.created_at}


@dataclass(frozen=True)
class TextBlock:
    value: str
    annotations: tuple[str, ...] = ()  # JSON-encoded

    type = "text"

    def to_dict(self) -> dict:
        annotations = [json.loads(a) for a in self.annotations]
        return {"type": "text", "text": {"value": self.value, "annotations": annotations}}


@dataclass(frozen=True)
class UnknownBlock:
    """A content variant this client does not render (images, files, ...)."""

    type: str
    raw: str  # JSON as received, kept so persistence round-trips it

    def to_dict(self) -> dict:
        return json.loads(self.raw)


ContentBlock = Union[TextBlock, UnknownBlock]


def parse_content_block(data: dict) -> ContentBlock:
    """Decode one content block; unrecognized variants are kept, not rejected."""
    block_type = data.get("type", "")
    text = data.get("text")
    if block_type == "text" and isinstance(text, dict) and isinstance(text.get("value"), str):
        annotations = text.get("annotations") or ()
        return TextBlock(
            value=text["value"],
            annotations=tuple(json.dumps(a, sort_keys=True) for a in annotations),
        )
    return UnknownBlock(type=str(block_type), raw=json.dumps(data, sort_keys=True))


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One turn's content within a thread."""

    id: str  # "local_<hex>" until the server confirms it
    thread_id: str
    role: Role
    content: tuple[ContentBlock, ...] = ()
    created_at: int = 0  # epoch seconds

    @property
    def text(self) -> str:
        return "\n".join(b.value for b in self.content if isinstance(b, TextBlock))

    @property
    def is_local(self) -> bool:
        return self.id.startswith(LOCAL_ID_PREFIX)

    @classmethod
    def local(cls, thread_id: str, text: str, created_at: int | None = None) -> "Message":
        """Build an optimistic user message with a locally generated id."""
        return cls(
            id=f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
            thread_id=thread_id,
            role=Role.USER,
            content=(TextBlock(text),),
            created_at=int(time.time()) if created_at is None else created_at,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        try:
            content = data.get("content") or []
            if isinstance(content, str):
                blocks = (TextBlock(content),)
            else:
                blocks = tuple(parse_content_block(b) for b in content if isinstance(b, dict))
            return cls(
                id=str(data["id"]),
                thread_id=str(data.get("thread_id", "")),
                role=Role(data["role"]),
                content=blocks,
                created_at=int(data.get("created_at") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodingFailed(f"Malformed message: {e}") from e

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "object": "thread.message",
            "thread_id": self.thread_id,
            "role": self.role.value,
            "content": [b.to_dict() for b in self.content],
            "created_at": self.created_at,
        }

    def with_id(self, message_id: str) -> "Message":
        return replace(self, id=message_id)


def parse_message_list(data: dict) -> list[Message]:
    """Decode a ``{"data": [...]}`` list response into messages."""
    items = data.get("data")
    if not isinstance(items, list):
        raise DecodingFailed("Message list response has no data array")
    return [Message.from_dict(item) for item in items]


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"

    @property
    def is_failure(self) -> bool:
        return self in (RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED, RunStatus.INCOMPLETE)

    @property
    def is_pending(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)


@dataclass(frozen=True)
class ToolCall:
    """A model-requested invocation of a local function."""

    id: str
    name: str
    arguments: str  # JSON-encoded
    type: str = "function"

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        function = data.get("function") or {}
        return cls(
            id=str(data["id"]),
            name=str(function.get("name", "")),
            arguments=function.get("arguments") or "{}",
            type=data.get("type", "function"),
        )


@dataclass(frozen=True)
class Run:
    """A server-side execution cycle; referenced by id, never persisted."""

    id: str
    thread_id: str
    status: RunStatus
    tool_calls: tuple[ToolCall, ...] = field(default=())
    last_error: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Run":
        try:
            tool_calls = ()
            action = data.get("required_action") or {}
            if action.get("type") == "submit_tool_outputs":
                calls = (action.get("submit_tool_outputs") or {}).get("tool_calls") or []
                tool_calls = tuple(ToolCall.from_dict(c) for c in calls)
            error = data.get("last_error") or {}
            return cls(
                id=str(data["id"]),
                thread_id=str(data.get("thread_id", "")),
                status=RunStatus(data["status"]),
                tool_calls=tool_calls,
                last_error=error.get("message") if isinstance(error, dict) else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodingFailed(f"Malformed run: {e}") from e
