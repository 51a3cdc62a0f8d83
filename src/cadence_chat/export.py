"""Export conversation threads to Markdown and JSON formats."""

import json
from datetime import datetime, timezone

from .core import Message, Thread, UnknownBlock


def _iso(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


def thread_to_markdown(thread: Thread, messages: list[Message]) -> str:
    """Export a thread and its messages as clean Markdown."""
    lines = [f"# Thread {thread.id}", ""]
    lines.append(f"**Created:** {_iso(thread.created_at)}")
    lines.append(f"**Messages:** {len(messages)}")
    lines.extend(["", "---", ""])

    for msg in messages:
        role_label = msg.role.value.capitalize()
        ts = datetime.fromtimestamp(msg.created_at, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        lines.append(f"## {role_label} ({ts})")
        lines.append("")
        lines.append(msg.text)
        skipped = [b.type for b in msg.content if isinstance(b, UnknownBlock)]
        if skipped:
            lines.append("")
            lines.append(f"*[{len(skipped)} non-text block(s): {', '.join(skipped)}]*")
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def thread_to_json(thread: Thread, messages: list[Message]) -> str:
    """Export a thread and its messages as structured JSON."""
    data = {
        "thread": {
            "id": thread.id,
            "created": _iso(thread.created_at),
            "message_count": len(messages),
        },
        "messages": [
            {
                "id": msg.id,
                "role": msg.role.value,
                "text": msg.text,
                "content": [b.to_dict() for b in msg.content],
                "created": _iso(msg.created_at),
            }
            for msg in messages
        ],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
