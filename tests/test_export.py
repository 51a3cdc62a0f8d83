"""Tests for export functionality."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from cadence_chat.core import Message, Role, TextBlock, Thread, UnknownBlock
from cadence_chat.export import thread_to_json, thread_to_markdown
from cadence_chat.server import Session, app

T0 = int(datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def sample_thread():
    return Thread(id="thread_abc", created_at=T0)


@pytest.fixture
def sample_messages():
    return [
        Message(
            id="msg_1",
            thread_id="thread_abc",
            role=Role.USER,
            content=(TextBlock("Log a 45 minute push workout"),),
            created_at=T0,
        ),
        Message(
            id="msg_2",
            thread_id="thread_abc",
            role=Role.ASSISTANT,
            content=(
                TextBlock("Done! Here's the plan:\n\n```\nBench 3x8\n```"),
                UnknownBlock(type="image_file", raw='{"type": "image_file"}'),
            ),
            created_at=T0 + 30,
        ),
    ]


class TestMarkdownExport:
    def test_includes_thread_header(self, sample_thread, sample_messages):
        result = thread_to_markdown(sample_thread, sample_messages)
        assert "# Thread thread_abc" in result
        assert "**Messages:** 2" in result
        assert "**Created:** 2025-01-15T10:00:00+00:00" in result

    def test_includes_messages_with_roles(self, sample_thread, sample_messages):
        result = thread_to_markdown(sample_thread, sample_messages)
        assert "## User (2025-01-15 10:00)" in result
        assert "## Assistant (2025-01-15 10:00)" in result
        assert "push workout" in result

    def test_preserves_code_fences(self, sample_thread, sample_messages):
        result = thread_to_markdown(sample_thread, sample_messages)
        assert "```\nBench 3x8\n```" in result

    def test_notes_non_text_blocks(self, sample_thread, sample_messages):
        result = thread_to_markdown(sample_thread, sample_messages)
        assert "*[1 non-text block(s): image_file]*" in result

    def test_empty_messages(self, sample_thread):
        result = thread_to_markdown(sample_thread, [])
        assert "**Messages:** 0" in result


class TestJsonExport:
    def test_includes_thread_metadata(self, sample_thread, sample_messages):
        data = json.loads(thread_to_json(sample_thread, sample_messages))
        assert data["thread"] == {
            "id": "thread_abc",
            "created": "2025-01-15T10:00:00+00:00",
            "message_count": 2,
        }

    def test_includes_messages(self, sample_thread, sample_messages):
        data = json.loads(thread_to_json(sample_thread, sample_messages))
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]
        assert data["messages"][0]["text"] == "Log a 45 minute push workout"
        assert data["messages"][1]["content"][1] == {"type": "image_file"}
        assert data["messages"][1]["created"] == "2025-01-15T10:00:30+00:00"


@pytest.fixture(autouse=True)
def reset_session_cache():
    import cadence_chat.server as srv
    srv._session = None
    yield
    srv._session = None


@pytest.mark.asyncio
async def test_export_endpoints(orchestrator, monitor, workout_store, fake_api):
    thread = fake_api.add_thread()
    fake_api.add_message(thread["id"], "user", "hello")
    fake_api.add_message(thread["id"], "assistant", "hi there")
    session = Session(orchestrator=orchestrator, monitor=monitor, workouts=workout_store)

    with patch("cadence_chat.server.build_session", return_value=session):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/api/threads")

            resp = await client.get(f"/api/threads/{thread['id']}/export?format=md")
            assert resp.status_code == 200
            assert "text/markdown" in resp.headers.get("content-type", "")
            assert "Content-Disposition" in resp.headers
            assert "hi there" in resp.text

            resp = await client.get(f"/api/threads/{thread['id']}/export?format=json")
            assert resp.status_code == 200
            assert "application/json" in resp.headers.get("content-type", "")
            data = json.loads(resp.text)
            assert [m["text"] for m in data["messages"]] == ["hello", "hi there"]
