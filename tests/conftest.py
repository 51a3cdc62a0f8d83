"""Shared test fixtures for cadence-chat."""

import asyncio
import itertools
import json
import time
from dataclasses import dataclass, field

import pytest

from cadence_chat.cancellation import check
from cadence_chat.errors import NetworkUnavailable
from cadence_chat.network import NetworkMonitor
from cadence_chat.orchestrator import RunOrchestrator
from cadence_chat.store import ChatStore
from cadence_chat.sync import LocalStoreSync
from cadence_chat.tools import ToolDispatcher
from cadence_chat.workouts import WorkoutStore

DONE_LINE = "data: [DONE]"

# Placeholder in a scripted stream: the fake holds the stream open here
# until the script's gate is set, checking the turn's token meanwhile.
GATE = object()


def text_content(value: str) -> list[dict]:
    return [{"type": "text", "text": {"value": value, "annotations": []}}]


def delta_line(text: str) -> str:
    return "data: " + json.dumps({
        "id": "msg_delta",
        "object": "thread.message.delta",
        "delta": {"content": [{"index": 0, "type": "text", "text": {"value": text}}]},
    })


def tool_call(call_id: str, name: str, arguments: dict) -> dict:
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments)},
    }


def run_payload(run_id, thread_id, status, tool_calls=None, last_error=None) -> dict:
    data = {"id": run_id, "object": "thread.run", "thread_id": thread_id, "status": status}
    if tool_calls:
        data["required_action"] = {
            "type": "submit_tool_outputs",
            "submit_tool_outputs": {"tool_calls": tool_calls},
        }
    if last_error:
        data["last_error"] = {"code": "server_error", "message": last_error}
    return data


def run_line(status: str, tool_calls=None, last_error=None):
    """Build a run record line once the fake knows the run and thread ids."""
    def build(run_id, thread_id):
        return "data: " + json.dumps(run_payload(run_id, thread_id, status, tool_calls, last_error))
    return build


@dataclass
class RunScript:
    lines: list
    reply: str | None = None
    statuses: list[str] = field(default_factory=lambda: ["completed"])
    poll_tool_calls: list[dict] = field(default_factory=list)
    gate: asyncio.Event = field(default_factory=asyncio.Event)
    started: asyncio.Event = field(default_factory=asyncio.Event)
    run_id: str | None = None


class FakeAssistantAPI:
    """In-memory stand-in for the assistant API behind the transport interface."""

    def __init__(self, monitor: NetworkMonitor):
        self.monitor = monitor
        self.threads: dict[str, dict] = {}
        self.messages: dict[str, list[dict]] = {}
        self.runs: dict[str, dict] = {}
        self.scripts: list[RunScript] = []
        self.requests = []
        self.tool_outputs: list[list[dict]] = []
        self.cancelled_runs: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.active_streams: dict[str, int] = {}
        self.max_active_streams = 0
        self.clock = int(time.time())
        self._ids = itertools.count(1)

    def _tick(self) -> int:
        self.clock += 1
        return self.clock

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def script_run(self, *lines, reply=None, statuses=None, poll_tool_calls=None) -> RunScript:
        script = RunScript(
            lines=list(lines),
            reply=reply,
            statuses=statuses or ["completed"],
            poll_tool_calls=poll_tool_calls or [],
        )
        self.scripts.append(script)
        return script

    def add_thread(self, created_at: int | None = None) -> dict:
        thread = {"id": self._next_id("thread"), "object": "thread", "created_at": created_at or self._tick()}
        self.threads[thread["id"]] = thread
        self.messages[thread["id"]] = []
        return thread

    def add_message(self, thread_id: str, role: str, text: str, created_at: int | None = None) -> dict:
        message = {
            "id": self._next_id("msg"),
            "object": "thread.message",
            "thread_id": thread_id,
            "role": role,
            "content": text_content(text),
            "created_at": created_at or self._tick(),
        }
        self.messages[thread_id].append(message)
        return message

    def requests_to(self, method: str, suffix: str) -> list:
        return [r for r in self.requests if r.method == method and r.path.endswith(suffix)]

    def _maybe_fail(self, operation: str):
        error = self.failures.pop(operation, None)
        if error is not None:
            raise error

    def _run_response(self, run_id: str, status: str, tool_calls=None) -> dict:
        run = self.runs[run_id]
        return run_payload(run_id, run["thread_id"], status, tool_calls)

    async def send(self, request, token=None) -> dict:
        check(token)
        if not self.monitor.is_connected:
            raise NetworkUnavailable()
        self.requests.append(request)
        await asyncio.sleep(0)

        parts = request.path.strip("/").split("/")
        method = request.method

        if parts == ["threads"] and method == "POST":
            self._maybe_fail("create_thread")
            return self.add_thread()
        if parts == ["threads"] and method == "GET":
            self._maybe_fail("list_threads")
            data = sorted(self.threads.values(), key=lambda t: t["created_at"], reverse=True)
            return {"object": "list", "data": data}

        thread_id = parts[1]
        if len(parts) == 2 and method == "DELETE":
            self._maybe_fail("delete_thread")
            self.threads.pop(thread_id, None)
            self.messages.pop(thread_id, None)
            return {"id": thread_id, "object": "thread.deleted", "deleted": True}

        if parts[2] == "messages":
            if method == "POST":
                self._maybe_fail("create_message")
                return self.add_message(thread_id, "user", request.body["content"])
            self._maybe_fail("list_messages")
            limit = int(request.query.get("limit", "100"))
            data = sorted(self.messages[thread_id], key=lambda m: m["created_at"])
            if request.query.get("order", "desc") == "desc":
                data.reverse()
            return {"object": "list", "data": data[:limit]}

        run_id = parts[3]
        script = self.runs[run_id]["script"]
        if len(parts) == 4:
            self._maybe_fail("retrieve_run")
            status = script.statuses.pop(0) if len(script.statuses) > 1 else script.statuses[0]
            calls = script.poll_tool_calls if status == "requires_action" else None
            return self._run_response(run_id, status, calls)
        if parts[4] == "submit_tool_outputs":
            self._maybe_fail("submit_tool_outputs")
            self.tool_outputs.append(request.body["tool_outputs"])
            return self._run_response(run_id, "queued")
        if parts[4] == "cancel":
            self.cancelled_runs.append(run_id)
            return self._run_response(run_id, "cancelling")
        raise AssertionError(f"Unexpected request {method} {request.path}")

    async def stream(self, request, token=None):
        check(token)
        if not self.monitor.is_connected:
            raise NetworkUnavailable()
        self.requests.append(request)

        thread_id = request.path.strip("/").split("/")[1]
        script = self.scripts.pop(0)
        script.run_id = self._next_id("run")
        self.runs[script.run_id] = {"thread_id": thread_id, "script": script}

        self.active_streams[thread_id] = self.active_streams.get(thread_id, 0) + 1
        self.max_active_streams = max(self.max_active_streams, self.active_streams[thread_id])
        script.started.set()
        try:
            for item in script.lines:
                if item is GATE:
                    while not script.gate.is_set():
                        check(token)
                        await asyncio.sleep(0.001)
                    continue
                if item == DONE_LINE and script.reply is not None:
                    self.add_message(thread_id, "assistant", script.reply)
                check(token)
                yield item(script.run_id, thread_id) if callable(item) else item
                await asyncio.sleep(0)
        finally:
            self.active_streams[thread_id] -= 1

    async def aclose(self):
        pass


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cadence.db"


@pytest.fixture
def monitor():
    return NetworkMonitor()


@pytest.fixture
def chat_store(db_path):
    store = ChatStore(db_path)
    yield store
    store.close()


@pytest.fixture
def workout_store(db_path):
    store = WorkoutStore(db_path)
    yield store
    store.close()


@pytest.fixture
def fake_api(monitor):
    return FakeAssistantAPI(monitor)


@pytest.fixture
def sync(chat_store, fake_api, monitor):
    return LocalStoreSync(chat_store, fake_api, monitor)


@pytest.fixture
def sleeps():
    """Recorded delays of an injected sleep that never waits in real time."""
    return []


@pytest.fixture
def orchestrator(fake_api, workout_store, sync, monitor, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)
        await asyncio.sleep(0)

    return RunOrchestrator(
        fake_api,
        ToolDispatcher(workout_store),
        sync,
        monitor,
        assistant_id="asst_test",
        sleep=fake_sleep,
    )
