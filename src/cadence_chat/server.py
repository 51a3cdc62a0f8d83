"""FastAPI web server for cadence-chat."""

import logging
from dataclasses import dataclass

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from . import config
from .errors import (
    CadenceError,
    NetworkUnavailable,
    RunFailed,
    ThreadNotFound,
    ToolError,
    TransportError,
    UserError,
)
from .export import thread_to_json, thread_to_markdown
from .grouping import group_threads_by_date
from .network import NetworkMonitor, NetworkStatus
from .orchestrator import RunOrchestrator
from .store import ChatStore
from .sync import LocalStoreSync
from .tools import ToolDispatcher
from .transport import TransportClient
from .workouts import WorkoutStore

logger = logging.getLogger(__name__)

app = FastAPI(title="cadence-chat", version="0.1.0")


@dataclass
class Session:
    """The object graph behind the API, built once per process."""

    orchestrator: RunOrchestrator
    monitor: NetworkMonitor
    workouts: WorkoutStore


# Session cache (populated on first request)
_session: Session | None = None


def build_session() -> Session:
    """Wire the orchestrator and its collaborators from the environment."""
    db_path = config.get_db_path()
    monitor = NetworkMonitor(
        NetworkStatus.DISCONNECTED if config.is_offline() else NetworkStatus.CONNECTED
    )
    transport = TransportClient(
        config.get_base_url(),
        config.get_default_headers(config.get_api_key()),
        monitor,
    )
    workouts = WorkoutStore(db_path)
    orchestrator = RunOrchestrator(
        transport,
        ToolDispatcher(workouts),
        LocalStoreSync(ChatStore(db_path), transport, monitor),
        monitor,
        assistant_id=config.get_assistant_id(),
        model=config.get_model(),
    )
    return Session(orchestrator=orchestrator, monitor=monitor, workouts=workouts)


def _get_session() -> Session:
    """Lazily initialize and cache the session."""
    global _session
    if _session is None:
        _session = build_session()
        logger.info("Using local store at %s", config.get_db_path())
    return _session


def _status_for(error: CadenceError) -> int:
    if isinstance(error, NetworkUnavailable):
        return 503
    if isinstance(error, ThreadNotFound):
        return 404
    if isinstance(error, UserError):
        return 400
    if isinstance(error, ToolError):
        return 422
    if isinstance(error, (RunFailed, TransportError)):
        return 502
    return 500


@app.exception_handler(CadenceError)
async def handle_cadence_error(request: Request, exc: CadenceError):
    return JSONResponse(
        status_code=_status_for(exc),
        content={"error": type(exc).__name__, "detail": exc.user_message},
    )


def _thread_to_dict(thread) -> dict:
    return {"id": thread.id, "created_at": thread.created_at}


def _message_to_dict(msg) -> dict:
    return {
        "id": msg.id,
        "role": msg.role.value,
        "text": msg.text,
        "created_at": msg.created_at,
        "pending": msg.is_local,
    }


class SendMessageBody(BaseModel):
    content: str


class NetworkBody(BaseModel):
    status: NetworkStatus


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/threads")
async def get_threads():
    """Return threads, grouped by date, after a refresh from the remote."""
    orchestrator = _get_session().orchestrator
    threads = await orchestrator.load_threads()
    return {
        "total": len(threads),
        "groups": [
            {"title": g.title, "threads": [_thread_to_dict(t) for t in g.threads]}
            for g in group_threads_by_date(threads)
        ],
        "error": orchestrator.error.user_message if orchestrator.error else None,
    }


@app.post("/api/threads", status_code=201)
async def create_thread():
    thread = await _get_session().orchestrator.create_thread()
    return _thread_to_dict(thread)


@app.delete("/api/threads/{thread_id}", status_code=204)
async def delete_thread(thread_id: str):
    await _get_session().orchestrator.delete_thread(thread_id)
    return Response(status_code=204)


@app.get("/api/threads/{thread_id}/messages")
async def get_messages(thread_id: str):
    """Select a thread and return its visible messages."""
    orchestrator = _get_session().orchestrator
    await orchestrator.select_thread(thread_id)
    return {
        "thread_id": thread_id,
        "messages": [_message_to_dict(m) for m in orchestrator.messages],
    }


@app.post("/api/threads/{thread_id}/messages")
async def send_message(thread_id: str, body: SendMessageBody):
    """Send a message on a thread and return the reconciled conversation."""
    orchestrator = _get_session().orchestrator
    if orchestrator.current_thread is None or orchestrator.current_thread.id != thread_id:
        await orchestrator.select_thread(thread_id)
    await orchestrator.send_message(body.content)
    return {
        "thread_id": thread_id,
        "messages": [_message_to_dict(m) for m in orchestrator.messages],
    }


@app.post("/api/threads/{thread_id}/cancel", status_code=202)
async def cancel_turn(thread_id: str):
    orchestrator = _get_session().orchestrator
    if orchestrator.current_thread is None or orchestrator.current_thread.id != thread_id:
        raise HTTPException(status_code=409, detail="Thread is not current")
    await orchestrator.cancel_current_turn()
    return {"state": orchestrator.state.value}


@app.get("/api/threads/{thread_id}/export")
async def export_thread(
    thread_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a thread as Markdown or JSON."""
    orchestrator = _get_session().orchestrator
    thread = await orchestrator.select_thread(thread_id)
    messages = orchestrator.messages

    if format == "json":
        content = thread_to_json(thread, messages)
        return Response(
            content=content,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{thread_id}.json"'},
        )
    else:
        content = thread_to_markdown(thread, messages)
        return Response(
            content=content,
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{thread_id}.md"'},
        )


@app.get("/api/state")
async def get_state():
    orchestrator = _get_session().orchestrator
    current = orchestrator.current_thread
    return {
        "current_thread": current.id if current else None,
        "state": orchestrator.state.value,
        "is_streaming": orchestrator.is_streaming,
        "is_loading": orchestrator.is_loading,
        "streaming_response": orchestrator.streaming_response,
        "error": orchestrator.error.user_message if orchestrator.error else None,
    }


@app.get("/api/network")
async def get_network():
    monitor = _get_session().monitor
    return {
        "status": monitor.status.value,
        "description": monitor.status.description,
        "connected": monitor.is_connected,
    }


@app.put("/api/network")
async def set_network(body: NetworkBody):
    monitor = _get_session().monitor
    monitor.update(body.status)
    return {"status": monitor.status.value, "connected": monitor.is_connected}


@app.get("/api/workouts")
async def get_workouts(limit: int = Query(50, ge=1, le=500)):
    """Return workouts recorded by the assistant's tool calls, newest first."""
    workouts = _get_session().workouts.list_workouts(limit=limit)
    return {
        "workouts": [
            {
                "id": w.id,
                "type": w.type.value,
                "display_name": w.type.display_name,
                "duration": w.duration,
                "notes": w.notes,
                "created_at": w.created_at,
                "exercises": [
                    {
                        "name": e.name,
                        "equipment_type": e.equipment_type.value,
                        "sets": [
                            {"reps": s.reps, "weight_type": s.weight_type.value, "total_weight": s.total_weight}
                            for s in e.sets
                        ],
                    }
                    for e in w.exercises
                ],
            }
            for w in workouts
        ]
    }
