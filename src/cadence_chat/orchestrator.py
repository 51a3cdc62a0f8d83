"""Run orchestration: one user message in, one reconciled conversation out.

A turn moves through ``idle → sending → streaming → (tool_call_pending ⇄
streaming) → finalizing → idle``. Errors and cancellation return it to idle.
Every suspending call of a turn receives the turn's CancellationToken.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from . import api
from .cancellation import CancellationToken, check
from .config import FINAL_MESSAGE_DELAY, MAX_RUN_POLLS, MESSAGE_PAGE_SIZE, POLL_INTERVAL
from .core import Message, Role, Run, RunStatus, Thread, parse_message_list
from .errors import (
    CadenceError,
    Cancelled,
    NetworkUnavailable,
    RunFailed,
    ThreadNotFound,
    UserError,
    handle_error,
)
from .network import NetworkMonitor
from .reconcile import MessageReconciler
from .stream import EventStreamDecoder, RunUpdate, StreamEnd, TextDelta, ToolCallsRequired
from .sync import LocalStoreSync
from .tools import ToolDispatcher
from .transport import TransportClient

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    TOOL_CALL_PENDING = "tool_call_pending"
    FINALIZING = "finalizing"


@dataclass(eq=False)
class _Turn:
    thread_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    task: asyncio.Task | None = None
    local_id: str | None = None
    message_accepted: bool = False
    run_id: str | None = None
    handled_calls: set[str] = field(default_factory=set)
    finished: asyncio.Event = field(default_factory=asyncio.Event)


def _run_failed(run: Run) -> RunFailed:
    if run.last_error:
        return RunFailed(run.status.value, f"Run {run.status.value}: {run.last_error}")
    return RunFailed(run.status.value)


class RunOrchestrator:
    """Drives turns against the assistant API and owns the observable chat state."""

    def __init__(
        self,
        transport: TransportClient,
        dispatcher: ToolDispatcher,
        sync: LocalStoreSync,
        monitor: NetworkMonitor,
        *,
        assistant_id: str,
        model: str | None = None,
        reconciler: MessageReconciler | None = None,
        poll_interval: float = POLL_INTERVAL,
        final_message_delay: float = FINAL_MESSAGE_DELAY,
        max_run_polls: int = MAX_RUN_POLLS,
        message_limit: int = MESSAGE_PAGE_SIZE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.sync = sync
        self.monitor = monitor
        self.assistant_id = assistant_id
        self.model = model
        self.reconciler = reconciler or MessageReconciler()
        self.poll_interval = poll_interval
        self.final_message_delay = final_message_delay
        self.max_run_polls = max_run_polls
        self.message_limit = message_limit
        self._sleep = sleep

        self._threads: list[Thread] = []
        self._current_thread: Thread | None = None
        self._streaming_response = ""
        self._state = TurnState.IDLE
        self._is_loading = False
        self._error: CadenceError | None = None
        self._turns: dict[str, _Turn] = {}
        self._active_turn: _Turn | None = None
        self._listeners: list[Callable[["RunOrchestrator"], None]] = []

    # ── Observable state ─────────────────────────────────────────────

    @property
    def threads(self) -> list[Thread]:
        return self._threads

    @property
    def current_thread(self) -> Thread | None:
        return self._current_thread

    @property
    def messages(self) -> list[Message]:
        return self.reconciler.messages

    @property
    def streaming_response(self) -> str:
        return self._streaming_response

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state in (TurnState.STREAMING, TurnState.TOOL_CALL_PENDING)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> CadenceError | None:
        return self._error

    def subscribe(self, callback: Callable[["RunOrchestrator"], None]) -> Callable[[], None]:
        """Call *callback* after every state change. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    @contextmanager
    def _surfacing_errors(self, action: str):
        """Log, store and re-raise any failure of *action* as a CadenceError."""
        try:
            yield
        except Cancelled:
            raise
        except Exception as e:
            error = handle_error(e)
            logger.error("%s failed: %s", action, error)
            self._error = error
            self._notify()
            if error is e:
                raise
            raise error from e

    def _is_current(self, thread_id: str) -> bool:
        return self._current_thread is not None and self._current_thread.id == thread_id

    def _find_thread(self, thread_id: str) -> Thread:
        for thread in self._threads:
            if thread.id == thread_id:
                return thread
        raise ThreadNotFound(thread_id)

    # ── Threads ──────────────────────────────────────────────────────

    async def load_threads(self) -> list[Thread]:
        """Show the stored threads, then refresh from the remote when online.

        Failures are logged and stored in ``error``; they are not raised.
        """
        self._is_loading = True
        self._threads = self.sync.stored_threads()
        self._notify()
        try:
            self._threads = await self.sync.load_threads()
        except Exception as e:
            self._error = handle_error(e)
            logger.error("Loading threads failed: %s", self._error)
        finally:
            self._is_loading = False

        if self._current_thread and not any(t.id == self._current_thread.id for t in self._threads):
            self._current_thread = None
            self.reconciler.reset([])
        self._notify()
        return self._threads

    async def create_thread(self) -> Thread:
        with self._surfacing_errors("Creating thread"):
            data = await self.transport.send(api.create_thread())
            thread = Thread.from_dict(data)
            logger.info("Created thread %s", thread.id)

            self._threads = [*self._threads, thread]
            self._current_thread = thread
            self.reconciler.reset([])
            self._streaming_response = ""
            self.sync.remember_thread(thread)
            self._notify()
            return thread

    async def select_thread(self, thread_id: str) -> Thread:
        """Make *thread_id* current, showing stored messages before the remote refresh."""
        with self._surfacing_errors("Selecting thread"):
            thread = self._find_thread(thread_id)

        if not self._is_current(thread_id):
            self._current_thread = thread
            self._streaming_response = ""
            self.reconciler.reset(self.sync.stored_messages(thread_id))
            self._notify()

        if self.monitor.is_connected:
            self._is_loading = True
            self._notify()
            try:
                await self._refresh(thread_id, force=True)
            except CadenceError as e:
                self._error = e
                logger.warning("Refreshing thread %s failed, showing stored messages: %s", thread_id, e)
            finally:
                self._is_loading = False
                self._notify()
        return thread

    async def delete_thread(self, thread_id: str) -> None:
        with self._surfacing_errors("Deleting thread"):
            if not self.monitor.is_connected:
                raise NetworkUnavailable()
            self._find_thread(thread_id)
            await self._cancel_turn(thread_id)

            await self.transport.send(api.delete_thread(thread_id))
            logger.info("Deleted thread %s", thread_id)

            self._threads = [t for t in self._threads if t.id != thread_id]
            self.sync.forget_thread(thread_id)
            if self._is_current(thread_id):
                self._current_thread = None
                self.reconciler.reset([])
                self._streaming_response = ""
            self._notify()

    async def update_messages(self, thread_id: str, force: bool = False) -> list[Message]:
        """Fetch the thread's messages and reconcile them into the visible list."""
        with self._surfacing_errors("Updating messages"):
            return await self._refresh(thread_id, force=force)

    async def _fetch_messages(self, thread_id: str, token: CancellationToken | None = None) -> list[Message]:
        data = await self.transport.send(
            api.list_messages(thread_id, limit=self.message_limit, order="desc"), token
        )
        # Pages arrive newest first; reverse before the stable sort so ties keep server order.
        return sorted(reversed(parse_message_list(data)), key=lambda m: m.created_at)

    async def _refresh(
        self, thread_id: str, force: bool, token: CancellationToken | None = None
    ) -> list[Message]:
        server = await self._fetch_messages(thread_id, token)
        check(token)
        if self._is_current(thread_id) and self.reconciler.apply(server, force=force):
            self._notify()
        self.sync.sync_stored_messages(thread_id, server)
        return server

    # ── Turns ────────────────────────────────────────────────────────

    async def send_message(self, content: str) -> None:
        """Send *content* on the current thread and drive the run to completion.

        Returns normally when the turn is cancelled by a newer turn or by
        ``cancel_current_turn``.
        """
        with self._surfacing_errors("Sending message"):
            if not self.monitor.is_connected:
                raise NetworkUnavailable()
            if self._current_thread is None:
                raise UserError("No active thread")
            text = content.strip()
            if not text:
                raise UserError("Message is empty")

        thread_id = self._current_thread.id
        turn = _Turn(thread_id)
        previous = self._turns.get(thread_id)
        self._turns[thread_id] = turn
        try:
            if previous is not None:
                await self._stop_turn(previous)
            if self._turns.get(thread_id) is not turn or turn.token.cancelled:
                logger.info("Message on thread %s superseded before its turn started", thread_id)
                return

            self._active_turn = turn
            turn.task = asyncio.create_task(self._run_turn(turn, text))
            await turn.task
        finally:
            turn.finished.set()
            if self._turns.get(thread_id) is turn:
                del self._turns[thread_id]

    async def cancel_current_turn(self) -> None:
        if self._current_thread is not None:
            await self._cancel_turn(self._current_thread.id)

    async def _cancel_turn(self, thread_id: str) -> None:
        turn = self._turns.get(thread_id)
        if turn is None:
            return
        await self._stop_turn(turn)

    async def _stop_turn(self, turn: _Turn) -> None:
        """Cancel *turn* and wait until it, and any turn it was waiting on, has unwound."""
        logger.info("Cancelling turn on thread %s", turn.thread_id)
        turn.token.cancel()
        if turn.task is not None and turn.task is asyncio.current_task():
            return
        await turn.finished.wait()

    def _set_state(self, turn: _Turn, state: TurnState):
        if self._active_turn is turn:
            self._state = state
            self._notify()

    def _set_streaming_response(self, turn: _Turn, text: str):
        if self._active_turn is turn:
            self._streaming_response = text
            self._notify()

    async def _run_turn(self, turn: _Turn, text: str) -> None:
        thread_id = turn.thread_id
        token = turn.token
        optimistic = Message.local(thread_id, text)
        turn.local_id = optimistic.id

        self._error = None
        self._streaming_response = ""
        if self._is_current(thread_id):
            self.reconciler.append(optimistic)
        self._set_state(turn, TurnState.SENDING)

        try:
            data = await self.transport.send(api.create_message(thread_id, text), token)
            turn.message_accepted = True
            confirmed = Message.from_dict(data)
            if self._is_current(thread_id) and self.reconciler.confirm(optimistic.id, confirmed):
                self._notify()

            await self._stream_run(turn)

            self._set_state(turn, TurnState.FINALIZING)
            await self._refresh(thread_id, force=True, token=token)
        except Cancelled:
            await self._unwind_cancelled(turn)
        except Exception as e:
            if token.cancelled:
                await self._unwind_cancelled(turn)
                return
            error = handle_error(e)
            logger.error("Turn on thread %s failed: %s", thread_id, error)
            self._error = error
            if error is e:
                raise
            raise error from e
        finally:
            if self._active_turn is turn:
                self._active_turn = None
                self._state = TurnState.IDLE
                self._streaming_response = ""
                self._notify()

    async def _stream_run(self, turn: _Turn) -> None:
        token = turn.token
        decoder = EventStreamDecoder()
        lines = self.transport.stream(
            api.create_run(turn.thread_id, self.assistant_id, self.model), token
        )
        events = decoder.decode(lines)
        self._set_state(turn, TurnState.STREAMING)
        try:
            async for event in events:
                check(token)
                if isinstance(event, TextDelta):
                    self._set_streaming_response(turn, event.text)
                elif isinstance(event, ToolCallsRequired):
                    turn.run_id = event.run.id
                    await self._resolve_tool_calls(turn, event.run)
                elif isinstance(event, RunUpdate):
                    turn.run_id = event.run.id
                    if event.run.status.is_failure:
                        raise _run_failed(event.run)
                elif isinstance(event, StreamEnd) and event.awaiting_final_message:
                    await self._fetch_final_message(turn)
        finally:
            await events.aclose()
            await lines.aclose()

    async def _resolve_tool_calls(self, turn: _Turn, run: Run) -> None:
        """Execute the run's unhandled function calls and submit their outputs as one batch."""
        self._set_state(turn, TurnState.TOOL_CALL_PENDING)
        outputs = []
        for call in run.tool_calls:
            if call.type != "function" or call.id in turn.handled_calls:
                continue
            check(turn.token)
            outputs.append(self.dispatcher.execute_call(call))
            turn.handled_calls.add(call.id)

        if outputs:
            logger.info("Submitting %d tool output(s) for run %s", len(outputs), run.id)
            await self.transport.send(
                api.submit_tool_outputs(turn.thread_id, run.id, outputs), turn.token
            )
        self._set_state(turn, TurnState.STREAMING)

    async def _fetch_final_message(self, turn: _Turn) -> None:
        """Fetch the assistant's answer after a stream that ended on a tool-call interruption."""
        token = turn.token
        await token.sleep(self.final_message_delay, self._sleep)
        if turn.run_id is not None:
            await self._wait_for_run(turn)

        data = await self.transport.send(
            api.list_messages(turn.thread_id, limit=1, order="desc"), token
        )
        latest = parse_message_list(data)
        if latest and latest[0].role == Role.ASSISTANT:
            self._set_streaming_response(turn, latest[0].text)

    async def _wait_for_run(self, turn: _Turn) -> None:
        token = turn.token
        status = None
        for _ in range(self.max_run_polls):
            data = await self.transport.send(api.retrieve_run(turn.thread_id, turn.run_id), token)
            run = Run.from_dict(data)
            status = run.status
            if status == RunStatus.COMPLETED:
                return
            if status.is_failure:
                raise _run_failed(run)
            if status == RunStatus.REQUIRES_ACTION:
                await self._resolve_tool_calls(turn, run)
            await token.sleep(self.poll_interval, self._sleep)

        raise RunFailed(
            status.value if status else "unknown",
            f"Run {turn.run_id} did not complete after {self.max_run_polls} polls",
        )

    async def _unwind_cancelled(self, turn: _Turn) -> None:
        logger.info("Turn on thread %s cancelled", turn.thread_id)
        if turn.run_id is not None:
            try:
                await self.transport.send(api.cancel_run(turn.thread_id, turn.run_id))
            except CadenceError as e:
                logger.warning("Could not cancel run %s: %s", turn.run_id, e)

        if not turn.message_accepted:
            if turn.local_id and self.reconciler.remove(turn.local_id):
                self._notify()
            return

        try:
            await self._refresh(turn.thread_id, force=True)
        except CadenceError as e:
            logger.warning("Refresh after cancelled turn failed: %s", e)
