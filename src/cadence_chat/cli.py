"""CLI entry point for cadence-chat."""

import asyncio
import logging
from datetime import datetime

import click
import uvicorn

from . import config
from .errors import CadenceError
from .grouping import group_threads_by_date
from .store import ChatStore
from .workouts import WorkoutStore


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(log_level: str):
    """Chat with a workout-logging assistant, with an offline copy of every thread."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the web API."""
    click.echo(f"Starting cadence-chat on http://{host}:{port}")
    uvicorn.run("cadence_chat.server:app", host=host, port=port, reload=False)


@main.command()
def threads():
    """List stored threads, grouped by date."""
    store = ChatStore(config.get_db_path())
    try:
        stored = store.fetch_threads()
    finally:
        store.close()
    if not stored:
        click.echo("No threads stored yet.")
        return
    for group in group_threads_by_date(stored):
        click.echo(f"{group.title} ({group.count})")
        for thread in group.threads:
            created = datetime.fromtimestamp(thread.created_at).strftime("%Y-%m-%d %H:%M")
            click.echo(f"  {thread.id}  {created}")


@main.command()
@click.argument("message")
@click.option("--thread", "thread_id", default=None, help="Existing thread to continue.")
def chat(message: str, thread_id: str | None):
    """Send MESSAGE and print the assistant's reply as it streams."""
    from .server import build_session

    orchestrator = build_session().orchestrator
    printed = 0

    def on_change(o):
        nonlocal printed
        text = o.streaming_response
        if len(text) > printed:
            click.echo(text[printed:], nl=False)
            printed = len(text)

    async def run():
        try:
            if thread_id:
                await orchestrator.load_threads()
                await orchestrator.select_thread(thread_id)
            else:
                thread = await orchestrator.create_thread()
                click.echo(f"Thread {thread.id}", err=True)
            unsubscribe = orchestrator.subscribe(on_change)
            await orchestrator.send_message(message)
            unsubscribe()
        finally:
            await orchestrator.transport.aclose()

    try:
        asyncio.run(run())
    except CadenceError as e:
        raise click.ClickException(e.user_message) from e
    click.echo()


@main.command()
@click.option("--limit", default=20, help="Number of workouts to show.")
def workouts(limit: int):
    """List workouts logged by the assistant."""
    store = WorkoutStore(config.get_db_path())
    try:
        logged = store.list_workouts(limit=limit)
    finally:
        store.close()
    if not logged:
        click.echo("No workouts logged yet.")
        return
    for w in logged:
        created = datetime.fromtimestamp(w.created_at).strftime("%Y-%m-%d %H:%M")
        duration = f" {w.duration} min" if w.duration else ""
        click.echo(f"{created}  {w.type.display_name}{duration}")
        for e in w.exercises:
            click.echo(f"    {e.name} ({e.equipment_type.value}): {len(e.sets)} set(s)")
