"""Tests for the click CLI."""

import pytest
from click.testing import CliRunner

from cadence_chat.cli import main
from cadence_chat.core import Thread
from cadence_chat.store import ChatStore
from cadence_chat.workouts import WorkoutStore, WorkoutType


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CADENCE_DATA_DIR", str(tmp_path))
    return tmp_path


def test_threads_empty(data_dir):
    result = CliRunner().invoke(main, ["threads"])

    assert result.exit_code == 0
    assert "No threads stored yet." in result.output


def test_threads_lists_stored(data_dir):
    store = ChatStore(data_dir / "cadence.db")
    store.insert_thread(Thread("thread_1", 1_600_000_000))
    store.save()
    store.close()

    result = CliRunner().invoke(main, ["threads"])

    assert result.exit_code == 0
    assert "Earlier (1)" in result.output
    assert "thread_1" in result.output


def test_workouts_lists_logged(data_dir):
    store = WorkoutStore(data_dir / "cadence.db")
    store.create_workout(WorkoutType.QUADS_CALVES, duration=40)
    store.close()

    result = CliRunner().invoke(main, ["--log-level", "debug", "workouts"])

    assert result.exit_code == 0
    assert "Quads & Calves 40 min" in result.output


def test_chat_offline_reports_error(data_dir, monkeypatch):
    monkeypatch.setenv("CADENCE_OFFLINE", "1")

    result = CliRunner().invoke(main, ["chat", "hello"])

    assert result.exit_code != 0
    assert "No network connection" in result.output
