import json
from datetime import datetime, timedelta

import pytest

from screenpilot.models import ActionResult, Screenshot, SessionStatus
from screenpilot.session_manager import SessionManager


@pytest.fixture
def manager():
    return SessionManager()


def test_create_session_becomes_current(manager):
    session_id = manager.create_session("do X")
    current = manager.get_current_session()
    assert current.id == session_id
    assert current.status == SessionStatus.RUNNING
    assert current.end_time is None


def test_terminal_update_stamps_end_time(manager):
    session_id = manager.create_session("do X")
    manager.add_result(session_id, ActionResult(action_id="a", success=True))
    before = manager.get_session(session_id)

    updated = manager.update_session(session_id, status="completed")

    assert updated.results == before.results
    assert updated.end_time is not None
    assert updated.end_time >= updated.start_time


def test_update_rejects_unknown_fields_and_sessions(manager):
    session_id = manager.create_session("do X")
    with pytest.raises(ValueError):
        manager.update_session(session_id, id="other")
    with pytest.raises(KeyError):
        manager.update_session("missing", status="completed")


def test_complete_and_cancel_clear_current(manager):
    first = manager.create_session("one")
    manager.complete_session(first)
    assert manager.get_current_session() is None

    second = manager.create_session("two")
    manager.cancel_session(second)
    assert manager.get_session(second).status == SessionStatus.CANCELLED
    assert manager.get_current_session() is None

    third = manager.create_session("three")
    manager.complete_session(third, error="boom")
    assert manager.get_session(third).status == SessionStatus.ERROR
    assert manager.get_session(third).error == "boom"


def test_history_excludes_running_sessions(manager):
    done = manager.create_session("done")
    manager.complete_session(done)
    manager.create_session("running")
    assert [s.id for s in manager.get_session_history()] == [done]
    assert len(manager.get_all_sessions()) == 2


def test_stats_exclude_meta_results(manager):
    session_id = manager.create_session("do X")
    manager.add_result(session_id, ActionResult(action_id="a", success=True))
    manager.add_result(session_id, ActionResult(action_id="b", success=False, error="x"))
    manager.add_result(session_id, ActionResult(action_id="m", success=False, meta=True))

    stats = manager.get_session_stats(session_id)
    assert stats.total_actions == 2
    assert stats.successful_actions == 1
    assert stats.failed_actions == 1
    assert stats.success_rate == 0.5
    assert manager.get_session_stats("missing") is None


def test_export_omits_screenshots_and_import_assigns_new_id(manager, png):
    session_id = manager.create_session("do X", metadata={"agent_id": "a1"})
    manager.add_result(
        session_id,
        ActionResult(action_id="a", success=True, screenshot=Screenshot.from_bytes(png)),
    )
    manager.complete_session(session_id)

    exported = manager.export_session(session_id)
    assert "screenshot" not in json.loads(exported)["results"][0]

    imported_id = manager.import_session(exported)
    assert imported_id != session_id
    imported = manager.get_session(imported_id)
    assert imported.instruction == "do X"
    assert imported.metadata == {"agent_id": "a1"}
    assert imported.results[0].screenshot is None


def test_import_rejects_garbage(manager):
    with pytest.raises(ValueError):
        manager.import_session("not json")
    with pytest.raises(ValueError):
        manager.import_session(json.dumps({"status": "completed"}))


def test_clear_old_sessions_keeps_running(manager):
    old_done = manager.create_session("old done")
    manager.complete_session(old_done)
    old_running = manager.create_session("old running")
    recent = manager.create_session("recent")
    manager.complete_session(recent)

    long_ago = datetime.now() - timedelta(days=2)
    for session_id in (old_done, old_running):
        manager.get_session(session_id).start_time = long_ago

    assert manager.clear_old_sessions(timedelta(hours=24)) == 1
    assert manager.get_session(old_done) is None
    assert manager.get_session(old_running) is not None
    assert manager.get_session(recent) is not None


def test_summary_counts_by_status(manager):
    manager.complete_session(manager.create_session("a"))
    manager.cancel_session(manager.create_session("b"))
    manager.create_session("c")
    summary = manager.get_session_summary()
    assert (summary.total, summary.completed, summary.cancelled, summary.running) == (3, 1, 1, 1)
