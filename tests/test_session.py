"""Tests for the terminal session lifecycle, fan-out and input path."""

import asyncio

import pytest

from conftest import FakePTYFactory, Recorder, settle
from termhub.core.restart import RestartPolicy
from termhub.core.session import EXIT_DRAIN_TIMEOUT, SessionState, TerminalSession


def _session(factory: FakePTYFactory, **kwargs) -> TerminalSession:
    return TerminalSession("s1", factory, **kwargs)


@pytest.mark.asyncio
async def test_start_spawns_with_dimensions(pty_factory) -> None:
    session = _session(pty_factory, cols=100, rows=40)
    assert session.state is SessionState.SPAWNING

    assert await session.start()
    assert session.ready
    assert (pty_factory.last.cols, pty_factory.last.rows) == (100, 40)
    session.close()


@pytest.mark.asyncio
async def test_output_is_recorded_then_broadcast(pty_factory) -> None:
    session = _session(pty_factory)
    viewer_a, viewer_b = Recorder("a"), Recorder("b")
    session.add_viewer(viewer_a)
    session.add_viewer(viewer_b)
    await session.start()

    pty_factory.last.inject_output(b"hello ")
    pty_factory.last.inject_output(b"world")
    await settle()

    assert session.history.snapshot() == b"hello world"
    for viewer in (viewer_a, viewer_b):
        outputs = viewer.of_type("output")
        assert [event["data"] for event in outputs] == [b"hello ", b"world"]
        assert all(event["sessionId"] == "s1" for event in outputs)
    session.close()


@pytest.mark.asyncio
async def test_exit_notifies_once_and_drops_input(pty_factory) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()

    pty_factory.last.exit(3)
    await settle()

    exits = viewer.of_type("session-exited")
    assert exits == [{"type": "session-exited", "sessionId": "s1", "code": 3}]
    assert viewer.types()[-1] == "session-updated"
    assert session.state is SessionState.EXITED
    assert session.exit_code == 3
    assert not session.ready
    assert not session.write(b"ls\n")
    assert pty_factory.last.killed


@pytest.mark.asyncio
async def test_process_exit_marks_exited_while_pty_held_open(pty_factory) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()
    pty = pty_factory.last

    # A background child still holds the terminal, so no EOF ever arrives.
    pty.exit(3, hold_open=True)
    await asyncio.sleep(EXIT_DRAIN_TIMEOUT + 0.1)
    await settle()

    assert session.state is SessionState.EXITED
    assert session.exit_code == 3
    assert viewer.of_type("session-exited") == [
        {"type": "session-exited", "sessionId": "s1", "code": 3}
    ]
    assert pty.killed


@pytest.mark.asyncio
async def test_final_output_arrives_before_exit(pty_factory) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()

    pty_factory.last.inject_output(b"bye\n")
    pty_factory.last.exit(0)
    await settle()

    types = viewer.types()
    assert types.index("output") < types.index("session-exited")
    assert session.history.snapshot() == b"bye\n"


@pytest.mark.asyncio
async def test_spawn_failure_reports_exit_without_code(pty_factory) -> None:
    pty_factory.fail = True
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)

    assert not await session.start()
    assert session.state is SessionState.EXITED
    assert viewer.of_type("session-exited") == [
        {"type": "session-exited", "sessionId": "s1", "code": None}
    ]


@pytest.mark.asyncio
async def test_writes_reach_pty_in_order(pty_factory) -> None:
    session = _session(pty_factory)
    await session.start()

    for chunk in (b"echo ", b"one", b"\n"):
        assert session.write(chunk)
    await session.writes.join()

    assert pty_factory.last.written == b"echo one\n"
    session.close()


@pytest.mark.asyncio
async def test_write_failure_is_not_fatal(pty_factory) -> None:
    session = _session(pty_factory)
    await session.start()
    pty_factory.last.fail_writes = True

    assert session.write(b"x")
    await session.writes.join()
    assert session.ready
    session.close()


@pytest.mark.asyncio
async def test_resize_broadcasts_and_applies(pty_factory) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()

    assert session.resize(120, 50)
    assert (session.cols, session.rows) == (120, 50)
    assert pty_factory.last.resizes == [(50, 120)]
    assert viewer.of_type("resized") == [
        {"type": "resized", "sessionId": "s1", "cols": 120, "rows": 50}
    ]
    session.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "cols, rows",
    [(39, 30), (1001, 30), (80, 9), (80, 401), (80.5, 30), ("80", 30), (True, 30)],
)
async def test_resize_out_of_bounds_is_ignored(pty_factory, cols, rows) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()

    assert not session.resize(cols, rows)
    assert (session.cols, session.rows) == (80, 30)
    assert viewer.of_type("resized") == []
    session.close()


@pytest.mark.asyncio
async def test_viewer_changes_broadcast_metadata(pty_factory) -> None:
    session = _session(pty_factory)
    await session.start()
    watcher = Recorder("watcher")
    session.add_viewer(watcher)
    session.add_viewer(Recorder("other"))
    session.remove_viewer("other")

    counts = [event["viewers"] for event in watcher.of_type("session-updated")]
    assert counts == [2, 1]
    assert not session.remove_viewer("missing")
    session.close()


@pytest.mark.asyncio
async def test_joining_viewer_is_not_sent_its_own_update(pty_factory) -> None:
    session = _session(pty_factory)
    await session.start()
    first, second = Recorder("first"), Recorder("second")
    session.add_viewer(first)
    session.add_viewer(second)

    assert first.of_type("session-updated")[-1]["viewers"] == 2
    assert second.events == []
    session.close()


@pytest.mark.asyncio
async def test_failing_viewer_does_not_block_others(pty_factory) -> None:
    class _Broken(Recorder):
        def send(self, event):
            raise ConnectionError("gone")

    session = _session(pty_factory)
    healthy = Recorder("healthy")
    session.add_viewer(_Broken("broken"))
    session.add_viewer(healthy)
    await session.start()

    pty_factory.last.inject_output(b"data")
    await settle()
    assert healthy.of_type("output")[0]["data"] == b"data"
    session.close()


@pytest.mark.asyncio
async def test_close_kills_without_notification(pty_factory) -> None:
    session = _session(pty_factory)
    viewer = Recorder()
    session.add_viewer(viewer)
    await session.start()
    pty = pty_factory.last

    session.close()
    await settle()

    assert pty.killed
    assert session.closed
    assert session.viewer_count == 0
    assert viewer.of_type("session-exited") == []
    assert not await session.spawn()


@pytest.mark.asyncio
async def test_respawn_resets_backoff(pty_factory) -> None:
    policy = RestartPolicy()
    session = _session(pty_factory, restart=policy)
    await session.start()

    pty_factory.last.exit(1)
    await settle()
    assert policy.attempts == 1
    assert policy.next_eligible_at is not None

    assert await session.spawn()
    assert session.ready
    assert len(pty_factory.created) == 2
    assert policy.attempts == 0
    session.close()


@pytest.mark.asyncio
async def test_info_reports_metadata(pty_factory) -> None:
    session = _session(pty_factory)
    await session.start()
    pty_factory.last.inject_output(b"abc")
    await settle()

    info = session.info()
    assert info["id"] == "s1"
    assert info["ready"] is True
    assert info["state"] == "ready"
    assert info["historyBytes"] == 3
    assert info["autoRestart"] is False
    assert info["createdAt"].endswith("+00:00")
    session.close()
