# tests/unit/test_tui.py

"""
Tests for the Textual dashboard: timers, status formatting and key forwarding.
"""

import asyncio
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from textual.widgets import DataTable

from gest.config import GestConfig
from gest.runtime.coordinator import RunMode
from gest.runtime.orchestrator import RunFinished, RunStarted, TestEventReceived
from gest.testing.protocols import RunKind, TestAction, TestEvent
from gest.tui.app import GestTuiApp, TimerManager, format_elapsed, format_status_line
from gest.tui.messages import LogMessageUpdate, StateUpdate


class FakeSession:
    """Stands in for WatchSession: records keys and quits on `q`."""

    instances: list["FakeSession"] = []

    def __init__(self, root: Path, config: GestConfig, shutdown_event: asyncio.Event, app=None) -> None:
        self.shutdown_event = shutdown_event
        self.keys: list[str] = []
        FakeSession.instances.append(self)

    def send_key(self, key: str) -> None:
        self.keys.append(key)
        if key == "q":
            self.shutdown_event.set()

    async def run(self) -> None:
        await self.shutdown_event.wait()


def populated_snapshot(coordinator):
    coordinator.handle_runner_events(
        [
            RunStarted(1, RunKind.ALL, 1),
            TestEventReceived(1, TestEvent(TestAction.PASS, "pkg", "TestOk")),
            TestEventReceived(1, TestEvent(TestAction.FAIL, "pkg", "TestBad")),
            RunFinished(1, RunKind.ALL),
        ]
    )
    return coordinator.snapshot()


class TestTimerManager:
    def test_timer_creation(self) -> None:
        mock_app = Mock()
        mock_timer = Mock()
        mock_app.set_interval.return_value = mock_timer

        manager = TimerManager(mock_app)
        callback = Mock()
        timer = manager.create_timer("test_timer", 1.0, callback)

        assert timer == mock_timer
        assert list(manager._timers) == ["test_timer"]
        mock_app.set_interval.assert_called_once_with(1.0, callback, name="test_timer")

    def test_timer_replacement(self) -> None:
        mock_app = Mock()
        old_timer, new_timer = Mock(), Mock()
        mock_app.set_interval.side_effect = [old_timer, new_timer]

        manager = TimerManager(mock_app)
        manager.create_timer("tick", 1.0, Mock())
        manager.create_timer("tick", 2.0, Mock())

        old_timer.stop.assert_called_once()
        assert manager._timers["tick"] is new_timer

    def test_stop_all_timers(self) -> None:
        mock_app = Mock()
        timers = [Mock(), Mock()]
        mock_app.set_interval.side_effect = timers

        manager = TimerManager(mock_app)
        manager.create_timer("one", 1.0, Mock())
        manager.create_timer("two", 1.0, Mock())
        manager.stop_all_timers()

        assert manager._timers == {}
        for timer in timers:
            timer.stop.assert_called_once()
        assert manager.stop_timer("one") is False


class TestFormatting:
    @pytest.mark.parametrize("elapsed, expected", [(0, "0s"), (42.7, "42s"), (61, "1m01s"), (3600, "60m00s")])
    def test_format_elapsed(self, elapsed: float, expected: str) -> None:
        assert format_elapsed(100.0, now=100.0 + elapsed) == expected

    def test_format_elapsed_without_start(self) -> None:
        assert format_elapsed(None) == ""

    def test_status_line_before_first_run(self, make_coordinator) -> None:
        line = format_status_line(make_coordinator(watch_enabled=False).snapshot())
        assert line == "All tests · failing 0 · watch off"

    def test_status_line_after_run(self, make_coordinator) -> None:
        line = format_status_line(populated_snapshot(make_coordinator()))
        assert line == "All tests · run #1 done · packages 0/1 · tests 2/2 · failing 1"


@pytest.mark.asyncio
class TestGestTuiApp:
    @pytest.fixture
    def app(self, go_module: Path) -> GestTuiApp:
        FakeSession.instances.clear()
        return GestTuiApp(root=go_module, config=GestConfig(), cli_shutdown_event=asyncio.Event())

    async def test_keys_are_forwarded_and_q_exits(self, app: GestTuiApp) -> None:
        with patch("gest.tui.app.WatchSession", FakeSession):
            async with app.run_test() as pilot:
                await pilot.pause()
                session = FakeSession.instances[-1]

                await pilot.press("x")
                await pilot.press("q")
                await pilot.pause()

        assert session.keys == ["x", "q"]
        assert app.return_code == 0
        assert app._cli_shutdown_event.is_set()

    async def test_state_update_renders_rows(self, app: GestTuiApp, make_coordinator) -> None:
        snapshot = populated_snapshot(make_coordinator())
        with patch("gest.tui.app.WatchSession", FakeSession):
            async with app.run_test() as pilot:
                await pilot.pause()
                app.post_message(StateUpdate(snapshot))
                await pilot.pause()

                assert app.query_one(DataTable).row_count == 2
                assert app.last_snapshot is snapshot
                assert app.sub_title.startswith("All tests")
                assert app.show_query is False

                app.post_message(LogMessageUpdate("pkg", "INFO", "hello"))
                await pilot.pause()
                app.action_quit()
                await pilot.pause()

    async def test_picker_shows_query(self, app: GestTuiApp, make_coordinator) -> None:
        coordinator = make_coordinator(mode=RunMode.SELECTING)
        coordinator.selection.query = "Te"
        with patch("gest.tui.app.WatchSession", FakeSession):
            async with app.run_test() as pilot:
                await pilot.pause()
                app.post_message(StateUpdate(coordinator.snapshot()))
                await pilot.pause()

                assert app.show_query is True
                app.action_quit()
                await pilot.pause()

# 🔼⚙️
