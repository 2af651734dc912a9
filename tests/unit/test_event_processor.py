# tests/unit/test_event_processor.py

"""Tests for the consumer loop that feeds the coordinator and publishes snapshots."""

import asyncio
from unittest.mock import MagicMock

import pytest

from gest.runtime.coordinator import DashboardSnapshot
from gest.runtime.event_processor import (
    RUNNER_BATCH_LIMIT,
    EventProcessor,
    KeyInput,
    ShutdownRequested,
    Tick,
    _Outcome,
)
from gest.runtime.orchestrator import PackageFinished, RunFinished, RunStarted, TestEventReceived
from gest.testing.protocols import RunKind, TestAction, TestEvent


@pytest.fixture
def processor_parts(make_coordinator):
    coordinator = make_coordinator()
    app_queue: asyncio.Queue = asyncio.Queue()
    runner_events: asyncio.Queue = asyncio.Queue()
    shutdown_event = asyncio.Event()
    tui = MagicMock()
    callback = MagicMock()
    processor = EventProcessor(coordinator, app_queue, runner_events, shutdown_event, tui, on_runner_events=callback)
    return processor, coordinator, app_queue, runner_events, shutdown_event, tui, callback


@pytest.mark.asyncio
async def test_quit_key_stops_loop(processor_parts) -> None:
    processor, _, app_queue, _, shutdown_event, tui, _ = processor_parts
    app_queue.put_nowait(KeyInput("q"))

    await asyncio.wait_for(processor.run(), timeout=5)

    assert shutdown_event.is_set()
    # One publish at startup; the quit exits before the next redraw.
    tui.post_state_update.assert_called_once()
    assert isinstance(tui.post_state_update.call_args.args[0], DashboardSnapshot)


@pytest.mark.asyncio
async def test_shutdown_requested_stops_loop(processor_parts) -> None:
    processor, _, app_queue, _, shutdown_event, _, _ = processor_parts
    app_queue.put_nowait(ShutdownRequested())

    await asyncio.wait_for(processor.run(), timeout=5)

    assert shutdown_event.is_set()


@pytest.mark.asyncio
async def test_external_shutdown_stops_loop(processor_parts) -> None:
    processor, _, _, _, shutdown_event, _, _ = processor_parts
    task = asyncio.create_task(processor.run())
    await asyncio.sleep(0.05)

    shutdown_event.set()

    await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_runner_events_reach_coordinator_and_callback(processor_parts) -> None:
    processor, coordinator, _, runner_events, shutdown_event, tui, callback = processor_parts
    runner_events.put_nowait(RunStarted(1, RunKind.ALL, 1))
    runner_events.put_nowait(TestEventReceived(1, TestEvent(TestAction.FAIL, "pkg", "TestA")))
    runner_events.put_nowait(PackageFinished(1, "pkg", False))
    runner_events.put_nowait(RunFinished(1, RunKind.ALL))

    task = asyncio.create_task(processor.run())
    await asyncio.sleep(0.3)
    shutdown_event.set()
    await asyncio.wait_for(task, timeout=5)

    assert coordinator.run_state.run_id == 1
    assert coordinator.run_state.running is False
    assert len(coordinator.failing_set) == 1
    delivered = [event for call in callback.call_args_list for event in call.args[0]]
    assert len(delivered) == 4
    assert tui.post_state_update.call_count >= 2


@pytest.mark.asyncio
async def test_flush_is_bounded(processor_parts) -> None:
    processor, coordinator, _, _, _, _, callback = processor_parts
    processor._pending.append(RunStarted(1, RunKind.ALL, 1))
    for idx in range(RUNNER_BATCH_LIMIT + 50):
        processor._pending.append(TestEventReceived(1, TestEvent(TestAction.PASS, "pkg", f"Test{idx}")))

    processor.flush_runner_events()

    assert len(callback.call_args.args[0]) == RUNNER_BATCH_LIMIT
    assert len(coordinator.registry) == RUNNER_BATCH_LIMIT - 1
    processor.flush_runner_events()
    assert len(coordinator.registry) == RUNNER_BATCH_LIMIT + 50


@pytest.mark.asyncio
async def test_tick_only_redraws_while_running(processor_parts) -> None:
    processor, coordinator, _, _, _, _, _ = processor_parts
    idle = _Outcome()
    processor._handle_app_event(Tick(), idle)
    assert idle.dirty is False

    coordinator.handle_runner_event(RunStarted(1, RunKind.ALL, 1))
    running = _Outcome()
    processor._handle_app_event(Tick(), running)
    assert running.dirty is True

# 🔼⚙️
