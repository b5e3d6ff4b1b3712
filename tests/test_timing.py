"""Tests for the debouncer, periodic task and event bus."""

import asyncio
from unittest.mock import MagicMock

import pytest

from code_assistant.utils.events import ConversationListChanged, EventBus
from code_assistant.utils.timing import Debouncer, PeriodicTask


@pytest.mark.asyncio
async def test_debouncer_runs_once_with_latest_arguments():
    """Test that a burst of triggers collapses into one call."""
    action = MagicMock()
    debouncer = Debouncer(0.02, action)

    for term in ["a", "au", "aut", "auth"]:
        debouncer.trigger(term)
        await asyncio.sleep(0.005)
    assert debouncer.pending is True
    action.assert_not_called()

    await asyncio.sleep(0.05)

    action.assert_called_once_with("auth")
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_debouncer_flush_and_cancel():
    """Test running a pending action early or dropping it."""
    action = MagicMock()
    debouncer = Debouncer(10, action)

    debouncer.flush()
    action.assert_not_called()

    debouncer.trigger(1)
    debouncer.flush()
    action.assert_called_once_with(1)

    debouncer.trigger(2)
    debouncer.cancel()
    await asyncio.sleep(0.01)
    assert action.call_count == 1
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_periodic_task_ends_when_callback_returns_false():
    """Test the callback-controlled stop."""
    ticks = []

    async def tick():
        ticks.append(len(ticks))
        return len(ticks) < 3

    task = PeriodicTask(0, tick, immediate=True)
    task.start()
    await task.wait()

    assert ticks == [0, 1, 2]
    assert task.running is False


@pytest.mark.asyncio
async def test_periodic_task_waits_before_first_tick():
    """Test the default delayed first tick."""
    callback = MagicMock()

    async def tick():
        callback()

    task = PeriodicTask(0.05, tick)
    task.start()
    await asyncio.sleep(0.01)
    callback.assert_not_called()

    task.stop()
    await task.wait()
    assert task.running is False


@pytest.mark.asyncio
async def test_periodic_task_start_is_idempotent_and_stop_is_safe():
    """Test repeated start and stop calls."""
    calls = 0

    async def tick():
        nonlocal calls
        calls += 1

    task = PeriodicTask(0.01, tick, immediate=True)
    task.stop()
    task.start()
    task.start()
    await asyncio.sleep(0)
    assert calls == 1

    task.stop()
    task.stop()
    await asyncio.sleep(0.03)
    assert calls == 1


@pytest.mark.asyncio
async def test_periodic_task_stopped_from_callback():
    """Test that stopping inside the callback ends the loop."""
    calls = 0
    task = None

    async def tick():
        nonlocal calls
        calls += 1
        task.stop()

    task = PeriodicTask(0, tick, immediate=True)
    task.start()
    await asyncio.sleep(0.01)

    assert calls == 1
    assert task.running is False


def test_event_bus_dispatches_by_type_and_unsubscribes():
    """Test subscription and removal."""
    bus = EventBus()
    handler = MagicMock()
    other = MagicMock()
    unsubscribe = bus.subscribe(ConversationListChanged, handler)
    bus.subscribe(str, other)

    event = ConversationListChanged("c1")
    bus.publish(event)
    unsubscribe()
    unsubscribe()
    bus.publish(ConversationListChanged("c2"))

    handler.assert_called_once_with(event)
    other.assert_not_called()
