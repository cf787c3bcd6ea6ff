# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Unit tests for PollingLoop error handling and ThreadScheduler lifecycle.
"""

import threading
from unittest.mock import Mock

import pytest

from glwatch.exceptions import InvariantViolation, TransientFetchError
from glwatch.watch.handles import WatchHandle
from glwatch.watch.loop import PollingLoop, ThreadScheduler


@pytest.fixture
def handle():
    return WatchHandle('supervisor').spawn('todos')


class TestRunOnce:
    def test_successful_tick_keeps_loop_running(self, handle):
        tick = Mock()
        loop = PollingLoop(handle, 5.0, tick)

        assert loop.run_once() is True
        tick.assert_called_once()
        assert loop.tick_count == 1

    def test_transient_failure_is_reported_and_loop_continues(self, handle):
        error = TransientFetchError('502 Bad Gateway', status_code=502)
        on_failure = Mock()
        loop = PollingLoop(handle, 5.0, Mock(side_effect=error), on_failure=on_failure)

        assert loop.run_once() is True
        assert loop.run_once() is True

        assert on_failure.call_count == 2
        on_failure.assert_called_with('supervisor/todos', error)
        assert loop.failure_count == 2

    def test_unexpected_error_does_not_stop_loop(self, handle):
        loop = PollingLoop(handle, 5.0, Mock(side_effect=KeyError('id')))
        assert loop.run_once() is True

    def test_broken_failure_callback_is_contained(self, handle):
        loop = PollingLoop(
            handle,
            5.0,
            Mock(side_effect=TransientFetchError('timeout')),
            on_failure=Mock(side_effect=RuntimeError('callback bug')),
        )
        assert loop.run_once() is True

    def test_invariant_violation_logged_when_not_strict(self, handle):
        loop = PollingLoop(handle, 5.0, Mock(side_effect=InvariantViolation('dup')))
        assert loop.run_once() is True

    def test_invariant_violation_raised_when_strict(self, handle):
        loop = PollingLoop(handle, 5.0, Mock(side_effect=InvariantViolation('dup')), strict=True)
        with pytest.raises(InvariantViolation):
            loop.run_once()

    def test_cancelled_handle_skips_tick(self, handle):
        tick = Mock()
        loop = PollingLoop(handle, 5.0, tick)
        handle.cancel()

        assert loop.run_once() is False
        tick.assert_not_called()

    def test_tick_that_cancels_its_own_handle_stops_loop(self, handle):
        loop = PollingLoop(handle, 5.0, handle.cancel)
        assert loop.run_once() is False


@pytest.mark.threaded
class TestThreadScheduler:
    def test_loop_ticks_until_cancelled(self, handle):
        ticks = []

        def tick():
            ticks.append(1)
            if len(ticks) == 3:
                handle.cancel()

        ThreadScheduler().start(PollingLoop(handle, 0.0, tick))
        handle.join(timeout=5)

        assert len(ticks) == 3
        assert not handle.thread.is_alive()

    def test_cancel_wakes_sleeping_loop(self, handle):
        first_tick = threading.Event()
        loop = PollingLoop(handle, 3600.0, first_tick.set)

        ThreadScheduler().start(loop)
        assert first_tick.wait(5)

        handle.cancel()
        handle.join(timeout=5)

        assert not handle.thread.is_alive()
        assert loop.tick_count == 1

    def test_thread_is_daemon_and_named_after_handle(self, handle):
        ThreadScheduler().start(PollingLoop(handle, 3600.0, Mock()))
        try:
            assert handle.thread.daemon
            assert handle.thread.name == 'glwatch:supervisor/todos'
        finally:
            handle.cancel()
            handle.join(timeout=5)
