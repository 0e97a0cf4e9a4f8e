"""
Tests for the guarded monitor state.
"""

import threading
from unittest.mock import patch

import pytest

from node_monitor.exceptions import ConfigurationError, StateAccessFailure
from node_monitor.state import MonitorState

from conftest import make_block


# ============================================================
# BASIC OPERATIONS
# ============================================================

class TestMonitorState:
    """Tests for MonitorState operations."""

    def test_initial_state(self, state):
        """No block before the first ingestion, flag cleared."""
        snapshot = state.snapshot()

        assert state.latest is None
        assert snapshot.latest is None
        assert snapshot.force_unhealthy is False
        assert snapshot.block_frequency_seconds == 12

    @pytest.mark.parametrize("frequency", [0, -12, True, 12.5, "12"])
    def test_rejects_invalid_frequency(self, frequency):
        with pytest.raises(ConfigurationError):
            MonitorState(block_frequency_seconds=frequency)

    def test_block_frequency_is_read_only(self, state):
        with pytest.raises(AttributeError):
            state.block_frequency_seconds = 5

    def test_update_replaces_latest(self, state):
        first = make_block(1, "0x01", 1000)
        second = make_block(2, "0x02", 1012)

        state.update(first)
        state.update(second)

        assert state.latest == second

    def test_update_accepts_lower_number(self, state, caplog):
        """Out-of-order blocks are accepted and logged."""
        state.update(make_block(10, "0x10", 1000))

        with caplog.at_level("INFO", logger="node_monitor.state"):
            state.update(make_block(9, "0x09", 1012))

        assert state.latest.number == 9
        assert "below previous" in caplog.text

    def test_update_rejects_non_record(self, state):
        """A wrong type is refused without poisoning."""
        with pytest.raises(TypeError):
            state.update({"number": 1})

        assert not state.is_poisoned

    def test_toggle_is_self_inverse(self, state):
        assert state.toggle_force_unhealthy() is True
        assert state.snapshot().force_unhealthy is True
        assert state.toggle_force_unhealthy() is False
        assert state.snapshot().force_unhealthy is False

    def test_snapshot_is_a_copy(self, state):
        """Later updates do not change an earlier snapshot."""
        state.update(make_block(1, "0x01", 1000))
        snapshot = state.snapshot()

        state.update(make_block(2, "0x02", 1012))
        state.toggle_force_unhealthy()

        assert snapshot.latest.number == 1
        assert snapshot.force_unhealthy is False


# ============================================================
# CONCURRENCY
# ============================================================

class TestConcurrentAccess:
    """Readers never observe a partially written block."""

    def test_readers_see_whole_blocks(self, state):
        blocks = [make_block(n, f"0x{n:04x}", 1000 + n) for n in range(1, 500)]
        written = set(blocks)
        torn = []

        def writer():
            for b in blocks:
                state.update(b)

        def reader():
            for _ in range(1000):
                latest = state.snapshot().latest
                if latest is not None and latest not in written:
                    torn.append(latest)

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert torn == []
        assert state.latest == blocks[-1]


# ============================================================
# POISONING
# ============================================================

class TestPoisoning:
    """Failures while holding the lock are fatal."""

    def test_failure_inside_lock_poisons(self, state):
        with patch("node_monitor.state.StateSnapshot", side_effect=RuntimeError("boom")):
            with pytest.raises(StateAccessFailure) as exc_info:
                state.snapshot()

        assert state.is_poisoned
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert not exc_info.value.recoverable

    def test_every_later_call_fails(self, state):
        state._poisoned = RuntimeError("earlier failure")

        with pytest.raises(StateAccessFailure):
            state.update(make_block())
        with pytest.raises(StateAccessFailure):
            state.toggle_force_unhealthy()
        with pytest.raises(StateAccessFailure):
            state.snapshot()
        with pytest.raises(StateAccessFailure):
            _ = state.latest

    def test_lock_released_after_failure(self, state):
        """Poisoning does not leave the lock held."""
        state._poisoned = RuntimeError("earlier failure")

        with pytest.raises(StateAccessFailure):
            state.snapshot()

        assert state._lock.acquire(timeout=1)
        state._lock.release()
