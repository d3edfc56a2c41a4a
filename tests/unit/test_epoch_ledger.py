"""
Tests for the epoch-indexed staked ledger.

Tests cover:
1. Next-epoch booking of delegations
2. Immediate booking of withdrawals
3. Cursor reads and pruning
"""

import pytest

from stakepool.core.errors import InvariantViolation
from stakepool.core.pool import StakedLedger


class TestStakedLedger:
    """Tests for StakedLedger."""

    def test_starts_at_zero(self):
        ledger = StakedLedger()
        assert ledger.latest() == 0
        assert ledger.update_epoch == 0
        assert ledger.at(100) == 0

    def test_increase_lands_next_epoch(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)

        assert ledger.update_epoch == 1
        assert ledger.latest() == 10
        assert ledger.active(0) == 0
        assert ledger.active(1) == 10

    def test_reads_past_cursor_return_cursor_value(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        for epoch in (1, 2, 50):
            assert ledger.at(epoch) == 10

    def test_increases_compound_within_epoch(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        ledger.record_delta(5, True, current_epoch=0)
        assert ledger.snapshots == {0: 0, 1: 15}

    def test_decrease_lands_now(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        ledger.record_delta(4, False, current_epoch=1)

        assert ledger.snapshots == {1: 6}
        assert ledger.active(1) == 6

    def test_decrease_carries_into_projected_epoch(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        ledger.record_delta(5, True, current_epoch=1)
        ledger.record_delta(3, False, current_epoch=1)

        assert ledger.snapshots == {1: 7, 2: 12}
        assert ledger.active(1) == 7
        assert ledger.latest() == 12

    def test_cursor_rolls_forward_after_idle_epochs(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        ledger.record_delta(5, True, current_epoch=7)

        assert ledger.snapshots == {7: 10, 8: 15}
        assert ledger.update_epoch == 8
        assert ledger.active(7) == 10

    def test_at_most_two_snapshots(self):
        ledger = StakedLedger()
        for epoch in range(10):
            ledger.record_delta(1, True, current_epoch=epoch)
            assert len(ledger.snapshots) <= 2

    def test_pruned_epoch_not_readable(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        ledger.record_delta(1, True, current_epoch=5)
        with pytest.raises(KeyError):
            ledger.at(2)

    def test_overdraw_is_invariant_violation(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=0)
        with pytest.raises(InvariantViolation):
            ledger.record_delta(11, False, current_epoch=1)

    def test_epoch_going_backwards_rejected(self):
        ledger = StakedLedger()
        ledger.record_delta(10, True, current_epoch=5)
        with pytest.raises(ValueError):
            ledger.record_delta(1, True, current_epoch=2)
