"""
Epoch ledger - cumulative staked amount per epoch.

New delegations only become active one epoch after they are made, so an
increase is booked at `current_epoch + 1`. Withdrawals leave immediately and
are booked at the current epoch (and carried into an already-projected next
epoch). `update_epoch` points at the latest recorded epoch; reads at or past
it return its value.
"""

from typing import Dict

from stakepool.core.checkpoint import Checkpointable
from stakepool.core.errors import InvariantViolation


class StakedLedger(Checkpointable):
    """
    Epoch -> cumulative staked snapshot.

    Holds at most the current epoch and the one after it; older snapshots
    are pruned as epochs advance.
    """

    def __init__(self):
        self.snapshots: Dict[int, int] = {0: 0}
        self.update_epoch: int = 0

    def latest(self) -> int:
        """Value at the cursor, including not-yet-active stake."""
        return self.snapshots[self.update_epoch]

    def at(self, epoch: int) -> int:
        if epoch >= self.update_epoch:
            return self.latest()
        if epoch not in self.snapshots:
            raise KeyError(f"No staked snapshot for epoch {epoch}")
        return self.snapshots[epoch]

    def active(self, current_epoch: int) -> int:
        """Stake already active at `current_epoch`."""
        return self.at(min(self.update_epoch, current_epoch))

    def record_delta(self, amount: int, increase: bool, current_epoch: int) -> None:
        """
        Book a change in staked amount.

        Args:
            amount: Size of the change
            increase: True for a delegation (lands next epoch), False for a
                withdrawal (lands now)
            current_epoch: Current epoch
        """
        self._materialize(current_epoch)

        if increase:
            next_epoch = current_epoch + 1
            if next_epoch not in self.snapshots:
                self.snapshots[next_epoch] = self.latest()
                self.update_epoch = next_epoch
            self.snapshots[next_epoch] += amount
            return

        for epoch in (current_epoch, current_epoch + 1):
            if epoch not in self.snapshots:
                continue
            if self.snapshots[epoch] < amount:
                raise InvariantViolation(
                    f"Removing {amount} from {self.snapshots[epoch]} staked at epoch {epoch}"
                )
            self.snapshots[epoch] -= amount

    def _materialize(self, current_epoch: int) -> None:
        if current_epoch < self.update_epoch - 1:
            raise ValueError(
                f"Epoch {current_epoch} is behind staked cursor {self.update_epoch}"
            )

        if current_epoch not in self.snapshots:
            # Cursor is behind: roll its value forward to now
            self.snapshots[current_epoch] = self.latest()
            self.update_epoch = max(self.update_epoch, current_epoch)

        for epoch in [e for e in self.snapshots if e < current_epoch]:
            del self.snapshots[epoch]
