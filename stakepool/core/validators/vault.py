"""
Vault - per-validator FIFO of stake records.

Records live in dense slots `[gap, length)`. Consuming a record advances
`gap`; slots are never shifted or reused until the vault is empty and reset
to `gap == length == 0`. `total_staked` caches the principal of the live
slots.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from stakepool.core.external.delegation import StakeRecord


@dataclass
class Vault:
    """
    Stake records held with one validator.

    Attributes:
        records: Slot index -> record, for slots in [gap, length)
        gap: Number of consumed leading slots
        length: Next free slot index
        total_staked: Sum of live record principals
    """
    records: Dict[int, StakeRecord] = field(default_factory=dict)
    gap: int = 0
    length: int = 0
    total_staked: int = 0

    def is_empty(self) -> bool:
        return self.gap == self.length

    def push(self, record: StakeRecord) -> int:
        """Append a record; returns its slot."""
        slot = self.length
        self.records[slot] = record
        self.length += 1
        self.total_staked += record.principal
        return slot

    def front(self) -> Optional[StakeRecord]:
        if self.is_empty():
            return None
        return self.records[self.gap]

    def pop_front(self) -> StakeRecord:
        record = self.records.pop(self.gap)
        self.gap += 1
        self.total_staked -= record.principal
        return record

    def split_front(self, kept: StakeRecord, amount: int) -> None:
        """Replace the front record with what is left after `amount` was split off."""
        self.records[self.gap] = kept
        self.total_staked -= amount

    def reset(self) -> None:
        """Reuse slots from zero; only valid once drained."""
        self.records.clear()
        self.gap = 0
        self.length = 0

    def live_records(self) -> List[StakeRecord]:
        return [self.records[slot] for slot in range(self.gap, self.length)]

    def check(self) -> bool:
        """Structural invariants: ordering of cursors and cached total."""
        return (
            self.gap <= self.length
            and set(self.records) == set(range(self.gap, self.length))
            and self.total_staked == sum(r.principal for r in self.records.values())
        )
