"""
Delegation system - custody of staked principal per validator.

The pool only sees StakeRecords: a principal, the validator it sits with and
the epoch it activates. LocalDelegation is an in-memory implementation that
also accrues rewards per record, so withdrawals settle for principal plus
whatever the record earned.
"""

from dataclasses import dataclass
from typing import Dict, List, Protocol, runtime_checkable

from stakepool.core.checkpoint import Checkpointable
from stakepool.core.errors import PreconditionError, UnknownStakeRecord
from stakepool.utils.logger import get_logger

logger = get_logger("delegation")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class StakeRecord:
    """
    A withdrawable stake position.

    Attributes:
        record_id: Identifier assigned by the delegation system
        validator: Validator the principal is delegated to
        principal: Delegated amount
        activation_epoch: First epoch the stake counts as active
    """
    record_id: int
    validator: str
    principal: int
    activation_epoch: int

    def is_active(self, current_epoch: int) -> bool:
        return self.activation_epoch <= current_epoch


@dataclass
class _Position:
    validator: str
    principal: int
    activation_epoch: int
    rewards: int = 0


# =============================================================================
# Contract
# =============================================================================


@runtime_checkable
class DelegationSystem(Protocol):
    """What the pool needs from the delegation system."""

    def delegate(self, amount: int, validator: str, current_epoch: int) -> StakeRecord: ...

    def withdraw(self, record: StakeRecord) -> int: ...

    def split(self, record: StakeRecord, amount: int) -> StakeRecord: ...

    def principal_of(self, record: StakeRecord) -> int: ...

    def activation_epoch(self, record: StakeRecord) -> int: ...


# =============================================================================
# In-memory Implementation
# =============================================================================


class LocalDelegation(Checkpointable):
    """In-memory delegation system with per-record reward accrual."""

    def __init__(self):
        self.positions: Dict[int, _Position] = {}
        self.next_record_id: int = 0

    def _position(self, record: StakeRecord) -> _Position:
        position = self.positions.get(record.record_id)
        if position is None:
            raise UnknownStakeRecord(f"Stake record {record.record_id} not found")
        return position

    def delegate(self, amount: int, validator: str, current_epoch: int) -> StakeRecord:
        """Delegate `amount` to `validator`, active from the next epoch."""
        if amount <= 0:
            raise PreconditionError("Delegation amount must be positive")

        record = StakeRecord(
            record_id=self.next_record_id,
            validator=validator,
            principal=amount,
            activation_epoch=current_epoch + 1,
        )
        self.positions[record.record_id] = _Position(
            validator=validator,
            principal=amount,
            activation_epoch=record.activation_epoch,
        )
        self.next_record_id += 1

        logger.debug(f"Delegated {amount} to {validator} as record {record.record_id}")
        return record

    def withdraw(self, record: StakeRecord) -> int:
        """Close the position and return its settled value."""
        position = self._position(record)
        del self.positions[record.record_id]
        return position.principal + position.rewards

    def split(self, record: StakeRecord, amount: int) -> StakeRecord:
        """
        Split `amount` of principal off `record` into a new record.

        Rewards follow the principal pro rata. The original record shrinks
        in place.
        """
        position = self._position(record)
        if amount <= 0 or amount >= position.principal:
            raise PreconditionError(
                f"Cannot split {amount} from record of {position.principal}"
            )

        moved_rewards = position.rewards * amount // position.principal
        position.principal -= amount
        position.rewards -= moved_rewards
        record.principal = position.principal

        new_record = StakeRecord(
            record_id=self.next_record_id,
            validator=position.validator,
            principal=amount,
            activation_epoch=position.activation_epoch,
        )
        self.positions[new_record.record_id] = _Position(
            validator=position.validator,
            principal=amount,
            activation_epoch=position.activation_epoch,
            rewards=moved_rewards,
        )
        self.next_record_id += 1
        return new_record

    def principal_of(self, record: StakeRecord) -> int:
        return self._position(record).principal

    def activation_epoch(self, record: StakeRecord) -> int:
        return self._position(record).activation_epoch

    def value_of(self, record: StakeRecord) -> int:
        """Principal plus accrued rewards."""
        position = self._position(record)
        return position.principal + position.rewards

    def distribute_rewards(self, validator: str, amount: int, current_epoch: int) -> int:
        """
        Credit `amount` of rewards pro rata to the validator's active records.

        Returns:
            Amount actually credited (rounding dust is dropped)
        """
        active = [
            p for p in self.positions.values()
            if p.validator == validator and p.activation_epoch <= current_epoch
        ]
        total = sum(p.principal for p in active)
        if total == 0:
            return 0

        credited = 0
        for position in active:
            share = amount * position.principal // total
            position.rewards += share
            credited += share

        logger.debug(f"Credited {credited} rewards to {validator}")
        return credited

    def records_of(self, validator: str) -> List[int]:
        return [rid for rid, p in self.positions.items() if p.validator == validator]


__all__ = [
    "StakeRecord",
    "DelegationSystem",
    "LocalDelegation",
]
