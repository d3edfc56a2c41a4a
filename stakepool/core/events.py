"""
Domain events emitted by the pool and the validator ledger.

Each operation appends its events to a shared EventLog in the same order it
mutates state, so observers can replay a call step by step.
"""

from typing import Iterator, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict

from stakepool.core.checkpoint import Checkpointable


# =============================================================================
# Event Models
# =============================================================================


class PoolEvent(BaseModel):
    """Base class for all events."""

    model_config = ConfigDict(frozen=True)

    name: str


class ValidatorPriorityUpdated(PoolEvent):
    name: Literal["validator_priority_updated"] = "validator_priority_updated"
    validator: str
    priority: int


class ValidatorsSorted(PoolEvent):
    name: Literal["validators_sorted"] = "validators_sorted"
    validators: List[str]


class ValidatorRemoved(PoolEvent):
    name: Literal["validator_removed"] = "validator_removed"
    validator: str


class Delegated(PoolEvent):
    name: Literal["delegated"] = "delegated"
    validator: str
    amount: int
    activation_epoch: int


class Staked(PoolEvent):
    name: Literal["staked"] = "staked"
    staker: str
    amount: int
    shares: int


class TicketMinted(PoolEvent):
    name: Literal["ticket_minted"] = "ticket_minted"
    ticket_id: int
    owner: str
    shares: int
    amount: int
    fee: int
    unlock_epoch: int


class Unstaked(PoolEvent):
    name: Literal["unstaked"] = "unstaked"
    ticket_id: int
    owner: str
    amount: int
    fee: int
    payout: int


class Restaked(PoolEvent):
    name: Literal["restaked"] = "restaked"
    amount: int


class RewardsUpdated(PoolEvent):
    name: Literal["rewards_updated"] = "rewards_updated"
    total_rewards: int
    protocol_share: int


class FeeCollected(PoolEvent):
    name: Literal["fee_collected"] = "fee_collected"
    to: str
    amount: int


class ParamsChanged(PoolEvent):
    name: Literal["params_changed"] = "params_changed"
    param: str
    value: int


class Paused(PoolEvent):
    name: Literal["paused"] = "paused"
    paused: bool


class Migrated(PoolEvent):
    name: Literal["migrated"] = "migrated"
    from_version: int
    to_version: int


E = TypeVar("E", bound=PoolEvent)


# =============================================================================
# Event Log
# =============================================================================


class EventLog(Checkpointable):
    """Ordered, append-only event output shared by all components."""

    def __init__(self):
        self.events: List[PoolEvent] = []

    def emit(self, event: PoolEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        """All events of one type, in emission order."""
        return [e for e in self.events if isinstance(e, event_type)]

    def names(self) -> List[str]:
        return [e.name for e in self.events]

    def last(self) -> Optional[PoolEvent]:
        return self.events[-1] if self.events else None

    def since(self, index: int) -> List[PoolEvent]:
        """Events appended after the first `index` entries."""
        return self.events[index:]

    # Rollback only ever truncates the tail
    def checkpoint(self) -> int:
        return len(self.events)

    def rollback(self, state: int) -> None:
        del self.events[state:]

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[PoolEvent]:
        return iter(self.events)


__all__ = [
    "PoolEvent",
    "ValidatorPriorityUpdated",
    "ValidatorsSorted",
    "ValidatorRemoved",
    "Delegated",
    "Staked",
    "TicketMinted",
    "Unstaked",
    "Restaked",
    "RewardsUpdated",
    "FeeCollected",
    "ParamsChanged",
    "Paused",
    "Migrated",
    "EventLog",
]
