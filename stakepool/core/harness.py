"""
LocalPool - a pool wired to in-memory collaborators and a clock.

Bundles the pool, its capabilities, the delegation system and an EpochClock
so scripts, the CLI and tests can drive it without assembling contexts by
hand.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from stakepool.core.auth import OperatorCap, OwnerCap
from stakepool.core.config import PoolConfig
from stakepool.core.context import EpochClock, TxContext
from stakepool.core.events import EventLog
from stakepool.core.external import (
    LocalDelegation,
    LocalTicketQueue,
    RedemptionTicket,
    ShareCoin,
    ShareToken,
)
from stakepool.core.pool import PoolAccounting, UnstakeResult, VERSION

DEFAULT_SENDER = "0xuser"


@dataclass
class LocalPool:
    """A ready-to-use pool with its collaborators."""
    pool: PoolAccounting
    owner_cap: OwnerCap
    operator_cap: OperatorCap
    delegation: LocalDelegation
    token: ShareToken
    tickets: LocalTicketQueue
    events: EventLog
    clock: EpochClock = field(default_factory=EpochClock)

    @classmethod
    def create(
        cls,
        validators: Optional[Dict[str, int]] = None,
        config: Optional[PoolConfig] = None,
        epoch: int = 0,
        timestamp_ms: int = 0,
        version: int = VERSION,
    ) -> "LocalPool":
        """
        Create a pool, optionally registering validators with priorities.

        Args:
            validators: Validator -> priority
            config: Pool parameters
            epoch: Starting epoch
            timestamp_ms: Starting time
            version: Initial state version
        """
        delegation = LocalDelegation()
        token = ShareToken()
        tickets = LocalTicketQueue()
        events = EventLog()
        pool, owner_cap, operator_cap = PoolAccounting.create(
            config=config,
            delegation=delegation,
            token=token,
            tickets=tickets,
            events=events,
            version=version,
        )
        local = cls(
            pool=pool,
            owner_cap=owner_cap,
            operator_cap=operator_cap,
            delegation=delegation,
            token=token,
            tickets=tickets,
            events=events,
            clock=EpochClock(epoch=epoch, timestamp_ms=timestamp_ms),
        )
        if validators:
            local.set_priorities(validators)
        return local

    def ctx(self, sender: str = DEFAULT_SENDER) -> TxContext:
        return self.clock.context(sender)

    # Clock

    def next_epoch(self, epochs: int = 1) -> int:
        return self.clock.advance_epoch(epochs)

    def advance_time(self, ms: int) -> int:
        return self.clock.advance_time(ms)

    # Operations

    def set_priorities(self, validators: Dict[str, int]) -> None:
        self.pool.update_validators(
            self.operator_cap, list(validators), list(validators.values())
        )

    def stake(self, amount: int, sender: str = DEFAULT_SENDER) -> ShareCoin:
        return self.pool.stake(amount, self.ctx(sender))

    def mint_ticket(self, shares: ShareCoin, sender: str = DEFAULT_SENDER) -> RedemptionTicket:
        return self.pool.mint_ticket(shares, self.ctx(sender))

    def burn_ticket(self, ticket: RedemptionTicket, sender: str = DEFAULT_SENDER) -> int:
        return self.pool.burn_ticket(ticket, self.ctx(sender))

    def unstake(self, shares: ShareCoin, sender: str = DEFAULT_SENDER) -> UnstakeResult:
        return self.pool.unstake(shares, self.ctx(sender))

    def distribute_rewards(self, validator: str, amount: int) -> int:
        """Accrue rewards at the delegation layer (not attested)."""
        return self.delegation.distribute_rewards(validator, amount, self.clock.epoch)

    def update_rewards(self, total: int) -> None:
        self.pool.update_rewards(self.operator_cap, total, self.ctx())

    def rebalance(self) -> int:
        return self.pool.rebalance(self.ctx())

    def collect_fee(self, to: str) -> int:
        return self.pool.collect_fee(self.owner_cap, to)

    def set_pause(self, paused: bool) -> None:
        self.pool.set_pause(self.owner_cap, paused)
