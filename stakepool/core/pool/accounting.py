"""
Pool Accounting - the liquid staking pool.

Conceptual Background:
---------------------
Deposits are exchanged for shares at the pool ratio

    ratio = share_supply / (total_staked + net_rewards - outstanding_tickets)

and parked in a pending balance. Once pending reaches one unit it is
delegated, in full, to the top validator. Delegated stake counts as active
only from the next epoch (see StakedLedger).

Redemption:
----------
1. mint_ticket burns shares for a ticket worth `shares * value // supply`.
   The ticket unlocks now if already-active stake covers all outstanding
   tickets, else next epoch. When recent redemption volume runs above
   `unstake_fee_threshold` of the pool, the ticket carries an unstake fee.
2. burn_ticket drains validators from the lowest priority up. Principal
   leaves the epoch ledger immediately; the protocol takes
   `base_reward_fee` of realized rewards (capped by what it is owed); any
   overdraw is restaked.

Rewards:
-------
`total_rewards` is attested by the operator, grows monotonically within a
rate limit, and accrues the protocol's share into `collected_rewards`.
Realized rewards at withdrawal are reconciled against it only loosely.

Every public operation is atomic and serialized per pool.
"""

import secrets
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from stakepool.core.auth import CapabilityIssuer, OperatorCap, OwnerCap
from stakepool.core.checkpoint import Checkpointable, atomic
from stakepool.core.config import MIN_STAKE_FLOOR, PoolConfig
from stakepool.core.context import TxContext
from stakepool.core.errors import (
    AmountTooLow,
    IncompatibleVersion,
    InsufficientLiquidity,
    LimitTooLow,
    PercentTooBig,
    PoolPaused,
    PreconditionError,
    RewardNotInThreshold,
    RewardUpdateTooSoon,
    TicketLocked,
)
from stakepool.core.events import (
    Delegated,
    EventLog,
    FeeCollected,
    Migrated,
    ParamsChanged,
    Paused,
    Restaked,
    RewardsUpdated,
    Staked,
    TicketMinted,
    Unstaked,
)
from stakepool.core.external import (
    DelegationSystem,
    LocalDelegation,
    LocalTicketQueue,
    RedemptionTicket,
    ShareCoin,
    ShareLedger,
    ShareToken,
    TicketQueue,
)
from stakepool.core.math import (
    ONE_UNIT,
    from_shares,
    percent_of,
    ratio,
    to_shares,
)
from stakepool.core.pool.epoch_ledger import StakedLedger
from stakepool.core.validators import ValidatorLedger
from stakepool.utils.logger import get_logger
from stakepool.utils.validation import (
    MAX_PERCENT,
    MAX_U64,
    require,
    validate_amount,
    validate_validator_batch,
)

logger = get_logger("pool")


# =============================================================================
# Constants
# =============================================================================

# Code version; pools at VERSION - 1 are still served
VERSION = 2

# Minimum time between reward attestations (12 hours)
REWARD_UPDATE_DELAY_MS = 43_200_000

# Pending balance is delegated once it reaches this
FLUSH_THRESHOLD = ONE_UNIT

# Smallest redeemable amount
MIN_TICKET_AMOUNT = ONE_UNIT


@dataclass
class UnstakeResult:
    """Outcome of unstake(): a payout if settled at once, else the ticket."""
    ticket: RedemptionTicket
    payout: Optional[int] = None

    @property
    def settled(self) -> bool:
        return self.payout is not None


# =============================================================================
# Pool
# =============================================================================


class PoolAccounting(Checkpointable):
    """
    Pool-level accounting over a ValidatorLedger.

    Attributes:
        pending: Deposited, not yet delegated
        collectable_fee: Protocol fees awaiting collect_fee()
        staked: Epoch ledger of delegated principal
        total_rewards: Attested rewards not yet realized
        collected_rewards: Protocol share of total_rewards
        paused: Whether user operations are halted
        version: Pool state version
    """

    _checkpoint_exclude = (
        "_lock",
        "pool_id",
        "auth",
        "staked",
        "validators",
        "delegation",
        "token",
        "tickets",
        "events",
    )

    def __init__(
        self,
        config: Optional[PoolConfig] = None,
        delegation: Optional[DelegationSystem] = None,
        token: Optional[ShareLedger] = None,
        tickets: Optional[TicketQueue] = None,
        events: Optional[EventLog] = None,
        version: int = VERSION,
    ):
        """
        Initialize the pool.

        Prefer PoolAccounting.create(), which also hands out the
        capabilities.

        Args:
            config: Fee and limit parameters
            delegation: Delegation system (in-memory if None)
            token: Share token ledger (in-memory if None)
            tickets: Ticket queue (in-memory if None)
            events: Shared event log
            version: Initial state version
        """
        config = config or PoolConfig()

        self.pool_id = secrets.token_hex(8)
        self.auth = CapabilityIssuer(self.pool_id)
        self._lock = threading.RLock()

        self.delegation = delegation if delegation is not None else LocalDelegation()
        self.token = token if token is not None else ShareToken()
        self.tickets = tickets if tickets is not None else LocalTicketQueue()
        self.events = events if events is not None else EventLog()
        self.validators = ValidatorLedger(self.delegation, self.events)
        self.staked = StakedLedger()

        self.pending: int = 0
        self.collectable_fee: int = 0

        self.base_unstake_fee: int = config.base_unstake_fee
        self.unstake_fee_threshold: int = config.unstake_fee_threshold
        self.base_reward_fee: int = config.base_reward_fee
        self.min_stake: int = config.min_stake

        self.total_rewards: int = 0
        self.collected_rewards: int = 0
        self.rewards_threshold: int = config.rewards_threshold
        self.rewards_update_ts: int = 0

        self.paused: bool = False
        self.version: int = version

        logger.info(f"Pool {self.pool_id} initialized at version {version}")

    @classmethod
    def create(
        cls,
        config: Optional[PoolConfig] = None,
        delegation: Optional[DelegationSystem] = None,
        token: Optional[ShareLedger] = None,
        tickets: Optional[TicketQueue] = None,
        events: Optional[EventLog] = None,
        version: int = VERSION,
    ) -> Tuple["PoolAccounting", OwnerCap, OperatorCap]:
        """Create a pool and its owner and operator capabilities."""
        pool = cls(config, delegation, token, tickets, events, version)
        return pool, pool.auth.owner_cap, pool.auth.operator_cap

    def _participants(self) -> Iterable[Checkpointable]:
        parts = (
            self,
            self.staked,
            self.validators,
            self.delegation,
            self.token,
            self.tickets,
            self.events,
        )
        return [p for p in parts if isinstance(p, Checkpointable)]

    # =========================================================================
    # Gating
    # =========================================================================

    def _check_version(self) -> None:
        if self.version not in (VERSION - 1, VERSION):
            raise IncompatibleVersion(
                f"Pool version {self.version} not served by code version {VERSION}"
            )

    def _check_active(self) -> None:
        self._check_version()
        if self.paused:
            raise PoolPaused("Pool is paused")

    # =========================================================================
    # Views
    # =========================================================================

    def total_staked(self) -> int:
        """Pending plus all delegated principal, active or not."""
        return self.pending + self.staked.latest()

    def active_stake(self, current_epoch: int) -> int:
        """Delegated principal already active at `current_epoch`."""
        return self.staked.active(current_epoch)

    def net_rewards(self) -> int:
        """Attested rewards that belong to share holders."""
        if self.collected_rewards > self.total_rewards:
            logger.warning(
                f"Protocol share {self.collected_rewards} exceeds attested rewards "
                f"{self.total_rewards}"
            )
            return 0
        return self.total_rewards - self.collected_rewards

    def pool_value(self) -> int:
        """Asset value backing the outstanding shares."""
        value = (
            self.total_staked()
            + self.net_rewards()
            - self.tickets.total_outstanding_supply()
        )
        return max(value, 0)

    def current_ratio(self) -> int:
        return ratio(self.token.total_supply(), self.pool_value())

    def stats(self) -> dict:
        """Get pool statistics."""
        return {
            "version": self.version,
            "paused": self.paused,
            "pending": self.pending,
            "total_staked": self.total_staked(),
            "staked_update_epoch": self.staked.update_epoch,
            "total_rewards": self.total_rewards,
            "collected_rewards": self.collected_rewards,
            "collectable_fee": self.collectable_fee,
            "share_supply": self.token.total_supply(),
            "tickets_outstanding": self.tickets.total_outstanding_supply(),
            "ratio": self.current_ratio(),
            "validators": self.validators.stats(),
        }

    # =========================================================================
    # Staking
    # =========================================================================

    @atomic
    def stake(self, amount: int, ctx: TxContext) -> ShareCoin:
        """
        Deposit `amount` and mint shares for it.

        Args:
            amount: Asset deposited
            ctx: Call context

        Returns:
            Minted shares
        """
        self._check_active()
        require(validate_amount(amount), PreconditionError)
        if amount < self.min_stake:
            raise AmountTooLow(f"Stake {amount} below minimum {self.min_stake}")

        shares = to_shares(self.token.total_supply(), self.pool_value(), amount)
        if shares == 0:
            raise AmountTooLow(f"Stake {amount} mints no shares")

        coin = self.token.mint(shares)
        self.pending += amount
        self._flush(ctx.epoch)

        self.events.emit(Staked(staker=ctx.sender, amount=amount, shares=shares))
        logger.info(f"{ctx.sender} staked {amount} for {shares} shares")
        return coin

    def _flush(self, current_epoch: int) -> None:
        """Delegate the whole pending balance once it reaches the threshold."""
        if self.pending < FLUSH_THRESHOLD:
            return

        validator = self.validators.top_validator()
        amount = self.pending
        record = self.delegation.delegate(amount, validator, current_epoch)
        self.validators.add_stake(validator, record)
        self.staked.record_delta(amount, True, current_epoch)
        self.pending = 0

        self.events.emit(
            Delegated(
                validator=validator,
                amount=amount,
                activation_epoch=self.delegation.activation_epoch(record),
            )
        )
        logger.info(f"Delegated {amount} to {validator}")

    # =========================================================================
    # Redemption
    # =========================================================================

    @atomic
    def mint_ticket(self, shares: ShareCoin, ctx: TxContext) -> RedemptionTicket:
        """
        Burn shares for a redemption ticket.

        Args:
            shares: Shares to redeem (burned whole)
            ctx: Call context

        Returns:
            Ticket unlocking this epoch or the next
        """
        self._check_active()
        return self._mint_ticket(shares, ctx)

    def _mint_ticket(self, shares: ShareCoin, ctx: TxContext) -> RedemptionTicket:
        share_amount = shares.value
        amount = from_shares(self.token.total_supply(), self.pool_value(), share_amount)
        if amount < MIN_TICKET_AMOUNT:
            raise AmountTooLow(f"Redemption of {amount} below {MIN_TICKET_AMOUNT}")

        fee = self._unstake_fee(amount, ctx.epoch)
        unlock_epoch = self._unlock_epoch(amount, ctx.epoch)

        self.token.burn_exact(shares, share_amount)
        ticket = self.tickets.issue(amount, fee, unlock_epoch, ctx.sender, ctx.epoch)

        self.events.emit(
            TicketMinted(
                ticket_id=ticket.ticket_id,
                owner=ctx.sender,
                shares=share_amount,
                amount=amount,
                fee=fee,
                unlock_epoch=unlock_epoch,
            )
        )
        logger.info(
            f"{ctx.sender} redeemed {share_amount} shares for ticket {ticket.ticket_id} "
            f"({amount}, fee {fee}, unlock {unlock_epoch})"
        )
        return ticket

    def _unstake_fee(self, amount: int, current_epoch: int) -> int:
        """Fee charged only while recent redemptions exceed the threshold."""
        in_flight = self.tickets.outstanding_supply_for_2_epoch_window(current_epoch, amount)
        if in_flight > percent_of(self.total_staked(), self.unstake_fee_threshold):
            return percent_of(amount, self.base_unstake_fee)
        return 0

    def _unlock_epoch(self, amount: int, current_epoch: int) -> int:
        outstanding = self.tickets.total_outstanding_supply() + amount
        if outstanding > self.active_stake(current_epoch):
            return current_epoch + 1
        return current_epoch

    @atomic
    def burn_ticket(self, ticket: RedemptionTicket, ctx: TxContext) -> int:
        """
        Settle an unlocked ticket.

        Args:
            ticket: Ticket from mint_ticket()
            ctx: Call context

        Returns:
            Asset paid out (ticket value minus its fee)
        """
        self._check_active()
        return self._burn_ticket(ticket, ctx)

    def _burn_ticket(self, ticket: RedemptionTicket, ctx: TxContext) -> int:
        if not self.tickets.is_unlocked(ticket, ctx.epoch):
            raise TicketLocked(
                f"Ticket {ticket.ticket_id} unlocks at epoch {ticket.unlock_epoch}"
            )

        amount, fee = self.tickets.settle(ticket)
        value, reward_fee = self._remove_stake(
            self.validators.validators_for_withdrawal(), amount, ctx.epoch
        )

        # Sub-unit restakes never reach a validator; they sit in pending
        if value < amount:
            value += self._draw_pending(amount - value)

        payout = amount - fee
        if value < payout:
            raise InsufficientLiquidity(f"Recovered {value}, ticket owes {payout}")

        rest = value - payout
        fee_taken = min(fee, rest)
        rest -= fee_taken
        rest -= self._take_reward_fee(reward_fee, rest)
        self.collectable_fee += fee_taken

        if rest:
            self._restake(rest, ctx.epoch)

        self.events.emit(
            Unstaked(
                ticket_id=ticket.ticket_id,
                owner=ticket.owner,
                amount=amount,
                fee=fee,
                payout=payout,
            )
        )
        logger.info(f"Ticket {ticket.ticket_id} settled: paid {payout}, fee {fee_taken}")
        return payout

    @atomic
    def unstake(self, shares: ShareCoin, ctx: TxContext) -> UnstakeResult:
        """
        Redeem shares, settling at once when the ticket unlocks this epoch.

        Returns:
            UnstakeResult with the payout, or with the still-locked ticket
        """
        self._check_active()
        ticket = self._mint_ticket(shares, ctx)
        if not self.tickets.is_unlocked(ticket, ctx.epoch):
            return UnstakeResult(ticket=ticket)
        return UnstakeResult(ticket=ticket, payout=self._burn_ticket(ticket, ctx))

    def _remove_stake(
        self,
        validators: Sequence[str],
        requested: int,
        current_epoch: int,
    ) -> Tuple[int, int]:
        """
        Withdraw up to `requested` across `validators`, in the given order.

        Returns:
            (value recovered, protocol share of realized rewards)
        """
        value = 0
        reward_fee = 0

        for validator in validators:
            if value >= requested:
                break

            withdrawal = self.validators.remove_stakes(
                validator, requested - value, current_epoch
            )
            if withdrawal.principal == 0:
                continue

            self.staked.record_delta(withdrawal.principal, False, current_epoch)
            reward_fee += percent_of(withdrawal.reward, self.base_reward_fee)
            self._realize_rewards(withdrawal.reward)
            value += withdrawal.value

        return value, reward_fee

    def _draw_pending(self, shortfall: int) -> int:
        taken = min(shortfall, self.pending)
        self.pending -= taken
        if taken:
            logger.debug(f"Covered {taken} of settlement from pending")
        return taken

    def _realize_rewards(self, reward: int) -> None:
        if reward > self.total_rewards:
            logger.warning(
                f"Realized reward {reward} exceeds attested {self.total_rewards}"
            )
            self.total_rewards = 0
            return
        self.total_rewards -= reward

    def _take_reward_fee(self, reward_fee: int, available: int) -> int:
        """Move the protocol's reward share into fees, capped by what it is owed."""
        taken = min(reward_fee, self.collected_rewards, available)
        self.collected_rewards -= taken
        self.collectable_fee += taken
        return taken

    def _restake(self, amount: int, current_epoch: int) -> None:
        self.pending += amount
        self.events.emit(Restaked(amount=amount))
        self._flush(current_epoch)

    # =========================================================================
    # Maintenance
    # =========================================================================

    @atomic
    def rebalance(self, ctx: TxContext) -> int:
        """
        Move all stake off deprioritized validators to the top validator.

        Returns:
            Amount restaked
        """
        self._check_active()

        value, reward_fee = self._remove_stake(
            self.validators.deprioritized_validators(), MAX_U64, ctx.epoch
        )
        rest = value - self._take_reward_fee(reward_fee, value)
        if rest:
            self._restake(rest, ctx.epoch)
        else:
            self._flush(ctx.epoch)

        logger.info(f"Rebalanced {rest} off deprioritized validators")
        return rest

    @atomic
    def sort_validators(self) -> list:
        self._check_version()
        return list(self.validators.sort_validators())

    @atomic
    def update_validators(
        self,
        cap: OperatorCap,
        validators: Sequence[str],
        priorities: Sequence[int],
    ) -> None:
        """Set validator priorities and re-sort."""
        self.auth.require_operator(cap)
        self._check_version()
        require(validate_validator_batch(validators, priorities), PreconditionError)

        self.validators.update_validators(validators, priorities)
        self.validators.sort_validators()

    @atomic
    def update_rewards(self, cap: OperatorCap, value: int, ctx: TxContext) -> None:
        """
        Attest a new cumulative reward total.

        Args:
            cap: Operator capability
            value: New total, strictly above the current one
            ctx: Call context (timestamp gates the update rate)
        """
        self.auth.require_operator(cap)
        self._check_active()
        require(validate_amount(value), PreconditionError)

        if value <= self.total_rewards:
            raise RewardNotInThreshold(
                f"Rewards must grow: {value} <= {self.total_rewards}"
            )
        if ctx.timestamp_ms - self.rewards_update_ts < REWARD_UPDATE_DELAY_MS:
            raise RewardUpdateTooSoon(
                f"Next update allowed at {self.rewards_update_ts + REWARD_UPDATE_DELAY_MS}"
            )

        delta = value - self.total_rewards
        limit = percent_of(self.total_staked(), self.rewards_threshold)
        if delta > limit:
            raise RewardNotInThreshold(f"Reward increase {delta} above limit {limit}")

        protocol_share = percent_of(delta, self.base_reward_fee)
        self.collected_rewards += protocol_share
        self.total_rewards = value
        self.rewards_update_ts = ctx.timestamp_ms

        self.events.emit(RewardsUpdated(total_rewards=value, protocol_share=protocol_share))
        logger.info(f"Rewards updated to {value} (+{delta}, protocol {protocol_share})")

    # =========================================================================
    # Owner Operations
    # =========================================================================

    @atomic
    def collect_fee(self, cap: OwnerCap, to: str) -> int:
        """Sweep collected fees to `to`."""
        self.auth.require_owner(cap)
        self._check_version()

        amount = self.collectable_fee
        self.collectable_fee = 0

        self.events.emit(FeeCollected(to=to, amount=amount))
        logger.info(f"Collected {amount} fees to {to}")
        return amount

    @atomic
    def set_pause(self, cap: OwnerCap, paused: bool) -> None:
        self.auth.require_owner(cap)
        self.paused = paused
        self.events.emit(Paused(paused=paused))
        logger.warning(f"Pool {'paused' if paused else 'unpaused'}")

    @atomic
    def migrate(self, cap: OwnerCap) -> int:
        """Advance the state version by one step."""
        self.auth.require_owner(cap)
        if self.version >= VERSION:
            raise IncompatibleVersion(f"Pool already at version {self.version}")

        previous = self.version
        self.version += 1
        self.events.emit(Migrated(from_version=previous, to_version=self.version))
        logger.info(f"Migrated pool from version {previous} to {self.version}")
        return self.version

    @atomic
    def change_min_stake(self, cap: OwnerCap, value: int) -> None:
        self.auth.require_owner(cap)
        self._check_version()
        if value <= MIN_STAKE_FLOOR:
            raise LimitTooLow(f"min_stake must be > {MIN_STAKE_FLOOR}")
        self._set_param("min_stake", value)

    @atomic
    def change_base_unstake_fee(self, cap: OwnerCap, value: int) -> None:
        self.auth.require_owner(cap)
        self._check_version()
        self._set_percent("base_unstake_fee", value)

    @atomic
    def change_unstake_fee_threshold(self, cap: OwnerCap, value: int) -> None:
        self.auth.require_owner(cap)
        self._check_version()
        self._set_percent("unstake_fee_threshold", value)

    @atomic
    def change_base_reward_fee(self, cap: OwnerCap, value: int) -> None:
        self.auth.require_owner(cap)
        self._check_version()
        self._set_percent("base_reward_fee", value)

    @atomic
    def update_rewards_threshold(self, cap: OwnerCap, value: int) -> None:
        self.auth.require_owner(cap)
        self._check_version()
        if value == 0:
            raise LimitTooLow("rewards_threshold must be positive")
        self._set_percent("rewards_threshold", value)

    def _set_percent(self, param: str, value: int) -> None:
        if value > MAX_PERCENT:
            raise PercentTooBig(f"{param} {value} exceeds {MAX_PERCENT}")
        self._set_param(param, value)

    def _set_param(self, param: str, value: int) -> None:
        require(validate_amount(value, param), PreconditionError)
        setattr(self, param, value)
        self.events.emit(ParamsChanged(param=param, value=value))
        logger.info(f"{param} set to {value}")


__all__ = [
    "PoolAccounting",
    "UnstakeResult",
    "VERSION",
    "REWARD_UPDATE_DELAY_MS",
    "FLUSH_THRESHOLD",
    "MIN_TICKET_AMOUNT",
]
