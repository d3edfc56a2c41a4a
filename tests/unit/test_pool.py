"""
Tests for PoolAccounting.

Tests cover:
1. Staking, share minting and delegation flush
2. Redemption tickets: fees, unlock epochs, settlement
3. Reward attestation and the protocol share
4. Rebalancing off deprioritized validators
5. Admin operations, capabilities, pause and versioning
6. All-or-nothing execution
"""

import threading

import pytest

from stakepool.core.config import PoolConfig
from stakepool.core.errors import (
    AmountTooLow,
    IncompatibleVersion,
    InsufficientLiquidity,
    LimitTooLow,
    NoActiveValidators,
    PercentTooBig,
    PoolPaused,
    PreconditionError,
    RewardNotInThreshold,
    RewardUpdateTooSoon,
    TicketLocked,
    TicketNotFound,
    Unauthorized,
)
from stakepool.core.events import (
    Delegated,
    FeeCollected,
    Migrated,
    ParamsChanged,
    Restaked,
    RewardsUpdated,
    Staked,
    TicketMinted,
    Unstaked,
    ValidatorRemoved,
)
from stakepool.core.external import LocalDelegation
from stakepool.core.harness import LocalPool
from stakepool.core.math import ONE_UNIT, RATIO_PRECISION
from stakepool.core.pool import REWARD_UPDATE_DELAY_MS, VERSION, PoolAccounting

UNIT = ONE_UNIT


@pytest.fixture
def local():
    return LocalPool.create(validators={"0xa1": 100})


class LossyDelegation(LocalDelegation):
    """Returns half of every withdrawn position."""

    def withdraw(self, record):
        return super().withdraw(record) // 2


# =============================================================================
# Staking
# =============================================================================


class TestStake:
    """Tests for stake()."""

    def test_bootstrap_ratio(self, local):
        assert local.pool.current_ratio() == RATIO_PRECISION

        coin = local.stake(10 * UNIT)

        assert coin.value == 10 * UNIT
        assert local.token.total_supply() == 10 * UNIT

    def test_flush_delegates_to_top_validator(self, local):
        local.stake(10 * UNIT)
        pool = local.pool

        assert pool.pending == 0
        assert pool.total_staked() == 10 * UNIT
        assert pool.validators.total_stake("0xa1") == 10 * UNIT
        assert pool.active_stake(0) == 0
        assert pool.active_stake(1) == 10 * UNIT

    def test_events_order(self, local):
        start = len(local.events)
        local.stake(10 * UNIT, sender="0xalice")

        emitted = local.events.since(start)
        assert [type(e) for e in emitted] == [Delegated, Staked]
        assert emitted[0].activation_epoch == 1
        assert emitted[1].staker == "0xalice"

    def test_below_minimum(self, local):
        with pytest.raises(AmountTooLow):
            local.stake(UNIT // 2)

    def test_rejects_non_integer(self, local):
        with pytest.raises(PreconditionError):
            local.stake(1.5)

    def test_small_stake_stays_pending(self, local):
        local.pool.change_min_stake(local.owner_cap, 2_000)
        local.stake(5_000)

        assert local.pool.pending == 5_000
        assert local.pool.staked.latest() == 0
        assert local.events.of_type(Delegated) == []

    def test_no_validators_rolls_back(self):
        local = LocalPool.create()
        with pytest.raises(NoActiveValidators):
            local.stake(UNIT)

        assert local.token.total_supply() == 0
        assert local.pool.pending == 0
        assert len(local.events) == 0

    def test_later_staker_pays_for_accrued_rewards(self, local):
        local.stake(100 * UNIT)
        local.next_epoch()
        local.distribute_rewards("0xa1", UNIT)
        local.advance_time(REWARD_UPDATE_DELAY_MS)
        local.update_rewards(UNIT)

        coin = local.stake(10 * UNIT)
        assert coin.value < 10 * UNIT

    def test_concurrent_stakes(self, local):
        threads = [threading.Thread(target=local.stake, args=(UNIT,)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert local.token.total_supply() == 8 * UNIT
        assert local.pool.total_staked() == 8 * UNIT


# =============================================================================
# Redemption
# =============================================================================


class TestRedemption:
    """Tests for mint_ticket, burn_ticket and unstake."""

    def test_partial_unstake_splits_record(self, local):
        coin = local.stake(10 * UNIT)
        local.next_epoch()

        result = local.unstake(coin.split(4 * UNIT))

        assert result.settled
        assert result.ticket.fee == 2_000_000
        assert result.ticket.unlock_epoch == 1
        assert result.payout == 4 * UNIT - 2_000_000

        vault = local.pool.validators.vault_of("0xa1")
        assert (vault.gap, vault.length, vault.total_staked) == (0, 1, 6 * UNIT)
        assert vault.front().principal == 6 * UNIT
        assert local.pool.collectable_fee == 2_000_000
        assert local.pool.staked.latest() == 6 * UNIT
        assert local.pool.current_ratio() == RATIO_PRECISION

    def test_ticket_locked_until_stake_active(self, local):
        coin = local.stake(10 * UNIT)

        result = local.unstake(coin)
        ticket = result.ticket

        assert not result.settled
        assert ticket.unlock_epoch == 1
        assert ticket.fee == 5_000_000
        with pytest.raises(TicketLocked):
            local.burn_ticket(ticket)
        assert not ticket.settled

        local.next_epoch()
        assert local.burn_ticket(ticket) == 10 * UNIT - 5_000_000

        vault = local.pool.validators.vault_of("0xa1")
        assert (vault.gap, vault.length, vault.total_staked) == (0, 0, 0)
        assert local.token.total_supply() == 0
        assert local.pool.collectable_fee == 5_000_000

    def test_no_fee_below_threshold(self, local):
        coin = local.stake(2000 * UNIT)
        ticket = local.mint_ticket(coin.split(UNIT))
        assert ticket.fee == 0

    def test_ticket_event(self, local):
        coin = local.stake(10 * UNIT, sender="0xbob")
        ticket = local.mint_ticket(coin, sender="0xbob")

        event = local.events.of_type(TicketMinted)[-1]
        assert event.ticket_id == ticket.ticket_id
        assert event.owner == "0xbob"
        assert event.shares == 10 * UNIT
        assert event.amount == 10 * UNIT

    def test_tickets_reduce_pool_value(self, local):
        coin = local.stake(10 * UNIT)
        local.mint_ticket(coin.split(4 * UNIT))

        assert local.pool.pool_value() == 6 * UNIT
        assert local.pool.current_ratio() == RATIO_PRECISION

    def test_redemption_below_minimum_rolls_back(self, local):
        coin = local.stake(10 * UNIT)
        small = coin.split(UNIT // 2)

        with pytest.raises(AmountTooLow):
            local.mint_ticket(small)

        assert not small.spent
        assert local.token.total_supply() == 10 * UNIT

    def test_burn_twice(self, local):
        coin = local.stake(10 * UNIT)
        local.next_epoch()
        result = local.unstake(coin.split(2 * UNIT))

        with pytest.raises(TicketNotFound):
            local.burn_ticket(result.ticket)

    def test_overdraw_is_restaked(self, local):
        local.stake(UNIT + UNIT // 2)
        local.set_priorities({"0xa1": 10, "0xb2": 50})
        coin = local.stake(10 * UNIT)
        local.next_epoch()

        result = local.unstake(coin.split(2 * UNIT))

        assert result.ticket.fee == 1_000_000
        assert result.payout == 2 * UNIT - 1_000_000
        assert local.events.of_type(Restaked)[-1].amount == 9 * UNIT + UNIT // 2
        assert local.pool.validators.total_stake("0xb2") == 9 * UNIT + UNIT // 2
        assert local.pool.validators.total_stake("0xa1") == 0
        assert local.pool.active_stake(1) == 0
        assert local.pool.staked.latest() == 9 * UNIT + UNIT // 2
        assert local.pool.collectable_fee == 1_000_000

    def test_unattested_reward_is_clamped(self, local):
        coin = local.stake(10 * UNIT)
        local.next_epoch()
        local.distribute_rewards("0xa1", UNIT)

        result = local.unstake(coin)

        assert result.settled
        assert local.pool.total_rewards == 0
        assert local.events.of_type(Restaked)[-1].amount == UNIT
        assert local.pool.staked.latest() == UNIT

    def test_redeeming_all_shares_never_exceeds_backing(self, local):
        """Uneven supply and value still price the whole supply at the pool value."""
        coin = local.stake(1_989_944_992_391_396_102)
        local.advance_time(REWARD_UPDATE_DELAY_MS)
        local.update_rewards(19_000_000_000_000_007)
        backing = local.pool.pool_value()
        assert backing == 2_007_044_992_391_396_109

        ticket = local.mint_ticket(coin)

        assert ticket.value == backing
        assert local.pool.pool_value() == 0

    def test_pending_covers_settlement_shortfall(self, local):
        coin = local.stake(10 * UNIT)
        local.pool.change_min_stake(local.owner_cap, 2_000)
        coin.join(local.stake(UNIT // 2))
        local.next_epoch()

        result = local.unstake(coin)
        assert result.ticket.unlock_epoch == 2

        local.next_epoch()
        payout = local.burn_ticket(result.ticket)

        assert payout == 10 * UNIT + UNIT // 2 - 5_250_000
        assert local.pool.pending == 0
        assert local.pool.collectable_fee == 5_250_000

    def test_insufficient_liquidity_rolls_back(self):
        pool, _, operator_cap = PoolAccounting.create(delegation=LossyDelegation())
        local = LocalPool(
            pool=pool,
            owner_cap=pool.auth.owner_cap,
            operator_cap=operator_cap,
            delegation=pool.delegation,
            token=pool.token,
            tickets=pool.tickets,
            events=pool.events,
        )
        local.set_priorities({"0xa1": 1})
        coin = local.stake(10 * UNIT)
        local.next_epoch()
        events_before = len(local.events)

        with pytest.raises(InsufficientLiquidity):
            local.unstake(coin)

        assert not coin.spent
        assert coin.value == 10 * UNIT
        assert local.token.total_supply() == 10 * UNIT
        assert local.tickets.total_outstanding_supply() == 0
        assert local.pool.staked.latest() == 10 * UNIT
        assert local.pool.validators.vault_of("0xa1").total_staked == 10 * UNIT
        assert len(local.events) == events_before


# =============================================================================
# Rewards
# =============================================================================


class TestRewards:
    """Tests for update_rewards and reward fees."""

    def _staked(self, local, amount=100 * UNIT):
        coin = local.stake(amount)
        local.next_epoch()
        local.advance_time(REWARD_UPDATE_DELAY_MS)
        return coin

    def test_protocol_share(self, local):
        self._staked(local)
        local.update_rewards(UNIT)

        assert local.pool.total_rewards == UNIT
        assert local.pool.collected_rewards == 100_000_000
        assert local.pool.rewards_update_ts == REWARD_UPDATE_DELAY_MS
        event = local.events.of_type(RewardsUpdated)[-1]
        assert event.protocol_share == 100_000_000

    def test_too_soon(self, local):
        local.stake(100 * UNIT)
        with pytest.raises(RewardUpdateTooSoon):
            local.update_rewards(UNIT)

    def test_second_update_waits(self, local):
        self._staked(local)
        local.update_rewards(UNIT // 2)
        local.advance_time(REWARD_UPDATE_DELAY_MS - 1)
        with pytest.raises(RewardUpdateTooSoon):
            local.update_rewards(UNIT)

        local.advance_time(1)
        local.update_rewards(UNIT)
        assert local.pool.total_rewards == UNIT

    def test_must_increase(self, local):
        self._staked(local)
        local.update_rewards(UNIT)
        local.advance_time(REWARD_UPDATE_DELAY_MS)
        with pytest.raises(RewardNotInThreshold):
            local.update_rewards(UNIT)

    def test_growth_threshold(self, local):
        self._staked(local)
        with pytest.raises(RewardNotInThreshold):
            local.update_rewards(UNIT + 1)

    def test_operator_only(self, local):
        self._staked(local)
        with pytest.raises(Unauthorized):
            local.pool.update_rewards(local.owner_cap, UNIT, local.ctx())

    def test_reward_fee_collected_on_redemption(self, local):
        coin = self._staked(local)
        local.distribute_rewards("0xa1", UNIT)
        local.update_rewards(UNIT)

        result = local.unstake(coin)
        ticket = result.ticket
        assert not result.settled
        assert ticket.value == 100_900_000_000
        assert ticket.unlock_epoch == 2

        local.next_epoch()
        local.burn_ticket(ticket)

        assert local.pool.collectable_fee == ticket.fee + 100_000_000
        assert local.pool.total_rewards == 0
        assert local.pool.collected_rewards == 0

    def test_net_rewards_saturate(self, local):
        local.pool.total_rewards = 10
        local.pool.collected_rewards = 20
        assert local.pool.net_rewards() == 0


# =============================================================================
# Rebalance
# =============================================================================


class TestRebalance:
    """Tests for rebalance()."""

    def test_nothing_to_move(self, local):
        local.stake(10 * UNIT)
        assert local.rebalance() == 0

    def test_moves_deprioritized_stake(self, local):
        local.stake(5 * UNIT)
        local.next_epoch()
        local.set_priorities({"0xa1": 0, "0xb2": 50})

        moved = local.rebalance()

        ledger = local.pool.validators
        assert moved == 5 * UNIT
        assert "0xa1" not in ledger.priorities
        assert ledger.sorted_validators == ["0xb2"]
        assert ledger.total_stake("0xb2") == 5 * UNIT
        assert local.events.of_type(ValidatorRemoved)[-1].validator == "0xa1"
        assert local.pool.staked.latest() == 5 * UNIT

    def test_pending_stake_not_moved(self, local):
        local.stake(5 * UNIT)
        local.set_priorities({"0xa1": 0, "0xb2": 50})

        assert local.rebalance() == 0
        assert local.pool.validators.total_stake("0xa1") == 5 * UNIT


# =============================================================================
# Administration
# =============================================================================


class TestAdmin:
    """Tests for owner and operator operations."""

    def test_collect_fee(self, local):
        coin = local.stake(10 * UNIT)
        local.next_epoch()
        local.unstake(coin.split(4 * UNIT))

        assert local.collect_fee("0xtreasury") == 2_000_000
        assert local.pool.collectable_fee == 0
        assert local.events.last() == FeeCollected(to="0xtreasury", amount=2_000_000)

    def test_collect_fee_needs_owner(self, local):
        with pytest.raises(Unauthorized):
            local.pool.collect_fee(local.operator_cap, "0xtreasury")

    def test_foreign_capability(self, local):
        other = LocalPool.create()
        with pytest.raises(Unauthorized):
            local.pool.set_pause(other.owner_cap, True)

    def test_update_validators_needs_operator(self, local):
        with pytest.raises(Unauthorized):
            local.pool.update_validators(local.owner_cap, ["0xb2"], [1])

    def test_update_validators_rejects_bad_id(self, local):
        with pytest.raises(PreconditionError):
            local.pool.update_validators(local.operator_cap, ["b2"], [1])

    def test_percent_params(self, local):
        local.pool.change_base_unstake_fee(local.owner_cap, 50)
        local.pool.change_unstake_fee_threshold(local.owner_cap, 200)
        local.pool.change_base_reward_fee(local.owner_cap, 500)

        assert local.pool.base_unstake_fee == 50
        assert local.pool.unstake_fee_threshold == 200
        assert local.pool.base_reward_fee == 500
        assert local.events.last() == ParamsChanged(param="base_reward_fee", value=500)

    @pytest.mark.parametrize(
        "method",
        ["change_base_unstake_fee", "change_unstake_fee_threshold", "change_base_reward_fee"],
    )
    def test_percent_too_big(self, local, method):
        with pytest.raises(PercentTooBig):
            getattr(local.pool, method)(local.owner_cap, 10_001)

    def test_min_stake_floor(self, local):
        with pytest.raises(LimitTooLow):
            local.pool.change_min_stake(local.owner_cap, 1_000)
        local.pool.change_min_stake(local.owner_cap, 1_001)
        assert local.pool.min_stake == 1_001

    def test_rewards_threshold(self, local):
        with pytest.raises(LimitTooLow):
            local.pool.update_rewards_threshold(local.owner_cap, 0)
        with pytest.raises(PercentTooBig):
            local.pool.update_rewards_threshold(local.owner_cap, 10_001)
        local.pool.update_rewards_threshold(local.owner_cap, 300)
        assert local.pool.rewards_threshold == 300

    def test_config_defaults_applied(self):
        config = PoolConfig(base_unstake_fee=7, base_reward_fee=2_000)
        local = LocalPool.create(validators={"0xa1": 1}, config=config)
        assert local.pool.base_unstake_fee == 7
        assert local.pool.base_reward_fee == 2_000


class TestPause:
    """Tests for set_pause gating."""

    def test_paused_blocks_user_operations(self, local):
        coin = local.stake(10 * UNIT)
        local.set_pause(True)

        with pytest.raises(PoolPaused):
            local.stake(UNIT)
        with pytest.raises(PoolPaused):
            local.mint_ticket(coin)
        with pytest.raises(PoolPaused):
            local.rebalance()
        with pytest.raises(PoolPaused):
            local.update_rewards(UNIT)
        assert not coin.spent

    def test_admin_works_while_paused(self, local):
        local.set_pause(True)
        local.collect_fee("0xtreasury")
        local.pool.change_base_reward_fee(local.owner_cap, 100)

    def test_unpause(self, local):
        local.set_pause(True)
        local.set_pause(False)
        local.stake(UNIT)
        assert local.events.names().count("paused") == 2


class TestVersioning:
    """Tests for version gating and migrate."""

    def test_previous_version_is_served(self):
        local = LocalPool.create(validators={"0xa1": 1}, version=VERSION - 1)
        local.stake(UNIT)

    def test_migrate(self):
        local = LocalPool.create(validators={"0xa1": 1}, version=VERSION - 1)
        assert local.pool.migrate(local.owner_cap) == VERSION
        assert local.events.last() == Migrated(from_version=VERSION - 1, to_version=VERSION)

        with pytest.raises(IncompatibleVersion):
            local.pool.migrate(local.owner_cap)

    def test_stale_version_rejected(self):
        local = LocalPool.create(version=VERSION - 2)
        with pytest.raises(IncompatibleVersion):
            local.stake(UNIT)
        with pytest.raises(IncompatibleVersion):
            local.collect_fee("0xtreasury")

        local.set_pause(False)
        local.pool.migrate(local.owner_cap)
        local.set_priorities({"0xa1": 1})
        local.stake(UNIT)

    def test_stats(self, local):
        local.stake(10 * UNIT)
        stats = local.pool.stats()
        assert stats["version"] == VERSION
        assert stats["share_supply"] == 10 * UNIT
        assert stats["validators"]["top_validator"] == "0xa1"


class TestUnstakeEvents:
    """Settlement emits an Unstaked event per ticket."""

    def test_unstaked_event(self, local):
        coin = local.stake(10 * UNIT, sender="0xcarol")
        local.next_epoch()
        result = local.unstake(coin.split(4 * UNIT), sender="0xcarol")

        event = local.events.of_type(Unstaked)[-1]
        assert event.ticket_id == result.ticket.ticket_id
        assert event.owner == "0xcarol"
        assert event.payout == result.payout
