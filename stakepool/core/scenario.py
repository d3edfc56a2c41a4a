"""
Scenario runner - replay a scripted sequence of pool operations.

A scenario is a JSON-compatible dict:

    {
        "validators": {"0xa1": 100, "0xb2": 50},
        "config": {"base_reward_fee": 1000},
        "steps": [
            {"op": "stake", "amount": 10000000000, "sender": "0xalice"},
            {"op": "advance_epoch"},
            {"op": "unstake", "sender": "0xalice"}
        ]
    }

Each sender keeps a wallet of share coins and unsettled tickets.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from stakepool.core.config import PoolConfig
from stakepool.core.external import RedemptionTicket, ShareCoin
from stakepool.core.harness import DEFAULT_SENDER, LocalPool
from stakepool.utils.logger import get_logger
from stakepool.utils.validation import validate_scenario

logger = get_logger("scenario")


@dataclass
class Wallet:
    """Shares and tickets held by one sender."""
    shares: Optional[ShareCoin] = None
    tickets: List[RedemptionTicket] = field(default_factory=list)
    received: int = 0

    def deposit(self, coin: ShareCoin) -> None:
        if self.shares is None or self.shares.spent:
            self.shares = coin
        else:
            self.shares.join(coin)

    def share_balance(self) -> int:
        if self.shares is None or self.shares.spent:
            return 0
        return self.shares.value


@dataclass
class ScenarioResult:
    """Outcome of a scenario run."""
    local: LocalPool
    wallets: Dict[str, Wallet]

    def events(self) -> List[dict]:
        return [e.model_dump() for e in self.local.events]

    def summary(self) -> dict:
        return {
            "pool": self.local.pool.stats(),
            "wallets": {
                sender: {
                    "shares": w.share_balance(),
                    "open_tickets": len(w.tickets),
                    "received": w.received,
                }
                for sender, w in self.wallets.items()
            },
        }


class ScenarioRunner:
    """Executes scenario steps against a LocalPool."""

    def __init__(self, local: LocalPool):
        self.local = local
        self.wallets: Dict[str, Wallet] = {}

    def wallet(self, sender: str) -> Wallet:
        return self.wallets.setdefault(sender, Wallet())

    def run(self, steps: List[dict]) -> ScenarioResult:
        for index, step in enumerate(steps):
            logger.debug(f"Step {index}: {step}")
            getattr(self, f"_op_{step['op']}")(step)
        return ScenarioResult(local=self.local, wallets=self.wallets)

    # Operations

    def _op_stake(self, step: dict) -> None:
        sender = step.get("sender", DEFAULT_SENDER)
        coin = self.local.stake(step["amount"], sender)
        self.wallet(sender).deposit(coin)

    def _op_unstake(self, step: dict) -> None:
        sender = step.get("sender", DEFAULT_SENDER)
        wallet = self.wallet(sender)
        if wallet.share_balance() == 0:
            raise ValueError(f"{sender} holds no shares")

        coin = wallet.shares
        if "amount" in step and step["amount"] < coin.value:
            coin = coin.split(step["amount"])

        result = self.local.unstake(coin, sender)
        if result.settled:
            wallet.received += result.payout
        else:
            wallet.tickets.append(result.ticket)

    def _op_burn_ticket(self, step: dict) -> None:
        sender = step.get("sender", DEFAULT_SENDER)
        wallet = self.wallet(sender)
        epoch = self.local.clock.epoch
        still_locked = []
        for ticket in wallet.tickets:
            if ticket.unlock_epoch > epoch:
                still_locked.append(ticket)
                continue
            wallet.received += self.local.burn_ticket(ticket, sender)
        wallet.tickets = still_locked

    def _op_advance_epoch(self, step: dict) -> None:
        self.local.next_epoch(step.get("epochs", 1))

    def _op_advance_time(self, step: dict) -> None:
        self.local.advance_time(step["ms"])

    def _op_distribute_rewards(self, step: dict) -> None:
        self.local.distribute_rewards(step["validator"], step["amount"])

    def _op_update_rewards(self, step: dict) -> None:
        self.local.update_rewards(step["total"])

    def _op_update_validators(self, step: dict) -> None:
        self.local.set_priorities(step["validators"])

    def _op_rebalance(self, step: dict) -> None:
        self.local.rebalance()

    def _op_collect_fee(self, step: dict) -> None:
        self.local.collect_fee(step.get("to", "0xtreasury"))

    def _op_set_pause(self, step: dict) -> None:
        self.local.set_pause(bool(step.get("paused", True)))


def run_scenario(data: dict, config: Optional[PoolConfig] = None) -> ScenarioResult:
    """
    Validate and run a scenario document.

    Args:
        data: Scenario dict (see module docstring)
        config: Base configuration; the scenario's "config" overrides it

    Returns:
        ScenarioResult
    """
    valid, err = validate_scenario(data)
    if not valid:
        raise ValueError(f"Invalid scenario: {err}")

    if data.get("config"):
        base = config.to_dict() if config else {}
        base.update(data["config"])
        config = PoolConfig(**base)

    local = LocalPool.create(
        validators=data["validators"],
        config=config,
        epoch=data.get("epoch", 0),
        timestamp_ms=data.get("timestamp_ms", 0),
    )
    return ScenarioRunner(local).run(data.get("steps", []))
