"""
Validator Ledger - stake placement and removal across validators.

This module provides:
- Validator priorities and the derived withdrawal/delegation order
- One FIFO vault of stake records per validator
- Partial withdrawal by splitting the front record
- Pruning of drained, deprioritized validators

Ordering: validators are sorted by descending priority. Priority 0 marks a
validator as deprioritized; those are kept as a separate tail tier and are
the first to be drained on withdrawal.
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Sequence

from stakepool.core.checkpoint import Checkpointable
from stakepool.core.errors import (
    ArgumentLengthMismatch,
    BadVaultState,
    NoActiveValidators,
    TooManyValidators,
    ValidatorNotFound,
)
from stakepool.core.events import (
    EventLog,
    ValidatorPriorityUpdated,
    ValidatorRemoved,
    ValidatorsSorted,
)
from stakepool.core.external.delegation import DelegationSystem, StakeRecord
from stakepool.core.math import ONE_UNIT
from stakepool.core.validators.vault import Vault
from stakepool.utils.logger import get_logger

logger = get_logger("validators")


# =============================================================================
# Constants
# =============================================================================

# Priority updates per call must stay below this
MAX_VALIDATORS_PER_UPDATE = 16

# Neither side of a split may fall below this
MIN_SPLIT_AMOUNT = ONE_UNIT


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class Withdrawal:
    """
    Result of removing stake from one validator.

    Attributes:
        value: Settled value received (principal plus rewards)
        principal: Principal removed from the vault
        reward: Realized rewards on the removed records
    """
    value: int = 0
    principal: int = 0
    reward: int = 0

    def add(self, value: int, principal: int) -> None:
        self.value += value
        self.principal += principal
        # A record that settles below its principal contributes no reward
        self.reward += max(0, value - principal)


# =============================================================================
# Validator Ledger
# =============================================================================


class ValidatorLedger(Checkpointable):
    """
    Per-validator vaults plus validator priorities.

    Attributes:
        vaults: Validator -> Vault (validators that hold or held stake)
        priorities: Validator -> priority, 0 = deprioritized
        sorted_validators: Priority order, head is the delegation target
    """

    _checkpoint_exclude = ("delegation", "events")

    def __init__(self, delegation: DelegationSystem, events: EventLog):
        self.delegation = delegation
        self.events = events

        self.vaults: Dict[str, Vault] = {}
        self.priorities: Dict[str, int] = {}
        self.sorted_validators: List[str] = []

    # =========================================================================
    # Lookup
    # =========================================================================

    def top_validator(self) -> str:
        """Highest-priority validator, the target for new delegations."""
        if not self.sorted_validators:
            raise NoActiveValidators("No validators registered")
        return self.sorted_validators[0]

    def deprioritized_validators(self) -> List[str]:
        """Validators with priority 0, in sorted order."""
        if not self.sorted_validators:
            raise NoActiveValidators("No validators registered")
        return [v for v in self.sorted_validators if self.priority_of(v) == 0]

    def validators_for_withdrawal(self) -> List[str]:
        """Withdrawal order: tail of the sorted list first."""
        return list(reversed(self.sorted_validators))

    def total_stake(self, validator: str) -> int:
        vault = self.vaults.get(validator)
        return vault.total_staked if vault else 0

    def vault_of(self, validator: str) -> Vault:
        vault = self.vaults.get(validator)
        if vault is None:
            raise ValidatorNotFound(f"No vault for {validator}")
        return vault

    def priority_of(self, validator: str) -> int:
        return self.priorities.get(validator, 0)

    # =========================================================================
    # Priorities
    # =========================================================================

    def update_validators(self, validators: Sequence[str], priorities: Sequence[int]) -> None:
        """
        Insert or overwrite priorities for a batch of validators.

        Call sort_validators() afterwards for the new order to take effect.

        Args:
            validators: Validator ids
            priorities: Priority for each id, 0 = deprioritized
        """
        if len(validators) >= MAX_VALIDATORS_PER_UPDATE:
            raise TooManyValidators(
                f"{len(validators)} validators, limit is {MAX_VALIDATORS_PER_UPDATE - 1}"
            )
        if len(validators) != len(priorities):
            raise ArgumentLengthMismatch(
                f"{len(validators)} validators but {len(priorities)} priorities"
            )

        for validator, priority in zip(validators, priorities):
            self.priorities[validator] = priority
            self.events.emit(ValidatorPriorityUpdated(validator=validator, priority=priority))
            logger.info(f"Validator {validator} priority set to {priority}")

    def sort_validators(self) -> List[str]:
        """
        Recompute sorted_validators.

        Stable insertion sort by descending priority: each entry goes just
        before the first entry with strictly lower priority. Priority-0
        entries skip the scan and are appended at the tail in map order.
        """
        ordered: List[str] = []
        inactive: List[str] = []

        for validator, priority in self.priorities.items():
            if priority == 0:
                inactive.append(validator)
                continue

            index = len(ordered)
            for i, other in enumerate(ordered):
                if self.priorities[other] < priority:
                    index = i
                    break
            ordered.insert(index, validator)

        self.sorted_validators = ordered + inactive
        self.events.emit(ValidatorsSorted(validators=list(self.sorted_validators)))
        return self.sorted_validators

    # =========================================================================
    # Stake
    # =========================================================================

    def add_stake(self, validator: str, record: StakeRecord) -> None:
        """Append a record to the validator's vault, creating it if needed."""
        vault = self.vaults.get(validator)
        if vault is None:
            vault = Vault()
            self.vaults[validator] = vault

        slot = vault.push(record)
        logger.debug(f"Added {record.principal} to {validator} at slot {slot}")

    def remove_stakes(
        self,
        validator: str,
        requested: int,
        current_epoch: int,
    ) -> Withdrawal:
        """
        Withdraw up to `requested` in settled value from a validator.

        Records are consumed from the front. The first record that is not yet
        active stops the scan, even if a later one is. When the outstanding
        remainder is at least one unit and smaller than the front record, and
        the record keeps at least one unit after the split, only the remainder
        is split off; otherwise whole records are withdrawn, which may
        overdraw the request.

        Args:
            validator: Validator to withdraw from
            requested: Settled value wanted
            current_epoch: Current epoch

        Returns:
            Withdrawal totals
        """
        result = Withdrawal()
        vault = self.vaults.get(validator)
        if vault is None:
            return result

        while not vault.is_empty() and result.value < requested:
            record = vault.front()
            if self.delegation.activation_epoch(record) > current_epoch:
                break

            principal = self.delegation.principal_of(record)
            remainder = requested - result.value
            if (
                MIN_SPLIT_AMOUNT <= remainder < principal
                and principal - remainder >= MIN_SPLIT_AMOUNT
            ):
                split_off = self.delegation.split(record, remainder)
                kept = replace(record, principal=self.delegation.principal_of(record))
                vault.split_front(kept, remainder)
                result.add(self.delegation.withdraw(split_off), remainder)
                logger.debug(
                    f"Split {remainder} from record {record.record_id} of {validator}, "
                    f"{kept.principal} kept"
                )
                break

            vault.pop_front()
            result.add(self.delegation.withdraw(record), principal)
            logger.debug(f"Withdrew record {record.record_id} of {validator}")

        if vault.is_empty():
            self._on_vault_drained(validator, vault)

        if result.principal:
            logger.info(
                f"Removed {result.principal} principal ({result.value} settled) from {validator}"
            )
        return result

    def _on_vault_drained(self, validator: str, vault: Vault) -> None:
        if vault.total_staked != 0:
            raise BadVaultState(
                f"Vault of {validator} drained with {vault.total_staked} cached stake"
            )

        if validator not in self.priorities:
            raise ValidatorNotFound(f"{validator} missing from priorities")

        if self.priority_of(validator) != 0:
            vault.reset()
            return

        del self.vaults[validator]
        del self.priorities[validator]

        try:
            index = self.sorted_validators.index(validator)
        except ValueError:
            raise ValidatorNotFound(f"{validator} missing from sorted validators") from None
        # Swap-remove: only the zero tier can be reordered by this
        self.sorted_validators[index] = self.sorted_validators[-1]
        self.sorted_validators.pop()

        self.events.emit(ValidatorRemoved(validator=validator))
        logger.info(f"Removed drained validator {validator}")

    # =========================================================================
    # Statistics
    # =========================================================================

    def total_delegated(self) -> int:
        return sum(v.total_staked for v in self.vaults.values())

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "validators": len(self.priorities),
            "deprioritized": sum(1 for p in self.priorities.values() if p == 0),
            "vaults": len(self.vaults),
            "records": sum(v.length - v.gap for v in self.vaults.values()),
            "total_delegated": self.total_delegated(),
            "top_validator": self.sorted_validators[0] if self.sorted_validators else None,
        }


__all__ = [
    "ValidatorLedger",
    "Withdrawal",
    "MAX_VALIDATORS_PER_UPDATE",
    "MIN_SPLIT_AMOUNT",
]
