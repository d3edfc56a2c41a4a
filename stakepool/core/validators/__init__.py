"""Validator priorities and per-validator stake vaults"""
from stakepool.core.validators.vault import Vault
from stakepool.core.validators.ledger import (
    ValidatorLedger,
    Withdrawal,
    MAX_VALIDATORS_PER_UPDATE,
    MIN_SPLIT_AMOUNT,
)

__all__ = [
    "Vault",
    "ValidatorLedger",
    "Withdrawal",
    "MAX_VALIDATORS_PER_UPDATE",
    "MIN_SPLIT_AMOUNT",
]
