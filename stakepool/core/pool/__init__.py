"""Pool-level accounting: deposits, redemptions, rewards and fees"""
from stakepool.core.pool.epoch_ledger import StakedLedger
from stakepool.core.pool.accounting import (
    PoolAccounting,
    UnstakeResult,
    VERSION,
    REWARD_UPDATE_DELAY_MS,
    FLUSH_THRESHOLD,
    MIN_TICKET_AMOUNT,
)

__all__ = [
    "StakedLedger",
    "PoolAccounting",
    "UnstakeResult",
    "VERSION",
    "REWARD_UPDATE_DELAY_MS",
    "FLUSH_THRESHOLD",
    "MIN_TICKET_AMOUNT",
]
