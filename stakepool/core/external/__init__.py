"""Contracts of the pool's external collaborators, with in-memory implementations"""
from stakepool.core.external.delegation import StakeRecord, DelegationSystem, LocalDelegation
from stakepool.core.external.token import ShareCoin, ShareLedger, ShareToken
from stakepool.core.external.tickets import RedemptionTicket, TicketQueue, LocalTicketQueue

__all__ = [
    "StakeRecord",
    "DelegationSystem",
    "LocalDelegation",
    "ShareCoin",
    "ShareLedger",
    "ShareToken",
    "RedemptionTicket",
    "TicketQueue",
    "LocalTicketQueue",
]
