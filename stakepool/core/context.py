"""
Execution context - the caller-supplied epoch, timestamp and sender.

The pool never reads a clock itself. Every operation receives a TxContext,
and EpochClock is a small helper for producing monotonic contexts.
"""

from dataclasses import dataclass

from stakepool.utils.validation import require, validate_epoch, validate_integer


@dataclass(frozen=True)
class TxContext:
    """
    Context of one pool call.

    Attributes:
        sender: Caller address (recorded in events)
        epoch: Current epoch
        timestamp_ms: Current time in milliseconds
    """
    sender: str
    epoch: int
    timestamp_ms: int

    def __post_init__(self):
        require(validate_epoch(self.epoch))
        require(validate_integer(self.timestamp_ms, "timestamp_ms"))


class EpochClock:
    """Monotonic source of epochs and timestamps."""

    def __init__(self, epoch: int = 0, timestamp_ms: int = 0):
        self.epoch = epoch
        self.timestamp_ms = timestamp_ms

    def advance_epoch(self, epochs: int = 1) -> int:
        if epochs < 0:
            raise ValueError("Epoch cannot move backwards")
        self.epoch += epochs
        return self.epoch

    def advance_time(self, ms: int) -> int:
        if ms < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp_ms += ms
        return self.timestamp_ms

    def context(self, sender: str) -> TxContext:
        return TxContext(sender=sender, epoch=self.epoch, timestamp_ms=self.timestamp_ms)
