"""
Error taxonomy for the staking pool.

Four families, by how a caller should react:

1. PreconditionError  - bad input; fix the call.
2. TemporalError      - too early or too much at once; retry later.
3. OperationalError   - paused or incompatible version; wait for an admin.
4. InvariantViolation - bookkeeping bug upstream; never retried.

Every pool operation is all-or-nothing, so a raised error leaves no
partial state behind.
"""


class StakePoolError(Exception):
    """Base class for all staking pool errors."""


# =============================================================================
# Precondition violations
# =============================================================================


class PreconditionError(StakePoolError, ValueError):
    """Input rejected before any state was touched."""


class AmountTooLow(PreconditionError):
    """Amount below the pool minimum."""


class PercentTooBig(PreconditionError):
    """Percent parameter above 100.00%."""


class LimitTooLow(PreconditionError):
    """Configured limit below its floor."""


class TooManyValidators(PreconditionError):
    """Validator batch at or above the per-call cap."""


class ArgumentLengthMismatch(PreconditionError):
    """Validator and priority lists differ in length."""


class BurnMismatch(PreconditionError):
    """Burned share amount differs from the requested amount."""


class TicketNotFound(PreconditionError):
    """Ticket unknown to the queue or already settled."""


class UnknownStakeRecord(PreconditionError):
    """Stake record unknown to the delegation system."""


class Unauthorized(StakePoolError, PermissionError):
    """Missing or foreign capability for a privileged call."""


# =============================================================================
# Temporal / rate-limit violations
# =============================================================================


class TemporalError(StakePoolError):
    """Rejected for now; may succeed later."""


class RewardUpdateTooSoon(TemporalError):
    """Reward attestation inside the update delay window."""


class RewardNotInThreshold(TemporalError):
    """Reward attestation not increasing or above the growth threshold."""


class TicketLocked(TemporalError):
    """Redemption ticket not unlocked for the current epoch."""


# =============================================================================
# Operational-state violations
# =============================================================================


class OperationalError(StakePoolError, RuntimeError):
    """Pool state forbids the call until an admin acts."""


class PoolPaused(OperationalError):
    """Pool is paused."""


class IncompatibleVersion(OperationalError):
    """Pool version is not compatible with this code."""


class NoActiveValidators(OperationalError):
    """No validators are registered."""


# =============================================================================
# Invariant violations (fatal)
# =============================================================================


class InvariantViolation(StakePoolError, RuntimeError):
    """Internal bookkeeping inconsistency."""


class BadVaultState(InvariantViolation):
    """Drained vault still caches a non-zero stake."""


class ValidatorNotFound(InvariantViolation):
    """Validator expected in the priority map or sorted list is absent."""


class InsufficientLiquidity(InvariantViolation):
    """Validators returned less than a settled ticket owes."""


class InvalidRatio(InvariantViolation):
    """Shares outstanding with no value backing them."""


__all__ = [
    "StakePoolError",
    "PreconditionError",
    "AmountTooLow",
    "PercentTooBig",
    "LimitTooLow",
    "TooManyValidators",
    "ArgumentLengthMismatch",
    "BurnMismatch",
    "TicketNotFound",
    "UnknownStakeRecord",
    "Unauthorized",
    "TemporalError",
    "RewardUpdateTooSoon",
    "RewardNotInThreshold",
    "TicketLocked",
    "OperationalError",
    "PoolPaused",
    "IncompatibleVersion",
    "NoActiveValidators",
    "InvariantViolation",
    "BadVaultState",
    "ValidatorNotFound",
    "InsufficientLiquidity",
    "InvalidRatio",
]
