"""
Ratio Math - Fixed-point conversion between the asset and the share token.

Shares and assets convert at the exact pair `share_supply / pool_value`;
the pre-divided ratio scaled by RATIO_PRECISION is only reported. All
computations use integer arithmetic; Python integers give the wide
intermediate product that keeps `x * y` from overflowing before the division.

Rounding always goes down, so neither conversion can hand a caller more than
the pool holds:
- to_shares:   fewer shares minted for a deposit
- from_shares: less asset paid out for a redemption
"""

from stakepool.core.errors import InvalidRatio, PercentTooBig
from stakepool.utils.validation import MAX_PERCENT, MAX_U64


# =============================================================================
# Constants
# =============================================================================

# One whole asset unit in the smallest denomination
ONE_UNIT = 1_000_000_000

# Fixed-point scale of the ratio (1:1 == RATIO_PRECISION)
RATIO_PRECISION = 10**18


# =============================================================================
# Primitives
# =============================================================================


def mul_div(x: int, y: int, z: int) -> int:
    """
    Compute x * y // z with a u64 result.

    Raises:
        ZeroDivisionError: z is zero
        OverflowError: result does not fit in u64
    """
    if z == 0:
        raise ZeroDivisionError("mul_div by zero")
    result = (x * y) // z
    if result > MAX_U64:
        raise OverflowError(f"mul_div result {result} exceeds u64")
    return result


def percent_of(value: int, bps: int) -> int:
    """
    Take `bps` hundredths of a percent of `value`.

    percent_of(1000, 1000) == 100  (10.00%)
    """
    if bps > MAX_PERCENT:
        raise PercentTooBig(f"{bps} exceeds {MAX_PERCENT}")
    return mul_div(value, bps, MAX_PERCENT)


# =============================================================================
# Ratio
# =============================================================================


def _check_backing(share_supply: int, pool_value: int) -> None:
    if share_supply > 0 and pool_value <= 0:
        raise InvalidRatio(f"{share_supply} shares backed by {pool_value}")


def ratio(share_supply: int, pool_value: int) -> int:
    """
    Compute the share/asset ratio, for reporting.

    An empty pool (no shares) is seeded at exactly 1:1. Outstanding shares
    with no value behind them cannot be priced. Conversions do not go
    through this figure; it is already rounded.

    Args:
        share_supply: Shares in circulation
        pool_value: Asset value backing those shares

    Returns:
        Ratio scaled by RATIO_PRECISION
    """
    if share_supply == 0:
        return RATIO_PRECISION
    _check_backing(share_supply, pool_value)
    return share_supply * RATIO_PRECISION // pool_value


def to_shares(share_supply: int, pool_value: int, amount: int) -> int:
    """Convert an asset amount to shares at supply/value, rounding down."""
    if share_supply == 0:
        return amount
    _check_backing(share_supply, pool_value)
    return mul_div(amount, share_supply, pool_value)


def from_shares(share_supply: int, pool_value: int, shares: int) -> int:
    """Convert shares to an asset amount at value/supply, rounding down."""
    if share_supply == 0:
        return shares
    _check_backing(share_supply, pool_value)
    return mul_div(shares, pool_value, share_supply)


__all__ = [
    "ONE_UNIT",
    "RATIO_PRECISION",
    "mul_div",
    "percent_of",
    "ratio",
    "to_shares",
    "from_shares",
]
