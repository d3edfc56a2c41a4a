"""
Share token ledger - mint, burn and supply of the pool's claim token.

Shares are handed out as ShareCoin objects. A coin is spent once burned;
holders may split and join coins before redeeming.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from stakepool.core.checkpoint import Checkpointable
from stakepool.core.errors import BurnMismatch, PreconditionError


@dataclass
class ShareCoin(Checkpointable):
    """A spendable amount of shares."""
    value: int
    spent: bool = False

    def split(self, amount: int) -> "ShareCoin":
        """Take `amount` out of this coin into a new one."""
        if self.spent:
            raise PreconditionError("Coin already spent")
        if amount <= 0 or amount > self.value:
            raise PreconditionError(f"Cannot split {amount} from coin of {self.value}")
        self.value -= amount
        return ShareCoin(value=amount)

    def join(self, other: "ShareCoin") -> None:
        """Merge `other` into this coin, spending it."""
        if self.spent or other.spent:
            raise PreconditionError("Coin already spent")
        self.value += other.value
        other.value = 0
        other.spent = True


@runtime_checkable
class ShareLedger(Protocol):
    """What the pool needs from the share token."""

    def mint(self, shares: int) -> ShareCoin: ...

    def burn_exact(self, coin: ShareCoin, expected: int) -> int: ...

    def total_supply(self) -> int: ...


class ShareToken(Checkpointable):
    """In-memory share token ledger."""

    def __init__(self, symbol: str = "stSHARE"):
        self.symbol = symbol
        self.supply: int = 0

    def mint(self, shares: int) -> ShareCoin:
        if shares < 0:
            raise PreconditionError("Cannot mint negative shares")
        self.supply += shares
        return ShareCoin(value=shares)

    def burn_exact(self, coin: ShareCoin, expected: int) -> int:
        """
        Burn the whole coin, which must hold exactly `expected` shares.

        Returns:
            Shares burned
        """
        if coin.spent:
            raise PreconditionError("Coin already spent")
        if coin.value != expected:
            raise BurnMismatch(f"Burned {coin.value} shares, expected {expected}")
        if coin.value > self.supply:
            raise BurnMismatch(f"Burn of {coin.value} exceeds supply {self.supply}")

        burned = coin.value
        self.supply -= burned
        coin.value = 0
        coin.spent = True
        return burned

    def total_supply(self) -> int:
        return self.supply


__all__ = ["ShareCoin", "ShareLedger", "ShareToken"]
