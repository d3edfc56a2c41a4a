"""
Redemption ticket queue - deferred claims on the pool.

A ticket records the asset amount owed to its holder, the unstake fee kept
by the protocol and the epoch from which it can be settled. The queue tracks
outstanding supply and the peak supply seen per epoch; the last two epochs of
peaks feed the pool's anti-run fee.
"""

from dataclasses import dataclass
from typing import Dict, Protocol, Set, Tuple, runtime_checkable

from stakepool.core.checkpoint import Checkpointable
from stakepool.core.errors import TicketNotFound
from stakepool.utils.logger import get_logger

logger = get_logger("tickets")


@dataclass
class RedemptionTicket(Checkpointable):
    """
    A claim on `value` of the asset, minus `fee`, from `unlock_epoch` on.

    Attributes:
        ticket_id: Queue-assigned identifier
        owner: Address that minted the ticket
        value: Asset amount the ticket settles for (fee included)
        fee: Unstake fee withheld at settlement
        unlock_epoch: First epoch the ticket can be settled
    """
    ticket_id: int
    owner: str
    value: int
    fee: int
    unlock_epoch: int
    settled: bool = False

    @property
    def payout(self) -> int:
        return self.value - self.fee


@runtime_checkable
class TicketQueue(Protocol):
    """What the pool needs from the ticket queue."""

    def issue(
        self, amount: int, fee: int, unlock_epoch: int, owner: str, current_epoch: int
    ) -> RedemptionTicket: ...

    def is_unlocked(self, ticket: RedemptionTicket, current_epoch: int) -> bool: ...

    def settle(self, ticket: RedemptionTicket) -> Tuple[int, int]: ...

    def outstanding_supply_for_2_epoch_window(
        self, current_epoch: int, pending_amount: int
    ) -> int: ...

    def total_outstanding_supply(self) -> int: ...


class LocalTicketQueue(Checkpointable):
    """In-memory ticket queue with per-epoch peak supply history."""

    def __init__(self):
        self.total_supply: int = 0
        self.peak_supply: Dict[int, int] = {}
        self.live_tickets: Set[int] = set()
        self.next_ticket_id: int = 0

    def issue(
        self,
        amount: int,
        fee: int,
        unlock_epoch: int,
        owner: str,
        current_epoch: int,
    ) -> RedemptionTicket:
        """Mint a ticket and add its value to outstanding supply."""
        ticket = RedemptionTicket(
            ticket_id=self.next_ticket_id,
            owner=owner,
            value=amount,
            fee=fee,
            unlock_epoch=unlock_epoch,
        )
        self.next_ticket_id += 1
        self.live_tickets.add(ticket.ticket_id)
        self.total_supply += amount
        self._record_peak(current_epoch)

        logger.debug(f"Issued ticket {ticket.ticket_id}: {amount} unlocks at {unlock_epoch}")
        return ticket

    def is_unlocked(self, ticket: RedemptionTicket, current_epoch: int) -> bool:
        return ticket.unlock_epoch <= current_epoch

    def settle(self, ticket: RedemptionTicket) -> Tuple[int, int]:
        """
        Retire a ticket.

        Returns:
            (value, fee)
        """
        if ticket.settled or ticket.ticket_id not in self.live_tickets:
            raise TicketNotFound(f"Ticket {ticket.ticket_id} is not outstanding")

        self.live_tickets.remove(ticket.ticket_id)
        self.total_supply -= ticket.value
        ticket.settled = True
        return ticket.value, ticket.fee

    def outstanding_supply_for_2_epoch_window(
        self,
        current_epoch: int,
        pending_amount: int,
    ) -> int:
        """
        Highest outstanding supply over this and the previous epoch,
        including a ticket of `pending_amount` about to be minted.
        """
        projected = self.total_supply + pending_amount
        return max(
            projected,
            self.peak_supply.get(current_epoch, 0),
            self.peak_supply.get(current_epoch - 1, 0),
        )

    def total_outstanding_supply(self) -> int:
        return self.total_supply

    def _record_peak(self, current_epoch: int) -> None:
        self.peak_supply[current_epoch] = max(
            self.peak_supply.get(current_epoch, 0), self.total_supply
        )
        for epoch in [e for e in self.peak_supply if e < current_epoch - 1]:
            del self.peak_supply[epoch]


__all__ = ["RedemptionTicket", "TicketQueue", "LocalTicketQueue"]
