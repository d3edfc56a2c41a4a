"""
Capabilities for privileged pool calls.

A pool issues exactly one OwnerCap and one OperatorCap when it is created.
Holding the object is the permission; the pool accepts only the instances it
issued, compared by pool id and a random secret.
"""

import hmac
import secrets
from dataclasses import dataclass, field

from stakepool.core.errors import Unauthorized


@dataclass(frozen=True)
class Capability:
    """Base capability bound to one pool."""
    pool_id: str
    secret: bytes = field(default_factory=lambda: secrets.token_bytes(32), repr=False)


@dataclass(frozen=True)
class OwnerCap(Capability):
    """Fees, limits, pause, fee collection and migration."""


@dataclass(frozen=True)
class OperatorCap(Capability):
    """Validator priorities and reward attestation."""


class CapabilityIssuer:
    """Issues a pool's capabilities and checks presented ones."""

    def __init__(self, pool_id: str):
        self.pool_id = pool_id
        self.owner_cap = OwnerCap(pool_id=pool_id)
        self.operator_cap = OperatorCap(pool_id=pool_id)

    def require_owner(self, cap) -> None:
        self._require(cap, self.owner_cap)

    def require_operator(self, cap) -> None:
        self._require(cap, self.operator_cap)

    @staticmethod
    def _require(cap, issued: Capability) -> None:
        if (
            type(cap) is not type(issued)
            or cap.pool_id != issued.pool_id
            or not hmac.compare_digest(cap.secret, issued.secret)
        ):
            raise Unauthorized(f"{type(issued).__name__} required")
