"""
Shared type definitions used across the pricing toolkit.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypedDict

# =============================================================================
# PRICE TYPES
# =============================================================================


@dataclass(frozen=True)
class Price:
    """USD price of one token, fixed-point at 6 decimals.

    A new resolution always produces a new Price; instances are never
    mutated in place.
    """

    address: str
    value: int
    source: str

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())
        if self.value < 0:
            raise ValueError(f"Negative price for {self.address}")


@dataclass(frozen=True)
class CachedPrice:
    """A price held by the cache, valid while now - stored_at <= ttl."""

    price: Price
    stored_at: float
    ttl: float

    def __post_init__(self):
        if self.ttl <= 0:
            raise ValueError("ttl must be positive")

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


ResolvedMap = Dict[str, Price]


# =============================================================================
# TOKEN TYPES
# =============================================================================


@dataclass
class ERC20Token:
    """Token as supplied by the discovery subsystem."""

    address: str
    chain_id: int
    symbol: str = ""
    name: str = ""
    decimals: int = 18

    def __post_init__(self):
        self.address = self.address.lower()


# =============================================================================
# CONTRACT CALL TYPES
# =============================================================================


@dataclass
class CallResult:
    """Per-item outcome of a batched read."""

    success: bool
    value: Any = None
    error: Optional[BaseException] = field(default=None, repr=False)


# =============================================================================
# WIRE TYPES
# =============================================================================


class PriceResponse(TypedDict):
    """Price as served to HTTP clients."""

    address: str  # Checksummed token address
    price: str  # Decimal string at 6-decimal scale
    source: str  # Origin tag
