"""
In-memory price cache with a per-token adaptive TTL.

Freshness tracks volatility: stablecoins stay cached for 5 minutes,
majors for 1 minute, LP and vault tokens for 30 seconds and everything
else for 2 minutes. Entries are evicted lazily when read after expiry and
actively by ``cleanup``, which can run periodically on the event loop.
"""

import asyncio
import time
from collections import Counter
from typing import (
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Tuple,
)

from pricing_toolkit.cache.classification import (
    TTL_BY_CLASS,
    TokenClass,
    classify_token,
)
from pricing_toolkit.shared.constants import CacheConstants, GlobalConstants
from pricing_toolkit.shared.exceptions import UnsupportedChainError
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import CachedPrice, Price

logger = get_logger(__name__)

Classifier = Callable[[Optional[str], str, Optional[str]], TokenClass]


class PriceCache:
    """Adaptive TTL price cache keyed by (chain_id, lowercase address)."""

    def __init__(
        self,
        classifier: Classifier = classify_token,
        clock: Callable[[], float] = time.monotonic,
        ttl_by_class: Optional[Mapping[TokenClass, float]] = None,
        supported_chains: Optional[Iterable[int]] = None,
    ):
        """
        Initialize the price cache.

        Args:
            classifier: Maps (symbol, address, source) to a TokenClass.
            clock: Time source in seconds.
            ttl_by_class: TTL override per class, in seconds.
            supported_chains: Chain ids accepted (default: all known chains).
        """
        self._classifier = classifier
        self._clock = clock
        self._ttl_by_class = dict(TTL_BY_CLASS)
        if ttl_by_class:
            self._ttl_by_class.update(ttl_by_class)
        for token_class, ttl in self._ttl_by_class.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {token_class.value} must be > 0")
        self._supported_chains = frozenset(
            supported_chains
            if supported_chains is not None
            else GlobalConstants.CHAIN_NAMES
        )
        self._entries: Dict[Tuple[int, str], CachedPrice] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def _key(self, chain_id: int, address: str) -> Tuple[int, str]:
        chain_id = int(chain_id)
        if chain_id not in self._supported_chains:
            raise UnsupportedChainError(chain_id)
        return chain_id, address.lower()

    def get_entry(self, chain_id: int, address: str) -> Optional[CachedPrice]:
        """Get the live cache entry, evicting it if expired."""
        key = self._key(chain_id, address)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, chain_id: int, address: str) -> Optional[Price]:
        """Get a price if cached and still fresh."""
        entry = self.get_entry(chain_id, address)
        return entry.price if entry else None

    def get_many(
        self, chain_id: int, addresses: Iterable[str]
    ) -> Dict[str, Price]:
        """Get fresh prices for many addresses; misses are left out."""
        hits: Dict[str, Price] = {}
        for address in addresses:
            price = self.get(chain_id, address)
            if price is not None:
                hits[address.lower()] = price
        return hits

    def classify(
        self, address: str, price: Price, symbol: Optional[str] = None
    ) -> TokenClass:
        return self._classifier(symbol, address.lower(), price.source)

    def set(
        self,
        chain_id: int,
        address: str,
        price: Price,
        symbol: Optional[str] = None,
    ) -> None:
        """Store a price; its TTL comes from the token class."""
        key = self._key(chain_id, address)
        token_class = self.classify(address, price, symbol)
        self._entries[key] = CachedPrice(
            price=price,
            stored_at=self._clock(),
            ttl=self._ttl_by_class[token_class],
        )

    def set_many(
        self,
        chain_id: int,
        prices: Mapping[str, Price],
        symbols: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Store many prices; ``symbols`` is keyed by lowercase address."""
        symbols = symbols or {}
        for address, price in prices.items():
            self.set(chain_id, address, price, symbols.get(address.lower()))

    def cleanup(self) -> int:
        """Remove all expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.is_expired(now)
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"Price cache: Removed {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Clear all cache entries."""
        size = len(self._entries)
        self._entries.clear()
        logger.debug(f"Price cache: Cleared {size} entries")

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, object]:
        """Get cache statistics (expired entries not yet swept included)."""
        chains = Counter(chain_id for chain_id, _ in self._entries)
        return {"total": len(self._entries), "chains": dict(chains)}

    def start_cleanup_task(
        self, interval: float = CacheConstants.CLEANUP_INTERVAL
    ) -> None:
        """Start periodic cleanup of expired entries on the running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(
                self._periodic_cleanup(interval)
            )

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def _periodic_cleanup(self, interval: float) -> None:
        """Periodically clean up expired entries."""
        while True:
            await asyncio.sleep(interval)
            self.cleanup()
