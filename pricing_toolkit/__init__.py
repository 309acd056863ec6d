"""Pricing Toolkit - batched on-chain reads, price resolution and caching."""

__version__ = "0.1.0"

from .cache import PriceCache
from .multicall import MulticallAggregator
from .pricing import PriceFetcherOrchestrator, build_default_orchestrator

__all__ = [
    "PriceCache",
    "MulticallAggregator",
    "PriceFetcherOrchestrator",
    "build_default_orchestrator",
]
