"""Adaptive TTL price cache."""

from .classification import TokenClass, classify_token
from .price_cache import PriceCache

__all__ = ["PriceCache", "TokenClass", "classify_token"]
