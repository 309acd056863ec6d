"""Batched on-chain reads."""

from .calls import ContractCall, build_calls, parse_signature
from .aggregator import MulticallAggregator, QueueStats

__all__ = [
    "ContractCall",
    "MulticallAggregator",
    "QueueStats",
    "build_calls",
    "parse_signature",
]
