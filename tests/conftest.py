"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests.
"""

from typing import Callable, List, Sequence, Tuple

import pytest
from eth_abi import encode

from pricing_toolkit.cache import PriceCache
from pricing_toolkit.multicall import ContractCall
from pricing_toolkit.shared.types import ERC20Token

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
YV_WETH = "0xa258c4606ca8206d8aa700ce2143d7db854d168c"
CRV = "0xd533a949740bb3306d119cc777fa900ba034cd52"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReader:
    """
    Batched reader answering every call through ``responder``.

    ``responder(call)`` returns the ABI-encoded return data, or None for a
    reverted call. ``failures`` makes the next N submissions raise.
    """

    def __init__(
        self,
        responder: Callable[[ContractCall], bytes] = None,
        failures: int = 0,
        error: Exception = None,
    ):
        self.responder = responder or (lambda call: encode(["uint256"], [1]))
        self.failures = failures
        self.error = error or ConnectionError("rpc down")
        self.batches: List[List[ContractCall]] = []
        self.attempts = 0

    async def try_aggregate(
        self, calls: Sequence[ContractCall]
    ) -> List[Tuple[bool, bytes]]:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        self.batches.append(list(calls))
        results = []
        for call in calls:
            data = self.responder(call)
            results.append((data is not None, data or b""))
        return results


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock that only moves when told to."""
    return FakeClock()


@pytest.fixture
def price_cache(fake_clock) -> PriceCache:
    """Price cache driven by the fake clock."""
    return PriceCache(clock=fake_clock)


@pytest.fixture
def fake_reader() -> FakeReader:
    """Reader that answers 1 to every call."""
    return FakeReader()


@pytest.fixture
def usdc() -> ERC20Token:
    return ERC20Token(USDC, 1, "USDC", "USD Coin", 6)


@pytest.fixture
def weth() -> ERC20Token:
    return ERC20Token(WETH, 1, "WETH", "Wrapped Ether", 18)


@pytest.fixture
def yv_weth() -> ERC20Token:
    return ERC20Token(YV_WETH, 1, "yvWETH", "WETH yVault", 18)


@pytest.fixture
def crv() -> ERC20Token:
    return ERC20Token(CRV, 1, "CRV", "Curve DAO Token", 18)


@pytest.fixture
def make_reader() -> Callable[..., FakeReader]:
    """Factory for readers with a custom responder or failure count."""
    return FakeReader
