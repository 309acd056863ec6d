"""
CoinGecko price source.

Uses the pro API when COINGECKO_API_KEY is set and the public one
otherwise. Requests are spaced by a token bucket since the public tier
is heavily rate limited.
"""

import asyncio
import os
from typing import Dict, Mapping, Optional, Sequence

import httpx

from pricing_toolkit.fetchers.base import PriceFetcher, chunked
from pricing_toolkit.shared.constants import PriceConstants, PriceSource
from pricing_toolkit.shared.exceptions import SourceUnavailableError
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.retry import HTTP_RETRY_CONFIG
from pricing_toolkit.shared.services.http_client import get_async_client
from pricing_toolkit.shared.types import ERC20Token, Price
from pricing_toolkit.utils.pricing import parse_units
from pricing_toolkit.utils.rate_limiter import AsyncRateLimiter

logger = get_logger(__name__)


class CoinGeckoFetcher(PriceFetcher):
    name = PriceSource.COINGECKO
    supported_chains = frozenset(PriceConstants.GECKO_CHAIN_NAMES)

    PUBLIC_URL = "https://api.coingecko.com/api/v3"
    PRO_URL = "https://pro-api.coingecko.com/api/v3"
    BATCH_SIZE = 100
    MIN_REQUEST_INTERVAL = 1.1  # seconds

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[AsyncRateLimiter] = None,
    ):
        self.api_key = api_key or os.getenv("COINGECKO_API_KEY") or None
        self.base_url = self.PRO_URL if self.api_key else self.PUBLIC_URL
        self._client = client
        self._rate_limiter = rate_limiter or AsyncRateLimiter(
            rate=1 / self.MIN_REQUEST_INTERVAL
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_async_client()

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        platform = PriceConstants.GECKO_CHAIN_NAMES.get(chain_id)
        if not platform:
            logger.warning(f"Chain {chain_id} not supported by CoinGecko")
            return {}
        if not tokens:
            return {}

        chunks = list(chunked(tokens, self.BATCH_SIZE))
        outcomes = await asyncio.gather(
            *(self._fetch_chunk(platform, c) for c in chunks),
            return_exceptions=True,
        )

        prices: Dict[str, Price] = {}
        failures = [o for o in outcomes if isinstance(o, Exception)]
        for outcome in outcomes:
            if isinstance(outcome, dict):
                prices.update(outcome)

        if failures and len(failures) == len(chunks):
            raise SourceUnavailableError(
                self.name,
                f"all {len(chunks)} requests failed on chain {chain_id}: "
                f"{failures[-1]}",
            ) from failures[-1]
        if failures:
            logger.warning(
                f"CoinGecko: {len(failures)}/{len(chunks)} requests failed "
                f"on chain {chain_id}"
            )

        logger.debug(
            f"CoinGecko returned {len(prices)}/{len(tokens)} prices "
            f"for chain {chain_id}"
        )
        return prices

    async def _fetch_chunk(
        self, platform: str, tokens: Sequence[ERC20Token]
    ) -> Dict[str, Price]:
        url = f"{self.base_url}/simple/token_price/{platform}"
        params = {
            "contract_addresses": ",".join(t.address for t in tokens),
            "vs_currencies": "usd",
        }
        if self.api_key:
            params["x_cg_pro_api_key"] = self.api_key

        await self._rate_limiter.acquire()
        try:
            response = await HTTP_RETRY_CONFIG.run(
                self.client.get, url, params=params, operation_name="coingecko"
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise SourceUnavailableError(self.name, "rate limited") from e
            raise SourceUnavailableError(self.name, f"HTTP {status}") from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(self.name, repr(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceUnavailableError(self.name, "invalid JSON") from e
        if not isinstance(payload, dict):
            raise SourceUnavailableError(self.name, "malformed response")

        wanted = {t.address for t in tokens}
        prices: Dict[str, Price] = {}
        for address, data in payload.items():
            address = address.lower()
            if address not in wanted or not isinstance(data, dict):
                continue
            value = parse_units(data.get("usd", 0))
            if value > 0:
                prices[address] = Price(address, value, self.name)
        return prices
