"""
DefiLlama price source (https://coins.llama.fi).

Tokens are requested in chunks of 100 addresses, at most 10 chunks at a
time. A chunk rejected with HTTP 413 is split in halves and retried.
"""

import asyncio
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

logger = get_logger(__name__)


class DefiLlamaFetcher(PriceFetcher):
    name = PriceSource.DEFILLAMA
    supported_chains = frozenset(PriceConstants.LLAMA_CHAIN_NAMES)

    BASE_URL = "https://coins.llama.fi"
    BATCH_SIZE = 100
    MAX_CONCURRENT_CHUNKS = 10
    MIN_SPLIT_SIZE = 10

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = BASE_URL,
    ):
        self._client = client
        self.base_url = base_url.rstrip("/")
        self._limiter = asyncio.Semaphore(self.MAX_CONCURRENT_CHUNKS)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_async_client()

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        chain_name = PriceConstants.LLAMA_CHAIN_NAMES.get(chain_id)
        if not chain_name:
            logger.warning(f"Chain {chain_id} not supported by DefiLlama")
            return {}
        if not tokens:
            return {}

        chunks = list(chunked(tokens, self.BATCH_SIZE))
        outcomes = await asyncio.gather(
            *(self._fetch_chunk_limited(chain_name, c) for c in chunks),
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
                f"DefiLlama: {len(failures)}/{len(chunks)} requests failed "
                f"on chain {chain_id}"
            )

        await self._handle_ajna_token(chain_id, tokens, prices)

        logger.debug(
            f"DefiLlama returned {len(prices)}/{len(tokens)} prices "
            f"for chain {chain_id}"
        )
        return prices

    async def _fetch_chunk_limited(
        self, chain_name: str, tokens: Sequence[ERC20Token]
    ) -> Dict[str, Price]:
        async with self._limiter:
            return await self._fetch_chunk(chain_name, tokens)

    async def _fetch_chunk(
        self, chain_name: str, tokens: Sequence[ERC20Token]
    ) -> Dict[str, Price]:
        keys = ",".join(f"{chain_name}:{t.address}" for t in tokens)
        url = f"{self.base_url}/prices/current/{keys}"

        try:
            response = await HTTP_RETRY_CONFIG.run(
                self.client.get, url, operation_name="defillama"
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 413 and len(tokens) > self.MIN_SPLIT_SIZE:
                logger.warning(
                    f"DefiLlama 413 Payload Too Large for {len(tokens)} "
                    f"tokens, splitting the request"
                )
                half = len(tokens) // 2
                left = await self._fetch_chunk(chain_name, tokens[:half])
                right = await self._fetch_chunk(chain_name, tokens[half:])
                return {**left, **right}
            raise SourceUnavailableError(self.name, f"HTTP {status}") from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(self.name, repr(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceUnavailableError(self.name, "invalid JSON") from e
        coins = payload.get("coins") if isinstance(payload, dict) else None
        if not isinstance(coins, dict):
            raise SourceUnavailableError(self.name, "malformed response")

        by_address = {t.address: t for t in tokens}
        prices: Dict[str, Price] = {}
        for key, data in coins.items():
            _, _, address = key.partition(":")
            token = by_address.get(address.lower())
            if token is None or not isinstance(data, dict):
                continue
            value = parse_units(data.get("price", 0))
            if value > 0:
                prices[token.address] = Price(token.address, value, self.name)
        return prices

    async def _handle_ajna_token(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        prices: Dict[str, Price],
    ) -> None:
        """Ajna is only listed on mainnet; reuse that price elsewhere."""
        if chain_id == 1:
            return
        ajna_address = PriceConstants.AJNA_TOKENS.get(chain_id, "").lower()
        if not ajna_address or ajna_address in prices:
            return
        if not any(t.address == ajna_address for t in tokens):
            return

        mainnet_ajna = ERC20Token(PriceConstants.AJNA_TOKENS[1], 1, "AJNA")
        try:
            mainnet = await self._fetch_chunk_limited("ethereum", [mainnet_ajna])
        except SourceUnavailableError as e:
            logger.error(f"Failed to fetch Ajna price for chain {chain_id}: {e}")
            return

        price = mainnet.get(mainnet_ajna.address)
        if price is not None:
            prices[ajna_address] = Price(ajna_address, price.value, self.name)
