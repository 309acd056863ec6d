"""
Velodrome (Optimism) and Aerodrome (Base) Sugar oracle price source.

``getManyRatesWithConnectors(length, connectors)`` rates the first
``length`` addresses of ``connectors`` in USD, routing through pools made
of the remaining connectors. Rates come back with 18 decimals.
"""

from typing import Dict, Mapping, Optional, Sequence

from pricing_toolkit.fetchers.base import (
    PriceFetcher,
    chunked,
    raise_if_unreachable,
)
from pricing_toolkit.multicall import ContractCall, MulticallAggregator
from pricing_toolkit.shared.constants import PriceConstants, PriceSource
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import ERC20Token, Price

logger = get_logger(__name__)

RATES_SIGNATURE = "getManyRatesWithConnectors(uint8,address[])(uint256[])"

RATE_DECIMALS = 18

SOURCE_TAGS = {
    10: PriceSource.VELODROME,
    8453: PriceSource.AERODROME,
}


def is_pool_symbol(symbol: str) -> bool:
    """LP tokens (``vAMM-WETH/USDC`` and alike) are not rated by the oracle."""
    return "-" in symbol or "/" in symbol


class VelodromeFetcher(PriceFetcher):
    name = PriceSource.VELODROME
    supported_chains = frozenset(PriceConstants.SUGAR_ORACLE_ADDRESSES)

    def __init__(
        self,
        aggregator: MulticallAggregator,
        batch_size: int = PriceConstants.SUGAR_BATCH_SIZE,
    ):
        self.aggregator = aggregator
        self.batch_size = batch_size

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        oracle = PriceConstants.SUGAR_ORACLE_ADDRESSES.get(chain_id)
        candidates = [t for t in tokens if not is_pool_symbol(t.symbol)]
        if not oracle or not candidates:
            return {}

        connectors = list(PriceConstants.SUGAR_RATE_CONNECTORS[chain_id])
        batches = list(chunked(candidates, self.batch_size))
        calls = [
            ContractCall(
                oracle,
                RATES_SIGNATURE,
                (len(batch), [t.address for t in batch] + connectors),
            )
            for batch in batches
        ]
        results = await self.aggregator.read_many(chain_id, calls)
        raise_if_unreachable(results)

        source = SOURCE_TAGS.get(chain_id, self.name)
        scale = 10 ** (RATE_DECIMALS - PriceConstants.PRICE_DECIMALS)
        prices: Dict[str, Price] = {}
        failed_batches = 0
        for batch, result in zip(batches, results):
            if not result.success:
                failed_batches += 1
                continue
            for token, rate in zip(batch, result.value):
                value = int(rate) // scale
                if value > 0:
                    prices[token.address] = Price(token.address, value, source)

        if failed_batches:
            logger.debug(
                f"Sugar oracle: {failed_batches}/{len(batches)} batches "
                f"reverted on chain {chain_id}"
            )
        logger.debug(
            f"Sugar oracle returned {len(prices)}/{len(candidates)} prices "
            f"for chain {chain_id}"
        )
        return prices
