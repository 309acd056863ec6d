"""
Yearn Lens oracle price source.

The oracle answers ``getPriceUsdcRecommended(address)`` with a USDC
amount, which already has the 6 decimals prices are kept in.
"""

from typing import Dict, Mapping, Optional, Sequence

from pricing_toolkit.fetchers.base import PriceFetcher, raise_if_unreachable
from pricing_toolkit.multicall import ContractCall, MulticallAggregator
from pricing_toolkit.shared.constants import PriceConstants, PriceSource
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import ERC20Token, Price

logger = get_logger(__name__)

PRICE_SIGNATURE = "getPriceUsdcRecommended(address)(uint256)"


class LensOracleFetcher(PriceFetcher):
    name = PriceSource.LENS
    supported_chains = frozenset(PriceConstants.LENS_ORACLE_ADDRESSES)

    def __init__(self, aggregator: MulticallAggregator):
        self.aggregator = aggregator

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        oracle = PriceConstants.LENS_ORACLE_ADDRESSES.get(chain_id)
        if not oracle or not tokens:
            return {}

        calls = [
            ContractCall(oracle, PRICE_SIGNATURE, (t.address,)) for t in tokens
        ]
        results = await self.aggregator.read_many(chain_id, calls)

        raise_if_unreachable(results)

        prices: Dict[str, Price] = {}
        for token, result in zip(tokens, results):
            if result.success and result.value:
                prices[token.address] = Price(
                    token.address, int(result.value), self.name
                )

        logger.debug(
            f"Lens oracle returned {len(prices)}/{len(tokens)} prices "
            f"for chain {chain_id}"
        )
        return prices
