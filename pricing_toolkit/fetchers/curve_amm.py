"""
Curve LP price source from the pool's virtual price.

``get_virtual_price()`` is the value of one LP token in pool units, with 18
decimals. It is taken as a USD price, which only holds for USD pools, so
this source is wired as a dependent fallback: it only sees tokens that no
other source could price.
"""

from typing import Dict, Mapping, Optional, Sequence

from pricing_toolkit.fetchers.base import PriceFetcher, raise_if_unreachable
from pricing_toolkit.multicall import ContractCall, MulticallAggregator
from pricing_toolkit.shared.constants import PriceConstants, PriceSource
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import ERC20Token, Price

logger = get_logger(__name__)

VIRTUAL_PRICE_SIGNATURE = "get_virtual_price()(uint256)"

VIRTUAL_PRICE_DECIMALS = 18


class CurveAmmFetcher(PriceFetcher):
    name = PriceSource.CURVE_AMM

    def __init__(self, aggregator: MulticallAggregator):
        self.aggregator = aggregator

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        if not tokens:
            return {}

        calls = [ContractCall(t.address, VIRTUAL_PRICE_SIGNATURE) for t in tokens]
        results = await self.aggregator.read_many(chain_id, calls)
        raise_if_unreachable(results)

        scale = 10 ** (VIRTUAL_PRICE_DECIMALS - PriceConstants.PRICE_DECIMALS)
        prices: Dict[str, Price] = {}
        for token, result in zip(tokens, results):
            # Most tokens are not Curve LPs and simply revert
            if not result.success:
                continue
            value = int(result.value) // scale
            if value > 0:
                prices[token.address] = Price(token.address, value, self.name)

        if prices:
            logger.info(
                f"Curve AMM: fetched {len(prices)} prices for chain {chain_id}"
            )
        return prices
