"""
ERC4626 vault price source.

A vault share is worth ``convertToAssets(1 share)`` units of the asset, so
its price follows from the asset price already resolved by an earlier
phase.
"""

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from pricing_toolkit.fetchers.base import PriceFetcher
from pricing_toolkit.multicall import ContractCall, MulticallAggregator
from pricing_toolkit.shared.constants import GlobalConstants, PriceSource
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import ERC20Token, Price

logger = get_logger(__name__)


def is_potential_vault(token: ERC20Token) -> bool:
    symbol = token.symbol.lower()
    name = token.name.lower()
    return (
        "vault" in symbol
        or "vault" in name
        or symbol.startswith("yv")
        or symbol.startswith("av")
        or "4626" in symbol
    )


class ERC4626Fetcher(PriceFetcher):
    name = PriceSource.ERC4626
    requires_oracle = True

    def __init__(self, aggregator: MulticallAggregator):
        self.aggregator = aggregator

    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        oracle = price_oracle or {}
        vaults = [t for t in tokens if is_potential_vault(t)]
        if not vaults or not oracle:
            return {}

        logger.debug(
            f"ERC4626: checking {len(vaults)} potential vaults on chain {chain_id}"
        )

        asset_results = await self.aggregator.read_many(
            chain_id, [ContractCall(v.address, "asset()(address)") for v in vaults]
        )

        # Only vaults whose asset is already priced are worth a second read
        priced: List[Tuple[ERC20Token, str]] = []
        for vault, result in zip(vaults, asset_results):
            if not result.success or not result.value:
                continue
            asset = result.value.lower()
            if asset != GlobalConstants.ZERO_ADDRESS and asset in oracle:
                priced.append((vault, asset))
        if not priced:
            return {}

        share_results, decimals_results = await asyncio.gather(
            self.aggregator.read_many(
                chain_id,
                [
                    ContractCall(
                        vault.address,
                        "convertToAssets(uint256)(uint256)",
                        (10**vault.decimals,),
                    )
                    for vault, _ in priced
                ],
            ),
            self.aggregator.read_many(
                chain_id,
                [ContractCall(asset, "decimals()(uint8)") for _, asset in priced],
            ),
        )

        prices: Dict[str, Price] = {}
        for (vault, asset), assets, decimals in zip(
            priced, share_results, decimals_results
        ):
            if not assets.success or not decimals.success:
                continue
            value = assets.value * oracle[asset].value // 10 ** decimals.value
            if value > 0:
                prices[vault.address] = Price(vault.address, value, self.name)

        if prices:
            logger.debug(
                f"ERC4626: calculated {len(prices)} vault prices on chain {chain_id}"
            )
        return prices
