"""
Yearn vault price source.

v2 vaults expose ``pricePerShare()`` and ``token()``; v3 vaults are
ERC4626 and are read through ``convertToAssets`` and ``asset()``. Both
share values are scaled by the vault decimals.
"""

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from pricing_toolkit.fetchers.base import PriceFetcher
from pricing_toolkit.multicall import ContractCall, MulticallAggregator
from pricing_toolkit.shared.constants import PriceSource
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.types import CallResult, ERC20Token, Price

logger = get_logger(__name__)


def _ok(result: CallResult) -> bool:
    return result.success and bool(result.value)


def is_yearn_vault(token: ERC20Token) -> bool:
    symbol = token.symbol.lower()
    name = token.name.lower()
    return (
        symbol.startswith("yv")
        or symbol.startswith("vy")
        or "yearn" in name
        or ("vault" in name and "yfi" in name)
    )


class YearnVaultFetcher(PriceFetcher):
    name = PriceSource.YEARN_VAULT
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
        vaults = [t for t in tokens if is_yearn_vault(t)]
        if not vaults or not oracle:
            return {}

        logger.debug(
            f"Yearn: checking {len(vaults)} potential vaults on chain {chain_id}"
        )

        # (vault, underlying, share value)
        shares: List[Tuple[ERC20Token, str, int]] = []

        pps_results, token_results = await asyncio.gather(
            self._read_each(chain_id, vaults, "pricePerShare()(uint256)"),
            self._read_each(chain_id, vaults, "token()(address)"),
        )
        v3_candidates = []
        for vault, pps, underlying in zip(vaults, pps_results, token_results):
            if _ok(pps) and _ok(underlying):
                shares.append((vault, underlying.value.lower(), pps.value))
            else:
                v3_candidates.append(vault)

        if v3_candidates:
            convert_results, asset_results = await asyncio.gather(
                self.aggregator.read_many(
                    chain_id,
                    [
                        ContractCall(
                            v.address,
                            "convertToAssets(uint256)(uint256)",
                            (10**v.decimals,),
                        )
                        for v in v3_candidates
                    ],
                ),
                self._read_each(chain_id, v3_candidates, "asset()(address)"),
            )
            for vault, converted, asset in zip(
                v3_candidates, convert_results, asset_results
            ):
                if _ok(converted) and _ok(asset):
                    shares.append((vault, asset.value.lower(), converted.value))

        prices: Dict[str, Price] = {}
        for vault, underlying, share_value in shares:
            underlying_price = oracle.get(underlying)
            if underlying_price is None or underlying_price.value <= 0:
                continue
            value = share_value * underlying_price.value // 10**vault.decimals
            if value > 0:
                prices[vault.address] = Price(vault.address, value, self.name)

        if prices:
            logger.info(
                f"Yearn: calculated {len(prices)} vault prices on chain {chain_id}"
            )
        return prices

    async def _read_each(
        self, chain_id: int, vaults: Sequence[ERC20Token], signature: str
    ) -> List[CallResult]:
        return await self.aggregator.read_many(
            chain_id, [ContractCall(v.address, signature) for v in vaults]
        )
