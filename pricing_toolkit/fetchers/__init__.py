from pricing_toolkit.fetchers.base import PriceFetcher
from pricing_toolkit.fetchers.coingecko import CoinGeckoFetcher
from pricing_toolkit.fetchers.curve_amm import CurveAmmFetcher
from pricing_toolkit.fetchers.defillama import DefiLlamaFetcher
from pricing_toolkit.fetchers.erc4626 import ERC4626Fetcher
from pricing_toolkit.fetchers.lens_oracle import LensOracleFetcher
from pricing_toolkit.fetchers.velodrome import VelodromeFetcher
from pricing_toolkit.fetchers.yearn_vault import YearnVaultFetcher

__all__ = [
    "PriceFetcher",
    "CoinGeckoFetcher",
    "CurveAmmFetcher",
    "DefiLlamaFetcher",
    "ERC4626Fetcher",
    "LensOracleFetcher",
    "VelodromeFetcher",
    "YearnVaultFetcher",
]
