"""
Token classification used to pick a cache TTL.

Pure symbol/address heuristics. A wrong class only changes how long a
price stays cached, never the price itself.
"""

from enum import Enum
from typing import Optional

from pricing_toolkit.shared.constants import CacheConstants, PriceSource


class TokenClass(Enum):
    STABLECOIN = "stablecoin"
    MAJOR = "major"
    LP_VAULT = "lp_vault"
    OTHER = "other"


STABLECOINS = frozenset(
    {
        "usdc",
        "usdt",
        "dai",
        "busd",
        "tusd",
        "usdp",
        "gusd",
        "frax",
        "usdd",
        "lusd",
        "susd",
        "mim",
        "alchemix",
    }
)

MAJOR_TOKENS = frozenset(
    {
        "eth",
        "weth",
        "btc",
        "wbtc",
        "bnb",
        "matic",
        "avax",
        "sol",
        "dot",
        "uni",
        "link",
        "aave",
        "crv",
        "mkr",
        "snx",
        "comp",
    }
)

TTL_BY_CLASS = {
    TokenClass.STABLECOIN: CacheConstants.TTL_STABLECOIN,
    TokenClass.MAJOR: CacheConstants.TTL_MAJOR,
    TokenClass.LP_VAULT: CacheConstants.TTL_LP_VAULT,
    TokenClass.OTHER: CacheConstants.TTL_DEFAULT,
}


def _is_stablecoin(symbol: str) -> bool:
    return symbol in STABLECOINS or "usd" in symbol or "eur" in symbol


def _is_lp(symbol: str) -> bool:
    return "lp" in symbol or "-" in symbol or "uni-v" in symbol


def _is_vault(symbol: str) -> bool:
    return symbol.startswith("yv") or "vault" in symbol or "4626" in symbol


def classify_token(
    symbol: Optional[str], address: str = "", source: Optional[str] = None
) -> TokenClass:
    """
    Bucket a token by volatility.

    Args:
        symbol: Token symbol, may be empty or None.
        address: Token address (unused by the current heuristics).
        source: Origin tag of the price; share/LP derived sources make
            an otherwise unclassified token LP_VAULT.
    """
    lower = (symbol or "").lower()

    if lower and _is_stablecoin(lower):
        return TokenClass.STABLECOIN
    if lower in MAJOR_TOKENS:
        return TokenClass.MAJOR
    if lower and (_is_lp(lower) or _is_vault(lower)):
        return TokenClass.LP_VAULT
    if source in PriceSource.DERIVED:
        return TokenClass.LP_VAULT
    return TokenClass.OTHER


def ttl_for(token_class: TokenClass) -> float:
    return TTL_BY_CLASS[token_class]
