"""
Pricing utilities: fixed-point conversions and the wire format.

Prices travel as integers scaled by 10**6 (USD with 6 decimals).
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Dict, Mapping, Union

from eth_utils import to_checksum_address

from pricing_toolkit.shared.constants import PriceConstants
from pricing_toolkit.shared.types import Price, PriceResponse


def parse_units(
    value: Union[str, int, float, Decimal],
    decimals: int = PriceConstants.PRICE_DECIMALS,
) -> int:
    """
    Convert a human readable amount to a fixed-point integer.

    Extra precision is truncated. Invalid, negative or non finite values
    give 0.

    Example:
        parse_units("1.5", 6) == 1500000
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0
    if not amount.is_finite() or amount < 0:
        return 0
    scaled = amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def format_units(value: int, decimals: int = PriceConstants.PRICE_DECIMALS) -> str:
    """Inverse of parse_units, without trailing zeros."""
    sign = "-" if value < 0 else ""
    integer, remainder = divmod(abs(value), 10**decimals)
    if remainder == 0:
        return f"{sign}{integer}"
    fraction = str(remainder).rjust(decimals, "0").rstrip("0")
    return f"{sign}{integer}.{fraction}"


def humanize_price(
    value: int, decimals: int = PriceConstants.PRICE_DECIMALS
) -> float:
    return float(format_units(value, decimals))


def to_price_response(price: Price) -> PriceResponse:
    """Wire shape of one price: checksummed address, fixed-point string."""
    return PriceResponse(
        address=to_checksum_address(price.address),
        price=str(price.value),
        source=price.source,
    )


def format_price_map(prices: Mapping[str, Price]) -> Dict[str, PriceResponse]:
    """Wire shape of a resolved map, keyed by lowercase address."""
    return {
        address.lower(): to_price_response(price)
        for address, price in prices.items()
    }
