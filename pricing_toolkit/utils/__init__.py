from .pricing import (
    format_price_map,
    format_units,
    humanize_price,
    parse_units,
    to_price_response,
)
from .rate_limiter import AsyncRateLimiter

__all__ = [
    "AsyncRateLimiter",
    "format_price_map",
    "format_units",
    "humanize_price",
    "parse_units",
    "to_price_response",
]
