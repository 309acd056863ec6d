"""
Logging for the pricing toolkit.

Every module logs through ``get_logger(__name__)``. Settings, read when a
logger is first created:

    PRICING_LOG_LEVEL            level of every toolkit logger (default INFO)
    PRICING_MULTICALL_LOG_LEVEL  level of the ``pricing_toolkit.multicall``
                                 loggers only, which log one line per batch
                                 at DEBUG

Log lines carry the chain id and the price source in the message, e.g.
``defillama returned 12 new prices on chain 1``.
"""

import logging
import os
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_MULTICALL_PREFIX = "pricing_toolkit.multicall"


def _level_from_env(name: str) -> int:
    variable = "PRICING_LOG_LEVEL"
    if name.startswith(_MULTICALL_PREFIX) and os.getenv(
        "PRICING_MULTICALL_LOG_LEVEL"
    ):
        variable = "PRICING_MULTICALL_LOG_LEVEL"
    level_str = os.getenv(variable, "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger with a single console handler, configured once per name."""
    name = name if name else __name__
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(_level_from_env(name))

    return logger
