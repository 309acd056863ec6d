"""
Price fetcher interface.

A fetcher turns a token list into prices for the tokens it knows about.
Independent fetchers only look at the tokens; dependent fetchers also read
the prices already resolved for other tokens (``price_oracle``), e.g. to
price a vault share from its underlying asset.
"""

from abc import ABC, abstractmethod
from typing import (
    Dict,
    FrozenSet,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from pricing_toolkit.shared.constants import PriceSource
from pricing_toolkit.shared.exceptions import (
    CallRevertedError,
    MulticallTransportError,
    NonRetryableException,
)
from pricing_toolkit.shared.types import CallResult, ERC20Token, Price

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def raise_if_unreachable(results: Sequence[CallResult]) -> None:
    """Re-raise the batch error when no on-chain read got through at all."""
    errors = [
        r.error
        for r in results
        if isinstance(r.error, (MulticallTransportError, NonRetryableException))
        and not isinstance(r.error, CallRevertedError)
    ]
    if errors and len(errors) == len(results):
        raise errors[-1]


class PriceFetcher(ABC):
    """Base class of every price source."""

    #: Source tag, also used in logs and summaries
    name: str = PriceSource.UNKNOWN
    #: True for fetchers that need the current prices as an oracle
    requires_oracle: bool = False
    #: Chains the source can price, None for all
    supported_chains: Optional[FrozenSet[int]] = None

    def supports_chain(self, chain_id: int) -> bool:
        return (
            self.supported_chains is None
            or int(chain_id) in self.supported_chains
        )

    @abstractmethod
    async def fetch_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        price_oracle: Optional[Mapping[str, Price]] = None,
    ) -> Dict[str, Price]:
        """
        Fetch prices for ``tokens``.

        Returns:
            Prices keyed by lowercase address; unknown tokens are left out.

        Raises:
            SourceUnavailableError: The whole source could not be used.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
