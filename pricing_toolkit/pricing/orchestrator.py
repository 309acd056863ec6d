"""
Price resolution across all configured sources.

Resolution runs in phases:

1. Seed prices supplied by the caller.
2. Fresh cache entries.
3. Independent fetchers, concurrently, on the tokens still missing.
4. Dependent fetchers, concurrently, on the tokens still missing, each
   reading the prices resolved so far as an oracle.

A price once in the map is never replaced during the call. Within a phase
the first fetcher to complete claims an address. A failing or timed out
fetcher only loses its own contribution.
"""

import asyncio
import time
from types import MappingProxyType
from typing import (
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from pricing_toolkit.cache import PriceCache
from pricing_toolkit.fetchers.base import PriceFetcher
from pricing_toolkit.shared.constants import GlobalConstants, PriceConstants
from pricing_toolkit.shared.exceptions import (
    SourceUnavailableError,
    UnsupportedChainError,
)
from pricing_toolkit.shared.logging import get_logger
from pricing_toolkit.shared.results import (
    ErrorSeverity,
    ProcessingError,
    ResolutionSummary,
)
from pricing_toolkit.shared.types import ERC20Token, Price, ResolvedMap

logger = get_logger(__name__)

FetchOutcome = Tuple[PriceFetcher, Dict[str, Price], Optional[BaseException]]


class PriceFetcherOrchestrator:
    """Resolves token prices from the cache and a set of fetchers."""

    def __init__(
        self,
        cache: PriceCache,
        independent_fetchers: Sequence[PriceFetcher] = (),
        dependent_fetchers: Sequence[PriceFetcher] = (),
        supported_chains: Optional[Iterable[int]] = None,
        fetcher_timeout: Optional[float] = PriceConstants.FETCHER_TIMEOUT,
    ):
        """
        Args:
            cache: Shared price cache, read first and written with every
                newly resolved price.
            independent_fetchers: Sources that only need the token list.
            dependent_fetchers: Sources that price tokens from the prices
                of other tokens.
            supported_chains: Accepted chain ids (default: all known chains).
            fetcher_timeout: Outer timeout per fetcher call in seconds,
                None to disable.
        """
        self.cache = cache
        self.independent_fetchers = list(independent_fetchers)
        self.dependent_fetchers = list(dependent_fetchers)
        self.supported_chains = frozenset(
            supported_chains
            if supported_chains is not None
            else GlobalConstants.CHAIN_NAMES
        )
        self.fetcher_timeout = fetcher_timeout

    async def resolve_prices(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        seed_prices: Optional[Mapping[str, Price]] = None,
    ) -> ResolvedMap:
        """
        Resolve prices for ``tokens`` on ``chain_id``.

        Returns:
            Prices keyed by lowercase address. Tokens no source could price
            are absent.

        Raises:
            UnsupportedChainError: ``chain_id`` is not supported.
        """
        prices, _ = await self.resolve_with_summary(chain_id, tokens, seed_prices)
        return prices

    async def resolve_with_summary(
        self,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        seed_prices: Optional[Mapping[str, Price]] = None,
    ) -> Tuple[ResolvedMap, ResolutionSummary]:
        """Same as ``resolve_prices``, also returning what each phase did."""
        chain_id = int(chain_id)
        if chain_id not in self.supported_chains:
            raise UnsupportedChainError(chain_id)

        start = time.monotonic()
        unique = _dedupe(tokens)
        summary = ResolutionSummary(chain_id=chain_id, requested=len(unique))
        symbols = {t.address: t.symbol for t in unique}

        prices: ResolvedMap = {}
        for address, price in (seed_prices or {}).items():
            prices[address.lower()] = price
        summary.seeded = len(prices)

        cached = self.cache.get_many(
            chain_id, [t.address for t in unique if t.address not in prices]
        )
        prices.update(cached)
        summary.cache_hits = len(cached)

        missing = [t for t in unique if t.address not in prices]
        if cached:
            logger.info(
                f"Cache returned {len(cached)} prices for chain {chain_id}, "
                f"{len(missing)} remaining"
            )

        if missing:
            summary.independent_resolved = await self._run_phase(
                "independent",
                self.independent_fetchers,
                chain_id,
                missing,
                prices,
                symbols,
                summary,
                oracle=None,
            )
            missing = [t for t in unique if t.address not in prices]

        if missing:
            summary.dependent_resolved = await self._run_phase(
                "dependent",
                self.dependent_fetchers,
                chain_id,
                missing,
                prices,
                symbols,
                summary,
                oracle=MappingProxyType(dict(prices)),
            )
            missing = [t for t in unique if t.address not in prices]

        summary.unresolved = len(missing)
        logger.info(
            f"Resolved {summary.resolved - summary.seeded}/{summary.requested} "
            f"prices on chain {chain_id} in {time.monotonic() - start:.2f}s "
            f"({summary.unresolved} unresolved, "
            f"{len(summary.errors)} failing sources)"
        )
        return prices, summary

    async def _run_phase(
        self,
        phase: str,
        fetchers: Sequence[PriceFetcher],
        chain_id: int,
        missing: List[ERC20Token],
        prices: ResolvedMap,
        symbols: Mapping[str, str],
        summary: ResolutionSummary,
        oracle: Optional[Mapping[str, Price]],
    ) -> int:
        """Run one phase and merge its results into ``prices``."""
        active = [f for f in fetchers if f.supports_chain(chain_id)]
        if not active:
            return 0

        wanted = {t.address for t in missing}
        accepted = 0
        tasks = [
            asyncio.ensure_future(
                self._run_fetcher(fetcher, chain_id, missing, oracle)
            )
            for fetcher in active
        ]
        summary.fetchers_run.extend(f.name for f in active)

        try:
            for next_done in asyncio.as_completed(tasks):
                fetcher, result, error = await next_done
                if error is not None:
                    summary.add_error(
                        ProcessingError(
                            source=fetcher.name,
                            message=str(error) or type(error).__name__,
                            severity=ErrorSeverity.ERROR,
                            context={"chain_id": chain_id, "phase": phase},
                            exception=error,
                        )
                    )
                    continue

                new_prices = {}
                for address, price in result.items():
                    address = address.lower()
                    if (
                        address in wanted
                        and address not in prices
                        and price.value > 0
                    ):
                        prices[address] = price
                        new_prices[address] = price
                if new_prices:
                    self.cache.set_many(chain_id, new_prices, symbols)
                    accepted += len(new_prices)
                    logger.info(
                        f"{fetcher.name} returned {len(new_prices)} new prices "
                        f"on chain {chain_id}"
                    )
        finally:
            for task in tasks:
                task.cancel()

        return accepted

    async def _run_fetcher(
        self,
        fetcher: PriceFetcher,
        chain_id: int,
        tokens: Sequence[ERC20Token],
        oracle: Optional[Mapping[str, Price]],
    ) -> FetchOutcome:
        try:
            call = fetcher.fetch_prices(chain_id, tokens, oracle)
            if self.fetcher_timeout is not None:
                result = await asyncio.wait_for(call, self.fetcher_timeout)
            else:
                result = await call
        except asyncio.TimeoutError as e:
            logger.error(
                f"{fetcher.name} timed out after {self.fetcher_timeout}s "
                f"on chain {chain_id}"
            )
            return fetcher, {}, e
        except Exception as e:
            logger.error(f"{fetcher.name} failed on chain {chain_id}: {e}")
            return fetcher, {}, e
        if result is None:
            return fetcher, {}, None
        if not _is_price_map(result):
            logger.error(
                f"{fetcher.name} returned malformed data on chain {chain_id}: "
                f"{type(result).__name__}"
            )
            return (
                fetcher,
                {},
                SourceUnavailableError(fetcher.name, "malformed response"),
            )
        return fetcher, dict(result), None


def _is_price_map(result) -> bool:
    if not isinstance(result, Mapping):
        return False
    return all(
        isinstance(address, str)
        and isinstance(price, Price)
        and isinstance(price.value, int)
        for address, price in result.items()
    )


def _dedupe(tokens: Sequence[ERC20Token]) -> List[ERC20Token]:
    seen = set()
    unique = []
    for token in tokens:
        if token.address not in seen:
            seen.add(token.address)
            unique.append(token)
    return unique


def build_default_orchestrator(
    cache: Optional[PriceCache] = None,
    aggregator=None,
) -> PriceFetcherOrchestrator:
    """Wire the orchestrator with every built-in price source."""
    from pricing_toolkit.fetchers import (
        CoinGeckoFetcher,
        CurveAmmFetcher,
        DefiLlamaFetcher,
        ERC4626Fetcher,
        LensOracleFetcher,
        VelodromeFetcher,
        YearnVaultFetcher,
    )
    from pricing_toolkit.multicall import MulticallAggregator

    cache = cache if cache is not None else PriceCache()
    aggregator = aggregator if aggregator is not None else MulticallAggregator()
    return PriceFetcherOrchestrator(
        cache,
        independent_fetchers=[
            LensOracleFetcher(aggregator),
            VelodromeFetcher(aggregator),
            DefiLlamaFetcher(),
            CoinGeckoFetcher(),
        ],
        dependent_fetchers=[
            ERC4626Fetcher(aggregator),
            YearnVaultFetcher(aggregator),
            CurveAmmFetcher(aggregator),
        ],
    )
