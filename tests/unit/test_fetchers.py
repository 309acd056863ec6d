"""
Unit tests for the built-in price fetchers.

REST sources run against httpx.MockTransport; on-chain sources run through
a real MulticallAggregator backed by a fake batched reader.
"""

import httpx
import pytest
from eth_abi import encode

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
from pricing_toolkit.shared.constants import PriceConstants, PriceSource
from pricing_toolkit.shared.exceptions import (
    ConfigurationException,
    MulticallTransportError,
    SourceUnavailableError,
)
from pricing_toolkit.shared.types import ERC20Token, Price
from pricing_toolkit.utils.rate_limiter import AsyncRateLimiter

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
CRV = "0xd533a949740bb3306d119cc777fa900ba034cd52"
VAULT = "0x3333333333333333333333333333333333333333"
V3_VAULT = "0x4444444444444444444444444444444444444444"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def fake_tokens(count: int, chain_id: int = 1):
    return [
        ERC20Token("0x" + f"{i + 1:040x}", chain_id, f"T{i}") for i in range(count)
    ]


def aggregator_for(reader) -> MulticallAggregator:
    return MulticallAggregator(
        reader_factory=lambda chain_id: reader, retry_base_delay=0.001
    )


class TestDefiLlamaFetcher:
    """Tests for the DefiLlama REST source."""

    @pytest.mark.asyncio
    async def test_parses_prices(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "coins": {
                        "ethereum:0xA0b86991c6218b36c1d19d4a2e9eB0cE3606eB48": {
                            "price": 0.999912,
                            "symbol": "USDC",
                        },
                        "ethereum:" + WETH: {"price": 3012.5},
                    }
                },
            )

        fetcher = DefiLlamaFetcher(client=mock_client(handler))
        tokens = [ERC20Token(USDC, 1, "USDC"), ERC20Token(WETH, 1, "WETH")]
        prices = await fetcher.fetch_prices(1, tokens)

        assert prices == {
            USDC: Price(USDC, 999_912, PriceSource.DEFILLAMA),
            WETH: Price(WETH, 3_012_500_000, PriceSource.DEFILLAMA),
        }
        assert requests[0].url.path == (
            f"/prices/current/ethereum:{USDC},ethereum:{WETH}"
        )

    @pytest.mark.asyncio
    async def test_chunks_of_one_hundred(self):
        sizes = []

        def handler(request):
            sizes.append(request.url.path.count("ethereum:"))
            return httpx.Response(200, json={"coins": {}})

        fetcher = DefiLlamaFetcher(client=mock_client(handler))
        await fetcher.fetch_prices(1, fake_tokens(250))

        assert sorted(sizes) == [50, 100, 100]

    @pytest.mark.asyncio
    async def test_payload_too_large_splits(self):
        sizes = []

        def handler(request):
            size = request.url.path.count("ethereum:")
            sizes.append(size)
            if size > 10:
                return httpx.Response(413)
            coins = {
                key: {"price": 1.0}
                for key in request.url.path.split("/")[-1].split(",")
            }
            return httpx.Response(200, json={"coins": coins})

        fetcher = DefiLlamaFetcher(client=mock_client(handler))
        prices = await fetcher.fetch_prices(1, fake_tokens(20))

        assert sizes == [20, 10, 10]
        assert len(prices) == 20

    @pytest.mark.asyncio
    async def test_partial_chunk_failure(self):
        failing = "0x" + f"{1:040x}"

        def handler(request):
            if failing in request.url.path:
                return httpx.Response(500)
            keys = request.url.path.split("/")[-1].split(",")
            return httpx.Response(
                200, json={"coins": {k: {"price": 2.0} for k in keys}}
            )

        fetcher = DefiLlamaFetcher(client=mock_client(handler))
        prices = await fetcher.fetch_prices(1, fake_tokens(150))

        # First chunk (100 tokens) failed, second one answered
        assert len(prices) == 50

    @pytest.mark.asyncio
    async def test_all_chunks_failing_raises(self):
        fetcher = DefiLlamaFetcher(
            client=mock_client(lambda request: httpx.Response(500))
        )
        with pytest.raises(SourceUnavailableError, match="HTTP 500"):
            await fetcher.fetch_prices(1, fake_tokens(3))

    @pytest.mark.asyncio
    async def test_ajna_priced_from_mainnet(self):
        optimism_ajna = PriceConstants.AJNA_TOKENS[10].lower()
        mainnet_ajna = PriceConstants.AJNA_TOKENS[1].lower()

        def handler(request):
            if "ethereum:" + mainnet_ajna in request.url.path:
                return httpx.Response(
                    200,
                    json={"coins": {"ethereum:" + mainnet_ajna: {"price": 0.0123}}},
                )
            return httpx.Response(200, json={"coins": {}})

        fetcher = DefiLlamaFetcher(client=mock_client(handler))
        prices = await fetcher.fetch_prices(
            10, [ERC20Token(optimism_ajna, 10, "AJNA")]
        )

        assert prices[optimism_ajna].value == 12_300

    @pytest.mark.asyncio
    async def test_unsupported_chain(self):
        fetcher = DefiLlamaFetcher(
            client=mock_client(lambda request: httpx.Response(500))
        )
        assert not fetcher.supports_chain(424242)
        assert await fetcher.fetch_prices(424242, fake_tokens(1)) == {}


class TestCoinGeckoFetcher:
    """Tests for the CoinGecko REST source."""

    @staticmethod
    def fast_limiter():
        return AsyncRateLimiter(rate=1000, burst=10)

    @pytest.mark.asyncio
    async def test_public_endpoint(self, monkeypatch):
        monkeypatch.delenv("COINGECKO_API_KEY", raising=False)
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={USDC: {"usd": 1.0002}, CRV: {"usd": 0}},
            )

        fetcher = CoinGeckoFetcher(
            client=mock_client(handler), rate_limiter=self.fast_limiter()
        )
        prices = await fetcher.fetch_prices(
            1, [ERC20Token(USDC, 1, "USDC"), ERC20Token(CRV, 1, "CRV")]
        )

        assert prices == {USDC: Price(USDC, 1_000_200, PriceSource.COINGECKO)}
        request = requests[0]
        assert request.url.host == "api.coingecko.com"
        assert request.url.path == "/api/v3/simple/token_price/ethereum"
        assert request.url.params["contract_addresses"] == f"{USDC},{CRV}"
        assert request.url.params["vs_currencies"] == "usd"

    @pytest.mark.asyncio
    async def test_pro_endpoint_with_key(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        fetcher = CoinGeckoFetcher(
            api_key="secret",
            client=mock_client(handler),
            rate_limiter=self.fast_limiter(),
        )
        await fetcher.fetch_prices(42161, [ERC20Token(USDC, 42161, "USDC")])

        assert requests[0].url.host == "pro-api.coingecko.com"
        assert requests[0].url.path.endswith("/arbitrum-one")
        assert requests[0].url.params["x_cg_pro_api_key"] == "secret"

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        fetcher = CoinGeckoFetcher(
            api_key="secret",
            client=mock_client(lambda request: httpx.Response(429)),
            rate_limiter=self.fast_limiter(),
        )
        with pytest.raises(SourceUnavailableError, match="rate limited"):
            await fetcher.fetch_prices(1, [ERC20Token(USDC, 1, "USDC")])

    def test_chain_support(self):
        fetcher = CoinGeckoFetcher(api_key="secret")
        assert fetcher.supports_chain(137)
        assert not fetcher.supports_chain(146)


class TestLensOracleFetcher:
    """Tests for the on-chain Lens oracle source."""

    @pytest.mark.asyncio
    async def test_reads_through_aggregator(self, make_reader):
        oracle = PriceConstants.LENS_ORACLE_ADDRESSES[1]
        quotes = {USDC: 1_000_100, WETH: 3_000_000_000}

        def responder(call):
            assert call.target == oracle
            quote = quotes.get(call.args[0])
            return None if quote is None else encode(["uint256"], [quote])

        reader = make_reader(responder)
        fetcher = LensOracleFetcher(aggregator_for(reader))
        prices = await fetcher.fetch_prices(
            1,
            [
                ERC20Token(USDC, 1, "USDC"),
                ERC20Token(WETH, 1, "WETH"),
                ERC20Token(CRV, 1, "CRV"),
            ],
        )

        assert prices == {
            USDC: Price(USDC, 1_000_100, PriceSource.LENS),
            WETH: Price(WETH, 3_000_000_000, PriceSource.LENS),
        }
        assert len(reader.batches) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, make_reader):
        reader = make_reader(failures=3)
        fetcher = LensOracleFetcher(aggregator_for(reader))

        with pytest.raises(MulticallTransportError):
            await fetcher.fetch_prices(1, [ERC20Token(USDC, 1, "USDC")])

    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, make_reader):
        error = ConfigurationException("bad multicall address")
        reader = make_reader(failures=1, error=error)
        fetcher = LensOracleFetcher(aggregator_for(reader))

        with pytest.raises(ConfigurationException):
            await fetcher.fetch_prices(1, [ERC20Token(USDC, 1, "USDC")])
        assert reader.attempts == 1

    @pytest.mark.asyncio
    async def test_all_reverted_is_empty(self, make_reader):
        """Reverts are per-token misses, not a source failure."""
        fetcher = LensOracleFetcher(aggregator_for(make_reader(lambda call: None)))

        assert await fetcher.fetch_prices(1, fake_tokens(3)) == {}

    @pytest.mark.asyncio
    async def test_chain_without_oracle(self, fake_reader):
        fetcher = LensOracleFetcher(aggregator_for(fake_reader))
        assert not fetcher.supports_chain(100)
        assert await fetcher.fetch_prices(100, fake_tokens(1, 100)) == {}


def vault_responder(answers):
    """Answer calls from a {(target, signature): (type, value)} table."""

    def responder(call):
        answer = answers.get((call.target, call.signature.split("(")[0]))
        if answer is None:
            return None
        abi_type, value = answer
        return encode([abi_type], [value])

    return responder


class TestERC4626Fetcher:
    """Tests for the ERC4626 share price source."""

    @pytest.mark.asyncio
    async def test_prices_vault_from_underlying(self, make_reader):
        reader = make_reader(
            vault_responder(
                {
                    (VAULT, "asset"): ("address", USDC),
                    (VAULT, "convertToAssets"): ("uint256", 1_050_000),
                    (USDC, "decimals"): ("uint8", 6),
                }
            )
        )
        fetcher = ERC4626Fetcher(aggregator_for(reader))
        oracle = {USDC: Price(USDC, 1_000_000, PriceSource.DEFILLAMA)}

        prices = await fetcher.fetch_prices(
            1,
            [
                ERC20Token(VAULT, 1, "sdUSDC-vault", "Stake DAO Vault", 6),
                ERC20Token(CRV, 1, "CRV"),
            ],
            oracle,
        )

        assert prices == {VAULT: Price(VAULT, 1_050_000, PriceSource.ERC4626)}
        # asset() first, then convertToAssets and decimals share one batch
        assert [len(b) for b in reader.batches] == [1, 2]
        convert = reader.batches[1][0]
        assert convert.args == (10**6,)

    @pytest.mark.asyncio
    async def test_unpriced_asset_skipped(self, make_reader):
        reader = make_reader(
            vault_responder({(VAULT, "asset"): ("address", WETH)})
        )
        fetcher = ERC4626Fetcher(aggregator_for(reader))
        oracle = {USDC: Price(USDC, 1_000_000, PriceSource.DEFILLAMA)}

        prices = await fetcher.fetch_prices(
            1, [ERC20Token(VAULT, 1, "av4626")], oracle
        )

        assert prices == {}
        assert len(reader.batches) == 1

    @pytest.mark.asyncio
    async def test_without_oracle_does_nothing(self, fake_reader):
        fetcher = ERC4626Fetcher(aggregator_for(fake_reader))
        assert fetcher.requires_oracle
        assert await fetcher.fetch_prices(1, [ERC20Token(VAULT, 1, "yvX")]) == {}
        assert fake_reader.batches == []


class TestYearnVaultFetcher:
    """Tests for the Yearn v2/v3 vault source."""

    @pytest.mark.asyncio
    async def test_v2_and_v3_vaults(self, make_reader):
        reader = make_reader(
            vault_responder(
                {
                    (VAULT, "pricePerShare"): ("uint256", 11 * 10**17),
                    (VAULT, "token"): ("address", WETH),
                    (V3_VAULT, "convertToAssets"): ("uint256", 102 * 10**16),
                    (V3_VAULT, "asset"): ("address", WETH),
                }
            )
        )
        fetcher = YearnVaultFetcher(aggregator_for(reader))
        oracle = {WETH: Price(WETH, 3_000_000_000, PriceSource.DEFILLAMA)}

        prices = await fetcher.fetch_prices(
            1,
            [
                ERC20Token(VAULT, 1, "yvWETH", "WETH yVault", 18),
                ERC20Token(V3_VAULT, 1, "yvWETH-1", "WETH-1 yVault", 18),
                ERC20Token(CRV, 1, "CRV"),
            ],
            oracle,
        )

        assert prices == {
            VAULT: Price(VAULT, 3_300_000_000, PriceSource.YEARN_VAULT),
            V3_VAULT: Price(V3_VAULT, 3_060_000_000, PriceSource.YEARN_VAULT),
        }

    @pytest.mark.asyncio
    async def test_unknown_underlying(self, make_reader):
        reader = make_reader(
            vault_responder(
                {
                    (VAULT, "pricePerShare"): ("uint256", 10**18),
                    (VAULT, "token"): ("address", CRV),
                }
            )
        )
        fetcher = YearnVaultFetcher(aggregator_for(reader))
        oracle = {WETH: Price(WETH, 3_000_000_000, PriceSource.DEFILLAMA)}

        prices = await fetcher.fetch_prices(
            1, [ERC20Token(VAULT, 1, "yvCRV")], oracle
        )
        assert prices == {}


class TestVelodromeFetcher:
    """Tests for the Velodrome / Aerodrome Sugar oracle source."""

    OP = "0x4200000000000000000000000000000000000042"
    VELO = "0x9560e827af36c94d2ac33a39bce1fe78631088db"
    POOL = "0x5555555555555555555555555555555555555555"

    @pytest.mark.asyncio
    async def test_rates_scaled_to_six_decimals(self, make_reader):
        oracle = PriceConstants.SUGAR_ORACLE_ADDRESSES[10]
        rates = {self.OP: 1_850_000_000_000_000_000, self.VELO: 0}
        seen = []

        def responder(call):
            assert call.target == oracle
            length, connectors = call.args
            seen.append((length, connectors[:length]))
            return encode(
                ["uint256[]"], [[rates.get(a, 0) for a in connectors[:length]]]
            )

        fetcher = VelodromeFetcher(aggregator_for(make_reader(responder)))
        prices = await fetcher.fetch_prices(
            10,
            [
                ERC20Token(self.OP, 10, "OP"),
                ERC20Token(self.VELO, 10, "VELO"),
                ERC20Token(self.POOL, 10, "vAMM-OP/USDC"),
            ],
        )

        assert prices == {
            self.OP: Price(self.OP, 1_850_000, PriceSource.VELODROME)
        }
        # LP tokens are never sent to the oracle
        assert seen == [(2, [self.OP, self.VELO])]

    @pytest.mark.asyncio
    async def test_batches_and_base_source_tag(self, make_reader):
        def responder(call):
            length, _ = call.args
            return encode(["uint256[]"], [[10**18] * length])

        reader = make_reader(responder)
        fetcher = VelodromeFetcher(aggregator_for(reader), batch_size=10)
        tokens = fake_tokens(25, chain_id=8453)

        prices = await fetcher.fetch_prices(8453, tokens)

        assert len(prices) == 25
        assert {p.source for p in prices.values()} == {PriceSource.AERODROME}
        assert all(p.value == 1_000_000 for p in prices.values())
        assert [call.args[0] for call in reader.batches[0]] == [10, 10, 5]

    @pytest.mark.asyncio
    async def test_reverted_batch_only_loses_its_tokens(self, make_reader):
        def responder(call):
            length, connectors = call.args
            if fake_tokens(1, 10)[0].address in connectors[:length]:
                return None
            return encode(["uint256[]"], [[2 * 10**18] * length])

        fetcher = VelodromeFetcher(
            aggregator_for(make_reader(responder)), batch_size=2
        )
        prices = await fetcher.fetch_prices(10, fake_tokens(4, chain_id=10))

        assert len(prices) == 2

    @pytest.mark.asyncio
    async def test_only_optimism_and_base(self, fake_reader):
        fetcher = VelodromeFetcher(aggregator_for(fake_reader))
        assert fetcher.supports_chain(10)
        assert fetcher.supports_chain(8453)
        assert not fetcher.supports_chain(1)
        assert await fetcher.fetch_prices(1, fake_tokens(2)) == {}


class TestCurveAmmFetcher:
    """Tests for the Curve virtual price source."""

    @pytest.mark.asyncio
    async def test_virtual_price_scaled(self, make_reader):
        lp = fake_tokens(2)

        def responder(call):
            assert call.signature == "get_virtual_price()(uint256)"
            if call.target == lp[0].address:
                return encode(["uint256"], [1_023_456_789_000_000_000])
            return None

        fetcher = CurveAmmFetcher(aggregator_for(make_reader(responder)))
        prices = await fetcher.fetch_prices(1, lp)

        assert prices == {
            lp[0].address: Price(lp[0].address, 1_023_456, PriceSource.CURVE_AMM)
        }

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, make_reader):
        fetcher = CurveAmmFetcher(aggregator_for(make_reader(failures=3)))

        with pytest.raises(MulticallTransportError):
            await fetcher.fetch_prices(1, fake_tokens(2))
