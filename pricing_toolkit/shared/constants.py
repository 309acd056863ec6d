"""All constants for the project"""

import os

from dotenv import load_dotenv

from pricing_toolkit.shared.exceptions import (
    ConfigurationException,
    UnsupportedChainError,
)

load_dotenv()


class GlobalConstants:
    """Global class constants for the project"""

    CHAIN_NAMES = {
        1: "ethereum",
        10: "optimism",
        100: "gnosis",
        137: "polygon",
        146: "sonic",
        250: "fantom",
        8453: "base",
        42161: "arbitrum",
        747474: "katana",
    }

    CHAIN_ID_TO_RPC = {
        chain_id: os.getenv(f"RPC_URI_FOR_{chain_id}") or None
        for chain_id in CHAIN_NAMES
    }

    ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

    @staticmethod
    def get_rpc_url(chain_id: int) -> str:
        """Get RPC URL for specified chain"""
        chain_id = int(chain_id)
        if chain_id not in GlobalConstants.CHAIN_NAMES:
            raise UnsupportedChainError(chain_id)

        rpc_url = GlobalConstants.CHAIN_ID_TO_RPC.get(chain_id)
        if not rpc_url:
            raise ConfigurationException(
                f"RPC URL not set for chain {chain_id} "
                f"(expected RPC_URI_FOR_{chain_id})"
            )

        return rpc_url


class MulticallConstants:
    """Batching layer settings"""

    # Multicall3, same address on every supported chain
    MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

    BATCH_SIZE = int(os.getenv("PRICING_MULTICALL_BATCH_SIZE", "500"))
    QUEUE_WINDOW = float(os.getenv("PRICING_MULTICALL_WINDOW", "0.01"))
    MAX_RETRIES = int(os.getenv("PRICING_MULTICALL_MAX_RETRIES", "3"))
    RETRY_BASE_DELAY = float(
        os.getenv("PRICING_MULTICALL_RETRY_DELAY", "0.1")
    )
    MAX_CONCURRENT_BATCHES = int(
        os.getenv("PRICING_MULTICALL_CONCURRENCY", "10")
    )


class CacheConstants:
    """TTL policy of the price cache, in seconds"""

    TTL_STABLECOIN = 5 * 60
    TTL_MAJOR = 60
    TTL_LP_VAULT = 30
    TTL_DEFAULT = 2 * 60

    CLEANUP_INTERVAL = 60


class PriceConstants:
    """Price sources related constants"""

    PRICE_DECIMALS = 6

    FETCHER_TIMEOUT = float(os.getenv("PRICING_FETCHER_TIMEOUT", "60"))

    LLAMA_CHAIN_NAMES = {
        1: "ethereum",
        10: "optimism",
        100: "xdai",
        137: "polygon",
        146: "sonic",
        250: "fantom",
        8453: "base",
        42161: "arbitrum",
        747474: "katana",
    }

    GECKO_CHAIN_NAMES = {
        1: "ethereum",
        10: "optimistic-ethereum",
        100: "xdai",
        137: "polygon-pos",
        250: "fantom",
        8453: "base",
        42161: "arbitrum-one",
    }

    LENS_ORACLE_ADDRESSES = {
        1: "0x83d95e0D5f402511dB06817Aff3f9eA88224B030",
        10: "0xB082d9f4734c535D9d80536F7E87a6f4F471bF65",
        250: "0x57AA88A0810dfe3f9b71a9b179Dd8bF5F956C46A",
        8453: "0xE0F3D78DB7bC111996864A32d22AB0F59Ca5Fa86",
        42161: "0x043518AB266485dC085a1DB095B8d9C2Fc78E9b9",
    }

    # Velodrome (Optimism) and Aerodrome (Base) Sugar oracles
    SUGAR_ORACLE_ADDRESSES = {
        10: "0xca97e5653d775ca689bed5d0b4164b7656677011",
        8453: "0xb98fb4c9c99de155ccbf5a14af0dbbad96033d6f",
    }

    # Tokens per getManyRatesWithConnectors call
    SUGAR_BATCH_SIZE = 10

    # Routing tokens appended after the priced tokens
    SUGAR_RATE_CONNECTORS = {
        10: (
            "0x9560e827af36c94d2ac33a39bce1fe78631088db",
            "0x4200000000000000000000000000000000000042",
            "0x4200000000000000000000000000000000000006",
            "0x9bcef72be871e61ed4fbbc7630889bee758eb81d",
            "0x2e3d870790dc77a83dd1d18184acc7439a53f475",
            "0x8c6f28f2f1a3c87f0f938b96d27520d9751ec8d9",
            "0x1f32b1c2345538c0c6f582fcb022739c4a194ebb",
            "0xbfd291da8a403daaf7e5e9dc1ec0aceacd4848b9",
            "0xc3864f98f2a61a7caeb95b039d031b4e2f55e0e9",
            "0x9485aca5bbbe1667ad97c7fe7c4531a624c8b1ed",
            "0xda10009cbd5d07dd0cecc66161fc93d7c9000da1",
            "0x73cb180bf0521828d8849bc8cf2b920918e23032",
            "0x6806411765af15bddd26f8f544a34cc40cb9838b",
            "0x6c2f7b6110a37b3b0fbdd811876be368df02e8b0",
            "0xc5b001dc33727f8f26880b184090d3e252470d45",
            "0x6c84a8f1c29108f47a79964b5fe888d4f4d0de40",
            "0xc40f949f8a4e094d1b49a23ea9241d289b7b2819",
            "0x94b008aa00579c1307b0ef2c499ad98a8ce58e58",
            "0x0b2c639c533813f4aa9d7837caf62653d097ff85",
            "0x7f5c764cbc14f9669b88837ca1490cca17c31607",
        ),
        8453: (
            "0xbf1aea8670d2528e08334083616dd9c5f3b087ae",
            "0xe3b53af74a4bf62ae5511055290838050bf764df",
            "0xf544251d25f3d243a36b07e7e7962a678f952691",
            "0x4a3a6dd60a34bb2aba60d73b4c88315e9ceb6a3d",
            "0xc5102fe9359fd9a28f877a67e36b0f050d81a3cc",
            "0x65a2508c429a6078a7bc2f7df81ab575bd9d9275",
            "0xb79dd08ea68a908a97220c76d19a6aa9cbde4376",
            "0xde5ed76e7c05ec5e4572cfc88d1acea165109e44",
            "0x50c5725949a6f0c72e6c4a641f24049a917db0cb",
            "0x940181a94a35a4569e4529a3cdfb74e38fd98631",
            "0x9e53e88dcff56d3062510a745952dec4cefdff9e",
            "0xba5e6fa2f33f3955f0cef50c63dcc84861eab663",
            "0x8901cb2e82cc95c01e42206f8d1f417fe53e7af0",
            "0x2ae3f1ec7f1f5012cfeab0185bfc7aa3cf0dec22",
            "0x9483ab65847a447e36d21af1cab8c87e9712ff93",
            "0x74ccbe53f77b08632ce0cb91d3a545bf6b8e0979",
            "0xff8adec2221f9f4d8dfbafa6b9a297d17603493d",
            "0xf34e0cff046e154cafcae502c7541b9e5fd8c249",
            "0xa61beb4a3d02decb01039e378237032b351125b4",
            "0x22a2488fe295047ba13bd8cccdbc8361dbd8cf7c",
            "0xc142171b138db17a1b7cb999c44526094a4dae05",
            "0x12063cc18a7096d170e5fc410d8623ad97ee24b3",
            "0xc19669a405067927865b40ea045a2baabbbe57f5",
            "0x9cbd543f1b1166b2df36b68eb6bb1dce24e6abdf",
            "0x9cc2fc2f75768b0307925c7935396ec9d94bba44",
            "0x8ae125e8653821e851f12a49f7765db9a9ce7384",
            "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
            "0x96e890c6b2501a69cad5dba402bfb871a2a2874c",
            "0xeb466342c4d449bc9f53a865d5cb90586f405215",
            "0xa3d1a8deb97b111454b294e2324efad13a9d8396",
            "0x4621b7a9c75199271f773ebd9a499dbd165c3191",
            "0x4200000000000000000000000000000000000006",
            "0xf7a0dd3317535ec4f4d29adf9d620b3d8d5d5069",
            "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca",
        ),
    }

    # Ajna is priced from its mainnet listing on every chain
    AJNA_TOKENS = {
        1: "0x9a96ec9B57Fb64FbC60B423d1f4da7691Bd35079",
        10: "0x6c518f9D1a163379235816c543E62922a79863Fa",
        100: "0x67Ee2155601e168F7777F169Cd74f3E22BB5E0cE",
        137: "0xA63b19647787Da652D0826424460D1BBf43Bf9c6",
        8453: "0xf0f326af3b1Ed943ab95C29470730CC8Cf66ae47",
        42161: "0xA98c94d67D9dF259Bee2E7b519dF75aB00E3E2A8",
    }


class PriceSource:
    """Origin tags carried by every price"""

    DEFILLAMA = "defillama"
    COINGECKO = "coingecko"
    LENS = "lens"
    VELODROME = "velodrome-oracle"
    AERODROME = "aerodrome-oracle"
    ERC4626 = "erc4626"
    YEARN_VAULT = "yearn-vault"
    CURVE_AMM = "curve-amm"
    GAMMA = "gamma"
    PENDLE = "pendle"
    UNKNOWN = "unknown"

    # Sources whose price is derived from a share price or two LP legs
    DERIVED = frozenset({ERC4626, YEARN_VAULT, CURVE_AMM, GAMMA, PENDLE})
