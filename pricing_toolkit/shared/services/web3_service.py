"""
Web3 Service module for reading on-chain state.

This module provides a Web3Service class that manages one AsyncWeb3
connection per chain and exposes the batched-read capability used by the
multicall aggregator: a Multicall3 ``tryAggregate(false, calls)`` call that
returns a success flag and the raw return data for every call, in order.
"""

from typing import Dict, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from pricing_toolkit.multicall.calls import ContractCall
from pricing_toolkit.shared.constants import (
    GlobalConstants,
    MulticallConstants,
)
from pricing_toolkit.shared.logging import get_logger

logger = get_logger(__name__)

# tryAggregate(bool requireSuccess, (address target, bytes callData)[] calls)
#   returns ((bool success, bytes returnData)[])
TRY_AGGREGATE_SELECTOR = function_signature_to_4byte_selector(
    "tryAggregate(bool,(address,bytes)[])"
)


def encode_try_aggregate(
    calls: Sequence[Tuple[str, bytes]], require_success: bool = False
) -> bytes:
    types = ["bool", "(address,bytes)[]"]
    values = [require_success, [(target, data) for target, data in calls]]
    return TRY_AGGREGATE_SELECTOR + encode(types, values)


def decode_try_aggregate_result(data: bytes) -> List[Tuple[bool, bytes]]:
    return [
        (bool(ok), bytes(ret))
        for ok, ret in decode(["(bool,bytes)[]"], bytes(data))[0]
    ]


class Web3Service:
    """
    A service class for managing Web3 connections and batched reads.

    Instances are cached per chain id; use ``get_instance``.
    """

    _instances: Dict[int, "Web3Service"] = {}

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        request_timeout: float = 30.0,
        multicall_address: str = MulticallConstants.MULTICALL3_ADDRESS,
    ):
        """
        Initialize the Web3Service.

        Args:
            chain_id (int): The chain ID to use.
            rpc_url (str): The RPC URL to use.
            request_timeout (float): Per request transport timeout in seconds.
            multicall_address (str): Multicall3 deployment to call.
        """
        self.chain_id = chain_id
        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": request_timeout}
            )
        )
        self.multicall_address = AsyncWeb3.to_checksum_address(
            multicall_address
        )

    @classmethod
    def get_instance(cls, chain_id: int) -> "Web3Service":
        """Get or create a Web3Service instance for a specific chain"""
        chain_id = int(chain_id)
        if chain_id not in cls._instances:
            rpc_url = GlobalConstants.get_rpc_url(chain_id)
            cls._instances[chain_id] = cls(chain_id, rpc_url)
            logger.info(f"Web3Service initialized for chain {chain_id}")
        return cls._instances[chain_id]

    @classmethod
    def reset_instances(cls) -> None:
        cls._instances.clear()

    async def try_aggregate(
        self, calls: Sequence[ContractCall]
    ) -> List[Tuple[bool, bytes]]:
        """
        Run every call in one eth_call without aborting on reverts.

        Args:
            calls: Calls to bundle, in order.

        Returns:
            One (success, return data) pair per call, in the same order.
        """
        if not calls:
            return []
        payload = encode_try_aggregate(
            [(c.checksum_target, c.encode_call_data()) for c in calls]
        )
        raw = await self.w3.eth.call(
            {"to": self.multicall_address, "data": payload}
        )
        return decode_try_aggregate_result(raw)
