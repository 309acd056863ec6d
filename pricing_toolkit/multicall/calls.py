"""
Contract call descriptors for batched reads.

A call is described by a human readable signature carrying both the input
and the output types, e.g. ``"balanceOf(address)(uint256)"``. The input part
gives the 4-byte selector and the calldata encoding, the output part is used
to decode the raw return data of the call.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address


def _closing_paren(text: str, start: int) -> int:
    depth = 0
    for idx in range(start, len(text)):
        if text[idx] == "(":
            depth += 1
        elif text[idx] == ")":
            depth -= 1
            if depth == 0:
                return idx
    raise ValueError(f"Unbalanced parentheses in signature: {text}")


def _split_types(types: str) -> Tuple[str, ...]:
    """Split a comma separated type list, keeping tuple types whole."""
    out: List[str] = []
    current: List[str] = []
    depth = 0
    for ch in types:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            out.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        out.append(tail)
    return tuple(out)


@lru_cache(maxsize=1024)
def parse_signature(signature: str) -> Tuple[str, Tuple[str, ...], Tuple[str, ...]]:
    """
    Parse ``name(inputs)(outputs)`` into its parts.

    Returns:
        (function name, input types, output types)
    """
    signature = signature.replace(" ", "")
    open_idx = signature.find("(")
    if open_idx <= 0:
        raise ValueError(f"Invalid call signature: {signature}")

    name = signature[:open_idx]
    close_idx = _closing_paren(signature, open_idx)
    inputs = _split_types(signature[open_idx + 1 : close_idx])

    rest = signature[close_idx + 1 :]
    if not rest:
        return name, inputs, ()
    if not (rest.startswith("(") and rest.endswith(")")):
        raise ValueError(f"Invalid output types in signature: {signature}")
    if _closing_paren(rest, 0) != len(rest) - 1:
        raise ValueError(f"Invalid output types in signature: {signature}")
    return name, inputs, _split_types(rest[1:-1])


@lru_cache(maxsize=1024)
def _selector(name: str, inputs: Tuple[str, ...]) -> bytes:
    return function_signature_to_4byte_selector(f"{name}({','.join(inputs)})")


@dataclass(frozen=True)
class ContractCall:
    """One read-only call: target contract, signature and arguments."""

    target: str
    signature: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        # Validates the signature early, at construction time
        parse_signature(self.signature)
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def checksum_target(self) -> str:
        return to_checksum_address(self.target)

    def encode_call_data(self) -> bytes:
        """Selector followed by the ABI encoded arguments."""
        name, inputs, _ = parse_signature(self.signature)
        if len(inputs) != len(self.args):
            raise ValueError(
                f"{self.signature} expects {len(inputs)} arguments, "
                f"got {len(self.args)}"
            )
        return _selector(name, inputs) + encode(list(inputs), list(self.args))

    def decode_output(self, data: bytes) -> Any:
        """
        Decode the raw return data of this call.

        A single output type is unwrapped, several outputs come back as a
        tuple, no output type returns None.
        """
        _, _, outputs = parse_signature(self.signature)
        if not outputs:
            return None
        values = decode(list(outputs), bytes(data))
        if len(outputs) == 1:
            return values[0]
        return tuple(values)


def build_calls(
    targets: Sequence[str], signature: str, args: Sequence[Any] = ()
) -> List[ContractCall]:
    """Same call on many targets."""
    return [ContractCall(target, signature, tuple(args)) for target in targets]
