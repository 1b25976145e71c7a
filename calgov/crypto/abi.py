"""
ABI Encoding and Identifier Hashing

Ethereum-compatible selectors, call data, contract addresses and the
deterministic identifiers (proposal ids, timelock operation ids) derived
from them.
"""

from typing import Any, List, Sequence, Tuple

import rlp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from ..exceptions import InvalidCalldata, InvalidParameter


def normalize_address(address: str) -> str:
    """
    Return the EIP-55 checksum form of *address*.

    Raises:
        InvalidParameter: if *address* is not a 20-byte hex address
    """
    try:
        return to_checksum_address(address)
    except (ValueError, TypeError) as e:
        raise InvalidParameter(f"Invalid address: {address!r}") from e


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Deployer address (0x-prefixed)
        nonce: Deployer nonce

    Returns:
        Contract address (checksum format)
    """
    sender_bytes = bytes.fromhex(normalize_address(sender)[2:])
    hash_bytes = keccak(rlp.encode([sender_bytes, nonce]))
    return to_checksum_address('0x' + hash_bytes[-20:].hex())


def parse_signature(function_signature: str) -> Tuple[str, List[str]]:
    """
    Split "transfer(address,uint256)" into ("transfer", ["address", "uint256"]).
    """
    args_start = function_signature.index('(')
    args_end = function_signature.rindex(')')
    name = function_signature[:args_start]
    arg_types_str = function_signature[args_start + 1:args_end]
    if not arg_types_str:
        return name, []
    return name, [t.strip() for t in arg_types_str.split(',')]


def compute_function_selector(function_signature: str) -> bytes:
    """
    Compute Ethereum function selector (first 4 bytes of keccak256(sig)).

    Args:
        function_signature: Function signature like "addAllowed(address,uint256)"

    Returns:
        4-byte function selector
    """
    return keccak(text=function_signature)[:4]


def encode_function_call(function_signature: str, *args) -> bytes:
    """
    Encode function call data (selector + ABI-encoded arguments).

    Args:
        function_signature: Function signature
        *args: Function arguments

    Returns:
        Encoded call data
    """
    selector = compute_function_selector(function_signature)
    _, arg_types = parse_signature(function_signature)
    if len(arg_types) != len(args):
        raise InvalidParameter(
            f"{function_signature} expects {len(arg_types)} arguments, got {len(args)}"
        )
    if not arg_types:
        return selector
    return selector + encode(arg_types, list(args))


def decode_function_call(data: bytes) -> Tuple[bytes, bytes]:
    """
    Split call data into selector and encoded arguments.

    Returns:
        Tuple of (selector, arguments); empty selector for short data
    """
    if len(data) < 4:
        return b'', b''
    return data[:4], data[4:]


def decode_arguments(arg_types: Sequence[str], payload: bytes) -> Tuple[Any, ...]:
    """
    Decode ABI-encoded arguments, normalizing addresses to checksum form.

    Raises:
        InvalidCalldata: if *payload* does not decode as *arg_types*
    """
    if not arg_types:
        return ()
    try:
        values = decode(list(arg_types), payload)
    except (DecodingError, ValueError) as e:
        raise InvalidCalldata(f"Cannot decode arguments as {list(arg_types)}: {e}") from e
    return tuple(_normalize_decoded(t, v) for t, v in zip(arg_types, values))


def _normalize_decoded(arg_type: str, value: Any) -> Any:
    if arg_type == 'address':
        return to_checksum_address(value)
    if arg_type == 'address[]':
        return [to_checksum_address(v) for v in value]
    if arg_type.endswith('[]'):
        return list(value)
    return value


# ── Identifier hashing ───────────────────────────────────────────────

def hash_description(description: str) -> bytes:
    """keccak256 of the UTF-8 proposal description."""
    return keccak(text=description)


def hash_proposal(
    targets: Sequence[str],
    values: Sequence[int],
    calldatas: Sequence[bytes],
    description_hash: bytes,
) -> int:
    """
    Proposal id = uint256(keccak256(abi.encode(targets, values, calldatas, descriptionHash))).
    """
    payload = encode(
        ['address[]', 'uint256[]', 'bytes[]', 'bytes32'],
        [[normalize_address(t) for t in targets], list(values), list(calldatas), description_hash],
    )
    return int.from_bytes(keccak(payload), 'big')


def hash_operation(
    target: str,
    value: int,
    data: bytes,
    predecessor: bytes,
    salt: bytes,
) -> bytes:
    """Timelock id of a single-call operation."""
    payload = encode(
        ['address', 'uint256', 'bytes', 'bytes32', 'bytes32'],
        [normalize_address(target), value, data, predecessor, salt],
    )
    return keccak(payload)


def hash_operation_batch(
    targets: Sequence[str],
    values: Sequence[int],
    payloads: Sequence[bytes],
    predecessor: bytes,
    salt: bytes,
) -> bytes:
    """Timelock id of a batched operation."""
    payload = encode(
        ['address[]', 'uint256[]', 'bytes[]', 'bytes32', 'bytes32'],
        [[normalize_address(t) for t in targets], list(values), list(payloads), predecessor, salt],
    )
    return keccak(payload)
