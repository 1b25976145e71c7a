"""
CAL Governance crypto helpers: ABI call encoding, identifier hashing and
EIP-712 ballot signatures.
"""

from .abi import (
    compute_function_selector,
    decode_arguments,
    decode_function_call,
    encode_function_call,
    generate_contract_address,
    hash_description,
    hash_operation,
    hash_operation_batch,
    hash_proposal,
    normalize_address,
)
from .signing import ballot_typed_data, recover_ballot_signer, sign_ballot

__all__ = [
    "compute_function_selector",
    "decode_arguments",
    "decode_function_call",
    "encode_function_call",
    "generate_contract_address",
    "hash_description",
    "hash_operation",
    "hash_operation_batch",
    "hash_proposal",
    "normalize_address",
    "ballot_typed_data",
    "recover_ballot_signer",
    "sign_ballot",
]
