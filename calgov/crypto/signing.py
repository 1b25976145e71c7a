"""
EIP-712 Ballot Signatures

Typed-data encoding for votes submitted on behalf of a voter
(``castVoteBySig``). The domain binds a signature to one governor on one
chain; the per-voter nonce prevents replay.
"""

from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import to_checksum_address

from ..exceptions import Unauthorized


def ballot_typed_data(
    governor_name: str,
    governor_version: str,
    chain_id: int,
    governor_address: str,
    proposal_id: int,
    support: int,
    voter: str,
    nonce: int,
) -> Dict[str, Any]:
    """Build the EIP-712 message for a Ballot."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Ballot": [
                {"name": "proposalId", "type": "uint256"},
                {"name": "support", "type": "uint8"},
                {"name": "voter", "type": "address"},
                {"name": "nonce", "type": "uint256"},
            ],
        },
        "primaryType": "Ballot",
        "domain": {
            "name": governor_name,
            "version": governor_version,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(governor_address),
        },
        "message": {
            "proposalId": proposal_id,
            "support": support,
            "voter": to_checksum_address(voter),
            "nonce": nonce,
        },
    }


def sign_ballot(private_key, typed_data: Dict[str, Any]) -> bytes:
    """Sign a Ballot; returns the 65-byte r||s||v signature."""
    signable = encode_typed_data(full_message=typed_data)
    return bytes(Account.sign_message(signable, private_key).signature)


def recover_ballot_signer(typed_data: Dict[str, Any], signature: bytes) -> str:
    """
    Recover the address that signed *typed_data*.

    Raises:
        Unauthorized: if the signature is malformed
    """
    signable = encode_typed_data(full_message=typed_data)
    try:
        return to_checksum_address(Account.recover_message(signable, signature=signature))
    except (BadSignature, ValidationError, ValueError, TypeError) as e:
        raise Unauthorized(f"Invalid ballot signature: {e}") from e
