"""
ABI and Identifier Test Suite

Coverage:
  - Address normalization and CREATE contract addresses
  - Function selectors, call encoding and argument decoding
  - Proposal ids, timelock operation ids and description hashes
  - EIP-712 ballot signing and recovery
"""

import pytest
from eth_abi import encode
from eth_utils import keccak

from calgov.constants import ZERO_BYTES32
from calgov.crypto.abi import (
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
    parse_signature,
)
from calgov.crypto.signing import ballot_typed_data, recover_ballot_signer, sign_ballot
from calgov.exceptions import InvalidCalldata, InvalidParameter, Unauthorized


HARDHAT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OPERATOR = "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65"


class TestAddresses:

    def test_normalize_lowercase(self):
        assert normalize_address(OPERATOR.lower()) == OPERATOR

    def test_normalize_invalid_raises(self):
        with pytest.raises(InvalidParameter, match="Invalid address"):
            normalize_address("0x1234")

    def test_create_address_matches_known_vector(self):
        # First contract deployed by the default Hardhat account
        assert generate_contract_address(HARDHAT_DEPLOYER, 0) == "0x5FbDB2315678afecb367f032d93F642f64180aa3"

    def test_create_address_depends_on_nonce(self):
        assert generate_contract_address(HARDHAT_DEPLOYER, 0) != generate_contract_address(HARDHAT_DEPLOYER, 1)


class TestCallEncoding:

    def test_parse_signature(self):
        assert parse_signature("addAllowed(address,uint256)") == ("addAllowed", ["address", "uint256"])
        assert parse_signature("getMinDelay()") == ("getMinDelay", [])

    def test_known_selector(self):
        assert compute_function_selector("transfer(address,uint256)") == bytes.fromhex("a9059cbb")

    def test_encode_function_call(self):
        data = encode_function_call("addAllowed(address,uint256)", OPERATOR, 1)
        assert data[:4] == compute_function_selector("addAllowed(address,uint256)")
        assert data[4:] == encode(["address", "uint256"], [OPERATOR, 1])

    def test_encode_no_arguments_is_selector_only(self):
        assert encode_function_call("mint()") == compute_function_selector("mint()")

    def test_encode_wrong_argument_count_raises(self):
        with pytest.raises(InvalidParameter, match="expects 2 arguments"):
            encode_function_call("addAllowed(address,uint256)", OPERATOR)

    def test_decode_function_call_splits_selector(self):
        data = encode_function_call("addAllowed(address,uint256)", OPERATOR, 1)
        selector, payload = decode_function_call(data)
        assert selector == data[:4]
        assert decode_arguments(["address", "uint256"], payload) == (OPERATOR, 1)

    def test_decode_short_data(self):
        assert decode_function_call(b"\x01\x02") == (b"", b"")

    def test_decode_addresses_are_checksummed(self):
        payload = encode(["address[]"], [[OPERATOR.lower()]])
        assert decode_arguments(["address[]"], payload) == ([OPERATOR],)

    def test_decode_garbage_raises(self):
        with pytest.raises(InvalidCalldata):
            decode_arguments(["address", "uint256"], b"\x00" * 10)


class TestIdentifiers:

    def test_description_hash_is_keccak_of_text(self):
        description = "Proposal #1: add allowed address to level1 list"
        assert hash_description(description) == keccak(text=description)

    def test_proposal_id_is_keccak_of_abi_encoding(self):
        calldata = encode_function_call("addAllowed(address,uint256)", OPERATOR, 1)
        description_hash = hash_description("d")
        expected = int.from_bytes(
            keccak(encode(
                ["address[]", "uint256[]", "bytes[]", "bytes32"],
                [[HARDHAT_DEPLOYER], [0], [calldata], description_hash],
            )),
            "big",
        )
        assert hash_proposal([HARDHAT_DEPLOYER], [0], [calldata], description_hash) == expected

    def test_proposal_id_ignores_address_case(self):
        description_hash = hash_description("d")
        assert (hash_proposal([OPERATOR.lower()], [0], [b""], description_hash)
                == hash_proposal([OPERATOR], [0], [b""], description_hash))

    def test_operation_id_changes_with_salt(self):
        salt = b"\x01" * 32
        assert (hash_operation(OPERATOR, 0, b"", ZERO_BYTES32, ZERO_BYTES32)
                != hash_operation(OPERATOR, 0, b"", ZERO_BYTES32, salt))

    def test_single_and_batch_ids_differ(self):
        single = hash_operation(OPERATOR, 0, b"\x01", ZERO_BYTES32, ZERO_BYTES32)
        batch = hash_operation_batch([OPERATOR], [0], [b"\x01"], ZERO_BYTES32, ZERO_BYTES32)
        assert len(single) == 32
        assert single != batch


class TestBallotSignatures:

    def _typed(self, voter, nonce=0):
        return ballot_typed_data("CALGovernor", "1", 31337, HARDHAT_DEPLOYER, 42, 1, voter, nonce)

    def test_sign_and_recover(self, accounts):
        voter = accounts[1]
        typed = self._typed(voter.address)
        signature = sign_ballot(voter.key, typed)
        assert len(signature) == 65
        assert recover_ballot_signer(typed, signature) == voter.address

    def test_different_nonce_recovers_other_address(self, accounts):
        voter = accounts[1]
        signature = sign_ballot(voter.key, self._typed(voter.address, nonce=0))
        assert recover_ballot_signer(self._typed(voter.address, nonce=1), signature) != voter.address

    def test_malformed_signature_raises(self, accounts):
        with pytest.raises(Unauthorized, match="Invalid ballot signature"):
            recover_ballot_signer(self._typed(accounts[1].address), b"\x00" * 64 + b"\x05")
