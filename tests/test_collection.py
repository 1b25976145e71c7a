"""
Allow-List Gated Collection Test Suite

Coverage:
  - setApprovalForAll gated by the governed allow list (via the proxy)
  - Cumulative and exact level policies
  - Owner-only configuration
  - Minting and ERC-721 views
"""

import pytest

from calgov.constants import GENESIS_ALLOW_LIST
from calgov.tokens.collection import (
    AllowListGatedCollection,
    AllowListPolicy,
    ERC721NonexistentToken,
    OperatorNotAllowed,
)
from calgov.exceptions import InvalidParameter, InvalidState, Unauthorized


LEVEL0_OPERATOR = GENESIS_ALLOW_LIST[0][0]
LEVEL1_OPERATOR = GENESIS_ALLOW_LIST[1][0]
UNLISTED_OPERATOR = "0x4444444444444444444444444444444444444444"


@pytest.fixture
def holder(accounts):
    return accounts[7].address


class TestCollectionApproval:

    def test_level0_operator_allowed(self, deployment, holder):
        collection = deployment.collection
        deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL0_OPERATOR, True)
        assert collection.is_approved_for_all(holder, LEVEL0_OPERATOR)

    def test_level1_operator_denied_at_level0(self, deployment, holder):
        collection = deployment.collection
        with pytest.raises(OperatorNotAllowed):
            deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL1_OPERATOR, True)
        assert not collection.is_approved_for_all(holder, LEVEL1_OPERATOR)

    def test_level1_operator_allowed_at_level1(self, deployment, owner, holder):
        collection = deployment.collection
        deployment.chain.transact(owner, collection, "setContractAllowListLevel", 1)
        deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL1_OPERATOR, True)
        assert collection.is_approved_for_all(holder, LEVEL1_OPERATOR)

    def test_unlisted_operator_denied(self, deployment, owner, holder):
        collection = deployment.collection
        deployment.chain.transact(owner, collection, "setContractAllowListLevel", 1)
        with pytest.raises(Unauthorized):
            deployment.chain.transact(holder, collection, "setApprovalForAll", UNLISTED_OPERATOR, True)

    def test_cumulative_includes_lower_levels(self, deployment, owner, holder):
        collection = deployment.collection
        deployment.chain.transact(owner, collection, "setContractAllowListLevel", 1)
        deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL0_OPERATOR, True)
        assert collection.is_approved_for_all(holder, LEVEL0_OPERATOR)

    def test_very_high_level_resolves(self, deployment, owner, holder):
        chain, collection = deployment.chain, deployment.collection
        chain.transact(owner, collection, "setContractAllowListLevel", 2 ** 255)
        with pytest.raises(OperatorNotAllowed):
            chain.transact(holder, collection, "setApprovalForAll", UNLISTED_OPERATOR, True)
        chain.transact(holder, collection, "setApprovalForAll", LEVEL1_OPERATOR, True)
        assert collection.is_approved_for_all(holder, LEVEL1_OPERATOR)

    def test_exact_policy_excludes_lower_levels(self, deployment, owner, holder):
        collection = deployment.collection
        deployment.chain.transact(owner, collection, "setContractAllowListLevel", 1)
        deployment.chain.transact(owner, collection, "setAllowListPolicy", int(AllowListPolicy.EXACT))
        assert collection.allow_list_policy() == AllowListPolicy.EXACT
        with pytest.raises(OperatorNotAllowed):
            deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL0_OPERATOR, True)
        deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL1_OPERATOR, True)

    def test_revoke_always_allowed(self, deployment, holder):
        collection = deployment.collection
        receipt = deployment.chain.transact(holder, collection, "setApprovalForAll", UNLISTED_OPERATOR, False)
        assert not collection.is_approved_for_all(holder, UNLISTED_OPERATOR)
        assert receipt.events_named("ApprovalForAll")[0]["approved"] is False

    def test_self_approval_raises(self, deployment, holder):
        with pytest.raises(InvalidParameter):
            deployment.chain.transact(holder, deployment.collection, "setApprovalForAll", holder, True)

    def test_list_change_applies_to_next_approval(self, deployment, holder):
        chain, collection = deployment.chain, deployment.collection
        with pytest.raises(OperatorNotAllowed):
            chain.transact(holder, collection, "setApprovalForAll", UNLISTED_OPERATOR, True)
        chain.transact(deployment.timelock.address, deployment.allow_list, "addAllowed", UNLISTED_OPERATOR, 0)
        chain.transact(holder, collection, "setApprovalForAll", UNLISTED_OPERATOR, True)
        assert collection.is_approved_for_all(holder, UNLISTED_OPERATOR)

    def test_no_allow_list_configured(self, accounts, deployment, holder):
        collection = deployment.chain.deploy(AllowListGatedCollection, accounts[0].address)
        with pytest.raises(InvalidState, match="no allow list"):
            deployment.chain.transact(holder, collection, "setApprovalForAll", LEVEL0_OPERATOR, True)


class TestCollectionConfiguration:

    def test_reads_through_proxy(self, deployment):
        assert deployment.collection.cal() == deployment.allow_list_proxy.address
        assert deployment.collection.contract_allow_list_level() == 0
        assert deployment.collection.allow_list_policy() == AllowListPolicy.CUMULATIVE

    def test_non_owner_configuration_raises(self, deployment, holder):
        chain, collection = deployment.chain, deployment.collection
        with pytest.raises(Unauthorized):
            chain.transact(holder, collection, "setContractAllowListLevel", 1)
        with pytest.raises(Unauthorized):
            chain.transact(holder, collection, "setICAL", holder)
        with pytest.raises(Unauthorized):
            chain.transact(holder, collection, "setAllowListPolicy", 1)
        assert collection.contract_allow_list_level() == 0

    def test_unknown_policy_raises(self, deployment, owner):
        with pytest.raises(InvalidParameter, match="policy"):
            deployment.chain.transact(owner, deployment.collection, "setAllowListPolicy", 7)


class TestCollectionMint:

    def test_mint(self, deployment, holder):
        collection = deployment.collection
        receipt = deployment.chain.transact(holder, collection, "mint", 3)
        assert receipt.return_value == [1, 2, 3]
        assert collection.balance_of(holder) == 3
        assert collection.owner_of(2) == holder
        assert collection.total_supply() == 3
        assert collection.name() == "TestNFTcollection"
        assert collection.symbol() == "TNFT"

    def test_mint_zero_raises(self, deployment, holder):
        with pytest.raises(InvalidParameter):
            deployment.chain.transact(holder, deployment.collection, "mint", 0)

    def test_owner_of_nonexistent(self, deployment):
        with pytest.raises(ERC721NonexistentToken):
            deployment.collection.owner_of(1)

    def test_mint_price(self, deployment, owner, holder):
        chain = deployment.chain
        collection = chain.deploy(AllowListGatedCollection, owner, "Priced", "PRC", 100)
        chain.set_balance(holder, 500)
        with pytest.raises(InvalidParameter, match="Insufficient payment"):
            chain.transact(holder, collection, "mint", 2, value=150)
        chain.transact(holder, collection, "mint", 2, value=200)
        assert collection.balance_of(holder) == 2
        assert chain.get_balance(holder) == 300
        assert chain.get_balance(collection.address) == 200
