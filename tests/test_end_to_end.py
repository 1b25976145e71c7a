"""
End-to-End Governance Scenario

Three equal voters add an operator to allow-list level 1 through the full
propose → vote → queue → execute cycle, after which the collection lets a
holder approve that operator.
"""

import pytest

from calgov.constants import GENESIS_ALLOW_LIST
from calgov.contracts.allowlist import ContractAllowList, ContractAllowListProxy
from calgov.crypto.abi import hash_description
from calgov.exceptions import DelayNotElapsed
from calgov.governance.proposals import ProposalState
from calgov.tokens.collection import OperatorNotAllowed


OPERATOR = "0x5555555555555555555555555555555555555555"
DESCRIPTION = "Proposal #1: add allowed address to level1 list"


def run_governance(deployment, voters, targets, calldatas, description=DESCRIPTION):
    """Drive one proposal from creation to execution, checking each state."""
    chain, governor, token = deployment.chain, deployment.governor, deployment.token
    values = [0] * len(targets)
    description_hash = hash_description(description)

    for voter in voters:
        chain.transact(voter, token, "delegate", voter)
        chain.transact(voter, token, "mint")

    proposal_id = chain.transact(
        voters[0], governor, "propose", targets, values, calldatas, description
    ).return_value
    assert governor.state(proposal_id) == ProposalState.PENDING

    chain.mine(governor.voting_delay())
    assert governor.state(proposal_id) == ProposalState.ACTIVE

    for voter in voters:
        chain.transact(voter, governor, "castVote", proposal_id, 1)
    assert governor.proposal_votes(proposal_id) == (0, 3 * token.balance_of(voters[0]), 0)

    chain.mine(governor.voting_period())
    assert governor.state(proposal_id) == ProposalState.SUCCEEDED

    chain.transact(voters[0], governor, "queue", targets, values, calldatas, description_hash)
    assert governor.state(proposal_id) == ProposalState.QUEUED

    with pytest.raises(DelayNotElapsed):
        chain.transact(voters[0], governor, "execute", targets, values, calldatas, description_hash)

    chain.increase_time(deployment.timelock.get_min_delay())
    chain.transact(voters[0], governor, "execute", targets, values, calldatas, description_hash)
    assert governor.state(proposal_id) == ProposalState.EXECUTED
    return proposal_id


class TestEndToEnd:

    def test_add_allowed_through_governance(self, deployment, voters):
        calldata = ContractAllowList.encode_call("addAllowed", OPERATOR, 1)
        run_governance(deployment, voters, [deployment.allow_list.address], [calldata])

        assert OPERATOR in deployment.allow_list.get_allowed_list(1)
        assert OPERATOR in deployment.allow_list_proxy.get_allowed_list(1)
        assert GENESIS_ALLOW_LIST[1][0] in deployment.allow_list.get_allowed_list(1)

    def test_proposal_targeting_proxy(self, deployment, voters):
        calldata = ContractAllowList.encode_call("addAllowed", OPERATOR, 1)
        run_governance(deployment, voters, [deployment.allow_list_proxy.address], [calldata])
        assert deployment.allow_list.get_allowed_list(1)[-1] == OPERATOR

    def test_batch_add_and_remove(self, deployment, voters):
        store = deployment.allow_list.address
        calldatas = [
            ContractAllowList.encode_call("addAllowed", OPERATOR, 0),
            ContractAllowList.encode_call("removeAllowed", GENESIS_ALLOW_LIST[0][1], 0),
        ]
        run_governance(deployment, voters, [store, store], calldatas, "Rotate level 0")
        assert deployment.allow_list.get_allowed_list(0) == [GENESIS_ALLOW_LIST[0][0], OPERATOR]

    def test_collection_follows_governance(self, deployment, voters, accounts):
        holder = accounts[7].address
        chain, collection = deployment.chain, deployment.collection
        chain.transact(deployment.deployer, collection, "setContractAllowListLevel", 1)

        with pytest.raises(OperatorNotAllowed):
            chain.transact(holder, collection, "setApprovalForAll", OPERATOR, True)

        calldata = ContractAllowList.encode_call("addAllowed", OPERATOR, 1)
        run_governance(deployment, voters, [deployment.allow_list.address], [calldata])

        chain.transact(holder, collection, "setApprovalForAll", OPERATOR, True)
        assert collection.is_approved_for_all(holder, OPERATOR)

    def test_store_swap_through_governance(self, deployment, voters):
        chain, proxy = deployment.chain, deployment.allow_list_proxy
        replacement = chain.deploy(
            ContractAllowList, deployment.deployer, deployment.timelock.address, {1: [OPERATOR]}
        )
        calldata = ContractAllowListProxy.encode_call("setContractAllowList", replacement.address)
        run_governance(deployment, voters, [proxy.address], [calldata], "Swap allow-list store")

        assert proxy.store() == replacement.address
        assert proxy.get_allowed_list(1) == [OPERATOR]
