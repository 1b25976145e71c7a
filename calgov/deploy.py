"""
Deployment

Wires a complete CAL governance system onto a chain:

    CALVoteToken → TimelockController → CALGovernor
    ContractAllowList (controlled by the timelock) ← ContractAllowListProxy
    AllowListGatedCollection (reads the proxy)

The timelock starts with no proposers or executors; the deployer grants the
governor the proposer, executor and canceller roles, then renounces its
timelock admin role and hands the allow-list frontend to the timelock. After
deployment only an executed proposal can change the list or the frontend.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config.loader import CALGovConfig
from .constants import CANCELLER_ROLE, EXECUTOR_ROLE, PROPOSER_ROLE, TIMELOCK_ADMIN_ROLE
from .contracts.allowlist import ContractAllowList, ContractAllowListProxy
from .contracts.state import Chain
from .contracts.timelock import TimelockController
from .crypto.abi import normalize_address
from .governance.governor import CALGovernor
from .logger import get_logger
from .tokens.collection import AllowListGatedCollection
from .tokens.votes import CALVoteToken

logger = get_logger(__name__)


@dataclass
class CALDeployment:
    """Handles to every deployed contract."""
    chain: Chain
    deployer: str
    token: CALVoteToken
    timelock: TimelockController
    governor: CALGovernor
    allow_list: ContractAllowList
    allow_list_proxy: ContractAllowListProxy
    collection: AllowListGatedCollection

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployer": self.deployer,
            "CALVoteToken": self.token.address,
            "TimelockController": self.timelock.address,
            "CALGovernor": self.governor.address,
            "ContractAllowList": self.allow_list.address,
            "ContractAllowListProxy": self.allow_list_proxy.address,
            "AllowListGatedCollection": self.collection.address,
        }


def deploy_cal_governance(
    deployer: str,
    config: Optional[CALGovConfig] = None,
    chain: Optional[Chain] = None,
) -> CALDeployment:
    """
    Deploy and wire all contracts from *deployer*.

    Args:
        deployer: Account sending every deployment transaction
        config: Deployment parameters (defaults if omitted)
        chain: Existing chain to deploy onto; a new one is created from
            ``config.chain`` otherwise

    Returns:
        CALDeployment
    """
    config = config or CALGovConfig()
    config.validate()
    chain = chain or Chain(config.chain)
    deployer = normalize_address(deployer)

    token = chain.deploy(CALVoteToken, deployer)
    timelock = chain.deploy(TimelockController, deployer, config.timelock.min_delay, [], [])
    governor = chain.deploy(CALGovernor, deployer, token.address, timelock.address, config.governor)
    allow_list = chain.deploy(ContractAllowList, deployer, timelock.address, config.allowlist.levels)
    proxy = chain.deploy(ContractAllowListProxy, deployer, allow_list.address)

    for role in (EXECUTOR_ROLE, PROPOSER_ROLE, CANCELLER_ROLE):
        chain.transact(deployer, timelock, "grantRole", role, governor.address)
    chain.transact(deployer, proxy, "transferOwnership", timelock.address)
    chain.transact(deployer, timelock, "renounceRole", TIMELOCK_ADMIN_ROLE, deployer)

    collection = chain.deploy(AllowListGatedCollection, deployer)
    chain.transact(deployer, collection, "setICAL", proxy.address)

    deployment = CALDeployment(
        chain=chain,
        deployer=deployer,
        token=token,
        timelock=timelock,
        governor=governor,
        allow_list=allow_list,
        allow_list_proxy=proxy,
        collection=collection,
    )
    for name, address in deployment.to_dict().items():
        logger.info(f"[deploy] {name}: {address}")
    return deployment
