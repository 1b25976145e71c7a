"""
CAL Governance contracts

Provides:
  - Chain / Receipt                                   (state.py)
  - Contract / Message / Event / external             (base.py)
  - AccessControl / Ownable                           (access.py)
  - ContractAllowList / ContractAllowListProxy        (allowlist.py)
  - TimelockController / OperationState               (timelock.py)
"""

from .base import Contract, Event, Message, external
from .state import Chain, Receipt
from .access import AccessControl, AccessControlUnauthorizedAccount, Ownable
from .allowlist import ContractAllowList, ContractAllowListProxy
from .timelock import OperationState, TimelockController, TimelockOperation

__all__ = [
    # Runtime
    "Chain",
    "Contract",
    "Event",
    "Message",
    "Receipt",
    "external",
    # Access
    "AccessControl",
    "AccessControlUnauthorizedAccount",
    "Ownable",
    # Allow list
    "ContractAllowList",
    "ContractAllowListProxy",
    # Timelock
    "OperationState",
    "TimelockController",
    "TimelockOperation",
]
