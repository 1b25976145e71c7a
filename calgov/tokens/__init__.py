"""
CAL Governance tokens

Provides:
  - CALVoteToken              : ERC-20 with delegated, checkpointed votes
  - AllowListGatedCollection  : ERC-721-style consumer of the allow list
"""

from .votes import CALVoteToken, Checkpoint
from .collection import AllowListGatedCollection, AllowListPolicy, OperatorNotAllowed

__all__ = [
    "CALVoteToken",
    "Checkpoint",
    "AllowListGatedCollection",
    "AllowListPolicy",
    "OperatorNotAllowed",
]
