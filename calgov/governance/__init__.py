"""
CAL On-Chain Governance

Provides:
  - ProposalState / ProposalCore                 (proposals.py)
  - VoteType / VoteRecord / ProposalVote         (voting.py)
  - CALGovernor                                  (governor.py)
"""

from .proposals import (
    GovernorNonexistentProposal,
    GovernorUnexpectedProposalState,
    ProposalCore,
    ProposalState,
)
from .voting import (
    GovernorAlreadyCastVote,
    ProposalVote,
    VoteRecord,
    VoteType,
)
from .governor import CALGovernor

__all__ = [
    # Proposals
    "GovernorNonexistentProposal",
    "GovernorUnexpectedProposalState",
    "ProposalCore",
    "ProposalState",
    # Voting
    "GovernorAlreadyCastVote",
    "ProposalVote",
    "VoteRecord",
    "VoteType",
    # Governor
    "CALGovernor",
]
