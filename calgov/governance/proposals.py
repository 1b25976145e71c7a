"""
Governor Proposals

Lifecycle states and the stored core of a proposal. Nothing here stores the
current state: it is derived by the governor from these fields, the tally
and the chain clock every time it is asked.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidState
from .voting import ProposalVote


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorNonexistentProposal(InvalidState):
    """No proposal with this id."""


class GovernorUnexpectedProposalState(InvalidState):
    """Proposal is not in a state the call accepts."""


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalState(IntEnum):
    PENDING = 0      # Voting delay not elapsed
    ACTIVE = 1       # Voting open
    CANCELED = 2     # Canceled by proposer / canceller, or its timelock op was
    DEFEATED = 3     # Voting closed without success
    SUCCEEDED = 4    # Voting closed with quorum and majority
    QUEUED = 5       # Scheduled on the timelock
    EXPIRED = 6      # Queued but not executed within the grace period
    EXECUTED = 7     # Timelock operation ran


# A proposal id may be reused once its previous instance ended in one of these
REPROPOSABLE_STATES = frozenset({
    ProposalState.CANCELED,
    ProposalState.DEFEATED,
    ProposalState.EXPIRED,
})


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class ProposalCore:
    """
    Stored fields of one proposal instance.

    Fields:
        id:               uint256(keccak(abi.encode(targets, values, calldatas, descriptionHash)))
        proposer:         Account that created the proposal
        creation_block:   Block of the propose transaction; voting-power snapshot
        vote_start:       creation_block + votingDelay (Pending → Active)
        vote_end:         vote_start + votingPeriod (Active → Succeeded/Defeated)
        eta:              Timelock ready timestamp once queued
        timelock_id:      Timelock operation id once queued
    """
    id: int
    proposer: str
    targets: List[str]
    values: List[int]
    calldatas: List[bytes]
    description: str
    description_hash: bytes
    creation_block: int
    vote_start: int
    vote_end: int
    created_at: int
    tally: ProposalVote = field(default_factory=ProposalVote)
    eta: Optional[int] = None
    timelock_id: Optional[bytes] = None
    executed: bool = False
    canceled: bool = False
    queued_at: Optional[int] = None
    executed_at: Optional[int] = None
    canceled_at: Optional[int] = None

    @property
    def is_queued(self) -> bool:
        return self.timelock_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "proposer": self.proposer,
            "targets": list(self.targets),
            "values": [str(v) for v in self.values],
            "calldatas": ["0x" + c.hex() for c in self.calldatas],
            "description": self.description,
            "descriptionHash": "0x" + self.description_hash.hex(),
            "creationBlock": self.creation_block,
            "voteStart": self.vote_start,
            "voteEnd": self.vote_end,
            "createdAt": self.created_at,
            "tally": self.tally.to_dict(),
            "eta": self.eta,
            "timelockId": "0x" + self.timelock_id.hex() if self.timelock_id else None,
            "executed": self.executed,
            "canceled": self.canceled,
            "queuedAt": self.queued_at,
            "executedAt": self.executed_at,
            "canceledAt": self.canceled_at,
        }
