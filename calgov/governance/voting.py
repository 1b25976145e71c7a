"""
Vote Counting

Implements the "bravo" counting mode:
  - Vote types: Against / For / Abstain (abstain counts toward quorum)
  - One vote per (proposal, voter), weighted by power at the proposal snapshot
  - Success: for > against AND for + against + abstain ≥ quorum
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Tuple

from ..constants import (
    GOVERNANCE_VOTE_ABSTAIN,
    GOVERNANCE_VOTE_AGAINST,
    GOVERNANCE_VOTE_FOR,
)
from ..exceptions import DuplicateVote, InvalidParameter


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorAlreadyCastVote(DuplicateVote):
    """Voter already cast a vote on this proposal."""


class GovernorInvalidVoteType(InvalidParameter):
    """Support value is not Against, For or Abstain."""


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

class VoteType(IntEnum):
    AGAINST = GOVERNANCE_VOTE_AGAINST
    FOR = GOVERNANCE_VOTE_FOR
    ABSTAIN = GOVERNANCE_VOTE_ABSTAIN

    @classmethod
    def parse(cls, support: int) -> "VoteType":
        try:
            return cls(support)
        except ValueError:
            raise GovernorInvalidVoteType(f"Invalid vote type: {support}") from None


@dataclass(frozen=True)
class VoteRecord:
    """An individual vote cast by a voter."""
    proposal_id: int
    voter: str
    support: VoteType
    weight: int
    reason: str = ""
    block_number: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": str(self.proposal_id),
            "voter": self.voter,
            "support": self.support.name,
            "weight": str(self.weight),
            "reason": self.reason,
            "blockNumber": self.block_number,
        }


@dataclass
class ProposalVote:
    """Aggregated tally for one proposal instance."""
    against_votes: int = 0
    for_votes: int = 0
    abstain_votes: int = 0
    receipts: Dict[str, VoteRecord] = field(default_factory=dict)

    @property
    def total_votes(self) -> int:
        return self.against_votes + self.for_votes + self.abstain_votes

    def has_voted(self, voter: str) -> bool:
        return voter in self.receipts

    def count(self, record: VoteRecord) -> None:
        """
        Add *record* to the tally.

        Raises:
            GovernorAlreadyCastVote: if the voter is already counted
        """
        if record.voter in self.receipts:
            raise GovernorAlreadyCastVote(
                f"{record.voter} already voted on proposal {record.proposal_id}"
            )
        self.receipts[record.voter] = record
        if record.support == VoteType.AGAINST:
            self.against_votes += record.weight
        elif record.support == VoteType.FOR:
            self.for_votes += record.weight
        else:
            self.abstain_votes += record.weight

    def quorum_reached(self, quorum: int) -> bool:
        return self.total_votes >= quorum

    def vote_succeeded(self) -> bool:
        return self.for_votes > self.against_votes

    def as_tuple(self) -> Tuple[int, int, int]:
        """(against, for, abstain) as reported by ``proposalVotes``."""
        return self.against_votes, self.for_votes, self.abstain_votes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "againstVotes": str(self.against_votes),
            "forVotes": str(self.for_votes),
            "abstainVotes": str(self.abstain_votes),
            "totalVotes": str(self.total_votes),
            "voters": len(self.receipts),
        }
