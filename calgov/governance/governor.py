"""
CAL Governor

Token-weighted governor whose decisions are carried out by a
TimelockController. Covers the full proposal lifecycle:

    propose → (voting delay) → vote → (voting period) → queue → (timelock delay) → execute

Proposal state is never stored; ``state()`` derives it from the proposal's
stored fields, its tally, the timelock operation and the chain clock.

Voting power comes from the vote token's checkpoints at the proposal's
creation block, so tokens moved after a proposal is created do not change
its outcome.
"""

from bisect import bisect_right
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config.loader import GovernorSettings
from ..constants import (
    GOVERNOR_COUNTING_MODE,
    GOVERNOR_QUORUM_DENOMINATOR,
    GOVERNOR_VERSION,
    ZERO_ADDRESS,
    ZERO_BYTES32,
)
from ..crypto.abi import hash_description, hash_proposal, normalize_address
from ..crypto.signing import ballot_typed_data, recover_ballot_signer
from ..exceptions import CollisionOrReplay, InvalidParameter, ThresholdNotMet, Unauthorized
from ..logger import get_logger
from ..contracts.base import Contract, Message, external
from .proposals import (
    REPROPOSABLE_STATES,
    GovernorNonexistentProposal,
    GovernorUnexpectedProposalState,
    ProposalCore,
    ProposalState,
)
from .voting import ProposalVote, VoteRecord, VoteType

logger = get_logger(__name__)

_SCHEDULE_BATCH = "scheduleBatch(address[],uint256[],bytes[],bytes32,bytes32,uint256)"
_EXECUTE_BATCH = "executeBatch(address[],uint256[],bytes[],bytes32,bytes32)"


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorInvalidProposalLength(InvalidParameter):
    """targets / values / calldatas are empty or of different lengths."""


class GovernorInsufficientProposerVotes(ThresholdNotMet):
    """Proposer's past votes are below the proposal threshold."""


class GovernorDuplicateProposal(CollisionOrReplay):
    """Proposal id already belongs to a live proposal."""


class GovernorOnlyProposer(Unauthorized):
    """Only the proposer (or the proposal canceller) may cancel."""


class GovernorOnlyExecutor(Unauthorized):
    """Function is reserved for governance (the timelock)."""


class GovernorInvalidSignature(Unauthorized):
    """Ballot signature does not belong to the voter."""


class GovernorInvalidVotingPeriod(InvalidParameter):
    """Voting period must be at least one block."""


class GovernorInvalidQuorumFraction(InvalidParameter):
    """Quorum numerator exceeds the denominator."""


def _short(proposal_id: int) -> str:
    return f"{proposal_id:#066x}"[:12]


# ══════════════════════════════════════════════════════════════════════
#  GOVERNOR
# ══════════════════════════════════════════════════════════════════════

class CALGovernor(Contract):
    """
    Governor with bravo counting, fractional quorum and timelock control.

    Responsibilities:
        - Create proposals, gated by the proposal threshold
        - Accept one weighted vote per voter (direct or EIP-712 signed)
        - Decide success from majority and quorum
        - Queue and execute winning proposals through the timelock
        - Let governance retune its own parameters
    """

    def __init__(
        self,
        chain,
        address: str,
        msg: Message,
        token: str,
        timelock: str,
        settings: Optional[GovernorSettings] = None,
    ):
        super().__init__(chain, address)
        settings = settings or GovernorSettings()
        settings.validate()

        self._name = settings.name
        self._token = normalize_address(token)
        self._timelock = normalize_address(timelock)
        self._voting_delay = settings.voting_delay
        self._voting_period = settings.voting_period
        self._proposal_threshold = settings.proposal_threshold
        self._grace_period = settings.grace_period
        self._proposal_canceller = (
            normalize_address(settings.proposal_canceller) if settings.proposal_canceller else None
        )

        # Quorum numerator history: (block, numerator), ascending by block
        self._quorum_blocks: List[int] = [chain.block_number]
        self._quorum_values: List[int] = [settings.quorum_numerator]

        self._proposals: Dict[int, ProposalCore] = {}
        self._archive: Dict[int, List[ProposalCore]] = {}
        self._nonces: Dict[str, int] = {}

        logger.info(
            f"{self._name} deployed at {address}: token={self._token} timelock={self._timelock} "
            f"delay={self._voting_delay} period={self._voting_period} "
            f"threshold={self._proposal_threshold} quorum={settings.quorum_numerator}%"
        )

    # ── Metadata ──────────────────────────────────────────────────────

    @external("name()", view=True)
    def name(self) -> str:
        return self._name

    @external("version()", view=True)
    def version(self) -> str:
        return GOVERNOR_VERSION

    @external("COUNTING_MODE()", view=True)
    def counting_mode(self) -> str:
        return GOVERNOR_COUNTING_MODE

    @external("token()", view=True)
    def token(self) -> str:
        return self._token

    @external("timelock()", view=True)
    def timelock(self) -> str:
        return self._timelock

    @external("votingDelay()", view=True)
    def voting_delay(self) -> int:
        return self._voting_delay

    @external("votingPeriod()", view=True)
    def voting_period(self) -> int:
        return self._voting_period

    @external("proposalThreshold()", view=True)
    def proposal_threshold(self) -> int:
        return self._proposal_threshold

    @external("gracePeriod()", view=True)
    def grace_period(self) -> int:
        return self._grace_period

    @external("nonces(address)", view=True)
    def nonces(self, account: str) -> int:
        return self._nonces.get(normalize_address(account), 0)

    # ── Votes and quorum ──────────────────────────────────────────────

    @external("getVotes(address,uint256)", view=True)
    def get_votes(self, account: str, block_number: int) -> int:
        return self._call(self._token, "getPastVotes(address,uint256)", account, block_number)

    @external("quorumNumerator()", view=True)
    def quorum_numerator(self) -> int:
        return self._quorum_values[-1]

    def quorum_numerator_at(self, block_number: int) -> int:
        index = bisect_right(self._quorum_blocks, block_number) - 1
        return self._quorum_values[max(index, 0)]

    @external("quorumDenominator()", view=True)
    def quorum_denominator(self) -> int:
        return GOVERNOR_QUORUM_DENOMINATOR

    @external("quorum(uint256)", view=True)
    def quorum(self, block_number: int) -> int:
        """Votes required at *block_number* (a past block)."""
        supply = self._call(self._token, "getPastTotalSupply(uint256)", block_number)
        return supply * self.quorum_numerator_at(block_number) // GOVERNOR_QUORUM_DENOMINATOR

    # ── Proposal views ────────────────────────────────────────────────

    @external("hashProposal(address[],uint256[],bytes[],bytes32)", view=True)
    def hash_proposal(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
    ) -> int:
        return hash_proposal(targets, values, calldatas, description_hash)

    @external("state(uint256)", view=True)
    def state(self, proposal_id: int) -> ProposalState:
        return self._state(self._get_proposal(proposal_id))

    @external("proposalSnapshot(uint256)", view=True)
    def proposal_snapshot(self, proposal_id: int) -> int:
        proposal = self._proposals.get(proposal_id)
        return proposal.creation_block if proposal else 0

    @external("proposalDeadline(uint256)", view=True)
    def proposal_deadline(self, proposal_id: int) -> int:
        proposal = self._proposals.get(proposal_id)
        return proposal.vote_end if proposal else 0

    @external("proposalProposer(uint256)", view=True)
    def proposal_proposer(self, proposal_id: int) -> str:
        proposal = self._proposals.get(proposal_id)
        return proposal.proposer if proposal else ZERO_ADDRESS

    @external("proposalEta(uint256)", view=True)
    def proposal_eta(self, proposal_id: int) -> int:
        proposal = self._proposals.get(proposal_id)
        return (proposal.eta or 0) if proposal else 0

    @external("proposalVotes(uint256)", view=True)
    def proposal_votes(self, proposal_id: int) -> Tuple[int, int, int]:
        """(againstVotes, forVotes, abstainVotes)."""
        proposal = self._proposals.get(proposal_id)
        return proposal.tally.as_tuple() if proposal else (0, 0, 0)

    @external("hasVoted(uint256,address)", view=True)
    def has_voted(self, proposal_id: int, account: str) -> bool:
        proposal = self._proposals.get(proposal_id)
        return proposal is not None and proposal.tally.has_voted(normalize_address(account))

    def get_proposal(self, proposal_id: int) -> Optional[ProposalCore]:
        return self._proposals.get(proposal_id)

    def proposal_history(self, proposal_id: int) -> List[ProposalCore]:
        """Superseded instances of *proposal_id*, oldest first."""
        return list(self._archive.get(proposal_id, []))

    # ── Propose ───────────────────────────────────────────────────────

    @external("propose(address[],uint256[],bytes[],string)")
    def propose(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description: str,
    ) -> int:
        proposer = msg.sender
        self._check_proposal_length(targets, values, calldatas)

        creation_block = self.chain.block_number
        proposer_votes = self.get_votes(proposer, creation_block - 1)
        if proposer_votes < self._proposal_threshold:
            raise GovernorInsufficientProposerVotes(
                f"{proposer} has {proposer_votes} votes, threshold is {self._proposal_threshold}"
            )

        description_hash = hash_description(description)
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)

        previous = self._proposals.get(proposal_id)
        if previous is not None:
            previous_state = self._state(previous)
            if previous_state not in REPROPOSABLE_STATES:
                raise GovernorDuplicateProposal(
                    f"Proposal {_short(proposal_id)} already exists (state={previous_state.name})"
                )
            if previous_state == ProposalState.EXPIRED:
                self._cancel_stale_operation(previous)
            self._archive.setdefault(proposal_id, []).append(previous)
            logger.info(f"[governor] proposal {_short(proposal_id)} archived ({previous_state.name})")

        vote_start = creation_block + self._voting_delay
        proposal = ProposalCore(
            id=proposal_id,
            proposer=proposer,
            targets=[normalize_address(t) for t in targets],
            values=list(values),
            calldatas=list(calldatas),
            description=description,
            description_hash=description_hash,
            creation_block=creation_block,
            vote_start=vote_start,
            vote_end=vote_start + self._voting_period,
            created_at=self.chain.timestamp,
        )
        self._proposals[proposal_id] = proposal

        self._emit(
            "ProposalCreated",
            proposalId=proposal_id,
            proposer=proposer,
            targets=list(proposal.targets),
            values=list(proposal.values),
            calldatas=list(proposal.calldatas),
            voteStart=proposal.vote_start,
            voteEnd=proposal.vote_end,
            description=description,
        )
        logger.info(
            f"[governor] proposal {_short(proposal_id)} created by {proposer}: "
            f"voting blocks {proposal.vote_start}..{proposal.vote_end}"
        )
        return proposal_id

    # ── Vote ──────────────────────────────────────────────────────────

    @external("castVote(uint256,uint8)")
    def cast_vote(self, msg: Message, proposal_id: int, support: int) -> int:
        return self._cast_vote(proposal_id, msg.sender, support, "")

    @external("castVoteWithReason(uint256,uint8,string)")
    def cast_vote_with_reason(self, msg: Message, proposal_id: int, support: int, reason: str) -> int:
        return self._cast_vote(proposal_id, msg.sender, support, reason)

    @external("castVoteBySig(uint256,uint8,address,bytes)")
    def cast_vote_by_sig(
        self,
        msg: Message,
        proposal_id: int,
        support: int,
        voter: str,
        signature: bytes,
    ) -> int:
        """Count a vote signed off-chain by *voter*; anyone may relay it."""
        voter = normalize_address(voter)
        nonce = self._nonces.get(voter, 0)
        typed_data = self.ballot_typed_data(proposal_id, support, voter, nonce)
        signer = recover_ballot_signer(typed_data, signature)
        if signer != voter:
            raise GovernorInvalidSignature(f"Ballot signed by {signer}, not {voter}")
        self._nonces[voter] = nonce + 1
        return self._cast_vote(proposal_id, voter, support, "")

    def ballot_typed_data(self, proposal_id: int, support: int, voter: str, nonce: int) -> Dict[str, Any]:
        """EIP-712 Ballot bound to this governor and chain."""
        return ballot_typed_data(
            self._name, GOVERNOR_VERSION, self.chain.chain_id, self.address,
            proposal_id, support, voter, nonce,
        )

    def _cast_vote(self, proposal_id: int, voter: str, support: int, reason: str) -> int:
        proposal = self._get_proposal(proposal_id)
        self._require_state(proposal, ProposalState.ACTIVE)
        vote_type = VoteType.parse(support)

        weight = self.get_votes(voter, proposal.creation_block)
        proposal.tally.count(VoteRecord(
            proposal_id=proposal_id,
            voter=voter,
            support=vote_type,
            weight=weight,
            reason=reason,
            block_number=self.chain.block_number,
        ))

        self._emit(
            "VoteCast",
            voter=voter, proposalId=proposal_id, support=int(vote_type),
            weight=weight, reason=reason,
        )
        logger.info(f"[governor] {voter} voted {vote_type.name} on {_short(proposal_id)} (weight={weight})")
        return weight

    # ── Queue / execute / cancel ──────────────────────────────────────

    @external("queue(address[],uint256[],bytes[],bytes32)")
    def queue(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        proposal = self._get_proposal(proposal_id)
        self._require_state(proposal, ProposalState.SUCCEEDED)

        delay = self._call(self._timelock, "getMinDelay()")
        salt = self._timelock_salt(description_hash)
        proposal.timelock_id = self._call(
            self._timelock, _SCHEDULE_BATCH,
            proposal.targets, proposal.values, proposal.calldatas, ZERO_BYTES32, salt, delay,
        )
        proposal.eta = self.chain.timestamp + delay
        proposal.queued_at = self.chain.timestamp

        self._emit("ProposalQueued", proposalId=proposal_id, etaSeconds=proposal.eta)
        logger.info(f"[governor] proposal {_short(proposal_id)} QUEUED (eta={proposal.eta})")
        return proposal_id

    @external("execute(address[],uint256[],bytes[],bytes32)", payable=True)
    def execute(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        proposal = self._get_proposal(proposal_id)
        self._require_state(proposal, ProposalState.QUEUED)

        self._call(
            self._timelock, _EXECUTE_BATCH,
            proposal.targets, proposal.values, proposal.calldatas,
            ZERO_BYTES32, self._timelock_salt(description_hash),
            value=msg.value,
        )
        proposal.executed = True
        proposal.executed_at = self.chain.timestamp

        self._emit("ProposalExecuted", proposalId=proposal_id)
        logger.info(f"[governor] proposal {_short(proposal_id)} EXECUTED")
        return proposal_id

    @external("cancel(address[],uint256[],bytes[],bytes32)")
    def cancel(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
    ) -> int:
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        proposal = self._get_proposal(proposal_id)
        if msg.sender not in (proposal.proposer, self._proposal_canceller):
            logger.warning(f"[governor] {msg.sender} denied: cannot cancel {_short(proposal_id)}")
            raise GovernorOnlyProposer(f"{msg.sender} cannot cancel proposal {_short(proposal_id)}")
        self._require_state(proposal, ProposalState.PENDING, ProposalState.ACTIVE)

        proposal.canceled = True
        proposal.canceled_at = self.chain.timestamp
        self._emit("ProposalCanceled", proposalId=proposal_id)
        logger.info(f"[governor] proposal {_short(proposal_id)} CANCELED by {msg.sender}")
        return proposal_id

    # ── Governance-only settings ──────────────────────────────────────

    @external("setVotingDelay(uint256)")
    def set_voting_delay(self, msg: Message, new_delay: int) -> None:
        self._only_governance(msg)
        self._emit("VotingDelaySet", oldVotingDelay=self._voting_delay, newVotingDelay=new_delay)
        self._voting_delay = new_delay

    @external("setVotingPeriod(uint256)")
    def set_voting_period(self, msg: Message, new_period: int) -> None:
        self._only_governance(msg)
        if new_period == 0:
            raise GovernorInvalidVotingPeriod("Voting period must be at least one block")
        self._emit("VotingPeriodSet", oldVotingPeriod=self._voting_period, newVotingPeriod=new_period)
        self._voting_period = new_period

    @external("setProposalThreshold(uint256)")
    def set_proposal_threshold(self, msg: Message, new_threshold: int) -> None:
        self._only_governance(msg)
        self._emit(
            "ProposalThresholdSet",
            oldProposalThreshold=self._proposal_threshold, newProposalThreshold=new_threshold,
        )
        self._proposal_threshold = new_threshold

    @external("updateQuorumNumerator(uint256)")
    def update_quorum_numerator(self, msg: Message, new_numerator: int) -> None:
        """Checkpointed: proposals created earlier keep their quorum."""
        self._only_governance(msg)
        if new_numerator > GOVERNOR_QUORUM_DENOMINATOR:
            raise GovernorInvalidQuorumFraction(
                f"Quorum {new_numerator}/{GOVERNOR_QUORUM_DENOMINATOR} exceeds 100%"
            )
        old = self.quorum_numerator()
        block = self.chain.block_number
        if self._quorum_blocks[-1] == block:
            self._quorum_values[-1] = new_numerator
        else:
            self._quorum_blocks.append(block)
            self._quorum_values.append(new_numerator)
        self._emit("QuorumNumeratorUpdated", oldQuorumNumerator=old, newQuorumNumerator=new_numerator)
        logger.info(f"[governor] quorum numerator {old} → {new_numerator} at block {block}")

    @external("updateTimelock(address)")
    def update_timelock(self, msg: Message, new_timelock: str) -> None:
        self._only_governance(msg)
        new_timelock = normalize_address(new_timelock)
        self._emit("TimelockChange", oldTimelock=self._timelock, newTimelock=new_timelock)
        logger.info(f"[governor] timelock {self._timelock} → {new_timelock}")
        self._timelock = new_timelock

    # ── Internals ─────────────────────────────────────────────────────

    def _get_proposal(self, proposal_id: int) -> ProposalCore:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise GovernorNonexistentProposal(f"Unknown proposal {_short(proposal_id)}")
        return proposal

    def _state(self, proposal: ProposalCore) -> ProposalState:
        if proposal.executed:
            return ProposalState.EXECUTED
        if proposal.canceled:
            return ProposalState.CANCELED

        current_block = self.chain.block_number
        if current_block < proposal.vote_start:
            return ProposalState.PENDING
        if current_block < proposal.vote_end:
            return ProposalState.ACTIVE

        if not proposal.is_queued:
            if self._vote_succeeded(proposal.tally, proposal.creation_block):
                return ProposalState.SUCCEEDED
            return ProposalState.DEFEATED

        # Queued: follow the timelock operation
        if self._call(self._timelock, "isOperationDone(bytes32)", proposal.timelock_id):
            return ProposalState.EXECUTED
        if not self._call(self._timelock, "isOperationPending(bytes32)", proposal.timelock_id):
            return ProposalState.CANCELED
        if self._grace_period and self.chain.timestamp >= proposal.eta + self._grace_period:
            return ProposalState.EXPIRED
        return ProposalState.QUEUED

    def _vote_succeeded(self, tally: ProposalVote, snapshot_block: int) -> bool:
        return tally.vote_succeeded() and tally.quorum_reached(self.quorum(snapshot_block))

    def _require_state(self, proposal: ProposalCore, *allowed: ProposalState) -> None:
        current = self._state(proposal)
        if current not in allowed:
            raise GovernorUnexpectedProposalState(
                f"Proposal {_short(proposal.id)} is {current.name}, "
                f"expected {' or '.join(s.name for s in allowed)}"
            )

    def _cancel_stale_operation(self, proposal: ProposalCore) -> None:
        """Drop an expired proposal's timelock operation so its id can be reused."""
        if self._call(self._timelock, "isOperationPending(bytes32)", proposal.timelock_id):
            self._call(self._timelock, "cancel(bytes32)", proposal.timelock_id)
            logger.info(
                f"[governor] stale timelock operation 0x{proposal.timelock_id.hex()[:8]} "
                f"of {_short(proposal.id)} cancelled"
            )

    def _timelock_salt(self, description_hash: bytes) -> bytes:
        # bytes20(governor) left-aligned in 32 bytes, XOR descriptionHash
        address_bytes = bytes.fromhex(self.address[2:]).ljust(32, b"\x00")
        return bytes(a ^ b for a, b in zip(address_bytes, description_hash))

    def _only_governance(self, msg: Message) -> None:
        if msg.sender != self._timelock:
            logger.warning(f"[governor] {msg.sender} denied: governance-only function")
            raise GovernorOnlyExecutor(f"{msg.sender} is not the governance executor")

    @staticmethod
    def _check_proposal_length(
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
    ) -> None:
        if not targets or not (len(targets) == len(values) == len(calldatas)):
            raise GovernorInvalidProposalLength(
                f"Invalid proposal length: targets={len(targets)} "
                f"values={len(values)} calldatas={len(calldatas)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self._name,
            "token": self._token,
            "timelock": self._timelock,
            "votingDelay": self._voting_delay,
            "votingPeriod": self._voting_period,
            "proposalThreshold": self._proposal_threshold,
            "quorumNumerator": self.quorum_numerator(),
            "gracePeriod": self._grace_period,
            "proposals": {str(pid): p.to_dict() for pid, p in self._proposals.items()},
        }
