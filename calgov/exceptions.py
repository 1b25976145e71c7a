"""
CAL Governance Exceptions

Error kinds shared by every contract. All of them are raised synchronously,
are never retried internally, and the chain reverts every state change made
by the failing transaction.
"""


class CALGovError(Exception):
    """Base exception for CAL governance."""
    pass


class Unauthorized(CALGovError):
    """Caller lacks the required role or ownership."""
    pass


class InvalidState(CALGovError):
    """Operation attempted outside its required lifecycle state."""
    pass


class DuplicateVote(CALGovError):
    """Voter already cast a vote on this proposal."""
    pass


class ThresholdNotMet(CALGovError):
    """Proposer power below the proposal threshold."""
    pass


class DelayNotElapsed(CALGovError):
    """Execution attempted before the operation's ready timestamp."""
    pass


class CollisionOrReplay(CALGovError):
    """Identifier already in use by an unresolved proposal or operation."""
    pass


class InvalidParameter(CALGovError):
    """Malformed call arguments (length mismatch, zero address, bad delay)."""
    pass


class ExecutionFailed(CALGovError):
    """A call dispatched by the timelock failed."""
    pass


class InvalidCalldata(CALGovError):
    """Calldata does not match any known function or cannot be decoded."""
    pass


class ConfigurationError(CALGovError):
    """Configuration error."""
    pass
