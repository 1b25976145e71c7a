"""
CAL Vote Token

ERC-20 fungible token with delegated, checkpointed voting power:
  - ERC-20 interface (transfer, approve, transferFrom, balanceOf)
  - Open ``mint()`` of a fixed amount to the caller
  - Delegation: balances count as votes only once delegated (self included)
  - Per-account and total-supply checkpoints by block for past lookups
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..constants import (
    VOTE_TOKEN_DECIMALS,
    VOTE_TOKEN_MINT_AMOUNT,
    VOTE_TOKEN_NAME,
    VOTE_TOKEN_SYMBOL,
    ZERO_ADDRESS,
)
from ..contracts.base import Contract, Message, external
from ..crypto.abi import normalize_address
from ..exceptions import InvalidParameter, InvalidState, Unauthorized
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class ERC20InsufficientBalance(InvalidState):
    """Raised when sender balance is too low."""


class ERC20InsufficientAllowance(Unauthorized):
    """Raised when spender allowance is too low."""


class ERC20InvalidAddress(InvalidParameter):
    """Raised on transfers from or to the zero address."""


class ERC5805FutureLookup(InvalidState):
    """Past-votes lookup at the current or a future block."""


# ══════════════════════════════════════════════════════════════════════
#  CHECKPOINTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Checkpoint:
    """Value in effect from ``from_block`` until the next checkpoint."""
    from_block: int
    votes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"fromBlock": self.from_block, "votes": str(self.votes)}


def _latest(checkpoints: List[Checkpoint]) -> int:
    return checkpoints[-1].votes if checkpoints else 0


def _upper_lookup(checkpoints: List[Checkpoint], block_number: int) -> int:
    """Value of the last checkpoint with from_block <= block_number."""
    index = bisect_right([c.from_block for c in checkpoints], block_number)
    return checkpoints[index - 1].votes if index else 0


def _push(checkpoints: List[Checkpoint], block_number: int, votes: int) -> None:
    if checkpoints and checkpoints[-1].from_block == block_number:
        checkpoints[-1] = Checkpoint(block_number, votes)
    else:
        checkpoints.append(Checkpoint(block_number, votes))


# ══════════════════════════════════════════════════════════════════════
#  VOTE TOKEN
# ══════════════════════════════════════════════════════════════════════

class CALVoteToken(Contract):
    """
    Governance token consulted by the governor for voting power.

    Voting power of an account at block N is the sum of the balances
    delegated to it as of the end of block N.
    """

    def __init__(
        self,
        chain,
        address: str,
        msg: Message,
        name: str = VOTE_TOKEN_NAME,
        symbol: str = VOTE_TOKEN_SYMBOL,
        mint_amount: int = VOTE_TOKEN_MINT_AMOUNT,
    ):
        super().__init__(chain, address)
        if not name:
            raise InvalidParameter("Token name cannot be empty")
        if not symbol:
            raise InvalidParameter("Token symbol cannot be empty")
        if mint_amount <= 0:
            raise InvalidParameter("Mint amount must be positive")

        self._name = name
        self._symbol = symbol
        self._mint_amount = mint_amount
        self._total_supply = 0

        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}  # (owner, spender)
        self._delegates: Dict[str, str] = {}

        self._checkpoints: Dict[str, List[Checkpoint]] = {}
        self._total_checkpoints: List[Checkpoint] = []

        logger.info(f"{symbol} ({name}) deployed at {address}")

    # ── ERC-20 views ──────────────────────────────────────────────────

    @external("name()", view=True)
    def name(self) -> str:
        return self._name

    @external("symbol()", view=True)
    def symbol(self) -> str:
        return self._symbol

    @external("decimals()", view=True)
    def decimals(self) -> int:
        return VOTE_TOKEN_DECIMALS

    @external("totalSupply()", view=True)
    def total_supply(self) -> int:
        return self._total_supply

    @external("balanceOf(address)", view=True)
    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_address(account), 0)

    @external("allowance(address,address)", view=True)
    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    # ── ERC-20 mutations ──────────────────────────────────────────────

    @external("transfer(address,uint256)")
    def transfer(self, msg: Message, recipient: str, amount: int) -> bool:
        self._transfer(msg.sender, normalize_address(recipient), amount)
        return True

    @external("approve(address,uint256)")
    def approve(self, msg: Message, spender: str, amount: int) -> bool:
        spender = normalize_address(spender)
        if spender == ZERO_ADDRESS:
            raise ERC20InvalidAddress("Cannot approve the zero address")
        self._allowances[(msg.sender, spender)] = amount
        self._emit("Approval", owner=msg.sender, spender=spender, value=amount)
        return True

    @external("transferFrom(address,address,uint256)")
    def transfer_from(self, msg: Message, sender: str, recipient: str, amount: int) -> bool:
        sender = normalize_address(sender)
        allowed = self._allowances.get((sender, msg.sender), 0)
        if allowed < amount:
            raise ERC20InsufficientAllowance(
                f"{msg.sender} allowance {allowed} < transfer amount {amount}"
            )
        self._allowances[(sender, msg.sender)] = allowed - amount
        self._transfer(sender, normalize_address(recipient), amount)
        return True

    @external("mint()")
    def mint(self, msg: Message) -> int:
        """Mint the fixed amount to the caller."""
        self._update(ZERO_ADDRESS, msg.sender, self._mint_amount)
        logger.debug(f"Mint: {msg.sender} +{self._mint_amount} {self._symbol}")
        return self._mint_amount

    # ── Votes ─────────────────────────────────────────────────────────

    @external("delegates(address)", view=True)
    def delegates(self, account: str) -> str:
        return self._delegates.get(normalize_address(account), ZERO_ADDRESS)

    @external("delegate(address)")
    def delegate(self, msg: Message, delegatee: str) -> None:
        delegatee = normalize_address(delegatee)
        previous = self.delegates(msg.sender)
        self._delegates[msg.sender] = delegatee
        self._emit("DelegateChanged", delegator=msg.sender, fromDelegate=previous, toDelegate=delegatee)
        self._move_delegate_votes(previous, delegatee, self.balance_of(msg.sender))
        logger.info(f"[{self._symbol}] {msg.sender} delegated to {delegatee}")

    @external("getVotes(address)", view=True)
    def get_votes(self, account: str) -> int:
        return _latest(self._checkpoints.get(normalize_address(account), []))

    @external("getPastVotes(address,uint256)", view=True)
    def get_past_votes(self, account: str, block_number: int) -> int:
        self._check_past(block_number)
        return _upper_lookup(self._checkpoints.get(normalize_address(account), []), block_number)

    @external("getPastTotalSupply(uint256)", view=True)
    def get_past_total_supply(self, block_number: int) -> int:
        self._check_past(block_number)
        return _upper_lookup(self._total_checkpoints, block_number)

    @external("numCheckpoints(address)", view=True)
    def num_checkpoints(self, account: str) -> int:
        return len(self._checkpoints.get(normalize_address(account), []))

    @external("checkpoints(address,uint32)", view=True)
    def checkpoints(self, account: str, pos: int) -> Checkpoint:
        history = self._checkpoints.get(normalize_address(account), [])
        if pos >= len(history):
            raise InvalidParameter(f"Checkpoint {pos} out of range ({len(history)})")
        return history[pos]

    @external("clock()", view=True)
    def clock(self) -> int:
        return self.chain.block_number

    # ── Internals ─────────────────────────────────────────────────────

    def _check_past(self, block_number: int) -> None:
        if block_number >= self.chain.block_number:
            raise ERC5805FutureLookup(
                f"Lookup at block {block_number} >= current block {self.chain.block_number}"
            )

    def _transfer(self, sender: str, recipient: str, amount: int) -> None:
        if sender == ZERO_ADDRESS or recipient == ZERO_ADDRESS:
            raise ERC20InvalidAddress("Transfers from or to the zero address are not allowed")
        self._update(sender, recipient, amount)

    def _update(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise InvalidParameter("Amount cannot be negative")
        if sender == ZERO_ADDRESS:
            self._total_supply += amount
            _push(self._total_checkpoints, self.chain.block_number, self._total_supply)
        else:
            balance = self._balances.get(sender, 0)
            if balance < amount:
                raise ERC20InsufficientBalance(f"{sender} balance {balance} < amount {amount}")
            self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

        self._emit("Transfer", sender=sender, recipient=recipient, value=amount)
        self._move_delegate_votes(self.delegates(sender), self.delegates(recipient), amount)

    def _move_delegate_votes(self, source: str, destination: str, amount: int) -> None:
        if source == destination or amount == 0:
            return
        block = self.chain.block_number
        if source != ZERO_ADDRESS:
            history = self._checkpoints.setdefault(source, [])
            old = _latest(history)
            _push(history, block, old - amount)
            self._emit("DelegateVotesChanged", delegate=source, previousVotes=old, newVotes=old - amount)
        if destination != ZERO_ADDRESS:
            history = self._checkpoints.setdefault(destination, [])
            old = _latest(history)
            _push(history, block, old + amount)
            self._emit("DelegateVotesChanged", delegate=destination, previousVotes=old, newVotes=old + amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self._name,
            "symbol": self._symbol,
            "totalSupply": str(self._total_supply),
            "holders": len(self._balances),
            "delegates": dict(self._delegates),
        }
