"""
Allow-List Gated Collection

Minimal ERC-721-style collection whose ``setApprovalForAll`` only lets a
holder grant blanket approval to operators found in the governed allow
list. The list is read at authorization time, so a membership change
executed by the timelock takes effect on the next approval.
"""

from enum import IntEnum
from typing import Any, Dict, List

from ..constants import ZERO_ADDRESS
from ..contracts.access import Ownable
from ..contracts.base import Message, external
from ..crypto.abi import normalize_address
from ..exceptions import InvalidParameter, InvalidState, Unauthorized
from ..logger import get_logger

logger = get_logger(__name__)


class OperatorNotAllowed(Unauthorized):
    """Operator is not in the allow list at the configured level."""


class ERC721NonexistentToken(InvalidParameter):
    """Token id was never minted."""


class AllowListPolicy(IntEnum):
    CUMULATIVE = 0   # operator listed at any level 0..N
    EXACT = 1        # operator listed at level N


class AllowListGatedCollection(Ownable):
    """
    Consumer of the allow list.

    Owner-configurable:
        - allow-list address (``setICAL``), normally the frontend
        - level N the operator is checked against
        - inclusion policy (cumulative or exact)
    """

    def __init__(
        self,
        chain,
        address: str,
        msg: Message,
        name: str = "TestNFTcollection",
        symbol: str = "TNFT",
        mint_price: int = 0,
    ):
        super().__init__(chain, address, owner=msg.sender)
        if mint_price < 0:
            raise InvalidParameter("Mint price cannot be negative")
        self._name = name
        self._symbol = symbol
        self._mint_price = mint_price

        self._next_token_id = 1
        self._owners: Dict[int, str] = {}
        self._balances: Dict[str, int] = {}
        self._operator_approvals: Dict[str, Dict[str, bool]] = {}

        self._ical = ZERO_ADDRESS
        self._allow_list_level = 0
        self._policy = AllowListPolicy.CUMULATIVE

    # ── Views ─────────────────────────────────────────────────────────

    @external("name()", view=True)
    def name(self) -> str:
        return self._name

    @external("symbol()", view=True)
    def symbol(self) -> str:
        return self._symbol

    @external("totalSupply()", view=True)
    def total_supply(self) -> int:
        return len(self._owners)

    @external("balanceOf(address)", view=True)
    def balance_of(self, owner: str) -> int:
        return self._balances.get(normalize_address(owner), 0)

    @external("ownerOf(uint256)", view=True)
    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise ERC721NonexistentToken(f"Token {token_id} does not exist")
        return owner

    @external("isApprovedForAll(address,address)", view=True)
    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        approvals = self._operator_approvals.get(normalize_address(owner), {})
        return approvals.get(normalize_address(operator), False)

    @external("cal()", view=True)
    def cal(self) -> str:
        return self._ical

    @external("contractAllowListLevel()", view=True)
    def contract_allow_list_level(self) -> int:
        return self._allow_list_level

    @external("allowListPolicy()", view=True)
    def allow_list_policy(self) -> AllowListPolicy:
        return self._policy

    def is_operator_allowed(self, operator: str) -> bool:
        """Whether *operator* passes the allow list under the current policy."""
        if self._ical == ZERO_ADDRESS:
            raise InvalidState(f"{type(self).__name__} has no allow list configured")
        operator = normalize_address(operator)
        if self._policy == AllowListPolicy.EXACT:
            return operator in self._call(self._ical, "getAllowedList(uint256)", self._allow_list_level)
        # one query however high the level
        return self._call(self._ical, "isAllowedUpTo(address,uint256)", operator, self._allow_list_level)

    # ── Holder operations ─────────────────────────────────────────────

    @external("mint(uint256)", payable=True)
    def mint(self, msg: Message, amount: int) -> List[int]:
        if amount == 0:
            raise InvalidParameter("Mint amount must be positive")
        if msg.value < amount * self._mint_price:
            raise InvalidParameter(
                f"Insufficient payment: {msg.value} < {amount * self._mint_price}"
            )
        minted = []
        for _ in range(amount):
            token_id = self._next_token_id
            self._next_token_id += 1
            self._owners[token_id] = msg.sender
            minted.append(token_id)
            self._emit("Transfer", sender=ZERO_ADDRESS, recipient=msg.sender, tokenId=token_id)
        self._balances[msg.sender] = self._balances.get(msg.sender, 0) + amount
        return minted

    @external("setApprovalForAll(address,bool)")
    def set_approval_for_all(self, msg: Message, operator: str, approved: bool) -> None:
        operator = normalize_address(operator)
        if operator == msg.sender:
            raise InvalidParameter("Cannot approve yourself as operator")
        if approved and not self.is_operator_allowed(operator):
            logger.warning(
                f"[collection] approval of {operator} by {msg.sender} denied "
                f"(level {self._allow_list_level}, {self._policy.name})"
            )
            raise OperatorNotAllowed(
                f"{operator} is not allowed at level {self._allow_list_level} ({self._policy.name})"
            )
        self._operator_approvals.setdefault(msg.sender, {})[operator] = approved
        self._emit("ApprovalForAll", owner=msg.sender, operator=operator, approved=approved)

    # ── Owner configuration ───────────────────────────────────────────

    @external("setICAL(address)")
    def set_ical(self, msg: Message, allow_list: str) -> None:
        self._check_owner(msg.sender)
        self._ical = normalize_address(allow_list)
        logger.info(f"[collection] allow list set to {self._ical}")

    @external("setContractAllowListLevel(uint256)")
    def set_contract_allow_list_level(self, msg: Message, level: int) -> None:
        self._check_owner(msg.sender)
        self._allow_list_level = level
        logger.info(f"[collection] allow-list level set to {level}")

    @external("setAllowListPolicy(uint8)")
    def set_allow_list_policy(self, msg: Message, policy: int) -> None:
        self._check_owner(msg.sender)
        try:
            self._policy = AllowListPolicy(policy)
        except ValueError:
            raise InvalidParameter(f"Unknown allow-list policy: {policy}") from None
        logger.info(f"[collection] allow-list policy set to {self._policy.name}")

    # ── Internals ─────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self._name,
            "symbol": self._symbol,
            "totalSupply": len(self._owners),
            "allowList": self._ical,
            "allowListLevel": self._allow_list_level,
            "allowListPolicy": self._policy.name,
        }
