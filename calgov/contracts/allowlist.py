"""
Contract Allow List

Tiered allow-list of operator addresses (level → insertion-ordered set) and
the stable-address frontend that consumers query.

The store is mutated only by its controller, normally the timelock, so
every membership change is the outcome of an executed governance vote.
The frontend holds nothing but the current store address and its owner;
calls it does not define itself are forwarded to the store with the
original caller preserved, so the store's controller check is unaffected by
the indirection.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..constants import ZERO_ADDRESS
from ..crypto.abi import normalize_address
from ..exceptions import InvalidParameter, Unauthorized
from ..logger import get_logger
from .access import Ownable
from .base import Contract, Message, external

logger = get_logger(__name__)


class AllowListUnauthorizedController(Unauthorized):
    """Caller is not the allow-list controller."""


class ContractAllowList(Contract):
    """
    Level-indexed allow-list store.

    Levels are not mutually exclusive: an address may be listed in several
    levels at once. Reads of an unknown level return an empty list.
    """

    def __init__(
        self,
        chain,
        address: str,
        msg: Message,
        controller: str,
        initial_levels: Optional[Mapping[int, Iterable[str]]] = None,
    ):
        super().__init__(chain, address)
        self._controller = normalize_address(controller)
        # dict keys double as an insertion-ordered set
        self._levels: Dict[int, Dict[str, None]] = {}

        for level, accounts in (initial_levels or {}).items():
            self._check_level(level)
            for account in accounts:
                self._add(normalize_address(account), level)

        logger.info(
            f"ContractAllowList deployed at {address}: controller={self._controller} "
            f"levels={sorted(self._levels)}"
        )

    # ── Views ─────────────────────────────────────────────────────────

    @external("getAllowedList(uint256)", view=True)
    def get_allowed_list(self, level: int) -> List[str]:
        return list(self._levels.get(level, {}))

    @external("isAllowed(address,uint256)", view=True)
    def is_allowed(self, account: str, level: int) -> bool:
        return normalize_address(account) in self._levels.get(level, {})

    @external("isAllowedUpTo(address,uint256)", view=True)
    def is_allowed_up_to(self, account: str, level: int) -> bool:
        """Whether *account* is listed at any level from 0 through *level*."""
        account = normalize_address(account)
        return any(account in members for lvl, members in self._levels.items() if lvl <= level)

    @external("controller()", view=True)
    def controller(self) -> str:
        return self._controller

    def levels(self) -> List[int]:
        return sorted(level for level, members in self._levels.items() if members)

    # ── Controller-only mutations ─────────────────────────────────────

    @external("addAllowed(address,uint256)")
    def add_allowed(self, msg: Message, account: str, level: int) -> None:
        self._check_controller(msg.sender)
        self._check_level(level)
        account = normalize_address(account)
        if self._add(account, level):
            self._emit("AllowedAdded", account=account, level=level)
            logger.info(f"[allowlist] {account} added to level {level}")

    @external("removeAllowed(address,uint256)")
    def remove_allowed(self, msg: Message, account: str, level: int) -> None:
        self._check_controller(msg.sender)
        self._check_level(level)
        account = normalize_address(account)
        members = self._levels.get(level)
        if members is None or account not in members:
            return
        del members[account]
        self._emit("AllowedRemoved", account=account, level=level)
        logger.info(f"[allowlist] {account} removed from level {level}")

    @external("transferControl(address)")
    def transfer_control(self, msg: Message, new_controller: str) -> None:
        self._check_controller(msg.sender)
        new_controller = normalize_address(new_controller)
        if new_controller == ZERO_ADDRESS:
            raise InvalidParameter("Controller cannot be the zero address")
        previous, self._controller = self._controller, new_controller
        self._emit("ControlTransferred", previousController=previous, newController=new_controller)
        logger.info(f"[allowlist] control {previous} → {new_controller}")

    # ── Internals ─────────────────────────────────────────────────────

    def _add(self, account: str, level: int) -> bool:
        members = self._levels.setdefault(level, {})
        if account in members:
            return False
        members[account] = None
        return True

    def _check_controller(self, account: str) -> None:
        if account != self._controller:
            logger.warning(f"[allowlist] {account} denied: not controller")
            raise AllowListUnauthorizedController(
                f"{account} is not the allow-list controller ({self._controller})"
            )

    @staticmethod
    def _check_level(level: int) -> None:
        if level < 0:
            raise InvalidParameter(f"Level must be non-negative, got {level}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "controller": self._controller,
            "levels": {str(k): list(v) for k, v in sorted(self._levels.items())},
        }


class ContractAllowListProxy(Ownable):
    """
    Stable-address frontend for the allow-list store.

    Swapping the store (``setContractAllowList``) is a single reference
    update; consumers keep using the frontend address throughout.
    """

    def __init__(self, chain, address: str, msg: Message, store: str):
        super().__init__(chain, address, owner=msg.sender)
        store = normalize_address(store)
        if store == ZERO_ADDRESS:
            raise InvalidParameter("Store cannot be the zero address")
        self._store = store

    @external("store()", view=True)
    def store(self) -> str:
        return self._store

    @external("getAllowedList(uint256)", view=True)
    def get_allowed_list(self, level: int) -> List[str]:
        data = ContractAllowList.encode_call("getAllowedList", level)
        return self.chain.forward_call(Message(self.address), self._store, data)

    @external("setContractAllowList(address)")
    def set_store(self, msg: Message, new_store: str) -> None:
        self._check_owner(msg.sender)
        new_store = normalize_address(new_store)
        if new_store == ZERO_ADDRESS:
            raise InvalidParameter("Store cannot be the zero address")
        previous, self._store = self._store, new_store
        self._emit("StoreChanged", previousStore=previous, newStore=new_store)
        logger.info(f"[allowlist-proxy] store {previous} → {new_store}")

    def fallback(self, msg: Message, data: bytes) -> Any:
        return self.chain.forward_call(msg, self._store, data)
