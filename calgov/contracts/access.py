"""
Access Control

Role-based authorization (role → set of holders, each role administered by
another role) and single-owner authorization for contracts whose only
privilege is "who may reconfigure me".
"""

from typing import Dict, Set

from ..constants import DEFAULT_ADMIN_ROLE, ZERO_ADDRESS
from ..crypto.abi import normalize_address
from ..exceptions import InvalidParameter, Unauthorized
from ..logger import get_logger
from .base import Contract, Message, external

logger = get_logger(__name__)


class AccessControlUnauthorizedAccount(Unauthorized):
    """Account is missing a required role."""

    def __init__(self, account: str, role: bytes):
        self.account = account
        self.role = role
        super().__init__(f"{account} is missing role 0x{role.hex()}")


class OwnableUnauthorizedAccount(Unauthorized):
    """Caller is not the owner."""


class AccessControl(Contract):
    """Role table checked at the start of every privileged operation."""

    def __init__(self, chain, address: str):
        super().__init__(chain, address)
        self._roles: Dict[bytes, Set[str]] = {}
        self._role_admins: Dict[bytes, bytes] = {}

    # ── Views ─────────────────────────────────────────────────────────

    @external("hasRole(bytes32,address)", view=True)
    def has_role(self, role: bytes, account: str) -> bool:
        return normalize_address(account) in self._roles.get(role, set())

    @external("getRoleAdmin(bytes32)", view=True)
    def get_role_admin(self, role: bytes) -> bytes:
        return self._role_admins.get(role, DEFAULT_ADMIN_ROLE)

    def role_members(self, role: bytes) -> Set[str]:
        return set(self._roles.get(role, set()))

    # ── Mutations ─────────────────────────────────────────────────────

    @external("grantRole(bytes32,address)")
    def grant_role(self, msg: Message, role: bytes, account: str) -> None:
        self._check_role(self.get_role_admin(role), msg.sender)
        self._grant_role(role, account, msg.sender)

    @external("revokeRole(bytes32,address)")
    def revoke_role(self, msg: Message, role: bytes, account: str) -> None:
        self._check_role(self.get_role_admin(role), msg.sender)
        self._revoke_role(role, account, msg.sender)

    @external("renounceRole(bytes32,address)")
    def renounce_role(self, msg: Message, role: bytes, account: str) -> None:
        """Give up a role; only the holder itself may renounce."""
        if normalize_address(account) != msg.sender:
            raise Unauthorized("Accounts can only renounce roles for themselves")
        self._revoke_role(role, account, msg.sender)

    # ── Internals ─────────────────────────────────────────────────────

    def _check_role(self, role: bytes, account: str) -> None:
        if not self.has_role(role, account):
            logger.warning(f"[{type(self).__name__}] {account} denied: missing role 0x{role.hex()[:8]}")
            raise AccessControlUnauthorizedAccount(account, role)

    def _set_role_admin(self, role: bytes, admin_role: bytes) -> None:
        previous = self.get_role_admin(role)
        self._role_admins[role] = admin_role
        self._emit("RoleAdminChanged", role=role, previousAdminRole=previous, newAdminRole=admin_role)

    def _grant_role(self, role: bytes, account: str, sender: str) -> bool:
        account = normalize_address(account)
        holders = self._roles.setdefault(role, set())
        if account in holders:
            return False
        holders.add(account)
        self._emit("RoleGranted", role=role, account=account, sender=sender)
        logger.info(f"[{type(self).__name__}] role 0x{role.hex()[:8]} granted to {account}")
        return True

    def _revoke_role(self, role: bytes, account: str, sender: str) -> bool:
        account = normalize_address(account)
        holders = self._roles.get(role, set())
        if account not in holders:
            return False
        holders.discard(account)
        self._emit("RoleRevoked", role=role, account=account, sender=sender)
        logger.info(f"[{type(self).__name__}] role 0x{role.hex()[:8]} revoked from {account}")
        return True


class Ownable(Contract):
    """Single owner that may be handed over (e.g. to the timelock)."""

    def __init__(self, chain, address: str, owner: str):
        super().__init__(chain, address)
        self._owner = normalize_address(owner)

    @external("owner()", view=True)
    def owner(self) -> str:
        return self._owner

    @external("transferOwnership(address)")
    def transfer_ownership(self, msg: Message, new_owner: str) -> None:
        self._check_owner(msg.sender)
        new_owner = normalize_address(new_owner)
        if new_owner == ZERO_ADDRESS:
            raise InvalidParameter("New owner is the zero address")
        previous, self._owner = self._owner, new_owner
        self._emit("OwnershipTransferred", previousOwner=previous, newOwner=new_owner)
        logger.info(f"[{type(self).__name__}] ownership {previous} → {new_owner}")

    def _check_owner(self, account: str) -> None:
        if account != self._owner:
            logger.warning(f"[{type(self).__name__}] {account} denied: not owner")
            raise OwnableUnauthorizedAccount(f"{account} is not the owner of {self.address}")
