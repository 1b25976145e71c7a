"""
Chain State

A single-process, Ethereum-style execution environment for the governance
contracts: accounts and native balances, deployed contracts, a monotonic
block clock, and transaction atomicity.

Every transaction mines exactly one block and runs inside a state snapshot.
If anything raises, the snapshot is reverted (contract storage, balances,
nonces, events, and the block/time advance), and the error propagates to
the caller unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, Union

from ..config.loader import ChainSettings
from ..constants import ZERO_ADDRESS
from ..crypto.abi import generate_contract_address, normalize_address
from ..exceptions import InvalidParameter, InvalidState
from ..logger import get_logger
from .base import Contract, Event, Message

logger = get_logger(__name__)

ContractRef = Union[Contract, str]


@dataclass
class Receipt:
    """Result of a committed transaction."""
    block_number: int
    timestamp: int
    sender: str
    to: str
    return_value: Any = None
    events: List[Event] = field(default_factory=list)

    def events_named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]


class Chain:
    """
    Execution environment shared by all deployed contracts.

    Provides:
    - Block number and timestamp (advance only)
    - Native balances and account nonces
    - Contract deployment (CREATE-style addresses)
    - Atomic transactions, read-only calls, and nested message calls
    - State snapshots and reverts
    """

    def __init__(self, settings: Optional[ChainSettings] = None):
        self.settings = settings or ChainSettings()
        self.chain_id = self.settings.chain_id
        self.block_number = 0
        self.timestamp = self.settings.genesis_timestamp

        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._contracts: Dict[str, Contract] = {}
        self._events: List[Event] = []
        self._snapshots: List[Dict[str, Any]] = []

    # ── Clock ─────────────────────────────────────────────────────────

    def mine(self, blocks: int = 1, interval: Optional[int] = None) -> int:
        """Mine *blocks* empty blocks; returns the new block number."""
        if blocks < 1:
            raise InvalidParameter("blocks must be >= 1")
        step = self.settings.block_interval if interval is None else interval
        self.block_number += blocks
        self.timestamp += blocks * step
        return self.block_number

    def increase_time(self, seconds: int) -> int:
        """Advance the clock by *seconds* and mine one block at the new time."""
        if seconds < 0:
            raise InvalidParameter("Time cannot move backwards")
        self.timestamp += seconds
        self.block_number += 1
        return self.timestamp

    # ── Accounts ──────────────────────────────────────────────────────

    def get_balance(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def set_balance(self, address: str, balance: int) -> None:
        """Directly set a native balance (genesis / testing)."""
        if balance < 0:
            raise InvalidParameter("Balance cannot be negative")
        self._balances[normalize_address(address)] = balance

    def get_nonce(self, address: str) -> int:
        return self._nonces.get(normalize_address(address), 0)

    def _transfer_value(self, sender: str, recipient: str, value: int) -> None:
        if value == 0:
            return
        if value < 0:
            raise InvalidParameter("Value cannot be negative")
        balance = self._balances.get(sender, 0)
        if balance < value:
            raise InvalidState(f"Insufficient balance: {sender} has {balance}, needs {value}")
        self._balances[sender] = balance - value
        self._balances[recipient] = self._balances.get(recipient, 0) + value

    # ── Contracts ─────────────────────────────────────────────────────

    def is_contract(self, address: str) -> bool:
        return normalize_address(address) in self._contracts

    def get_contract(self, address: ContractRef) -> Contract:
        if isinstance(address, Contract):
            return address
        contract = self._contracts.get(normalize_address(address))
        if contract is None:
            raise InvalidParameter(f"No contract deployed at {address}")
        return contract

    def deploy(
        self,
        contract_cls: Type[Contract],
        deployer: str,
        *args,
        value: int = 0,
        **kwargs,
    ) -> Contract:
        """
        Deploy *contract_cls* from *deployer* in its own transaction.

        The address follows CREATE semantics: keccak(rlp([deployer, nonce])).
        """
        deployer = normalize_address(deployer)
        snapshot_id = self.snapshot()
        try:
            self._advance_block()
            nonce = self._nonces.get(deployer, 0)
            address = generate_contract_address(deployer, nonce)
            self._nonces[deployer] = nonce + 1
            self._transfer_value(deployer, address, value)
            contract = contract_cls(self, address, Message(deployer, value), *args, **kwargs)
            self._contracts[address] = contract
        except Exception:
            self.revert(snapshot_id)
            raise
        self._discard(snapshot_id)
        logger.info(f"[deploy] {contract_cls.__name__} at {address} (block {self.block_number})")
        return contract

    # ── Transactions ──────────────────────────────────────────────────

    def transact(
        self,
        sender: str,
        target: ContractRef,
        function: str,
        *args,
        value: int = 0,
    ) -> Receipt:
        """
        Send a transaction calling *function* (ABI name or signature) on *target*.

        Returns:
            Receipt with the return value and emitted events

        Raises:
            Whatever the call raises; all state is reverted first.
        """
        contract = self.get_contract(target)
        data = type(contract).encode_call(function, *args)
        return self.send(sender, contract.address, data, value=value)

    def send(self, sender: str, to: str, data: bytes = b"", value: int = 0) -> Receipt:
        """Send a transaction with raw call data."""
        sender = normalize_address(sender)
        to = normalize_address(to)
        snapshot_id = self.snapshot()
        first_event = len(self._events)
        try:
            self._advance_block()
            self._nonces[sender] = self._nonces.get(sender, 0) + 1
            result = self.message_call(sender, to, data, value)
        except Exception as e:
            self.revert(snapshot_id)
            logger.warning(f"[revert] {sender} --> {to}: {type(e).__name__}: {e}")
            raise
        self._discard(snapshot_id)
        return Receipt(
            block_number=self.block_number,
            timestamp=self.timestamp,
            sender=sender,
            to=to,
            return_value=result,
            events=list(self._events[first_event:]),
        )

    def call(
        self,
        target: ContractRef,
        function: str,
        *args,
        sender: str = ZERO_ADDRESS,
    ) -> Any:
        """
        Execute a read-only call against the latest block.

        Any state touched during the call is discarded.
        """
        contract = self.get_contract(target)
        data = type(contract).encode_call(function, *args)
        snapshot_id = self.snapshot()
        try:
            return self.message_call(normalize_address(sender), contract.address, data, 0)
        finally:
            self.revert(snapshot_id)

    def message_call(self, sender: str, target: str, data: bytes, value: int = 0) -> Any:
        """
        Nested call: transfer *value*, then dispatch *data* to *target*.

        A call to an address without code only moves value.
        """
        target = normalize_address(target)
        self._transfer_value(sender, target, value)
        contract = self._contracts.get(target)
        if contract is None:
            return None
        return contract.dispatch(Message(sender, value), data)

    def forward_call(self, msg: Message, target: str, data: bytes) -> Any:
        """Dispatch *data* to *target* under the original caller's message."""
        contract = self.get_contract(target)
        return contract.dispatch(msg, data)

    # ── Events ────────────────────────────────────────────────────────

    def emit(self, event: Event) -> None:
        self._events.append(event)

    def get_events(self, name: Optional[str] = None, address: Optional[str] = None) -> List[Event]:
        events = self._events
        if address is not None:
            address = normalize_address(address)
            events = [e for e in events if e.address == address]
        if name is not None:
            events = [e for e in events if e.name == name]
        return list(events)

    # ── Snapshots ─────────────────────────────────────────────────────

    def _advance_block(self) -> None:
        self.block_number += 1
        self.timestamp += self.settings.block_interval

    def snapshot(self) -> int:
        """
        Create state snapshot for revert.

        Returns:
            Snapshot ID
        """
        snapshot = {
            'block_number': self.block_number,
            'timestamp': self.timestamp,
            'balances': dict(self._balances),
            'nonces': dict(self._nonces),
            'contracts': dict(self._contracts),
            'storage': {addr: c.snapshot_state() for addr, c in self._contracts.items()},
            'events': len(self._events),
        }
        self._snapshots.append(snapshot)
        return len(self._snapshots) - 1

    def revert(self, snapshot_id: int) -> None:
        """
        Revert state to snapshot.

        Args:
            snapshot_id: Snapshot ID from snapshot()
        """
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")

        snapshot = self._snapshots[snapshot_id]
        self.block_number = snapshot['block_number']
        self.timestamp = snapshot['timestamp']
        self._balances = snapshot['balances']
        self._nonces = snapshot['nonces']
        self._contracts = snapshot['contracts']
        for address, state in snapshot['storage'].items():
            self._contracts[address].restore_state(state)
        del self._events[snapshot['events']:]

        # Remove this and newer snapshots
        self._snapshots = self._snapshots[:snapshot_id]

    def _discard(self, snapshot_id: int) -> None:
        self._snapshots = self._snapshots[:snapshot_id]

    def __repr__(self) -> str:
        return (
            f"<Chain id={self.chain_id} block={self.block_number} "
            f"contracts={len(self._contracts)}>"
        )
