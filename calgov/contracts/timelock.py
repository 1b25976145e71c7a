"""
Timelock Controller

Role-gated queue of scheduled operations. An operation is identified by the
hash of its calls, predecessor and salt, and may run only once its ready
timestamp has passed (and its predecessor, if any, has run).

Operation lifecycle:
    UNSET → WAITING → READY (ready timestamp reached) → DONE
    WAITING | READY → CANCELLED

Roles:
    TIMELOCK_ADMIN_ROLE  grants/revokes every role (held by the timelock itself)
    PROPOSER_ROLE        schedule
    EXECUTOR_ROLE        execute (open to anyone if granted to the zero address)
    CANCELLER_ROLE       cancel
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from ..constants import (
    CANCELLER_ROLE,
    EXECUTOR_ROLE,
    PROPOSER_ROLE,
    TIMELOCK_ADMIN_ROLE,
    TIMELOCK_DONE_TIMESTAMP,
    ZERO_ADDRESS,
    ZERO_BYTES32,
)
from ..crypto.abi import hash_operation, hash_operation_batch, normalize_address
from ..exceptions import (
    CALGovError,
    CollisionOrReplay,
    DelayNotElapsed,
    ExecutionFailed,
    InvalidParameter,
    InvalidState,
    Unauthorized,
)
from ..logger import get_logger
from .access import AccessControl
from .base import Message, external

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TimelockUnexpectedOperationState(InvalidState):
    """Operation is not in the state the call requires."""


class TimelockUnexecutedPredecessor(InvalidState):
    """Predecessor operation has not been executed yet."""


class TimelockInsufficientDelay(InvalidParameter):
    """Requested delay is below the minimum delay."""


class TimelockUnauthorizedCaller(Unauthorized):
    """Function is reserved for the timelock itself."""


class TimelockCallFailed(ExecutionFailed):
    """A call of an executed operation failed."""


# ══════════════════════════════════════════════════════════════════════
#  OPERATIONS
# ══════════════════════════════════════════════════════════════════════

class OperationState(IntEnum):
    UNSET = 0
    WAITING = 1
    READY = 2
    DONE = 3
    CANCELLED = 4


@dataclass
class TimelockOperation:
    """
    A scheduled batch of calls.

    Attributes:
        op_id:           Hash of (targets, values, payloads, predecessor, salt)
        ready_timestamp: Earliest execution time (kept after execution; see ``executed``)
        scheduled_at:    Timestamp when scheduled
        delay:           Delay requested at scheduling
    """
    op_id: bytes
    targets: List[str]
    values: List[int]
    payloads: List[bytes]
    predecessor: bytes
    salt: bytes
    ready_timestamp: int
    scheduled_at: int
    delay: int
    executed: bool = False
    cancelled: bool = False
    executed_at: Optional[int] = None
    cancelled_at: Optional[int] = None
    history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def state_at(self, now: int) -> OperationState:
        if self.executed:
            return OperationState.DONE
        if self.cancelled:
            return OperationState.CANCELLED
        if now >= self.ready_timestamp:
            return OperationState.READY
        return OperationState.WAITING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": "0x" + self.op_id.hex(),
            "targets": list(self.targets),
            "values": list(self.values),
            "payloads": ["0x" + p.hex() for p in self.payloads],
            "predecessor": "0x" + self.predecessor.hex(),
            "salt": "0x" + self.salt.hex(),
            "readyTimestamp": self.ready_timestamp,
            "scheduledAt": self.scheduled_at,
            "delay": self.delay,
            "executed": self.executed,
            "cancelled": self.cancelled,
            "executedAt": self.executed_at,
            "cancelledAt": self.cancelled_at,
        }


# ══════════════════════════════════════════════════════════════════════
#  TIMELOCK CONTROLLER
# ══════════════════════════════════════════════════════════════════════

class TimelockController(AccessControl):
    """
    Delayed, role-gated executor of arbitrary calls.

    In the CAL deployment the governor holds PROPOSER, EXECUTOR and
    CANCELLER, and the timelock controls the allow-list store, so only a
    successful vote can change allow-list membership.
    """

    def __init__(
        self,
        chain,
        address: str,
        msg: Message,
        min_delay: int,
        proposers: Sequence[str],
        executors: Sequence[str],
        admin: Optional[str] = None,
    ):
        """
        Args:
            min_delay: Minimum seconds between scheduling and execution
            proposers: Granted PROPOSER_ROLE and CANCELLER_ROLE
            executors: Granted EXECUTOR_ROLE (zero address = anyone)
            admin:     Extra TIMELOCK_ADMIN_ROLE holder; defaults to the deployer
        """
        super().__init__(chain, address)
        if min_delay < 0:
            raise InvalidParameter("Minimum delay cannot be negative")

        self._operations: Dict[bytes, TimelockOperation] = {}
        self._min_delay = min_delay

        self._set_role_admin(TIMELOCK_ADMIN_ROLE, TIMELOCK_ADMIN_ROLE)
        self._set_role_admin(PROPOSER_ROLE, TIMELOCK_ADMIN_ROLE)
        self._set_role_admin(EXECUTOR_ROLE, TIMELOCK_ADMIN_ROLE)
        self._set_role_admin(CANCELLER_ROLE, TIMELOCK_ADMIN_ROLE)

        self._grant_role(TIMELOCK_ADMIN_ROLE, address, msg.sender)
        self._grant_role(TIMELOCK_ADMIN_ROLE, admin or msg.sender, msg.sender)
        for proposer in proposers:
            self._grant_role(PROPOSER_ROLE, proposer, msg.sender)
            self._grant_role(CANCELLER_ROLE, proposer, msg.sender)
        for executor in executors:
            self._grant_role(EXECUTOR_ROLE, executor, msg.sender)

        self._emit("MinDelayChange", oldDuration=0, newDuration=min_delay)

    # ── Value ─────────────────────────────────────────────────────────

    def receive(self, msg: Message) -> None:
        """Hold native value so operations can forward it."""

    # ── Views ─────────────────────────────────────────────────────────

    @external("getMinDelay()", view=True)
    def get_min_delay(self) -> int:
        return self._min_delay

    @external("hashOperation(address,uint256,bytes,bytes32,bytes32)", view=True)
    def hash_operation(self, target: str, value: int, data: bytes, predecessor: bytes, salt: bytes) -> bytes:
        return hash_operation(target, value, data, predecessor, salt)

    @external("hashOperationBatch(address[],uint256[],bytes[],bytes32,bytes32)", view=True)
    def hash_operation_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
    ) -> bytes:
        return hash_operation_batch(targets, values, payloads, predecessor, salt)

    @external("getOperationState(bytes32)", view=True)
    def get_operation_state(self, op_id: bytes) -> OperationState:
        op = self._operations.get(op_id)
        if op is None:
            return OperationState.UNSET
        return op.state_at(self.chain.timestamp)

    @external("getTimestamp(bytes32)", view=True)
    def get_timestamp(self, op_id: bytes) -> int:
        """Ready timestamp; 0 if unset or cancelled, 1 once executed."""
        op = self._operations.get(op_id)
        if op is None or op.cancelled:
            return 0
        if op.executed:
            return TIMELOCK_DONE_TIMESTAMP
        return op.ready_timestamp

    @external("isOperation(bytes32)", view=True)
    def is_operation(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) not in (OperationState.UNSET, OperationState.CANCELLED)

    @external("isOperationPending(bytes32)", view=True)
    def is_operation_pending(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) in (OperationState.WAITING, OperationState.READY)

    @external("isOperationReady(bytes32)", view=True)
    def is_operation_ready(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) == OperationState.READY

    @external("isOperationDone(bytes32)", view=True)
    def is_operation_done(self, op_id: bytes) -> bool:
        return self.get_operation_state(op_id) == OperationState.DONE

    def get_operation(self, op_id: bytes) -> Optional[TimelockOperation]:
        return self._operations.get(op_id)

    def pending_operations(self) -> List[TimelockOperation]:
        now = self.chain.timestamp
        return [
            op for op in self._operations.values()
            if op.state_at(now) in (OperationState.WAITING, OperationState.READY)
        ]

    # ── Schedule ──────────────────────────────────────────────────────

    @external("schedule(address,uint256,bytes,bytes32,bytes32,uint256)")
    def schedule(
        self,
        msg: Message,
        target: str,
        value: int,
        data: bytes,
        predecessor: bytes,
        salt: bytes,
        delay: int,
    ) -> bytes:
        self._check_role(PROPOSER_ROLE, msg.sender)
        op_id = hash_operation(target, value, data, predecessor, salt)
        self._schedule(op_id, [target], [value], [data], predecessor, salt, delay)
        return op_id

    @external("scheduleBatch(address[],uint256[],bytes[],bytes32,bytes32,uint256)")
    def schedule_batch(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
        delay: int,
    ) -> bytes:
        self._check_role(PROPOSER_ROLE, msg.sender)
        self._check_lengths(targets, values, payloads)
        op_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._schedule(op_id, targets, values, payloads, predecessor, salt, delay)
        return op_id

    def _schedule(
        self,
        op_id: bytes,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
        delay: int,
    ) -> None:
        existing = self._operations.get(op_id)
        if existing is not None and not existing.cancelled:
            raise CollisionOrReplay(
                f"Operation 0x{op_id.hex()} already scheduled "
                f"(state={existing.state_at(self.chain.timestamp).name})"
            )
        if delay < self._min_delay:
            raise TimelockInsufficientDelay(f"Delay {delay}s < minimum {self._min_delay}s")

        now = self.chain.timestamp
        op = TimelockOperation(
            op_id=op_id,
            targets=[normalize_address(t) for t in targets],
            values=list(values),
            payloads=list(payloads),
            predecessor=predecessor,
            salt=salt,
            ready_timestamp=now + delay,
            scheduled_at=now,
            delay=delay,
        )
        if existing is not None:
            op.history = existing.history + [existing.to_dict()]
        self._operations[op_id] = op

        for index, (target, value, data) in enumerate(zip(op.targets, op.values, op.payloads)):
            self._emit(
                "CallScheduled",
                id=op_id, index=index, target=target, value=value,
                data=data, predecessor=predecessor, delay=delay,
            )
        if salt != ZERO_BYTES32:
            self._emit("CallSalt", id=op_id, salt=salt)

        logger.info(
            f"[timelock] operation 0x{op_id.hex()} scheduled: {len(op.targets)} call(s), "
            f"ready at {op.ready_timestamp} (delay {delay}s)"
        )

    # ── Cancel ────────────────────────────────────────────────────────

    @external("cancel(bytes32)")
    def cancel(self, msg: Message, op_id: bytes) -> None:
        self._check_role(CANCELLER_ROLE, msg.sender)
        state = self.get_operation_state(op_id)
        if state not in (OperationState.WAITING, OperationState.READY):
            raise TimelockUnexpectedOperationState(
                f"Operation 0x{op_id.hex()} cannot be cancelled in state {state.name}"
            )
        op = self._operations[op_id]
        op.cancelled = True
        op.cancelled_at = self.chain.timestamp
        self._emit("Cancelled", id=op_id)
        logger.info(f"[timelock] operation 0x{op_id.hex()} CANCELLED by {msg.sender}")

    # ── Execute ───────────────────────────────────────────────────────

    @external("execute(address,uint256,bytes,bytes32,bytes32)", payable=True)
    def execute(
        self,
        msg: Message,
        target: str,
        value: int,
        data: bytes,
        predecessor: bytes,
        salt: bytes,
    ) -> None:
        self._check_executor(msg.sender)
        op_id = hash_operation(target, value, data, predecessor, salt)
        self._execute(op_id, predecessor)

    @external("executeBatch(address[],uint256[],bytes[],bytes32,bytes32)", payable=True)
    def execute_batch(
        self,
        msg: Message,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: bytes,
        salt: bytes,
    ) -> None:
        self._check_executor(msg.sender)
        self._check_lengths(targets, values, payloads)
        op_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._execute(op_id, predecessor)

    def _execute(self, op_id: bytes, predecessor: bytes) -> None:
        self._before_call(op_id, predecessor)
        op = self._operations[op_id]
        for index, (target, value, data) in enumerate(zip(op.targets, op.values, op.payloads)):
            try:
                self.chain.message_call(self.address, target, data, value)
            except CALGovError as e:
                logger.warning(
                    f"[timelock] operation 0x{op_id.hex()} call #{index} to {target} failed: {e}"
                )
                raise TimelockCallFailed(
                    f"Call #{index} of operation 0x{op_id.hex()} to {target} failed: "
                    f"{type(e).__name__}: {e}"
                ) from e
            self._emit("CallExecuted", id=op_id, index=index, target=target, value=value, data=data)
        op.executed = True
        op.executed_at = self.chain.timestamp
        logger.info(f"[timelock] operation 0x{op_id.hex()} EXECUTED")

    def _before_call(self, op_id: bytes, predecessor: bytes) -> None:
        state = self.get_operation_state(op_id)
        if state == OperationState.WAITING:
            op = self._operations[op_id]
            raise DelayNotElapsed(
                f"Operation 0x{op_id.hex()} not ready "
                f"(remaining={op.ready_timestamp - self.chain.timestamp}s)"
            )
        if state != OperationState.READY:
            raise TimelockUnexpectedOperationState(
                f"Operation 0x{op_id.hex()} cannot be executed in state {state.name}"
            )
        if predecessor != ZERO_BYTES32 and not self.is_operation_done(predecessor):
            raise TimelockUnexecutedPredecessor(
                f"Predecessor 0x{predecessor.hex()} of 0x{op_id.hex()} not executed"
            )

    # ── Self-administration ───────────────────────────────────────────

    @external("updateDelay(uint256)")
    def update_delay(self, msg: Message, new_delay: int) -> None:
        """Change the minimum delay; only through an executed operation."""
        if msg.sender != self.address:
            raise TimelockUnauthorizedCaller(f"{msg.sender} is not the timelock")
        old, self._min_delay = self._min_delay, new_delay
        self._emit("MinDelayChange", oldDuration=old, newDuration=new_delay)
        logger.info(f"[timelock] minimum delay {old}s → {new_delay}s")

    # ── Internals ─────────────────────────────────────────────────────

    def _check_executor(self, account: str) -> None:
        if self.has_role(EXECUTOR_ROLE, ZERO_ADDRESS):
            return
        self._check_role(EXECUTOR_ROLE, account)

    @staticmethod
    def _check_lengths(targets: Sequence[str], values: Sequence[int], payloads: Sequence[bytes]) -> None:
        if not (len(targets) == len(values) == len(payloads)):
            raise InvalidParameter(
                f"Operation length mismatch: targets={len(targets)} "
                f"values={len(values)} payloads={len(payloads)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "minDelay": self._min_delay,
            "operations": {
                "0x" + op_id.hex(): op.to_dict() for op_id, op in self._operations.items()
            },
        }
