"""
Timelock Controller Test Suite

Coverage:
  - Roles granted at construction, grant / revoke / renounce
  - schedule / scheduleBatch: delay bounds, collisions
  - execute / executeBatch: readiness, predecessors, atomic failure
  - cancel, self-administered updateDelay, open executor role
"""

import pytest

from calgov.constants import (
    CANCELLER_ROLE,
    EXECUTOR_ROLE,
    PROPOSER_ROLE,
    TIMELOCK_ADMIN_ROLE,
    TIMELOCK_DONE_TIMESTAMP,
    ZERO_ADDRESS,
    ZERO_BYTES32,
)
from calgov.contracts.access import AccessControlUnauthorizedAccount
from calgov.contracts.allowlist import ContractAllowList
from calgov.contracts.state import Chain
from calgov.contracts.timelock import OperationState, TimelockController
from calgov.crypto.abi import hash_operation
from calgov.exceptions import (
    CollisionOrReplay,
    DelayNotElapsed,
    ExecutionFailed,
    InvalidParameter,
    InvalidState,
    Unauthorized,
)


MIN_DELAY = 2
X = "0x1111111111111111111111111111111111111111"
SALT = b"\x07" * 32


@pytest.fixture
def env(accounts):
    chain = Chain()
    admin = accounts[0].address
    proposer = accounts[1].address
    executor = accounts[2].address
    timelock = chain.deploy(TimelockController, admin, MIN_DELAY, [proposer], [executor])
    store = chain.deploy(ContractAllowList, admin, timelock.address)
    return chain, admin, proposer, executor, timelock, store


def add_call(level=1, account=X):
    return ContractAllowList.encode_call("addAllowed", account, level)


def schedule(chain, proposer, timelock, target, data, predecessor=ZERO_BYTES32, salt=ZERO_BYTES32, delay=MIN_DELAY):
    receipt = chain.transact(proposer, timelock, "schedule", target, 0, data, predecessor, salt, delay)
    return receipt.return_value


class TestTimelockRoles:

    def test_constructor_roles(self, env):
        _, admin, proposer, executor, timelock, _ = env
        assert timelock.has_role(TIMELOCK_ADMIN_ROLE, timelock.address)
        assert timelock.has_role(TIMELOCK_ADMIN_ROLE, admin)
        assert timelock.has_role(PROPOSER_ROLE, proposer)
        assert timelock.has_role(CANCELLER_ROLE, proposer)
        assert timelock.has_role(EXECUTOR_ROLE, executor)
        assert not timelock.has_role(PROPOSER_ROLE, executor)
        assert timelock.get_role_admin(PROPOSER_ROLE) == TIMELOCK_ADMIN_ROLE

    def test_min_delay(self, env):
        assert env[4].get_min_delay() == MIN_DELAY

    def test_admin_grants_and_revokes(self, env):
        chain, admin, _, executor, timelock, _ = env
        receipt = chain.transact(admin, timelock, "grantRole", PROPOSER_ROLE, executor)
        assert timelock.has_role(PROPOSER_ROLE, executor)
        assert receipt.events_named("RoleGranted")[0]["account"] == executor
        chain.transact(admin, timelock, "revokeRole", PROPOSER_ROLE, executor)
        assert not timelock.has_role(PROPOSER_ROLE, executor)

    def test_non_admin_grant_raises(self, env):
        chain, _, proposer, executor, timelock, _ = env
        with pytest.raises(AccessControlUnauthorizedAccount) as exc_info:
            chain.transact(proposer, timelock, "grantRole", EXECUTOR_ROLE, proposer)
        assert exc_info.value.role == TIMELOCK_ADMIN_ROLE
        assert not timelock.has_role(EXECUTOR_ROLE, proposer)

    def test_renounce_only_self(self, env):
        chain, admin, proposer, _, timelock, _ = env
        with pytest.raises(Unauthorized):
            chain.transact(admin, timelock, "renounceRole", PROPOSER_ROLE, proposer)
        chain.transact(proposer, timelock, "renounceRole", PROPOSER_ROLE, proposer)
        assert not timelock.has_role(PROPOSER_ROLE, proposer)


class TestTimelockSchedule:

    def test_schedule(self, env):
        chain, _, proposer, _, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        assert op_id == hash_operation(store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        assert timelock.get_operation_state(op_id) == OperationState.WAITING
        assert timelock.is_operation(op_id)
        assert timelock.is_operation_pending(op_id)
        assert not timelock.is_operation_ready(op_id)
        assert timelock.get_timestamp(op_id) == chain.timestamp + MIN_DELAY

    def test_schedule_emits_event(self, env):
        chain, _, proposer, _, timelock, store = env
        receipt = chain.transact(proposer, timelock, "schedule", store.address, 0, add_call(), ZERO_BYTES32, SALT, 5)
        (event,) = receipt.events_named("CallScheduled")
        assert event["target"] == store.address
        assert event["delay"] == 5
        assert receipt.events_named("CallSalt")[0]["salt"] == SALT

    def test_non_proposer_raises(self, env):
        chain, _, _, executor, timelock, store = env
        with pytest.raises(Unauthorized):
            schedule(chain, executor, timelock, store.address, add_call())

    def test_delay_below_minimum_raises(self, env):
        chain, _, proposer, _, timelock, store = env
        with pytest.raises(InvalidParameter, match="minimum"):
            schedule(chain, proposer, timelock, store.address, add_call(), delay=MIN_DELAY - 1)

    def test_duplicate_raises(self, env):
        chain, _, proposer, _, timelock, store = env
        schedule(chain, proposer, timelock, store.address, add_call())
        with pytest.raises(CollisionOrReplay):
            schedule(chain, proposer, timelock, store.address, add_call())

    def test_batch_length_mismatch_raises(self, env):
        chain, _, proposer, _, timelock, store = env
        with pytest.raises(InvalidParameter, match="length mismatch"):
            chain.transact(
                proposer, timelock, "scheduleBatch",
                [store.address, store.address], [0], [add_call(), add_call(2)],
                ZERO_BYTES32, ZERO_BYTES32, MIN_DELAY,
            )

    def test_unset_operation(self, env):
        timelock = env[4]
        assert timelock.get_operation_state(b"\x01" * 32) == OperationState.UNSET
        assert timelock.get_timestamp(b"\x01" * 32) == 0
        assert not timelock.is_operation(b"\x01" * 32)


class TestTimelockExecute:

    def test_execute_after_delay(self, env):
        chain, _, proposer, executor, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        chain.increase_time(MIN_DELAY)
        assert timelock.is_operation_ready(op_id)
        receipt = chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        assert store.get_allowed_list(1) == [X]
        assert timelock.is_operation_done(op_id)
        assert timelock.get_timestamp(op_id) == TIMELOCK_DONE_TIMESTAMP
        assert len(receipt.events_named("CallExecuted")) == 1

    def test_execute_early_raises(self, env):
        chain, _, proposer, executor, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        with pytest.raises(DelayNotElapsed):
            chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        assert store.get_allowed_list(1) == []
        assert timelock.is_operation_pending(op_id)

    def test_execute_unscheduled_raises(self, env):
        chain, _, _, executor, timelock, store = env
        with pytest.raises(InvalidState):
            chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)

    def test_execute_twice_raises(self, env):
        chain, _, proposer, executor, timelock, store = env
        schedule(chain, proposer, timelock, store.address, add_call())
        chain.increase_time(MIN_DELAY)
        chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        with pytest.raises(InvalidState):
            chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)

    def test_executed_operation_cannot_be_rescheduled(self, env):
        chain, _, proposer, executor, timelock, store = env
        schedule(chain, proposer, timelock, store.address, add_call())
        chain.increase_time(MIN_DELAY)
        chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        with pytest.raises(CollisionOrReplay):
            schedule(chain, proposer, timelock, store.address, add_call())

    def test_non_executor_raises(self, env):
        chain, _, proposer, _, timelock, store = env
        schedule(chain, proposer, timelock, store.address, add_call())
        chain.increase_time(MIN_DELAY)
        with pytest.raises(AccessControlUnauthorizedAccount):
            chain.transact(proposer, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)

    def test_open_executor_role(self, accounts):
        chain = Chain()
        admin, proposer, anyone = (a.address for a in accounts[:3])
        timelock = chain.deploy(TimelockController, admin, MIN_DELAY, [proposer], [ZERO_ADDRESS])
        store = chain.deploy(ContractAllowList, admin, timelock.address)
        schedule(chain, proposer, timelock, store.address, add_call())
        chain.increase_time(MIN_DELAY)
        chain.transact(anyone, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)
        assert store.get_allowed_list(1) == [X]

    def test_batch_failure_is_atomic(self, env):
        chain, admin, proposer, executor, timelock, store = env
        foreign = chain.deploy(ContractAllowList, admin, admin)
        targets = [store.address, foreign.address]
        payloads = [add_call(3), add_call(3)]
        chain.transact(proposer, timelock, "scheduleBatch", targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32, MIN_DELAY)
        chain.increase_time(MIN_DELAY)
        with pytest.raises(ExecutionFailed, match="Call #1") as exc_info:
            chain.transact(executor, timelock, "executeBatch", targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32)
        assert isinstance(exc_info.value.__cause__, Unauthorized)
        assert store.get_allowed_list(3) == []

    def test_predecessor_must_be_done(self, env):
        chain, _, proposer, executor, timelock, store = env
        first = schedule(chain, proposer, timelock, store.address, add_call(1))
        schedule(chain, proposer, timelock, store.address, add_call(2), predecessor=first)
        chain.increase_time(MIN_DELAY)
        with pytest.raises(InvalidState, match="Predecessor"):
            chain.transact(executor, timelock, "execute", store.address, 0, add_call(2), first, ZERO_BYTES32)
        chain.transact(executor, timelock, "execute", store.address, 0, add_call(1), ZERO_BYTES32, ZERO_BYTES32)
        chain.transact(executor, timelock, "execute", store.address, 0, add_call(2), first, ZERO_BYTES32)
        assert store.get_allowed_list(2) == [X]

    def test_value_forwarded_to_target(self, env):
        chain, admin, proposer, executor, timelock, _ = env
        chain.set_balance(admin, 100)
        chain.send(admin, timelock.address, value=50)
        chain.transact(proposer, timelock, "schedule", X, 30, b"", ZERO_BYTES32, ZERO_BYTES32, MIN_DELAY)
        chain.increase_time(MIN_DELAY)
        chain.transact(executor, timelock, "execute", X, 30, b"", ZERO_BYTES32, ZERO_BYTES32)
        assert chain.get_balance(X) == 30
        assert chain.get_balance(timelock.address) == 20


class TestTimelockCancel:

    def test_cancel(self, env):
        chain, _, proposer, executor, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        chain.transact(proposer, timelock, "cancel", op_id)
        assert timelock.get_operation_state(op_id) == OperationState.CANCELLED
        assert not timelock.is_operation(op_id)
        chain.increase_time(MIN_DELAY)
        with pytest.raises(InvalidState):
            chain.transact(executor, timelock, "execute", store.address, 0, add_call(), ZERO_BYTES32, ZERO_BYTES32)

    def test_reschedule_after_cancel(self, env):
        chain, _, proposer, _, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        chain.transact(proposer, timelock, "cancel", op_id)
        assert schedule(chain, proposer, timelock, store.address, add_call()) == op_id
        assert timelock.is_operation_pending(op_id)
        assert len(timelock.get_operation(op_id).history) == 1

    def test_non_canceller_raises(self, env):
        chain, _, proposer, executor, timelock, store = env
        op_id = schedule(chain, proposer, timelock, store.address, add_call())
        with pytest.raises(Unauthorized):
            chain.transact(executor, timelock, "cancel", op_id)

    def test_cancel_unset_raises(self, env):
        chain, _, proposer, _, timelock, _ = env
        with pytest.raises(InvalidState):
            chain.transact(proposer, timelock, "cancel", b"\x01" * 32)


class TestTimelockUpdateDelay:

    def test_direct_call_raises(self, env):
        chain, admin, _, _, timelock, _ = env
        with pytest.raises(Unauthorized, match="not the timelock"):
            chain.transact(admin, timelock, "updateDelay", 10)

    def test_update_through_operation(self, env):
        chain, _, proposer, executor, timelock, _ = env
        data = TimelockController.encode_call("updateDelay", 10)
        schedule(chain, proposer, timelock, timelock.address, data)
        chain.increase_time(MIN_DELAY)
        receipt = chain.transact(executor, timelock, "execute", timelock.address, 0, data, ZERO_BYTES32, ZERO_BYTES32)
        assert timelock.get_min_delay() == 10
        assert receipt.events_named("MinDelayChange")[0]["newDuration"] == 10
