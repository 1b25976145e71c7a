"""
CAL Governance Constants

Protocol constants (roles, lifecycle defaults, the genesis allow list) and
the logger settings, which may be overridden from a ``.env`` file in the
working directory. Deployment parameters in ``calgov.config`` default to the
values defined here.
"""
from dotenv import dotenv_values
from eth_utils import keccak


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """A ``.env`` string setting that remembers its built-in default."""
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """A ``.env`` flag that behaves as a bool and remembers its default."""
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    __str__ = __repr__

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


_env = dotenv_values(".env")


def _env_string(key: str, default: str) -> ConfigString:
    raw = _env.get(key)
    return ConfigString(default if raw is None else raw, default)


def _env_flag(key: str, default: bool) -> ConfigBool:
    raw = (_env.get(key) or "").strip().casefold()
    if raw in ("true", "1", "yes"):
        return ConfigBool(True, default)
    if raw in ("false", "0", "no"):
        return ConfigBool(False, default)
    return ConfigBool(default, default)


# ==================================================================================
# LOGGING
# ==================================================================================
LOG_LEVEL = _env_string('LOG_LEVEL', 'INFO')
LOG_FORMAT = _env_string('LOG_FORMAT', '%(asctime)s - %(levelname)s - %(name)s - %(message)s')
LOG_DATE_FORMAT = _env_string('LOG_DATE_FORMAT', '%Y-%m-%dT%H:%M:%S')
LOG_CONSOLE_HIGHLIGHTING = _env_flag('LOG_CONSOLE_HIGHLIGHTING', True)
LOG_FILE_OUTPUT = _env_flag('LOG_FILE_OUTPUT', False)

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# CHAIN SIMULATION
# ==================================================================================
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_BYTES32 = b'\x00' * 32

CHAIN_ID = 31337
CHAIN_GENESIS_TIMESTAMP = 1_700_000_000
CHAIN_BLOCK_INTERVAL_SECONDS = 1  # Seconds added per mined block


# ==================================================================================
# ACCESS CONTROL ROLES
# ==================================================================================
DEFAULT_ADMIN_ROLE = ZERO_BYTES32
TIMELOCK_ADMIN_ROLE = keccak(text='TIMELOCK_ADMIN_ROLE')
PROPOSER_ROLE = keccak(text='PROPOSER_ROLE')
EXECUTOR_ROLE = keccak(text='EXECUTOR_ROLE')
CANCELLER_ROLE = keccak(text='CANCELLER_ROLE')


# ==================================================================================
# TIMELOCK PARAMETERS
# ==================================================================================
# Sentinel timestamp marking an executed operation
TIMELOCK_DONE_TIMESTAMP = 1
TIMELOCK_MIN_DELAY_SECONDS = 2


# ==================================================================================
# GOVERNOR PARAMETERS
# ==================================================================================
GOVERNOR_NAME = 'CALGovernor'
GOVERNOR_VERSION = '1'
GOVERNOR_VOTING_DELAY_BLOCKS = 1
GOVERNOR_VOTING_PERIOD_BLOCKS = 45818  # ~1 week at 13.2s blocks
GOVERNOR_PROPOSAL_THRESHOLD = 0
GOVERNOR_QUORUM_NUMERATOR = 4
GOVERNOR_QUORUM_DENOMINATOR = 100
GOVERNOR_GRACE_PERIOD_SECONDS = 14 * 86400  # 0 disables expiry
GOVERNOR_COUNTING_MODE = 'support=bravo&quorum=for,against,abstain'

GOVERNANCE_VOTE_AGAINST = 0
GOVERNANCE_VOTE_FOR = 1
GOVERNANCE_VOTE_ABSTAIN = 2


# ==================================================================================
# VOTE TOKEN
# ==================================================================================
VOTE_TOKEN_NAME = 'CALVoteToken'
VOTE_TOKEN_SYMBOL = 'CALV'
VOTE_TOKEN_DECIMALS = 18
VOTE_TOKEN_MINT_AMOUNT = 10 ** 18


# ==================================================================================
# ALLOW LIST
# ==================================================================================
# Levels shipped with the initial ContractAllowList deployment
GENESIS_ALLOW_LIST = {
    0: [
        '0x53b7a2bF95cB4f00c98b115d13c6B6D1483472E3',
        '0x976EA74026E726554dB657fA54763abd0C3a0aa9',
    ],
    1: [
        '0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65',
    ],
}
