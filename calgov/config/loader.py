"""
CAL Governance TOML Configuration Loader

Loads every section of calgov.toml with environment variable overrides.
Each section is a dataclass with ``from_dict`` and, where it makes sense,
``apply_env``.

Environment variable mapping:
    [chain] chain_id              → CALGOV_CHAIN_ID
    [chain] block_interval        → CALGOV_BLOCK_INTERVAL
    [governor] voting_delay       → CALGOV_VOTING_DELAY
    [governor] voting_period      → CALGOV_VOTING_PERIOD
    [governor] proposal_threshold → CALGOV_PROPOSAL_THRESHOLD
    [governor] quorum_numerator   → CALGOV_QUORUM_NUMERATOR
    [timelock] min_delay          → CALGOV_TIMELOCK_MIN_DELAY
    [logging] level               → CALGOV_LOG_LEVEL
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    CHAIN_BLOCK_INTERVAL_SECONDS,
    CHAIN_GENESIS_TIMESTAMP,
    CHAIN_ID,
    GENESIS_ALLOW_LIST,
    GOVERNOR_GRACE_PERIOD_SECONDS,
    GOVERNOR_NAME,
    GOVERNOR_PROPOSAL_THRESHOLD,
    GOVERNOR_QUORUM_DENOMINATOR,
    GOVERNOR_QUORUM_NUMERATOR,
    GOVERNOR_VOTING_DELAY_BLOCKS,
    GOVERNOR_VOTING_PERIOD_BLOCKS,
    TIMELOCK_MIN_DELAY_SECONDS,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ChainSettings:
    """[chain] section."""
    chain_id: int = CHAIN_ID
    genesis_timestamp: int = CHAIN_GENESIS_TIMESTAMP
    block_interval: int = CHAIN_BLOCK_INTERVAL_SECONDS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainSettings":
        return cls(
            chain_id=data.get("chain_id", CHAIN_ID),
            genesis_timestamp=data.get("genesis_timestamp", CHAIN_GENESIS_TIMESTAMP),
            block_interval=data.get("block_interval", CHAIN_BLOCK_INTERVAL_SECONDS),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CALGOV_CHAIN_ID"):
            self.chain_id = int(v)
        if v := os.environ.get("CALGOV_BLOCK_INTERVAL"):
            self.block_interval = int(v)


@dataclass
class GovernorSettings:
    """
    [governor] section.

    voting_delay and voting_period are in blocks, grace_period in seconds.
    """
    name: str = GOVERNOR_NAME
    voting_delay: int = GOVERNOR_VOTING_DELAY_BLOCKS
    voting_period: int = GOVERNOR_VOTING_PERIOD_BLOCKS
    proposal_threshold: int = GOVERNOR_PROPOSAL_THRESHOLD
    quorum_numerator: int = GOVERNOR_QUORUM_NUMERATOR
    grace_period: int = GOVERNOR_GRACE_PERIOD_SECONDS
    proposal_canceller: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernorSettings":
        return cls(
            name=data.get("name", GOVERNOR_NAME),
            voting_delay=data.get("voting_delay", GOVERNOR_VOTING_DELAY_BLOCKS),
            voting_period=data.get("voting_period", GOVERNOR_VOTING_PERIOD_BLOCKS),
            proposal_threshold=data.get("proposal_threshold", GOVERNOR_PROPOSAL_THRESHOLD),
            quorum_numerator=data.get("quorum_numerator", GOVERNOR_QUORUM_NUMERATOR),
            grace_period=data.get("grace_period", GOVERNOR_GRACE_PERIOD_SECONDS),
            proposal_canceller=data.get("proposal_canceller") or None,
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CALGOV_VOTING_DELAY"):
            self.voting_delay = int(v)
        if v := os.environ.get("CALGOV_VOTING_PERIOD"):
            self.voting_period = int(v)
        if v := os.environ.get("CALGOV_PROPOSAL_THRESHOLD"):
            self.proposal_threshold = int(v)
        if v := os.environ.get("CALGOV_QUORUM_NUMERATOR"):
            self.quorum_numerator = int(v)

    def validate(self) -> None:
        if self.voting_delay < 0:
            raise ConfigurationError("voting_delay must be >= 0")
        if self.voting_period < 1:
            raise ConfigurationError("voting_period must be >= 1")
        if self.proposal_threshold < 0:
            raise ConfigurationError("proposal_threshold must be >= 0")
        if not 0 <= self.quorum_numerator <= GOVERNOR_QUORUM_DENOMINATOR:
            raise ConfigurationError(
                f"quorum_numerator must be within 0..{GOVERNOR_QUORUM_DENOMINATOR}"
            )
        if self.grace_period < 0:
            raise ConfigurationError("grace_period must be >= 0")


@dataclass
class TimelockSettings:
    """[timelock] section."""
    min_delay: int = TIMELOCK_MIN_DELAY_SECONDS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelockSettings":
        return cls(min_delay=data.get("min_delay", TIMELOCK_MIN_DELAY_SECONDS))

    def apply_env(self) -> None:
        if v := os.environ.get("CALGOV_TIMELOCK_MIN_DELAY"):
            self.min_delay = int(v)


@dataclass
class AllowListSettings:
    """
    [allowlist] section.

    TOML keys must be strings, so levels are written as ``"0" = [...]``
    under ``[allowlist.levels]`` and converted to ints here.
    """
    levels: Dict[int, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in GENESIS_ALLOW_LIST.items()}
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AllowListSettings":
        if "levels" not in data:
            return cls()
        try:
            levels = {int(k): list(v) for k, v in data["levels"].items()}
        except ValueError as e:
            raise ConfigurationError(f"Allow-list levels must be integers: {e}") from e
        return cls(levels=levels)


@dataclass
class LoggingSettings:
    """[logging] section."""
    level: str = "INFO"
    file_output: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSettings":
        return cls(
            level=data.get("level", "INFO"),
            file_output=data.get("file_output", False),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CALGOV_LOG_LEVEL"):
            self.level = v


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class CALGovConfig:
    """
    Unified governance deployment configuration.

    Deployment-time constants only: once contracts are deployed, changing
    them requires a governance proposal against the governor or timelock.
    """
    chain: ChainSettings = field(default_factory=ChainSettings)
    governor: GovernorSettings = field(default_factory=GovernorSettings)
    timelock: TimelockSettings = field(default_factory=TimelockSettings)
    allowlist: AllowListSettings = field(default_factory=AllowListSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CALGovConfig":
        """Create config from a parsed TOML dict."""
        return cls(
            chain=ChainSettings.from_dict(data.get("chain", {})),
            governor=GovernorSettings.from_dict(data.get("governor", {})),
            timelock=TimelockSettings.from_dict(data.get("timelock", {})),
            allowlist=AllowListSettings.from_dict(data.get("allowlist", {})),
            logging=LoggingSettings.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "CALGovConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with env overrides applied).

        Args:
            config_path: Path to calgov.toml

        Returns:
            CALGovConfig instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.chain.apply_env()
        self.governor.apply_env()
        self.timelock.apply_env()
        self.logging.apply_env()

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.chain.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        if self.chain.block_interval < 1:
            raise ConfigurationError("block_interval must be >= 1")
        if self.timelock.min_delay < 0:
            raise ConfigurationError("timelock min_delay must be >= 0")
        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        if any(level < 0 for level in self.allowlist.levels):
            raise ConfigurationError("Allow-list levels must be non-negative")
        self.governor.validate()
        return True

    def configure_logging(self) -> None:
        """Re-apply the process-wide logging setup from the [logging] section."""
        # Lazy import: the logger configures itself on import
        from ..logger import configure_logging

        configure_logging(log_level=self.logging.level, file_output=self.logging.file_output)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "chain": {
                "chain_id": self.chain.chain_id,
                "genesis_timestamp": self.chain.genesis_timestamp,
                "block_interval": self.chain.block_interval,
            },
            "governor": {
                "name": self.governor.name,
                "voting_delay": self.governor.voting_delay,
                "voting_period": self.governor.voting_period,
                "proposal_threshold": self.governor.proposal_threshold,
                "quorum_numerator": self.governor.quorum_numerator,
                "grace_period": self.governor.grace_period,
                "proposal_canceller": self.governor.proposal_canceller,
            },
            "timelock": {
                "min_delay": self.timelock.min_delay,
            },
            "allowlist": {
                "levels": {str(k): list(v) for k, v in self.allowlist.levels.items()},
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }
