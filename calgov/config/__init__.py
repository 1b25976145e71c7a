"""Configuration loading for CAL governance deployments."""

from .loader import (
    AllowListSettings,
    CALGovConfig,
    ChainSettings,
    GovernorSettings,
    LoggingSettings,
    TimelockSettings,
)

__all__ = [
    "AllowListSettings",
    "CALGovConfig",
    "ChainSettings",
    "GovernorSettings",
    "LoggingSettings",
    "TimelockSettings",
]
