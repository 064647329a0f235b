"""Configuration module for Network Survey.

Provides centralized configuration, logging, exceptions, and the
subprocess runner shared by discovery and the agent.
"""
from config.constants import (
    ALLOWED_SUBPROCESS_COMMANDS,
    INTERVALS,
    NETWORK,
    SCAN,
    STORAGE,
    Intervals,
    NetworkConfig,
    ScanConfig,
    StorageConfig,
)
from config.exceptions import (
    ConfigurationError,
    NetworkNotAvailableError,
    PrivilegeRequiredError,
    ScanCancelledError,
    ScanError,
    ScanTimeoutError,
    StorageError,
    SubprocessError,
    SurveyError,
    UnreachableError,
    UploadError,
)
from config.logging_config import get_logger, setup_logging
from config.command_runner import CommandResult, CommandRunner, get_command_runner, safe_run

__all__ = [
    # Constants
    "INTERVALS",
    "SCAN",
    "STORAGE",
    "NETWORK",
    "Intervals",
    "ScanConfig",
    "StorageConfig",
    "NetworkConfig",
    "ALLOWED_SUBPROCESS_COMMANDS",
    # Exceptions
    "SurveyError",
    "ScanError",
    "PrivilegeRequiredError",
    "NetworkNotAvailableError",
    "ScanTimeoutError",
    "ScanCancelledError",
    "UnreachableError",
    "StorageError",
    "UploadError",
    "ConfigurationError",
    "SubprocessError",
    # Logging
    "setup_logging",
    "get_logger",
    # Subprocess
    "CommandResult",
    "CommandRunner",
    "get_command_runner",
    "safe_run",
]
