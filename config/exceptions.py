"""Custom exception hierarchy for Network Survey.

Scan failures are split by what the caller can do about them: fix
privileges, fix connectivity, wait, or nothing at all.
"""

from typing import Optional


class SurveyError(Exception):
    """Base exception for all Network Survey errors.

    All custom exceptions in this application should inherit from this class.
    This allows catching all application-specific errors with a single except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ScanError(SurveyError):
    """General discovery scan failure.

    Catch-all for scan problems that are not covered by a more specific
    subclass. Every scan error below derives from it, so
    ``except ScanError`` handles any failed discovery run.

    Examples:
        >>> raise ScanError("Invalid subnet", {"subnet": "999.1.1.0/24"})
    """

    pass


class PrivilegeRequiredError(ScanError):
    """The scan cannot run with the current process privileges.

    Attributes:
        instructions: Platform-specific remediation text for the operator.

    Examples:
        >>> raise PrivilegeRequiredError("Cannot ping or read ARP", "Run with sudo")
    """

    def __init__(
        self,
        message: str,
        instructions: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.instructions = instructions


class NetworkNotAvailableError(ScanError):
    """Network topology could not be determined.

    Raised when neither the platform route/interface query nor the
    interface enumeration fallback produces a usable subnet. Without a
    subnet there is nothing to scan, so this is always fatal to a scan.

    Examples:
        >>> raise NetworkNotAvailableError("No default route", {"interface": None})
    """

    pass


class ScanTimeoutError(ScanError):
    """A sweep or resolution step exceeded its time budget."""

    pass


class ScanCancelledError(ScanError):
    """The scan was cancelled on request before it produced any devices."""

    pass


class UnreachableError(SurveyError):
    """Device did not answer a ping and is not in the ARP table.

    Attributes:
        ip: The address that was checked.
    """

    def __init__(self, ip: str, details: Optional[dict] = None):
        super().__init__(f"Device {ip} is unreachable", details)
        self.ip = ip


class StorageError(SurveyError):
    """Data persistence errors.

    Raised when there are issues with:
    - Reading/writing the agent state file
    - File permissions
    - Data corruption

    Examples:
        >>> raise StorageError("Failed to save state", {"path": "/path/to/file"})
    """

    pass


class UploadError(SurveyError):
    """Handing results to the synchronization collaborator failed.

    Never fatal: the scheduler logs it and reports the result as not synced.
    """

    pass


class ConfigurationError(SurveyError):
    """Settings and configuration errors.

    Examples:
        >>> raise ConfigurationError("Invalid scan interval", {"value": -10})
    """

    pass


class SubprocessError(SurveyError):
    """Subprocess execution errors.

    Raised when there are issues with:
    - Command execution failures
    - Timeouts
    - Command not found
    - Commands outside the allowlist

    Attributes:
        command: The command that failed.
        returncode: Exit code if available.
        stdout: Standard output if available.
        stderr: Standard error if available.

    Examples:
        >>> raise SubprocessError(
        ...     "Command failed",
        ...     command=["ping", "-c", "1", "192.168.1.1"],
        ...     returncode=1,
        ... )
    """

    def __init__(
        self,
        message: str,
        command: Optional[list] = None,
        returncode: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        details = details or {}
        if command:
            details["command"] = command
        if returncode is not None:
            details["returncode"] = returncode
        if stdout:
            details["stdout"] = stdout[:500]  # Truncate long output
        if stderr:
            details["stderr"] = stderr[:500]

        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def timed_out(self) -> bool:
        """True when the command was killed for exceeding its timeout."""
        return "timeout" in self.details
