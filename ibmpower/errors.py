"""
Custom exceptions for the IBM POWER metric module.

This module provides custom exception classes with structured messaging
that include:
- Clear error descriptions
- Technical details for debugging
- Actionable suggestions for resolution

Exceptions never escape to the monitoring daemon: providers convert them to
an ``Unavailable`` result and the module handler logs anything unexpected.
"""

from dataclasses import dataclass, field
from typing import Optional, Any
from enum import Enum


class ErrorCode(Enum):
    """Machine-readable error codes for ibmpower errors."""
    # Configuration errors (1xx)
    CONFIG_INVALID_VALUE = "E101"
    CONFIG_FILE_NOT_FOUND = "E102"
    CONFIG_PARSE_ERROR = "E103"
    CONFIG_UNKNOWN_KEY = "E104"

    # External command errors (2xx)
    COMMAND_FAILED = "E201"
    COMMAND_TIMEOUT = "E202"
    COMMAND_NOT_FOUND = "E203"

    # Probe errors (3xx)
    PROBE_FILE_UNREADABLE = "E301"
    PROBE_PARSE_FAILED = "E302"
    PROBE_UNSUPPORTED_PLATFORM = "E303"

    # Internal errors (9xx)
    INTERNAL_ERROR = "E901"


@dataclass
class PowerMetricsError:
    """
    Structured error information.

    Attributes:
        code: Machine-readable error code.
        message: User-facing error message.
        details: Technical details for debugging.
        suggestion: How to fix the issue.
        context: Additional context information.
    """
    code: ErrorCode
    message: str
    details: str = ""
    suggestion: str = ""
    context: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"[{self.code.value}] {self.message}"]
        if self.details:
            lines.append(f"  Details: {self.details}")
        if self.suggestion:
            lines.append(f"  Suggestion: {self.suggestion}")
        return "\n".join(lines)


class PowerMetricsException(Exception):
    """
    Base exception class for ibmpower.

    All custom exceptions inherit from this class and provide
    structured error information.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INTERNAL_ERROR,
                 details: str = "", suggestion: str = "", **context):
        self.error = PowerMetricsError(
            code=code,
            message=message,
            details=details,
            suggestion=suggestion,
            context=context
        )
        super().__init__(str(self.error))

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def suggestion(self) -> str:
        return self.error.suggestion


class ConfigurationError(PowerMetricsException):
    """
    Raised when the module configuration is invalid.

    Examples:
        - Configuration file not found or not valid YAML
        - Unknown metric name in a refresh-interval override
        - Non-numeric timeout
    """

    def __init__(self, message: str, parameter: str = None,
                 expected: Any = None, actual: Any = None,
                 suggestion: str = None,
                 code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE):
        details_parts = []
        if parameter:
            details_parts.append(f"Parameter: {parameter}")
        if expected is not None:
            details_parts.append(f"Expected: {expected}")
        if actual is not None:
            details_parts.append(f"Actual: {actual}")

        super().__init__(
            message=message,
            code=code,
            details="; ".join(details_parts) if details_parts else "",
            suggestion=suggestion or self._default_suggestion(code),
            parameter=parameter,
            expected=expected,
            actual=actual
        )

    @staticmethod
    def _default_suggestion(code: ErrorCode) -> str:
        suggestions = {
            ErrorCode.CONFIG_INVALID_VALUE: "Check the parameter value and correct it",
            ErrorCode.CONFIG_FILE_NOT_FOUND: "Verify the config file path exists or unset IBMPOWER_CONFIG",
            ErrorCode.CONFIG_PARSE_ERROR: "Check config file syntax (YAML format)",
            ErrorCode.CONFIG_UNKNOWN_KEY: "Remove the unknown key or fix its spelling",
        }
        return suggestions.get(code, "Check the configuration and try again")


class CommandError(PowerMetricsException):
    """
    Raised when an external CLI (uname, lparstat, oslevel, ...) fails.

    Examples:
        - Binary not installed on this platform
        - Non-zero exit code
        - Command did not finish within the timeout
    """

    def __init__(self, message: str, command: str = None,
                 exit_code: int = None, stderr: str = None,
                 suggestion: str = None,
                 code: ErrorCode = ErrorCode.COMMAND_FAILED):
        details_parts = []
        if command:
            details_parts.append(f"Command: {command}")
        if exit_code is not None:
            details_parts.append(f"Exit code: {exit_code}")
        if stderr:
            stderr_display = stderr[:500] + "..." if len(stderr) > 500 else stderr
            details_parts.append(f"Error output: {stderr_display}")

        super().__init__(
            message=message,
            code=code,
            details="; ".join(details_parts) if details_parts else "",
            suggestion=suggestion or self._default_suggestion(code, exit_code),
            command=command,
            exit_code=exit_code,
            stderr=stderr
        )

    @property
    def command(self) -> Optional[str]:
        return self.error.context.get('command')

    @staticmethod
    def _default_suggestion(code: ErrorCode, exit_code: int = None) -> str:
        suggestions = {
            ErrorCode.COMMAND_FAILED: "Check command output for specific errors",
            ErrorCode.COMMAND_TIMEOUT: "Increase command_timeout in the module configuration",
            ErrorCode.COMMAND_NOT_FOUND: "The command is not available on this platform",
        }
        suggestion = suggestions.get(code, "Check the command and try again")

        if exit_code == 127:
            suggestion = "Command not found - check that the tool is installed and in PATH"
        elif exit_code == 126:
            suggestion = "Command not executable - check permissions"

        return suggestion


class ProbeError(PowerMetricsException):
    """
    Raised when a kernel or device-tree source cannot be read or parsed.

    Examples:
        - /proc/ppc64/lparcfg missing (not an LPAR)
        - /proc/device-tree entry unreadable
        - Unsupported platform
    """

    def __init__(self, message: str, path: str = None,
                 operation: str = None, suggestion: str = None,
                 code: ErrorCode = ErrorCode.PROBE_FILE_UNREADABLE):
        details_parts = []
        if path:
            details_parts.append(f"Path: {path}")
        if operation:
            details_parts.append(f"Operation: {operation}")

        super().__init__(
            message=message,
            code=code,
            details="; ".join(details_parts) if details_parts else "",
            suggestion=suggestion or self._default_suggestion(code),
            path=path,
            operation=operation
        )

    @staticmethod
    def _default_suggestion(code: ErrorCode) -> str:
        suggestions = {
            ErrorCode.PROBE_FILE_UNREADABLE: "Verify the file exists and is readable",
            ErrorCode.PROBE_PARSE_FAILED: "The file format was not recognized",
            ErrorCode.PROBE_UNSUPPORTED_PLATFORM: "Only AIX and Linux on POWER are supported",
        }
        return suggestions.get(code, "Check the data source and try again")
