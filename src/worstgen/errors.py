"""
Worst Generation - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the client. Each error has a unique code for logging and debugging.

Fatal errors carry an exit code and are surfaced to the operator by the
top-level driver; only decryption failures are recovered locally.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_KEY_GENERATION_FAILED = "E104"

    # Network Errors (E200-E299)
    E200_NETWORK_ERROR = "E200"
    E201_CONNECTION_FAILED = "E201"
    E202_CONNECTION_TIMEOUT = "E202"
    E203_CONNECTION_CLOSED = "E203"
    E204_SEND_FAILED = "E204"

    # Authentication Errors (E300-E399)
    E300_AUTH_ERROR = "E300"
    E301_AUTH_REJECTED = "E301"
    E302_REGISTRATION_KEY_MISSING = "E302"
    E303_REGISTRATION_FAILED = "E303"
    E304_AUTH_TIMEOUT = "E304"
    E305_EMPTY_ALIAS = "E305"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class WorstGenError(Exception):
    """Base exception class for all client errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize an error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary containing error information
        """
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(WorstGenError):
    """Exception raised for cryptographic operation failures.

    This includes key generation, sealing and opening envelopes.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class DecryptionFailure(CryptoError):
    """An envelope could not be opened with the local private key.

    Callers substitute a placeholder and carry on; never fatal.
    """

    def __init__(
        self,
        message: str = "Decryption failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E102_DECRYPTION_FAILED, message, details)


class NetworkError(WorstGenError):
    """Exception raised for channel failures.

    This includes connection errors, timeouts and send failures.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_NETWORK_ERROR,
        message: str = "Network operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(WorstGenError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class FatalError(WorstGenError):
    """Terminal failure that ends the process with a non-zero exit code."""

    exit_code = 1


class ConnectFailure(FatalError):
    """The relay could not be reached."""

    def __init__(self, message: str = "Failed to connect", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E201_CONNECTION_FAILED, message, details)


class AuthRejected(FatalError):
    """The relay rejected the login for a reason other than an unknown alias."""

    def __init__(self, message: str = "Authentication error", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E301_AUTH_REJECTED, message, details)


class RegistrationKeyMissing(FatalError):
    """The alias is unknown and no registration key was supplied."""

    def __init__(
        self,
        message: str = "Registration key required for new users",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E302_REGISTRATION_KEY_MISSING, message, details)


class RegistrationFailed(FatalError):
    """The relay refused the registration request."""

    def __init__(self, message: str = "Registration failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E303_REGISTRATION_FAILED, message, details)


class AuthTimeout(FatalError):
    """The relay did not finish the handshake in time."""

    def __init__(
        self,
        message: str = "Authentication timed out",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E304_AUTH_TIMEOUT, message, details)


class EmptyAliasInput(FatalError):
    """No alias was given on the command line, in config or at the prompt."""

    def __init__(self, message: str = "Alias cannot be empty.", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E305_EMPTY_ALIAS, message, details)
