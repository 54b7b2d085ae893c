"""
Worst Generation - terminal client for the encrypted relay chat.

Authenticates to the relay with a per-run RSA identity, seals every
outgoing line in a hybrid RSA-OAEP / AES-256-CBC envelope and renders the
conversation in a Textual terminal UI.

License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .errors import (
    AuthRejected,
    AuthTimeout,
    ConfigError,
    ConnectFailure,
    CryptoError,
    DecryptionFailure,
    EmptyAliasInput,
    ErrorCode,
    FatalError,
    NetworkError,
    RegistrationFailed,
    RegistrationKeyMissing,
    WorstGenError,
)

__all__ = [
    "APP_NAME",
    "VERSION",
    "AuthRejected",
    "AuthTimeout",
    "Config",
    "ConfigError",
    "ConnectFailure",
    "CryptoError",
    "DecryptionFailure",
    "EmptyAliasInput",
    "ErrorCode",
    "FatalError",
    "NetworkError",
    "RegistrationFailed",
    "RegistrationKeyMissing",
    "WorstGenError",
    "__license__",
    "__version__",
]
