"""
Worst Generation - Global Constants and Configuration Values

This module defines all constants used throughout the client.
All magic numbers and configuration defaults are centralized here.
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "Worst Generation"

# Server Defaults
DEFAULT_SERVER_URL = "https://worst-generation.onrender.com"
AUTH_TIMEOUT = 30  # seconds; bounded handshake wait
CONNECT_TIMEOUT = 10  # seconds

# Cryptography Constants
RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
SYMMETRIC_KEY_SIZE = 32  # 256 bits for AES-256
IV_SIZE = 16  # AES block size
AES_BLOCK_BITS = 128
DECRYPTION_PLACEHOLDER = "[encrypted message - cannot decrypt]"

# Chat Constants
QUIT_SENTINEL = "/quit"
UNKNOWN_ALIAS_ERROR = "Unknown alias"
MAX_ALIAS_LENGTH = 64
UI_MAX_MESSAGE_HISTORY = 1000

# Protocol event names (client -> server)
EVENT_LOGIN = "login"
EVENT_REGISTER = "register"
EVENT_MESSAGE = "message"

# Protocol event names (server -> client)
EVENT_LOGIN_SUCCESS = "login-success"
EVENT_REGISTERED = "registered"
EVENT_ERROR = "error"
EVENT_USER_JOINED = "user-joined"
EVENT_USER_LEFT = "user-left"

# Connection-level signals
EVENT_CONNECT = "connect"
EVENT_CONNECT_ERROR = "connect-error"
EVENT_DISCONNECT = "disconnect"

# File Paths
DEFAULT_DATA_DIR = "~/.worstgen"
CONFIG_FILENAME = "config.toml"
LOGS_DIR = "logs"
LOG_FILENAME = "worstgen.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5
