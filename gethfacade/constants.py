"""
Geth Facade Constants

This module consolidates global constants and environment configuration
used throughout the codebase. Values that operators may tune are read once
from `.env` at import time; everything else is fixed protocol data.
"""
import ast
import os
import re
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")


def env_value(key):
    """
    Look up an operator setting: the process environment wins over `.env`.
    Returns None when neither defines it.
    """
    return os.environ.get(key) or _config.get(key)


FACADE_DEFAULTS = {
    'FACADE_CHAIN_ID':                 '11155111',
    'FACADE_HTTP_ADDR':                ':8545',
    'FACADE_WS_ADDR':                  ':8546',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE':                        '',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# CORE CONSTANTS
# ==================================================================================
FACADE_VERSION = '0.2.0'

# Sepolia
DEFAULT_CHAIN_ID = 11155111

DEFAULT_HTTP_PORT = 8545
DEFAULT_WS_PORT = 8546


# ==================================================================================
# JSON-RPC WIRE CONSTANTS
# ==================================================================================
JSONRPC_VERSION = "2.0"
SUBSCRIPTION_METHOD = "eth_subscription"

# Symbolic block selectors accepted wherever a block tag is expected
BLOCK_TAG_LATEST = "latest"
BLOCK_TAG_EARLIEST = "earliest"
BLOCK_TAG_PENDING = "pending"
BLOCK_TAG_SAFE = "safe"
BLOCK_TAG_FINALIZED = "finalized"

SYMBOLIC_BLOCK_TAGS = frozenset({
    BLOCK_TAG_LATEST,
    BLOCK_TAG_EARLIEST,
    BLOCK_TAG_PENDING,
    BLOCK_TAG_SAFE,
    BLOCK_TAG_FINALIZED,
})


# ==================================================================================
# VALIDATION PATTERNS
# ==================================================================================
# Hex digits only, possibly empty (the 0x prefix is stripped beforehand)
VALID_HEX_PATTERN = re.compile(r'^[0-9a-fA-F]*$')

# Quantities must carry the prefix and at least one digit
VALID_QUANTITY_PATTERN = re.compile(r'^0[xX][0-9a-fA-F]+$')


# ==================================================================================
# MEMORY BACKEND PARAMETERS
# ==================================================================================
MEMORY_BLOCK_TIME = 6.0  # seconds between sealed blocks
MEMORY_GAS_LIMIT = 30_000_000
MEMORY_GAS_PRICE = 1_000_000_000  # 1 gwei
TRANSFER_GAS = 21_000
ETHER = 10 ** 18


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = FACADE_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    # Case-insensitive membership check
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    # Parses only boolean-literals. Leaves other values untouched.
    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    # Wraps based on parsed value type.
    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        # Preserves the original raw string for ConfigString storage.
        namespace[key] = ConfigString(value_raw, default_val)
