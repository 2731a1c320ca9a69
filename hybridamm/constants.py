"""
HybridAMM Constants

This module consolidates the protocol constants of the engine and the
environment configuration used by the logging layer. Constants are organized
by category for easy reference and maintenance.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW ARE PART OF THE RECORD LAYOUT AND THE PRICE CURVE. CHANGING ANY OF
# THEM PRODUCES RECORDS AND QUOTES THAT ARE INCOMPATIBLE WITH EXISTING POOLS.

# ==================================================================================
# FIXED-POINT
# ==================================================================================
U16_MAX = (1 << 16) - 1
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1
I128_MIN = -(1 << 127)
I128_MAX = (1 << 127) - 1
Q64_RESOLUTION = 64
Q64 = 1 << Q64_RESOLUTION


# ==================================================================================
# PRICE CURVE
# ==================================================================================
MIN_TICK_INDEX = -443636
MAX_TICK_INDEX = 443636
MIN_SQRT_PRICE = 4295048016
MAX_SQRT_PRICE = 79226673515401279992447579055

TICK_ARRAY_SIZE = 88
FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD = 32768
MAX_TICK_SPACING = U16_MAX


# ==================================================================================
# FEE RATES
# ==================================================================================
FEE_RATE_DENOMINATOR = 1_000_000        # fee_rate is hundredths of a basis point
MAX_FEE_RATE = 60_000                   # 6%
PROTOCOL_FEE_RATE_DENOMINATOR = 10_000  # protocol rates are basis points
MAX_PROTOCOL_FEE_RATE = 2_500           # 25% of the trade fee
MAX_ORDER_PROTOCOL_FEE_RATE = 10_000
MAX_CLP_REWARD_RATE = 10_000
BPS_DENOMINATOR = 10_000
MAX_TRANSFER_FEE_BPS = 10_000


# ==================================================================================
# LIMIT ORDERS / BUNDLES
# ==================================================================================
ORDER_BOOK_MAX_ENTRIES = 100
POSITION_BUNDLE_SIZE = 256


# ==================================================================================
# RECORDS
# ==================================================================================
ENDIAN = 'little'
ADDRESS_SIZE = 32
POOL_DISCRIMINATOR = bytes([254, 204, 207, 98, 25, 181, 29, 67])
TICK_ARRAY_DISCRIMINATOR = bytes([69, 97, 189, 190, 110, 7, 66, 187])
LIMIT_ORDER_DISCRIMINATOR = bytes([137, 183, 212, 91, 115, 29, 141, 227])
POSITION_DISCRIMINATOR = bytes([170, 188, 143, 228, 122, 64, 247, 208])
POSITION_BUNDLE_DISCRIMINATOR = bytes([129, 169, 175, 65, 185, 95, 32, 100])
TICK_RECORD_SIZE = 113


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
DEFAULTS = LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Leaves every other value untouched.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
