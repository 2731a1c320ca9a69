"""
HybridAMM Exceptions

Custom exception classes for the HybridAMM engine.

Validation failures also derive from ValueError and arithmetic failures from
ArithmeticError, so callers can catch either the engine hierarchy or the
builtin category.
"""


class HybridAMMException(Exception):
    """Base exception for HybridAMM."""
    pass


# -- Arithmetic ---------------------------------------------------------

class ArithmeticOverflowError(HybridAMMException, ArithmeticError):
    """Checked fixed-point arithmetic overflowed or underflowed."""
    pass


class AmountExceedsMaxError(ArithmeticOverflowError):
    """A token amount does not fit in an unsigned 64-bit integer."""
    pass


# -- Ticks and ranges ---------------------------------------------------

class InvalidTickIndexError(HybridAMMException, ValueError):
    """Tick index is out of bounds or not aligned to the tick spacing."""
    pass


class SqrtPriceOutOfBoundsError(HybridAMMException, ValueError):
    """Sqrt-price lies outside the representable price curve."""
    pass


class InvalidRangeError(HybridAMMException, ValueError):
    """Inverted, zero-width or unaligned position range."""
    pass


class InvalidTickArraySequenceError(HybridAMMException, ValueError):
    """Tick arrays are missing or not evenly spaced."""
    pass


class InsufficientTickArraysError(HybridAMMException, ValueError):
    """The swap ran past the supplied tick arrays."""
    pass


class UninitializedTickError(HybridAMMException, ValueError):
    """An order or position references a tick that is not initialized."""
    pass


# -- Swaps --------------------------------------------------------------

class InvalidSqrtPriceLimitError(HybridAMMException, ValueError):
    """Sqrt-price limit is out of bounds or on the wrong side of the price."""
    pass


class ZeroTradableAmountError(HybridAMMException, ValueError):
    """Swap amount is zero."""
    pass


class SlippageExceededError(HybridAMMException, ValueError):
    """Realized amount is outside the caller's bound."""
    pass


class InvalidSlippageToleranceError(HybridAMMException, ValueError):
    """Slippage tolerance is above 10000 basis points."""
    pass


# -- Tokens and fees ----------------------------------------------------

class InvalidTransferFeeError(HybridAMMException, ValueError):
    """Transfer fee basis points are above 10000."""
    pass


class InvalidFeeRateError(HybridAMMException, ValueError):
    """Pool fee, protocol fee or reward rate is out of range."""
    pass


# -- Limit orders -------------------------------------------------------

class TakerOrderError(HybridAMMException, ValueError):
    """Limit order would already be marketable at the current price."""
    pass


class LimitOrderOutOfSyncError(HybridAMMException, ValueError):
    """Order age or pool aggregates disagree with the tick state."""
    pass


class LimitOrderAmountExceededError(HybridAMMException, ValueError):
    """Requested decrease is larger than the order."""
    pass


class LimitOrderNotEmptyError(HybridAMMException, ValueError):
    """Order still holds input and cannot be closed."""
    pass


# -- Positions ----------------------------------------------------------

class PositionNotEmptyError(HybridAMMException, ValueError):
    """Position still holds liquidity or uncollected fees."""
    pass


class InvalidBundleIndexError(HybridAMMException, IndexError):
    """Position bundle slot index is outside the bitmap."""
    pass


class BundleSlotConflictError(HybridAMMException, ValueError):
    """Bundle slot is already occupied, or is not occupied when vacated."""
    pass


# -- Records / facade ---------------------------------------------------

class InvalidRecordError(HybridAMMException, ValueError):
    """Binary record has the wrong size or discriminator."""
    pass


class PoolNotFoundError(HybridAMMException, LookupError):
    """No pool, position, order or mint under the given id."""
    pass


class PoolAlreadyExistsError(HybridAMMException, ValueError):
    """A pool for this mint pair and tick spacing is already registered."""
    pass


class InvalidMintOrderError(HybridAMMException, ValueError):
    """Token mint A must sort strictly before token mint B."""
    pass


class EngineLockedError(HybridAMMException, RuntimeError):
    """A mutation was attempted while another one is in progress."""
    pass


class ConfigurationError(HybridAMMException):
    """Configuration error."""
    pass
