"""
Checked integer helpers for the Q64.64 engine.

Python integers are unbounded, so every value that lives in a fixed-width
field on the record side is range-checked here instead of silently growing.
Fee-growth accumulators are the one place where wraparound is the intended
behaviour; they go through the wrapping_* helpers.
"""

from __future__ import annotations

from ..constants import I128_MAX, I128_MIN, U64_MAX, U128_MAX
from ..exceptions import AmountExceedsMaxError, ArithmeticOverflowError


def check_u64(value: int, what: str = "amount") -> int:
    if value < 0:
        raise ArithmeticOverflowError(f"{what} underflow: {value}")
    if value > U64_MAX:
        raise AmountExceedsMaxError(f"{what} exceeds u64 max: {value}")
    return value


def check_u128(value: int, what: str = "value") -> int:
    if not 0 <= value <= U128_MAX:
        raise ArithmeticOverflowError(f"{what} out of u128 range: {value}")
    return value


def check_i128(value: int, what: str = "value") -> int:
    if not I128_MIN <= value <= I128_MAX:
        raise ArithmeticOverflowError(f"{what} out of i128 range: {value}")
    return value


def checked_add(a: int, b: int, what: str = "amount") -> int:
    return check_u64(a + b, what)


def checked_sub(a: int, b: int, what: str = "amount") -> int:
    return check_u64(a - b, what)


def wrapping_add_u128(a: int, b: int) -> int:
    return (a + b) & U128_MAX


def wrapping_sub_u128(a: int, b: int) -> int:
    return (a - b) & U128_MAX


def div_round(numerator: int, denominator: int, round_up: bool) -> int:
    """Integer division of non-negative operands, floor or ceil."""
    quotient, remainder = divmod(numerator, denominator)
    if round_up and remainder:
        quotient += 1
    return quotient


def mul_div(amount: int, numerator: int, denominator: int, round_up: bool) -> int:
    """
    ``amount * numerator / denominator`` with a u64 result.

    The intermediate product is exact; only the quotient must fit.
    """
    if amount == 0 or numerator == 0:
        return 0
    if denominator == 0:
        raise ArithmeticOverflowError("mul_div by zero")
    return check_u64(div_round(amount * numerator, denominator, round_up))
