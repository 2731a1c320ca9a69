"""
Token amount math over Q64.64 sqrt-prices.

Covers the constant-liquidity deltas between two prices, the next price
reachable with a given amount, swap/transfer fee application in both
directions, slippage bounds and the price conversion used to settle limit
orders. All amounts are u64; every result is range-checked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..constants import (
    BPS_DENOMINATOR,
    FEE_RATE_DENOMINATOR,
    MAX_SQRT_PRICE,
    MAX_TRANSFER_FEE_BPS,
    MIN_SQRT_PRICE,
    Q64_RESOLUTION,
    U64_MAX,
)
from ..exceptions import (
    InvalidSlippageToleranceError,
    InvalidTransferFeeError,
    SqrtPriceOutOfBoundsError,
)
from .fixed_point import check_u64, div_round, mul_div


@dataclass(frozen=True)
class TransferFee:
    """On-transfer fee of a token: basis points, capped at ``max_fee``."""
    fee_bps: int
    max_fee: int = U64_MAX

    def __post_init__(self) -> None:
        if not 0 <= self.fee_bps <= MAX_TRANSFER_FEE_BPS:
            raise InvalidTransferFeeError(
                f"Transfer fee must be within [0, {MAX_TRANSFER_FEE_BPS}] bps, got {self.fee_bps}"
            )


# ---------------------------------------------------------------------------
# Amount deltas
# ---------------------------------------------------------------------------

def try_get_amount_delta_a(sqrt_price_1: int, sqrt_price_2: int, liquidity: int, round_up: bool) -> int:
    """Token A needed to move ``liquidity`` between the two prices."""
    lower, upper = sorted((sqrt_price_1, sqrt_price_2))
    if liquidity == 0 or lower == upper:
        return 0
    numerator = (liquidity * (upper - lower)) << Q64_RESOLUTION
    denominator = lower * upper
    return check_u64(div_round(numerator, denominator, round_up), "amount_delta_a")


def try_get_amount_delta_b(sqrt_price_1: int, sqrt_price_2: int, liquidity: int, round_up: bool) -> int:
    """Token B needed to move ``liquidity`` between the two prices."""
    lower, upper = sorted((sqrt_price_1, sqrt_price_2))
    product = liquidity * (upper - lower)
    result = product >> Q64_RESOLUTION
    if round_up and product & ((1 << Q64_RESOLUTION) - 1):
        result += 1
    return check_u64(result, "amount_delta_b")


# ---------------------------------------------------------------------------
# Next sqrt-price
# ---------------------------------------------------------------------------

def _check_sqrt_price(sqrt_price: int) -> int:
    if not MIN_SQRT_PRICE <= sqrt_price <= MAX_SQRT_PRICE:
        raise SqrtPriceOutOfBoundsError(f"Next sqrt price {sqrt_price} is out of bounds")
    return sqrt_price


def try_get_next_sqrt_price_from_a(
    current_sqrt_price: int,
    current_liquidity: int,
    amount: int,
    specified_input: bool,
) -> int:
    """Price after adding (input) or removing (output) ``amount`` of token A; rounds up."""
    if amount == 0:
        return current_sqrt_price
    numerator = (current_liquidity * current_sqrt_price) << Q64_RESOLUTION
    product = current_sqrt_price * amount
    liquidity_x64 = current_liquidity << Q64_RESOLUTION
    denominator = liquidity_x64 + product if specified_input else liquidity_x64 - product
    if denominator <= 0:
        raise SqrtPriceOutOfBoundsError("Token A output exceeds the available liquidity")
    return _check_sqrt_price(div_round(numerator, denominator, True))


def try_get_next_sqrt_price_from_b(
    current_sqrt_price: int,
    current_liquidity: int,
    amount: int,
    specified_input: bool,
) -> int:
    """Price after adding (input) or removing (output) ``amount`` of token B."""
    if amount == 0:
        return current_sqrt_price
    delta = div_round(amount << Q64_RESOLUTION, current_liquidity, not specified_input)
    if specified_input:
        return _check_sqrt_price(current_sqrt_price + delta)
    return _check_sqrt_price(current_sqrt_price - delta)


def try_get_next_sqrt_price(
    current_sqrt_price: int,
    current_liquidity: int,
    amount: int,
    a_to_b: bool,
    specified_input: bool,
) -> int:
    if specified_input == a_to_b:
        return try_get_next_sqrt_price_from_a(current_sqrt_price, current_liquidity, amount, specified_input)
    return try_get_next_sqrt_price_from_b(current_sqrt_price, current_liquidity, amount, specified_input)


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

def try_apply_swap_fee(amount: int, fee_rate: int) -> int:
    """Amount left after the trade fee is taken out."""
    return mul_div(amount, FEE_RATE_DENOMINATOR - fee_rate, FEE_RATE_DENOMINATOR, False)


def try_reverse_apply_swap_fee(amount: int, fee_rate: int) -> int:
    """Gross amount whose net-of-fee value is ``amount``."""
    return mul_div(amount, FEE_RATE_DENOMINATOR, FEE_RATE_DENOMINATOR - fee_rate, True)


def try_apply_transfer_fee(amount: int, transfer_fee: Optional[TransferFee]) -> int:
    """Amount received after the token's on-transfer fee."""
    if transfer_fee is None or transfer_fee.fee_bps == 0 or amount == 0:
        return amount
    fee = div_round(amount * transfer_fee.fee_bps, BPS_DENOMINATOR, True)
    return amount - min(fee, transfer_fee.max_fee)


def try_reverse_apply_transfer_fee(amount: int, transfer_fee: Optional[TransferFee]) -> int:
    """Amount to send so that ``amount`` arrives after the on-transfer fee."""
    if transfer_fee is None or transfer_fee.fee_bps == 0:
        return amount
    if amount == 0:
        return 0
    if transfer_fee.fee_bps == MAX_TRANSFER_FEE_BPS:
        return check_u64(amount + transfer_fee.max_fee)
    raw = div_round(amount * BPS_DENOMINATOR, BPS_DENOMINATOR - transfer_fee.fee_bps, True)
    if raw - amount >= transfer_fee.max_fee:
        return check_u64(amount + transfer_fee.max_fee)
    return check_u64(raw)


# ---------------------------------------------------------------------------
# Slippage
# ---------------------------------------------------------------------------

def _check_slippage(slippage_tolerance_bps: int) -> None:
    if not 0 <= slippage_tolerance_bps <= BPS_DENOMINATOR:
        raise InvalidSlippageToleranceError(
            f"Slippage tolerance must be within [0, {BPS_DENOMINATOR}] bps, got {slippage_tolerance_bps}"
        )


def try_get_max_amount_with_slippage_tolerance(amount: int, slippage_tolerance_bps: int) -> int:
    _check_slippage(slippage_tolerance_bps)
    return mul_div(amount, BPS_DENOMINATOR + slippage_tolerance_bps, BPS_DENOMINATOR, True)


def try_get_min_amount_with_slippage_tolerance(amount: int, slippage_tolerance_bps: int) -> int:
    _check_slippage(slippage_tolerance_bps)
    return mul_div(amount, BPS_DENOMINATOR - slippage_tolerance_bps, BPS_DENOMINATOR, False)


# ---------------------------------------------------------------------------
# Limit-order settlement price
# ---------------------------------------------------------------------------

def mul_by_sqrt_price_squared(amount: int, sqrt_price: int, round_up: bool) -> int:
    """amount × price, price = (sqrt_price / 2^64)^2."""
    return check_u64(div_round(amount * sqrt_price * sqrt_price, 1 << (2 * Q64_RESOLUTION), round_up))


def div_by_sqrt_price_squared(amount: int, sqrt_price: int, round_up: bool) -> int:
    """amount / price, price = (sqrt_price / 2^64)^2."""
    return check_u64(div_round(amount << (2 * Q64_RESOLUTION), sqrt_price * sqrt_price, round_up))


def get_limit_order_output_amount(amount_in: int, a_to_b: bool, sqrt_price: int, round_up: bool) -> int:
    """Output of an order of ``amount_in`` settled at ``sqrt_price``."""
    if amount_in == 0:
        return 0
    if a_to_b:
        return mul_by_sqrt_price_squared(amount_in, sqrt_price, round_up)
    return div_by_sqrt_price_squared(amount_in, sqrt_price, round_up)
