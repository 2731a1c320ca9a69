"""
Liquidity quote engine and position liquidity changes.

A position holds only token A while the price is below its range, only
token B above it, and a mix inside it. From any one of {liquidity, token A,
token B} the other two follow from the closed-form concentrated-liquidity
formulas below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from ..constants import Q64, Q64_RESOLUTION
from ..exceptions import ArithmeticOverflowError, InvalidRangeError, PositionNotEmptyError
from .fees import fee_growth_inside, accrue_position_fees
from .fixed_point import check_u128, div_round
from .state import Pool, Position, validate_tick_range
from .tick_math import order_tick_indexes, tick_index_to_sqrt_price
from .ticks import Tick, update_tick
from .token_math import (
    TransferFee,
    try_apply_transfer_fee,
    try_get_amount_delta_a,
    try_get_amount_delta_b,
    try_get_max_amount_with_slippage_tolerance,
    try_get_min_amount_with_slippage_tolerance,
    try_reverse_apply_transfer_fee,
)

logger = logging.getLogger(__name__)


class PositionStatus(str, Enum):
    PRICE_IN_RANGE = "price_in_range"
    PRICE_BELOW_RANGE = "price_below_range"
    PRICE_ABOVE_RANGE = "price_above_range"
    INVALID = "invalid"


@dataclass(frozen=True)
class PositionRatio:
    ratio_a: int
    ratio_b: int


@dataclass(frozen=True)
class IncreaseLiquidityQuote:
    liquidity_delta: int = 0
    token_est_a: int = 0
    token_est_b: int = 0
    token_max_a: int = 0
    token_max_b: int = 0


@dataclass(frozen=True)
class DecreaseLiquidityQuote:
    liquidity_delta: int = 0
    token_est_a: int = 0
    token_est_b: int = 0
    token_min_a: int = 0
    token_min_b: int = 0


@dataclass
class ModifyLiquidityResult:
    pool: Pool
    position: Position
    tick_lower: Tick
    tick_upper: Tick
    token_a: int
    token_b: int


# ---------------------------------------------------------------------------
# Position status
# ---------------------------------------------------------------------------

def position_status(sqrt_price: int, tick_index_1: int, tick_index_2: int) -> PositionStatus:
    """Where the price sits relative to a range; the bounds may come in any order."""
    if tick_index_1 == tick_index_2:
        return PositionStatus.INVALID
    tick_lower, tick_upper = order_tick_indexes(tick_index_1, tick_index_2)
    if sqrt_price <= tick_index_to_sqrt_price(tick_lower):
        return PositionStatus.PRICE_BELOW_RANGE
    if sqrt_price >= tick_index_to_sqrt_price(tick_upper):
        return PositionStatus.PRICE_ABOVE_RANGE
    return PositionStatus.PRICE_IN_RANGE


def is_position_in_range(sqrt_price: int, tick_index_1: int, tick_index_2: int) -> bool:
    return position_status(sqrt_price, tick_index_1, tick_index_2) is PositionStatus.PRICE_IN_RANGE


def position_ratio_x64(sqrt_price: int, tick_index_1: int, tick_index_2: int) -> PositionRatio:
    """Share of the position's value held in A and in B, as Q64.64 fractions."""
    status = position_status(sqrt_price, tick_index_1, tick_index_2)
    if status is PositionStatus.INVALID:
        return PositionRatio(0, 0)
    if status is PositionStatus.PRICE_BELOW_RANGE:
        return PositionRatio(Q64, 0)
    if status is PositionStatus.PRICE_ABOVE_RANGE:
        return PositionRatio(0, Q64)

    tick_lower, tick_upper = order_tick_indexes(tick_index_1, tick_index_2)
    lower_sqrt_price = tick_index_to_sqrt_price(tick_lower)
    upper_sqrt_price = tick_index_to_sqrt_price(tick_upper)

    unit_liquidity = Q64
    price_x128 = sqrt_price * sqrt_price
    deposit_a = (
        ((unit_liquidity << Q64_RESOLUTION) // sqrt_price - (unit_liquidity << Q64_RESOLUTION) // upper_sqrt_price)
        * price_x128
    ) >> Q64_RESOLUTION
    deposit_b = unit_liquidity * (sqrt_price - lower_sqrt_price)
    ratio_a = deposit_a * Q64 // (deposit_a + deposit_b)
    return PositionRatio(ratio_a, Q64 - ratio_a)


# ---------------------------------------------------------------------------
# Liquidity ⇄ token amounts
# ---------------------------------------------------------------------------

def get_liquidity_from_a(amount_a: int, sqrt_price_lower: int, sqrt_price_upper: int, round_up: bool) -> int:
    diff = sqrt_price_upper - sqrt_price_lower
    product = amount_a * sqrt_price_lower * sqrt_price_upper
    quotient = product // diff
    result = quotient >> Q64_RESOLUTION
    if round_up and (product % diff or quotient & (Q64 - 1)):
        result += 1
    return check_u128(result, "liquidity")


def get_liquidity_from_b(amount_b: int, sqrt_price_lower: int, sqrt_price_upper: int, round_up: bool) -> int:
    diff = sqrt_price_upper - sqrt_price_lower
    return check_u128(div_round(amount_b << Q64_RESOLUTION, diff, round_up), "liquidity")


def get_token_estimates_from_liquidity(
    liquidity: int,
    sqrt_price: int,
    sqrt_price_lower: int,
    sqrt_price_upper: int,
    round_up: bool,
) -> Tuple[int, int]:
    if liquidity == 0:
        return 0, 0
    if sqrt_price <= sqrt_price_lower:
        return try_get_amount_delta_a(sqrt_price_lower, sqrt_price_upper, liquidity, round_up), 0
    if sqrt_price < sqrt_price_upper:
        return (
            try_get_amount_delta_a(sqrt_price, sqrt_price_upper, liquidity, round_up),
            try_get_amount_delta_b(sqrt_price_lower, sqrt_price, liquidity, round_up),
        )
    return 0, try_get_amount_delta_b(sqrt_price_lower, sqrt_price_upper, liquidity, round_up)


def _range_sqrt_prices(tick_lower_index: int, tick_upper_index: int) -> Tuple[int, int]:
    if tick_lower_index >= tick_upper_index:
        raise InvalidRangeError(
            f"tick_lower_index must be < tick_upper_index ({tick_lower_index} >= {tick_upper_index})"
        )
    return tick_index_to_sqrt_price(tick_lower_index), tick_index_to_sqrt_price(tick_upper_index)


def _liquidity_from_token_a(amount_a: int, sqrt_price: int, tick_lower_index: int, tick_upper_index: int) -> int:
    sqrt_price_lower, sqrt_price_upper = _range_sqrt_prices(tick_lower_index, tick_upper_index)
    status = position_status(sqrt_price, tick_lower_index, tick_upper_index)
    if status is PositionStatus.PRICE_BELOW_RANGE:
        return get_liquidity_from_a(amount_a, sqrt_price_lower, sqrt_price_upper, False)
    if status is PositionStatus.PRICE_IN_RANGE:
        return get_liquidity_from_a(amount_a, sqrt_price, sqrt_price_upper, False)
    return 0


def _liquidity_from_token_b(amount_b: int, sqrt_price: int, tick_lower_index: int, tick_upper_index: int) -> int:
    sqrt_price_lower, sqrt_price_upper = _range_sqrt_prices(tick_lower_index, tick_upper_index)
    status = position_status(sqrt_price, tick_lower_index, tick_upper_index)
    if status is PositionStatus.PRICE_ABOVE_RANGE:
        return get_liquidity_from_b(amount_b, sqrt_price_lower, sqrt_price_upper, False)
    if status is PositionStatus.PRICE_IN_RANGE:
        return get_liquidity_from_b(amount_b, sqrt_price_lower, sqrt_price, False)
    return 0


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def increase_liquidity_quote(
    liquidity_delta: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> IncreaseLiquidityQuote:
    """
    Tokens to deposit for ``liquidity_delta``.

    Estimates round up and are grossed up by the transfer fees, so what
    arrives in the vault covers the liquidity; maxima add the slippage.
    """
    sqrt_price_lower, sqrt_price_upper = _range_sqrt_prices(tick_lower_index, tick_upper_index)
    if liquidity_delta == 0:
        return IncreaseLiquidityQuote()

    est_a, est_b = get_token_estimates_from_liquidity(
        liquidity_delta, sqrt_price, sqrt_price_lower, sqrt_price_upper, True
    )
    token_est_a = try_reverse_apply_transfer_fee(est_a, transfer_fee_a)
    token_est_b = try_reverse_apply_transfer_fee(est_b, transfer_fee_b)
    return IncreaseLiquidityQuote(
        liquidity_delta=liquidity_delta,
        token_est_a=token_est_a,
        token_est_b=token_est_b,
        token_max_a=try_get_max_amount_with_slippage_tolerance(token_est_a, slippage_tolerance_bps),
        token_max_b=try_get_max_amount_with_slippage_tolerance(token_est_b, slippage_tolerance_bps),
    )


def increase_liquidity_quote_a(
    token_amount_a: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> IncreaseLiquidityQuote:
    """Liquidity obtainable by depositing ``token_amount_a`` (gross of transfer fee)."""
    net_a = try_apply_transfer_fee(token_amount_a, transfer_fee_a)
    liquidity = _liquidity_from_token_a(net_a, sqrt_price, tick_lower_index, tick_upper_index)
    return increase_liquidity_quote(
        liquidity, slippage_tolerance_bps, sqrt_price, tick_lower_index, tick_upper_index,
        transfer_fee_a, transfer_fee_b,
    )


def increase_liquidity_quote_b(
    token_amount_b: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> IncreaseLiquidityQuote:
    """Liquidity obtainable by depositing ``token_amount_b`` (gross of transfer fee)."""
    net_b = try_apply_transfer_fee(token_amount_b, transfer_fee_b)
    liquidity = _liquidity_from_token_b(net_b, sqrt_price, tick_lower_index, tick_upper_index)
    return increase_liquidity_quote(
        liquidity, slippage_tolerance_bps, sqrt_price, tick_lower_index, tick_upper_index,
        transfer_fee_a, transfer_fee_b,
    )


def decrease_liquidity_quote(
    liquidity_delta: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> DecreaseLiquidityQuote:
    """
    Tokens received for withdrawing ``liquidity_delta``.

    Estimates round down and are net of transfer fees; minima subtract the
    slippage.
    """
    sqrt_price_lower, sqrt_price_upper = _range_sqrt_prices(tick_lower_index, tick_upper_index)
    if liquidity_delta == 0:
        return DecreaseLiquidityQuote()

    est_a, est_b = get_token_estimates_from_liquidity(
        liquidity_delta, sqrt_price, sqrt_price_lower, sqrt_price_upper, False
    )
    token_est_a = try_apply_transfer_fee(est_a, transfer_fee_a)
    token_est_b = try_apply_transfer_fee(est_b, transfer_fee_b)
    return DecreaseLiquidityQuote(
        liquidity_delta=liquidity_delta,
        token_est_a=token_est_a,
        token_est_b=token_est_b,
        token_min_a=try_get_min_amount_with_slippage_tolerance(token_est_a, slippage_tolerance_bps),
        token_min_b=try_get_min_amount_with_slippage_tolerance(token_est_b, slippage_tolerance_bps),
    )


def decrease_liquidity_quote_a(
    token_amount_a: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> DecreaseLiquidityQuote:
    """Liquidity to withdraw so that ``token_amount_a`` arrives after transfer fees."""
    gross_a = try_reverse_apply_transfer_fee(token_amount_a, transfer_fee_a)
    liquidity = _liquidity_from_token_a(gross_a, sqrt_price, tick_lower_index, tick_upper_index)
    return decrease_liquidity_quote(
        liquidity, slippage_tolerance_bps, sqrt_price, tick_lower_index, tick_upper_index,
        transfer_fee_a, transfer_fee_b,
    )


def decrease_liquidity_quote_b(
    token_amount_b: int,
    slippage_tolerance_bps: int,
    sqrt_price: int,
    tick_lower_index: int,
    tick_upper_index: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> DecreaseLiquidityQuote:
    """Liquidity to withdraw so that ``token_amount_b`` arrives after transfer fees."""
    gross_b = try_reverse_apply_transfer_fee(token_amount_b, transfer_fee_b)
    liquidity = _liquidity_from_token_b(gross_b, sqrt_price, tick_lower_index, tick_upper_index)
    return decrease_liquidity_quote(
        liquidity, slippage_tolerance_bps, sqrt_price, tick_lower_index, tick_upper_index,
        transfer_fee_a, transfer_fee_b,
    )


# ---------------------------------------------------------------------------
# State change
# ---------------------------------------------------------------------------

def modify_liquidity(
    pool: Pool,
    position: Position,
    tick_lower: Tick,
    tick_upper: Tick,
    liquidity_delta: int,
) -> ModifyLiquidityResult:
    """
    Add (positive delta) or remove (negative delta) liquidity from a position.

    Fees are accrued with the pre-change liquidity, then both boundary ticks
    and, when the range is active, the pool liquidity are updated. Token
    amounts round up for deposits and down for withdrawals. Inputs are not
    modified.
    """
    validate_tick_range(position.tick_lower_index, position.tick_upper_index, pool.tick_spacing)
    if liquidity_delta == 0:
        raise InvalidRangeError("Liquidity delta must be non-zero")

    inside_a, inside_b = fee_growth_inside(
        pool.tick_current_index,
        tick_lower,
        position.tick_lower_index,
        tick_upper,
        position.tick_upper_index,
        pool.fee_growth_global_a,
        pool.fee_growth_global_b,
    )
    new_position = replace(position)
    accrue_position_fees(new_position, inside_a, inside_b)
    new_liquidity = new_position.liquidity + liquidity_delta
    if new_liquidity < 0:
        raise ArithmeticOverflowError(
            f"Cannot remove {-liquidity_delta} liquidity from a position holding {position.liquidity}"
        )
    new_position.liquidity = check_u128(new_liquidity, "position liquidity")

    new_tick_lower = update_tick(
        tick_lower, position.tick_lower_index, pool.tick_current_index, liquidity_delta,
        pool.fee_growth_global_a, pool.fee_growth_global_b, False,
    )
    new_tick_upper = update_tick(
        tick_upper, position.tick_upper_index, pool.tick_current_index, liquidity_delta,
        pool.fee_growth_global_a, pool.fee_growth_global_b, True,
    )

    new_pool = replace(pool)
    if position.tick_lower_index <= pool.tick_current_index < position.tick_upper_index:
        pool_liquidity = pool.liquidity + liquidity_delta
        if pool_liquidity < 0:
            raise ArithmeticOverflowError(f"Pool liquidity underflow: {pool.liquidity} + {liquidity_delta}")
        new_pool.liquidity = check_u128(pool_liquidity, "pool liquidity")

    round_up = liquidity_delta > 0
    sqrt_price_lower = tick_index_to_sqrt_price(position.tick_lower_index)
    sqrt_price_upper = tick_index_to_sqrt_price(position.tick_upper_index)
    amount = abs(liquidity_delta)
    if pool.tick_current_index < position.tick_lower_index:
        token_a = try_get_amount_delta_a(sqrt_price_lower, sqrt_price_upper, amount, round_up)
        token_b = 0
    elif pool.tick_current_index < position.tick_upper_index:
        token_a = try_get_amount_delta_a(pool.sqrt_price, sqrt_price_upper, amount, round_up)
        token_b = try_get_amount_delta_b(sqrt_price_lower, pool.sqrt_price, amount, round_up)
    else:
        token_a = 0
        token_b = try_get_amount_delta_b(sqrt_price_lower, sqrt_price_upper, amount, round_up)

    logger.debug(
        "Liquidity %+d on [%d, %d): token_a=%d token_b=%d",
        liquidity_delta, position.tick_lower_index, position.tick_upper_index, token_a, token_b,
    )
    return ModifyLiquidityResult(
        pool=new_pool,
        position=new_position,
        tick_lower=new_tick_lower,
        tick_upper=new_tick_upper,
        token_a=token_a,
        token_b=token_b,
    )


def reset_position_range(position: Position, tick_lower_index: int, tick_upper_index: int, tick_spacing: int) -> Position:
    """Move an empty position to a new range; fee checkpoints restart at zero."""
    if not position.is_empty:
        raise PositionNotEmptyError(
            f"Position [{position.tick_lower_index}, {position.tick_upper_index}) still holds "
            f"liquidity {position.liquidity} or uncollected fees"
        )
    validate_tick_range(tick_lower_index, tick_upper_index, tick_spacing)
    return replace(
        position,
        tick_lower_index=tick_lower_index,
        tick_upper_index=tick_upper_index,
        fee_growth_checkpoint_a=0,
        fee_growth_checkpoint_b=0,
    )
