"""
Fee-growth and fee-collection accounting.

Trade fees are tracked per unit of liquidity in the global Q64.64
accumulators; each tick stores the growth on its far side
("fee growth outside") and re-bases it on every crossing, which gives the
growth inside any range from three numbers. Accumulators wrap modulo 2^128
on purpose: only differences between them are meaningful.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ..constants import MAX_CLP_REWARD_RATE, PROTOCOL_FEE_RATE_DENOMINATOR, Q64_RESOLUTION
from .fixed_point import check_u64, checked_add, mul_div, wrapping_add_u128, wrapping_sub_u128
from .state import Pool, Position
from .ticks import Tick
from .token_math import TransferFee, try_apply_transfer_fee

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectFeesQuote:
    fee_owed_a: int
    fee_owed_b: int


# ---------------------------------------------------------------------------
# Growth inside a range
# ---------------------------------------------------------------------------

def fee_growth_inside(
    tick_current_index: int,
    tick_lower: Tick,
    tick_lower_index: int,
    tick_upper: Tick,
    tick_upper_index: int,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
) -> Tuple[int, int]:
    """
    Fee growth per unit of liquidity accumulated inside the range.

    An uninitialized boundary is treated as if all growth so far happened
    below it, matching the snapshot taken when it gets initialized.
    """
    if not tick_lower.initialized:
        below_a, below_b = fee_growth_global_a, fee_growth_global_b
    elif tick_current_index < tick_lower_index:
        below_a = wrapping_sub_u128(fee_growth_global_a, tick_lower.fee_growth_outside_a)
        below_b = wrapping_sub_u128(fee_growth_global_b, tick_lower.fee_growth_outside_b)
    else:
        below_a, below_b = tick_lower.fee_growth_outside_a, tick_lower.fee_growth_outside_b

    if not tick_upper.initialized:
        above_a, above_b = 0, 0
    elif tick_current_index < tick_upper_index:
        above_a, above_b = tick_upper.fee_growth_outside_a, tick_upper.fee_growth_outside_b
    else:
        above_a = wrapping_sub_u128(fee_growth_global_a, tick_upper.fee_growth_outside_a)
        above_b = wrapping_sub_u128(fee_growth_global_b, tick_upper.fee_growth_outside_b)

    inside_a = wrapping_sub_u128(wrapping_sub_u128(fee_growth_global_a, below_a), above_a)
    inside_b = wrapping_sub_u128(wrapping_sub_u128(fee_growth_global_b, below_b), above_b)
    return inside_a, inside_b


def _fee_owed_delta(growth_inside: int, checkpoint: int, liquidity: int) -> int:
    delta = (wrapping_sub_u128(growth_inside, checkpoint) * liquidity) >> Q64_RESOLUTION
    return check_u64(delta, "fee_owed_delta")


def accrue_position_fees(position: Position, growth_inside_a: int, growth_inside_b: int) -> None:
    """Move fees earned since the last checkpoint into the owed accumulators, in place."""
    position.fee_owed_a = checked_add(
        position.fee_owed_a,
        _fee_owed_delta(growth_inside_a, position.fee_growth_checkpoint_a, position.liquidity),
        "fee_owed_a",
    )
    position.fee_owed_b = checked_add(
        position.fee_owed_b,
        _fee_owed_delta(growth_inside_b, position.fee_growth_checkpoint_b, position.liquidity),
        "fee_owed_b",
    )
    position.fee_growth_checkpoint_a = growth_inside_a
    position.fee_growth_checkpoint_b = growth_inside_b


def update_position_fees(pool: Pool, position: Position, tick_lower: Tick, tick_upper: Tick) -> Position:
    """Return a copy of ``position`` with fees accrued up to the current pool state."""
    inside_a, inside_b = fee_growth_inside(
        pool.tick_current_index,
        tick_lower,
        position.tick_lower_index,
        tick_upper,
        position.tick_upper_index,
        pool.fee_growth_global_a,
        pool.fee_growth_global_b,
    )
    updated = replace(position)
    accrue_position_fees(updated, inside_a, inside_b)
    return updated


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

def collect_fees_quote(
    pool: Pool,
    position: Position,
    tick_lower: Tick,
    tick_upper: Tick,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> CollectFeesQuote:
    """Fees the position could collect now, net of token transfer fees."""
    accrued = update_position_fees(pool, position, tick_lower, tick_upper)
    return CollectFeesQuote(
        fee_owed_a=try_apply_transfer_fee(accrued.fee_owed_a, transfer_fee_a),
        fee_owed_b=try_apply_transfer_fee(accrued.fee_owed_b, transfer_fee_b),
    )


def harvest_position(
    pool: Pool,
    position: Position,
    tick_lower: Tick,
    tick_upper: Tick,
) -> Tuple[Position, int, int]:
    """
    Pay out everything the position is owed.

    Returns the updated position (owed zeroed, checkpoint at the current
    growth inside) and the gross amounts paid out of the vaults.
    """
    accrued = update_position_fees(pool, position, tick_lower, tick_upper)
    amount_a, amount_b = accrued.fee_owed_a, accrued.fee_owed_b
    accrued.fee_owed_a = 0
    accrued.fee_owed_b = 0
    return accrued, amount_a, amount_b


def collect_protocol_fees(pool: Pool) -> Tuple[Pool, int, int]:
    """Zero the protocol fees owed and return them with the updated pool."""
    updated = replace(pool)
    amount_a, amount_b = updated.protocol_fee_owed_a, updated.protocol_fee_owed_b
    updated.protocol_fee_owed_a = 0
    updated.protocol_fee_owed_b = 0
    logger.debug("Protocol fees collected from pool %s: a=%d b=%d", pool.address or "<unnamed>", amount_a, amount_b)
    return updated, amount_a, amount_b


# ---------------------------------------------------------------------------
# Swap fee split
# ---------------------------------------------------------------------------

def calculate_protocol_fee(fee_amount: int, protocol_fee_rate: int) -> int:
    return mul_div(fee_amount, protocol_fee_rate, PROTOCOL_FEE_RATE_DENOMINATOR, False)


def accrue_swap_fee(
    fee_amount: int,
    protocol_fee_rate: int,
    liquidity: int,
    fee_growth_global: int,
    protocol_fee_owed: int,
) -> Tuple[int, int]:
    """
    Split a step's trade fee into the protocol cut and LP fee growth.

    Returns ``(fee_growth_global, protocol_fee_owed)``. Without active
    liquidity the LP part has no recipient and growth is left unchanged.
    """
    protocol_fee = calculate_protocol_fee(fee_amount, protocol_fee_rate)
    protocol_fee_owed = checked_add(protocol_fee_owed, protocol_fee, "protocol_fee_owed")
    lp_fee = fee_amount - protocol_fee
    if liquidity > 0 and lp_fee > 0:
        fee_growth_global = wrapping_add_u128(fee_growth_global, (lp_fee << Q64_RESOLUTION) // liquidity)
    return fee_growth_global, protocol_fee_owed


def split_order_fill_fee(
    fee_amount: int,
    order_protocol_fee_rate: int,
    clp_reward_rate: int,
) -> Tuple[int, int, int]:
    """
    Split the fee paid on an order fill into ``(protocol, clp, olp)`` parts.

    The protocol cut comes off first; the rest is shared between
    concentrated-liquidity providers (``clp_reward_rate``) and the order
    owners, who receive the remainder.
    """
    protocol_fee = calculate_protocol_fee(fee_amount, order_protocol_fee_rate)
    remaining = fee_amount - protocol_fee
    clp_fee = mul_div(remaining, clp_reward_rate, MAX_CLP_REWARD_RATE, False)
    return protocol_fee, clp_fee, remaining - clp_fee
