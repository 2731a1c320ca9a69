"""
Limit-order engine.

Orders rest on a single tick and are never queued individually: the tick
keeps aggregate counters per cohort (see ticks.py) and each order only
remembers its input amount and the tick age it joined at. Comparing the two
ages tells whether the order is untouched, in the partially filled cohort or
fully converted.

Fees paid by swappers on order fills are split three ways: the protocol cut,
the concentrated-liquidity providers' share (``clp_reward_rate``) and the
order owners' share, which accumulates in ``olp_fee_owed_*`` and is paid out
pro rata to the filled input on decrease.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ..constants import FEE_RATE_DENOMINATOR, MAX_CLP_REWARD_RATE, PROTOCOL_FEE_RATE_DENOMINATOR
from ..exceptions import (
    InvalidTickIndexError,
    LimitOrderAmountExceededError,
    LimitOrderNotEmptyError,
    LimitOrderOutOfSyncError,
    TakerOrderError,
    UninitializedTickError,
    ZeroTradableAmountError,
)
from .fixed_point import check_u64, checked_add, checked_sub, mul_div
from .state import LimitOrder, Pool
from .tick_math import is_tick_index_in_bounds, is_tick_initializable, tick_index_to_sqrt_price
from .ticks import Tick, add_open_orders, initialize_fee_growth_outside, sync_initialized
from .token_math import (
    TransferFee,
    get_limit_order_output_amount,
    try_apply_transfer_fee,
    try_reverse_apply_swap_fee,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitOrderDecreaseQuote:
    amount_out_a: int
    amount_out_b: int
    reward_a: int
    reward_b: int


@dataclass(frozen=True)
class LimitOrderFill:
    """Swap-side view of filling the orders resting on one tick."""
    amount_in: int = 0
    amount_out: int = 0
    fee_amount: int = 0


@dataclass
class LimitOrderUpdate:
    """New state after an order operation plus the tokens moved."""
    pool: Pool
    tick: Tick
    limit_order: LimitOrder
    amount_a: int = 0
    amount_b: int = 0
    reward_a: int = 0
    reward_b: int = 0


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def validate_limit_order_placement(pool: Pool, tick_index: int, a_to_b: bool) -> None:
    """
    Raise unless an order at ``tick_index`` would rest rather than trade.

    An A→B order sells A at the tick price, so the price must still be
    below it; a B→A order needs the price above. Equality counts as
    marketable.
    """
    if not is_tick_index_in_bounds(tick_index):
        raise InvalidTickIndexError(f"Limit order tick {tick_index} is out of bounds")
    if not is_tick_initializable(tick_index, pool.tick_spacing):
        raise InvalidTickIndexError(
            f"Limit order tick {tick_index} is not a multiple of tick spacing {pool.tick_spacing}"
        )
    limit_sqrt_price = tick_index_to_sqrt_price(tick_index)
    if a_to_b and limit_sqrt_price <= pool.sqrt_price:
        raise TakerOrderError(
            f"A->B order at tick {tick_index} is marketable: limit {limit_sqrt_price} <= pool {pool.sqrt_price}"
        )
    if not a_to_b and limit_sqrt_price >= pool.sqrt_price:
        raise TakerOrderError(
            f"B->A order at tick {tick_index} is marketable: limit {limit_sqrt_price} >= pool {pool.sqrt_price}"
        )


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def limit_order_quote_by_input_token(amount_in: int, a_to_b_order: bool, tick_index: int, pool: Pool) -> int:
    """
    Output a fully filled order of ``amount_in`` would receive, reward included.

    The reward is the order owners' share of the fee the swapper pays on top
    of the order price.
    ``clp_reward_rate`` is the share kept by concentrated-liquidity providers,
    so owners receive ``fee·(1-order_protocol)·(1-clp)``.
    """
    sqrt_price = tick_index_to_sqrt_price(tick_index)
    amount_out = get_limit_order_output_amount(amount_in, a_to_b_order, sqrt_price, False)
    swap_fee = try_reverse_apply_swap_fee(amount_out, pool.fee_rate) - amount_out
    swap_fee -= mul_div(swap_fee, pool.order_protocol_fee_rate, PROTOCOL_FEE_RATE_DENOMINATOR, False)
    reward = swap_fee - mul_div(swap_fee, pool.clp_reward_rate, MAX_CLP_REWARD_RATE, False)
    return check_u64(amount_out + reward)


def limit_order_quote_by_output_token(amount_out: int, a_to_b_order: bool, tick_index: int, pool: Pool) -> int:
    """
    Input an order needs to receive ``amount_out`` (reward included) when filled.

    With f, p, r the fee, order protocol and CLP rates, the reward adds
    ``f/(1-f)·(1-p)·(1-r)`` of the bare output, so the bare output is
    ``amount_out / (1 + f/(1-f)·(1-p)·(1-r))``, evaluated in integers.
    """
    sqrt_price = tick_index_to_sqrt_price(tick_index)
    fee_complement = FEE_RATE_DENOMINATOR - pool.fee_rate
    scale = PROTOCOL_FEE_RATE_DENOMINATOR * MAX_CLP_REWARD_RATE
    denominator = fee_complement * scale + pool.fee_rate * (
        (MAX_CLP_REWARD_RATE - pool.clp_reward_rate)
        * (PROTOCOL_FEE_RATE_DENOMINATOR - pool.order_protocol_fee_rate)
    )
    amount_out_without_reward = check_u64(amount_out * fee_complement * scale // denominator)
    return get_limit_order_output_amount(amount_out_without_reward, not a_to_b_order, sqrt_price, True)


def _order_fill_state(limit_order: LimitOrder, tick: Tick, amount: int) -> Tuple[int, int]:
    """
    Split ``amount`` of the order into ``(unfilled_input, filled_input)``.

    Partially filled orders receive their share of the cohort remainder
    against the live counters, rounded down, which hands the rounding dust
    to the last order of the cohort to withdraw.
    """
    if limit_order.age == tick.age:
        return amount, 0
    if limit_order.age + 1 == tick.age:
        if tick.part_filled_orders_input == 0:
            raise LimitOrderOutOfSyncError(
                f"Order at tick {limit_order.tick_index} is partially filled but the tick has no partial cohort"
            )
        unfilled = mul_div(amount, tick.part_filled_orders_remaining_input, tick.part_filled_orders_input, False)
        return unfilled, amount - unfilled
    if limit_order.age + 2 <= tick.age:
        return 0, amount
    raise LimitOrderOutOfSyncError(
        f"Order age {limit_order.age} is ahead of tick age {tick.age} at tick {limit_order.tick_index}"
    )


def _order_reward(pool: Pool, a_to_b: bool, filled: int) -> int:
    if filled == 0:
        return 0
    if a_to_b:
        owed, filled_total = pool.olp_fee_owed_b, pool.orders_filled_amount_a
    else:
        owed, filled_total = pool.olp_fee_owed_a, pool.orders_filled_amount_b
    if filled_total < filled:
        raise LimitOrderOutOfSyncError(
            f"Pool records {filled_total} filled order input, order claims {filled}"
        )
    return mul_div(owed, filled, filled_total, False)


def _decrease_amounts(pool: Pool, limit_order: LimitOrder, tick: Tick, amount: int) -> Tuple[int, int, int, int, int]:
    """Return ``(amount_a, amount_b, reward_a, reward_b, filled)`` before transfer fees."""
    if amount > limit_order.amount:
        raise LimitOrderAmountExceededError(
            f"Cannot decrease by {amount}, order holds {limit_order.amount}"
        )
    unfilled, filled = _order_fill_state(limit_order, tick, amount)
    sqrt_price = tick_index_to_sqrt_price(limit_order.tick_index)
    amount_out = get_limit_order_output_amount(filled, limit_order.a_to_b, sqrt_price, False)
    reward = _order_reward(pool, limit_order.a_to_b, filled)

    if limit_order.a_to_b:
        return unfilled, check_u64(amount_out + reward), 0, reward, filled
    return check_u64(amount_out + reward), unfilled, reward, 0, filled


def decrease_limit_order_quote(
    pool: Pool,
    limit_order: LimitOrder,
    tick: Tick,
    amount: int,
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> LimitOrderDecreaseQuote:
    """
    Tokens returned for withdrawing ``amount`` of an order.

    Unfilled input comes back in the input token, the filled part in the
    output token together with the owners' fee reward. Amounts are net of
    transfer fees. Works the same for a partial decrease and a full close.
    """
    amount_a, amount_b, reward_a, reward_b, _ = _decrease_amounts(pool, limit_order, tick, amount)
    return LimitOrderDecreaseQuote(
        amount_out_a=try_apply_transfer_fee(amount_a, transfer_fee_a),
        amount_out_b=try_apply_transfer_fee(amount_b, transfer_fee_b),
        reward_a=reward_a,
        reward_b=reward_b,
    )


def fill_limit_orders(
    tick: Optional[Tick],
    sqrt_price: int,
    a_to_b: bool,
    specified_input: bool,
    amount_remaining: int,
    fee_rate: int,
) -> LimitOrderFill:
    """
    How much of a tick's resting orders a swap step can take.

    ``a_to_b`` is the swap direction; the resting input is in the swap's
    output token. The fee is charged on top of the order price, so for
    exact input the remaining amount must cover input plus fee to clear the
    tick, otherwise the fill is scaled down proportionally.
    """
    if tick is None:
        return LimitOrderFill()
    available = tick.resting_orders_input
    if available == 0 or amount_remaining == 0:
        return LimitOrderFill()

    fee_complement = FEE_RATE_DENOMINATOR - fee_rate
    if specified_input:
        amount_in = get_limit_order_output_amount(available, not a_to_b, sqrt_price, True)
        amount_out = available
        fee_amount = mul_div(amount_in, fee_rate, fee_complement, True)
        if amount_remaining < amount_in + fee_amount:
            total_amount_in = amount_in
            fee_amount = mul_div(amount_remaining, fee_rate, FEE_RATE_DENOMINATOR, True)
            amount_in = amount_remaining - fee_amount
            amount_out = mul_div(available, amount_in, total_amount_in, False)
    else:
        amount_out = min(available, amount_remaining)
        amount_in = get_limit_order_output_amount(amount_out, not a_to_b, sqrt_price, True)
        fee_amount = mul_div(amount_in, fee_rate, fee_complement, True)
    return LimitOrderFill(amount_in=amount_in, amount_out=amount_out, fee_amount=fee_amount)


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

def _add_total(pool: Pool, a_to_b: bool, amount: int) -> None:
    if a_to_b:
        pool.orders_total_amount_a = checked_add(pool.orders_total_amount_a, amount, "orders_total_amount_a")
    else:
        pool.orders_total_amount_b = checked_add(pool.orders_total_amount_b, amount, "orders_total_amount_b")


def open_limit_order(
    pool: Pool,
    tick: Tick,
    tick_index: int,
    a_to_b: bool,
    amount: int = 0,
    limit_order_mint: str = "",
) -> LimitOrderUpdate:
    """Create an order at ``tick_index``, optionally funding it straight away."""
    validate_limit_order_placement(pool, tick_index, a_to_b)
    limit_order = LimitOrder(
        tick_index=tick_index,
        a_to_b=a_to_b,
        amount=0,
        age=tick.age,
        pool=pool.address,
        limit_order_mint=limit_order_mint,
    )
    if amount == 0:
        return LimitOrderUpdate(pool=replace(pool), tick=replace(tick), limit_order=limit_order)
    return increase_limit_order(pool, limit_order, tick, amount)


def increase_limit_order(pool: Pool, limit_order: LimitOrder, tick: Tick, amount: int) -> LimitOrderUpdate:
    """
    Add input to an order that has not started filling.

    The placement check runs again against the current price. Returns the
    token the owner must deposit in ``amount_a``/``amount_b``.
    """
    if amount == 0:
        raise ZeroTradableAmountError("Limit order increase must be non-zero")
    validate_limit_order_placement(pool, limit_order.tick_index, limit_order.a_to_b)

    new_order = replace(limit_order)
    if new_order.amount == 0:
        new_order.age = tick.age
    elif new_order.age != tick.age:
        raise LimitOrderOutOfSyncError(
            f"Order at tick {limit_order.tick_index} has started filling and cannot be increased"
        )
    new_order.amount = checked_add(new_order.amount, amount, "limit order amount")

    new_tick = replace(tick)
    initialize_fee_growth_outside(
        new_tick, limit_order.tick_index, pool.tick_current_index,
        pool.fee_growth_global_a, pool.fee_growth_global_b,
    )
    add_open_orders(new_tick, amount)
    sync_initialized(new_tick)

    new_pool = replace(pool)
    _add_total(new_pool, limit_order.a_to_b, amount)

    logger.debug(
        "Limit order %s at tick %d increased by %d (a_to_b=%s)",
        limit_order.limit_order_mint or "<anonymous>", limit_order.tick_index, amount, limit_order.a_to_b,
    )
    amount_a, amount_b = (amount, 0) if limit_order.a_to_b else (0, amount)
    return LimitOrderUpdate(
        pool=new_pool, tick=new_tick, limit_order=new_order, amount_a=amount_a, amount_b=amount_b
    )


def decrease_limit_order(pool: Pool, limit_order: LimitOrder, tick: Tick, amount: int) -> LimitOrderUpdate:
    """
    Withdraw ``amount`` of an order's input, settling its filled part.

    ``amount_a``/``amount_b`` are the gross amounts paid out of the vaults.
    """
    if amount == 0:
        raise ZeroTradableAmountError("Limit order decrease must be non-zero")
    if not tick.initialized:
        raise UninitializedTickError(
            f"Tick {limit_order.tick_index} referenced by a limit order is not initialized"
        )
    amount_a, amount_b, reward_a, reward_b, filled = _decrease_amounts(pool, limit_order, tick, amount)
    unfilled = amount - filled

    new_tick = replace(tick)
    if limit_order.age == tick.age:
        new_tick.open_orders_input = checked_sub(new_tick.open_orders_input, amount, "open_orders_input")
    elif limit_order.age + 1 == tick.age:
        new_tick.part_filled_orders_remaining_input = checked_sub(
            new_tick.part_filled_orders_remaining_input, unfilled, "part_filled_orders_remaining_input"
        )
        new_tick.part_filled_orders_input = checked_sub(
            new_tick.part_filled_orders_input, amount, "part_filled_orders_input"
        )
    elif limit_order.a_to_b:
        new_tick.fulfilled_a_to_b_orders_input = checked_sub(
            new_tick.fulfilled_a_to_b_orders_input, amount, "fulfilled_a_to_b_orders_input"
        )
    else:
        new_tick.fulfilled_b_to_a_orders_input = checked_sub(
            new_tick.fulfilled_b_to_a_orders_input, amount, "fulfilled_b_to_a_orders_input"
        )
    sync_initialized(new_tick)

    new_pool = replace(pool)
    if limit_order.a_to_b:
        new_pool.orders_total_amount_a = checked_sub(new_pool.orders_total_amount_a, amount, "orders_total_amount_a")
        new_pool.orders_filled_amount_a = checked_sub(new_pool.orders_filled_amount_a, filled, "orders_filled_amount_a")
        new_pool.olp_fee_owed_b = checked_sub(new_pool.olp_fee_owed_b, reward_b, "olp_fee_owed_b")
    else:
        new_pool.orders_total_amount_b = checked_sub(new_pool.orders_total_amount_b, amount, "orders_total_amount_b")
        new_pool.orders_filled_amount_b = checked_sub(new_pool.orders_filled_amount_b, filled, "orders_filled_amount_b")
        new_pool.olp_fee_owed_a = checked_sub(new_pool.olp_fee_owed_a, reward_a, "olp_fee_owed_a")

    new_order = replace(limit_order)
    new_order.amount -= amount

    logger.debug(
        "Limit order at tick %d decreased by %d: filled=%d out_a=%d out_b=%d",
        limit_order.tick_index, amount, filled, amount_a, amount_b,
    )
    return LimitOrderUpdate(
        pool=new_pool,
        tick=new_tick,
        limit_order=new_order,
        amount_a=amount_a,
        amount_b=amount_b,
        reward_a=reward_a,
        reward_b=reward_b,
    )


def close_limit_order(limit_order: LimitOrder) -> None:
    """Raise unless the order has been fully withdrawn."""
    if limit_order.amount != 0:
        raise LimitOrderNotEmptyError(
            f"Limit order at tick {limit_order.tick_index} still holds {limit_order.amount}"
        )
