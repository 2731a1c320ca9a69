"""
Swap execution state machine.

A swap walks the tick sequence from the current price towards the caller's
limit. Each pass of the machine goes through:

  - ACTIVE:        move price along the constant-liquidity curve up to the
                   next initialized tick (or until the amount runs out)
  - ORDER_FILL:    when the step lands on that tick, take the limit orders
                   resting there
  - TICK_BOUNDARY: cross the tick, applying its liquidity_net and re-basing
                   its fee-growth-outside snapshots
  - DONE:          the amount is exhausted or the limit price is reached

The same machine produces pure quotes (``compute_swap``) and the state
change applied by ``execute_swap``; only the latter writes fees, order
cohorts and tick crossings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional

from ..constants import MAX_SQRT_PRICE, MIN_SQRT_PRICE, Q64_RESOLUTION
from ..exceptions import (
    AmountExceedsMaxError,
    InvalidSqrtPriceLimitError,
    SlippageExceededError,
    ZeroTradableAmountError,
)
from .fees import accrue_swap_fee, split_order_fill_fee
from .fixed_point import check_u64, checked_add, wrapping_add_u128
from .limit_orders import LimitOrderFill, fill_limit_orders
from .state import Pool
from .tick_math import sqrt_price_to_tick_index, tick_index_to_sqrt_price
from .ticks import (
    Tick,
    TickArray,
    TickArraySequence,
    copy_tick_array,
    cross_tick,
    fill_tick_orders,
    get_next_liquidity,
)
from .token_math import (
    TransferFee,
    try_apply_swap_fee,
    try_apply_transfer_fee,
    try_get_amount_delta_a,
    try_get_amount_delta_b,
    try_get_max_amount_with_slippage_tolerance,
    try_get_min_amount_with_slippage_tolerance,
    try_get_next_sqrt_price,
    try_reverse_apply_swap_fee,
    try_reverse_apply_transfer_fee,
)

logger = logging.getLogger(__name__)


class SwapPhase(str, Enum):
    ACTIVE = "active"
    TICK_BOUNDARY = "tick_boundary"
    ORDER_FILL = "order_fill"
    DONE = "done"


@dataclass(frozen=True)
class SwapStepQuote:
    amount_in: int
    amount_out: int
    next_sqrt_price: int
    fee_amount: int


@dataclass
class SwapResult:
    token_a: int
    token_b: int
    fee_amount: int
    next_sqrt_price: int
    next_tick_index: int
    next_liquidity: int
    orders_filled: int = 0
    ticks_crossed: int = 0


@dataclass(frozen=True)
class ExactInSwapQuote:
    token_in: int
    token_est_out: int
    token_min_out: int
    trade_fee: int
    next_sqrt_price: int


@dataclass(frozen=True)
class ExactOutSwapQuote:
    token_out: int
    token_est_in: int
    token_max_in: int
    trade_fee: int
    next_sqrt_price: int


@dataclass(frozen=True)
class TwoHopExactInSwapQuote:
    token_in: int
    token_est_mid: int
    token_est_out: int
    token_min_out: int
    trade_fee_one: int
    trade_fee_two: int
    next_sqrt_price_one: int
    next_sqrt_price_two: int


@dataclass(frozen=True)
class TwoHopExactOutSwapQuote:
    token_out: int
    token_est_mid: int
    token_est_in: int
    token_max_in: int
    trade_fee_one: int
    trade_fee_two: int
    next_sqrt_price_one: int
    next_sqrt_price_two: int


@dataclass
class SwapExecution:
    pool: Pool
    tick_arrays: List[TickArray]
    result: SwapResult


# ---------------------------------------------------------------------------
# Single step
# ---------------------------------------------------------------------------

def _amount_fixed_delta(current: int, target: int, liquidity: int, a_to_b: bool, specified_input: bool) -> int:
    if a_to_b == specified_input:
        return try_get_amount_delta_a(current, target, liquidity, specified_input)
    return try_get_amount_delta_b(current, target, liquidity, specified_input)


def _amount_unfixed_delta(current: int, target: int, liquidity: int, a_to_b: bool, specified_input: bool) -> int:
    if a_to_b == specified_input:
        return try_get_amount_delta_b(current, target, liquidity, not specified_input)
    return try_get_amount_delta_a(current, target, liquidity, not specified_input)


def compute_swap_step(
    amount_remaining: int,
    fee_rate: int,
    current_liquidity: int,
    current_sqrt_price: int,
    target_sqrt_price: int,
    a_to_b: bool,
    specified_input: bool,
) -> SwapStepQuote:
    """
    Move price from ``current_sqrt_price`` towards ``target_sqrt_price``.

    For exact input the fee comes off the remaining amount first and the
    rest drives the price; the step stops at the target or where the amount
    runs out, whichever is closer.
    """
    try:
        initial_fixed_delta: Optional[int] = _amount_fixed_delta(
            current_sqrt_price, target_sqrt_price, current_liquidity, a_to_b, specified_input
        )
    except AmountExceedsMaxError:
        initial_fixed_delta = None

    amount_calculated = try_apply_swap_fee(amount_remaining, fee_rate) if specified_input else amount_remaining

    if initial_fixed_delta is not None and initial_fixed_delta <= amount_calculated:
        next_sqrt_price = target_sqrt_price
    else:
        next_sqrt_price = try_get_next_sqrt_price(
            current_sqrt_price, current_liquidity, amount_calculated, a_to_b, specified_input
        )

    is_max_swap = next_sqrt_price == target_sqrt_price
    amount_unfixed = _amount_unfixed_delta(
        current_sqrt_price, next_sqrt_price, current_liquidity, a_to_b, specified_input
    )
    if not is_max_swap or initial_fixed_delta is None:
        amount_fixed = _amount_fixed_delta(
            current_sqrt_price, next_sqrt_price, current_liquidity, a_to_b, specified_input
        )
    else:
        amount_fixed = initial_fixed_delta

    if specified_input:
        amount_in, amount_out = amount_fixed, amount_unfixed
    else:
        amount_in, amount_out = amount_unfixed, min(amount_fixed, amount_remaining)

    if specified_input and not is_max_swap:
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = try_reverse_apply_swap_fee(amount_in, fee_rate) - amount_in

    return SwapStepQuote(
        amount_in=amount_in,
        amount_out=amount_out,
        next_sqrt_price=next_sqrt_price,
        fee_amount=fee_amount,
    )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

def _resolve_sqrt_price_limit(sqrt_price_limit: int, current_sqrt_price: int, a_to_b: bool) -> int:
    if sqrt_price_limit == 0:
        sqrt_price_limit = MIN_SQRT_PRICE if a_to_b else MAX_SQRT_PRICE
    if not MIN_SQRT_PRICE <= sqrt_price_limit <= MAX_SQRT_PRICE:
        raise InvalidSqrtPriceLimitError(f"Sqrt price limit {sqrt_price_limit} is out of bounds")
    if (a_to_b and sqrt_price_limit >= current_sqrt_price) or (not a_to_b and sqrt_price_limit <= current_sqrt_price):
        raise InvalidSqrtPriceLimitError(
            f"Sqrt price limit {sqrt_price_limit} is on the wrong side of the pool price {current_sqrt_price}"
        )
    return sqrt_price_limit


class _SwapMachine:
    """
    One swap run. With ``execute`` set the machine also writes fee growth,
    protocol and order fees, order cohorts and tick crossings into ``pool``
    and the ticks of ``tick_sequence``; callers pass copies.
    """

    def __init__(
        self,
        pool: Pool,
        tick_sequence: TickArraySequence,
        amount: int,
        sqrt_price_limit: int,
        a_to_b: bool,
        specified_input: bool,
        execute: bool = False,
    ):
        self.sqrt_price_limit = _resolve_sqrt_price_limit(sqrt_price_limit, pool.sqrt_price, a_to_b)
        if amount == 0:
            raise ZeroTradableAmountError("Swap amount must be non-zero")
        check_u64(amount, "swap amount")

        self.pool = pool
        self.tick_sequence = tick_sequence
        self.amount = amount
        self.a_to_b = a_to_b
        self.specified_input = specified_input
        self.execute = execute

        self.amount_remaining = amount
        self.amount_calculated = 0
        self.fee_amount = 0
        self.orders_filled = 0
        self.ticks_crossed = 0
        self.sqrt_price = pool.sqrt_price
        self.tick_current_index = pool.tick_current_index
        self.liquidity = pool.liquidity
        self.phase = SwapPhase.ACTIVE

    # -- accounting -----------------------------------------------------

    def _consume(self, amount_in: int, amount_out: int, fee_amount: int) -> None:
        self.fee_amount = checked_add(self.fee_amount, fee_amount, "fee_amount")
        if self.specified_input:
            self.amount_remaining = check_u64(self.amount_remaining - amount_in - fee_amount, "amount_remaining")
            self.amount_calculated = checked_add(self.amount_calculated, amount_out, "amount_calculated")
        else:
            self.amount_remaining = check_u64(self.amount_remaining - amount_out, "amount_remaining")
            self.amount_calculated = checked_add(self.amount_calculated, amount_in + fee_amount, "amount_calculated")

    def _accrue_step_fee(self, fee_amount: int) -> None:
        pool = self.pool
        if self.a_to_b:
            pool.fee_growth_global_a, pool.protocol_fee_owed_a = accrue_swap_fee(
                fee_amount, pool.protocol_fee_rate, self.liquidity,
                pool.fee_growth_global_a, pool.protocol_fee_owed_a,
            )
        else:
            pool.fee_growth_global_b, pool.protocol_fee_owed_b = accrue_swap_fee(
                fee_amount, pool.protocol_fee_rate, self.liquidity,
                pool.fee_growth_global_b, pool.protocol_fee_owed_b,
            )

    def _accrue_order_fill(self, tick: Tick, fill: LimitOrderFill) -> None:
        pool = self.pool
        protocol_fee, clp_fee, olp_fee = split_order_fill_fee(
            fill.fee_amount, pool.order_protocol_fee_rate, pool.clp_reward_rate
        )
        if clp_fee and self.liquidity > 0:
            clp_growth = (clp_fee << Q64_RESOLUTION) // self.liquidity
        else:
            olp_fee += clp_fee
            clp_growth = 0

        if self.a_to_b:
            pool.protocol_fee_owed_a = checked_add(pool.protocol_fee_owed_a, protocol_fee, "protocol_fee_owed_a")
            pool.fee_growth_global_a = wrapping_add_u128(pool.fee_growth_global_a, clp_growth)
            pool.olp_fee_owed_a = checked_add(pool.olp_fee_owed_a, olp_fee, "olp_fee_owed_a")
            pool.orders_filled_amount_b = checked_add(
                pool.orders_filled_amount_b, fill.amount_out, "orders_filled_amount_b"
            )
        else:
            pool.protocol_fee_owed_b = checked_add(pool.protocol_fee_owed_b, protocol_fee, "protocol_fee_owed_b")
            pool.fee_growth_global_b = wrapping_add_u128(pool.fee_growth_global_b, clp_growth)
            pool.olp_fee_owed_b = checked_add(pool.olp_fee_owed_b, olp_fee, "olp_fee_owed_b")
            pool.orders_filled_amount_a = checked_add(
                pool.orders_filled_amount_a, fill.amount_out, "orders_filled_amount_a"
            )
        # resting orders have the opposite direction to the swap
        fill_tick_orders(tick, fill.amount_out, not self.a_to_b)

    # -- phases ---------------------------------------------------------

    def run(self) -> SwapResult:
        while self.phase is not SwapPhase.DONE:
            if self.amount_remaining == 0 or self.sqrt_price == self.sqrt_price_limit:
                self.phase = SwapPhase.DONE
                break
            self._step()
        return self._result()

    def _step(self) -> None:
        if self.a_to_b:
            next_tick, next_tick_index = self.tick_sequence.prev_initialized_tick(self.tick_current_index)
        else:
            next_tick, next_tick_index = self.tick_sequence.next_initialized_tick(self.tick_current_index)
        next_tick_sqrt_price = tick_index_to_sqrt_price(next_tick_index)
        if self.a_to_b:
            target_sqrt_price = max(next_tick_sqrt_price, self.sqrt_price_limit)
        else:
            target_sqrt_price = min(next_tick_sqrt_price, self.sqrt_price_limit)

        step = compute_swap_step(
            self.amount_remaining,
            self.pool.fee_rate,
            self.liquidity,
            self.sqrt_price,
            target_sqrt_price,
            self.a_to_b,
            self.specified_input,
        )
        self._consume(step.amount_in, step.amount_out, step.fee_amount)
        if self.execute:
            self._accrue_step_fee(step.fee_amount)
        logger.debug(
            "Swap step %s -> %s: in=%d out=%d fee=%d",
            self.sqrt_price, step.next_sqrt_price, step.amount_in, step.amount_out, step.fee_amount,
        )

        if step.next_sqrt_price == next_tick_sqrt_price:
            self.sqrt_price = step.next_sqrt_price
            crossed = self._fill_orders(next_tick, next_tick_sqrt_price)
            if crossed:
                self._cross(next_tick, next_tick_index)
            else:
                # orders left on the tick, price parks on it without crossing
                self.tick_current_index = next_tick_index if self.a_to_b else next_tick_index - 1
                self.phase = SwapPhase.DONE
                return
        elif step.next_sqrt_price != self.sqrt_price:
            self.sqrt_price = step.next_sqrt_price
            self.tick_current_index = sqrt_price_to_tick_index(step.next_sqrt_price)
        self.phase = SwapPhase.ACTIVE

    def _fill_orders(self, tick: Optional[Tick], sqrt_price: int) -> bool:
        """Take the orders on ``tick``; return True when none are left resting."""
        if tick is None or tick.resting_orders_input == 0:
            return True
        self.phase = SwapPhase.ORDER_FILL
        available = tick.resting_orders_input
        fill = fill_limit_orders(
            tick, sqrt_price, self.a_to_b, self.specified_input, self.amount_remaining, self.pool.fee_rate
        )
        self._consume(fill.amount_in, fill.amount_out, fill.fee_amount)
        self.orders_filled = checked_add(self.orders_filled, fill.amount_out, "orders_filled")
        if self.execute:
            self._accrue_order_fill(tick, fill)
        logger.debug(
            "Filled %d of %d resting order input at sqrt price %s (in=%d fee=%d)",
            fill.amount_out, available, sqrt_price, fill.amount_in, fill.fee_amount,
        )
        return fill.amount_out >= available

    def _cross(self, tick: Optional[Tick], tick_index: int) -> None:
        self.phase = SwapPhase.TICK_BOUNDARY
        if self.execute and tick is not None and tick.initialized:
            cross_tick(tick, self.pool.fee_growth_global_a, self.pool.fee_growth_global_b)
        self.liquidity = get_next_liquidity(self.liquidity, tick, self.a_to_b)
        self.tick_current_index = tick_index - 1 if self.a_to_b else tick_index
        if tick is not None:
            self.ticks_crossed += 1
        logger.debug("Crossed tick %d, liquidity now %d", tick_index, self.liquidity)

    def _result(self) -> SwapResult:
        swapped = self.amount - self.amount_remaining
        if self.a_to_b == self.specified_input:
            token_a, token_b = swapped, self.amount_calculated
        else:
            token_a, token_b = self.amount_calculated, swapped
        return SwapResult(
            token_a=token_a,
            token_b=token_b,
            fee_amount=self.fee_amount,
            next_sqrt_price=self.sqrt_price,
            next_tick_index=self.tick_current_index,
            next_liquidity=self.liquidity,
            orders_filled=self.orders_filled,
            ticks_crossed=self.ticks_crossed,
        )


def compute_swap(
    token_amount: int,
    sqrt_price_limit: int,
    pool: Pool,
    tick_sequence: TickArraySequence,
    a_to_b: bool,
    specified_input: bool,
) -> SwapResult:
    """
    Token amounts of a swap against a snapshot, without touching it.

    ``sqrt_price_limit`` of 0 means no limit. Slippage and transfer fees are
    left to the quote wrappers.
    """
    machine = _SwapMachine(pool, tick_sequence, token_amount, sqrt_price_limit, a_to_b, specified_input)
    return machine.run()


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def _sequence(pool: Pool, tick_arrays: Iterable[Optional[TickArray]]) -> TickArraySequence:
    return TickArraySequence(tick_arrays, pool.tick_spacing)


def swap_quote_by_input_token(
    token_in: int,
    specified_token_a: bool,
    slippage_tolerance_bps: int,
    pool: Pool,
    tick_arrays: Iterable[Optional[TickArray]],
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> ExactInSwapQuote:
    """Quote selling exactly ``token_in`` of A (``specified_token_a``) or B."""
    transfer_fee_in, transfer_fee_out = (
        (transfer_fee_a, transfer_fee_b) if specified_token_a else (transfer_fee_b, transfer_fee_a)
    )
    token_in_after_fee = try_apply_transfer_fee(token_in, transfer_fee_in)
    result = compute_swap(token_in_after_fee, 0, pool, _sequence(pool, tick_arrays), specified_token_a, True)
    if specified_token_a:
        token_in_after_fees, token_est_out_before_fee = result.token_a, result.token_b
    else:
        token_in_after_fees, token_est_out_before_fee = result.token_b, result.token_a

    token_est_out = try_apply_transfer_fee(token_est_out_before_fee, transfer_fee_out)
    return ExactInSwapQuote(
        token_in=try_reverse_apply_transfer_fee(token_in_after_fees, transfer_fee_in),
        token_est_out=token_est_out,
        token_min_out=try_get_min_amount_with_slippage_tolerance(token_est_out, slippage_tolerance_bps),
        trade_fee=result.fee_amount,
        next_sqrt_price=result.next_sqrt_price,
    )


def swap_quote_by_output_token(
    token_out: int,
    specified_token_a: bool,
    slippage_tolerance_bps: int,
    pool: Pool,
    tick_arrays: Iterable[Optional[TickArray]],
    transfer_fee_a: Optional[TransferFee] = None,
    transfer_fee_b: Optional[TransferFee] = None,
) -> ExactOutSwapQuote:
    """Quote buying exactly ``token_out`` of A (``specified_token_a``) or B."""
    transfer_fee_in, transfer_fee_out = (
        (transfer_fee_b, transfer_fee_a) if specified_token_a else (transfer_fee_a, transfer_fee_b)
    )
    token_out_before_fee = try_reverse_apply_transfer_fee(token_out, transfer_fee_out)
    result = compute_swap(
        token_out_before_fee, 0, pool, _sequence(pool, tick_arrays), not specified_token_a, False
    )
    if specified_token_a:
        token_out_before_fee, token_est_in_after_fee = result.token_a, result.token_b
    else:
        token_out_before_fee, token_est_in_after_fee = result.token_b, result.token_a

    token_est_in = try_reverse_apply_transfer_fee(token_est_in_after_fee, transfer_fee_in)
    return ExactOutSwapQuote(
        token_out=try_apply_transfer_fee(token_out_before_fee, transfer_fee_out),
        token_est_in=token_est_in,
        token_max_in=try_get_max_amount_with_slippage_tolerance(token_est_in, slippage_tolerance_bps),
        trade_fee=result.fee_amount,
        next_sqrt_price=result.next_sqrt_price,
    )


def two_hop_swap_quote_by_input_token(
    token_in: int,
    a_to_b_one: bool,
    a_to_b_two: bool,
    slippage_tolerance_bps: int,
    pool_one: Pool,
    pool_two: Pool,
    tick_arrays_one: Iterable[Optional[TickArray]],
    tick_arrays_two: Iterable[Optional[TickArray]],
    transfer_fee_in: Optional[TransferFee] = None,
    transfer_fee_mid: Optional[TransferFee] = None,
    transfer_fee_out: Optional[TransferFee] = None,
) -> TwoHopExactInSwapQuote:
    """
    Exact-input route through two pools.

    The hops share nothing but the intermediate amount: the first hop's
    estimated output (net of the intermediate token's transfer fee) is the
    second hop's input. Slippage applies to the final output only.
    """
    fees_one = (transfer_fee_in, transfer_fee_mid) if a_to_b_one else (transfer_fee_mid, transfer_fee_in)
    quote_one = swap_quote_by_input_token(token_in, a_to_b_one, 0, pool_one, tick_arrays_one, *fees_one)
    fees_two = (None, transfer_fee_out) if a_to_b_two else (transfer_fee_out, None)
    quote_two = swap_quote_by_input_token(
        quote_one.token_est_out, a_to_b_two, 0, pool_two, tick_arrays_two, *fees_two
    )
    return TwoHopExactInSwapQuote(
        token_in=quote_one.token_in,
        token_est_mid=quote_one.token_est_out,
        token_est_out=quote_two.token_est_out,
        token_min_out=try_get_min_amount_with_slippage_tolerance(quote_two.token_est_out, slippage_tolerance_bps),
        trade_fee_one=quote_one.trade_fee,
        trade_fee_two=quote_two.trade_fee,
        next_sqrt_price_one=quote_one.next_sqrt_price,
        next_sqrt_price_two=quote_two.next_sqrt_price,
    )


def two_hop_swap_quote_by_output_token(
    token_out: int,
    a_to_b_one: bool,
    a_to_b_two: bool,
    slippage_tolerance_bps: int,
    pool_one: Pool,
    pool_two: Pool,
    tick_arrays_one: Iterable[Optional[TickArray]],
    tick_arrays_two: Iterable[Optional[TickArray]],
    transfer_fee_in: Optional[TransferFee] = None,
    transfer_fee_mid: Optional[TransferFee] = None,
    transfer_fee_out: Optional[TransferFee] = None,
) -> TwoHopExactOutSwapQuote:
    """Exact-output route through two pools, solved from the last hop backwards."""
    # hop two: output is A when it swaps B->A
    fees_two = (transfer_fee_out, None) if not a_to_b_two else (None, transfer_fee_out)
    quote_two = swap_quote_by_output_token(token_out, not a_to_b_two, 0, pool_two, tick_arrays_two, *fees_two)
    fees_one = (transfer_fee_mid, transfer_fee_in) if not a_to_b_one else (transfer_fee_in, transfer_fee_mid)
    quote_one = swap_quote_by_output_token(
        quote_two.token_est_in, not a_to_b_one, 0, pool_one, tick_arrays_one, *fees_one
    )
    return TwoHopExactOutSwapQuote(
        token_out=quote_two.token_out,
        token_est_mid=quote_two.token_est_in,
        token_est_in=quote_one.token_est_in,
        token_max_in=try_get_max_amount_with_slippage_tolerance(quote_one.token_est_in, slippage_tolerance_bps),
        trade_fee_one=quote_one.trade_fee,
        trade_fee_two=quote_two.trade_fee,
        next_sqrt_price_one=quote_one.next_sqrt_price,
        next_sqrt_price_two=quote_two.next_sqrt_price,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def execute_swap(
    pool: Pool,
    tick_arrays: Iterable[Optional[TickArray]],
    amount: int,
    other_amount_threshold: int,
    sqrt_price_limit: int,
    amount_specified_is_input: bool,
    a_to_b: bool,
) -> SwapExecution:
    """
    Run a swap and return the resulting pool and tick arrays.

    ``other_amount_threshold`` bounds the unspecified side: the minimum
    output for exact input, the maximum input for exact output. The inputs
    are copied, never modified.
    """
    new_pool = replace(pool)
    new_arrays = [copy_tick_array(array) for array in tick_arrays if array is not None]
    sequence = TickArraySequence(new_arrays, pool.tick_spacing)

    machine = _SwapMachine(
        new_pool, sequence, amount, sqrt_price_limit, a_to_b, amount_specified_is_input, execute=True
    )
    result = machine.run()

    amount_in, amount_out = (result.token_a, result.token_b) if a_to_b else (result.token_b, result.token_a)
    if amount_specified_is_input and amount_out < other_amount_threshold:
        raise SlippageExceededError(
            f"Swap output {amount_out} is below the minimum {other_amount_threshold}"
        )
    if not amount_specified_is_input and amount_in > other_amount_threshold:
        raise SlippageExceededError(
            f"Swap input {amount_in} is above the maximum {other_amount_threshold}"
        )

    new_pool.sqrt_price = result.next_sqrt_price
    new_pool.tick_current_index = result.next_tick_index
    new_pool.liquidity = result.next_liquidity
    return SwapExecution(pool=new_pool, tick_arrays=sequence.tick_arrays, result=result)
