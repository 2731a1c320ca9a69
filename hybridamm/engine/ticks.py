"""
Tick / TickArray model.

A tick carries two kinds of state: concentrated liquidity (net/gross
liquidity and the fee-growth-outside snapshots) and the aggregate counters of
the limit orders resting on it. Orders reference their tick directly, so a
tick stays initialized while either kind is non-zero.

Limit-order counters are organised in cohorts keyed by the tick age:

  - open:      orders with ``age == tick.age``, nothing filled yet
  - partial:   orders with ``age == tick.age - 1``, being filled pro-rata
  - fulfilled: older orders, input fully converted, per direction
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Tuple

from ..constants import I128_MAX, I128_MIN, TICK_ARRAY_SIZE
from ..exceptions import (
    ArithmeticOverflowError,
    InsufficientTickArraysError,
    InvalidTickArraySequenceError,
    InvalidTickIndexError,
)
from .fixed_point import check_i128, check_u128, check_u64, wrapping_sub_u128
from .tick_math import (
    get_initializable_tick_index,
    get_next_initializable_tick_index,
    get_prev_initializable_tick_index,
    get_tick_index_in_array,
    is_tick_initializable,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tick
# ---------------------------------------------------------------------------

@dataclass
class Tick:
    """Liquidity, fee and limit-order state at a single tick boundary."""
    initialized: bool = False
    liquidity_net: int = 0
    liquidity_gross: int = 0
    fee_growth_outside_a: int = 0
    fee_growth_outside_b: int = 0
    age: int = 0
    open_orders_input: int = 0
    part_filled_orders_input: int = 0
    part_filled_orders_remaining_input: int = 0
    fulfilled_a_to_b_orders_input: int = 0
    fulfilled_b_to_a_orders_input: int = 0

    @property
    def has_limit_orders(self) -> bool:
        return bool(
            self.open_orders_input
            or self.part_filled_orders_input
            or self.part_filled_orders_remaining_input
            or self.fulfilled_a_to_b_orders_input
            or self.fulfilled_b_to_a_orders_input
        )

    @property
    def resting_orders_input(self) -> int:
        """Order input still waiting to be filled (open + partial remainder)."""
        return self.open_orders_input + self.part_filled_orders_remaining_input

    @property
    def can_uninitialize(self) -> bool:
        return self.liquidity_gross == 0 and not self.has_limit_orders


def sync_initialized(tick: Tick) -> Tick:
    """
    Recompute the initialized flag in place.

    A tick is uninitialized only when no liquidity and no order bookkeeping
    reference it; the fee snapshots are cleared with it, the age is kept.
    """
    if tick.can_uninitialize:
        if tick.initialized:
            tick.initialized = False
            tick.liquidity_net = 0
            tick.fee_growth_outside_a = 0
            tick.fee_growth_outside_b = 0
    else:
        tick.initialized = True
    return tick


def initialize_fee_growth_outside(
    tick: Tick,
    tick_index: int,
    tick_current_index: int,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
) -> None:
    """Snapshot global growth on first use when the price sits at or above the tick."""
    if tick.initialized:
        return
    if tick_current_index >= tick_index:
        tick.fee_growth_outside_a = fee_growth_global_a
        tick.fee_growth_outside_b = fee_growth_global_b
    else:
        tick.fee_growth_outside_a = 0
        tick.fee_growth_outside_b = 0


def update_tick(
    tick: Tick,
    tick_index: int,
    tick_current_index: int,
    liquidity_delta: int,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
    is_upper_boundary: bool,
) -> Tick:
    """
    Apply a position's liquidity change to one of its boundary ticks.

    Returns a new Tick; the input is left untouched.
    """
    updated = replace(tick)
    liquidity_gross = updated.liquidity_gross + liquidity_delta
    if liquidity_gross < 0:
        raise ArithmeticOverflowError(
            f"Liquidity gross underflow at tick {tick_index}: {updated.liquidity_gross} + {liquidity_delta}"
        )
    check_u128(liquidity_gross, "liquidity_gross")

    if liquidity_delta > 0:
        initialize_fee_growth_outside(
            updated, tick_index, tick_current_index, fee_growth_global_a, fee_growth_global_b
        )

    signed_delta = -liquidity_delta if is_upper_boundary else liquidity_delta
    updated.liquidity_net = check_i128(updated.liquidity_net + signed_delta, "liquidity_net")
    updated.liquidity_gross = liquidity_gross
    return sync_initialized(updated)


def cross_tick(tick: Tick, fee_growth_global_a: int, fee_growth_global_b: int) -> None:
    """Re-base the fee-growth-outside snapshots in place as price crosses the tick."""
    tick.fee_growth_outside_a = wrapping_sub_u128(fee_growth_global_a, tick.fee_growth_outside_a)
    tick.fee_growth_outside_b = wrapping_sub_u128(fee_growth_global_b, tick.fee_growth_outside_b)


def get_next_liquidity(current_liquidity: int, tick: Optional[Tick], a_to_b: bool) -> int:
    """Active liquidity after crossing ``tick`` in the swap direction."""
    if tick is None or not tick.initialized:
        return current_liquidity
    delta = -tick.liquidity_net if a_to_b else tick.liquidity_net
    next_liquidity = current_liquidity + delta
    if next_liquidity < 0:
        raise ArithmeticOverflowError(
            f"Active liquidity underflow: {current_liquidity} + {delta}"
        )
    return check_u128(next_liquidity, "liquidity")


# -- Limit-order cohorts -------------------------------------------------

def add_open_orders(tick: Tick, amount: int) -> None:
    tick.open_orders_input = check_u64(tick.open_orders_input + amount, "open_orders_input")


def fill_tick_orders(tick: Tick, amount: int, a_to_b_orders: bool) -> int:
    """
    Consume ``amount`` of resting order input in place, oldest cohort first.

    Returns the amount actually consumed (never more than the resting input).
    """
    filled = 0
    while filled < amount:
        if tick.part_filled_orders_input == 0:
            if tick.open_orders_input == 0:
                break
            # open cohort starts filling
            tick.part_filled_orders_input = tick.open_orders_input
            tick.part_filled_orders_remaining_input = tick.open_orders_input
            tick.open_orders_input = 0
            tick.age += 1

        take = min(amount - filled, tick.part_filled_orders_remaining_input)
        tick.part_filled_orders_remaining_input -= take
        filled += take

        if tick.part_filled_orders_remaining_input == 0:
            _settle_partial_cohort(tick, a_to_b_orders)
    return filled


def _settle_partial_cohort(tick: Tick, a_to_b_orders: bool) -> None:
    settled = tick.part_filled_orders_input
    if a_to_b_orders:
        tick.fulfilled_a_to_b_orders_input = check_u64(
            tick.fulfilled_a_to_b_orders_input + tick.part_filled_orders_input
        )
    else:
        tick.fulfilled_b_to_a_orders_input = check_u64(
            tick.fulfilled_b_to_a_orders_input + tick.part_filled_orders_input
        )
    tick.part_filled_orders_input = 0
    tick.age += 1
    logger.debug("Order cohort of %d input fulfilled (a_to_b=%s), tick age now %d", settled, a_to_b_orders, tick.age)
    # orders that were open are now one age behind, i.e. partial with nothing filled
    if tick.open_orders_input:
        tick.part_filled_orders_input = tick.open_orders_input
        tick.part_filled_orders_remaining_input = tick.open_orders_input
        tick.open_orders_input = 0


# ---------------------------------------------------------------------------
# TickArray
# ---------------------------------------------------------------------------

def _empty_ticks() -> List[Tick]:
    return [Tick() for _ in range(TICK_ARRAY_SIZE)]


@dataclass
class TickArray:
    """88 consecutive grid ticks starting at ``start_tick_index``."""
    start_tick_index: int
    ticks: List[Tick] = field(default_factory=_empty_ticks)
    pool: str = ""

    def __post_init__(self) -> None:
        if len(self.ticks) != TICK_ARRAY_SIZE:
            raise InvalidTickArraySequenceError(
                f"Tick array must hold {TICK_ARRAY_SIZE} ticks, got {len(self.ticks)}"
            )

    def end_tick_index(self, tick_spacing: int) -> int:
        """First tick index past this array."""
        return self.start_tick_index + TICK_ARRAY_SIZE * tick_spacing

    def contains(self, tick_index: int, tick_spacing: int) -> bool:
        return self.start_tick_index <= tick_index < self.end_tick_index(tick_spacing)

    def get_tick(self, tick_index: int, tick_spacing: int) -> Tick:
        if not is_tick_initializable(tick_index, tick_spacing):
            raise InvalidTickIndexError(
                f"Tick {tick_index} is not a multiple of tick spacing {tick_spacing}"
            )
        return self.ticks[get_tick_index_in_array(tick_index, self.start_tick_index, tick_spacing)]

    def set_tick(self, tick_index: int, tick_spacing: int, tick: Tick) -> None:
        if not is_tick_initializable(tick_index, tick_spacing):
            raise InvalidTickIndexError(
                f"Tick {tick_index} is not a multiple of tick spacing {tick_spacing}"
            )
        self.ticks[get_tick_index_in_array(tick_index, self.start_tick_index, tick_spacing)] = tick


def copy_tick_array(tick_array: TickArray) -> TickArray:
    return TickArray(
        start_tick_index=tick_array.start_tick_index,
        ticks=[replace(t) for t in tick_array.ticks],
        pool=tick_array.pool,
    )


# ---------------------------------------------------------------------------
# TickArraySequence
# ---------------------------------------------------------------------------

class TickArraySequence:
    """
    Evenly spaced tick arrays viewed as one contiguous window of ticks.

    The sequence reads and writes the Tick objects of the arrays it was given;
    callers that must not see mutations pass copies.
    """

    def __init__(self, tick_arrays: Iterable[Optional[TickArray]], tick_spacing: int):
        arrays = sorted((a for a in tick_arrays if a is not None), key=lambda a: a.start_tick_index)
        if not arrays:
            raise InvalidTickArraySequenceError("Tick array sequence is empty")
        ticks_in_array = TICK_ARRAY_SIZE * tick_spacing
        for prev, nxt in zip(arrays, arrays[1:]):
            if nxt.start_tick_index - prev.start_tick_index != ticks_in_array:
                raise InvalidTickArraySequenceError(
                    f"Tick arrays are not evenly spaced: {prev.start_tick_index} -> {nxt.start_tick_index}"
                )
        self.tick_arrays: List[TickArray] = arrays
        self.tick_spacing = tick_spacing

    @property
    def start_index(self) -> int:
        return self.tick_arrays[0].start_tick_index

    @property
    def end_index(self) -> int:
        """Last tick index covered by the window."""
        return self.tick_arrays[-1].end_tick_index(self.tick_spacing) - 1

    def tick(self, tick_index: int) -> Tick:
        if not self.start_index <= tick_index <= self.end_index:
            raise InsufficientTickArraysError(
                f"Tick {tick_index} is outside the loaded window [{self.start_index}, {self.end_index}]"
            )
        if not is_tick_initializable(tick_index, self.tick_spacing):
            raise InvalidTickIndexError(
                f"Tick {tick_index} is not a multiple of tick spacing {self.tick_spacing}"
            )
        offset = (tick_index - self.start_index) // (TICK_ARRAY_SIZE * self.tick_spacing)
        return self.tick_arrays[offset].get_tick(tick_index, self.tick_spacing)

    def next_initialized_tick(self, tick_index: int) -> Tuple[Optional[Tick], int]:
        """
        First initialized tick strictly above ``tick_index``.

        Without one inside the window, returns ``(None, end_index)`` so the
        swap can still move up to the edge; at the edge itself more arrays
        are needed.
        """
        if tick_index >= self.end_index:
            raise InsufficientTickArraysError(
                f"No tick arrays loaded above tick {tick_index}"
            )
        next_index = tick_index
        while True:
            next_index = get_next_initializable_tick_index(next_index, self.tick_spacing)
            if next_index > self.end_index:
                return None, self.end_index
            tick = self.tick(next_index)
            if tick.initialized:
                return tick, next_index

    def prev_initialized_tick(self, tick_index: int) -> Tuple[Optional[Tick], int]:
        """
        Last initialized tick at or below ``tick_index``.

        Without one inside the window, returns ``(None, start_index)``.
        """
        if tick_index < self.start_index:
            raise InsufficientTickArraysError(
                f"No tick arrays loaded below tick {tick_index}"
            )
        prev_index = get_initializable_tick_index(tick_index, self.tick_spacing, False)
        while prev_index >= self.start_index:
            tick = self.tick(prev_index)
            if tick.initialized:
                return tick, prev_index
            prev_index = get_prev_initializable_tick_index(prev_index, self.tick_spacing)
        return None, self.start_index
