"""
Aggregated order-book view of a pool.

Walks the loaded ticks away from the current price in fixed price steps and
reports, per step, the concentrated liquidity and the resting limit-order
input a taker would meet. The ask side is denominated in token A, the bid
side in token B; ``*_quote`` amounts are what the taker pays for them, swap
fees excluded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Iterable, List, Optional, Tuple

from ..constants import MAX_SQRT_PRICE, MIN_SQRT_PRICE, ORDER_BOOK_MAX_ENTRIES, Q64_RESOLUTION
from ..exceptions import InsufficientTickArraysError, InvalidRangeError
from .state import Pool
from .tick_math import PriceLike, price_to_sqrt_price, sqrt_price_to_price, tick_index_to_sqrt_price
from .ticks import TickArray, TickArraySequence, get_next_liquidity
from .token_math import get_limit_order_output_amount


@dataclass
class OrderBookEntry:
    price: Decimal
    ask_side: bool
    concentrated_amount: int = 0
    concentrated_amount_quote: int = 0
    concentrated_total: int = 0
    concentrated_total_quote: int = 0
    limit_amount: int = 0
    limit_amount_quote: int = 0
    limit_total: int = 0
    limit_total_quote: int = 0


@dataclass
class OrderBook:
    bids: List[OrderBookEntry] = field(default_factory=list)
    asks: List[OrderBookEntry] = field(default_factory=list)


def _amount_deltas(sqrt_price_1: int, sqrt_price_2: int, liquidity: int) -> Tuple[int, int]:
    """Floor token A and B amounts between two prices, without the u64 cap."""
    lower, upper = sorted((sqrt_price_1, sqrt_price_2))
    if liquidity == 0 or lower == upper:
        return 0, 0
    amount_b = (liquidity * (upper - lower)) >> Q64_RESOLUTION
    amount_a = ((liquidity * (upper - lower)) << Q64_RESOLUTION) // (lower * upper)
    return amount_a, amount_b


def _price_bounds(decimals_a: int, decimals_b: int, invert: bool) -> Tuple[Decimal, Decimal]:
    low = sqrt_price_to_price(MIN_SQRT_PRICE, decimals_a, decimals_b)
    high = sqrt_price_to_price(MAX_SQRT_PRICE, decimals_a, decimals_b)
    if invert:
        return 1 / high, 1 / low
    return low, high


def _book_price_to_sqrt_price(price: Decimal, invert: bool, decimals_a: int, decimals_b: int) -> int:
    low, high = _price_bounds(decimals_a, decimals_b, invert)
    if price <= low:
        return MAX_SQRT_PRICE if invert else MIN_SQRT_PRICE
    if price >= high:
        return MIN_SQRT_PRICE if invert else MAX_SQRT_PRICE
    sqrt_price = price_to_sqrt_price(1 / price if invert else price, decimals_a, decimals_b)
    return min(max(sqrt_price, MIN_SQRT_PRICE), MAX_SQRT_PRICE)


def get_order_book_side(
    pool: Pool,
    tick_arrays: Iterable[Optional[TickArray]],
    price_step: PriceLike,
    max_entries: int = ORDER_BOOK_MAX_ENTRIES,
    invert: bool = False,
    decimals_a: int = 0,
    decimals_b: int = 0,
) -> List[OrderBookEntry]:
    """
    One side of the book in steps of ``price_step``.

    A positive step walks up (ask side), a negative one walks down (bid
    side); with ``invert`` the step is in B-per-A terms and the sides swap.
    The walk stops at the price bounds, after ``max_entries`` entries or at
    the edge of the loaded tick arrays.
    """
    step = price_step if isinstance(price_step, Decimal) else Decimal(str(price_step))
    if step == 0:
        raise InvalidRangeError("price_step must be non-zero")
    if not 0 < max_entries <= ORDER_BOOK_MAX_ENTRIES:
        raise InvalidRangeError(f"max_entries must be within [1, {ORDER_BOOK_MAX_ENTRIES}], got {max_entries}")

    sequence = TickArraySequence(tick_arrays, pool.tick_spacing)
    step_abs = abs(step)
    a_to_b = (step < 0) != invert
    min_price, max_price = _price_bounds(decimals_a, decimals_b, invert)

    current_price = sqrt_price_to_price(pool.sqrt_price, decimals_a, decimals_b)
    if invert:
        current_price = 1 / current_price
    rounding = ROUND_FLOOR if step > 0 else ROUND_CEILING
    book_price = (current_price / step_abs).to_integral_value(rounding=rounding) * step_abs

    sqrt_price = pool.sqrt_price
    tick_current_index = pool.tick_current_index
    liquidity = pool.liquidity
    totals = OrderBookEntry(price=current_price, ask_side=not a_to_b)
    entries: List[OrderBookEntry] = []

    while current_price not in (min_price, max_price) and len(entries) < max_entries:
        book_price = min(max(book_price + step, min_price), max_price)
        target_sqrt_price = _book_price_to_sqrt_price(book_price, invert, decimals_a, decimals_b)
        entry = OrderBookEntry(
            price=book_price,
            ask_side=not a_to_b,
            concentrated_total=totals.concentrated_total,
            concentrated_total_quote=totals.concentrated_total_quote,
            limit_total=totals.limit_total,
            limit_total_quote=totals.limit_total_quote,
        )
        entries.append(entry)

        while sqrt_price != target_sqrt_price:
            try:
                if a_to_b:
                    next_tick, next_tick_index = sequence.prev_initialized_tick(tick_current_index)
                else:
                    next_tick, next_tick_index = sequence.next_initialized_tick(tick_current_index)
            except InsufficientTickArraysError:
                return entries
            next_tick_sqrt_price = tick_index_to_sqrt_price(next_tick_index)
            if a_to_b:
                next_sqrt_price = max(target_sqrt_price, next_tick_sqrt_price)
            else:
                next_sqrt_price = min(target_sqrt_price, next_tick_sqrt_price)

            amount_a, amount_b = _amount_deltas(sqrt_price, next_sqrt_price, liquidity)
            amount, amount_quote = (amount_b, amount_a) if a_to_b else (amount_a, amount_b)
            entry.concentrated_amount += amount
            entry.concentrated_amount_quote += amount_quote
            entry.concentrated_total += amount
            entry.concentrated_total_quote += amount_quote
            sqrt_price = next_sqrt_price

            if sqrt_price == next_tick_sqrt_price:
                if next_tick is not None and next_tick.resting_orders_input:
                    swap_in = next_tick.resting_orders_input
                    swap_out = get_limit_order_output_amount(swap_in, not a_to_b, sqrt_price, False)
                    entry.limit_amount += swap_in
                    entry.limit_amount_quote += swap_out
                    entry.limit_total += swap_in
                    entry.limit_total_quote += swap_out
                liquidity = get_next_liquidity(liquidity, next_tick, a_to_b)
                tick_current_index = next_tick_index - 1 if a_to_b else next_tick_index

        totals = entry
        current_price = book_price
    return entries


def get_order_book(
    pool: Pool,
    tick_arrays: Iterable[Optional[TickArray]],
    price_step: PriceLike,
    max_entries: int = ORDER_BOOK_MAX_ENTRIES,
    invert: bool = False,
    decimals_a: int = 0,
    decimals_b: int = 0,
) -> OrderBook:
    step = abs(price_step if isinstance(price_step, Decimal) else Decimal(str(price_step)))
    arrays = [array for array in tick_arrays if array is not None]
    asks = get_order_book_side(pool, arrays, step if not invert else -step, max_entries, invert, decimals_a, decimals_b)
    bids = get_order_book_side(pool, arrays, -step if not invert else step, max_entries, invert, decimals_a, decimals_b)
    return OrderBook(bids=bids, asks=asks)
