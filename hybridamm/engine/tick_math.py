"""
Tick ⇄ sqrt-price conversions.

Prices live on the curve ``price = 1.0001^tick``; the engine stores the
square root of the price in Q64.64 fixed point. The forward conversion is
an exact bit decomposition over precomputed factors, so the same tick always
yields the same sqrt-price, and the inverse is defined as the exact floor of
that forward map (largest tick whose sqrt-price does not exceed the input).
Decimal prices are only used at the edges, for callers that think in
human-readable units.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR, getcontext
from typing import Optional, Tuple, Union

from ..constants import (
    FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD,
    MAX_SQRT_PRICE,
    MAX_TICK_INDEX,
    MIN_SQRT_PRICE,
    MIN_TICK_INDEX,
    Q64,
    TICK_ARRAY_SIZE,
)
from ..exceptions import InvalidTickIndexError, SqrtPriceOutOfBoundsError

# Q64.64 arithmetic requires high precision
getcontext().prec = 78

PriceLike = Union[Decimal, int, float, str]

# sqrt(1.0001^(2^i)) in Q96, applied for positive ticks
_POSITIVE_FACTORS = (
    (0x2, 79236085330515764027303304731),
    (0x4, 79244008939048815603706035061),
    (0x8, 79259858533276714757314932305),
    (0x10, 79291567232598584799939703904),
    (0x20, 79355022692464371645785046466),
    (0x40, 79482085999252804386437311141),
    (0x80, 79736823300114093921829183326),
    (0x100, 80248749790819932309965073892),
    (0x200, 81282483887344747381513967011),
    (0x400, 83390072131320151908154831281),
    (0x800, 87770609709833776024991924138),
    (0x1000, 97234110755111693312479820773),
    (0x2000, 119332217159966728226237229890),
    (0x4000, 179736315981702064433883588727),
    (0x8000, 407748233172238350107850275304),
    (0x10000, 2098478828474011932436660412517),
    (0x20000, 55581415166113811149459800483533),
    (0x40000, 38992368544603139932233054999993551),
)

# 1 / sqrt(1.0001^(2^i)) in Q64, applied for negative ticks
_NEGATIVE_FACTORS = (
    (0x2, 18444899583751176498),
    (0x4, 18443055278223354162),
    (0x8, 18439367220385604838),
    (0x10, 18431993317065449817),
    (0x20, 18417254355718160513),
    (0x40, 18387811781193591352),
    (0x80, 18329067761203520168),
    (0x100, 18212142134806087854),
    (0x200, 17980523815641551639),
    (0x400, 17526086738831147013),
    (0x800, 16651378430235024244),
    (0x1000, 15030750278693429944),
    (0x2000, 12247334978882834399),
    (0x4000, 8131365268884726200),
    (0x8000, 3584323654723342297),
    (0x10000, 696457651847595233),
    (0x20000, 26294789957452057),
    (0x40000, 37481735321082),
)


# ---------------------------------------------------------------------------
# Tick ⇄ sqrt-price
# ---------------------------------------------------------------------------

def is_tick_index_in_bounds(tick_index: int) -> bool:
    return MIN_TICK_INDEX <= tick_index <= MAX_TICK_INDEX


def tick_index_to_sqrt_price(tick_index: int) -> int:
    """Convert a tick index to its Q64.64 sqrt-price."""
    if not is_tick_index_in_bounds(tick_index):
        raise InvalidTickIndexError(
            f"Tick index {tick_index} outside [{MIN_TICK_INDEX}, {MAX_TICK_INDEX}]"
        )
    if tick_index >= 0:
        ratio = 79232123823359799118286999567 if tick_index & 1 else 1 << 96
        for bit, factor in _POSITIVE_FACTORS:
            if tick_index & bit:
                ratio = (ratio * factor) >> 96
        return ratio >> 32

    abs_tick = -tick_index
    ratio = 18445821805675392311 if abs_tick & 1 else Q64
    for bit, factor in _NEGATIVE_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 64
    return ratio


def sqrt_price_to_tick_index(sqrt_price: int) -> int:
    """
    Largest tick whose sqrt-price is <= ``sqrt_price``.

    Binary search over the forward map keeps the inverse exact, so
    ``sqrt_price_to_tick_index(tick_index_to_sqrt_price(t)) == t`` for every
    valid tick.
    """
    if not MIN_SQRT_PRICE <= sqrt_price <= MAX_SQRT_PRICE:
        raise SqrtPriceOutOfBoundsError(
            f"Sqrt price {sqrt_price} outside [{MIN_SQRT_PRICE}, {MAX_SQRT_PRICE}]"
        )
    low, high = MIN_TICK_INDEX, MAX_TICK_INDEX
    while low < high:
        mid = (low + high + 1) // 2
        if tick_index_to_sqrt_price(mid) <= sqrt_price:
            low = mid
        else:
            high = mid - 1
    return low


# ---------------------------------------------------------------------------
# Decimal prices
# ---------------------------------------------------------------------------

def _to_decimal(value: PriceLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def price_to_sqrt_price(price: PriceLike, decimals_a: int, decimals_b: int) -> int:
    """Human-readable price of A in B → Q64.64 sqrt-price (floored)."""
    price_dec = _to_decimal(price)
    if price_dec <= 0:
        raise SqrtPriceOutOfBoundsError(f"Price must be positive, got {price}")
    raw = price_dec / (Decimal(10) ** (decimals_a - decimals_b))
    sqrt_price = int((raw.sqrt() * Q64).to_integral_value(rounding=ROUND_FLOOR))
    if not MIN_SQRT_PRICE <= sqrt_price <= MAX_SQRT_PRICE:
        raise SqrtPriceOutOfBoundsError(f"Price {price} is outside the price curve")
    return sqrt_price


def sqrt_price_to_price(sqrt_price: int, decimals_a: int, decimals_b: int) -> Decimal:
    """Q64.64 sqrt-price → human-readable price of A in B."""
    ratio = Decimal(sqrt_price) / Q64
    return ratio * ratio * (Decimal(10) ** (decimals_a - decimals_b))


def tick_index_to_price(tick_index: int, decimals_a: int, decimals_b: int) -> Decimal:
    return sqrt_price_to_price(tick_index_to_sqrt_price(tick_index), decimals_a, decimals_b)


def price_to_tick_index(price: PriceLike, decimals_a: int, decimals_b: int) -> int:
    return sqrt_price_to_tick_index(price_to_sqrt_price(price, decimals_a, decimals_b))


def invert_tick_index(tick_index: int) -> int:
    return -tick_index


def invert_price(price: PriceLike, decimals_a: int, decimals_b: int) -> Decimal:
    """Price of B in A, snapped to the tick grid like every other conversion."""
    tick_index = price_to_tick_index(price, decimals_a, decimals_b)
    return tick_index_to_price(invert_tick_index(tick_index), decimals_a, decimals_b)


def invert_sqrt_price(sqrt_price: int) -> int:
    tick_index = sqrt_price_to_tick_index(sqrt_price)
    return tick_index_to_sqrt_price(invert_tick_index(tick_index))


# ---------------------------------------------------------------------------
# Tick spacing grid
# ---------------------------------------------------------------------------

def get_initializable_tick_index(
    tick_index: int,
    tick_spacing: int,
    round_up: Optional[bool] = None,
) -> int:
    """
    Snap a tick onto the spacing grid.

    ``round_up=None`` rounds to the nearest multiple (halves go up),
    ``True`` rounds up and ``False`` rounds down.
    """
    remainder = tick_index % tick_spacing
    result = tick_index - remainder
    if round_up is None:
        should_round_up = remainder >= tick_spacing // 2 and remainder > 0
    else:
        should_round_up = round_up and remainder > 0
    return result + tick_spacing if should_round_up else result


def get_prev_initializable_tick_index(tick_index: int, tick_spacing: int) -> int:
    """Closest grid tick strictly below ``tick_index``."""
    remainder = tick_index % tick_spacing
    if remainder == 0:
        return tick_index - tick_spacing
    return tick_index - remainder


def get_next_initializable_tick_index(tick_index: int, tick_spacing: int) -> int:
    """Closest grid tick strictly above ``tick_index``."""
    return tick_index - tick_index % tick_spacing + tick_spacing


def is_tick_initializable(tick_index: int, tick_spacing: int) -> bool:
    return tick_index % tick_spacing == 0


def order_tick_indexes(tick_index_1: int, tick_index_2: int) -> Tuple[int, int]:
    if tick_index_1 < tick_index_2:
        return tick_index_1, tick_index_2
    return tick_index_2, tick_index_1


def get_full_range_tick_indexes(tick_spacing: int) -> Tuple[int, int]:
    lower = -((-MIN_TICK_INDEX) // tick_spacing) * tick_spacing
    upper = (MAX_TICK_INDEX // tick_spacing) * tick_spacing
    return lower, upper


def is_full_range_only(tick_spacing: int) -> bool:
    """Pools this coarse only accept full-range positions."""
    return tick_spacing >= FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD


# ---------------------------------------------------------------------------
# Tick arrays
# ---------------------------------------------------------------------------

def get_tick_array_start_index(tick_index: int, tick_spacing: int) -> int:
    """Start index of the tick array that owns ``tick_index``."""
    ticks_in_array = TICK_ARRAY_SIZE * tick_spacing
    return (tick_index // ticks_in_array) * ticks_in_array


def get_tick_index_in_array(tick_index: int, tick_array_start_index: int, tick_spacing: int) -> int:
    """Offset of ``tick_index`` inside the array starting at ``tick_array_start_index``."""
    end_index = tick_array_start_index + TICK_ARRAY_SIZE * tick_spacing
    if not tick_array_start_index <= tick_index < end_index:
        raise InvalidTickIndexError(
            f"Tick {tick_index} is outside the array starting at {tick_array_start_index}"
        )
    return (tick_index - tick_array_start_index) // tick_spacing


def swap_tick_array_start_indexes(tick_current_index: int, tick_spacing: int, count: int = 5) -> list:
    """
    Start indexes a swap may touch: the current array first, then the
    neighbours alternating up and down.
    """
    ticks_in_array = TICK_ARRAY_SIZE * tick_spacing
    current = get_tick_array_start_index(tick_current_index, tick_spacing)
    starts = [current]
    offset = 1
    while len(starts) < count:
        for candidate in (current + offset * ticks_in_array, current - offset * ticks_in_array):
            if len(starts) < count and _array_in_bounds(candidate, ticks_in_array):
                starts.append(candidate)
        offset += 1
        if offset * ticks_in_array > MAX_TICK_INDEX - MIN_TICK_INDEX + ticks_in_array:
            break
    return starts


def _array_in_bounds(start_index: int, ticks_in_array: int) -> bool:
    return start_index + ticks_in_array > MIN_TICK_INDEX and start_index <= MAX_TICK_INDEX
