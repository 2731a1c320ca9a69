"""
Test suite for the order-book view

Covers:
  - Ask side (token A liquidity above the price)
  - Bid side (token B liquidity below the price)
  - Inverted prices
  - Running totals and limit-order amounts
  - Argument validation
"""

from decimal import Decimal

import pytest

from hybridamm.exceptions import InvalidRangeError
from hybridamm.engine.liquidity import increase_liquidity_quote_a, increase_liquidity_quote_b
from hybridamm.engine.order_book import get_order_book, get_order_book_side
from hybridamm.engine.state import Pool
from hybridamm.engine.tick_math import price_to_sqrt_price
from hybridamm.engine.ticks import TickArray

Q64 = 1 << 64
STEP = Decimal("0.01")


def _tick_arrays(center: int = 0):
    return [TickArray(start_tick_index=center + offset) for offset in (-352, -176, 0, 176, 352)]


def _place_orders(tick):
    tick.open_orders_input = 100_000
    tick.part_filled_orders_remaining_input = 100_000
    tick.initialized = True


def _ask_side_fixture(center: int = 0, sqrt_price: int = Q64):
    pool = Pool(tick_spacing=2, sqrt_price=sqrt_price)
    arrays = _tick_arrays(center)
    quote = increase_liquidity_quote_a(1_000_000, 0, sqrt_price, center + 150, center + 300)
    assert quote.token_est_b == 0

    arrays[2].ticks[75].liquidity_net = quote.liquidity_delta
    arrays[2].ticks[75].initialized = True
    arrays[3].ticks[62].liquidity_net = -quote.liquidity_delta
    arrays[3].ticks[62].initialized = True
    _place_orders(arrays[4].ticks[87])
    return pool, arrays


def _bid_side_fixture():
    pool = Pool(tick_spacing=2, sqrt_price=Q64)
    arrays = _tick_arrays()
    quote = increase_liquidity_quote_b(1_000_000, 0, Q64, -300, -150)
    assert quote.token_est_a == 0

    _place_orders(arrays[0].ticks[0])
    arrays[0].ticks[26].liquidity_net = quote.liquidity_delta
    arrays[0].ticks[26].initialized = True
    arrays[1].ticks[13].liquidity_net = -quote.liquidity_delta
    arrays[1].ticks[13].initialized = True
    return pool, arrays


def _assert_running_totals(entries):
    concentrated_total = 0
    limit_total = 0
    for entry in entries:
        concentrated_total += entry.concentrated_amount
        limit_total += entry.limit_amount
        assert entry.concentrated_total == concentrated_total
        assert entry.limit_total == limit_total
    return concentrated_total, limit_total


class TestAskSide:
    """Positive step above the current price."""

    def test_entries(self):
        pool, arrays = _ask_side_fixture()
        entries = get_order_book_side(pool, arrays, STEP, 100, False, 6, 6)

        assert len(entries) == 6
        assert [entry.price for entry in entries] == [Decimal("1.01") + STEP * i for i in range(6)]
        assert all(entry.ask_side for entry in entries)

        concentrated_total, limit_total = _assert_running_totals(entries)
        assert abs(concentrated_total - 1_000_000) < 10
        assert limit_total == 200_000

    def test_concentrated_amounts(self):
        pool, arrays = _ask_side_fixture()
        entries = get_order_book_side(pool, arrays, STEP, 100, False, 6, 6)

        assert entries[0].concentrated_amount == 0
        assert abs(entries[1].concentrated_amount - 321057) <= 2
        assert abs(entries[2].concentrated_amount - 649734) <= 2
        assert abs(entries[3].concentrated_amount - 29208) <= 2
        assert entries[4].concentrated_amount == 0
        assert entries[5].concentrated_amount == 0

        assert entries[0].concentrated_amount_quote == 0
        assert abs(entries[1].concentrated_amount_quote - 326693) <= 2
        assert abs(entries[2].concentrated_amount_quote - 665969) <= 2
        assert abs(entries[3].concentrated_amount_quote - 30090) <= 2

    def test_limit_orders(self):
        pool, arrays = _ask_side_fixture()
        entries = get_order_book_side(pool, arrays, STEP, 100, False, 6, 6)

        assert [entry.limit_amount for entry in entries[:5]] == [0] * 5
        assert entries[5].limit_amount == 200_000
        assert entries[5].limit_amount_quote == 210801

    def test_max_entries(self):
        pool, arrays = _ask_side_fixture()
        entries = get_order_book_side(pool, arrays, STEP, 3, False, 6, 6)
        assert len(entries) == 3

    def test_does_not_modify_arrays(self):
        pool, arrays = _ask_side_fixture()
        get_order_book_side(pool, arrays, STEP, 100, False, 6, 6)
        assert arrays[4].ticks[87].open_orders_input == 100_000
        assert pool.liquidity == 0


class TestBidSide:
    """Negative step below the current price."""

    def test_entries(self):
        pool, arrays = _bid_side_fixture()
        entries = get_order_book_side(pool, arrays, -STEP, 100, False, 6, 6)

        assert len(entries) == 4
        assert [entry.price for entry in entries] == [Decimal("0.99"), Decimal("0.98"), Decimal("0.97"), Decimal("0.96")]
        assert not any(entry.ask_side for entry in entries)

        concentrated_total, _ = _assert_running_totals(entries)
        assert abs(concentrated_total - 1_000_000) < 10

    def test_amounts(self):
        pool, arrays = _bid_side_fixture()
        entries = get_order_book_side(pool, arrays, -STEP, 100, False, 6, 6)

        assert entries[0].concentrated_amount == 0
        assert abs(entries[1].concentrated_amount - 347764) <= 2
        assert abs(entries[2].concentrated_amount - 652235) <= 2
        assert entries[3].concentrated_amount == 0
        assert abs(entries[1].concentrated_amount_quote - 353939) <= 2
        assert abs(entries[2].concentrated_amount_quote - 668814) <= 2

        assert [entry.limit_amount for entry in entries[:3]] == [0, 0, 0]
        assert entries[3].limit_amount == 200_000
        assert entries[3].limit_amount_quote == 207165


class TestInvertedPrice:
    """Steps expressed in B-per-A terms."""

    def test_inverted_ask_side(self):
        sqrt_price = price_to_sqrt_price(Decimal("0.5"), 6, 6)
        pool, arrays = _ask_side_fixture(center=-7040, sqrt_price=sqrt_price)
        entries = get_order_book_side(pool, arrays, -STEP, 100, True, 6, 6)

        assert entries
        assert all(entry.ask_side for entry in entries)
        for previous, entry in zip(entries, entries[1:]):
            assert previous.price - entry.price == STEP

        concentrated_total, limit_total = _assert_running_totals(entries)
        assert abs(concentrated_total - 1_000_000) < 10
        assert limit_total == 200_000
        assert entries[-1].limit_amount == 200_000
        assert entries[-1].limit_amount_quote == 104266


class TestOrderBook:
    """Both sides and validation."""

    def test_both_sides(self):
        pool, arrays = _ask_side_fixture()
        book = get_order_book(pool, arrays, STEP, 10, False, 6, 6)
        assert all(entry.ask_side for entry in book.asks)
        assert not any(entry.ask_side for entry in book.bids)
        assert book.asks[0].price == Decimal("1.01")
        assert book.bids[0].price == Decimal("0.99")

    def test_zero_step(self):
        pool, arrays = _ask_side_fixture()
        with pytest.raises(InvalidRangeError, match="non-zero"):
            get_order_book_side(pool, arrays, 0, 10)

    def test_too_many_entries(self):
        pool, arrays = _ask_side_fixture()
        with pytest.raises(InvalidRangeError, match="max_entries"):
            get_order_book_side(pool, arrays, STEP, 101)
