"""
Test suite for tick-resident limit orders

Covers:
  - Placement rules (taker orders, grid alignment)
  - Quotes by input and by output token
  - Decrease quotes for open, partially filled and fulfilled orders
  - Order lifecycle: open -> increase -> (fill) -> decrease -> close
  - Pro-rata settlement inside a cohort
  - Swap-side fill sizing
"""

from dataclasses import replace

import pytest

from hybridamm.constants import MAX_CLP_REWARD_RATE
from hybridamm.exceptions import (
    InvalidTickIndexError,
    LimitOrderAmountExceededError,
    LimitOrderNotEmptyError,
    LimitOrderOutOfSyncError,
    TakerOrderError,
    UninitializedTickError,
    ZeroTradableAmountError,
)
from hybridamm.engine.limit_orders import (
    close_limit_order,
    decrease_limit_order,
    decrease_limit_order_quote,
    fill_limit_orders,
    increase_limit_order,
    limit_order_quote_by_input_token,
    limit_order_quote_by_output_token,
    open_limit_order,
    validate_limit_order_placement,
)
from hybridamm.engine.state import LimitOrder, Pool
from hybridamm.engine.tick_math import price_to_tick_index
from hybridamm.engine.ticks import Tick, fill_tick_orders

Q64 = 1 << 64
FIFTY_PCT = 5000
ONE_PCT_FEE_RATE = 10000


def _make_pool(fee_rate=0, clp_reward_rate=0, order_protocol_fee_rate=0, **overrides) -> Pool:
    params = dict(
        tick_spacing=2,
        sqrt_price=Q64,
        fee_rate=fee_rate,
        clp_reward_rate=clp_reward_rate,
        order_protocol_fee_rate=order_protocol_fee_rate,
    )
    params.update(overrides)
    return Pool(**params)


class TestPlacement:
    """An order must rest, not trade."""

    def test_a_to_b_above_price(self):
        validate_limit_order_placement(_make_pool(), 2, True)

    def test_b_to_a_below_price(self):
        validate_limit_order_placement(_make_pool(), -2, False)

    def test_a_to_b_at_or_below_price_is_taker(self):
        with pytest.raises(TakerOrderError, match="marketable"):
            validate_limit_order_placement(_make_pool(), 0, True)
        with pytest.raises(TakerOrderError):
            validate_limit_order_placement(_make_pool(), -2, True)

    def test_b_to_a_at_or_above_price_is_taker(self):
        with pytest.raises(TakerOrderError, match="marketable"):
            validate_limit_order_placement(_make_pool(), 0, False)
        with pytest.raises(TakerOrderError):
            validate_limit_order_placement(_make_pool(), 2, False)

    def test_unaligned_tick(self):
        with pytest.raises(InvalidTickIndexError, match="multiple"):
            validate_limit_order_placement(_make_pool(), 3, True)

    def test_out_of_bounds(self):
        with pytest.raises(InvalidTickIndexError, match="out of bounds"):
            validate_limit_order_placement(_make_pool(), 443638, True)


class TestOrderQuotes:
    """Expected output of a fully filled order."""

    def _tick(self):
        return price_to_tick_index(2.0, 1, 1)

    def test_by_input_zero_fee(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT)
        assert limit_order_quote_by_input_token(10_000, True, self._tick(), pool) == 19998

    def test_by_input_fee_goes_to_order_owner(self):
        pool = _make_pool(fee_rate=ONE_PCT_FEE_RATE)
        assert limit_order_quote_by_input_token(10_000, True, self._tick(), pool) == 20200

    def test_by_input_clp_share(self):
        pool = _make_pool(fee_rate=ONE_PCT_FEE_RATE, clp_reward_rate=MAX_CLP_REWARD_RATE // 2)
        assert limit_order_quote_by_input_token(10_000, True, self._tick(), pool) == 20099

    def test_by_input_full_clp_share_leaves_bare_output(self):
        pool = _make_pool(fee_rate=ONE_PCT_FEE_RATE, clp_reward_rate=MAX_CLP_REWARD_RATE)
        assert limit_order_quote_by_input_token(10_000, True, self._tick(), pool) == 19998

    def test_by_input_clp_and_protocol_share(self):
        pool = _make_pool(
            fee_rate=ONE_PCT_FEE_RATE,
            clp_reward_rate=MAX_CLP_REWARD_RATE // 2,
            order_protocol_fee_rate=FIFTY_PCT,
        )
        assert limit_order_quote_by_input_token(10_000, True, self._tick(), pool) == 20049

    def test_by_output(self):
        cases = (
            (19998, _make_pool(order_protocol_fee_rate=FIFTY_PCT)),
            (20200, _make_pool(fee_rate=ONE_PCT_FEE_RATE)),
            (20099, _make_pool(fee_rate=ONE_PCT_FEE_RATE, clp_reward_rate=MAX_CLP_REWARD_RATE // 2)),
            (
                20049,
                _make_pool(
                    fee_rate=ONE_PCT_FEE_RATE,
                    clp_reward_rate=MAX_CLP_REWARD_RATE // 2,
                    order_protocol_fee_rate=FIFTY_PCT,
                ),
            ),
        )
        for amount_out, pool in cases:
            assert limit_order_quote_by_output_token(amount_out, True, self._tick(), pool) == 10_000


class TestDecreaseQuote:
    """Withdrawal amounts by cohort."""

    def _order(self, a_to_b=True, amount=50_000):
        return LimitOrder(tick_index=128, a_to_b=a_to_b, amount=amount, age=5)

    def _semi_filled_tick(self):
        return Tick(
            initialized=True,
            age=6,
            part_filled_orders_input=200_000,
            part_filled_orders_remaining_input=120_000,
        )

    def _fulfilled_tick(self):
        return Tick(
            initialized=True,
            age=7,
            fulfilled_a_to_b_orders_input=100_000,
            fulfilled_b_to_a_orders_input=80_000,
        )

    def test_not_filled(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT)
        tick = Tick(initialized=True, age=5, open_orders_input=100_000)
        quote = decrease_limit_order_quote(pool, self._order(), tick, 25_000)
        assert (quote.amount_out_a, quote.amount_out_b) == (25_000, 0)
        assert (quote.reward_a, quote.reward_b) == (0, 0)

    def test_semi_filled_a_to_b(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT, orders_filled_amount_a=80_000, olp_fee_owed_b=500)
        quote = decrease_limit_order_quote(pool, self._order(), self._semi_filled_tick(), 25_000)
        assert (quote.amount_out_a, quote.amount_out_b) == (15000, 10190)
        assert (quote.reward_a, quote.reward_b) == (0, 62)

    def test_semi_filled_b_to_a(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT, orders_filled_amount_b=80_000, olp_fee_owed_a=500)
        quote = decrease_limit_order_quote(pool, self._order(a_to_b=False), self._semi_filled_tick(), 25_000)
        assert (quote.amount_out_a, quote.amount_out_b) == (9934, 15000)
        assert (quote.reward_a, quote.reward_b) == (62, 0)

    def test_fulfilled_a_to_b(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT, orders_filled_amount_a=100_000, olp_fee_owed_b=500)
        quote = decrease_limit_order_quote(pool, self._order(amount=100_000), self._fulfilled_tick(), 10_000)
        assert (quote.amount_out_a, quote.amount_out_b) == (0, 10178)
        assert (quote.reward_a, quote.reward_b) == (0, 50)

    def test_fulfilled_b_to_a(self):
        pool = _make_pool(order_protocol_fee_rate=FIFTY_PCT, orders_filled_amount_b=80_000, olp_fee_owed_a=500)
        quote = decrease_limit_order_quote(
            pool, self._order(a_to_b=False, amount=100_000), self._fulfilled_tick(), 10_000
        )
        assert (quote.amount_out_a, quote.amount_out_b) == (9934, 0)
        assert (quote.reward_a, quote.reward_b) == (62, 0)

    def test_exceeds_order(self):
        pool = _make_pool()
        tick = Tick(initialized=True, age=5, open_orders_input=100_000)
        with pytest.raises(LimitOrderAmountExceededError, match="order holds"):
            decrease_limit_order_quote(pool, self._order(), tick, 50_001)

    def test_order_ahead_of_tick(self):
        tick = Tick(initialized=True, age=4, open_orders_input=100_000)
        with pytest.raises(LimitOrderOutOfSyncError, match="ahead"):
            decrease_limit_order_quote(_make_pool(), self._order(), tick, 1)

    def test_pool_filled_total_out_of_sync(self):
        pool = _make_pool(orders_filled_amount_a=0, olp_fee_owed_b=500)
        with pytest.raises(LimitOrderOutOfSyncError, match="filled order input"):
            decrease_limit_order_quote(pool, self._order(), self._semi_filled_tick(), 25_000)


class TestOrderLifecycle:
    """State transitions of a single order."""

    def _open(self, amount=1000, tick_index=10):
        return open_limit_order(_make_pool(), Tick(), tick_index, True, amount, "order-1")

    def test_open_funds_order(self):
        update = self._open()
        assert update.limit_order.amount == 1000
        assert update.limit_order.age == 0
        assert update.limit_order.limit_order_mint == "order-1"
        assert update.tick.open_orders_input == 1000
        assert update.tick.initialized
        assert update.pool.orders_total_amount_a == 1000
        assert (update.amount_a, update.amount_b) == (1000, 0)

    def test_open_empty(self):
        update = open_limit_order(_make_pool(), Tick(age=3), 10, True)
        assert update.limit_order.amount == 0
        assert update.limit_order.age == 3
        assert not update.tick.initialized

    def test_open_taker_rejected(self):
        with pytest.raises(TakerOrderError):
            open_limit_order(_make_pool(), Tick(), -10, True, 1000)

    def test_increase(self):
        opened = self._open()
        update = increase_limit_order(opened.pool, opened.limit_order, opened.tick, 500)
        assert update.limit_order.amount == 1500
        assert update.tick.open_orders_input == 1500
        assert update.pool.orders_total_amount_a == 1500
        assert update.amount_a == 500

    def test_increase_zero(self):
        opened = self._open()
        with pytest.raises(ZeroTradableAmountError):
            increase_limit_order(opened.pool, opened.limit_order, opened.tick, 0)

    def test_increase_after_fill_started(self):
        opened = self._open()
        tick = replace(opened.tick)
        fill_tick_orders(tick, 100, True)
        with pytest.raises(LimitOrderOutOfSyncError, match="started filling"):
            increase_limit_order(opened.pool, opened.limit_order, tick, 500)

    def test_decrease_unfilled(self):
        opened = self._open()
        update = decrease_limit_order(opened.pool, opened.limit_order, opened.tick, 400)
        assert (update.amount_a, update.amount_b) == (400, 0)
        assert update.limit_order.amount == 600
        assert update.tick.open_orders_input == 600
        assert update.pool.orders_total_amount_a == 600

    def test_decrease_partially_filled_settles(self):
        opened = self._open(1500)
        tick = replace(opened.tick)
        fill_tick_orders(tick, 600, True)
        pool = replace(opened.pool, orders_filled_amount_a=600, olp_fee_owed_b=60)

        update = decrease_limit_order(pool, opened.limit_order, tick, 1500)
        assert update.amount_a == 900
        assert update.amount_b == 660
        assert update.reward_b == 60
        assert update.limit_order.amount == 0
        assert update.pool.orders_total_amount_a == 0
        assert update.pool.orders_filled_amount_a == 0
        assert update.pool.olp_fee_owed_b == 0
        assert not update.tick.initialized
        assert update.tick.age == tick.age
        close_limit_order(update.limit_order)

    def test_decrease_zero(self):
        opened = self._open()
        with pytest.raises(ZeroTradableAmountError):
            decrease_limit_order(opened.pool, opened.limit_order, opened.tick, 0)

    def test_decrease_on_uninitialized_tick(self):
        opened = self._open()
        with pytest.raises(UninitializedTickError):
            decrease_limit_order(opened.pool, opened.limit_order, Tick(), 100)

    def test_close_requires_empty(self):
        opened = self._open()
        with pytest.raises(LimitOrderNotEmptyError, match="still holds"):
            close_limit_order(opened.limit_order)

    def test_pro_rata_within_cohort(self):
        pool = _make_pool()
        first = open_limit_order(pool, Tick(), 10, True, 1000)
        second = open_limit_order(first.pool, first.tick, 10, True, 3000)
        tick = replace(second.tick)
        fill_tick_orders(tick, 2000, True)
        pool = replace(second.pool, orders_filled_amount_a=2000)

        out_first = decrease_limit_order(pool, first.limit_order, tick, 1000)
        assert out_first.amount_a == 500
        out_second = decrease_limit_order(out_first.pool, second.limit_order, out_first.tick, 3000)
        assert out_second.amount_a == 1500
        assert out_second.pool.orders_filled_amount_a == 0
        assert out_second.pool.orders_total_amount_a == 0
        assert not out_second.tick.has_limit_orders


class TestFillSizing:
    """How much of the resting input a swap step takes."""

    def _tick(self):
        return Tick(initialized=True, open_orders_input=1000)

    def test_no_tick(self):
        fill = fill_limit_orders(None, Q64, True, True, 1000, ONE_PCT_FEE_RATE)
        assert (fill.amount_in, fill.amount_out, fill.fee_amount) == (0, 0, 0)

    def test_exact_input_clears_tick(self):
        fill = fill_limit_orders(self._tick(), Q64, True, True, 2000, ONE_PCT_FEE_RATE)
        assert (fill.amount_in, fill.amount_out, fill.fee_amount) == (1000, 1000, 11)

    def test_exact_input_partial(self):
        fill = fill_limit_orders(self._tick(), Q64, True, True, 505, ONE_PCT_FEE_RATE)
        assert (fill.amount_in, fill.amount_out, fill.fee_amount) == (499, 499, 6)

    def test_exact_output(self):
        fill = fill_limit_orders(self._tick(), Q64, True, False, 400, ONE_PCT_FEE_RATE)
        assert (fill.amount_in, fill.amount_out, fill.fee_amount) == (400, 400, 5)

    def test_exact_output_capped(self):
        fill = fill_limit_orders(self._tick(), Q64, False, False, 5000, 0)
        assert (fill.amount_in, fill.amount_out, fill.fee_amount) == (1000, 1000, 0)
