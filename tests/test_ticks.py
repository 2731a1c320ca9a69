"""
Test suite for ticks, tick arrays and tick array sequences

Covers:
  - Liquidity updates on position boundaries
  - Fee growth outside snapshots and crossings
  - Limit-order cohorts (open -> partial -> fulfilled)
  - Uninitialize rule
  - Sequence traversal and errors
"""

import logging
import random

import pytest

from hybridamm.constants import TICK_ARRAY_SIZE, U128_MAX
from hybridamm.exceptions import (
    ArithmeticOverflowError,
    InsufficientTickArraysError,
    InvalidTickArraySequenceError,
    InvalidTickIndexError,
)
from hybridamm.engine.ticks import (
    Tick,
    TickArray,
    TickArraySequence,
    add_open_orders,
    copy_tick_array,
    cross_tick,
    fill_tick_orders,
    get_next_liquidity,
    sync_initialized,
    update_tick,
)


class TestUpdateTick:
    """Boundary liquidity changes."""

    def test_lower_boundary_adds_net(self):
        tick = update_tick(Tick(), -10, 0, 500, 7, 9, False)
        assert tick.initialized
        assert tick.liquidity_net == 500
        assert tick.liquidity_gross == 500

    def test_upper_boundary_subtracts_net(self):
        tick = update_tick(Tick(), 10, 0, 500, 7, 9, True)
        assert tick.liquidity_net == -500
        assert tick.liquidity_gross == 500

    def test_input_not_modified(self):
        original = Tick()
        update_tick(original, 10, 0, 500, 0, 0, True)
        assert original == Tick()

    def test_fee_growth_snapshot_at_or_below_price(self):
        tick = update_tick(Tick(), -10, 0, 500, 7, 9, False)
        assert (tick.fee_growth_outside_a, tick.fee_growth_outside_b) == (7, 9)

    def test_fee_growth_snapshot_above_price(self):
        tick = update_tick(Tick(), 10, 0, 500, 7, 9, True)
        assert (tick.fee_growth_outside_a, tick.fee_growth_outside_b) == (0, 0)

    def test_snapshot_only_on_first_use(self):
        tick = update_tick(Tick(), -10, 0, 500, 7, 9, False)
        tick = update_tick(tick, -10, 0, 500, 70, 90, False)
        assert tick.fee_growth_outside_a == 7
        assert tick.liquidity_gross == 1000

    def test_remove_all_uninitializes(self):
        tick = update_tick(Tick(), -10, 0, 500, 7, 9, False)
        tick = update_tick(tick, -10, 0, -500, 7, 9, False)
        assert not tick.initialized
        assert tick.liquidity_net == 0
        assert tick.fee_growth_outside_a == 0

    def test_gross_underflow(self):
        with pytest.raises(ArithmeticOverflowError, match="underflow"):
            update_tick(Tick(), -10, 0, -1, 0, 0, False)


class TestCrossing:
    """Crossing re-bases snapshots and moves active liquidity."""

    def test_cross_rebases(self):
        tick = Tick(initialized=True, fee_growth_outside_a=3, fee_growth_outside_b=5)
        cross_tick(tick, 10, 20)
        assert (tick.fee_growth_outside_a, tick.fee_growth_outside_b) == (7, 15)

    def test_cross_wraps(self):
        tick = Tick(initialized=True, fee_growth_outside_a=10)
        cross_tick(tick, 3, 0)
        assert tick.fee_growth_outside_a == U128_MAX - 6

    def test_double_cross_restores(self):
        tick = Tick(initialized=True, fee_growth_outside_a=3, fee_growth_outside_b=5)
        cross_tick(tick, 10, 20)
        cross_tick(tick, 10, 20)
        assert (tick.fee_growth_outside_a, tick.fee_growth_outside_b) == (3, 5)

    def test_next_liquidity(self):
        tick = Tick(initialized=True, liquidity_net=100, liquidity_gross=100)
        assert get_next_liquidity(1000, tick, a_to_b=False) == 1100
        assert get_next_liquidity(1000, tick, a_to_b=True) == 900

    def test_next_liquidity_uninitialized(self):
        assert get_next_liquidity(1000, None, True) == 1000
        assert get_next_liquidity(1000, Tick(liquidity_net=5), True) == 1000

    def test_next_liquidity_underflow(self):
        tick = Tick(initialized=True, liquidity_net=100, liquidity_gross=100)
        with pytest.raises(ArithmeticOverflowError):
            get_next_liquidity(50, tick, a_to_b=True)


class TestOrderCohorts:
    """Open, partially filled and fulfilled cohorts."""

    def test_add_open_orders(self):
        tick = Tick()
        add_open_orders(tick, 100)
        sync_initialized(tick)
        assert tick.open_orders_input == 100
        assert tick.initialized

    def test_partial_fill_promotes_open_cohort(self):
        tick = Tick(initialized=True, age=3, open_orders_input=1000)
        filled = fill_tick_orders(tick, 400, a_to_b_orders=True)
        assert filled == 400
        assert tick.age == 4
        assert tick.open_orders_input == 0
        assert tick.part_filled_orders_input == 1000
        assert tick.part_filled_orders_remaining_input == 600

    def test_complete_fill_settles_cohort(self):
        tick = Tick(initialized=True, age=3, open_orders_input=1000)
        filled = fill_tick_orders(tick, 1000, a_to_b_orders=False)
        assert filled == 1000
        assert tick.age == 5
        assert tick.part_filled_orders_input == 0
        assert tick.part_filled_orders_remaining_input == 0
        assert tick.fulfilled_b_to_a_orders_input == 1000
        assert tick.fulfilled_a_to_b_orders_input == 0

    def test_settled_cohort_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="hybridamm.engine.ticks")
        tick = Tick(initialized=True, age=3, open_orders_input=1000)
        fill_tick_orders(tick, 400, a_to_b_orders=True)
        assert "fulfilled" not in caplog.text
        fill_tick_orders(tick, 600, a_to_b_orders=True)
        assert "Order cohort of 1000 input fulfilled (a_to_b=True), tick age now 5" in caplog.text

    def test_fill_capped_at_resting(self):
        tick = Tick(initialized=True, open_orders_input=1000)
        assert fill_tick_orders(tick, 5000, True) == 1000
        assert tick.resting_orders_input == 0

    def test_open_orders_behind_partial_cohort(self):
        # partial cohort of 500 with 200 left; 300 new open orders
        tick = Tick(
            initialized=True,
            age=6,
            open_orders_input=300,
            part_filled_orders_input=500,
            part_filled_orders_remaining_input=200,
        )
        assert tick.resting_orders_input == 500
        filled = fill_tick_orders(tick, 300, a_to_b_orders=True)
        assert filled == 300
        # old partial cohort settled, open orders became the new partial cohort
        assert tick.age == 7
        assert tick.fulfilled_a_to_b_orders_input == 500
        assert tick.open_orders_input == 0
        assert tick.part_filled_orders_input == 300
        assert tick.part_filled_orders_remaining_input == 200

    def test_resting_orders_drained_over_two_cohorts(self):
        tick = Tick(
            initialized=True,
            age=6,
            open_orders_input=300,
            part_filled_orders_input=500,
            part_filled_orders_remaining_input=200,
        )
        assert fill_tick_orders(tick, 500, True) == 500
        assert tick.age == 8
        assert tick.fulfilled_a_to_b_orders_input == 800
        assert tick.resting_orders_input == 0
        assert tick.has_limit_orders


class TestUninitializeRule:
    """A tick stays initialized while liquidity or any order counter references it."""

    _COUNTERS = (
        "liquidity_gross",
        "open_orders_input",
        "part_filled_orders_input",
        "part_filled_orders_remaining_input",
        "fulfilled_a_to_b_orders_input",
        "fulfilled_b_to_a_orders_input",
    )

    def test_empty_tick_uninitializes_and_keeps_age(self):
        tick = Tick(initialized=True, age=9, fee_growth_outside_a=4, liquidity_net=0)
        sync_initialized(tick)
        assert not tick.initialized
        assert tick.age == 9
        assert tick.fee_growth_outside_a == 0

    def test_random_counters(self):
        rng = random.Random(1234)
        for _ in range(500):
            values = {name: rng.choice((0, 0, 0, rng.randint(1, 10**6))) for name in self._COUNTERS}
            tick = Tick(initialized=rng.random() < 0.5, **values)
            sync_initialized(tick)
            assert tick.initialized == any(values.values())
            assert tick.can_uninitialize == (not any(values.values()))


class TestTickArray:
    """Single array addressing."""

    def test_default_ticks(self):
        array = TickArray(start_tick_index=0)
        assert len(array.ticks) == TICK_ARRAY_SIZE
        assert not any(t.initialized for t in array.ticks)

    def test_wrong_tick_count(self):
        with pytest.raises(InvalidTickArraySequenceError, match="88"):
            TickArray(start_tick_index=0, ticks=[Tick()])

    def test_get_set_tick(self):
        array = TickArray(start_tick_index=176)
        tick = Tick(initialized=True, liquidity_net=5)
        array.set_tick(180, 2, tick)
        assert array.ticks[2] is tick
        assert array.get_tick(180, 2) is tick

    def test_unaligned_tick(self):
        array = TickArray(start_tick_index=0)
        with pytest.raises(InvalidTickIndexError, match="multiple"):
            array.get_tick(3, 2)

    def test_contains(self):
        array = TickArray(start_tick_index=-176)
        assert array.contains(-176, 2)
        assert array.contains(-2, 2)
        assert not array.contains(0, 2)

    def test_copy_is_deep(self):
        array = TickArray(start_tick_index=0)
        clone = copy_tick_array(array)
        clone.ticks[0].liquidity_net = 42
        assert array.ticks[0].liquidity_net == 0


class TestTickArraySequence:
    """Traversal across evenly spaced arrays."""

    def _sequence(self, *starts):
        return TickArraySequence([TickArray(start_tick_index=s) for s in starts], 2)

    def test_empty(self):
        with pytest.raises(InvalidTickArraySequenceError, match="empty"):
            TickArraySequence([None, None], 2)

    def test_uneven(self):
        with pytest.raises(InvalidTickArraySequenceError, match="evenly"):
            self._sequence(0, 352)

    def test_unsorted_input(self):
        seq = self._sequence(176, -176, 0)
        assert seq.start_index == -176
        assert seq.end_index == 351

    def test_tick_outside_window(self):
        seq = self._sequence(0)
        with pytest.raises(InsufficientTickArraysError):
            seq.tick(176)

    def test_next_initialized_is_strict(self):
        seq = self._sequence(0, 176)
        seq.tick(10).initialized = True
        seq.tick(200).initialized = True
        assert seq.next_initialized_tick(0)[1] == 10
        assert seq.next_initialized_tick(10)[1] == 200
        tick, index = seq.next_initialized_tick(200)
        assert tick is None
        assert index == 351

    def test_prev_initialized_is_inclusive(self):
        seq = self._sequence(-176, 0)
        seq.tick(-10).initialized = True
        seq.tick(0).initialized = True
        assert seq.prev_initialized_tick(0)[1] == 0
        assert seq.prev_initialized_tick(-1)[1] == -10
        assert seq.prev_initialized_tick(-10)[1] == -10
        tick, index = seq.prev_initialized_tick(-11)
        assert tick is None
        assert index == -176

    def test_edges(self):
        seq = self._sequence(0)
        with pytest.raises(InsufficientTickArraysError):
            seq.next_initialized_tick(175)
        with pytest.raises(InsufficientTickArraysError):
            seq.prev_initialized_tick(-1)
