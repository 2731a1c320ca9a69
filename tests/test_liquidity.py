"""
Test suite for positions and the liquidity quote engine

Covers:
  - Position status / in-range / token ratio
  - Increase and decrease liquidity quotes (slippage, transfer fees)
  - modify_liquidity state change and token conservation
  - Randomized add/remove sequences returning pool and ticks to their starting state
  - Fee accrual, harvest and range reset
"""

import random
from dataclasses import replace

import pytest

from hybridamm.exceptions import ArithmeticOverflowError, InvalidRangeError, PositionNotEmptyError
from hybridamm.engine.fees import harvest_position, update_position_fees
from hybridamm.engine.liquidity import (
    PositionRatio,
    PositionStatus,
    decrease_liquidity_quote,
    increase_liquidity_quote,
    increase_liquidity_quote_a,
    increase_liquidity_quote_b,
    is_position_in_range,
    modify_liquidity,
    position_ratio_x64,
    position_status,
    reset_position_range,
)
from hybridamm.engine.state import Pool, Position, validate_tick_range
from hybridamm.engine.ticks import Tick
from hybridamm.engine.token_math import TransferFee

Q64 = 1 << 64


def _make_pool(**overrides) -> Pool:
    params = dict(tick_spacing=2, sqrt_price=Q64)
    params.update(overrides)
    return Pool(**params)


class TestPositionStatus:
    """Where the price sits relative to a range."""

    def test_below_range(self):
        assert position_status(18354745142194483560, -100, 100) is PositionStatus.PRICE_BELOW_RANGE
        assert position_status(18354745142194483561, -100, 100) is PositionStatus.PRICE_BELOW_RANGE

    def test_in_range(self):
        assert position_status(18354745142194483562, -100, 100) is PositionStatus.PRICE_IN_RANGE
        assert position_status(Q64, -100, 100) is PositionStatus.PRICE_IN_RANGE
        assert position_status(18539204128674405811, -100, 100) is PositionStatus.PRICE_IN_RANGE

    def test_above_range(self):
        assert position_status(18539204128674405812, -100, 100) is PositionStatus.PRICE_ABOVE_RANGE
        assert position_status(18539204128674405813, -100, 100) is PositionStatus.PRICE_ABOVE_RANGE

    def test_invalid_range(self):
        assert position_status(Q64, 100, 100) is PositionStatus.INVALID

    def test_bounds_in_any_order(self):
        assert position_status(Q64, 100, -100) is PositionStatus.PRICE_IN_RANGE

    def test_is_position_in_range(self):
        assert is_position_in_range(Q64, -5, 5)
        assert not is_position_in_range(Q64, 0, 5)
        assert not is_position_in_range(Q64, -5, 0)
        assert not is_position_in_range(Q64, -5, -1)
        assert not is_position_in_range(Q64, 1, 5)


class TestPositionRatio:
    """Share of value held in each token."""

    def test_below_range_all_a(self):
        assert position_ratio_x64(18354745142194483561, -100, 100) == PositionRatio(Q64, 0)

    def test_in_range(self):
        assert position_ratio_x64(Q64, -100, 100) == PositionRatio(9223372036854775707, 9223372036854775909)

    def test_above_range_all_b(self):
        assert position_ratio_x64(18539204128674405812, -100, 100) == PositionRatio(0, Q64)

    def test_invalid(self):
        assert position_ratio_x64(Q64, 0, 0) == PositionRatio(0, 0)

    def test_asymmetric_range(self):
        assert position_ratio_x64(7267764841821948241, -21136, -17240) == PositionRatio(
            6696687687134031069, 11750056386575520547
        )


class TestLiquidityQuotes:
    """Deposit and withdrawal estimates."""

    def test_increase_with_transfer_fees(self):
        quote = increase_liquidity_quote(
            1_000_000, 100, Q64, -10, 10,
            TransferFee(2000, 100000), TransferFee(1000, 100000),
        )
        assert quote.liquidity_delta == 1_000_000
        assert quote.token_est_a == 625
        assert quote.token_est_b == 556
        assert quote.token_max_a == 632
        assert quote.token_max_b == 562

    def test_increase_without_transfer_fees(self):
        quote = increase_liquidity_quote(1_000_000, 0, Q64, -10, 10)
        assert (quote.token_est_a, quote.token_est_b) == (500, 500)
        assert (quote.token_max_a, quote.token_max_b) == (500, 500)

    def test_decrease(self):
        quote = decrease_liquidity_quote(1_000_000, 100, Q64, -10, 10)
        assert (quote.token_est_a, quote.token_est_b) == (499, 499)
        assert (quote.token_min_a, quote.token_min_b) == (494, 494)

    def test_zero_liquidity(self):
        quote = increase_liquidity_quote(0, 100, Q64, -10, 10)
        assert quote.token_est_a == 0
        assert quote.token_max_b == 0

    def test_inverted_range_rejected(self):
        with pytest.raises(InvalidRangeError, match="tick_lower_index"):
            increase_liquidity_quote(1000, 0, Q64, 10, -10)
        with pytest.raises(InvalidRangeError):
            decrease_liquidity_quote(1000, 0, Q64, 10, 10)

    def test_quote_from_token_a_below_range(self):
        quote = increase_liquidity_quote_a(1000, 0, Q64, 10, 20)
        assert quote.liquidity_delta > 0
        assert quote.token_est_b == 0
        assert 999 <= quote.token_est_a <= 1000

    def test_quote_from_token_b_below_range_is_empty(self):
        quote = increase_liquidity_quote_b(1000, 0, Q64, 10, 20)
        assert quote.liquidity_delta == 0
        assert quote.token_est_a == 0

    def test_quote_from_token_b_in_range(self):
        quote = increase_liquidity_quote_b(1000, 0, Q64, -10, 10)
        assert quote.token_est_b <= 1000
        assert quote.token_est_a > 0


class TestModifyLiquidity:
    """Position liquidity changes."""

    def _open(self, pool, lower, upper, delta):
        position = Position(tick_lower_index=lower, tick_upper_index=upper)
        return modify_liquidity(pool, position, Tick(), Tick(), delta)

    def test_in_range_deposit(self):
        pool = _make_pool()
        result = self._open(pool, -10, 10, 1_000_000)
        assert (result.token_a, result.token_b) == (500, 500)
        assert result.pool.liquidity == 1_000_000
        assert result.position.liquidity == 1_000_000
        assert result.tick_lower.liquidity_net == 1_000_000
        assert result.tick_upper.liquidity_net == -1_000_000
        assert pool.liquidity == 0

    def test_below_range_deposit_is_token_a(self):
        result = self._open(_make_pool(), 10, 20, 1_000_000)
        assert result.token_a > 0
        assert result.token_b == 0
        assert result.pool.liquidity == 0

    def test_above_range_deposit_is_token_b(self):
        result = self._open(_make_pool(), -20, -10, 1_000_000)
        assert result.token_a == 0
        assert result.token_b > 0
        assert result.pool.liquidity == 0

    def test_withdraw_never_exceeds_deposit(self):
        pool = _make_pool()
        opened = self._open(pool, -10, 10, 1_000_000)
        closed = modify_liquidity(
            opened.pool, opened.position, opened.tick_lower, opened.tick_upper, -1_000_000
        )
        assert closed.token_a <= opened.token_a
        assert closed.token_b <= opened.token_b
        assert opened.token_a - closed.token_a <= 1
        assert closed.pool.liquidity == 0
        assert not closed.tick_lower.initialized
        assert not closed.tick_upper.initialized

    def test_remove_more_than_held(self):
        opened = self._open(_make_pool(), -10, 10, 1000)
        with pytest.raises(ArithmeticOverflowError, match="Cannot remove"):
            modify_liquidity(opened.pool, opened.position, opened.tick_lower, opened.tick_upper, -1001)

    def test_zero_delta(self):
        with pytest.raises(InvalidRangeError, match="non-zero"):
            self._open(_make_pool(), -10, 10, 0)

    def test_unaligned_range(self):
        with pytest.raises(InvalidRangeError, match="multiple"):
            self._open(_make_pool(), -9, 10, 1000)

    def test_random_add_remove_conserves_state(self):
        rng = random.Random(7)
        existing = 5_000_000
        ranges = ((-10, 10), (10, 40), (-40, -10))
        for lower, upper in ranges:
            for preloaded in (False, True):
                if preloaded:
                    base_lower = Tick(initialized=True, liquidity_gross=existing, liquidity_net=existing)
                    base_upper = Tick(initialized=True, liquidity_gross=existing, liquidity_net=-existing)
                else:
                    base_lower, base_upper = Tick(), Tick()
                base_pool = _make_pool(liquidity=existing, fee_growth_global_a=3 * Q64, fee_growth_global_b=5 * Q64)

                pool, tick_lower, tick_upper = base_pool, base_lower, base_upper
                position = Position(tick_lower_index=lower, tick_upper_index=upper)
                chunks = []
                deposited = [0, 0]
                withdrawn = [0, 0]
                operations = 0

                def apply(delta):
                    nonlocal pool, position, tick_lower, tick_upper, operations
                    result = modify_liquidity(pool, position, tick_lower, tick_upper, delta)
                    pool, position = result.pool, result.position
                    tick_lower, tick_upper = result.tick_lower, result.tick_upper
                    totals = deposited if delta > 0 else withdrawn
                    totals[0] += result.token_a
                    totals[1] += result.token_b
                    operations += 1

                for _ in range(40):
                    if chunks and rng.random() < 0.4:
                        apply(-chunks.pop(rng.randrange(len(chunks))))
                    else:
                        chunk = rng.randint(1, 10**9)
                        chunks.append(chunk)
                        apply(chunk)
                rng.shuffle(chunks)
                for chunk in chunks:
                    apply(-chunk)

                assert position.liquidity == 0
                assert pool.liquidity == existing
                assert tick_lower == base_lower
                assert tick_upper == base_upper
                for paid_in, paid_out in zip(deposited, withdrawn):
                    assert 0 <= paid_in - paid_out <= operations


class TestPositionFees:
    """Fee accrual, harvest and range reset."""

    def _funded(self):
        pool = _make_pool()
        position = Position(tick_lower_index=-10, tick_upper_index=10)
        result = modify_liquidity(pool, position, Tick(), Tick(), 1_000_000)
        grown = replace(result.pool, fee_growth_global_a=(1000 << 64) // 1_000_000)
        return grown, result.position, result.tick_lower, result.tick_upper

    def test_fees_accrue_inside_range(self):
        pool, position, lower, upper = self._funded()
        updated = update_position_fees(pool, position, lower, upper)
        assert updated.fee_owed_a == 999
        assert updated.fee_owed_b == 0
        assert position.fee_owed_a == 0

    def test_harvest_pays_and_rebases(self):
        pool, position, lower, upper = self._funded()
        harvested, amount_a, amount_b = harvest_position(pool, position, lower, upper)
        assert (amount_a, amount_b) == (999, 0)
        assert harvested.fee_owed_a == 0
        assert harvested.fee_growth_checkpoint_a == pool.fee_growth_global_a
        # nothing new to harvest
        _, again_a, _ = harvest_position(pool, harvested, lower, upper)
        assert again_a == 0

    def test_reset_range_of_empty_position(self):
        position = Position(tick_lower_index=-10, tick_upper_index=10, fee_growth_checkpoint_a=77)
        moved = reset_position_range(position, 20, 40, 2)
        assert (moved.tick_lower_index, moved.tick_upper_index) == (20, 40)
        assert moved.fee_growth_checkpoint_a == 0

    def test_reset_range_requires_empty(self):
        position = Position(tick_lower_index=-10, tick_upper_index=10, liquidity=1)
        with pytest.raises(PositionNotEmptyError, match="still holds"):
            reset_position_range(position, 20, 40, 2)
        owed = Position(tick_lower_index=-10, tick_upper_index=10, fee_owed_b=3)
        with pytest.raises(PositionNotEmptyError):
            reset_position_range(owed, 20, 40, 2)

    def test_reset_range_validates(self):
        with pytest.raises(InvalidRangeError):
            reset_position_range(Position(tick_lower_index=-10, tick_upper_index=10), 40, 20, 2)


class TestValidateTickRange:
    """Range validation."""

    def test_valid(self):
        validate_tick_range(-10, 10, 2)

    def test_inverted(self):
        with pytest.raises(InvalidRangeError, match="tick_lower_index"):
            validate_tick_range(10, -10, 2)

    def test_unaligned(self):
        with pytest.raises(InvalidRangeError, match="multiple"):
            validate_tick_range(-10, 11, 2)

    def test_out_of_bounds(self):
        with pytest.raises(InvalidRangeError, match="out of bounds"):
            validate_tick_range(-10, 443638, 2)
