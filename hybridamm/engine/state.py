"""
Pool, position, limit-order and position-bundle records.

These are plain mutable dataclasses. Engine functions never modify the
instances they receive; state transitions return updated copies which the
caller persists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..constants import (
    MAX_CLP_REWARD_RATE,
    MAX_FEE_RATE,
    MAX_ORDER_PROTOCOL_FEE_RATE,
    MAX_PROTOCOL_FEE_RATE,
    MAX_TICK_SPACING,
    POSITION_BUNDLE_SIZE,
)
from ..exceptions import (
    BundleSlotConflictError,
    InvalidBundleIndexError,
    InvalidFeeRateError,
    InvalidRangeError,
    InvalidTickIndexError,
)
from .tick_math import (
    is_tick_index_in_bounds,
    is_tick_initializable,
    sqrt_price_to_tick_index,
)


@dataclass
class Pool:
    """
    State of a concentrated-liquidity pool with tick-resident limit orders.

    Token A is priced in token B; ``sqrt_price`` is Q64.64.
    """
    tick_spacing: int
    sqrt_price: int
    fee_rate: int = 0
    tick_current_index: Optional[int] = None
    protocol_fee_rate: int = 0
    order_protocol_fee_rate: int = 0
    clp_reward_rate: int = 0
    liquidity: int = 0

    # Global fee accumulators (Q64.64, wrapping)
    fee_growth_global_a: int = 0
    fee_growth_global_b: int = 0
    protocol_fee_owed_a: int = 0
    protocol_fee_owed_b: int = 0

    # Limit-order aggregates
    orders_total_amount_a: int = 0
    orders_total_amount_b: int = 0
    orders_filled_amount_a: int = 0
    orders_filled_amount_b: int = 0
    olp_fee_owed_a: int = 0
    olp_fee_owed_b: int = 0

    # Identities
    token_mint_a: str = ""
    token_mint_b: str = ""
    token_vault_a: str = ""
    token_vault_b: str = ""
    address: str = ""
    bump: int = 0
    version: int = 1

    def __post_init__(self) -> None:
        if self.tick_current_index is None:
            self.tick_current_index = sqrt_price_to_tick_index(self.sqrt_price)
        if not 0 < self.tick_spacing <= MAX_TICK_SPACING:
            raise InvalidTickIndexError(f"Invalid tick spacing: {self.tick_spacing}")
        _check_rate("fee_rate", self.fee_rate, MAX_FEE_RATE)
        _check_rate("protocol_fee_rate", self.protocol_fee_rate, MAX_PROTOCOL_FEE_RATE)
        _check_rate("order_protocol_fee_rate", self.order_protocol_fee_rate, MAX_ORDER_PROTOCOL_FEE_RATE)
        _check_rate("clp_reward_rate", self.clp_reward_rate, MAX_CLP_REWARD_RATE)

    @property
    def tick_spacing_seed(self) -> bytes:
        return self.tick_spacing.to_bytes(2, "little")


def _check_rate(name: str, value: int, maximum: int) -> None:
    if not 0 <= value <= maximum:
        raise InvalidFeeRateError(f"{name} must be within [0, {maximum}], got {value}")


def validate_tick_range(tick_lower_index: int, tick_upper_index: int, tick_spacing: int) -> None:
    """Raise InvalidRangeError unless the range is ordered, non-empty, aligned and in bounds."""
    if tick_lower_index >= tick_upper_index:
        raise InvalidRangeError(
            f"tick_lower_index must be < tick_upper_index ({tick_lower_index} >= {tick_upper_index})"
        )
    for tick_index in (tick_lower_index, tick_upper_index):
        if not is_tick_index_in_bounds(tick_index):
            raise InvalidRangeError(f"Tick {tick_index} is out of bounds")
        if not is_tick_initializable(tick_index, tick_spacing):
            raise InvalidRangeError(f"Tick {tick_index} is not a multiple of tick_spacing ({tick_spacing})")


@dataclass
class Position:
    """A concentrated-liquidity position over [tick_lower_index, tick_upper_index)."""
    tick_lower_index: int
    tick_upper_index: int
    liquidity: int = 0
    fee_growth_checkpoint_a: int = 0
    fee_owed_a: int = 0
    fee_growth_checkpoint_b: int = 0
    fee_owed_b: int = 0
    pool: str = ""
    position_mint: str = ""
    version: int = 1

    @property
    def is_empty(self) -> bool:
        return self.liquidity == 0 and self.fee_owed_a == 0 and self.fee_owed_b == 0


@dataclass
class LimitOrder:
    """A resting order converting ``amount`` of its input token at one tick."""
    tick_index: int
    a_to_b: bool
    amount: int = 0
    age: int = 0
    pool: str = ""
    limit_order_mint: str = ""
    version: int = 1


@dataclass
class PositionBundle:
    """Bitmap of POSITION_BUNDLE_SIZE position slots sharing one owner token."""
    position_bundle_mint: str = ""
    bitmap: int = 0
    slots: int = field(default=POSITION_BUNDLE_SIZE, repr=False)

    def _check_slot(self, index: int) -> None:
        if not 0 <= index < self.slots:
            raise InvalidBundleIndexError(f"Bundle index {index} outside [0, {self.slots})")

    def is_occupied(self, index: int) -> bool:
        self._check_slot(index)
        return bool(self.bitmap >> index & 1)

    def occupy(self, index: int) -> None:
        if self.is_occupied(index):
            raise BundleSlotConflictError(f"Bundle index {index} is already occupied")
        self.bitmap |= 1 << index

    def vacate(self, index: int) -> None:
        if not self.is_occupied(index):
            raise BundleSlotConflictError(f"Bundle index {index} is not occupied")
        self.bitmap &= ~(1 << index)

    def first_unoccupied(self) -> Optional[int]:
        for index in range(self.slots):
            if not self.bitmap >> index & 1:
                return index
        return None

    @property
    def is_full(self) -> bool:
        return self.bitmap == (1 << self.slots) - 1

    @property
    def is_empty(self) -> bool:
        return self.bitmap == 0
