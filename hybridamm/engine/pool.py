"""
In-memory pool engine and pool registry.

PoolEngine owns one pool together with its tick arrays, positions, limit
orders and vault balances, and applies the pure engine functions to them.
Every mutation runs under a non-reentrant lock inside a snapshot/rollback
transaction: a failing operation leaves the engine exactly as it was.

Security features:
  - Reentrancy lock on every mutation
  - Token guards (max in / min out) on liquidity changes and swaps
  - Deterministic IDs (blake2b, no uuid4)
  - Vault balances checked on every payout
"""

from __future__ import annotations

import copy
import hashlib
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from ..config import EngineConfig
from ..constants import TICK_ARRAY_SIZE
from ..exceptions import (
    EngineLockedError,
    InsufficientTickArraysError,
    InvalidMintOrderError,
    InvalidRangeError,
    PoolAlreadyExistsError,
    PoolNotFoundError,
    PositionNotEmptyError,
    SlippageExceededError,
)
from .fees import CollectFeesQuote, collect_fees_quote, collect_protocol_fees, harvest_position
from .fixed_point import checked_add, checked_sub
from .limit_orders import (
    LimitOrderDecreaseQuote,
    LimitOrderUpdate,
    close_limit_order,
    decrease_limit_order,
    decrease_limit_order_quote,
    increase_limit_order,
    open_limit_order,
)
from .liquidity import (
    DecreaseLiquidityQuote,
    IncreaseLiquidityQuote,
    decrease_liquidity_quote,
    increase_liquidity_quote,
    increase_liquidity_quote_a,
    increase_liquidity_quote_b,
    modify_liquidity,
    reset_position_range,
)
from .order_book import OrderBook, get_order_book
from .state import LimitOrder, Pool, Position, validate_tick_range
from .tick_math import (
    PriceLike,
    get_full_range_tick_indexes,
    get_tick_array_start_index,
    is_full_range_only,
)
from .ticks import Tick, TickArray
from .token_math import TransferFee, try_apply_transfer_fee, try_reverse_apply_transfer_fee
from .tokens import MintRegistry
from .swap import (
    ExactInSwapQuote,
    ExactOutSwapQuote,
    SwapResult,
    execute_swap,
    swap_quote_by_input_token,
    swap_quote_by_output_token,
)

logger = logging.getLogger(__name__)


def _deterministic_id(*parts: object) -> str:
    raw = ":".join(str(part) for part in parts).encode()
    return hashlib.blake2b(raw, digest_size=8).hexdigest()


# ---------------------------------------------------------------------------
# Pool engine
# ---------------------------------------------------------------------------

class PoolEngine:
    """
    Stateful wrapper around a single pool.

    Token amounts returned by mutations are the amounts that entered or left
    the vaults; transfer fees of registered mints are applied on top of them
    when checking the caller's token guards.
    """

    def __init__(
        self,
        pool: Pool,
        config: Optional[EngineConfig] = None,
        mints: Optional[MintRegistry] = None,
        epoch: int = 0,
    ):
        self.pool = pool
        self.config = config or EngineConfig()
        self.mints = mints if mints is not None else MintRegistry()
        self.epoch = epoch
        self.tick_arrays: Dict[int, TickArray] = {}
        self.positions: Dict[str, Position] = {}
        self.limit_orders: Dict[str, LimitOrder] = {}
        self.owners: Dict[str, str] = {}
        self.vault_a: int = 0
        self.vault_b: int = 0
        self._locked: bool = False
        self._position_sequence: int = 0
        self._order_sequence: int = 0

    @property
    def pool_id(self) -> str:
        return self.pool.address

    # -- Reentrancy guard / transactions ------------------------------------

    def _acquire_lock(self) -> None:
        if self._locked:
            raise EngineLockedError(f"Pool {self.pool_id} is locked by another operation")
        self._locked = True

    def _release_lock(self) -> None:
        self._locked = False

    def _snapshot(self) -> dict:
        return copy.deepcopy({
            "pool": self.pool,
            "tick_arrays": self.tick_arrays,
            "positions": self.positions,
            "limit_orders": self.limit_orders,
            "owners": self.owners,
            "vault_a": self.vault_a,
            "vault_b": self.vault_b,
            "_position_sequence": self._position_sequence,
            "_order_sequence": self._order_sequence,
        })

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        self._acquire_lock()
        snapshot = self._snapshot()
        try:
            yield
        except Exception:
            for name, value in snapshot.items():
                setattr(self, name, value)
            logger.debug("Pool %s: %s rolled back", self.pool_id, operation)
            raise
        finally:
            self._release_lock()

    # -- Vaults -------------------------------------------------------------

    def _deposit(self, amount_a: int, amount_b: int) -> None:
        self.vault_a = checked_add(self.vault_a, amount_a, "vault_a")
        self.vault_b = checked_add(self.vault_b, amount_b, "vault_b")

    def _withdraw(self, amount_a: int, amount_b: int) -> None:
        self.vault_a = checked_sub(self.vault_a, amount_a, "vault_a")
        self.vault_b = checked_sub(self.vault_b, amount_b, "vault_b")

    def _transfer_fees(self) -> Tuple[Optional[TransferFee], Optional[TransferFee]]:
        fees = []
        for mint in (self.pool.token_mint_a, self.pool.token_mint_b):
            fees.append(self.mints.transfer_fee(mint, self.epoch) if mint in self.mints else None)
        return fees[0], fees[1]

    # -- Tick arrays --------------------------------------------------------

    def initialize_tick_array(self, start_tick_index: int) -> TickArray:
        """Create the tick array starting at ``start_tick_index``; existing arrays are returned as is."""
        if get_tick_array_start_index(start_tick_index, self.pool.tick_spacing) != start_tick_index:
            raise InvalidRangeError(
                f"Tick array start {start_tick_index} is not aligned to "
                f"{TICK_ARRAY_SIZE} x tick spacing {self.pool.tick_spacing}"
            )
        existing = self.tick_arrays.get(start_tick_index)
        if existing is not None:
            return existing
        tick_array = TickArray(start_tick_index=start_tick_index, pool=self.pool_id)
        self.tick_arrays[start_tick_index] = tick_array
        logger.debug("Pool %s: tick array %d initialized", self.pool_id, start_tick_index)
        return tick_array

    def _tick_array_for(self, tick_index: int) -> TickArray:
        start = get_tick_array_start_index(tick_index, self.pool.tick_spacing)
        tick_array = self.tick_arrays.get(start)
        if tick_array is None:
            raise InsufficientTickArraysError(
                f"Tick array {start} holding tick {tick_index} is not initialized"
            )
        return tick_array

    def get_tick(self, tick_index: int) -> Tick:
        return self._tick_array_for(tick_index).get_tick(tick_index, self.pool.tick_spacing)

    def _set_tick(self, tick_index: int, tick: Tick) -> None:
        self._tick_array_for(tick_index).set_tick(tick_index, self.pool.tick_spacing, tick)

    def swap_tick_arrays(self) -> List[TickArray]:
        """The contiguous run of initialized tick arrays around the current price."""
        step = TICK_ARRAY_SIZE * self.pool.tick_spacing
        current = get_tick_array_start_index(self.pool.tick_current_index, self.pool.tick_spacing)
        if current not in self.tick_arrays:
            raise InsufficientTickArraysError(
                f"Tick array {current} at the current price is not initialized"
            )
        lower = current
        while lower - step in self.tick_arrays:
            lower -= step
        upper = current
        while upper + step in self.tick_arrays:
            upper += step
        return [self.tick_arrays[start] for start in range(lower, upper + step, step)]

    def _owner(self, owner: Optional[str]) -> str:
        return self.config.funder if owner is None else owner

    # -- Lookups ------------------------------------------------------------

    def get_position(self, position_id: str) -> Position:
        position = self.positions.get(position_id)
        if position is None:
            raise PoolNotFoundError(f"Position {position_id} not found in pool {self.pool_id}")
        return position

    def get_limit_order(self, order_id: str) -> LimitOrder:
        limit_order = self.limit_orders.get(order_id)
        if limit_order is None:
            raise PoolNotFoundError(f"Limit order {order_id} not found in pool {self.pool_id}")
        return limit_order

    # -- Positions ----------------------------------------------------------

    def _check_position_range(self, tick_lower_index: int, tick_upper_index: int) -> None:
        validate_tick_range(tick_lower_index, tick_upper_index, self.pool.tick_spacing)
        if is_full_range_only(self.pool.tick_spacing):
            if (tick_lower_index, tick_upper_index) != get_full_range_tick_indexes(self.pool.tick_spacing):
                raise InvalidRangeError(
                    f"Pool with tick spacing {self.pool.tick_spacing} only accepts full-range positions"
                )
        self._tick_array_for(tick_lower_index)
        self._tick_array_for(tick_upper_index)

    def open_position(self, tick_lower_index: int, tick_upper_index: int, owner: Optional[str] = None) -> str:
        """Open an empty position and return its id; ``owner`` defaults to the configured funder."""
        with self._transaction("open_position"):
            owner = self._owner(owner)
            self._check_position_range(tick_lower_index, tick_upper_index)
            self._position_sequence += 1
            position_id = _deterministic_id(
                self.pool_id, owner, tick_lower_index, tick_upper_index, self._position_sequence
            )
            self.positions[position_id] = Position(
                tick_lower_index=tick_lower_index,
                tick_upper_index=tick_upper_index,
                pool=self.pool_id,
                position_mint=position_id,
            )
            self.owners[position_id] = owner
            logger.info(
                "Position %s opened on pool %s: [%d, %d)",
                position_id, self.pool_id, tick_lower_index, tick_upper_index,
            )
            return position_id

    def _modify_liquidity(self, position_id: str, liquidity_delta: int) -> Tuple[int, int]:
        position = self.get_position(position_id)
        result = modify_liquidity(
            self.pool,
            position,
            self.get_tick(position.tick_lower_index),
            self.get_tick(position.tick_upper_index),
            liquidity_delta,
        )
        self.pool = result.pool
        self.positions[position_id] = result.position
        self._set_tick(position.tick_lower_index, result.tick_lower)
        self._set_tick(position.tick_upper_index, result.tick_upper)
        return result.token_a, result.token_b

    def increase_liquidity(
        self,
        position_id: str,
        liquidity_delta: int,
        token_max_a: Optional[int] = None,
        token_max_b: Optional[int] = None,
    ) -> Tuple[int, int]:
        """
        Deposit ``liquidity_delta`` into a position.

        Raises SlippageExceededError when the tokens required, transfer fees
        included, exceed ``token_max_a``/``token_max_b``.
        """
        with self._transaction("increase_liquidity"):
            token_a, token_b = self._modify_liquidity(position_id, liquidity_delta)
            transfer_fee_a, transfer_fee_b = self._transfer_fees()
            required_a = try_reverse_apply_transfer_fee(token_a, transfer_fee_a)
            required_b = try_reverse_apply_transfer_fee(token_b, transfer_fee_b)
            if token_max_a is not None and required_a > token_max_a:
                raise SlippageExceededError(f"Token A required {required_a} exceeds maximum {token_max_a}")
            if token_max_b is not None and required_b > token_max_b:
                raise SlippageExceededError(f"Token B required {required_b} exceeds maximum {token_max_b}")
            self._deposit(token_a, token_b)
            logger.info(
                "Position %s: +%d liquidity, deposited a=%d b=%d",
                position_id, liquidity_delta, token_a, token_b,
            )
            return token_a, token_b

    def increase_liquidity_by_token(
        self,
        position_id: str,
        token_amount: int,
        token_a: bool,
        slippage_tolerance_bps: Optional[int] = None,
    ) -> Tuple[int, int]:
        """Deposit as much liquidity as ``token_amount`` of token A (or B) buys."""
        position = self.get_position(position_id)
        quote_fn = increase_liquidity_quote_a if token_a else increase_liquidity_quote_b
        quote = quote_fn(
            token_amount,
            self._slippage(slippage_tolerance_bps),
            self.pool.sqrt_price,
            position.tick_lower_index,
            position.tick_upper_index,
            *self._transfer_fees(),
        )
        return self.increase_liquidity(position_id, quote.liquidity_delta, quote.token_max_a, quote.token_max_b)

    def decrease_liquidity(
        self,
        position_id: str,
        liquidity_delta: int,
        token_min_a: int = 0,
        token_min_b: int = 0,
    ) -> Tuple[int, int]:
        """
        Withdraw ``liquidity_delta`` from a position.

        Raises SlippageExceededError when the tokens received, net of transfer
        fees, fall below ``token_min_a``/``token_min_b``.
        """
        with self._transaction("decrease_liquidity"):
            token_a, token_b = self._modify_liquidity(position_id, -liquidity_delta)
            transfer_fee_a, transfer_fee_b = self._transfer_fees()
            received_a = try_apply_transfer_fee(token_a, transfer_fee_a)
            received_b = try_apply_transfer_fee(token_b, transfer_fee_b)
            if received_a < token_min_a:
                raise SlippageExceededError(f"Token A received {received_a} is below minimum {token_min_a}")
            if received_b < token_min_b:
                raise SlippageExceededError(f"Token B received {received_b} is below minimum {token_min_b}")
            self._withdraw(token_a, token_b)
            logger.info(
                "Position %s: -%d liquidity, withdrew a=%d b=%d",
                position_id, liquidity_delta, token_a, token_b,
            )
            return token_a, token_b

    def harvest_position(self, position_id: str) -> Tuple[int, int]:
        """Pay out all fees owed to a position."""
        with self._transaction("harvest_position"):
            position = self.get_position(position_id)
            updated, amount_a, amount_b = harvest_position(
                self.pool,
                position,
                self.get_tick(position.tick_lower_index),
                self.get_tick(position.tick_upper_index),
            )
            self.positions[position_id] = updated
            self._withdraw(amount_a, amount_b)
            logger.info("Position %s harvested: a=%d b=%d", position_id, amount_a, amount_b)
            return amount_a, amount_b

    def reset_position_range(self, position_id: str, tick_lower_index: int, tick_upper_index: int) -> Position:
        with self._transaction("reset_position_range"):
            self._check_position_range(tick_lower_index, tick_upper_index)
            position = reset_position_range(
                self.get_position(position_id), tick_lower_index, tick_upper_index, self.pool.tick_spacing
            )
            self.positions[position_id] = position
            logger.info(
                "Position %s moved to [%d, %d)", position_id, tick_lower_index, tick_upper_index
            )
            return position

    def close_position(self, position_id: str) -> None:
        with self._transaction("close_position"):
            position = self.get_position(position_id)
            if not position.is_empty:
                raise PositionNotEmptyError(
                    f"Position {position_id} still holds liquidity {position.liquidity} "
                    f"or fees a={position.fee_owed_a} b={position.fee_owed_b}"
                )
            del self.positions[position_id]
            self.owners.pop(position_id, None)
            logger.info("Position %s closed", position_id)

    # -- Limit orders -------------------------------------------------------

    def _apply_order_update(self, order_id: str, update: LimitOrderUpdate) -> None:
        self.pool = update.pool
        self._set_tick(update.limit_order.tick_index, update.tick)
        self.limit_orders[order_id] = update.limit_order

    def open_limit_order(
        self, tick_index: int, a_to_b: bool, amount: int = 0, owner: Optional[str] = None
    ) -> str:
        """Place an order at ``tick_index`` and return its id; ``owner`` defaults to the configured funder."""
        with self._transaction("open_limit_order"):
            owner = self._owner(owner)
            self._order_sequence += 1
            order_id = _deterministic_id(self.pool_id, owner, tick_index, a_to_b, self._order_sequence)
            update = open_limit_order(self.pool, self.get_tick(tick_index), tick_index, a_to_b, amount, order_id)
            self._apply_order_update(order_id, update)
            self.owners[order_id] = owner
            self._deposit(update.amount_a, update.amount_b)
            logger.info(
                "Limit order %s opened on pool %s: tick=%d %s amount=%d",
                order_id, self.pool_id, tick_index, "a_to_b" if a_to_b else "b_to_a", amount,
            )
            return order_id

    def increase_limit_order(self, order_id: str, amount: int) -> Tuple[int, int]:
        with self._transaction("increase_limit_order"):
            limit_order = self.get_limit_order(order_id)
            update = increase_limit_order(self.pool, limit_order, self.get_tick(limit_order.tick_index), amount)
            self._apply_order_update(order_id, update)
            self._deposit(update.amount_a, update.amount_b)
            logger.info("Limit order %s increased by amount=%d", order_id, amount)
            return update.amount_a, update.amount_b

    def decrease_limit_order(self, order_id: str, amount: int) -> LimitOrderUpdate:
        """Withdraw ``amount`` of an order; the payout includes the fill reward."""
        with self._transaction("decrease_limit_order"):
            limit_order = self.get_limit_order(order_id)
            update = decrease_limit_order(self.pool, limit_order, self.get_tick(limit_order.tick_index), amount)
            self._apply_order_update(order_id, update)
            self._withdraw(update.amount_a, update.amount_b)
            logger.info(
                "Limit order %s decreased by amount=%d: out_a=%d out_b=%d",
                order_id, amount, update.amount_a, update.amount_b,
            )
            return update

    def close_limit_order(self, order_id: str) -> None:
        with self._transaction("close_limit_order"):
            limit_order = self.get_limit_order(order_id)
            close_limit_order(limit_order)
            del self.limit_orders[order_id]
            self.owners.pop(order_id, None)
            logger.info("Limit order %s closed", order_id)

    def withdraw_limit_order(self, order_id: str) -> Tuple[int, int]:
        """Decrease an order by its full amount and close it; returns the payout."""
        limit_order = self.get_limit_order(order_id)
        amount_a = amount_b = 0
        if limit_order.amount:
            update = self.decrease_limit_order(order_id, limit_order.amount)
            amount_a, amount_b = update.amount_a, update.amount_b
        self.close_limit_order(order_id)
        return amount_a, amount_b

    # -- Swaps --------------------------------------------------------------

    def swap(
        self,
        amount: int,
        a_to_b: bool,
        amount_specified_is_input: bool = True,
        other_amount_threshold: Optional[int] = None,
        sqrt_price_limit: int = 0,
    ) -> SwapResult:
        """
        Execute a swap against the loaded tick arrays.

        ``other_amount_threshold`` is the minimum output for exact input and
        the maximum input for exact output; None disables the guard.
        """
        if other_amount_threshold is None:
            other_amount_threshold = 0 if amount_specified_is_input else (1 << 64) - 1
        with self._transaction("swap"):
            execution = execute_swap(
                self.pool,
                self.swap_tick_arrays(),
                amount,
                other_amount_threshold,
                sqrt_price_limit,
                amount_specified_is_input,
                a_to_b,
            )
            self.pool = execution.pool
            for tick_array in execution.tick_arrays:
                self.tick_arrays[tick_array.start_tick_index] = tick_array
            result = execution.result
            if a_to_b:
                self._deposit(result.token_a, 0)
                self._withdraw(0, result.token_b)
            else:
                self._deposit(0, result.token_b)
                self._withdraw(result.token_a, 0)
            logger.info(
                "Pool %s swap %s: a=%d b=%d fee=%d tick=%d",
                self.pool_id, "a_to_b" if a_to_b else "b_to_a",
                result.token_a, result.token_b, result.fee_amount, result.next_tick_index,
            )
            return result

    # -- Protocol fees ------------------------------------------------------

    def collect_protocol_fees(self) -> Tuple[int, int]:
        """Pay out and zero the protocol fees in one step."""
        with self._transaction("collect_protocol_fees"):
            self.pool, amount_a, amount_b = collect_protocol_fees(self.pool)
            self._withdraw(amount_a, amount_b)
            logger.info("Pool %s protocol fees collected: a=%d b=%d", self.pool_id, amount_a, amount_b)
            return amount_a, amount_b

    # -- Quotes -------------------------------------------------------------

    def _slippage(self, slippage_tolerance_bps: Optional[int]) -> int:
        if slippage_tolerance_bps is None:
            return self.config.slippage_tolerance_bps
        return slippage_tolerance_bps

    def swap_quote_by_input_token(
        self, token_in: int, specified_token_a: bool, slippage_tolerance_bps: Optional[int] = None
    ) -> ExactInSwapQuote:
        return swap_quote_by_input_token(
            token_in,
            specified_token_a,
            self._slippage(slippage_tolerance_bps),
            self.pool,
            self.swap_tick_arrays(),
            *self._transfer_fees(),
        )

    def swap_quote_by_output_token(
        self, token_out: int, specified_token_a: bool, slippage_tolerance_bps: Optional[int] = None
    ) -> ExactOutSwapQuote:
        return swap_quote_by_output_token(
            token_out,
            specified_token_a,
            self._slippage(slippage_tolerance_bps),
            self.pool,
            self.swap_tick_arrays(),
            *self._transfer_fees(),
        )

    def increase_liquidity_quote(
        self,
        liquidity_delta: int,
        tick_lower_index: int,
        tick_upper_index: int,
        slippage_tolerance_bps: Optional[int] = None,
    ) -> IncreaseLiquidityQuote:
        return increase_liquidity_quote(
            liquidity_delta,
            self._slippage(slippage_tolerance_bps),
            self.pool.sqrt_price,
            tick_lower_index,
            tick_upper_index,
            *self._transfer_fees(),
        )

    def decrease_liquidity_quote(
        self, position_id: str, liquidity_delta: int, slippage_tolerance_bps: Optional[int] = None
    ) -> DecreaseLiquidityQuote:
        position = self.get_position(position_id)
        return decrease_liquidity_quote(
            liquidity_delta,
            self._slippage(slippage_tolerance_bps),
            self.pool.sqrt_price,
            position.tick_lower_index,
            position.tick_upper_index,
            *self._transfer_fees(),
        )

    def collect_fees_quote(self, position_id: str) -> CollectFeesQuote:
        position = self.get_position(position_id)
        return collect_fees_quote(
            self.pool,
            position,
            self.get_tick(position.tick_lower_index),
            self.get_tick(position.tick_upper_index),
            *self._transfer_fees(),
        )

    def decrease_limit_order_quote(self, order_id: str, amount: int) -> LimitOrderDecreaseQuote:
        limit_order = self.get_limit_order(order_id)
        return decrease_limit_order_quote(
            self.pool, limit_order, self.get_tick(limit_order.tick_index), amount, *self._transfer_fees()
        )

    def order_book(self, price_step: PriceLike, max_entries: int = 100, invert: bool = False) -> OrderBook:
        decimals_a = decimals_b = 0
        if self.pool.token_mint_a in self.mints and self.pool.token_mint_b in self.mints:
            decimals_a = self.mints.get(self.pool.token_mint_a).decimals
            decimals_b = self.mints.get(self.pool.token_mint_b).decimals
        return get_order_book(
            self.pool, self.swap_tick_arrays(), price_step, max_entries, invert, decimals_a, decimals_b
        )

    # -- Accounting ---------------------------------------------------------

    def solvency(self) -> Dict[str, int]:
        """Vault balances against what the pool still owes outside positions."""
        return {
            "vault_a": self.vault_a,
            "vault_b": self.vault_b,
            "protocol_fee_owed_a": self.pool.protocol_fee_owed_a,
            "protocol_fee_owed_b": self.pool.protocol_fee_owed_b,
            "olp_fee_owed_a": self.pool.olp_fee_owed_a,
            "olp_fee_owed_b": self.pool.olp_fee_owed_b,
        }


# ---------------------------------------------------------------------------
# Pool manager
# ---------------------------------------------------------------------------

class PoolManager:
    """
    Registry of pool engines.

    Handles:
      - Pool creation keyed by (mint A, mint B, tick spacing)
      - Pool lookup by id / by key
      - Shared mint registry and configuration
      - Deterministic pool IDs
    """

    def __init__(self, config: Optional[EngineConfig] = None, mints: Optional[MintRegistry] = None) -> None:
        self.config = config or EngineConfig()
        self.mints = mints if mints is not None else MintRegistry()
        self._pools: Dict[str, PoolEngine] = {}
        self._key_index: Dict[Tuple[str, str, int], str] = {}

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    def create_pool(
        self,
        token_mint_a: str,
        token_mint_b: str,
        tick_spacing: int,
        initial_sqrt_price: int,
        fee_rate: int = 0,
        protocol_fee_rate: int = 0,
        order_protocol_fee_rate: int = 0,
        clp_reward_rate: int = 0,
    ) -> PoolEngine:
        """Create and register a new pool."""
        if not token_mint_a < token_mint_b:
            raise InvalidMintOrderError(
                f"Token mint A ({token_mint_a}) must sort before token mint B ({token_mint_b})"
            )
        key = (token_mint_a, token_mint_b, tick_spacing)
        if key in self._key_index:
            raise PoolAlreadyExistsError(
                f"Pool already exists for {token_mint_a}/{token_mint_b} with tick spacing {tick_spacing}"
            )

        pool_id = _deterministic_id(token_mint_a, token_mint_b, tick_spacing)
        pool = Pool(
            tick_spacing=tick_spacing,
            sqrt_price=initial_sqrt_price,
            fee_rate=fee_rate,
            protocol_fee_rate=protocol_fee_rate,
            order_protocol_fee_rate=order_protocol_fee_rate,
            clp_reward_rate=clp_reward_rate,
            token_mint_a=token_mint_a,
            token_mint_b=token_mint_b,
            token_vault_a=_deterministic_id(pool_id, token_mint_a),
            token_vault_b=_deterministic_id(pool_id, token_mint_b),
            address=pool_id,
        )
        engine = PoolEngine(pool, config=self.config, mints=self.mints)
        self._pools[pool_id] = engine
        self._key_index[key] = pool_id

        logger.info(
            "Pool %s created: %s/%s tick_spacing=%d fee_rate=%d",
            pool_id, token_mint_a, token_mint_b, tick_spacing, fee_rate,
        )
        return engine

    def get_pool(self, pool_id: str) -> PoolEngine:
        engine = self._pools.get(pool_id)
        if engine is None:
            raise PoolNotFoundError(f"Pool {pool_id} not found")
        return engine

    def find_pool(self, token_mint_a: str, token_mint_b: str, tick_spacing: int) -> PoolEngine:
        pool_id = self._key_index.get((token_mint_a, token_mint_b, tick_spacing))
        if pool_id is None:
            raise PoolNotFoundError(
                f"No pool for {token_mint_a}/{token_mint_b} with tick spacing {tick_spacing}"
            )
        return self._pools[pool_id]

    def get_pools_for_pair(self, token_mint_a: str, token_mint_b: str) -> List[PoolEngine]:
        return [
            self._pools[pool_id]
            for (mint_a, mint_b, _), pool_id in sorted(self._key_index.items())
            if (mint_a, mint_b) == (token_mint_a, token_mint_b)
        ]

    def get_all_pools(self) -> List[PoolEngine]:
        return list(self._pools.values())
