"""
HybridAMM Engine

Concentrated-liquidity pool with tick-resident limit orders.

Components:
  - Fixed-point price math (Q64.64 sqrt-price, tick conversions)
  - Tick / TickArray model with limit-order cohorts
  - Liquidity quotes and position liquidity changes
  - Fee-growth accounting and collection
  - Limit-order engine (placement, fills, rewards)
  - Swap state machine, quotes and execution
  - Record codecs, order-book view, mint registry
  - In-memory PoolEngine / PoolManager facade
"""

from .tick_math import (
    PriceLike,
    tick_index_to_sqrt_price,
    sqrt_price_to_tick_index,
    price_to_sqrt_price,
    sqrt_price_to_price,
    tick_index_to_price,
    price_to_tick_index,
    invert_tick_index,
    invert_price,
    invert_sqrt_price,
    get_initializable_tick_index,
    get_prev_initializable_tick_index,
    get_next_initializable_tick_index,
    is_tick_initializable,
    is_tick_index_in_bounds,
    order_tick_indexes,
    get_full_range_tick_indexes,
    is_full_range_only,
    get_tick_array_start_index,
    get_tick_index_in_array,
    swap_tick_array_start_indexes,
)
from .token_math import (
    TransferFee,
    try_get_amount_delta_a,
    try_get_amount_delta_b,
    try_get_next_sqrt_price_from_a,
    try_get_next_sqrt_price_from_b,
    try_apply_swap_fee,
    try_reverse_apply_swap_fee,
    try_apply_transfer_fee,
    try_reverse_apply_transfer_fee,
    try_get_max_amount_with_slippage_tolerance,
    try_get_min_amount_with_slippage_tolerance,
)
from .state import (
    Pool,
    Position,
    LimitOrder,
    PositionBundle,
)
from .ticks import (
    Tick,
    TickArray,
    TickArraySequence,
    update_tick,
    cross_tick,
)
from .fees import (
    CollectFeesQuote,
    collect_fees_quote,
    collect_protocol_fees,
    harvest_position,
)
from .liquidity import (
    PositionStatus,
    PositionRatio,
    IncreaseLiquidityQuote,
    DecreaseLiquidityQuote,
    position_status,
    is_position_in_range,
    position_ratio_x64,
    increase_liquidity_quote,
    increase_liquidity_quote_a,
    increase_liquidity_quote_b,
    decrease_liquidity_quote,
    decrease_liquidity_quote_a,
    decrease_liquidity_quote_b,
    modify_liquidity,
    reset_position_range,
)
from .limit_orders import (
    LimitOrderDecreaseQuote,
    LimitOrderUpdate,
    validate_limit_order_placement,
    limit_order_quote_by_input_token,
    limit_order_quote_by_output_token,
    decrease_limit_order_quote,
    open_limit_order,
    increase_limit_order,
    decrease_limit_order,
    close_limit_order,
)
from .swap import (
    SwapResult,
    ExactInSwapQuote,
    ExactOutSwapQuote,
    TwoHopExactInSwapQuote,
    TwoHopExactOutSwapQuote,
    compute_swap,
    swap_quote_by_input_token,
    swap_quote_by_output_token,
    two_hop_swap_quote_by_input_token,
    two_hop_swap_quote_by_output_token,
    execute_swap,
)
from .tokens import (
    MintCapability,
    TransferFeeConfig,
    MintInfo,
    MintRegistry,
)
from .order_book import (
    OrderBook,
    OrderBookEntry,
    get_order_book,
    get_order_book_side,
)
from .pool import (
    PoolEngine,
    PoolManager,
)

__all__ = [
    # Price math
    "PriceLike", "tick_index_to_sqrt_price", "sqrt_price_to_tick_index",
    "price_to_sqrt_price", "sqrt_price_to_price", "tick_index_to_price",
    "price_to_tick_index", "invert_tick_index", "invert_price", "invert_sqrt_price",
    "get_initializable_tick_index", "get_prev_initializable_tick_index",
    "get_next_initializable_tick_index", "is_tick_initializable", "is_tick_index_in_bounds",
    "order_tick_indexes", "get_full_range_tick_indexes", "is_full_range_only",
    "get_tick_array_start_index", "get_tick_index_in_array", "swap_tick_array_start_indexes",
    # Token math
    "TransferFee", "try_get_amount_delta_a", "try_get_amount_delta_b",
    "try_get_next_sqrt_price_from_a", "try_get_next_sqrt_price_from_b",
    "try_apply_swap_fee", "try_reverse_apply_swap_fee", "try_apply_transfer_fee",
    "try_reverse_apply_transfer_fee", "try_get_max_amount_with_slippage_tolerance",
    "try_get_min_amount_with_slippage_tolerance",
    # State
    "Pool", "Position", "LimitOrder", "PositionBundle",
    "Tick", "TickArray", "TickArraySequence", "update_tick", "cross_tick",
    # Fees
    "CollectFeesQuote", "collect_fees_quote", "collect_protocol_fees", "harvest_position",
    # Liquidity
    "PositionStatus", "PositionRatio", "IncreaseLiquidityQuote", "DecreaseLiquidityQuote",
    "position_status", "is_position_in_range", "position_ratio_x64",
    "increase_liquidity_quote", "increase_liquidity_quote_a", "increase_liquidity_quote_b",
    "decrease_liquidity_quote", "decrease_liquidity_quote_a", "decrease_liquidity_quote_b",
    "modify_liquidity", "reset_position_range",
    # Limit orders
    "LimitOrderDecreaseQuote", "LimitOrderUpdate", "validate_limit_order_placement",
    "limit_order_quote_by_input_token", "limit_order_quote_by_output_token",
    "decrease_limit_order_quote", "open_limit_order", "increase_limit_order",
    "decrease_limit_order", "close_limit_order",
    # Swap
    "SwapResult", "ExactInSwapQuote", "ExactOutSwapQuote",
    "TwoHopExactInSwapQuote", "TwoHopExactOutSwapQuote", "compute_swap",
    "swap_quote_by_input_token", "swap_quote_by_output_token",
    "two_hop_swap_quote_by_input_token", "two_hop_swap_quote_by_output_token", "execute_swap",
    # Tokens
    "MintCapability", "TransferFeeConfig", "MintInfo", "MintRegistry",
    # Order book
    "OrderBook", "OrderBookEntry", "get_order_book", "get_order_book_side",
    # Facade
    "PoolEngine", "PoolManager",
]
