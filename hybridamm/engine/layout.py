"""
Fixed-size binary records.

Offsets follow the account layouts the persistence layer filters on with
memory-compare searches, so they must not move:

  - Pool:        mints at 11/43, vaults at 75/107, tick_spacing at 139,
                 fee_rate at 143, protocol_fee_rate at 145
  - Tick:        113 bytes, 88 per tick array
  - TickArray:   start_tick_index at 8, owning pool at 113*88 + 12
  - LimitOrder:  pool at 10, order mint at 42
  - Position:    pool at 10, position mint at 42, ticks at 90/94

All integers are little-endian; u128/i128 fields are written as 16 raw
bytes. Addresses are 32 bytes; string ids are stored as zero-padded UTF-8.
"""

from __future__ import annotations

import struct
from typing import Union

from ..constants import (
    ADDRESS_SIZE,
    ENDIAN,
    LIMIT_ORDER_DISCRIMINATOR,
    POOL_DISCRIMINATOR,
    POSITION_BUNDLE_DISCRIMINATOR,
    POSITION_BUNDLE_SIZE,
    POSITION_DISCRIMINATOR,
    TICK_ARRAY_DISCRIMINATOR,
    TICK_ARRAY_SIZE,
    TICK_RECORD_SIZE,
)
from ..exceptions import InvalidRecordError
from .state import LimitOrder, Pool, Position, PositionBundle
from .ticks import Tick, TickArray

Address = Union[str, bytes]

DISCRIMINATOR_SIZE = 8
POOL_RESERVED_SIZE = 128
LIMIT_ORDER_RESERVED_SIZE = 64
POSITION_RESERVED_SIZE = 64

# bump, version, 4 addresses, tick_spacing, seed, 4 rates
_POOL_HEAD = struct.Struct("<BH32s32s32s32sH2sHHHH")
# protocol_fee_owed_a/b
_POOL_OWED = struct.Struct("<QQ")
# orders_total_a/b, orders_filled_a/b, olp_fee_owed_a/b
_POOL_ORDERS = struct.Struct("<QQQQQQ")
_TICK_COUNTERS = struct.Struct("<QQQQQQ")
_LIMIT_ORDER = struct.Struct("<H32s32si?QQ")
_POSITION_HEAD = struct.Struct("<H32s32s")

POOL_RECORD_SIZE = (
    DISCRIMINATOR_SIZE + _POOL_HEAD.size + 16 + 16 + 4 + _POOL_OWED.size + 32 + _POOL_ORDERS.size
    + POOL_RESERVED_SIZE
)
TICK_ARRAY_POOL_OFFSET = TICK_RECORD_SIZE * TICK_ARRAY_SIZE + 12
TICK_ARRAY_RECORD_SIZE = TICK_ARRAY_POOL_OFFSET + ADDRESS_SIZE
LIMIT_ORDER_RECORD_SIZE = DISCRIMINATOR_SIZE + _LIMIT_ORDER.size + LIMIT_ORDER_RESERVED_SIZE
POSITION_RECORD_SIZE = DISCRIMINATOR_SIZE + _POSITION_HEAD.size + 16 + 4 + 4 + 16 + 8 + 16 + 8 + POSITION_RESERVED_SIZE
POSITION_BUNDLE_RECORD_SIZE = DISCRIMINATOR_SIZE + ADDRESS_SIZE + POSITION_BUNDLE_SIZE // 8


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def encode_address(address: Address) -> bytes:
    raw = address if isinstance(address, bytes) else address.encode("utf-8")
    if len(raw) > ADDRESS_SIZE:
        raise InvalidRecordError(f"Address is longer than {ADDRESS_SIZE} bytes: {address!r}")
    return raw.ljust(ADDRESS_SIZE, b"\x00")


def decode_address(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8")


def _u128(value: int) -> bytes:
    return value.to_bytes(16, ENDIAN)


def _i128(value: int) -> bytes:
    return value.to_bytes(16, ENDIAN, signed=True)


def _read_u128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 16], ENDIAN)


def _read_i128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 16], ENDIAN, signed=True)


def _check_record(data: bytes, discriminator: bytes, size: int, kind: str) -> None:
    if len(data) != size:
        raise InvalidRecordError(f"{kind} record must be {size} bytes, got {len(data)}")
    if data[:DISCRIMINATOR_SIZE] != discriminator:
        raise InvalidRecordError(f"{kind} record has an unexpected discriminator")


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

def encode_pool(pool: Pool) -> bytes:
    parts = [
        POOL_DISCRIMINATOR,
        _POOL_HEAD.pack(
            pool.bump,
            pool.version,
            encode_address(pool.token_mint_a),
            encode_address(pool.token_mint_b),
            encode_address(pool.token_vault_a),
            encode_address(pool.token_vault_b),
            pool.tick_spacing,
            pool.tick_spacing_seed,
            pool.fee_rate,
            pool.protocol_fee_rate,
            pool.order_protocol_fee_rate,
            pool.clp_reward_rate,
        ),
        _u128(pool.liquidity),
        _u128(pool.sqrt_price),
        pool.tick_current_index.to_bytes(4, ENDIAN, signed=True),
        _POOL_OWED.pack(pool.protocol_fee_owed_a, pool.protocol_fee_owed_b),
        _u128(pool.fee_growth_global_a),
        _u128(pool.fee_growth_global_b),
        _POOL_ORDERS.pack(
            pool.orders_total_amount_a,
            pool.orders_total_amount_b,
            pool.orders_filled_amount_a,
            pool.orders_filled_amount_b,
            pool.olp_fee_owed_a,
            pool.olp_fee_owed_b,
        ),
        bytes(POOL_RESERVED_SIZE),
    ]
    return b"".join(parts)


def decode_pool(data: bytes, address: str = "") -> Pool:
    _check_record(data, POOL_DISCRIMINATOR, POOL_RECORD_SIZE, "Pool")
    offset = DISCRIMINATOR_SIZE
    (
        bump, version, mint_a, mint_b, vault_a, vault_b, tick_spacing, _seed,
        fee_rate, protocol_fee_rate, order_protocol_fee_rate, clp_reward_rate,
    ) = _POOL_HEAD.unpack_from(data, offset)
    offset += _POOL_HEAD.size
    liquidity = _read_u128(data, offset)
    sqrt_price = _read_u128(data, offset + 16)
    tick_current_index = int.from_bytes(data[offset + 32:offset + 36], ENDIAN, signed=True)
    offset += 36
    protocol_fee_owed_a, protocol_fee_owed_b = _POOL_OWED.unpack_from(data, offset)
    offset += _POOL_OWED.size
    fee_growth_global_a = _read_u128(data, offset)
    fee_growth_global_b = _read_u128(data, offset + 16)
    offset += 32
    (
        orders_total_amount_a, orders_total_amount_b,
        orders_filled_amount_a, orders_filled_amount_b,
        olp_fee_owed_a, olp_fee_owed_b,
    ) = _POOL_ORDERS.unpack_from(data, offset)

    return Pool(
        tick_spacing=tick_spacing,
        sqrt_price=sqrt_price,
        fee_rate=fee_rate,
        tick_current_index=tick_current_index,
        protocol_fee_rate=protocol_fee_rate,
        order_protocol_fee_rate=order_protocol_fee_rate,
        clp_reward_rate=clp_reward_rate,
        liquidity=liquidity,
        fee_growth_global_a=fee_growth_global_a,
        fee_growth_global_b=fee_growth_global_b,
        protocol_fee_owed_a=protocol_fee_owed_a,
        protocol_fee_owed_b=protocol_fee_owed_b,
        orders_total_amount_a=orders_total_amount_a,
        orders_total_amount_b=orders_total_amount_b,
        orders_filled_amount_a=orders_filled_amount_a,
        orders_filled_amount_b=orders_filled_amount_b,
        olp_fee_owed_a=olp_fee_owed_a,
        olp_fee_owed_b=olp_fee_owed_b,
        token_mint_a=decode_address(mint_a),
        token_mint_b=decode_address(mint_b),
        token_vault_a=decode_address(vault_a),
        token_vault_b=decode_address(vault_b),
        address=address,
        bump=bump,
        version=version,
    )


# ---------------------------------------------------------------------------
# Tick / TickArray
# ---------------------------------------------------------------------------

def encode_tick(tick: Tick) -> bytes:
    return b"".join((
        bytes([1 if tick.initialized else 0]),
        _i128(tick.liquidity_net),
        _u128(tick.liquidity_gross),
        _u128(tick.fee_growth_outside_a),
        _u128(tick.fee_growth_outside_b),
        _TICK_COUNTERS.pack(
            tick.age,
            tick.open_orders_input,
            tick.part_filled_orders_input,
            tick.part_filled_orders_remaining_input,
            tick.fulfilled_a_to_b_orders_input,
            tick.fulfilled_b_to_a_orders_input,
        ),
    ))


def decode_tick(data: bytes) -> Tick:
    if len(data) != TICK_RECORD_SIZE:
        raise InvalidRecordError(f"Tick record must be {TICK_RECORD_SIZE} bytes, got {len(data)}")
    (
        age, open_orders_input, part_filled_orders_input, part_filled_orders_remaining_input,
        fulfilled_a_to_b_orders_input, fulfilled_b_to_a_orders_input,
    ) = _TICK_COUNTERS.unpack_from(data, 65)
    return Tick(
        initialized=bool(data[0]),
        liquidity_net=_read_i128(data, 1),
        liquidity_gross=_read_u128(data, 17),
        fee_growth_outside_a=_read_u128(data, 33),
        fee_growth_outside_b=_read_u128(data, 49),
        age=age,
        open_orders_input=open_orders_input,
        part_filled_orders_input=part_filled_orders_input,
        part_filled_orders_remaining_input=part_filled_orders_remaining_input,
        fulfilled_a_to_b_orders_input=fulfilled_a_to_b_orders_input,
        fulfilled_b_to_a_orders_input=fulfilled_b_to_a_orders_input,
    )


def encode_tick_array(tick_array: TickArray) -> bytes:
    return b"".join((
        TICK_ARRAY_DISCRIMINATOR,
        tick_array.start_tick_index.to_bytes(4, ENDIAN, signed=True),
        b"".join(encode_tick(tick) for tick in tick_array.ticks),
        encode_address(tick_array.pool),
    ))


def decode_tick_array(data: bytes) -> TickArray:
    _check_record(data, TICK_ARRAY_DISCRIMINATOR, TICK_ARRAY_RECORD_SIZE, "TickArray")
    start_tick_index = int.from_bytes(data[8:12], ENDIAN, signed=True)
    ticks = [
        decode_tick(data[12 + i * TICK_RECORD_SIZE:12 + (i + 1) * TICK_RECORD_SIZE])
        for i in range(TICK_ARRAY_SIZE)
    ]
    return TickArray(
        start_tick_index=start_tick_index,
        ticks=ticks,
        pool=decode_address(data[TICK_ARRAY_POOL_OFFSET:]),
    )


# ---------------------------------------------------------------------------
# Limit order / position / bundle
# ---------------------------------------------------------------------------

def encode_limit_order(limit_order: LimitOrder) -> bytes:
    return b"".join((
        LIMIT_ORDER_DISCRIMINATOR,
        _LIMIT_ORDER.pack(
            limit_order.version,
            encode_address(limit_order.pool),
            encode_address(limit_order.limit_order_mint),
            limit_order.tick_index,
            limit_order.a_to_b,
            limit_order.age,
            limit_order.amount,
        ),
        bytes(LIMIT_ORDER_RESERVED_SIZE),
    ))


def decode_limit_order(data: bytes) -> LimitOrder:
    _check_record(data, LIMIT_ORDER_DISCRIMINATOR, LIMIT_ORDER_RECORD_SIZE, "LimitOrder")
    version, pool, mint, tick_index, a_to_b, age, amount = _LIMIT_ORDER.unpack_from(data, DISCRIMINATOR_SIZE)
    return LimitOrder(
        tick_index=tick_index,
        a_to_b=a_to_b,
        amount=amount,
        age=age,
        pool=decode_address(pool),
        limit_order_mint=decode_address(mint),
        version=version,
    )


def encode_position(position: Position) -> bytes:
    return b"".join((
        POSITION_DISCRIMINATOR,
        _POSITION_HEAD.pack(
            position.version,
            encode_address(position.pool),
            encode_address(position.position_mint),
        ),
        _u128(position.liquidity),
        position.tick_lower_index.to_bytes(4, ENDIAN, signed=True),
        position.tick_upper_index.to_bytes(4, ENDIAN, signed=True),
        _u128(position.fee_growth_checkpoint_a),
        position.fee_owed_a.to_bytes(8, ENDIAN),
        _u128(position.fee_growth_checkpoint_b),
        position.fee_owed_b.to_bytes(8, ENDIAN),
        bytes(POSITION_RESERVED_SIZE),
    ))


def decode_position(data: bytes) -> Position:
    _check_record(data, POSITION_DISCRIMINATOR, POSITION_RECORD_SIZE, "Position")
    version, pool, mint = _POSITION_HEAD.unpack_from(data, DISCRIMINATOR_SIZE)
    return Position(
        tick_lower_index=int.from_bytes(data[90:94], ENDIAN, signed=True),
        tick_upper_index=int.from_bytes(data[94:98], ENDIAN, signed=True),
        liquidity=_read_u128(data, 74),
        fee_growth_checkpoint_a=_read_u128(data, 98),
        fee_owed_a=int.from_bytes(data[114:122], ENDIAN),
        fee_growth_checkpoint_b=_read_u128(data, 122),
        fee_owed_b=int.from_bytes(data[138:146], ENDIAN),
        pool=decode_address(pool),
        position_mint=decode_address(mint),
        version=version,
    )


def encode_position_bundle(bundle: PositionBundle) -> bytes:
    return b"".join((
        POSITION_BUNDLE_DISCRIMINATOR,
        encode_address(bundle.position_bundle_mint),
        bundle.bitmap.to_bytes(POSITION_BUNDLE_SIZE // 8, ENDIAN),
    ))


def decode_position_bundle(data: bytes) -> PositionBundle:
    _check_record(data, POSITION_BUNDLE_DISCRIMINATOR, POSITION_BUNDLE_RECORD_SIZE, "PositionBundle")
    return PositionBundle(
        position_bundle_mint=decode_address(data[8:8 + ADDRESS_SIZE]),
        bitmap=int.from_bytes(data[8 + ADDRESS_SIZE:], ENDIAN),
    )
