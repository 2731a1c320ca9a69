"""
Mint metadata used by the quote engines.

Token extensions are resolved once, when a mint is first registered, into a
``MintCapability`` tag cached next to the decimals. Quotes then only ever see
an optional ``TransferFee``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional

from ..exceptions import InvalidRecordError, PoolNotFoundError
from .token_math import TransferFee

logger = logging.getLogger(__name__)


class MintCapability(str, Enum):
    PLAIN = "plain"
    TRANSFER_FEE = "transfer_fee"
    BADGED = "badged"
    TRANSFER_FEE_BADGED = "transfer_fee_badged"

    @classmethod
    def resolve(cls, has_transfer_fee: bool, badged: bool) -> "MintCapability":
        if has_transfer_fee:
            return cls.TRANSFER_FEE_BADGED if badged else cls.TRANSFER_FEE
        return cls.BADGED if badged else cls.PLAIN

    @property
    def has_transfer_fee(self) -> bool:
        return self in (MintCapability.TRANSFER_FEE, MintCapability.TRANSFER_FEE_BADGED)

    @property
    def badged(self) -> bool:
        return self in (MintCapability.BADGED, MintCapability.TRANSFER_FEE_BADGED)


@dataclass(frozen=True)
class TransferFeeConfig:
    """A scheduled transfer fee: ``newer`` applies from ``newer_epoch`` on."""
    older: TransferFee
    newer: TransferFee
    newer_epoch: int = 0

    def fee_for_epoch(self, epoch: int) -> TransferFee:
        return self.newer if epoch >= self.newer_epoch else self.older


@dataclass(frozen=True)
class MintInfo:
    address: str
    decimals: int
    capability: MintCapability = MintCapability.PLAIN
    transfer_fee_config: Optional[TransferFeeConfig] = None

    def transfer_fee(self, epoch: int = 0) -> Optional[TransferFee]:
        """Fee in force at ``epoch``, or None for mints without the extension."""
        if self.transfer_fee_config is None:
            return None
        return self.transfer_fee_config.fee_for_epoch(epoch)


class MintRegistry:
    """Resolve-once cache of mint metadata keyed by mint address."""

    def __init__(self) -> None:
        self._mints: Dict[str, MintInfo] = {}

    def register(
        self,
        address: str,
        decimals: int,
        transfer_fee_config: Optional[TransferFeeConfig] = None,
        badged: bool = False,
    ) -> MintInfo:
        """
        Resolve and cache a mint. Registering an already known mint returns
        the cached entry unchanged.
        """
        cached = self._mints.get(address)
        if cached is not None:
            return cached
        if not 0 <= decimals <= 255:
            raise InvalidRecordError(f"Mint {address} has invalid decimals: {decimals}")
        info = MintInfo(
            address=address,
            decimals=decimals,
            capability=MintCapability.resolve(transfer_fee_config is not None, badged),
            transfer_fee_config=transfer_fee_config,
        )
        self._mints[address] = info
        logger.debug("Mint %s registered as %s (decimals=%d)", address, info.capability.value, decimals)
        return info

    def get(self, address: str) -> MintInfo:
        info = self._mints.get(address)
        if info is None:
            raise PoolNotFoundError(f"Mint {address} is not registered")
        return info

    def transfer_fee(self, address: str, epoch: int = 0) -> Optional[TransferFee]:
        return self.get(address).transfer_fee(epoch)

    def __contains__(self, address: object) -> bool:
        return address in self._mints

    def __iter__(self) -> Iterator[MintInfo]:
        return iter(self._mints.values())

    def __len__(self) -> int:
        return len(self._mints)
