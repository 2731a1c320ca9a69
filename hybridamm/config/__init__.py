"""
HybridAMM Configuration

Loads hybridamm.toml; environment variables override TOML values.
"""

from .loader import (
    EngineConfig,
    QuoteConfig,
    LoggingConfig,
    DEFAULT_SLIPPAGE_TOLERANCE_BPS,
    load_config,
)

__all__ = [
    "EngineConfig",
    "QuoteConfig",
    "LoggingConfig",
    "DEFAULT_SLIPPAGE_TOLERANCE_BPS",
    "load_config",
]
