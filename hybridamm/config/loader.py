"""
HybridAMM TOML Configuration Loader

Loads the [quote] and [logging] sections of hybridamm.toml with environment
variable overrides (dataclass + from_dict + from_file).

Environment variable mapping:
    [quote] slippage_tolerance_bps → HYBRIDAMM_SLIPPAGE_TOLERANCE_BPS
    [quote] funder                 → HYBRIDAMM_FUNDER
    [logging] level                → HYBRIDAMM_LOG_LEVEL

The resulting EngineConfig is an explicit value: it is handed to the
PoolEngine and threaded into each quote, never stored process-wide.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import BPS_DENOMINATOR
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE_TOLERANCE_BPS = 100
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class QuoteConfig:
    """[quote] section."""
    slippage_tolerance_bps: int = DEFAULT_SLIPPAGE_TOLERANCE_BPS
    # default owner of positions and orders opened without one
    funder: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteConfig":
        return cls(
            slippage_tolerance_bps=int(data.get("slippage_tolerance_bps", DEFAULT_SLIPPAGE_TOLERANCE_BPS)),
            funder=str(data.get("funder", "")),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("HYBRIDAMM_SLIPPAGE_TOLERANCE_BPS"):
            self.slippage_tolerance_bps = int(v)
        if v := os.environ.get("HYBRIDAMM_FUNDER"):
            self.funder = v


@dataclass
class LoggingConfig:
    """[logging] section."""
    level: str = "INFO"
    file_output: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            file_output=bool(data.get("file_output", False)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("HYBRIDAMM_LOG_LEVEL"):
            self.level = v.upper()


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Complete engine configuration."""
    quote: QuoteConfig = field(default_factory=QuoteConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def slippage_tolerance_bps(self) -> int:
        return self.quote.slippage_tolerance_bps

    @property
    def funder(self) -> str:
        return self.quote.funder

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from a parsed TOML dict."""
        return cls(
            quote=QuoteConfig.from_dict(data.get("quote", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults are used, with environment
        overrides still applied.
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            raw = tomli.load(f)

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.quote.apply_env()
        self.logging.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if not 0 <= self.quote.slippage_tolerance_bps <= BPS_DENOMINATOR:
            raise ConfigurationError(
                f"slippage_tolerance_bps must be within [0, {BPS_DENOMINATOR}], "
                f"got {self.quote.slippage_tolerance_bps}"
            )
        if self.logging.level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "quote": {
                "slippage_tolerance_bps": self.quote.slippage_tolerance_bps,
                "funder": self.quote.funder,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration.

    Resolution order:
        1. Explicit *path* argument
        2. HYBRIDAMM_CONFIG env var
        3. ./hybridamm.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("HYBRIDAMM_CONFIG", "hybridamm.toml")

    cfg = EngineConfig.from_file(path)
    cfg.validate()
    return cfg
