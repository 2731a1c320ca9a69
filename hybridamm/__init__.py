"""
HybridAMM Package

Concentrated-liquidity AMM engine with tick-resident limit orders.

Engine imports are lazily loaded so that importing the package does not
read the .env file used by the logging layer. For direct access, import
from submodules:

    from hybridamm.engine import PoolManager, swap_quote_by_input_token
    from hybridamm.config import load_config
    from hybridamm.exceptions import SlippageExceededError
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'PoolManager':
        from .engine import PoolManager
        return PoolManager
    elif name == 'PoolEngine':
        from .engine import PoolEngine
        return PoolEngine
    elif name == 'EngineConfig':
        from .config import EngineConfig
        return EngineConfig
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'hybridamm' has no attribute {name!r}")

__all__ = ['PoolManager', 'PoolEngine', 'EngineConfig', 'load_config']
