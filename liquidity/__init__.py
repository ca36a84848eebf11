"""Token Liquidity - bonding curve pool between a coin and a token."""

from liquidity.config import PoolConfig
from liquidity.pool import LiquidityPool, create_pool
from liquidity.reconciler import NO_CHANGE, ReconcileResult, Reconciler

__version__ = "0.1.0"
__all__ = [
    "LiquidityPool",
    "NO_CHANGE",
    "PoolConfig",
    "ReconcileResult",
    "Reconciler",
    "__version__",
    "create_pool",
]
