"""Process-lifetime pool state: reserves and processed transactions."""

from liquidity.state.balances import BalanceTracker, ReserveState
from liquidity.state.seen import SeenSet

__all__ = ["BalanceTracker", "ReserveState", "SeenSet"]
