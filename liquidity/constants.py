"""Protocol constants for the token liquidity pool.

Centralizes the curve calibration and chain unit parameters.
"""

from decimal import Decimal

# Fixed deduction for the on-chain settlement cost (270 satoshis)
SETTLEMENT_FEE = Decimal("0.0000027")

# Smallest indivisible units per coin (1e8 satoshis per BCH)
SMALLEST_UNITS_PER_COIN = 10**8

# All externally visible quantities carry at most 8 fractional digits
QUANTITY_DECIMALS = 8

# Historical curve calibration: 25 coins against 5000 tokens
DEFAULT_COIN_ORIGINAL = Decimal("25")
DEFAULT_TOKEN_ORIGINAL = Decimal("5000")

# Notional coin amount used to quote the spot price
SPOT_PRICE_COIN_AMOUNT = Decimal("1")

# Confirmation depth at which the reconciler picks up new transactions
RECONCILE_CONFIRMATIONS = 1
