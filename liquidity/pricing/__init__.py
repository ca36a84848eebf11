"""Bonding curve pricing engine."""

from liquidity.pricing.curve import (
    DEFAULT_CURVE_CONSTANTS,
    CurveConstants,
    ExchangeQuote,
    coins_to_tokens,
    spot_price,
    tokens_to_coins,
)

__all__ = [
    "CurveConstants",
    "DEFAULT_CURVE_CONSTANTS",
    "ExchangeQuote",
    "coins_to_tokens",
    "tokens_to_coins",
    "spot_price",
]
