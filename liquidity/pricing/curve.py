"""Logarithmic bonding curve pricing.

The token reserve is a logarithmic function of the coin reserve:

    tokens(coin) = -K * ln(coin / coin0)

and conversely the coin reserve is an exponential function of the token
displacement:

    coin(dtoken) = coin0 * e^(-dtoken / K)

where coin0 (coin_original) and K (token_original) are the curve calibration
constants. A fixed SETTLEMENT_FEE is deducted from every quote to cover the
on-chain cost of paying the counterparty.

All functions here are pure: they compute a quote and never touch reserves.
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from decimal import Decimal

import structlog

from liquidity.constants import (
    DEFAULT_COIN_ORIGINAL,
    DEFAULT_TOKEN_ORIGINAL,
    SETTLEMENT_FEE,
    SPOT_PRICE_COIN_AMOUNT,
)
from liquidity.decimal_utils import DECIMAL_CURVE_CONTEXT, round8, to_decimal
from liquidity.errors import DomainError, ValidationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CurveConstants:
    """Immutable calibration of the curve shape.

    Attributes:
        coin_original: coin0, the coin reserve at zero token displacement
        token_original: K, the token scale of the curve
    """

    coin_original: Decimal
    token_original: Decimal

    def __post_init__(self) -> None:
        # Normalize ints/strings from config into Decimal
        object.__setattr__(self, "coin_original", to_decimal(self.coin_original))
        object.__setattr__(self, "token_original", to_decimal(self.token_original))
        if self.coin_original <= 0:
            raise DomainError(f"coin_original must be positive, got {self.coin_original}")
        if self.token_original <= 0:
            raise DomainError(f"token_original must be positive, got {self.token_original}")


DEFAULT_CURVE_CONSTANTS = CurveConstants(
    coin_original=DEFAULT_COIN_ORIGINAL,
    token_original=DEFAULT_TOKEN_ORIGINAL,
)


@dataclass(frozen=True)
class ExchangeQuote:
    """Result of pricing one inflow against the curve.

    Attributes:
        output_quantity: Counter-asset amount to pay out (>= 0, 8 digits)
        reserve_after: Coin level on the curve after the move
        displacement_after: Token displacement after the move
    """

    output_quantity: Decimal
    reserve_after: Decimal
    displacement_after: Decimal


def _require_non_negative(name: str, value: Decimal) -> Decimal:
    if value < 0:
        raise ValidationError(f"{name} cannot be negative: {value}")
    return value


def _token_displacement(coin: Decimal, constants: CurveConstants) -> Decimal:
    """tokens(coin) = -K * ln(coin / coin0), defined for coin > 0."""
    if coin <= 0:
        raise DomainError(f"Coin level must be positive for the curve, got {coin}")
    return -constants.token_original * (coin / constants.coin_original).ln()


def _coin_level(displacement: Decimal, constants: CurveConstants) -> Decimal:
    """coin(dtoken) = coin0 * e^(-dtoken / K)."""
    return constants.coin_original * (-displacement / constants.token_original).exp()


def coins_to_tokens(
    coin_in: Decimal | int | str,
    coin_reserve: Decimal | int | str,
    constants: CurveConstants,
) -> ExchangeQuote:
    """Calculate the tokens paid out for a coin deposit.

    Formula:
        coin_after = coin_reserve - coin_in - FEE
        tokens_out = |tokens(coin_after) - tokens(coin_reserve)|

    Args:
        coin_in: Coins received from the user
        coin_reserve: Current coin reserve of the pool
        constants: Curve calibration

    Returns:
        ExchangeQuote with tokens_out rounded to 8 digits

    Raises:
        ValidationError: If coin_in is negative
        DomainError: If coin_reserve or coin_after is not positive
    """
    coin_in = _require_non_negative("coin_in", to_decimal(coin_in))
    coin_before = to_decimal(coin_reserve)
    if coin_before <= 0:
        raise DomainError(f"coin_reserve must be positive, got {coin_before}")

    with decimal.localcontext(DECIMAL_CURVE_CONTEXT):
        coin_after = coin_before - coin_in - SETTLEMENT_FEE
        if coin_after <= 0:
            raise DomainError(
                f"Coin deposit of {coin_in} leaves a non-positive curve level ({coin_after})"
            )
        token_before = _token_displacement(coin_before, constants)
        token_after = _token_displacement(coin_after, constants)
        tokens_out = abs(token_after - token_before)

    logger.debug(
        "coins_to_tokens",
        coin_before=str(coin_before),
        coin_after=str(coin_after),
        token_before=str(token_before),
        token_after=str(token_after),
        tokens_out=str(tokens_out),
    )

    return ExchangeQuote(
        output_quantity=round8(tokens_out),
        reserve_after=round8(coin_after),
        displacement_after=round8(token_after),
    )


def tokens_to_coins(
    token_in: Decimal | int | str,
    token_reserve: Decimal | int | str,
    constants: CurveConstants,
) -> ExchangeQuote:
    """Calculate the coins paid out for a token deposit.

    Formula:
        token1 = token_reserve - K
        token2 = token1 + token_in
        coins_out = |coin(token2) - coin(token1) - FEE|

    Args:
        token_in: Tokens received from the user
        token_reserve: Current token reserve of the pool
        constants: Curve calibration

    Returns:
        ExchangeQuote with coins_out rounded to 8 digits

    Raises:
        ValidationError: If token_in is negative
        DomainError: If token_reserve is negative
    """
    token_in = _require_non_negative("token_in", to_decimal(token_in))
    token_balance = to_decimal(token_reserve)
    if token_balance < 0:
        raise DomainError(f"token_reserve cannot be negative, got {token_balance}")

    with decimal.localcontext(DECIMAL_CURVE_CONTEXT):
        token1 = token_balance - constants.token_original
        token2 = token1 + token_in
        coin1 = _coin_level(token1, constants)
        coin2 = _coin_level(token2, constants)
        coins_out = abs(coin2 - coin1 - SETTLEMENT_FEE)

    logger.debug(
        "tokens_to_coins",
        coin1=str(coin1),
        coin2=str(coin2),
        token1=str(token1),
        token2=str(token2),
        coins_out=str(coins_out),
    )

    return ExchangeQuote(
        output_quantity=round8(coins_out),
        reserve_after=round8(coin2),
        displacement_after=round8(token2),
    )


def spot_price(
    coin_reserve: Decimal | int | str,
    fiat_per_coin: Decimal | int | float | str,
    constants: CurveConstants = DEFAULT_CURVE_CONSTANTS,
) -> Decimal:
    """Fiat price of one token at the current coin reserve.

    Quotes the tokens matching a notional one-coin move along the curve and
    divides the fiat value of a coin by it.

    Args:
        coin_reserve: Current coin reserve of the pool
        fiat_per_coin: Fiat price of one coin (e.g. USD per BCH)
        constants: Curve calibration; pass the pool's configured constants

    Returns:
        Fiat price per token, rounded to 8 digits

    Raises:
        DomainError: If the reserve is not positive or the quote is zero
    """
    coin_before = to_decimal(coin_reserve)
    if coin_before <= 0:
        raise DomainError(f"coin_reserve must be positive, got {coin_before}")
    fiat = _require_non_negative("fiat_per_coin", to_decimal(fiat_per_coin))

    with decimal.localcontext(DECIMAL_CURVE_CONTEXT):
        coin_after = coin_before + SPOT_PRICE_COIN_AMOUNT - SETTLEMENT_FEE
        tokens = round8(
            abs(_token_displacement(coin_after, constants) - _token_displacement(coin_before, constants))
        )
        if tokens == 0:
            raise DomainError("Spot quote is zero tokens; price is undefined")
        return round8(fiat / tokens)


__all__ = [
    "CurveConstants",
    "DEFAULT_CURVE_CONSTANTS",
    "ExchangeQuote",
    "coins_to_tokens",
    "tokens_to_coins",
    "spot_price",
]
