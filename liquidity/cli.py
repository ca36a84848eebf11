"""Command-line quoting tool for the bonding curve.

Usage:
    liquidity coins-to-tokens 1 --coin-reserve 25
    liquidity tokens-to-coins 100 --token-reserve 5000
    liquidity spot-price 250 --coin-reserve 25

Curve constants default to LIQUIDITY_COIN_QTY_ORIGINAL and
LIQUIDITY_TOKEN_QTY_ORIGINAL, then to the historical 25 / 5000 calibration.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation

import structlog

from liquidity.constants import DEFAULT_COIN_ORIGINAL, DEFAULT_TOKEN_ORIGINAL
from liquidity.errors import LiquidityError
from liquidity.log_config import configure_logging
from liquidity.pricing.curve import CurveConstants, coins_to_tokens, spot_price, tokens_to_coins

logger = structlog.get_logger()

EXIT_INVALID = 2


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as err:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from err


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="liquidity",
        description="Quote exchanges against the token liquidity bonding curve",
    )
    parser.add_argument(
        "--coin-original",
        type=_decimal_arg,
        default=os.environ.get("LIQUIDITY_COIN_QTY_ORIGINAL", DEFAULT_COIN_ORIGINAL),
        help="Curve calibration coin0",
    )
    parser.add_argument(
        "--token-original",
        type=_decimal_arg,
        default=os.environ.get("LIQUIDITY_TOKEN_QTY_ORIGINAL", DEFAULT_TOKEN_ORIGINAL),
        help="Curve calibration K",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    coins = commands.add_parser("coins-to-tokens", help="Tokens paid for a coin deposit")
    coins.add_argument("coin_in", type=_decimal_arg)
    coins.add_argument("--coin-reserve", type=_decimal_arg, required=True)

    tokens = commands.add_parser("tokens-to-coins", help="Coins paid for a token deposit")
    tokens.add_argument("token_in", type=_decimal_arg)
    tokens.add_argument("--token-reserve", type=_decimal_arg, required=True)

    price = commands.add_parser("spot-price", help="Fiat price of one token")
    price.add_argument("fiat_per_coin", type=_decimal_arg)
    price.add_argument("--coin-reserve", type=_decimal_arg, required=True)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")

    try:
        constants = CurveConstants(
            coin_original=args.coin_original,
            token_original=args.token_original,
        )
        if args.command == "coins-to-tokens":
            result = coins_to_tokens(args.coin_in, args.coin_reserve, constants).output_quantity
        elif args.command == "tokens-to-coins":
            result = tokens_to_coins(args.token_in, args.token_reserve, constants).output_quantity
        else:
            result = spot_price(args.coin_reserve, args.fiat_per_coin, constants)
    except LiquidityError as err:
        logger.error("quote_rejected", command=args.command, error=str(err), kind=err.kind.value)
        return EXIT_INVALID

    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
