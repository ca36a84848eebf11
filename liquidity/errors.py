"""Error taxonomy for the liquidity pool.

Every error raised by this package carries an explicit ErrorKind, so callers
decide between retrying and failing without matching on error codes or
message strings.
"""

from __future__ import annotations

from enum import Enum

import httpx


class ErrorKind(Enum):
    """How a failure should be treated at the cycle boundary."""

    VALIDATION = "validation"
    NETWORK_TRANSIENT = "network_transient"
    DOMAIN = "domain"
    UNHANDLED = "unhandled"

    @property
    def is_retryable(self) -> bool:
        """True if the next scheduled poll may retry the work."""
        return self is ErrorKind.NETWORK_TRANSIENT


class LiquidityError(Exception):
    """Base error for liquidity pool operations."""

    kind: ErrorKind = ErrorKind.UNHANDLED


class ValidationError(LiquidityError):
    """Malformed input, e.g. a non-string or empty transaction id."""

    kind = ErrorKind.VALIDATION


class NetworkTransient(LiquidityError):
    """An external collaborator was unreachable or timed out."""

    kind = ErrorKind.NETWORK_TRANSIENT


class DomainError(LiquidityError):
    """Curve math invoked outside its valid domain (non-positive reserve)."""

    kind = ErrorKind.DOMAIN


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to an ErrorKind.

    Args:
        exc: The exception raised by a collaborator or by the core

    Returns:
        The kind carried by our own errors; NETWORK_TRANSIENT for connection
        and timeout failures from the standard library or httpx; UNHANDLED
        for everything else.
    """
    if isinstance(exc, LiquidityError):
        return exc.kind
    if isinstance(exc, (TimeoutError, ConnectionError, httpx.TransportError)):
        return ErrorKind.NETWORK_TRANSIENT
    return ErrorKind.UNHANDLED


def require_txid(txid: object) -> str:
    """Validate a transaction id.

    Raises:
        ValidationError: If txid is not a non-empty string
    """
    if not isinstance(txid, str):
        raise ValidationError(f"txid needs to be a string, got {type(txid).__name__}")
    if not txid:
        raise ValidationError("txid cannot be empty")
    return txid
