"""Shared type definitions for the liquidity pool.

These types flow between the collaborators, the watcher and the reconciler.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TypeAlias

# Opaque unique identifier of one chain transaction
TransactionId: TypeAlias = str


@dataclass(frozen=True)
class ConfirmedTxRef:
    """A transaction id with its confirmation depth."""

    id: TransactionId
    confirmations: int


@dataclass(frozen=True)
class AddressBalance:
    """Coin balance of an address and the transactions touching it."""

    balance: Decimal
    transaction_ids: list[TransactionId]


# --- Token classification ---


@dataclass(frozen=True)
class TokenTransfer:
    """The transaction transferred `quantity` tokens to the pool."""

    quantity: Decimal


@dataclass(frozen=True)
class NotATokenTransfer:
    """The transaction carries no token transfer."""


TokenClassification: TypeAlias = TokenTransfer | NotATokenTransfer


# --- Direction of an inflow ---


@dataclass(frozen=True)
class CoinInflow:
    """The user sent coins; the pool pays out tokens."""

    quantity: Decimal


@dataclass(frozen=True)
class TokenInflow:
    """The user sent tokens; the pool pays out coins."""

    quantity: Decimal


@dataclass(frozen=True)
class SelfEcho:
    """The pool paid itself (its own outbound settlement came back)."""


Direction: TypeAlias = CoinInflow | TokenInflow | SelfEcho
