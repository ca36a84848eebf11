"""Data models for the liquidity pool."""

from liquidity.models.indexer import AddressDetails, TxDetails, TxInput, TxOutput
from liquidity.models.types import (
    AddressBalance,
    CoinInflow,
    ConfirmedTxRef,
    Direction,
    NotATokenTransfer,
    SelfEcho,
    TokenClassification,
    TokenInflow,
    TokenTransfer,
    TransactionId,
)

__all__ = [
    # Domain types
    "AddressBalance",
    "ConfirmedTxRef",
    "TransactionId",
    "TokenTransfer",
    "NotATokenTransfer",
    "TokenClassification",
    "CoinInflow",
    "TokenInflow",
    "SelfEcho",
    "Direction",
    # Indexer responses
    "AddressDetails",
    "TxDetails",
    "TxInput",
    "TxOutput",
]
