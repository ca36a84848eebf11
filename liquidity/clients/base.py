"""Protocols for the external collaborators consumed by the pool.

Building, signing and broadcasting chain transactions and parsing token
payloads live outside this package. The reconciler talks to them only
through these protocols, so tests and alternative backends can be injected.

Implementations should raise NetworkTransient (or let TimeoutError,
ConnectionError or httpx.TransportError escape) for unreachable hosts and
timeouts; any other exception is treated as fatal for the cycle.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from liquidity.models.types import (
    AddressBalance,
    ConfirmedTxRef,
    TokenClassification,
    TransactionId,
)


@runtime_checkable
class CoinClient(Protocol):
    """Access to the native chain asset."""

    def get_balance(self, address: str) -> AddressBalance:
        """Get the coin balance and transaction ids of an address."""
        ...

    def build_payment(self, recipient: str, amount_smallest_unit: int) -> str:
        """Build and sign a raw payment.

        Args:
            recipient: Address to pay
            amount_smallest_unit: Amount in the chain's smallest unit (satoshis)

        Returns:
            Raw transaction payload ready to broadcast
        """
        ...

    def broadcast(self, raw_payload: str) -> TransactionId:
        """Broadcast a raw transaction and return its id."""
        ...

    def get_received_amount(self, txid: TransactionId, address: str) -> Decimal:
        """Get the coins a transaction transferred to an address."""
        ...


@runtime_checkable
class TokenClient(Protocol):
    """Access to the fungible token."""

    def get_token_balance(self) -> Decimal:
        """Get the pool's token balance."""
        ...

    def classify(self, txid: TransactionId) -> TokenClassification:
        """Classify a transaction as a token transfer or not.

        Returns:
            TokenTransfer(quantity) if the transaction moved tokens to the
            pool, NotATokenTransfer() otherwise
        """
        ...

    def build_transfer(self, recipient: str, quantity: Decimal) -> Any:
        """Build and sign a token transfer payload."""
        ...

    def broadcast(self, payload: Any) -> TransactionId:
        """Broadcast a token transfer and return its id."""
        ...


@runtime_checkable
class TransactionQueryService(Protocol):
    """Read-only queries about confirmations and senders."""

    def get_confirmations(self, txids: list[TransactionId]) -> list[ConfirmedTxRef]:
        """Get the confirmation depth of each transaction (batched)."""
        ...

    def get_sender_address(self, txid: TransactionId) -> str:
        """Get the address that sent a transaction."""
        ...

    def get_one_confirmation_transactions(self, address: str) -> list[TransactionId]:
        """Get the address's transactions with exactly one confirmation, in order."""
        ...

    def has_only_deep_confirmations(self, address: str) -> bool:
        """True if the address has no transaction waiting at shallow depth."""
        ...
