"""REST indexer client built on httpx.

Implements TransactionQueryService and the read/broadcast half of CoinClient
against a rest.bitcoin.com style indexer. Payment signing is not done here.

Transport failures and timeouts are translated into NetworkTransient so the
reconciler can abandon the cycle and retry on the next poll. HTTP error
statuses propagate as httpx.HTTPStatusError.
"""

from __future__ import annotations

from decimal import Decimal
from types import TracebackType
from typing import Any

import httpx
import structlog

from liquidity.constants import RECONCILE_CONFIRMATIONS
from liquidity.decimal_utils import round8
from liquidity.errors import NetworkTransient, ValidationError, require_txid
from liquidity.models.indexer import AddressDetails, TxDetails
from liquidity.models.types import AddressBalance, ConfirmedTxRef, TransactionId

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0

# Depth below which a transaction counts as still settling
DEEP_CONFIRMATIONS = RECONCILE_CONFIRMATIONS + 1


class IndexerClient:
    """Blocking indexer client.

    Usage:
        with IndexerClient("https://rest.bitcoin.com/v2/", timeout=10.0) as indexer:
            refs = indexer.get_confirmations(["abc..."])

    Args:
        base_url: Indexer REST root
        timeout: Per-request timeout in seconds
        client: Preconfigured httpx.Client (tests inject one with a MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    def __enter__(self) -> IndexerClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as err:
            logger.warning("indexer_unreachable", method=method, path=path, error=str(err))
            raise NetworkTransient(f"Could not reach indexer for {method} {path}: {err}") from err
        response.raise_for_status()
        return response.json()

    # --- CoinClient (read and broadcast) ---

    def get_address_details(self, address: str) -> AddressDetails:
        data = self._request("GET", f"address/details/{address}")
        return AddressDetails.model_validate(data)

    def get_balance(self, address: str) -> AddressBalance:
        details = self.get_address_details(address)
        return AddressBalance(
            balance=round8(details.balance),
            transaction_ids=list(details.transactions),
        )

    def get_received_amount(self, txid: TransactionId, address: str) -> Decimal:
        """Sum the outputs of a transaction that pay the given address."""
        details = self._get_tx_details([txid])[0]
        return round8(sum((out.value for out in details.vout if out.pays(address)), Decimal(0)))

    def broadcast(self, raw_payload: str) -> TransactionId:
        if not raw_payload:
            raise ValidationError("Cannot broadcast an empty transaction")
        txid = self._request("GET", f"rawtransactions/sendRawTransaction/{raw_payload}")
        if isinstance(txid, list):
            txid = txid[0]
        logger.info("transaction_broadcast", txid=txid)
        return require_txid(txid)

    # --- TransactionQueryService ---

    def _get_tx_details(self, txids: list[TransactionId]) -> list[TxDetails]:
        for txid in txids:
            require_txid(txid)
        data = self._request("POST", "transaction/details", json={"txids": txids})
        if isinstance(data, dict):
            data = [data]
        details = [TxDetails.model_validate(item) for item in data]
        if len(details) != len(txids):
            raise ValueError(f"Indexer returned {len(details)} details for {len(txids)} txids")
        return details

    def get_confirmations(self, txids: list[TransactionId]) -> list[ConfirmedTxRef]:
        if not txids:
            return []
        return [
            ConfirmedTxRef(id=details.txid, confirmations=details.confirmations)
            for details in self._get_tx_details(txids)
        ]

    def get_sender_address(self, txid: TransactionId) -> str:
        details = self._get_tx_details([txid])[0]
        for tx_input in details.vin:
            if tx_input.address:
                return tx_input.address
        raise ValueError(f"Transaction {txid} has no input with a sender address")

    def _address_confirmations(self, address: str) -> list[ConfirmedTxRef]:
        txids = self.get_address_details(address).transactions
        return self.get_confirmations(txids)

    def get_one_confirmation_transactions(self, address: str) -> list[TransactionId]:
        return [
            ref.id
            for ref in self._address_confirmations(address)
            if ref.confirmations == RECONCILE_CONFIRMATIONS
        ]

    def has_only_deep_confirmations(self, address: str) -> bool:
        """True if no transaction of the address has fewer than two confirmations."""
        return all(
            ref.confirmations >= DEEP_CONFIRMATIONS for ref in self._address_confirmations(address)
        )
