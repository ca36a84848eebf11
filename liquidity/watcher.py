"""Detection of new confirmed transactions at the pool address."""

from __future__ import annotations

from collections.abc import Container

import structlog

from liquidity.clients.base import CoinClient, TransactionQueryService
from liquidity.errors import NetworkTransient, classify_error
from liquidity.models.types import ConfirmedTxRef

logger = structlog.get_logger()


class TxWatcher:
    """Polls the pool address and reports confirmed, unseen transactions.

    The watcher is a pure read: it never records anything as seen. The
    reconciler decides when a transaction has been processed.
    """

    def __init__(
        self,
        pool_address: str,
        coin_client: CoinClient,
        query: TransactionQueryService,
    ) -> None:
        self.pool_address = pool_address
        self._coin_client = coin_client
        self._query = query

    def detect_new_txs(self, seen: Container[str]) -> list[ConfirmedTxRef]:
        """Return the pool's confirmed transactions absent from `seen`.

        Args:
            seen: Already processed transaction ids (a SeenSet or any container)

        Returns:
            ConfirmedTxRef entries with confirmations > 0, in indexer order.
            Empty when nothing is new; confirmations are then not queried.

        Raises:
            NetworkTransient: If a collaborator was unreachable or timed out
        """
        try:
            address_info = self._coin_client.get_balance(self.pool_address)

            # dict.fromkeys keeps the indexer's order while dropping duplicates
            new_txids = [
                txid for txid in dict.fromkeys(address_info.transaction_ids) if txid not in seen
            ]
            if not new_txids:
                return []

            confirmations = self._query.get_confirmations(new_txids)
            new_txs = [ref for ref in confirmations if ref.confirmations > 0]
        except Exception as err:
            if classify_error(err).is_retryable:
                if isinstance(err, NetworkTransient):
                    raise
                raise NetworkTransient(f"Could not poll {self.pool_address}: {err}") from err
            logger.exception("detect_new_txs_failed", pool_address=self.pool_address)
            raise

        logger.debug(
            "new_txs_detected",
            candidates=len(new_txids),
            confirmed=len(new_txs),
        )
        return new_txs
