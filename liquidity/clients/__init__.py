"""External collaborators: protocols and the REST indexer client."""

from liquidity.clients.base import CoinClient, TokenClient, TransactionQueryService
from liquidity.clients.indexer import IndexerClient

__all__ = ["CoinClient", "TokenClient", "TransactionQueryService", "IndexerClient"]
