"""Entry points offered to the external scheduler.

LiquidityPool wires the watcher, the reconciler and the pool state together
and remembers the last processed transaction between calls. Scheduling
itself (cron, loops, timers) is left to the embedding process.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from liquidity.clients.base import CoinClient, TokenClient, TransactionQueryService
from liquidity.config import PoolConfig
from liquidity.log_config import configure_logging
from liquidity.models.types import ConfirmedTxRef, TransactionId
from liquidity.pricing.curve import spot_price
from liquidity.reconciler import (
    NoChange,
    ReconcileResult,
    Reconciler,
    fetch_blockchain_balances,
)
from liquidity.state.balances import BalanceTracker, ReserveState
from liquidity.state.seen import SeenSet
from liquidity.watcher import TxWatcher

logger = structlog.get_logger()


class LiquidityPool:
    """One coin/token pool operated on a single address.

    Args:
        config: Pool configuration
        coin_client: Coin collaborator
        token_client: Token collaborator
        query: Transaction query collaborator
        reserves: Initial reserves (see start() to read them from the chain)
        seen: Already processed ids; a fresh SeenSet by default
    """

    def __init__(
        self,
        config: PoolConfig,
        coin_client: CoinClient,
        token_client: TokenClient,
        query: TransactionQueryService,
        reserves: ReserveState,
        seen: SeenSet | None = None,
    ) -> None:
        self.config = config
        self.seen = seen if seen is not None else SeenSet()
        self.balances = BalanceTracker(reserves)
        self.watcher = TxWatcher(config.coin_address, coin_client, query)
        self.reconciler = Reconciler(
            pool_address=config.coin_address,
            token_address=config.token_address,
            constants=config.curve_constants,
            balances=self.balances,
            seen=self.seen,
            coin_client=coin_client,
            token_client=token_client,
            query=query,
        )
        self.last_transaction: TransactionId | None = None

    @classmethod
    def start(
        cls,
        config: PoolConfig,
        coin_client: CoinClient,
        token_client: TokenClient,
        query: TransactionQueryService,
    ) -> LiquidityPool:
        """Create a pool whose reserves are read from the chain."""
        reserves = fetch_blockchain_balances(config.coin_address, coin_client, token_client)
        logger.info(
            "pool_started",
            pool_address=config.coin_address,
            coin_reserve=str(reserves.coin_reserve),
            token_reserve=str(reserves.token_reserve),
        )
        return cls(config, coin_client, token_client, query, reserves)

    @property
    def reserves(self) -> ReserveState:
        return self.balances.snapshot()

    def detect_new_events(self) -> list[ConfirmedTxRef]:
        """Confirmed transactions at the pool address not yet processed."""
        return self.watcher.detect_new_txs(self.seen)

    def reconcile_one_event(self) -> ReconcileResult | NoChange | None:
        """Process at most one new transaction.

        Returns:
            See Reconciler.compare_last_transaction()
        """
        result = self.reconciler.compare_last_transaction(self.last_transaction)
        if isinstance(result, ReconcileResult) and result.last_transaction is not None:
            self.last_transaction = result.last_transaction
        return result

    def get_blockchain_balances(self) -> ReserveState:
        """Live balances from the chain; does not touch the tracked reserves."""
        return self.reconciler.get_blockchain_balances()

    def spot_price(self, fiat_per_coin: Decimal | int | float | str) -> Decimal:
        """Fiat price of one token at the current coin reserve."""
        return spot_price(self.reserves.coin_reserve, fiat_per_coin, self.config.curve_constants)


def create_pool(
    coin_client: CoinClient,
    token_client: TokenClient,
    config: PoolConfig | None = None,
    query: TransactionQueryService | None = None,
) -> LiquidityPool:
    """Create a running pool from LIQUIDITY_* settings.

    Logging is configured from the config's log level and format. The
    REST indexer serves as transaction query service unless one is given.
    Coin and token clients stay with the caller since they hold signing keys.

    Args:
        coin_client: Coin collaborator able to sign payments
        token_client: Token collaborator able to sign transfers
        config: Pool configuration; read from the environment when omitted
        query: Transaction query collaborator; the indexer when omitted

    Returns:
        LiquidityPool with reserves read from the chain
    """
    if config is None:
        config = PoolConfig.from_env()
    configure_logging(config.log_level, json=config.log_json)

    if query is None:
        query = config.open_indexer()
        logger.info("indexer_query_enabled", indexer_url=config.indexer_url)

    return LiquidityPool.start(config, coin_client, token_client, query)
