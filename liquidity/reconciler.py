"""Reconciliation of pool deposits into settlements.

The Reconciler is the state machine at the heart of the pool:

    Idle -> Fetching -> Classifying -> {SelfEcho | CoinInflow | TokenInflow}
         -> Settled -> Idle

Each call processes at most one transaction: it picks the first unseen
one-confirmation transaction, works out which asset the user sent, prices
the counter-asset on the bonding curve, pays the user, commits the new
reserves and records the transaction as seen.

Seen-marking is done after settlement. A crash between paying the user and
recording the id can therefore pay twice on restart (at-least-once). The
reconciler lock prevents the same double payment between overlapping cycles
in one process.

A deposit the curve cannot price (DomainError) is recorded as seen before
the error is raised. It was rejected before any payment, and leaving it unseen
would block every later deposit behind it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

import structlog

from liquidity.clients.base import CoinClient, TokenClient, TransactionQueryService
from liquidity.decimal_utils import round8, to_smallest_unit
from liquidity.errors import DomainError, classify_error, require_txid
from liquidity.models.types import (
    CoinInflow,
    Direction,
    SelfEcho,
    TokenInflow,
    TokenTransfer,
    TransactionId,
)
from liquidity.pricing.curve import CurveConstants, coins_to_tokens, tokens_to_coins
from liquidity.state.balances import BalanceTracker, ReserveState
from liquidity.state.seen import SeenSet

logger = structlog.get_logger()


class NoChange(Enum):
    """Sentinel type: no qualifying transaction was found."""

    NO_CHANGE = "no_change"


NO_CHANGE = NoChange.NO_CHANGE


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation step.

    Attributes:
        last_transaction: Id of the processed transaction (or the caller's
            last-known id after a resync)
        coin_reserve: Coin reserve after the step
        token_reserve: Token reserve after the step
        direction: How the transaction was classified; None after a resync
        settlement_ids: Ids of the outbound transactions broadcast
    """

    last_transaction: TransactionId | None
    coin_reserve: Decimal
    token_reserve: Decimal
    direction: Direction | None = None
    settlement_ids: tuple[TransactionId, ...] = ()

    @classmethod
    def from_state(
        cls,
        txid: TransactionId | None,
        state: ReserveState,
        direction: Direction | None = None,
        settlement_ids: tuple[TransactionId, ...] = (),
    ) -> ReconcileResult:
        return cls(
            last_transaction=txid,
            coin_reserve=state.coin_reserve,
            token_reserve=state.token_reserve,
            direction=direction,
            settlement_ids=settlement_ids,
        )

    @property
    def reserves(self) -> ReserveState:
        return ReserveState(coin_reserve=self.coin_reserve, token_reserve=self.token_reserve)


def fetch_blockchain_balances(
    pool_address: str,
    coin_client: CoinClient,
    token_client: TokenClient,
) -> ReserveState:
    """Read the pool's live coin and token balances from the collaborators."""
    coin_balance = coin_client.get_balance(pool_address).balance
    token_balance = token_client.get_token_balance()
    logger.debug(
        "blockchain_balances",
        coin_balance=str(coin_balance),
        token_balance=str(token_balance),
    )
    return ReserveState(coin_reserve=round8(coin_balance), token_reserve=round8(token_balance))


class Reconciler:
    """Turns confirmed deposits into settlements and reserve updates.

    All dependencies are supplied by the caller; the reconciler owns no
    global state. The SeenSet passed in must not be shared with another
    reconciler for the same pool.

    Args:
        pool_address: Coin address watched by the pool
        token_address: Custody address where received tokens are swept
        constants: Curve calibration
        balances: Tracker holding the authoritative reserves
        seen: Processed transaction ids
        coin_client: Coin collaborator
        token_client: Token collaborator
        query: Transaction query collaborator
    """

    def __init__(
        self,
        pool_address: str,
        token_address: str,
        constants: CurveConstants,
        balances: BalanceTracker,
        seen: SeenSet,
        coin_client: CoinClient,
        token_client: TokenClient,
        query: TransactionQueryService,
    ) -> None:
        self.pool_address = pool_address
        self.token_address = token_address
        self.constants = constants
        self.balances = balances
        self.seen = seen
        self._coin_client = coin_client
        self._token_client = token_client
        self._query = query
        # One read-classify-settle-commit sequence at a time
        self._lock = threading.RLock()

    def get_blockchain_balances(self) -> ReserveState:
        return fetch_blockchain_balances(self.pool_address, self._coin_client, self._token_client)

    def compare_last_transaction(
        self, last_known_id: TransactionId | None = None
    ) -> ReconcileResult | NoChange | None:
        """Process the next unseen one-confirmation transaction, if any.

        When the address has nothing waiting at shallow depth, several arrivals
        may have collapsed into deeper confirmations before being seen one by
        one; the reserves are then re-read from the chain instead.

        Args:
            last_known_id: Id returned by the previous call, skipped if seen again

        Returns:
            ReconcileResult after a settlement, self-echo or resync;
            NO_CHANGE if no qualifying transaction exists;
            None if a collaborator was unreachable (retry on the next poll)

        Raises:
            Exception: Any non-transient failure, after logging it
        """
        with self._lock:
            try:
                return self._compare_last_transaction(last_known_id)
            except Exception as err:
                if classify_error(err).is_retryable:
                    logger.warning(
                        "reconcile_network_unavailable",
                        last_known_id=last_known_id,
                        error=str(err),
                        message="Could not reach collaborator, will try again",
                    )
                    return None
                logger.exception(
                    "reconcile_failed",
                    pool_address=self.pool_address,
                    last_known_id=last_known_id,
                    error_kind=classify_error(err).value,
                )
                raise

    def _compare_last_transaction(
        self, last_known_id: TransactionId | None
    ) -> ReconcileResult | NoChange:
        if self._query.has_only_deep_confirmations(self.pool_address):
            state = self.get_blockchain_balances()
            self.balances.commit(state)
            logger.info(
                "reserves_resynchronized",
                coin_reserve=str(state.coin_reserve),
                token_reserve=str(state.token_reserve),
            )
            return ReconcileResult.from_state(last_known_id, state)

        for txid in self._query.get_one_confirmation_transactions(self.pool_address):
            if txid == last_known_id or txid in self.seen:
                continue
            logger.info("new_txid_detected", txid=txid)
            return self._process(txid)

        logger.debug("no_new_transaction", last_known_id=last_known_id)
        return NO_CHANGE

    def process_tx(self, txid: TransactionId) -> ReconcileResult | NoChange:
        """Process one specific transaction.

        Unlike compare_last_transaction() this does not consult confirmation
        lists and does not swallow network failures.

        Returns:
            ReconcileResult, or NO_CHANGE if the transaction was already seen

        Raises:
            ValidationError: If txid is not a non-empty string
        """
        txid = require_txid(txid)
        with self._lock:
            if txid in self.seen:
                logger.info("txid_already_processed", txid=txid)
                return NO_CHANGE
            logger.info("processing_txid", txid=txid)
            try:
                return self._process(txid)
            except Exception:
                logger.exception("process_tx_failed", txid=txid)
                raise

    def classify(self, txid: TransactionId) -> tuple[str, Direction]:
        """Work out who sent a transaction and which asset they sent.

        Returns:
            Tuple of (sender_address, direction)
        """
        sender = self._query.get_sender_address(txid)
        logger.info("sender_resolved", txid=txid, sender=sender)

        # The pool's own settlements come back to its address
        if sender == self.pool_address:
            return sender, SelfEcho()

        classification = self._token_client.classify(txid)
        if isinstance(classification, TokenTransfer) and classification.quantity > 0:
            return sender, TokenInflow(quantity=round8(classification.quantity))

        coin_in = self._coin_client.get_received_amount(txid, self.pool_address)
        return sender, CoinInflow(quantity=round8(coin_in))

    def _process(self, txid: TransactionId) -> ReconcileResult:
        sender, direction = self.classify(txid)
        state = self.balances.snapshot()

        if isinstance(direction, SelfEcho):
            logger.info("self_echo_ignored", txid=txid)
            self.seen.add(txid)
            return ReconcileResult.from_state(txid, state, direction)

        if direction.quantity <= 0:
            logger.warning(
                "empty_inflow_ignored",
                txid=txid,
                sender=sender,
                direction=type(direction).__name__,
                quantity=str(direction.quantity),
            )
            self.seen.add(txid)
            return ReconcileResult.from_state(txid, state, direction)

        try:
            if isinstance(direction, TokenInflow):
                new_state, settlement_ids = self._settle_token_inflow(sender, direction.quantity, state)
            else:
                new_state, settlement_ids = self._settle_coin_inflow(sender, direction.quantity, state)
        except DomainError as err:
            # Raised while pricing, before any settlement call: nothing was paid
            logger.error(
                "inflow_rejected",
                txid=txid,
                sender=sender,
                direction=type(direction).__name__,
                quantity=str(direction.quantity),
                coin_reserve=str(state.coin_reserve),
                token_reserve=str(state.token_reserve),
                error=str(err),
            )
            self.seen.add(txid)
            raise

        self.seen.add(txid)
        self.balances.commit(new_state)
        return ReconcileResult.from_state(txid, new_state, direction, settlement_ids)

    def _settle_token_inflow(
        self, sender: str, token_in: Decimal, state: ReserveState
    ) -> tuple[ReserveState, tuple[TransactionId, ...]]:
        logger.info("tokens_received", quantity=str(token_in), sender=sender)

        quote = tokens_to_coins(token_in, state.token_reserve, self.constants)
        coins_out = quote.output_quantity
        new_state = ReserveState(
            coin_reserve=state.coin_reserve - coins_out,
            token_reserve=state.token_reserve + token_in,
        )
        self._check_reserves(new_state)
        logger.info(
            "exchange_priced",
            coins_out=str(coins_out),
            tokens_in=str(token_in),
            new_coin_reserve=str(new_state.coin_reserve),
            new_token_reserve=str(new_state.token_reserve),
        )

        satoshis = to_smallest_unit(coins_out)
        raw_payment = self._coin_client.build_payment(sender, satoshis)
        coin_txid = self._coin_client.broadcast(raw_payment)
        logger.info("coins_sent_to_user", txid=coin_txid, recipient=sender, satoshis=satoshis)

        # Sweep the received tokens into the pool's custody address
        transfer = self._token_client.build_transfer(self.token_address, token_in)
        sweep_txid = self._token_client.broadcast(transfer)
        logger.info("tokens_swept_to_custody", txid=sweep_txid, quantity=str(token_in))

        return new_state, (coin_txid, sweep_txid)

    def _settle_coin_inflow(
        self, sender: str, coin_in: Decimal, state: ReserveState
    ) -> tuple[ReserveState, tuple[TransactionId, ...]]:
        logger.info("coins_received", quantity=str(coin_in), sender=sender)

        quote = coins_to_tokens(coin_in, state.coin_reserve, self.constants)
        tokens_out = quote.output_quantity
        new_state = ReserveState(
            coin_reserve=state.coin_reserve + coin_in,
            token_reserve=state.token_reserve - tokens_out,
        )
        self._check_reserves(new_state)
        logger.info(
            "exchange_priced",
            tokens_out=str(tokens_out),
            coins_in=str(coin_in),
            new_coin_reserve=str(new_state.coin_reserve),
            new_token_reserve=str(new_state.token_reserve),
        )

        transfer = self._token_client.build_transfer(sender, tokens_out)
        token_txid = self._token_client.broadcast(transfer)
        logger.info("tokens_sent_to_user", txid=token_txid, recipient=sender, quantity=str(tokens_out))

        return new_state, (token_txid,)

    @staticmethod
    def _check_reserves(state: ReserveState) -> None:
        """Refuse to settle a trade the pool cannot cover."""
        if state.coin_reserve <= 0:
            raise DomainError(f"Settlement would leave a non-positive coin reserve ({state.coin_reserve})")
        if state.token_reserve < 0:
            raise DomainError(f"Settlement would leave a negative token reserve ({state.token_reserve})")
