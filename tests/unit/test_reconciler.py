"""Tests for the reconciliation state machine."""

import threading
from decimal import Decimal

import httpx
import pytest

from liquidity.errors import DomainError, NetworkTransient, ValidationError
from liquidity.models.types import CoinInflow, SelfEcho, TokenInflow
from liquidity.pricing.curve import coins_to_tokens, tokens_to_coins
from liquidity.reconciler import NO_CHANGE, ReconcileResult, Reconciler
from liquidity.state.balances import ReserveState
from tests.helpers import (
    OTHER_USER_ADDRESS,
    POOL_ADDRESS,
    TOKEN_CUSTODY_ADDRESS,
    USER_ADDRESS,
    FakeQueryService,
)


def queue_tx(query, txid, sender=USER_ADDRESS):
    """Make txid the next one-confirmation transaction from sender."""
    query.one_confirmation.append(txid)
    query.senders[txid] = sender


def assert_rounded(result: ReconcileResult) -> None:
    assert result.coin_reserve.as_tuple().exponent >= -8
    assert result.token_reserve.as_tuple().exponent >= -8


class TestCoinInflow:
    """User sends coins, pool pays tokens."""

    def test_coin_deposit_settles_tokens(self, reconciler, query, coin_client, token_client, constants):
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("1")
        tokens_out = coins_to_tokens(Decimal("1"), Decimal("25"), constants).output_quantity

        result = reconciler.compare_last_transaction(None)

        assert isinstance(result, ReconcileResult)
        assert result.last_transaction == "tx-a"
        assert result.direction == CoinInflow(quantity=Decimal("1"))
        assert result.coin_reserve == Decimal("26")
        assert result.token_reserve == Decimal("5000") - tokens_out
        assert result.settlement_ids == ("token-tx-1",)
        assert token_client.transfers == [(USER_ADDRESS, tokens_out)]
        assert coin_client.payments == []
        assert_rounded(result)

    def test_coin_deposit_moves_reserves_in_opposite_directions(self, reconciler, query, coin_client, tracker):
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("0.5")
        before = tracker.snapshot()

        reconciler.compare_last_transaction(None)

        after = tracker.snapshot()
        assert after.coin_reserve > before.coin_reserve
        assert after.token_reserve < before.token_reserve

    def test_received_amount_queried_for_pool_address(self, reconciler, query, coin_client):
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("1")

        reconciler.compare_last_transaction(None)

        assert ("get_received_amount", ("tx-a", POOL_ADDRESS)) in coin_client.calls

    def test_zero_value_inflow_recorded_without_settlement(self, reconciler, query, token_client, seen, initial_reserves):
        queue_tx(query, "tx-a")

        result = reconciler.compare_last_transaction(None)

        assert result.reserves == initial_reserves
        assert token_client.transfers == []
        assert "tx-a" in seen


class TestTokenInflow:
    """User sends tokens, pool pays coins and sweeps the tokens."""

    def test_token_deposit_settles_coins(self, reconciler, query, coin_client, token_client):
        queue_tx(query, "tx-a")
        token_client.token_transfers["tx-a"] = Decimal("100")

        result = reconciler.compare_last_transaction(None)

        assert result.direction == TokenInflow(quantity=Decimal("100"))
        assert result.coin_reserve == Decimal("24.50496413")
        assert result.token_reserve == Decimal("5100")
        assert coin_client.payments == [(USER_ADDRESS, 49503587)]
        assert token_client.transfers == [(TOKEN_CUSTODY_ADDRESS, Decimal("100"))]
        assert result.settlement_ids == ("coin-tx-1", "token-tx-1")
        assert_rounded(result)

    def test_payment_rounded_down_to_smallest_unit(self, reconciler, query, coin_client, token_client, constants):
        queue_tx(query, "tx-a")
        token_client.token_transfers["tx-a"] = Decimal("12.345")
        coins_out = tokens_to_coins(Decimal("12.345"), Decimal("5000"), constants).output_quantity

        reconciler.compare_last_transaction(None)

        [(_, satoshis)] = coin_client.payments
        assert satoshis == int(coins_out * 100_000_000)

    def test_coin_amount_not_queried_for_token_deposit(self, reconciler, query, coin_client, token_client):
        queue_tx(query, "tx-a")
        token_client.token_transfers["tx-a"] = Decimal("100")

        reconciler.compare_last_transaction(None)

        assert coin_client.called("get_received_amount") == 0

    def test_zero_token_classification_treated_as_coin(self, reconciler, query, coin_client, token_client):
        queue_tx(query, "tx-a")
        token_client.token_transfers["tx-a"] = Decimal("0")
        coin_client.received["tx-a"] = Decimal("1")

        result = reconciler.compare_last_transaction(None)

        assert isinstance(result.direction, CoinInflow)

    def test_payout_exceeding_reserve_rejected(self, reconciler, query, coin_client, token_client, tracker, seen, initial_reserves):
        """A payout that would empty the coin reserve is a domain error."""
        queue_tx(query, "tx-a")
        token_client.token_transfers["tx-a"] = Decimal("1000000")

        with pytest.raises(DomainError):
            reconciler.compare_last_transaction(None)

        assert coin_client.payments == []
        assert tracker.snapshot() == initial_reserves
        assert "tx-a" in seen


class TestRejectedInflow:
    """Deposits the curve cannot price are recorded and skipped."""

    def test_rejected_deposit_does_not_block_queue(self, reconciler, query, coin_client, token_client, seen, tracker):
        queue_tx(query, "tx-big")
        queue_tx(query, "tx-ok", sender=OTHER_USER_ADDRESS)
        coin_client.received.update({"tx-big": Decimal("25"), "tx-ok": Decimal("1")})

        with pytest.raises(DomainError):
            reconciler.compare_last_transaction(None)

        assert "tx-big" in seen
        assert token_client.transfers == []

        result = reconciler.compare_last_transaction(None)

        assert result.last_transaction == "tx-ok"
        assert [recipient for recipient, _ in token_client.transfers] == [OTHER_USER_ADDRESS]
        assert tracker.snapshot().coin_reserve == Decimal("26")
        assert reconciler.compare_last_transaction(None) is NO_CHANGE

    def test_rejected_deposit_via_process_tx_recorded(self, reconciler, query, coin_client, seen):
        query.senders["tx-big"] = USER_ADDRESS
        coin_client.received["tx-big"] = Decimal("30")

        with pytest.raises(DomainError):
            reconciler.process_tx("tx-big")

        assert "tx-big" in seen
        assert reconciler.process_tx("tx-big") is NO_CHANGE


class TestSelfEcho:
    """Transactions sent by the pool itself."""

    def test_self_echo_recorded_without_settlement(self, reconciler, query, coin_client, token_client, seen, tracker, initial_reserves):
        queue_tx(query, "tx-a", sender=POOL_ADDRESS)

        result = reconciler.compare_last_transaction(None)

        assert result.last_transaction == "tx-a"
        assert result.direction == SelfEcho()
        assert result.reserves == initial_reserves
        assert tracker.snapshot() == initial_reserves
        assert "tx-a" in seen
        assert coin_client.payments == []
        assert token_client.transfers == []
        assert token_client.called("classify") == 0

    def test_self_echo_stops_scan(self, reconciler, query, token_client):
        queue_tx(query, "tx-a", sender=POOL_ADDRESS)
        queue_tx(query, "tx-b")
        token_client.token_transfers["tx-b"] = Decimal("10")

        result = reconciler.compare_last_transaction(None)

        assert result.last_transaction == "tx-a"
        assert token_client.transfers == []


class TestScan:
    """Selection of the transaction to process."""

    def test_no_one_confirmation_tx_returns_no_change(self, reconciler):
        assert reconciler.compare_last_transaction(None) is NO_CHANGE

    def test_last_known_id_skipped(self, reconciler, query, coin_client):
        queue_tx(query, "tx-a")
        queue_tx(query, "tx-b")
        coin_client.received.update({"tx-a": Decimal("1"), "tx-b": Decimal("2")})

        result = reconciler.compare_last_transaction("tx-a")

        assert result.last_transaction == "tx-b"
        assert result.direction == CoinInflow(quantity=Decimal("2"))

    def test_only_first_unseen_processed(self, reconciler, query, coin_client, token_client, seen):
        queue_tx(query, "tx-a", sender=USER_ADDRESS)
        queue_tx(query, "tx-b", sender=OTHER_USER_ADDRESS)
        coin_client.received.update({"tx-a": Decimal("1"), "tx-b": Decimal("1")})

        reconciler.compare_last_transaction(None)

        assert [recipient for recipient, _ in token_client.transfers] == [USER_ADDRESS]
        assert "tx-b" not in seen

    def test_consecutive_calls_process_each_tx_once(self, reconciler, query, coin_client, token_client):
        queue_tx(query, "tx-a")
        queue_tx(query, "tx-b")
        coin_client.received.update({"tx-a": Decimal("1"), "tx-b": Decimal("1")})

        first = reconciler.compare_last_transaction(None)
        second = reconciler.compare_last_transaction(first.last_transaction)
        third = reconciler.compare_last_transaction(second.last_transaction)

        assert [first.last_transaction, second.last_transaction] == ["tx-a", "tx-b"]
        assert third is NO_CHANGE
        assert len(token_client.transfers) == 2

    def test_seen_tx_never_settled_again(self, reconciler, query, coin_client, token_client):
        """Idempotency: a recorded id triggers no further side effects."""
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("1")
        reconciler.compare_last_transaction(None)
        calls_after_first = (len(token_client.calls), len(coin_client.calls))

        # Even with no last-known id, the SeenSet guards the transaction
        assert reconciler.compare_last_transaction(None) is NO_CHANGE
        assert reconciler.compare_last_transaction("other") is NO_CHANGE
        assert (len(token_client.calls), len(coin_client.calls)) == calls_after_first


class TestResync:
    """Re-reading balances when nothing waits at one confirmation."""

    def test_only_deep_confirmations_resyncs_from_chain(self, reconciler, query, coin_client, token_client, tracker):
        query.only_deep = True
        coin_client.balance = Decimal("30.123456789")
        token_client.token_balance = Decimal("4000")

        result = reconciler.compare_last_transaction("tx-prev")

        assert result.last_transaction == "tx-prev"
        assert result.direction is None
        assert result.coin_reserve == Decimal("30.12345679")
        assert result.token_reserve == Decimal("4000")
        assert tracker.snapshot() == result.reserves
        assert query.called("get_one_confirmation_transactions") == 0
        assert token_client.transfers == []


class TestFailureSemantics:
    """Transient failures are swallowed, everything else propagates."""

    @pytest.mark.parametrize(
        "method,error",
        [
            ("has_only_deep_confirmations", NetworkTransient("indexer down")),
            ("get_one_confirmation_transactions", TimeoutError("timed out")),
            ("get_sender_address", httpx.ConnectError("unreachable")),
        ],
    )
    def test_network_failure_returns_none(self, reconciler, query, seen, method, error):
        queue_tx(query, "tx-a")
        query.errors[method] = error

        assert reconciler.compare_last_transaction(None) is None
        assert "tx-a" not in seen

    def test_network_failure_during_settlement_leaves_tx_unseen(self, reconciler, query, coin_client, token_client, seen, tracker, initial_reserves):
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("1")
        token_client.errors["broadcast"] = ConnectionError("down")

        assert reconciler.compare_last_transaction(None) is None
        assert "tx-a" not in seen
        assert tracker.snapshot() == initial_reserves

    def test_unexpected_error_reraised(self, reconciler, query):
        queue_tx(query, "tx-a")
        query.errors["get_sender_address"] = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            reconciler.compare_last_transaction(None)


class TestProcessTx:
    """Processing one explicit transaction id."""

    @pytest.mark.parametrize("bad_txid", [None, 42, ""])
    def test_invalid_txid_rejected(self, reconciler, bad_txid):
        with pytest.raises(ValidationError):
            reconciler.process_tx(bad_txid)

    def test_processes_given_txid(self, reconciler, query, token_client):
        query.senders["tx-z"] = USER_ADDRESS
        token_client.token_transfers["tx-z"] = Decimal("100")

        result = reconciler.process_tx("tx-z")

        assert result.last_transaction == "tx-z"
        assert result.token_reserve == Decimal("5100")
        assert query.called("get_one_confirmation_transactions") == 0

    def test_already_seen_returns_no_change(self, reconciler, seen, query):
        seen.add("tx-z")

        assert reconciler.process_tx("tx-z") is NO_CHANGE
        assert query.called("get_sender_address") == 0

    def test_network_failure_propagates(self, reconciler, query):
        query.senders["tx-z"] = USER_ADDRESS
        query.errors["get_sender_address"] = NetworkTransient("down")

        with pytest.raises(NetworkTransient):
            reconciler.process_tx("tx-z")


class TestGetBlockchainBalances:
    def test_reads_live_balances(self, reconciler, coin_client, token_client):
        coin_client.balance = Decimal("12.5")
        token_client.token_balance = Decimal("6000.000000004")

        assert reconciler.get_blockchain_balances() == ReserveState(
            coin_reserve=Decimal("12.5"), token_reserve=Decimal("6000")
        )


class BlockingQueryService(FakeQueryService):
    """Holds get_sender_address() until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_sender_address(self, txid: str) -> str:
        self.entered.set()
        assert self.release.wait(timeout=5)
        return super().get_sender_address(txid)


class TestConcurrentCycles:
    def test_overlapping_cycles_settle_once(self, constants, tracker, seen, coin_client, token_client):
        query = BlockingQueryService()
        reconciler = Reconciler(
            pool_address=POOL_ADDRESS,
            token_address=TOKEN_CUSTODY_ADDRESS,
            constants=constants,
            balances=tracker,
            seen=seen,
            coin_client=coin_client,
            token_client=token_client,
            query=query,
        )
        queue_tx(query, "tx-a")
        coin_client.received["tx-a"] = Decimal("1")
        results = []

        def cycle():
            results.append(reconciler.compare_last_transaction(None))

        first = threading.Thread(target=cycle)
        second = threading.Thread(target=cycle)
        first.start()
        assert query.entered.wait(timeout=5)
        second.start()
        # Give the second cycle time to reach the reconciler while the first is mid-flight
        second.join(timeout=0.2)
        query.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert len(results) == 2
        assert NO_CHANGE in results
        assert len(token_client.broadcasts) == 1
        assert [recipient for recipient, _ in token_client.transfers] == [USER_ADDRESS]
        assert "tx-a" in seen
