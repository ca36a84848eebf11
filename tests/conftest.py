"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
import structlog

from liquidity.config import PoolConfig
from liquidity.pricing.curve import DEFAULT_CURVE_CONSTANTS, CurveConstants
from liquidity.reconciler import Reconciler
from liquidity.state.balances import BalanceTracker, ReserveState
from liquidity.state.seen import SeenSet
from tests.helpers import (
    POOL_ADDRESS,
    TOKEN_CUSTODY_ADDRESS,
    FakeCoinClient,
    FakeQueryService,
    FakeTokenClient,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any structlog.configure() a test performed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def constants() -> CurveConstants:
    """The historical 25 coin / 5000 token calibration."""
    return DEFAULT_CURVE_CONSTANTS


@pytest.fixture
def initial_reserves() -> ReserveState:
    return ReserveState(coin_reserve=Decimal("25"), token_reserve=Decimal("5000"))


@pytest.fixture
def tracker(initial_reserves: ReserveState) -> BalanceTracker:
    return BalanceTracker(initial_reserves)


@pytest.fixture
def seen() -> SeenSet:
    return SeenSet()


@pytest.fixture
def coin_client() -> FakeCoinClient:
    return FakeCoinClient(balance="25")


@pytest.fixture
def token_client() -> FakeTokenClient:
    return FakeTokenClient(token_balance="5000")


@pytest.fixture
def query() -> FakeQueryService:
    return FakeQueryService()


@pytest.fixture
def reconciler(
    constants: CurveConstants,
    tracker: BalanceTracker,
    seen: SeenSet,
    coin_client: FakeCoinClient,
    token_client: FakeTokenClient,
    query: FakeQueryService,
) -> Reconciler:
    """A reconciler wired to in-memory collaborators."""
    return Reconciler(
        pool_address=POOL_ADDRESS,
        token_address=TOKEN_CUSTODY_ADDRESS,
        constants=constants,
        balances=tracker,
        seen=seen,
        coin_client=coin_client,
        token_client=token_client,
        query=query,
    )


@pytest.fixture
def pool_config() -> PoolConfig:
    return PoolConfig(
        coin_address=POOL_ADDRESS,
        token_address=TOKEN_CUSTODY_ADDRESS,
        coin_original=Decimal("25"),
        token_original=Decimal("5000"),
        indexer_url="https://indexer.test/v2/",
    )
