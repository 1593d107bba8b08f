"""Shared test fixtures."""

import pytest

from fakes import FakeCache, FakeChain, FakeClock, FakeGateway, FakeResolver, InMemoryLedgerStore

from launchpad_indexer.app.application.services.token_metrics import TokenMetricsRefresher


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def refresher(gateway: FakeGateway, store: InMemoryLedgerStore, cache: FakeCache, clock: FakeClock) -> TokenMetricsRefresher:
    return TokenMetricsRefresher(gateway=gateway, store=store, cache=cache, now=clock)
