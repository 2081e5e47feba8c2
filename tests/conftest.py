"""Pytest configuration for the dexrelay test suite."""

from __future__ import annotations

import time

import pytest
from prometheus_client import CollectorRegistry

from dexrelay.core.monitoring.metrics import MetricsCollector, configure_metrics_collector
from dexrelay.core.services.broadcaster import ProgressBroadcaster
from dexrelay.core.services.persistence import create_test_repository
from dexrelay.core.services.pipeline import MarketCreationService
from dexrelay.core.services.submitter import SignerLocks
from fakes import FakeArchiver, FakeLedger, FakeRedis, make_config


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--dexrelay-run-integration",
        action="store_true",
        default=False,
        help="Run dexrelay integration tests that require a live ledger or Redis.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for dexrelay tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks dexrelay tests requiring network or external services",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--dexrelay-run-integration"):
        return

    dexrelay_skip_integration = pytest.mark.skip(
        reason="integration tests require --dexrelay-run-integration",
    )
    for dexrelay_item in items:
        if "integration" in dexrelay_item.keywords:
            dexrelay_item.add_marker(dexrelay_skip_integration)


@pytest.fixture()
def metrics() -> MetricsCollector:
    collector = MetricsCollector(registry=CollectorRegistry())
    configure_metrics_collector(collector)
    yield collector
    configure_metrics_collector(None)


@pytest.fixture()
def config():
    return make_config()


@pytest.fixture()
def ledger(config) -> FakeLedger:
    return FakeLedger(config.units)


@pytest.fixture()
def repository():
    repo = create_test_repository()
    yield repo
    repo.close()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def broadcaster(fake_redis, metrics) -> ProgressBroadcaster:
    return ProgressBroadcaster(client=fake_redis, metrics=metrics, timeout=0.5)


@pytest.fixture()
def archiver() -> FakeArchiver:
    return FakeArchiver()


@pytest.fixture()
def service_factory(repository, broadcaster, metrics, archiver):
    """Build a :class:`MarketCreationService` over the fakes, with an optional fixed clock."""

    def factory(config, ledger, clock=None) -> MarketCreationService:
        return MarketCreationService(
            config,
            ledger,
            repository,
            broadcaster=broadcaster,
            metrics=metrics,
            locks=SignerLocks(),
            clock=clock or time.time,
            archiver=archiver,
        )

    return factory


@pytest.fixture()
def service(service_factory, config, ledger) -> MarketCreationService:
    return service_factory(config, ledger)


@pytest.fixture()
def creation_payload() -> dict:
    return {
        "symbol": "alu-usd",
        "metricUrl": "https://example.com/metrics/aluminium",
        "startPriceFixedPoint": 1_000_000,
        "settlementDate": int(time.time()) + 365 * 24 * 3600,
        "tags": ["COMMODITIES"],
        "pipelineId": "pipe-1",
    }
