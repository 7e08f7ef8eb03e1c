"""Pytest configuration for the reconciler test suite."""
import os

import pytest

from reconciler.config import LedgerConfig
from reconciler.data.ledger_store import InMemoryLedgerStore
from reconciler.planner.planner import ReconciliationPlanner
from reconciler.registry.reader import RegistryReader

def pytest_configure():
    # Keep tests from picking up a developer's RPC endpoint.
    os.environ.pop("RECONCILER_RPC_URL", None)


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def ledger_config():
    return LedgerConfig(request_timeout=1.0, poll_interval=0.01, convergence_timeout=0.5)


@pytest.fixture
def reader(store, ledger_config):
    return RegistryReader(store, ledger_config)


@pytest.fixture
def planner(reader):
    return ReconciliationPlanner(reader)
