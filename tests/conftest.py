"""
Pytest configuration and shared fixtures for RevLedger tests.

This module provides shared fixtures and test configuration including:
- In-memory record store and transfer service
- An initialized PaymentDistributor with a funded treasury
- Flask app and test client wired to fresh services
- Metrics reset between tests
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Set up test environment before any imports
os.environ["REVLEDGER_API_KEY"] = "test-api-key-12345"
os.environ["REVLEDGER_REQUIRE_AUTH"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"

from ledger_config import LedgerConfig  # noqa: E402
from monitoring import metrics  # noqa: E402
from payment_distributor import PaymentDistributor  # noqa: E402
from storage.memory import MemoryStorage  # noqa: E402
from transfers import InMemoryTransferService  # noqa: E402

AUTHORITY = "ops-authority"
TREASURY = "treasury"
FEE_ACCOUNT = "platform-fees"
TREASURY_FUNDING = 10**12
FIXED_TIMESTAMP = 1_700_000_000


def fixed_clock():
    return FIXED_TIMESTAMP


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    metrics.reset()
    yield


@pytest.fixture(autouse=True)
def reset_services():
    """Drop any services registered by the API or CLI."""
    from api.state import services

    services.reset()
    yield
    services.reset()


@pytest.fixture
def memory_store():
    """Empty in-memory record store."""
    return MemoryStorage()


@pytest.fixture
def transfer_service():
    """Transfer service with a funded treasury."""
    return InMemoryTransferService({TREASURY: TREASURY_FUNDING})


@pytest.fixture
def ledger_config():
    """Default configuration (250 bps, retain remainder)."""
    return LedgerConfig()


@pytest.fixture
def uninitialized_distributor(memory_store, transfer_service, ledger_config):
    """Distributor over an empty store."""
    return PaymentDistributor(memory_store, transfer_service, config=ledger_config, clock=fixed_clock)


@pytest.fixture
def distributor(uninitialized_distributor):
    """Distributor with the Distributor record created."""
    uninitialized_distributor.initialize(AUTHORITY)
    return uninitialized_distributor


@pytest.fixture
def genesis(distributor):
    """An active Equal-model collection named 'genesis'."""
    return distributor.register_collection(
        "genesis", "https://pay.example.com/x402/genesis", "equal", caller=AUTHORITY
    )


@pytest.fixture
def flask_app(memory_store, transfer_service, ledger_config):
    """Flask app with fresh ledger services for each test."""
    from api import create_app
    from api.state import init_services

    init_services(
        config=ledger_config,
        store=memory_store,
        transfers=transfer_service,
        clock=fixed_clock,
    )
    app = create_app(init=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def test_auth_headers():
    """Headers for authenticated requests."""
    return {
        "Content-Type": "application/json",
        "X-API-Key": "test-api-key-12345"
    }
