"""
Shared state for the RevLedger API.

This module holds the service instances shared across all blueprints.
They are built once by init_services() (or injected by tests) and looked
up per request through get_distributor().
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ledger_config import LedgerConfig
from ledger_errors import LedgerError
from payment_distributor import PaymentDistributor
from storage import StorageBackend, get_storage_backend
from transfers import InMemoryTransferService, TransferService

logger = logging.getLogger(__name__)


class ServiceNotReadyError(LedgerError):
    """The ledger service has not been initialized for this process."""

    error_code = "ServiceUnavailable"
    http_status = 503

    def __init__(self):
        super().__init__(message="Ledger service not initialized", action="lookup_service")


@dataclass
class ServiceRegistry:
    """Registry for the service instances behind the API."""

    distributor: PaymentDistributor | None = None

    def is_ready(self) -> bool:
        return self.distributor is not None

    def reset(self) -> None:
        if self.distributor is not None:
            self.distributor.store.close()
        self.distributor = None


# Global service registry instance
services = ServiceRegistry()


def init_services(
    config: LedgerConfig | None = None,
    store: StorageBackend | None = None,
    transfers: TransferService | None = None,
    clock: Callable[[], float] | None = None,
) -> PaymentDistributor:
    """
    Build the PaymentDistributor and publish it in the registry.

    Missing collaborators are built from the configuration: the storage
    backend it names, and an in-memory transfer service whose treasury holds
    the configured opening balance.
    """
    config = (config or LedgerConfig.from_env()).validate()

    if store is None:
        store = get_storage_backend(config.storage_backend, config.data_file, config.database_url)
    if transfers is None:
        transfers = InMemoryTransferService({config.treasury_account: config.treasury_opening_balance})

    services.distributor = PaymentDistributor(store, transfers, config=config, clock=clock)
    logger.info(
        "Ledger services initialized",
        extra={"storage_backend": store.__class__.__name__, "fee_bps": config.fee_bps},
    )
    return services.distributor


def get_distributor() -> PaymentDistributor:
    """
    Return the shared distributor.

    Raises:
        ServiceNotReadyError: init_services() has not run
    """
    if services.distributor is None:
        raise ServiceNotReadyError()
    return services.distributor
