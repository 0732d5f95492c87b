"""
RevLedger - Payment Distributor

Orchestrates every ledger operation on top of the record store, the split
calculator and the transfer service.

A mutating operation is one unit of work:
    authorize -> check preconditions -> compute split -> issue transfers
    -> stage aggregate updates and the audit event -> commit

The transfer service joins the store transaction as a participant, so a
failure at any step (including the final store commit) rolls back both the
staged records and every transfer already issued in the call.

Batch operations move caller-supplied amounts and never touch aggregates:
- distribute_batch: all-or-nothing, any failed transfer aborts the batch
- distribute_batch_best_effort: every index attempted, outcomes reported
"""

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from access_control import LedgerAction, authorize
from ledger_config import LedgerConfig
from ledger_errors import (
    AccountMismatchError,
    AlreadyExistsError,
    InactiveCollectionError,
    InvalidInputError,
    LedgerError,
    NoHoldersError,
    NotFoundError,
    TransferFailedError,
)
from ledger_records import (
    COLLECTION_KEY_PREFIX,
    DISTRIBUTOR_KEY,
    MAX_COLLECTION_ID_LENGTH,
    MAX_PAYOUT_ENDPOINT_LENGTH,
    CollectionConfig,
    DistributionEvent,
    Distributor,
    RevenueModel,
    checked_add,
    collection_key,
    require_u64,
)
from monitoring import metrics, timed
from split_calculator import HolderContext, SplitStrategy, split_payment
from storage.base import StorageBackend, StorageError, StoreTransaction
from transfers import TransferError, TransferRecord, TransferService

logger = logging.getLogger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class BatchOutcome:
    """Result of one index of a batch."""

    index: int
    account: str
    amount: int
    status: str  # ok or error
    transfer_id: int | None = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "index": self.index,
            "account": self.account,
            "amount": self.amount,
            "status": self.status,
        }
        if self.transfer_id is not None:
            result["transfer_id"] = self.transfer_id
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class BatchResult:
    """Outcome of a batch distribution."""

    mode: str  # atomic or best_effort
    outcomes: list[BatchOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "ok")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "error")

    @property
    def total_transferred(self) -> int:
        return sum(o.amount for o in self.outcomes if o.status == "ok")

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total_transferred": self.total_transferred,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class ReconciliationReport:
    """Stored aggregates compared with totals replayed from the event log."""

    event_count: int
    collections_checked: int
    mismatches: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches

    def to_dict(self) -> dict[str, Any]:
        return {
            "consistent": self.is_consistent,
            "event_count": self.event_count,
            "collections_checked": self.collections_checked,
            "mismatches": self.mismatches,
        }


# =============================================================================
# Validation Helpers
# =============================================================================


def _require_identifier(value: Any, field_name: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field_name} must be a non-empty string", field=field_name)
    if len(value) > max_length:
        raise InvalidInputError(
            f"{field_name} exceeds {max_length} characters", field=field_name
        )
    return value


def _require_accounts(values: Any, field_name: str) -> list[str]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise InvalidInputError(f"{field_name} must be a list of accounts", field=field_name)
    accounts = list(values)
    for account in accounts:
        if not isinstance(account, str) or not account.strip():
            raise InvalidInputError(
                f"{field_name} entries must be non-empty strings", field=field_name
            )
    return accounts


# =============================================================================
# Distributor Service
# =============================================================================


class PaymentDistributor:
    """
    Service for registering collections and distributing payments.

    Holds no ledger state of its own; every call reads the Distributor and
    CollectionConfig records from the store inside its own transaction.
    """

    def __init__(
        self,
        store: StorageBackend,
        transfers: TransferService,
        config: LedgerConfig | None = None,
        clock: Callable[[], float] | None = None,
        strategies: dict[RevenueModel, SplitStrategy] | None = None,
    ):
        """
        Initialize the distributor.

        Args:
            store: Ledger record store
            transfers: Asset transfer service
            config: Ledger configuration (defaults if omitted)
            clock: Returns the current unix time in seconds
            strategies: Split strategy per revenue model (defaults if omitted)
        """
        self.store = store
        self.transfers = transfers
        self.config = (config or LedgerConfig()).validate()
        self.clock = clock or time.time
        self.strategies = strategies

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, action: LedgerAction | str) -> Iterator[StoreTransaction]:
        action_name = action.value if isinstance(action, LedgerAction) else action
        try:
            with self.store.transaction(participants=[self.transfers]) as txn:
                yield txn
        except LedgerError as e:
            logger.warning(
                "Ledger operation rejected",
                extra={"action": action_name, "error_code": e.error_code, "details": e.details},
            )
            raise

    def _load_distributor(self, txn: StoreTransaction, action: str) -> Distributor:
        data = txn.get(DISTRIBUTOR_KEY)
        if data is None:
            raise NotFoundError(DISTRIBUTOR_KEY, action=action)
        return Distributor.from_dict(data)

    def _load_collection(self, txn: StoreTransaction, collection_id: str, action: str) -> CollectionConfig:
        data = txn.get(collection_key(collection_id))
        if data is None:
            raise NotFoundError(collection_key(collection_id), action=action)
        return CollectionConfig.from_dict(data)

    def _authorize(self, txn: StoreTransaction, caller: str | None, action: LedgerAction) -> Distributor:
        distributor = self._load_distributor(txn, action.value)
        authorize(caller, distributor.authority, action)
        return distributor

    def _reject_ledger_accounts(self, accounts: Sequence[str | None], field_name: str) -> None:
        internal = {self.config.treasury_account, self.config.fee_account}
        for account in accounts:
            if account in internal:
                raise InvalidInputError(
                    f"{field_name} must not include the ledger account {account}", field=field_name
                )

    def _transfer(
        self,
        destination: str,
        amount: int,
        action: LedgerAction,
        index: int | None = None,
    ) -> TransferRecord:
        source = self.config.treasury_account
        try:
            return self.transfers.transfer(source, destination, amount)
        except TransferError as e:
            raise TransferFailedError(
                source, destination, amount, index=index, action=action.value, cause=e
            ) from e

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def initialize(self, authority: str) -> Distributor:
        """
        Create the Distributor record.

        Raises:
            AlreadyExistsError: the ledger has already been initialized
            InvalidInputError: authority is empty
        """
        _require_identifier(authority, "authority", MAX_COLLECTION_ID_LENGTH)

        with self._unit_of_work("initialize") as txn:
            if txn.get(DISTRIBUTOR_KEY) is not None:
                raise AlreadyExistsError(DISTRIBUTOR_KEY, action="initialize")
            distributor = Distributor(authority=authority)
            txn.put(DISTRIBUTOR_KEY, distributor.to_dict())

        logger.info("Ledger initialized", extra={"authority": authority})
        return distributor

    def register_collection(
        self,
        collection_id: str,
        payout_endpoint: str,
        revenue_model: RevenueModel | str = RevenueModel.EQUAL,
        caller: str | None = None,
    ) -> CollectionConfig:
        """
        Register a collection for distributions.

        Raises:
            UnauthorizedError: caller is not the authority
            AlreadyExistsError: collection_id is already registered
            InvalidInputError: malformed identifier, endpoint or model
        """
        action = LedgerAction.REGISTER_COLLECTION
        with self._unit_of_work(action) as txn:
            self._authorize(txn, caller, action)

            _require_identifier(collection_id, "collection_id", MAX_COLLECTION_ID_LENGTH)
            if not isinstance(payout_endpoint, str):
                raise InvalidInputError("payout_endpoint must be a string", field="payout_endpoint")
            if len(payout_endpoint) > MAX_PAYOUT_ENDPOINT_LENGTH:
                raise InvalidInputError(
                    f"payout_endpoint exceeds {MAX_PAYOUT_ENDPOINT_LENGTH} characters",
                    field="payout_endpoint",
                )
            model = RevenueModel.parse(revenue_model)

            key = collection_key(collection_id)
            if txn.get(key) is not None:
                raise AlreadyExistsError(key, action=action.value)

            collection = CollectionConfig(
                collection_id=collection_id,
                payout_endpoint=payout_endpoint,
                revenue_model=model,
            )
            txn.put(key, collection.to_dict())

        metrics.increment("collections_registered_total", labels={"revenue_model": model.value})
        logger.info(
            "Collection registered",
            extra={"collection_id": collection_id, "revenue_model": model.value},
        )
        return collection

    def set_collection_active(
        self,
        collection_id: str,
        is_active: bool,
        caller: str | None = None,
    ) -> CollectionConfig:
        """
        Enable or disable distributions for a collection.

        Raises:
            UnauthorizedError: caller is not the authority
            NotFoundError: collection is not registered
        """
        action = LedgerAction.SET_COLLECTION_ACTIVE
        with self._unit_of_work(action) as txn:
            self._authorize(txn, caller, action)
            if not isinstance(is_active, bool):
                raise InvalidInputError("is_active must be a boolean", field="is_active")

            collection = self._load_collection(txn, collection_id, action.value)
            if collection.is_active != is_active:
                collection.is_active = is_active
                collection.updated_at = datetime.now(UTC).isoformat()
                txn.put(collection_key(collection_id), collection.to_dict())

        logger.info(
            "Collection %s", "enabled" if is_active else "disabled",
            extra={"collection_id": collection_id},
        )
        return collection

    # -------------------------------------------------------------------------
    # Distribution
    # -------------------------------------------------------------------------

    def distribute_payment(
        self,
        collection_id: str,
        gross_amount: int,
        holders: Sequence[str],
        caller: str | None = None,
        *,
        weights: Sequence[int] | None = None,
        creator_account: str | None = None,
        creator_share_bps: int | None = None,
    ) -> DistributionEvent:
        """
        Split a gross payment across a collection's holders.

        Transfers the fee to the fee account and each allocation to its
        account, then updates Distributor and collection aggregates and
        appends a DistributionEvent, all in one transaction.

        Args:
            collection_id: Registered collection
            gross_amount: Incoming amount in the smallest unit (u64, > 0)
            holders: Ordered, unique holder accounts
            caller: Identity supplied by the identity source
            weights: Per-holder weights (weighted model)
            creator_account: Creator account (creator split model)
            creator_share_bps: Creator share in basis points (creator split model)

        Returns:
            The committed DistributionEvent

        Raises:
            UnauthorizedError, NotFoundError, InactiveCollectionError,
            NoHoldersError, InvalidInputError, ArithmeticOverflowError,
            NotImplementedModelError, TransferFailedError
        """
        action = LedgerAction.DISTRIBUTE_PAYMENT
        try:
            with metrics.timer("distribution_duration_ms"):
                with self._unit_of_work(action) as txn:
                    distributor = self._authorize(txn, caller, action)
                    collection = self._load_collection(txn, collection_id, action.value)
                    if not collection.is_active:
                        raise InactiveCollectionError(collection_id)

                    holder_list = _require_accounts(holders, "holders")
                    if not holder_list:
                        raise NoHoldersError(collection_id)
                    if len(set(holder_list)) != len(holder_list):
                        raise InvalidInputError("holders must be unique", field="holders")
                    self._reject_ledger_accounts(holder_list, "holders")
                    self._reject_ledger_accounts([creator_account], "creator_account")

                    require_u64(gross_amount, "gross_amount")
                    if gross_amount == 0:
                        raise InvalidInputError("gross_amount must be positive", field="gross_amount")

                    context = HolderContext(
                        holders=holder_list,
                        weights=weights,
                        creator_account=creator_account,
                        creator_share_bps=creator_share_bps,
                    )
                    split = split_payment(
                        collection.revenue_model,
                        gross_amount,
                        context,
                        fee_bps=self.config.fee_bps,
                        remainder_policy=self.config.remainder_policy,
                        strategies=self.strategies,
                    )

                    # Transfers first; aggregates are staged only once all succeeded
                    if split.fee:
                        self._transfer(self.config.fee_account, split.fee, action)
                    for index, allocation in enumerate(split.allocations):
                        if allocation.amount:
                            self._transfer(allocation.account, allocation.amount, action, index=index)

                    distributor.total_distributions = checked_add(
                        distributor.total_distributions, 1, "total_distributions"
                    )
                    distributor.total_amount_distributed = checked_add(
                        distributor.total_amount_distributed, gross_amount, "total_amount_distributed"
                    )
                    collection.distribution_count = checked_add(
                        collection.distribution_count, 1, "distribution_count"
                    )
                    collection.total_distributed = checked_add(
                        collection.total_distributed, gross_amount, "total_distributed"
                    )
                    collection.updated_at = datetime.now(UTC).isoformat()

                    event = DistributionEvent(
                        sequence=distributor.total_distributions,
                        collection_id=collection_id,
                        gross_amount=gross_amount,
                        holder_count=len(holder_list),
                        amount_per_holder=split.amount_per_holder,
                        timestamp=int(self.clock()),
                        fee=split.fee,
                        distributable=split.distributable,
                        remainder=split.remainder,
                        revenue_model=collection.revenue_model.value,
                    )

                    txn.put(DISTRIBUTOR_KEY, distributor.to_dict())
                    txn.put(collection_key(collection_id), collection.to_dict())
                    txn.append_event(event.to_dict())
        except LedgerError as e:
            metrics.increment("distribution_failures_total", labels={"error_code": e.error_code})
            raise
        except StorageError:
            metrics.increment("distribution_failures_total", labels={"error_code": "StorageError"})
            raise

        metrics.increment("distributions_total", labels={"revenue_model": event.revenue_model})
        logger.info(
            "Payment distributed",
            extra={
                "collection_id": collection_id,
                "gross_amount": gross_amount,
                "fee": event.fee,
                "holder_count": event.holder_count,
                "amount_per_holder": event.amount_per_holder,
                "remainder": event.remainder,
            },
        )
        return event

    def _validate_batch(
        self,
        amounts: Sequence[int],
        holder_accounts: Sequence[str],
        action: LedgerAction,
    ) -> tuple[list[int], list[str]]:
        if isinstance(amounts, (str, bytes)) or not isinstance(amounts, Sequence):
            raise InvalidInputError("amounts must be a list", field="amounts")
        accounts = _require_accounts(holder_accounts, "holder_accounts")
        amount_list = list(amounts)
        if len(amount_list) != len(accounts):
            raise AccountMismatchError(len(amount_list), len(accounts), action=action.value)
        self._reject_ledger_accounts(accounts, "holder_accounts")
        for amount in amount_list:
            require_u64(amount, "amounts")
        return amount_list, accounts

    def distribute_batch(
        self,
        amounts: Sequence[int],
        holder_accounts: Sequence[str],
        caller: str | None = None,
    ) -> BatchResult:
        """
        Transfer amounts[i] to holder_accounts[i], all or nothing.

        Raises:
            UnauthorizedError: caller is not the authority
            AccountMismatchError: list lengths differ (no transfer issued)
            TransferFailedError: a transfer failed; every transfer of the
                batch is rolled back and the error names the failing index
        """
        action = LedgerAction.DISTRIBUTE_BATCH
        result = BatchResult(mode="atomic")

        with self._unit_of_work(action) as txn:
            self._authorize(txn, caller, action)
            amount_list, accounts = self._validate_batch(amounts, holder_accounts, action)

            for index, (amount, account) in enumerate(zip(amount_list, accounts, strict=True)):
                record = self._transfer(account, amount, action, index=index)
                result.outcomes.append(
                    BatchOutcome(
                        index=index,
                        account=account,
                        amount=amount,
                        status="ok",
                        transfer_id=record.transfer_id,
                    )
                )

        metrics.increment("batch_transfers_total", value=result.succeeded, labels={"mode": result.mode})
        logger.info(
            "Batch distributed",
            extra={"batch_mode": result.mode, "transfers": result.succeeded,
                   "total_transferred": result.total_transferred},
        )
        return result

    def distribute_batch_best_effort(
        self,
        amounts: Sequence[int],
        holder_accounts: Sequence[str],
        caller: str | None = None,
    ) -> BatchResult:
        """
        Attempt every transfer independently and report per-index outcomes.

        Successful transfers are committed even when others fail.

        Raises:
            UnauthorizedError: caller is not the authority
            AccountMismatchError: list lengths differ (no transfer issued)
        """
        action = LedgerAction.DISTRIBUTE_BATCH_BEST_EFFORT
        result = BatchResult(mode="best_effort")

        with self._unit_of_work(action) as txn:
            self._authorize(txn, caller, action)
            amount_list, accounts = self._validate_batch(amounts, holder_accounts, action)

            for index, (amount, account) in enumerate(zip(amount_list, accounts, strict=True)):
                try:
                    record = self._transfer(account, amount, action, index=index)
                except TransferFailedError as e:
                    logger.warning(
                        "Batch transfer failed",
                        extra={"index": index, "account": account, "reason": getattr(e.cause, "reason", None)},
                    )
                    result.outcomes.append(
                        BatchOutcome(index=index, account=account, amount=amount,
                                     status="error", error=e.to_dict())
                    )
                    continue
                result.outcomes.append(
                    BatchOutcome(index=index, account=account, amount=amount,
                                 status="ok", transfer_id=record.transfer_id)
                )

        metrics.increment("batch_transfers_total", value=result.succeeded, labels={"mode": result.mode})
        if result.failed:
            metrics.increment("batch_transfer_failures_total", value=result.failed)
        logger.info(
            "Best-effort batch distributed",
            extra={"batch_mode": result.mode, "transfers": result.succeeded, "failures": result.failed},
        )
        return result

    # -------------------------------------------------------------------------
    # Queries (no authorization)
    # -------------------------------------------------------------------------

    def get_stats(self, collection_id: str) -> CollectionConfig:
        """
        Snapshot of a collection's configuration and aggregates.

        Raises:
            NotFoundError: collection is not registered
        """
        data = self.store.get(collection_key(collection_id))
        if data is None:
            raise NotFoundError(collection_key(collection_id), action="get_stats")
        return CollectionConfig.from_dict(data)

    def get_distributor_stats(self) -> Distributor:
        """
        Snapshot of the Distributor record.

        Raises:
            NotFoundError: the ledger has not been initialized
        """
        data = self.store.get(DISTRIBUTOR_KEY)
        if data is None:
            raise NotFoundError(DISTRIBUTOR_KEY, action="get_distributor_stats")
        return Distributor.from_dict(data)

    def get_distribution_history(
        self,
        collection_id: str,
        limit: int | None = None,
    ) -> list[DistributionEvent]:
        """
        Distribution events for a collection, newest first.

        Raises:
            NotFoundError: collection is not registered
            InvalidInputError: limit is not a positive integer
        """
        if limit is None:
            limit = self.config.history_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInputError("limit must be a positive integer", field="limit")

        self.get_stats(collection_id)
        events = self.store.get_events(collection_id=collection_id, limit=limit, newest_first=True)
        return [DistributionEvent.from_dict(e) for e in events]

    def list_collections(self, active_only: bool = False) -> list[CollectionConfig]:
        """All registered collections, ordered by collection_id."""
        collections = [
            CollectionConfig.from_dict(data)
            for data in self.store.list_records(COLLECTION_KEY_PREFIX)
        ]
        if active_only:
            collections = [c for c in collections if c.is_active]
        return collections

    @timed("reconcile_duration_ms")
    def reconcile(self) -> ReconciliationReport:
        """
        Replay the event log and compare it with the stored aggregates.

        Reads happen inside one transaction so the event log and records
        belong to the same committed state.
        """
        with self.store.transaction() as txn:
            distributor_data = txn.get(DISTRIBUTOR_KEY)
            collections = [
                CollectionConfig.from_dict(data)
                for data in self.store.list_records(COLLECTION_KEY_PREFIX)
            ]
            events = [DistributionEvent.from_dict(e) for e in self.store.get_events()]

        replayed: dict[str, dict[str, int]] = {}
        mismatches: list[dict[str, Any]] = []

        for position, event in enumerate(events, start=1):
            totals = replayed.setdefault(event.collection_id, {"count": 0, "amount": 0})
            totals["count"] += 1
            totals["amount"] += event.gross_amount
            if event.sequence != position:
                mismatches.append({
                    "record": "event", "field": "sequence",
                    "expected": position, "actual": event.sequence,
                })
            if event.fee + event.distributable != event.gross_amount:
                mismatches.append({
                    "record": "event", "field": "fee+distributable",
                    "expected": event.gross_amount, "actual": event.fee + event.distributable,
                    "sequence": event.sequence,
                })

        known_ids = {c.collection_id for c in collections}
        for collection in collections:
            totals = replayed.get(collection.collection_id, {"count": 0, "amount": 0})
            record = collection_key(collection.collection_id)
            if collection.distribution_count != totals["count"]:
                mismatches.append({
                    "record": record, "field": "distribution_count",
                    "expected": totals["count"], "actual": collection.distribution_count,
                })
            if collection.total_distributed != totals["amount"]:
                mismatches.append({
                    "record": record, "field": "total_distributed",
                    "expected": totals["amount"], "actual": collection.total_distributed,
                })

        for orphan in sorted(set(replayed) - known_ids):
            mismatches.append({
                "record": collection_key(orphan), "field": "exists",
                "expected": True, "actual": False,
            })

        if distributor_data is not None:
            distributor = Distributor.from_dict(distributor_data)
            expected_amount = sum(t["amount"] for t in replayed.values())
            if distributor.total_distributions != len(events):
                mismatches.append({
                    "record": DISTRIBUTOR_KEY, "field": "total_distributions",
                    "expected": len(events), "actual": distributor.total_distributions,
                })
            if distributor.total_amount_distributed != expected_amount:
                mismatches.append({
                    "record": DISTRIBUTOR_KEY, "field": "total_amount_distributed",
                    "expected": expected_amount, "actual": distributor.total_amount_distributed,
                })

        report = ReconciliationReport(
            event_count=len(events),
            collections_checked=len(collections),
            mismatches=mismatches,
        )
        if not report.is_consistent:
            logger.error("Reconciliation found mismatches", extra={"mismatches": mismatches})
        return report
