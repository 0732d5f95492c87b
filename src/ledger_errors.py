"""
RevLedger - Ledger Exception Hierarchy

Provides a consistent set of exceptions for the distribution ledger.
Every exception carries a stable error code, an HTTP status for the API
layer, and structured details for logging and monitoring.
"""

from typing import Any


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    Errors are surfaced to the caller verbatim; nothing in the ledger
    retries or recovers from them internally.
    """

    error_code = "LedgerError"
    http_status = 400

    def __init__(
        self,
        message: str,
        action: str = "unknown",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.action = action
        self.details = details or {}
        self.cause = cause

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error": self.message,
            "error_code": self.error_code,
            "action": self.action,
            "details": self.details,
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.error_code}:{self.action}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


# =============================================================================
# Authorization
# =============================================================================

class UnauthorizedError(LedgerError):
    """Caller is not the recorded authority."""

    error_code = "Unauthorized"
    http_status = 403

    def __init__(self, caller: str | None, action: str = "authorize"):
        super().__init__(
            message="Caller is not the ledger authority",
            action=action,
            details={"caller": caller},
        )
        self.caller = caller


# =============================================================================
# Record Lookup / Registration
# =============================================================================

class NotFoundError(LedgerError):
    """A required record is absent from the store."""

    error_code = "NotFound"
    http_status = 404

    def __init__(self, record_key: str, action: str = "lookup"):
        super().__init__(
            message=f"Record not found: {record_key}",
            action=action,
            details={"key": record_key},
        )
        self.record_key = record_key


class AlreadyExistsError(LedgerError):
    """A record with the same key has already been created."""

    error_code = "AlreadyExists"
    http_status = 409

    def __init__(self, record_key: str, action: str = "create"):
        super().__init__(
            message=f"Record already exists: {record_key}",
            action=action,
            details={"key": record_key},
        )
        self.record_key = record_key


# =============================================================================
# Distribution Preconditions
# =============================================================================

class InactiveCollectionError(LedgerError):
    """Distributions are rejected while a collection is disabled."""

    error_code = "InactiveCollection"
    http_status = 409

    def __init__(self, collection_id: str):
        super().__init__(
            message=f"Collection is not active: {collection_id}",
            action="distribute_payment",
            details={"collection_id": collection_id},
        )
        self.collection_id = collection_id


class NoHoldersError(LedgerError):
    """A distribution was requested with an empty holder list."""

    error_code = "NoHolders"
    http_status = 400

    def __init__(self, collection_id: str | None = None):
        super().__init__(
            message="No holders supplied for distribution",
            action="distribute_payment",
            details={"collection_id": collection_id},
        )


class AccountMismatchError(LedgerError):
    """Batch amounts and holder accounts differ in length."""

    error_code = "AccountMismatch"
    http_status = 400

    def __init__(self, amount_count: int, account_count: int, action: str = "distribute_batch"):
        super().__init__(
            message=f"Account count mismatch: {amount_count} amounts for {account_count} accounts",
            action=action,
            details={"amount_count": amount_count, "account_count": account_count},
        )


class InvalidInputError(LedgerError):
    """An argument is malformed or out of range."""

    error_code = "InvalidInput"
    http_status = 400

    def __init__(self, message: str, field: str | None = None, action: str = "validate"):
        super().__init__(
            message=message,
            action=action,
            details={"field": field} if field else {},
        )
        self.field = field


# =============================================================================
# Arithmetic
# =============================================================================

class ArithmeticOverflowError(LedgerError):
    """A value would exceed the unsigned 64-bit range."""

    error_code = "ArithmeticOverflow"
    http_status = 422

    def __init__(self, message: str, details: dict[str, Any] | None = None, action: str = "compute"):
        super().__init__(message=message, action=action, details=details)


class DivisionByZeroError(LedgerError):
    """A split was requested across zero holders."""

    error_code = "DivisionByZero"
    http_status = 400

    def __init__(self, message: str = "Cannot split across zero holders"):
        super().__init__(message=message, action="compute_split")


# =============================================================================
# Collaborators / Models
# =============================================================================

class TransferFailedError(LedgerError):
    """The asset transfer service rejected a transfer instruction."""

    error_code = "TransferFailed"
    http_status = 502

    def __init__(
        self,
        source: str,
        destination: str,
        amount: int,
        index: int | None = None,
        action: str = "transfer",
        cause: Exception | None = None
    ):
        details = {"from": source, "to": destination, "amount": amount}
        if index is not None:
            details["index"] = index
        super().__init__(
            message=f"Transfer of {amount} from {source} to {destination} failed",
            action=action,
            details=details,
            cause=cause,
        )
        self.index = index


class NotImplementedModelError(LedgerError):
    """No split strategy is registered for the requested revenue model."""

    error_code = "NotImplemented"
    http_status = 501

    def __init__(self, revenue_model: str):
        super().__init__(
            message=f"Revenue model not implemented: {revenue_model}",
            action="select_strategy",
            details={"revenue_model": revenue_model},
        )
        self.revenue_model = revenue_model
