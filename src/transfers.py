"""
RevLedger - Asset Transfer Service

The ledger never moves assets itself. It hands (from, to, amount)
instructions to a TransferService, which either applies an instruction
completely or raises TransferError.

A TransferService is also a transaction participant: transfers issued inside
a ledger transaction are undone if that transaction fails, so the record
store and the transfer side commit together or not at all.

InMemoryTransferService is the bundled implementation. It keeps balances
and a journal in memory and is what the API server and tests run against;
a chain-backed service plugs in behind the same interface.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from storage.base import TransactionParticipant

logger = logging.getLogger(__name__)


class TransferError(Exception):
    """Raised by a transfer service when an instruction is rejected."""

    def __init__(self, message: str, reason: str = "rejected"):
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class TransferInstruction:
    """A single asset movement."""

    source: str
    destination: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.destination, "amount": self.amount}


@dataclass
class TransferRecord:
    """Journal entry for an applied transfer."""

    transfer_id: int
    source: str
    destination: str
    amount: int
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "from": self.source,
            "to": self.destination,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


class TransferService(TransactionParticipant, ABC):
    """Interface to the external asset transfer mechanism."""

    @abstractmethod
    def transfer(self, source: str, destination: str, amount: int) -> TransferRecord:
        """
        Move amount from source to destination.

        Raises:
            TransferError: the instruction was rejected; nothing was moved
        """
        pass

    def execute(self, instruction: TransferInstruction) -> TransferRecord:
        return self.transfer(instruction.source, instruction.destination, instruction.amount)


class InMemoryTransferService(TransferService):
    """
    Balance-sheet transfer service held in memory.

    begin() snapshots balances and the journal; rollback() restores the
    snapshot, commit() discards it. Accounts added with block_account()
    reject every incoming transfer.
    """

    def __init__(self, balances: dict[str, int] | None = None, allow_overdraft: bool = False):
        """
        Initialize the service.

        Args:
            balances: Opening balances by account
            allow_overdraft: Let source balances go negative
        """
        self._balances: dict[str, int] = dict(balances or {})
        self._journal: list[TransferRecord] = []
        self._blocked: set[str] = set()
        self._next_id = 1
        self._snapshot: tuple[dict[str, int], int, int] | None = None
        self.allow_overdraft = allow_overdraft
        self._lock = threading.RLock()

    # Balance management

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def balances(self) -> dict[str, int]:
        with self._lock:
            return dict(self._balances)

    def credit(self, account: str, amount: int) -> None:
        """Fund an account directly (treasury top-ups, tests)."""
        if amount < 0:
            raise ValueError("Credit amount must not be negative")
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount

    def block_account(self, account: str) -> None:
        with self._lock:
            self._blocked.add(account)

    def unblock_account(self, account: str) -> None:
        with self._lock:
            self._blocked.discard(account)

    @property
    def journal(self) -> list[TransferRecord]:
        with self._lock:
            return list(self._journal)

    # TransferService

    def transfer(self, source: str, destination: str, amount: int) -> TransferRecord:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise TransferError(f"Invalid transfer amount: {amount!r}", reason="invalid_amount")
        if not source or not destination:
            raise TransferError("Transfer requires a source and a destination", reason="invalid_account")

        with self._lock:
            if destination in self._blocked:
                raise TransferError(f"Destination account rejected: {destination}", reason="blocked")

            available = self._balances.get(source, 0)
            if not self.allow_overdraft and available < amount:
                raise TransferError(
                    f"Insufficient funds in {source}: {available} < {amount}",
                    reason="insufficient_funds",
                )

            self._balances[source] = available - amount
            self._balances[destination] = self._balances.get(destination, 0) + amount

            record = TransferRecord(
                transfer_id=self._next_id,
                source=source,
                destination=destination,
                amount=amount,
            )
            self._next_id += 1
            self._journal.append(record)

        logger.debug("Transfer applied", extra={"transfer": record.to_dict()})
        return record

    # TransactionParticipant

    def begin(self) -> None:
        with self._lock:
            self._snapshot = (copy.copy(self._balances), len(self._journal), self._next_id)

    def commit(self) -> None:
        with self._lock:
            self._snapshot = None

    def rollback(self) -> None:
        with self._lock:
            if self._snapshot is None:
                return
            balances, journal_length, next_id = self._snapshot
            undone = len(self._journal) - journal_length
            self._balances = balances
            del self._journal[journal_length:]
            self._next_id = next_id
            self._snapshot = None

        if undone:
            logger.info("Rolled back transfers", extra={"undone_transfers": undone})

    def get_info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "service_type": self.__class__.__name__,
                "accounts": len(self._balances),
                "transfers": len(self._journal),
                "allow_overdraft": self.allow_overdraft,
            }
