"""Abstract database interface.

This is the storage capability the engine is given: per-collection reads,
adds and puts for accounts, movements, transfers and import batches. The
engine never assumes a particular storage engine behind it.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from datetime import date
from decimal import Decimal

from treasury.domain.entities import (
    Account,
    AccountScope,
    ImportBatch,
    Movement,
    MovementDraft,
    MovementOrigin,
    MovementStatus,
    StatusChange,
    Transfer,
)


class Database(ABC):
    """Abstract database interface for treasury."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self,
        alias: str,
        bank_name: str,
        iban: Optional[str] = None,
        opening_balance: Decimal = Decimal("0"),
        currency: str = "EUR",
        scope: AccountScope = AccountScope.PERSONAL,
        minimum_balance: Decimal = Decimal("200"),
    ) -> int:
        """Create a new account. The cached balance starts at the opening balance."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self, include_inactive: bool = True) -> list[Account]:
        """List accounts ordered by alias."""
        pass

    @abstractmethod
    def update_account(
        self,
        account_id: int,
        alias: Optional[str] = None,
        bank_name: Optional[str] = None,
        iban: Optional[str] = None,
        opening_balance: Optional[Decimal] = None,
        minimum_balance: Optional[Decimal] = None,
        scope: Optional[AccountScope] = None,
        is_active: Optional[bool] = None,
    ) -> None:
        """Update account configuration fields that are not None."""
        pass

    @abstractmethod
    def update_account_balance(self, account_id: int, balance: Decimal) -> None:
        """Store the cached current balance of an account."""
        pass

    # Movement operations
    @abstractmethod
    def create_movement(self, draft: MovementDraft) -> int:
        """Create a movement. Returns movement ID."""
        pass

    @abstractmethod
    def get_movement(self, movement_id: int) -> Optional[Movement]:
        """Get movement by ID."""
        pass

    @abstractmethod
    def list_movements(
        self,
        account_id: Optional[int] = None,
        account_ids: Optional[Sequence[int]] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        origin: Optional[MovementOrigin] = None,
        status: Optional[MovementStatus] = None,
        include_ignored: bool = True,
    ) -> list[Movement]:
        """List movements ordered by date, then insertion order."""
        pass

    @abstractmethod
    def update_movement(
        self,
        movement_id: int,
        date: Optional[date] = None,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        counterparty: Optional[str] = None,
        reference: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Update movement fields that are not None."""
        pass

    @abstractmethod
    def set_movement_ignored(self, movement_id: int, ignored: bool) -> None:
        """Flag or unflag a movement as ignored."""
        pass

    @abstractmethod
    def apply_status_changes(self, changes: Sequence[StatusChange]) -> None:
        """Store several status changes in one transaction."""
        pass

    @abstractmethod
    def release_matches(self, changes: Sequence[StatusChange]) -> None:
        """Store status changes and clear the forecast match link, in one transaction."""
        pass

    # Transfer operations
    @abstractmethod
    def create_transfer(
        self,
        outgoing_movement_id: int,
        incoming_movement_id: int,
        amount: Decimal,
        date: date,
        detected: bool = False,
        note: Optional[str] = None,
    ) -> int:
        """Create a transfer and link both legs to it. Returns transfer ID.

        A manual transfer (detected=False) lifts any rejection of the pair.
        """
        pass

    @abstractmethod
    def get_transfer(self, transfer_id: int) -> Optional[Transfer]:
        """Get transfer by ID."""
        pass

    @abstractmethod
    def list_transfers(self, account_id: Optional[int] = None) -> list[Transfer]:
        """List transfers, optionally touching a given account."""
        pass

    @abstractmethod
    def delete_transfer(self, transfer_id: int, reject_pair: bool = False) -> None:
        """Delete a transfer record and clear the link on both legs.

        With reject_pair, the leg pair is also recorded as rejected in the
        same transaction so detection never pairs it again.
        """
        pass

    @abstractmethod
    def list_rejected_transfer_pairs(self) -> set[tuple[int, int]]:
        """Return rejected (outgoing movement ID, incoming movement ID) pairs."""
        pass

    # Import batch operations
    @abstractmethod
    def save_import_batch(
        self,
        filename: str,
        account_id: int,
        total_rows: int,
        skipped_rows: int,
        error_rows: int,
        drafts: Sequence[MovementDraft],
    ) -> tuple[int, list[int]]:
        """Persist movements and then their batch record atomically.

        Either every movement and the batch are committed, or nothing is.

        Returns:
            Tuple of (batch ID, created movement IDs in draft order)
        """
        pass

    @abstractmethod
    def get_import_batch(self, batch_id: int) -> Optional[ImportBatch]:
        """Get import batch by ID."""
        pass

    @abstractmethod
    def find_import_batch(
        self, filename: str, account_id: int, total_rows: int
    ) -> Optional[ImportBatch]:
        """Find a committed batch with the same filename, account and size."""
        pass

    @abstractmethod
    def list_import_batches(self, account_id: Optional[int] = None) -> list[ImportBatch]:
        """List import batches, newest first."""
        pass
