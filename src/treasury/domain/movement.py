"""Movement domain service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from treasury.domain.account import AccountService
from treasury.domain.context import TreasuryContext
from treasury.domain.entities import (
    Movement as MovementEntity,
    MovementDraft,
    MovementOrigin,
    MovementStatus,
    StatusChange,
)
from treasury.domain.errors import (
    ConflictError,
    NotFoundError,
    StatusTransitionError,
    ValidationError,
    movement_not_found,
)
from treasury.domain.status import (
    ClassificationResult,
    check_transition,
    classify_movements,
    reopened_status,
)
from treasury.utils.amount_parser import to_money

logger = logging.getLogger(__name__)


class MovementService:
    """Service for manual movements, forecasts and reconciliation actions."""

    def __init__(self, ctx: TreasuryContext):
        """Initialize movement service.

        Args:
            ctx: Treasury context with database, matching configuration and clock
        """
        self.ctx = ctx
        self.db = ctx.db
        self.accounts = AccountService(ctx.db)

    def _require(self, movement_id: int) -> MovementEntity:
        movement = self.db.get_movement(movement_id)
        if movement is None:
            raise NotFoundError(movement_not_found(movement_id))
        return movement

    def _validate_new(self, account_id: int, amount: Decimal, description: str) -> Decimal:
        self.accounts.require_account(account_id)
        amount = to_money(amount)
        if amount == 0:
            raise ValidationError("Amount must not be zero")
        if not description or not description.strip():
            raise ValidationError("Description must not be empty")
        return amount

    def create_movement(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        description: str,
        counterparty: Optional[str] = None,
        reference: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Record a movement that happened without a statement line.

        Manual movements start as confirmado and count towards the balance.

        Args:
            account_id: Account ID
            date: Movement date
            amount: Signed amount
            description: Description
            counterparty: Optional counterparty
            reference: Optional reference
            category: Optional category
            notes: Optional notes

        Returns:
            Movement ID

        Raises:
            NotFoundError: If account doesn't exist
            ValidationError: If amount is zero or description empty
        """
        amount = self._validate_new(account_id, amount, description)
        movement_id = self.db.create_movement(
            MovementDraft(
                account_id=account_id,
                date=date,
                amount=amount,
                description=description.strip(),
                origin=MovementOrigin.MANUAL,
                status=MovementStatus.CONFIRMADO,
                counterparty=counterparty,
                reference=reference,
                category=category,
                notes=notes,
            )
        )
        self.accounts.recompute_balance(account_id)
        return movement_id

    def create_forecast(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        description: str,
        category: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Record an expected future movement.

        A forecast dated before today starts as vencido, otherwise previsto.

        Returns:
            Movement ID
        """
        amount = self._validate_new(account_id, amount, description)
        status = MovementStatus.VENCIDO if date < self.ctx.today() else MovementStatus.PREVISTO
        return self.db.create_movement(
            MovementDraft(
                account_id=account_id,
                date=date,
                amount=amount,
                description=description.strip(),
                origin=MovementOrigin.FORECAST,
                status=status,
                category=category,
                notes=notes,
            )
        )

    def schedule_forecasts(
        self,
        account_id: int,
        amount: Decimal,
        description: str,
        start: date,
        end: date,
        every_months: int = 1,
        category: Optional[str] = None,
    ) -> list[int]:
        """Create a recurring forecast, one movement per period.

        Dates are computed from start, so a schedule starting on the 31st
        falls on the last day of shorter months.

        Args:
            account_id: Account ID
            amount: Signed amount of each occurrence
            description: Description
            start: First occurrence
            end: Last allowed date
            every_months: Months between occurrences
            category: Optional category

        Returns:
            Created movement IDs in date order

        Raises:
            ValidationError: If the range or period is invalid
        """
        if every_months < 1:
            raise ValidationError("Period must be at least one month")
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")

        ids = []
        occurrence = 0
        current = start
        while current <= end:
            ids.append(
                self.create_forecast(account_id, current, amount, description, category=category)
            )
            occurrence += 1
            current = start + relativedelta(months=occurrence * every_months)
        logger.info("Scheduled %d forecast(s) for account %s", len(ids), account_id)
        return ids

    def get_movement(self, movement_id: int) -> Optional[MovementEntity]:
        return self.db.get_movement(movement_id)

    def list_movements(
        self,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[MovementStatus] = None,
        origin: Optional[MovementOrigin] = None,
        include_ignored: bool = True,
    ) -> list[MovementEntity]:
        """List movements with optional filters, ordered by date."""
        return self.db.list_movements(
            account_id=account_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            origin=origin,
            include_ignored=include_ignored,
        )

    def _change_status(self, movement_id: int, new_status: MovementStatus) -> MovementEntity:
        movement = self._require(movement_id)
        change = check_transition(movement, new_status)
        self.db.apply_status_changes([change])
        self.accounts.recompute_balance(movement.account_id)
        logger.info("Movement %s: %s -> %s", movement_id, movement.status.value, new_status.value)
        return self._require(movement_id)

    def confirm(self, movement_id: int) -> MovementEntity:
        """Mark a movement as paid or collected.

        Raises:
            StatusTransitionError: If the movement can't be confirmed
        """
        return self._change_status(movement_id, MovementStatus.CONFIRMADO)

    def reconcile(self, movement_id: int) -> MovementEntity:
        """Close a confirmed movement as fully resolved.

        Raises:
            StatusTransitionError: If the movement isn't confirmado
        """
        return self._change_status(movement_id, MovementStatus.CONCILIADO)

    def _release_match(self, movement: MovementEntity) -> set[int]:
        """Undo a forecast match so both sides count again on their own.

        Returns:
            IDs of the accounts whose balance changed
        """
        partner = self._require(movement.matched_movement_id)
        if partner.status == MovementStatus.CONCILIADO:
            raise StatusTransitionError(
                f"Movement {movement.id} is matched to reconciled movement {partner.id}"
            )
        today = self.ctx.today()
        self.db.release_matches([
            StatusChange(m.id, m.status, reopened_status(m, today)) for m in (movement, partner)
        ])
        logger.info("Released match between movements %s and %s", movement.id, partner.id)
        return {movement.account_id, partner.account_id}

    def _set_ignored(self, movement_id: int, ignored: bool) -> MovementEntity:
        movement = self._require(movement_id)
        if movement.status == MovementStatus.CONCILIADO:
            raise StatusTransitionError(f"Movement {movement_id} is reconciled and cannot be changed")
        if movement.is_transfer and ignored:
            raise ConflictError(
                f"Movement {movement_id} is part of transfer {movement.transfer_id}; unlink it first"
            )
        affected = {movement.account_id}
        if ignored and movement.matched_movement_id is not None:
            affected |= self._release_match(movement)
        self.db.set_movement_ignored(movement_id, ignored)
        for account_id in sorted(affected):
            self.accounts.recompute_balance(account_id)
        return self._require(movement_id)

    def ignore(self, movement_id: int) -> MovementEntity:
        """Flag a movement so it no longer counts anywhere. Nothing is deleted.

        A movement that fulfilled a forecast gives the forecast back: the
        forecast is open again and counts in projections.
        """
        return self._set_ignored(movement_id, True)

    def restore(self, movement_id: int) -> MovementEntity:
        return self._set_ignored(movement_id, False)

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
    ) -> MovementEntity:
        """Edit a movement.

        Raises:
            NotFoundError: If movement doesn't exist
            StatusTransitionError: If the movement is reconciled
            ConflictError: If the amount of a transfer leg would change
        """
        movement = self._require(movement_id)
        if movement.status == MovementStatus.CONCILIADO:
            raise StatusTransitionError(f"Movement {movement_id} is reconciled and cannot be changed")
        if amount is not None:
            amount = to_money(amount)
            if amount == 0:
                raise ValidationError("Amount must not be zero")
            if movement.is_transfer and amount != movement.amount:
                raise ConflictError(
                    f"Movement {movement_id} is part of transfer {movement.transfer_id}; unlink it first"
                )

        self.db.update_movement(
            movement_id,
            date=date,
            amount=amount,
            description=description,
            counterparty=counterparty,
            reference=reference,
            category=category,
            notes=notes,
        )
        if date is not None or amount is not None:
            self.accounts.recompute_balance(movement.account_id)
        return self._require(movement_id)

    def run_classification(self, account_ids: Iterable[int]) -> ClassificationResult:
        """Classify the movements of some accounts and store the changes.

        The caller must hold the import lock.
        """
        account_ids = sorted(set(account_ids))
        if not account_ids:
            return ClassificationResult()
        movements = self.db.list_movements(account_ids=account_ids)
        result = classify_movements(movements, self.ctx.today(), self.ctx.config)
        self.db.apply_status_changes(result.changes)
        touched = {m.account_id for m in movements if m.id in {c.movement_id for c in result.changes}}
        for account_id in sorted(touched):
            self.accounts.recompute_balance(account_id)
        if result.changes:
            logger.info("Classification stored %d status change(s)", len(result.changes))
        return result

    def classify(self, account_ids: Optional[Iterable[int]] = None) -> ClassificationResult:
        """Run a classification pass, by default over every active account."""
        if account_ids is None:
            account_ids = [a.id for a in self.ctx.active_accounts()]
        with self.ctx.import_lock:
            return self.run_classification(account_ids)
