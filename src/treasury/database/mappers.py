"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the engine only ever sees
frozen domain entities with Decimal money and enum statuses.
"""

from decimal import Decimal

from treasury.domain import entities as domain
from treasury.database.models import (
    Account as ORMAccount,
    Movement as ORMMovement,
    Transfer as ORMTransfer,
    ImportBatch as ORMImportBatch,
)


def _money(value) -> Decimal:
    return Decimal(value if value is not None else 0).quantize(Decimal("0.01"))


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        alias=orm_account.alias,
        bank_name=orm_account.bank_name,
        iban=orm_account.iban,
        opening_balance=_money(orm_account.opening_balance),
        balance=_money(orm_account.balance),
        currency=orm_account.currency,
        is_active=orm_account.is_active,
        scope=domain.AccountScope(orm_account.scope),
        minimum_balance=_money(orm_account.minimum_balance),
        created_at=orm_account.created_at,
    )


def movement_to_domain(orm_movement: ORMMovement) -> domain.Movement:
    """Convert SQLAlchemy Movement model to domain Movement entity."""
    return domain.Movement(
        id=orm_movement.id,
        account_id=orm_movement.account_id,
        date=orm_movement.date,
        value_date=orm_movement.value_date,
        amount=_money(orm_movement.amount),
        description=orm_movement.description or "",
        counterparty=orm_movement.counterparty,
        reference=orm_movement.reference,
        origin=domain.MovementOrigin(orm_movement.origin),
        status=domain.MovementStatus(orm_movement.status),
        category=orm_movement.category,
        notes=orm_movement.notes,
        ignored=orm_movement.ignored,
        transfer_id=orm_movement.transfer_id,
        import_batch_id=orm_movement.import_batch_id,
        matched_movement_id=orm_movement.matched_movement_id,
        created_at=orm_movement.created_at,
    )


def transfer_to_domain(orm_transfer: ORMTransfer) -> domain.Transfer:
    """Convert SQLAlchemy Transfer model to domain Transfer entity."""
    return domain.Transfer(
        id=orm_transfer.id,
        from_account_id=orm_transfer.from_account_id,
        to_account_id=orm_transfer.to_account_id,
        amount=_money(orm_transfer.amount),
        date=orm_transfer.date,
        note=orm_transfer.note,
        outgoing_movement_id=orm_transfer.outgoing_movement_id,
        incoming_movement_id=orm_transfer.incoming_movement_id,
        detected=orm_transfer.detected,
        created_at=orm_transfer.created_at,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        filename=orm_batch.filename,
        account_id=orm_batch.account_id,
        total_rows=orm_batch.total_rows,
        imported_rows=orm_batch.imported_rows,
        skipped_rows=orm_batch.skipped_rows,
        error_rows=orm_batch.error_rows,
        imported_at=orm_batch.imported_at,
    )
