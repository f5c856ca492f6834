"""Tests that the database layer hands out domain entities and keeps writes atomic."""

import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from treasury.domain.entities import (
    Account,
    ImportBatch,
    Movement,
    MovementDraft,
    MovementOrigin,
    MovementStatus,
    StatusChange,
    Transfer,
)
from treasury.domain.errors import NotFoundError


def draft(account_id, day, amount, description="Movimiento", origin=MovementOrigin.IMPORT):
    return MovementDraft(
        account_id=account_id,
        date=day,
        amount=Decimal(amount),
        description=description,
        origin=origin,
        status=MovementStatus.NO_PLANIFICADO,
    )


def test_accounts_are_domain_entities(temp_db, sample_account):
    assert isinstance(sample_account, Account)
    assert isinstance(temp_db.list_accounts()[0], Account)
    assert isinstance(sample_account.opening_balance, Decimal)


def test_movement_round_trip(temp_db, sample_account):
    movement_id = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-12.34", "Café"))

    movement = temp_db.get_movement(movement_id)

    assert isinstance(movement, Movement)
    assert movement.amount == Decimal("-12.34")
    assert movement.date == date(2024, 3, 1)
    assert movement.origin == MovementOrigin.IMPORT
    assert movement.status == MovementStatus.NO_PLANIFICADO
    assert movement.ignored is False
    assert temp_db.get_movement(999) is None


def test_list_movements_filters_and_order(temp_db, sample_account, savings_account):
    late = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 5), "-1"))
    early = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-2"))
    same_day = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 5), "-3"))
    other = temp_db.create_movement(draft(savings_account.id, date(2024, 3, 2), "4"))
    temp_db.set_movement_ignored(same_day, True)

    assert [m.id for m in temp_db.list_movements(account_id=sample_account.id)] == [early, late, same_day]
    assert [m.id for m in temp_db.list_movements(start_date=date(2024, 3, 2), end_date=date(2024, 3, 4))] == [other]
    assert [m.id for m in temp_db.list_movements(account_id=sample_account.id, include_ignored=False)] == [early, late]
    assert len(temp_db.list_movements(account_ids=[sample_account.id, savings_account.id])) == 4


def test_apply_status_changes(temp_db, sample_account):
    forecast = temp_db.create_movement(
        MovementDraft(
            account_id=sample_account.id, date=date(2024, 3, 1), amount=Decimal("-10"),
            description="Agua", origin=MovementOrigin.FORECAST, status=MovementStatus.PREVISTO,
        )
    )
    imported = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-10"))

    temp_db.apply_status_changes([
        StatusChange(imported, MovementStatus.NO_PLANIFICADO, MovementStatus.CONFIRMADO, forecast),
        StatusChange(forecast, MovementStatus.PREVISTO, MovementStatus.CONFIRMADO, imported),
    ])

    assert temp_db.get_movement(imported).matched_movement_id == forecast
    assert temp_db.get_movement(forecast).status == MovementStatus.CONFIRMADO


def test_apply_status_changes_is_all_or_nothing(temp_db, sample_account):
    movement_id = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-10"))

    with pytest.raises(NotFoundError):
        temp_db.apply_status_changes([
            StatusChange(movement_id, MovementStatus.NO_PLANIFICADO, MovementStatus.CONFIRMADO),
            StatusChange(999, MovementStatus.PREVISTO, MovementStatus.VENCIDO),
        ])

    assert temp_db.get_movement(movement_id).status == MovementStatus.NO_PLANIFICADO


def test_transfer_links_and_unlinks_legs(temp_db, sample_account, savings_account):
    out_id = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-50"))
    in_id = temp_db.create_movement(draft(savings_account.id, date(2024, 3, 1), "50"))

    transfer_id = temp_db.create_transfer(out_id, in_id, amount=Decimal("50"), date=date(2024, 3, 1))

    transfer = temp_db.get_transfer(transfer_id)
    assert isinstance(transfer, Transfer)
    assert (transfer.from_account_id, transfer.to_account_id) == (sample_account.id, savings_account.id)
    assert temp_db.get_movement(in_id).is_transfer

    temp_db.delete_transfer(transfer_id)
    assert temp_db.get_transfer(transfer_id) is None
    assert not temp_db.get_movement(out_id).is_transfer
    with pytest.raises(NotFoundError):
        temp_db.delete_transfer(transfer_id)


def test_delete_transfer_can_reject_pair(temp_db, sample_account, savings_account):
    out_id = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-50"))
    in_id = temp_db.create_movement(draft(savings_account.id, date(2024, 3, 1), "50"))
    transfer_id = temp_db.create_transfer(out_id, in_id, amount=Decimal("50"), date=date(2024, 3, 1),
                                          detected=True)

    temp_db.delete_transfer(transfer_id, reject_pair=True)

    assert temp_db.list_rejected_transfer_pairs() == {(out_id, in_id)}
    relinked = temp_db.create_transfer(out_id, in_id, amount=Decimal("50"), date=date(2024, 3, 1),
                                       detected=True)
    temp_db.delete_transfer(relinked, reject_pair=True)
    assert temp_db.list_rejected_transfer_pairs() == {(out_id, in_id)}


def test_release_matches(temp_db, sample_account):
    forecast = temp_db.create_movement(
        MovementDraft(
            account_id=sample_account.id, date=date(2024, 3, 1), amount=Decimal("-10"),
            description="Agua", origin=MovementOrigin.FORECAST, status=MovementStatus.PREVISTO,
        )
    )
    imported = temp_db.create_movement(draft(sample_account.id, date(2024, 3, 1), "-10"))
    temp_db.apply_status_changes([
        StatusChange(imported, MovementStatus.NO_PLANIFICADO, MovementStatus.CONFIRMADO, forecast),
        StatusChange(forecast, MovementStatus.PREVISTO, MovementStatus.CONFIRMADO, imported),
    ])

    temp_db.release_matches([
        StatusChange(imported, MovementStatus.CONFIRMADO, MovementStatus.NO_PLANIFICADO),
        StatusChange(forecast, MovementStatus.CONFIRMADO, MovementStatus.VENCIDO),
    ])

    assert temp_db.get_movement(imported).matched_movement_id is None
    assert temp_db.get_movement(forecast).matched_movement_id is None
    assert temp_db.get_movement(forecast).status == MovementStatus.VENCIDO


def test_save_import_batch(temp_db, sample_account):
    batch_id, ids = temp_db.save_import_batch(
        filename="marzo.csv",
        account_id=sample_account.id,
        total_rows=4,
        skipped_rows=1,
        error_rows=1,
        drafts=[draft(sample_account.id, date(2024, 3, 1), "-1"),
                draft(sample_account.id, date(2024, 3, 2), "-2")],
    )

    batch = temp_db.get_import_batch(batch_id)
    assert isinstance(batch, ImportBatch)
    assert (batch.total_rows, batch.imported_rows, batch.skipped_rows, batch.error_rows) == (4, 2, 1, 1)
    assert [temp_db.get_movement(i).import_batch_id for i in ids] == [batch_id, batch_id]
    assert temp_db.find_import_batch("marzo.csv", sample_account.id, 4).id == batch_id
    assert temp_db.find_import_batch("marzo.csv", sample_account.id, 5) is None
    assert temp_db.list_import_batches(account_id=sample_account.id)[0].id == batch_id


def test_save_import_batch_rolls_back(temp_db, sample_account):
    """Test a failing movement leaves neither movements nor a batch behind."""
    broken = MovementDraft(
        account_id=sample_account.id, date=None, amount=Decimal("-1"), description="Sin fecha",
        origin=MovementOrigin.IMPORT, status=MovementStatus.NO_PLANIFICADO,
    )

    with pytest.raises(IntegrityError):
        temp_db.save_import_batch(
            filename="roto.csv",
            account_id=sample_account.id,
            total_rows=2,
            skipped_rows=0,
            error_rows=0,
            drafts=[draft(sample_account.id, date(2024, 3, 1), "-1"), broken],
        )

    assert temp_db.list_movements(account_id=sample_account.id) == []
    assert temp_db.list_import_batches() == []


def test_import_batch_counts_are_checked():
    from datetime import datetime

    with pytest.raises(ValueError, match="exceed total rows"):
        ImportBatch(
            id=1, filename="x.csv", account_id=1, total_rows=2, imported_rows=2,
            skipped_rows=1, error_rows=0, imported_at=datetime(2024, 3, 1),
        )


def test_update_account_balance(temp_db, sample_account):
    temp_db.update_account_balance(sample_account.id, Decimal("123.45"))
    assert temp_db.get_account(sample_account.id).balance == Decimal("123.45")
