"""Shared pytest fixtures for treasury tests."""

import tempfile
import os
from datetime import date
from decimal import Decimal
import pytest

from treasury.database.factories import create_sqlite_database
from treasury.domain.account import AccountService
from treasury.domain.context import TreasuryContext
from treasury.domain.movement import MovementService
from treasury.domain.statement_import import StatementImportService
from treasury.domain.transfers import TransferService
from treasury.domain.treasury import TreasuryService

TODAY = date(2024, 3, 15)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def ctx(temp_db):
    """Treasury context with default tolerances and a fixed clock."""
    return TreasuryContext(db=temp_db, clock=lambda: TODAY)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def movement_service(ctx):
    """Create a MovementService bound to the test context."""
    return MovementService(ctx)


@pytest.fixture
def transfer_service(ctx):
    """Create a TransferService bound to the test context."""
    return TransferService(ctx)


@pytest.fixture
def import_service(ctx):
    """Create a StatementImportService bound to the test context."""
    return StatementImportService(ctx)


@pytest.fixture
def treasury_service(temp_db):
    """Create a TreasuryService with a temporary database."""
    return TreasuryService(temp_db)


@pytest.fixture
def sample_account(account_service):
    """Create a sample account with an opening balance of 1000.00."""
    account_id = account_service.create_account(
        alias="Nómina",
        bank_name="BBVA",
        iban="ES91 2100 0418 4502 0005 1332",
        opening_balance=Decimal("1000.00"),
    )
    return account_service.get_account(account_id)


@pytest.fixture
def savings_account(account_service):
    """Create a second account for transfer tests."""
    account_id = account_service.create_account(
        alias="Ahorro",
        bank_name="ING",
        opening_balance=Decimal("5000.00"),
    )
    return account_service.get_account(account_id)


@pytest.fixture
def write_csv(tmp_path):
    """Write a statement CSV into the test directory and return its path."""

    def _write(content: str, name: str = "extracto.csv", encoding: str = "utf-8"):
        path = tmp_path / name
        path.write_bytes(content.encode(encoding))
        return path

    return _write


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def make_movement():
    """Build in-memory Movement entities for the pure matching passes."""
    from datetime import datetime
    from itertools import count

    from treasury.domain.entities import Movement, MovementOrigin
    from treasury.domain.status import initial_status

    ids = count(1)

    def _make(account_id=1, day=1, amount="0", description="", origin=MovementOrigin.IMPORT,
              status=None, **kwargs):
        movement_id = kwargs.pop("id", None) or next(ids)
        movement_date = kwargs.pop("date", None) or date(2024, 1, day)
        return Movement(
            id=movement_id,
            account_id=account_id,
            date=movement_date,
            amount=Decimal(amount),
            description=description,
            origin=origin,
            status=status or initial_status(origin),
            created_at=datetime(2024, 1, 1),
            **kwargs,
        )

    return _make
