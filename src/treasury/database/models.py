"""SQLAlchemy models for treasury database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Index,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()

MONEY = Numeric(14, 2)


class Account(Base):
    """Bank account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    alias = Column(String, unique=True, nullable=False)
    bank_name = Column(String, nullable=False)
    iban = Column(String, nullable=True)
    opening_balance = Column(MONEY, default=0, nullable=False)
    balance = Column(MONEY, default=0, nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    scope = Column(String, default="personal", nullable=False)
    minimum_balance = Column(MONEY, default=200, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    movements = relationship("Movement", back_populates="account")
    import_batches = relationship("ImportBatch", back_populates="account")


class ImportBatch(Base):
    """Statement import batch model."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    filename = Column(String, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    total_rows = Column(Integer, nullable=False)
    imported_rows = Column(Integer, nullable=False)
    skipped_rows = Column(Integer, nullable=False)
    error_rows = Column(Integer, nullable=False)
    imported_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    account = relationship("Account", back_populates="import_batches")
    movements = relationship("Movement", back_populates="import_batch")


class Movement(Base):
    """Movement model."""

    __tablename__ = "movements"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=True)
    amount = Column(MONEY, nullable=False)
    description = Column(String, nullable=False, default="")
    counterparty = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    origin = Column(String, nullable=False)
    status = Column(String, nullable=False)
    category = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    ignored = Column(Boolean, default=False, nullable=False)
    transfer_id = Column(Integer, ForeignKey("transfers.id"), nullable=True)
    import_batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    matched_movement_id = Column(Integer, ForeignKey("movements.id"), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (Index("ix_movements_account_date", "account_id", "date"),)

    # Relationships
    account = relationship("Account", back_populates="movements")
    import_batch = relationship("ImportBatch", back_populates="movements")


class Transfer(Base):
    """Internal transfer model linking two movements."""

    __tablename__ = "transfers"

    id = Column(Integer, primary_key=True)
    from_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    to_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    amount = Column(MONEY, nullable=False)
    date = Column(Date, nullable=False)
    note = Column(String, nullable=True)
    outgoing_movement_id = Column(Integer, nullable=False)
    incoming_movement_id = Column(Integer, nullable=False)
    detected = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class RejectedTransferPair(Base):
    """Movement pair the user unlinked; detection never pairs it again."""

    __tablename__ = "rejected_transfer_pairs"

    id = Column(Integer, primary_key=True)
    outgoing_movement_id = Column(Integer, ForeignKey("movements.id"), nullable=False)
    incoming_movement_id = Column(Integer, ForeignKey("movements.id"), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        UniqueConstraint("outgoing_movement_id", "incoming_movement_id", name="uq_rejected_pair"),
    )


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
