"""Domain model entities for treasury.

These are pure data classes representing business concepts, independent of
database schema. The engine passes them between the parser, the matching
passes and the projection without touching the storage layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional


class AccountScope(str, Enum):
    """Ownership scope of an account."""

    PERSONAL = "personal"
    PROPERTY = "property"
    MIXED = "mixed"


class MovementOrigin(str, Enum):
    """Where a movement came from."""

    IMPORT = "import"
    MANUAL = "manual"
    FORECAST = "forecast"


class MovementStatus(str, Enum):
    """Lifecycle status of a movement."""

    PREVISTO = "previsto"
    CONFIRMADO = "confirmado"
    VENCIDO = "vencido"
    NO_PLANIFICADO = "no_planificado"
    CONCILIADO = "conciliado"


class RiskLevel(str, Enum):
    """Traffic-light risk level for a projected balance."""

    VERDE = "verde"
    AMBAR = "ambar"
    ROJO = "rojo"


class StatementFormat(str, Enum):
    """Supported bank statement file formats."""

    CSV = "csv"
    XLSX = "xlsx"
    OFX = "ofx"


DEFAULT_TRANSFER_KEYWORDS = (
    "TRASPASO",
    "TRANSFERENCIA",
    "ENVIO ENTRE CUENTAS",
    "ENVÍO ENTRE CUENTAS",
    "TRANSFER",
)


@dataclass(frozen=True)
class MatchingConfig:
    """Tolerances shared by transfer detection and forecast matching."""

    date_window_days: int = 3
    amount_tolerance_percent: Decimal = Decimal("1")
    amount_tolerance_fixed: Decimal = Decimal("1.00")
    manual_mapping_threshold: Decimal = Decimal("0.20")
    transfer_keywords: tuple[str, ...] = DEFAULT_TRANSFER_KEYWORDS

    def amount_tolerance(self, amount_a: Decimal, amount_b: Decimal) -> Decimal:
        """Return the allowed absolute difference for two amounts.

        The tolerance is the smaller of the fixed amount and the percentage
        of the larger absolute amount.
        """
        largest = max(abs(amount_a), abs(amount_b))
        percent = largest * self.amount_tolerance_percent / Decimal("100")
        return min(self.amount_tolerance_fixed, percent)


@dataclass(frozen=True)
class Account:
    """Bank account domain entity."""

    id: int
    alias: str
    bank_name: str
    iban: Optional[str]
    opening_balance: Decimal
    balance: Decimal
    currency: str
    is_active: bool
    scope: AccountScope
    minimum_balance: Decimal
    created_at: datetime

    @property
    def masked_iban(self) -> Optional[str]:
        """IBAN with the middle digits hidden, e.g. 'ES91 **** **** 7892'."""
        if not self.iban:
            return None
        if len(self.iban) <= 8:
            return self.iban
        return f"{self.iban[:4]} **** **** {self.iban[-4:]}"


@dataclass(frozen=True)
class Movement:
    """Movement domain entity: one dated, signed cash entry on an account."""

    id: int
    account_id: int
    date: date
    amount: Decimal
    description: str
    origin: MovementOrigin
    status: MovementStatus
    created_at: datetime
    value_date: Optional[date] = None
    counterparty: Optional[str] = None
    reference: Optional[str] = None
    category: Optional[str] = None
    transfer_id: Optional[int] = None
    import_batch_id: Optional[int] = None
    matched_movement_id: Optional[int] = None
    ignored: bool = False
    notes: Optional[str] = None

    @property
    def is_transfer(self) -> bool:
        return self.transfer_id is not None

    @property
    def is_income(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True)
class ImportBatch:
    """Import batch domain entity."""

    id: int
    filename: str
    account_id: int
    total_rows: int
    imported_rows: int
    skipped_rows: int
    error_rows: int
    imported_at: datetime

    def __post_init__(self):
        if self.imported_rows + self.skipped_rows > self.total_rows:
            raise ValueError(
                f"Import batch counts exceed total rows: "
                f"{self.imported_rows} imported + {self.skipped_rows} skipped > {self.total_rows}"
            )


@dataclass(frozen=True)
class Transfer:
    """Internal transfer between two owned accounts."""

    id: int
    from_account_id: int
    to_account_id: int
    amount: Decimal
    date: date
    outgoing_movement_id: int
    incoming_movement_id: int
    detected: bool
    created_at: datetime
    note: Optional[str] = None


@dataclass(frozen=True)
class ParsedMovement:
    """Raw candidate movement read from a statement row."""

    date: date
    amount: Decimal
    description: str
    value_date: Optional[date] = None
    counterparty: Optional[str] = None
    reference: Optional[str] = None
    row_num: Optional[int] = None


@dataclass(frozen=True)
class RowError:
    """A statement row that could not be decoded."""

    row_num: int
    message: str

    def __str__(self) -> str:
        return f"Row {self.row_num}: {self.message}"


@dataclass(frozen=True)
class ProjectedMovement:
    """Movement as it appears inside a day of a projection."""

    id: int
    amount: Decimal
    description: str
    origin: MovementOrigin
    status: MovementStatus
    is_transfer: bool


@dataclass(frozen=True)
class DayProjection:
    """Running balance and aggregates for a single calendar day."""

    date: date
    movements: tuple[ProjectedMovement, ...]
    income_count: int
    expense_count: int
    income_amount: Decimal
    expense_amount: Decimal
    end_of_day_balance: Decimal


@dataclass(frozen=True)
class ProjectionResult:
    """Projection of an account's balance over a period."""

    account_id: int
    start: date
    end: date
    opening_balance: Decimal
    days: tuple[DayProjection, ...]
    income: Decimal
    expense: Decimal
    net: Decimal
    end_balance: Decimal
    min_balance: Decimal
    min_balance_date: date
    risk_level: RiskLevel
    balance_drift: Decimal = Decimal("0")


@dataclass
class ImportResult:
    """Outcome of a statement import."""

    batch_id: Optional[int] = None
    total_lines: int = 0
    imported: int = 0
    duplicates: int = 0
    confirmed_movements: int = 0
    unplanned_movements: int = 0
    detected_transfers: int = 0
    pending_transfers: int = 0
    errors: list[str] = field(default_factory=list)
    error_rate: Decimal = Decimal("0")
    needs_manual_mapping: bool = False
    warnings: list[str] = field(default_factory=list)
    ambiguous_matches: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MovementDraft:
    """Movement about to be persisted (no ID yet)."""

    account_id: int
    date: date
    amount: Decimal
    description: str
    origin: MovementOrigin
    status: MovementStatus
    value_date: Optional[date] = None
    counterparty: Optional[str] = None
    reference: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class StatusChange:
    """A status update produced by the classifier or a manual action."""

    movement_id: int
    old_status: MovementStatus
    new_status: MovementStatus
    matched_movement_id: Optional[int] = None
