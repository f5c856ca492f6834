"""Bank statement parsing.

Turns CSV, Excel (.xlsx) and OFX statements into ParsedMovement records.
Rows that cannot be decoded are reported as RowError entries alongside the
parsed ones; only an unreadable file or an unrecognized layout fails the
whole parse.
"""

import csv
import io
import logging
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, Union

import openpyxl
from ofxparse import OfxParser

from treasury.domain.entities import ParsedMovement, RowError, StatementFormat
from treasury.domain.errors import ParseError, ValidationError
from treasury.utils.amount_parser import parse_amount, to_money
from treasury.utils.date_parser import parse_date

logger = logging.getLogger(__name__)

# Order matters: value_date is checked before date so "fecha valor" is not
# taken as the booking date.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "value_date": ("fecha valor", "f valor", "value date", "fecha de valor"),
    "date": (
        "fecha", "fecha operacion", "f operacion", "fecha de operacion",
        "fecha mov", "fecha movimiento", "date", "booking date",
        "transaction date", "completed date",
    ),
    "amount": (
        "importe", "importe eur", "importe (eur)", "cantidad", "monto",
        "amount", "euros",
    ),
    "debit": ("cargo", "cargos", "debito", "debe", "debit", "paid out"),
    "credit": ("abono", "abonos", "credito", "haber", "credit", "paid in"),
    "description": (
        "concepto", "descripcion", "detalle", "descripcion ampliada",
        "concepto operacion", "detalle operacion", "description",
        "observaciones", "motivo", "movimiento",
    ),
    "counterparty": (
        "beneficiario", "ordenante", "contraparte", "beneficiario/ordenante",
        "counterparty", "payee", "name",
    ),
    "reference": (
        "referencia", "ref", "numero operacion", "num operacion",
        "id operacion", "reference",
    ),
}

MAPPABLE_FIELDS = frozenset(COLUMN_ALIASES)

HEADER_SCAN_ROWS = 30

DELIMITERS = ",;\t|"

EXTENSION_FORMATS = {
    ".csv": StatementFormat.CSV,
    ".txt": StatementFormat.CSV,
    ".xlsx": StatementFormat.XLSX,
    ".xlsm": StatementFormat.XLSX,
    ".ofx": StatementFormat.OFX,
    ".qfx": StatementFormat.OFX,
}

ParsedRow = Union[ParsedMovement, RowError]


def normalize_header(value: Any) -> str:
    """Lower-case, strip accents and punctuation from a header cell."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower().replace(".", " ").replace(":", " ").replace("_", " ")
    return " ".join(text.split())


_NORMALIZED_ALIASES = {
    field_name: {normalize_header(alias) for alias in aliases}
    for field_name, aliases in COLUMN_ALIASES.items()
}


@dataclass
class ParseOutcome:
    """Collected result of parsing one statement."""

    format: StatementFormat
    movements: list[ParsedMovement] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.movements) + len(self.errors)

    @property
    def error_rate(self) -> Decimal:
        if self.total_rows == 0:
            return Decimal("0")
        return Decimal(len(self.errors)) / Decimal(self.total_rows)

    def needs_manual_mapping(self, threshold: Decimal) -> bool:
        """True when the share of unreadable rows is above threshold."""
        return self.error_rate > threshold


def detect_delimiter(text: str) -> str:
    """Guess the CSV delimiter of a statement.

    Bank exports often start with a few account summary lines that confuse
    csv.Sniffer; when it gives up, the candidate that appears most often on
    a single line wins.
    """
    lines = [line for line in text.splitlines()[:50] if line.strip()]
    if not lines:
        return ","
    try:
        return csv.Sniffer().sniff("\n".join(lines), delimiters=DELIMITERS).delimiter
    except csv.Error:
        return max(DELIMITERS, key=lambda d: max(line.count(d) for line in lines))


def detect_format(path: Union[str, Path]) -> StatementFormat:
    """Detect the statement format from the extension, then the content.

    Raises:
        ParseError: If the file is missing or the format is not recognized
    """
    path = Path(path)
    if not path.exists():
        raise ParseError(f"Statement file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in EXTENSION_FORMATS:
        return EXTENSION_FORMATS[suffix]
    if suffix == ".xls":
        raise ParseError("Legacy .xls workbooks are not supported; save the file as .xlsx")

    with open(path, "rb") as f:
        head = f.read(2048)
    if head.startswith(b"PK"):
        return StatementFormat.XLSX
    upper = head.upper()
    if b"OFXHEADER" in upper or b"<OFX>" in upper:
        return StatementFormat.OFX
    try:
        head.decode("utf-8")
    except UnicodeDecodeError:
        raise ParseError(f"Unrecognized statement format: {path.name}")
    return StatementFormat.CSV


class StatementParser:
    """Parser for bank statement files."""

    def __init__(self, column_map: Optional[dict[str, str]] = None, dayfirst: bool = True):
        """Initialize the parser.

        Args:
            column_map: Optional explicit mapping of field name to header text,
                e.g. {"date": "F. Contable", "amount": "Importe EUR"}. Mapped
                fields take precedence over alias detection.
            dayfirst: Read ambiguous numeric dates as DD/MM/YYYY

        Raises:
            ValidationError: If column_map names an unknown field
        """
        column_map = dict(column_map or {})
        unknown = set(column_map) - MAPPABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Invalid mapping field(s) {', '.join(sorted(unknown))}. "
                f"Must be one of: {', '.join(sorted(MAPPABLE_FIELDS))}"
            )
        self.column_map = {k: normalize_header(v) for k, v in column_map.items()}
        self.dayfirst = dayfirst

    def parse(self, path: Union[str, Path], fmt: Optional[StatementFormat] = None) -> ParseOutcome:
        """Parse a statement file and collect every row.

        Args:
            path: Statement file path
            fmt: Format, detected from the file when None

        Returns:
            ParseOutcome with parsed movements and row errors

        Raises:
            ParseError: If the file is unreadable or its layout unrecognized
        """
        fmt = StatementFormat(fmt) if fmt is not None else detect_format(path)
        outcome = ParseOutcome(format=fmt)
        for row in self.iter_rows(path, fmt):
            if isinstance(row, RowError):
                outcome.errors.append(row)
            else:
                outcome.movements.append(row)
        logger.info(
            "Parsed %s (%s): %d rows, %d errors",
            Path(path).name, fmt.value, outcome.total_rows, len(outcome.errors),
        )
        return outcome

    def iter_rows(self, path: Union[str, Path], fmt: StatementFormat) -> Iterator[ParsedRow]:
        """Lazily yield ParsedMovement or RowError for each data row."""
        fmt = StatementFormat(fmt)
        if fmt == StatementFormat.OFX:
            yield from self._iter_ofx(Path(path))
        elif fmt == StatementFormat.XLSX:
            yield from self._iter_table(self._read_xlsx(Path(path)))
        else:
            yield from self._iter_table(self._read_csv(Path(path)))

    # Tabular formats
    def _read_csv(self, path: Path) -> list[list[Any]]:
        if not path.exists():
            raise ParseError(f"Statement file not found: {path}")
        raw = path.read_bytes()
        for encoding in ("utf-8-sig", "cp1252", "latin-1"):
            try:
                text = raw.decode(encoding)
                break
            except UnicodeDecodeError:
                continue

        delimiter = detect_delimiter(text)
        logger.debug("Reading %s with delimiter %r", path.name, delimiter)
        return [row for row in csv.reader(io.StringIO(text), delimiter=delimiter)]

    def _read_xlsx(self, path: Path) -> list[list[Any]]:
        try:
            workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
        except Exception as e:
            raise ParseError(f"Could not open workbook '{path.name}': {e}") from e
        try:
            worksheet = workbook.active
            return [list(row) for row in worksheet.iter_rows(values_only=True)]
        finally:
            workbook.close()

    def _resolve_columns(self, header: Sequence[Any]) -> Optional[dict[str, int]]:
        """Map field names to column indexes for a candidate header row."""
        normalized = [normalize_header(cell) for cell in header]
        columns: dict[str, int] = {}

        for field_name, header_text in self.column_map.items():
            if header_text not in normalized:
                return None
            columns[field_name] = normalized.index(header_text)

        taken = set(columns.values())
        for field_name, aliases in _NORMALIZED_ALIASES.items():
            if field_name in columns:
                continue
            for idx, cell in enumerate(normalized):
                if idx not in taken and cell in aliases:
                    columns[field_name] = idx
                    taken.add(idx)
                    break

        has_amount = "amount" in columns or "debit" in columns or "credit" in columns
        if "date" not in columns or "description" not in columns or not has_amount:
            return None
        return columns

    def _iter_table(self, rows: list[list[Any]]) -> Iterator[ParsedRow]:
        header_idx = None
        columns = None
        for idx, row in enumerate(rows[:HEADER_SCAN_ROWS]):
            columns = self._resolve_columns(row)
            if columns is not None:
                header_idx = idx
                break

        if header_idx is None or columns is None:
            if self.column_map:
                raise ParseError(
                    "Mapped columns not found in statement header: "
                    + ", ".join(sorted(self.column_map))
                )
            raise ParseError(
                "Could not find a header row with date, amount and description columns; "
                "map the columns manually"
            )
        logger.debug("Header found at row %d: %s", header_idx + 1, columns)

        for idx in range(header_idx + 1, len(rows)):
            row = rows[idx]
            if not any(cell not in (None, "") and str(cell).strip() for cell in row):
                continue
            yield self._decode_row(idx + 1, row, columns)

    @staticmethod
    def _cell(row: Sequence[Any], columns: dict[str, int], field_name: str) -> Any:
        idx = columns.get(field_name)
        if idx is None or idx >= len(row):
            return None
        value = row[idx]
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    def _amount(self, value: Any) -> Decimal:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return to_money(value)
        return parse_amount(str(value))

    def _decode_row(self, row_num: int, row: Sequence[Any], columns: dict[str, int]) -> ParsedRow:
        raw_date = self._cell(row, columns, "date")
        if raw_date is None:
            return RowError(row_num, "Missing date")
        try:
            booking_date = self._date(raw_date)
        except ValueError as e:
            return RowError(row_num, str(e))

        try:
            amount = self._row_amount(row, columns)
        except ValueError as e:
            return RowError(row_num, str(e))

        value_date = None
        raw_value_date = self._cell(row, columns, "value_date")
        if raw_value_date is not None:
            try:
                value_date = self._date(raw_value_date)
            except ValueError as e:
                return RowError(row_num, f"Invalid value date: {e}")

        description = self._cell(row, columns, "description")
        counterparty = self._cell(row, columns, "counterparty")
        reference = self._cell(row, columns, "reference")
        return ParsedMovement(
            date=booking_date,
            value_date=value_date,
            amount=amount,
            description=str(description) if description is not None else "",
            counterparty=str(counterparty) if counterparty is not None else None,
            reference=str(reference) if reference is not None else None,
            row_num=row_num,
        )

    def _date(self, value: Any) -> date:
        if isinstance(value, (date, datetime, int, float)):
            return parse_date(value)
        return parse_date(str(value), dayfirst=self.dayfirst)

    def _row_amount(self, row: Sequence[Any], columns: dict[str, int]) -> Decimal:
        if "amount" in columns:
            raw_amount = self._cell(row, columns, "amount")
            if raw_amount is None:
                raise ValueError("Missing amount")
            return self._amount(raw_amount)

        raw_debit = self._cell(row, columns, "debit")
        raw_credit = self._cell(row, columns, "credit")
        if raw_debit is None and raw_credit is None:
            raise ValueError("Missing both debit and credit values")
        debit = abs(self._amount(raw_debit)) if raw_debit is not None else Decimal("0")
        credit = abs(self._amount(raw_credit)) if raw_credit is not None else Decimal("0")
        return credit - debit

    # OFX
    def _iter_ofx(self, path: Path) -> Iterator[ParsedRow]:
        try:
            with open(path, "rb") as f:
                ofx = OfxParser.parse(f)
        except FileNotFoundError as e:
            raise ParseError(f"Statement file not found: {path}") from e
        except Exception as e:
            raise ParseError(f"Could not read OFX statement '{path.name}': {e}") from e

        accounts = getattr(ofx, "accounts", None) or []
        if not accounts:
            raise ParseError(f"No account statement found in '{path.name}'")
        row_num = 0
        for account in accounts:
            statement = getattr(account, "statement", None)
            if statement is None:
                continue
            for txn in statement.transactions:
                row_num += 1
                if txn.date is None:
                    yield RowError(row_num, "Missing date")
                    continue
                if txn.amount is None:
                    yield RowError(row_num, "Missing amount")
                    continue
                payee = (txn.payee or "").strip()
                memo = (txn.memo or "").strip()
                description = " ".join(part for part in (payee, memo) if part)
                yield ParsedMovement(
                    date=parse_date(txn.date),
                    amount=to_money(txn.amount),
                    description=description,
                    counterparty=payee or None,
                    reference=str(txn.id) if txn.id else None,
                    row_num=row_num,
                )
