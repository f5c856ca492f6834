"""Tests for bank statement parsing."""

import pytest
from datetime import date, datetime
from decimal import Decimal

import openpyxl

from treasury.domain.entities import ParsedMovement, RowError, StatementFormat
from treasury.domain.errors import ParseError, ValidationError
from treasury.domain.statement_parser import (
    StatementParser,
    detect_delimiter,
    detect_format,
    normalize_header,
)

SPANISH_CSV = """Cuenta;ES91 2100 0418 4502 0005 1332
Periodo;01/01/2024 - 31/01/2024

Fecha;Fecha valor;Concepto;Importe;Saldo
05/01/2024;05/01/2024;RECIBO IBERDROLA;-45,90;954,10
10/01/2024;11/01/2024;NOMINA EMPRESA SA;1.500,00;2.454,10
"""

OFX_STATEMENT = """OFXHEADER:100
DATA:OFXSGML
VERSION:102
SECURITY:NONE
ENCODING:USASCII
CHARSET:1252
COMPRESSION:NONE
OLDFILEUID:NONE
NEWFILEUID:NONE

<OFX>
<SIGNONMSGSRSV1>
<SONRS>
<STATUS>
<CODE>0
<SEVERITY>INFO
</STATUS>
<DTSERVER>20240131120000
<LANGUAGE>SPA
</SONRS>
</SIGNONMSGSRSV1>
<BANKMSGSRSV1>
<STMTTRNRS>
<TRNUID>1
<STATUS>
<CODE>0
<SEVERITY>INFO
</STATUS>
<STMTRS>
<CURDEF>EUR
<BANKACCTFROM>
<BANKID>2100
<ACCTID>0418450200051332
<ACCTTYPE>CHECKING
</BANKACCTFROM>
<BANKTRANLIST>
<DTSTART>20240101
<DTEND>20240131
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240105
<TRNAMT>-45.90
<FITID>0001
<NAME>IBERDROLA
<MEMO>Recibo luz enero
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20240110
<TRNAMT>1500.00
<FITID>0002
<NAME>EMPRESA SA
<MEMO>Nomina enero
</STMTTRN>
</BANKTRANLIST>
<LEDGERBAL>
<BALAMT>1454.10
<DTASOF>20240131
</LEDGERBAL>
</STMTRS>
</STMTTRNRS>
</BANKMSGSRSV1>
</OFX>
"""


class TestDetectFormat:
    """Tests for statement format detection."""

    def test_by_extension(self, tmp_path):
        """Test known extensions map to formats."""
        for name, fmt in [("a.csv", StatementFormat.CSV), ("b.xlsx", StatementFormat.XLSX),
                          ("c.ofx", StatementFormat.OFX), ("d.QFX", StatementFormat.OFX)]:
            path = tmp_path / name
            path.write_text("x")
            assert detect_format(path) == fmt

    def test_by_content(self, tmp_path):
        """Test files without a known extension are sniffed."""
        ofx = tmp_path / "statement.dat"
        ofx.write_text(OFX_STATEMENT)
        assert detect_format(ofx) == StatementFormat.OFX

        text = tmp_path / "export"
        text.write_text("Fecha,Concepto,Importe\n")
        assert detect_format(text) == StatementFormat.CSV

    def test_legacy_xls_rejected(self, tmp_path):
        """Test old binary workbooks are reported clearly."""
        path = tmp_path / "old.xls"
        path.write_bytes(b"\xd0\xcf\x11\xe0")
        with pytest.raises(ParseError, match="xlsx"):
            detect_format(path)

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ParseError."""
        with pytest.raises(ParseError, match="not found"):
            detect_format(tmp_path / "missing.csv")


def test_normalize_header():
    """Test header normalization strips accents and punctuation."""
    assert normalize_header("  F. Operación ") == "f operacion"
    assert normalize_header("Descripción") == "descripcion"
    assert normalize_header(None) == ""


def test_detect_delimiter_with_preamble():
    """Test account summary lines don't hide the semicolon delimiter."""
    assert detect_delimiter(SPANISH_CSV) == ";"
    assert detect_delimiter("Date,Description,Amount\n2024-01-05,Coffee,-3.50\n") == ","


class TestCSVParsing:
    """Tests for CSV statements."""

    def test_spanish_statement(self, write_csv):
        """Test a semicolon statement with preamble, comma decimals and value dates."""
        path = write_csv(SPANISH_CSV)
        outcome = StatementParser().parse(path)

        assert outcome.format == StatementFormat.CSV
        assert outcome.errors == []
        assert outcome.total_rows == 2
        first, second = outcome.movements
        assert first.date == date(2024, 1, 5)
        assert first.amount == Decimal("-45.90")
        assert first.description == "RECIBO IBERDROLA"
        assert second.date == date(2024, 1, 10)
        assert second.value_date == date(2024, 1, 11)
        assert second.amount == Decimal("1500.00")
        assert second.row_num == 6

    def test_english_statement(self, write_csv):
        """Test a comma separated statement with English headers."""
        path = write_csv(
            "Date,Description,Payee,Amount,Reference\n"
            "2024-01-05,Card payment,Coffee Shop,-3.50,R1\n"
            "2024-01-06,Salary,ACME,\"2,000.00\",R2\n"
        )
        outcome = StatementParser().parse(path)

        assert outcome.errors == []
        assert [m.amount for m in outcome.movements] == [Decimal("-3.50"), Decimal("2000.00")]
        assert outcome.movements[0].counterparty == "Coffee Shop"
        assert outcome.movements[1].reference == "R2"

    def test_debit_credit_columns(self, write_csv):
        """Test split debit/credit columns produce signed amounts."""
        path = write_csv(
            "Fecha;Concepto;Cargo;Abono\n"
            "05/01/2024;Recibo agua;30,00;\n"
            "06/01/2024;Devolución;;12,50\n"
            "07/01/2024;Vacío;;\n"
        )
        outcome = StatementParser().parse(path)

        assert [m.amount for m in outcome.movements] == [Decimal("-30.00"), Decimal("12.50")]
        assert len(outcome.errors) == 1
        assert "debit and credit" in outcome.errors[0].message

    def test_latin1_file(self, write_csv):
        """Test files exported in Windows encodings are decoded."""
        path = write_csv(
            "Fecha;Descripción;Importe\n05/01/2024;Recibo comunidad año;-60,00\n",
            encoding="cp1252",
        )
        outcome = StatementParser().parse(path)

        assert outcome.movements[0].description == "Recibo comunidad año"

    def test_row_errors_do_not_abort(self, write_csv):
        """Test bad rows are reported and good rows still parsed."""
        path = write_csv(
            "Fecha,Concepto,Importe\n"
            "05/01/2024,Uno,-10.00\n"
            "no es fecha,Dos,-20.00\n"
            "07/01/2024,Tres,abc\n"
            ",Cuatro,-5.00\n"
            "08/01/2024,Cinco,-40.00\n"
        )
        outcome = StatementParser().parse(path)

        assert outcome.total_rows == 5
        assert len(outcome.movements) == 2
        assert [e.row_num for e in outcome.errors] == [3, 4, 5]
        assert str(outcome.errors[2]) == "Row 5: Missing date"
        assert outcome.error_rate == Decimal("0.6")
        assert outcome.needs_manual_mapping(Decimal("0.20"))

    def test_amount_notation_per_row(self, write_csv):
        """Test thousands dots are read as thousands and sub-cent amounts are row errors."""
        path = write_csv(
            "Fecha;Concepto;Importe\n"
            "05/01/2024;Transferencia recibida;1.234\n"
            "06/01/2024;Comisión;12,3456\n"
        )
        outcome = StatementParser().parse(path)

        assert [m.amount for m in outcome.movements] == [Decimal("1234.00")]
        assert [e.row_num for e in outcome.errors] == [3]
        assert "more than two decimals" in outcome.errors[0].message

    def test_movimiento_header_is_the_description(self, write_csv):
        """Test a "Movimiento" column holds the description, not the amount."""
        path = write_csv("Fecha;Movimiento;Importe\n05/01/2024;PAGO TARJETA MERCADONA;-20,00\n")
        outcome = StatementParser().parse(path)

        assert outcome.errors == []
        assert outcome.movements[0].description == "PAGO TARJETA MERCADONA"
        assert outcome.movements[0].amount == Decimal("-20.00")

    def test_blank_lines_are_skipped(self, write_csv):
        """Test empty rows don't count as rows."""
        path = write_csv("Fecha,Concepto,Importe\n05/01/2024,Uno,-10.00\n\n,,\n")
        outcome = StatementParser().parse(path)

        assert outcome.total_rows == 1
        assert outcome.error_rate == Decimal("0")

    def test_unknown_layout_raises(self, write_csv):
        """Test a file without recognizable headers raises ParseError."""
        path = write_csv("col1,col2,col3\n05/01/2024,Uno,-10.00\n")
        with pytest.raises(ParseError, match="map the columns"):
            StatementParser().parse(path)

    def test_manual_column_map(self, write_csv):
        """Test an explicit mapping reads unfamiliar headers."""
        path = write_csv("F. Contable|Texto|Neto\n05/01/2024|Uno|-10,00\n")
        parser = StatementParser(
            column_map={"date": "F. Contable", "description": "Texto", "amount": "Neto"}
        )
        outcome = parser.parse(path)

        assert outcome.movements == [
            ParsedMovement(date=date(2024, 1, 5), amount=Decimal("-10.00"),
                           description="Uno", row_num=2)
        ]

    def test_manual_column_map_missing_header(self, write_csv):
        """Test a mapping naming a missing column fails clearly."""
        path = write_csv("Fecha,Concepto,Importe\n05/01/2024,Uno,-10.00\n")
        with pytest.raises(ParseError, match="Mapped columns not found"):
            StatementParser(column_map={"amount": "Neto"}).parse(path)

    def test_invalid_mapping_field(self):
        """Test unknown mapping fields are rejected."""
        with pytest.raises(ValidationError, match="Invalid mapping field"):
            StatementParser(column_map={"balance": "Saldo"})

    def test_iter_rows_is_lazy(self, write_csv):
        """Test iter_rows yields one item per data row."""
        path = write_csv("Fecha,Concepto,Importe\n05/01/2024,Uno,-10.00\nx,Dos,1\n")
        rows = StatementParser().iter_rows(path, StatementFormat.CSV)

        assert isinstance(next(rows), ParsedMovement)
        assert isinstance(next(rows), RowError)
        with pytest.raises(StopIteration):
            next(rows)


class TestExcelParsing:
    """Tests for Excel statements."""

    def test_xlsx_statement(self, tmp_path):
        """Test typed cells (dates, floats) and a title row above the header."""
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.append(["Movimientos de la cuenta"])
        sheet.append(["F. Operación", "Concepto", "Importe"])
        sheet.append([datetime(2024, 1, 5), "Recibo Endesa", -45.9])
        sheet.append(["10/01/2024", "Transferencia recibida", "1.500,00"])
        sheet.append([None, None, None])
        path = tmp_path / "movimientos.xlsx"
        workbook.save(path)

        outcome = StatementParser().parse(path)

        assert outcome.format == StatementFormat.XLSX
        assert outcome.errors == []
        assert [(m.date, m.amount) for m in outcome.movements] == [
            (date(2024, 1, 5), Decimal("-45.90")),
            (date(2024, 1, 10), Decimal("1500.00")),
        ]
        assert outcome.movements[0].row_num == 3

    def test_corrupt_workbook(self, tmp_path):
        """Test an unreadable workbook raises ParseError."""
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip file")
        with pytest.raises(ParseError, match="Could not open workbook"):
            StatementParser().parse(path)


class TestOFXParsing:
    """Tests for OFX statements."""

    def test_ofx_statement(self, tmp_path):
        """Test OFX transactions become movements."""
        path = tmp_path / "extracto.ofx"
        path.write_text(OFX_STATEMENT)

        outcome = StatementParser().parse(path)

        assert outcome.format == StatementFormat.OFX
        assert outcome.errors == []
        first, second = outcome.movements
        assert first.date == date(2024, 1, 5)
        assert first.amount == Decimal("-45.90")
        assert first.description == "IBERDROLA Recibo luz enero"
        assert first.counterparty == "IBERDROLA"
        assert first.reference == "0001"
        assert second.amount == Decimal("1500.00")

    def test_invalid_ofx(self, tmp_path):
        """Test garbage OFX raises ParseError."""
        path = tmp_path / "broken.ofx"
        path.write_text("this is not ofx")
        with pytest.raises(ParseError):
            StatementParser().parse(path)
