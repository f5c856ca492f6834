"""Statement import command."""

import click
from treasury.cli.account_resolution import resolve_account_or_exit
from treasury.cli.error_handling import handle_domain_error
from treasury.domain.account import AccountService
from treasury.domain.entities import StatementFormat
from treasury.domain.errors import DomainError
from treasury.domain.statement_import import StatementImportService
from treasury.domain.statement_parser import MAPPABLE_FIELDS


def parse_column_map(ctx, param, values: tuple[str, ...]) -> dict[str, str] | None:
    """Turn repeated FIELD=HEADER options into a column map."""
    if not values:
        return None
    column_map = {}
    for value in values:
        field_name, sep, header = value.partition("=")
        field_name = field_name.strip().lower()
        if not sep or not header.strip():
            raise click.BadParameter(f"Expected FIELD=HEADER, got '{value}'")
        if field_name not in MAPPABLE_FIELDS:
            raise click.BadParameter(
                f"Unknown field '{field_name}'. Must be one of: {', '.join(sorted(MAPPABLE_FIELDS))}"
            )
        column_map[field_name] = header.strip()
    return column_map


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", required=True, help="Target account alias, ID or IBAN")
@click.option(
    "--format",
    "fmt",
    type=click.Choice([f.value for f in StatementFormat]),
    help="Statement format (detected from the file when omitted)",
)
@click.option(
    "--map",
    "column_map",
    multiple=True,
    callback=parse_column_map,
    metavar="FIELD=HEADER",
    help="Map a field to a column header, e.g. --map date='F. Valor'. Repeatable.",
)
@click.option("--strict", is_flag=True, help="Fail if the file looks already imported")
@click.pass_context
def import_statement(ctx, statement_file: str, account: str, fmt: str | None,
                     column_map: dict[str, str] | None, strict: bool):
    """Import movements from a bank statement (CSV, Excel or OFX).

    Examples:
        treasury import extracto_enero.csv --account "Nómina"
        treasury import movimientos.xlsx --account 2 --map date="F. Operación" --map amount="Importe"
    """
    account_service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, account_service, account)
    service = StatementImportService(ctx.obj["treasury"])

    try:
        result = service.import_statement(
            statement_file,
            account_id=account_id,
            fmt=StatementFormat(fmt) if fmt else None,
            column_map=column_map,
            strict=strict,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if result.needs_manual_mapping:
        click.echo("=" * 60, err=True)
        click.echo(
            f"  {len(result.errors)} of {result.total_lines} rows could not be read "
            f"({result.error_rate:.0%}). Nothing was imported.",
            err=True,
        )
        click.echo("  The column layout was not recognized. Map the columns", err=True)
        click.echo("  manually, e.g.: --map date='Fecha' --map amount='Importe'", err=True)
        click.echo("=" * 60, err=True)
        for error in result.errors[:10]:
            click.echo(f"    {error}", err=True)
        ctx.exit(1)

    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)

    click.echo("\nImport complete:")
    click.echo(f"  Lines read: {result.total_lines}")
    click.echo(f"  Imported: {result.imported} movements")
    click.echo(f"  Skipped: {result.duplicates} duplicates")
    click.echo(f"  Confirmed against forecasts: {result.confirmed_movements}")
    click.echo(f"  Unplanned: {result.unplanned_movements}")
    click.echo(f"  Transfers detected: {result.detected_transfers}")
    if result.pending_transfers:
        click.echo(f"  Transfers awaiting counterpart: {result.pending_transfers}")
    if result.ambiguous_matches:
        click.echo(f"  Ambiguous matches (resolve manually): {len(result.ambiguous_matches)}")
        for message in result.ambiguous_matches:
            click.echo(f"    {message}")
    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    {error}", err=True)


@click.command("batches")
@click.option("--account", help="Only batches of this account (alias, ID or IBAN)")
@click.pass_context
def list_batches(ctx, account: str | None):
    """List import batches, newest first."""
    account_id = None
    if account:
        account_id = resolve_account_or_exit(ctx, AccountService(ctx.obj["db"]), account)
    batches = StatementImportService(ctx.obj["treasury"]).list_batches(account_id=account_id)
    if not batches:
        click.echo("No import batches found.")
        return
    for batch in batches:
        click.echo(
            f"{batch.id:<5} {batch.imported_at:%Y-%m-%d %H:%M}  account {batch.account_id:<3} "
            f"{batch.filename}: {batch.imported_rows} imported, {batch.skipped_rows} skipped, "
            f"{batch.error_rows} errors"
        )


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_statement)
    cli.add_command(list_batches)
