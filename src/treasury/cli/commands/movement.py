"""Movement commands: manual entries, forecasts and reconciliation actions."""

from decimal import Decimal

import click
from treasury.cli.account_resolution import resolve_account_or_exit
from treasury.cli.error_handling import handle_domain_error
from treasury.cli.param_types import AMOUNT
from treasury.domain.account import AccountService
from treasury.domain.entities import Movement, MovementOrigin, MovementStatus
from treasury.domain.errors import DomainError
from treasury.domain.movement import MovementService
from treasury.utils.date_parser import parse_date

STATUS_LABELS = {
    MovementStatus.PREVISTO: "previsto",
    MovementStatus.CONFIRMADO: "confirmado",
    MovementStatus.VENCIDO: "VENCIDO",
    MovementStatus.NO_PLANIFICADO: "no planificado",
    MovementStatus.CONCILIADO: "conciliado",
}


def _parse_date_or_exit(ctx, value: str, label: str):
    try:
        return parse_date(value, today=ctx.obj["treasury"].today())
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)


def _format_movement(movement: Movement) -> str:
    flags = []
    if movement.is_transfer:
        flags.append(f"transfer {movement.transfer_id}")
    if movement.matched_movement_id:
        flags.append(f"matched {movement.matched_movement_id}")
    if movement.ignored:
        flags.append("ignored")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return (
        f"{movement.id:<6} {str(movement.date):<12} {movement.amount:>12,.2f}  "
        f"{STATUS_LABELS[movement.status]:<15} {movement.origin.value:<9} "
        f"{movement.description[:40]:<40}{suffix}"
    )


@click.group()
def movement_group():
    """Manage movements and reconcile them."""
    pass


@movement_group.command("add")
@click.argument("account", metavar="ACCOUNT")
@click.option("--date", "date_str", required=True, help="Movement date")
@click.option("--amount", type=AMOUNT, required=True, help="Signed amount (negative for expenses)")
@click.option("--description", required=True, help="Description")
@click.option("--counterparty", help="Counterparty")
@click.option("--category", help="Category")
@click.option("--notes", help="Notes")
@click.pass_context
def add_movement(ctx, account: str, date_str: str, amount: Decimal, description: str,
                 counterparty: str | None, category: str | None, notes: str | None):
    """Record a movement paid or collected outside the bank statements.

    Examples:
        treasury movement add "Nómina" --date 2024-03-05 --amount -45,90 --description "Farmacia"
    """
    account_id = resolve_account_or_exit(ctx, AccountService(ctx.obj["db"]), account)
    movement_date = _parse_date_or_exit(ctx, date_str, "date")
    service = MovementService(ctx.obj["treasury"])
    try:
        movement_id = service.create_movement(
            account_id=account_id,
            date=movement_date,
            amount=amount,
            description=description,
            counterparty=counterparty,
            category=category,
            notes=notes,
        )
        click.echo(f"Created movement {movement_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@movement_group.command("forecast")
@click.argument("account", metavar="ACCOUNT")
@click.option("--date", "date_str", required=True, help="Expected date (first one when recurring)")
@click.option("--amount", type=AMOUNT, required=True, help="Signed expected amount")
@click.option("--description", required=True, help="Description")
@click.option("--until", "until_str", help="Repeat until this date")
@click.option("--every", "every_months", type=int, default=1, show_default=True,
              help="Months between occurrences when repeating")
@click.option("--category", help="Category")
@click.pass_context
def add_forecast(ctx, account: str, date_str: str, amount: Decimal, description: str,
                 until_str: str | None, every_months: int, category: str | None):
    """Record an expected movement, optionally repeating monthly.

    Examples:
        treasury movement forecast "Piso Centro" --date 2024-04-01 --amount 850 --description "Alquiler"
        treasury movement forecast "Nómina" --date 2024-01-31 --amount -60 --description "Luz" --until 2024-12-31
    """
    account_id = resolve_account_or_exit(ctx, AccountService(ctx.obj["db"]), account)
    start = _parse_date_or_exit(ctx, date_str, "date")
    service = MovementService(ctx.obj["treasury"])
    try:
        if until_str:
            end = _parse_date_or_exit(ctx, until_str, "end date")
            ids = service.schedule_forecasts(
                account_id, amount, description, start, end,
                every_months=every_months, category=category,
            )
            click.echo(f"Created {len(ids)} forecast movements")
        else:
            movement_id = service.create_forecast(
                account_id, start, amount, description, category=category
            )
            click.echo(f"Created forecast {movement_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@movement_group.command("list")
@click.option("--account", help="Account alias, ID or IBAN")
@click.option("--start-date", help="Start date")
@click.option("--end-date", help="End date")
@click.option("--status", type=click.Choice([s.value for s in MovementStatus]), help="Only this status")
@click.option("--origin", type=click.Choice([o.value for o in MovementOrigin]), help="Only this origin")
@click.option("--hide-ignored", is_flag=True, help="Leave out ignored movements")
@click.pass_context
def list_movements(ctx, account: str | None, start_date: str | None, end_date: str | None,
                   status: str | None, origin: str | None, hide_ignored: bool):
    """List movements with optional filters."""
    account_id = None
    if account:
        account_id = resolve_account_or_exit(ctx, AccountService(ctx.obj["db"]), account)
    start = _parse_date_or_exit(ctx, start_date, "start date") if start_date else None
    end = _parse_date_or_exit(ctx, end_date, "end date") if end_date else None

    movements = MovementService(ctx.obj["treasury"]).list_movements(
        account_id=account_id,
        start_date=start,
        end_date=end,
        status=MovementStatus(status) if status else None,
        origin=MovementOrigin(origin) if origin else None,
        include_ignored=not hide_ignored,
    )
    if not movements:
        click.echo("No movements found.")
        return

    click.echo(f"\nFound {len(movements)} movement(s):")
    click.echo("-" * 110)
    click.echo(f"{'ID':<6} {'Date':<12} {'Amount':>12}  {'Status':<15} {'Origin':<9} {'Description':<40}")
    click.echo("-" * 110)
    for movement in movements:
        click.echo(_format_movement(movement))


def _status_command(name: str, action: str, help_text: str):
    @movement_group.command(name, help=help_text)
    @click.argument("movement_id", type=int)
    @click.pass_context
    def command(ctx, movement_id: int):
        service = MovementService(ctx.obj["treasury"])
        try:
            movement = getattr(service, action)(movement_id)
            click.echo(_format_movement(movement))
        except DomainError as e:
            handle_domain_error(ctx, e)

    return command


_status_command("confirm", "confirm", "Mark a movement as paid or collected (confirmado).")
_status_command("reconcile", "reconcile", "Close a confirmed movement as reconciled (conciliado).")
_status_command("ignore", "ignore", "Flag a movement as ignored. Nothing is deleted.")
_status_command("restore", "restore", "Undo 'ignore' on a movement.")


@movement_group.command("edit")
@click.argument("movement_id", type=int)
@click.option("--date", "date_str", help="New date")
@click.option("--amount", type=AMOUNT, help="New amount")
@click.option("--description", help="New description")
@click.option("--counterparty", help="New counterparty")
@click.option("--category", help="New category")
@click.option("--notes", help="New notes")
@click.pass_context
def edit_movement(ctx, movement_id: int, date_str: str | None, amount: Decimal | None,
                  description: str | None, counterparty: str | None, category: str | None,
                  notes: str | None):
    """Edit a movement. Reconciled movements can't be edited."""
    new_date = _parse_date_or_exit(ctx, date_str, "date") if date_str else None
    service = MovementService(ctx.obj["treasury"])
    try:
        movement = service.update_movement(
            movement_id,
            date=new_date,
            amount=amount,
            description=description,
            counterparty=counterparty,
            category=category,
            notes=notes,
        )
        click.echo(_format_movement(movement))
    except DomainError as e:
        handle_domain_error(ctx, e)


@click.command("classify")
@click.pass_context
def classify(ctx):
    """Match unplanned movements to forecasts and flag overdue forecasts."""
    result = MovementService(ctx.obj["treasury"]).classify()
    confirmed = sum(1 for c in result.changes if c.new_status == MovementStatus.CONFIRMADO)
    overdue = sum(1 for c in result.changes if c.new_status == MovementStatus.VENCIDO)
    click.echo(f"Confirmed: {confirmed} movements")
    click.echo(f"Overdue: {overdue} forecasts")
    if result.ambiguous:
        click.echo(f"Ambiguous matches (resolve manually): {len(result.ambiguous)}")
        for ambiguous in result.ambiguous:
            click.echo(f"  {ambiguous}")


def register_commands(cli):
    """Register movement commands with main CLI."""
    cli.add_command(movement_group, name="movement")
    cli.add_command(classify)
