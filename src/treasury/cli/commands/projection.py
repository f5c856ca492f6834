"""Balance projection and risk commands."""

import click
from treasury.cli.account_resolution import resolve_account_or_exit
from treasury.cli.date_filters import resolve_cli_date_range
from treasury.cli.error_handling import handle_domain_error
from treasury.domain.account import AccountService
from treasury.domain.entities import MovementStatus, RiskLevel
from treasury.domain.errors import DomainError
from treasury.domain.treasury import TreasuryService
from treasury.utils.date_parser import SUPPORTED_PERIODS

RISK_COLORS = {RiskLevel.VERDE: "green", RiskLevel.AMBAR: "yellow", RiskLevel.ROJO: "red"}

# Movements that are only expected are marked so they stand out from settled ones
PENDING_MARK = {
    MovementStatus.PREVISTO: "~",
    MovementStatus.VENCIDO: "!",
    MovementStatus.NO_PLANIFICADO: "?",
}


def _risk_label(level: RiskLevel) -> str:
    return click.style(level.value.upper(), fg=RISK_COLORS[level], bold=True)


def period_options(func):
    func = click.option("--end-date", help="Last day (defaults to 30 days from start)")(func)
    func = click.option("--start-date", help="First day (defaults to today)")(func)
    func = click.option("--period", type=click.Choice(SUPPORTED_PERIODS), help="Named period")(func)
    return func


@click.command("projection")
@click.argument("account", metavar="ACCOUNT")
@period_options
@click.option("--details", is_flag=True, help="List the movements of each day")
@click.pass_context
def show_projection(ctx, account: str, period: str | None, start_date: str | None,
                    end_date: str | None, details: bool):
    """Show the day-by-day projected balance of an account.

    Examples:
        treasury projection "Nómina"
        treasury projection 1 --period next-month --details
    """
    account_service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, account_service, account)
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period=period,
        today=ctx.obj["treasury"].today(),
    )

    try:
        result = TreasuryService(ctx.obj["db"]).project_account(account_id, start, end)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    acc = account_service.get_account(account_id)
    click.echo(f"\nProjection for {acc.alias} from {start} to {end}")
    click.echo(f"Opening balance: {result.opening_balance:,.2f} {acc.currency}")
    click.echo("-" * 80)
    click.echo(f"{'Date':<12} {'Income':>12} {'Expense':>12} {'Balance':>14}")
    click.echo("-" * 80)
    for day in result.days:
        if not day.movements and not details:
            continue
        click.echo(
            f"{str(day.date):<12} {day.income_amount:>12,.2f} {day.expense_amount:>12,.2f} "
            f"{day.end_of_day_balance:>14,.2f}"
        )
        if details:
            for m in day.movements:
                mark = PENDING_MARK.get(m.status, " ")
                transfer = " (transfer)" if m.is_transfer else ""
                click.echo(f"    {mark} {m.amount:>12,.2f}  {m.description[:45]}{transfer}")
    click.echo("-" * 80)
    click.echo(f"Income:  {result.income:>14,.2f}")
    click.echo(f"Expense: {result.expense:>14,.2f}")
    click.echo(f"Net:     {result.net:>14,.2f}")
    click.echo(f"End balance: {result.end_balance:,.2f}")
    click.echo(f"Lowest balance: {result.min_balance:,.2f} on {result.min_balance_date}")
    click.echo(f"Risk: {_risk_label(result.risk_level)} (floor {acc.minimum_balance:,.2f})")
    if result.balance_drift:
        click.echo(
            f"Warning: stored balance differs from movements by {result.balance_drift:,.2f}; "
            f"run 'treasury account recompute {acc.id}'",
            err=True,
        )


@click.command("risk")
@period_options
@click.pass_context
def risk_overview(ctx, period: str | None, start_date: str | None, end_date: str | None):
    """Show the risk level of every active account, riskiest first."""
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period=period,
        today=ctx.obj["treasury"].today(),
    )
    rows = TreasuryService(ctx.obj["db"]).risk_overview(start, end)
    if not rows:
        click.echo("No active accounts.")
        return

    click.echo(f"\nRisk from {start} to {end}:")
    click.echo("-" * 80)
    for row in rows:
        click.echo(
            f"{row.account.alias:20s} {_risk_label(row.risk_level):>6}  "
            f"lowest {row.min_balance:>12,.2f} on {row.min_balance_date}  "
            f"end {row.end_balance:>12,.2f}"
        )


def register_commands(cli):
    """Register projection commands with main CLI."""
    cli.add_command(show_projection)
    cli.add_command(risk_overview)
