"""Account management commands."""

from decimal import Decimal

import click
from treasury.cli.account_resolution import resolve_account_or_exit
from treasury.cli.param_types import AMOUNT
from treasury.cli.error_handling import handle_domain_error
from treasury.domain.account import AccountService
from treasury.domain.entities import AccountScope
from treasury.domain.errors import DomainError

SCOPES = [s.value for s in AccountScope]


@click.group()
def account_group():
    """Manage bank accounts."""
    pass


@account_group.command("create")
@click.argument("alias", metavar="ALIAS")
@click.option("--bank", help="Bank name (defaults to the alias if not provided)")
@click.option("--iban", help="IBAN or other account identifier")
@click.option("--opening-balance", type=AMOUNT, default=Decimal("0"), show_default=True)
@click.option("--minimum-balance", type=AMOUNT, default=Decimal("200"), show_default=True,
              help="Balance floor used for risk levels")
@click.option("--currency", default="EUR", show_default=True)
@click.option("--scope", type=click.Choice(SCOPES), default="personal", show_default=True)
@click.pass_context
def create_account(
    ctx,
    alias: str,
    bank: str | None,
    iban: str | None,
    opening_balance: Decimal,
    minimum_balance: Decimal,
    currency: str,
    scope: str,
):
    """Create a new account.

    Examples:
        treasury account create "Nómina" --bank "BBVA" --iban "ES91 2100 0418 4502 0005 1332"
        treasury account create "Piso Centro" --bank "Sabadell" --scope property --minimum-balance 500
    """
    service = AccountService(ctx.obj["db"])
    bank_name = bank if bank is not None else alias

    try:
        account_id = service.create_account(
            alias=alias,
            bank_name=bank_name,
            iban=iban,
            opening_balance=opening_balance,
            currency=currency,
            scope=AccountScope(scope),
            minimum_balance=minimum_balance,
        )
        click.echo(f"Created account '{alias}' (ID: {account_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include inactive accounts")
@click.pass_context
def list_accounts(ctx, show_all: bool):
    """List accounts with their cached balance."""
    service = AccountService(ctx.obj["db"])

    accounts = service.list_accounts(include_inactive=show_all)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 100)
    for acc in accounts:
        status = "" if acc.is_active else " (inactive)"
        iban = acc.masked_iban or "-"
        click.echo(
            f"ID: {acc.id:3d} | {acc.alias:20s} | {acc.bank_name:15s} | {iban:22s} | "
            f"{acc.balance:>12,.2f} {acc.currency}{status}"
        )


@account_group.command("edit")
@click.argument("account", metavar="ACCOUNT")
@click.option("--alias", help="New alias")
@click.option("--bank", help="New bank name")
@click.option("--iban", help="New IBAN")
@click.option("--opening-balance", type=AMOUNT, help="New opening balance")
@click.option("--minimum-balance", type=AMOUNT, help="New balance floor")
@click.option("--scope", type=click.Choice(SCOPES), help="New scope")
@click.pass_context
def edit_account(
    ctx,
    account: str,
    alias: str | None,
    bank: str | None,
    iban: str | None,
    opening_balance: Decimal | None,
    minimum_balance: Decimal | None,
    scope: str | None,
) -> None:
    """Edit an account.

    ACCOUNT can be an alias, ID or IBAN.

    Examples:
        treasury account edit "Nómina" --minimum-balance 1000
        treasury account edit 1 --alias "Cuenta principal"
    """
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)

    try:
        service.update_account(
            account_id=account_id,
            alias=alias,
            bank_name=bank,
            iban=iban,
            opening_balance=opening_balance,
            minimum_balance=minimum_balance,
            scope=AccountScope(scope) if scope else None,
        )
        click.echo(f"Updated account {account_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("deactivate")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def deactivate_account(ctx, account: str) -> None:
    """Deactivate an account (kept, but left out of imports and projections)."""
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    service.deactivate_account(account_id)
    click.echo(f"Deactivated account {account_id}")


@account_group.command("activate")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def activate_account(ctx, account: str) -> None:
    """Reactivate an account."""
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    service.activate_account(account_id)
    click.echo(f"Activated account {account_id}")


@account_group.command("recompute")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def recompute_balance(ctx, account: str) -> None:
    """Rebuild the cached balance from the account's posted movements."""
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    balance = service.recompute_balance(account_id)
    click.echo(f"Balance of account {account_id}: {balance:,.2f}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
