"""Internal transfer commands."""

from datetime import timedelta

import click
from treasury.cli.account_resolution import resolve_account_or_exit
from treasury.cli.error_handling import handle_domain_error
from treasury.domain.account import AccountService
from treasury.domain.errors import DomainError
from treasury.domain.transfers import TransferService


@click.group()
def transfer_group():
    """Manage internal transfers between your accounts."""
    pass


@transfer_group.command("list")
@click.option("--account", help="Only transfers touching this account")
@click.pass_context
def list_transfers(ctx, account: str | None):
    """List transfers."""
    account_service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, account_service, account) if account else None
    transfers = TransferService(ctx.obj["treasury"]).list_transfers(account_id=account_id)
    if not transfers:
        click.echo("No transfers found.")
        return

    aliases = {a.id: a.alias for a in account_service.list_accounts(include_inactive=True)}
    click.echo(f"\nFound {len(transfers)} transfer(s):")
    click.echo("-" * 90)
    for t in transfers:
        kind = "auto" if t.detected else "manual"
        note = f"  {t.note}" if t.note else ""
        click.echo(
            f"{t.id:<5} {str(t.date):<12} {t.amount:>12,.2f}  "
            f"{aliases.get(t.from_account_id, t.from_account_id)} -> "
            f"{aliases.get(t.to_account_id, t.to_account_id)}  "
            f"(movements {t.outgoing_movement_id}/{t.incoming_movement_id}, {kind}){note}"
        )


@transfer_group.command("link")
@click.argument("outgoing_id", type=int)
@click.argument("incoming_id", type=int)
@click.option("--note", help="Optional note")
@click.pass_context
def link_transfer(ctx, outgoing_id: int, incoming_id: int, note: str | None):
    """Link two movements as a transfer.

    OUTGOING_ID is the negative movement, INCOMING_ID the positive one.
    """
    service = TransferService(ctx.obj["treasury"])
    try:
        transfer_id = service.create_transfer(outgoing_id, incoming_id, note=note)
        click.echo(f"Created transfer {transfer_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@transfer_group.command("unlink")
@click.argument("transfer_id", type=int)
@click.pass_context
def unlink_transfer(ctx, transfer_id: int):
    """Undo a transfer that was linked by mistake.

    Detection will not pair the same two movements again; linking them with
    `transfer link` still works.
    """
    service = TransferService(ctx.obj["treasury"])
    try:
        transfer = service.unlink(transfer_id)
        click.echo(
            f"Unlinked transfer {transfer_id}; movements {transfer.outgoing_movement_id} and "
            f"{transfer.incoming_movement_id} are plain movements again"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


@transfer_group.command("detect")
@click.option("--days", type=int, default=90, show_default=True, help="How far back to look")
@click.pass_context
def detect_transfers(ctx, days: int):
    """Run transfer detection over recent movements of all active accounts."""
    treasury_ctx = ctx.obj["treasury"]
    today = treasury_ctx.today()
    account_ids = [a.id for a in treasury_ctx.active_accounts()]
    service = TransferService(treasury_ctx)
    with treasury_ctx.import_lock:
        movements = treasury_ctx.db.list_movements(
            account_ids=account_ids,
            start_date=today - timedelta(days=days),
        )
        detection = service.detect_and_link(movements)
    click.echo(f"Transfers detected: {len(detection.pairs)}")
    if detection.pending:
        click.echo(f"Awaiting counterpart: {len(detection.pending)}")
    for ambiguous in detection.ambiguous:
        click.echo(f"  {ambiguous}")


def register_commands(cli):
    """Register transfer commands with main CLI."""
    cli.add_command(transfer_group, name="transfer")
