"""Main CLI entry point."""

import logging
from decimal import Decimal

import click
from treasury.config import load_matching_config
from treasury.database.factories import create_sqlite_database
from treasury.domain.context import TreasuryContext
from treasury.domain.errors import ValidationError
from treasury.cli.error_handling import handle_domain_error
from treasury.cli.param_types import AMOUNT

# Import and register all commands at module level
from treasury.cli.commands import (
    account,
    import_cmd,
    movement,
    transfer,
    projection,
)

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides TREASURY_DB_PATH environment variable)",
    envvar="TREASURY_DB_PATH",
)
@click.option("--date-window", type=int, help="Days allowed between matched movements")
@click.option(
    "--amount-tolerance-percent", type=AMOUNT, help="Amount tolerance as a percentage"
)
@click.option(
    "--amount-tolerance-fixed", type=AMOUNT, help="Amount tolerance as a fixed amount"
)
@click.option("--verbose", "-v", count=True, help="Log progress (-v) or debug details (-vv)")
@click.pass_context
def cli(
    ctx,
    db_path: str | None,
    date_window: int | None,
    amount_tolerance_percent: Decimal | None,
    amount_tolerance_fixed: Decimal | None,
    verbose: int,
):
    """Treasury - Bank reconciliation and balance projection.

    Import bank statements (CSV, Excel, OFX), detect internal transfers,
    reconcile movements against forecasts and project account balances.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=LOG_LEVELS.get(verbose, logging.DEBUG),
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        try:
            config = load_matching_config(
                date_window_days=date_window,
                amount_tolerance_percent=amount_tolerance_percent,
                amount_tolerance_fixed=amount_tolerance_fixed,
            )
        except ValidationError as e:
            handle_domain_error(ctx, e)

        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["treasury"] = TreasuryContext(db=db, config=config)


# Register all commands
account.register_commands(cli)
import_cmd.register_commands(cli)
movement.register_commands(cli)
transfer.register_commands(cli)
projection.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
