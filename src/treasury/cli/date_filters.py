"""CLI helpers for date range resolution."""

from datetime import date

import click

from treasury.utils.date_parser import get_date_range, parse_date


def resolve_cli_date_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
    today: date,
    default_period: str = "next-30-days",
) -> tuple[date, date]:
    """Resolve a CLI date range from a period name or explicit dates.

    A missing start defaults to today; a missing end defaults to the end of
    the default period counted from the start.
    """
    if period and (start_date or end_date):
        click.echo(
            "Error: --period cannot be combined with --start-date or --end-date.",
            err=True,
        )
        ctx.exit(1)

    if period:
        return get_date_range(period, today=today)

    start = today
    if start_date:
        try:
            start = parse_date(start_date, today=today)
        except ValueError as e:
            click.echo(f"Error: Invalid start date: {e}", err=True)
            ctx.exit(1)

    end = None
    if end_date:
        try:
            end = parse_date(end_date, today=today)
        except ValueError as e:
            click.echo(f"Error: Invalid end date: {e}", err=True)
            ctx.exit(1)
    if end is None:
        _, end = get_date_range(default_period, today=start)

    if start > end:
        click.echo(f"Error: Start date {start} is after end date {end}", err=True)
        ctx.exit(1)

    return start, end
