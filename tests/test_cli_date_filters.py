"""Tests for CLI date range resolution."""

import click
import pytest
from datetime import date

from treasury.cli.date_filters import resolve_cli_date_range

TODAY = date(2024, 3, 15)


@click.command()
@click.option("--start-date")
@click.option("--end-date")
@click.option("--period")
@click.pass_context
def show_range(ctx, start_date, end_date, period):
    start, end = resolve_cli_date_range(
        ctx, start_date=start_date, end_date=end_date, period=period, today=TODAY
    )
    click.echo(f"{start} {end}")


@pytest.mark.parametrize(
    "args, expected",
    [
        ([], "2024-03-15 2024-04-13"),
        (["--period", "this-month"], "2024-03-01 2024-03-31"),
        (["--period", "next-month"], "2024-04-01 2024-04-30"),
        (["--start-date", "01/04/2024"], "2024-04-01 2024-04-30"),
        (["--start-date", "2024-03-01", "--end-date", "2024-03-10"], "2024-03-01 2024-03-10"),
        (["--end-date", "tomorrow"], "2024-03-15 2024-03-16"),
    ],
)
def test_resolves_range(cli_runner, args, expected):
    result = cli_runner.invoke(show_range, args)
    assert result.exit_code == 0, result.output
    assert result.output.strip() == expected


@pytest.mark.parametrize(
    "args, message",
    [
        (["--period", "this-month", "--start-date", "2024-03-01"], "cannot be combined"),
        (["--start-date", "nunca"], "Invalid start date"),
        (["--end-date", "nunca"], "Invalid end date"),
        (["--start-date", "2024-03-10", "--end-date", "2024-03-01"], "is after end date"),
    ],
)
def test_rejects_bad_input(cli_runner, args, message):
    result = cli_runner.invoke(show_range, args)
    assert result.exit_code == 1
    assert message in result.output
