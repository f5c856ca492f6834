"""Day-by-day balance projection for an account."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from treasury.domain.entities import (
    Account,
    DayProjection,
    Movement,
    MovementOrigin,
    ProjectedMovement,
    ProjectionResult,
)
from treasury.domain.errors import ValidationError
from treasury.domain.risk import evaluate_risk
from treasury.domain.status import OPEN_FORECAST_STATUSES

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def is_projected(movement: Movement) -> bool:
    """Whether a movement counts towards the projected balance.

    Ignored movements don't count. Neither does a forecast that an imported
    movement has fulfilled, since the import already carries the amount.
    """
    if movement.ignored:
        return False
    if movement.origin == MovementOrigin.FORECAST and movement.matched_movement_id is not None:
        return False
    return True


def is_posted(movement: Movement) -> bool:
    """Whether a movement is already reflected in the cached account balance."""
    return is_projected(movement) and not (
        movement.origin == MovementOrigin.FORECAST and movement.status in OPEN_FORECAST_STATUSES
    )


def _ordered(account: Account, movements: Iterable[Movement]) -> list[Movement]:
    own = [m for m in movements if m.account_id == account.id and is_projected(m)]
    return sorted(own, key=lambda m: (m.date, m.id))


def posted_balance(account: Account, movements: Iterable[Movement]) -> Decimal:
    """Opening balance plus every posted movement of the account."""
    total = account.opening_balance
    for movement in _ordered(account, movements):
        if is_posted(movement):
            total += movement.amount
    return total


def project_balance(
    account: Account, movements: Iterable[Movement], start: date, end: date
) -> ProjectionResult:
    """Project an account's balance for every day in [start, end].

    The balance entering the first day is the opening balance plus every
    counted movement dated before start. Movements are applied in date, then
    insertion order, so repeated runs give identical totals.

    Args:
        account: Account to project
        movements: The account's movements (other accounts' are ignored)
        start: First day of the period
        end: Last day of the period

    Returns:
        ProjectionResult with one DayProjection per calendar day

    Raises:
        ValidationError: If start is after end
    """
    if start > end:
        raise ValidationError(f"Start date {start} is after end date {end}")

    movements = list(movements)
    ordered = _ordered(account, movements)

    balance = account.opening_balance
    by_day: dict[date, list[Movement]] = {}
    for movement in ordered:
        if movement.date < start:
            balance += movement.amount
        elif movement.date <= end:
            by_day.setdefault(movement.date, []).append(movement)
    opening = balance

    days = []
    income = ZERO
    expense = ZERO
    min_balance = None
    min_balance_date = start
    current = start
    while current <= end:
        day_movements = by_day.get(current, [])
        income_amount = ZERO
        expense_amount = ZERO
        income_count = 0
        expense_count = 0
        for movement in day_movements:
            balance += movement.amount
            if movement.amount > 0:
                income_amount += movement.amount
                income_count += 1
            elif movement.amount < 0:
                expense_amount += -movement.amount
                expense_count += 1

        income += income_amount
        expense += expense_amount
        if min_balance is None or balance < min_balance:
            min_balance = balance
            min_balance_date = current

        days.append(
            DayProjection(
                date=current,
                movements=tuple(
                    ProjectedMovement(
                        id=m.id,
                        amount=m.amount,
                        description=m.description,
                        origin=m.origin,
                        status=m.status,
                        is_transfer=m.is_transfer,
                    )
                    for m in day_movements
                ),
                income_count=income_count,
                expense_count=expense_count,
                income_amount=income_amount,
                expense_amount=expense_amount,
                end_of_day_balance=balance,
            )
        )
        current += timedelta(days=1)

    drift = account.balance - posted_balance(account, movements)
    if drift:
        logger.warning(
            "Stored balance of account %s differs from its movements by %s", account.id, drift
        )

    return ProjectionResult(
        account_id=account.id,
        start=start,
        end=end,
        opening_balance=opening,
        days=tuple(days),
        income=income,
        expense=expense,
        net=income - expense,
        end_balance=balance,
        min_balance=min_balance,
        min_balance_date=min_balance_date,
        risk_level=evaluate_risk(days, account.minimum_balance),
        balance_drift=drift,
    )
