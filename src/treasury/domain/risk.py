"""Risk level of a projected balance series."""

from decimal import Decimal
from typing import Iterable

from treasury.domain.entities import DayProjection, RiskLevel


def evaluate_risk(days: Iterable[DayProjection], minimum_balance: Decimal) -> RiskLevel:
    """Reduce a projection to a traffic-light risk level.

    rojo when any end-of-day balance is negative, ambar when any is below
    the minimum balance, verde otherwise (including an empty series).
    """
    level = RiskLevel.VERDE
    for day in days:
        if day.end_of_day_balance < 0:
            return RiskLevel.ROJO
        if day.end_of_day_balance < minimum_balance:
            level = RiskLevel.AMBAR
    return level
