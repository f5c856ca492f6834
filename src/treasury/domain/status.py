"""Movement status lifecycle and the classification pass."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from treasury.domain.entities import (
    MatchingConfig,
    Movement,
    MovementOrigin,
    MovementStatus,
    StatusChange,
)
from treasury.domain.errors import AmbiguousMatchError, StatusTransitionError, invalid_transition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[MovementStatus, frozenset[MovementStatus]] = {
    MovementStatus.PREVISTO: frozenset({MovementStatus.VENCIDO, MovementStatus.CONFIRMADO}),
    MovementStatus.VENCIDO: frozenset({MovementStatus.CONFIRMADO}),
    MovementStatus.NO_PLANIFICADO: frozenset({MovementStatus.CONFIRMADO}),
    MovementStatus.CONFIRMADO: frozenset({MovementStatus.CONCILIADO}),
    MovementStatus.CONCILIADO: frozenset(),
}

INITIAL_STATUS = {
    MovementOrigin.FORECAST: MovementStatus.PREVISTO,
    MovementOrigin.IMPORT: MovementStatus.NO_PLANIFICADO,
    MovementOrigin.MANUAL: MovementStatus.CONFIRMADO,
}

OPEN_FORECAST_STATUSES = frozenset({MovementStatus.PREVISTO, MovementStatus.VENCIDO})


def initial_status(origin: MovementOrigin) -> MovementStatus:
    """Status a new movement starts in, based on where it came from."""
    return INITIAL_STATUS[MovementOrigin(origin)]


def can_transition(current: MovementStatus, new: MovementStatus) -> bool:
    return MovementStatus(new) in ALLOWED_TRANSITIONS[MovementStatus(current)]


def check_transition(movement: Movement, new: MovementStatus) -> StatusChange:
    """Validate a status change for a movement.

    Returns:
        StatusChange describing the update

    Raises:
        StatusTransitionError: If the lifecycle doesn't allow the change
    """
    if not can_transition(movement.status, new):
        raise StatusTransitionError(
            invalid_transition(movement.id, movement.status.value, MovementStatus(new).value)
        )
    return StatusChange(movement.id, movement.status, MovementStatus(new))


def reopened_status(movement: Movement, today: date) -> MovementStatus:
    """Status a movement returns to when its forecast match is released.

    This is the only way back in the lifecycle: a released forecast is open
    again (vencido once its date has passed) and the other side goes back
    to where its origin starts.
    """
    if movement.origin == MovementOrigin.FORECAST:
        return MovementStatus.VENCIDO if movement.date < today else MovementStatus.PREVISTO
    return initial_status(movement.origin)


@dataclass
class ClassificationResult:
    """Status changes and unresolved matches from a classification pass."""

    changes: list[StatusChange] = field(default_factory=list)
    ambiguous: list[AmbiguousMatchError] = field(default_factory=list)

    @property
    def confirmed_ids(self) -> set[int]:
        return {
            c.movement_id for c in self.changes if c.new_status == MovementStatus.CONFIRMADO
        }


def _forecast_fits(movement: Movement, forecast: Movement, config: MatchingConfig) -> bool:
    if (movement.amount > 0) != (forecast.amount > 0):
        return False
    if abs((movement.date - forecast.date).days) > config.date_window_days:
        return False
    tolerance = config.amount_tolerance(movement.amount, forecast.amount)
    return abs(movement.amount - forecast.amount) <= tolerance


def _is_unplanned_import(movement: Movement) -> bool:
    return (
        movement.origin == MovementOrigin.IMPORT
        and movement.status == MovementStatus.NO_PLANIFICADO
        and movement.matched_movement_id is None
        and movement.transfer_id is None
        and not movement.ignored
    )


def _is_open_forecast(movement: Movement) -> bool:
    return (
        movement.origin == MovementOrigin.FORECAST
        and movement.status in OPEN_FORECAST_STATUSES
        and movement.matched_movement_id is None
        and not movement.ignored
    )


def classify_movements(
    movements: Iterable[Movement], today: date, config: MatchingConfig
) -> ClassificationResult:
    """Run one reconciliation pass over the movements of some accounts.

    Each unplanned import movement is matched against the open forecasts of
    its own account. A single fitting forecast confirms both movements and
    links them; several fitting forecasts leave the import unplanned and are
    reported as ambiguous. Forecasts still previsto after matching whose date
    is before today become vencido.

    Args:
        movements: Movements of the accounts to classify
        today: Reference date for overdue detection
        config: Matching tolerances

    Returns:
        ClassificationResult with the changes to store
    """
    by_account: dict[int, list[Movement]] = defaultdict(list)
    for movement in movements:
        by_account[movement.account_id].append(movement)

    result = ClassificationResult()
    for account_id in sorted(by_account):
        account_movements = sorted(by_account[account_id], key=lambda m: (m.date, m.id))
        forecasts = [m for m in account_movements if _is_open_forecast(m)]
        claimed: set[int] = set()

        for movement in account_movements:
            if not _is_unplanned_import(movement):
                continue
            fitting = [
                f for f in forecasts if f.id not in claimed and _forecast_fits(movement, f, config)
            ]
            if not fitting:
                continue
            if len(fitting) > 1:
                ambiguous = AmbiguousMatchError(movement.id, [f.id for f in fitting], "forecast")
                result.ambiguous.append(ambiguous)
                logger.warning("%s", ambiguous)
                continue

            forecast = fitting[0]
            claimed.add(forecast.id)
            result.changes.append(
                StatusChange(
                    movement.id, movement.status, MovementStatus.CONFIRMADO,
                    matched_movement_id=forecast.id,
                )
            )
            result.changes.append(
                StatusChange(
                    forecast.id, forecast.status, MovementStatus.CONFIRMADO,
                    matched_movement_id=movement.id,
                )
            )
            logger.debug("Movement %s confirms forecast %s", movement.id, forecast.id)

        for forecast in forecasts:
            if forecast.id in claimed:
                continue
            if forecast.status == MovementStatus.PREVISTO and forecast.date < today:
                result.changes.append(
                    StatusChange(forecast.id, forecast.status, MovementStatus.VENCIDO)
                )

    return result
