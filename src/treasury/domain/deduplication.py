"""Duplicate detection for imported statement rows."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from treasury.domain.entities import Movement, MovementOrigin, ParsedMovement

logger = logging.getLogger(__name__)

DedupKey = tuple[int, date, Decimal, str]


def normalize_description(text: Optional[str]) -> str:
    """Casefold and collapse whitespace so cosmetic differences don't matter."""
    if not text:
        return ""
    return " ".join(text.casefold().split())


def dedup_key(account_id: int, movement_date: date, amount: Decimal, description: Optional[str]) -> DedupKey:
    return (account_id, movement_date, amount, normalize_description(description))


@dataclass
class DedupResult:
    """Candidates split into new rows and rows already stored."""

    to_import: list[ParsedMovement] = field(default_factory=list)
    duplicates: list[ParsedMovement] = field(default_factory=list)


def partition_candidates(
    account_id: int,
    existing: Iterable[Movement],
    candidates: Iterable[ParsedMovement],
) -> DedupResult:
    """Split candidates into those to import and those already stored.

    A candidate is a duplicate when a stored movement of the same account
    has the same date, exactly the same amount and the same normalized
    description. Forecasts are plans, not bank rows, and never count as
    duplicates. Candidates are only compared against stored movements, so
    two identical rows in the same file are both imported.

    Args:
        account_id: Target account of the import
        existing: Movements already stored for the account
        candidates: Parsed statement rows

    Returns:
        DedupResult with to_import and duplicates in input order
    """
    stored = {
        dedup_key(m.account_id, m.date, m.amount, m.description)
        for m in existing
        if m.account_id == account_id and m.origin != MovementOrigin.FORECAST
    }

    result = DedupResult()
    for candidate in candidates:
        key = dedup_key(account_id, candidate.date, candidate.amount, candidate.description)
        if key in stored:
            logger.debug("Duplicate row %s: %s %s", candidate.row_num, candidate.date, candidate.amount)
            result.duplicates.append(candidate)
        else:
            result.to_import.append(candidate)
    return result
