"""Shared domain error messages and error types."""

from datetime import date
from typing import Sequence


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class StatusTransitionError(ConflictError):
    """Movement status change not allowed by the lifecycle."""


class ParseError(DomainError):
    """Statement file could not be read or its format is not recognized."""


class DuplicateBatchError(ConflictError):
    """The statement looks like a batch that was already imported."""


class AmbiguousMatchError(DomainError):
    """More than one equally good counterpart was found for a movement.

    Matching passes do not raise this; they collect instances and leave the
    movement unmatched so it can be resolved by hand.
    """

    def __init__(self, movement_id: int, candidate_ids: Sequence[int], kind: str):
        self.movement_id = movement_id
        self.candidate_ids = tuple(candidate_ids)
        self.kind = kind
        super().__init__(ambiguous_match(movement_id, self.candidate_ids, kind))


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def account_inactive(account_id: int) -> str:
    """Return message for an inactive account selected for import."""
    return f"Account {account_id} is inactive"


def movement_not_found(movement_id: int) -> str:
    """Return message for missing movement."""
    return f"Movement {movement_id} not found"


def transfer_not_found(transfer_id: int) -> str:
    """Return message for missing transfer."""
    return f"Transfer {transfer_id} not found"


def duplicate_batch(filename: str, account_id: int, total_rows: int, imported_at: date) -> str:
    """Return message for a statement that was already imported."""
    return (
        f"'{filename}' with {total_rows} rows was already imported into account "
        f"{account_id} on {imported_at:%Y-%m-%d}"
    )


def ambiguous_match(movement_id: int, candidate_ids: Sequence[int], kind: str) -> str:
    """Return message for a movement left unmatched because of ties."""
    candidates = ", ".join(str(c) for c in candidate_ids)
    return f"Movement {movement_id} has several {kind} candidates ({candidates}); resolve manually"


def invalid_transition(movement_id: int, current: str, new: str) -> str:
    """Return message for a rejected status change."""
    return f"Movement {movement_id} cannot change from '{current}' to '{new}'"
