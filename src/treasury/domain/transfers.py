"""Internal transfer detection and transfer service."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from treasury.domain.context import TreasuryContext
from treasury.domain.entities import (
    MatchingConfig,
    Movement,
    MovementOrigin,
    MovementStatus,
    Transfer,
)
from treasury.domain.errors import (
    AmbiguousMatchError,
    ConflictError,
    NotFoundError,
    ValidationError,
    movement_not_found,
    transfer_not_found,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferCandidate:
    """An eligible outgoing/incoming pair and its deviation score."""

    outgoing: Movement
    incoming: Movement
    score: Decimal

    @property
    def date_gap(self) -> int:
        return abs((self.incoming.date - self.outgoing.date).days)

    @property
    def amount_gap(self) -> Decimal:
        return abs(abs(self.outgoing.amount) - abs(self.incoming.amount))


@dataclass
class TransferDetection:
    """Result of a transfer detection pass."""

    pairs: list[TransferCandidate] = field(default_factory=list)
    pending: list[Movement] = field(default_factory=list)
    ambiguous: list[AmbiguousMatchError] = field(default_factory=list)


def is_transfer_eligible(movement: Movement) -> bool:
    """Whether a movement may become a transfer leg."""
    return (
        movement.origin != MovementOrigin.FORECAST
        and not movement.ignored
        and movement.transfer_id is None
        and movement.matched_movement_id is None
        and movement.status != MovementStatus.CONCILIADO
        and movement.amount != 0
    )


def has_transfer_keyword(movement: Movement, config: MatchingConfig) -> bool:
    text = f"{movement.description} {movement.counterparty or ''}".upper()
    return any(keyword in text for keyword in config.transfer_keywords)


def pair_score(outgoing: Movement, incoming: Movement, config: MatchingConfig) -> Optional[Decimal]:
    """Deviation score of a pair, or None when the pair is not eligible.

    The score adds the date gap as a fraction of the date window and the
    amount gap as a fraction of the amount tolerance. Lower is better.
    """
    if outgoing.account_id == incoming.account_id:
        return None
    if not (outgoing.amount < 0 < incoming.amount):
        return None

    days = abs((incoming.date - outgoing.date).days)
    if days > config.date_window_days:
        return None

    tolerance = config.amount_tolerance(outgoing.amount, incoming.amount)
    amount_gap = abs(abs(outgoing.amount) - abs(incoming.amount))
    if amount_gap > tolerance:
        return None

    score = Decimal("0")
    if config.date_window_days:
        score += Decimal(days) / Decimal(config.date_window_days)
    if tolerance:
        score += amount_gap / tolerance
    return score


def detect_transfer_pairs(
    movements: Iterable[Movement],
    account_ids: Iterable[int],
    config: MatchingConfig,
    rejected: Iterable[tuple[int, int]] = (),
) -> TransferDetection:
    """Pair opposite-signed movements on different accounts as transfers.

    Candidate pairs are accepted first-fit by ascending score, ties broken by
    input order, and every movement is claimed at most once. A movement whose
    best remaining score is shared by several partners is not paired; it is
    reported as ambiguous instead. Unpaired movements mentioning a transfer
    keyword are reported as pending. Pairs the user unlinked before are never
    proposed again.

    Args:
        movements: Movements from every account taking part in the pass
        account_ids: Accounts allowed to hold a transfer leg
        config: Matching tolerances
        rejected: (outgoing ID, incoming ID) pairs that must not be paired

    Returns:
        TransferDetection with pairs, pending and ambiguous movements
    """
    allowed = set(account_ids)
    rejected = set(rejected)
    eligible = [m for m in movements if m.account_id in allowed and is_transfer_eligible(m)]
    order = {m.id: idx for idx, m in enumerate(eligible)}
    outgoing = [m for m in eligible if m.amount < 0]
    incoming = [m for m in eligible if m.amount > 0]

    candidates: list[TransferCandidate] = []
    for out_mov in outgoing:
        for in_mov in incoming:
            if (out_mov.id, in_mov.id) in rejected:
                continue
            score = pair_score(out_mov, in_mov, config)
            if score is not None:
                candidates.append(TransferCandidate(out_mov, in_mov, score))
    candidates.sort(key=lambda c: (c.score, order[c.outgoing.id], order[c.incoming.id]))

    result = TransferDetection()
    claimed: set[int] = set()
    blocked: set[int] = set()

    def tied_partners(movement: Movement, score: Decimal) -> list[int]:
        partners = []
        for c in candidates:
            if c.score != score:
                continue
            if c.outgoing.id == movement.id:
                partner = c.incoming.id
            elif c.incoming.id == movement.id:
                partner = c.outgoing.id
            else:
                continue
            if partner not in claimed and partner not in blocked:
                partners.append(partner)
        return partners

    for candidate in candidates:
        out_id = candidate.outgoing.id
        in_id = candidate.incoming.id
        if {out_id, in_id} & (claimed | blocked):
            continue

        tie = False
        for movement in (candidate.outgoing, candidate.incoming):
            partners = tied_partners(movement, candidate.score)
            if len(partners) > 1:
                blocked.add(movement.id)
                result.ambiguous.append(AmbiguousMatchError(movement.id, partners, "transfer"))
                logger.warning("Ambiguous transfer for movement %s: candidates %s", movement.id, partners)
                tie = True
        if tie:
            continue

        claimed.update((out_id, in_id))
        result.pairs.append(candidate)
        logger.debug("Transfer pair %s -> %s (score %s)", out_id, in_id, candidate.score)

    result.pending = [
        m for m in eligible if m.id not in claimed and has_transfer_keyword(m, config)
    ]
    return result


class TransferService:
    """Service for detecting and managing internal transfers."""

    def __init__(self, ctx: TreasuryContext):
        """Initialize transfer service.

        Args:
            ctx: Treasury context with database and matching configuration
        """
        self.ctx = ctx
        self.db = ctx.db

    def detect_and_link(self, movements: Iterable[Movement]) -> TransferDetection:
        """Detect transfer pairs among movements and persist them.

        Only movements of active accounts take part.

        Args:
            movements: Movements to scan, usually everything within the date
                window of a fresh import across all active accounts

        Returns:
            TransferDetection describing what was linked
        """
        account_ids = [a.id for a in self.ctx.active_accounts()]
        detection = detect_transfer_pairs(
            movements, account_ids, self.ctx.config, rejected=self.db.list_rejected_transfer_pairs()
        )
        for pair in detection.pairs:
            self.db.create_transfer(
                outgoing_movement_id=pair.outgoing.id,
                incoming_movement_id=pair.incoming.id,
                amount=abs(pair.outgoing.amount),
                date=pair.outgoing.date,
                detected=True,
            )
        if detection.pairs:
            logger.info("Linked %d detected transfer(s)", len(detection.pairs))
        return detection

    def create_transfer(
        self, outgoing_movement_id: int, incoming_movement_id: int, note: Optional[str] = None
    ) -> int:
        """Link two movements as a manual transfer.

        Args:
            outgoing_movement_id: Negative leg
            incoming_movement_id: Positive leg
            note: Optional note

        Returns:
            Transfer ID

        Raises:
            NotFoundError: If a movement doesn't exist
            ValidationError: If the legs don't form a valid transfer
            ConflictError: If a leg is already part of a transfer
        """
        outgoing = self.db.get_movement(outgoing_movement_id)
        if outgoing is None:
            raise NotFoundError(movement_not_found(outgoing_movement_id))
        incoming = self.db.get_movement(incoming_movement_id)
        if incoming is None:
            raise NotFoundError(movement_not_found(incoming_movement_id))

        if outgoing.account_id == incoming.account_id:
            raise ValidationError("Transfer legs must belong to different accounts")
        if not (outgoing.amount < 0 < incoming.amount):
            raise ValidationError(
                f"Movement {outgoing.id} must be negative and movement {incoming.id} positive"
            )
        if abs(outgoing.amount) != abs(incoming.amount):
            raise ValidationError(
                f"Transfer amounts differ: {abs(outgoing.amount)} vs {abs(incoming.amount)}"
            )
        days = abs((incoming.date - outgoing.date).days)
        if days > self.ctx.config.date_window_days:
            raise ValidationError(
                f"Transfer legs are {days} days apart "
                f"(window is {self.ctx.config.date_window_days} days)"
            )
        for movement in (outgoing, incoming):
            if movement.origin == MovementOrigin.FORECAST:
                raise ValidationError(f"Movement {movement.id} is a forecast and cannot be a transfer leg")
            if movement.status == MovementStatus.CONCILIADO:
                raise ConflictError(f"Movement {movement.id} is reconciled and cannot become a transfer leg")
            if movement.matched_movement_id is not None:
                raise ConflictError(
                    f"Movement {movement.id} fulfils forecast {movement.matched_movement_id} "
                    "and cannot become a transfer leg"
                )
            if movement.transfer_id is not None:
                raise ConflictError(
                    f"Movement {movement.id} is already part of transfer {movement.transfer_id}"
                )

        return self.db.create_transfer(
            outgoing_movement_id=outgoing.id,
            incoming_movement_id=incoming.id,
            amount=abs(outgoing.amount),
            date=outgoing.date,
            detected=False,
            note=note,
        )

    def unlink(self, transfer_id: int) -> Transfer:
        """Remove a transfer, turning both legs back into plain movements.

        The pair is remembered as rejected, so later detection passes leave
        it alone. Linking it by hand lifts the rejection.

        Args:
            transfer_id: Transfer ID

        Returns:
            The removed transfer

        Raises:
            NotFoundError: If the transfer doesn't exist
        """
        transfer = self.db.get_transfer(transfer_id)
        if transfer is None:
            raise NotFoundError(transfer_not_found(transfer_id))
        self.db.delete_transfer(transfer_id, reject_pair=True)
        logger.info(
            "Unlinked transfer %s (movements %s, %s)",
            transfer_id, transfer.outgoing_movement_id, transfer.incoming_movement_id,
        )
        return transfer

    def get_transfer(self, transfer_id: int) -> Optional[Transfer]:
        return self.db.get_transfer(transfer_id)

    def list_transfers(self, account_id: Optional[int] = None) -> list[Transfer]:
        return self.db.list_transfers(account_id=account_id)
