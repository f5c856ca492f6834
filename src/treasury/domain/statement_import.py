"""Statement import orchestration."""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional, Union

from treasury.domain.account import AccountService
from treasury.domain.categorization import infer_category
from treasury.domain.context import TreasuryContext
from treasury.domain.deduplication import partition_candidates
from treasury.domain.entities import (
    ImportResult,
    MovementDraft,
    MovementOrigin,
    MovementStatus,
    StatementFormat,
)
from treasury.domain.errors import (
    DuplicateBatchError,
    NotFoundError,
    ValidationError,
    account_inactive,
    account_not_found,
    duplicate_batch,
)
from treasury.domain.movement import MovementService
from treasury.domain.statement_parser import StatementParser
from treasury.domain.status import initial_status
from treasury.domain.transfers import TransferService

logger = logging.getLogger(__name__)


class StatementImportService:
    """Service for importing bank statements into an account."""

    def __init__(self, ctx: TreasuryContext):
        """Initialize statement import service.

        Args:
            ctx: Treasury context with database, matching configuration,
                clock and import lock
        """
        self.ctx = ctx
        self.db = ctx.db
        self.accounts = AccountService(ctx.db)
        self.movements = MovementService(ctx)
        self.transfers = TransferService(ctx)

    def import_statement(
        self,
        path: Union[str, Path],
        account_id: int,
        fmt: Optional[StatementFormat] = None,
        column_map: Optional[dict[str, str]] = None,
        strict: bool = False,
    ) -> ImportResult:
        """Import a bank statement file into an account.

        Runs parse, deduplication, persistence, cross-account transfer
        detection, classification and balance recomputation in that order.
        Nothing is written when the account is invalid, when the file can't
        be parsed, or when too many rows fail and the columns need to be
        mapped by hand.

        Args:
            path: Statement file
            account_id: Target account ID
            fmt: Statement format, detected when None
            column_map: Explicit field to header mapping for tabular files
            strict: Fail instead of warning when the file looks already imported

        Returns:
            ImportResult describing what happened

        Raises:
            NotFoundError: If account doesn't exist
            ValidationError: If account is inactive
            ParseError: If the file is unreadable or its layout unknown
            DuplicateBatchError: If strict and the batch was already imported
        """
        path = Path(path)
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        if not account.is_active:
            raise ValidationError(account_inactive(account_id))

        parser = StatementParser(column_map=column_map)
        outcome = parser.parse(path, fmt)

        result = ImportResult(
            total_lines=outcome.total_rows,
            errors=[str(e) for e in outcome.errors],
            error_rate=outcome.error_rate,
        )
        if outcome.needs_manual_mapping(self.ctx.config.manual_mapping_threshold):
            result.needs_manual_mapping = True
            logger.warning(
                "%s: %d of %d rows failed; manual column mapping needed",
                path.name, len(outcome.errors), outcome.total_rows,
            )
            return result
        if outcome.total_rows == 0:
            result.warnings.append(f"No movements found in '{path.name}'")
            return result

        previous = self.db.find_import_batch(path.name, account_id, outcome.total_rows)
        if previous is not None:
            message = duplicate_batch(path.name, account_id, outcome.total_rows, previous.imported_at)
            if strict:
                raise DuplicateBatchError(message)
            logger.warning("%s", message)
            result.warnings.append(message)

        with self.ctx.import_lock:
            existing = self.db.list_movements(account_id=account_id)
            dedup = partition_candidates(account_id, existing, outcome.movements)
            result.duplicates = len(dedup.duplicates)

            status = initial_status(MovementOrigin.IMPORT)
            drafts = [
                MovementDraft(
                    account_id=account_id,
                    date=parsed.date,
                    value_date=parsed.value_date,
                    amount=parsed.amount,
                    description=parsed.description,
                    counterparty=parsed.counterparty,
                    reference=parsed.reference,
                    origin=MovementOrigin.IMPORT,
                    status=status,
                    category=infer_category(parsed.description, parsed.counterparty),
                )
                for parsed in dedup.to_import
            ]
            batch_id, new_ids = self.db.save_import_batch(
                filename=path.name,
                account_id=account_id,
                total_rows=outcome.total_rows,
                skipped_rows=len(dedup.duplicates),
                error_rows=len(outcome.errors),
                drafts=drafts,
            )
            result.batch_id = batch_id
            result.imported = len(new_ids)
            logger.info(
                "Batch %s: %d imported, %d duplicates, %d errors",
                batch_id, result.imported, result.duplicates, len(outcome.errors),
            )

            affected = {account_id}
            new_id_set = set(new_ids)
            if drafts:
                window = timedelta(days=self.ctx.config.date_window_days)
                active_ids = [a.id for a in self.ctx.active_accounts()]
                nearby = self.db.list_movements(
                    account_ids=active_ids,
                    start_date=min(d.date for d in drafts) - window,
                    end_date=max(d.date for d in drafts) + window,
                )
                detection = self.transfers.detect_and_link(nearby)
                result.detected_transfers = len(detection.pairs)
                result.pending_transfers = sum(1 for m in detection.pending if m.id in new_id_set)
                result.ambiguous_matches.extend(str(a) for a in detection.ambiguous)
                for pair in detection.pairs:
                    affected.update((pair.outgoing.account_id, pair.incoming.account_id))

            classification = self.movements.run_classification(affected)
            result.ambiguous_matches.extend(str(a) for a in classification.ambiguous)

            for affected_id in sorted(affected):
                self.accounts.recompute_balance(affected_id)

        imported = [m for m in self.db.list_movements(account_id=account_id) if m.id in new_id_set]
        result.confirmed_movements = sum(1 for m in imported if m.status == MovementStatus.CONFIRMADO)
        result.unplanned_movements = result.imported - result.confirmed_movements
        return result

    def list_batches(self, account_id: Optional[int] = None):
        return self.db.list_import_batches(account_id=account_id)
