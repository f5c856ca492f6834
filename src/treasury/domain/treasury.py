"""Treasury overview service: projections and risk across accounts."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from treasury.database.base import Database
from treasury.domain.entities import Account, ProjectionResult, RiskLevel
from treasury.domain.errors import NotFoundError, account_not_found
from treasury.domain.projection import project_balance


@dataclass(frozen=True)
class AccountRisk:
    """One row of the risk overview."""

    account: Account
    risk_level: RiskLevel
    min_balance: Decimal
    min_balance_date: date
    end_balance: Decimal


class TreasuryService:
    """Service for projecting balances. Results are computed on demand."""

    def __init__(self, db: Database):
        """Initialize treasury service.

        Args:
            db: Database instance
        """
        self.db = db

    def project_account(self, account_id: int, start: date, end: date) -> ProjectionResult:
        """Project one account over [start, end].

        Raises:
            NotFoundError: If account doesn't exist
            ValidationError: If start is after end
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        movements = self.db.list_movements(account_id=account_id)
        return project_balance(account, movements, start, end)

    def project_all(
        self, start: date, end: date, include_inactive: bool = False
    ) -> list[tuple[Account, ProjectionResult]]:
        """Project every account, active ones only unless asked otherwise."""
        results = []
        for account in self.db.list_accounts(include_inactive=include_inactive):
            movements = self.db.list_movements(account_id=account.id)
            results.append((account, project_balance(account, movements, start, end)))
        return results

    def risk_overview(self, start: date, end: date) -> list[AccountRisk]:
        """Risk level of every active account, riskiest first."""
        severity = {RiskLevel.ROJO: 0, RiskLevel.AMBAR: 1, RiskLevel.VERDE: 2}
        rows = [
            AccountRisk(
                account=account,
                risk_level=projection.risk_level,
                min_balance=projection.min_balance,
                min_balance_date=projection.min_balance_date,
                end_balance=projection.end_balance,
            )
            for account, projection in self.project_all(start, end)
        ]
        return sorted(rows, key=lambda r: (severity[r.risk_level], r.min_balance, r.account.alias))
