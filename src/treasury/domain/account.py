"""Account domain service."""

import logging
from decimal import Decimal
from typing import Optional

from treasury.database.base import Database
from treasury.domain.entities import Account as AccountEntity, AccountScope
from treasury.domain.errors import ConflictError, NotFoundError, ValidationError, account_not_found
from treasury.domain.projection import posted_balance
from treasury.utils.amount_parser import to_money
from treasury.utils.iban import is_valid_iban, normalize_iban

logger = logging.getLogger(__name__)


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def _check_alias(self, alias: str, account_id: Optional[int] = None) -> str:
        alias = alias.strip()
        if not alias:
            raise ValidationError("Account alias must not be empty")
        for acc in self.db.list_accounts(include_inactive=True):
            if acc.id != account_id and acc.alias.casefold() == alias.casefold():
                raise ConflictError(f"Account with alias '{alias}' already exists")
        return alias

    @staticmethod
    def _clean_iban(iban: Optional[str]) -> Optional[str]:
        if iban is None or not iban.strip():
            return None
        normalized = normalize_iban(iban)
        if normalized is None:
            return None
        # Anything that looks like an IBAN must carry a valid checksum; other
        # account identifiers are stored as given.
        if normalized[:2].isalpha() and normalized[2:4].isdigit() and len(normalized) >= 15:
            if not is_valid_iban(normalized):
                raise ValidationError(f"Invalid IBAN: {iban}")
        return normalized

    def create_account(
        self,
        alias: str,
        bank_name: str,
        iban: Optional[str] = None,
        opening_balance: Decimal = Decimal("0"),
        currency: str = "EUR",
        scope: AccountScope = AccountScope.PERSONAL,
        minimum_balance: Decimal = Decimal("200"),
    ) -> int:
        """Create a new account.

        Args:
            alias: Unique account alias
            bank_name: Bank name
            iban: Optional IBAN or other account identifier
            opening_balance: Balance before the first movement
            currency: ISO currency code
            scope: Ownership scope
            minimum_balance: Floor used by the risk evaluator

        Returns:
            Account ID

        Raises:
            ConflictError: If the alias already exists
            ValidationError: If a field is invalid
        """
        alias = self._check_alias(alias)
        if minimum_balance < 0:
            raise ValidationError("Minimum balance must not be negative")
        currency = currency.strip().upper()
        if len(currency) != 3:
            raise ValidationError(f"Invalid currency code: {currency}")

        account_id = self.db.create_account(
            alias=alias,
            bank_name=bank_name.strip(),
            iban=self._clean_iban(iban),
            opening_balance=to_money(opening_balance),
            currency=currency,
            scope=AccountScope(scope),
            minimum_balance=to_money(minimum_balance),
        )
        logger.info("Created account %s (%s)", account_id, alias)
        return account_id

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def require_account(self, account_id: int) -> AccountEntity:
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def list_accounts(self, include_inactive: bool = True) -> list[AccountEntity]:
        """List accounts.

        Args:
            include_inactive: Whether to include deactivated accounts

        Returns:
            List of account entities
        """
        return self.db.list_accounts(include_inactive=include_inactive)

    def update_account(
        self,
        account_id: int,
        alias: Optional[str] = None,
        bank_name: Optional[str] = None,
        iban: Optional[str] = None,
        opening_balance: Optional[Decimal] = None,
        minimum_balance: Optional[Decimal] = None,
        scope: Optional[AccountScope] = None,
    ) -> None:
        """Update account configuration.

        Changing the opening balance also recomputes the cached balance.

        Raises:
            NotFoundError: If account not found
            ConflictError: If the new alias already exists
        """
        self.require_account(account_id)
        if alias is not None:
            alias = self._check_alias(alias, account_id=account_id)
        if minimum_balance is not None and minimum_balance < 0:
            raise ValidationError("Minimum balance must not be negative")

        self.db.update_account(
            account_id=account_id,
            alias=alias,
            bank_name=bank_name,
            iban=self._clean_iban(iban),
            opening_balance=to_money(opening_balance) if opening_balance is not None else None,
            minimum_balance=to_money(minimum_balance) if minimum_balance is not None else None,
            scope=AccountScope(scope) if scope is not None else None,
        )
        if opening_balance is not None:
            self.recompute_balance(account_id)

    def activate_account(self, account_id: int) -> None:
        self.require_account(account_id)
        self.db.update_account(account_id=account_id, is_active=True)

    def deactivate_account(self, account_id: int) -> None:
        """Deactivate an account.

        Inactive accounts keep their movements but are left out of imports,
        transfer detection and projections.
        """
        self.require_account(account_id)
        self.db.update_account(account_id=account_id, is_active=False)

    def recompute_balance(self, account_id: int) -> Decimal:
        """Recompute and store the cached balance from posted movements.

        Returns:
            The new balance
        """
        account = self.require_account(account_id)
        movements = self.db.list_movements(account_id=account_id)
        balance = posted_balance(account, movements)
        if balance != account.balance:
            logger.debug("Account %s balance %s -> %s", account_id, account.balance, balance)
        self.db.update_account_balance(account_id, balance)
        return balance
