"""Utility for resolving account aliases, IDs and IBANs to IDs."""

from treasury.domain.account import AccountService
from treasury.utils.iban import normalize_iban


def resolve_account(account_service: AccountService, account: str | int) -> int:
    """Resolve account alias, ID or IBAN to account ID.

    Args:
        account_service: AccountService instance
        account: Account alias (str), ID (int or string representation of int)
            or IBAN

    Returns:
        Account ID

    Raises:
        ValueError: If account is not found
    """
    if isinstance(account, int):
        if account_service.get_account(account) is None:
            raise ValueError(f"Account ID {account} not found")
        return account

    # Try to parse as integer (handles string IDs like "1")
    try:
        account_id = int(account)
    except (ValueError, TypeError):
        account_id = None
    if account_id is not None:
        if account_service.get_account(account_id) is None:
            raise ValueError(f"Account ID {account_id} not found")
        return account_id

    accounts = account_service.list_accounts(include_inactive=True)
    for acc in accounts:
        if acc.alias == account:
            return acc.id

    iban = normalize_iban(account)
    for acc in accounts:
        if acc.iban and acc.iban == iban:
            return acc.id

    raise ValueError(f"Account '{account}' not found")
