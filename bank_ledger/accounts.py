"""
Account Management Module

Opens, looks up and closes accounts on behalf of their owners. Balances
are read-only here; only the transaction engine changes them.
"""

from typing import List

from .errors import ErrorKind, LedgerError
from .logging_config import get_logger, log_action
from .models import Account
from .storage import LedgerStorage


class AccountManager:
    """Owner-scoped account operations"""

    def __init__(self, storage: LedgerStorage):
        self.storage = storage
        self.logger = get_logger("bank_ledger.accounts")

    def create_account(self, user_id: int, currency_symbol: str) -> Account:
        """
        Open a zero-balance account in the given currency.

        Raises:
            LedgerError: NO_SUCH_USER, NO_SUCH_CURRENCY
        """
        if not self.storage.user_exists(user_id):
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")

        currency = self.storage.get_currency_by_symbol(currency_symbol.strip().upper())
        if currency is None:
            raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_symbol} is not supported")

        account = self.storage.create_account(user_id, currency.id)

        log_action(
            self.logger, "info", f"Account created: {currency.symbol}",
            user_id=user_id, action="create_account", resource=f"account:{account.id}",
            extra={"currency": currency.symbol}
        )
        return account

    def get_account(self, user_id: int, account_id: int) -> Account:
        """
        Get an account owned by the user.

        Raises:
            LedgerError: NO_SUCH_ACCOUNT, INVALID_ACCOUNT
        """
        account = self.storage.get_account(account_id)
        if account is None:
            raise LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Account {account_id} does not exist")
        if account.user_id != user_id:
            raise LedgerError(ErrorKind.INVALID_ACCOUNT, f"Account {account_id} is not owned by the caller")
        return account

    def list_accounts(self, user_id: int) -> List[Account]:
        """All accounts owned by the user"""
        if not self.storage.user_exists(user_id):
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")
        return self.storage.list_user_accounts(user_id)

    def delete_account(self, user_id: int, account_id: int) -> None:
        """
        Close an account owned by the user.

        Ledger entries referencing the account are kept. Later operations
        against it fail with NO_SUCH_ACCOUNT.
        """
        self.get_account(user_id, account_id)
        if not self.storage.delete_account(account_id):
            raise LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Account {account_id} does not exist")

        log_action(
            self.logger, "info", "Account deleted",
            user_id=user_id, action="delete_account", resource=f"account:{account_id}"
        )

    def currency_symbol(self, account: Account) -> str:
        return self.storage.resolve_currency_symbol(account.currency_id)
