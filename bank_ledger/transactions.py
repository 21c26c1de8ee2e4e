"""
Transaction Processing Module

Validates and applies deposits, withdrawals and transfers. Validation reads
the current account state and rejects bad requests without side effects;
the balance change itself is delegated to one atomic store mutation that
re-checks the balance condition under the store's own lock, so a stale read
here can never overdraw an account.
"""

from typing import Callable, Optional
import time

from .config import get_config
from .errors import ErrorKind, LedgerError
from .logging_config import get_logger, log_action
from .models import Account, LedgerEntry, LegDirection, TransactionKind, TransactionRequest
from .retry import retry_on_conflict
from .storage import MAX_BALANCE, LedgerStorage


class TransactionEngine:
    """
    Processes balance-affecting operations for a calling user.

    The engine keeps no balance state between calls. A request that fails
    with a conflict is re-validated and re-applied from scratch, up to
    ``max_attempts`` times in total.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        config = get_config()
        self.storage = storage
        self.max_attempts = max_attempts if max_attempts is not None else config.max_conflict_attempts
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else config.retry_base_delay
        self.retry_max_delay = retry_max_delay if retry_max_delay is not None else config.retry_max_delay
        self._sleep = sleep
        self.logger = get_logger("bank_ledger.transactions")

    def process_transaction(self, caller_user_id: int, request: TransactionRequest) -> LedgerEntry:
        """
        Validate and apply one operation on behalf of ``caller_user_id``.

        Args:
            caller_user_id: Authenticated user issuing the request
            request: Operation kind, amount and account legs

        Returns:
            The ledger entry appended for the operation

        Raises:
            LedgerError: INVALID_AMOUNT, NO_SUCH_ACCOUNT, INVALID_ACCOUNT or
                NOT_ENOUGH_MONEY for rejected requests; CONFLICT when retries
                are exhausted; STORE_ERROR for storage failures. Balances are
                unchanged whenever an error is raised.
        """
        try:
            entry = retry_on_conflict(
                lambda: self._process_once(caller_user_id, request),
                max_attempts=self.max_attempts,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
                sleep=self._sleep
            )
        except LedgerError as e:
            self._log_failure(caller_user_id, request, e)
            raise

        log_action(
            self.logger, "info", f"Transaction processed: {request.kind.value}",
            user_id=caller_user_id, action="process_transaction",
            resource=f"ledger_entry:{entry.id}",
            extra={
                "kind": request.kind.value,
                "amount": request.amount,
                "from_account": entry.from_account_id,
                "to_account": entry.to_account_id,
                "currency_id": entry.currency_id
            }
        )
        return entry

    def deposit(self, caller_user_id: int, account_id: int, amount: int) -> LedgerEntry:
        """Convenience method for deposits"""
        return self.process_transaction(caller_user_id, TransactionRequest.deposit(account_id, amount))

    def withdraw(self, caller_user_id: int, account_id: int, amount: int) -> LedgerEntry:
        """Convenience method for withdrawals"""
        return self.process_transaction(caller_user_id, TransactionRequest.withdraw(account_id, amount))

    def transfer(self, caller_user_id: int, from_account_id: int, to_account_id: int,
                 amount: int) -> LedgerEntry:
        """Convenience method for transfers between two ledger accounts"""
        return self.process_transaction(
            caller_user_id, TransactionRequest.transfer(from_account_id, to_account_id, amount)
        )

    def _process_once(self, caller_user_id: int, request: TransactionRequest) -> LedgerEntry:
        amount = request.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise LedgerError(ErrorKind.INVALID_AMOUNT, f"Amount must be a positive integer, got {amount!r}")
        if amount > MAX_BALANCE:
            raise LedgerError(ErrorKind.INVALID_AMOUNT, f"Amount exceeds the maximum balance of {MAX_BALANCE}")

        if request.kind == TransactionKind.DEPOSIT:
            return self._process_deposit(caller_user_id, request)
        if request.kind == TransactionKind.WITHDRAW:
            return self._process_withdraw(caller_user_id, request)
        if request.kind == TransactionKind.TRANSFER:
            return self._process_transfer(caller_user_id, request)
        raise ValueError(f"Unsupported transaction kind: {request.kind!r}")

    def _process_deposit(self, caller_user_id: int, request: TransactionRequest) -> LedgerEntry:
        destination = self._load_account(request.to_account_id, "destination")
        self._check_owner(destination, caller_user_id)

        return self.storage.apply_single_leg_mutation(
            destination.id, request.amount, LegDirection.CREDIT
        )

    def _process_withdraw(self, caller_user_id: int, request: TransactionRequest) -> LedgerEntry:
        source = self._load_account(request.from_account_id, "source")
        self._check_owner(source, caller_user_id)
        self._check_funds(source, request.amount)

        return self.storage.apply_single_leg_mutation(
            source.id, request.amount, LegDirection.DEBIT
        )

    def _process_transfer(self, caller_user_id: int, request: TransactionRequest) -> LedgerEntry:
        source = self._load_account(request.from_account_id, "source")
        destination = self._load_account(request.to_account_id, "destination")
        self._check_owner(source, caller_user_id)

        if source.id == destination.id:
            raise LedgerError(ErrorKind.INVALID_ACCOUNT, "Cannot transfer to the same account")
        if source.currency_id != destination.currency_id:
            raise LedgerError(
                ErrorKind.INVALID_ACCOUNT,
                f"Cannot transfer between accounts with different currencies: "
                f"{source.currency_id} -> {destination.currency_id}"
            )
        self._check_funds(source, request.amount)

        return self.storage.apply_transfer_mutation(source.id, destination.id, request.amount)

    def _load_account(self, account_id: Optional[int], leg: str) -> Account:
        if account_id is None:
            raise LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Request has no {leg} account")
        account = self.storage.get_account(account_id)
        if account is None:
            raise LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Account {account_id} does not exist")
        return account

    @staticmethod
    def _check_owner(account: Account, caller_user_id: int) -> None:
        if account.user_id != caller_user_id:
            raise LedgerError(ErrorKind.INVALID_ACCOUNT, f"Account {account.id} is not owned by the caller")

    @staticmethod
    def _check_funds(account: Account, amount: int) -> None:
        # Early rejection only; the store repeats this check atomically
        if account.balance < amount:
            raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY, f"Account {account.id} balance is below {amount}")

    def _log_failure(self, caller_user_id: int, request: TransactionRequest, error: LedgerError) -> None:
        if error.kind == ErrorKind.STORE_ERROR:
            level = "error"
        else:
            level = "warning"
        log_action(
            self.logger, level, f"Transaction rejected: {error.message}",
            user_id=caller_user_id, action="process_transaction",
            extra={
                "kind": request.kind.value,
                "amount": request.amount,
                "from_account": request.from_account_id,
                "to_account": request.to_account_id,
                "error": error.kind.value
            }
        )
