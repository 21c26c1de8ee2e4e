"""
Ledger Errors

A single exception type carrying one kind from a closed set. Callers
dispatch on ``error.kind``; messages are for humans only.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Every way a ledger operation can fail"""
    # Transaction engine
    INVALID_AMOUNT = "invalid_amount"          # Amount <= 0
    NO_SUCH_ACCOUNT = "no_such_account"        # Referenced account does not exist
    INVALID_ACCOUNT = "invalid_account"        # Not the owner, or currency mismatch
    NOT_ENOUGH_MONEY = "not_enough_money"      # Source balance below amount
    NO_SUCH_USER = "no_such_user"
    
    # Store failures
    CONFLICT = "conflict"                      # Concurrent contention, nothing applied
    STORE_ERROR = "store_error"                # Unrecoverable, nothing applied
    
    # Directory services
    NO_SUCH_CURRENCY = "no_such_currency"
    USER_ALREADY_EXISTS = "user_already_exists"
    INVALID_EMAIL = "invalid_email"
    INVALID_USER_INFO = "invalid_user_info"
    INVALID_CREDENTIALS = "invalid_credentials"


_DEFAULT_MESSAGES = {
    ErrorKind.INVALID_AMOUNT: "Invalid amount",
    ErrorKind.NO_SUCH_ACCOUNT: "No such account",
    ErrorKind.INVALID_ACCOUNT: "Invalid account",
    ErrorKind.NOT_ENOUGH_MONEY: "Not enough money",
    ErrorKind.NO_SUCH_USER: "No such user",
    ErrorKind.CONFLICT: "Concurrent update conflict",
    ErrorKind.STORE_ERROR: "Internal storage error",
    ErrorKind.NO_SUCH_CURRENCY: "No such currency",
    ErrorKind.USER_ALREADY_EXISTS: "User already exists",
    ErrorKind.INVALID_EMAIL: "Invalid email",
    ErrorKind.INVALID_USER_INFO: "Invalid user info",
    ErrorKind.INVALID_CREDENTIALS: "Invalid credentials",
}


class LedgerError(Exception):
    """Failure of a ledger operation, tagged with its kind"""
    
    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        super().__init__(self.message)
    
    @property
    def retryable(self) -> bool:
        """Only conflicts are safe to retry from scratch"""
        return self.kind == ErrorKind.CONFLICT
    
    def __repr__(self) -> str:
        return f"LedgerError({self.kind.name}, {self.message!r})"
