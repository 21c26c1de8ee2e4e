"""
Ledger Data Model

Users, currencies, accounts and the immutable ledger entries that record
every balance change. Amounts are integers in the smallest currency unit;
the direction of money is encoded by which leg of an entry is populated,
never by sign.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
from enum import Enum


class TransactionKind(Enum):
    """Balance-affecting operation kinds"""
    DEPOSIT = "deposit"      # Money enters an account from outside the ledger
    WITHDRAW = "withdraw"    # Money leaves an account to outside the ledger
    TRANSFER = "transfer"    # Money moves between two ledger accounts


class LegDirection(Enum):
    """Direction of a single-account mutation"""
    CREDIT = "credit"  # Balance increases (deposit)
    DEBIT = "debit"    # Balance decreases (withdrawal)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
    return data


@dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str
    password_hash: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Public representation (never includes the password hash)"""
        data = _serialize(asdict(self))
        del data['password_hash']
        return data


@dataclass(frozen=True)
class Currency:
    id: int
    symbol: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Account:
    """
    Account snapshot as read from the store.

    The balance is a point-in-time copy; the authoritative value only
    lives in the store and is re-checked by every mutation.
    """
    id: int
    user_id: int
    currency_id: int
    balance: int = 0

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError(f"Account {self.id} balance cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LedgerEntry:
    """
    Immutable record of one balance-affecting event

    Deposits have no source leg, withdrawals have no destination leg,
    transfers have both.
    """
    id: int
    from_account_id: Optional[int]
    to_account_id: Optional[int]
    currency_id: int
    amount: int
    created_at: datetime

    def __post_init__(self):
        if self.from_account_id is None and self.to_account_id is None:
            raise ValueError("Ledger entry must have at least one account leg")
        if self.amount <= 0:
            raise ValueError("Ledger entry amount must be positive")

    @property
    def kind(self) -> TransactionKind:
        """Operation kind inferred from the populated legs"""
        if self.from_account_id is None:
            return TransactionKind.DEPOSIT
        if self.to_account_id is None:
            return TransactionKind.WITHDRAW
        return TransactionKind.TRANSFER

    def to_dict(self) -> Dict[str, Any]:
        data = _serialize(asdict(self))
        data['kind'] = self.kind.value
        return data


@dataclass(frozen=True)
class TransactionRequest:
    """A single balance-affecting operation requested by a caller"""
    kind: TransactionKind
    amount: int
    from_account_id: Optional[int] = None
    to_account_id: Optional[int] = None

    @classmethod
    def deposit(cls, account_id: int, amount: int) -> 'TransactionRequest':
        return cls(TransactionKind.DEPOSIT, amount, to_account_id=account_id)

    @classmethod
    def withdraw(cls, account_id: int, amount: int) -> 'TransactionRequest':
        return cls(TransactionKind.WITHDRAW, amount, from_account_id=account_id)

    @classmethod
    def transfer(cls, from_account_id: int, to_account_id: int, amount: int) -> 'TransactionRequest':
        return cls(TransactionKind.TRANSFER, amount,
                   from_account_id=from_account_id, to_account_id=to_account_id)
