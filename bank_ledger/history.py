"""
Transaction History Module

Rebuilds a user-facing transaction list from raw ledger entries.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .errors import ErrorKind, LedgerError
from .models import LedgerEntry, TransactionKind
from .storage import LedgerStorage


@dataclass(frozen=True)
class TransactionRecord:
    """A ledger entry enriched for display"""
    kind: TransactionKind
    from_account_id: Optional[int]
    to_account_id: Optional[int]
    currency_symbol: str
    amount: int
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "currency": self.currency_symbol,
            "amount": self.amount,
            "created_at": self.created_at.isoformat()
        }


class HistoryReader:
    """Read-only view over the ledger for one user's accounts"""

    def __init__(self, storage: LedgerStorage):
        self.storage = storage

    def list_transactions(self, user_id: int) -> List[TransactionRecord]:
        """
        List every entry touching any account owned by the user, oldest first.

        An entry between two of the user's own accounts is listed once. Users
        without accounts or entries get an empty list.

        Raises:
            LedgerError: NO_SUCH_USER if the user does not exist
        """
        if not self.storage.user_exists(user_id):
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")

        account_ids = [account.id for account in self.storage.list_user_accounts(user_id)]
        if not account_ids:
            return []
        return self._enrich(self.storage.list_ledger_entries(account_ids))

    def list_account_transactions(self, user_id: int, account_id: int) -> List[TransactionRecord]:
        """
        List entries for a single account owned by the user.

        Raises:
            LedgerError: NO_SUCH_ACCOUNT or INVALID_ACCOUNT (not the owner)
        """
        account = self.storage.get_account(account_id)
        if account is None:
            raise LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Account {account_id} does not exist")
        if account.user_id != user_id:
            raise LedgerError(ErrorKind.INVALID_ACCOUNT, f"Account {account_id} is not owned by the caller")
        return self._enrich(self.storage.list_ledger_entries([account_id]))

    def _enrich(self, entries: Iterable[LedgerEntry]) -> List[TransactionRecord]:
        symbols: Dict[int, str] = {}
        records = []
        seen = set()
        for entry in sorted(entries, key=lambda e: (e.created_at, e.id)):
            if entry.id in seen:
                continue
            seen.add(entry.id)

            if entry.currency_id not in symbols:
                symbols[entry.currency_id] = self.storage.resolve_currency_symbol(entry.currency_id)

            records.append(TransactionRecord(
                kind=entry.kind,
                from_account_id=entry.from_account_id,
                to_account_id=entry.to_account_id,
                currency_symbol=symbols[entry.currency_id],
                amount=entry.amount,
                created_at=entry.created_at
            ))
        return records
