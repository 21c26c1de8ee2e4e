"""
Test suite for the transaction history reader
"""

import pytest

from bank_ledger.errors import ErrorKind, LedgerError
from bank_ledger.history import HistoryReader, TransactionRecord
from bank_ledger.models import LegDirection, TransactionKind
from bank_ledger.storage import InMemoryStorage
from bank_ledger.transactions import TransactionEngine


class TestHistoryReader:
    """Test transaction listing and enrichment"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.engine = TransactionEngine(self.storage, max_attempts=1)
        self.history = HistoryReader(self.storage)

        self.alice = self.storage.create_user("Alice", "alice@example.com", "hash")
        self.bob = self.storage.create_user("Bob", "bob@example.com", "hash")
        self.usd = self.storage.add_currency("USD")
        self.eur = self.storage.add_currency("EUR")

        self.alice_usd = self.storage.create_account(self.alice.id, self.usd.id)
        self.alice_usd_2 = self.storage.create_account(self.alice.id, self.usd.id)
        self.alice_eur = self.storage.create_account(self.alice.id, self.eur.id)
        self.bob_usd = self.storage.create_account(self.bob.id, self.usd.id)

    def test_kinds_inferred_from_legs(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 100)
        self.engine.withdraw(self.alice.id, self.alice_usd.id, 30)
        self.engine.transfer(self.alice.id, self.alice_usd.id, self.bob_usd.id, 20)

        records = self.history.list_transactions(self.alice.id)

        assert [r.kind for r in records] == [
            TransactionKind.DEPOSIT, TransactionKind.WITHDRAW, TransactionKind.TRANSFER
        ]
        assert [r.amount for r in records] == [100, 30, 20]
        assert records[0].from_account_id is None
        assert records[1].to_account_id is None
        assert records[2].from_account_id == self.alice_usd.id
        assert records[2].to_account_id == self.bob_usd.id

    def test_currency_symbols_resolved(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 10)
        self.engine.deposit(self.alice.id, self.alice_eur.id, 20)

        records = self.history.list_transactions(self.alice.id)

        assert [r.currency_symbol for r in records] == ["USD", "EUR"]
        assert records[1].to_dict()["currency"] == "EUR"
        assert records[1].to_dict()["kind"] == "deposit"

    def test_unknown_user(self):
        with pytest.raises(LedgerError) as exc_info:
            self.history.list_transactions(999)
        assert exc_info.value.kind == ErrorKind.NO_SUCH_USER

    def test_deleted_user(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 10)
        self.storage.delete_user(self.alice.id)

        with pytest.raises(LedgerError) as exc_info:
            self.history.list_transactions(self.alice.id)
        assert exc_info.value.kind == ErrorKind.NO_SUCH_USER

    def test_user_without_accounts(self):
        carol = self.storage.create_user("Carol", "carol@example.com", "hash")

        assert self.history.list_transactions(carol.id) == []

    def test_user_without_entries(self):
        assert self.history.list_transactions(self.alice.id) == []

    def test_incoming_transfer_visible_to_recipient(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 50)
        self.engine.transfer(self.alice.id, self.alice_usd.id, self.bob_usd.id, 50)

        records = self.history.list_transactions(self.bob.id)

        assert len(records) == 1
        assert records[0].kind == TransactionKind.TRANSFER
        assert records[0].to_account_id == self.bob_usd.id

    def test_transfer_between_own_accounts_listed_once(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 50)
        self.engine.transfer(self.alice.id, self.alice_usd.id, self.alice_usd_2.id, 10)

        records = self.history.list_transactions(self.alice.id)

        assert len(records) == 2
        assert records[1].kind == TransactionKind.TRANSFER

    def test_other_users_entries_hidden(self):
        self.engine.deposit(self.bob.id, self.bob_usd.id, 10)
        self.engine.deposit(self.alice.id, self.alice_usd.id, 20)

        records = self.history.list_transactions(self.alice.id)

        assert len(records) == 1
        assert records[0].amount == 20

    def test_deleted_account_entries_dropped(self):
        """Entries are found through the user's current accounts"""
        self.engine.deposit(self.alice.id, self.alice_eur.id, 10)
        self.storage.delete_account(self.alice_eur.id)

        assert self.history.list_transactions(self.alice.id) == []

    def test_history_matches_balance(self):
        self.engine.deposit(self.alice.id, self.alice_usd.id, 100)
        self.engine.transfer(self.alice.id, self.alice_usd.id, self.bob_usd.id, 40)
        self.engine.withdraw(self.alice.id, self.alice_usd.id, 25)

        balance = 0
        for record in self.history.list_account_transactions(self.alice.id, self.alice_usd.id):
            if record.to_account_id == self.alice_usd.id:
                balance += record.amount
            else:
                balance -= record.amount

        assert balance == self.storage.get_account(self.alice_usd.id).balance == 35


class TestAccountHistory:
    """Test per-account listing"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.history = HistoryReader(self.storage)
        self.alice = self.storage.create_user("Alice", "alice@example.com", "hash")
        self.bob = self.storage.create_user("Bob", "bob@example.com", "hash")
        usd = self.storage.add_currency("USD")
        self.alice_usd = self.storage.create_account(self.alice.id, usd.id)
        self.alice_usd_2 = self.storage.create_account(self.alice.id, usd.id)

        self.storage.apply_single_leg_mutation(self.alice_usd.id, 5, LegDirection.CREDIT)
        self.storage.apply_single_leg_mutation(self.alice_usd_2.id, 7, LegDirection.CREDIT)

    def test_only_that_account(self):
        records = self.history.list_account_transactions(self.alice.id, self.alice_usd.id)

        assert len(records) == 1
        assert isinstance(records[0], TransactionRecord)
        assert records[0].amount == 5

    def test_missing_account(self):
        with pytest.raises(LedgerError) as exc_info:
            self.history.list_account_transactions(self.alice.id, 999)
        assert exc_info.value.kind == ErrorKind.NO_SUCH_ACCOUNT

    def test_foreign_account(self):
        with pytest.raises(LedgerError) as exc_info:
            self.history.list_account_transactions(self.bob.id, self.alice_usd.id)
        assert exc_info.value.kind == ErrorKind.INVALID_ACCOUNT
