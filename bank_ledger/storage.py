"""
Storage Backend Module

Provides the account directory and ledger store interfaces consumed by the
transaction engine, with in-memory (testing), SQLite and PostgreSQL
implementations. Balances are integers in the smallest currency unit.

Every mutation method on LedgerStore is a single atomic unit: the balance
condition is re-checked against the stored row, the balance update(s) and
the ledger entry append commit together, or nothing is applied.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Optional, Union
from datetime import datetime
from dataclasses import replace
from pathlib import Path
from contextlib import contextmanager
import itertools
import sqlite3
import threading

from .errors import ErrorKind, LedgerError
from .models import Account, Currency, LedgerEntry, LegDirection, User, utcnow


# Largest balance every backend stores exactly (signed 64-bit column)
MAX_BALANCE = 2 ** 63 - 1


class AccountDirectory(ABC):
    """Users, currencies and account metadata"""

    @abstractmethod
    def create_user(self, name: str, email: str, password_hash: str) -> User:
        """Create a user; raises USER_ALREADY_EXISTS for a taken email"""
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    def user_exists(self, user_id: int) -> bool:
        return self.get_user(user_id) is not None

    @abstractmethod
    def update_user(self, user_id: int, name: str, email: str) -> Optional[User]:
        """Replace name and email; None if the user does not exist, USER_ALREADY_EXISTS for a taken email"""
        pass

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """Remove a user together with their accounts; ledger entries are kept"""
        pass

    @abstractmethod
    def add_currency(self, symbol: str) -> Currency:
        """Register a currency symbol, returning the existing one if present"""
        pass

    @abstractmethod
    def get_currency_by_symbol(self, symbol: str) -> Optional[Currency]:
        pass

    @abstractmethod
    def list_currencies(self) -> List[Currency]:
        pass

    @abstractmethod
    def resolve_currency_symbol(self, currency_id: int) -> str:
        """Symbol for a currency id; raises NO_SUCH_CURRENCY"""
        pass

    @abstractmethod
    def create_account(self, user_id: int, currency_id: int) -> Account:
        """Open an account with a zero balance"""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        pass

    def account_exists(self, account_id: int) -> bool:
        return self.get_account(account_id) is not None

    @abstractmethod
    def list_user_accounts(self, user_id: int) -> List[Account]:
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> bool:
        """Remove an account; its ledger entries are kept"""
        pass


class LedgerStore(ABC):
    """Balances and the append-only ledger"""

    @abstractmethod
    def apply_single_leg_mutation(self, account_id: int, amount: int,
                                  direction: LegDirection) -> LedgerEntry:
        """
        Atomically credit or debit one account and append the entry.

        A debit only applies if the stored balance is at least ``amount``; a
        credit only applies if the new balance stays within ``MAX_BALANCE``.

        Raises:
            LedgerError: NOT_ENOUGH_MONEY, INVALID_AMOUNT, NO_SUCH_ACCOUNT,
                CONFLICT or STORE_ERROR. Nothing is applied in any of these cases.
        """
        pass

    @abstractmethod
    def apply_transfer_mutation(self, from_account_id: int, to_account_id: int,
                                amount: int) -> LedgerEntry:
        """
        Atomically move ``amount`` between two accounts and append one entry.

        Both rows are locked in ascending id order. The source balance
        condition, the destination ceiling and the currency match are
        re-checked under the lock.

        Raises:
            LedgerError: NOT_ENOUGH_MONEY, INVALID_AMOUNT, NO_SUCH_ACCOUNT, INVALID_ACCOUNT,
                CONFLICT or STORE_ERROR. Nothing is applied in any of these cases.
        """
        pass

    @abstractmethod
    def list_ledger_entries(self, account_ids: Iterable[int]) -> List[LedgerEntry]:
        """Entries with either leg in ``account_ids``, oldest first"""
        pass

    def close(self) -> None:
        """Release backend resources (default no-op)"""
        pass


class LedgerStorage(AccountDirectory, LedgerStore):
    """A backend serving both the directory and the ledger"""


def _check_mutation_amount(amount: int) -> None:
    if amount <= 0:
        raise LedgerError(ErrorKind.INVALID_AMOUNT, f"Mutation amount must be positive, got {amount}")
    if amount > MAX_BALANCE:
        raise LedgerError(ErrorKind.INVALID_AMOUNT, f"Mutation amount exceeds {MAX_BALANCE}")


def _balance_overflow(account_id: int, amount: int) -> LedgerError:
    return LedgerError(
        ErrorKind.INVALID_AMOUNT,
        f"Crediting {amount} would push account {account_id} above the maximum balance"
    )


def _check_transfer_accounts(from_account_id: int, to_account_id: int) -> None:
    if from_account_id == to_account_id:
        raise LedgerError(ErrorKind.INVALID_ACCOUNT, "Cannot transfer to the same account")


def _no_such_account(account_id: int) -> LedgerError:
    return LedgerError(ErrorKind.NO_SUCH_ACCOUNT, f"Account {account_id} does not exist")


def _as_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _user_from_row(row) -> User:
    return User(
        id=row['id'],
        name=row['name'],
        email=row['email'],
        password_hash=row['password'],
        created_at=_as_datetime(row['created_at'])
    )


def _account_from_row(row) -> Account:
    return Account(
        id=row['id'],
        user_id=row['user_id'],
        currency_id=row['currency_id'],
        balance=row['balance']
    )


def _entry_from_row(row) -> LedgerEntry:
    return LedgerEntry(
        id=row['id'],
        from_account_id=row['from_account_id'],
        to_account_id=row['to_account_id'],
        currency_id=row['currency_id'],
        amount=row['amount'],
        created_at=_as_datetime(row['created_at'])
    )


class InMemoryStorage(LedgerStorage):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._currencies: Dict[int, Currency] = {}
        self._accounts: Dict[int, Account] = {}
        self._entries: List[LedgerEntry] = []
        self._user_ids = itertools.count(1)
        self._currency_ids = itertools.count(1)
        self._account_ids = itertools.count(1)
        self._entry_ids = itertools.count(1)

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        with self._lock:
            if self.get_user_by_email(email):
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS, f"User with email {email} already exists")
            user = User(
                id=next(self._user_ids),
                name=name,
                email=email,
                password_hash=password_hash,
                created_at=utcnow()
            )
            self._users[user.id] = user
            return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user
            return None

    def update_user(self, user_id: int, name: str, email: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            owner = self.get_user_by_email(email)
            if owner is not None and owner.id != user_id:
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS, f"User with email {email} already exists")
            user = replace(user, name=name, email=email)
            self._users[user_id] = user
            return user

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            for account_id in [a.id for a in self._accounts.values() if a.user_id == user_id]:
                del self._accounts[account_id]
            return True

    def add_currency(self, symbol: str) -> Currency:
        with self._lock:
            existing = self.get_currency_by_symbol(symbol)
            if existing:
                return existing
            currency = Currency(id=next(self._currency_ids), symbol=symbol)
            self._currencies[currency.id] = currency
            return currency

    def get_currency_by_symbol(self, symbol: str) -> Optional[Currency]:
        with self._lock:
            for currency in self._currencies.values():
                if currency.symbol == symbol:
                    return currency
            return None

    def list_currencies(self) -> List[Currency]:
        with self._lock:
            return sorted(self._currencies.values(), key=lambda c: c.id)

    def resolve_currency_symbol(self, currency_id: int) -> str:
        with self._lock:
            currency = self._currencies.get(currency_id)
            if currency is None:
                raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
            return currency.symbol

    def create_account(self, user_id: int, currency_id: int) -> Account:
        with self._lock:
            if user_id not in self._users:
                raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")
            if currency_id not in self._currencies:
                raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
            account = Account(id=next(self._account_ids), user_id=user_id, currency_id=currency_id)
            self._accounts[account.id] = account
            return account

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(account_id)

    def list_user_accounts(self, user_id: int) -> List[Account]:
        with self._lock:
            return sorted(
                (a for a in self._accounts.values() if a.user_id == user_id),
                key=lambda a: a.id
            )

    def delete_account(self, account_id: int) -> bool:
        with self._lock:
            return self._accounts.pop(account_id, None) is not None

    def apply_single_leg_mutation(self, account_id: int, amount: int,
                                  direction: LegDirection) -> LedgerEntry:
        _check_mutation_amount(amount)
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise _no_such_account(account_id)

            if direction == LegDirection.DEBIT:
                if account.balance < amount:
                    raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                      f"Account {account_id} balance is below {amount}")
                new_balance = account.balance - amount
                from_id, to_id = account_id, None
            else:
                if account.balance > MAX_BALANCE - amount:
                    raise _balance_overflow(account_id, amount)
                new_balance = account.balance + amount
                from_id, to_id = None, account_id

            entry = LedgerEntry(
                id=next(self._entry_ids),
                from_account_id=from_id,
                to_account_id=to_id,
                currency_id=account.currency_id,
                amount=amount,
                created_at=utcnow()
            )
            self._accounts[account_id] = replace(account, balance=new_balance)
            self._entries.append(entry)
            return entry

    def apply_transfer_mutation(self, from_account_id: int, to_account_id: int,
                                amount: int) -> LedgerEntry:
        _check_mutation_amount(amount)
        _check_transfer_accounts(from_account_id, to_account_id)
        with self._lock:
            rows = {}
            for account_id in sorted((from_account_id, to_account_id)):
                account = self._accounts.get(account_id)
                if account is None:
                    raise _no_such_account(account_id)
                rows[account_id] = account

            source, destination = rows[from_account_id], rows[to_account_id]
            if source.currency_id != destination.currency_id:
                raise LedgerError(ErrorKind.INVALID_ACCOUNT, "Accounts have different currencies")
            if source.balance < amount:
                raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                  f"Account {from_account_id} balance is below {amount}")
            if destination.balance > MAX_BALANCE - amount:
                raise _balance_overflow(to_account_id, amount)

            entry = LedgerEntry(
                id=next(self._entry_ids),
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                currency_id=source.currency_id,
                amount=amount,
                created_at=utcnow()
            )
            self._accounts[from_account_id] = replace(source, balance=source.balance - amount)
            self._accounts[to_account_id] = replace(destination, balance=destination.balance + amount)
            self._entries.append(entry)
            return entry

    def list_ledger_entries(self, account_ids: Iterable[int]) -> List[LedgerEntry]:
        wanted = set(account_ids)
        with self._lock:
            return [
                entry for entry in self._entries
                if entry.from_account_id in wanted or entry.to_account_id in wanted
            ]


SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS currency (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS account (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    currency_id INTEGER NOT NULL REFERENCES currency(id),
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0)
);
CREATE INDEX IF NOT EXISTS idx_account_user_id ON account(user_id);
CREATE TABLE IF NOT EXISTS ledger_entry (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_account_id INTEGER,
    to_account_id INTEGER,
    currency_id INTEGER NOT NULL REFERENCES currency(id),
    amount INTEGER NOT NULL CHECK (amount > 0),
    created_at TEXT NOT NULL,
    CHECK (from_account_id IS NOT NULL OR to_account_id IS NOT NULL)
);
CREATE INDEX IF NOT EXISTS idx_ledger_entry_from ON ledger_entry(from_account_id);
CREATE INDEX IF NOT EXISTS idx_ledger_entry_to ON ledger_entry(to_account_id);
"""


class SQLiteStorage(LedgerStorage):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        self.db_path = str(db_path)
        # Autocommit mode; write transactions are opened explicitly with BEGIN IMMEDIATE
        self._connection = sqlite3.connect(
            self.db_path, timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()

        with self._lock, self._translate_errors():
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.executescript(SQLITE_SCHEMA)

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.OperationalError as e:
            message = str(e).lower()
            if "locked" in message or "busy" in message:
                raise LedgerError(ErrorKind.CONFLICT, f"SQLite contention: {e}") from e
            raise LedgerError(ErrorKind.STORE_ERROR, f"SQLite error: {e}") from e
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: a bound integer does not fit a 64-bit column
            raise LedgerError(ErrorKind.STORE_ERROR, f"SQLite error: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock until commit"""
        with self._lock, self._translate_errors():
            self._connection.execute("BEGIN IMMEDIATE")
            try:
                yield self._connection
                self._connection.execute("COMMIT")
            except BaseException:
                if self._connection.in_transaction:
                    self._connection.execute("ROLLBACK")
                raise

    def _query_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock, self._translate_errors():
            return self._connection.execute(sql, params).fetchone()

    def _query_all(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock, self._translate_errors():
            return self._connection.execute(sql, params).fetchall()

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        created_at = utcnow()
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (name, email, password, created_at) VALUES (?, ?, ?, ?)",
                    (name, email, password_hash, created_at.isoformat())
                )
        except LedgerError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS,
                                  f"User with email {email} already exists") from e.__cause__
            raise
        return User(id=cursor.lastrowid, name=name, email=email,
                    password_hash=password_hash, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        row = self._query_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return _user_from_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._query_one("SELECT * FROM users WHERE email = ?", (email,))
        return _user_from_row(row) if row else None

    def update_user(self, user_id: int, name: str, email: str) -> Optional[User]:
        try:
            with self._transaction() as conn:
                conn.execute("UPDATE users SET name = ?, email = ? WHERE id = ?", (name, email, user_id))
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        except LedgerError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS,
                                  f"User with email {email} already exists") from e.__cause__
            raise
        return _user_from_row(row) if row else None

    def delete_user(self, user_id: int) -> bool:
        with self._transaction() as conn:
            conn.execute("DELETE FROM account WHERE user_id = ?", (user_id,))
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return cursor.rowcount > 0

    def add_currency(self, symbol: str) -> Currency:
        with self._transaction() as conn:
            conn.execute("INSERT OR IGNORE INTO currency (symbol) VALUES (?)", (symbol,))
            row = conn.execute("SELECT id, symbol FROM currency WHERE symbol = ?", (symbol,)).fetchone()
        return Currency(id=row['id'], symbol=row['symbol'])

    def get_currency_by_symbol(self, symbol: str) -> Optional[Currency]:
        row = self._query_one("SELECT id, symbol FROM currency WHERE symbol = ?", (symbol,))
        return Currency(id=row['id'], symbol=row['symbol']) if row else None

    def list_currencies(self) -> List[Currency]:
        rows = self._query_all("SELECT id, symbol FROM currency ORDER BY id")
        return [Currency(id=row['id'], symbol=row['symbol']) for row in rows]

    def resolve_currency_symbol(self, currency_id: int) -> str:
        row = self._query_one("SELECT symbol FROM currency WHERE id = ?", (currency_id,))
        if row is None:
            raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
        return row['symbol']

    def create_account(self, user_id: int, currency_id: int) -> Account:
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
                raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")
            if conn.execute("SELECT 1 FROM currency WHERE id = ?", (currency_id,)).fetchone() is None:
                raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
            cursor = conn.execute(
                "INSERT INTO account (user_id, currency_id, balance) VALUES (?, ?, 0)",
                (user_id, currency_id)
            )
        return Account(id=cursor.lastrowid, user_id=user_id, currency_id=currency_id)

    def get_account(self, account_id: int) -> Optional[Account]:
        row = self._query_one("SELECT * FROM account WHERE id = ?", (account_id,))
        return _account_from_row(row) if row else None

    def list_user_accounts(self, user_id: int) -> List[Account]:
        rows = self._query_all("SELECT * FROM account WHERE user_id = ? ORDER BY id", (user_id,))
        return [_account_from_row(row) for row in rows]

    def delete_account(self, account_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM account WHERE id = ?", (account_id,))
        return cursor.rowcount > 0

    def _append_entry(self, conn: sqlite3.Connection, from_account_id: Optional[int],
                      to_account_id: Optional[int], currency_id: int, amount: int) -> LedgerEntry:
        created_at = utcnow()
        cursor = conn.execute(
            "INSERT INTO ledger_entry (from_account_id, to_account_id, currency_id, amount, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (from_account_id, to_account_id, currency_id, amount, created_at.isoformat())
        )
        return LedgerEntry(
            id=cursor.lastrowid,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            currency_id=currency_id,
            amount=amount,
            created_at=created_at
        )

    @staticmethod
    def _credit(conn: sqlite3.Connection, account_id: int, amount: int) -> None:
        # SQLite silently turns an overflowing integer sum into REAL
        cursor = conn.execute(
            "UPDATE account SET balance = balance + ? WHERE id = ? AND balance <= ?",
            (amount, account_id, MAX_BALANCE - amount)
        )
        if cursor.rowcount == 0:
            raise _balance_overflow(account_id, amount)

    def apply_single_leg_mutation(self, account_id: int, amount: int,
                                  direction: LegDirection) -> LedgerEntry:
        _check_mutation_amount(amount)
        with self._transaction() as conn:
            row = conn.execute("SELECT currency_id FROM account WHERE id = ?", (account_id,)).fetchone()
            if row is None:
                raise _no_such_account(account_id)

            if direction == LegDirection.DEBIT:
                cursor = conn.execute(
                    "UPDATE account SET balance = balance - ? WHERE id = ? AND balance >= ?",
                    (amount, account_id, amount)
                )
                if cursor.rowcount == 0:
                    raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                      f"Account {account_id} balance is below {amount}")
                return self._append_entry(conn, account_id, None, row['currency_id'], amount)

            self._credit(conn, account_id, amount)
            return self._append_entry(conn, None, account_id, row['currency_id'], amount)

    def apply_transfer_mutation(self, from_account_id: int, to_account_id: int,
                                amount: int) -> LedgerEntry:
        _check_mutation_amount(amount)
        _check_transfer_accounts(from_account_id, to_account_id)
        with self._transaction() as conn:
            ordered_ids = sorted((from_account_id, to_account_id))
            currencies = {}
            for account_id in ordered_ids:
                row = conn.execute("SELECT currency_id FROM account WHERE id = ?", (account_id,)).fetchone()
                if row is None:
                    raise _no_such_account(account_id)
                currencies[account_id] = row['currency_id']

            if currencies[from_account_id] != currencies[to_account_id]:
                raise LedgerError(ErrorKind.INVALID_ACCOUNT, "Accounts have different currencies")

            for account_id in ordered_ids:
                if account_id == from_account_id:
                    cursor = conn.execute(
                        "UPDATE account SET balance = balance - ? WHERE id = ? AND balance >= ?",
                        (amount, account_id, amount)
                    )
                    if cursor.rowcount == 0:
                        raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                          f"Account {account_id} balance is below {amount}")
                else:
                    self._credit(conn, account_id, amount)

            return self._append_entry(conn, from_account_id, to_account_id,
                                      currencies[from_account_id], amount)

    def list_ledger_entries(self, account_ids: Iterable[int]) -> List[LedgerEntry]:
        ids = sorted(set(account_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._query_all(
            f"SELECT * FROM ledger_entry "
            f"WHERE from_account_id IN ({placeholders}) OR to_account_id IN ({placeholders}) "
            f"ORDER BY id",
            tuple(ids) * 2
        )
        return [_entry_from_row(row) for row in rows]

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


POSTGRESQL_SCHEMA = """
CREATE TABLE IF NOT EXISTS currency (
    id SERIAL PRIMARY KEY,
    symbol TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS account (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id),
    currency_id INTEGER NOT NULL REFERENCES currency(id),
    balance BIGINT NOT NULL DEFAULT 0 CHECK (balance >= 0)
);
CREATE INDEX IF NOT EXISTS idx_account_user_id ON account(user_id);
CREATE TABLE IF NOT EXISTS ledger_entry (
    id BIGSERIAL PRIMARY KEY,
    from_account_id INTEGER,
    to_account_id INTEGER,
    currency_id INTEGER NOT NULL REFERENCES currency(id),
    amount BIGINT NOT NULL CHECK (amount > 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (from_account_id IS NOT NULL OR to_account_id IS NOT NULL)
);
CREATE INDEX IF NOT EXISTS idx_ledger_entry_from ON ledger_entry(from_account_id);
CREATE INDEX IF NOT EXISTS idx_ledger_entry_to ON ledger_entry(to_account_id);
"""


class PostgreSQLStorage(LedgerStorage):
    """PostgreSQL storage backend with row-level locking"""

    def __init__(self, connection_string: str, timeout: float = 5.0, pool_size: int = 5):
        try:
            import psycopg2
            import psycopg2.errors
            import psycopg2.extensions
            import psycopg2.extras
            import psycopg2.pool
            self.psycopg2 = psycopg2
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        self.connection_string = connection_string
        timeout_ms = int(timeout * 1000)
        # Lock waits and statements are bounded so no mutation blocks indefinitely
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            1, pool_size, connection_string,
            cursor_factory=psycopg2.extras.RealDictCursor,
            options=f"-c lock_timeout={timeout_ms} -c statement_timeout={timeout_ms}"
        )

        with self._transaction() as cursor:
            cursor.execute(POSTGRESQL_SCHEMA)

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        errors = self.psycopg2.errors
        try:
            yield
        except (self.psycopg2.extensions.TransactionRollbackError,
                errors.LockNotAvailable, errors.QueryCanceled) as e:
            # Serialization failures, deadlocks and lock/statement timeouts
            raise LedgerError(ErrorKind.CONFLICT, f"PostgreSQL contention: {e}") from e
        except self.psycopg2.Error as e:
            raise LedgerError(ErrorKind.STORE_ERROR, f"PostgreSQL error: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator:
        conn = self._pool.getconn()
        try:
            with self._translate_errors():
                cursor = conn.cursor()
                try:
                    yield cursor
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
                finally:
                    cursor.close()
        finally:
            self._pool.putconn(conn)

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    "INSERT INTO users (name, email, password) VALUES (%s, %s, %s) RETURNING *",
                    (name, email, password_hash)
                )
                row = cursor.fetchone()
        except LedgerError as e:
            if isinstance(e.__cause__, self.psycopg2.errors.UniqueViolation):
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS,
                                  f"User with email {email} already exists") from e.__cause__
            raise
        return _user_from_row(row)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
            row = cursor.fetchone()
        return _user_from_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM users WHERE email = %s", (email,))
            row = cursor.fetchone()
        return _user_from_row(row) if row else None

    def update_user(self, user_id: int, name: str, email: str) -> Optional[User]:
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    "UPDATE users SET name = %s, email = %s WHERE id = %s RETURNING *",
                    (name, email, user_id)
                )
                row = cursor.fetchone()
        except LedgerError as e:
            if isinstance(e.__cause__, self.psycopg2.errors.UniqueViolation):
                raise LedgerError(ErrorKind.USER_ALREADY_EXISTS,
                                  f"User with email {email} already exists") from e.__cause__
            raise
        return _user_from_row(row) if row else None

    def delete_user(self, user_id: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM account WHERE user_id = %s", (user_id,))
            cursor.execute("DELETE FROM users WHERE id = %s", (user_id,))
            return cursor.rowcount > 0

    def add_currency(self, symbol: str) -> Currency:
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO currency (symbol) VALUES (%s) ON CONFLICT (symbol) DO NOTHING", (symbol,)
            )
            cursor.execute("SELECT id, symbol FROM currency WHERE symbol = %s", (symbol,))
            row = cursor.fetchone()
        return Currency(id=row['id'], symbol=row['symbol'])

    def get_currency_by_symbol(self, symbol: str) -> Optional[Currency]:
        with self._transaction() as cursor:
            cursor.execute("SELECT id, symbol FROM currency WHERE symbol = %s", (symbol,))
            row = cursor.fetchone()
        return Currency(id=row['id'], symbol=row['symbol']) if row else None

    def list_currencies(self) -> List[Currency]:
        with self._transaction() as cursor:
            cursor.execute("SELECT id, symbol FROM currency ORDER BY id")
            rows = cursor.fetchall()
        return [Currency(id=row['id'], symbol=row['symbol']) for row in rows]

    def resolve_currency_symbol(self, currency_id: int) -> str:
        with self._transaction() as cursor:
            cursor.execute("SELECT symbol FROM currency WHERE id = %s", (currency_id,))
            row = cursor.fetchone()
        if row is None:
            raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
        return row['symbol']

    def create_account(self, user_id: int, currency_id: int) -> Account:
        with self._transaction() as cursor:
            cursor.execute("SELECT 1 FROM users WHERE id = %s", (user_id,))
            if cursor.fetchone() is None:
                raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")
            cursor.execute("SELECT 1 FROM currency WHERE id = %s", (currency_id,))
            if cursor.fetchone() is None:
                raise LedgerError(ErrorKind.NO_SUCH_CURRENCY, f"Currency {currency_id} does not exist")
            cursor.execute(
                "INSERT INTO account (user_id, currency_id, balance) VALUES (%s, %s, 0) RETURNING *",
                (user_id, currency_id)
            )
            row = cursor.fetchone()
        return _account_from_row(row)

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM account WHERE id = %s", (account_id,))
            row = cursor.fetchone()
        return _account_from_row(row) if row else None

    def list_user_accounts(self, user_id: int) -> List[Account]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM account WHERE user_id = %s ORDER BY id", (user_id,))
            rows = cursor.fetchall()
        return [_account_from_row(row) for row in rows]

    def delete_account(self, account_id: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM account WHERE id = %s", (account_id,))
            return cursor.rowcount > 0

    def _append_entry(self, cursor, from_account_id: Optional[int], to_account_id: Optional[int],
                      currency_id: int, amount: int) -> LedgerEntry:
        cursor.execute(
            "INSERT INTO ledger_entry (from_account_id, to_account_id, currency_id, amount) "
            "VALUES (%s, %s, %s, %s) RETURNING *",
            (from_account_id, to_account_id, currency_id, amount)
        )
        return _entry_from_row(cursor.fetchone())

    def apply_single_leg_mutation(self, account_id: int, amount: int,
                                  direction: LegDirection) -> LedgerEntry:
        _check_mutation_amount(amount)
        with self._transaction() as cursor:
            if direction == LegDirection.DEBIT:
                cursor.execute(
                    "UPDATE account SET balance = balance - %s WHERE id = %s AND balance >= %s "
                    "RETURNING currency_id",
                    (amount, account_id, amount)
                )
                row = cursor.fetchone()
                if row is None:
                    cursor.execute("SELECT 1 FROM account WHERE id = %s", (account_id,))
                    if cursor.fetchone() is None:
                        raise _no_such_account(account_id)
                    raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                      f"Account {account_id} balance is below {amount}")
                return self._append_entry(cursor, account_id, None, row['currency_id'], amount)

            cursor.execute(
                "UPDATE account SET balance = balance + %s WHERE id = %s AND balance <= %s "
                "RETURNING currency_id",
                (amount, account_id, MAX_BALANCE - amount)
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute("SELECT 1 FROM account WHERE id = %s", (account_id,))
                if cursor.fetchone() is None:
                    raise _no_such_account(account_id)
                raise _balance_overflow(account_id, amount)
            return self._append_entry(cursor, None, account_id, row['currency_id'], amount)

    def apply_transfer_mutation(self, from_account_id: int, to_account_id: int,
                                amount: int) -> LedgerEntry:
        _check_mutation_amount(amount)
        _check_transfer_accounts(from_account_id, to_account_id)
        with self._transaction() as cursor:
            # Fixed lock order prevents deadlocks between opposite transfers
            cursor.execute(
                "SELECT id, currency_id, balance FROM account WHERE id IN (%s, %s) ORDER BY id FOR UPDATE",
                (from_account_id, to_account_id)
            )
            rows = {row['id']: row for row in cursor.fetchall()}
            for account_id in (from_account_id, to_account_id):
                if account_id not in rows:
                    raise _no_such_account(account_id)

            source, destination = rows[from_account_id], rows[to_account_id]
            if source['currency_id'] != destination['currency_id']:
                raise LedgerError(ErrorKind.INVALID_ACCOUNT, "Accounts have different currencies")
            if source['balance'] < amount:
                raise LedgerError(ErrorKind.NOT_ENOUGH_MONEY,
                                  f"Account {from_account_id} balance is below {amount}")
            if destination['balance'] > MAX_BALANCE - amount:
                raise _balance_overflow(to_account_id, amount)

            for account_id in sorted(rows):
                delta = -amount if account_id == from_account_id else amount
                cursor.execute(
                    "UPDATE account SET balance = balance + %s WHERE id = %s", (delta, account_id)
                )

            return self._append_entry(cursor, from_account_id, to_account_id,
                                      source['currency_id'], amount)

    def list_ledger_entries(self, account_ids: Iterable[int]) -> List[LedgerEntry]:
        ids = sorted(set(account_ids))
        if not ids:
            return []
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT * FROM ledger_entry "
                "WHERE from_account_id = ANY(%s) OR to_account_id = ANY(%s) ORDER BY id",
                (ids, ids)
            )
            rows = cursor.fetchall()
        return [_entry_from_row(row) for row in rows]

    def close(self) -> None:
        """Close all pooled connections"""
        if self._pool:
            self._pool.closeall()
            self._pool = None


def create_storage(database_url: str, timeout: float = 5.0, pool_size: int = 5) -> LedgerStorage:
    """
    Build a storage backend from a database URL.

    Supported schemes: ``memory://``, ``sqlite:///relative/or/absolute/path``
    (``sqlite://`` alone for an in-memory SQLite database) and
    ``postgresql://`` / ``postgres://``.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite:///"):] if database_url.startswith("sqlite:///") else ""
        return SQLiteStorage(path or ":memory:", timeout=timeout)
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url, timeout=timeout, pool_size=pool_size)
    raise ValueError(f"Unsupported database URL: {database_url}")
