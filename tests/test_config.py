"""
Test suite for configuration and system wiring
"""

import pytest

from bank_ledger.config import LedgerConfig, get_config, reload_config
from bank_ledger.storage import InMemoryStorage, SQLiteStorage
from bank_ledger.system import LedgerSystem


class TestLedgerConfig:

    def test_defaults(self):
        config = LedgerConfig(_env_file=None)

        assert config.max_conflict_attempts == 3
        assert config.database_url.startswith("sqlite://")
        assert config.enable_rate_limiting is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATABASE_URL", "memory://")
        monkeypatch.setenv("LEDGER_MAX_CONFLICT_ATTEMPTS", "7")
        monkeypatch.setenv("LEDGER_ENABLE_RATE_LIMITING", "false")

        config = LedgerConfig(_env_file=None)

        assert config.database_url == "memory://"
        assert config.max_conflict_attempts == 7
        assert config.enable_rate_limiting is False

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("LEDGER_API_PORT", "9090")

        try:
            assert reload_config().api_port == 9090
            assert get_config().api_port == 9090
        finally:
            monkeypatch.delenv("LEDGER_API_PORT")
            reload_config()

    def test_currency_symbols(self):
        config = LedgerConfig(_env_file=None, currencies=" usd, EUR,,usd ,gbp")

        assert config.currency_symbols == ["USD", "EUR", "GBP"]


class TestLedgerSystem:
    """Test service wiring"""

    def test_builds_storage_from_url(self):
        system = LedgerSystem(config=LedgerConfig(_env_file=None, database_url="memory://"))

        assert isinstance(system.storage, InMemoryStorage)
        assert system.engine.max_attempts == system.config.max_conflict_attempts
        system.close()

    def test_seeds_currencies_once(self, tmp_path):
        config = LedgerConfig(
            _env_file=None, database_url=f"sqlite:///{tmp_path / 'ledger.db'}", currencies="USD,EUR"
        )

        LedgerSystem(config=config).close()
        system = LedgerSystem(config=config)

        assert isinstance(system.storage, SQLiteStorage)
        assert [c.symbol for c in system.storage.list_currencies()] == ["USD", "EUR"]
        system.close()

    def test_uses_given_storage(self):
        storage = InMemoryStorage()
        system = LedgerSystem(config=LedgerConfig(_env_file=None, currencies="JPY"), storage=storage)

        assert system.storage is storage
        assert storage.get_currency_by_symbol("JPY") is not None

    def test_end_to_end(self):
        system = LedgerSystem(config=LedgerConfig(_env_file=None, database_url="memory://"))
        user = system.users.create_user("Alice", "alice@example.com", "password123")
        account = system.accounts.create_account(user.id, "USD")

        system.engine.deposit(user.id, account.id, 100)
        system.engine.withdraw(user.id, account.id, 40)

        assert system.accounts.get_account(user.id, account.id).balance == 60
        assert [r.amount for r in system.history.list_transactions(user.id)] == [100, 40]

    def test_unsupported_database_url(self):
        with pytest.raises(ValueError):
            LedgerSystem(config=LedgerConfig(_env_file=None, database_url="mysql://localhost/ledger"))
