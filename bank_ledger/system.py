"""
Ledger System Wiring

Builds the storage backend and every service on top of it from configuration.
"""

from typing import Optional

from .accounts import AccountManager
from .config import LedgerConfig, get_config
from .history import HistoryReader
from .logging_config import get_logger
from .storage import LedgerStorage, create_storage
from .transactions import TransactionEngine
from .users import UserManager


class LedgerSystem:
    """Ledger service with all components initialized"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[LedgerStorage] = None):
        self.config = config or get_config()
        self.logger = get_logger("bank_ledger.system")

        # Initialize storage
        self.storage = storage or create_storage(
            self.config.database_url,
            timeout=self.config.database_timeout,
            pool_size=self.config.database_pool_size
        )
        self._seed_currencies()

        # Initialize services
        self.users = UserManager(self.storage, password_min_length=self.config.password_min_length)
        self.accounts = AccountManager(self.storage)
        self.engine = TransactionEngine(
            self.storage,
            max_attempts=self.config.max_conflict_attempts,
            retry_base_delay=self.config.retry_base_delay,
            retry_max_delay=self.config.retry_max_delay
        )
        self.history = HistoryReader(self.storage)

    def _seed_currencies(self) -> None:
        for symbol in self.config.currency_symbols:
            if self.storage.get_currency_by_symbol(symbol) is None:
                self.storage.add_currency(symbol)
                self.logger.info(f"Registered currency {symbol}")

    def close(self) -> None:
        self.storage.close()
