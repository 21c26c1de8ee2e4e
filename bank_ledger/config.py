"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class LedgerConfig(BaseSettings):
    """Bank ledger service configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///ledger.db"  # memory://, sqlite:///path or postgresql://...
    database_timeout: float = 5.0  # Seconds to wait on a locked row/file
    database_pool_size: int = 5  # PostgreSQL only
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    password_min_length: int = 8
    
    # Currencies seeded into an empty store
    currencies: str = "USD,EUR,RUB"
    
    # Conflict retry policy for atomic mutations
    max_conflict_attempts: int = 3
    retry_base_delay: float = 0.05  # Seconds, doubled on every retry
    retry_max_delay: float = 1.0
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Rate limiting
    enable_rate_limiting: bool = True
    rate_limit_per_minute: int = 120
    
    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False
    
    @property
    def currency_symbols(self) -> List[str]:
        """Configured currency symbols, upper-cased and de-duplicated"""
        symbols = []
        for symbol in self.currencies.split(","):
            symbol = symbol.strip().upper()
            if symbol and symbol not in symbols:
                symbols.append(symbol)
        return symbols


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
