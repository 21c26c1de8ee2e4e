#!/usr/bin/env python3
"""
Bank Ledger Entry Point

Starts the FastAPI server with the ledger system built from configuration.
"""

import sys

import uvicorn

from bank_ledger.config import get_config
from bank_ledger.logging_config import setup_logging


def main() -> None:
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting Bank Ledger API on {config.api_host}:{config.api_port}")
    
    try:
        uvicorn.run(
            "bank_ledger.api:create_app",
            factory=True,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Bank Ledger API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
