"""
Test suite for structured logging
"""

import json
import logging

from bank_ledger.logging_config import JSONFormatter, TextFormatter, log_action, setup_logging


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLogging:
    """Test formatters and log_action"""

    def setup_method(self):
        """Set up test fixtures"""
        self.logger = logging.getLogger("bank_ledger_tests.logging")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.handler = ListHandler()
        self.logger.addHandler(self.handler)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_log_action_attaches_fields(self):
        log_action(
            self.logger, "info", "Transaction processed",
            user_id=7, action="process_transaction", resource="ledger_entry:3", extra={"amount": 50}
        )

        record = self.handler.records[0]
        assert record.user_id == 7
        assert record.action == "process_transaction"
        assert record.resource == "ledger_entry:3"
        assert record.extra == {"amount": 50}

    def test_log_action_respects_level(self):
        log_action(self.logger, "debug", "hidden")

        assert self.handler.records == []

    def test_json_formatter(self):
        log_action(self.logger, "warning", "Transaction rejected", user_id=1, extra={"error": "conflict"})

        data = json.loads(JSONFormatter().format(self.handler.records[0]))

        assert data["level"] == "WARNING"
        assert data["message"] == "Transaction rejected"
        assert data["user_id"] == 1
        assert data["extra"] == {"error": "conflict"}
        assert "resource" not in data

    def test_text_formatter(self):
        log_action(self.logger, "info", "Account created", user_id=2, action="create_account")

        line = TextFormatter().format(self.handler.records[0])

        assert "Account created" in line
        assert "user_id=2" in line
        assert "action=create_account" in line

    def test_setup_logging_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "ledger.log"

        setup_logging("INFO", "bank_ledger_tests.setup", log_format="json", log_file=str(log_file))
        logger = setup_logging("INFO", "bank_ledger_tests.setup", log_format="json", log_file=str(log_file))
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 1
        assert logger.propagate is False
        assert json.loads(log_file.read_text().strip())["message"] == "hello"

        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()
