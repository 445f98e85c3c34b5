"""
Tests for logging configuration.
"""
import logging

from pickup_checkout.services.checkout import finalize_order


class TestLoggingConfiguration:
    """Test logging setup and configuration."""

    def test_setup_logging_default_level(self, monkeypatch):
        """Test that setup_logging defaults to INFO level."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        from pickup_checkout.logging_config import setup_logging
        setup_logging()

        logger = logging.getLogger("pickup_checkout")
        assert logger.level == logging.INFO

    def test_setup_logging_respects_env_var(self, monkeypatch):
        """Test that LOG_LEVEL env var is respected."""
        monkeypatch.setenv("LOG_LEVEL", "warning")

        from pickup_checkout.logging_config import setup_logging
        setup_logging()

        logger = logging.getLogger("pickup_checkout")
        assert logger.level == logging.WARNING

    def test_setup_logging_explicit_level(self):
        """Test that explicit level parameter works."""
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="ERROR")

        logger = logging.getLogger("pickup_checkout")
        assert logger.level == logging.ERROR

    def test_setup_logging_invalid_level_defaults_to_info(self):
        """Test that invalid level falls back to INFO."""
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="INVALID_LEVEL")

        logger = logging.getLogger("pickup_checkout")
        assert logger.level == logging.INFO

    def test_sql_logging_quiet_above_debug(self):
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="INFO")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_library_levels_from_env(self, monkeypatch):
        monkeypatch.setenv("LIBRARY_LOG_LEVELS", "sqlalchemy.engine=info, uvicorn.access=ERROR,bogus,httpx=LOUD")

        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="INFO")

        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
        assert logging.getLogger("uvicorn.access").level == logging.ERROR

    def test_debug_opens_library_loggers(self, monkeypatch):
        monkeypatch.delenv("LIBRARY_LOG_LEVELS", raising=False)

        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="DEBUG")

        assert logging.getLogger("sqlalchemy.engine").level == logging.DEBUG
        setup_logging(level="INFO")

    def test_reconciliation_alerts_survive_critical(self):
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="CRITICAL")

        assert logging.getLogger("pickup_checkout").level == logging.CRITICAL
        assert logging.getLogger("pickup_checkout.services.checkout").level == logging.ERROR
        assert logging.getLogger("pickup_checkout.services.capacity_ledger").level == logging.ERROR
        setup_logging(level="INFO")


class TestLibraryLogLevels:
    def test_default_quiets_sql_and_access_log(self, monkeypatch):
        monkeypatch.delenv("LIBRARY_LOG_LEVELS", raising=False)

        from pickup_checkout.config import get_library_log_levels
        levels = get_library_log_levels()

        assert levels["sqlalchemy.engine"] == "WARNING"
        assert levels["uvicorn.access"] == "WARNING"

    def test_malformed_entries_skipped(self, monkeypatch):
        monkeypatch.setenv("LIBRARY_LOG_LEVELS", "=INFO,noequals,httpx=chatty,alembic=debug")

        from pickup_checkout.config import get_library_log_levels

        assert get_library_log_levels() == {"alembic": "DEBUG"}


class TestNoSensitiveDataInLogs:
    """Buyer contact details never reach INFO or higher."""

    def test_checkout_logs_no_buyer_contact_at_info(
        self, caplog, db_session, window, pickup_cart, pickup_choice, cash_later
    ):
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="INFO")

        with caplog.at_level(logging.INFO):
            finalize_order(db_session, pickup_cart(), pickup_choice, cash_later)

        assert any("committed" in r.getMessage() for r in caplog.records)
        for record in caplog.records:
            if record.levelno >= logging.INFO:
                message = record.getMessage()
                assert "ann@mailbox.org" not in message
                assert "2127365000" not in message
                assert "Ann Buyer" not in message

    def test_debug_logs_not_shown_at_info_level(self, caplog):
        """Test that DEBUG logs don't appear when level is INFO."""
        from pickup_checkout.logging_config import setup_logging
        setup_logging(level="INFO")

        with caplog.at_level(logging.INFO):
            logger = logging.getLogger("pickup_checkout.test")
            logger.debug("This should not appear")
            logger.info("This should appear")

            messages = [r.message for r in caplog.records]
            assert "This should not appear" not in messages
            assert "This should appear" in messages
