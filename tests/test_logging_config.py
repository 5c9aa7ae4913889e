"""
 * @file: test_logging_config.py
 * @description: Тесты системы логирования
 * @dependencies: stock_push.utils.logging_config
"""

import logging

import pytest

from stock_push.utils.logging_config import (
    BusinessLogicFilter,
    log_business_event,
    log_error_with_context,
    setup_project_logging,
)


def _record(name, msg, level=logging.INFO):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestBusinessLogicFilter:
    """Тесты фильтра технических логов"""

    def setup_method(self):
        self.filter = BusinessLogicFilter()

    def test_technical_logger_hidden(self):
        assert not self.filter.filter(_record("sqlalchemy.engine.Engine", "anything"))
        assert not self.filter.filter(_record("urllib3.connectionpool", "Starting new HTTP connection"))

    def test_sql_text_hidden(self):
        assert not self.filter.filter(_record("stock.push.store", "SELECT id FROM inventory_movements_queue"))
        assert not self.filter.filter(_record("stock.push.store", "COMMIT"))

    def test_business_message_shown(self):
        assert self.filter.filter(_record("stock.push.dispatcher", "Store 10: claimed 3 movements"))


class TestSetupProjectLogging:
    """Тесты настройки логирования"""

    def test_creates_log_files(self, tmp_path, restore_root_logger):
        logger = setup_project_logging(log_level="INFO", log_path=str(tmp_path))

        logger.info("Сервис запущен")
        logging.getLogger("errors").error("Ошибка отправки")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logger.name == "stock.push"
        assert "Сервис запущен" in (tmp_path / "app.log").read_text(encoding="utf-8")
        errors = (tmp_path / "errors.log").read_text(encoding="utf-8")
        assert "Ошибка отправки" in errors
        assert "Сервис запущен" not in errors

    def test_technical_loggers_quiet(self, tmp_path, restore_root_logger):
        setup_project_logging(log_path=str(tmp_path))

        assert logging.getLogger("sqlalchemy.engine").level == logging.ERROR
        assert logging.getLogger("stock.push").level == logging.DEBUG


class TestEventHelpers:
    """Тесты вспомогательных функций"""

    def test_business_event_format(self, caplog):
        with caplog.at_level(logging.INFO, logger="business"):
            log_business_event("movements_queued", "Order 1001: 2 movements queued", store_id=10)

        assert "[MOVEMENTS_QUEUED] Order 1001: 2 movements queued | store_id=10" in caplog.text

    def test_error_with_context(self, caplog):
        with caplog.at_level(logging.ERROR, logger="errors"):
            log_error_with_context(ValueError("db down"), "Dispatch cycle failed", store_id=10)

        assert "[ERROR] Dispatch cycle failed: db down | store_id=10" in caplog.text
