import logging

from pythonjsonlogger import jsonlogger

import src.utils.logging as log_utils


def test_setup_logging_production_json(monkeypatch, tmp_path):
    monkeypatch.setattr(log_utils.settings, "ENVIRONMENT", "production", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_LEVEL", "INFO", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", str(tmp_path), raising=False)

    logger = log_utils.setup_logging("atlas_prod")

    assert any(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in logger.handlers)
    assert len(logger.handlers) == 2
    assert any(p.name.startswith("atlas_prod_") for p in tmp_path.iterdir())


def test_setup_logging_dev_text_without_file(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "ENVIRONMENT", "development", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_LEVEL", "debug", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)

    logger = log_utils.setup_logging("atlas_dev")

    assert len(logger.handlers) == 1
    assert not isinstance(logger.handlers[0].formatter, jsonlogger.JsonFormatter)
    assert logger.level == logging.DEBUG


def test_unknown_level_falls_back_to_info(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "LOG_LEVEL", "chatty", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)

    assert log_utils.setup_logging("atlas_level").level == logging.INFO


def test_module_loggers_reach_root_handlers(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)

    logger = log_utils.setup_logging("atlas_root")

    assert logging.getLogger().handlers == logger.handlers
    assert log_utils.get_logger("src.processing.percentile").handlers == []


def test_get_logger_returns_named_logger():
    logger = log_utils.get_logger("src.api.routes")
    assert logger.name == "src.api.routes"
