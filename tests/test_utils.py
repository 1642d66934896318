import logging

import pytest

from backend.hydration import config
from backend.hydration.utils import NOISY_LOGGERS, ensure_saved_dir, setup_logging


@pytest.fixture(autouse=True)
def restore_loggers():
    names = ("hydration",) + NOISY_LOGGERS
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def test_library_loggers_are_quietened_at_info():
    logger = setup_logging("info")

    assert logger.name == "hydration"
    assert logger.level == logging.INFO
    assert logging.getLogger("paho").level == logging.WARNING
    assert logging.getLogger("serial").level == logging.WARNING
    assert logging.getLogger("werkzeug").level == logging.WARNING


def test_debug_level_lets_library_detail_through():
    setup_logging("DEBUG")

    assert logging.getLogger("hydration").level == logging.DEBUG
    assert logging.getLogger("paho").level == logging.DEBUG


def test_level_defaults_to_config(monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "ERROR")

    assert setup_logging().level == logging.ERROR
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_repeated_setup_adds_one_handler():
    setup_logging("INFO")
    setup_logging("INFO")

    assert len(logging.getLogger("hydration").handlers) == 1


def test_ensure_saved_dir_creates_directory(monkeypatch, tmp_path):
    target = tmp_path / "saved"
    monkeypatch.setattr(config, "SAVED_DIR", str(target))

    assert ensure_saved_dir() == str(target)
    assert target.is_dir()
