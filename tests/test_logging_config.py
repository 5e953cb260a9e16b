"""Tests for process-wide logging setup."""

import logging

import pytest

from blob_migrator.core.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_log_file_receives_records(tmp_path):
    log_file = tmp_path / "migrate.log"

    configure_logging(level="debug", log_file=str(log_file))
    logging.getLogger("blob_migrator.test").info("OK  /a.txt (0.10s)")
    for handler in logging.getLogger().handlers:
        handler.flush()

    line = log_file.read_text().strip()
    assert line.endswith("blob_migrator.test - INFO - OK  /a.txt (0.10s)")
    assert logging.getLogger().level == logging.DEBUG


def test_urllib3_quietened():
    configure_logging(level="INFO")

    assert logging.getLogger("urllib3").level == logging.WARNING
