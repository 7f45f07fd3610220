"""Tests for devdocs_scraper.logger."""

from __future__ import annotations

import logging
import os

import pytest

from devdocs_scraper.logger import setup_logger


@pytest.fixture
def fresh_logger():
    logger = logging.getLogger("devdocs_scraper")
    saved = logger.handlers[:], logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers, level = saved
    logger.setLevel(level)


def test_writes_to_named_file(tmp_path, fresh_logger):
    log_dir = tmp_path / "logs"
    logger = setup_logger(str(log_dir), "crawl.log")

    logger.info("crawl started")
    for handler in logger.handlers:
        handler.flush()

    assert logger is fresh_logger
    assert len(logger.handlers) == 2
    assert "crawl started" in (log_dir / "crawl.log").read_text()


def test_level_by_name_and_quiet_http_loggers(tmp_path, fresh_logger):
    setup_logger(str(tmp_path), level="debug")

    assert fresh_logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_unknown_level(tmp_path, fresh_logger):
    with pytest.raises(ValueError):
        setup_logger(str(tmp_path), level="chatty")
    assert not os.listdir(tmp_path)


def test_second_call_does_not_duplicate_handlers(tmp_path, fresh_logger):
    setup_logger(str(tmp_path))
    setup_logger(str(tmp_path))
    assert len(fresh_logger.handlers) == 2
