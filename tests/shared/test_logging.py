"""Tests for shared/logging.py - Logging utilities."""

from __future__ import annotations

import logging
import os

import pytest

from forgescore.shared.logging import (
    DEFAULT_LOG_BACKUP_COUNT,
    EVENTS_LEVEL_NUM,
    log_event,
    setup_events_logger,
    setup_logging,
)


@pytest.fixture
def clean_event_logger():
    logger = logging.getLogger("event")
    saved = list(logger.handlers)
    yield logger
    for handler in list(logger.handlers):
        if handler not in saved:
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


class TestSetupEventsLogger:
    """Tests for setup_events_logger."""

    def test_creates_directory_and_file_handler(self, tmp_path, clean_event_logger):
        target = tmp_path / "logs"
        logger = setup_events_logger(str(target), 1024 * 1024)

        assert target.is_dir()
        handlers = [h for h in logger.handlers if getattr(h, "baseFilename", None)]
        assert handlers[-1].baseFilename == os.path.abspath(str(target / "events.log"))
        assert handlers[-1].backupCount == DEFAULT_LOG_BACKUP_COUNT
        assert logger.level == EVENTS_LEVEL_NUM

    def test_idempotent(self, tmp_path, clean_event_logger):
        logger = setup_events_logger(str(tmp_path), 4096)
        count = len(logger.handlers)
        setup_events_logger(str(tmp_path), 4096)
        assert len(logger.handlers) == count

    def test_level_name_registered(self, tmp_path, clean_event_logger):
        setup_events_logger(str(tmp_path), 4096)
        assert logging.getLevelName(EVENTS_LEVEL_NUM) == "EVENT"

    def test_log_event_written(self, tmp_path, clean_event_logger):
        logger = setup_events_logger(str(tmp_path), 1024 * 1024)
        log_event("recompute builder=%s score=%s", "b1", 640)
        for handler in logger.handlers:
            handler.flush()

        content = (tmp_path / "events.log").read_text(encoding="utf-8")
        assert "EVENT" in content
        assert "recompute builder=b1 score=640" in content


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_sets_level(self, restore_root):
        setup_logging("debug")
        assert restore_root.level == logging.DEBUG

    def test_unknown_level_defaults_to_info(self, restore_root):
        setup_logging("chatty")
        assert restore_root.level == logging.INFO

    def test_single_handler(self, restore_root):
        setup_logging("INFO")
        setup_logging("INFO")
        ours = [h for h in restore_root.handlers if getattr(h, "_forge_handler", False)]
        assert len(ours) == 1

    def test_quiets_http_loggers(self, restore_root):
        setup_logging(logging.DEBUG)
        assert logging.getLogger("httpx").level == logging.WARNING
