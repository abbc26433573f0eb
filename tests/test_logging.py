from __future__ import annotations

import json
import logging

from flux_feed.config import LoggingConfig
from flux_feed.logging_utils import get_logger, log_event, setup_logging


def _close(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


def test_jsonl_file_records_event_fields(tmp_path):
    cfg = LoggingConfig(level="DEBUG", console=False, file=True, filename="run.jsonl")
    root = setup_logging(cfg, tmp_path)
    try:
        log_event(get_logger("parser"), "Feed parsed", event="feed_parsed", url="https://example.com/feed", count=3)
        log_event(get_logger("parser"), "Reserved keys", event="x", filename="shadow.txt", module="m")
    finally:
        _close(root)

    lines = (tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    second = json.loads(lines[1])

    assert first["message"] == "Feed parsed"
    assert first["level"] == "INFO"
    assert first["logger"] == "flux_feed.parser"
    assert first["event"] == "feed_parsed"
    assert first["count"] == 3
    assert second["field_filename"] == "shadow.txt"
    assert second["field_module"] == "m"


def test_level_filters_records(tmp_path):
    cfg = LoggingConfig(level="WARNING", console=False, file=True, format="plain", filename="run.log")
    root = setup_logging(cfg, tmp_path)
    try:
        log_event(get_logger("digest"), "quiet", event="digest_complete")
        log_event(get_logger("digest"), "loud", level=logging.WARNING, event="digest_budget_exhausted")
    finally:
        _close(root)

    text = (tmp_path / "run.log").read_text(encoding="utf-8")
    assert "loud" in text
    assert "quiet" not in text


def test_log_event_without_logger_is_noop():
    log_event(None, "nothing", event="x")
