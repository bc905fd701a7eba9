# ruff: noqa: E402, I001
from __future__ import annotations

import io
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(ROOT / "packages"), str(ROOT)] if p not in sys.path]

from expense_parser.logging_setup import configure_logging, get_logger


def test_configure_logging_writes_event_lines_to_stream() -> None:
    buf = io.StringIO()
    configure_logging("DEBUG", fmt="%(name)s %(message)s", stream=buf, force=True)

    get_logger("expense_parser.api").info("parse_message:done count=%d", 2)

    assert buf.getvalue().strip() == "expense_parser.api parse_message:done count=2"


def test_level_comes_from_env_and_repeat_calls_are_noops(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("EXPENSE_PARSER_LOG_LEVEL", "warning")
    first = io.StringIO()
    configure_logging(stream=first, fmt="%(message)s", force=True)
    configure_logging("DEBUG", stream=io.StringIO())

    log = get_logger("expense_parser.gateway")
    log.info("gateway:extract_done")
    log.warning("gateway:extract_retry attempt=1")

    assert logging.getLogger("expense_parser").level == logging.WARNING
    assert first.getvalue().splitlines() == ["gateway:extract_retry attempt=1"]
