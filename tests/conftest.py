"""Pytest configuration for test isolation.

Every test starts from a known environment: the variables read by
``expense_parser.config.Settings`` are cleared so a developer's ``.env`` or
shell cannot leak an API key or database URL into a test, and cached
SQLAlchemy engines are disposed after each test so per-test SQLite files are
released. The process-wide default gateway is rebuilt for every test.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "EXPENSE_PARSER_MODEL",
    "EXPENSE_PARSER_CHAT_MODEL",
    "EXPENSE_PARSER_TIMEOUT_SECONDS",
    "EXPENSE_PARSER_MAX_RETRIES",
    "EXPENSE_PARSER_DEFAULT_CURRENCY",
    "EXPENSE_PARSER_LOG_LEVEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    from expense_parser.gateway import default_gateway

    default_gateway.cache_clear()
    yield
    default_gateway.cache_clear()
    from db.client import dispose_engines

    dispose_engines()
