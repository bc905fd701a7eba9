# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(ROOT / "packages"), str(ROOT)] if p not in sys.path]

from expense_parser.config import Settings
from expense_parser.errors import ConfigurationError


def test_defaults_when_env_is_empty() -> None:
    s = Settings.from_env({})

    assert s.api_key is None
    assert s.parse_model == "gpt-4o-mini"
    assert s.chat_model == "gpt-4o-mini"
    assert s.timeout_seconds == 30.0
    assert s.max_retries == 0
    assert s.default_currency == "INR"
    assert s.database_url is None


def test_values_are_read_and_normalized() -> None:
    s = Settings.from_env(
        {
            "OPENAI_API_KEY": "  sk-abc  ",
            "OPENAI_BASE_URL": "http://localhost:8080/v1",
            "EXPENSE_PARSER_MODEL": "m1",
            "EXPENSE_PARSER_CHAT_MODEL": "m2",
            "EXPENSE_PARSER_TIMEOUT_SECONDS": "12.5",
            "EXPENSE_PARSER_MAX_RETRIES": "2",
            "EXPENSE_PARSER_DEFAULT_CURRENCY": "usd",
            "DATABASE_URL": "sqlite:///x.db",
        }
    )

    assert s.api_key == "sk-abc"
    assert s.base_url == "http://localhost:8080/v1"
    assert (s.parse_model, s.chat_model) == ("m1", "m2")
    assert s.timeout_seconds == 12.5
    assert s.max_retries == 2
    assert s.default_currency == "USD"
    assert s.database_url == "sqlite:///x.db"


def test_blank_key_means_unconfigured() -> None:
    assert Settings.from_env({"OPENAI_API_KEY": "   "}).api_key is None


@pytest.mark.parametrize(
    "env",
    [
        {"EXPENSE_PARSER_TIMEOUT_SECONDS": "soon"},
        {"EXPENSE_PARSER_TIMEOUT_SECONDS": "0"},
        {"EXPENSE_PARSER_MAX_RETRIES": "-1"},
        {"EXPENSE_PARSER_MAX_RETRIES": "two"},
    ],
)
def test_invalid_numbers_raise_configuration_error(env: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_env(env)
