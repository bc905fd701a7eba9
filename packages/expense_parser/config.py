"""Runtime settings read from the environment.

``Settings.from_env()`` performs no ``.env`` loading itself; entrypoints call
``python-dotenv`` first (the CLI does this in its root callback).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .defaults import DEFAULT_CURRENCY
from .errors import ConfigurationError

_DEFAULT_MODEL = "gpt-4o-mini"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Gateway and parsing settings.

    ``api_key`` being ``None`` is a valid state: the gateway then reports
    ``ConfigurationError`` on every call instead of reaching the network.
    """

    api_key: str | None = None
    base_url: str | None = None
    parse_model: str = _DEFAULT_MODEL
    chat_model: str = _DEFAULT_MODEL
    timeout_seconds: float = 30.0
    max_retries: int = 0
    default_currency: str = DEFAULT_CURRENCY
    database_url: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        e = os.environ if env is None else env
        return cls(
            api_key=(e.get("OPENAI_API_KEY") or "").strip() or None,
            base_url=(e.get("OPENAI_BASE_URL") or "").strip() or None,
            parse_model=(e.get("EXPENSE_PARSER_MODEL") or "").strip() or _DEFAULT_MODEL,
            chat_model=(e.get("EXPENSE_PARSER_CHAT_MODEL") or "").strip() or _DEFAULT_MODEL,
            timeout_seconds=_env_float(e, "EXPENSE_PARSER_TIMEOUT_SECONDS", 30.0),
            max_retries=_env_int(e, "EXPENSE_PARSER_MAX_RETRIES", 0),
            default_currency=(
                (e.get("EXPENSE_PARSER_DEFAULT_CURRENCY") or "").strip().upper()
                or DEFAULT_CURRENCY
            ),
            database_url=(e.get("DATABASE_URL") or "").strip() or None,
        )


__all__ = ["Settings"]
