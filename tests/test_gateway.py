# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(ROOT / "packages"), str(ROOT)] if p not in sys.path]

import expense_parser.gateway as gateway_mod
from expense_parser.config import Settings
from expense_parser.errors import (
    ConfigurationError,
    ParsingFailure,
    UpstreamRateLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from expense_parser.gateway import ExtractionGateway, get_gateway
from expense_parser.prompting import CHAT_PERSONA
from tests.helpers.openai_stub import (
    Completion,
    OpenAIStub,
    auth_error,
    bad_request_error,
    connection_error,
    rate_limit_error,
    server_error,
    timeout_error,
)

SETTINGS = Settings(api_key="sk-test", parse_model="parse-model", chat_model="chat-model")


@pytest.fixture()
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    slept: list[int] = []
    monkeypatch.setattr(gateway_mod, "_sleep_backoff", lambda attempt: slept.append(attempt))
    return slept


def test_missing_key_raises_configuration_error_without_client(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _boom(settings):  # pragma: no cover - must not be called
        raise AssertionError("client must not be created without a key")

    monkeypatch.setattr(gateway_mod, "_create_client", _boom)
    gw = ExtractionGateway(Settings())

    assert gw.is_configured is False
    with pytest.raises(ConfigurationError):
        gw.extract("system", "lunch 250")
    with pytest.raises(ConfigurationError):
        gw.converse([{"role": "user", "content": "hi"}])


def test_get_gateway_reads_key_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[Settings] = []

    def _fake_client(settings: Settings) -> OpenAIStub:
        created.append(settings)
        return OpenAIStub(["[]"])

    monkeypatch.setattr(gateway_mod, "_create_client", _fake_client)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("EXPENSE_PARSER_MODEL", "custom-model")

    gw = get_gateway()

    assert gw.is_configured
    assert created[0].api_key == "sk-env"
    assert gw.settings.parse_model == "custom-model"


def test_extract_sends_system_and_user_messages_with_parse_params() -> None:
    stub = OpenAIStub([Completion("[]", prompt_tokens=200, completion_tokens=12)])
    gw = ExtractionGateway(SETTINGS, client=stub)

    out = gw.extract("SYSTEM PROMPT", "lunch 250")

    assert out.raw_text == "[]"
    assert out.usage.prompt_tokens == 200
    assert out.usage.completion_tokens == 12
    assert out.usage.total_tokens == 212
    (call,) = stub.calls
    assert call["model"] == "parse-model"
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 500
    assert call["timeout"] == 30.0
    assert call["messages"] == [
        {"role": "system", "content": "SYSTEM PROMPT"},
        {"role": "user", "content": "lunch 250"},
    ]


def test_per_call_timeout_overrides_settings() -> None:
    stub = OpenAIStub(["[]"])
    gw = ExtractionGateway(SETTINGS, client=stub)

    gw.extract("s", "u", timeout=2.5)

    assert stub.calls[0]["timeout"] == 2.5


def test_empty_content_is_parsing_failure() -> None:
    gw = ExtractionGateway(SETTINGS, client=OpenAIStub([Completion(None)]))

    with pytest.raises(ParsingFailure):
        gw.extract("s", "u")


def test_converse_prepends_persona_and_uses_chat_params() -> None:
    stub = OpenAIStub([Completion("Noted!", prompt_tokens=40, completion_tokens=3)])
    gw = ExtractionGateway(SETTINGS, client=stub)

    out = gw.converse(
        [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "log lunch"},
        ]
    )

    assert out.raw_text == "Noted!"
    (call,) = stub.calls
    assert call["model"] == "chat-model"
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 150
    assert call["messages"][0] == {"role": "system", "content": CHAT_PERSONA}
    assert [m["role"] for m in call["messages"][1:]] == ["user", "assistant", "user"]


@pytest.mark.parametrize(
    ("exc_factory", "expected"),
    [
        (timeout_error, UpstreamTimeout),
        (connection_error, UpstreamUnavailable),
        (rate_limit_error, UpstreamRateLimited),
        (server_error, UpstreamUnavailable),
        (auth_error, ConfigurationError),
        (bad_request_error, UpstreamUnavailable),
    ],
)
def test_sdk_errors_are_mapped(exc_factory, expected, no_sleep: list[int]) -> None:
    gw = ExtractionGateway(SETTINGS, client=OpenAIStub([exc_factory()]))

    with pytest.raises(expected):
        gw.extract("s", "u")
    assert no_sleep == []


def test_no_retries_by_default(no_sleep: list[int]) -> None:
    stub = OpenAIStub([server_error(), "[]"])
    gw = ExtractionGateway(SETTINGS, client=stub)

    with pytest.raises(UpstreamUnavailable):
        gw.extract("s", "u")
    assert len(stub.calls) == 1


def test_retryable_errors_are_retried_up_to_max_retries(no_sleep: list[int]) -> None:
    settings = Settings(api_key="sk-test", max_retries=2)
    stub = OpenAIStub([rate_limit_error(), server_error(502), Completion("[]")])
    gw = ExtractionGateway(settings, client=stub)

    out = gw.extract("s", "u")

    assert out.raw_text == "[]"
    assert len(stub.calls) == 3
    assert no_sleep == [1, 2]


def test_retries_exhausted_surface_last_error(no_sleep: list[int]) -> None:
    settings = Settings(api_key="sk-test", max_retries=1)
    stub = OpenAIStub([connection_error(), rate_limit_error()])
    gw = ExtractionGateway(settings, client=stub)

    with pytest.raises(UpstreamRateLimited):
        gw.extract("s", "u")
    assert len(stub.calls) == 2


def test_timeout_and_client_errors_are_not_retried(no_sleep: list[int]) -> None:
    settings = Settings(api_key="sk-test", max_retries=3)
    for exc in (timeout_error(), bad_request_error(), auth_error()):
        stub = OpenAIStub([exc, "[]"])
        gw = ExtractionGateway(settings, client=stub)
        with pytest.raises((UpstreamTimeout, UpstreamUnavailable, ConfigurationError)):
            gw.extract("s", "u")
        assert len(stub.calls) == 1
    assert no_sleep == []


def test_is_retryable_classification() -> None:
    assert gateway_mod._is_retryable(rate_limit_error())
    assert gateway_mod._is_retryable(server_error(500))
    assert gateway_mod._is_retryable(connection_error())
    assert not gateway_mod._is_retryable(timeout_error())
    assert not gateway_mod._is_retryable(bad_request_error())
    assert not gateway_mod._is_retryable(auth_error())
