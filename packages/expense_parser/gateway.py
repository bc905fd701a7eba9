"""Chat Completions I/O boundary.

The gateway makes one upstream call per request and converts the SDK's
exceptions into the pipeline's error kinds. It has no business logic: the
caller supplies the prompt and interprets the returned text.

No client is created and no environment is read at import time. Tests replace
``_create_client`` (or pass ``client=``) to avoid the network.
"""

from __future__ import annotations

import functools
import random
import time
from collections.abc import Mapping, Sequence
from typing import Any

import openai
from openai import OpenAI

from .config import Settings
from .errors import (
    ConfigurationError,
    ParserError,
    ParsingFailure,
    UpstreamRateLimited,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .logging_setup import get_logger
from .models import Extraction, UsageExchangeRecord
from .prompting import CHAT_PERSONA

# ---- Tunables (private) ------------------------------------------------------

_PARSE_TEMPERATURE: float = 0.3
_PARSE_MAX_TOKENS: int = 500
_CHAT_TEMPERATURE: float = 0.7
_CHAT_MAX_TOKENS: int = 150
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_NOT_CONFIGURED_MSG = "OpenAI API key not configured. Cannot reach the language model."

_logger = get_logger("expense_parser.gateway")


def _create_client(settings: Settings) -> OpenAI:
    # SDK-level retries are disabled; retrying is governed by Settings.max_retries.
    return OpenAI(api_key=settings.api_key, base_url=settings.base_url, max_retries=0)


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for rate limits, 5xx responses and connection drops."""

    if isinstance(exc, openai.APITimeoutError):
        return False
    if isinstance(exc, openai.APIConnectionError):
        return True
    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _map_exception(exc: Exception) -> ParserError:
    """Translate an OpenAI SDK exception into a pipeline error."""

    # APITimeoutError subclasses APIConnectionError; check it first.
    if isinstance(exc, openai.APITimeoutError):
        return UpstreamTimeout("The language model did not respond in time. Please try again.")
    if isinstance(exc, openai.APIConnectionError):
        return UpstreamUnavailable(f"Could not reach the language model: {exc}")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ConfigurationError(f"The language model rejected the configured credential: {exc}")
    if isinstance(exc, openai.RateLimitError):
        return UpstreamRateLimited(
            "The language model is rate limiting requests. Please retry later."
        )
    if isinstance(exc, openai.APIStatusError):
        return UpstreamUnavailable(
            f"The language model returned HTTP {exc.status_code}: {exc.message}"
        )
    return UpstreamUnavailable(f"Unexpected language model error: {exc.__class__.__name__}")


def _usage_from_completion(completion: Any) -> UsageExchangeRecord:
    usage = getattr(completion, "usage", None)
    if usage is None:
        return UsageExchangeRecord()
    prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
    total = int(getattr(usage, "total_tokens", 0) or 0) or prompt + completion_tokens
    return UsageExchangeRecord(
        prompt_tokens=prompt, completion_tokens=completion_tokens, total_tokens=total
    )


def _content_from_completion(completion: Any) -> str | None:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else None


class ExtractionGateway:
    """Thin wrapper over ``client.chat.completions.create``.

    When ``settings.api_key`` is missing and no ``client`` is injected, every
    call raises :class:`ConfigurationError` without any network activity.
    """

    def __init__(self, settings: Settings | None = None, *, client: Any | None = None) -> None:
        self._settings = settings if settings is not None else Settings.from_env()
        if client is not None:
            self._client: Any | None = client
        elif self._settings.api_key:
            self._client = _create_client(self._settings)
        else:
            _logger.warning("gateway:disabled reason=missing_api_key")
            self._client = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def ensure_configured(self) -> None:
        """Raise :class:`ConfigurationError` when no credential is configured."""

        if self._client is None:
            raise ConfigurationError(_NOT_CONFIGURED_MSG)

    def extract(
        self, system_prompt: str, user_message: str, *, timeout: float | None = None
    ) -> Extraction:
        """Run one extraction call and return raw text plus usage.

        Raises :class:`ParsingFailure` when the model returns no text.
        """

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        completion = self._call(
            "extract",
            model=self._settings.parse_model,
            messages=messages,
            temperature=_PARSE_TEMPERATURE,
            max_tokens=_PARSE_MAX_TOKENS,
            timeout=timeout,
        )
        text = _content_from_completion(completion)
        if not text or not text.strip():
            raise ParsingFailure("No response from the language model. Please try again.")
        return Extraction(raw_text=text, usage=_usage_from_completion(completion))

    def converse(
        self, messages: Sequence[Mapping[str, str]], *, timeout: float | None = None
    ) -> Extraction:
        """Run one persona chat call over ``messages`` (history plus the new turn)."""

        payload = [{"role": "system", "content": CHAT_PERSONA}]
        payload.extend({"role": m["role"], "content": m["content"]} for m in messages)
        completion = self._call(
            "converse",
            model=self._settings.chat_model,
            messages=payload,
            temperature=_CHAT_TEMPERATURE,
            max_tokens=_CHAT_MAX_TOKENS,
            timeout=timeout,
        )
        text = _content_from_completion(completion) or ""
        return Extraction(raw_text=text, usage=_usage_from_completion(completion))

    def _call(
        self,
        op: str,
        *,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        timeout: float | None,
    ) -> Any:
        self.ensure_configured()
        effective_timeout = timeout if timeout is not None else self._settings.timeout_seconds
        max_attempts = 1 + max(0, self._settings.max_retries)
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                completion = self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=effective_timeout,
                )
            except openai.OpenAIError as e:
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= max_attempts or not _is_retryable(e):
                    _logger.error(
                        "gateway:%s_failed attempt=%d latency_ms=%.2f error=%s",
                        op,
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    raise _map_exception(e) from e
                _logger.warning(
                    "gateway:%s_retry attempt=%d latency_ms=%.2f error=%s",
                    op,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            dt_ms = (time.perf_counter() - t0) * 1000.0
            usage = _usage_from_completion(completion)
            _logger.info(
                (
                    "gateway:%s_done model=%s latency_ms=%.2f prompt_tokens=%d "
                    "completion_tokens=%d total_tokens=%d"
                ),
                op,
                model,
                dt_ms,
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.total_tokens,
            )
            return completion


def get_gateway(settings: Settings | None = None) -> ExtractionGateway:
    """Build a gateway from ``settings`` (or the environment)."""

    return ExtractionGateway(settings if settings is not None else Settings.from_env())


@functools.lru_cache(maxsize=1)
def default_gateway() -> ExtractionGateway:
    """Process-wide gateway built from the environment on first use.

    The OpenAI client (and its connection pool) is reused across requests.
    Call ``default_gateway.cache_clear()`` after changing the environment.
    """

    return get_gateway()


__all__ = [
    "ExtractionGateway",
    "default_gateway",
    "get_gateway",
]
