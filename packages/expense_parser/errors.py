"""Error kinds and exceptions raised inside the intake pipeline.

Every failure the pipeline can report is a :class:`ParserError` subclass. The
public entry points in :mod:`expense_parser.api` catch these and turn them
into :class:`~expense_parser.models.Failure` values; storage errors and
programmer errors (``ValueError``) are not wrapped.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Failure, UsageExchangeRecord


class ErrorKind(StrEnum):
    CONFIGURATION_ERROR = "ConfigurationError"
    NO_CATEGORIES_CONFIGURED = "NoCategoriesConfigured"
    PARSING_FAILURE = "ParsingFailure"
    VALIDATION_ERROR = "ValidationError"
    CATEGORY_NOT_FOUND = "CategoryNotFound"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    UPSTREAM_RATE_LIMITED = "UpstreamRateLimited"


class ParserError(Exception):
    """Base class for pipeline failures that map to an :class:`ErrorKind`."""

    kind: ErrorKind = ErrorKind.PARSING_FAILURE

    def __init__(self, message: str, *, missing_categories: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.missing_categories: tuple[str, ...] = tuple(missing_categories or ())

    def to_failure(self, usage: UsageExchangeRecord | None = None) -> Failure:
        from .models import Failure

        return Failure(
            error=self.kind,
            message=self.message,
            missing_categories=self.missing_categories,
            usage=usage,
        )


class ConfigurationError(ParserError):
    kind = ErrorKind.CONFIGURATION_ERROR


class NoCategoriesConfigured(ParserError):
    kind = ErrorKind.NO_CATEGORIES_CONFIGURED


class ParsingFailure(ParserError):
    kind = ErrorKind.PARSING_FAILURE


class DraftValidationError(ParserError):
    """A returned transaction object is missing required data."""

    kind = ErrorKind.VALIDATION_ERROR


class CategoryNotFound(ParserError):
    kind = ErrorKind.CATEGORY_NOT_FOUND


class UpstreamUnavailable(ParserError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class UpstreamTimeout(ParserError):
    kind = ErrorKind.UPSTREAM_TIMEOUT


class UpstreamRateLimited(ParserError):
    kind = ErrorKind.UPSTREAM_RATE_LIMITED


__all__ = [
    "CategoryNotFound",
    "ConfigurationError",
    "DraftValidationError",
    "ErrorKind",
    "NoCategoriesConfigured",
    "ParserError",
    "ParsingFailure",
    "UpstreamRateLimited",
    "UpstreamTimeout",
    "UpstreamUnavailable",
]
