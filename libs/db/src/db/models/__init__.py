"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the intake/usage models used by ``expense_parser``.
"""

from .intake import Base, NlCategory, NlUsageDaily, NlUsageLog

__all__ = [
    "Base",
    "NlCategory",
    "NlUsageDaily",
    "NlUsageLog",
]
