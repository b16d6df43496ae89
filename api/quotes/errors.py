"""
Storage error kinds.

Callers branch on the class, never on the message:

    try:
        await storage.delete(quote_id)
    except QuoteNotFoundError:
        ...

The driver error, when there is one, is chained as `__cause__`.
"""

from __future__ import annotations


class QuoteStorageError(RuntimeError):
    default_message = "quote storage error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class QuoteNotFoundError(QuoteStorageError):
    default_message = "no quote was found"


class ExecFailureError(QuoteStorageError):
    default_message = "db exec error"


class QueryFailureError(QuoteStorageError):
    default_message = "db query error"
