from __future__ import annotations


class DatabaseUnavailableError(RuntimeError):
    """Raised when the SQLite store cannot be created or opened."""


class DocumentQueryError(RuntimeError):
    """Raised when the open-document query fails. Safe to retry on the next tick."""


class ForegroundQueryError(RuntimeError):
    """Raised when the foreground process cannot be determined."""


__all__ = ["DatabaseUnavailableError", "DocumentQueryError", "ForegroundQueryError"]
