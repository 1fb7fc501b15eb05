"""
Error taxonomy for the Stripe payment importer.

Row-local errors (``RowError`` subclasses) are captured into the failed bucket
and never escape the orchestrator. ``FatalIOError`` aborts the whole run.
"""

from __future__ import annotations


class StripeImportError(Exception):
    """Base exception for importer failures."""


class RowError(StripeImportError):
    """A failure confined to a single CSV row."""

    def __init__(self, row_number: int, message: str) -> None:
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.message = message


class ParseError(RowError):
    """Raised when a row is missing a required field or holds a malformed value."""

    def __init__(self, row_number: int, field: str, message: str) -> None:
        super().__init__(row_number, f"{field}: {message}")
        self.field = field


class PersistenceError(RowError):
    """Raised when a row cannot be written to the database."""


class FatalIOError(StripeImportError):
    """Raised when the input file cannot be opened, decoded or tokenized."""
