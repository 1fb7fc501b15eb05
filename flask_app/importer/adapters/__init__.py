"""Importer adapter interfaces and concrete implementations."""

from __future__ import annotations

from .stripe_csv import (
    CSVHeaderError,
    HeaderValidationResult,
    RawRecord,
    StripeCSVAdapter,
    StripePaymentRow,
    as_utc,
    decode_csv_bytes,
    map_processor_status,
    normalize_email,
    parse_amount,
    parse_timestamp,
)

__all__ = [
    "CSVHeaderError",
    "HeaderValidationResult",
    "RawRecord",
    "StripeCSVAdapter",
    "StripePaymentRow",
    "as_utc",
    "decode_csv_bytes",
    "map_processor_status",
    "normalize_email",
    "parse_amount",
    "parse_timestamp",
]
