"""Canonical ingest contract helpers for importer adapters."""

from __future__ import annotations

from .stripe import (
    EMAIL_FIELDS,
    STRIPE_PAYMENT_FIELDS,
    FieldSpec,
    get_stripe_alias_map,
    get_stripe_field_specs,
    get_stripe_required_headers,
    missing_email_headers,
    normalize_header,
)

__all__ = [
    "EMAIL_FIELDS",
    "FieldSpec",
    "STRIPE_PAYMENT_FIELDS",
    "get_stripe_alias_map",
    "get_stripe_field_specs",
    "get_stripe_required_headers",
    "missing_email_headers",
    "normalize_header",
]
