"""Canonical Stripe payment export contract.

Maps the column names found in Stripe "Payments" CSV exports onto canonical
field names so the adapter can validate headers once, at file-open time, and
build fixed row records instead of looking fields up by raw header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Tuple

Normalizer = Callable[[object | None], object | None]


def _strip_string(value: object | None) -> object | None:
    if isinstance(value, str):
        return value.strip()
    return value


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical ingest field."""

    name: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()
    normalizer: Normalizer | None = _strip_string

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical header plus aliases for validation."""

        return (self.name, *self.aliases)


STRIPE_PAYMENT_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="charge_id",
        description="Processor charge identifier; the idempotency key for re-imports.",
        required=True,
        aliases=("Transaction ID", "id", "Charge ID"),
    ),
    FieldSpec(
        name="amount",
        description="Payment amount in major currency units (e.g. 25.00).",
        required=True,
        aliases=("Amount",),
    ),
    FieldSpec(
        name="created_at",
        description="Transaction timestamp.",
        required=True,
        aliases=("Created Formatted", "Created (UTC)", "Created date (UTC)", "Created"),
    ),
    FieldSpec(
        name="email",
        description="Customer email address.",
        aliases=("Cust Email", "Customer Email"),
    ),
    FieldSpec(
        name="billing_email",
        description="Billing details email, used when the customer email is blank.",
        aliases=("Billing Details Email",),
    ),
    FieldSpec(
        name="name",
        description="Payer display name.",
        aliases=("Billing Details Name", "Customer Name"),
    ),
    FieldSpec(
        name="status",
        description="Processor payment status (succeeded, failed, refunded, canceled).",
        aliases=("Status",),
    ),
    FieldSpec(
        name="description",
        description="Free-text payment description.",
        aliases=("Description",),
    ),
    FieldSpec(
        name="plan_nickname",
        description="Subscription plan nickname; preferred over description for designations.",
        aliases=("Cust Subscription Data Plan Nickname",),
    ),
    FieldSpec(
        name="subscription_id",
        description="Processor subscription identifier.",
        aliases=("Cust Subscription Data ID", "Subscription ID"),
    ),
    FieldSpec(
        name="customer_id",
        description="Processor customer identifier.",
        aliases=("Cust ID", "Customer ID"),
    ),
    FieldSpec(
        name="invoice_id",
        description="Processor invoice identifier.",
        aliases=("Invoice ID",),
    ),
    FieldSpec(
        name="phone",
        description="Customer phone number.",
        aliases=("Cust Phone", "Customer Phone"),
    ),
    FieldSpec(
        name="address_line1",
        description="Billing street address.",
        aliases=("Billing Details Address Line 1",),
    ),
    FieldSpec(
        name="address_line2",
        description="Additional billing address line.",
        aliases=("Billing Details Address Line 2",),
    ),
    FieldSpec(
        name="city",
        description="Billing city.",
        aliases=("Billing Details Address City",),
    ),
    FieldSpec(
        name="state",
        description="Billing state or region.",
        aliases=("Billing Details Address State", "Billing Detail Address State"),
    ),
    FieldSpec(
        name="zip_code",
        description="Billing postal code.",
        aliases=("Billing Details Address Postal Code",),
    ),
    FieldSpec(
        name="country",
        description="Billing country.",
        aliases=("Billing Details Address Country",),
    ),
)

# At least one of these must be present in the header row.
EMAIL_FIELDS: Tuple[str, ...] = ("email", "billing_email")


def get_stripe_field_specs() -> Tuple[FieldSpec, ...]:
    """Return the canonical Stripe payment field specifications."""

    return STRIPE_PAYMENT_FIELDS


def get_stripe_required_headers() -> Tuple[str, ...]:
    """Headers that must be present in every Stripe CSV import."""

    return tuple(field.name for field in STRIPE_PAYMENT_FIELDS if field.required)


def get_stripe_alias_map() -> Mapping[str, str]:
    """Map normalized header tokens to canonical names (includes aliases)."""

    mapping: dict[str, str] = {}
    for field in STRIPE_PAYMENT_FIELDS:
        for header in field.headers():
            mapping[normalize_header(header)] = field.name
    return mapping


def normalize_header(header: str) -> str:
    """Normalize a CSV header for comparison (case/space/punctuation agnostic)."""

    token = header.strip().lower()
    for char in (" ", "-", ".", "(", ")"):
        token = token.replace(char, "_")
    while "__" in token:
        token = token.replace("__", "_")
    return token.strip("_")


def missing_email_headers(canonical_headers: Iterable[str]) -> bool:
    """Return True when none of the accepted email columns is present."""

    present = set(canonical_headers)
    return not any(field in present for field in EMAIL_FIELDS)
