"""
Deterministic donor matching for payment imports.

Donors are matched on case-insensitive exact email. A matched donor that was
merged away resolves to its canonical donor; merges flatten chains at merge
time so a single hop is always enough.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from flask_app.importer.adapters import StripePaymentRow, as_utc
from flask_app.importer.errors import PersistenceError
from flask_app.models import DONOR_CONTACT_FIELDS, Donor

from .stores import DonorStore

logger = logging.getLogger(__name__)

DEFAULT_DONOR_NAME = "Anonymous"


@dataclass(frozen=True)
class DonorResolution:
    """
    Outcome of resolving a row's donor.

    `action` values:
    - ``create``: no donor had this email; a new one was created.
    - ``match``: an active donor matched directly.
    - ``follow_merge``: the match was merged away; the canonical donor is returned.
    - ``restore``: the match was soft-discarded without a merge and has been restored.
    """

    action: Literal["create", "match", "follow_merge", "restore"]
    donor: Donor
    matched_donor_id: int | None = None
    filled_fields: tuple[str, ...] = ()


def _is_blank(value: object | None) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def incoming_contact_fields(row: StripePaymentRow) -> dict[str, str]:
    """Collect the donor contact attributes a payment row supplies."""

    fields: dict[str, str] = dict(row.contact)
    if row.name:
        fields["name"] = row.name
    if row.customer_id:
        fields["stripe_customer_id"] = row.customer_id
    return fields


def fill_missing_fields(donor: Donor, incoming: dict[str, str]) -> dict[str, str]:
    """
    Return the subset of ``incoming`` that fills blank donor fields.

    Populated fields are never overwritten, and blank incoming values never
    clear anything. A placeholder "Anonymous" name counts as blank.
    """

    updates: dict[str, str] = {}
    for field_name in DONOR_CONTACT_FIELDS:
        value = incoming.get(field_name)
        if _is_blank(value):
            continue
        current = getattr(donor, field_name)
        if field_name == "name" and current == DEFAULT_DONOR_NAME:
            current = None
        if _is_blank(current):
            updates[field_name] = value
    return updates


def _latest(current: datetime | None, candidate: datetime) -> datetime:
    if current is None:
        return candidate
    return max(as_utc(current), candidate)


class DonorResolver:
    """Find-or-create donors for incoming payment rows."""

    def __init__(self, store: DonorStore):
        self.store = store

    def resolve(self, row: StripePaymentRow) -> DonorResolution:
        incoming = incoming_contact_fields(row)
        existing = self.store.find_by_email(row.email)

        if existing is None:
            donor = self.store.create(
                email=row.email,
                name=incoming.pop("name", None) or DEFAULT_DONOR_NAME,
                last_updated_at=row.transaction_at,
                **incoming,
            )
            logger.debug("Created donor %s for row %s", donor.id, row.row_number)
            return DonorResolution(action="create", donor=donor)

        action: Literal["match", "follow_merge", "restore"] = "match"
        donor = existing
        if existing.merged_into_id is not None:
            canonical = self.store.get(existing.merged_into_id)
            if canonical is None:
                raise PersistenceError(
                    row.row_number,
                    f"donor {existing.id} is merged into missing donor {existing.merged_into_id}",
                )
            donor = canonical
            action = "follow_merge"

        updates: dict[str, object] = dict(fill_missing_fields(donor, incoming))
        if donor.discarded_at is not None and donor.merged_into_id is None:
            updates["discarded_at"] = None
            action = "restore"
            logger.info("Restoring discarded donor %s matched by email", donor.id)
        updates["last_updated_at"] = _latest(donor.last_updated_at, row.transaction_at)

        filled = tuple(key for key in updates if key in DONOR_CONTACT_FIELDS)
        self.store.update(donor, **updates)
        return DonorResolution(
            action=action,
            donor=donor,
            matched_donor_id=existing.id,
            filled_fields=filled,
        )
