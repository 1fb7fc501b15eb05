from __future__ import annotations

from datetime import datetime, timezone

import pytest

from flask_app.importer.adapters import as_utc
from flask_app.importer.errors import PersistenceError
from flask_app.importer.pipeline import DonorResolver, SQLAlchemyDonorStore, fill_missing_fields
from flask_app.models import Donor, db


@pytest.fixture
def resolver(app):
    return DonorResolver(SQLAlchemyDonorStore(db.session))


def test_resolver_creates_donor_when_email_is_new(resolver, make_row):
    row = make_row(email="new@example.org", name="New Donor", contact={"city": "Kansas City"})

    resolution = resolver.resolve(row)

    assert resolution.action == "create"
    donor = resolution.donor
    assert donor.id is not None
    assert donor.email == "new@example.org"
    assert donor.name == "New Donor"
    assert donor.city == "Kansas City"


def test_resolver_defaults_name_to_anonymous(resolver, make_row):
    resolution = resolver.resolve(make_row(email="quiet@example.org"))

    assert resolution.donor.name == "Anonymous"


def test_resolver_matches_email_case_insensitively(resolver, make_row, donor_factory):
    existing = donor_factory(email="Ada@Example.org")

    resolution = resolver.resolve(make_row(email="ada@example.org"))

    assert resolution.action == "match"
    assert resolution.donor.id == existing.id
    assert db.session.query(Donor).count() == 1


def test_resolver_follows_merge_pointer_to_canonical_donor(resolver, make_row, donor_factory):
    canonical = donor_factory(email="canonical@example.org", name="Canonical")
    stale = donor_factory(
        email="stale@example.org",
        name="Stale",
        merged_into_id=canonical.id,
        discarded_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )

    resolution = resolver.resolve(make_row(email="stale@example.org"))

    assert resolution.action == "follow_merge"
    assert resolution.donor.id == canonical.id
    assert resolution.matched_donor_id == stale.id


def test_resolver_fails_row_when_merge_target_is_missing(resolver, make_row, donor_factory):
    donor_factory(email="orphan@example.org", merged_into_id=9999)

    with pytest.raises(PersistenceError) as excinfo:
        resolver.resolve(make_row(email="orphan@example.org", row_number=4))

    assert excinfo.value.row_number == 4


def test_resolver_restores_discarded_unmerged_donor(resolver, make_row, donor_factory):
    donor = donor_factory(email="gone@example.org", discarded_at=datetime(2025, 1, 1, tzinfo=timezone.utc))

    resolution = resolver.resolve(make_row(email="gone@example.org"))

    assert resolution.action == "restore"
    assert resolution.donor.id == donor.id
    assert resolution.donor.discarded_at is None


def test_resolver_fills_blank_fields_without_clobbering(resolver, make_row, donor_factory):
    donor_factory(email="ada@example.org", name="Ada Lovelace", phone="555-0100")

    resolution = resolver.resolve(
        make_row(
            email="ada@example.org",
            name="A. Lovelace",
            customer_id="cus_123",
            contact={"phone": "555-9999", "city": "London"},
        )
    )

    donor = resolution.donor
    assert donor.name == "Ada Lovelace"
    assert donor.phone == "555-0100"
    assert donor.city == "London"
    assert donor.stripe_customer_id == "cus_123"
    assert set(resolution.filled_fields) == {"city", "stripe_customer_id"}


def test_resolver_keeps_latest_last_updated_at(resolver, make_row, donor_factory):
    recent = datetime(2025, 12, 1, tzinfo=timezone.utc)
    donor_factory(email="ada@example.org", last_updated_at=recent)

    older = resolver.resolve(make_row(email="ada@example.org", transaction_at=datetime(2025, 6, 1, tzinfo=timezone.utc)))
    assert as_utc(older.donor.last_updated_at) == recent

    newer_time = datetime(2026, 1, 15, tzinfo=timezone.utc)
    newer = resolver.resolve(make_row(email="ada@example.org", transaction_at=newer_time))
    assert as_utc(newer.donor.last_updated_at) == newer_time


def test_fill_missing_fields_treats_anonymous_name_as_blank():
    donor = Donor(email="a@example.org", name="Anonymous")

    assert fill_missing_fields(donor, {"name": "Real Name", "phone": ""}) == {"name": "Real Name"}
