from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from flask_app.importer.adapters import CSVHeaderError
from flask_app.importer.errors import FatalIOError
from flask_app.importer.pipeline import (
    DuplicateSubscriptionPolicy,
    ImportResult,
    RowResult,
    SQLAlchemyDonationStore,
    StripeCSVImporter,
    format_summary,
    policy_from_config,
)
from flask_app.models import Child, Donation, DonationStatus, Donor, db


def _import(path, **kwargs) -> ImportResult:
    return StripeCSVImporter(db.session, **kwargs).import_file(path)


def test_new_rows_create_one_donation_each(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,cus_1,ada@example.org,Ada,,,",
        "ch_2,2025-10-02,40.00,succeeded,,cus_2,grace@example.org,Grace,,,",
    )

    result = _import(path)

    assert result.succeeded_count == 2
    assert [item.row for item in result.succeeded] == [1, 2]
    assert db.session.query(Donation).count() == 2
    assert db.session.query(Donor).count() == 2
    donation = db.session.query(Donation).filter_by(stripe_charge_id="ch_1").one()
    assert donation.donor.email == "ada@example.org"


def test_reimporting_same_file_skips_every_row(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,cus_1,ada@example.org,Ada,,,",
        "ch_2,2025-10-02,40.00,succeeded,,cus_2,grace@example.org,Grace,,,",
    )

    first = _import(path)
    second = _import(path)

    assert second.succeeded_count == 0
    assert second.skipped_count == first.succeeded_count == 2
    assert db.session.query(Donation).count() == 2


def test_merged_donor_email_resolves_to_canonical(app, stripe_csv, donor_factory):
    canonical = donor_factory(email="canonical@example.org")
    donor_factory(
        email="old@example.org",
        merged_into_id=canonical.id,
        discarded_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    path = stripe_csv("ch_1,2025-10-01,25.00,succeeded,,,OLD@example.org,,,,")

    result = _import(path)

    assert result.succeeded[0].donor_id == canonical.id
    assert db.session.query(Donation).one().donor_id == canonical.id


def test_unparseable_amount_fails_row_without_writes(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,,",
        "ch_2,2025-10-01,abc,succeeded,,,bad@example.org,Bad,,,",
        "ch_3,2025-10-01,30.00,succeeded,,,grace@example.org,Grace,,,",
    )

    result = _import(path)

    assert result.failed_count == 1
    failure = result.failed[0]
    assert failure.row == 2
    assert failure.charge_id == "ch_2"
    assert "amount" in failure.message
    assert db.session.query(Donor).filter_by(email="bad@example.org").count() == 0
    assert db.session.query(Donation).filter_by(stripe_charge_id="ch_2").count() == 0
    assert result.succeeded_count == 2


def test_overlapping_subscriptions_land_in_needs_attention(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,sub_a,",
        "ch_2,2025-10-05,25.00,succeeded,,,ada@example.org,Ada,,sub_b,",
    )

    result = _import(path)

    assert result.succeeded_count == 1
    assert result.needs_attention_count == 1
    flagged = result.needs_attention[0]
    assert flagged.row == 2
    assert flagged.message
    assert db.session.query(Donation).count() == 2
    donation = db.session.get(Donation, flagged.donation_id)
    assert donation.duplicate_subscription_detected is True
    assert donation.status == DonationStatus.NEEDS_ATTENTION


def test_bucket_counts_always_sum_to_data_rows(app, stripe_csv, donor_factory, donation_factory):
    donor = donor_factory(email="ada@example.org")
    donation_factory(donor, "ch_existing", amount="25.00")
    path = stripe_csv(
        "ch_existing,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,,",
        "ch_new,2025-10-02,10.00,succeeded,,,ada@example.org,Ada,,,",
        "ch_bad,not-a-date,10.00,succeeded,,,ada@example.org,Ada,,,",
        ",,,,,,,,,,",
        "ch_odd,2025-10-03,10.00,disputed,,,ada@example.org,Ada,,,",
    )

    result = _import(path)

    assert result.counts() == {
        "succeeded_count": 1,
        "skipped_count": 1,
        "failed_count": 2,
        "needs_attention_count": 1,
        "total_rows": 5,
    }
    assert [item.row for item in result.failed] == [3, 4]


def test_persistence_errors_are_captured_per_row(app, stripe_csv, monkeypatch):
    original_create = SQLAlchemyDonationStore.create

    def _create(self, **attributes):
        if attributes.get("stripe_charge_id") == "ch_2":
            raise IntegrityError("INSERT INTO donations", {}, Exception("constraint failed"))
        return original_create(self, **attributes)

    monkeypatch.setattr(SQLAlchemyDonationStore, "create", _create)
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,,",
        "ch_2,2025-10-02,25.00,succeeded,,,newcomer@example.org,New,,,",
        "ch_3,2025-10-03,25.00,succeeded,,,ada@example.org,Ada,,,",
    )

    result = _import(path)

    assert result.succeeded_count == 2
    assert result.failed[0].row == 2
    assert result.failed[0].message == "constraint failed"
    # The donor created for the failed row was rolled back with it.
    assert db.session.query(Donor).filter_by(email="newcomer@example.org").count() == 0


def test_invalid_header_aborts_before_any_write(app, stripe_csv):
    path = stripe_csv("ch_1,25.00", header="id,Amount")

    with pytest.raises(CSVHeaderError):
        _import(path)

    assert db.session.query(Donor).count() == 0


def test_malformed_csv_aborts_before_any_write(app, stripe_csv):
    oversized = "x" * 200_000
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,,",
        f"ch_2,2025-10-01,25.00,succeeded,{oversized},,ada@example.org,Ada,,,",
    )

    with pytest.raises(FatalIOError):
        _import(path)

    assert db.session.query(Donation).count() == 0


def test_sponsorship_nickname_links_children(app, stripe_csv):
    path = stripe_csv("ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,Monthly Sponsorship Donation for Maria,,")

    _import(path)

    donation = db.session.query(Donation).one()
    assert [child.name for child in donation.children] == ["Maria"]
    assert db.session.query(Child).count() == 1


def test_custom_policy_controls_duplicate_window(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,sub_a,",
        "ch_2,2025-10-20,25.00,succeeded,,,ada@example.org,Ada,,sub_b,",
    )

    result = _import(path, policy=DuplicateSubscriptionPolicy(window_days=7))

    assert result.needs_attention_count == 0
    assert result.succeeded_count == 2


def test_policy_from_config_reads_importer_settings():
    policy = policy_from_config(
        {
            "IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS": "14",
            "IMPORTER_DUPLICATE_SUBSCRIPTION_INCLUDE_CANCELED": True,
        }
    )

    assert policy.window_days == 14
    assert policy.include_canceled is True


def test_result_payloads_and_summary():
    result = ImportResult(
        succeeded=[RowResult(row=1, charge_id="ch_1")],
        failed=[RowResult(row=2, charge_id="ch_2", message="amount: is required")],
        needs_attention=[RowResult(row=3, charge_id="ch_3", message="Possible duplicate subscription")],
    )

    assert result.as_response_payload() == {
        "success_count": 1,
        "skipped_count": 0,
        "failed_count": 1,
        "needs_attention_count": 1,
        "errors": [{"row": 2, "error": "amount: is required"}],
        "needs_attention": [{"row": 3, "reason": "Possible duplicate subscription"}],
    }
    summary = format_summary(result, source="payments.csv")
    assert "Stripe import of payments.csv finished." in summary
    assert "! row 2: amount: is required" in summary


def test_oversized_amount_fails_only_its_row(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,,",
        "ch_2,2025-10-02,1e30,succeeded,,,ada@example.org,Ada,,,",
        "ch_3,2025-10-03,30.00,succeeded,,,ada@example.org,Ada,,,",
    )

    result = _import(path)

    assert result.succeeded_count == 2
    assert result.failed_count == 1
    assert result.failed[0].row == 2
    assert "amount" in result.failed[0].message
    assert db.session.query(Donation).filter_by(stripe_charge_id="ch_2").count() == 0


def test_reimporting_failed_charge_beside_other_subscription_is_idempotent(app, stripe_csv):
    path = stripe_csv(
        "ch_1,2025-10-01,25.00,succeeded,,,ada@example.org,Ada,,sub_a,",
        "ch_2,2025-10-05,25.00,failed,,,ada@example.org,Ada,,sub_b,",
    )

    first = _import(path)
    second = _import(path)

    assert first.succeeded_count == 2
    assert first.needs_attention_count == 0
    assert second.counts()["succeeded_count"] == 0
    assert second.skipped_count == 2
    donation = db.session.query(Donation).filter_by(stripe_charge_id="ch_2").one()
    assert donation.status == DonationStatus.FAILED
    assert donation.duplicate_subscription_detected is False
