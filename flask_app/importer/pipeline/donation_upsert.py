"""
Idempotent donation upserts keyed by the processor charge id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from flask_app.importer.adapters import StripePaymentRow
from flask_app.models import Donation, DonationStatus, Donor, PaymentMethod

from .designation import DesignationResolver
from .stores import DonationStore

logger = logging.getLogger(__name__)

MINOR_UNIT = Decimal("0.01")

RowOutcome = Literal["succeeded", "skipped", "needs_attention"]


@dataclass(frozen=True)
class DuplicateSubscriptionPolicy:
    """
    Rules for flagging possible double-billing across subscriptions.

    ``window_days`` is how close (either side) another subscription's donation
    must be dated to count as overlapping; ``0`` disables the check.
    """

    window_days: int = 31
    include_canceled: bool = False

    @property
    def enabled(self) -> bool:
        return self.window_days > 0

    def active_statuses(self) -> tuple[DonationStatus, ...]:
        if self.include_canceled:
            return (DonationStatus.SUCCEEDED, DonationStatus.CANCELED, DonationStatus.REFUNDED)
        return (DonationStatus.SUCCEEDED,)


@dataclass(frozen=True)
class DonationDecision:
    """
    Resolution outcome for a payment row.

    `action` values:
    - ``create``: no donation had this charge id; one was inserted.
    - ``update``: the existing donation differed from the row and was updated.
    - ``skip``: the existing donation already matches; nothing was written.
    """

    action: Literal["create", "update", "skip"]
    outcome: RowOutcome
    donation: Donation
    reason: str | None = None


def to_minor_units(amount: Decimal | float | int | str) -> Decimal:
    return Decimal(str(amount)).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def _expected_status(donation: Donation | None, row: StripePaymentRow) -> DonationStatus:
    # A donation flagged as a duplicate subscription stays flagged while the processor reports success.
    if donation is not None and donation.duplicate_subscription_detected and row.status == DonationStatus.SUCCEEDED:
        return DonationStatus.NEEDS_ATTENTION
    return row.status


def donation_matches_row(donation: Donation, row: StripePaymentRow) -> bool:
    """True when re-importing ``row`` would not change ``donation``."""

    return (
        to_minor_units(donation.amount) == to_minor_units(row.amount)
        and donation.date == row.transaction_date
        and donation.status == _expected_status(donation, row)
    )


def describe_overlap(row: StripePaymentRow, overlapping: list[Donation]) -> str:
    first = overlapping[0]
    return (
        f"Possible duplicate subscription: {row.subscription_id} overlaps subscription "
        f"{first.stripe_subscription_id} (donation {first.id} on {first.date.isoformat()})"
    )


class DonationUpserter:
    """Create, update or skip the donation for a payment row."""

    def __init__(
        self,
        store: DonationStore,
        *,
        designations: DesignationResolver | None = None,
        policy: DuplicateSubscriptionPolicy | None = None,
    ):
        self.store = store
        self.designations = designations
        self.policy = policy or DuplicateSubscriptionPolicy()

    def upsert(self, donor: Donor, row: StripePaymentRow) -> DonationDecision:
        existing = self.store.find_by_charge_id(row.charge_id)
        if existing is not None:
            return self._reconcile(existing, row)
        return self._create(donor, row)

    def _reconcile(self, donation: Donation, row: StripePaymentRow) -> DonationDecision:
        if donation_matches_row(donation, row):
            return DonationDecision(action="skip", outcome="skipped", donation=donation)

        updates: dict[str, object] = {
            "amount": row.amount,
            "date": row.transaction_date,
            "status": _expected_status(donation, row),
        }
        if not donation.duplicate_subscription_detected:
            updates["needs_attention_reason"] = row.status_reason
        self.store.update(donation, **updates)
        logger.info(
            "Updated donation %s from charge %s",
            donation.id,
            row.charge_id,
            extra={"importer_row": row.row_number, "importer_charge_id": row.charge_id},
        )
        return DonationDecision(action="update", outcome="succeeded", donation=donation)

    def _find_overlap(self, donor: Donor, row: StripePaymentRow) -> list[Donation]:
        # Only a settled charge can double-bill a donor.
        if row.status != DonationStatus.SUCCEEDED:
            return []
        if not row.subscription_id or not self.policy.enabled or donor.id is None:
            return []
        return list(
            self.store.find_overlapping_subscriptions(
                donor_id=donor.id,
                subscription_id=row.subscription_id,
                around=row.transaction_date,
                window_days=self.policy.window_days,
                statuses=self.policy.active_statuses(),
            )
        )

    def _create(self, donor: Donor, row: StripePaymentRow) -> DonationDecision:
        overlapping = self._find_overlap(donor, row)
        status = row.status
        reason = row.status_reason
        outcome: RowOutcome = "needs_attention" if reason else "succeeded"
        if overlapping:
            status = DonationStatus.NEEDS_ATTENTION
            reason = describe_overlap(row, overlapping)
            outcome = "needs_attention"

        attributes: dict[str, object] = {
            "donor_id": donor.id,
            "amount": row.amount,
            "date": row.transaction_date,
            "status": status,
            "description": row.description or row.plan_nickname,
            "payment_method": PaymentMethod.STRIPE,
            "stripe_charge_id": row.charge_id,
            "stripe_subscription_id": row.subscription_id,
            "stripe_customer_id": row.customer_id,
            "stripe_invoice_id": row.invoice_id,
            "duplicate_subscription_detected": bool(overlapping),
            "needs_attention_reason": reason,
        }
        if self.designations is not None:
            designation = self.designations.resolve(row.designation_text)
            attributes["project"] = designation.project
            attributes["children"] = designation.children

        donation = self.store.create(**attributes)
        if overlapping:
            logger.warning(
                "Flagged donation %s for review: %s",
                donation.id,
                reason,
                extra={"importer_row": row.row_number, "importer_charge_id": row.charge_id},
            )
        return DonationDecision(action="create", outcome=outcome, donation=donation, reason=reason)
