"""
Repository interfaces the importer reads and writes through.

The orchestrator receives stores explicitly instead of querying models
ambiently, so tests and other callers can swap the persistence layer.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Iterable, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flask_app.models import Donation, DonationStatus, Donor


class DonorStore(Protocol):
    def find_by_email(self, email: str) -> Donor | None: ...

    def get(self, donor_id: int) -> Donor | None: ...

    def create(self, **attributes: Any) -> Donor: ...

    def update(self, donor: Donor, **attributes: Any) -> Donor: ...


class DonationStore(Protocol):
    def find_by_charge_id(self, charge_id: str) -> Donation | None: ...

    def create(self, **attributes: Any) -> Donation: ...

    def update(self, donation: Donation, **attributes: Any) -> Donation: ...

    def find_overlapping_subscriptions(
        self,
        *,
        donor_id: int,
        subscription_id: str,
        around: date,
        window_days: int,
        statuses: Iterable[DonationStatus],
    ) -> Sequence[Donation]: ...


class SQLAlchemyDonorStore:
    """``DonorStore`` backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_email(self, email: str) -> Donor | None:
        stmt = select(Donor).where(func.lower(Donor.email) == email.strip().lower()).order_by(Donor.id)
        return self.session.execute(stmt).scalars().first()

    def get(self, donor_id: int) -> Donor | None:
        return self.session.get(Donor, donor_id)

    def create(self, **attributes: Any) -> Donor:
        donor = Donor(**attributes)
        self.session.add(donor)
        self.session.flush()
        return donor

    def update(self, donor: Donor, **attributes: Any) -> Donor:
        for key, value in attributes.items():
            setattr(donor, key, value)
        self.session.flush()
        return donor


class SQLAlchemyDonationStore:
    """``DonationStore`` backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_charge_id(self, charge_id: str) -> Donation | None:
        stmt = select(Donation).where(Donation.stripe_charge_id == charge_id)
        return self.session.execute(stmt).scalars().first()

    def create(self, **attributes: Any) -> Donation:
        donation = Donation(**attributes)
        self.session.add(donation)
        self.session.flush()
        return donation

    def update(self, donation: Donation, **attributes: Any) -> Donation:
        for key, value in attributes.items():
            setattr(donation, key, value)
        self.session.flush()
        return donation

    def find_overlapping_subscriptions(
        self,
        *,
        donor_id: int,
        subscription_id: str,
        around: date,
        window_days: int,
        statuses: Iterable[DonationStatus],
    ) -> Sequence[Donation]:
        """
        Donations for ``donor_id`` on a different subscription dated within
        ``window_days`` either side of ``around``.
        """

        window = timedelta(days=window_days)
        stmt = (
            select(Donation)
            .where(
                Donation.donor_id == donor_id,
                Donation.stripe_subscription_id.is_not(None),
                Donation.stripe_subscription_id != subscription_id,
                Donation.status.in_(list(statuses)),
                Donation.date > around - window,
                Donation.date < around + window,
            )
            .order_by(Donation.date, Donation.id)
        )
        return self.session.execute(stmt).scalars().all()
