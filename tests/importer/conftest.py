from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from flask_app.importer.adapters import StripePaymentRow
from flask_app.models import DonationStatus


@pytest.fixture
def make_row():
    """Build validated payment rows without going through the CSV adapter."""

    def _make_row(
        charge_id: str = "ch_001",
        *,
        row_number: int = 1,
        amount: str = "25.00",
        transaction_at: datetime | None = None,
        email: str = "donor@example.org",
        status: DonationStatus = DonationStatus.SUCCEEDED,
        **kwargs,
    ) -> StripePaymentRow:
        return StripePaymentRow(
            row_number=row_number,
            charge_id=charge_id,
            amount=Decimal(amount),
            transaction_at=transaction_at or datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc),
            email=email,
            status=status,
            **kwargs,
        )

    return _make_row
