# conftest.py

import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# Set testing environment BEFORE importing app so app.py uses TestingConfig
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app
from flask_app.models import Donation, DonationStatus, Donor, PaymentMethod, db

STRIPE_HEADER = (
    "id,Created date (UTC),Amount,Status,Description,Customer ID,Customer Email,"
    "Customer Name,Plan Nickname,Subscription ID,Invoice ID"
)


@pytest.fixture(scope="function")
def app(tmp_path):
    """Create and configure a test Flask application with a clean database"""
    flask_app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "IMPORTER_ENABLED": True,
            "IMPORTER_UPLOAD_DIR": str(tmp_path / "uploads"),
            "IMPORTER_MAX_UPLOAD_MB": 25,
            "IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS": 31,
            "IMPORTER_DUPLICATE_SUBSCRIPTION_INCLUDE_CANCELED": False,
            "MONITORING_ENABLED": False,
        }
    )

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test runner for the Flask application's CLI commands"""
    return app.test_cli_runner()


@pytest.fixture
def stripe_csv(tmp_path):
    """Write a Stripe export with the standard header and return its path"""

    def _write(*rows, header=STRIPE_HEADER, name="payments.csv"):
        path = tmp_path / name
        path.write_text("\n".join((header, *rows)) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def donor_factory(app):
    """Persist donors with sensible defaults"""

    def _create(email="donor@example.org", name="Ada Donor", **kwargs):
        donor = Donor(email=email, name=name, **kwargs)
        db.session.add(donor)
        db.session.commit()
        return donor

    return _create


@pytest.fixture
def donation_factory(app):
    """Persist Stripe donations for an existing donor"""

    def _create(donor, charge_id, *, amount="25.00", date=None, status=DonationStatus.SUCCEEDED, **kwargs):
        donation = Donation(
            donor_id=donor.id,
            amount=Decimal(amount),
            date=date or datetime(2025, 10, 1, tzinfo=timezone.utc).date(),
            status=status,
            payment_method=PaymentMethod.STRIPE,
            stripe_charge_id=charge_id,
            **kwargs,
        )
        db.session.add(donation)
        db.session.commit()
        return donation

    return _create
