"""Shared fixtures for route tests"""

import io

import pytest


@pytest.fixture
def csv_upload(stripe_csv):
    """Build multipart form data carrying a Stripe export"""

    def _build(*rows, filename="payments.csv", raw=None, **kwargs):
        payload = raw if raw is not None else stripe_csv(*rows, **kwargs).read_bytes()
        return {"file": (io.BytesIO(payload), filename)}

    return _build
