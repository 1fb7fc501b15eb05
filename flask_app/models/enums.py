# flask_app/models/enums.py
"""
Enumerations shared by donation tracker models.
"""

import enum


class DonationStatus(str, enum.Enum):
    """Lifecycle state of a donation as reported by the payment processor."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    NEEDS_ATTENTION = "needs_attention"


class PaymentMethod(str, enum.Enum):
    STRIPE = "stripe"
    CHECK = "check"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class ProjectType(str, enum.Enum):
    GENERAL = "general"
    CAMPAIGN = "campaign"
    SPONSORSHIP = "sponsorship"
