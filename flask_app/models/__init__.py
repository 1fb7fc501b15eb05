# flask_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .donation import Child, Donation, Project, donation_children
from .donor import DONOR_CONTACT_FIELDS, Donor
from .enums import DonationStatus, PaymentMethod, ProjectType

__all__ = [
    "db",
    "BaseModel",
    "Donor",
    "DONOR_CONTACT_FIELDS",
    "Donation",
    "Project",
    "Child",
    "donation_children",
    # Enums
    "DonationStatus",
    "PaymentMethod",
    "ProjectType",
]
