# flask_app/models/donor.py
"""
Donor identity records.

Donors are matched by lower-cased email, soft-discarded rather than deleted,
and may point at a canonical donor through ``merged_into_id`` once merged.
"""

from .base import BaseModel, db

# Contact fields an import may fill in when the donor record has them blank.
DONOR_CONTACT_FIELDS = (
    "name",
    "phone",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "country",
    "stripe_customer_id",
)


class Donor(BaseModel):
    """A unique giving entity identified by email."""

    __tablename__ = "donors"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False, default="Anonymous")

    phone = db.Column(db.String(50), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    stripe_customer_id = db.Column(db.String(100), nullable=True, index=True)

    last_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    merged_into_id = db.Column(db.Integer, db.ForeignKey("donors.id"), nullable=True, index=True)

    merged_into = db.relationship("Donor", remote_side=[id], foreign_keys=[merged_into_id])
    donations = db.relationship("Donation", back_populates="donor")

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    @property
    def is_merged(self) -> bool:
        return self.merged_into_id is not None

    def __repr__(self):
        return f"<Donor {self.email}>"
