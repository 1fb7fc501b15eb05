# flask_app/models/donation.py
"""
Donation records and their designations (projects and sponsored children).
"""

from sqlalchemy import CheckConstraint, Enum, Index

from .base import BaseModel, db
from .enums import DonationStatus, PaymentMethod, ProjectType

donation_children = db.Table(
    "donation_children",
    db.Column("donation_id", db.Integer, db.ForeignKey("donations.id", ondelete="CASCADE"), primary_key=True),
    db.Column("child_id", db.Integer, db.ForeignKey("children.id"), primary_key=True),
)


class Donation(BaseModel):
    """One financial transaction attributed to a donor."""

    __tablename__ = "donations"

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey("donors.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(
        Enum(DonationStatus, name="donation_status_enum"),
        nullable=False,
        default=DonationStatus.SUCCEEDED,
        index=True,
    )
    description = db.Column(db.Text, nullable=True)
    payment_method = db.Column(
        Enum(PaymentMethod, name="payment_method_enum"),
        nullable=True,
    )

    # Payment processor identifiers; the charge id is the re-import idempotency key
    stripe_charge_id = db.Column(db.String(255), nullable=True, unique=True)
    stripe_subscription_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_invoice_id = db.Column(db.String(255), nullable=True)

    duplicate_subscription_detected = db.Column(db.Boolean, nullable=False, default=False)
    needs_attention_reason = db.Column(db.Text, nullable=True)

    donor = db.relationship("Donor", back_populates="donations")
    project = db.relationship("Project", back_populates="donations")
    children = db.relationship("Child", secondary=donation_children, back_populates="donations")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_donations_amount_non_negative"),
        Index("idx_donations_donor_subscription", "donor_id", "stripe_subscription_id"),
    )

    def __repr__(self):
        return f"<Donation {self.id} {self.amount} {self.status}>"


class Project(BaseModel):
    """Designation for donations that do not sponsor a specific child."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    project_type = db.Column(
        Enum(ProjectType, name="project_type_enum"),
        nullable=False,
        default=ProjectType.GENERAL,
    )
    system = db.Column(db.Boolean, nullable=False, default=False, index=True)

    donations = db.relationship("Donation", back_populates="project")

    def __repr__(self):
        return f"<Project {self.title}>"


class Child(BaseModel):
    """A sponsored child named on sponsorship donations."""

    __tablename__ = "children"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)

    donations = db.relationship("Donation", secondary=donation_children, back_populates="children")

    def __repr__(self):
        return f"<Child {self.name}>"
