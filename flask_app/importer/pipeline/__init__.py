"""Importer pipeline helpers."""

from __future__ import annotations

from .designation import Designation, DesignationResolver, extract_child_names, is_general_donation
from .donation_upsert import DonationDecision, DonationUpserter, DuplicateSubscriptionPolicy, donation_matches_row
from .donor_resolver import DEFAULT_DONOR_NAME, DonorResolution, DonorResolver, fill_missing_fields
from .merge_service import DonorMergeService, MergeError, MergeResult
from .stores import DonationStore, DonorStore, SQLAlchemyDonationStore, SQLAlchemyDonorStore
from .stripe_import import ImportResult, RowResult, StripeCSVImporter, format_summary, policy_from_config

__all__ = [
    "DEFAULT_DONOR_NAME",
    "Designation",
    "DesignationResolver",
    "DonationDecision",
    "DonationStore",
    "DonationUpserter",
    "DonorMergeService",
    "DonorResolution",
    "DonorResolver",
    "DonorStore",
    "DuplicateSubscriptionPolicy",
    "ImportResult",
    "MergeError",
    "MergeResult",
    "RowResult",
    "SQLAlchemyDonationStore",
    "SQLAlchemyDonorStore",
    "StripeCSVImporter",
    "donation_matches_row",
    "extract_child_names",
    "fill_missing_fields",
    "format_summary",
    "is_general_donation",
    "policy_from_config",
]
