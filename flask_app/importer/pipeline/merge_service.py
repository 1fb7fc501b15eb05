"""
Merge service for collapsing duplicate donor records.

Merged donors are soft-discarded and point at the surviving donor through
``merged_into_id``. Chains are flattened here: anything previously merged into
a source is re-pointed at the new target, so resolving a merge pointer never
takes more than one hop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flask_app.importer.adapters import as_utc
from flask_app.importer.metrics import record_donor_merge
from flask_app.models import DONOR_CONTACT_FIELDS, Donation, Donor, db

from .donor_resolver import fill_missing_fields

logger = logging.getLogger(__name__)


class MergeError(ValueError):
    """Raised when a merge request is invalid."""


@dataclass(frozen=True)
class MergeResult:
    target: Donor
    merged_ids: tuple[int, ...]
    repointed_ids: tuple[int, ...]
    donations_reassigned: int
    filled_fields: tuple[str, ...]

    def as_dict(self) -> dict[str, object]:
        return {
            "target_id": self.target.id,
            "merged_ids": list(self.merged_ids),
            "repointed_ids": list(self.repointed_ids),
            "donations_reassigned": self.donations_reassigned,
            "filled_fields": list(self.filled_fields),
        }


class DonorMergeService:
    """Merge one or more source donors into a target donor."""

    def __init__(self, session: Session | None = None):
        self.session = session or db.session

    def _load_sources(self, target_id: int, source_ids: Iterable[int]) -> list[Donor]:
        ordered_ids: list[int] = []
        for source_id in source_ids:
            if source_id not in ordered_ids:
                ordered_ids.append(source_id)
        if not ordered_ids:
            raise MergeError("At least one source donor is required.")
        if target_id in ordered_ids:
            raise MergeError(f"Donor {target_id} cannot be merged into itself.")

        donors = self.session.execute(select(Donor).where(Donor.id.in_(ordered_ids))).scalars().all()
        by_id = {donor.id: donor for donor in donors}
        missing = [donor_id for donor_id in ordered_ids if donor_id not in by_id]
        if missing:
            raise MergeError(f"Donor(s) not found: {', '.join(str(donor_id) for donor_id in missing)}.")

        sources = [by_id[donor_id] for donor_id in ordered_ids]
        already_merged = [donor.id for donor in sources if donor.merged_into_id is not None]
        if already_merged:
            raise MergeError(
                f"Donor(s) already merged: {', '.join(str(donor_id) for donor_id in already_merged)}."
            )
        return sources

    def merge(self, target_id: int, source_ids: Iterable[int], *, now: datetime | None = None) -> MergeResult:
        """
        Merge ``source_ids`` into ``target_id`` in a single transaction.

        Raises:
            MergeError: If the target or any source is missing, the target is
                itself merged or discarded, or a source is already merged.
        """
        target = self.session.get(Donor, target_id)
        if target is None:
            raise MergeError(f"Target donor {target_id} not found.")
        if target.merged_into_id is not None:
            raise MergeError(f"Target donor {target_id} was merged into donor {target.merged_into_id}.")
        if target.discarded_at is not None:
            raise MergeError(f"Target donor {target_id} is discarded.")

        sources = self._load_sources(target_id, source_ids)
        merged_ids = tuple(donor.id for donor in sources)
        timestamp = now or datetime.now(timezone.utc)

        try:
            filled: list[str] = []
            for source in sources:
                incoming = {
                    key: value
                    for key, value in ((key, getattr(source, key)) for key in DONOR_CONTACT_FIELDS)
                    if value
                }
                updates = fill_missing_fields(target, incoming)
                for key, value in updates.items():
                    setattr(target, key, value)
                    filled.append(key)
                if source.last_updated_at is not None:
                    candidate = as_utc(source.last_updated_at)
                    if target.last_updated_at is None or as_utc(target.last_updated_at) < candidate:
                        target.last_updated_at = candidate

            repointed = self.session.execute(
                select(Donor.id).where(Donor.merged_into_id.in_(merged_ids))
            ).scalars().all()
            if repointed:
                self.session.execute(
                    update(Donor).where(Donor.id.in_(repointed)).values(merged_into_id=target.id)
                )

            reassigned = self.session.execute(
                update(Donation).where(Donation.donor_id.in_(merged_ids)).values(donor_id=target.id)
            ).rowcount

            for source in sources:
                source.merged_into_id = target.id
                source.discarded_at = timestamp

            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        record_donor_merge(len(merged_ids))
        logger.info(
            "Merged donors %s into %s",
            merged_ids,
            target.id,
            extra={"merge_target_id": target.id, "merge_source_ids": merged_ids, "merge_repointed_ids": repointed},
        )
        return MergeResult(
            target=target,
            merged_ids=merged_ids,
            repointed_ids=tuple(repointed),
            donations_reassigned=reassigned or 0,
            filled_fields=tuple(dict.fromkeys(filled)),
        )
