"""
Batch import of Stripe payment CSV exports.

Every data row lands in exactly one of four buckets: succeeded, skipped
(already imported), failed (parse or persistence error) or needs_attention
(imported but flagged for human review). Each row is committed on its own, so
one bad row never aborts the batch and a crash loses at most the in-flight row.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flask_app.importer.adapters import RawRecord, StripeCSVAdapter
from flask_app.importer.errors import FatalIOError, PersistenceError, RowError
from flask_app.importer.metrics import record_import_row, record_import_run

from .designation import DesignationResolver
from .donation_upsert import DonationUpserter, DuplicateSubscriptionPolicy
from .donor_resolver import DonorResolver
from .stores import DonationStore, DonorStore, SQLAlchemyDonationStore, SQLAlchemyDonorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowResult:
    """Outcome details for one CSV row."""

    row: int
    charge_id: str | None = None
    donor_id: int | None = None
    donation_id: int | None = None
    message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "charge_id": self.charge_id,
            "donor_id": self.donor_id,
            "donation_id": self.donation_id,
            "message": self.message,
        }


@dataclass
class ImportResult:
    """Four ordered buckets of row outcomes for a single import run."""

    succeeded: list[RowResult] = field(default_factory=list)
    skipped: list[RowResult] = field(default_factory=list)
    failed: list[RowResult] = field(default_factory=list)
    needs_attention: list[RowResult] = field(default_factory=list)
    ignored_headers: tuple[str, ...] = ()
    duration_seconds: float = 0.0

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def needs_attention_count(self) -> int:
        return len(self.needs_attention)

    @property
    def total_rows(self) -> int:
        return self.succeeded_count + self.skipped_count + self.failed_count + self.needs_attention_count

    def counts(self) -> dict[str, int]:
        return {
            "succeeded_count": self.succeeded_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "needs_attention_count": self.needs_attention_count,
            "total_rows": self.total_rows,
        }

    def as_response_payload(self) -> dict[str, Any]:
        """Shape returned by the admin HTTP endpoint."""

        return {
            "success_count": self.succeeded_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "needs_attention_count": self.needs_attention_count,
            "errors": [{"row": item.row, "error": item.message} for item in self.failed],
            "needs_attention": [{"row": item.row, "reason": item.message} for item in self.needs_attention],
        }

    def as_summary_payload(self) -> dict[str, Any]:
        """Full machine-readable summary used by the CLI."""

        return {
            **self.counts(),
            "duration_seconds": round(self.duration_seconds, 3),
            "ignored_headers": list(self.ignored_headers),
            "succeeded": [item.as_dict() for item in self.succeeded],
            "skipped": [item.as_dict() for item in self.skipped],
            "failed": [item.as_dict() for item in self.failed],
            "needs_attention": [item.as_dict() for item in self.needs_attention],
        }


def format_summary(result: ImportResult, *, source: str | Path | None = None) -> str:
    """Render a console summary for CLI runs."""

    header = f"Stripe import of {source} finished." if source else "Stripe import finished."
    lines = [
        header,
        f"  rows_processed     : {result.total_rows}",
        f"  succeeded          : {result.succeeded_count}",
        f"  skipped            : {result.skipped_count}",
        f"  failed             : {result.failed_count}",
        f"  needs_attention    : {result.needs_attention_count}",
    ]
    if result.ignored_headers:
        lines.append(f"  ignored_columns    : {', '.join(result.ignored_headers)}")
    for item in result.failed:
        lines.append(f"  ! row {item.row}: {item.message}")
    for item in result.needs_attention:
        lines.append(f"  ? row {item.row}: {item.message}")
    return "\n".join(lines)


def policy_from_config(config: Mapping[str, Any]) -> DuplicateSubscriptionPolicy:
    return DuplicateSubscriptionPolicy(
        window_days=int(config.get("IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS", 31)),
        include_canceled=bool(config.get("IMPORTER_DUPLICATE_SUBSCRIPTION_INCLUDE_CANCELED", False)),
    )


class StripeCSVImporter:
    """Import a Stripe payment export row by row."""

    def __init__(
        self,
        session: Session,
        *,
        donor_store: DonorStore | None = None,
        donation_store: DonationStore | None = None,
        policy: DuplicateSubscriptionPolicy | None = None,
        resolve_designations: bool = True,
    ):
        self.session = session
        self.donors = DonorResolver(donor_store or SQLAlchemyDonorStore(session))
        self.donations = DonationUpserter(
            donation_store or SQLAlchemyDonationStore(session),
            designations=DesignationResolver(session) if resolve_designations else None,
            policy=policy,
        )

    def import_file(self, file_path: str | Path) -> ImportResult:
        """
        Import ``file_path`` and return the bucketed result.

        Raises ``FatalIOError`` (including ``CSVHeaderError``) before any row is
        written when the file cannot be read, decoded, tokenized or its header
        fails validation.
        """

        started = time.perf_counter()
        try:
            adapter = StripeCSVAdapter.from_path(file_path)
            records = adapter.read_records()
        except FatalIOError:
            record_import_run(status="fatal", duration_seconds=time.perf_counter() - started)
            raise

        result = ImportResult(ignored_headers=adapter.header.ignored_headers if adapter.header else ())
        logger.info(
            "Starting Stripe import of %s (%d rows)",
            file_path,
            len(records),
            extra={"importer_file": str(file_path), "importer_row_count": len(records)},
        )

        for record in records:
            self._import_record(adapter, record, result)

        result.duration_seconds = time.perf_counter() - started
        record_import_run(
            status="partial" if result.failed_count else "success",
            duration_seconds=result.duration_seconds,
        )
        logger.info(
            "Stripe import of %s finished: %s",
            file_path,
            result.counts(),
            extra={"importer_file": str(file_path), "importer_counts": result.counts()},
        )
        return result

    def _import_record(self, adapter: StripeCSVAdapter, record: RawRecord, result: ImportResult) -> None:
        charge_id = (record.values.get("charge_id") or "").strip() or None
        try:
            row = adapter.parse_record(record)
            resolution = self.donors.resolve(row)
            decision = self.donations.upsert(resolution.donor, row)
            self.session.commit()
        except RowError as exc:
            self.session.rollback()
            self._record_failure(result, record.row_number, charge_id, exc.message)
            return
        except SQLAlchemyError as exc:
            self.session.rollback()
            error = PersistenceError(record.row_number, str(getattr(exc, "orig", None) or exc))
            self._record_failure(result, record.row_number, charge_id, error.message)
            return

        item = RowResult(
            row=row.row_number,
            charge_id=row.charge_id,
            donor_id=resolution.donor.id,
            donation_id=decision.donation.id,
            message=decision.reason,
        )
        if decision.outcome == "skipped":
            result.skipped.append(item)
        elif decision.outcome == "needs_attention":
            result.needs_attention.append(item)
        else:
            result.succeeded.append(item)
        record_import_row(decision.outcome)

    def _record_failure(self, result: ImportResult, row_number: int, charge_id: str | None, message: str) -> None:
        logger.warning(
            "Row %s failed: %s",
            row_number,
            message,
            extra={"importer_row": row_number, "importer_charge_id": charge_id},
        )
        result.failed.append(RowResult(row=row_number, charge_id=charge_id, message=message))
        record_import_row("failed")
