"""CSV adapter for Stripe payment exports.

Validates the header row against the canonical Stripe contract once, when the
file is opened, then turns each CSV record into a fixed ``StripePaymentRow``.
Row-level problems raise ``ParseError`` so the orchestrator can fail that row
and carry on; problems with the file itself raise ``FatalIOError``.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import IO, Iterator, Sequence

from flask_app.importer.contracts import (
    get_stripe_alias_map,
    get_stripe_field_specs,
    get_stripe_required_headers,
    missing_email_headers,
    normalize_header,
)
from flask_app.importer.errors import FatalIOError, ParseError
from flask_app.models.enums import DonationStatus

MINOR_UNIT = Decimal("0.01")
# Donation.amount is Numeric(12, 2).
MAX_AMOUNT = Decimal("9999999999.99")
UNRECOGNIZED_STATUS_REASON = "Unrecognized payment status"
CONTACT_COLUMNS = ("phone", "address_line1", "address_line2", "city", "state", "zip_code", "country")

_AMOUNT_STRIP = re.compile(r"[\s$,]")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
)
_STATUS_MAP = {
    "succeeded": DonationStatus.SUCCEEDED,
    "paid": DonationStatus.SUCCEEDED,
    "failed": DonationStatus.FAILED,
    "refunded": DonationStatus.REFUNDED,
    "canceled": DonationStatus.CANCELED,
    "cancelled": DonationStatus.CANCELED,
}


class CSVHeaderError(FatalIOError):
    """Raised when the CSV header row does not meet contract requirements."""

    def __init__(
        self,
        *,
        missing: Sequence[str] | None = None,
        duplicates: Sequence[str] | None = None,
    ) -> None:
        details: list[str] = []
        if missing:
            details.append(f"Missing required columns: {', '.join(sorted(missing))}.")
        if duplicates:
            details.append(
                "Duplicate canonical columns detected: "
                + ", ".join(sorted(duplicates))
                + ". Ensure each canonical field appears only once."
            )

        message = "CSV header validation failed. " + " ".join(details) if details else "CSV header validation failed."
        super().__init__(message)
        self.missing = tuple(missing or ())
        self.duplicates = tuple(duplicates or ())


@dataclass(frozen=True)
class HeaderValidationResult:
    raw_headers: tuple[str, ...]
    canonical_headers: tuple[str | None, ...]
    ignored_headers: tuple[str, ...]

    def has(self, canonical: str) -> bool:
        return canonical in self.canonical_headers


@dataclass(frozen=True)
class RawRecord:
    """A tokenized CSV record keyed by canonical field name."""

    row_number: int
    values: dict[str, str | None]


@dataclass(frozen=True)
class StripePaymentRow:
    """A validated Stripe payment row."""

    row_number: int
    charge_id: str
    amount: Decimal
    transaction_at: datetime
    email: str
    status: DonationStatus
    status_reason: str | None = None
    name: str | None = None
    description: str | None = None
    plan_nickname: str | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    invoice_id: str | None = None
    contact: dict[str, str] = field(default_factory=dict)
    local_date: date | None = None

    @property
    def transaction_date(self) -> date:
        """Calendar date as written in the export, before conversion to UTC."""
        if self.local_date is not None:
            return self.local_date
        return self.transaction_at.date()

    @property
    def designation_text(self) -> str | None:
        """Text used to work out the designation; nickname wins over description."""
        return self.plan_nickname or self.description


def decode_csv_bytes(payload: bytes) -> str:
    """
    Decode an export that may not be UTF-8.

    Stripe exports opened and re-saved in spreadsheet tools are frequently
    cp1252; latin-1 is the last resort because it accepts every byte.
    """

    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return payload.decode(encoding)
        except UnicodeDecodeError:
            continue
    return payload.decode("latin-1")


def normalize_email(value: object | None) -> str | None:
    """Trim and lower-case an email address; blank values become ``None``."""

    if value is None:
        return None
    token = str(value).strip().lower()
    return token or None


def parse_amount(value: object | None) -> Decimal:
    """
    Parse a currency string into a non-negative ``Decimal`` at minor-unit precision.
    """

    token = _AMOUNT_STRIP.sub("", str(value or ""))
    if not token:
        raise ValueError("is required")
    try:
        amount = Decimal(token)
    except InvalidOperation as exc:
        raise ValueError(f"'{value}' is not a valid amount") from exc
    if not amount.is_finite():
        raise ValueError(f"'{value}' is not a valid amount")
    if amount < 0:
        raise ValueError("must not be negative")
    try:
        rounded = amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"'{value}' is too large") from exc
    if rounded > MAX_AMOUNT:
        raise ValueError(f"must not exceed {MAX_AMOUNT}")
    return rounded


def parse_timestamp(value: object | None) -> datetime:
    """Parse a transaction timestamp, returning a timezone-aware UTC datetime."""

    return as_utc(parse_local_timestamp(value))


def parse_local_timestamp(value: object | None) -> datetime:
    """Parse a transaction timestamp, keeping the offset it was written with."""

    token = str(value or "").strip()
    if not token:
        raise ValueError("is required")

    parsed: datetime | None = None
    for fmt in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(token, fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(token.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"'{value}' is not a recognized date") from exc
    return parsed


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def map_processor_status(value: object | None, *, column_present: bool) -> tuple[DonationStatus, str | None]:
    """
    Map a processor status string onto ``DonationStatus``.

    Exports without a status column only contain settled payments. A present but
    blank or unknown status is kept for human review.
    """

    if not column_present:
        return DonationStatus.SUCCEEDED, None
    token = str(value or "").strip().lower()
    status = _STATUS_MAP.get(token)
    if status is None:
        label = token or "blank"
        return DonationStatus.NEEDS_ATTENTION, f"{UNRECOGNIZED_STATUS_REASON} ({label})"
    return status, None


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff")


def validate_headers(raw_headers: Sequence[str]) -> HeaderValidationResult:
    sanitized_headers = tuple(_sanitize_header(header) for header in raw_headers)
    alias_map = get_stripe_alias_map()
    duplicates: list[str] = []
    ignored: list[str] = []
    seen: set[str] = set()
    canonical_headers: list[str | None] = []

    for header in sanitized_headers:
        canonical = alias_map.get(normalize_header(header)) if header else None
        if canonical is None:
            canonical_headers.append(None)
            ignored.append(header)
            continue
        if canonical in seen:
            duplicates.append(canonical)
        else:
            seen.add(canonical)
        canonical_headers.append(canonical)

    missing = [name for name in get_stripe_required_headers() if name not in seen]
    if missing_email_headers(seen):
        missing.append("email")
    if missing or duplicates:
        raise CSVHeaderError(missing=missing, duplicates=duplicates)

    return HeaderValidationResult(
        raw_headers=sanitized_headers,
        canonical_headers=tuple(canonical_headers),
        ignored_headers=tuple(ignored),
    )


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class StripeCSVAdapter:
    """CSV reader that enforces the Stripe payment export contract."""

    def __init__(self, file_obj: IO[str]) -> None:
        self._file_obj = file_obj
        self._header_result: HeaderValidationResult | None = None
        self._field_specs = {spec.name: spec for spec in get_stripe_field_specs()}

    @classmethod
    def from_path(cls, path: str | Path) -> "StripeCSVAdapter":
        """Open an export from disk, decoding it binary-safely."""

        try:
            payload = Path(path).read_bytes()
        except OSError as exc:
            raise FatalIOError(f"Unable to read CSV file {path}: {exc}") from exc
        return cls(io.StringIO(decode_csv_bytes(payload), newline=""))

    @property
    def header(self) -> HeaderValidationResult | None:
        return self._header_result

    def iter_records(self) -> Iterator[RawRecord]:
        """
        Yield tokenized records in file order.

        Header validation happens before the first record is produced.
        """

        self._file_obj.seek(0)
        reader = csv.reader(self._file_obj)
        try:
            raw_headers = next(reader, None)
            if raw_headers is None:
                raise CSVHeaderError(missing=(*get_stripe_required_headers(), "email"))
            header_result = validate_headers(raw_headers)
            self._header_result = header_result

            row_number = 0
            for values in reader:
                if not values:
                    continue
                row_number += 1
                record: dict[str, str | None] = {}
                for canonical, value in zip(header_result.canonical_headers, values):
                    if canonical is not None:
                        record[canonical] = value
                yield RawRecord(row_number=row_number, values=record)
        except csv.Error as exc:
            raise FatalIOError(f"CSV parsing error at line {reader.line_num}: {exc}") from exc

    def read_records(self) -> list[RawRecord]:
        """Tokenize the whole file up front so malformed CSV aborts before any write."""

        return list(self.iter_records())

    def _normalize(self, values: dict[str, str | None]) -> dict[str, object | None]:
        normalized: dict[str, object | None] = {}
        for key, value in values.items():
            spec = self._field_specs.get(key)
            if spec is None or spec.normalizer is None:
                normalized[key] = value
            else:
                normalized[key] = spec.normalizer(value)
        return normalized

    def parse_record(self, record: RawRecord) -> StripePaymentRow:
        """Build a ``StripePaymentRow`` or raise ``ParseError`` naming the bad field."""

        if self._header_result is None:
            raise RuntimeError("parse_record() called before the header was validated.")

        row_number = record.row_number
        values = self._normalize(record.values)

        charge_id = _clean(values.get("charge_id"))
        if not charge_id:
            raise ParseError(row_number, "charge_id", "is required")

        try:
            amount = parse_amount(values.get("amount"))
        except ValueError as exc:
            raise ParseError(row_number, "amount", str(exc)) from exc

        try:
            written_at = parse_local_timestamp(values.get("created_at"))
        except ValueError as exc:
            raise ParseError(row_number, "created_at", str(exc)) from exc

        email = normalize_email(values.get("email")) or normalize_email(values.get("billing_email"))
        if not email:
            raise ParseError(row_number, "email", "is required")
        if not _EMAIL_PATTERN.match(email):
            raise ParseError(row_number, "email", f"'{email}' is not a valid email address")

        status, status_reason = map_processor_status(
            values.get("status"),
            column_present=self._header_result.has("status"),
        )

        contact: dict[str, str] = {}
        for key in CONTACT_COLUMNS:
            cleaned = _clean(values.get(key))
            if cleaned is not None:
                contact[key] = cleaned

        return StripePaymentRow(
            row_number=row_number,
            charge_id=charge_id,
            amount=amount,
            transaction_at=as_utc(written_at),
            email=email,
            status=status,
            status_reason=status_reason,
            name=_clean(values.get("name")),
            description=_clean(values.get("description")),
            plan_nickname=_clean(values.get("plan_nickname")),
            subscription_id=_clean(values.get("subscription_id")),
            customer_id=_clean(values.get("customer_id")),
            invoice_id=_clean(values.get("invoice_id")),
            contact=contact,
            local_date=written_at.date(),
        )
