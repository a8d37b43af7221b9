# backend/lotto_recon/services/reading_service.py
"""
Reading validator.

WHY: A ticket-count observation is the only evidence of instant sales.
Each one is checked against the pack's physical range and its previous
reading before it is allowed to move the pack forward.

OUTCOMES:
- Malformed input (negative, non-integer, unknown source): ValidationError,
  nothing written
- Outside [start_ticket, start_ticket + pack_size - 1]: OutOfRangeError,
  nothing written
- Regression / implausible jump / wrong box: the reading IS recorded and
  the anomalies are returned alongside it. The physical world produces
  messy data; it has to be visible, not dropped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from lotto_recon.extensions import db
from lotto_recon.models import LotteryAnomaly, LotteryPack, LotteryReading
from lotto_recon.services import anomaly_service, audit_service, pack_service, settings_service
from lotto_recon.services.anomaly_service import (
    ANOMALY_BOX_PACK_MISMATCH,
    ANOMALY_OUT_OF_RANGE,
    ANOMALY_SKIPPED_RANGE,
    ANOMALY_TICKET_REGRESSION,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
)
from lotto_recon.services.concurrency import run_serialized, touch_lottery_day
from lotto_recon.services.pack_service import PACK_STATUS_ACTIVE, PackClosedError
from lotto_recon.time_utils import business_date_for, utcnow
from lotto_recon.validation import ValidationError, coerce_int, optional_text, require_choice, require_text


# Reading source constants
SOURCE_MANUAL = "manual"
SOURCE_SCAN = "scan"
SOURCE_OCR = "ocr"

READING_SOURCES = {SOURCE_MANUAL, SOURCE_SCAN, SOURCE_OCR}


class OutOfRangeError(ValidationError):
    """
    Ticket number outside the pack's physical range.

    Carries the anomaly description (type, severity, detail) so the
    caller can show it, but nothing is persisted.
    """

    def __init__(self, message: str, anomaly: dict):
        super().__init__(message, details={"anomaly": anomaly})
        self.anomaly = anomaly


@dataclass
class DetectedAnomaly:
    """An anomaly found by the checks, before it is persisted."""
    anomaly_type: str
    severity: str
    detail: str

    def to_dict(self) -> dict:
        return {"type": self.anomaly_type, "severity": self.severity, "detail": self.detail}


@dataclass
class ReadingResult:
    """A recorded reading plus the findings raised against it (possibly none)."""
    reading: LotteryReading
    anomalies: list[LotteryAnomaly] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "reading": self.reading.to_dict(),
            "anomalies": [a.to_dict() for a in self.anomalies],
        }


def last_reading(pack_id: int) -> LotteryReading | None:
    """Most recent reading for a pack (captured_at, then id)."""
    return (
        db.session.query(LotteryReading)
        .filter(LotteryReading.pack_id == pack_id)
        .order_by(LotteryReading.captured_at.desc(), LotteryReading.id.desc())
        .first()
    )


def check_range(pack: LotteryPack, ticket_number: int) -> DetectedAnomaly | None:
    last = pack_service.final_ticket(pack)
    if pack.start_ticket <= ticket_number <= last:
        return None
    return DetectedAnomaly(
        ANOMALY_OUT_OF_RANGE,
        SEVERITY_HIGH,
        f"Ticket {ticket_number} is outside pack {pack.pack_number} range "
        f"{pack.start_ticket}-{last} (game {pack.game.game_code}, {pack.game.pack_size} tickets)",
    )


def compare_with_previous(
    pack: LotteryPack,
    previous: LotteryReading | None,
    ticket_number: int,
    threshold: int,
) -> list[DetectedAnomaly]:
    """Progression checks against the pack's last reading."""
    if previous is None:
        return []

    prev = previous.ticket_number
    if ticket_number < prev:
        return [DetectedAnomaly(
            ANOMALY_TICKET_REGRESSION,
            SEVERITY_HIGH,
            f"Ticket number decreased from {prev} to {ticket_number} on pack {pack.pack_number}; "
            f"tickets sell in increasing order, check for a data-entry error or an undocumented pack swap",
        )]

    delta = ticket_number - prev
    if delta > threshold:
        return [DetectedAnomaly(
            ANOMALY_SKIPPED_RANGE,
            SEVERITY_MEDIUM,
            f"{delta} tickets sold on pack {pack.pack_number} since the previous reading "
            f"({prev} -> {ticket_number}), above the plausible threshold of {threshold}",
        )]
    return []


def check_box(pack: LotteryPack, box_label: str) -> DetectedAnomaly | None:
    assigned = pack.box.label if pack.box else None
    if assigned == box_label:
        return None
    return DetectedAnomaly(
        ANOMALY_BOX_PACK_MISMATCH,
        SEVERITY_MEDIUM,
        f"Reading for pack {pack.pack_number} was captured in box {box_label} "
        f"but the pack is assigned to {'box ' + assigned if assigned else 'no box'}",
    )


def record_reading(
    store_id: int,
    pack_number: str,
    box_label: str,
    ticket_number,
    source: str,
    actor_user_id: int,
    *,
    device_id: str | None = None,
    note: str | None = None,
    captured_at: datetime | None = None,
) -> ReadingResult:
    """
    Validate and record a ticket-count observation.

    Args:
        store_id: Store the pack belongs to
        pack_number: Store-scoped pack identifier
        box_label: Box the clerk read the pack in
        ticket_number: Observed ticket index (non-negative integer)
        source: "manual", "scan" or "ocr"
        actor_user_id: Capturing employee
        device_id: Optional capturing device
        note: Optional free text
        captured_at: Business time (UTC-naive); defaults to now

    Returns:
        ReadingResult: the persisted reading and any anomalies raised

    Raises:
        ValidationError: malformed input, or captured_at before the pack's last reading
        NotFoundError: unknown store or pack
        PackClosedError: pack is sold_out or returned
        OutOfRangeError: ticket outside the pack range (nothing persisted)
        ConcurrencyConflictError: another reading for the pack won the race
    """
    ticket_number = coerce_int(ticket_number, "ticket_number", minimum=0)
    require_choice(source, "source", READING_SOURCES)
    box_label = require_text(box_label, "box_label", max_length=32)
    pack_number = require_text(pack_number, "pack_number", max_length=64)
    actor_user_id = coerce_int(actor_user_id, "actor_user_id", minimum=1)

    def _op():
        store = pack_service.get_store(store_id)
        # Serializes readings per pack; version_id catches it where FOR UPDATE is ignored
        pack = pack_service.get_pack(store_id, pack_number, lock=True)

        if pack.status != PACK_STATUS_ACTIVE:
            raise PackClosedError(
                f"Pack {pack.pack_number} is {pack.status} and rejects further readings",
                details={"pack_number": pack.pack_number, "status": pack.status},
            )

        out_of_range = check_range(pack, ticket_number)
        if out_of_range is not None:
            raise OutOfRangeError(out_of_range.detail, out_of_range.to_dict())

        when = captured_at or utcnow()
        previous = last_reading(pack.id)
        if previous is not None and when < previous.captured_at:
            raise ValidationError(
                "captured_at precedes the pack's most recent reading; readings are applied in capture order",
                details={"previous_reading_id": previous.id},
            )

        business_date: date = business_date_for(when, store.timezone)
        threshold = settings_service.plausible_sales_threshold(store_id)

        findings = compare_with_previous(pack, previous, ticket_number, threshold)
        mismatch = check_box(pack, box_label)
        if mismatch is not None:
            findings.append(mismatch)

        reading = LotteryReading(
            store_id=store_id,
            pack_id=pack.id,
            box_label=box_label,
            ticket_number=ticket_number,
            source=source,
            actor_user_id=actor_user_id,
            device_id=optional_text(device_id),
            note=optional_text(note),
            captured_at=when,
            business_date=business_date,
        )
        db.session.add(reading)
        db.session.flush()

        anomalies = [
            anomaly_service.raise_anomaly(
                store_id=store_id,
                business_date=business_date,
                anomaly_type=finding.anomaly_type,
                severity=finding.severity,
                detail=finding.detail,
                pack_id=pack.id,
                box_label=box_label,
                reading_id=reading.id,
                actor_user_id=actor_user_id,
            )
            for finding in findings
        ]

        pack_service.advance_pack(pack, ticket_number, actor_user_id=actor_user_id)
        touch_lottery_day(store_id, business_date)

        audit_service.append_event(
            store_id=store_id,
            business_date=business_date,
            event_type=audit_service.EVENT_READING_RECORDED,
            entity_type="reading",
            entity_id=reading.id,
            actor_user_id=actor_user_id,
            payload={
                "pack_number": pack.pack_number,
                "box_label": box_label,
                "ticket_number": ticket_number,
                "previous_ticket_number": previous.ticket_number if previous else None,
                "source": source,
                "anomaly_ids": [a.id for a in anomalies],
            },
        )
        db.session.flush()

        return ReadingResult(reading=reading, anomalies=anomalies)

    return run_serialized(_op, description=f"reading for pack {pack_number}")


def list_readings(
    store_id: int,
    *,
    business_date: date | None = None,
    pack_id: int | None = None,
    limit: int = 200,
) -> list[LotteryReading]:
    query = db.session.query(LotteryReading).filter(LotteryReading.store_id == store_id)
    if business_date is not None:
        query = query.filter(LotteryReading.business_date == business_date)
    if pack_id is not None:
        query = query.filter(LotteryReading.pack_id == pack_id)
    return (
        query.order_by(LotteryReading.captured_at.desc(), LotteryReading.id.desc())
        .limit(limit)
        .all()
    )
