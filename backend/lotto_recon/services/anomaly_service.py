# backend/lotto_recon/services/anomaly_service.py
"""
Anomaly ledger.

WHY: Physical counts are messy. Miscounts, swapped packs and skipped
verifications must stay visible until someone with authority has looked
at them, and the record of who cleared what must survive.

STATE MACHINE:
    open -> acknowledged   (no note required; meant for low/medium)
    open -> resolved       (non-empty note required; mandatory for high
                            before the day can be posted)

RULES:
1. acknowledged and resolved are terminal; nothing reopens
2. a recurring issue raises a new anomaly on the next reading
3. anomalies are never deleted
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import case

from lotto_recon.extensions import db
from lotto_recon.models import LotteryAnomaly
from lotto_recon.services import audit_service
from lotto_recon.services.concurrency import lock_for_update, touch_lottery_day
from lotto_recon.time_utils import utcnow
from lotto_recon.validation import NotFoundError, ValidationError, require_choice


# Anomaly type constants
ANOMALY_TICKET_REGRESSION = "ticket_regression"
ANOMALY_OUT_OF_RANGE = "out_of_range"
ANOMALY_BOX_PACK_MISMATCH = "box_pack_mismatch"
ANOMALY_MISSING_READING = "missing_reading"
ANOMALY_SKIPPED_RANGE = "skipped_range"

ANOMALY_TYPES = {
    ANOMALY_TICKET_REGRESSION,
    ANOMALY_OUT_OF_RANGE,
    ANOMALY_BOX_PACK_MISMATCH,
    ANOMALY_MISSING_READING,
    ANOMALY_SKIPPED_RANGE,
}

# Severity constants
SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"

SEVERITIES = {SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH}

# Status constants
ANOMALY_STATUS_OPEN = "open"
ANOMALY_STATUS_ACKNOWLEDGED = "acknowledged"
ANOMALY_STATUS_RESOLVED = "resolved"

ANOMALY_STATUSES = {ANOMALY_STATUS_OPEN, ANOMALY_STATUS_ACKNOWLEDGED, ANOMALY_STATUS_RESOLVED}


class StateError(ValueError):
    """
    Raised when an anomaly transition is attempted from a terminal state.

    This is a domain error, not a technical error.
    """
    pass


def raise_anomaly(
    *,
    store_id: int,
    business_date: date,
    anomaly_type: str,
    severity: str,
    detail: str,
    pack_id: int | None = None,
    box_label: str | None = None,
    reading_id: int | None = None,
    actor_user_id: int | None = None,
) -> LotteryAnomaly:
    """
    Persist a newly detected anomaly (status: open).

    Only the reading validator and the day-close aggregator call this.
    """
    require_choice(anomaly_type, "anomaly type", ANOMALY_TYPES)
    require_choice(severity, "severity", SEVERITIES)
    if not detail or not detail.strip():
        raise ValidationError("Anomaly detail is required")

    anomaly = LotteryAnomaly(
        store_id=store_id,
        business_date=business_date,
        anomaly_type=anomaly_type,
        severity=severity,
        detail=detail.strip(),
        pack_id=pack_id,
        box_label=box_label,
        reading_id=reading_id,
        status=ANOMALY_STATUS_OPEN,
        detected_at=utcnow(),
    )
    db.session.add(anomaly)
    db.session.flush()

    audit_service.append_event(
        store_id=store_id,
        business_date=business_date,
        event_type=audit_service.EVENT_ANOMALY_RAISED,
        entity_type="anomaly",
        entity_id=anomaly.id,
        actor_user_id=actor_user_id,
        note=anomaly.detail,
        payload={"type": anomaly_type, "severity": severity, "pack_id": pack_id, "reading_id": reading_id},
    )
    return anomaly


def get_anomaly(anomaly_id: int, *, lock: bool = False) -> LotteryAnomaly:
    query = db.session.query(LotteryAnomaly).filter_by(id=anomaly_id)
    if lock:
        query = lock_for_update(query)
    anomaly = query.first()
    if not anomaly:
        raise NotFoundError(f"Anomaly {anomaly_id} not found")
    return anomaly


def _require_open(anomaly: LotteryAnomaly, action: str) -> None:
    if anomaly.status != ANOMALY_STATUS_OPEN:
        raise StateError(
            f"Cannot {action} anomaly {anomaly.id}: "
            f"current status is '{anomaly.status}', must be '{ANOMALY_STATUS_OPEN}'"
        )


def acknowledge_anomaly(anomaly_id: int, user_id: int) -> LotteryAnomaly:
    """
    Acknowledge an open anomaly (open -> acknowledged).

    Permitted for any severity. An acknowledged high-severity anomaly no
    longer blocks posting, so reviewers are expected to resolve those
    with a note instead.
    """
    anomaly = get_anomaly(anomaly_id, lock=True)
    _require_open(anomaly, "acknowledge")

    anomaly.status = ANOMALY_STATUS_ACKNOWLEDGED
    anomaly.acknowledged_by_user_id = user_id
    anomaly.acknowledged_at = utcnow()

    touch_lottery_day(anomaly.store_id, anomaly.business_date, lock=True)
    audit_service.append_event(
        store_id=anomaly.store_id,
        business_date=anomaly.business_date,
        event_type=audit_service.EVENT_ANOMALY_ACKNOWLEDGED,
        entity_type="anomaly",
        entity_id=anomaly.id,
        actor_user_id=user_id,
    )
    db.session.flush()

    current_app.logger.info(
        "Anomaly %s (%s/%s) acknowledged by user %s",
        anomaly.id, anomaly.anomaly_type, anomaly.severity, user_id,
    )
    return anomaly


def resolve_anomaly(anomaly_id: int, note: str | None, user_id: int) -> LotteryAnomaly:
    """
    Resolve an open anomaly with an explanation (open -> resolved).

    Raises:
        ValidationError: note missing or blank (checked before state)
        NotFoundError: unknown anomaly
        StateError: anomaly already acknowledged or resolved
    """
    if note is None or not str(note).strip():
        raise ValidationError("Resolution note is required to resolve an anomaly")

    anomaly = get_anomaly(anomaly_id, lock=True)
    _require_open(anomaly, "resolve")

    anomaly.status = ANOMALY_STATUS_RESOLVED
    anomaly.resolution_note = str(note).strip()
    anomaly.resolved_by_user_id = user_id
    anomaly.resolved_at = utcnow()

    touch_lottery_day(anomaly.store_id, anomaly.business_date, lock=True)
    audit_service.append_event(
        store_id=anomaly.store_id,
        business_date=anomaly.business_date,
        event_type=audit_service.EVENT_ANOMALY_RESOLVED,
        entity_type="anomaly",
        entity_id=anomaly.id,
        actor_user_id=user_id,
        note=anomaly.resolution_note,
    )
    db.session.flush()

    current_app.logger.info(
        "Anomaly %s (%s/%s) resolved by user %s",
        anomaly.id, anomaly.anomaly_type, anomaly.severity, user_id,
    )
    return anomaly


def list_anomalies(
    store_id: int,
    *,
    status: str | None = None,
    anomaly_type: str | None = None,
    severity: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    pack_id: int | None = None,
    limit: int = 500,
) -> list[LotteryAnomaly]:
    """List anomalies newest date first, most severe first within a date."""
    query = db.session.query(LotteryAnomaly).filter(LotteryAnomaly.store_id == store_id)

    if status:
        require_choice(status, "status", ANOMALY_STATUSES)
        query = query.filter(LotteryAnomaly.status == status)
    if anomaly_type:
        require_choice(anomaly_type, "anomaly type", ANOMALY_TYPES)
        query = query.filter(LotteryAnomaly.anomaly_type == anomaly_type)
    if severity:
        require_choice(severity, "severity", SEVERITIES)
        query = query.filter(LotteryAnomaly.severity == severity)
    if date_from:
        query = query.filter(LotteryAnomaly.business_date >= date_from)
    if date_to:
        query = query.filter(LotteryAnomaly.business_date <= date_to)
    if pack_id:
        query = query.filter(LotteryAnomaly.pack_id == pack_id)

    severity_rank = case(
        (LotteryAnomaly.severity == SEVERITY_HIGH, 0),
        (LotteryAnomaly.severity == SEVERITY_MEDIUM, 1),
        else_=2,
    )
    return (
        query.order_by(LotteryAnomaly.business_date.desc(), severity_rank, LotteryAnomaly.id.asc())
        .limit(limit)
        .all()
    )


def anomalies_for_day(store_id: int, business_date: date) -> list[LotteryAnomaly]:
    """All anomalies for a store/date in detection order."""
    return (
        db.session.query(LotteryAnomaly)
        .filter_by(store_id=store_id, business_date=business_date)
        .order_by(LotteryAnomaly.id.asc())
        .all()
    )


def open_high_severity(store_id: int, business_date: date) -> list[LotteryAnomaly]:
    return (
        db.session.query(LotteryAnomaly)
        .filter_by(
            store_id=store_id,
            business_date=business_date,
            status=ANOMALY_STATUS_OPEN,
            severity=SEVERITY_HIGH,
        )
        .order_by(LotteryAnomaly.id.asc())
        .all()
    )
