# Overview: Service-layer operations for the lottery audit ledger; append-only event writes and reads.

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Optional

from ..extensions import db
from ..models import LotteryAuditEvent, Store
"""
Lottery Audit Ledger Invariants (authoritative)

- Append-only audit log for reconciliation events.
- No domain/business logic in the audit ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


EVENT_READING_RECORDED = "reading_recorded"
EVENT_ANOMALY_RAISED = "anomaly_raised"
EVENT_ANOMALY_ACKNOWLEDGED = "anomaly_acknowledged"
EVENT_ANOMALY_RESOLVED = "anomaly_resolved"
EVENT_PACK_ACTIVATED = "pack_activated"
EVENT_PACK_DISPLACED = "pack_displaced"
EVENT_PACK_SOLD_OUT = "pack_sold_out"
EVENT_PACK_RETURNED = "pack_returned"
EVENT_DAY_POSTED = "day_posted"


def append_event(
    *,
    store_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    business_date: date | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LotteryAuditEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    """
    store = db.session.get(Store, store_id)
    if not store:
        raise ValueError(f"Store {store_id} not found for audit event")

    ev = LotteryAuditEvent(
        store_id=store_id,
        business_date=business_date,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_events(
    store_id: int,
    *,
    business_date: date | None = None,
    event_type: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 200,
) -> list[LotteryAuditEvent]:
    query = db.session.query(LotteryAuditEvent).filter(LotteryAuditEvent.store_id == store_id)
    if business_date is not None:
        query = query.filter(LotteryAuditEvent.business_date == business_date)
    if event_type is not None:
        query = query.filter(LotteryAuditEvent.event_type == event_type)
    if entity_type is not None:
        query = query.filter(LotteryAuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(LotteryAuditEvent.entity_id == entity_id)
    return query.order_by(LotteryAuditEvent.id.asc()).limit(limit).all()
