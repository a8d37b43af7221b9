from __future__ import annotations

import json

from ..extensions import db
from lotto_recon.time_utils import to_utc_z, to_iso_date

class LotteryAuditEvent(db.Model):
    """
    Append-only log of lottery domain events.

    Written in the same transaction as the change it records. Never
    updated or deleted. occurred_at is business time; created_at is
    system time (DB default).
    """
    __tablename__ = "lottery_audit_events"
    __table_args__ = (
        db.Index("ix_lottery_audit_store_date_type", "store_id", "business_date", "event_type"),
        db.Index("ix_lottery_audit_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=True)

    event_type = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def payload_dict(self) -> dict:
        return json.loads(self.payload) if self.payload else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": to_iso_date(self.business_date),
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload_dict(),
        }
