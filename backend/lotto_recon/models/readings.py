from __future__ import annotations

from ..extensions import db
from lotto_recon.time_utils import to_utc_z, to_iso_date

class LotteryReading(db.Model):
    """
    Point-in-time observation of a pack's ticket number.

    Append-only. The pack's current count is the ticket_number of its
    most recent reading (captured_at, then id). box_label is what the
    clerk saw at capture time, independent of the pack's assignment.
    """
    __tablename__ = "lottery_readings"
    __table_args__ = (
        db.CheckConstraint("ticket_number >= 0", name="ck_lottery_readings_ticket_nonneg"),
        db.Index("ix_lottery_readings_pack_captured", "pack_id", "captured_at", "id"),
        db.Index("ix_lottery_readings_store_date", "store_id", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    pack_id = db.Column(db.Integer, db.ForeignKey("lottery_packs.id"), nullable=False, index=True)
    box_label = db.Column(db.String(32), nullable=False)
    ticket_number = db.Column(db.Integer, nullable=False)

    source = db.Column(db.String(16), nullable=False, default="manual")  # manual, scan, ocr
    actor_user_id = db.Column(db.Integer, nullable=False, index=True)
    device_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=True)

    # Business time (UTC) and the store-local date it belongs to
    captured_at = db.Column(db.DateTime(timezone=True), nullable=False)
    business_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    pack = db.relationship("LotteryPack", backref=db.backref("readings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "pack_id": self.pack_id,
            "pack_number": self.pack.pack_number if self.pack else None,
            "box_label": self.box_label,
            "ticket_number": self.ticket_number,
            "source": self.source,
            "actor_user_id": self.actor_user_id,
            "device_id": self.device_id,
            "note": self.note,
            "captured_at": to_utc_z(self.captured_at),
            "business_date": to_iso_date(self.business_date),
        }

class LotteryAnomaly(db.Model):
    """
    Detected deviation from expected reconciliation behavior.

    STATE MACHINE:
        open -> acknowledged   (no note)
        open -> resolved       (resolution_note required)

    Both targets are terminal. Rows are never deleted so the audit trail
    of what was detected and who cleared it survives.
    """
    __tablename__ = "lottery_anomalies"
    __table_args__ = (
        db.Index("ix_lottery_anomalies_store_date_status", "store_id", "business_date", "status"),
        db.CheckConstraint(
            "status != 'resolved' OR resolution_note IS NOT NULL",
            name="ck_lottery_anomalies_resolved_note",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    anomaly_type = db.Column(db.String(32), nullable=False, index=True)
    severity = db.Column(db.String(8), nullable=False, index=True)  # low, medium, high
    detail = db.Column(db.Text, nullable=False)

    pack_id = db.Column(db.Integer, db.ForeignKey("lottery_packs.id"), nullable=True, index=True)
    box_label = db.Column(db.String(32), nullable=True)
    reading_id = db.Column(db.Integer, db.ForeignKey("lottery_readings.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)
    resolution_note = db.Column(db.Text, nullable=True)
    resolved_by_user_id = db.Column(db.Integer, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    acknowledged_by_user_id = db.Column(db.Integer, nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    detected_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    pack = db.relationship("LotteryPack", backref=db.backref("anomalies", lazy=True))
    reading = db.relationship("LotteryReading", backref=db.backref("anomalies", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": to_iso_date(self.business_date),
            "type": self.anomaly_type,
            "severity": self.severity,
            "detail": self.detail,
            "pack_id": self.pack_id,
            "pack_number": self.pack.pack_number if self.pack else None,
            "box_label": self.box_label,
            "reading_id": self.reading_id,
            "status": self.status,
            "resolution_note": self.resolution_note,
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolved_at": to_utc_z(self.resolved_at),
            "acknowledged_by_user_id": self.acknowledged_by_user_id,
            "acknowledged_at": to_utc_z(self.acknowledged_at),
            "detected_at": to_utc_z(self.detected_at),
        }
