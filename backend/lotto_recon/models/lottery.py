from __future__ import annotations

from ..extensions import db
from lotto_recon.time_utils import to_utc_z

class LotteryGame(db.Model):
    """
    Instant-ticket game (scratcher) reference data.

    Immutable from this core's point of view: administrators create and
    edit games elsewhere; reconciliation only reads price, pack size and
    commission rate.

    Money is integer cents; commission is basis points (500 = 5%).
    """
    __tablename__ = "lottery_games"
    __table_args__ = (
        db.UniqueConstraint("game_code", name="uq_lottery_games_code"),
        db.CheckConstraint("ticket_price_cents > 0", name="ck_lottery_games_price_positive"),
        db.CheckConstraint("pack_size >= 2", name="ck_lottery_games_pack_size_min"),
        db.CheckConstraint("commission_rate_bps >= 0", name="ck_lottery_games_rate_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    ticket_price_cents = db.Column(db.Integer, nullable=False)
    pack_size = db.Column(db.Integer, nullable=False)  # tickets per pack
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<LotteryGame id={self.id} code={self.game_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "game_code": self.game_code,
            "name": self.name,
            "ticket_price_cents": self.ticket_price_cents,
            "pack_size": self.pack_size,
            "commission_rate_bps": self.commission_rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

class LotteryBox(db.Model):
    """
    Physical dispenser slot at a store.

    Labels are unique per store. Boxes are deactivated, never deleted,
    because readings and anomalies keep referring to the label.
    """
    __tablename__ = "lottery_boxes"
    __table_args__ = (
        db.UniqueConstraint("store_id", "label", name="uq_lottery_boxes_store_label"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    label = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("lottery_boxes", lazy=True))

    def __repr__(self) -> str:
        return f"<LotteryBox id={self.id} store_id={self.store_id} label={self.label!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "label": self.label,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class LotteryPack(db.Model):
    """
    One shipment of sequentially numbered tickets for a game.

    LIFECYCLE:
    1. active: in a box (or displaced from one), accepting readings
    2. sold_out: current_ticket reached the final index
    3. returned: unsold remainder sent back to the lottery

    INVARIANT: start_ticket <= current_ticket < start_ticket + game.pack_size

    box_id is the pack's *current* assignment. Readings capture the box
    label they were taken in; they never copy this relation.
    """
    __tablename__ = "lottery_packs"
    __table_args__ = (
        db.UniqueConstraint("store_id", "pack_number", name="uq_lottery_packs_store_number"),
        db.CheckConstraint("start_ticket >= 0", name="ck_lottery_packs_start_nonneg"),
        db.CheckConstraint("current_ticket >= start_ticket", name="ck_lottery_packs_current_ge_start"),
        db.Index("ix_lottery_packs_box_status", "box_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    pack_number = db.Column(db.String(64), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("lottery_games.id"), nullable=False, index=True)
    box_id = db.Column(db.Integer, db.ForeignKey("lottery_boxes.id"), nullable=True, index=True)

    start_ticket = db.Column(db.Integer, nullable=False, default=0)
    current_ticket = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, sold_out, returned

    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    activated_by_user_id = db.Column(db.Integer, nullable=True)
    sold_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store")
    game = db.relationship("LotteryGame", backref=db.backref("packs", lazy=True))
    box = db.relationship("LotteryBox", backref=db.backref("packs", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def final_ticket(self) -> int:
        return self.start_ticket + self.game.pack_size - 1

    @property
    def tickets_remaining(self) -> int:
        return self.final_ticket - self.current_ticket

    def __repr__(self) -> str:
        return f"<LotteryPack id={self.id} number={self.pack_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "pack_number": self.pack_number,
            "game_id": self.game_id,
            "game_code": self.game.game_code if self.game else None,
            "box_id": self.box_id,
            "box_label": self.box.label if self.box else None,
            "start_ticket": self.start_ticket,
            "current_ticket": self.current_ticket,
            "final_ticket": self.final_ticket if self.game else None,
            "status": self.status,
            "activated_at": to_utc_z(self.activated_at),
            "activated_by_user_id": self.activated_by_user_id,
            "sold_out_at": to_utc_z(self.sold_out_at),
            "returned_at": to_utc_z(self.returned_at),
            "returned_by_user_id": self.returned_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
