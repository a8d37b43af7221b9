from __future__ import annotations

from ..extensions import db
from lotto_recon.time_utils import to_utc_z, to_iso_date

class LotteryDrawDay(db.Model):
    """
    Online/draw-game totals for one store and date.

    net_sale is derived from its inputs and never stored, so an edit to
    total_cashed can't leave a stale net figure behind.
    """
    __tablename__ = "lottery_draw_days"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_lottery_draw_days_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cashed_cents = db.Column(db.Integer, nullable=False, default=0)
    adjustments_cents = db.Column(db.Integer, nullable=False, default=0)

    commission_source = db.Column(db.String(16), nullable=True)  # manual, statement, rate
    commission_amount_cents = db.Column(db.Integer, nullable=True)  # NULL -> computed from rate

    notes = db.Column(db.Text, nullable=True)
    entered_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def net_sale_cents(self) -> int:
        return self.total_sales_cents - self.total_cashed_cents - self.adjustments_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": to_iso_date(self.business_date),
            "total_sales_cents": self.total_sales_cents,
            "total_cashed_cents": self.total_cashed_cents,
            "adjustments_cents": self.adjustments_cents,
            "net_sale_cents": self.net_sale_cents,
            "commission_source": self.commission_source,
            "commission_amount_cents": self.commission_amount_cents,
            "notes": self.notes,
            "entered_by_user_id": self.entered_by_user_id,
        }

class LotteryDay(db.Model):
    """
    Per-(store, date) version row.

    Every write that can change a day-close verdict (reading, anomaly
    transition, posting) bumps version_id. The posting gate flushes its
    own bump last, so a post computed from a stale view fails with
    StaleDataError instead of writing.
    """
    __tablename__ = "lottery_days"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_lottery_days_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    touched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_posted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": to_iso_date(self.business_date),
            "touched_at": to_utc_z(self.touched_at),
            "last_posted_at": to_utc_z(self.last_posted_at),
            "version_id": self.version_id,
        }

class LotteryPosting(db.Model):
    """
    General Ledger entry set for a store's lottery day.

    KEYED by (store_id, business_date). Re-posting overwrites in place and
    increments revision; there is never more than one row per key.
    """
    __tablename__ = "lottery_postings"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_lottery_postings_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)

    revision = db.Column(db.Integer, nullable=False, default=1)

    instant_face_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    instant_commission_cents = db.Column(db.Integer, nullable=False, default=0)
    draw_net_sale_cents = db.Column(db.Integer, nullable=True)
    draw_commission_cents = db.Column(db.Integer, nullable=False, default=0)
    total_commission_cents = db.Column(db.Integer, nullable=False, default=0)

    posted_by_user_id = db.Column(db.Integer, nullable=False)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "LotteryPostingLine",
        backref="posting",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="LotteryPostingLine.line_number",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_gl_entry_set(self) -> dict:
        """Structured payload handed to the downstream General Ledger."""
        return {
            "store_id": self.store_id,
            "date": to_iso_date(self.business_date),
            "entry_type": "lottery",
            "description": f"Lottery Commissions - {to_iso_date(self.business_date)}",
            "revision": self.revision,
            "commission": {
                "instant_cents": self.instant_commission_cents,
                "draw_cents": self.draw_commission_cents,
                "total_cents": self.total_commission_cents,
            },
            "net": {
                "instant_face_sales_cents": self.instant_face_sales_cents,
                "draw_net_sale_cents": self.draw_net_sale_cents,
            },
            "lines": [line.to_dict() for line in self.lines],
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": to_iso_date(self.business_date),
            "revision": self.revision,
            "instant_face_sales_cents": self.instant_face_sales_cents,
            "instant_commission_cents": self.instant_commission_cents,
            "draw_net_sale_cents": self.draw_net_sale_cents,
            "draw_commission_cents": self.draw_commission_cents,
            "total_commission_cents": self.total_commission_cents,
            "posted_by_user_id": self.posted_by_user_id,
            "posted_at": to_utc_z(self.posted_at),
            "lines": [line.to_dict() for line in self.lines],
        }

class LotteryPostingLine(db.Model):
    __tablename__ = "lottery_posting_lines"
    __table_args__ = (
        db.UniqueConstraint("posting_id", "line_number", name="uq_lottery_posting_lines_number"),
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_lottery_posting_lines_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    posting_id = db.Column(db.Integer, db.ForeignKey("lottery_postings.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    account_name = db.Column(db.String(128), nullable=False)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "account_name": self.account_name,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "description": self.description,
        }
