from __future__ import annotations

from ..extensions import db
from lotto_recon.time_utils import to_utc_z

class Store(db.Model):
    """
    Retail location running a lottery terminal and instant-ticket boxes.

    Reference data owned by the store-configuration service. This core
    reads it to scope boxes/packs and to resolve store-local business
    dates from the timezone.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    # IANA timezone name used to derive business dates
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }

class StoreConfig(db.Model):
    __tablename__ = "store_configs"
    __table_args__ = (
        db.UniqueConstraint("store_id", "key", name="uq_store_configs_store_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("configs", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "key": self.key,
            "value": self.value,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
