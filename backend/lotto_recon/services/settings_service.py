# Overview: Service-layer operations for store settings; store_configs overrides with app-config fallback.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import StoreConfig


KEY_DRAW_OPTIONAL_CLOSE = "lottery.draw_optional_close"
KEY_PLAUSIBLE_SALES_THRESHOLD = "lottery.plausible_sales_threshold"
KEY_DRAW_COMMISSION_RATE_BPS = "lottery.draw_commission_rate_bps"

# store_configs key -> Flask config fallback
_CONFIG_FALLBACKS = {
    KEY_DRAW_OPTIONAL_CLOSE: "LOTTERY_DRAW_OPTIONAL_CLOSE",
    KEY_PLAUSIBLE_SALES_THRESHOLD: "LOTTERY_PLAUSIBLE_SALES_THRESHOLD",
    KEY_DRAW_COMMISSION_RATE_BPS: "LOTTERY_DRAW_COMMISSION_RATE_BPS",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


class SettingsError(ValueError):
    """Raised when a stored setting cannot be parsed."""


def _raw_store_value(store_id: int, key: str) -> str | None:
    row = db.session.query(StoreConfig).filter_by(store_id=store_id, key=key).first()
    return row.value if row else None


def _fallback(key: str):
    config_key = _CONFIG_FALLBACKS.get(key)
    if config_key is None:
        raise SettingsError(f"Unknown lottery setting: {key}")
    return current_app.config.get(config_key)


def get_bool(store_id: int, key: str) -> bool:
    raw = _raw_store_value(store_id, key)
    if raw is None:
        return bool(_fallback(key))
    return raw.strip().lower() in _TRUE_VALUES


def get_int(store_id: int, key: str) -> int:
    raw = _raw_store_value(store_id, key)
    if raw is None:
        return int(_fallback(key))
    try:
        return int(raw.strip())
    except ValueError:
        raise SettingsError(f"Store {store_id} setting {key} is not an integer: {raw!r}")


def set_value(store_id: int, key: str, value) -> StoreConfig:
    """Upsert a store override (used by CLI seeding and tests)."""
    if key not in _CONFIG_FALLBACKS:
        raise SettingsError(f"Unknown lottery setting: {key}")
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)

    row = db.session.query(StoreConfig).filter_by(store_id=store_id, key=key).first()
    if row is None:
        row = StoreConfig(store_id=store_id, key=key, value=text)
        db.session.add(row)
    else:
        row.value = text
    db.session.flush()
    return row


def draw_optional_close(store_id: int) -> bool:
    return get_bool(store_id, KEY_DRAW_OPTIONAL_CLOSE)


def plausible_sales_threshold(store_id: int) -> int:
    return get_int(store_id, KEY_PLAUSIBLE_SALES_THRESHOLD)


def draw_commission_rate_bps(store_id: int) -> int:
    return get_int(store_id, KEY_DRAW_COMMISSION_RATE_BPS)
