# backend/lotto_recon/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lotto_recon.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lotto_recon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Reconciliation defaults; per-store overrides live in store_configs
    LOTTERY_PLAUSIBLE_SALES_THRESHOLD = int(os.environ.get("LOTTERY_PLAUSIBLE_SALES_THRESHOLD", "50"))
    LOTTERY_DRAW_COMMISSION_RATE_BPS = int(os.environ.get("LOTTERY_DRAW_COMMISSION_RATE_BPS", "0"))
    LOTTERY_DRAW_OPTIONAL_CLOSE = _env_bool("LOTTERY_DRAW_OPTIONAL_CLOSE", False)
