# Overview: Service-layer operations for concurrency; row locks, per-day version rows, conflict translation.

from __future__ import annotations

from datetime import date

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import LotteryDay
from lotto_recon.time_utils import utcnow


class ConcurrencyConflictError(Exception):
    """
    Raised when a concurrent write invalidated this one.

    Retryable: the caller resubmits at the transport level. Nothing from
    the failed attempt was kept.
    """
    retryable = True

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version columns still catch the race on SQLite.
    """
    return query.with_for_update()


def run_serialized(func, *, description: str = "operation"):
    """
    Execute a DB operation, turning concurrency failures into a conflict.

    OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic version mismatch) roll the session back. No internal
    retry: the stale comparison must be recomputed by a fresh request.
    """
    try:
        return func()
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            f"Concurrent update detected during {description}; retry the request",
            details={"cause": exc.__class__.__name__},
        ) from exc


def commit_or_conflict(*, description: str = "commit") -> None:
    """Commit current session; version mismatches at commit time surface as a conflict."""
    def _op():
        db.session.commit()
    run_serialized(_op, description=description)


def get_lottery_day(store_id: int, business_date: date, *, lock: bool = False) -> LotteryDay | None:
    query = db.session.query(LotteryDay).filter_by(store_id=store_id, business_date=business_date)
    if lock:
        query = lock_for_update(query)
    return query.first()


def touch_lottery_day(store_id: int, business_date: date, *, lock: bool = False) -> LotteryDay:
    """
    Get-or-create the (store, date) version row and bump its version.

    Two first-time creators racing on the unique key surface as a conflict.
    """
    day = get_lottery_day(store_id, business_date, lock=lock)
    if day is None:
        day = LotteryDay(store_id=store_id, business_date=business_date)
        db.session.add(day)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConcurrencyConflictError(
                f"Day {business_date.isoformat()} for store {store_id} was created concurrently; retry the request",
                details={"store_id": store_id, "business_date": business_date.isoformat()},
            ) from exc
    day.touched_at = utcnow()
    return day
