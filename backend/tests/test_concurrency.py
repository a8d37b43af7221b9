"""
Concurrency translation tests.

SQLite has no row locks here, so the races are staged by changing a
version column behind the ORM's back; the flush then sees a stale row.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from conftest import DAY, at
from lotto_recon.extensions import db
from lotto_recon.models import LotteryPosting, LotteryReading
from lotto_recon.services import pack_service, reading_service
from lotto_recon.services.concurrency import (
    ConcurrencyConflictError,
    get_lottery_day,
    run_serialized,
    touch_lottery_day,
)
from lotto_recon.time_utils import utcnow


def test_stale_and_operational_errors_become_conflicts(db_session):
    def _stale():
        raise StaleDataError("version mismatch")

    def _locked():
        raise OperationalError("UPDATE lottery_days", {}, Exception("database is locked"))

    for func in (_stale, _locked):
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            run_serialized(func, description="test op")
        assert exc_info.value.retryable is True
        assert "test op" in str(exc_info.value)


def test_domain_errors_pass_through(db_session):
    def _boom():
        raise ValueError("not a concurrency problem")

    with pytest.raises(ValueError):
        run_serialized(_boom)


def test_stale_day_row_conflicts(db_session, store):
    touch_lottery_day(store.id, DAY)
    db_session.commit()

    day = get_lottery_day(store.id, DAY)
    # Another writer bumps the day after we loaded it
    db_session.execute(
        text("UPDATE lottery_days SET version_id = version_id + 1 WHERE id = :id"),
        {"id": day.id},
    )
    day.touched_at = utcnow()

    with pytest.raises(ConcurrencyConflictError):
        run_serialized(db_session.flush, description="touch day")


def test_stale_pack_cannot_advance(db_session, store, pack):
    loaded = pack_service.get_pack(store.id, "P-0001")
    db_session.execute(
        text("UPDATE lottery_packs SET version_id = version_id + 1 WHERE id = :id"),
        {"id": loaded.id},
    )

    with pytest.raises(ConcurrencyConflictError):
        run_serialized(lambda: pack_service.advance_pack(loaded, 10), description="advance pack")

    assert pack_service.get_pack(store.id, "P-0001").current_ticket == 0


def test_reading_after_conflict_succeeds(db_session, store, pack):
    loaded = pack_service.get_pack(store.id, "P-0001")
    db_session.execute(
        text("UPDATE lottery_packs SET version_id = version_id + 1 WHERE id = :id"),
        {"id": loaded.id},
    )
    with pytest.raises(ConcurrencyConflictError):
        run_serialized(lambda: pack_service.advance_pack(loaded, 10))

    # Client retries the whole request
    result = reading_service.record_reading(store.id, "P-0001", "B1", 10, "manual", 7, captured_at=at(9))
    db_session.commit()

    assert result.reading.ticket_number == 10
    assert db_session.query(LotteryReading).count() == 1
    assert db_session.query(LotteryPosting).count() == 0


def test_conflict_rolls_back_session(db_session, store):
    touch_lottery_day(store.id, DAY)
    db_session.commit()

    day = get_lottery_day(store.id, DAY)
    db_session.execute(
        text("UPDATE lottery_days SET version_id = version_id + 1 WHERE id = :id"),
        {"id": day.id},
    )
    day.last_posted_at = utcnow()

    with pytest.raises(ConcurrencyConflictError):
        run_serialized(db_session.flush)

    # The session is usable again and the failed change is gone
    assert get_lottery_day(store.id, DAY).last_posted_at is None
    assert db.session.query(LotteryReading).count() == 0
