"""
Reading validator tests.

Covers the outcomes of record_reading: clean readings, persisted
anomalies (regression, skipped range, box mismatch), and the rejections
that write nothing (bad input, out of range, closed pack).
"""

from datetime import date, datetime

import pytest
from conftest import DAY, at
from lotto_recon.extensions import db
from lotto_recon.models import LotteryAnomaly, LotteryReading, Store
from lotto_recon.services import pack_service, reading_service, settings_service
from lotto_recon.services.pack_service import PACK_STATUS_SOLD_OUT, PackClosedError
from lotto_recon.services.reading_service import OutOfRangeError
from lotto_recon.validation import NotFoundError, ValidationError


def read(store, ticket, hour, *, box_label="B1", pack_number="P-0001", source="manual"):
    result = reading_service.record_reading(
        store.id, pack_number, box_label, ticket, source, 7, captured_at=at(hour)
    )
    db.session.commit()
    return result


def test_clean_reading_has_no_anomalies(db_session, store, pack):
    result = read(store, 10, 9)

    assert result.anomalies == []
    assert result.reading.ticket_number == 10
    assert result.reading.business_date == DAY
    assert result.reading.actor_user_id == 7
    assert db_session.get(type(pack), pack.id).current_ticket == 10


def test_regression_is_recorded_with_high_anomaly(db_session, store, pack):
    read(store, 10, 9)
    read(store, 40, 12)
    result = read(store, 35, 18)

    assert result.reading.id is not None
    assert [(a.anomaly_type, a.severity) for a in result.anomalies] == [("ticket_regression", "high")]
    assert db_session.query(LotteryReading).count() == 3
    assert "40" in result.anomalies[0].detail and "35" in result.anomalies[0].detail


def test_jump_above_threshold_is_skipped_range(db_session, store, pack):
    read(store, 5, 9)
    result = read(store, 70, 12)

    assert [(a.anomaly_type, a.severity) for a in result.anomalies] == [("skipped_range", "medium")]


def test_jump_at_threshold_is_clean(db_session, store, pack):
    read(store, 5, 9)
    result = read(store, 55, 12)

    assert result.anomalies == []


def test_store_threshold_override(db_session, store, pack):
    settings_service.set_value(store.id, settings_service.KEY_PLAUSIBLE_SALES_THRESHOLD, 10)
    db_session.commit()

    read(store, 10, 9)
    result = read(store, 40, 12)

    assert [a.anomaly_type for a in result.anomalies] == ["skipped_range"]


def test_wrong_box_is_mismatch(db_session, store, pack):
    pack_service.create_box(store.id, "B2")
    db_session.commit()

    result = read(store, 10, 9, box_label="B2")

    assert [(a.anomaly_type, a.severity) for a in result.anomalies] == [("box_pack_mismatch", "medium")]
    assert result.anomalies[0].box_label == "B2"


def test_out_of_range_persists_nothing(db_session, store, pack):
    with pytest.raises(OutOfRangeError) as exc_info:
        reading_service.record_reading(store.id, "P-0001", "B1", 100, "scan", 7, captured_at=at(9))
    db_session.rollback()

    assert exc_info.value.anomaly["type"] == "out_of_range"
    assert exc_info.value.anomaly["severity"] == "high"
    assert db_session.query(LotteryReading).count() == 0
    assert db_session.query(LotteryAnomaly).count() == 0


def test_below_start_ticket_is_out_of_range(db_session, store, game, box):
    pack_service.activate_pack(store.id, "P-0500", game.game_code, box.label, start_ticket=500)
    db_session.commit()

    with pytest.raises(OutOfRangeError):
        reading_service.record_reading(store.id, "P-0500", "B1", 499, "manual", 7, captured_at=at(9))
    db_session.rollback()

    result = read(store, 599, 10, pack_number="P-0500")
    assert result.reading.ticket_number == 599


@pytest.mark.parametrize("ticket", [-1, 12.5, "12.5", "1e3", True, None, "abc"])
def test_malformed_ticket_numbers_rejected(db_session, store, pack, ticket):
    with pytest.raises(ValidationError):
        reading_service.record_reading(store.id, "P-0001", "B1", ticket, "manual", 7, captured_at=at(9))
    db_session.rollback()
    assert db_session.query(LotteryReading).count() == 0


def test_numeric_string_ticket_accepted(db_session, store, pack):
    result = read(store, "12", 9)
    assert result.reading.ticket_number == 12


def test_unknown_source_rejected(db_session, store, pack):
    with pytest.raises(ValidationError):
        reading_service.record_reading(store.id, "P-0001", "B1", 10, "fax", 7, captured_at=at(9))


def test_blank_box_label_rejected(db_session, store, pack):
    with pytest.raises(ValidationError):
        reading_service.record_reading(store.id, "P-0001", "  ", 10, "manual", 7, captured_at=at(9))


def test_unknown_pack_not_found(db_session, store, pack):
    with pytest.raises(NotFoundError):
        reading_service.record_reading(store.id, "P-9999", "B1", 10, "manual", 7, captured_at=at(9))
    db_session.rollback()


def test_final_ticket_sells_out_pack_and_closes_it(db_session, store, pack):
    read(store, 60, 9)
    read(store, 99, 12)

    db_session.refresh(pack)
    assert pack.status == PACK_STATUS_SOLD_OUT
    assert pack.current_ticket == 99
    assert pack.sold_out_at is not None

    with pytest.raises(PackClosedError):
        reading_service.record_reading(store.id, "P-0001", "B1", 99, "manual", 7, captured_at=at(15))
    db_session.rollback()
    assert db_session.query(LotteryReading).count() == 2


def test_returned_pack_rejects_readings(db_session, store, pack):
    pack_service.return_pack(store.id, "P-0001", actor_user_id=3)
    db_session.commit()

    with pytest.raises(PackClosedError):
        reading_service.record_reading(store.id, "P-0001", "B1", 10, "manual", 7, captured_at=at(9))
    db_session.rollback()


def test_capture_order_enforced(db_session, store, pack):
    read(store, 10, 12)

    with pytest.raises(ValidationError):
        reading_service.record_reading(store.id, "P-0001", "B1", 20, "manual", 7, captured_at=at(9))
    db_session.rollback()


def test_business_date_uses_store_timezone(db_session, game):
    store = Store(name="East", code="EAST", timezone="America/New_York")
    db_session.add(store)
    db_session.commit()
    pack_service.create_box(store.id, "B1")
    pack_service.activate_pack(store.id, "P-1", game.game_code, "B1")
    db_session.commit()

    # 02:00 UTC on Mar 2 is still Mar 1 in New York
    result = reading_service.record_reading(
        store.id, "P-1", "B1", 3, "manual", 7, captured_at=datetime(2024, 3, 2, 2, 0)
    )
    db_session.commit()

    assert result.reading.business_date == date(2024, 3, 1)


def test_pack_range_invariant_holds_after_readings(db_session, store, pack):
    for hour, ticket in enumerate([3, 1, 50, 40, 99], start=8):
        read(store, ticket, hour)
        db_session.refresh(pack)
        last = pack.start_ticket + pack.game.pack_size - 1
        assert pack.start_ticket <= pack.current_ticket <= last
        assert (pack.status == PACK_STATUS_SOLD_OUT) == (pack.current_ticket == last)
