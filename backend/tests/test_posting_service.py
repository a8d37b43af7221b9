"""
Posting gate tests.
"""

import pytest
from conftest import DAY, at
from lotto_recon.extensions import db
from lotto_recon.models import LotteryAnomaly, LotteryAuditEvent, LotteryPosting, LotteryPostingLine
from lotto_recon.services import anomaly_service, dayclose_service, pack_service, posting_service, reading_service, settings_service
from lotto_recon.services.concurrency import get_lottery_day
from lotto_recon.services.posting_service import PostingBlockedError


def read(store, ticket, hour):
    result = reading_service.record_reading(store.id, "P-0001", "B1", ticket, "manual", 7, captured_at=at(hour))
    db.session.commit()
    return result


@pytest.fixture
def g1_day(db_session, store, pack):
    """30 G1 tickets sold ($3.00 commission) and a draw entry (net $390.00, 6%)."""
    read(store, 10, 9)
    read(store, 40, 12)
    settings_service.set_value(store.id, settings_service.KEY_DRAW_COMMISSION_RATE_BPS, 600)
    dayclose_service.save_draw_day(
        store.id, DAY, total_sales_cents=50000, total_cashed_cents=12000, adjustments_cents=-1000
    )
    db_session.commit()


def post(store, user_id=11):
    result = posting_service.post_day_close(store.id, DAY, user_id)
    db.session.commit()
    return result


def test_post_writes_balanced_gl_lines(db_session, store, g1_day):
    result = post(store)
    posting = result.posting

    assert result.superseded is False
    assert posting.revision == 1
    assert posting.instant_commission_cents == 300
    assert posting.draw_net_sale_cents == 39000
    assert posting.draw_commission_cents == 2340
    assert posting.total_commission_cents == 2640
    assert posting.posted_by_user_id == 11

    lines = [(l.account_name, l.debit_cents, l.credit_cents) for l in posting.lines]
    assert lines == [
        ("Lottery Receivable", 2640, 0),
        ("Lottery Commissions - Instant", 0, 300),
        ("Lottery Commissions - Draw/Online", 0, 2340),
    ]
    assert sum(l.debit_cents for l in posting.lines) == sum(l.credit_cents for l in posting.lines)

    assert get_lottery_day(store.id, DAY).last_posted_at is not None


def test_gl_entry_set_payload(db_session, store, g1_day):
    posting = post(store).posting
    entry = posting.to_gl_entry_set()

    assert entry["date"] == DAY.isoformat()
    assert entry["store_id"] == store.id
    assert entry["commission"] == {"instant_cents": 300, "draw_cents": 2340, "total_cents": 2640}
    assert entry["net"]["draw_net_sale_cents"] == 39000
    assert len(entry["lines"]) == 3

    event = db_session.query(LotteryAuditEvent).filter_by(event_type="day_posted").one()
    assert event.payload_dict()["commission"]["total_cents"] == 2640
    assert event.actor_user_id == 11


def test_zero_lines_omitted(db_session, store, pack):
    read(store, 10, 9)
    read(store, 40, 12)
    settings_service.set_value(store.id, settings_service.KEY_DRAW_OPTIONAL_CLOSE, True)
    db_session.commit()

    posting = post(store).posting

    assert [l.account_name for l in posting.lines] == ["Lottery Receivable", "Lottery Commissions - Instant"]
    assert posting.draw_net_sale_cents is None


def test_negative_draw_commission_flips_side(db_session, store):
    dayclose_service.save_draw_day(
        store.id, DAY, total_sales_cents=0, commission_source="statement", commission_amount_cents=-500
    )
    db_session.commit()

    lines = [(l.account_name, l.debit_cents, l.credit_cents) for l in post(store).posting.lines]

    assert lines == [
        ("Lottery Receivable", 0, 500),
        ("Lottery Commissions - Draw/Online", 500, 0),
    ]


def test_repost_supersedes_in_place(db_session, store, g1_day):
    first = post(store).posting
    first_id = first.id

    read(store, 50, 15)
    result = post(store, user_id=12)

    assert result.superseded is True
    assert result.posting.id == first_id
    assert result.posting.revision == 2
    assert result.posting.instant_commission_cents == 400
    assert result.posting.posted_by_user_id == 12
    assert db_session.query(LotteryPosting).count() == 1
    assert db_session.query(LotteryPostingLine).count() == 3
    assert not any(w.startswith("Day already posted") for w in result.warnings)


def test_blocked_by_open_high_anomaly(db_session, store, g1_day):
    regression = read(store, 35, 15).anomalies[0]

    with pytest.raises(PostingBlockedError) as exc_info:
        posting_service.post_day_close(store.id, DAY, 11)
    db_session.rollback()

    err = exc_info.value
    assert [a["id"] for a in err.blocking_anomalies] == [regression.id]
    assert err.blocking_anomalies[0]["type"] == "ticket_regression"
    assert err.reasons
    assert db_session.query(LotteryPosting).count() == 0
    assert db_session.query(LotteryAuditEvent).filter_by(event_type="day_posted").count() == 0

    anomaly_service.resolve_anomaly(regression.id, "Recount: 45", 9)
    db_session.commit()

    assert post(store).posting.revision == 1


def test_blocked_without_draw_entry(db_session, store, pack):
    read(store, 10, 9)

    with pytest.raises(PostingBlockedError) as exc_info:
        posting_service.post_day_close(store.id, DAY, 11)
    db_session.rollback()

    assert exc_info.value.blocking_anomalies == []
    assert any("Draw/online" in r for r in exc_info.value.reasons)


def test_post_flags_missing_readings(db_session, store, game, g1_day):
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-0002", game.game_code, "B2")
    db_session.commit()

    result = post(store)

    missing = db_session.query(LotteryAnomaly).filter_by(anomaly_type="missing_reading").all()
    assert [(a.box_label, a.severity, a.status) for a in missing] == [("B2", "medium", "open")]
    assert any("Box B2" in w for w in result.warnings)

    # Second post does not duplicate the finding
    post(store)
    assert db_session.query(LotteryAnomaly).filter_by(anomaly_type="missing_reading").count() == 1
