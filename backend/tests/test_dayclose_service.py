"""
Day-close aggregator tests.

The G1 scenario throughout: $2.00 tickets, 5% commission, 100 per pack,
start ticket 0.
"""

from datetime import date, timedelta

import pytest
from conftest import DAY, at
from lotto_recon.extensions import db
from lotto_recon.models import LotteryAnomaly, LotteryAuditEvent, LotteryDay
from lotto_recon.services import anomaly_service, dayclose_service, pack_service, reading_service, settings_service
from lotto_recon.services.dayclose_service import commission_cents
from lotto_recon.validation import ValidationError


def read(store, ticket, hour, *, pack_number="P-0001", box_label="B1", day=DAY):
    result = reading_service.record_reading(
        store.id, pack_number, box_label, ticket, "manual", 7, captured_at=at(hour, day=day)
    )
    db.session.commit()
    return result


def draw(store, day=DAY, **kwargs):
    fields = {"total_sales_cents": 50000, "total_cashed_cents": 12000, "adjustments_cents": -1000}
    fields.update(kwargs)
    draw_day = dayclose_service.save_draw_day(store.id, day, **fields)
    db.session.commit()
    return draw_day


@pytest.mark.parametrize("amount, rate, expected", [
    (6000, 500, 300),
    (25, 500, 1),       # 1.25
    (30, 500, 2),       # 1.5 rounds up
    (-30, 500, -2),     # ties away from zero
    (39000, 600, 2340),
    (0, 500, 0),
])
def test_commission_rounding(amount, rate, expected):
    assert commission_cents(amount, rate) == expected


def test_g1_scenario_commission(db_session, store, pack):
    read(store, 10, 9)
    read(store, 40, 12)
    draw(store)

    summary = dayclose_service.preview_day_close(store.id, DAY)

    [g1] = summary.instant_by_game
    assert g1.game_code == "G1"
    assert g1.tickets_sold == 30
    assert g1.face_sales_cents == 6000
    assert g1.commission_cents == 300
    assert summary.instant_commission_cents == 300
    assert summary.can_post is True


def test_regression_blocks_until_resolved(db_session, store, pack):
    read(store, 10, 9)
    read(store, 40, 12)
    regression = read(store, 35, 18).anomalies[0]
    draw(store)

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert summary.can_post is False
    assert [a["id"] for a in summary.blocking_anomalies] == [regression.id]
    assert summary.instant_by_game[0].tickets_sold == 30

    anomaly_service.resolve_anomaly(regression.id, "Recount: 45 is correct", 9)
    db_session.commit()

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert summary.can_post is True
    assert summary.anomalies == []
    assert [a["status"] for a in summary.reviewed_anomalies] == ["resolved"]


def test_acknowledged_high_no_longer_blocks(db_session, store, pack):
    read(store, 40, 9)
    regression = read(store, 35, 12).anomalies[0]
    draw(store)

    anomaly_service.acknowledge_anomaly(regression.id, 4)
    db_session.commit()

    assert dayclose_service.preview_day_close(store.id, DAY).can_post is True


def test_draw_day_net_and_rate_commission(db_session, store):
    draw_day = draw(store)
    assert draw_day.net_sale_cents == 39000

    settings_service.set_value(store.id, settings_service.KEY_DRAW_COMMISSION_RATE_BPS, 600)
    db_session.commit()

    totals = dayclose_service.preview_day_close(store.id, DAY).draw_totals
    assert totals.net_sale_cents == 39000
    assert totals.commission_rate_bps == 600
    assert totals.commission_cents == 2340
    assert totals.commission_source == "rate"


def test_explicit_draw_commission_wins(db_session, store):
    settings_service.set_value(store.id, settings_service.KEY_DRAW_COMMISSION_RATE_BPS, 600)
    draw(store, commission_source="statement", commission_amount_cents=2222)

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert summary.draw_commission_cents == 2222
    assert summary.total_commission_cents == 2222


def test_draw_day_upsert(db_session, store):
    first = draw(store)
    second = draw(store, total_sales_cents=60000)

    assert first.id == second.id
    assert dayclose_service.get_draw_day(store.id, DAY).total_sales_cents == 60000


def test_draw_day_validation(db_session, store):
    with pytest.raises(ValidationError):
        dayclose_service.save_draw_day(store.id, DAY, total_sales_cents=-5)
    with pytest.raises(ValidationError):
        dayclose_service.save_draw_day(store.id, DAY, total_sales_cents=100, commission_source="guess")
    with pytest.raises(ValidationError):
        dayclose_service.save_draw_day(store.id, DAY, total_sales_cents=100, commission_source="manual")
    with pytest.raises(ValidationError):
        dayclose_service.save_draw_day(
            store.id, DAY, total_sales_cents=100, commission_source="rate", commission_amount_cents=5
        )


def test_missing_draw_day_blocks_unless_optional(db_session, store, pack):
    read(store, 10, 9)

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert summary.can_post is False
    assert summary.blocking_anomalies == []
    assert any("Draw/online entry is required" in r for r in summary.blocking_reasons)

    settings_service.set_value(store.id, settings_service.KEY_DRAW_OPTIONAL_CLOSE, True)
    db_session.commit()

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert summary.can_post is True
    assert summary.draw_totals is None
    assert any("No draw/online entry" in w for w in summary.warnings)


def test_tickets_sold_counts_within_the_date_only(db_session, store, pack):
    next_day = DAY + timedelta(days=1)
    read(store, 10, 9)
    read(store, 40, 12)
    read(store, 60, 9, day=next_day)

    [g1] = dayclose_service.preview_day_close(store.id, DAY).instant_by_game
    assert g1.tickets_sold == 30

    # First reading of the day opens the count; overnight movement is not sold
    [g1_next] = dayclose_service.preview_day_close(store.id, next_day).instant_by_game
    assert g1_next.tickets_sold == 0
    assert g1_next.commission_cents == 0

    read(store, 75, 15, day=next_day)
    [g1_next] = dayclose_service.preview_day_close(store.id, next_day).instant_by_game
    assert g1_next.tickets_sold == 15
    assert g1_next.commission_cents == 150


def test_games_sorted_by_code(db_session, store, game, pack):
    pack_service.create_game("A9", "Aces", 500, 50, 600)
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-A9", "A9", "B2")
    db_session.commit()

    read(store, 0, 8, pack_number="P-A9", box_label="B2")
    read(store, 4, 12, pack_number="P-A9", box_label="B2")
    read(store, 1, 8)
    read(store, 3, 12)

    summary = dayclose_service.preview_day_close(store.id, DAY)
    assert [(g.game_code, g.tickets_sold, g.commission_cents) for g in summary.instant_by_game] == [
        ("A9", 4, 120),
        ("G1", 2, 20),
    ]
    assert summary.instant_face_sales_cents == 2400


def test_preview_is_pure_and_deterministic(db_session, store, pack):
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-0002", "G1", "B2")
    db_session.commit()
    read(store, 10, 9)
    read(store, 70, 12)
    draw(store)

    counts_before = (
        db_session.query(LotteryAnomaly).count(),
        db_session.query(LotteryAuditEvent).count(),
        db_session.query(LotteryDay).one().version_id,
    )

    first = dayclose_service.preview_day_close(store.id, DAY).to_dict()
    second = dayclose_service.preview_day_close(store.id, DAY).to_dict()
    db_session.commit()

    assert first == second
    assert counts_before == (
        db_session.query(LotteryAnomaly).count(),
        db_session.query(LotteryAuditEvent).count(),
        db_session.query(LotteryDay).one().version_id,
    )


def test_warnings(db_session, store, game, pack):
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-0002", game.game_code, "B2")
    db_session.commit()
    read(store, 10, 9)
    read(store, 70, 12)  # skipped_range, medium

    summary = dayclose_service.preview_day_close(store.id, DAY)

    assert any("Box B2" in w and "P-0002" in w for w in summary.warnings)
    assert any("No draw/online entry" in w for w in summary.warnings)
    assert any("medium-severity" in w for w in summary.warnings)


def test_displaced_pack_warning_on_its_day(db_session, store, game, box, pack):
    pack_service.activate_pack(store.id, "P-0002", game.game_code, box.label, retire_previous=True)
    db_session.commit()

    today = pack_service.store_business_date(store)
    summary = dayclose_service.preview_day_close(store.id, today)

    assert any("P-0001" in w and "displaced" in w for w in summary.warnings)


def test_flag_missing_readings_is_idempotent(db_session, store, game, pack):
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-0002", game.game_code, "B2")
    db_session.commit()
    read(store, 10, 9)

    raised = dayclose_service.flag_missing_readings(store.id, DAY)
    db_session.commit()
    again = dayclose_service.flag_missing_readings(store.id, DAY)
    db_session.commit()

    assert [(a.anomaly_type, a.severity, a.box_label) for a in raised] == [("missing_reading", "medium", "B2")]
    assert again == []
    assert db_session.query(LotteryAnomaly).filter_by(anomaly_type="missing_reading").count() == 1


def test_unknown_day_is_empty(db_session, store):
    summary = dayclose_service.preview_day_close(store.id, date(2030, 1, 1))

    assert summary.instant_by_game == []
    assert summary.total_commission_cents == 0
    assert summary.existing_posting is None
