# backend/lotto_recon/services/dayclose_service.py
"""
Day-close aggregator.

WHY: Before a lottery day can reach the General Ledger, someone needs one
view of what the day earned (instant + draw commission), what is still
wrong with the data, and whether posting is allowed.

preview_day_close() is a pure read: no flush, no add, no version bump.
It is safe to call repeatedly for UI previews; the posting gate calls it
again inside its own transaction rather than trusting a preview.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from lotto_recon.extensions import db
from lotto_recon.models import (
    LotteryAnomaly,
    LotteryBox,
    LotteryDrawDay,
    LotteryGame,
    LotteryPack,
    LotteryPosting,
    LotteryReading,
)
from lotto_recon.services import anomaly_service, audit_service, pack_service, settings_service
from lotto_recon.services.anomaly_service import (
    ANOMALY_MISSING_READING,
    ANOMALY_STATUS_OPEN,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
)
from lotto_recon.services.pack_service import PACK_STATUS_ACTIVE
from lotto_recon.validation import ValidationError, coerce_cents, optional_text, require_choice


BPS_DENOMINATOR = Decimal(10_000)

# Draw commission source constants
COMMISSION_SOURCE_MANUAL = "manual"
COMMISSION_SOURCE_STATEMENT = "statement"
COMMISSION_SOURCE_RATE = "rate"

COMMISSION_SOURCES = {COMMISSION_SOURCE_MANUAL, COMMISSION_SOURCE_STATEMENT, COMMISSION_SOURCE_RATE}


def commission_cents(amount_cents: int, rate_bps: int) -> int:
    """amount x rate, nearest cent (half-up, away from zero on ties)."""
    raw = Decimal(amount_cents) * Decimal(rate_bps) / BPS_DENOMINATOR
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class GameCommission:
    game_id: int
    game_code: str
    game_name: str
    ticket_price_cents: int
    commission_rate_bps: int
    tickets_sold: int = 0

    @property
    def face_sales_cents(self) -> int:
        return self.tickets_sold * self.ticket_price_cents

    @property
    def commission_cents(self) -> int:
        return commission_cents(self.face_sales_cents, self.commission_rate_bps)

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "game_code": self.game_code,
            "game_name": self.game_name,
            "tickets_sold": self.tickets_sold,
            "ticket_price_cents": self.ticket_price_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "face_sales_cents": self.face_sales_cents,
            "commission_cents": self.commission_cents,
        }


@dataclass
class DrawTotals:
    total_sales_cents: int
    total_cashed_cents: int
    adjustments_cents: int
    commission_source: str | None
    commission_cents: int
    commission_rate_bps: int | None

    @property
    def net_sale_cents(self) -> int:
        return self.total_sales_cents - self.total_cashed_cents - self.adjustments_cents

    def to_dict(self) -> dict:
        return {
            "total_sales_cents": self.total_sales_cents,
            "total_cashed_cents": self.total_cashed_cents,
            "adjustments_cents": self.adjustments_cents,
            "net_sale_cents": self.net_sale_cents,
            "commission_source": self.commission_source,
            "commission_cents": self.commission_cents,
            "commission_rate_bps": self.commission_rate_bps,
        }


@dataclass
class DayCloseSummary:
    """
    Derived, never persisted.

    anomalies holds the open ones (they drive can_post); reviewed_anomalies
    holds acknowledged/resolved ones for the audit display only.
    """
    store_id: int
    business_date: date
    instant_by_game: list[GameCommission] = field(default_factory=list)
    draw_totals: DrawTotals | None = None
    anomalies: list[dict] = field(default_factory=list)
    reviewed_anomalies: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    blocking_reasons: list[str] = field(default_factory=list)
    blocking_anomalies: list[dict] = field(default_factory=list)
    existing_posting: dict | None = None
    can_post: bool = False

    @property
    def instant_face_sales_cents(self) -> int:
        return sum(g.face_sales_cents for g in self.instant_by_game)

    @property
    def instant_commission_cents(self) -> int:
        return sum(g.commission_cents for g in self.instant_by_game)

    @property
    def draw_commission_cents(self) -> int:
        return self.draw_totals.commission_cents if self.draw_totals else 0

    @property
    def total_commission_cents(self) -> int:
        return self.instant_commission_cents + self.draw_commission_cents

    def to_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "business_date": self.business_date.isoformat(),
            "instant_by_game": [g.to_dict() for g in self.instant_by_game],
            "instant_face_sales_cents": self.instant_face_sales_cents,
            "instant_commission_cents": self.instant_commission_cents,
            "draw_totals": self.draw_totals.to_dict() if self.draw_totals else None,
            "draw_commission_cents": self.draw_commission_cents,
            "total_commission_cents": self.total_commission_cents,
            "anomalies": list(self.anomalies),
            "reviewed_anomalies": list(self.reviewed_anomalies),
            "warnings": list(self.warnings),
            "blocking_reasons": list(self.blocking_reasons),
            "blocking_anomalies": list(self.blocking_anomalies),
            "existing_posting": self.existing_posting,
            "can_post": self.can_post,
        }


def get_draw_day(store_id: int, business_date: date) -> LotteryDrawDay | None:
    return db.session.query(LotteryDrawDay).filter_by(store_id=store_id, business_date=business_date).first()


def save_draw_day(
    store_id: int,
    business_date: date,
    *,
    total_sales_cents,
    total_cashed_cents=0,
    adjustments_cents=0,
    commission_source: str | None = None,
    commission_amount_cents=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> LotteryDrawDay:
    """
    Create or overwrite the draw/online entry for a store and date.

    commission_amount_cents=None means "compute from the store's draw
    rate"; an explicit amount (e.g. from the lottery statement) wins.
    """
    pack_service.get_store(store_id)
    total_sales = coerce_cents(total_sales_cents, "total_sales_cents")
    total_cashed = coerce_cents(total_cashed_cents, "total_cashed_cents")
    adjustments = coerce_cents(adjustments_cents, "adjustments_cents", allow_negative=True)

    explicit_commission = None
    if commission_amount_cents is not None:
        explicit_commission = coerce_cents(commission_amount_cents, "commission_amount_cents", allow_negative=True)

    if commission_source is None:
        commission_source = COMMISSION_SOURCE_RATE if explicit_commission is None else COMMISSION_SOURCE_MANUAL
    require_choice(commission_source, "commission_source", COMMISSION_SOURCES)
    if commission_source == COMMISSION_SOURCE_RATE and explicit_commission is not None:
        raise ValidationError("commission_amount_cents must be omitted when commission_source is 'rate'")
    if commission_source != COMMISSION_SOURCE_RATE and explicit_commission is None:
        raise ValidationError(f"commission_amount_cents is required when commission_source is '{commission_source}'")

    draw_day = get_draw_day(store_id, business_date)
    if draw_day is None:
        draw_day = LotteryDrawDay(store_id=store_id, business_date=business_date)
        db.session.add(draw_day)

    draw_day.total_sales_cents = total_sales
    draw_day.total_cashed_cents = total_cashed
    draw_day.adjustments_cents = adjustments
    draw_day.commission_source = commission_source
    draw_day.commission_amount_cents = explicit_commission
    draw_day.notes = optional_text(notes)
    draw_day.entered_by_user_id = user_id

    db.session.flush()
    return draw_day


def compute_instant_by_game(store_id: int, business_date: date) -> list[GameCommission]:
    """
    Tickets sold per game on a date.

    Readings are compared only within the date: each reading contributes
    max(0, ticket - previous ticket) against the same pack's previous
    reading on that date, so a pack's first reading of the day contributes
    nothing. Regressions contribute zero; they surface as anomalies instead.
    """
    rows = (
        db.session.query(LotteryReading, LotteryPack, LotteryGame)
        .join(LotteryPack, LotteryReading.pack_id == LotteryPack.id)
        .join(LotteryGame, LotteryPack.game_id == LotteryGame.id)
        .filter(LotteryReading.store_id == store_id, LotteryReading.business_date == business_date)
        .order_by(LotteryReading.pack_id.asc(), LotteryReading.captured_at.asc(), LotteryReading.id.asc())
        .all()
    )

    by_game: dict[int, GameCommission] = {}
    previous_ticket: dict[int, int] = {}

    for reading, pack, game in rows:
        entry = by_game.get(game.id)
        if entry is None:
            entry = GameCommission(
                game_id=game.id,
                game_code=game.game_code,
                game_name=game.name,
                ticket_price_cents=game.ticket_price_cents,
                commission_rate_bps=game.commission_rate_bps,
            )
            by_game[game.id] = entry

        prev = previous_ticket.get(pack.id)
        if prev is not None:
            entry.tickets_sold += max(0, reading.ticket_number - prev)
        previous_ticket[pack.id] = reading.ticket_number

    return sorted(by_game.values(), key=lambda g: g.game_code)


def compute_draw_totals(store_id: int, draw_day: LotteryDrawDay | None) -> DrawTotals | None:
    if draw_day is None:
        return None

    if draw_day.commission_amount_cents is not None:
        return DrawTotals(
            total_sales_cents=draw_day.total_sales_cents,
            total_cashed_cents=draw_day.total_cashed_cents,
            adjustments_cents=draw_day.adjustments_cents,
            commission_source=draw_day.commission_source,
            commission_cents=draw_day.commission_amount_cents,
            commission_rate_bps=None,
        )

    rate_bps = settings_service.draw_commission_rate_bps(store_id)
    return DrawTotals(
        total_sales_cents=draw_day.total_sales_cents,
        total_cashed_cents=draw_day.total_cashed_cents,
        adjustments_cents=draw_day.adjustments_cents,
        commission_source=draw_day.commission_source or COMMISSION_SOURCE_RATE,
        commission_cents=commission_cents(draw_day.net_sale_cents, rate_bps),
        commission_rate_bps=rate_bps,
    )


def boxes_missing_readings(store_id: int, business_date: date) -> list[tuple[LotteryBox, LotteryPack]]:
    """Active boxes holding an active pack that has no reading on the date."""
    rows = (
        db.session.query(LotteryBox, LotteryPack)
        .join(LotteryPack, LotteryPack.box_id == LotteryBox.id)
        .filter(
            LotteryBox.store_id == store_id,
            LotteryBox.is_active.is_(True),
            LotteryPack.status == PACK_STATUS_ACTIVE,
        )
        .order_by(LotteryBox.label.asc(), LotteryPack.id.asc())
        .all()
    )

    read_pack_ids = {
        pack_id
        for (pack_id,) in db.session.query(LotteryReading.pack_id)
        .filter(LotteryReading.store_id == store_id, LotteryReading.business_date == business_date)
        .distinct()
        .all()
    }
    return [(box, pack) for box, pack in rows if pack.id not in read_pack_ids]


def preview_day_close(store_id: int, business_date: date) -> DayCloseSummary:
    """
    Aggregate a store's lottery day and derive the posting verdict.

    can_post = (draw entry exists OR store allows draw-optional close)
               AND no open high-severity anomaly for the date
    """
    store = pack_service.get_store(store_id)
    summary = DayCloseSummary(store_id=store.id, business_date=business_date)

    summary.instant_by_game = compute_instant_by_game(store_id, business_date)

    draw_day = get_draw_day(store_id, business_date)
    summary.draw_totals = compute_draw_totals(store_id, draw_day)

    open_medium = 0
    for anomaly in anomaly_service.anomalies_for_day(store_id, business_date):
        if anomaly.status == ANOMALY_STATUS_OPEN:
            summary.anomalies.append(anomaly.to_dict())
            if anomaly.severity == SEVERITY_HIGH:
                summary.blocking_anomalies.append(anomaly.to_dict())
            elif anomaly.severity == SEVERITY_MEDIUM:
                open_medium += 1
        else:
            summary.reviewed_anomalies.append(anomaly.to_dict())

    for box, pack in boxes_missing_readings(store_id, business_date):
        summary.warnings.append(
            f"Box {box.label} (pack {pack.pack_number}) has no reading for {business_date.isoformat()}"
        )

    for event in audit_service.list_events(
        store_id,
        business_date=business_date,
        event_type=audit_service.EVENT_PACK_DISPLACED,
    ):
        summary.warnings.append(event.note or f"Pack {event.entity_id} was displaced while still active")

    draw_optional = settings_service.draw_optional_close(store_id)
    if draw_day is None:
        if draw_optional:
            summary.warnings.append("No draw/online entry for this date; closing without draw figures")
        else:
            summary.warnings.append("No draw/online entry for this date")
            summary.blocking_reasons.append("Draw/online entry is required before posting")

    if open_medium:
        summary.warnings.append(f"{open_medium} medium-severity anomaly(ies) should be reviewed")

    if summary.blocking_anomalies:
        summary.blocking_reasons.append(
            f"{len(summary.blocking_anomalies)} high-severity anomaly(ies) must be resolved before posting"
        )

    posting = (
        db.session.query(LotteryPosting)
        .filter_by(store_id=store_id, business_date=business_date)
        .first()
    )
    if posting is not None:
        summary.existing_posting = {
            "id": posting.id,
            "revision": posting.revision,
            "posted_at": posting.to_dict()["posted_at"],
            "total_commission_cents": posting.total_commission_cents,
        }
        summary.warnings.append(
            f"Day already posted (revision {posting.revision}); posting again supersedes it"
        )

    summary.can_post = not summary.blocking_reasons
    return summary


def flag_missing_readings(store_id: int, business_date: date, *, actor_user_id: int | None = None) -> list[LotteryAnomaly]:
    """
    Raise missing_reading anomalies (medium) for unread active packs.

    Idempotent per pack and date. A write operation: preview never calls
    it; the posting gate does, inside its transaction.
    """
    existing = {
        pack_id
        for (pack_id,) in db.session.query(LotteryAnomaly.pack_id)
        .filter(
            LotteryAnomaly.store_id == store_id,
            LotteryAnomaly.business_date == business_date,
            LotteryAnomaly.anomaly_type == ANOMALY_MISSING_READING,
        )
        .all()
    }

    raised = []
    for box, pack in boxes_missing_readings(store_id, business_date):
        if pack.id in existing:
            continue
        raised.append(anomaly_service.raise_anomaly(
            store_id=store_id,
            business_date=business_date,
            anomaly_type=ANOMALY_MISSING_READING,
            severity=SEVERITY_MEDIUM,
            detail=(
                f"No reading recorded for pack {pack.pack_number} in box {box.label} "
                f"on {business_date.isoformat()}"
            ),
            pack_id=pack.id,
            box_label=box.label,
            actor_user_id=actor_user_id,
        ))
    return raised
