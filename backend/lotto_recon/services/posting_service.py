# backend/lotto_recon/services/posting_service.py
"""
Posting gate.

WHY: Posting a lottery day to the General Ledger is irreversible from the
store's point of view. The verdict that allows it must be computed here,
inside the same transaction as the write, not trusted from a UI preview.

SEQUENCE (one transaction):
1. Lock/create the LotteryDay row for (store, date)
2. Flag unread active packs as missing_reading anomalies
3. Recompute the day-close summary
4. Refuse if blocked (PostingBlockedError; nothing written)
5. Upsert the Posting: revision + 1, lines replaced
6. Bump the LotteryDay version; append the day_posted audit event

A resolution or reading committed by another request between steps 1 and
6 bumps the same version row, so this flush fails with StaleDataError and
surfaces as ConcurrencyConflictError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from lotto_recon.extensions import db
from lotto_recon.models import LotteryPosting, LotteryPostingLine
from lotto_recon.services import audit_service, dayclose_service, pack_service
from lotto_recon.services.concurrency import (
    ConcurrencyConflictError,
    lock_for_update,
    run_serialized,
    touch_lottery_day,
)
from lotto_recon.time_utils import utcnow
from lotto_recon.validation import coerce_int


ACCOUNT_RECEIVABLE = "Lottery Receivable"
ACCOUNT_INSTANT_COMMISSION = "Lottery Commissions - Instant"
ACCOUNT_DRAW_COMMISSION = "Lottery Commissions - Draw/Online"


class PostingBlockedError(Exception):
    """
    Raised when the day cannot be posted.

    blocking_anomalies: open high-severity anomalies (id, type, detail)
    reasons: human-readable reasons, including a missing draw entry
    """

    def __init__(self, message: str, *, blocking_anomalies: list[dict], reasons: list[str]):
        super().__init__(message)
        self.blocking_anomalies = blocking_anomalies
        self.reasons = reasons


@dataclass
class PostResult:
    posting: LotteryPosting
    superseded: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "posting": self.posting.to_dict(),
            "gl_entry_set": self.posting.to_gl_entry_set(),
            "superseded": self.superseded,
            "warnings": list(self.warnings),
        }


def _line(account_name: str, amount_cents: int, *, natural_side: str, description: str) -> dict | None:
    """One GL line; negative amounts flip to the opposite side, zero is omitted."""
    if amount_cents == 0:
        return None
    side = natural_side
    if amount_cents < 0:
        side = "credit" if natural_side == "debit" else "debit"
    amount = abs(amount_cents)
    return {
        "account_name": account_name,
        "debit_cents": amount if side == "debit" else 0,
        "credit_cents": amount if side == "credit" else 0,
        "description": description,
    }


def build_gl_lines(summary: dayclose_service.DayCloseSummary) -> list[dict]:
    """
    Balanced GL lines for a day:
        Dr Lottery Receivable                total commission
            Cr Lottery Commissions - Instant         instant commission
            Cr Lottery Commissions - Draw/Online     draw commission
    """
    day = summary.business_date.isoformat()
    candidates = [
        _line(
            ACCOUNT_RECEIVABLE,
            summary.total_commission_cents,
            natural_side="debit",
            description=f"Lottery commission receivable {day}",
        ),
        _line(
            ACCOUNT_INSTANT_COMMISSION,
            summary.instant_commission_cents,
            natural_side="credit",
            description=f"Instant ticket commission {day}",
        ),
        _line(
            ACCOUNT_DRAW_COMMISSION,
            summary.draw_commission_cents,
            natural_side="credit",
            description=f"Draw/online commission {day}",
        ),
    ]
    return [line for line in candidates if line is not None]


def get_posting(store_id: int, business_date: date) -> LotteryPosting | None:
    return (
        db.session.query(LotteryPosting)
        .filter_by(store_id=store_id, business_date=business_date)
        .first()
    )


def post_day_close(store_id: int, business_date: date, actor_user_id) -> PostResult:
    """
    Post a store's lottery day to the General Ledger.

    Returns:
        PostResult: the posting, whether it superseded an earlier one, and
        the preview's non-blocking warnings

    Raises:
        NotFoundError: unknown store
        PostingBlockedError: open high-severity anomalies, or no draw entry
            when the store requires one
        ConcurrencyConflictError: the day changed underneath this post
    """
    actor_user_id = coerce_int(actor_user_id, "actor_user_id", minimum=1)

    def _op():
        pack_service.get_store(store_id)
        day = touch_lottery_day(store_id, business_date, lock=True)

        dayclose_service.flag_missing_readings(store_id, business_date, actor_user_id=actor_user_id)
        summary = dayclose_service.preview_day_close(store_id, business_date)

        if not summary.can_post:
            db.session.rollback()
            current_app.logger.warning(
                "Posting blocked for store %s on %s by user %s: %s",
                store_id, business_date.isoformat(), actor_user_id, "; ".join(summary.blocking_reasons),
            )
            raise PostingBlockedError(
                f"Lottery day {business_date.isoformat()} cannot be posted",
                blocking_anomalies=[
                    {"id": a["id"], "type": a["type"], "severity": a["severity"], "detail": a["detail"]}
                    for a in summary.blocking_anomalies
                ],
                reasons=list(summary.blocking_reasons),
            )

        posting = lock_for_update(
            db.session.query(LotteryPosting).filter_by(store_id=store_id, business_date=business_date)
        ).first()
        superseded = posting is not None
        if posting is None:
            posting = LotteryPosting(store_id=store_id, business_date=business_date, revision=1)
            db.session.add(posting)
        else:
            posting.revision += 1
            # Old lines go first so the (posting_id, line_number) key is free
            posting.lines.clear()
            db.session.flush()

        posting.instant_face_sales_cents = summary.instant_face_sales_cents
        posting.instant_commission_cents = summary.instant_commission_cents
        posting.draw_net_sale_cents = summary.draw_totals.net_sale_cents if summary.draw_totals else None
        posting.draw_commission_cents = summary.draw_commission_cents
        posting.total_commission_cents = summary.total_commission_cents
        posting.posted_by_user_id = actor_user_id
        posting.posted_at = utcnow()

        for number, line in enumerate(build_gl_lines(summary), start=1):
            posting.lines.append(LotteryPostingLine(line_number=number, **line))

        day.last_posted_at = posting.posted_at

        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConcurrencyConflictError(
                f"Lottery day {business_date.isoformat()} was posted concurrently; retry the request",
                details={"store_id": store_id, "business_date": business_date.isoformat()},
            ) from exc

        audit_service.append_event(
            store_id=store_id,
            business_date=business_date,
            event_type=audit_service.EVENT_DAY_POSTED,
            entity_type="posting",
            entity_id=posting.id,
            actor_user_id=actor_user_id,
            note="Re-posted; superseded revision %d" % (posting.revision - 1) if superseded else None,
            payload=posting.to_gl_entry_set(),
        )
        db.session.flush()

        current_app.logger.info(
            "Lottery day posted: store=%s date=%s revision=%s total_commission_cents=%s user=%s",
            store_id, business_date.isoformat(), posting.revision, posting.total_commission_cents, actor_user_id,
        )

        warnings = [w for w in summary.warnings if not w.startswith("Day already posted")]
        return PostResult(posting=posting, superseded=superseded, warnings=warnings)

    return run_serialized(_op, description=f"posting lottery day {business_date.isoformat()}")
