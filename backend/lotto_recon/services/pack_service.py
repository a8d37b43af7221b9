# backend/lotto_recon/services/pack_service.py
"""
Pack lifecycle tracker.

WHY: Every reconciliation rule depends on knowing which pack is in which
box and how far through it sales have progressed. This module owns that
relation and the pack state transitions; nothing else mutates
LotteryPack.status, box_id or current_ticket.

LIFECYCLE:
1. active: assigned to a box (or displaced from one), accepting readings
2. sold_out: current_ticket == start_ticket + pack_size - 1
3. returned: unsold remainder returned to the lottery

sold_out and returned are terminal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from lotto_recon.extensions import db
from lotto_recon.models import LotteryBox, LotteryGame, LotteryPack, Store
from lotto_recon.services import audit_service
from lotto_recon.services.concurrency import lock_for_update
from lotto_recon.time_utils import business_date_for, utcnow
from lotto_recon.validation import ConflictError, NotFoundError, ValidationError, coerce_int, require_text


# Pack status constants
PACK_STATUS_ACTIVE = "active"
PACK_STATUS_SOLD_OUT = "sold_out"
PACK_STATUS_RETURNED = "returned"

PACK_STATUSES = {PACK_STATUS_ACTIVE, PACK_STATUS_SOLD_OUT, PACK_STATUS_RETURNED}


class PackClosedError(ConflictError):
    """Raised when a sold-out or returned pack is asked to accept a change."""


@dataclass
class PackAssignment:
    """Outcome of placing a pack in a box; warnings are non-blocking notices."""
    pack: LotteryPack
    box: LotteryBox
    displaced_pack: LotteryPack | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pack": self.pack.to_dict(),
            "box": self.box.to_dict(),
            "displaced_pack": self.displaced_pack.to_dict() if self.displaced_pack else None,
            "warnings": list(self.warnings),
        }


def get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def store_business_date(store: Store, at=None) -> date:
    return business_date_for(at or utcnow(), store.timezone)


def get_game(game_code: str) -> LotteryGame:
    game = db.session.query(LotteryGame).filter_by(game_code=game_code).first()
    if not game:
        raise NotFoundError(f"Game {game_code} not found")
    return game


def get_box(store_id: int, label: str) -> LotteryBox:
    box = db.session.query(LotteryBox).filter_by(store_id=store_id, label=label).first()
    if not box:
        raise NotFoundError(f"Box {label} not found in store {store_id}")
    return box


def get_pack(store_id: int, pack_number: str, *, lock: bool = False) -> LotteryPack:
    query = db.session.query(LotteryPack).filter_by(store_id=store_id, pack_number=pack_number)
    if lock:
        query = lock_for_update(query)
    pack = query.first()
    if not pack:
        raise NotFoundError(f"Pack {pack_number} not found in store {store_id}")
    return pack


def final_ticket(pack: LotteryPack) -> int:
    return pack.start_ticket + pack.game.pack_size - 1


def current_pack_for_box(box: LotteryBox) -> LotteryPack | None:
    """The active pack currently assigned to a box, if any."""
    return (
        db.session.query(LotteryPack)
        .filter_by(box_id=box.id, status=PACK_STATUS_ACTIVE)
        .order_by(LotteryPack.activated_at.desc(), LotteryPack.id.desc())
        .first()
    )


def list_packs(store_id: int, *, status: str | None = None, box_label: str | None = None) -> list[LotteryPack]:
    query = db.session.query(LotteryPack).filter(LotteryPack.store_id == store_id)
    if status:
        query = query.filter(LotteryPack.status == status)
    if box_label:
        query = query.join(LotteryBox, LotteryPack.box_id == LotteryBox.id).filter(LotteryBox.label == box_label)
    return query.order_by(LotteryPack.pack_number.asc()).all()


def list_boxes(store_id: int, *, active_only: bool = False) -> list[LotteryBox]:
    query = db.session.query(LotteryBox).filter(LotteryBox.store_id == store_id)
    if active_only:
        query = query.filter(LotteryBox.is_active.is_(True))
    return query.order_by(LotteryBox.label.asc()).all()


def create_game(
    game_code: str,
    name: str,
    ticket_price_cents: int,
    pack_size: int,
    commission_rate_bps: int,
) -> LotteryGame:
    """Seed a game (reference data is normally owned by store configuration)."""
    game_code = require_text(game_code, "game_code", max_length=32)
    if db.session.query(LotteryGame).filter_by(game_code=game_code).first():
        raise ConflictError(f"Game {game_code} already exists")

    game = LotteryGame(
        game_code=game_code,
        name=require_text(name, "name", max_length=120),
        ticket_price_cents=coerce_int(ticket_price_cents, "ticket_price_cents", minimum=1),
        pack_size=coerce_int(pack_size, "pack_size", minimum=2),
        commission_rate_bps=coerce_int(commission_rate_bps, "commission_rate_bps", minimum=0, maximum=10_000),
    )
    db.session.add(game)
    db.session.flush()
    return game


def create_box(store_id: int, label: str, description: str | None = None) -> LotteryBox:
    """Seed a box (reference data is normally owned by store configuration)."""
    get_store(store_id)
    label = require_text(label, "label", max_length=32)
    if db.session.query(LotteryBox).filter_by(store_id=store_id, label=label).first():
        raise ConflictError(f"Box {label} already exists in store {store_id}")

    box = LotteryBox(store_id=store_id, label=label, description=description)
    db.session.add(box)
    db.session.flush()
    return box


def assign_pack(
    pack: LotteryPack,
    box: LotteryBox,
    *,
    actor_user_id: int | None = None,
    retire_previous: bool = False,
) -> PackAssignment:
    """
    Place an active pack in a box.

    Raises:
        PackClosedError: pack is sold_out or returned
        ConflictError: box inactive, belongs to another store, or holds a
            different active pack and retire_previous is False

    With retire_previous=True the occupying pack is detached (it stays
    active with no box) and a pack_displaced audit event is written; the
    day-close preview reports it as a warning for that date.
    """
    if pack.status != PACK_STATUS_ACTIVE:
        raise PackClosedError(f"Pack {pack.pack_number} is {pack.status} and cannot be assigned")
    if box.store_id != pack.store_id:
        raise ConflictError(f"Box {box.label} belongs to a different store than pack {pack.pack_number}")
    if not box.is_active:
        raise ConflictError(f"Box {box.label} is inactive")

    result = PackAssignment(pack=pack, box=box)

    occupant = current_pack_for_box(box)
    if occupant is not None and occupant.id != pack.id:
        if not retire_previous:
            raise ConflictError(
                f"Box {box.label} already holds active pack {occupant.pack_number}",
                details={"box_label": box.label, "active_pack_number": occupant.pack_number},
            )

        occupant.box_id = None
        warning = (
            f"Pack {occupant.pack_number} was still active in box {box.label} and was "
            f"displaced by pack {pack.pack_number} at ticket {occupant.current_ticket}"
        )
        audit_service.append_event(
            store_id=pack.store_id,
            business_date=store_business_date(pack.store),
            event_type=audit_service.EVENT_PACK_DISPLACED,
            entity_type="pack",
            entity_id=occupant.id,
            actor_user_id=actor_user_id,
            note=warning,
            payload={
                "box_label": box.label,
                "displaced_pack_number": occupant.pack_number,
                "new_pack_number": pack.pack_number,
                "current_ticket": occupant.current_ticket,
            },
        )
        result.displaced_pack = occupant
        result.warnings.append(warning)

    pack.box_id = box.id
    db.session.flush()
    return result


def activate_pack(
    store_id: int,
    pack_number: str,
    game_code: str,
    box_label: str,
    *,
    start_ticket: int = 0,
    actor_user_id: int | None = None,
    retire_previous: bool = False,
) -> PackAssignment:
    """
    Receive a pack into service and place it in a box.

    A pack number can be activated once; a second activation of an active
    pack is a conflict, and a closed pack can never come back.
    """
    get_store(store_id)
    pack_number = require_text(pack_number, "pack_number", max_length=64)
    start_ticket = coerce_int(start_ticket, "start_ticket", minimum=0)
    game = get_game(game_code)
    if not game.is_active:
        raise ConflictError(f"Game {game.game_code} is inactive")
    box = get_box(store_id, box_label)

    existing = db.session.query(LotteryPack).filter_by(store_id=store_id, pack_number=pack_number).first()
    if existing is not None:
        if existing.status == PACK_STATUS_ACTIVE:
            raise ConflictError(f"Pack {pack_number} is already active")
        raise PackClosedError(f"Pack {pack_number} is {existing.status} and cannot be reactivated")

    pack = LotteryPack(
        store_id=store_id,
        pack_number=pack_number,
        game_id=game.id,
        start_ticket=start_ticket,
        current_ticket=start_ticket,
        status=PACK_STATUS_ACTIVE,
        activated_at=utcnow(),
        activated_by_user_id=actor_user_id,
    )
    db.session.add(pack)
    db.session.flush()

    assignment = assign_pack(pack, box, actor_user_id=actor_user_id, retire_previous=retire_previous)

    audit_service.append_event(
        store_id=store_id,
        business_date=store_business_date(pack.store),
        event_type=audit_service.EVENT_PACK_ACTIVATED,
        entity_type="pack",
        entity_id=pack.id,
        actor_user_id=actor_user_id,
        payload={"pack_number": pack_number, "game_code": game.game_code, "box_label": box.label},
    )
    return assignment


def advance_pack(pack: LotteryPack, ticket_number: int, *, actor_user_id: int | None = None) -> LotteryPack:
    """
    Move a pack's current_ticket to the latest observed number.

    Transitions active -> sold_out exactly when ticket_number is the final
    index. Readings may move the counter backwards (regressions are
    recorded as anomalies, not rolled back), but never outside the range.
    """
    if pack.status != PACK_STATUS_ACTIVE:
        raise PackClosedError(f"Pack {pack.pack_number} is {pack.status} and rejects further readings")

    last = final_ticket(pack)
    if ticket_number < pack.start_ticket or ticket_number > last:
        raise ValidationError(
            f"Ticket {ticket_number} outside pack {pack.pack_number} range {pack.start_ticket}-{last}"
        )

    pack.current_ticket = ticket_number
    if ticket_number == last:
        pack.status = PACK_STATUS_SOLD_OUT
        pack.sold_out_at = utcnow()
        audit_service.append_event(
            store_id=pack.store_id,
            business_date=store_business_date(pack.store),
            event_type=audit_service.EVENT_PACK_SOLD_OUT,
            entity_type="pack",
            entity_id=pack.id,
            actor_user_id=actor_user_id,
            payload={"pack_number": pack.pack_number, "final_ticket": last},
        )

    db.session.flush()
    return pack


def return_pack(store_id: int, pack_number: str, *, actor_user_id: int | None = None) -> LotteryPack:
    """Return an active pack's unsold remainder; frees its box."""
    pack = get_pack(store_id, pack_number, lock=True)
    if pack.status != PACK_STATUS_ACTIVE:
        raise PackClosedError(f"Pack {pack.pack_number} is {pack.status} and cannot be returned")

    box_label = pack.box.label if pack.box else None
    pack.status = PACK_STATUS_RETURNED
    pack.returned_at = utcnow()
    pack.returned_by_user_id = actor_user_id
    pack.box_id = None

    audit_service.append_event(
        store_id=store_id,
        business_date=store_business_date(pack.store),
        event_type=audit_service.EVENT_PACK_RETURNED,
        entity_type="pack",
        entity_id=pack.id,
        actor_user_id=actor_user_id,
        payload={
            "pack_number": pack.pack_number,
            "box_label": box_label,
            "current_ticket": pack.current_ticket,
            "tickets_remaining": pack.tickets_remaining,
        },
    )
    db.session.flush()
    return pack
