"""
Pack lifecycle tracker tests.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from lotto_recon.models import LotteryAuditEvent, LotteryGame, LotteryPack
from lotto_recon.services import pack_service
from lotto_recon.services.pack_service import PackClosedError
from lotto_recon.validation import ConflictError, NotFoundError, ValidationError


def test_activate_places_pack_in_box(db_session, store, pack, box):
    assert pack.status == "active"
    assert pack.box_id == box.id
    assert pack.current_ticket == pack.start_ticket == 0
    assert pack_service.final_ticket(pack) == 99
    assert pack_service.current_pack_for_box(box).id == pack.id


def test_activate_into_occupied_box_conflicts(db_session, store, game, box, pack):
    with pytest.raises(ConflictError) as exc_info:
        pack_service.activate_pack(store.id, "P-0002", game.game_code, box.label)
    db_session.rollback()

    assert exc_info.value.details["active_pack_number"] == "P-0001"
    assert db_session.query(LotteryPack).count() == 1


def test_retire_previous_displaces_with_warning(db_session, store, game, box, pack):
    assignment = pack_service.activate_pack(
        store.id, "P-0002", game.game_code, box.label, actor_user_id=5, retire_previous=True
    )
    db_session.commit()

    assert assignment.displaced_pack.id == pack.id
    assert len(assignment.warnings) == 1
    assert "P-0001" in assignment.warnings[0]

    db_session.refresh(pack)
    # Still active, just no longer in a box
    assert pack.status == "active"
    assert pack.box_id is None
    assert pack_service.current_pack_for_box(box).pack_number == "P-0002"

    event = db_session.query(LotteryAuditEvent).filter_by(event_type="pack_displaced").one()
    assert event.entity_id == pack.id
    assert event.actor_user_id == 5
    assert event.payload_dict()["new_pack_number"] == "P-0002"


def test_duplicate_activation_conflicts(db_session, store, game, pack):
    pack_service.create_box(store.id, "B2")
    with pytest.raises(ConflictError):
        pack_service.activate_pack(store.id, "P-0001", game.game_code, "B2")
    db_session.rollback()


def test_closed_pack_cannot_be_reactivated(db_session, store, game, pack):
    pack_service.return_pack(store.id, "P-0001")
    db_session.commit()

    with pytest.raises(PackClosedError):
        pack_service.activate_pack(store.id, "P-0001", game.game_code, "B1")
    db_session.rollback()


def test_assign_closed_pack_rejected(db_session, store, box, pack):
    pack_service.return_pack(store.id, "P-0001")
    db_session.commit()

    with pytest.raises(PackClosedError):
        pack_service.assign_pack(pack, box)


def test_assign_across_stores_rejected(db_session, store, other_store, pack):
    foreign_box = pack_service.create_box(other_store.id, "B1")
    db_session.commit()

    with pytest.raises(ConflictError):
        pack_service.assign_pack(pack, foreign_box)
    db_session.rollback()


def test_return_frees_box(db_session, store, box, pack):
    returned = pack_service.return_pack(store.id, "P-0001", actor_user_id=2)
    db_session.commit()

    assert returned.status == "returned"
    assert returned.returned_by_user_id == 2
    assert returned.box_id is None
    assert pack_service.current_pack_for_box(box) is None

    with pytest.raises(PackClosedError):
        pack_service.return_pack(store.id, "P-0001")


def test_advance_pack_bounds(db_session, store, pack):
    with pytest.raises(ValidationError):
        pack_service.advance_pack(pack, 100)

    pack_service.advance_pack(pack, 42)
    assert pack.current_ticket == 42
    assert pack.status == "active"

    pack_service.advance_pack(pack, 99)
    assert pack.status == "sold_out"

    with pytest.raises(PackClosedError):
        pack_service.advance_pack(pack, 99)
    db_session.rollback()


def test_lookups_raise_not_found(db_session, store):
    with pytest.raises(NotFoundError):
        pack_service.get_pack(store.id, "nope")
    with pytest.raises(NotFoundError):
        pack_service.get_box(store.id, "nope")
    with pytest.raises(NotFoundError):
        pack_service.get_game("nope")
    with pytest.raises(NotFoundError):
        pack_service.get_store(999)


def test_seeding_rejects_duplicates(db_session, store, game, box):
    with pytest.raises(ConflictError):
        pack_service.create_game("G1", "Again", 100, 50, 0)
    with pytest.raises(ConflictError):
        pack_service.create_box(store.id, "B1")


def test_list_packs_filters(db_session, store, game, box, pack):
    pack_service.create_box(store.id, "B2")
    pack_service.activate_pack(store.id, "P-0002", game.game_code, "B2")
    pack_service.return_pack(store.id, "P-0002")
    db_session.commit()

    assert [p.pack_number for p in pack_service.list_packs(store.id)] == ["P-0001", "P-0002"]
    assert [p.pack_number for p in pack_service.list_packs(store.id, status="returned")] == ["P-0002"]
    assert [p.pack_number for p in pack_service.list_packs(store.id, box_label="B1")] == ["P-0001"]


def test_single_ticket_games_rejected(db_session):
    with pytest.raises(ValidationError):
        pack_service.create_game("G9", "Solo", 100, 1, 0)

    db_session.add(LotteryGame(game_code="G9", name="Solo", ticket_price_cents=100, pack_size=1, commission_rate_bps=0))
    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()


def test_smallest_pack_starts_active_and_sells_out(db_session, store):
    game = pack_service.create_game("G2", "Duo", 100, 2, 0)
    pack_service.create_box(store.id, "B2")
    small = pack_service.activate_pack(store.id, "P-DUO", game.game_code, "B2").pack
    db_session.commit()

    assert small.status == "active"
    assert small.current_ticket < pack_service.final_ticket(small) == 1

    pack_service.advance_pack(small, 1)
    assert small.status == "sold_out"
    assert small.current_ticket == pack_service.final_ticket(small)
