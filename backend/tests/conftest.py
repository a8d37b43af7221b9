"""
Pytest fixtures for lotto_recon backend tests.

Provides test database setup, reference data factories (store, game, box,
pack), and the test client.
"""

from datetime import date, datetime

import pytest
from lotto_recon import create_app
from lotto_recon.extensions import db
from lotto_recon.models import Store
from lotto_recon.services import pack_service


DAY = date(2024, 3, 1)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    """UTC-naive capture time on a business day."""
    return datetime(day.year, day.month, day.day, hour, minute)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOTTERY_PLAUSIBLE_SALES_THRESHOLD': 50,
        'LOTTERY_DRAW_COMMISSION_RATE_BPS': 0,
        'LOTTERY_DRAW_OPTIONAL_CLOSE': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """Store on UTC so capture time and business date line up."""
    store = Store(name="Corner Store", code="S1", timezone="UTC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Uptown Store", code="S2", timezone="UTC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def game(db_session):
    """G1: $2.00 tickets, 100 per pack, 5% commission."""
    game = pack_service.create_game("G1", "Lucky 7s", 200, 100, 500)
    db_session.commit()
    return game


@pytest.fixture(scope='function')
def box(db_session, store):
    box = pack_service.create_box(store.id, "B1")
    db_session.commit()
    return box


@pytest.fixture(scope='function')
def pack(db_session, store, game, box):
    """Pack P-0001 of G1 active in box B1, starting at ticket 0."""
    assignment = pack_service.activate_pack(store.id, "P-0001", game.game_code, box.label, actor_user_id=1)
    db_session.commit()
    return assignment.pack


def identity(user_id=1, store_id=None, role="manager") -> dict:
    """Upstream gateway identity headers."""
    headers = {"X-User-Id": str(user_id), "X-Role": role}
    if store_id is not None:
        headers["X-Store-Id"] = str(store_id)
    return headers
