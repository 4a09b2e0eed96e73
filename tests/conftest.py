import pytest
from datetime import datetime, timedelta, timezone
from marketplace import models  # noqa: F401
from marketplace.clock import FixedClock
from marketplace.db import Base, build_engine, make_session_factory
from marketplace.engine import AuctionEngine
from marketplace.stores import BidStore, ListingStore

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

@pytest.fixture
def engine(tmp_path):
    # file-backed so worker threads see the same database
    eng = build_engine(f"sqlite:///{tmp_path / 'test.sqlite'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()

@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)

@pytest.fixture
def clock():
    return FixedClock(START)

@pytest.fixture
def listings(session_factory):
    return ListingStore(session_factory)

@pytest.fixture
def bids(session_factory):
    return BidStore(session_factory)

@pytest.fixture
def auction(listings, bids, clock):
    return AuctionEngine(listings, bids, clock)

@pytest.fixture
def listing(listings, clock):
    return listings.create({
        "owner_id": "seller",
        "title": "Test",
        "description": "This is a test",
        "created_at": clock.now(),
        "expires_at": clock.now() + timedelta(hours=1),
    })
