import os
from datetime import datetime, timedelta, timezone
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

from marketplace import models  # noqa: F401
from marketplace.clock import FixedClock
from marketplace.db import Base, build_engine, make_session_factory
from marketplace.engine import AuctionEngine
from marketplace.services import create_listing
from marketplace.stores import BidStore, ListingStore
from marketplace.utils import logger


def build(url):
    engine = build_engine(url)
    Base.metadata.create_all(bind=engine)
    session_factory = make_session_factory(engine)
    return ListingStore(session_factory), BidStore(session_factory)


if __name__ == "__main__":
    url = os.getenv("DEMO_DATABASE_URL", "sqlite:///./marketplace-demo.sqlite")
    clock = FixedClock(datetime.now(timezone.utc))
    listings, bids = build(url)
    auction = AuctionEngine(listings, bids, clock)

    listing = create_listing(listings, clock, {
        "owner_id": "seller-1",
        "title": "Test",
        "description": "This is a test",
    })
    print(f"Listing {listing.id} open until {listing.expires_at.isoformat()}")

    for bidder, amount in (("alice", 100), ("bob", 100), ("bob", 150)):
        result = auction.place_bid(listing.id, bidder, amount)
        verdict = "accepted" if result.accepted else f"rejected ({result.reason.value})"
        print(f"{bidder} bids {amount}: {verdict}")
        clock.advance(hours=1)

    print(f"Before deadline: {auction.evaluate(listing.id).status.value}")
    clock.set(listing.expires_at + timedelta(seconds=1))
    outcome = auction.evaluate(listing.id)
    print(f"After deadline: {outcome.status.value}, winner {outcome.winner_id}")

    late = auction.place_bid(listing.id, "carol", 500)
    print(f"carol bids 500 late: {late.reason.value}")

    listings.purge(listing.id)
    logger.info("Demo listing %s removed", listing.id)
