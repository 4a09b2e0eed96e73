# marketplace/crud.py
"""Session-level queries for `Listing` and `Bid` entities.

Each helper works on a caller-supplied `Session` and never commits; the
stores own transaction boundaries. Listings are only ever mutated through
`finalize_listing`, which touches exactly `winner_id` and `sold_at`.
"""
from datetime import datetime
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from .models import Listing, Bid

def insert_listing(db: Session, data: Dict[str, Any]) -> Listing:
    obj = Listing(**data)
    db.add(obj)
    db.flush()
    return obj

def get_listing(db: Session, listing_id: str) -> Optional[Listing]:
    return db.get(Listing, listing_id)

def list_listings(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None) -> List[Listing]:
    q = select(Listing)
    if filters:
        if filters.get("owner_id"):
            q = q.where(Listing.owner_id == filters["owner_id"])
        if filters.get("winner_id"):
            q = q.where(Listing.winner_id == filters["winner_id"])
    q = q.order_by(Listing.expires_at.asc(), Listing.id.asc()).offset(skip).limit(limit)
    return list(db.scalars(q))

def finalize_listing(db: Session, listing_id: str, winner_id: str, sold_at: datetime) -> int:
    # compare-and-set: only an unsold row matches
    stmt = (
        update(Listing)
        .where(Listing.id == listing_id, Listing.winner_id.is_(None), Listing.sold_at.is_(None))
        .values(winner_id=winner_id, sold_at=sold_at)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount

def purge_listing(db: Session, listing_id: str) -> bool:
    # bids first to keep referential integrity
    db.execute(delete(Bid).where(Bid.listing_id == listing_id))
    return db.execute(delete(Listing).where(Listing.id == listing_id)).rowcount > 0

def insert_bid(db: Session, data: Dict[str, Any]) -> Bid:
    obj = Bid(**data)
    db.add(obj)
    db.flush()
    return obj

def highest_bid(db: Session, listing_id: str) -> Optional[Bid]:
    q = (
        select(Bid)
        .where(Bid.listing_id == listing_id)
        .order_by(Bid.amount.desc(), Bid.placed_at.asc(), Bid.seq.asc())
        .limit(1)
    )
    return db.scalars(q).first()

def find_bid_by_key(db: Session, listing_id: str, bidder_id: str, idempotency_key: str) -> Optional[Bid]:
    q = select(Bid).where(
        Bid.listing_id == listing_id,
        Bid.bidder_id == bidder_id,
        Bid.idempotency_key == idempotency_key,
    )
    return db.scalars(q).first()

def bids_for_listing(db: Session, listing_id: str) -> List[Bid]:
    q = select(Bid).where(Bid.listing_id == listing_id).order_by(Bid.placed_at.asc(), Bid.seq.asc())
    return list(db.scalars(q))

def bids_for_bidder(db: Session, bidder_id: str) -> List[Bid]:
    q = select(Bid).where(Bid.bidder_id == bidder_id).order_by(Bid.placed_at.desc(), Bid.seq.desc())
    return list(db.scalars(q))

def unfinalized_expired_ids_for_bidder(db: Session, bidder_id: str, now: datetime) -> List[str]:
    # listings this bidder bid on whose deadline passed but nobody evaluated yet
    q = (
        select(Listing.id)
        .join(Bid, Bid.listing_id == Listing.id)
        .where(Bid.bidder_id == bidder_id, Listing.winner_id.is_(None), Listing.expires_at <= now)
        .distinct()
    )
    return list(db.scalars(q))
