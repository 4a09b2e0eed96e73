"""SQLAlchemy ORM models for persisted entities.

Defines `Listing` and `Bid` plus the index that serves the highest-bid
lookup directly. Status is never stored; it is derived from
`winner_id`, `sold_at` and `expires_at`.
"""
import uuid
from datetime import timezone
from sqlalchemy import Column, Integer, Text, BigInteger, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from .db import Base


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Aware UTC datetimes in Python, naive UTC in the database."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Text, primary_key=True, default=new_id)
    owner_id = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    # written together, once, by the finalize CAS
    sold_at = Column(UTCDateTime, nullable=True)
    winner_id = Column(Text, nullable=True, index=True)


class Bid(Base):
    __tablename__ = "bids"
    # insertion order; breaks ties between bids placed at the same instant
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Text, nullable=False, unique=True, default=new_id)
    listing_id = Column(Text, ForeignKey("listings.id"), nullable=False)
    bidder_id = Column(Text, nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    placed_at = Column(UTCDateTime, nullable=False)
    idempotency_key = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("listing_id", "bidder_id", "idempotency_key", name="uq_bids_listing_bidder_idempotency_key"),
    )

Index("ix_bids_listing_amount_placed", Bid.listing_id, Bid.amount.desc(), Bid.placed_at.asc(), Bid.seq.asc())
