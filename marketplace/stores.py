"""Durable stores for listings and bids.

Each public method runs in its own short transaction opened from the
injected session factory, so concurrent request threads never share a
session. Database errors surface as `StorageFailure`; nothing is retried.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import crud
from .errors import AlreadyFinalized, DuplicateSubmission, ListingNotFound, StorageFailure
from .models import Bid, Listing


class _Store:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        db: Session = self._session_factory()
        try:
            with db.begin():
                yield db
        except SQLAlchemyError as e:
            raise StorageFailure(str(e)) from e
        finally:
            db.close()


class ListingStore(_Store):
    """Owns every write to `listings`."""

    def load(self, listing_id: str) -> Listing:
        with self._transaction() as db:
            obj = crud.get_listing(db, listing_id)
            if obj is None:
                raise ListingNotFound(listing_id)
            return obj

    def create(self, data: Dict[str, Any]) -> Listing:
        with self._transaction() as db:
            return crud.insert_listing(db, data)

    def list(self, skip: int = 0, limit: int = 50, filters: Dict = None) -> List[Listing]:
        with self._transaction() as db:
            return crud.list_listings(db, skip=skip, limit=limit, filters=filters)

    def finalize(self, listing_id: str, winner_id: str, sold_at: datetime) -> None:
        """Mark the listing sold to `winner_id`.

        Succeeds for exactly one caller per listing. Losers get
        `AlreadyFinalized`; a missing row gives `ListingNotFound`.
        """
        with self._transaction() as db:
            if crud.finalize_listing(db, listing_id, winner_id, sold_at) == 1:
                return
            if crud.get_listing(db, listing_id) is None:
                raise ListingNotFound(listing_id)
            raise AlreadyFinalized(listing_id)

    def pending_for_bidder(self, bidder_id: str, now: datetime) -> List[str]:
        """Ids of past-deadline, unfinalized listings `bidder_id` bid on."""
        with self._transaction() as db:
            return crud.unfinalized_expired_ids_for_bidder(db, bidder_id, now)

    def purge(self, listing_id: str) -> None:
        """Administrative delete: bids and listing go in one transaction."""
        with self._transaction() as db:
            if not crud.purge_listing(db, listing_id):
                raise ListingNotFound(listing_id)


class BidStore(_Store):
    """Append-only bid log with the highest-bid oracle."""

    def record(self, bid: Dict[str, Any]) -> Bid:
        try:
            with self._transaction() as db:
                return crud.insert_bid(db, bid)
        except StorageFailure as e:
            if bid.get("idempotency_key") is not None and isinstance(e.__cause__, IntegrityError):
                raise DuplicateSubmission(bid["listing_id"], bid["idempotency_key"]) from e.__cause__
            raise

    def highest_bid(self, listing_id: str) -> Optional[Bid]:
        with self._transaction() as db:
            return crud.highest_bid(db, listing_id)

    def find_by_key(self, listing_id: str, bidder_id: str, idempotency_key: str) -> Optional[Bid]:
        with self._transaction() as db:
            return crud.find_bid_by_key(db, listing_id, bidder_id, idempotency_key)

    def history(self, listing_id: str) -> List[Bid]:
        with self._transaction() as db:
            return crud.bids_for_listing(db, listing_id)

    def by_bidder(self, bidder_id: str) -> List[Bid]:
        with self._transaction() as db:
            return crud.bids_for_bidder(db, bidder_id)
