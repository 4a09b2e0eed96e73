"""Auction lifecycle and bid arbitration.

A listing is Open until its deadline, then becomes Sold to the highest
bidder or stays ExpiredUnsold forever when nobody bid. There is no sweep
job: `evaluate` finalizes lazily and is safe to call on every read.

Correctness under concurrent callers comes from the stores, not from
in-process locks. `ListingStore.finalize` is a compare-and-set so at most
one caller ever records a winner, and the winner is always re-derived from
`BidStore.highest_bid` rather than from whichever bid was accepted last.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from .clock import Clock
from .errors import AlreadyFinalized, DuplicateSubmission, IdempotencyConflict, InvalidAmount
from .models import Bid
from .stores import BidStore, ListingStore
from .utils import logger


class ListingStatus(str, enum.Enum):
    OPEN = "open"
    EXPIRED_UNSOLD = "expired_unsold"
    SOLD = "sold"


class RejectReason(str, enum.Enum):
    AUCTION_CLOSED = "auction_closed"
    BID_TOO_LOW = "bid_too_low"


@dataclass(frozen=True)
class Evaluation:
    status: ListingStatus
    winner_id: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self.status is not ListingStatus.OPEN


@dataclass(frozen=True)
class BidResult:
    accepted: bool
    won: bool = False
    reason: Optional[RejectReason] = None
    bid: Optional[Bid] = None

    @classmethod
    def rejected(cls, reason: RejectReason) -> "BidResult":
        return cls(accepted=False, reason=reason)


# largest value the BIGINT amount column holds
MAX_AMOUNT = 2**63 - 1


def validate_amount(amount) -> int:
    # bool is an int subclass but never a price
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 < amount <= MAX_AMOUNT:
        raise InvalidAmount(amount)
    return amount


class AuctionEngine:
    def __init__(self, listings: ListingStore, bids: BidStore, clock: Clock):
        self.listings = listings
        self.bids = bids
        self.clock = clock

    def evaluate(self, listing_id: str) -> Evaluation:
        """Return the listing's status, finalizing it if the deadline passed.

        Raises `ListingNotFound` or `StorageFailure`. Losing a finalize race
        is not an error: the listing is re-read and its winner reported.
        """
        listing = self.listings.load(listing_id)
        if listing.winner_id is not None:
            return Evaluation(ListingStatus.SOLD, listing.winner_id)

        now = self.clock.now()
        if now < listing.expires_at:
            return Evaluation(ListingStatus.OPEN)

        top = self.bids.highest_bid(listing_id)
        if top is None:
            return Evaluation(ListingStatus.EXPIRED_UNSOLD)

        try:
            self.listings.finalize(listing_id, top.bidder_id, now)
        except AlreadyFinalized:
            logger.debug("Finalize race lost on listing %s, re-reading", listing_id)
            listing = self.listings.load(listing_id)
            return Evaluation(ListingStatus.SOLD, listing.winner_id)

        logger.info("Listing %s sold to %s for %d", listing_id, top.bidder_id, top.amount)
        return Evaluation(ListingStatus.SOLD, top.bidder_id)

    def place_bid(self, listing_id: str, bidder_id: str, amount, idempotency_key: str = None) -> BidResult:
        """Arbitrate one bid.

        `bidder_id` must already be authenticated. Returns a `BidResult`
        for both acceptance and domain rejection; raises `InvalidAmount`,
        `ListingNotFound` or `StorageFailure`.

        With an `idempotency_key`, a resubmission by the same bidder of a bid
        that was already stored returns the stored bid instead of appending a
        second one. Reusing the key for another amount raises
        `IdempotencyConflict`.
        """
        amount = validate_amount(amount)

        if idempotency_key is not None:
            previous = self.bids.find_by_key(listing_id, bidder_id, idempotency_key)
            if previous is not None:
                return self._replay(previous, amount)

        if self.evaluate(listing_id).closed:
            logger.debug("Rejected bid on closed listing %s", listing_id)
            return BidResult.rejected(RejectReason.AUCTION_CLOSED)

        top = self.bids.highest_bid(listing_id)
        current_high = top.amount if top is not None else 0
        if amount <= current_high:
            logger.debug("Rejected bid of %d on listing %s, high is %d", amount, listing_id, current_high)
            return BidResult.rejected(RejectReason.BID_TOO_LOW)

        try:
            bid = self.bids.record({
                "listing_id": listing_id,
                "bidder_id": bidder_id,
                "amount": amount,
                "placed_at": self.clock.now(),
                "idempotency_key": idempotency_key,
            })
        except DuplicateSubmission:
            # a concurrent retry with the same key stored it first
            return self._replay(self.bids.find_by_key(listing_id, bidder_id, idempotency_key), amount)
        logger.info("Accepted bid %s of %d on listing %s", bid.id, amount, listing_id)

        outcome = self.evaluate(listing_id)
        won = outcome.status is ListingStatus.SOLD and outcome.winner_id == bidder_id
        return BidResult(accepted=True, won=won, bid=bid)

    def settle_for_bidder(self, bidder_id: str) -> int:
        """Finalize every expired listing `bidder_id` bid on that is still unsettled."""
        pending = self.listings.pending_for_bidder(bidder_id, self.clock.now())
        for listing_id in pending:
            self.evaluate(listing_id)
        return len(pending)

    def _replay(self, bid: Bid, amount: int) -> BidResult:
        if bid.amount != amount:
            raise IdempotencyConflict(bid.listing_id, bid.idempotency_key, bid.amount, amount)
        outcome = self.evaluate(bid.listing_id)
        won = outcome.status is ListingStatus.SOLD and outcome.winner_id == bid.bidder_id
        return BidResult(accepted=True, won=won, bid=bid)
