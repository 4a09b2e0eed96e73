from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import List, Optional
from .. import schemas, services
from ..access import AccessGate, Identity
from ..engine import AuctionEngine, Evaluation
from ..errors import IdempotencyConflict, InvalidAmount, InvalidListing, InvalidToken, ListingNotFound, StorageFailure, TokenExpired
from ..models import Listing
from ..utils import logger

router = APIRouter()
bearer = HTTPBearer(auto_error=False)

def get_auction(request: Request) -> AuctionEngine:
    return request.app.state.auction

def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate

def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    gate: AccessGate = Depends(get_gate),
) -> Identity:
    token = credentials.credentials if credentials else None
    try:
        return gate.identify(token)
    except TokenExpired:
        # client should sign in again
        raise HTTPException(
            status_code=401,
            detail="Token expired",
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        )
    except InvalidToken:
        raise HTTPException(status_code=403, detail="Invalid token")

def current_user(identity: Identity = Depends(current_identity)) -> str:
    return identity.user_id

def require_admin(identity: Identity = Depends(current_identity)) -> Identity:
    if not identity.admin:
        raise HTTPException(status_code=403, detail="Administrator token required")
    return identity

def _storage_down(e: StorageFailure) -> HTTPException:
    logger.exception("Storage failure: %s", e)
    return HTTPException(status_code=503, detail="Storage unavailable")

def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Listing not found")

def _listing_out(listing: Listing, outcome: Evaluation) -> schemas.ListingOut:
    return schemas.ListingOut(
        id=listing.id,
        owner_id=listing.owner_id,
        title=listing.title,
        description=listing.description,
        created_at=listing.created_at,
        expires_at=listing.expires_at,
        sold_at=listing.sold_at,
        winner_id=listing.winner_id,
        status=outcome.status.value,
    )

def _evaluated(auction: AuctionEngine, listing_id: str) -> schemas.ListingOut:
    # finalize lazily before rendering, then read the committed row
    outcome = auction.evaluate(listing_id)
    return _listing_out(auction.listings.load(listing_id), outcome)

@router.get("/health")
def health():
    return {"status": "ok"}

@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(
    payload: schemas.ListingCreate,
    owner_id: str = Depends(current_user),
    auction: AuctionEngine = Depends(get_auction),
):
    try:
        obj = services.create_listing(auction.listings, auction.clock, {**payload.model_dump(), "owner_id": owner_id})
        return _evaluated(auction, obj.id)
    except InvalidListing as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageFailure as e:
        raise _storage_down(e)

@router.get("/listings", response_model=List[schemas.ListingOut])
def listings(
    skip: int = 0,
    limit: int = 20,
    owner_id: Optional[str] = None,
    winner_id: Optional[str] = None,
    auction: AuctionEngine = Depends(get_auction),
):
    filters = {"owner_id": owner_id, "winner_id": winner_id}
    try:
        if winner_id:
            # the winner column is only set once a listing is evaluated
            auction.settle_for_bidder(winner_id)
        items = auction.listings.list(skip=skip, limit=limit, filters=filters)
        return [_evaluated(auction, obj.id) for obj in items]
    except StorageFailure as e:
        raise _storage_down(e)

@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(listing_id: str, auction: AuctionEngine = Depends(get_auction)):
    try:
        return _evaluated(auction, listing_id)
    except ListingNotFound:
        raise _not_found()
    except StorageFailure as e:
        raise _storage_down(e)

@router.post("/listings/{listing_id}/evaluate", response_model=schemas.EvaluationOut)
def evaluate_listing(listing_id: str, auction: AuctionEngine = Depends(get_auction)):
    try:
        outcome = auction.evaluate(listing_id)
    except ListingNotFound:
        raise _not_found()
    except StorageFailure as e:
        raise _storage_down(e)
    return schemas.EvaluationOut(listing_id=listing_id, status=outcome.status.value, winner_id=outcome.winner_id)

@router.get("/listings/{listing_id}/bids", response_model=List[schemas.BidOut])
def bid_history(listing_id: str, auction: AuctionEngine = Depends(get_auction)):
    try:
        auction.listings.load(listing_id)
        return auction.bids.history(listing_id)
    except ListingNotFound:
        raise _not_found()
    except StorageFailure as e:
        raise _storage_down(e)

@router.post("/listings/{listing_id}/bids", response_model=schemas.BidResultOut)
def place_bid(
    listing_id: str,
    payload: schemas.BidCreate,
    bidder_id: str = Depends(current_user),
    auction: AuctionEngine = Depends(get_auction),
):
    try:
        result = auction.place_bid(listing_id, bidder_id, payload.amount, idempotency_key=payload.idempotency_key)
    except InvalidAmount as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IdempotencyConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ListingNotFound:
        raise _not_found()
    except StorageFailure as e:
        raise _storage_down(e)
    return schemas.BidResultOut(
        accepted=result.accepted,
        won=result.won,
        reason=result.reason.value if result.reason else None,
        bid=schemas.BidOut.model_validate(result.bid) if result.bid else None,
    )

@router.get("/bidders/{bidder_id}/bids", response_model=List[schemas.BidOut])
def bids_by_bidder(bidder_id: str, auction: AuctionEngine = Depends(get_auction)):
    try:
        return auction.bids.by_bidder(bidder_id)
    except StorageFailure as e:
        raise _storage_down(e)

@router.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: str,
    admin: Identity = Depends(require_admin),
    auction: AuctionEngine = Depends(get_auction),
):
    try:
        services.delete_listing(auction.listings, listing_id, deleted_by=admin.user_id)
    except ListingNotFound:
        raise _not_found()
    except StorageFailure as e:
        raise _storage_down(e)
    return {"status": "deleted"}
