# marketplace/services.py
from datetime import datetime, timedelta, timezone
from typing import Dict

from .clock import Clock
from .errors import InvalidListing
from .models import Listing
from .stores import ListingStore
from .utils import logger

DEFAULT_DURATION = timedelta(days=5)

def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

def create_listing(store: ListingStore, clock: Clock, payload: Dict) -> Listing:
    """Seller-side creation: validate, fill in timestamps and store."""
    data = {}
    for field in ("owner_id", "title", "description"):
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            raise InvalidListing(f"{field} must be a non-empty string")
        data[field] = value.strip()

    created_at = _aware(payload.get("created_at") or clock.now())
    expires_at = payload.get("expires_at")
    if expires_at is not None and payload.get("duration_hours"):
        raise InvalidListing("give either expires_at or duration_hours, not both")
    if expires_at is None:
        hours = payload.get("duration_hours")
        expires_at = created_at + (timedelta(hours=hours) if hours else DEFAULT_DURATION)
    expires_at = _aware(expires_at)
    if expires_at <= created_at:
        raise InvalidListing("expires_at must be later than created_at")

    data["created_at"] = created_at
    data["expires_at"] = expires_at
    obj = store.create(data)
    logger.info("Created listing %s for %s, expires %s", obj.id, obj.owner_id, obj.expires_at.isoformat())
    return obj

def delete_listing(store: ListingStore, listing_id: str, deleted_by: str = None) -> None:
    """Administrative override; removes the listing's bids too."""
    store.purge(listing_id)
    logger.info("Purged listing %s and its bids (by %s)", listing_id, deleted_by or "system")
