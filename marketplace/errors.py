"""Exception taxonomy for the marketplace.

Domain rejections (auction closed, bid too low) are not exceptions; the
engine returns them inside a `BidResult`.
"""


class MarketplaceError(Exception):
    """Base class for every error raised by this package."""


class InputError(MarketplaceError):
    """The caller sent something malformed."""


class InvalidAmount(InputError):
    def __init__(self, amount):
        super().__init__(f"bid amount must be a positive integer of minor units, got {amount!r}")
        self.amount = amount


class InvalidListing(InputError):
    """Seller-side listing data failed validation."""


class ListingNotFound(MarketplaceError):
    def __init__(self, listing_id):
        super().__init__(f"listing {listing_id} not found")
        self.listing_id = listing_id


class AlreadyFinalized(MarketplaceError):
    """A finalize lost the race against another finalize."""

    def __init__(self, listing_id):
        super().__init__(f"listing {listing_id} is already finalized")
        self.listing_id = listing_id


class DuplicateSubmission(MarketplaceError):
    """A bid with the same idempotency key is already stored for the listing."""

    def __init__(self, listing_id, idempotency_key):
        super().__init__(f"idempotency key {idempotency_key!r} already used on listing {listing_id}")
        self.listing_id = listing_id
        self.idempotency_key = idempotency_key


class IdempotencyConflict(InputError):
    """An idempotency key was reused for a different amount."""

    def __init__(self, listing_id, idempotency_key, stored_amount, amount):
        super().__init__(
            f"idempotency key {idempotency_key!r} on listing {listing_id} was used for {stored_amount}, not {amount}"
        )
        self.listing_id = listing_id
        self.idempotency_key = idempotency_key


class StorageFailure(MarketplaceError):
    """The underlying database call failed; the outcome of a write is unknown."""


class AuthFailure(MarketplaceError):
    """Raised by the access gate; never reaches the auction engine."""


class InvalidToken(AuthFailure):
    pass


class TokenExpired(AuthFailure):
    pass
