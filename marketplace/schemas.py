from pydantic import BaseModel, ConfigDict, Field, StrictInt, model_validator
from typing import Optional
from datetime import datetime

class ListingBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)

class ListingCreate(ListingBase):
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    duration_hours: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def one_deadline(self):
        if self.expires_at is not None and self.duration_hours is not None:
            raise ValueError("give either expires_at or duration_hours, not both")
        return self

class ListingOut(ListingBase):
    id: str
    owner_id: str
    created_at: datetime
    expires_at: datetime
    sold_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    status: str

class BidCreate(BaseModel):
    amount: StrictInt
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)

class BidOut(BaseModel):
    id: str
    listing_id: str
    bidder_id: str
    amount: int
    placed_at: datetime
    model_config = ConfigDict(from_attributes=True)

class BidResultOut(BaseModel):
    accepted: bool
    won: bool
    reason: Optional[str] = None
    bid: Optional[BidOut] = None

class EvaluationOut(BaseModel):
    listing_id: str
    status: str
    winner_id: Optional[str] = None
