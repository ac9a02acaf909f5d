"""
Database Schemas for the Art & Culture auction service

Each document model maps to a MongoDB collection. Field names are snake_case
in Python and camelCase in the stored documents and JSON bodies (aliases).
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


class AuctionStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"


class UserRole(str, Enum):
    ARTIST = "artist"
    STUDENT = "student"
    ADMIN = "admin"


class Document(BaseModel):
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class Bid(Document):
    """A bid embedded in an auction, in acceptance order"""
    user_id: ObjectId = Field(..., alias="userId", description="Bidding user")
    amount: int = Field(..., gt=0, description="Bid amount")
    time: datetime = Field(..., description="When the bid was accepted")


class Auction(Document):
    """Collection: "auctions" """
    artwork_id: ObjectId = Field(..., alias="artworkId", description="Artwork being auctioned")
    artist_id: ObjectId = Field(..., alias="artistId", description="Owner of the artwork")
    start_price: int = Field(..., gt=0, alias="startPrice", description="Floor bid")
    current_bid: int = Field(..., gt=0, alias="currentBid", description="Highest accepted bid")
    current_bidder: Optional[ObjectId] = Field(None, alias="currentBidder", description="Highest bidder")
    bids: List[Bid] = Field(default_factory=list)
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    status: AuctionStatus = Field(AuctionStatus.ONGOING, description="ongoing | completed")
    created_at: datetime = Field(..., alias="createdAt")


# Request bodies

class CreateAuctionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artwork_id: str = Field(..., alias="artworkId")
    start_price: int = Field(..., alias="startPrice")
    end_time: datetime = Field(..., alias="endTime")


class PlaceBidRequest(BaseModel):
    amount: int
