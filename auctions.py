"""
Auction lifecycle

AuctionManager owns auction creation, bid placement, closing and the expiry
sweep. Expiry is evaluated lazily: an auction whose endTime has passed is
closed for every read and write here, whatever its stored status says.
Bids are written with a conditional update so that two requests validated
against the same currentBid cannot both be applied.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from artworks import ArtworkLinkage
from database import (
    ASCENDING,
    AUCTIONS,
    DESCENDING,
    as_utc,
    create_document,
    get_documents,
    to_object_id,
    utcnow,
)
from exceptions import (
    ArtworkAlreadyInAuctionError,
    ArtworkNotFoundError,
    AuctionClosedError,
    AuctionNotFoundError,
    BidTooLowError,
    ConcurrentBidConflictError,
    InvalidAmountError,
    InvalidRequestError,
    SelfBidError,
)
from schemas import Auction, AuctionStatus, Bid

logger = logging.getLogger(__name__)

BID_RETRIES = int(os.getenv("AUCTION_BID_RETRIES", "3"))
ENDING_SOON_HOURS = int(os.getenv("AUCTION_ENDING_SOON_HOURS", "24"))

DocumentId = Union[str, ObjectId]


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_biddable(auction: Dict[str, Any], now: datetime) -> bool:
    return auction["status"] == AuctionStatus.ONGOING.value and now <= as_utc(auction["endTime"])


def effective_status(auction: Dict[str, Any], now: datetime) -> str:
    """Stored status, reported as completed once endTime has passed"""
    if auction["status"] == AuctionStatus.ONGOING.value and now > as_utc(auction["endTime"]):
        return AuctionStatus.COMPLETED.value
    return auction["status"]


class AuctionManager:
    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow, bid_retries: int = BID_RETRIES):
        self._db = db
        self._clock = clock
        self._bid_retries = max(0, bid_retries)
        self.collection = db[AUCTIONS]
        self.linkage = ArtworkLinkage(db, clock)

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Creation
    # =========================================================================

    def create_auction(
        self,
        artwork_id: DocumentId,
        artist_id: DocumentId,
        start_price: int,
        end_time: datetime,
    ) -> Dict[str, Any]:
        """
        Create an ongoing auction for an artwork and link the artwork to it.

        The caller has already checked that the artwork and artist exist and
        that the artist owns the artwork.

        Raises:
            InvalidRequestError: start_price is not a positive int or end_time is not in the future
            ArtworkAlreadyInAuctionError: the artwork has a biddable auction
            ArtworkNotFoundError: the artwork disappeared before it could be linked
        """
        artwork_oid = to_object_id(artwork_id, "artworkId")
        artist_oid = to_object_id(artist_id, "artistId")

        if not _is_positive_int(start_price):
            raise InvalidRequestError("startPrice must be a positive integer")

        now = self.now()
        end_time = as_utc(end_time)
        if end_time <= now:
            raise InvalidRequestError("endTime must be in the future")

        existing = self.get_auction_by_artwork(artwork_oid)
        if existing is not None:
            if is_biddable(existing, now):
                raise ArtworkAlreadyInAuctionError(artwork_oid, existing["_id"])
            # expired but never swept
            self.end_auction(existing["_id"])

        auction = Auction(
            artwork_id=artwork_oid,
            artist_id=artist_oid,
            start_price=start_price,
            current_bid=start_price,
            start_time=now,
            end_time=end_time,
            created_at=now,
        )
        auction_id = create_document(self._db, AUCTIONS, auction)

        try:
            linked = self.linkage.mark_as_in_auction(artwork_oid, auction_id)
        except PyMongoError:
            self._discard(auction_id)
            raise
        if not linked:
            self._discard(auction_id)
            raise ArtworkNotFoundError(artwork_oid)

        logger.info(
            f"Artist {artist_oid} created auction {auction_id} for artwork {artwork_oid} "
            f"(start {start_price}, ends {end_time.isoformat()})"
        )

        # stored datetimes are truncated to milliseconds
        return self.collection.find_one({"_id": auction_id})

    def _discard(self, auction_id: ObjectId) -> None:
        """Undo an insert whose artwork link could not be written"""
        logger.warning(f"Artwork link failed, removing auction {auction_id}")
        try:
            self.collection.delete_one({"_id": auction_id})
        except PyMongoError:
            logger.exception(
                f"Could not remove unlinked auction {auction_id}; reconcile_artwork_links will repair it"
            )

    # =========================================================================
    # Bidding
    # =========================================================================

    def place_bid(self, auction_id: DocumentId, user_id: DocumentId, amount: int) -> Dict[str, Any]:
        """
        Place a bid and return the updated auction document.

        Checks, in order: the auction exists, it is still open, the amount is a
        positive integer, the amount beats the current bid, the bidder is not
        the auction's artist. The write only applies if currentBid is still the
        value that was validated; on a lost race the checks are repeated
        against fresh state.

        Raises:
            AuctionNotFoundError, AuctionClosedError, InvalidAmountError,
            BidTooLowError, SelfBidError, ConcurrentBidConflictError
        """
        auction_oid = to_object_id(auction_id, "auctionId")
        user_oid = to_object_id(user_id, "userId")

        for attempt in range(self._bid_retries + 1):
            auction = self.get_auction_by_id(auction_oid)
            if auction is None:
                raise AuctionNotFoundError(auction_oid)

            now = self.now()
            if not is_biddable(auction, now):
                raise AuctionClosedError(auction_oid)

            if not _is_positive_int(amount):
                raise InvalidAmountError(amount)

            observed = auction["currentBid"]
            if amount <= observed:
                raise BidTooLowError(amount, observed)

            if auction["artistId"] == user_oid:
                raise SelfBidError(auction_oid)

            bid = Bid(user_id=user_oid, amount=amount, time=now)
            updated = self.collection.find_one_and_update(
                {
                    "_id": auction_oid,
                    "status": AuctionStatus.ONGOING.value,
                    "endTime": {"$gte": now},
                    "currentBid": observed,
                },
                {
                    "$push": {"bids": bid.model_dump(by_alias=True)},
                    "$set": {"currentBid": amount, "currentBidder": user_oid},
                },
                return_document=ReturnDocument.AFTER,
            )
            if updated is not None:
                logger.info(f"User {user_oid} bid {amount} on auction {auction_oid} (was {observed})")
                return updated

            logger.warning(
                f"Bid of {amount} on auction {auction_oid} lost a write race "
                f"(attempt {attempt + 1}, observed {observed})"
            )

        raise ConcurrentBidConflictError(auction_oid)

    # =========================================================================
    # Closing
    # =========================================================================

    def end_auction(self, auction_id: DocumentId) -> bool:
        """Mark an auction completed. Ending a completed auction is a no-op."""
        auction_oid = to_object_id(auction_id, "auctionId")
        result = self.collection.update_one(
            {"_id": auction_oid},
            {"$set": {"status": AuctionStatus.COMPLETED.value}},
        )
        if not result.matched_count:
            raise AuctionNotFoundError(auction_oid)
        if result.modified_count:
            logger.info(f"Auction {auction_oid} ended")
        return True

    def auto_end_expired_auctions(self) -> int:
        result = self.collection.update_many(
            {"status": AuctionStatus.ONGOING.value, "endTime": {"$lte": self.now()}},
            {"$set": {"status": AuctionStatus.COMPLETED.value}},
        )
        if result.modified_count:
            logger.info(f"Ended {result.modified_count} expired auctions")
        return result.modified_count

    def reconcile_artwork_links(self) -> int:
        """Link artworks of open auctions that are missing their back-reference"""
        relinked = 0
        for auction in self.get_ongoing_auctions(limit=0):
            artwork = self.linkage.get_artwork(auction["artworkId"])
            if artwork is None:
                continue
            if artwork.get("isAuction") and artwork.get("auctionId") == auction["_id"]:
                continue
            if self.linkage.mark_as_in_auction(artwork["_id"], auction["_id"]):
                relinked += 1
        if relinked:
            logger.warning(f"Relinked {relinked} artworks to their auctions")
        return relinked

    # =========================================================================
    # Removal (artwork deletion cascade)
    # =========================================================================

    def delete_auction(self, auction_id: DocumentId) -> bool:
        auction_oid = to_object_id(auction_id, "auctionId")
        auction = self.get_auction_by_id(auction_oid)
        if auction is None:
            return False

        self.collection.delete_one({"_id": auction_oid})
        self.linkage.clear_auction_link(auction["artworkId"], auction_oid)
        logger.info(f"Auction {auction_oid} deleted")
        return True

    def remove_artwork_auction(self, artwork_id: DocumentId) -> bool:
        """Delete the auction an artwork points at, before the artwork itself is deleted"""
        artwork = self.linkage.get_artwork(artwork_id)
        if artwork is None:
            raise ArtworkNotFoundError(artwork_id)
        if not (artwork.get("isAuction") and artwork.get("auctionId")):
            return False
        return self.delete_auction(artwork["auctionId"])

    # =========================================================================
    # Reads
    # =========================================================================

    def get_auction_by_id(self, auction_id: DocumentId) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"_id": to_object_id(auction_id, "auctionId")})

    def get_auction_by_artwork(self, artwork_id: DocumentId) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(
            {"artworkId": to_object_id(artwork_id, "artworkId"), "status": AuctionStatus.ONGOING.value}
        )

    def get_auctions_by_artist(self, artist_id: DocumentId, limit: int = 20, skip: int = 0) -> List[Dict[str, Any]]:
        return get_documents(
            self._db,
            AUCTIONS,
            {"artistId": to_object_id(artist_id, "artistId")},
            limit=limit,
            skip=skip,
            sort=[("endTime", ASCENDING)],
        )

    def get_ongoing_auctions(self, limit: int = 20, skip: int = 0) -> List[Dict[str, Any]]:
        """Open auctions, soonest-ending first"""
        return get_documents(
            self._db,
            AUCTIONS,
            {"status": AuctionStatus.ONGOING.value, "endTime": {"$gt": self.now()}},
            limit=limit,
            skip=skip,
            sort=[("endTime", ASCENDING)],
        )

    def get_ended_auctions(self, limit: int = 20, skip: int = 0) -> List[Dict[str, Any]]:
        """Completed auctions, most recently ended first"""
        return get_documents(
            self._db,
            AUCTIONS,
            {"status": AuctionStatus.COMPLETED.value},
            limit=limit,
            skip=skip,
            sort=[("endTime", DESCENDING)],
        )

    def get_auctions_ending_soon(self, hours: Optional[int] = None, limit: int = 10) -> List[Dict[str, Any]]:
        if hours is None:
            hours = ENDING_SOON_HOURS
        now = self.now()
        return get_documents(
            self._db,
            AUCTIONS,
            {
                "status": AuctionStatus.ONGOING.value,
                "endTime": {"$gt": now, "$lte": now + timedelta(hours=hours)},
            },
            limit=limit,
            sort=[("endTime", ASCENDING)],
        )

    def count_auctions_by_artist(self, artist_id: DocumentId) -> int:
        return self.collection.count_documents({"artistId": to_object_id(artist_id, "artistId")})
