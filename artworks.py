"""
Artwork linkage

Maintains the ``isAuction`` / ``auctionId`` back-reference that an artwork
document carries while it is being auctioned. The rest of the artwork
document belongs to the artwork collaborator.
"""

import logging
from typing import Any, Callable, Dict, Optional, Union

from bson import ObjectId
from pymongo.database import Database

from database import ARTWORKS, to_object_id, utcnow

logger = logging.getLogger(__name__)


class ArtworkLinkage:
    def __init__(self, db: Database, clock: Callable = utcnow):
        self.collection = db[ARTWORKS]
        self._clock = clock

    def get_artwork(self, artwork_id: Union[str, ObjectId]) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"_id": to_object_id(artwork_id, "artworkId")})

    def mark_as_in_auction(self, artwork_id: Union[str, ObjectId], auction_id: Union[str, ObjectId]) -> bool:
        """Point the artwork at its auction. Returns False if the artwork is missing."""
        result = self.collection.update_one(
            {"_id": to_object_id(artwork_id, "artworkId")},
            {
                "$set": {
                    "isAuction": True,
                    "auctionId": to_object_id(auction_id, "auctionId"),
                    "updatedAt": self._clock(),
                }
            },
        )
        if result.matched_count:
            logger.info(f"Artwork {artwork_id} linked to auction {auction_id}")
        return result.matched_count > 0

    def clear_auction_link(
        self,
        artwork_id: Union[str, ObjectId],
        auction_id: Optional[Union[str, ObjectId]] = None,
    ) -> bool:
        """Drop the back-reference, only if it still points at auction_id when one is given."""
        query = {"_id": to_object_id(artwork_id, "artworkId")}
        if auction_id is not None:
            query["auctionId"] = to_object_id(auction_id, "auctionId")

        result = self.collection.update_one(
            query,
            {
                "$set": {"isAuction": False, "updatedAt": self._clock()},
                "$unset": {"auctionId": ""},
            },
        )
        if result.matched_count:
            logger.info(f"Artwork {artwork_id} unlinked from its auction")
        return result.matched_count > 0
