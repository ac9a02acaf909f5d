"""
Auction service exceptions

Every error raised by the auction code derives from AuctionServiceError and
carries the HTTP status and machine-readable kind it is reported with.
"""


class AuctionServiceError(Exception):
    """Base class for auction service errors"""

    status_code = 500
    kind = "error"

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


# =============================================================================
# 404
# =============================================================================


class NotFoundError(AuctionServiceError):
    status_code = 404
    kind = "not_found"


class AuctionNotFoundError(NotFoundError):
    def __init__(self, auction_id):
        self.auction_id = auction_id
        super().__init__(f"Auction not found: {auction_id}")


class ArtworkNotFoundError(NotFoundError):
    def __init__(self, artwork_id):
        self.artwork_id = artwork_id
        super().__init__(f"Artwork not found: {artwork_id}")


class UserNotFoundError(NotFoundError):
    def __init__(self, principal):
        self.principal = principal
        super().__init__("User not found")


# =============================================================================
# 401 / 403
# =============================================================================


class UnauthorizedError(AuctionServiceError):
    status_code = 401
    kind = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(AuctionServiceError):
    status_code = 403
    kind = "forbidden"


class NotArtistError(ForbiddenError):
    def __init__(self):
        super().__init__("Only artists can create auctions")


class NotArtworkOwnerError(ForbiddenError):
    def __init__(self, artwork_id):
        self.artwork_id = artwork_id
        super().__init__("You can only create auctions for your own artworks")


class SelfBidError(ForbiddenError):
    def __init__(self, auction_id):
        self.auction_id = auction_id
        super().__init__("Artists cannot bid on their own auctions")


# =============================================================================
# 400
# =============================================================================


class InvalidRequestError(AuctionServiceError):
    status_code = 400
    kind = "validation"


class InvalidIdError(InvalidRequestError):
    def __init__(self, label: str, value):
        self.label = label
        self.value = value
        super().__init__(f"Invalid {label}: {value!r}")


class InvalidAmountError(InvalidRequestError):
    kind = "invalid_amount"

    def __init__(self, amount):
        self.amount = amount
        super().__init__("Bid amount must be a positive number")


class BidTooLowError(InvalidRequestError):
    kind = "bid_too_low"

    def __init__(self, amount: int, current_bid: int):
        self.amount = amount
        self.current_bid = current_bid
        super().__init__(
            f"Bid amount must be higher than current bid ({current_bid})"
        )


class AuctionClosedError(InvalidRequestError):
    kind = "auction_closed"

    def __init__(self, auction_id):
        self.auction_id = auction_id
        super().__init__("Auction has ended")


# =============================================================================
# 409 / 500
# =============================================================================


class ConflictError(AuctionServiceError):
    status_code = 409
    kind = "conflict"


class ConcurrentBidConflictError(ConflictError):
    kind = "concurrent_bid_conflict"

    def __init__(self, auction_id):
        self.auction_id = auction_id
        super().__init__(
            "Another bid was placed at the same time, reload the auction and try again"
        )


class ArtworkAlreadyInAuctionError(ConflictError):
    def __init__(self, artwork_id, auction_id):
        self.artwork_id = artwork_id
        self.auction_id = auction_id
        super().__init__(f"Artwork {artwork_id} already has an ongoing auction")


class PersistenceError(AuctionServiceError):
    kind = "persistence"
