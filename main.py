import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

from auctions import AuctionManager, effective_status
from auth import get_current_user
from database import ARTFORMS, ARTWORKS, USERS, connect, ensure_indexes, get_db, to_object_id
from exceptions import (
    ArtworkNotFoundError,
    AuctionNotFoundError,
    AuctionServiceError,
    ForbiddenError,
    NotArtistError,
    NotArtworkOwnerError,
    PersistenceError,
)
from schemas import CreateAuctionRequest, PlaceBidRequest, UserRole

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client, db = connect()
    app.state.db = db
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.warning(f"Could not create indexes: {e}")
    yield
    client.close()


app = FastAPI(title="Art & Culture Auction API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuctionServiceError)
async def handle_service_error(request: Request, exc: AuctionServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "validation", "message": message})


@app.exception_handler(PyMongoError)
async def handle_persistence_error(request: Request, exc: PyMongoError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    error = PersistenceError("Database operation failed")
    return JSONResponse(status_code=error.status_code, content={"error": error.kind, "message": error.message})


def get_auction_manager(db: Database = Depends(get_db)) -> AuctionManager:
    return AuctionManager(db)


# Serialization

def _jsonable(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def serialize_auction(auction: Dict[str, Any], now, include_bids: bool = True) -> Dict[str, Any]:
    data = _jsonable(auction)
    data["id"] = data.pop("_id")
    data["status"] = effective_status(auction, now)
    if not include_bids:
        data.pop("bids", None)
    return data


def _user_summary(user: Optional[Dict[str, Any]], *fields: str) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    summary = {"id": str(user["_id"]), "name": user.get("name")}
    for field in fields:
        summary[field] = user.get(field)
    return summary


def _artwork_summary(artwork: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not artwork:
        return None
    return {
        "id": str(artwork["_id"]),
        "title": artwork.get("title"),
        "description": artwork.get("description"),
        "finalImageUrl": artwork.get("finalImageUrl"),
        "artformId": _jsonable(artwork.get("artformId")),
    }


def _find_by_ids(db: Database, collection_name: str, ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    wanted = list({i for i in ids if i is not None})
    if not wanted:
        return {}
    return {doc["_id"]: doc for doc in db[collection_name].find({"_id": {"$in": wanted}})}


def _enrich_listing(db: Database, auctions: List[Dict[str, Any]], now) -> List[Dict[str, Any]]:
    """Attach artwork, artist and leading bidder summaries, without the bid history"""
    artworks = _find_by_ids(db, ARTWORKS, (a["artworkId"] for a in auctions))
    users = _find_by_ids(
        db,
        USERS,
        [a["artistId"] for a in auctions] + [a.get("currentBidder") for a in auctions],
    )

    enriched = []
    for auction in auctions:
        data = serialize_auction(auction, now, include_bids=False)
        artwork = artworks.get(auction["artworkId"])
        data["artwork"] = _artwork_summary(artwork)
        data["artist"] = _user_summary(users.get(artwork["artistId"]) if artwork else None, "profilePic")
        data["bidder"] = _user_summary(users.get(auction.get("currentBidder")))
        enriched.append(data)
    return enriched


@app.get("/")
def read_root():
    return {"message": "Art & Culture Auction API is running"}


@app.get("/auctions")
def list_auctions(
    status: Optional[str] = Query(None, pattern="^(ongoing|ended)$"),
    artist_id: Optional[str] = Query(None, alias="artistId"),
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    manager: AuctionManager = Depends(get_auction_manager),
    db: Database = Depends(get_db),
):
    """List ongoing or ended auctions, or an artist's auctions"""
    if status == "ended":
        # expired auctions that were never swept belong in this list too
        manager.auto_end_expired_auctions()
        auctions = manager.get_ended_auctions(limit, skip)
    elif status == "ongoing" or not artist_id:
        auctions = manager.get_ongoing_auctions(limit, skip)
    else:
        auctions = manager.get_auctions_by_artist(artist_id, limit, skip)

    return {
        "auctions": _enrich_listing(db, auctions, manager.now()),
        "hasMore": len(auctions) == limit,
    }


@app.get("/auctions/ending-soon")
def list_auctions_ending_soon(
    hours: Optional[int] = Query(None, ge=1, le=24 * 30),
    limit: int = Query(10, ge=1, le=100),
    manager: AuctionManager = Depends(get_auction_manager),
    db: Database = Depends(get_db),
):
    auctions = manager.get_auctions_ending_soon(hours, limit)
    return {"auctions": _enrich_listing(db, auctions, manager.now())}


@app.post("/auctions")
def create_auction(
    payload: CreateAuctionRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AuctionManager = Depends(get_auction_manager),
):
    """Create an auction for one of the caller's artworks (artists only)"""
    if user.get("role") != UserRole.ARTIST.value:
        raise NotArtistError()

    artwork = manager.linkage.get_artwork(payload.artwork_id)
    if artwork is None:
        raise ArtworkNotFoundError(payload.artwork_id)
    if artwork.get("artistId") != user["_id"]:
        raise NotArtworkOwnerError(payload.artwork_id)

    auction = manager.create_auction(artwork["_id"], user["_id"], payload.start_price, payload.end_time)
    return {"success": True, "auction": serialize_auction(auction, manager.now())}


@app.post("/auctions/expire")
def expire_auctions(
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AuctionManager = Depends(get_auction_manager),
):
    """Housekeeping: persist completed status for expired auctions and repair artwork links"""
    if user.get("role") != UserRole.ADMIN.value:
        raise ForbiddenError("Only admins can run auction housekeeping")

    completed = manager.auto_end_expired_auctions()
    relinked = manager.reconcile_artwork_links()
    return {"success": True, "completed": completed, "relinked": relinked}


@app.get("/auctions/{auction_id}")
def get_auction(
    auction_id: str,
    manager: AuctionManager = Depends(get_auction_manager),
    db: Database = Depends(get_db),
):
    auction = manager.get_auction_by_id(auction_id)
    if not auction:
        raise AuctionNotFoundError(auction_id)

    artwork = db[ARTWORKS].find_one({"_id": auction["artworkId"]})
    artform = db[ARTFORMS].find_one({"_id": artwork["artformId"]}) if artwork and artwork.get("artformId") else None
    users = _find_by_ids(
        db,
        USERS,
        [b["userId"] for b in auction.get("bids", [])]
        + [auction.get("currentBidder"), artwork["artistId"] if artwork else None],
    )

    bids = []
    for bid in auction.get("bids", []):
        data = _jsonable(bid)
        data["bidder"] = _user_summary(users.get(bid["userId"]), "profilePic")
        bids.append(data)

    return {
        "auction": serialize_auction(auction, manager.now()),
        "artwork": _artwork_summary(artwork),
        "artist": _user_summary(users.get(artwork["artistId"]) if artwork else None, "profilePic", "bio"),
        "artform": {"id": str(artform["_id"]), "name": artform.get("name"), "state": artform.get("state")}
        if artform
        else None,
        "bids": bids,
        "currentBidder": _user_summary(users.get(auction.get("currentBidder"))),
    }


@app.post("/auctions/{auction_id}/bid")
def place_bid(
    auction_id: str,
    payload: PlaceBidRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AuctionManager = Depends(get_auction_manager),
):
    """Place a bid; it must beat the current bid while the auction is open"""
    auction = manager.place_bid(auction_id, user["_id"], payload.amount)
    return {
        "success": True,
        "currentBid": auction["currentBid"],
        "currentBidder": str(auction["currentBidder"]),
        "message": "Bid placed successfully",
    }


@app.post("/auctions/{auction_id}/end")
def end_auction(
    auction_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AuctionManager = Depends(get_auction_manager),
):
    auction_oid = to_object_id(auction_id, "auctionId")
    auction = manager.get_auction_by_id(auction_oid)
    if not auction:
        raise AuctionNotFoundError(auction_id)
    if auction["artistId"] != user["_id"] and user.get("role") != UserRole.ADMIN.value:
        raise ForbiddenError("Only the auction's artist can end it")

    manager.end_auction(auction_oid)
    return {"success": True, "auction": serialize_auction(manager.get_auction_by_id(auction_oid), manager.now())}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        response["database_name"] = db.name
        response["connection_status"] = "Connected"
        collections = db.list_collection_names()
        response["collections"] = collections[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"

    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
