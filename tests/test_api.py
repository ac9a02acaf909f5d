"""
HTTP tests for the auction routes, run against mongomock through TestClient.
"""
from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auctions import AuctionManager
from auth import PRINCIPAL_HEADER
from database import get_db, utcnow
from main import app


def as_user(user):
    return {PRINCIPAL_HEADER: user["authId"]}


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def live_manager(db):
    return AuctionManager(db)


@pytest.fixture
def open_auction(live_manager, artwork, artist):
    return live_manager.create_auction(artwork["_id"], artist["_id"], 1000, utcnow() + timedelta(hours=1))


@pytest.fixture
def expired_auction(db, make_artwork, artist):
    """Auction whose end time passed without the sweep running"""
    artwork = make_artwork("Expired piece")
    now = utcnow()
    doc = {
        "artworkId": artwork["_id"],
        "artistId": artist["_id"],
        "startPrice": 500,
        "currentBid": 500,
        "bids": [],
        "startTime": now - timedelta(days=2),
        "endTime": now - timedelta(hours=1),
        "status": "ongoing",
        "createdAt": now - timedelta(days=2),
    }
    db["auctions"].insert_one(doc)
    return doc


def test_root(client):
    assert client.get("/").json() == {"message": "Art & Culture Auction API is running"}


class TestListAuctions:
    def test_ongoing_listing_is_enriched(self, client, open_auction, artwork, artist):
        response = client.get("/auctions", params={"status": "ongoing"})
        assert response.status_code == 200

        body = response.json()
        assert body["hasMore"] is False
        assert len(body["auctions"]) == 1

        listed = body["auctions"][0]
        assert listed["id"] == str(open_auction["_id"])
        assert "bids" not in listed
        assert listed["artwork"]["title"] == artwork["title"]
        assert listed["artist"]["name"] == artist["name"]
        assert listed["bidder"] is None

    def test_default_listing_is_ongoing(self, client, open_auction, expired_auction):
        ids = [a["id"] for a in client.get("/auctions").json()["auctions"]]
        assert ids == [str(open_auction["_id"])]

    def test_ended_listing_includes_unswept_expired(self, client, open_auction, expired_auction):
        body = client.get("/auctions", params={"status": "ended"}).json()
        assert [a["id"] for a in body["auctions"]] == [str(expired_auction["_id"])]
        assert body["auctions"][0]["status"] == "completed"

    def test_has_more(self, client, live_manager, make_artwork, artist):
        for i in range(3):
            artwork = make_artwork(f"piece {i}")
            live_manager.create_auction(artwork["_id"], artist["_id"], 100, utcnow() + timedelta(hours=i + 1))

        body = client.get("/auctions", params={"limit": 2}).json()
        assert len(body["auctions"]) == 2
        assert body["hasMore"] is True

    def test_by_artist(self, client, open_auction, artist, bidder):
        body = client.get("/auctions", params={"artistId": str(artist["_id"])}).json()
        assert [a["id"] for a in body["auctions"]] == [str(open_auction["_id"])]

        assert client.get("/auctions", params={"artistId": str(bidder["_id"])}).json()["auctions"] == []

    @pytest.mark.parametrize("params", [{"status": "paused"}, {"limit": 0}, {"skip": -1}, {"artistId": "zzz"}])
    def test_bad_query(self, client, params):
        response = client.get("/auctions", params=params)
        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    def test_ending_soon(self, client, open_auction):
        body = client.get("/auctions/ending-soon", params={"hours": 2}).json()
        assert [a["id"] for a in body["auctions"]] == [str(open_auction["_id"])]

    def test_ending_soon_default_window_from_settings(self, client, live_manager, make_artwork, artist, monkeypatch):
        artwork = make_artwork("three days")
        later = live_manager.create_auction(artwork["_id"], artist["_id"], 100, utcnow() + timedelta(hours=48))

        assert client.get("/auctions/ending-soon").json()["auctions"] == []

        monkeypatch.setattr("auctions.ENDING_SOON_HOURS", 72)
        body = client.get("/auctions/ending-soon").json()
        assert [a["id"] for a in body["auctions"]] == [str(later["_id"])]


class TestGetAuction:
    def test_detail(self, client, live_manager, open_auction, bidder, artform, artist):
        live_manager.place_bid(open_auction["_id"], bidder["_id"], 1500)

        response = client.get(f"/auctions/{open_auction['_id']}")
        assert response.status_code == 200

        body = response.json()
        assert body["auction"]["currentBid"] == 1500
        assert body["auction"]["status"] == "ongoing"
        assert body["artform"] == {"id": str(artform["_id"]), "name": "Warli", "state": "Maharashtra"}
        assert body["artist"]["bio"] == artist["bio"]
        assert body["bids"][0]["amount"] == 1500
        assert body["bids"][0]["bidder"]["name"] == bidder["name"]
        assert body["currentBidder"] == {"id": str(bidder["_id"]), "name": bidder["name"]}

    def test_expired_reads_as_completed(self, client, expired_auction):
        body = client.get(f"/auctions/{expired_auction['_id']}").json()
        assert body["auction"]["status"] == "completed"

    def test_not_found(self, client):
        response = client.get(f"/auctions/{ObjectId()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_malformed_id(self, client):
        assert client.get("/auctions/not-an-id").status_code == 400


class TestCreateAuction:
    def _payload(self, artwork, **overrides):
        payload = {
            "artworkId": str(artwork["_id"]),
            "startPrice": 1000,
            "endTime": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        }
        payload.update(overrides)
        return payload

    def test_artist_creates_auction(self, client, artwork, artist, db):
        response = client.post("/auctions", json=self._payload(artwork), headers=as_user(artist))
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["auction"]["currentBid"] == 1000
        assert body["auction"]["status"] == "ongoing"
        assert body["auction"]["artistId"] == str(artist["_id"])

        stored_artwork = db["artworks"].find_one({"_id": artwork["_id"]})
        assert stored_artwork["isAuction"] is True
        assert str(stored_artwork["auctionId"]) == body["auction"]["id"]

    @pytest.mark.parametrize("missing", ["artworkId", "startPrice", "endTime"])
    def test_missing_field(self, client, artwork, artist, missing):
        payload = self._payload(artwork)
        del payload[missing]
        response = client.post("/auctions", json=payload, headers=as_user(artist))
        assert response.status_code == 400

    def test_non_positive_price(self, client, artwork, artist):
        response = client.post("/auctions", json=self._payload(artwork, startPrice=0), headers=as_user(artist))
        assert response.status_code == 400

    def test_end_time_in_past(self, client, artwork, artist):
        past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        response = client.post("/auctions", json=self._payload(artwork, endTime=past), headers=as_user(artist))
        assert response.status_code == 400

    def test_unauthenticated(self, client, artwork):
        response = client.post("/auctions", json=self._payload(artwork))
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_unknown_user(self, client, artwork):
        response = client.post("/auctions", json=self._payload(artwork), headers={PRINCIPAL_HEADER: "auth_ghost"})
        assert response.status_code == 404

    def test_non_artist(self, client, artwork, bidder):
        response = client.post("/auctions", json=self._payload(artwork), headers=as_user(bidder))
        assert response.status_code == 403

    def test_not_owner(self, client, db, make_artwork, artist):
        other = {"authId": "auth_other_artist", "role": "artist", "name": "Kiran"}
        db["users"].insert_one(other)
        artwork = make_artwork("not yours", owner=other)

        response = client.post("/auctions", json=self._payload(artwork), headers=as_user(artist))
        assert response.status_code == 403

    def test_artwork_missing(self, client, artist):
        response = client.post("/auctions", json=self._payload({"_id": ObjectId()}), headers=as_user(artist))
        assert response.status_code == 404

    def test_artwork_already_in_auction(self, client, open_auction, artwork, artist):
        response = client.post("/auctions", json=self._payload(artwork), headers=as_user(artist))
        assert response.status_code == 409


class TestPlaceBid:
    def test_success(self, client, open_auction, bidder):
        response = client.post(f"/auctions/{open_auction['_id']}/bid", json={"amount": 1200}, headers=as_user(bidder))
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "currentBid": 1200,
            "currentBidder": str(bidder["_id"]),
            "message": "Bid placed successfully",
        }

    def test_too_low(self, client, open_auction, bidder):
        response = client.post(f"/auctions/{open_auction['_id']}/bid", json={"amount": 1000}, headers=as_user(bidder))
        assert response.status_code == 400
        assert response.json()["error"] == "bid_too_low"

    @pytest.mark.parametrize("body", [{}, {"amount": "lots"}, {"amount": 0}, {"amount": -5}])
    def test_invalid_amount(self, client, open_auction, bidder, body):
        response = client.post(f"/auctions/{open_auction['_id']}/bid", json=body, headers=as_user(bidder))
        assert response.status_code == 400

    def test_auction_ended(self, client, expired_auction, bidder):
        response = client.post(
            f"/auctions/{expired_auction['_id']}/bid", json={"amount": 99999}, headers=as_user(bidder)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "auction_closed"

    def test_unknown_auction(self, client, bidder):
        response = client.post(f"/auctions/{ObjectId()}/bid", json={"amount": 1200}, headers=as_user(bidder))
        assert response.status_code == 404

    def test_unauthenticated(self, client, open_auction):
        response = client.post(f"/auctions/{open_auction['_id']}/bid", json={"amount": 1200})
        assert response.status_code == 401

    def test_artist_self_bid(self, client, open_auction, artist):
        response = client.post(f"/auctions/{open_auction['_id']}/bid", json={"amount": 1200}, headers=as_user(artist))
        assert response.status_code == 403


class TestEndAuction:
    def test_artist_ends_auction(self, client, open_auction, artist):
        response = client.post(f"/auctions/{open_auction['_id']}/end", headers=as_user(artist))
        assert response.status_code == 200
        assert response.json()["auction"]["status"] == "completed"

        again = client.post(f"/auctions/{open_auction['_id']}/end", headers=as_user(artist))
        assert again.status_code == 200

    def test_admin_ends_auction(self, client, open_auction, admin):
        assert client.post(f"/auctions/{open_auction['_id']}/end", headers=as_user(admin)).status_code == 200

    def test_other_user_forbidden(self, client, open_auction, bidder):
        assert client.post(f"/auctions/{open_auction['_id']}/end", headers=as_user(bidder)).status_code == 403


class TestExpireAuctions:
    def test_admin_runs_housekeeping(self, client, open_auction, expired_auction, admin, db):
        response = client.post("/auctions/expire", headers=as_user(admin))
        assert response.status_code == 200
        assert response.json() == {"success": True, "completed": 1, "relinked": 0}
        assert db["auctions"].find_one({"_id": expired_auction["_id"]})["status"] == "completed"

    def test_non_admin_forbidden(self, client, artist):
        assert client.post("/auctions/expire", headers=as_user(artist)).status_code == 403
