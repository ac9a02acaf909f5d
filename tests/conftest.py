"""
pytest configuration and shared fixtures

MongoDB is replaced by mongomock; time is controlled through FakeClock,
which AuctionManager accepts in place of utcnow.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import mongomock
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from auctions import AuctionManager  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    yield client["artCulture_test"]
    client.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def manager(db, clock) -> AuctionManager:
    return AuctionManager(db, clock=clock)


# =============================================================================
# Users, artforms, artworks
# =============================================================================


def _insert(db, collection_name, doc):
    db[collection_name].insert_one(doc)
    return doc


@pytest.fixture
def artist(db):
    return _insert(db, "users", {"authId": "auth_artist", "role": "artist", "name": "Asha Warli", "bio": "Painter"})


@pytest.fixture
def bidder(db):
    return _insert(db, "users", {"authId": "auth_bidder", "role": "student", "name": "Ravi"})


@pytest.fixture
def second_bidder(db):
    return _insert(db, "users", {"authId": "auth_second", "role": "student", "name": "Meera"})


@pytest.fixture
def admin(db):
    return _insert(db, "users", {"authId": "auth_admin", "role": "admin", "name": "Admin"})


@pytest.fixture
def artform(db):
    return _insert(db, "artforms", {"name": "Warli", "state": "Maharashtra"})


@pytest.fixture
def make_artwork(db, artist, artform):
    """Factory for artworks owned by the default artist"""

    def _make(title="Harvest Dance", owner=None):
        return _insert(
            db,
            "artworks",
            {
                "artistId": (owner or artist)["_id"],
                "artformId": artform["_id"],
                "title": title,
                "description": "Tribal painting on cloth",
                "finalImageUrl": "https://example.com/harvest.jpg",
                "price": 5000,
                "forSale": True,
                "isAuction": False,
            },
        )

    return _make


@pytest.fixture
def artwork(make_artwork):
    return make_artwork()


@pytest.fixture
def auction(manager, artwork, artist, clock):
    """Ongoing auction: start price 1000, ends one hour from the clock's start"""
    return manager.create_auction(artwork["_id"], artist["_id"], 1000, clock() + timedelta(hours=1))
