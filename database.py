"""
Database helpers for the auction service.

The MongoDB client is created once by the application lifespan and the
database handle is passed to request handlers through the ``get_db``
dependency.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from exceptions import InvalidIdError

logger = logging.getLogger(__name__)

USERS = "users"
ARTFORMS = "artforms"
ARTWORKS = "artworks"
AUCTIONS = "auctions"


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form pymongo decodes to."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Union[str, ObjectId], label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) would mint a new id
    if not isinstance(value, str):
        raise InvalidIdError(label, value)
    try:
        return ObjectId(value)
    except InvalidId:
        raise InvalidIdError(label, value)


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Tuple[MongoClient, Database]:
    url = url or os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    name = name or os.getenv("DATABASE_NAME", "artCulture")
    timeout_ms = int(os.getenv("DATABASE_TIMEOUT_MS", "5000"))

    client = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
    logger.info(f"MongoDB client created for database {name}")
    return client, client[name]


def ensure_indexes(db: Database) -> None:
    auctions = db[AUCTIONS]
    auctions.create_index([("status", ASCENDING), ("endTime", ASCENDING)])
    auctions.create_index([("artistId", ASCENDING), ("endTime", ASCENDING)])
    auctions.create_index([("artworkId", ASCENDING), ("status", ASCENDING)])
    db[USERS].create_index("authId")


def get_db(request: Request) -> Database:
    return request.app.state.db


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> ObjectId:
    """Insert a document and return its generated id"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True, exclude_none=True)
    else:
        data_dict = dict(data)

    result = db[collection_name].insert_one(data_dict)
    return result.inserted_id


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    skip: int = 0,
    sort: Optional[List[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    """Find documents with optional sort and pagination"""
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)

