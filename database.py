"""
MongoDB access for the matchmaking service.

The store is shared with the rest of the mobile backend, so collection and
field names follow the existing documents (camelCase, Mongoose collection
names):
- users, userpreferences, swipes, matches
- genders, orientations, interests, communicationstyles, lovelanguages, works
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config

log = logging.getLogger("matchmaking.database")

USERS = "users"
PREFERENCES = "userpreferences"
SWIPES = "swipes"
MATCHES = "matches"
GENDERS = "genders"
ORIENTATIONS = "orientations"
INTERESTS = "interests"
COMMUNICATION_STYLES = "communicationstyles"
LOVE_LANGUAGES = "lovelanguages"
WORKS = "works"


def now_utc() -> datetime:
    # naive UTC, which is what the driver hands back for stored dates
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _connect():
    if not config.DATABASE_URL:
        return None
    client = MongoClient(
        config.DATABASE_URL,
        serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS,
        socketTimeoutMS=config.MONGO_TIMEOUT_MS,
        connectTimeoutMS=config.MONGO_TIMEOUT_MS,
        retryReads=True,
    )
    return client[config.DATABASE_NAME]


db = _connect()


def get_db():
    return db


def ensure_indexes(database) -> None:
    database[SWIPES].create_index([("swiper", ASCENDING), ("target", ASCENDING)], unique=True)
    database[SWIPES].create_index([("target", ASCENDING), ("action", ASCENDING)])
    database[MATCHES].create_index([("user1", ASCENDING), ("user2", ASCENDING)], unique=True)
    database[PREFERENCES].create_index([("user", ASCENDING)], unique=True)
    log.info("Indexes ensured on %s", database.name)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> str:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database is not configured")
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = now_utc()
    doc.setdefault("createdAt", now)
    doc.setdefault("updatedAt", now)
    return str(database[collection_name].insert_one(doc).inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, database=None) -> List[Dict[str, Any]]:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database is not configured")
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
