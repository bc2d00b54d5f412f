import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from cards import portfolio_image_urls, profile_image_url, to_card
from database import (
    COMMUNICATION_STYLES, GENDERS, INTERESTS, LOVE_LANGUAGES, MATCHES, ORIENTATIONS, SWIPES, USERS, WORKS,
    now_utc,
)
from errors import InvalidArgument, NotFound
from geo import age_in_band, calculate_age, split_csv, to_age, to_number, to_object_id, within_distance
from schemas import FeedFilters

log = logging.getLogger("matchmaking.matches")

# swipe actions that count towards a match
POSITIVE_ACTIONS = ["like", "superlike"]

COUNTERPART_FIELDS = {
    "name": 1, "currentCity": 1, "profileType": 1, "profileImage": 1, "photos": 1,
    "genderId": 1, "birthday": 1, "latitude": 1, "longitude": 1, "interests": 1,
}


def canonical_pair(a, b) -> Tuple[Any, Any]:
    """Order an unordered pair so (a, b) and (b, a) land on the same record."""
    return (a, b) if str(a) < str(b) else (b, a)


def ensure_match(db, a: ObjectId, b: ObjectId, now: Optional[datetime] = None) -> Tuple[str, bool]:
    """
    Insert the match for a pair if it does not exist yet.

    Returns (match_id, created). Racing inserts for the same pair collide on
    the unique (user1, user2) index; the loser reads back the winner's record.
    """
    user1, user2 = canonical_pair(a, b)
    key = {"user1": user1, "user2": user2}
    now = now or now_utc()
    try:
        result = db[MATCHES].update_one(
            key,
            {"$setOnInsert": {"isActive": True, "lastMessageAt": None, "createdAt": now, "updatedAt": now}},
            upsert=True,
        )
        if result.upserted_id is not None:
            log.info("Match created between %s and %s", user1, user2)
            return str(result.upserted_id), True
    except DuplicateKeyError:
        log.info("Match between %s and %s was created concurrently", user1, user2)

    existing = db[MATCHES].find_one(key, {"_id": 1})
    return str(existing["_id"]), False


def passes_filters(other: dict, me: Optional[dict], filters: Optional[FeedFilters], today: date) -> bool:
    """Post-filter applied to already-populated listings."""
    if filters is None:
        return True
    if filters.profileType and other.get("profileType") != filters.profileType:
        return False

    genders = set(split_csv(filters.genderIds))
    if genders and str(other.get("genderId") or "") not in genders:
        return False

    if not age_in_band(other.get("birthday"), to_age(filters.minAge), to_age(filters.maxAge), today):
        return False

    if not within_distance(me, other, to_number(filters.maxDistance)):
        return False

    interests = set(split_csv(filters.interests))
    if interests and not any(str(i) in interests for i in (other.get("interests") or [])):
        return False
    return True


def _skip(page: int, limit: int) -> int:
    return (max(1, page) - 1) * max(1, limit)


def _users_by_id(db, ids: List[ObjectId]) -> Dict[ObjectId, dict]:
    return {u["_id"]: u for u in db[USERS].find({"_id": {"$in": ids}}, COUNTERPART_FIELDS)}


def _requester_location(db, user_id: ObjectId) -> Optional[dict]:
    return db[USERS].find_one({"_id": user_id}, {"latitude": 1, "longitude": 1})


def list_matches(db, user_id: ObjectId, filters: Optional[FeedFilters] = None, page: int = 1,
                 limit: int = 20, base_url: str = "", today: Optional[date] = None) -> List[dict]:
    today = today or now_utc().date()
    records = list(
        db[MATCHES].find({"$or": [{"user1": user_id}, {"user2": user_id}], "isActive": True})
        .sort([("updatedAt", -1), ("_id", -1)])
        .skip(_skip(page, limit))
        .limit(max(1, limit))
    )
    others = [m["user2"] if m["user1"] == user_id else m["user1"] for m in records]
    users = _users_by_id(db, others)
    me = _requester_location(db, user_id)

    data = []
    for other_id in others:
        other = users.get(other_id)
        if not other or not passes_filters(other, me, filters, today):
            continue
        data.append({**to_card(other, base_url, today), "isLike": 1})
    return data


def list_likes(db, user_id: ObjectId, direction: str, filters: Optional[FeedFilters] = None, page: int = 1,
               limit: int = 20, base_url: str = "", today: Optional[date] = None) -> List[dict]:
    """Cards for people who liked the user ("received") or whom the user liked ("sent")."""
    today = today or now_utc().date()
    if direction == "received":
        query, counterpart = {"target": user_id}, "swiper"
    else:
        query, counterpart = {"swiper": user_id}, "target"
    query["action"] = {"$in": POSITIVE_ACTIONS}

    swipes = list(
        db[SWIPES].find(query, {counterpart: 1})
        .sort([("createdAt", -1), ("_id", -1)])
        .skip(_skip(page, limit))
        .limit(max(1, limit))
    )
    ids = [s[counterpart] for s in swipes]
    users = _users_by_id(db, ids)
    me = _requester_location(db, user_id)

    return [
        to_card(users[i], base_url, today)
        for i in ids
        if i in users and passes_filters(users[i], me, filters, today)
    ]


def _named(db, collection: str, ref) -> Optional[dict]:
    if not ref:
        return None
    doc = db[collection].find_one({"_id": ref}, {"name": 1})
    return {"id": str(doc["_id"]), "name": doc.get("name")} if doc else None


def get_profile(db, user_id: Any, base_url: str = "", today: Optional[date] = None) -> dict:
    oid = to_object_id(user_id)
    if oid is None:
        raise InvalidArgument("Invalid user id")
    user = db[USERS].find_one({"_id": oid}, {"password": 0, "__v": 0})
    if not user:
        raise NotFound("User not found")

    interest_ids = user.get("interests") or []
    interests = [
        {"id": str(i["_id"]), "name": i.get("name")}
        for i in db[INTERESTS].find({"_id": {"$in": interest_ids}}, {"name": 1})
    ] if interest_ids else []

    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "age": calculate_age(user.get("birthday"), today),
        "work": _named(db, WORKS, user.get("workId")),
        "currentCity": user.get("currentCity"),
        "homeTown": user.get("homeTown"),
        "latitude": user.get("latitude"),
        "longitude": user.get("longitude"),
        "pronounce": user.get("pronounce"),
        "gender": _named(db, GENDERS, user.get("genderId")),
        "orientation": _named(db, ORIENTATIONS, user.get("orientation")),
        "interests": interests,
        "communicationStyle": _named(db, COMMUNICATION_STYLES, user.get("communicationStyle")),
        "loveLanguage": _named(db, LOVE_LANGUAGES, user.get("loveLanguage")),
        "icebreakerPrompts": user.get("icebreakerPrompts") or [],
        "role": user.get("role"),
        "profileType": user.get("profileType"),
        "isPremium": bool(user.get("isPremium")),
        "verificationStatus": user.get("verificationStatus"),
        "profileImage": profile_image_url(user, base_url),
        "photos": portfolio_image_urls(user, base_url),
        "profileViews": user.get("profileViews") or 0,
        "matches": user.get("matches") or 0,
        "likes": user.get("likes") or 0,
        "superLikes": user.get("superLikes") or 0,
    }
