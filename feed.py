import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from bson import ObjectId

from boost import is_boost_active, is_boost_expired
from cards import to_card
from database import PREFERENCES, SWIPES, USERS, now_utc
from errors import NotFound
from geo import birthday_range, has_coordinates, object_ids, split_csv, to_age, to_number, within_distance
from schemas import FeedFilters

log = logging.getLogger("matchmaking.feed")

DEFAULT_MIN_AGE = 18
DEFAULT_MAX_AGE = 99

CANDIDATE_FIELDS = {
    "name": 1, "currentCity": 1, "profileType": 1, "profileImage": 1, "photos": 1,
    "createdAt": 1, "birthday": 1, "latitude": 1, "longitude": 1, "isPremium": 1,
    "zodiacSign": 1, "loveLanguage": 1, "orientation": 1, "communicationStyle": 1,
    "workId": 1, "interests": 1, "genderId": 1, "isBoostActive": 1, "boostEndTime": 1,
}

# query param -> user field, for the id-set overrides
ID_SET_OVERRIDES = {
    "genderIds": "genderId",
    "interests": "interests",
    "loveLanguageIds": "loveLanguage",
    "workIds": "workId",
    "orientationIds": "orientation",
    "communicationStyleIds": "communicationStyle",
}


@dataclass
class FeedPage:
    cards: List[Dict[str, Any]]
    expired_boost_ids: List[ObjectId] = field(default_factory=list)


def exclusion_set(db, user_id: ObjectId) -> List[ObjectId]:
    """Self, everyone already swiped on, and everyone who disliked the requester."""
    excluded: Set[ObjectId] = {user_id}
    excluded.update(s["target"] for s in db[SWIPES].find({"swiper": user_id}, {"target": 1}))
    excluded.update(s["swiper"] for s in db[SWIPES].find({"target": user_id, "action": "dislike"}, {"swiper": 1}))
    return list(excluded)


def _birthday_filter(min_age: Optional[int], max_age: Optional[int], now: datetime) -> dict:
    lower, upper = birthday_range(
        min_age if min_age is not None else DEFAULT_MIN_AGE,
        max_age if max_age is not None else DEFAULT_MAX_AGE,
        now,
    )
    return {"$gte": lower, "$lt": upper}


def base_query(me: dict, prefs: Optional[dict], now: datetime) -> Dict[str, Any]:
    """Store filter from saved preferences, falling back to the requester's own profile."""
    query: Dict[str, Any] = {}
    prefs = prefs or {}

    query["profileType"] = prefs.get("profileType") or me.get("profileType") or "personal"

    if prefs.get("showMeGenders"):
        query["genderId"] = {"$in": list(prefs["showMeGenders"])}
    elif me.get("genderId"):
        query["genderId"] = {"$ne": me["genderId"]}

    if prefs.get("interests"):
        query["interests"] = {"$in": list(prefs["interests"])}

    if prefs.get("minAge") is not None or prefs.get("maxAge") is not None:
        query["birthday"] = _birthday_filter(to_age(prefs.get("minAge")), to_age(prefs.get("maxAge")), now)

    return query


def apply_overrides(query: Dict[str, Any], filters: FeedFilters, now: datetime) -> Dict[str, Any]:
    if filters.profileType:
        query["profileType"] = {"$regex": f"^{re.escape(filters.profileType)}$", "$options": "i"}

    min_age, max_age = to_age(filters.minAge), to_age(filters.maxAge)
    if min_age is not None or max_age is not None:
        query["birthday"] = _birthday_filter(min_age, max_age, now)

    for param, user_field in ID_SET_OVERRIDES.items():
        ids = object_ids(split_csv(getattr(filters, param)))
        if ids:
            query[user_field] = {"$in": ids}

    signs = split_csv(filters.zodiacSigns)
    if signs:
        query["zodiacSign"] = {"$in": [re.compile(f"^{re.escape(s)}$", re.IGNORECASE) for s in signs]}

    if str(filters.premiumOnly).lower() in ("1", "true"):
        query["isPremium"] = True

    return query


def _effective_max_distance(filters: Optional[FeedFilters], prefs: Optional[dict]) -> Optional[float]:
    override = to_number(filters.maxDistance) if filters else None
    if override is not None:
        return override
    return to_number((prefs or {}).get("maxDistance"))


def build_feed(db, requester_id: ObjectId, filters: Optional[FeedFilters] = None, page: int = 1,
               limit: int = 20, base_url: str = "", with_like_flags: bool = False,
               now: Optional[datetime] = None) -> FeedPage:
    """
    Ranked discovery page for a requester.

    Boosted candidates come first, then regular ones; both keep newest-first
    order. Candidates whose boost has lapsed are shown as regular and their
    ids are returned so the caller can clear them in the background.
    """
    now = now or now_utc()
    page = max(1, page)
    limit = max(1, limit)

    me = db[USERS].find_one(
        {"_id": requester_id},
        {"genderId": 1, "profileType": 1, "birthday": 1, "latitude": 1, "longitude": 1},
    )
    if not me:
        raise NotFound("User not found")
    prefs = db[PREFERENCES].find_one({"user": requester_id})

    query = base_query(me, prefs, now)
    if filters is not None:
        apply_overrides(query, filters, now)
    query["_id"] = {"$nin": exclusion_set(db, requester_id)}

    # over-fetch so the distance filter still leaves a full page
    candidates = list(
        db[USERS].find(query, CANDIDATE_FIELDS)
        .sort([("createdAt", -1), ("_id", -1)])
        .skip((page - 1) * limit)
        .limit(limit * 3)
    )

    max_distance = _effective_max_distance(filters, prefs)
    if max_distance is not None and has_coordinates(me):
        candidates = [c for c in candidates if within_distance(me, c, max_distance)]

    boosted, regular, expired = [], [], []
    for candidate in candidates:
        if is_boost_expired(candidate, now):
            expired.append(candidate["_id"])
        (boosted if is_boost_active(candidate, now) else regular).append(candidate)

    cards = []
    for candidate in (boosted + regular)[:limit]:
        active = is_boost_active(candidate, now)
        card = to_card(candidate, base_url, now.date())
        if with_like_flags:
            # liked candidates are already excluded
            card["isLike"] = 0
        card["isBoosted"] = active
        card["boostEndTime"] = candidate.get("boostEndTime") if active else None
        cards.append(card)

    if expired:
        log.debug("Found %d lapsed boosts while building feed for %s", len(expired), requester_id)
    return FeedPage(cards=cards, expired_boost_ids=expired)
