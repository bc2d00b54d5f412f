"""
Boost scheduler: time-boxed visibility promotion bought in credit packs.

A user's boost window is active iff ``isBoostActive`` is set and
``boostEndTime`` lies in the future. Every path that sees an expired
window clears it (lazy expiry). Writes are targeted field updates on the
user document, never whole-document saves.
"""

import logging
import math
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

import config
from database import USERS, now_utc
from errors import InvalidArgument, NotFound
from geo import to_int, to_object_id

log = logging.getLogger("matchmaking.boost")

PACKAGES: Dict[str, Dict[str, Any]] = {
    "boost_3": {"credits": 3, "price": 99, "name": "₹99 for 3 Boosts"},
    "boost_5": {"credits": 5, "price": 149, "name": "₹149 for 5 Boosts"},
    "boost_10": {"credits": 10, "price": 249, "name": "₹249 for 10 Boosts"},
}

CATALOG = [
    {"id": "boost_3", "name": "3 Boosts", "price": 99, "currency": "INR", "credits": 3,
     "description": "Get 3 boost credits", "popular": False},
    {"id": "boost_5", "name": "5 Boosts", "price": 149, "currency": "INR", "credits": 5,
     "description": "Get 5 boost credits", "popular": True, "savings": "₹20 saved"},
    {"id": "boost_10", "name": "10 Boosts", "price": 249, "currency": "INR", "credits": 10,
     "description": "Get 10 boost credits", "popular": False, "savings": "₹81 saved"},
]

CLEARED_WINDOW = {"isBoostActive": False, "boostStartTime": None, "boostEndTime": None}

BOOST_FIELDS = {
    "boostCredits": 1, "isBoostActive": 1, "boostStartTime": 1, "boostEndTime": 1,
    "boostDuration": 1, "totalBoostsPurchased": 1, "totalBoostsUsed": 1,
    "boostPurchaseTransactions": 1,
}


def is_boost_active(user: Optional[dict], now: datetime) -> bool:
    if not user or not user.get("isBoostActive"):
        return False
    end = user.get("boostEndTime")
    return isinstance(end, datetime) and end > now


def is_boost_expired(user: Optional[dict], now: datetime) -> bool:
    return bool(user) and bool(user.get("isBoostActive")) and not is_boost_active(user, now)


def remaining_minutes(end: Optional[datetime], now: datetime) -> int:
    if not isinstance(end, datetime):
        return 0
    return max(0, math.ceil((end - now).total_seconds() / 60))


def clear_expired_boosts(db, user_ids: Iterable, now: Optional[datetime] = None) -> int:
    """Best-effort batch clear of expired windows; never raises."""
    ids = list(user_ids)
    if not ids:
        return 0
    now = now or now_utc()
    try:
        result = db[USERS].update_many(
            {"_id": {"$in": ids}, "isBoostActive": True, "boostEndTime": {"$lte": now}},
            {"$set": CLEARED_WINDOW},
        )
    except PyMongoError:
        log.exception("Error batch updating expired boosts")
        return 0
    return result.modified_count


def _expire_if_needed(db, user: dict, now: datetime) -> dict:
    if is_boost_expired(user, now):
        db[USERS].update_one(
            {"_id": user["_id"], "isBoostActive": True, "boostEndTime": {"$lte": now}},
            {"$set": CLEARED_WINDOW},
        )
        user.update(CLEARED_WINDOW)
    return user


def _load_user(db, user_id) -> dict:
    oid = to_object_id(user_id)
    user = db[USERS].find_one({"_id": oid}, BOOST_FIELDS) if oid else None
    if not user:
        raise NotFound("User not found")
    return user


def _duration(requested: Any, user: dict) -> int:
    minutes = to_int(requested)
    if minutes and minutes > 0:
        return minutes
    return user.get("boostDuration") or config.DEFAULT_BOOST_MINUTES


def _window(now: datetime, minutes: int) -> dict:
    return {
        "isBoostActive": True,
        "boostStartTime": now,
        "boostEndTime": now + timedelta(minutes=minutes),
        "boostDuration": minutes,
    }


def boost_status(db, user_id, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    user = _expire_if_needed(db, _load_user(db, user_id), now)
    active = is_boost_active(user, now)
    return {
        "boostCredits": user.get("boostCredits") or 0,
        "isBoostActive": active,
        "boostStartTime": user.get("boostStartTime") if active else None,
        "boostEndTime": user.get("boostEndTime") if active else None,
        "boostDuration": user.get("boostDuration") or config.DEFAULT_BOOST_MINUTES,
        "totalBoostsPurchased": user.get("totalBoostsPurchased") or 0,
        "totalBoostsUsed": user.get("totalBoostsUsed") or 0,
        "remainingTime": remaining_minutes(user.get("boostEndTime"), now) if active else 0,
    }


def _already_processed(transaction_id: str) -> InvalidArgument:
    return InvalidArgument(
        "This purchase has already been processed.",
        data={"transactionId": transaction_id, "alreadyPurchased": True},
    )


def purchase_boost(db, user_id, package_code: str, transaction_id: Optional[str] = None,
                   duration: Any = None, now: Optional[datetime] = None) -> dict:
    """
    Credit a boost pack and immediately start a fresh window.

    A purchase always restarts the window (consuming one of the new credits),
    so whatever was left of an earlier window is discarded. Replaying a known
    transaction id credits nothing.
    """
    package = PACKAGES.get(package_code or "")
    if not package:
        raise InvalidArgument(f"Invalid package type. Available: {', '.join(PACKAGES)}")

    now = now or now_utc()
    user = _load_user(db, user_id)
    if transaction_id and transaction_id in (user.get("boostPurchaseTransactions") or []):
        raise _already_processed(transaction_id)

    final_transaction_id = transaction_id or f"demo_transaction_{int(time.time() * 1000)}"
    minutes = _duration(duration, user)
    credits = package["credits"]

    before = db[USERS].find_one_and_update(
        {"_id": user["_id"], "boostPurchaseTransactions": {"$ne": final_transaction_id}},
        {
            "$inc": {
                "boostCredits": credits - 1,
                "totalBoostsPurchased": credits,
                "totalBoostsUsed": 1,
            },
            "$set": {**_window(now, minutes), "updatedAt": now},
            "$push": {"boostPurchaseTransactions": final_transaction_id},
        },
        projection=BOOST_FIELDS,
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        # a concurrent request recorded the same transaction first
        raise _already_processed(final_transaction_id)

    had_active_boost = is_boost_active(before, now)
    window = _window(now, minutes)
    log.info("User %s bought %s; boost active until %s", user["_id"], package_code, window["boostEndTime"])
    return {
        "package": package["name"],
        "creditsAdded": credits,
        "totalCredits": (before.get("boostCredits") or 0) + credits - 1,
        "price": package["price"],
        "transactionId": final_transaction_id,
        "boostActivated": True,
        "boost": {
            **window,
            "remainingMinutes": minutes,
            "previousBoostEnded": had_active_boost,
        },
    }


def _check_can_activate(user: dict, now: datetime) -> None:
    if (user.get("boostCredits") or 0) <= 0:
        raise InvalidArgument(
            "No boost credits available. Please purchase boost credits first.",
            data={"boostCredits": 0},
        )
    if is_boost_active(user, now):
        raise InvalidArgument(
            "Boost is already active",
            data={
                "isBoostActive": True,
                "remainingMinutes": remaining_minutes(user["boostEndTime"], now),
                "boostEndTime": user["boostEndTime"],
            },
        )


def activate_boost(db, user_id, duration: Any = None, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    user = _load_user(db, user_id)
    _check_can_activate(user, now)

    minutes = _duration(duration, user)
    updated = db[USERS].find_one_and_update(
        {
            "_id": user["_id"],
            "boostCredits": {"$gt": 0},
            "$or": [{"isBoostActive": {"$ne": True}}, {"boostEndTime": {"$lte": now}}],
        },
        {
            "$inc": {"boostCredits": -1, "totalBoostsUsed": 1},
            "$set": {**_window(now, minutes), "updatedAt": now},
        },
        projection=BOOST_FIELDS,
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # lost a race with another activation or purchase
        _check_can_activate(_load_user(db, user_id), now)
        raise InvalidArgument("Boost could not be activated")

    log.info("User %s activated a %s minute boost", user["_id"], minutes)
    return {
        "isBoostActive": True,
        "boostStartTime": updated["boostStartTime"],
        "boostEndTime": updated["boostEndTime"],
        "boostDuration": minutes,
        "remainingCredits": updated.get("boostCredits") or 0,
    }


def deactivate_boost(db, user_id, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    user = _expire_if_needed(db, _load_user(db, user_id), now)
    if not is_boost_active(user, now):
        raise InvalidArgument("No active boost to deactivate")

    db[USERS].update_one({"_id": user["_id"]}, {"$set": {**CLEARED_WINDOW, "updatedAt": now}})
    return {"isBoostActive": False, "remainingCredits": user.get("boostCredits") or 0}


def boost_packages() -> list:
    return CATALOG
