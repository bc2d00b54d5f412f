"""
Swipe processing: record a decision, enforce the free-plan quota, and turn
mutual likes into matches.

The swipe write, the reciprocity read and the match write are three
separate single-document operations. Two users liking each other at the same
instant may both see reciprocity; the match upsert absorbs that.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
from database import SWIPES, USERS, now_utc
from errors import InvalidArgument, NotFound, QuotaExceeded
from geo import to_object_id
from matches import POSITIVE_ACTIONS, ensure_match
from notifications import Notifier

log = logging.getLogger("matchmaking.swipes")

LIKE = "like"
DISLIKE = "dislike"
SUPERLIKE = "superlike"
ACTIONS = (LIKE, DISLIKE, SUPERLIKE)

METRIC_FIELD = {LIKE: "likes", SUPERLIKE: "superLikes"}


@dataclass
class SwipeResult:
    swipe_id: str
    is_match: bool = False
    match_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {"swipeId": self.swipe_id, "isMatch": self.is_match, "matchId": self.match_id}


def _validate_target(db, swiper_id: ObjectId, target_id: Any, action: str) -> ObjectId:
    if not target_id:
        raise InvalidArgument("targetUserId is required")
    if str(target_id) == str(swiper_id):
        raise InvalidArgument(f"Cannot {action} yourself")
    target_oid = to_object_id(target_id)
    if target_oid is None:
        raise InvalidArgument("Invalid targetUserId")
    if not db[USERS].find_one({"_id": target_oid}, {"_id": 1}):
        raise NotFound("Target user not found")
    return target_oid


def consume_swipe(db, swiper: dict) -> bool:
    """Take one swipe from a free-plan allowance; other plans are unlimited.

    Returns True when a swipe was taken.
    """
    plan = swiper.get("plan") or {}
    if plan.get("planType") != config.FREE_PLAN:
        return False
    if (plan.get("remainingSwipes") or 0) <= 0:
        raise QuotaExceeded()
    result = db[USERS].update_one(
        {"_id": swiper["_id"], "plan.planType": config.FREE_PLAN, "plan.remainingSwipes": {"$gt": 0}},
        {"$inc": {"plan.remainingSwipes": -1}},
    )
    if result.modified_count == 0:
        # drained by a concurrent swipe since the read above
        raise QuotaExceeded()
    return True


def refund_swipe(db, swiper_id: ObjectId) -> None:
    db[USERS].update_one(
        {"_id": swiper_id, "plan.planType": config.FREE_PLAN},
        {"$inc": {"plan.remainingSwipes": 1}},
    )


def _upsert_swipe(db, swiper_id: ObjectId, target_id: ObjectId, action: str, now: datetime) -> dict:
    key = {"swiper": swiper_id, "target": target_id}
    update = {"$set": {"action": action, "updatedAt": now}, "$setOnInsert": {"createdAt": now}}
    try:
        return db[SWIPES].find_one_and_update(key, update, upsert=True, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        # concurrent first swipe on the same pair; the record exists now
        return db[SWIPES].find_one_and_update(key, update, return_document=ReturnDocument.AFTER)


def _bump(db, ids, field: str) -> None:
    try:
        db[USERS].update_many({"_id": {"$in": ids}}, {"$inc": {field: 1}})
    except PyMongoError:
        log.warning("Could not increment %s for %s", field, ids, exc_info=True)


def _notify(db, notifier: Notifier, swiper: dict, target_id: ObjectId, action: str,
            match_id: Optional[str]) -> None:
    target = db[USERS].find_one({"_id": target_id}, {"name": 1, "deviceToken": 1})
    swiper_name = swiper.get("name") or ""
    target_name = (target or {}).get("name") or ""

    if match_id:
        for recipient, other_id, other_name in (
            (target, swiper["_id"], swiper_name),
            (swiper, target_id, target_name),
        ):
            notifier.notify(
                recipient,
                "🎉 Profile Match!",
                f"You have a profile match with {other_name or 'someone'}. Start chatting now!",
                {"type": "match", "matchId": match_id, "userId": str(other_id), "userName": other_name},
            )
    elif action == SUPERLIKE:
        notifier.notify(
            target,
            "⭐ Super Like!",
            f"{swiper_name or 'Someone'} super liked you!",
            {"type": "superlike", "userId": str(swiper["_id"]), "userName": swiper_name},
        )
    else:
        notifier.notify(
            target,
            "💙 New Like!",
            f"{swiper_name or 'Someone'} liked you!",
            {"type": "like", "userId": str(swiper["_id"]), "userName": swiper_name},
        )


def record_swipe(db, swiper_id: Any, target_id: Any, action: str, notifier: Optional[Notifier] = None,
                 now: Optional[datetime] = None) -> SwipeResult:
    if action not in ACTIONS:
        raise InvalidArgument(f"Unknown swipe action: {action}")
    swiper_oid = to_object_id(swiper_id)
    if swiper_oid is None:
        raise InvalidArgument("Invalid user id")
    target_oid = _validate_target(db, swiper_oid, target_id, action)

    swiper = db[USERS].find_one({"_id": swiper_oid}, {"plan": 1, "name": 1, "deviceToken": 1})
    if not swiper:
        raise NotFound("User not found")

    consumed = action != DISLIKE and consume_swipe(db, swiper)

    now = now or now_utc()
    try:
        swipe = _upsert_swipe(db, swiper_oid, target_oid, action, now)
    except PyMongoError:
        if consumed:
            refund_swipe(db, swiper_oid)
        raise
    result = SwipeResult(swipe_id=str(swipe["_id"]))
    if action == DISLIKE:
        return result

    _bump(db, [swiper_oid], METRIC_FIELD[action])

    reciprocal = db[SWIPES].find_one(
        {"swiper": target_oid, "target": swiper_oid, "action": {"$in": POSITIVE_ACTIONS}},
        {"_id": 1},
    )
    if reciprocal:
        result.match_id, created = ensure_match(db, swiper_oid, target_oid, now)
        result.is_match = True
        if created:
            _bump(db, [swiper_oid, target_oid], "matches")

    if notifier is not None:
        try:
            _notify(db, notifier, swiper, target_oid, action, result.match_id)
        except Exception:
            log.exception("Error dispatching %s notification for %s", action, swiper_oid)

    return result
