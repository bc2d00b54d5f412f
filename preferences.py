from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import GENDERS, INTERESTS, PREFERENCES, USERS, get_documents, now_utc
from errors import NotFound
from geo import object_ids
from schemas import PreferencesUpdate

DEFAULTS = {"minAge": 18, "maxAge": 99, "maxDistance": 100}


def _populate(db, collection: str, ids: Optional[List[ObjectId]]) -> List[Dict[str, Any]]:
    ids = list(ids or [])
    if not ids:
        return []
    names = {d["_id"]: d.get("name") for d in db[collection].find({"_id": {"$in": ids}}, {"name": 1})}
    return [{"id": str(i), "name": names.get(i)} for i in ids if i in names]


def _serialize(db, prefs: dict) -> dict:
    return {
        "user": str(prefs["user"]),
        "profileType": prefs.get("profileType") or "personal",
        "showMeGenders": _populate(db, GENDERS, prefs.get("showMeGenders")),
        "minAge": prefs.get("minAge", DEFAULTS["minAge"]),
        "maxAge": prefs.get("maxAge", DEFAULTS["maxAge"]),
        "maxDistance": prefs.get("maxDistance", DEFAULTS["maxDistance"]),
        "interests": _populate(db, INTERESTS, prefs.get("interests")),
    }


def get_preferences(db, user_id: ObjectId) -> dict:
    prefs = db[PREFERENCES].find_one({"user": user_id})
    if prefs:
        return _serialize(db, prefs)

    # Nothing saved yet: everyone but the user's own gender, wide age band.
    me = db[USERS].find_one({"_id": user_id}, {"genderId": 1, "profileType": 1})
    if not me:
        raise NotFound("User not found")
    genders = get_documents(GENDERS, {"isActive": True}, database=db)
    return _serialize(db, {
        "user": user_id,
        "profileType": me.get("profileType") or "personal",
        "showMeGenders": [g["_id"] for g in genders if g["_id"] != me.get("genderId")],
        **DEFAULTS,
        "interests": [],
    })


def save_preferences(db, user_id: ObjectId, payload: PreferencesUpdate) -> dict:
    update = payload.model_dump(exclude_none=True)
    if "showMeGenders" in update:
        update["showMeGenders"] = object_ids(update["showMeGenders"])
    if "interests" in update:
        update["interests"] = object_ids(update["interests"])

    now = now_utc()
    on_insert = {"createdAt": now}
    on_insert.update({k: v for k, v in DEFAULTS.items() if k not in update})
    if "profileType" not in update:
        on_insert["profileType"] = "personal"

    change = {"$set": {**update, "updatedAt": now}, "$setOnInsert": on_insert}
    try:
        prefs = db[PREFERENCES].find_one_and_update(
            {"user": user_id}, change, upsert=True, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        prefs = db[PREFERENCES].find_one_and_update(
            {"user": user_id}, change, return_document=ReturnDocument.AFTER,
        )
    return _serialize(db, prefs)
