"""
Initialise boost fields on existing users and clear lapsed boost windows.

Run once after deploying boosts:  python migrate_boost_fields.py
"""

import logging
import sys

from pymongo.errors import PyMongoError

import config
from boost import CLEARED_WINDOW
from database import USERS, db, now_utc

log = logging.getLogger("matchmaking.migrate")

MISSING_BOOST_FIELDS = {
    "$or": [
        {"boostCredits": {"$exists": False}},
        {"isBoostActive": {"$exists": False}},
        {"totalBoostsPurchased": {"$exists": False}},
        {"totalBoostsUsed": {"$exists": False}},
    ]
}


def migrate_boost_fields(database) -> dict:
    pending = database[USERS].count_documents(MISSING_BOOST_FIELDS)
    log.info("Found %d users to update", pending)

    initialised = 0
    if pending:
        # $set would clobber real values on partially migrated users, so
        # each field is filled only where it is missing.
        defaults = {
            "boostCredits": 0,
            "isBoostActive": False,
            "boostDuration": config.DEFAULT_BOOST_MINUTES,
            "totalBoostsPurchased": 0,
            "totalBoostsUsed": 0,
        }
        for field, value in defaults.items():
            result = database[USERS].update_many({field: {"$exists": False}}, {"$set": {field: value}})
            initialised += result.modified_count

    expired = database[USERS].update_many(
        {"isBoostActive": True, "boostEndTime": {"$lt": now_utc()}},
        {"$set": CLEARED_WINDOW},
    )
    remaining = database[USERS].count_documents(MISSING_BOOST_FIELDS)
    if remaining:
        log.warning("%d users still missing boost fields", remaining)
    else:
        log.info("Migration completed")
    return {
        "usersFound": pending,
        "fieldsInitialised": initialised,
        "expiredDeactivated": expired.modified_count,
        "remaining": remaining,
    }


def main() -> int:
    logging.basicConfig(level=config.LOG_LEVEL)
    if db is None:
        log.error("DATABASE_URL is not set")
        return 1
    try:
        summary = migrate_boost_fields(db)
    except PyMongoError:
        log.exception("Migration failed")
        return 1
    log.info("Summary: %s", summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
