import logging
import os
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from bson import ObjectId
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from auth import get_current_user_id
from boost import activate_boost, boost_packages, boost_status, clear_expired_boosts, deactivate_boost, purchase_boost
from cards import base_url_from_headers
from database import db, ensure_indexes, get_db
from errors import AppError, Internal, envelope
from feed import build_feed
from geo import to_int
from matches import get_profile, list_likes, list_matches
from notifications import Notifier
from preferences import get_preferences, save_preferences
from schemas import BoostActivateRequest, BoostPurchaseRequest, FeedFilters, PreferencesUpdate, SwipeRequest
from swipes import DISLIKE, LIKE, SUPERLIKE, record_swipe

logging.basicConfig(level=config.LOG_LEVEL)
log = logging.getLogger("matchmaking.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.require_settings()
    if db is not None:
        try:
            ensure_indexes(db)
        except PyMongoError:
            log.exception("Could not ensure indexes")
    yield


app = FastAPI(title="Matchmaking API", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error envelopes: every response is {status, message, data}

def _error_response(status: int, message: str, data=None) -> JSONResponse:
    return JSONResponse(status_code=status, content=jsonable_encoder(envelope(status, message, data)))


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return _error_response(exc.status_code, exc.message, exc.data)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()]
    return _error_response(400, "Invalid request", details)


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    log.exception("Store failure on %s %s", request.method, request.url.path)
    return _error_response(500, "Server error", str(exc))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Server error", str(exc))


# Dependencies

def get_store(database=Depends(get_db)):
    if database is None:
        raise Internal("Database is not configured")
    return database


def _paging(page: Optional[str], limit: Optional[str]):
    p = to_int(page) or 1
    n = to_int(limit) or 20
    return max(1, p), max(1, n)


@app.get("/")
def root():
    return {"message": "Matchmaking API running"}


@app.get("/test")
def test_database(database=Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database is not None:
            response["database"] = "✅ Connected & Working"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.name
            response["connection_status"] = "Connected"
            response["collections"] = database.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Swipes

def _swipe(action: str, payload: SwipeRequest, user_id: ObjectId, database, background_tasks: BackgroundTasks):
    return record_swipe(database, user_id, payload.targetUserId, action, Notifier(background_tasks))


@app.post("/matches/like")
def like(payload: SwipeRequest, background_tasks: BackgroundTasks,
         user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    result = _swipe(LIKE, payload, user_id, database, background_tasks)
    return envelope(200, "It's a match!" if result.is_match else "Liked successfully", result.as_dict())


@app.post("/matches/dislike")
def dislike(payload: SwipeRequest, background_tasks: BackgroundTasks,
            user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    result = _swipe(DISLIKE, payload, user_id, database, background_tasks)
    return envelope(200, "Disliked successfully", {"swipeId": result.swipe_id})


@app.post("/matches/superlike")
def superlike(payload: SwipeRequest, background_tasks: BackgroundTasks,
              user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    result = _swipe(SUPERLIKE, payload, user_id, database, background_tasks)
    return envelope(200, "It's a match!" if result.is_match else "Superliked successfully", result.as_dict())


# Discovery

@app.get("/matches/feed")
def feed(request: Request, background_tasks: BackgroundTasks,
         page: Optional[str] = None, limit: Optional[str] = None,
         user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    p, n = _paging(page, limit)
    result = build_feed(database, user_id, None, p, n, base_url_from_headers(request.headers))
    if result.expired_boost_ids:
        background_tasks.add_task(clear_expired_boosts, database, result.expired_boost_ids)
    return envelope(200, "Feed fetched", result.cards)


@app.get("/matches/preference/users")
def preference_users(request: Request, background_tasks: BackgroundTasks,
                     filters: Annotated[FeedFilters, Query()],
                     user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    p, n = _paging(filters.page, filters.limit)
    result = build_feed(database, user_id, filters, p, n, base_url_from_headers(request.headers),
                        with_like_flags=True)
    if result.expired_boost_ids:
        background_tasks.add_task(clear_expired_boosts, database, result.expired_boost_ids)
    return envelope(200, "Preference users fetched", result.cards)


@app.get("/matches/preferences")
def read_preferences(user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    return envelope(200, "Preferences fetched", get_preferences(database, user_id))


@app.put("/matches/preferences")
def update_preferences(payload: PreferencesUpdate,
                       user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    return envelope(200, "Preferences saved", save_preferences(database, user_id, payload))


# Matches & likes

@app.get("/matches/user/{profile_id}")
def user_profile(profile_id: str, request: Request,
                 user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    data = get_profile(database, profile_id, base_url_from_headers(request.headers))
    return envelope(200, "User profile fetched", data)


@app.get("/matches/likes/received")
def likes_received(request: Request, filters: Annotated[FeedFilters, Query()],
                   user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    p, n = _paging(filters.page, filters.limit)
    data = list_likes(database, user_id, "received", filters, p, n, base_url_from_headers(request.headers))
    return envelope(200, "Likes received fetched", data)


@app.get("/matches/likes/sent")
def likes_sent(request: Request, filters: Annotated[FeedFilters, Query()],
               user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    p, n = _paging(filters.page, filters.limit)
    data = list_likes(database, user_id, "sent", filters, p, n, base_url_from_headers(request.headers))
    return envelope(200, "Likes sent fetched", data)


@app.get("/matches")
def matches(request: Request, filters: Annotated[FeedFilters, Query()],
            user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    p, n = _paging(filters.page, filters.limit)
    data = list_matches(database, user_id, filters, p, n, base_url_from_headers(request.headers))
    return envelope(200, "Matches fetched", data)


# Boost

@app.get("/boost/status")
def read_boost_status(user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    return envelope(200, "Boost status fetched successfully", boost_status(database, user_id))


@app.post("/boost/purchase")
def buy_boost(payload: BoostPurchaseRequest,
              user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    data = purchase_boost(database, user_id, payload.package, payload.transactionId, payload.duration)
    if data["boost"]["previousBoostEnded"]:
        message = "Boost credits purchased and new boost activated (previous boost ended)"
    else:
        message = "Boost credits purchased and activated successfully"
    return envelope(200, message, data)


@app.post("/boost/activate")
def start_boost(payload: Optional[BoostActivateRequest] = None,
                user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    duration = payload.duration if payload else None
    return envelope(200, "Boost activated successfully", activate_boost(database, user_id, duration))


@app.post("/boost/deactivate")
def stop_boost(user_id: ObjectId = Depends(get_current_user_id), database=Depends(get_store)):
    return envelope(200, "Boost deactivated successfully", deactivate_boost(database, user_id))


@app.get("/boost/packages")
def list_boost_packages(user_id: ObjectId = Depends(get_current_user_id)):
    return envelope(200, "Boost packages fetched successfully", boost_packages())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
