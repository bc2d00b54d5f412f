import os

os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import main
from auth import issue_token
from database import USERS, create_document, ensure_indexes, get_db
from notifications import Notifier


@pytest.fixture
def db():
    database = mongomock.MongoClient()["matchmaking_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def now():
    return datetime(2026, 10, 16, 12, 0, 0)


@pytest.fixture
def make_user(db):
    def _make(**fields):
        doc = {
            "name": "User",
            "birthday": datetime(1995, 5, 5),
            "profileType": "personal",
            "currentCity": "Pune",
            "photos": [],
            "plan": {"planType": "premium", "remainingSwipes": 0, "totalSwipes": 0},
        }
        doc.update(fields)
        return ObjectId(create_document(USERS, doc, database=db))
    return _make


class RecordingSender:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def __call__(self, token, title, body, data=None):
        if self.fail:
            raise RuntimeError("push gateway down")
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        return {"success": True}


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifier(sender):
    return Notifier(sender=sender)


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {"Authorization": f"Bearer {issue_token(user_id)}"}
    return _headers
