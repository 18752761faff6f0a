from datetime import datetime, timedelta
from functools import lru_cache

import httpx
import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from clinic_queue import clock
from clinic_queue.database import Database, USERS
from clinic_queue.services.auth_service import AuthService


@lru_cache()
def hashed(password: str) -> str:
    return AuthService.get_password_hash(password)


class FakeClock:
    """Stands in for ``clock.utcnow``; advanced explicitly by tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch):
    fake = FakeClock(datetime(2024, 1, 10, 9, 0, 0))
    monkeypatch.setattr(clock, "utcnow", fake)
    return fake


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    Database.client = client
    Database.db = client["clinic_queue_test"]
    await Database.create_indexes()
    yield Database.db
    Database.client = None
    Database.db = None


async def make_user(db, full_name: str, username: str, role: str = "doctor", password: str = "secret123") -> dict:
    doc = {
        "_id": ObjectId(),
        "email": f"{username}@clinic.org",
        "full_name": full_name,
        "username": username,
        "role": role,
        "hashed_password": hashed(password),
        "is_active": True,
        "created_at": datetime(2024, 1, 1)
    }
    await db[USERS].insert_one(doc)
    doc["id"] = str(doc["_id"])
    return doc


def auth_headers(user: dict) -> dict:
    token = AuthService.create_access_token({
        "sub": user["id"],
        "email": user["email"],
        "role": user["role"]
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def runner_a(db):
    return await make_user(db, "Alice Runner", "alice")


@pytest.fixture
async def runner_b(db):
    return await make_user(db, "Bob Runner", "bob")


@pytest.fixture
async def client(db):
    from clinic_queue.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def headers_for():
    return auth_headers
