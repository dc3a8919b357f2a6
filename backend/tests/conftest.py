"""Pytest configuration and fixtures."""

import os

# Configure before the app modules read their settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from typing import Generator

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models
from auth import create_access_token, get_password_hash
from database import Base, get_db
from main import app
from redis_client import redis_client

TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Test client sharing the test session; startup hooks are not run."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db: Session, username: str, role: str) -> models.User:
    user = models.User(
        username=username,
        password=get_password_hash("secret123"),
        full_name=username.title(),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user: models.User) -> dict:
    token = create_access_token(data={"sub": user.username, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db_session: Session) -> models.User:
    return _make_user(db_session, "admin", "admin")


@pytest.fixture
def waiter_user(db_session: Session) -> models.User:
    return _make_user(db_session, "waiter", "waiter")


@pytest.fixture
def cashier_user(db_session: Session) -> models.User:
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return _headers(admin_user)


@pytest.fixture
def waiter_headers(waiter_user) -> dict:
    return _headers(waiter_user)


@pytest.fixture
def cashier_headers(cashier_user) -> dict:
    return _headers(cashier_user)


@pytest.fixture
def hall(db_session: Session) -> models.Hall:
    hall = models.Hall(name="Main Hall", is_active=True)
    db_session.add(hall)
    db_session.commit()
    db_session.refresh(hall)
    return hall


@pytest.fixture
def tables(db_session: Session, hall: models.Hall):
    """Tables "1".."3" in the main hall, all available."""
    created = []
    for number in ("1", "2", "3"):
        table = models.Table(table_number=number, capacity=4, status="available", hall_id=hall.id)
        db_session.add(table)
        created.append(table)
    db_session.commit()
    for table in created:
        db_session.refresh(table)
    return created


@pytest.fixture
def menu_items(db_session: Session):
    """Burger 10.00 (cost 4.00) and Cola 2.50 (cost 0.50)."""
    burger = models.MenuItem(name="Burger", price=10.0, cost=4.0, category="Mains",
                             stock_quantity=50, is_available=True)
    cola = models.MenuItem(name="Cola", price=2.5, cost=0.5, category="Drinks",
                           stock_quantity=5, is_available=True)
    db_session.add_all([burger, cola])
    db_session.commit()
    db_session.refresh(burger)
    db_session.refresh(cola)
    return burger, cola


class FakeRedis:
    """Just enough of redis.Redis for the query cache."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.fail = False

    def ping(self):
        if self.fail:
            raise redis.ConnectionError("down")
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def exists(self, key):
        return int(key in self.store)


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """In-memory connection plugged into the app's query cache."""
    fake = FakeRedis()
    monkeypatch.setattr(redis_client, "client", fake)
    return fake


@pytest.fixture
def failing_commit(monkeypatch, db_session: Session):
    """Make the n-th commit on the shared session raise, counting from now."""
    def arm(n: int):
        real_commit = db_session.commit
        calls = {"count": 0}

        def commit():
            calls["count"] += 1
            if calls["count"] == n:
                raise OperationalError("COMMIT", {}, Exception("connection lost"))
            real_commit()

        monkeypatch.setattr(db_session, "commit", commit)

    return arm
