"""
Pytest configuration and fixtures.
Every test runs against a fresh SQLite file database.
"""
import itertools
import os
import tempfile

import fakeredis
import pytest

# Point the app at a throwaway database before any app module is imported
_db_dir = tempfile.mkdtemp(prefix="stock-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_db_dir, "test.db")

from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
from models.product import Product
from models.users import User
from services import ledger
from utils.cache import alert_cache
from utils.tokenJWT import create_access_token
import main


@pytest.fixture(autouse=True)
def _fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def _alert_cache(monkeypatch):
    """Back the alert cache with an in-memory Redis for each test."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    monkeypatch.setattr(alert_cache, "client", client)
    monkeypatch.setattr(alert_cache, "ttl_seconds", 30)
    yield alert_cache


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def users(db):
    created = {}
    for role in ("ADMIN", "WAREHOUSE", "SALESMAN", "CLIENT"):
        user = User(email=f"{role.lower()}@example.com", role=role)
        db.add(user)
        created[role] = user
    db.commit()
    for user in created.values():
        db.refresh(user)
    return created


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def auth_headers(users):
    def _headers(role="ADMIN"):
        token = create_access_token({"sub": users[role].email, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_product(db):
    """Create a product and (by default) open its stock record through the ledger."""
    counter = itertools.count(1)

    def _make(quantity=0, min_stock=10, max_stock=None, *, name=None, category="Tools",
              location=None, track=True, is_active=True):
        n = next(counter)
        product = Product(name=name or f"Product {n}", code=f"P-{n:04d}", category=category)
        db.add(product)
        db.commit()
        db.refresh(product)
        if track:
            ledger.open_stock_record(
                db, product_id=product.id, initial_quantity=quantity,
                min_stock=min_stock, max_stock=max_stock, location=location,
            )
        if not is_active:
            product.is_active = False
            db.commit()
        return product

    return _make
