import os

# Must be set before the app modules read them at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = ""
os.environ.setdefault("COGNITO_USER_POOL_ID", "test-pool")
os.environ.setdefault("COGNITO_APP_CLIENT_ID", "test-client")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crud import inventory_items as crud_inventory_items
from database import Base, get_db
from main import app
from schemas.actor import Actor, Role
from schemas.inventory_items import InventoryItemCreate
from utils.auth_utils import get_current_user

TENANT_ID = "clinic-a"
OTHER_TENANT_ID = "clinic-b"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Opens extra sessions on the same database, standing in for a concurrent request."""
    return TestingSessionLocal


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def doctor():
    return Actor(id="doctor-1", role=Role.DOCTOR)


@pytest.fixture
def patient():
    return Actor(id="patient-1", role=Role.PATIENT)


@pytest.fixture
def make_item(db_session, admin):
    """Create an inventory item through the service, with sensible defaults."""
    counter = {"n": 0}

    def _make(quantity=0, min_quantity=10, unit_price="1.00", category="Medicine", tenant_id=TENANT_ID, **extra):
        counter["n"] += 1
        data = {
            "name": extra.pop("name", f"Item {counter['n']}"),
            "sku": extra.pop("sku", f"SKU-{counter['n']:03d}"),
            "category": category,
            "quantity": quantity,
            "min_quantity": min_quantity,
            "unit_price": Decimal(unit_price),
        }
        data.update(extra)
        return crud_inventory_items.create_inventory_item(
            db_session, InventoryItemCreate(**data), tenant_id, admin
        )

    return _make


@pytest.fixture
def claims():
    """Token claims returned by the overridden Cognito dependency. Mutate to switch user."""
    return {"sub": "admin-1", "custom:role": "admin"}


@pytest.fixture
def login(claims):
    def _login(user_id: str, role: str):
        claims.clear()
        claims.update({"sub": user_id, "custom:role": role})

    return _login


@pytest.fixture
def client(db_session, claims):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: claims
    with TestClient(app, headers={"X-Tenant-ID": TENANT_ID}) as test_client:
        yield test_client
    app.dependency_overrides.clear()
