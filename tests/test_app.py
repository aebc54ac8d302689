"""Smoke tests for FastAPI app routes."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import rentpilot.database as db_module
from rentpilot.database import Base

# Import all models so Base.metadata knows about them
import rentpilot.models.product  # noqa: F401
import rentpilot.models.reservation  # noqa: F401
import rentpilot.models.store  # noqa: F401

from rentpilot.models.product import Product, ProductPricingTier
from rentpilot.models.store import Store


@pytest.fixture
def seeded(tmp_path):
    """A temp SQLite DB holding one store and one tiered product."""
    db_path = tmp_path / "test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(test_engine)
    TestSession = sessionmaker(bind=test_engine, expire_on_commit=False)

    session = TestSession()
    store = Store(name="Test Store", slug="test-store", settings={"pricingMode": "day"})
    session.add(store)
    session.flush()
    product = Product(
        store_id=store.id,
        name="Tent",
        price=40.0,
        deposit=20.0,
        pricing_mode="day",
        pricing_tiers=[
            ProductPricingTier(min_duration=3, discount_percent=10.0, display_order=0),
            ProductPricingTier(min_duration=7, discount_percent=25.0, display_order=1),
        ],
    )
    session.add(product)
    session.commit()
    ids = {"store_id": store.id, "product_id": product.id}
    session.close()

    yield test_engine, TestSession, ids
    test_engine.dispose()


@pytest.fixture
def app_client(seeded):
    """Create a test client with a temp SQLite DB and no scheduler."""
    test_engine, TestSession, _ = seeded

    # Save originals and swap
    orig_engine = db_module.engine
    orig_session = db_module.SessionLocal
    db_module.engine = test_engine
    db_module.SessionLocal = TestSession

    mock_scheduler = MagicMock()
    mock_scheduler.get_jobs = MagicMock(return_value=[])

    # Modules that imported get_session captured the old reference
    with (
        patch("rentpilot.app.get_session", side_effect=lambda: TestSession()),
        patch("rentpilot.modules.pricing.engine.get_session", side_effect=lambda: TestSession()),
        patch("rentpilot.app.create_scheduler", return_value=mock_scheduler),
        patch("rentpilot.app.seed_stores_from_config"),
        patch("rentpilot.app.init_db"),
    ):
        from rentpilot.app import app
        client = TestClient(app)
        yield client

    db_module.engine = orig_engine
    db_module.SessionLocal = orig_session


@pytest.fixture
def ids(seeded):
    return seeded[2]


def test_health(app_client):
    response = app_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_product_pricing(app_client, ids):
    response = app_client.get(f"/api/products/{ids['product_id']}/pricing")
    assert response.status_code == 200
    data = response.json()
    assert data["pricing_mode"] == "day"
    assert data["badge"] == "Up to -25% from 3d"
    assert data["display"]["tier_summary"] == "Up to -25% from 7+ days"
    assert [p["duration"] for p in data["previews"]] == [1, 3, 7, 14, 30]


def test_product_pricing_not_found(app_client):
    assert app_client.get("/api/products/missing/pricing").status_code == 404


def test_quote(app_client, ids):
    response = app_client.post("/api/pricing/quote", json={
        "product_id": ids["product_id"],
        "start_date": "2026-05-01T10:00:00",
        "end_date": "2026-05-08T10:00:00",
        "quantity": 2,
    })
    assert response.status_code == 200
    data = response.json()
    assert data["duration"] == 7
    assert data["effective_price_per_unit"] == 30.0
    assert data["subtotal"] == 420.0
    assert data["deposit"] == 40.0
    assert data["breakdown"]["tier_applied"] == "7+ days"


def test_quote_errors(app_client, ids):
    backwards = {
        "product_id": ids["product_id"],
        "start_date": "2026-05-08T10:00:00",
        "end_date": "2026-05-01T10:00:00",
    }
    assert app_client.post("/api/pricing/quote", json=backwards).status_code == 400
    missing = {**backwards, "product_id": "nope", "start_date": "2026-05-01T10:00:00", "end_date": "2026-05-02T10:00:00"}
    assert app_client.post("/api/pricing/quote", json=missing).status_code == 404


def _create(app_client, ids, **overrides):
    body = {
        "store_id": ids["store_id"],
        "start_date": "2026-05-01T10:00:00",
        "end_date": "2026-05-04T10:00:00",
        "customer_name": "Grace",
        "items": [{"product_id": ids["product_id"], "quantity": 1}],
    }
    body.update(overrides)
    return app_client.post("/api/reservations", json=body)


def test_reservation_lifecycle(app_client, ids):
    response = _create(app_client, ids)
    assert response.status_code == 201
    reservation = response.json()
    item = reservation["items"][0]
    assert item["unit_price"] == 36.0
    assert item["total_price"] == 108.0
    assert item["tier_label"] == "-10% (3+ d)"
    assert reservation["total_amount"] == 128.0

    # Stretch to a week: the 25% tier kicks in
    response = app_client.patch(f"/api/reservations/{reservation['id']}", json={
        "start_date": "2026-05-01T10:00:00",
        "end_date": "2026-05-08T10:00:00",
    })
    assert response.status_code == 200
    diff = response.json()
    assert diff["old_subtotal"] == 108.0
    assert diff["new_subtotal"] == 210.0
    assert diff["difference"] == 102.0
    assert diff["items"][0]["changed"] is True

    override_url = f"/api/reservations/{reservation['id']}/items/{item['id']}/override"
    response = app_client.post(override_url, json={"unit_price": 25.0})
    assert response.status_code == 200
    assert response.json()["original_price"] == 30.0
    assert response.json()["total_price"] == 175.0

    response = app_client.delete(override_url)
    assert response.status_code == 200
    assert response.json()["is_manual_override"] is False
    assert response.json()["unit_price"] == 30.0


def test_reservation_errors(app_client, ids):
    assert _create(app_client, ids, store_id="nope").status_code == 404
    assert _create(app_client, ids, items=[]).status_code == 400
    assert _create(app_client, ids, items=[{"custom_name": "Fee"}]).status_code == 400
    assert app_client.patch("/api/reservations/missing", json={
        "start_date": "2026-05-01T10:00:00",
        "end_date": "2026-05-02T10:00:00",
    }).status_code == 404
    assert app_client.post(
        "/api/reservations/missing/items/missing/override", json={"unit_price": 1.0}
    ).status_code == 404


def test_negative_override_rejected(app_client, ids):
    reservation = _create(app_client, ids).json()
    url = f"/api/reservations/{reservation['id']}/items/{reservation['items'][0]['id']}/override"
    assert app_client.post(url, json={"unit_price": -5.0}).status_code == 400


def test_preflight_report(app_client, ids):
    response = app_client.get("/api/pricing/preflight")
    assert response.status_code == 200
    data = response.json()
    assert data["has_blockers"] is False
    assert data["report"]["products_scanned"] == 1
    assert data["products"][0]["product_id"] == ids["product_id"]
    assert [t["period"] for t in data["products"][0]["computed_tiers"]] == [4320, 10080]


def test_preflight_limit_must_be_positive(app_client):
    assert app_client.get("/api/pricing/preflight?limit=0").status_code == 422
