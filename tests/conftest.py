"""Shared test fixtures."""

from __future__ import annotations

import os
from contextlib import ExitStack
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests

from rentpilot.database import Base
from rentpilot.events import EventBus
from rentpilot.models.product import Product, ProductPricingTier
from rentpilot.models.store import Store

# Import all models to register them
import rentpilot.models.reservation  # noqa: F401


def _noop_close(self):
    """Keep the shared test session open when code under test closes it."""


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def patch_sessions(db_session: Session):
    """Route ``get_session`` in the given modules to the test session."""
    stack = ExitStack()

    def _patch(*modules: str) -> Session:
        stack.enter_context(patch.object(type(db_session), "close", _noop_close))
        for module in modules:
            stack.enter_context(patch(f"{module}.get_session", return_value=db_session))
        return db_session

    yield _patch
    stack.close()


@pytest.fixture
def sample_store(db_session: Session) -> Store:
    """A daily-rental store with tax disabled."""
    store = Store(
        name="Test Rentals",
        slug="test-rentals",
        settings={"pricingMode": "day", "tax": {"enabled": False, "rate": 20.0, "displayMode": "inclusive"}},
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def sample_product(db_session: Session, sample_store: Store) -> Product:
    """100/day product with 3+, 7+ and 14+ day discounts."""
    product = Product(
        store_id=sample_store.id,
        name="Camera Kit",
        price=100.0,
        deposit=50.0,
        pricing_mode="day",
        pricing_tiers=[
            ProductPricingTier(min_duration=3, discount_percent=10.0, display_order=0),
            ProductPricingTier(min_duration=7, discount_percent=20.0, display_order=1),
            ProductPricingTier(min_duration=14, discount_percent=30.0, display_order=2),
        ],
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test."""
    return EventBus()
