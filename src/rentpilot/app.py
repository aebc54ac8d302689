"""FastAPI application with the pricing and reservation API routes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rentpilot.config import settings
from rentpilot.database import get_session, init_db
from rentpilot.models.product import Product
from rentpilot.models.reservation import Reservation, ReservationItem
from rentpilot.models.store import Store
from rentpilot.modules.migration.scan import (
    preflight_config_from_settings,
    run_preflight_scan,
    tier_chunk_size_from_settings,
)
from rentpilot.modules.migration.storage import ScanFilters
from rentpilot.modules.pricing import ItemInput, PricingEngine, PricingError, ProductPricing
from rentpilot.modules.pricing.display import (
    format_tier_badge,
    generate_duration_previews,
    get_price_display_info,
)
from rentpilot.modules.pricing.engine import Quote
from rentpilot.scheduler import create_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting RentPilot...")
    init_db()
    seed_stores_from_config()

    scheduler = create_scheduler()
    scheduler.start()
    logger.info("Scheduler started.")

    yield

    scheduler.shutdown()
    logger.info("RentPilot shut down.")


app = FastAPI(title="RentPilot", lifespan=lifespan)


def seed_stores_from_config() -> None:
    """Seed stores from config.yaml if not already in DB."""
    session = get_session()
    try:
        for store_cfg in settings.get("stores") or []:
            tax_cfg = store_cfg.get("tax") or {}
            store_settings = {
                "pricingMode": store_cfg.get("pricing_mode", "day"),
                "tax": {
                    "enabled": bool(tax_cfg.get("enabled", False)),
                    "rate": float(tax_cfg.get("rate", 0.0)),
                    "displayMode": tax_cfg.get("display_mode", "inclusive"),
                },
            }
            existing = session.query(Store).filter(Store.slug == store_cfg["slug"]).first()
            if existing:
                # Keep settings in sync with config
                if existing.settings != store_settings:
                    existing.settings = store_settings
                    session.commit()
                continue

            store = Store(name=store_cfg["name"], slug=store_cfg["slug"], settings=store_settings)
            session.add(store)
            session.commit()
            logger.info("Seeded store: %s", store.name)
    finally:
        session.close()


# --- Request bodies ---


class QuoteRequest(BaseModel):
    product_id: str
    start_date: datetime
    end_date: datetime
    quantity: int = 1


class ItemRequest(BaseModel):
    product_id: str | None = None
    quantity: int = 1
    unit_price: float | None = None
    custom_name: str | None = None
    deposit_per_unit: float | None = None


class ReservationCreateRequest(BaseModel):
    store_id: str
    start_date: datetime
    end_date: datetime
    customer_name: str | None = None
    customer_email: str | None = None
    items: list[ItemRequest] = Field(default_factory=list)


class ReservationDatesRequest(BaseModel):
    start_date: datetime
    end_date: datetime


class OverrideRequest(BaseModel):
    unit_price: float


# --- Serialization ---


def _item_to_dict(item: ReservationItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "custom_name": item.custom_name,
        "quantity": item.quantity,
        "pricing_mode": item.pricing_mode,
        "unit_price": item.unit_price,
        "deposit_per_unit": item.deposit_per_unit,
        "total_price": item.total_price,
        "is_manual_override": item.is_manual_override,
        "original_price": item.original_price,
        "tier_label": item.tier_label,
        "pricing_breakdown": item.pricing_breakdown,
    }


def _reservation_to_dict(reservation: Reservation) -> dict[str, Any]:
    return {
        "id": reservation.id,
        "store_id": reservation.store_id,
        "status": reservation.status,
        "start_date": reservation.start_date.isoformat(),
        "end_date": reservation.end_date.isoformat(),
        "customer_name": reservation.customer_name,
        "customer_email": reservation.customer_email,
        "subtotal_amount": reservation.subtotal_amount,
        "deposit_amount": reservation.deposit_amount,
        "total_amount": reservation.total_amount,
        "items": [_item_to_dict(item) for item in reservation.items],
    }


def _quote_to_dict(quote: Quote) -> dict[str, Any]:
    result = quote.result
    return {
        "product_id": quote.product_id,
        "pricing_mode": quote.pricing_mode.value,
        "duration": quote.duration,
        "quantity": result.quantity,
        "subtotal": result.subtotal,
        "deposit": result.deposit,
        "total": result.total,
        "effective_price_per_unit": result.effective_price_per_unit,
        "original_subtotal": result.original_subtotal,
        "savings": result.savings,
        "savings_percent": result.savings_percent,
        "breakdown": quote.breakdown.to_dict(),
    }


# --- Routes ---


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/products/{product_id}/pricing")
async def product_pricing(product_id: str):
    """Tier table, duration previews and badge for a product page."""
    session = get_session()
    try:
        product = session.get(Product, product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        pricing = ProductPricing.from_product(product)
    finally:
        session.close()

    return {
        "product_id": product_id,
        "pricing_mode": pricing.pricing_mode.value,
        "display": asdict(get_price_display_info(pricing)),
        "previews": [asdict(preview) for preview in generate_duration_previews(pricing)],
        "badge": format_tier_badge(pricing),
    }


@app.post("/api/pricing/quote")
async def quote_price(body: QuoteRequest):
    engine = PricingEngine()
    try:
        quote = engine.quote(body.product_id, body.start_date, body.end_date, body.quantity)
    except PricingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if quote is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return _quote_to_dict(quote)


@app.post("/api/reservations", status_code=201)
async def create_reservation(body: ReservationCreateRequest):
    engine = PricingEngine()
    try:
        reservation = engine.create_reservation(
            store_id=body.store_id,
            start_date=body.start_date,
            end_date=body.end_date,
            items=[ItemInput(**item.model_dump()) for item in body.items],
            customer_name=body.customer_name,
            customer_email=body.customer_email,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PricingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _reservation_to_dict(reservation)


@app.patch("/api/reservations/{reservation_id}")
async def edit_reservation(reservation_id: str, body: ReservationDatesRequest):
    """Move a reservation and return the repricing diff."""
    engine = PricingEngine()
    try:
        diff = engine.edit_reservation_dates(reservation_id, body.start_date, body.end_date)
    except PricingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if diff is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return {
        "reservation_id": diff.reservation_id,
        "old_subtotal": diff.old_subtotal,
        "new_subtotal": diff.new_subtotal,
        "difference": diff.difference,
        "items": [{**asdict(change), "changed": change.changed} for change in diff.items],
    }


@app.post("/api/reservations/{reservation_id}/items/{item_id}/override")
async def override_item(reservation_id: str, item_id: str, body: OverrideRequest):
    engine = PricingEngine()
    try:
        item = engine.override_item_price(reservation_id, item_id, body.unit_price)
    except PricingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return _item_to_dict(item)


@app.delete("/api/reservations/{reservation_id}/items/{item_id}/override")
async def clear_item_override(reservation_id: str, item_id: str):
    engine = PricingEngine()
    try:
        item = engine.clear_item_override(reservation_id, item_id)
    except PricingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return _item_to_dict(item)


@app.get("/api/pricing/preflight")
async def pricing_preflight(
    store_id: str | None = None,
    product_id: str | None = None,
    limit: int | None = Query(default=None, ge=1),
):
    """Run the migration preflight scan and return the full report."""
    session = get_session()
    try:
        result = run_preflight_scan(
            session,
            ScanFilters(store_id=store_id, product_id=product_id, limit=limit),
            preflight_config_from_settings(),
            chunk_size=tier_chunk_size_from_settings(),
        )
    finally:
        session.close()
    return {"has_blockers": result.has_blockers, **result.to_dict()}


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "rentpilot.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
