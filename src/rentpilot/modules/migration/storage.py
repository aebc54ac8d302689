"""Database reads and writes for the pricing maintenance tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Sequence, TypeVar

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from rentpilot.models.product import Product, ProductPricingTier
from rentpilot.models.store import Store
from rentpilot.modules.migration.preflight import ProductRow, TierRow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 500


@dataclass(frozen=True)
class ScanFilters:
    store_id: str | None = None
    product_id: str | None = None
    limit: int | None = None


@dataclass
class ProductModeRow:
    product_id: str
    store_id: str
    current_pricing_mode: str | None
    store_pricing_mode: str | None


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PricingRowReader:
    """Bulk reads of products and tiers, chunked to keep IN lists bounded."""

    def __init__(self, session: Session, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._session = session
        self.chunk_size = chunk_size

    def _filtered(self, stmt, filters: ScanFilters):
        if filters.store_id:
            stmt = stmt.where(Product.store_id == filters.store_id)
        if filters.product_id:
            stmt = stmt.where(Product.id == filters.product_id)
        stmt = stmt.order_by(Product.id)
        if filters.limit:
            stmt = stmt.limit(filters.limit)
        return stmt

    def fetch_products(self, filters: ScanFilters) -> list[ProductRow]:
        stmt = self._filtered(
            select(Product.id, Product.store_id, Product.pricing_mode, Product.price), filters
        )
        return [
            ProductRow(id=row.id, store_id=row.store_id, pricing_mode=row.pricing_mode, price=row.price)
            for row in self._session.execute(stmt)
        ]

    def fetch_tiers(self, product_ids: Sequence[str]) -> list[TierRow]:
        rows: list[TierRow] = []
        for ids in chunked(list(product_ids), self.chunk_size):
            stmt = (
                select(
                    ProductPricingTier.id,
                    ProductPricingTier.product_id,
                    ProductPricingTier.min_duration,
                    ProductPricingTier.discount_percent,
                    ProductPricingTier.display_order,
                )
                .where(ProductPricingTier.product_id.in_(ids))
                .order_by(
                    ProductPricingTier.product_id,
                    ProductPricingTier.display_order,
                    ProductPricingTier.min_duration,
                    ProductPricingTier.id,
                )
            )
            rows.extend(
                TierRow(
                    id=row.id,
                    product_id=row.product_id,
                    min_duration=row.min_duration,
                    discount_percent=row.discount_percent,
                    display_order=row.display_order,
                )
                for row in self._session.execute(stmt)
            )
        return rows

    def fetch_product_modes(self, filters: ScanFilters) -> list[ProductModeRow]:
        stmt = self._filtered(
            select(Product.id, Product.store_id, Product.pricing_mode, Store.settings).outerjoin(
                Store, Store.id == Product.store_id
            ),
            filters,
        )
        return [
            ProductModeRow(
                product_id=row.id,
                store_id=row.store_id,
                current_pricing_mode=row.pricing_mode,
                store_pricing_mode=(row.settings or {}).get("pricingMode"),
            )
            for row in self._session.execute(stmt)
        ]

    def fetch_products_with_tiers(self, filters: ScanFilters) -> list[Product]:
        stmt = self._filtered(select(Product).options(selectinload(Product.pricing_tiers)), filters)
        return list(self._session.scalars(stmt))

    def update_pricing_mode(self, product_id: str, pricing_mode: str) -> None:
        self._session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(pricing_mode=pricing_mode, updated_at=datetime.now(timezone.utc))
        )
        self._session.commit()

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()
