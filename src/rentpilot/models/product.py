"""Catalog product and pricing tier models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.database import Base
from rentpilot.models.store import new_id


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)  # Per base period
    deposit: Mapped[float] = mapped_column(Float, default=0.0)
    # hour, day, week. Legacy rows may hold anything, see the fix-pricing-mode tool.
    pricing_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    base_period_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    enforce_strict_tiers: Mapped[bool] = mapped_column(Boolean, default=False)
    tax_settings: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)  # Units in stock
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    store: Mapped["Store"] = relationship(back_populates="products")  # noqa: F821
    pricing_tiers: Mapped[list["ProductPricingTier"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductPricingTier.display_order",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price} mode={self.pricing_mode!r}>"


class ProductPricingTier(Base):
    __tablename__ = "product_pricing_tiers"
    __table_args__ = (
        UniqueConstraint("product_id", "min_duration", name="product_pricing_tiers_unique"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    # Legacy representation: "N+ periods at X% off"
    min_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Rate representation: absolute price for a period in minutes
    period: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    display_order: Mapped[int | None] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    product: Mapped["Product"] = relationship(back_populates="pricing_tiers")

    def __repr__(self) -> str:
        return (
            f"<ProductPricingTier id={self.id} min_duration={self.min_duration} "
            f"discount={self.discount_percent} period={self.period} price={self.price}>"
        )
