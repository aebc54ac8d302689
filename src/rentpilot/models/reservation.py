"""Reservation and line item models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.database import Base
from rentpilot.models.store import new_id


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending")  # pending, confirmed, ongoing, completed, cancelled, rejected
    subtotal_amount: Mapped[float] = mapped_column(Float, default=0.0)
    deposit_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    store: Mapped["Store"] = relationship(back_populates="reservations")  # noqa: F821
    items: Mapped[list["ReservationItem"]] = relationship(
        back_populates="reservation", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation id={self.id} store_id={self.store_id} "
            f"{self.start_date:%Y-%m-%d %H:%M}..{self.end_date:%Y-%m-%d %H:%M} status={self.status!r}>"
        )

    @property
    def is_finalized(self) -> bool:
        return self.status in ("completed", "cancelled", "rejected")


class ReservationItem(Base):
    __tablename__ = "reservation_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    reservation_id: Mapped[str] = mapped_column(ForeignKey("reservations.id"), nullable=False)
    product_id: Mapped[str | None] = mapped_column(ForeignKey("products.id"), nullable=True)  # Null for custom items
    custom_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    pricing_mode: Mapped[str] = mapped_column(String(20), default="day")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_per_unit: Mapped[float] = mapped_column(Float, default=0.0)
    total_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_manual_override: Mapped[bool] = mapped_column(Boolean, default=False)
    original_price: Mapped[float | None] = mapped_column(Float, nullable=True)  # Engine price at override time
    tier_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pricing_breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    reservation: Mapped["Reservation"] = relationship(back_populates="items")
    product: Mapped["Product | None"] = relationship()  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<ReservationItem id={self.id} product_id={self.product_id} qty={self.quantity} "
            f"unit={self.unit_price} manual={self.is_manual_override}>"
        )

    @property
    def is_custom_item(self) -> bool:
        return self.product_id is None
