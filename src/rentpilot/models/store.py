"""Store model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentpilot.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    # {"pricingMode": "day", "tax": {"enabled": bool, "rate": float, "displayMode": str}}
    settings: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    products: Mapped[list["Product"]] = relationship(back_populates="store")  # noqa: F821
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="store")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Store id={self.id} slug={self.slug!r}>"

    @property
    def default_pricing_mode(self) -> str | None:
        return (self.settings or {}).get("pricingMode")
