"""ProductionLot entity: a mill output batch, fed by one or more deliveries."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base, utcnow


class ProductionLot(Base):
    __tablename__ = "production_lots"

    lot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lot_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # L-001
    facility_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    production_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False, default="CPO")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
