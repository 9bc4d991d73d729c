"""Delivery entity: FFB harvested on a plot and delivered to a mill."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base, utcnow


class Delivery(Base):
    __tablename__ = "deliveries"

    delivery_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plot_id: Mapped[int] = mapped_column(Integer, ForeignKey("plots.plot_id"), nullable=False, index=True)
    facility_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    delivery_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)  # tonnes
    quality: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    batch_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
