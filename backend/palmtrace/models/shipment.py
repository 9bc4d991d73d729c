"""Shipment entity: an export consignment."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base, utcnow


class Shipment(Base):
    __tablename__ = "shipments"

    shipment_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shipment_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # EXP-2024-0156
    destination_country: Mapped[str] = mapped_column(String(100), nullable=False)
    destination_port: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    total_weight: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    shipment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="preparing")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
