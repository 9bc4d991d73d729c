"""CustodyEvent entity: append-only EPCIS-style record of something happening to a chain."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Numeric, DateTime, ForeignKey, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from palmtrace.models.base import Base, CustodyEventTypeEnum, BusinessStepEnum, utcnow


class CustodyEvent(Base):
    __tablename__ = "custody_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("custody_chains.chain_id"), nullable=False, index=True
    )
    event_type: Mapped[CustodyEventTypeEnum] = mapped_column(SAEnum(CustodyEventTypeEnum), nullable=False)
    event_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    event_time_zone: Mapped[str] = mapped_column(String(50), nullable=False, default="UTC")
    business_step: Mapped[BusinessStepEnum] = mapped_column(SAEnum(BusinessStepEnum), nullable=False)
    disposition: Mapped[str] = mapped_column(String(30), nullable=False, default="active")
    source_object_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    destination_object_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    uom: Mapped[str] = mapped_column(String(10), nullable=False, default="KG")
    location: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # GPS coordinates
    location_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    event_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    chain: Mapped["CustodyChain"] = relationship("CustodyChain", back_populates="events")
