"""Facility entity: collection point, mill, refinery or port."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Float, Numeric, DateTime, ForeignKey, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base, RiskLevelEnum, utcnow


class Facility(Base):
    __tablename__ = "facilities"

    facility_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # FAC-001
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    facility_type: Mapped[str] = mapped_column(String(50), nullable=False)  # farm, collection_point, mill, refinery, port
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    parent_facility_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True
    )
    capacity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    operational_status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    certifications: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)  # RSPO, ISCC, ...
    risk_level: Mapped[RiskLevelEnum] = mapped_column(
        SAEnum(RiskLevelEnum), nullable=False, default=RiskLevelEnum.LOW
    )
    last_audit_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
