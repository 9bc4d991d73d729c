"""Supplier entity: smallholder or company delivering fresh fruit bunches."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, DateTime, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from palmtrace.models.base import Base, RiskLevelEnum, LegalityStatusEnum, utcnow


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_type: Mapped[str] = mapped_column(String(50), nullable=False, default="smallholder")
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    risk_level: Mapped[RiskLevelEnum] = mapped_column(
        SAEnum(RiskLevelEnum), nullable=False, default=RiskLevelEnum.UNKNOWN
    )
    legality_status: Mapped[LegalityStatusEnum] = mapped_column(
        SAEnum(LegalityStatusEnum), nullable=False, default=LegalityStatusEnum.PENDING
    )
    certifications: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    plots: Mapped[list["Plot"]] = relationship("Plot", back_populates="supplier")
