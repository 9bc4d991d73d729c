"""Plot entity: a mapped farm plot with legality and deforestation status.

deforestation_risk is written by the external monitoring feed; the core
only reads it.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Float, Numeric, DateTime, ForeignKey, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from palmtrace.models.base import Base, RiskLevelEnum, LegalityStatusEnum, utcnow


class Plot(Base):
    __tablename__ = "plots"

    plot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plot_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # KPN-S-2847
    supplier_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("suppliers.supplier_id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    area_ha: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    polygon: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # GeoJSON
    # Centroid used for map placement of lineage nodes
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    legality_status: Mapped[LegalityStatusEnum] = mapped_column(
        SAEnum(LegalityStatusEnum), nullable=False, default=LegalityStatusEnum.PENDING
    )
    deforestation_risk: Mapped[RiskLevelEnum] = mapped_column(
        SAEnum(RiskLevelEnum), nullable=False, default=RiskLevelEnum.UNKNOWN
    )
    certifications: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    last_monitored: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier", back_populates="plots")
