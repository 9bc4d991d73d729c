"""ShipmentLot: weight of a production lot loaded onto a shipment."""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base


class ShipmentLot(Base):
    __tablename__ = "shipment_lots"

    shipment_lot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shipment_id: Mapped[int] = mapped_column(Integer, ForeignKey("shipments.shipment_id"), nullable=False, index=True)
    lot_id: Mapped[int] = mapped_column(Integer, ForeignKey("production_lots.lot_id"), nullable=False, index=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
