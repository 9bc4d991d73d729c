"""LotDelivery: association between production lots and their input deliveries."""
from __future__ import annotations

from sqlalchemy import Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base


class LotDelivery(Base):
    __tablename__ = "lot_deliveries"
    __table_args__ = (
        UniqueConstraint("lot_id", "delivery_id", name="uq_lot_delivery"),
    )

    lot_delivery_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lot_id: Mapped[int] = mapped_column(Integer, ForeignKey("production_lots.lot_id"), nullable=False, index=True)
    delivery_id: Mapped[int] = mapped_column(Integer, ForeignKey("deliveries.delivery_id"), nullable=False, index=True)
