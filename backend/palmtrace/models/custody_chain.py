"""CustodyChain entity: a traceable quantity of one product moving through the supply chain.

total_quantity is fixed at creation. remaining_quantity only goes down as
splits, merges and transformations draw on the chain; at zero the chain is
COMPLETED. Chains are never deleted.

``version`` is the optimistic-locking counter: every UPDATE is issued as
``... WHERE chain_id = :id AND version = :seen`` and a zero row count raises
StaleDataError, so two writers can never both consume the same quantity.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint, Index, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from palmtrace.models.base import Base, ChainStatusEnum, utcnow


class CustodyChain(Base):
    __tablename__ = "custody_chains"
    __table_args__ = (
        CheckConstraint("remaining_quantity >= 0", name="ck_chain_remaining_non_negative"),
        CheckConstraint("remaining_quantity <= total_quantity", name="ck_chain_remaining_le_total"),
        Index("ix_custody_chains_status_product", "status", "product_type"),
    )

    chain_id: Mapped[str] = mapped_column(String(64), primary_key=True)  # CHAIN-LX2K9P1A
    source_plot_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("plots.plot_id"), nullable=True, index=True
    )
    source_facility_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    destination_facility_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    product_type: Mapped[str] = mapped_column(String(20), nullable=False)  # FFB, CPO, PKO
    total_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    status: Mapped[ChainStatusEnum] = mapped_column(
        SAEnum(ChainStatusEnum), nullable=False, default=ChainStatusEnum.ACTIVE
    )
    quality_grade: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    batch_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    harvest_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    events: Mapped[list["CustodyEvent"]] = relationship(
        "CustodyEvent",
        back_populates="chain",
        order_by="[CustodyEvent.event_time, CustodyEvent.event_id]",
        lazy="selectin",
    )

    def consume(self, quantity: Decimal) -> None:
        """Draw ``quantity`` from the chain and complete it when nothing is left.

        Callers check ``quantity <= remaining_quantity`` first; the CHECK
        constraints are the backstop.
        """
        self.remaining_quantity = self.remaining_quantity - quantity
        self.status = (
            ChainStatusEnum.ACTIVE if self.remaining_quantity > 0 else ChainStatusEnum.COMPLETED
        )
