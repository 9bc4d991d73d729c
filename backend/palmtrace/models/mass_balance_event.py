"""MassBalanceEvent entity: one conservation-relevant split, merge or transformation.

Chains taking part are linked through MassBalanceEventChain rows:
  role=input  chains drawn on (split parent, merge parents, transform source)
  role=output chains produced (split children, merged chain, transformed chain)

parent_chain_id is kept for split and transformation and is null for merges,
whose several parents are only recorded as input links.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Numeric, DateTime, ForeignKey, Text, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from palmtrace.models.base import Base, MassBalanceEventTypeEnum, ChainRoleEnum, utcnow


class MassBalanceEvent(Base):
    __tablename__ = "mass_balance_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[MassBalanceEventTypeEnum] = mapped_column(
        SAEnum(MassBalanceEventTypeEnum), nullable=False, index=True
    )
    parent_chain_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("custody_chains.chain_id"), nullable=True, index=True
    )
    input_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    output_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    conversion_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4), nullable=True)
    waste_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    process_location_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("facilities.facility_id"), nullable=True, index=True
    )
    process_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    parent_chain: Mapped[Optional["CustodyChain"]] = relationship("CustodyChain", foreign_keys=[parent_chain_id])
    chain_links: Mapped[list["MassBalanceEventChain"]] = relationship(
        "MassBalanceEventChain",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="MassBalanceEventChain.position",
        lazy="selectin",
    )

    def _chain_ids(self, role: ChainRoleEnum) -> list[str]:
        return [link.chain_id for link in self.chain_links if link.role == role]

    @property
    def child_chain_ids(self) -> list[str]:
        return self._chain_ids(ChainRoleEnum.OUTPUT)

    @property
    def input_chain_ids(self) -> list[str]:
        return self._chain_ids(ChainRoleEnum.INPUT)

    def link_chains(self, role: ChainRoleEnum, chain_ids: list[str]) -> None:
        start = len(self.chain_links)
        for offset, chain_id in enumerate(chain_ids):
            self.chain_links.append(
                MassBalanceEventChain(chain_id=chain_id, role=role, position=start + offset)
            )


class MassBalanceEventChain(Base):
    __tablename__ = "mass_balance_event_chains"
    __table_args__ = (
        UniqueConstraint("event_id", "chain_id", "role", name="uq_mass_balance_event_chain_role"),
    )

    link_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mass_balance_events.event_id", ondelete="CASCADE"), nullable=False, index=True
    )
    chain_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("custody_chains.chain_id"), nullable=False, index=True
    )
    role: Mapped[ChainRoleEnum] = mapped_column(SAEnum(ChainRoleEnum), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    event: Mapped["MassBalanceEvent"] = relationship("MassBalanceEvent", back_populates="chain_links")
    chain: Mapped["CustodyChain"] = relationship("CustodyChain")
