"""LineageReport entity: immutable snapshot of a lineage trace."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Boolean, DateTime, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from palmtrace.models.base import Base, ReportTypeEnum, ReportStatusEnum, utcnow


class LineageReport(Base):
    __tablename__ = "lineage_reports"

    lineage_report_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)  # LIN-LX2K9P1A
    report_type: Mapped[ReportTypeEnum] = mapped_column(SAEnum(ReportTypeEnum), nullable=False)
    target_entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # Snapshot: a re-trace creates a new report, never updates this one
    lineage_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    generation_parameters: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    total_nodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    truncated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    export_format: Mapped[str] = mapped_column(String(10), nullable=False, default="json")
    status: Mapped[ReportStatusEnum] = mapped_column(
        SAEnum(ReportStatusEnum), nullable=False, default=ReportStatusEnum.COMPLETED
    )
    generated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
