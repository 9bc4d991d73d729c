"""Pydantic schemas for lineage graphs, risk assessment and lineage reports."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class LineageNode(BaseModel):
    id: str
    type: str
    name: str
    level: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    coordinates: Optional[Coordinates] = None
    risk_level: str = "unknown"
    certifications: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.type}:{self.id}"


class LineageEdge(BaseModel):
    source: str
    source_type: str
    target: str
    target_type: str
    type: str
    quantity: Optional[Decimal] = None
    date: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (f"{self.source_type}:{self.source}", f"{self.target_type}:{self.target}", self.type)


class RiskFactor(BaseModel):
    type: str  # high_risk_entity | deforestation_risk | legality_issue
    severity: str
    description: str
    entity_id: str
    entity_type: str


class ComplianceStatus(BaseModel):
    eudr_compliant: bool
    rspo_compliant: bool
    issues: list[str] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    overall_risk: str
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    compliance: ComplianceStatus


class LineageTrace(BaseModel):
    entity_id: str
    entity_type: str
    depth: int
    total_nodes: int
    truncated: bool = False
    nodes: list[LineageNode] = Field(default_factory=list)
    edges: list[LineageEdge] = Field(default_factory=list)
    risk_assessment: RiskAssessment


class LineageReportRequest(BaseModel):
    report_type: str
    target_entity_id: str
    target_entity_type: str
    filters: Optional[dict[str, Any]] = None
    export_format: str = "json"
    generated_by: Optional[str] = None


class LineageReportRead(BaseModel):
    report_id: str
    report_type: str
    target_entity_id: str
    target_entity_type: str
    lineage_data: dict[str, Any]
    generation_parameters: Optional[dict[str, Any]] = None
    total_nodes: int
    total_levels: int
    truncated: bool
    export_format: str
    status: str
    generated_by: Optional[str] = None
    generated_at: datetime
    export_url: str

    model_config = {"from_attributes": True}
