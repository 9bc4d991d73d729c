"""Pydantic schemas for mass balance events, validation results and anomalies."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from palmtrace.models.base import MassBalanceEventTypeEnum


class TimeRange(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def end_not_before_start(self) -> "TimeRange":
        if self.end < self.start:
            raise ValueError("time range end must not precede start")
        return self


class MassBalanceEventCreate(BaseModel):
    event_type: MassBalanceEventTypeEnum
    parent_chain_id: Optional[str] = None
    child_chain_ids: list[str] = Field(default_factory=list)
    input_chain_ids: list[str] = Field(default_factory=list)
    input_quantity: Decimal = Field(ge=0, decimal_places=4)
    output_quantity: Decimal = Field(ge=0, decimal_places=4)
    conversion_rate: Optional[Decimal] = Field(default=None, gt=0, decimal_places=4)
    waste_quantity: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    process_location_id: Optional[int] = None
    processed_by: Optional[str] = None
    notes: Optional[str] = None


class MassBalanceEventRead(BaseModel):
    event_id: int
    event_type: MassBalanceEventTypeEnum
    parent_chain_id: Optional[str] = None
    child_chain_ids: list[str]
    input_chain_ids: list[str]
    input_quantity: Decimal
    output_quantity: Decimal
    conversion_rate: Optional[Decimal] = None
    waste_quantity: Decimal
    process_location_id: Optional[int] = None
    process_date: datetime
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class Discrepancy(BaseModel):
    type: str  # mass_balance | conversion_rate
    expected: Decimal
    actual: Decimal
    variance: Decimal
    description: str
    event_id: Optional[int] = None


class ChainValidation(BaseModel):
    chain_id: str
    is_valid: bool
    total_input: Decimal
    total_output: Decimal
    total_waste: Decimal
    # None when the chain has no recorded input
    efficiency: Optional[Decimal] = None
    discrepancies: list[Discrepancy] = Field(default_factory=list)


class ChainEfficiency(BaseModel):
    chain_id: str
    event_count: int
    total_input: Decimal
    total_output: Decimal
    total_waste: Decimal
    average_efficiency: Optional[Decimal] = None


class FacilityEfficiency(BaseModel):
    facility_id: int
    total_events: int
    total_input: Decimal
    total_output: Decimal
    total_waste: Decimal
    average_efficiency: Optional[Decimal] = None
    events_by_type: dict[str, int] = Field(default_factory=dict)


class Anomaly(BaseModel):
    event_id: int
    type: str  # conversion_rate_anomaly | quantity_anomaly
    severity: str  # medium | high
    description: str
    event_type: Optional[str] = None
    value: Decimal
    expected_range: Optional[dict[str, Decimal]] = None
    average_value: Optional[Decimal] = None
