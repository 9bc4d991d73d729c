"""Pydantic schemas for custody chain operations: request validation and read models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from palmtrace.models.base import BusinessStepEnum, ChainStatusEnum, CustodyEventTypeEnum


class ChainCreate(BaseModel):
    source_plot_id: Optional[int] = None
    source_facility_id: Optional[int] = None
    destination_facility_id: Optional[int] = None
    product_type: str = Field(min_length=1, max_length=20)
    total_quantity: Decimal = Field(gt=0, decimal_places=4)
    quality_grade: Optional[str] = None
    batch_number: Optional[str] = None
    harvest_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None


class SplitDefinition(BaseModel):
    quantity: Decimal = Field(gt=0, decimal_places=4)
    destination_facility_id: Optional[int] = None
    quality_grade: Optional[str] = None


class SplitChainRequest(BaseModel):
    parent_chain_id: str
    splits: list[SplitDefinition] = Field(min_length=1)
    process_location_id: Optional[int] = None
    notes: Optional[str] = None


class MergeChainsRequest(BaseModel):
    parent_chain_ids: list[str] = Field(min_length=1)
    destination_facility_id: Optional[int] = None
    product_type: str = Field(min_length=1, max_length=20)
    process_location_id: Optional[int] = None
    quality_grade: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("parent_chain_ids")
    @classmethod
    def chain_ids_must_be_unique(cls, v: list[str]) -> list[str]:
        # A repeated parent would be counted twice in the merged total
        if len(set(v)) != len(v):
            raise ValueError("parent_chain_ids must not contain duplicates")
        return v


class TransformChainRequest(BaseModel):
    source_chain_id: str
    input_quantity: Decimal = Field(gt=0, decimal_places=4)
    conversion_rate: Decimal = Field(gt=0, le=1, decimal_places=4)
    output_product_type: str = Field(min_length=1, max_length=20)
    destination_facility_id: Optional[int] = None
    process_location_id: Optional[int] = None
    quality_grade: Optional[str] = None
    notes: Optional[str] = None


class CustodyEventCreate(BaseModel):
    chain_id: str
    event_type: CustodyEventTypeEnum
    business_step: BusinessStepEnum
    disposition: str = "active"
    source_object_id: Optional[str] = None
    destination_object_id: Optional[str] = None
    quantity: Optional[Decimal] = Field(default=None, ge=0, decimal_places=4)
    uom: str = "KG"
    location: Optional[dict[str, Any]] = None
    location_id: Optional[int] = None
    event_metadata: Optional[dict[str, Any]] = None
    recorded_by: Optional[str] = None


class CustodyChainRead(BaseModel):
    chain_id: str
    source_plot_id: Optional[int] = None
    source_facility_id: Optional[int] = None
    destination_facility_id: Optional[int] = None
    product_type: str
    total_quantity: Decimal
    remaining_quantity: Decimal
    status: ChainStatusEnum
    quality_grade: Optional[str] = None
    batch_number: Optional[str] = None
    harvest_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    version: int

    model_config = {"from_attributes": True}


class CustodyEventRead(BaseModel):
    event_id: int
    chain_id: str
    event_type: CustodyEventTypeEnum
    event_time: datetime
    business_step: BusinessStepEnum
    disposition: str
    quantity: Optional[Decimal] = None
    uom: str
    location_id: Optional[int] = None
    event_metadata: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}
