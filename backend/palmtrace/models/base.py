"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ChainStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    # No "split"/"merged" states: a consumed chain is COMPLETED and the
    # consuming operation is recorded on its MassBalanceEvent.


class CustodyEventTypeEnum(str, enum.Enum):
    CREATION = "creation"
    AGGREGATION = "aggregation"
    TRANSFORMATION = "transformation"
    OBSERVATION = "observation"
    TRANSACTION = "transaction"


class BusinessStepEnum(str, enum.Enum):
    HARVESTING = "harvesting"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    RECEIVING = "receiving"


class DispositionEnum(str, enum.Enum):
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"


class MassBalanceEventTypeEnum(str, enum.Enum):
    SPLIT = "split"
    MERGE = "merge"
    TRANSFORMATION = "transformation"


class ChainRoleEnum(str, enum.Enum):
    """Role of a chain in a mass balance event."""
    INPUT = "input"
    OUTPUT = "output"


class RiskLevelEnum(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class LegalityStatusEnum(str, enum.Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    ISSUES = "issues"


class ReportTypeEnum(str, enum.Enum):
    FORWARD_TRACE = "forward_trace"
    BACKWARD_TRACE = "backward_trace"
    FULL_LINEAGE = "full_lineage"


class ReportStatusEnum(str, enum.Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


def utcnow() -> datetime:
    """Naive UTC timestamp: stored in plain DateTime columns on every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
