"""Error taxonomy for custody, mass balance and lineage operations.

Domain errors (the request was invalid) are kept apart from infrastructure
errors (the store failed) so callers can tell them apart:

  CustodyError
  ├── NotFoundError               referenced chain or entity does not exist
  ├── InsufficientQuantityError   draw exceeds a chain's remaining quantity
  ├── InvalidReportType           unsupported lineage report type
  └── UnsupportedEntityType       no lineage resolver for the entity type

  PersistenceError                the store failed; the session was rolled back
  └── ConcurrentModificationError optimistic version check failed
"""
from __future__ import annotations

from decimal import Decimal


class CustodyError(Exception):
    """Base class for errors caused by an invalid request."""


class NotFoundError(CustodyError, LookupError):
    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class InsufficientQuantityError(CustodyError, ValueError):
    def __init__(self, chain_id: str, requested: Decimal, remaining: Decimal, message: str | None = None):
        self.chain_id = chain_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            message or f"Chain {chain_id}: requested {requested} exceeds remaining quantity {remaining}"
        )


class InvalidReportType(CustodyError, ValueError):
    def __init__(self, report_type: str):
        self.report_type = report_type
        super().__init__(f"Invalid report type: {report_type}")


class UnsupportedEntityType(CustodyError, ValueError):
    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unsupported lineage entity type: {entity_type}")


class PersistenceError(Exception):
    """The underlying store failed. Staged writes were rolled back."""


class ConcurrentModificationError(PersistenceError):
    """A chain was updated by another writer since it was read."""
