"""Import all models to register them with SQLAlchemy metadata."""
from palmtrace.models.base import Base
from palmtrace.models.supplier import Supplier
from palmtrace.models.facility import Facility
from palmtrace.models.plot import Plot
from palmtrace.models.delivery import Delivery
from palmtrace.models.production_lot import ProductionLot
from palmtrace.models.lot_delivery import LotDelivery
from palmtrace.models.shipment import Shipment
from palmtrace.models.shipment_lot import ShipmentLot
from palmtrace.models.custody_chain import CustodyChain
from palmtrace.models.custody_event import CustodyEvent
from palmtrace.models.mass_balance_event import MassBalanceEvent, MassBalanceEventChain
from palmtrace.models.lineage_report import LineageReport

__all__ = [
    "Base",
    "Supplier",
    "Facility",
    "Plot",
    "Delivery",
    "ProductionLot",
    "LotDelivery",
    "Shipment",
    "ShipmentLot",
    "CustodyChain",
    "CustodyEvent",
    "MassBalanceEvent",
    "MassBalanceEventChain",
    "LineageReport",
]
