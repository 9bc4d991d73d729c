"""Entity resolvers for lineage traversal.

Each traceable entity type registers one EntityResolver: how to load the
entity as a node and how to find its downstream (forward) and upstream
(backward) neighbours. The traversal only talks to this registry, so a new
entity type is added with register_resolver() alone.

Physical joins:
  supplier ─supplier_plot→ plot ─harvest_delivery→ delivery
  delivery ─production_input→ production_lot ─export_shipment→ shipment
  plot ─chain_origin→ custody_chain ─<mass balance event type>→ custody_chain
Facilities resolve as nodes but have no connections.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session, aliased

from palmtrace.errors import UnsupportedEntityType
from palmtrace.models.base import ChainRoleEnum, MassBalanceEventTypeEnum
from palmtrace.models import (
    CustodyChain,
    Delivery,
    Facility,
    LotDelivery,
    MassBalanceEvent,
    MassBalanceEventChain,
    Plot,
    ProductionLot,
    Shipment,
    ShipmentLot,
    Supplier,
)


@dataclass
class ResolvedEntity:
    name: str
    data: dict[str, Any]
    coordinates: Optional[dict[str, float]] = None
    risk_level: str = "unknown"
    certifications: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Connection:
    entity_id: str
    entity_type: str
    connection_type: str
    quantity: Optional[Decimal] = None
    date: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None


Loader = Callable[[Session, str], Optional[ResolvedEntity]]
Finder = Callable[[Session, str], list[Connection]]


def _no_connections(db: Session, entity_id: str) -> list[Connection]:
    return []


@dataclass(frozen=True)
class EntityResolver:
    load: Loader
    forward: Finder = _no_connections
    backward: Finder = _no_connections


_RESOLVERS: dict[str, EntityResolver] = {}


def register_resolver(entity_type: str, resolver: EntityResolver) -> None:
    _RESOLVERS[entity_type] = resolver


def get_resolver(entity_type: str) -> EntityResolver:
    try:
        return _RESOLVERS[entity_type]
    except KeyError:
        raise UnsupportedEntityType(entity_type) from None


def supported_entity_types() -> list[str]:
    return sorted(_RESOLVERS)


# ── Helpers ────────────────────────────────────────────────────────────────

def _int_id(entity_id: str) -> int | None:
    try:
        return int(entity_id)
    except (TypeError, ValueError):
        return None


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def _row_data(obj: Any) -> dict[str, Any]:
    return {attr.key: _plain(getattr(obj, attr.key)) for attr in inspect(obj).mapper.column_attrs}


def _coordinates(obj: Any) -> dict[str, float] | None:
    if obj.latitude is None or obj.longitude is None:
        return None
    return {"latitude": obj.latitude, "longitude": obj.longitude}


def _load_by_int(model: type, entity_id: str) -> Callable[[Session], Any]:
    def fetch(db: Session) -> Any:
        pk = _int_id(entity_id)
        return db.get(model, pk) if pk is not None else None
    return fetch


# ── Loaders ────────────────────────────────────────────────────────────────

def load_supplier(db: Session, entity_id: str) -> ResolvedEntity | None:
    supplier = _load_by_int(Supplier, entity_id)(db)
    if supplier is None:
        return None
    return ResolvedEntity(
        name=supplier.name,
        data=_row_data(supplier),
        risk_level=_plain(supplier.risk_level) or "unknown",
        certifications=list(supplier.certifications or []),
    )


def load_plot(db: Session, entity_id: str) -> ResolvedEntity | None:
    plot = _load_by_int(Plot, entity_id)(db)
    if plot is None:
        return None
    return ResolvedEntity(
        name=plot.name,
        data=_row_data(plot),
        coordinates=_coordinates(plot),
        risk_level=_plain(plot.deforestation_risk) or "unknown",
        certifications=list(plot.certifications or []),
    )


def load_facility(db: Session, entity_id: str) -> ResolvedEntity | None:
    facility = _load_by_int(Facility, entity_id)(db)
    if facility is None:
        return None
    return ResolvedEntity(
        name=facility.name,
        data=_row_data(facility),
        coordinates=_coordinates(facility),
        risk_level=_plain(facility.risk_level) or "unknown",
        certifications=list(facility.certifications or []),
    )


def load_delivery(db: Session, entity_id: str) -> ResolvedEntity | None:
    delivery = _load_by_int(Delivery, entity_id)(db)
    if delivery is None:
        return None
    return ResolvedEntity(
        name=delivery.batch_number or f"Delivery {delivery.delivery_id}",
        data=_row_data(delivery),
    )


def load_production_lot(db: Session, entity_id: str) -> ResolvedEntity | None:
    lot = _load_by_int(ProductionLot, entity_id)(db)
    if lot is None:
        return None
    return ResolvedEntity(name=lot.lot_code, data=_row_data(lot))


def load_shipment(db: Session, entity_id: str) -> ResolvedEntity | None:
    shipment = _load_by_int(Shipment, entity_id)(db)
    if shipment is None:
        return None
    return ResolvedEntity(name=shipment.shipment_code, data=_row_data(shipment))


def load_custody_chain(db: Session, entity_id: str) -> ResolvedEntity | None:
    chain = db.get(CustodyChain, entity_id)
    if chain is None:
        return None
    return ResolvedEntity(
        name=chain.batch_number or chain.chain_id,
        data=_row_data(chain),
    )


# ── Forward finders ────────────────────────────────────────────────────────

def supplier_plots(db: Session, entity_id: str) -> list[Connection]:
    rows = db.query(Plot).filter(Plot.supplier_id == _int_id(entity_id)).order_by(Plot.plot_id).all()
    return [Connection(str(p.plot_id), "plot", "supplier_plot") for p in rows]


def plot_downstream(db: Session, entity_id: str) -> list[Connection]:
    plot_id = _int_id(entity_id)
    deliveries = (
        db.query(Delivery)
        .filter(Delivery.plot_id == plot_id)
        .order_by(Delivery.delivery_date, Delivery.delivery_id)
        .all()
    )
    chains = (
        db.query(CustodyChain)
        .filter(CustodyChain.source_plot_id == plot_id)
        .order_by(CustodyChain.created_at, CustodyChain.chain_id)
        .all()
    )
    return [
        Connection(str(d.delivery_id), "delivery", "harvest_delivery",
                   quantity=d.weight, date=d.delivery_date)
        for d in deliveries
    ] + [
        Connection(c.chain_id, "custody_chain", "chain_origin",
                   quantity=c.total_quantity, date=c.harvest_date)
        for c in chains
    ]


def delivery_lots(db: Session, entity_id: str) -> list[Connection]:
    rows = (
        db.query(ProductionLot)
        .join(LotDelivery, LotDelivery.lot_id == ProductionLot.lot_id)
        .filter(LotDelivery.delivery_id == _int_id(entity_id))
        .order_by(ProductionLot.production_date, ProductionLot.lot_id)
        .all()
    )
    return [
        Connection(str(lot.lot_id), "production_lot", "production_input",
                   quantity=lot.total_weight, date=lot.production_date)
        for lot in rows
    ]


def lot_shipments(db: Session, entity_id: str) -> list[Connection]:
    rows = (
        db.query(Shipment, ShipmentLot.weight)
        .join(ShipmentLot, ShipmentLot.shipment_id == Shipment.shipment_id)
        .filter(ShipmentLot.lot_id == _int_id(entity_id))
        .order_by(Shipment.shipment_date, Shipment.shipment_id)
        .all()
    )
    return [
        Connection(str(s.shipment_id), "shipment", "export_shipment",
                   quantity=weight, date=s.shipment_date)
        for s, weight in rows
    ]


def _linked_chains(
    db: Session, chain_id: str, own_role: ChainRoleEnum, other_role: ChainRoleEnum,
) -> list[tuple[MassBalanceEvent, str]]:
    own = aliased(MassBalanceEventChain)
    other = aliased(MassBalanceEventChain)
    return (
        db.query(MassBalanceEvent, other.chain_id)
        .join(own, own.event_id == MassBalanceEvent.event_id)
        .join(other, other.event_id == MassBalanceEvent.event_id)
        .filter(own.chain_id == chain_id, own.role == own_role, other.role == other_role)
        .order_by(MassBalanceEvent.process_date, MassBalanceEvent.event_id, other.position)
        .all()
    )


def _event_metadata(event: MassBalanceEvent) -> dict[str, Any]:
    return {
        "event_id": event.event_id,
        "conversion_rate": str(event.conversion_rate) if event.conversion_rate is not None else None,
        "waste_quantity": str(event.waste_quantity),
    }


def chain_children(db: Session, entity_id: str) -> list[Connection]:
    return [
        Connection(child_id, "custody_chain", MassBalanceEventTypeEnum(event.event_type).value,
                   quantity=event.output_quantity, date=event.process_date,
                   metadata=_event_metadata(event))
        for event, child_id in _linked_chains(db, entity_id, ChainRoleEnum.INPUT, ChainRoleEnum.OUTPUT)
    ]


# ── Backward finders ───────────────────────────────────────────────────────

def plot_supplier(db: Session, entity_id: str) -> list[Connection]:
    plot = _load_by_int(Plot, entity_id)(db)
    if plot is None or plot.supplier_id is None:
        return []
    return [Connection(str(plot.supplier_id), "supplier", "plot_supplier")]


def delivery_source(db: Session, entity_id: str) -> list[Connection]:
    delivery = _load_by_int(Delivery, entity_id)(db)
    if delivery is None:
        return []
    return [Connection(str(delivery.plot_id), "plot", "harvest_source",
                       quantity=delivery.weight, date=delivery.delivery_date)]


def lot_inputs(db: Session, entity_id: str) -> list[Connection]:
    rows = (
        db.query(Delivery)
        .join(LotDelivery, LotDelivery.delivery_id == Delivery.delivery_id)
        .filter(LotDelivery.lot_id == _int_id(entity_id))
        .order_by(Delivery.delivery_date, Delivery.delivery_id)
        .all()
    )
    return [
        Connection(str(d.delivery_id), "delivery", "production_input",
                   quantity=d.weight, date=d.delivery_date)
        for d in rows
    ]


def shipment_sources(db: Session, entity_id: str) -> list[Connection]:
    rows = (
        db.query(ProductionLot, ShipmentLot.weight)
        .join(ShipmentLot, ShipmentLot.lot_id == ProductionLot.lot_id)
        .filter(ShipmentLot.shipment_id == _int_id(entity_id))
        .order_by(ProductionLot.production_date, ProductionLot.lot_id)
        .all()
    )
    return [
        Connection(str(lot.lot_id), "production_lot", "export_source",
                   quantity=weight, date=lot.production_date)
        for lot, weight in rows
    ]


def chain_parents(db: Session, entity_id: str) -> list[Connection]:
    connections: list[Connection] = []
    chain = db.get(CustodyChain, entity_id)
    if chain is not None and chain.source_plot_id is not None:
        connections.append(Connection(str(chain.source_plot_id), "plot", "chain_origin",
                                      quantity=chain.total_quantity, date=chain.harvest_date))
    connections.extend(
        Connection(parent_id, "custody_chain", MassBalanceEventTypeEnum(event.event_type).value,
                   quantity=event.input_quantity, date=event.process_date,
                   metadata=_event_metadata(event))
        for event, parent_id in _linked_chains(db, entity_id, ChainRoleEnum.OUTPUT, ChainRoleEnum.INPUT)
    )
    return connections


register_resolver("supplier", EntityResolver(load_supplier, forward=supplier_plots))
register_resolver("plot", EntityResolver(load_plot, forward=plot_downstream, backward=plot_supplier))
register_resolver("facility", EntityResolver(load_facility))
register_resolver("delivery", EntityResolver(load_delivery, forward=delivery_lots, backward=delivery_source))
register_resolver("production_lot", EntityResolver(load_production_lot, forward=lot_shipments, backward=lot_inputs))
register_resolver("shipment", EntityResolver(load_shipment, backward=shipment_sources))
register_resolver("custody_chain", EntityResolver(load_custody_chain, forward=chain_children, backward=chain_parents))
