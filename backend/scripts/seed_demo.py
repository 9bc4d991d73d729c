"""Seed a small palm oil supply chain for demos and manual testing.

Creates:
  supplier  Koperasi Sawit Makmur (RSPO) ── plot KPN-S-2847 (low deforestation risk)
  supplier  PT Hutan Baru (high risk)    ── plot KPN-S-3011 (high deforestation risk)
  facilities: collection point, mill, port
  deliveries from both plots → production lot L-001 → shipment EXP-2024-0156
  custody history: 1000 kg FFB from KPN-S-2847, split 600/400, 600 transformed
  into CPO at 0.21

Usage:
    cd backend && python -m scripts.seed_demo
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from palmtrace.models import (
    Delivery, Facility, LotDelivery, Plot, ProductionLot, Shipment, ShipmentLot, Supplier,
)
from palmtrace.models.base import LegalityStatusEnum, RiskLevelEnum
from palmtrace.modules.chain_of_custody import create_chain, split_chain, transform_chain


def seed_demo(db: Session) -> dict:
    """Insert the demo supply chain. Returns the ids worth tracing."""
    base_date = datetime(2024, 3, 1, 7, 0)

    coop = Supplier(
        name="Koperasi Sawit Makmur", supplier_type="cooperative", country="Indonesia",
        risk_level=RiskLevelEnum.LOW, legality_status=LegalityStatusEnum.VERIFIED,
        certifications=["RSPO", "ISPO"],
    )
    estate = Supplier(
        name="PT Hutan Baru", supplier_type="estate", country="Indonesia",
        risk_level=RiskLevelEnum.HIGH, legality_status=LegalityStatusEnum.PENDING,
        certifications=[],
    )
    db.add_all([coop, estate])
    db.flush()

    good_plot = Plot(
        plot_code="KPN-S-2847", supplier_id=coop.supplier_id, name="Blok Sawit Utara",
        area_ha=Decimal("12.50"), latitude=0.5071, longitude=101.4478,
        status="active", legality_status=LegalityStatusEnum.VERIFIED,
        deforestation_risk=RiskLevelEnum.LOW, certifications=["RSPO"],
    )
    risky_plot = Plot(
        plot_code="KPN-S-3011", supplier_id=estate.supplier_id, name="Blok Hutan Timur",
        area_ha=Decimal("40.00"), latitude=0.6123, longitude=101.8904,
        status="active", legality_status=LegalityStatusEnum.PENDING,
        deforestation_risk=RiskLevelEnum.HIGH, certifications=[],
    )
    collection = Facility(
        facility_code="FAC-001", name="Pekanbaru Collection Point", facility_type="collection_point",
        latitude=0.5333, longitude=101.4500, risk_level=RiskLevelEnum.LOW,
    )
    mill = Facility(
        facility_code="FAC-002", name="Siak Palm Oil Mill", facility_type="mill",
        latitude=0.7921, longitude=102.0511, risk_level=RiskLevelEnum.MEDIUM,
        certifications=["RSPO"],
    )
    port = Facility(
        facility_code="FAC-003", name="Dumai Export Terminal", facility_type="port",
        latitude=1.6667, longitude=101.4500, risk_level=RiskLevelEnum.LOW,
    )
    db.add_all([good_plot, risky_plot, collection, mill, port])
    db.flush()

    deliveries = [
        Delivery(plot_id=good_plot.plot_id, facility_id=mill.facility_id,
                 delivery_date=base_date, weight=Decimal("18.2500"), quality="A", batch_number="DLV-0001"),
        Delivery(plot_id=risky_plot.plot_id, facility_id=mill.facility_id,
                 delivery_date=base_date + timedelta(hours=5), weight=Decimal("22.0000"), quality="B",
                 batch_number="DLV-0002"),
    ]
    db.add_all(deliveries)
    db.flush()

    lot = ProductionLot(lot_code="L-001", facility_id=mill.facility_id,
                        production_date=base_date + timedelta(days=1), total_weight=Decimal("8.4500"))
    db.add(lot)
    db.flush()
    db.add_all([LotDelivery(lot_id=lot.lot_id, delivery_id=d.delivery_id) for d in deliveries])

    shipment = Shipment(shipment_code="EXP-2024-0156", destination_country="Netherlands",
                        destination_port="Rotterdam", total_weight=Decimal("8.4500"),
                        shipment_date=base_date + timedelta(days=9), status="shipped")
    db.add(shipment)
    db.flush()
    db.add(ShipmentLot(shipment_id=shipment.shipment_id, lot_id=lot.lot_id, weight=Decimal("8.4500")))
    db.commit()

    origin = create_chain(
        db,
        product_type="FFB",
        total_quantity=Decimal("1000"),
        source_plot_id=good_plot.plot_id,
        source_facility_id=collection.facility_id,
        destination_facility_id=mill.facility_id,
        quality_grade="A",
        batch_number="FFB-2024-0301",
        harvest_date=base_date,
        recorded_by="demo",
    )
    split = split_chain(
        db,
        origin.chain_id,
        [
            {"quantity": Decimal("600"), "destination_facility_id": mill.facility_id},
            {"quantity": Decimal("400"), "destination_facility_id": collection.facility_id},
        ],
        process_location_id=mill.facility_id,
        notes="Demo split at mill intake",
        processed_by="demo",
    )
    transform = transform_chain(
        db,
        split.child_chains[0].chain_id,
        Decimal("600"),
        "CPO",
        Decimal("0.21"),
        destination_facility_id=port.facility_id,
        process_location_id=mill.facility_id,
        notes="Demo milling run",
        processed_by="demo",
    )

    return {
        "plot_id": good_plot.plot_id,
        "risky_plot_id": risky_plot.plot_id,
        "shipment_id": shipment.shipment_id,
        "mill_id": mill.facility_id,
        "origin_chain_id": origin.chain_id,
        "split_chain_ids": [c.chain_id for c in split.child_chains],
        "cpo_chain_id": transform.transformed_chain.chain_id,
    }


if __name__ == "__main__":
    from palmtrace.database import SessionLocal, init_db

    init_db()
    session = SessionLocal()
    try:
        print(seed_demo(session))
    finally:
        session.close()
