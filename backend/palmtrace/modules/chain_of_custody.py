"""Chain-of-custody service: create, split, merge and transform custody chains.

Every mutating operation runs as one unit of work. The chain updates, the
new chains, their custody events and the mass balance record are staged on
the session and committed together; any store failure rolls all of them
back. Quantity and existence checks run before anything is written.

Chains are versioned (see CustodyChain.version), so a writer that read a
chain before a competing split/merge/transform committed fails with
ConcurrentModificationError instead of overdrawing the chain.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from palmtrace.errors import (
    ConcurrentModificationError,
    InsufficientQuantityError,
    NotFoundError,
    PersistenceError,
)
from palmtrace.models.base import (
    BusinessStepEnum,
    ChainRoleEnum,
    ChainStatusEnum,
    CustodyEventTypeEnum,
    DispositionEnum,
    MassBalanceEventTypeEnum,
)
from palmtrace.models.custody_chain import CustodyChain
from palmtrace.models.custody_event import CustodyEvent
from palmtrace.models.mass_balance_event import MassBalanceEvent
from palmtrace.schemas.custody import (
    ChainCreate,
    CustodyEventCreate,
    MergeChainsRequest,
    SplitChainRequest,
    TransformChainRequest,
)
from palmtrace.utils.identifiers import (
    new_chain_id,
    new_merge_chain_id,
    new_merged_batch_number,
    new_split_chain_id,
    new_transform_batch_number,
    new_transform_chain_id,
)
from palmtrace.utils.quantity import ZERO, quantize, total

logger = logging.getLogger(__name__)


@dataclass
class SplitResult:
    parent_chain: CustodyChain
    child_chains: list[CustodyChain]
    mass_balance_event: MassBalanceEvent


@dataclass
class MergeResult:
    merged_chain: CustodyChain
    parent_chains: list[CustodyChain]
    mass_balance_event: MassBalanceEvent


@dataclass
class TransformResult:
    source_chain: CustodyChain
    transformed_chain: CustodyChain
    mass_balance_event: MassBalanceEvent


@contextmanager
def unit_of_work(db: Session, commit: bool = True) -> Iterator[None]:
    """Commit (or flush, when the caller owns the transaction) staged writes.

    Store failures roll the session back and surface as PersistenceError;
    a failed version check surfaces as ConcurrentModificationError. Domain
    errors raised inside the block pass through unchanged.
    """
    try:
        yield
        if commit:
            db.commit()
        else:
            db.flush()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Concurrent chain modification detected: %s", exc)
        raise ConcurrentModificationError(str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Custody write failed, rolled back: %s", exc)
        raise PersistenceError(str(exc)) from exc


def _load_chain(db: Session, chain_id: str) -> CustodyChain:
    chain = db.get(CustodyChain, chain_id)
    if chain is None:
        raise NotFoundError("custody_chain", chain_id)
    return chain


def _custody_event(
    chain_id: str,
    event_type: CustodyEventTypeEnum,
    business_step: BusinessStepEnum,
    quantity: Decimal,
    location_id: int | None,
    source_object_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    recorded_by: str | None = None,
) -> CustodyEvent:
    return CustodyEvent(
        chain_id=chain_id,
        event_type=event_type,
        business_step=business_step,
        disposition=DispositionEnum.ACTIVE.value,
        source_object_id=source_object_id,
        destination_object_id=chain_id,
        quantity=quantity,
        location_id=location_id,
        event_metadata=metadata,
        recorded_by=recorded_by,
    )


def create_chain(
    db: Session,
    *,
    product_type: str,
    total_quantity: Decimal | int | float | str,
    source_plot_id: int | None = None,
    source_facility_id: int | None = None,
    destination_facility_id: int | None = None,
    quality_grade: str | None = None,
    batch_number: str | None = None,
    harvest_date: datetime | None = None,
    expiry_date: datetime | None = None,
    recorded_by: str | None = None,
    commit: bool = True,
) -> CustodyChain:
    """Create a new ACTIVE chain holding its full quantity, plus its creation event."""
    data = ChainCreate(
        product_type=product_type,
        total_quantity=total_quantity,
        source_plot_id=source_plot_id,
        source_facility_id=source_facility_id,
        destination_facility_id=destination_facility_id,
        quality_grade=quality_grade,
        batch_number=batch_number,
        harvest_date=harvest_date,
        expiry_date=expiry_date,
    )
    quantity = quantize(data.total_quantity)

    with unit_of_work(db, commit):
        chain = CustodyChain(
            chain_id=new_chain_id(),
            source_plot_id=data.source_plot_id,
            source_facility_id=data.source_facility_id,
            destination_facility_id=data.destination_facility_id,
            product_type=data.product_type,
            total_quantity=quantity,
            remaining_quantity=quantity,
            status=ChainStatusEnum.ACTIVE,
            quality_grade=data.quality_grade,
            batch_number=data.batch_number,
            harvest_date=data.harvest_date,
            expiry_date=data.expiry_date,
        )
        db.add(chain)
        db.add(_custody_event(
            chain.chain_id,
            CustodyEventTypeEnum.CREATION,
            BusinessStepEnum.HARVESTING,
            quantity,
            location_id=data.source_facility_id,
            recorded_by=recorded_by,
        ))

    logger.info("Created chain %s: %s %s", chain.chain_id, quantity, chain.product_type)
    return chain


def record_custody_event(
    db: Session,
    *,
    chain_id: str,
    event_type: CustodyEventTypeEnum | str,
    business_step: BusinessStepEnum | str,
    disposition: str = "active",
    quantity: Decimal | int | float | str | None = None,
    uom: str = "KG",
    location: dict[str, Any] | None = None,
    location_id: int | None = None,
    source_object_id: str | None = None,
    destination_object_id: str | None = None,
    event_metadata: dict[str, Any] | None = None,
    recorded_by: str | None = None,
    commit: bool = True,
) -> CustodyEvent:
    """Append an observation or transaction event to an existing chain.

    Events are append-only and do not change the chain's quantities.
    """
    data = CustodyEventCreate(
        chain_id=chain_id,
        event_type=event_type,
        business_step=business_step,
        disposition=disposition,
        quantity=quantity,
        uom=uom,
        location=location,
        location_id=location_id,
        source_object_id=source_object_id,
        destination_object_id=destination_object_id,
        event_metadata=event_metadata,
        recorded_by=recorded_by,
    )
    with unit_of_work(db, commit):
        _load_chain(db, data.chain_id)
        event = CustodyEvent(**data.model_dump())
        db.add(event)

    logger.debug("Recorded %s event on chain %s", data.event_type.value, data.chain_id)
    return event


def split_chain(
    db: Session,
    parent_chain_id: str,
    splits: Sequence[dict[str, Any]] | Sequence[Any],
    process_location_id: int | None = None,
    notes: str | None = None,
    *,
    processed_by: str | None = None,
    commit: bool = True,
) -> SplitResult:
    """Divide part or all of a chain's remaining quantity into child chains.

    Each child inherits the parent's product type, batch number and harvest
    date. The parent loses the split total and completes when nothing is left.
    """
    request = SplitChainRequest(
        parent_chain_id=parent_chain_id,
        splits=list(splits),
        process_location_id=process_location_id,
        notes=notes,
    )

    with unit_of_work(db, commit):
        parent = _load_chain(db, request.parent_chain_id)
        split_total = total(quantize(s.quantity) for s in request.splits)
        if split_total > parent.remaining_quantity:
            raise InsufficientQuantityError(parent.chain_id, split_total, parent.remaining_quantity)

        children: list[CustodyChain] = []
        for split in request.splits:
            quantity = quantize(split.quantity)
            child = CustodyChain(
                chain_id=new_split_chain_id(),
                source_facility_id=parent.destination_facility_id,
                destination_facility_id=split.destination_facility_id,
                product_type=parent.product_type,
                total_quantity=quantity,
                remaining_quantity=quantity,
                status=ChainStatusEnum.ACTIVE,
                quality_grade=split.quality_grade or parent.quality_grade,
                batch_number=parent.batch_number,
                harvest_date=parent.harvest_date,
                expiry_date=parent.expiry_date,
            )
            db.add(child)
            children.append(child)
            db.add(_custody_event(
                child.chain_id,
                CustodyEventTypeEnum.AGGREGATION,
                BusinessStepEnum.PROCESSING,
                quantity,
                location_id=request.process_location_id,
                source_object_id=parent.chain_id,
                metadata={"parent_chain_id": parent.chain_id, "operation": "split"},
                recorded_by=processed_by,
            ))

        parent.consume(split_total)

        event = MassBalanceEvent(
            event_type=MassBalanceEventTypeEnum.SPLIT,
            parent_chain_id=parent.chain_id,
            input_quantity=split_total,
            output_quantity=split_total,
            conversion_rate=Decimal("1"),
            waste_quantity=ZERO,
            process_location_id=request.process_location_id,
            processed_by=processed_by,
            notes=request.notes,
        )
        event.link_chains(ChainRoleEnum.INPUT, [parent.chain_id])
        event.link_chains(ChainRoleEnum.OUTPUT, [c.chain_id for c in children])
        db.add(event)

    logger.info(
        "Split chain %s into %d children (%s), %s remaining",
        parent.chain_id, len(children), split_total, parent.remaining_quantity,
    )
    return SplitResult(parent_chain=parent, child_chains=children, mass_balance_event=event)


def merge_chains(
    db: Session,
    parent_chain_ids: Sequence[str],
    product_type: str,
    destination_facility_id: int | None = None,
    process_location_id: int | None = None,
    quality_grade: str | None = None,
    notes: str | None = None,
    *,
    processed_by: str | None = None,
    commit: bool = True,
) -> MergeResult:
    """Combine the full remaining quantity of several chains into one new chain.

    Every parent is drawn down to zero and completed. A parent with nothing
    left is refused rather than merged as an empty contribution.
    """
    request = MergeChainsRequest(
        parent_chain_ids=list(parent_chain_ids),
        product_type=product_type,
        destination_facility_id=destination_facility_id,
        process_location_id=process_location_id,
        quality_grade=quality_grade,
        notes=notes,
    )

    with unit_of_work(db, commit):
        parents = [_load_chain(db, chain_id) for chain_id in request.parent_chain_ids]
        for parent in parents:
            if parent.remaining_quantity <= 0:
                raise InsufficientQuantityError(
                    parent.chain_id, ZERO, parent.remaining_quantity,
                    message=f"Chain {parent.chain_id} has no remaining quantity to merge",
                )

        mismatched = sorted({p.product_type for p in parents} - {request.product_type})
        if mismatched:
            logger.warning(
                "Merging %s into %s changes product type from %s",
                request.parent_chain_ids, request.product_type, ", ".join(mismatched),
            )

        merged_total = total(p.remaining_quantity for p in parents)
        merged = CustodyChain(
            chain_id=new_merge_chain_id(),
            source_facility_id=request.process_location_id,
            destination_facility_id=request.destination_facility_id,
            product_type=request.product_type,
            total_quantity=merged_total,
            remaining_quantity=merged_total,
            status=ChainStatusEnum.ACTIVE,
            quality_grade=request.quality_grade,
            batch_number=new_merged_batch_number(),
        )
        db.add(merged)

        for parent in parents:
            parent.consume(parent.remaining_quantity)

        db.add(_custody_event(
            merged.chain_id,
            CustodyEventTypeEnum.AGGREGATION,
            BusinessStepEnum.PROCESSING,
            merged_total,
            location_id=request.process_location_id,
            metadata={"parent_chain_ids": list(request.parent_chain_ids), "operation": "merge"},
            recorded_by=processed_by,
        ))

        event = MassBalanceEvent(
            event_type=MassBalanceEventTypeEnum.MERGE,
            parent_chain_id=None,
            input_quantity=merged_total,
            output_quantity=merged_total,
            conversion_rate=Decimal("1"),
            waste_quantity=ZERO,
            process_location_id=request.process_location_id,
            processed_by=processed_by,
            notes=request.notes,
        )
        event.link_chains(ChainRoleEnum.INPUT, list(request.parent_chain_ids))
        event.link_chains(ChainRoleEnum.OUTPUT, [merged.chain_id])
        db.add(event)

    logger.info("Merged %d chains into %s (%s)", len(parents), merged.chain_id, merged_total)
    return MergeResult(merged_chain=merged, parent_chains=parents, mass_balance_event=event)


def transform_chain(
    db: Session,
    source_chain_id: str,
    input_quantity: Decimal | int | float | str,
    output_product_type: str,
    conversion_rate: Decimal | float | str,
    destination_facility_id: int | None = None,
    process_location_id: int | None = None,
    quality_grade: str | None = None,
    notes: str | None = None,
    *,
    processed_by: str | None = None,
    commit: bool = True,
) -> TransformResult:
    """Process part of a chain into a different product at a yield rate.

    output = input × rate, waste = input − output; the source chain loses
    the input quantity.
    """
    request = TransformChainRequest(
        source_chain_id=source_chain_id,
        input_quantity=input_quantity,
        output_product_type=output_product_type,
        conversion_rate=conversion_rate,
        destination_facility_id=destination_facility_id,
        process_location_id=process_location_id,
        quality_grade=quality_grade,
        notes=notes,
    )
    consumed = quantize(request.input_quantity)
    output = quantize(consumed * request.conversion_rate)
    waste = consumed - output

    with unit_of_work(db, commit):
        source = _load_chain(db, request.source_chain_id)
        if consumed > source.remaining_quantity:
            raise InsufficientQuantityError(source.chain_id, consumed, source.remaining_quantity)

        transformed = CustodyChain(
            chain_id=new_transform_chain_id(),
            source_facility_id=request.process_location_id,
            destination_facility_id=request.destination_facility_id,
            product_type=request.output_product_type,
            total_quantity=output,
            remaining_quantity=output,
            status=ChainStatusEnum.ACTIVE,
            quality_grade=request.quality_grade,
            batch_number=new_transform_batch_number(),
        )
        db.add(transformed)

        source.consume(consumed)

        db.add(_custody_event(
            transformed.chain_id,
            CustodyEventTypeEnum.TRANSFORMATION,
            BusinessStepEnum.PROCESSING,
            output,
            location_id=request.process_location_id,
            source_object_id=source.chain_id,
            metadata={
                "source_chain_id": source.chain_id,
                "input_product_type": source.product_type,
                "conversion_rate": str(request.conversion_rate),
            },
            recorded_by=processed_by,
        ))

        event = MassBalanceEvent(
            event_type=MassBalanceEventTypeEnum.TRANSFORMATION,
            parent_chain_id=source.chain_id,
            input_quantity=consumed,
            output_quantity=output,
            conversion_rate=request.conversion_rate,
            waste_quantity=waste,
            process_location_id=request.process_location_id,
            processed_by=processed_by,
            notes=request.notes,
        )
        event.link_chains(ChainRoleEnum.INPUT, [source.chain_id])
        event.link_chains(ChainRoleEnum.OUTPUT, [transformed.chain_id])
        db.add(event)

    logger.info(
        "Transformed %s %s of %s into %s %s (%s), waste %s",
        consumed, source.product_type, source.chain_id,
        output, transformed.product_type, transformed.chain_id, waste,
    )
    return TransformResult(source_chain=source, transformed_chain=transformed, mass_balance_event=event)


def get_chain(db: Session, chain_id: str) -> CustodyChain:
    return _load_chain(db, chain_id)


def list_custody_chains(
    db: Session,
    status: ChainStatusEnum | str | None = None,
    product_type: str | None = None,
) -> list[CustodyChain]:
    query = db.query(CustodyChain)
    if status is not None:
        query = query.filter(CustodyChain.status == ChainStatusEnum(status))
    if product_type is not None:
        query = query.filter(CustodyChain.product_type == product_type)
    return query.order_by(CustodyChain.created_at.desc(), CustodyChain.chain_id).all()


def list_custody_events(
    db: Session,
    chain_id: str | None = None,
    facility_id: int | None = None,
    limit: int | None = None,
) -> list[CustodyEvent]:
    """Custody events in event-time order, optionally for one chain or one location."""
    query = db.query(CustodyEvent)
    if chain_id is not None:
        query = query.filter(CustodyEvent.chain_id == chain_id)
    if facility_id is not None:
        query = query.filter(CustodyEvent.location_id == facility_id)
    query = query.order_by(CustodyEvent.event_time, CustodyEvent.event_id)
    if limit is not None:
        query = query.limit(limit)
    return query.all()
