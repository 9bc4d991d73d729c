"""Mass balance validation, efficiency reporting and anomaly detection.

Detection, not prevention: nothing here rejects data. Conservation
problems come back as discrepancies, statistical outliers as anomalies,
and both are left for review.

Conservation check per chain:
  variance = |Σinput − (Σoutput + Σwaste)|
  flagged when variance / Σinput > MASS_BALANCE_TOLERANCE

Conversion check per event (when a rate is recorded):
  flagged when |input × rate − output| > input × rate × MASS_BALANCE_TOLERANCE

Anomalies:
  conversion_rate_anomaly  rate more than ANOMALY_ZSCORE_THRESHOLD σ from the
                           mean of its event type (high above ANOMALY_HIGH_ZSCORE σ)
  quantity_anomaly         input above QUANTITY_ANOMALY_MULTIPLIER × mean input
"""
from __future__ import annotations

import logging
import statistics
from collections import Counter, defaultdict
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from palmtrace.config import settings
from palmtrace.errors import NotFoundError
from palmtrace.models.base import ChainRoleEnum, MassBalanceEventTypeEnum
from palmtrace.models.custody_chain import CustodyChain
from palmtrace.models.mass_balance_event import MassBalanceEvent, MassBalanceEventChain
from palmtrace.modules.chain_of_custody import unit_of_work
from palmtrace.schemas.mass_balance import (
    Anomaly,
    ChainEfficiency,
    ChainValidation,
    Discrepancy,
    FacilityEfficiency,
    MassBalanceEventCreate,
    TimeRange,
)
from palmtrace.utils.quantity import percentage, quantize, to_decimal, total

logger = logging.getLogger(__name__)


def _tolerance() -> Decimal:
    return to_decimal(settings.MASS_BALANCE_TOLERANCE)


def _as_time_range(time_range: TimeRange | dict[str, Any] | None) -> TimeRange | None:
    if time_range is None or isinstance(time_range, TimeRange):
        return time_range
    return TimeRange.model_validate(time_range)


def list_mass_balance_events(
    db: Session,
    chain_id: str | None = None,
    facility_id: int | None = None,
    time_range: TimeRange | dict[str, Any] | None = None,
) -> list[MassBalanceEvent]:
    """Mass balance events in process order.

    An event belongs to a chain when the chain is its parent or is linked
    to it as an input or output.
    """
    query = db.query(MassBalanceEvent)
    if chain_id is not None:
        query = query.filter(or_(
            MassBalanceEvent.parent_chain_id == chain_id,
            MassBalanceEvent.chain_links.any(MassBalanceEventChain.chain_id == chain_id),
        ))
    if facility_id is not None:
        query = query.filter(MassBalanceEvent.process_location_id == facility_id)
    window = _as_time_range(time_range)
    if window is not None:
        query = query.filter(
            MassBalanceEvent.process_date >= window.start,
            MassBalanceEvent.process_date <= window.end,
        )
    return query.order_by(MassBalanceEvent.process_date, MassBalanceEvent.event_id).all()


def _conversion_discrepancy(event: MassBalanceEvent, tolerance: Decimal) -> Discrepancy | None:
    if event.conversion_rate is None:
        return None
    expected = to_decimal(event.input_quantity) * to_decimal(event.conversion_rate)
    actual = to_decimal(event.output_quantity)
    variance = abs(expected - actual)
    if variance <= expected * tolerance:
        return None
    return Discrepancy(
        type="conversion_rate",
        expected=quantize(expected),
        actual=actual,
        variance=quantize(variance),
        description=(
            f"Event {event.event_id}: output {actual} deviates from expected "
            f"{quantize(expected)} at conversion rate {event.conversion_rate}"
        ),
        event_id=event.event_id,
    )


def validate_chain(db: Session, chain_id: str) -> ChainValidation:
    """Check conservation over every mass balance event tied to a chain."""
    if db.get(CustodyChain, chain_id) is None:
        raise NotFoundError("custody_chain", chain_id)

    events = list_mass_balance_events(db, chain_id=chain_id)
    tolerance = _tolerance()

    total_input = total(e.input_quantity for e in events)
    total_output = total(e.output_quantity for e in events)
    total_waste = total(e.waste_quantity for e in events)
    accounted = total_output + total_waste
    variance = abs(total_input - accounted)

    discrepancies: list[Discrepancy] = []
    # Output with no input at all is never balanced
    if (total_input > 0 and variance / total_input > tolerance) or (total_input == 0 and accounted > 0):
        discrepancies.append(Discrepancy(
            type="mass_balance",
            expected=total_input,
            actual=accounted,
            variance=variance,
            description=(
                f"Output {total_output} plus waste {total_waste} does not balance "
                f"input {total_input} (variance {variance})"
            ),
        ))

    for event in events:
        discrepancy = _conversion_discrepancy(event, tolerance)
        if discrepancy is not None:
            discrepancies.append(discrepancy)

    if discrepancies:
        logger.info("Chain %s failed mass balance validation: %d discrepancies", chain_id, len(discrepancies))

    return ChainValidation(
        chain_id=chain_id,
        is_valid=not discrepancies,
        total_input=total_input,
        total_output=total_output,
        total_waste=total_waste,
        efficiency=_efficiency(total_output, total_input),
        discrepancies=discrepancies,
    )


def record_event(
    db: Session,
    *,
    event_type: MassBalanceEventTypeEnum | str,
    input_quantity: Decimal | int | float | str,
    output_quantity: Decimal | int | float | str,
    conversion_rate: Decimal | float | str | None = None,
    waste_quantity: Decimal | int | float | str = 0,
    parent_chain_id: str | None = None,
    child_chain_ids: Sequence[str] = (),
    input_chain_ids: Sequence[str] = (),
    process_location_id: int | None = None,
    processed_by: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> MassBalanceEvent:
    """Persist a mass balance event. A rate/output mismatch is logged, not rejected."""
    data = MassBalanceEventCreate(
        event_type=event_type,
        input_quantity=input_quantity,
        output_quantity=output_quantity,
        conversion_rate=conversion_rate,
        waste_quantity=waste_quantity,
        parent_chain_id=parent_chain_id,
        child_chain_ids=list(child_chain_ids),
        input_chain_ids=list(input_chain_ids),
        process_location_id=process_location_id,
        processed_by=processed_by,
        notes=notes,
    )

    if data.conversion_rate is not None:
        expected = data.input_quantity * data.conversion_rate
        if abs(data.output_quantity - expected) > expected * _tolerance():
            logger.warning(
                "Mass balance mismatch for %s event: output %s, expected %s (input %s × rate %s)",
                data.event_type.value, data.output_quantity, quantize(expected),
                data.input_quantity, data.conversion_rate,
            )

    inputs = list(data.input_chain_ids)
    if data.parent_chain_id is not None and data.parent_chain_id not in inputs:
        inputs.insert(0, data.parent_chain_id)

    with unit_of_work(db, commit):
        for chain_id in dict.fromkeys(inputs + data.child_chain_ids):
            if db.get(CustodyChain, chain_id) is None:
                raise NotFoundError("custody_chain", chain_id)
        event = MassBalanceEvent(
            event_type=data.event_type,
            parent_chain_id=data.parent_chain_id,
            input_quantity=quantize(data.input_quantity),
            output_quantity=quantize(data.output_quantity),
            conversion_rate=data.conversion_rate,
            waste_quantity=quantize(data.waste_quantity),
            process_location_id=data.process_location_id,
            processed_by=data.processed_by,
            notes=data.notes,
        )
        event.link_chains(ChainRoleEnum.INPUT, inputs)
        event.link_chains(ChainRoleEnum.OUTPUT, data.child_chain_ids)
        db.add(event)

    logger.info("Recorded %s mass balance event %s", data.event_type.value, event.event_id)
    return event


def _efficiency(total_output: Decimal, total_input: Decimal) -> Decimal | None:
    """Aggregate output over aggregate input, as a percentage."""
    rate = percentage(total_output, total_input)
    return None if rate is None else quantize(rate)


def get_chain_efficiency(
    db: Session,
    chain_id: str,
    time_range: TimeRange | dict[str, Any] | None = None,
) -> ChainEfficiency:
    events = list_mass_balance_events(db, chain_id=chain_id, time_range=time_range)
    total_input = total(e.input_quantity for e in events)
    total_output = total(e.output_quantity for e in events)
    return ChainEfficiency(
        chain_id=chain_id,
        event_count=len(events),
        total_input=total_input,
        total_output=total_output,
        total_waste=total(e.waste_quantity for e in events),
        average_efficiency=_efficiency(total_output, total_input),
    )


def get_facility_efficiency(
    db: Session,
    facility_id: int,
    time_range: TimeRange | dict[str, Any] | None = None,
) -> FacilityEfficiency:
    events = list_mass_balance_events(db, facility_id=facility_id, time_range=time_range)
    by_type = Counter(MassBalanceEventTypeEnum(e.event_type).value for e in events)
    total_input = total(e.input_quantity for e in events)
    total_output = total(e.output_quantity for e in events)
    return FacilityEfficiency(
        facility_id=facility_id,
        total_events=len(events),
        total_input=total_input,
        total_output=total_output,
        total_waste=total(e.waste_quantity for e in events),
        average_efficiency=_efficiency(total_output, total_input),
        events_by_type=dict(by_type),
    )


def detect_anomalies(
    db: Session,
    facility_id: int | None = None,
    time_range: TimeRange | dict[str, Any] | None = None,
) -> list[Anomaly]:
    """Flag statistical outliers among recorded mass balance events."""
    events = list_mass_balance_events(db, facility_id=facility_id, time_range=time_range)
    anomalies: list[Anomaly] = []

    threshold = to_decimal(settings.ANOMALY_ZSCORE_THRESHOLD)
    high_threshold = to_decimal(settings.ANOMALY_HIGH_ZSCORE)

    by_type: dict[str, list[MassBalanceEvent]] = defaultdict(list)
    for e in events:
        if e.conversion_rate is not None:
            by_type[MassBalanceEventTypeEnum(e.event_type).value].append(e)

    for event_type, group in by_type.items():
        rates = [to_decimal(e.conversion_rate) for e in group]
        if len(rates) < 2:
            continue
        mean = statistics.mean(rates)
        std = statistics.pstdev(rates)
        if std == 0:
            continue
        low, high = mean - threshold * std, mean + threshold * std
        for e, rate in zip(group, rates):
            z = abs(rate - mean) / std
            if z <= threshold:
                continue
            anomalies.append(Anomaly(
                event_id=e.event_id,
                type="conversion_rate_anomaly",
                severity="high" if z > high_threshold else "medium",
                description=(
                    f"Conversion rate {rate} for {event_type} is {z:.2f} standard "
                    f"deviations from the mean {mean:.4f}"
                ),
                event_type=event_type,
                value=rate,
                expected_range={"min": quantize(low), "max": quantize(high)},
            ))

    quantities = [to_decimal(e.input_quantity) for e in events]
    if quantities:
        average_input = statistics.mean(quantities)
        limit = average_input * to_decimal(settings.QUANTITY_ANOMALY_MULTIPLIER)
        if average_input > 0:
            for e, quantity in zip(events, quantities):
                if quantity > limit:
                    anomalies.append(Anomaly(
                        event_id=e.event_id,
                        type="quantity_anomaly",
                        severity="medium",
                        description=(
                            f"Input quantity {quantity} exceeds {settings.QUANTITY_ANOMALY_MULTIPLIER:g}x "
                            f"the average {quantize(average_input)}"
                        ),
                        event_type=MassBalanceEventTypeEnum(e.event_type).value,
                        value=quantity,
                        average_value=quantize(average_input),
                    ))

    if anomalies:
        logger.info("Detected %d mass balance anomalies across %d events", len(anomalies), len(events))
    return anomalies
