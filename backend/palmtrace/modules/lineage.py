"""Lineage tracing over the physical supply-chain graph.

Traversal is an iterative depth-first walk with an explicit stack. Nodes
are keyed "type:id"; a node is expanded once, but every edge reaching it
is recorded. The walk stops early at max_depth, max_nodes or the
wall-clock timeout, and the trace is then marked truncated.

Edges always point downstream (source supplies target), whichever
direction the walk runs, so forward and backward traces of the same
stretch of supply chain share edge keys.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from time import monotonic
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from palmtrace.config import settings
from palmtrace.errors import InvalidReportType, NotFoundError, PersistenceError
from palmtrace.models.base import ReportStatusEnum, ReportTypeEnum
from palmtrace.models.lineage_report import LineageReport
from palmtrace.modules.lineage_resolvers import Connection, get_resolver
from palmtrace.modules.risk_assessment import assess_risk
from palmtrace.schemas.lineage import (
    Coordinates,
    LineageEdge,
    LineageNode,
    LineageReportRead,
    LineageReportRequest,
    LineageTrace,
)
from palmtrace.utils.identifiers import new_report_id

logger = logging.getLogger(__name__)

FORWARD = "forward"
BACKWARD = "backward"


@dataclass
class TraversalLimits:
    max_depth: int
    max_nodes: int
    timeout_seconds: float

    @classmethod
    def from_settings(
        cls,
        max_depth: int | None = None,
        max_nodes: int | None = None,
        timeout_seconds: float | None = None,
    ) -> "TraversalLimits":
        return cls(
            max_depth=settings.LINEAGE_MAX_DEPTH if max_depth is None else max_depth,
            max_nodes=settings.LINEAGE_MAX_NODES if max_nodes is None else max_nodes,
            timeout_seconds=settings.LINEAGE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds,
        )


def _node(entity_id: str, entity_type: str, level: int, resolved) -> LineageNode:
    return LineageNode(
        id=entity_id,
        type=entity_type,
        name=resolved.name,
        level=level,
        data=resolved.data,
        coordinates=Coordinates(**resolved.coordinates) if resolved.coordinates else None,
        risk_level=resolved.risk_level,
        certifications=resolved.certifications,
    )


def _edge(entity_id: str, entity_type: str, conn: Connection, direction: str) -> LineageEdge:
    here = (entity_id, entity_type)
    there = (conn.entity_id, conn.entity_type)
    (source, source_type), (target, target_type) = (here, there) if direction == FORWARD else (there, here)
    return LineageEdge(
        source=source,
        source_type=source_type,
        target=target,
        target_type=target_type,
        type=conn.connection_type,
        quantity=conn.quantity,
        date=conn.date,
        metadata=conn.metadata,
    )


def _walk(
    db: Session,
    entity_id: str,
    entity_type: str,
    direction: str,
    limits: TraversalLimits,
) -> tuple[list[LineageNode], list[LineageEdge], bool]:
    root = get_resolver(entity_type).load(db, entity_id)
    if root is None:
        raise NotFoundError(entity_type, entity_id)

    deadline = monotonic() + limits.timeout_seconds
    nodes: dict[str, LineageNode] = {}
    edges: list[LineageEdge] = []
    truncated = False

    stack: list[tuple[str, str, int]] = [(entity_id, entity_type, 0)]
    while stack:
        if monotonic() > deadline:
            logger.warning("Lineage %s trace from %s:%s timed out", direction, entity_type, entity_id)
            truncated = True
            break

        current_id, current_type, level = stack.pop()
        key = f"{current_type}:{current_id}"
        if key in nodes:
            continue

        resolver = get_resolver(current_type)
        resolved = root if not nodes else resolver.load(db, current_id)
        if resolved is None:
            # Dangling reference: the edge is kept, the node is not
            continue
        if len(nodes) >= limits.max_nodes:
            truncated = True
            break
        nodes[key] = _node(current_id, current_type, level, resolved)

        finder = resolver.forward if direction == FORWARD else resolver.backward
        connections = finder(db, current_id)
        if level >= limits.max_depth:
            if connections:
                truncated = True
            continue

        for conn in connections:
            edges.append(_edge(current_id, current_type, conn, direction))
        for conn in reversed(connections):
            if f"{conn.entity_type}:{conn.entity_id}" not in nodes:
                stack.append((conn.entity_id, conn.entity_type, level + 1))

    if truncated:
        logger.warning(
            "Lineage %s trace from %s:%s truncated at %d nodes",
            direction, entity_type, entity_id, len(nodes),
        )
    return list(nodes.values()), edges, truncated


def _trace(
    entity_id: str,
    entity_type: str,
    nodes: list[LineageNode],
    edges: list[LineageEdge],
    truncated: bool,
) -> LineageTrace:
    return LineageTrace(
        entity_id=entity_id,
        entity_type=entity_type,
        depth=max((n.level for n in nodes), default=0),
        total_nodes=len(nodes),
        truncated=truncated,
        nodes=nodes,
        edges=edges,
        risk_assessment=assess_risk(nodes),
    )


def trace_forward(
    db: Session,
    entity_id: str | int,
    entity_type: str,
    *,
    max_depth: int | None = None,
    max_nodes: int | None = None,
    timeout_seconds: float | None = None,
) -> LineageTrace:
    """Follow an entity downstream: where did this material go?"""
    limits = TraversalLimits.from_settings(max_depth, max_nodes, timeout_seconds)
    nodes, edges, truncated = _walk(db, str(entity_id), entity_type, FORWARD, limits)
    return _trace(str(entity_id), entity_type, nodes, edges, truncated)


def trace_backward(
    db: Session,
    entity_id: str | int,
    entity_type: str,
    *,
    max_depth: int | None = None,
    max_nodes: int | None = None,
    timeout_seconds: float | None = None,
) -> LineageTrace:
    """Follow an entity upstream: where did this material come from?"""
    limits = TraversalLimits.from_settings(max_depth, max_nodes, timeout_seconds)
    nodes, edges, truncated = _walk(db, str(entity_id), entity_type, BACKWARD, limits)
    return _trace(str(entity_id), entity_type, nodes, edges, truncated)


def get_full_lineage(
    db: Session,
    entity_id: str | int,
    entity_type: str,
    *,
    max_depth: int | None = None,
    max_nodes: int | None = None,
    timeout_seconds: float | None = None,
) -> LineageTrace:
    """Union of the forward and backward traces.

    Nodes are merged by "type:id" and edges by (source, target, type); a
    node found in both directions keeps the backward copy.
    """
    limits = TraversalLimits.from_settings(max_depth, max_nodes, timeout_seconds)
    entity_id = str(entity_id)
    f_nodes, f_edges, f_truncated = _walk(db, entity_id, entity_type, FORWARD, limits)
    b_nodes, b_edges, b_truncated = _walk(db, entity_id, entity_type, BACKWARD, limits)

    nodes = {n.key: n for n in f_nodes + b_nodes}
    edges = {e.key: e for e in f_edges + b_edges}
    return _trace(entity_id, entity_type, list(nodes.values()), list(edges.values()),
                  f_truncated or b_truncated)


_REPORT_TRACERS = {
    ReportTypeEnum.FORWARD_TRACE: trace_forward,
    ReportTypeEnum.BACKWARD_TRACE: trace_backward,
    ReportTypeEnum.FULL_LINEAGE: get_full_lineage,
}


def _export_url(report_id: str) -> str:
    return settings.REPORT_EXPORT_URL.format(report_id=report_id)


def _report_read(report: LineageReport) -> LineageReportRead:
    return LineageReportRead(
        report_id=report.report_id,
        report_type=report.report_type.value,
        target_entity_id=report.target_entity_id,
        target_entity_type=report.target_entity_type,
        lineage_data=report.lineage_data,
        generation_parameters=report.generation_parameters,
        total_nodes=report.total_nodes,
        total_levels=report.total_levels,
        truncated=report.truncated,
        export_format=report.export_format,
        status=report.status.value,
        generated_by=report.generated_by,
        generated_at=report.generated_at,
        export_url=_export_url(report.report_id),
    )


def generate_report(
    db: Session,
    request: LineageReportRequest | dict[str, Any],
    commit: bool = True,
) -> LineageReportRead:
    """Trace, snapshot and persist a lineage report.

    Raises InvalidReportType before any tracing for an unknown report type.
    """
    if not isinstance(request, LineageReportRequest):
        request = LineageReportRequest.model_validate(request)
    try:
        report_type = ReportTypeEnum(request.report_type)
    except ValueError:
        raise InvalidReportType(request.report_type) from None

    tracer = _REPORT_TRACERS[report_type]
    trace = tracer(db, request.target_entity_id, request.target_entity_type)

    report = LineageReport(
        report_id=new_report_id(),
        report_type=report_type,
        target_entity_id=request.target_entity_id,
        target_entity_type=request.target_entity_type,
        lineage_data=trace.model_dump(mode="json"),
        generation_parameters={"filters": request.filters} if request.filters else None,
        total_nodes=trace.total_nodes,
        total_levels=trace.depth,
        truncated=trace.truncated,
        export_format=request.export_format,
        status=ReportStatusEnum.COMPLETED,
        generated_by=request.generated_by,
    )
    try:
        db.add(report)
        if commit:
            db.commit()
        else:
            db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(str(exc)) from exc

    logger.info(
        "Generated %s report %s for %s:%s (%d nodes)",
        report_type.value, report.report_id, request.target_entity_type,
        request.target_entity_id, trace.total_nodes,
    )
    return _report_read(report)


def get_lineage_report(db: Session, report_id: str) -> LineageReportRead:
    report = db.query(LineageReport).filter(LineageReport.report_id == report_id).first()
    if report is None:
        raise NotFoundError("lineage_report", report_id)
    return _report_read(report)
