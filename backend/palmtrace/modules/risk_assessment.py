"""Aggregate risk and EUDR/RSPO compliance over the nodes of a lineage trace.

Pure over its inputs: the result depends only on the node list and the
vocabulary in config/risk_assessment.yaml, never on node order.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import yaml

from palmtrace.config import settings
from palmtrace.schemas.lineage import ComplianceStatus, LineageNode, RiskAssessment, RiskFactor

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG: dict[str, Any] = {
    "risk_levels": ["low", "medium", "high", "critical"],
    "escalating_levels": ["high", "critical"],
    "legality_issue_floor": "high",
    "compliant_deforestation_levels": ["low"],
    "legality_issue_statuses": ["issues"],
    "rspo_certifications": ["RSPO"],
}

_RISK_CONFIG: dict[str, Any] | None = None


def load_risk_config() -> dict[str, Any]:
    global _RISK_CONFIG
    if _RISK_CONFIG is None:
        config_path = Path(settings.RISK_ASSESSMENT_CONFIG)
        loaded: dict[str, Any] = {}
        if not config_path.exists():
            logger.warning("risk_assessment.yaml not found at %s, using defaults", config_path)
        else:
            with open(config_path) as f:
                loaded = yaml.safe_load(f) or {}
        unknown = sorted(set(loaded) - set(_DEFAULT_CONFIG))
        if unknown:
            logger.warning("risk_assessment.yaml has unknown keys: %s", ", ".join(unknown))
        _RISK_CONFIG = {**_DEFAULT_CONFIG, **loaded}
    return _RISK_CONFIG


def reload_risk_config() -> dict[str, Any]:
    """Force-reload the risk vocabulary from disk (e.g. after YAML edits)."""
    global _RISK_CONFIG
    _RISK_CONFIG = None
    return load_risk_config()


def _value(raw: Any) -> Any:
    # Enum members and plain strings compare the same way
    return getattr(raw, "value", raw)


def assess_risk(nodes: Iterable[LineageNode]) -> RiskAssessment:
    config = load_risk_config()
    rank = {level: i for i, level in enumerate(config["risk_levels"])}
    escalating = set(config["escalating_levels"])
    compliant_deforestation = set(config["compliant_deforestation_levels"])
    issue_statuses = set(config["legality_issue_statuses"])
    rspo_names = {name.upper() for name in config["rspo_certifications"]}

    overall = config["risk_levels"][0]

    def ratchet(level: str) -> None:
        nonlocal overall
        if rank.get(level, -1) > rank[overall]:
            overall = level

    factors: list[RiskFactor] = []
    rspo = False

    for node in nodes:
        if node.risk_level in escalating:
            ratchet(node.risk_level)
            factors.append(RiskFactor(
                type="high_risk_entity",
                severity=node.risk_level,
                description=f"{node.type} {node.name} is rated {node.risk_level} risk",
                entity_id=node.id,
                entity_type=node.type,
            ))

        if node.type == "plot":
            deforestation = _value(node.data.get("deforestation_risk"))
            if deforestation is not None and deforestation not in compliant_deforestation:
                factors.append(RiskFactor(
                    type="deforestation_risk",
                    severity=str(deforestation),
                    description=f"Plot {node.name} has {deforestation} deforestation risk",
                    entity_id=node.id,
                    entity_type=node.type,
                ))

        legality = _value(node.data.get("legality_status"))
        if legality in issue_statuses:
            ratchet(config["legality_issue_floor"])
            factors.append(RiskFactor(
                type="legality_issue",
                severity="high",
                description=f"{node.type} {node.name} has unresolved legality issues",
                entity_id=node.id,
                entity_type=node.type,
            ))

        if any(str(c).upper() in rspo_names for c in node.certifications):
            rspo = True

    # Every factor is reported; only deforestation and legality block EUDR
    eudr_blocking = any(f.type in ("deforestation_risk", "legality_issue") for f in factors)
    return RiskAssessment(
        overall_risk=overall,
        risk_factors=factors,
        compliance=ComplianceStatus(
            eudr_compliant=not eudr_blocking,
            rspo_compliant=rspo,
            issues=[f.description for f in factors],
        ),
    )
