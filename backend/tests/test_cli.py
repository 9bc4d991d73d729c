"""Tests for the palmtrace CLI commands."""
from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from palmtrace.cli import app
from palmtrace.errors import PersistenceError
from palmtrace.modules.chain_of_custody import create_chain
from palmtrace.modules.mass_balance import record_event


runner = CliRunner()


@pytest.fixture
def cli_db(db):
    """Route the CLI's SessionLocal to the in-memory test session."""
    with patch("palmtrace.database.SessionLocal", return_value=db):
        yield db


# ---------------------------------------------------------------------------
# init-db / demo
# ---------------------------------------------------------------------------


@patch("palmtrace.database.init_db")
def test_init_db(mock_init):
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    mock_init.assert_called_once()
    assert "Database ready" in result.output


@patch("palmtrace.database.init_db")
def test_demo_seeds_and_suggests_commands(mock_init, cli_db):
    result = runner.invoke(app, ["demo"])
    assert result.exit_code == 0
    mock_init.assert_called_once()
    assert "Demo data loaded" in result.output
    assert "palmtrace trace custody_chain" in result.output


# ---------------------------------------------------------------------------
# validate-chain
# ---------------------------------------------------------------------------


def test_validate_chain_valid(cli_db):
    chain = create_chain(cli_db, product_type="FFB", total_quantity=Decimal("100"))
    record_event(cli_db, event_type="transformation", parent_chain_id=chain.chain_id,
                 input_quantity=100, output_quantity=95, waste_quantity=5)
    result = runner.invoke(app, ["validate-chain", chain.chain_id])
    assert result.exit_code == 0
    assert "valid" in result.output


def test_validate_chain_invalid_exits_2(cli_db):
    chain = create_chain(cli_db, product_type="FFB", total_quantity=Decimal("100"))
    record_event(cli_db, event_type="transformation", parent_chain_id=chain.chain_id,
                 input_quantity=100, output_quantity=95, waste_quantity=0)
    result = runner.invoke(app, ["validate-chain", chain.chain_id])
    assert result.exit_code == 2
    assert "INVALID" in result.output
    assert "mass_balance" in result.output


def test_validate_chain_unknown(cli_db):
    result = runner.invoke(app, ["validate-chain", "CHAIN-NOPE"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_validate_chain_storage_failure(cli_db):
    with patch("palmtrace.modules.mass_balance.validate_chain",
               side_effect=PersistenceError("database is locked")):
        result = runner.invoke(app, ["validate-chain", "CHAIN-X"])
    assert result.exit_code == 1
    assert "Storage error: database is locked" in result.output


# ---------------------------------------------------------------------------
# trace / report
# ---------------------------------------------------------------------------


def test_trace_json(cli_db, demo):
    result = runner.invoke(app, ["trace", "custody_chain", demo["origin_chain_id"], "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["total_nodes"] == 4
    assert payload["entity_type"] == "custody_chain"


def test_trace_table_shows_risk(cli_db, demo):
    result = runner.invoke(app, ["trace", "shipment", str(demo["shipment_id"]), "-d", "backward"])
    assert result.exit_code == 0
    assert "Overall risk" in result.output
    assert "EUDR compliant" in result.output


def test_trace_unknown_direction(cli_db):
    result = runner.invoke(app, ["trace", "plot", "1", "--direction", "sideways"])
    assert result.exit_code == 1
    assert "Unknown direction" in result.output


def test_trace_unsupported_type(cli_db):
    result = runner.invoke(app, ["trace", "vessel", "1"])
    assert result.exit_code == 1
    assert "Unsupported" in result.output


def test_report_generated(cli_db, demo):
    result = runner.invoke(app, ["report", "forward_trace", "plot", str(demo["plot_id"]), "--by", "qa"])
    assert result.exit_code == 0
    assert "LIN-" in result.output
    assert "/export" in result.output


def test_report_invalid_type(cli_db, demo):
    result = runner.invoke(app, ["report", "sideways", "plot", str(demo["plot_id"])])
    assert result.exit_code == 1
    assert "Invalid report type" in result.output


# ---------------------------------------------------------------------------
# anomalies / efficiency
# ---------------------------------------------------------------------------


def test_anomalies_none(cli_db, demo):
    result = runner.invoke(app, ["anomalies"])
    assert result.exit_code == 0
    assert "No anomalies" in result.output


def test_efficiency_requires_one_scope(cli_db):
    result = runner.invoke(app, ["efficiency"])
    assert result.exit_code == 1
    assert "exactly one" in result.output


def test_efficiency_for_facility(cli_db, demo):
    result = runner.invoke(app, ["efficiency", "--facility", str(demo["mill_id"])])
    assert result.exit_code == 0
    assert "split: 1" in result.output
    assert "transformation: 1" in result.output
