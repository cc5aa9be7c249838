"""
Tests for the typer command-line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from invoice_recon.cli import app


runner = CliRunner()


@pytest.fixture
def batch_dir(tmp_path, daikichi_csv):
    directory = tmp_path / "auction-0115"
    directory.mkdir()
    (directory / "items.csv").write_bytes(daikichi_csv)
    return directory


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "supplier.json"
    path.write_text(json.dumps({
        "productPriceTaxType": "excluded",
        "commissionTaxType": "excluded",
        "taxRate": 0.1,
    }), encoding="utf-8")
    return path


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_reconcile_writes_report(tmp_path, batch_dir, config_file):
    report = tmp_path / "report.json"
    store = tmp_path / "store.json"

    result = runner.invoke(app, [
        "reconcile",
        "--dir", str(batch_dir),
        "--supplier", "Daikichi",
        "--config", str(config_file),
        "--store", str(store),
        "--report", str(report),
    ])

    assert result.exit_code == 0
    assert "RECONCILIATION SUMMARY" in result.output
    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["systemAmount"] == 24200
    assert data["itemsSucceeded"] == 2
    assert store.exists()


def test_reconcile_fail_on_mismatch(tmp_path, batch_dir, config_file):
    result = runner.invoke(app, [
        "reconcile",
        "--dir", str(batch_dir),
        "--supplier", "Daikichi",
        "--config", str(config_file),
        "--store", str(tmp_path / "store.json"),
        "--fail-on-mismatch",
    ])

    assert result.exit_code == 1


def test_recompute_with_fee_override(tmp_path, batch_dir, config_file):
    store = tmp_path / "store.json"
    report = tmp_path / "report.json"
    runner.invoke(app, [
        "reconcile",
        "--dir", str(batch_dir),
        "--supplier", "Daikichi",
        "--config", str(config_file),
        "--store", str(store),
        "--report", str(report),
    ])
    run_id = json.loads(report.read_text(encoding="utf-8"))["runId"]

    result = runner.invoke(app, [
        "recompute",
        "--run-id", run_id,
        "--config", str(config_file),
        "--store", str(store),
        "--participation-fee", "3000",
        "--participation-fee-tax-type", "excluded",
    ])

    assert result.exit_code == 0
    assert "¥27,500" in result.output


def test_recompute_unknown_run(tmp_path, config_file):
    result = runner.invoke(app, [
        "recompute",
        "--run-id", "missing",
        "--config", str(config_file),
        "--store", str(tmp_path / "s.json"),
    ])
    assert result.exit_code == 1


def test_recompute_requires_config(tmp_path):
    store = tmp_path / "s.json"
    result = runner.invoke(app, ["recompute", "--run-id", "missing", "--store", str(store)])

    assert result.exit_code == 2
    assert not store.exists()


def test_extract_csv(tmp_path, batch_dir):
    output = tmp_path / "items.json"

    result = runner.invoke(app, [
        "extract",
        "--file", str(batch_dir / "items.csv"),
        "--supplier", "Daikichi",
        "--output", str(output),
    ])

    assert result.exit_code == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert [item["productId"] for item in data["items"]] == ["001-1", "001-2"]


def test_extract_unsupported_format(tmp_path):
    spreadsheet = tmp_path / "items.xlsx"
    spreadsheet.write_bytes(b"PK")

    result = runner.invoke(app, ["extract", "--file", str(spreadsheet), "--supplier", "Daikichi"])

    assert result.exit_code == 1
