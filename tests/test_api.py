"""
Tests for the FastAPI endpoints.
"""

import json

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from invoice_recon.api import app, get_store
from invoice_recon.store import InMemoryStore


EXCLUDED_CONFIG = {
    "productPriceTaxType": "excluded",
    "commissionTaxType": "excluded",
    "taxRate": 0.1,
    "roundingConfig": {"calculationType": "total", "roundingMode": "floor"},
}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def api_store() -> InMemoryStore:
    store = InMemoryStore()
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_store) -> TestClient:
    return TestClient(app)


def post_batch(client, files, config=EXCLUDED_CONFIG, **form):
    data = {
        "supplier_name": "Daikichi",
        "batch_key": "auction-0115",
        "supplier_config": json.dumps(config),
        **form,
    }
    return client.post("/reconcile", files=files, data=data)


# ============================================================================
# Endpoints
# ============================================================================

class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0"}


class TestReconcileEndpoint:
    """Tests for POST /reconcile."""

    def test_csv_without_invoice(self, client, daikichi_csv):
        response = post_batch(client, [("files", ("items.csv", daikichi_csv, "text/csv"))])

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["itemsSucceeded"] == 2
        assert body["systemAmount"] == 24200
        assert body["invoiceAmount"] is None
        assert body["hasAmountMismatch"] is True

    @patch("invoice_recon.reconciler.extract_text_from_pdf_bytes", return_value="合計24,200円")
    def test_csv_with_invoice(self, _mock_extract, client, daikichi_csv):
        files = [
            ("files", ("items.csv", daikichi_csv, "text/csv")),
            ("files", ("invoice.pdf", b"%PDF-1.4 invoice", "application/pdf")),
        ]

        body = post_batch(client, files).json()

        assert body["invoiceAmount"] == 24200
        assert body["amountDifference"] == 0
        assert body["hasAmountMismatch"] is False

    def test_invalid_config_json(self, client, daikichi_csv):
        response = client.post(
            "/reconcile",
            files=[("files", ("items.csv", daikichi_csv, "text/csv"))],
            data={"supplier_name": "Daikichi", "batch_key": "b1", "supplier_config": "{not json"},
        )
        assert response.status_code == 422

    def test_invalid_config_values(self, client, daikichi_csv):
        response = post_batch(
            client,
            [("files", ("items.csv", daikichi_csv, "text/csv"))],
            config={"taxRate": -0.1},
        )
        assert response.status_code == 422


class TestRunEndpoints:
    """Tests for run lookup and fee edits."""

    @pytest.fixture
    def run_id(self, client, daikichi_csv):
        with patch("invoice_recon.reconciler.extract_text_from_pdf_bytes", return_value="合計24,200円"):
            files = [
                ("files", ("items.csv", daikichi_csv, "text/csv")),
                ("files", ("invoice.pdf", b"%PDF-1.4 invoice", "application/pdf")),
            ]
            return post_batch(client, files).json()["runId"]

    def test_get_run(self, client, run_id):
        response = client.get(f"/runs/{run_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["runId"] == run_id
        assert body["batchKey"] == "auction-0115"
        assert body["status"] == "success"

    def test_get_unknown_run(self, client):
        assert client.get("/runs/missing").status_code == 404

    def test_edit_fees(self, client, run_id):
        response = client.patch(
            f"/runs/{run_id}/fees",
            json={
                "overrides": {"participationFee": 3000, "participationFeeTaxType": "excluded"},
                "supplierConfig": EXCLUDED_CONFIG,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["systemAmount"] == 27500
        assert body["amountDifference"] == 3300
        assert body["hasAmountMismatch"] is True

    def test_edit_fees_unknown_run(self, client):
        response = client.patch("/runs/missing/fees", json={"overrides": {}})
        assert response.status_code == 404
