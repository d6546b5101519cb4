"""
Tests for ark_console.api module.

Exercises the FastAPI app through fastapi.testclient.TestClient with a
mocked wallet and in-memory stores.
"""

import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ark_console import __version__
from ark_console.api import create_app
from ark_console.config import Settings
from ark_console.types import ActionResult, InvoiceResult, InvoiceStatusResult


@pytest.fixture
def app(mock_wallet, charge_store, api_keys):
    return create_app(wallet=mock_wallet, store=charge_store, api_keys=api_keys)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth(api_key):
    return {"Authorization": f"Bearer {api_key}"}


def create_charge(client, auth, **body):
    payload = {"amount": 5000, **body}
    return client.post("/v1/charges", json=payload, headers=auth)


class TestCreateChargeAuth:
    """Bearer authentication on POST /v1/charges."""

    def test_missing_header(self, client, mock_wallet):
        response = client.post("/v1/charges", json={"amount": 5000})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        mock_wallet.create_lightning_invoice.assert_not_awaited()

    def test_unknown_key(self, client):
        response = create_charge(client, {"Authorization": "Bearer sk_live_nope"})
        assert response.status_code == 401

    def test_wrong_scheme(self, client, api_key):
        response = create_charge(client, {"Authorization": f"Basic {api_key}"})
        assert response.status_code == 401

    def test_scheme_case_insensitive(self, client, api_key):
        response = create_charge(client, {"Authorization": f"bearer {api_key}"})
        assert response.status_code == 201


class TestCreateCharge:
    """POST /v1/charges."""

    def test_success(self, client, auth, mock_wallet):
        response = create_charge(
            client, auth,
            description="Coffee",
            webhookUrl="https://merchant.example/hook",
            metadata={"order": 7},
        )

        assert response.status_code == 201
        body = response.json()
        assert set(body) == {"id", "invoice", "paymentHash", "status"}
        assert body["invoice"] == "lnbc1..."
        assert body["paymentHash"] == "h1"
        assert body["status"] == "pending"
        mock_wallet.create_lightning_invoice.assert_awaited_once_with(5000, "Coffee")

    def test_invalid_json(self, client, auth):
        response = client.post(
            "/v1/charges",
            content=b"{not json",
            headers={**auth, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON in request body"}

    def test_validation_error(self, client, auth, mock_wallet):
        response = create_charge(client, auth, amount=0)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation error"
        assert body["details"][0]["loc"] == ["amount"]
        mock_wallet.create_lightning_invoice.assert_not_awaited()

    def test_invalid_webhook_url(self, client, auth):
        response = create_charge(client, auth, webhookUrl="nope")
        assert response.status_code == 400

    def test_invoice_failure(self, client, auth, mock_wallet, charge_store):
        mock_wallet.create_lightning_invoice.return_value = InvoiceResult(
            success=False, message="Network error: unable to reach wallet daemon"
        )
        response = create_charge(client, auth)
        assert response.status_code == 502
        assert response.json() == {"error": "Network error: unable to reach wallet daemon"}
        assert len(charge_store) == 0

    def test_duplicate_hash_is_500(self, client, auth):
        assert create_charge(client, auth).status_code == 201
        response = create_charge(client, auth)
        assert response.status_code == 500
        assert "h1" in response.json()["error"]


class TestGetCharge:
    """GET /v1/charges/{id}."""

    def test_found(self, client, auth):
        created = create_charge(client, auth, description="Coffee", metadata={"order": 7}).json()

        response = client.get(f"/v1/charges/{created['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == created["id"]
        assert body["amountSat"] == 5000
        assert body["paymentHash"] == "h1"
        assert body["webhookStatus"] == "pending"
        assert body["metadata"] == '{"order": 7}'

    def test_not_found(self, client):
        response = client.get("/v1/charges/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Charge not found"}


class TestCronWebhooks:
    """GET/POST /v1/cron/webhooks."""

    def test_settles_pending(self, client, auth, mock_wallet):
        created = create_charge(client, auth).json()
        mock_wallet.check_lightning_status.return_value = InvoiceStatusResult(
            success=True, status="settled"
        )

        response = client.get("/v1/cron/webhooks")

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "settled": 1, "webhooks_sent": 0}
        assert client.get(f"/v1/charges/{created['id']}").json()["status"] == "paid"

    def test_post_trigger(self, client):
        response = client.post("/v1/cron/webhooks")
        assert response.status_code == 200
        assert response.json()["processed"] == 0

    def test_failure_is_500(self, mock_wallet, charge_store, api_keys):
        reconciler = AsyncMock()
        reconciler.process_pending.side_effect = RuntimeError("database unavailable")
        app = create_app(
            wallet=mock_wallet, store=charge_store, api_keys=api_keys, reconciler=reconciler
        )

        response = TestClient(app).get("/v1/cron/webhooks")

        assert response.status_code == 500
        assert response.json() == {"error": "database unavailable"}


class TestSystemStatus:
    """GET /api/system/status."""

    def test_online_signet(self, client):
        response = client.get("/api/system/status")
        assert response.status_code == 200
        assert response.json() == {"status": "online", "network": "signet", "version": __version__}

    def test_online_mainnet(self, client, mock_wallet):
        mock_wallet.fetch_ark_info.return_value = ActionResult(
            success=True, data={"network": "mainnet"}
        )
        assert client.get("/api/system/status").json()["network"] == "mainnet"

    def test_unknown_network_reported_as_signet(self, client, mock_wallet):
        mock_wallet.fetch_ark_info.return_value = ActionResult(
            success=True, data={"network": "regtest"}
        )
        assert client.get("/api/system/status").json()["network"] == "signet"

    def test_offline(self, client, mock_wallet):
        mock_wallet.fetch_ark_info.return_value = ActionResult(
            success=False, message="Network error: unable to reach wallet daemon"
        )
        response = client.get("/api/system/status")
        assert response.status_code == 503
        assert response.json() == {
            "status": "offline",
            "error": "Network error: unable to reach wallet daemon",
        }


class TestLifespan:
    """Startup and shutdown behavior."""

    def test_shutdown_closes_clients(self, mock_wallet, charge_store, api_keys):
        reconciler = AsyncMock()
        app = create_app(
            wallet=mock_wallet, store=charge_store, api_keys=api_keys, reconciler=reconciler
        )
        with TestClient(app):
            pass

        mock_wallet.close.assert_awaited_once()
        reconciler.close.assert_awaited_once()
        reconciler.run_forever.assert_not_called()

    def test_background_sweep(self, mock_wallet, charge_store, api_keys):
        reconciler = AsyncMock()
        settings = Settings(BARKD_URL="http://barkd.test", WEBHOOK_SWEEP_INTERVAL=0.01)
        app = create_app(
            settings, wallet=mock_wallet, store=charge_store, api_keys=api_keys, reconciler=reconciler
        )

        with TestClient(app):
            time.sleep(0.05)

        reconciler.run_forever.assert_awaited_once_with(0.01)
