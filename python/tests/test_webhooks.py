"""
Tests for ark_console.webhooks module.

The daemon is a mocked wallet; merchant endpoints are served by
httpx.MockTransport and every delivery is recorded.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from ark_console.types import InvoiceStatusResult
from ark_console.webhooks import (
    ChargeReconciler,
    WebhookDispatcher,
    build_webhook_payload,
)


WEBHOOK_URL = "https://merchant.example/hooks/ark"


class MerchantEndpoint:
    """Records webhook deliveries and answers with a fixed status."""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error(f"{self.error.__name__} for {request.url}", request=request)
        return httpx.Response(self.status_code)

    @property
    def bodies(self):
        return [json.loads(call.content) for call in self.calls]


def make_reconciler(store, wallet, endpoint, timeout=10.0) -> ChargeReconciler:
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    return ChargeReconciler(store, wallet, WebhookDispatcher(timeout, http=http))


def status(value: str) -> InvoiceStatusResult:
    return InvoiceStatusResult(success=True, status=value)


async def _create(store, payment_hash="h1", webhook_url=WEBHOOK_URL, **kwargs):
    return await store.create(
        amount_sat=kwargs.pop("amount_sat", 5000),
        payment_hash=payment_hash,
        invoice="lnbc50u1...",
        webhook_url=webhook_url,
        **kwargs,
    )


class TestBuildWebhookPayload:
    """Tests for the canonical webhook body."""

    async def test_payload_fields(self, charge_store):
        charge = await _create(charge_store, description="Coffee", metadata={"order": 7})
        payload = build_webhook_payload(charge)

        assert set(payload) == {
            "id", "amountSat", "description", "status", "paymentHash",
            "invoice", "metadata", "createdAt", "updatedAt",
        }
        assert payload["metadata"] == {"order": 7}
        assert payload["createdAt"] == charge.created_at.isoformat()

    async def test_missing_metadata_is_null(self, charge_store):
        charge = await _create(charge_store)
        assert build_webhook_payload(charge)["metadata"] is None

    async def test_empty_metadata_object_kept(self, charge_store):
        charge = await _create(charge_store, metadata={})
        assert build_webhook_payload(charge)["metadata"] == {}


class TestProcessPending:
    """Tests for ChargeReconciler.process_pending."""

    async def test_webhook_success(self, charge_store, mock_wallet):
        """Settled charge: paid, webhook success, exactly one POST."""
        endpoint = MerchantEndpoint(200)
        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("settled")

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        stored = await charge_store.get(charge.id)
        assert stored.status == "paid"
        assert stored.webhook_status == "success"
        assert len(endpoint.calls) == 1
        body = endpoint.bodies[0]
        assert body["id"] == charge.id
        assert body["amountSat"] == 5000
        assert body["status"] == "paid"
        assert endpoint.calls[0].headers["content-type"] == "application/json"
        assert stats.model_dump() == {"processed": 1, "settled": 1, "webhooks_sent": 1}
        mock_wallet.check_lightning_status.assert_awaited_once_with("h1")

    async def test_paid_status_counts_as_settled(self, charge_store, mock_wallet):
        await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("paid")
        stats = await make_reconciler(charge_store, mock_wallet, MerchantEndpoint()).process_pending()
        assert stats.settled == 1

    async def test_no_webhook_url(self, charge_store, mock_wallet):
        endpoint = MerchantEndpoint()
        charge = await _create(charge_store, webhook_url=None)
        mock_wallet.check_lightning_status.return_value = status("settled")

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        stored = await charge_store.get(charge.id)
        assert stored.status == "paid"
        assert stored.webhook_status == "pending"
        assert stats.webhooks_sent == 0
        assert endpoint.calls == []

    @pytest.mark.parametrize("error", [httpx.ConnectError, httpx.ReadTimeout])
    async def test_webhook_failure_keeps_funds(self, charge_store, mock_wallet, error):
        """Endpoint errors mark the webhook failed but the charge stays paid."""
        endpoint = MerchantEndpoint(error=error)
        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("settled")

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        stored = await charge_store.get(charge.id)
        assert stored.status == "paid"
        assert stored.webhook_status == "failed"
        assert len(endpoint.calls) == 1
        assert stats.settled == 1
        assert stats.webhooks_sent == 0

    async def test_non_httpx_error_is_failure(self, charge_store, mock_wallet):
        """Errors outside httpx's hierarchy still resolve to a failed webhook."""
        calls = []

        def endpoint(request):
            calls.append(request)
            raise OSError("connection reset by peer")

        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("settled")

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        stored = await charge_store.get(charge.id)
        assert stored.status == "paid"
        assert stored.webhook_status == "failed"
        assert len(calls) == 1
        assert stats.webhooks_sent == 0

    async def test_invalid_webhook_url_is_failure(self, charge_store, mock_wallet):
        endpoint = MerchantEndpoint()
        charge = await _create(charge_store, webhook_url="http://[::1")
        mock_wallet.check_lightning_status.return_value = status("settled")

        await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        stored = await charge_store.get(charge.id)
        assert stored.status == "paid"
        assert stored.webhook_status == "failed"
        assert endpoint.calls == []

    async def test_corrupt_metadata_is_failure(self, charge_store, mock_wallet):
        endpoint = MerchantEndpoint()
        charge = await _create(charge_store)
        corrupt = charge.model_copy(update={"metadata": "{not json"})
        dispatcher = WebhookDispatcher(http=httpx.AsyncClient(transport=httpx.MockTransport(endpoint)))

        assert await dispatcher.send(WEBHOOK_URL, corrupt) is False
        assert endpoint.calls == []

    async def test_non_2xx_is_failure(self, charge_store, mock_wallet):
        endpoint = MerchantEndpoint(500)
        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("settled")

        await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        assert (await charge_store.get(charge.id)).webhook_status == "failed"

    async def test_failed_webhook_not_retried(self, charge_store, mock_wallet):
        """A paid charge leaves the pending set; no second attempt happens."""
        endpoint = MerchantEndpoint(500)
        await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("settled")
        reconciler = make_reconciler(charge_store, mock_wallet, endpoint)

        await reconciler.process_pending()
        stats = await reconciler.process_pending()

        assert stats.processed == 0
        assert len(endpoint.calls) == 1

    async def test_pending_left_alone(self, charge_store, mock_wallet):
        charge = await _create(charge_store)
        stats = await make_reconciler(charge_store, mock_wallet, MerchantEndpoint()).process_pending()
        assert stats.model_dump() == {"processed": 1, "settled": 0, "webhooks_sent": 0}
        assert (await charge_store.get(charge.id)).status == "pending"

    async def test_status_check_failure_skips(self, charge_store, mock_wallet):
        """Unreachable daemon: charge stays pending, nothing settled."""
        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = InvoiceStatusResult(
            success=False, message="Network error: unable to reach wallet daemon"
        )
        endpoint = MerchantEndpoint()

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        assert stats.settled == 0
        assert (await charge_store.get(charge.id)).status == "pending"
        assert endpoint.calls == []

    async def test_expired_charge(self, charge_store, mock_wallet):
        endpoint = MerchantEndpoint()
        charge = await _create(charge_store)
        mock_wallet.check_lightning_status.return_value = status("expired")

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        assert (await charge_store.get(charge.id)).status == "expired"
        assert stats.settled == 0
        assert endpoint.calls == []

    async def test_failure_isolated_per_charge(self, charge_store, mock_wallet):
        """An exception on one charge does not stop the others."""
        await _create(charge_store, "boom")
        ok = await _create(charge_store, "h2")

        async def check(payment_hash):
            if payment_hash == "boom":
                raise RuntimeError("unexpected")
            return status("settled")

        mock_wallet.check_lightning_status = AsyncMock(side_effect=check)
        endpoint = MerchantEndpoint()

        stats = await make_reconciler(charge_store, mock_wallet, endpoint).process_pending()

        assert stats.processed == 2
        assert stats.settled == 1
        assert (await charge_store.get(ok.id)).status == "paid"

    async def test_load_failure_propagates(self, mock_wallet):
        store = AsyncMock()
        store.list_pending.side_effect = RuntimeError("database unavailable")
        with pytest.raises(RuntimeError):
            await make_reconciler(store, mock_wallet, MerchantEndpoint()).process_pending()

    async def test_concurrent_passes_send_one_webhook(self, charge_store, mock_wallet):
        """Overlapping passes against the same charge deliver once."""
        endpoint = MerchantEndpoint()
        await _create(charge_store)

        async def slow_settled(payment_hash):
            await asyncio.sleep(0.01)
            return status("settled")

        mock_wallet.check_lightning_status = AsyncMock(side_effect=slow_settled)
        reconciler = make_reconciler(charge_store, mock_wallet, endpoint)

        first, second = await asyncio.gather(
            reconciler.process_pending(), reconciler.process_pending()
        )

        assert first.processed == second.processed == 1
        assert first.settled + second.settled == 1
        assert first.webhooks_sent + second.webhooks_sent == 1
        assert len(endpoint.calls) == 1


class TestRunForever:
    """Tests for the background sweep loop."""

    async def test_sweeps_until_cancelled(self, charge_store, mock_wallet):
        reconciler = make_reconciler(charge_store, mock_wallet, MerchantEndpoint())
        calls = []

        async def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("db")

        reconciler.process_pending = sweep

        task = asyncio.create_task(reconciler.run_forever(0.01))
        await asyncio.sleep(0.035)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(calls) >= 2
