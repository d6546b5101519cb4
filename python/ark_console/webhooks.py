"""
Location: python/ark_console/webhooks.py

Summary:
    Charge settlement reconciler. Polls the daemon for every pending
    charge, records settlement, and notifies the merchant with at most
    one webhook attempt per settlement.

Usage:
    Triggered externally (GET /v1/cron/webhooks) or by the optional
    background sweep. Fund state is recorded before the webhook is
    attempted and is never rolled back when the webhook fails.

Example:
    from ark_console.webhooks import ChargeReconciler

    reconciler = ChargeReconciler(store, wallet)
    stats = await reconciler.process_pending()
    print(stats.settled, stats.webhooks_sent)
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from .charges import ChargeStore, load_metadata
from .types import Charge, InvoiceStatusResult, WebhookStats


logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 10.0

SETTLED_STATUSES = frozenset({"settled", "paid"})
EXPIRED_STATUS = "expired"


class PaymentStatusSource(Protocol):
    """The part of WalletClient the reconciler needs."""

    async def check_lightning_status(self, payment_hash: str) -> InvoiceStatusResult:
        ...


def build_webhook_payload(charge: Charge) -> dict[str, Any]:
    """
    Canonical webhook body for a charge.

    Metadata is parsed back from its stored JSON text; timestamps are
    ISO-8601.
    """
    return {
        "id": charge.id,
        "amountSat": charge.amount_sat,
        "description": charge.description,
        "status": charge.status,
        "paymentHash": charge.payment_hash,
        "invoice": charge.invoice,
        "metadata": load_metadata(charge.metadata),
        "createdAt": charge.created_at.isoformat(),
        "updatedAt": charge.updated_at.isoformat(),
    }


class WebhookDispatcher:
    """
    Posts charge notifications to merchant endpoints.

    Attributes:
        timeout: Upper bound for one delivery attempt in seconds
    """

    def __init__(self, timeout: float = WEBHOOK_TIMEOUT, http: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def send(self, url: str, charge: Charge) -> bool:
        """
        Deliver one webhook.

        Returns:
            True on a 2xx response; False on any other status or on any
            error raised while building or posting the payload
        """
        try:
            payload = build_webhook_payload(charge)
            response = await self._http.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("Webhook dispatch failed for charge %s: %s", charge.id, exc)
            return False

        if not response.is_success:
            logger.warning(
                "Webhook for charge %s rejected with status %s", charge.id, response.status_code
            )
            return False
        return True


class ChargeReconciler:
    """
    Advances pending charges and dispatches settlement webhooks.

    Attributes:
        store: Charge persistence
        wallet: Source of Lightning payment status
        dispatcher: Webhook sender
    """

    def __init__(
        self,
        store: ChargeStore,
        wallet: PaymentStatusSource,
        dispatcher: Optional[WebhookDispatcher] = None,
    ):
        self.store = store
        self.wallet = wallet
        self.dispatcher = dispatcher or WebhookDispatcher()

    async def close(self) -> None:
        await self.dispatcher.close()

    async def process_pending(self) -> WebhookStats:
        """
        Run one reconciliation pass.

        A failure on one charge never affects the others. A failure to
        load the pending set propagates to the caller.

        Returns:
            Aggregate counts for the pass
        """
        stats = WebhookStats()
        pending = await self.store.list_pending()
        stats.processed = len(pending)

        for charge in pending:
            try:
                await self._reconcile(charge, stats)
            except Exception:
                logger.exception("Error processing charge %s", charge.id)

        if stats.settled:
            logger.info(
                "Reconciled %d charges: %d settled, %d webhooks sent",
                stats.processed, stats.settled, stats.webhooks_sent,
            )
        return stats

    async def _reconcile(self, charge: Charge, stats: WebhookStats) -> None:
        result = await self.wallet.check_lightning_status(charge.payment_hash)
        if not result.success:
            logger.warning(
                "Failed to check status for charge %s (hash: %s): %s",
                charge.id, charge.payment_hash, result.message,
            )
            return

        if result.status == EXPIRED_STATUS:
            if await self.store.mark_expired(charge.id):
                logger.info("Charge %s expired", charge.id)
            return

        if result.status not in SETTLED_STATUSES:
            return

        # Only the pass that wins the pending -> paid transition may notify.
        paid = await self.store.mark_paid(charge.id)
        if paid is None:
            logger.debug("Charge %s already settled by another pass", charge.id)
            return

        stats.settled += 1
        logger.info("Charge %s settled (%d sats)", paid.id, paid.amount_sat)

        if not paid.webhook_url:
            return

        delivered = await self.dispatcher.send(paid.webhook_url, paid)
        await self.store.update_webhook_status(paid.id, "success" if delivered else "failed")
        if delivered:
            stats.webhooks_sent += 1

    async def run_forever(self, interval: float) -> None:
        """Reconcile every `interval` seconds until cancelled."""
        while True:
            try:
                await self.process_pending()
            except Exception:
                logger.exception("Webhook sweep failed")
            await asyncio.sleep(interval)
