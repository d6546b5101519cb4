"""
Location: python/ark_console/pos.py

Summary:
    Point-of-sale payment session. Drives one checkout at a time through
    idle -> creating -> awaiting_payment -> paid | error, detecting
    Lightning payments by polling the invoice status and Ark payments by
    watching for a new VTXO to appear.

Usage:
    Polling runs as a cancellable asyncio task. reset() and close() stop
    it immediately; results that arrive for a transaction that has since
    been reset or replaced are discarded.

Example:
    from ark_console.pos import PaymentSession

    async with PaymentSession(wallet) as session:
        await session.start_transaction(1000, "lightning")
        print(session.invoice)
        state = await session.wait()
"""

import asyncio
import functools
import logging
from typing import Callable, Literal, Optional

from .errors import normalize_error
from .tasks import RepeatingTask


logger = logging.getLogger(__name__)

PaymentState = Literal["idle", "creating", "awaiting_payment", "paid", "error"]
PaymentMode = Literal["lightning", "ark"]

POLL_INTERVAL = 2.0
DEFAULT_DESCRIPTION = "POS Payment"

PAID_STATUSES = frozenset({"settled", "paid"})
TERMINAL_STATES = frozenset({"paid", "error"})


class PaymentSession:
    """
    State machine for a single POS checkout.

    Attributes:
        wallet: WalletClient (or anything with the same coroutine methods)
        poll_interval: Seconds between status checks
        on_change: Optional callable invoked with the session after every
            state change
    """

    def __init__(
        self,
        wallet,
        poll_interval: float = POLL_INTERVAL,
        on_change: Optional[Callable[["PaymentSession"], None]] = None,
    ):
        self.wallet = wallet
        self.poll_interval = poll_interval
        self.on_change = on_change

        self._state: PaymentState = "idle"
        self._mode: Optional[PaymentMode] = None
        self._invoice: Optional[str] = None
        self._payment_hash: Optional[str] = None
        self._error: Optional[str] = None
        self._initial_vtxo_count = 0

        self._epoch = 0
        self._poller: Optional[RepeatingTask] = None
        self._finished = asyncio.Event()

    @property
    def state(self) -> PaymentState:
        return self._state

    @property
    def mode(self) -> Optional[PaymentMode]:
        return self._mode

    @property
    def invoice(self) -> Optional[str]:
        """BOLT11 invoice, or the Ark address in ark mode."""
        return self._invoice

    @property
    def payment_hash(self) -> Optional[str]:
        return self._payment_hash

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.active

    async def __aenter__(self) -> "PaymentSession":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start_transaction(
        self,
        amount: int,
        mode: PaymentMode = "lightning",
        description: Optional[str] = None,
    ) -> None:
        """
        Begin a checkout. Any previous transaction is abandoned first.

        Args:
            amount: Amount in sats
            mode: "lightning" for an invoice, "ark" for an Ark address
            description: Invoice description (lightning only)

        Raises:
            ValueError: If mode is not recognized
        """
        if mode not in ("lightning", "ark"):
            raise ValueError(f"Unknown payment mode: {mode}")

        self._stop_polling()
        self._epoch += 1
        epoch = self._epoch

        self._mode = mode
        self._invoice = None
        self._payment_hash = None
        self._error = None
        self._finished = asyncio.Event()
        self._set_state("creating")

        try:
            if mode == "lightning":
                await self._start_lightning(epoch, amount, description or DEFAULT_DESCRIPTION)
            else:
                await self._start_ark(epoch)
        except Exception as exc:
            logger.exception("Failed to start %s transaction", mode)
            if epoch == self._epoch:
                self._fail(normalize_error(exc))

    async def _start_lightning(self, epoch: int, amount: int, description: str) -> None:
        result = await self.wallet.create_lightning_invoice(amount, description)
        if epoch != self._epoch:
            return

        if not result.success or not result.invoice:
            self._fail(result.message or "Failed to create invoice")
            return
        if not result.payment_hash:
            self._fail("Payment hash not returned from server")
            return

        self._invoice = result.invoice
        self._payment_hash = result.payment_hash
        self._set_state("awaiting_payment")
        self._start_polling(functools.partial(self._poll_lightning, epoch, result.payment_hash))

    async def _start_ark(self, epoch: int) -> None:
        snapshot = await self.wallet.list_vtxos()
        if epoch != self._epoch:
            return
        if not snapshot.success:
            self._fail(snapshot.message or "Failed to fetch VTXOs")
            return
        self._initial_vtxo_count = len(snapshot.vtxos)

        address = await self.wallet.get_ark_address()
        if epoch != self._epoch:
            return
        if not address.success or not address.address:
            self._fail(address.message or "Failed to generate Ark address")
            return

        self._invoice = address.address
        self._set_state("awaiting_payment")
        self._start_polling(functools.partial(self._poll_ark, epoch))

    async def _poll_lightning(self, epoch: int, payment_hash: str) -> bool:
        try:
            result = await self.wallet.check_lightning_status(payment_hash)
        except Exception as exc:
            logger.warning("Payment status check raised: %s", exc)
            return self._finish_poll(epoch, error=normalize_error(exc))

        if epoch != self._epoch:
            return True
        if not result.success:
            logger.warning("Payment status check failed: %s", result.message)
            return self._finish_poll(epoch, error="Failed to check payment status")
        if result.status in PAID_STATUSES:
            return self._finish_poll(epoch)
        if result.status == "expired":
            return self._finish_poll(epoch, error="Payment expired")
        return False

    async def _poll_ark(self, epoch: int) -> bool:
        try:
            result = await self.wallet.list_vtxos()
        except Exception as exc:
            logger.warning("VTXO poll raised: %s", exc)
            return self._finish_poll(epoch, error=normalize_error(exc))

        if epoch != self._epoch:
            return True
        if not result.success:
            logger.warning("VTXO poll failed: %s", result.message)
            return self._finish_poll(epoch, error=result.message or "Failed to fetch VTXOs")
        if len(result.vtxos) > self._initial_vtxo_count:
            return self._finish_poll(epoch)
        return False

    def _finish_poll(self, epoch: int, error: Optional[str] = None) -> bool:
        if epoch != self._epoch:
            return True
        self._poller = None
        if error is None:
            self._set_state("paid")
        else:
            self._fail(error)
        return True

    def reset(self) -> None:
        """Stop polling immediately and return to idle."""
        self._stop_polling()
        self._epoch += 1
        self._mode = None
        self._invoice = None
        self._payment_hash = None
        self._error = None
        self._initial_vtxo_count = 0
        self._set_state("idle")
        # release waiters of the abandoned transaction
        self._finished.set()
        self._finished = asyncio.Event()

    async def close(self) -> None:
        """Tear down: no status checks or state changes happen afterwards."""
        self._stop_polling()
        self._epoch += 1
        self._finished.set()

    async def wait(self) -> PaymentState:
        """Wait for paid or error (or a reset) and return the state."""
        if self._state in TERMINAL_STATES:
            return self._state
        await self._finished.wait()
        return self._state

    def _start_polling(self, callback) -> None:
        self._poller = RepeatingTask(callback, self.poll_interval).start()

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    def _fail(self, message: str) -> None:
        self._error = message
        self._set_state("error")

    def _set_state(self, state: PaymentState) -> None:
        logger.debug("POS session %s -> %s", self._state, state)
        self._state = state
        if state in TERMINAL_STATES:
            self._finished.set()
        if self.on_change is not None:
            self.on_change(self)
