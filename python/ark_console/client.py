"""
Location: python/ark_console/client.py

Summary:
    WalletClient exposes every wallet daemon operation used by the
    console, the POS and the charges API. Commands validate their input
    before any network call and return ActionResult values; queries
    validate daemon payloads and fall back to safe defaults.

Usage:
    Build one DaemonGateway per process and wrap it. The POS session and
    the charge reconciler only depend on the small subset of methods they
    call, so tests can substitute a MagicMock/AsyncMock.

Example:
    from ark_console import DaemonGateway, WalletClient

    async with WalletClient(DaemonGateway("http://localhost:3000")) as wallet:
        result = await wallet.send_onchain_payment("tb1q...", 2500)
        balances = await wallet.fetch_balances()
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel, TypeAdapter, ValidationError

from .activity import build_activity_feed
from .errors import validation_message
from .gateway import DaemonGateway
from .schemas import (
    CreateInvoiceInput,
    OnboardInput,
    SendArkInput,
    SendLightningInput,
    SendOnchainInput,
    VtxoSelection,
)
from .types import (
    ActionResult,
    ActivityItem,
    AddressResult,
    ArkMovement,
    Balance,
    ExitProgress,
    InvoiceResult,
    InvoiceStatusResult,
    NodeInfo,
    PendingRound,
    Transaction,
    Utxo,
    Vtxo,
    VtxoListResult,
)


logger = logging.getLogger(__name__)


class WalletClient:
    """
    High-level wallet daemon client.

    Attributes:
        gateway: The DaemonGateway all requests go through
    """

    def __init__(self, gateway: DaemonGateway):
        self.gateway = gateway

    async def close(self) -> None:
        await self.gateway.close()

    async def __aenter__(self) -> "WalletClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def send_ark_payment(
        self,
        destination: str,
        amount: int,
        comment: Optional[str] = None,
    ) -> ActionResult:
        """
        Send an Ark (L2) payment.

        Args:
            destination: Ark address, at least 10 characters
            amount: Amount in sats, at least 10,000
            comment: Optional payment comment

        Returns:
            ActionResult; validation failures never reach the daemon
        """
        try:
            payload = SendArkInput(destination=destination, amount=amount, comment=comment)
        except ValidationError as exc:
            return ActionResult(success=False, message=validation_message(exc))

        result = await self.gateway.call(
            "/wallet/send",
            body={
                "destination": payload.destination,
                "amount_sat": payload.amount,
                "comment": payload.comment,
            },
        )
        return _with_message(result, "Ark payment sent")

    async def send_onchain_payment(self, destination: str, amount: int) -> ActionResult:
        """
        Send an on-chain (L1) payment.

        Args:
            destination: Testnet/signet address (tb1, m or n prefix)
            amount: Amount in sats, at least the 546 sat dust limit
        """
        try:
            payload = SendOnchainInput(destination=destination, amount=amount)
        except ValidationError as exc:
            return ActionResult(success=False, message=validation_message(exc))

        result = await self.gateway.call(
            "/onchain/send",
            body={"destination": payload.destination, "amount_sat": payload.amount},
        )
        return _with_message(result, "On-chain payment sent")

    async def send_lightning_payment(
        self,
        destination: str,
        amount: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> ActionResult:
        """Pay a Lightning invoice; the amount may be embedded in it."""
        try:
            payload = SendLightningInput(destination=destination, amount=amount, comment=comment)
        except ValidationError as exc:
            return ActionResult(success=False, message=validation_message(exc))

        body: dict[str, Any] = {"destination": payload.destination}
        if payload.amount is not None:
            body["amount_sat"] = payload.amount
        if payload.comment:
            body["comment"] = payload.comment

        result = await self.gateway.call("/lightning/pay", body=body)
        return _with_message(result, "Lightning payment sent")

    async def create_lightning_invoice(
        self,
        amount: int,
        description: str = "POS Payment",
    ) -> InvoiceResult:
        """
        Request a BOLT11 invoice from the daemon.

        Args:
            amount: Amount in sats, at least 1
            description: Invoice description

        Returns:
            InvoiceResult with invoice and payment_hash on success
        """
        try:
            payload = CreateInvoiceInput(amount=amount, description=description or "POS Payment")
        except ValidationError as exc:
            return InvoiceResult(success=False, message=validation_message(exc))

        result = await self.gateway.call(
            "/lightning/receives/invoice",
            body={"amount_sat": payload.amount, "description": payload.description},
        )
        if not result.success:
            return InvoiceResult(success=False, message=result.message or "Failed to create invoice")

        data = result.data if isinstance(result.data, dict) else {}
        invoice = data.get("invoice")
        if not isinstance(invoice, str) or not invoice:
            logger.warning("Invoice response missing 'invoice': %r", result.data)
            return InvoiceResult(success=False, message="Failed to create invoice")

        payment_hash = data.get("payment_hash")
        return InvoiceResult(
            success=True,
            data=data,
            invoice=invoice,
            payment_hash=payment_hash if isinstance(payment_hash, str) else None,
        )

    async def check_lightning_status(self, payment_hash: str) -> InvoiceStatusResult:
        """
        Query the settlement status of a Lightning receive.

        Returns:
            InvoiceStatusResult whose status is e.g. "pending", "settled",
            "paid" or "expired"
        """
        result = await self.gateway.call(
            f"/lightning/receives/{quote(payment_hash, safe='')}", method="GET"
        )
        if not result.success:
            return InvoiceStatusResult(success=False, message=result.message)

        status = result.data.get("status") if isinstance(result.data, dict) else None
        if not isinstance(status, str):
            return InvoiceStatusResult(
                success=False, message="Malformed payment status response"
            )
        return InvoiceStatusResult(success=True, data=result.data, status=status)

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    async def get_onchain_address(self) -> AddressResult:
        """Generate the next on-chain receive address."""
        return await self._next_address("/onchain/addresses/next")

    async def get_ark_address(self) -> AddressResult:
        """Generate the next Ark receive address."""
        return await self._next_address("/wallet/addresses/next")

    async def _next_address(self, path: str) -> AddressResult:
        result = await self.gateway.call(path)
        if not result.success:
            return AddressResult(success=False, message=result.message)

        address = result.data.get("address") if isinstance(result.data, dict) else None
        if not isinstance(address, str) or not address:
            logger.warning("Address response missing 'address': %r", result.data)
            return AddressResult(success=False, message="Invalid response format from daemon")
        return AddressResult(success=True, data=result.data, address=address)

    # ------------------------------------------------------------------
    # Coin management
    # ------------------------------------------------------------------

    async def refresh_vtxos(self, vtxo_ids: list[str]) -> ActionResult:
        """Refresh specific VTXOs in the next round."""
        try:
            selection = VtxoSelection(vtxos=vtxo_ids)
        except ValidationError:
            return ActionResult(success=False, message="Select at least one VTXO")

        result = await self.gateway.call("/wallet/refresh/vtxos", body={"vtxos": selection.vtxos})
        return _with_message(result, "Refresh scheduled")

    async def refresh_all_vtxos(self) -> ActionResult:
        result = await self.gateway.call("/wallet/refresh/all")
        return _with_message(result, "Refresh scheduled for all VTXOs")

    async def exit_all(self) -> ActionResult:
        """Start a unilateral exit of every VTXO (emergency exit)."""
        result = await self.gateway.call("/exits/start/all")
        return _with_message(result, "Emergency exit started")

    async def offboard_vtxos(
        self,
        vtxo_ids: list[str],
        destination: Optional[str] = None,
    ) -> ActionResult:
        """Cooperatively move VTXOs back on-chain."""
        try:
            selection = VtxoSelection(vtxos=vtxo_ids)
        except ValidationError:
            return ActionResult(success=False, message="Select at least one VTXO")

        body: dict[str, Any] = {"vtxos": selection.vtxos}
        if destination:
            body["destination"] = destination
        result = await self.gateway.call("/wallet/offboard/vtxos", body=body)
        return _with_message(result, "Offboard scheduled")

    async def claim_vtxo(
        self,
        vtxo_id: str,
        destination: Optional[str] = None,
    ) -> ActionResult:
        """
        Sweep a claimable exit output to an on-chain address.

        Args:
            vtxo_id: The exited VTXO
            destination: Target address; a fresh wallet address is
                generated when omitted
        """
        if not destination:
            address = await self.get_onchain_address()
            if not address.success:
                return ActionResult(
                    success=False,
                    message=f"Could not get a claim address: {address.message}",
                )
            destination = address.address

        result = await self.gateway.call(
            "/exits/claim/vtxos",
            body={"vtxos": [vtxo_id], "destination": destination},
        )
        return _with_message(result, "Claim broadcast")

    async def onboard_funds(self, amount: int) -> ActionResult:
        """Board confirmed L1 funds into a VTXO."""
        try:
            payload = OnboardInput(amount=amount)
        except ValidationError as exc:
            return ActionResult(success=False, message=validation_message(exc))

        result = await self.gateway.call("/boards/board-amount", body={"amount_sat": payload.amount})
        return _with_message(result, "Onboarding started")

    async def sync_node(self) -> ActionResult:
        """Synchronize the Ark wallet, then the on-chain wallet."""
        wallet = await self.gateway.call("/wallet/sync")
        onchain = await self.gateway.call("/onchain/sync")
        if not wallet.success:
            return wallet
        if not onchain.success:
            return onchain
        return ActionResult(success=True, message="Wallet synchronized")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def fetch_balances(self) -> Balance:
        """
        Aggregate L1 and Ark balances.

        Both endpoints are queried concurrently. Any failure yields a zero
        balance so dashboards keep rendering.
        """
        ark, onchain = await asyncio.gather(
            self.gateway.call("/wallet/balance", method="GET"),
            self.gateway.call("/onchain/balance", method="GET"),
        )
        if not (ark.success and onchain.success):
            logger.warning("Balance fetch failed: %s", ark.message or onchain.message)
            return Balance()

        ark_data = ark.data if isinstance(ark.data, dict) else {}
        onchain_data = onchain.data if isinstance(onchain.data, dict) else {}
        try:
            return Balance(
                onchain_confirmed=onchain_data.get("confirmed_sat"),
                onchain_total=onchain_data.get("total_sat"),
                onchain_pending=onchain_data.get("trusted_pending_sat"),
                ark_spendable=ark_data.get("spendable_sat"),
            )
        except ValidationError as exc:
            logger.warning("Balance validation failed: %s", exc)
            return Balance()

    async def fetch_node_info(self) -> NodeInfo:
        """Tip height and network; each part is optional."""
        tip, ark_info = await asyncio.gather(
            self.gateway.call("/bitcoin/tip", method="GET"),
            self.fetch_ark_info(),
        )

        block_height = None
        if tip.success and isinstance(tip.data, dict) and isinstance(tip.data.get("tip_height"), int):
            block_height = tip.data["tip_height"]

        network = "unknown"
        pubkey = None
        if ark_info.success and isinstance(ark_info.data, dict):
            network = ark_info.data.get("network") or network
            pubkey = ark_info.data.get("server_pubkey")

        return NodeInfo(network=network, pubkey=pubkey, block_height=block_height)

    async def fetch_ark_info(self) -> ActionResult:
        """Raw Ark server info (network, server_pubkey, ...)."""
        return await self.gateway.call("/wallet/ark-info", method="GET")

    async def fetch_transactions(self) -> list[Transaction]:
        return await self._fetch_list("/onchain/transactions", Transaction)

    async def fetch_movements(self) -> list[ArkMovement]:
        return await self._fetch_list("/wallet/movements", ArkMovement)

    async def list_vtxos(self) -> VtxoListResult:
        """List wallet VTXOs, reporting failure separately from emptiness."""
        result = await self.gateway.call("/wallet/vtxos", method="GET")
        if not result.success:
            return VtxoListResult(success=False, message=result.message)
        try:
            vtxos = TypeAdapter(list[Vtxo]).validate_python(result.data or [])
        except ValidationError as exc:
            logger.warning("VTXO data malformed: %s", exc)
            return VtxoListResult(success=False, message="Malformed VTXO list from daemon")
        return VtxoListResult(success=True, data=result.data, vtxos=vtxos)

    async def fetch_vtxos(self) -> list[Vtxo]:
        return (await self.list_vtxos()).vtxos

    async def fetch_utxos(self) -> list[Utxo]:
        return await self._fetch_list("/onchain/utxos", Utxo)

    async def fetch_exit_progress(self) -> list[ExitProgress]:
        return await self._fetch_list("/exits/status", ExitProgress)

    async def fetch_pending_rounds(self) -> list[PendingRound]:
        return await self._fetch_list("/wallet/rounds", PendingRound)

    async def fetch_activity(self) -> list[ActivityItem]:
        """Classified exits and rounds at the current tip height."""
        exits, rounds, info = await asyncio.gather(
            self.fetch_exit_progress(),
            self.fetch_pending_rounds(),
            self.fetch_node_info(),
        )
        return build_activity_feed(exits, rounds, info.block_height or 0)

    async def _fetch_list(self, path: str, model: type[BaseModel]) -> list:
        """GET a daemon list, skipping entries that fail validation."""
        result = await self.gateway.call(path, method="GET")
        if not result.success:
            return []
        if not isinstance(result.data, list):
            if result.data:
                logger.warning("Expected a list from %s, got %s", path, type(result.data).__name__)
            return []

        items = []
        for index, entry in enumerate(result.data):
            try:
                items.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping malformed entry %d from %s: %s", index, path, exc)
        return items


def _with_message(result: ActionResult, success_message: str) -> ActionResult:
    if result.success and not result.message:
        return result.model_copy(update={"message": success_message})
    return result
