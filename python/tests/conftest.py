"""
Shared pytest fixtures for ark-console tests.

This module provides common fixtures used across all test files,
including daemon payload samples, a mocked wallet client and fresh
in-memory stores.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ark_console.charges import MemoryApiKeyStore, MemoryChargeStore
from ark_console.gateway import DaemonGateway
from ark_console.types import (
    ActionResult,
    AddressResult,
    InvoiceResult,
    InvoiceStatusResult,
    Vtxo,
    VtxoListResult,
)


TEST_API_KEY = "sk_live_testkey0123456789"


def make_vtxos(count: int) -> list[Vtxo]:
    """Spendable VTXOs with distinct ids."""
    return [
        Vtxo(id=f"vtxo{i}:0", amount_sat=10_000 + i, expiry_height=900_000, state={"type": "spendable"})
        for i in range(count)
    ]


@pytest.fixture
def vtxo_list():
    """Factory for a successful VtxoListResult with `count` coins."""
    def factory(count: int) -> VtxoListResult:
        return VtxoListResult(success=True, vtxos=make_vtxos(count))
    return factory


@pytest.fixture
def make_gateway():
    """Factory for a DaemonGateway whose HTTP traffic is served by `handler`."""
    def factory(handler) -> DaemonGateway:
        return DaemonGateway(
            "http://barkd.test",
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
    return factory


@pytest.fixture
def mock_wallet():
    """WalletClient stand-in with coroutine methods."""
    wallet = MagicMock()
    wallet.create_lightning_invoice = AsyncMock(
        return_value=InvoiceResult(success=True, invoice="lnbc1...", payment_hash="h1")
    )
    wallet.check_lightning_status = AsyncMock(
        return_value=InvoiceStatusResult(success=True, status="pending")
    )
    wallet.list_vtxos = AsyncMock(
        return_value=VtxoListResult(success=True, vtxos=make_vtxos(3))
    )
    wallet.get_ark_address = AsyncMock(
        return_value=AddressResult(success=True, address="tark1qexampleaddress")
    )
    wallet.sync_node = AsyncMock(return_value=ActionResult(success=True))
    wallet.fetch_ark_info = AsyncMock(
        return_value=ActionResult(success=True, data={"network": "signet", "server_pubkey": "02ab"})
    )
    wallet.close = AsyncMock()
    return wallet


@pytest.fixture
def charge_store():
    """Empty in-memory charge store."""
    return MemoryChargeStore()


@pytest.fixture
def api_key():
    """The active merchant key held by `api_keys`."""
    return TEST_API_KEY


@pytest.fixture
def api_keys():
    """Key store holding one active key."""
    return MemoryApiKeyStore([TEST_API_KEY])


@pytest.fixture
def awaiting_delta_exit():
    """Exit waiting for its timelock, claimable at height 810_010."""
    return {
        "vtxo_id": "f00dbabe1234567890abcdef:0",
        "state": {
            "type": "awaiting-delta",
            "tip_height": 810_000,
            "confirmed_block": "810000:00000000000000000001c0ffee",
            "claimable_height": 810_010,
        },
    }


@pytest.fixture
def processing_exit():
    """Exit with a confirmed tx followed by a CPFP broadcast."""
    return {
        "vtxo_id": "deadbeef:1",
        "state": {
            "type": "processing",
            "tip_height": 810_000,
            "transactions": [
                {"txid": "tx-confirmed", "status": {"type": "confirmed"}},
                {"txid": "tx-cpfp", "status": {"type": "broadcast-with-cpfp"}},
                {"txid": "tx-last", "status": {"type": "awaiting-input-confirmation"}},
            ],
        },
    }


@pytest.fixture
def pending_round():
    """Round consolidating two VTXOs, broadcast but unconfirmed."""
    return {
        "id": 42,
        "kind": "PendingConfirmation",
        "round_txid": "abc123",
        "input_vtxos": ["vtxo-a:0", "vtxo-b:1"],
    }
