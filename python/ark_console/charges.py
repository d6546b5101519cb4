"""
Location: python/ark_console/charges.py

Summary:
    Persistence protocols for merchant charges and API keys, plus the
    in-memory implementations. The settlement transition is a guarded
    check-then-set so that overlapping reconciliation passes never both
    win the same charge.

Usage:
    The reconciler and the HTTP API depend only on the ChargeStore and
    ApiKeyStore protocols. MemoryChargeStore suits tests and single
    process deployments; see db.SqlChargeStore for a relational store.

Example:
    from ark_console.charges import MemoryChargeStore

    store = MemoryChargeStore()
    charge = await store.create(amount_sat=1000, payment_hash="h1", invoice="lnbc1...")

    updated = await store.mark_paid(charge.id)
    if updated:
        # this caller owns the settlement and its webhook
        ...
"""

import asyncio
import json
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from .errors import ArkConsoleError
from .types import ApiKey, Charge, ChargeStatus, WebhookStatus


API_KEY_PREFIX = "sk_live_"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_charge_id() -> str:
    return uuid.uuid4().hex


def generate_api_key() -> str:
    """Random API key such as "sk_live_3f9c..."."""
    return f"{API_KEY_PREFIX}{secrets.token_hex(20)}"


def dump_metadata(metadata: Optional[dict[str, Any]]) -> Optional[str]:
    return json.dumps(metadata) if metadata is not None else None


def load_metadata(raw: Optional[str]) -> Any:
    """Parse stored metadata JSON text; None when absent."""
    return json.loads(raw) if raw else None


class DuplicatePaymentHashError(ArkConsoleError, ValueError):
    """Raised when a charge is created with an already stored payment hash."""
    pass


class ChargeStore(Protocol):
    """
    Protocol for charge persistence.

    status only moves forward (pending -> paid, pending -> expired);
    mark_paid and mark_expired must be atomic with respect to each other
    and to concurrent callers.
    """

    async def create(
        self,
        *,
        amount_sat: int,
        payment_hash: str,
        invoice: str,
        description: Optional[str] = None,
        webhook_url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Charge:
        """
        Persist a new pending charge.

        Raises:
            DuplicatePaymentHashError: If payment_hash is already stored
        """
        ...

    async def get(self, charge_id: str) -> Optional[Charge]:
        ...

    async def get_by_hash(self, payment_hash: str) -> Optional[Charge]:
        ...

    async def list_pending(self) -> list[Charge]:
        ...

    async def mark_paid(self, charge_id: str) -> Optional[Charge]:
        """
        Transition pending -> paid.

        Returns:
            The updated charge if this call performed the transition,
            None if the charge is missing or no longer pending
        """
        ...

    async def mark_expired(self, charge_id: str) -> Optional[Charge]:
        """Transition pending -> expired; same contract as mark_paid."""
        ...

    async def update_webhook_status(
        self, charge_id: str, status: WebhookStatus
    ) -> Optional[Charge]:
        ...


class ApiKeyStore(Protocol):
    """Protocol for merchant API key persistence."""

    async def create(self, label: Optional[str] = None) -> ApiKey:
        ...

    async def is_active(self, key: str) -> bool:
        ...

    async def deactivate(self, key: str) -> bool:
        ...


class MemoryChargeStore:
    """
    In-memory charge store for development and testing.

    WARNING: Data is lost when the process restarts, and is not shared
    across processes. Use db.SqlChargeStore for production.
    """

    def __init__(self):
        self._charges: dict[str, Charge] = {}
        self._by_hash: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        *,
        amount_sat: int,
        payment_hash: str,
        invoice: str,
        description: Optional[str] = None,
        webhook_url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Charge:
        async with self._lock:
            if payment_hash in self._by_hash:
                raise DuplicatePaymentHashError(f"Payment hash already exists: {payment_hash}")
            now = utcnow()
            charge = Charge(
                id=new_charge_id(),
                amount_sat=amount_sat,
                description=description,
                webhook_url=webhook_url,
                payment_hash=payment_hash,
                invoice=invoice,
                metadata=dump_metadata(metadata),
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            self._charges[charge.id] = charge
            self._by_hash[payment_hash] = charge.id
            return charge

    async def get(self, charge_id: str) -> Optional[Charge]:
        return self._charges.get(charge_id)

    async def get_by_hash(self, payment_hash: str) -> Optional[Charge]:
        charge_id = self._by_hash.get(payment_hash)
        return self._charges.get(charge_id) if charge_id else None

    async def list_pending(self) -> list[Charge]:
        return [c for c in self._charges.values() if c.status == "pending"]

    async def mark_paid(self, charge_id: str) -> Optional[Charge]:
        return await self._transition(charge_id, "paid")

    async def mark_expired(self, charge_id: str) -> Optional[Charge]:
        return await self._transition(charge_id, "expired")

    async def update_webhook_status(
        self, charge_id: str, status: WebhookStatus
    ) -> Optional[Charge]:
        async with self._lock:
            charge = self._charges.get(charge_id)
            if charge is None:
                return None
            updated = charge.model_copy(update={"webhook_status": status, "updated_at": utcnow()})
            self._charges[charge_id] = updated
            return updated

    async def _transition(self, charge_id: str, status: ChargeStatus) -> Optional[Charge]:
        async with self._lock:
            charge = self._charges.get(charge_id)
            if charge is None or charge.status != "pending":
                return None
            updated = charge.model_copy(update={"status": status, "updated_at": utcnow()})
            self._charges[charge_id] = updated
            return updated

    def __len__(self) -> int:
        return len(self._charges)


class MemoryApiKeyStore:
    """In-memory API key store for development and testing."""

    def __init__(self, keys: Optional[list[str]] = None):
        self._keys: dict[str, ApiKey] = {}
        for key in keys or []:
            self._keys[key] = ApiKey(id=uuid.uuid4().hex, key=key, created_at=utcnow())

    async def create(self, label: Optional[str] = None) -> ApiKey:
        api_key = ApiKey(
            id=uuid.uuid4().hex,
            key=generate_api_key(),
            label=label,
            created_at=utcnow(),
        )
        self._keys[api_key.key] = api_key
        return api_key

    async def is_active(self, key: str) -> bool:
        api_key = self._keys.get(key)
        return bool(api_key and api_key.is_active)

    async def deactivate(self, key: str) -> bool:
        api_key = self._keys.get(key)
        if api_key is None:
            return False
        self._keys[key] = api_key.model_copy(update={"is_active": False})
        return True
