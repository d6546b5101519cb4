"""
Location: python/ark_console/db.py

Summary:
    Relational ChargeStore / ApiKeyStore backed by SQLAlchemy. The
    settlement transition is a single conditional UPDATE guarded by
    status = 'pending'; the affected row count decides which caller owns
    the transition.

Usage:
    SQLAlchemy sessions are synchronous; each store call runs in a worker
    thread through asyncio.to_thread so the event loop is never blocked.

Example:
    from ark_console.db import create_db_engine, init_db, SqlChargeStore

    engine = create_db_engine("sqlite:///./ark_console.db")
    init_db(engine)
    store = SqlChargeStore(engine)
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .charges import (
    DuplicatePaymentHashError,
    dump_metadata,
    generate_api_key,
    new_charge_id,
    utcnow,
)
from .types import ApiKey, Charge, ChargeStatus, WebhookStatus


logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite drops tzinfo on read; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Base(DeclarativeBase):
    pass


class ChargeRecord(Base):
    __tablename__ = "charges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    amount_sat: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    webhook_url: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    webhook_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    invoice: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[Optional[str]] = mapped_column("metadata", Text)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_model(self) -> Charge:
        return Charge(
            id=self.id,
            amount_sat=self.amount_sat,
            description=self.description,
            webhook_url=self.webhook_url,
            status=self.status,
            webhook_status=self.webhook_status,
            payment_hash=self.payment_hash,
            invoice=self.invoice,
            metadata=self.metadata_json,
            expires_at=_aware(self.expires_at),
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )


class ApiKeyRecord(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    label: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_model(self) -> ApiKey:
        return ApiKey(
            id=self.id,
            key=self.key,
            label=self.label,
            is_active=self.is_active,
            created_at=_aware(self.created_at),
        )


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; sqlite connections may be used from worker threads."""
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, future=True, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create missing tables."""
    Base.metadata.create_all(engine)


class _SqlStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def _session(self) -> Session:
        return self._sessions()


class SqlChargeStore(_SqlStore):
    """ChargeStore over SQLAlchemy."""

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
        now = utcnow()
        record = ChargeRecord(
            id=new_charge_id(),
            amount_sat=amount_sat,
            description=description,
            webhook_url=webhook_url,
            status="pending",
            webhook_status="pending",
            payment_hash=payment_hash,
            invoice=invoice,
            metadata_json=dump_metadata(metadata),
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        return await asyncio.to_thread(self._insert, record)

    def _insert(self, record: ChargeRecord) -> Charge:
        with self._session() as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                logger.warning("Rejected duplicate payment hash %s", record.payment_hash)
                raise DuplicatePaymentHashError(
                    f"Payment hash already exists: {record.payment_hash}"
                ) from exc
            return record.to_model()

    async def get(self, charge_id: str) -> Optional[Charge]:
        return await asyncio.to_thread(self._get_where, ChargeRecord.id == charge_id)

    async def get_by_hash(self, payment_hash: str) -> Optional[Charge]:
        return await asyncio.to_thread(self._get_where, ChargeRecord.payment_hash == payment_hash)

    def _get_where(self, clause) -> Optional[Charge]:
        with self._session() as session:
            record = session.scalars(select(ChargeRecord).where(clause)).first()
            return record.to_model() if record else None

    async def list_pending(self) -> list[Charge]:
        return await asyncio.to_thread(self._list_pending)

    def _list_pending(self) -> list[Charge]:
        with self._session() as session:
            records = session.scalars(
                select(ChargeRecord)
                .where(ChargeRecord.status == "pending")
                .order_by(ChargeRecord.created_at)
            ).all()
            return [r.to_model() for r in records]

    async def mark_paid(self, charge_id: str) -> Optional[Charge]:
        return await asyncio.to_thread(self._transition, charge_id, "paid")

    async def mark_expired(self, charge_id: str) -> Optional[Charge]:
        return await asyncio.to_thread(self._transition, charge_id, "expired")

    def _transition(self, charge_id: str, status: ChargeStatus) -> Optional[Charge]:
        with self._session() as session:
            result = session.execute(
                update(ChargeRecord)
                .where(ChargeRecord.id == charge_id, ChargeRecord.status == "pending")
                .values(status=status, updated_at=utcnow())
            )
            session.commit()
            if result.rowcount != 1:
                return None
            record = session.get(ChargeRecord, charge_id)
            return record.to_model() if record else None

    async def update_webhook_status(
        self, charge_id: str, status: WebhookStatus
    ) -> Optional[Charge]:
        return await asyncio.to_thread(self._set_webhook_status, charge_id, status)

    def _set_webhook_status(self, charge_id: str, status: WebhookStatus) -> Optional[Charge]:
        with self._session() as session:
            record = session.get(ChargeRecord, charge_id)
            if record is None:
                return None
            record.webhook_status = status
            record.updated_at = utcnow()
            session.commit()
            return record.to_model()


class SqlApiKeyStore(_SqlStore):
    """ApiKeyStore over SQLAlchemy."""

    async def create(self, label: Optional[str] = None) -> ApiKey:
        record = ApiKeyRecord(
            id=uuid.uuid4().hex,
            key=generate_api_key(),
            label=label,
            is_active=True,
            created_at=utcnow(),
        )
        return await asyncio.to_thread(self._insert, record)

    def _insert(self, record: ApiKeyRecord) -> ApiKey:
        with self._session() as session:
            session.add(record)
            session.commit()
            return record.to_model()

    async def is_active(self, key: str) -> bool:
        return await asyncio.to_thread(self._is_active, key)

    def _is_active(self, key: str) -> bool:
        with self._session() as session:
            record = session.scalars(
                select(ApiKeyRecord).where(ApiKeyRecord.key == key, ApiKeyRecord.is_active.is_(True))
            ).first()
            return record is not None

    async def deactivate(self, key: str) -> bool:
        return await asyncio.to_thread(self._deactivate, key)

    def _deactivate(self, key: str) -> bool:
        with self._session() as session:
            result = session.execute(
                update(ApiKeyRecord).where(ApiKeyRecord.key == key).values(is_active=False)
            )
            session.commit()
            return result.rowcount > 0
