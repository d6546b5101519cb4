"""
Location: python/ark_console/api.py

Summary:
    Merchant-facing HTTP API: charge creation and lookup, the external
    reconciliation trigger, and a daemon health probe. Collaborators are
    built once in create_app() and reached through app.state.

Example:
    from ark_console.api import create_app

    app = create_app()  # reads Settings from the environment
    # uvicorn.run(app, host="0.0.0.0", port=8000)
"""

import asyncio
import contextlib
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import require_api_key
from .charges import ApiKeyStore, ChargeStore
from .client import WalletClient
from .config import Settings
from .db import SqlApiKeyStore, SqlChargeStore, create_db_engine, init_db
from .errors import ChargeNotFoundError, normalize_error
from .gateway import DaemonGateway
from .schemas import CreateChargeRequest
from .webhooks import ChargeReconciler, WebhookDispatcher


logger = logging.getLogger(__name__)

charges_router = APIRouter(prefix="/v1", tags=["Charges"])
system_router = APIRouter(prefix="/api/system", tags=["System"])


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ------------------------------------------------------------
# Charges
# ------------------------------------------------------------

@charges_router.post("/charges", status_code=status.HTTP_201_CREATED)
async def create_charge(request: Request, _api_key: str = Depends(require_api_key)):
    try:
        body = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON in request body")

    try:
        payload = CreateChargeRequest.model_validate(body)
    except ValidationError as exc:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Validation error",
            details=json.loads(exc.json(include_url=False)),
        )

    wallet: WalletClient = request.app.state.wallet
    store: ChargeStore = request.app.state.store
    description = payload.description or ""

    try:
        invoice = await wallet.create_lightning_invoice(payload.amount, description)
        if not invoice.success or not invoice.invoice or not invoice.payment_hash:
            logger.warning("Invoice creation failed for charge: %s", invoice.message)
            return _error(
                status.HTTP_502_BAD_GATEWAY, invoice.message or "Failed to create invoice"
            )

        charge = await store.create(
            amount_sat=payload.amount,
            payment_hash=invoice.payment_hash,
            invoice=invoice.invoice,
            description=description,
            webhook_url=str(payload.webhook_url) if payload.webhook_url else None,
            metadata=payload.metadata,
        )
    except Exception as exc:
        logger.exception("Charge creation failed")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, normalize_error(exc))

    logger.info("Created charge %s for %d sats", charge.id, charge.amount_sat)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "id": charge.id,
            "invoice": charge.invoice,
            "paymentHash": charge.payment_hash,
            "status": charge.status,
        },
    )


@charges_router.get("/charges/{charge_id}")
async def get_charge(charge_id: str, request: Request):
    store: ChargeStore = request.app.state.store
    charge = await store.get(charge_id)
    if charge is None:
        raise ChargeNotFoundError(charge_id)
    return charge.model_dump(mode="json", by_alias=True)


@charges_router.api_route("/cron/webhooks", methods=["GET", "POST"])
async def run_webhooks(request: Request):
    reconciler: ChargeReconciler = request.app.state.reconciler
    try:
        stats = await reconciler.process_pending()
    except Exception as exc:
        logger.exception("Error in webhook cron endpoint")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, normalize_error(exc))
    return stats.model_dump()


# ------------------------------------------------------------
# System
# ------------------------------------------------------------

@system_router.get("/status")
async def system_status(request: Request):
    wallet: WalletClient = request.app.state.wallet
    result = await wallet.fetch_ark_info()
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "offline", "error": result.message},
        )

    info = result.data if isinstance(result.data, dict) else {}
    network = "mainnet" if info.get("network") == "mainnet" else "signet"
    return {"status": "online", "network": network, "version": __version__}


# ------------------------------------------------------------
# App factory
# ------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    wallet: Optional[WalletClient] = None,
    store: Optional[ChargeStore] = None,
    api_keys: Optional[ApiKeyStore] = None,
    reconciler: Optional[ChargeReconciler] = None,
) -> FastAPI:
    """
    Build the API application.

    Any collaborator not passed in is built from settings; settings are
    read from the environment when needed and not given.

    Args:
        settings: Process configuration
        wallet: Wallet daemon client
        store: Charge persistence
        api_keys: API key persistence
        reconciler: Charge reconciler used by the trigger endpoint and
            the background sweep

    Returns:
        The configured FastAPI app
    """
    if settings is None and (wallet is None or store is None or api_keys is None):
        settings = Settings()

    if wallet is None:
        wallet = WalletClient(DaemonGateway.from_settings(settings))

    if store is None or api_keys is None:
        engine = create_db_engine(settings.DATABASE_URL)
        init_db(engine)
        if store is None:
            store = SqlChargeStore(engine)
        if api_keys is None:
            api_keys = SqlApiKeyStore(engine)

    if reconciler is None:
        dispatcher = WebhookDispatcher(settings.WEBHOOK_TIMEOUT) if settings else None
        reconciler = ChargeReconciler(store, wallet, dispatcher)

    sweep_interval = settings.WEBHOOK_SWEEP_INTERVAL if settings else 0

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        sweep = None
        if sweep_interval > 0:
            logger.info("Starting webhook sweep every %ss", sweep_interval)
            sweep = asyncio.create_task(reconciler.run_forever(sweep_interval))
        try:
            yield
        finally:
            if sweep is not None:
                sweep.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweep
            await reconciler.close()
            await wallet.close()

    app = FastAPI(
        title="Ark Console API",
        description="Merchant charges over Lightning, backed by a barkd wallet daemon.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.wallet = wallet
    app.state.store = store
    app.state.api_keys = api_keys
    app.state.reconciler = reconciler

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(ChargeNotFoundError)
    async def charge_not_found_handler(request: Request, exc: ChargeNotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, "Charge not found")

    app.include_router(charges_router)
    app.include_router(system_router)
    return app
