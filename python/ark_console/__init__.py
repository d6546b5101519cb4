"""
Location: python/ark_console/__init__.py

Summary:
    Main package initialization for ark-console. Exports the wallet
    client, the coin state classifier, the charge stores and reconciler,
    and the POS payment session.

Usage:
    from ark_console import DaemonGateway, WalletClient, PaymentSession

    # The HTTP API is imported separately
    from ark_console.api import create_app

Version: 0.1.0
"""

from .activity import build_activity_feed, classify_exit, classify_round, spendable_count
from .charges import (
    ApiKeyStore,
    ChargeStore,
    DuplicatePaymentHashError,
    MemoryApiKeyStore,
    MemoryChargeStore,
)
from .client import WalletClient
from .config import Settings, configure_logging
from .errors import ArkConsoleError, ChargeNotFoundError, humanize_error, normalize_error
from .gateway import DaemonGateway
from .pos import PaymentSession
from .tasks import AutoSyncer, RepeatingTask
from .types import (
    ActionResult,
    ActivityItem,
    Balance,
    Charge,
    ExitProgress,
    PendingRound,
    Vtxo,
    WebhookStats,
)
from .webhooks import ChargeReconciler, WebhookDispatcher, build_webhook_payload

__version__ = "0.1.0"

__all__ = [
    # Daemon access
    "DaemonGateway",
    "WalletClient",
    # Configuration
    "Settings",
    "configure_logging",
    # Types
    "ActionResult",
    "ActivityItem",
    "Balance",
    "Charge",
    "ExitProgress",
    "PendingRound",
    "Vtxo",
    "WebhookStats",
    # Exceptions and error text
    "ArkConsoleError",
    "ChargeNotFoundError",
    "DuplicatePaymentHashError",
    "normalize_error",
    "humanize_error",
    # Coin state classifier
    "classify_exit",
    "classify_round",
    "build_activity_feed",
    "spendable_count",
    # Charges
    "ChargeStore",
    "ApiKeyStore",
    "MemoryChargeStore",
    "MemoryApiKeyStore",
    "ChargeReconciler",
    "WebhookDispatcher",
    "build_webhook_payload",
    # POS and background tasks
    "PaymentSession",
    "RepeatingTask",
    "AutoSyncer",
]
