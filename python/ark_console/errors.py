"""
Location: python/ark_console/errors.py

Summary:
    Error normalization shared by the gateway and the coin state
    classifier. The daemon reports errors as plain strings, as objects
    with a ``message`` or ``error`` field, or as nested structures; every
    boundary funnels them through normalize_error() so callers only ever
    see a string.

Example:
    from ark_console.errors import normalize_error, humanize_error

    normalize_error({"message": "min relay fee not met"})
    # -> "min relay fee not met"
    humanize_error("min relay fee not met")
    # -> "Network Rejected: Transaction value is too low (Dust). ..."
"""

import json
from typing import Any

from pydantic import ValidationError


UNKNOWN_ERROR = "Unknown error"

# Ordered: the first matching substring wins.
KNOWN_DAEMON_ERRORS: tuple[tuple[str, str], ...] = (
    (
        "package-not-child-with-unconfirmed-parents",
        "Waiting for Parent Tx Propagation (Mempool Issue)",
    ),
    (
        "min relay fee not met",
        "Network Rejected: Transaction value is too low (Dust). "
        "Try adding L1 funds or this coin may be unrecoverable.",
    ),
    (
        "bad-txns-inputs-missingorspent",
        "Conflict: This coin is already spent or invalid.",
    ),
    ("transaction failed", "Broadcast Failed"),
    ("dust", "Value too low for fees (Dust Error)"),
    ("insufficient-confirmed-funds", "Insufficient L1 Gas (Deposit BTC)"),
)


class ArkConsoleError(Exception):
    """Base exception for ark-console."""
    pass


class ChargeNotFoundError(ArkConsoleError):
    """Raised when a charge id does not exist in the store."""
    pass


def normalize_error(error: Any) -> str:
    """
    Collapse an arbitrary error value into a single string.

    Args:
        error: A string, mapping, exception or any JSON-like value

    Returns:
        The best human-readable string for the value
    """
    if isinstance(error, str):
        return error

    if isinstance(error, BaseException):
        return str(error) or type(error).__name__

    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str):
            return message
        inner = error.get("error")
        if isinstance(inner, str):
            return inner

    try:
        return json.dumps(error)
    except (TypeError, ValueError):
        return UNKNOWN_ERROR


def humanize_error(text: str) -> str:
    """Map a known daemon error substring to friendlier text."""
    lowered = text.lower()
    for needle, friendly in KNOWN_DAEMON_ERRORS:
        if needle in lowered:
            return friendly
    return text


def format_error(error: Any) -> str:
    """Normalize then humanize."""
    return humanize_error(normalize_error(error))


def validation_message(exc: ValidationError) -> str:
    """
    First human-readable message of a pydantic ValidationError.

    Custom validators raise ValueError, which pydantic reports as
    "Value error, <message>"; the prefix is stripped.
    """
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    message = errors[0].get("msg", "Invalid input")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return message
