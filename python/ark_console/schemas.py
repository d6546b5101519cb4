"""
Location: python/ark_console/schemas.py

Summary:
    Input contracts enforced before any daemon call: send amounts and
    destinations per payment rail, invoice amounts, onboarding amounts
    and the public charge-creation body.

Usage:
    Validation errors are surfaced verbatim to the caller and never
    retried. Use errors.validation_message() to extract the message.

Example:
    from pydantic import ValidationError
    from ark_console.schemas import SendOnchainInput

    try:
        SendOnchainInput(destination="tb1q...", amount=500)
    except ValidationError as exc:
        print(validation_message(exc))  # "Amount must be at least 546 sats (Dust Limit)"
"""

import re
from typing import Any, Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator


ARK_MIN_AMOUNT = 10_000
DUST_LIMIT = 546
ONBOARD_MIN_AMOUNT = 10_000
ARK_MIN_DESTINATION_LENGTH = 10

# Testnet/signet address prefixes accepted for on-chain sends.
ONCHAIN_ADDRESS_PATTERN = re.compile(r"^(tb1|m|n).+")


class SendArkInput(BaseModel):
    """Ark (L2) payment request."""
    destination: str
    amount: int
    comment: Optional[str] = None

    @field_validator("destination")
    @classmethod
    def _check_destination(cls, value: str) -> str:
        if len(value) < ARK_MIN_DESTINATION_LENGTH:
            raise ValueError("Destination must be at least 10 characters")
        return value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: int) -> int:
        if value < ARK_MIN_AMOUNT:
            raise ValueError("Ark payments must be at least 10,000 sats")
        return value


class SendOnchainInput(BaseModel):
    """On-chain (L1) payment request."""
    destination: str
    amount: int

    @field_validator("destination")
    @classmethod
    def _check_destination(cls, value: str) -> str:
        if not ONCHAIN_ADDRESS_PATTERN.match(value):
            raise ValueError("Destination must start with tb1, m, or n")
        return value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: int) -> int:
        if value < DUST_LIMIT:
            raise ValueError("Amount must be at least 546 sats (Dust Limit)")
        return value


class SendLightningInput(BaseModel):
    """
    Lightning payment request.

    The amount is optional because most invoices embed it.
    """
    destination: str
    amount: Optional[int] = None
    comment: Optional[str] = None

    @field_validator("destination")
    @classmethod
    def _check_destination(cls, value: str) -> str:
        if not value.lower().startswith("ln"):
            raise ValueError("Must be a Lightning invoice")
        return value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("Amount must be positive")
        return value


class CreateInvoiceInput(BaseModel):
    amount: int
    description: str = "POS Payment"

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Amount must be at least 1 sat")
        return value


class OnboardInput(BaseModel):
    amount: int

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: int) -> int:
        if value < ONBOARD_MIN_AMOUNT:
            raise ValueError("Minimum amount is 10,000 sats")
        return value


class VtxoSelection(BaseModel):
    vtxos: list[str] = Field(min_length=1)


class CreateChargeRequest(BaseModel):
    """
    Body of POST /v1/charges.

    Attributes:
        amount: Amount in sats, at least 1
        description: Optional description shown on the invoice
        webhook_url: Optional merchant notification URL
        metadata: Optional arbitrary merchant object, echoed in webhooks
    """
    amount: int
    description: Optional[str] = None
    webhook_url: Optional[AnyHttpUrl] = Field(None, alias="webhookUrl")
    metadata: Optional[dict[str, Any]] = None

    model_config = {"populate_by_name": True}

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Amount must be at least 1 sat")
        return value

    @field_validator("webhook_url", mode="before")
    @classmethod
    def _check_webhook_url(cls, value: Any) -> Any:
        if value is None:
            return value
        if not isinstance(value, str) or "://" not in value:
            raise ValueError("Webhook URL must be a valid URL")
        return value
