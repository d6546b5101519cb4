"""
Location: python/ark_console/types.py

Summary:
    Pydantic models for ark-console. Covers daemon records (balances,
    coins, exit progress, pending rounds), the derived ActivityItem view
    model, merchant charges and the uniform ActionResult returned by every
    UI-facing operation.

Usage:
    Daemon payloads use snake_case and are validated leniently: unknown
    fields are kept, missing optional fields default. Merchant-facing
    models serialize with camelCase aliases (model_dump(by_alias=True)).

Example:
    from ark_console.types import ExitProgress

    exit = ExitProgress.model_validate({
        "vtxo_id": "abc:0",
        "state": {"type": "awaiting-delta", "claimable_height": 120},
    })
    assert isinstance(exit.state, AwaitingDeltaState)
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
)


ChargeStatus = Literal["pending", "paid", "expired"]
WebhookStatus = Literal["pending", "success", "failed"]


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

class ActionResult(BaseModel):
    """
    Uniform result of a UI-facing operation.

    Operations never raise; failures resolve to success=False with a
    human-readable message.

    Attributes:
        success: Whether the operation succeeded
        message: Error or informational message
        data: Parsed response body on success (may be None)
    """
    success: bool
    message: str = ""
    data: Any = None


class InvoiceResult(ActionResult):
    """Result of a Lightning invoice request."""
    invoice: Optional[str] = None
    payment_hash: Optional[str] = None


class InvoiceStatusResult(ActionResult):
    """Result of a Lightning receive status query."""
    status: Optional[str] = None


class AddressResult(ActionResult):
    """Result of an address generation request."""
    address: Optional[str] = None


# ---------------------------------------------------------------------------
# Wallet data
# ---------------------------------------------------------------------------

class Balance(BaseModel):
    """
    Aggregated L1 + Ark balance in sats.

    Numbers arriving as strings (JSON bigints) are coerced, and missing or
    null values become 0 so views always receive valid numbers.
    """
    onchain_confirmed: int = Field(0, alias="onchainConfirmed")
    onchain_total: int = Field(0, alias="onchainTotal")
    onchain_pending: int = Field(0, alias="onchainPending")
    ark_spendable: int = Field(0, alias="arkSpendable")

    model_config = {"populate_by_name": True}

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class NodeInfo(BaseModel):
    """Essential daemon metadata."""
    network: str = "unknown"
    pubkey: Optional[str] = None
    version: Optional[str] = None
    block_height: Optional[int] = Field(None, alias="blockHeight")

    model_config = {"populate_by_name": True}


class Transaction(BaseModel):
    """On-chain wallet transaction."""
    txid: str
    tx: Optional[str] = None


class MovementSubsystem(BaseModel):
    kind: str


class MovementTime(BaseModel):
    created_at: str


class ArkMovement(BaseModel):
    """Ark (L2) wallet movement history entry."""
    id: int
    status: str
    intended_balance_sat: int
    subsystem: MovementSubsystem
    time: MovementTime


class VtxoState(BaseModel):
    type: str

    model_config = ConfigDict(extra="allow")


class Vtxo(BaseModel):
    """
    Virtual transaction output (Ark L2 coin).

    Attributes:
        id: VTXO identifier (outpoint)
        amount_sat: Value in sats
        expiry_height: Block height after which the VTXO expires
        state: Spendability state, e.g. {"type": "spendable"}
    """
    id: str
    amount_sat: int
    expiry_height: Optional[int] = None
    state: Optional[VtxoState] = None

    model_config = ConfigDict(extra="allow")


class Utxo(BaseModel):
    """On-chain unspent output owned by the wallet."""
    outpoint: str
    amount_sat: int
    confirmation_height: Optional[int] = None

    model_config = ConfigDict(extra="allow")


class VtxoListResult(ActionResult):
    """Result of a VTXO listing; distinguishes failure from an empty list."""
    vtxos: list[Vtxo] = []


# ---------------------------------------------------------------------------
# Unilateral exit progress
# ---------------------------------------------------------------------------

class ExitTxStatus(BaseModel):
    type: str

    model_config = ConfigDict(extra="allow")


class ExitTransaction(BaseModel):
    """
    One transaction attempt of an exit.

    The daemon reports status either as {"type": "..."} or as a bare
    string; both are accepted.
    """
    txid: str
    status: ExitTxStatus

    model_config = ConfigDict(extra="allow")

    @field_validator("status", mode="before")
    @classmethod
    def _wrap_plain_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"type": value}
        return value


class ExitStateBase(BaseModel):
    """Fields any exit state may carry. Unknown fields are preserved."""
    type: str
    claim_txid: Optional[str] = None
    claimable_since: Optional[Any] = None
    tip_height: Optional[int] = None
    confirmed_block: Optional[Any] = None
    errors: Optional[list[Any]] = None

    model_config = ConfigDict(extra="allow")


class AwaitingDeltaState(ExitStateBase):
    type: Literal["awaiting-delta"]
    claimable_height: Optional[int] = None


class ProcessingState(ExitStateBase):
    type: Literal["processing"]
    transactions: list[ExitTransaction] = []


class ClaimableState(ExitStateBase):
    type: Literal["claimable"]
    claimable_height: Optional[int] = None


class ClaimInProgressState(ExitStateBase):
    type: Literal["claim-in-progress"]


class ClaimedState(ExitStateBase):
    type: Literal["claimed"]


class TransactionFailedState(ExitStateBase):
    type: Literal["transaction failed"]


class UnknownExitState(ExitStateBase):
    """Any state tag this package does not recognize."""
    type: str = "unknown"


KNOWN_EXIT_STATES = frozenset({
    "awaiting-delta",
    "processing",
    "claimable",
    "claim-in-progress",
    "claimed",
    "transaction failed",
})


def _exit_state_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    return kind if kind in KNOWN_EXIT_STATES else "unknown"


ExitState = Annotated[
    Union[
        Annotated[AwaitingDeltaState, Tag("awaiting-delta")],
        Annotated[ProcessingState, Tag("processing")],
        Annotated[ClaimableState, Tag("claimable")],
        Annotated[ClaimInProgressState, Tag("claim-in-progress")],
        Annotated[ClaimedState, Tag("claimed")],
        Annotated[TransactionFailedState, Tag("transaction failed")],
        Annotated[UnknownExitState, Tag("unknown")],
    ],
    Discriminator(_exit_state_tag),
]


class ExitProgress(BaseModel):
    """
    Unilateral exit in progress, as reported by the daemon.

    Attributes:
        vtxo_id: The exiting VTXO
        state: Tagged exit state
        error: Opaque daemon error (string, object or list)
    """
    vtxo_id: str
    state: ExitState
    error: Optional[Any] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("state", mode="before")
    @classmethod
    def _wrap_plain_state(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"type": value}
        return value


class PendingRound(BaseModel):
    """
    Collaborative round the wallet participates in.

    Attributes:
        id: Round identifier
        kind: "PendingConfirmation", "Finished" or another in-progress kind
        round_txid: Round transaction id once broadcast
        input_vtxos: VTXOs being refreshed or consolidated
    """
    id: Union[int, str]
    kind: str
    round_txid: Optional[str] = None
    input_vtxos: Optional[list[str]] = None

    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Activity view model
# ---------------------------------------------------------------------------

class BlockLink(BaseModel):
    height: int
    url: Optional[str] = None


class ActivityItem(BaseModel):
    """
    Presentation-ready projection of an exit or a round.

    Recomputed on every fetch; it has no lifecycle of its own.
    """
    id: str
    type: Literal["exit", "round"]
    title: str
    vtxo_ids: list[str] = Field(default_factory=list, alias="vtxoIds")
    progress: int = Field(ge=0, le=100)
    status_label: str = Field(alias="statusLabel")
    txid: Optional[str] = None
    block_link: Optional[BlockLink] = Field(None, alias="blockLink")
    error: Optional[str] = None
    action: Optional[Literal["claim"]] = None
    info: Optional[str] = None
    is_mining: bool = Field(False, alias="isMining")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Merchant charges
# ---------------------------------------------------------------------------

class Charge(BaseModel):
    """
    Merchant-facing Lightning invoice record.

    Attributes:
        id: Server-generated identifier
        amount_sat: Invoice amount in sats
        description: Optional merchant description
        webhook_url: Optional merchant notification URL
        status: pending -> paid | expired, never backwards
        webhook_status: Delivery outcome, meaningful once status is paid
        payment_hash: Unique Lightning payment hash
        invoice: Encoded BOLT11 payment request
        metadata: Merchant metadata stored as JSON text
        expires_at: Optional invoice expiry
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """
    id: str
    amount_sat: int = Field(alias="amountSat")
    description: Optional[str] = None
    webhook_url: Optional[str] = Field(None, alias="webhookUrl")
    status: ChargeStatus = "pending"
    webhook_status: WebhookStatus = Field("pending", alias="webhookStatus")
    payment_hash: str = Field(alias="paymentHash")
    invoice: str
    metadata: Optional[str] = None
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}


class ApiKey(BaseModel):
    """Merchant API key."""
    id: str
    key: str
    label: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}


class WebhookStats(BaseModel):
    """Aggregate counters of one reconciliation pass."""
    processed: int = 0
    settled: int = 0
    webhooks_sent: int = 0
