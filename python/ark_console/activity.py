"""
Location: python/ark_console/activity.py

Summary:
    Coin state classifier. Maps daemon-reported unilateral exits and
    pending rounds onto ActivityItem values with a progress percentage,
    a status label, an optional required action and humanized errors.

Usage:
    Pure functions: the daemon is the only source of truth for exit and
    round progress, so the feed is re-derived from scratch on every fetch
    and the same input always yields the same output.

Example:
    from ark_console.activity import classify_exit

    item = classify_exit(exit_progress, current_height=812_000)
    if item.action == "claim":
        await wallet.claim_vtxo(item.id)
"""

from typing import Any, Iterable, Optional

from .errors import format_error, humanize_error
from .types import (
    ActivityItem,
    AwaitingDeltaState,
    BlockLink,
    ClaimableState,
    ExitProgress,
    ExitTransaction,
    PendingRound,
    ProcessingState,
    TransactionFailedState,
    Vtxo,
)


EXIT_TITLE = "Unilateral Exit"

PROGRESS_CLAIMED = 100
PROGRESS_CLAIMABLE = 95
PROGRESS_TIMELOCK = 75
PROGRESS_ANCHORED = 50
PROGRESS_BROADCAST = 25

ROUND_FINISHED = "Finished"
ROUND_PENDING_CONFIRMATION = "PendingConfirmation"

BROADCAST_STATUSES = ("broadcast-with-cpfp", "broadcast")

MINING_INFO = "This step depends on Bitcoin block times (~10m)."


def parse_confirmed_block(value: Any) -> Optional[int]:
    """
    Block height from a "<height>:<hash>" string.

    Returns:
        The leading integer, or None if it cannot be parsed
    """
    if not isinstance(value, str):
        return None
    head = value.split(":", 1)[0].strip()
    try:
        return int(head)
    except ValueError:
        return None


def truncate_id(value: str) -> str:
    """Shorten ids longer than 12 chars to "abcd...wxyz"."""
    if len(value) <= 12:
        return value
    return f"{value[:4]}...{value[-4:]}"


def _exit_error(exit_record: ExitProgress) -> Optional[str]:
    state = exit_record.state
    if exit_record.error:
        return format_error(exit_record.error)
    if state.errors:
        return "; ".join(
            humanize_error(err) if isinstance(err, str) else format_error(err)
            for err in state.errors
        )
    if isinstance(state, TransactionFailedState):
        return "Broadcast Failed"
    return None


def _block_link(state: Any) -> Optional[BlockLink]:
    height = parse_confirmed_block(getattr(state, "confirmed_block", None))
    return BlockLink(height=height) if height is not None else None


def _select_transaction(transactions: list[ExitTransaction]) -> ExitTransaction:
    for tx in transactions:
        if tx.status.type in BROADCAST_STATUSES:
            return tx
    return transactions[-1]


def _exit_item(exit_record: ExitProgress, error: Optional[str], **fields: Any) -> ActivityItem:
    return ActivityItem(
        id=exit_record.vtxo_id,
        type="exit",
        title=EXIT_TITLE,
        vtxo_ids=[exit_record.vtxo_id],
        error=error,
        **fields,
    )


def _ready_to_claim(exit_record: ExitProgress, error: Optional[str]) -> ActivityItem:
    return _exit_item(
        exit_record,
        error,
        progress=PROGRESS_CLAIMABLE,
        status_label="Ready to Claim",
        action="claim",
    )


def classify_exit(exit_record: ExitProgress, current_height: int) -> ActivityItem:
    """
    Classify one unilateral exit.

    Precedence, first match wins: claimed, claimable, awaiting timelock,
    processing with transaction history, legacy tip_height, default.

    Args:
        exit_record: Exit progress record from the daemon
        current_height: Current chain tip height

    Returns:
        The ActivityItem for this exit
    """
    state = exit_record.state
    error = _exit_error(exit_record)

    if state.claim_txid:
        return _exit_item(
            exit_record,
            error,
            progress=PROGRESS_CLAIMED,
            status_label="Claimed on L1",
            txid=state.claim_txid,
        )

    if isinstance(state, ClaimableState) or state.claimable_since:
        return _ready_to_claim(exit_record, error)

    if isinstance(state, AwaitingDeltaState) and state.claimable_height:
        blocks_remaining = max(0, state.claimable_height - current_height)
        if blocks_remaining == 0:
            return _ready_to_claim(exit_record, error)
        plural = "" if blocks_remaining == 1 else "s"
        return _exit_item(
            exit_record,
            error,
            progress=PROGRESS_TIMELOCK,
            status_label=f"Timelock Active ({blocks_remaining} block{plural} left)",
            block_link=_block_link(state),
        )

    if isinstance(state, ProcessingState) and state.transactions:
        tx = _select_transaction(state.transactions)
        status = tx.status.type
        if status == "confirmed":
            return _exit_item(
                exit_record,
                error,
                progress=PROGRESS_ANCHORED,
                status_label="Securing Anchor",
                txid=tx.txid,
                block_link=_block_link(state),
            )
        if status in BROADCAST_STATUSES:
            label = "Broadcasting (CPFP)" if status == "broadcast-with-cpfp" else "Broadcasting"
        elif status == "awaiting-input-confirmation":
            label = "Waiting for Parent"
        else:
            label = "Processing"
        return _exit_item(
            exit_record,
            error,
            progress=PROGRESS_BROADCAST,
            status_label=label,
            txid=tx.txid,
        )

    if state.tip_height:
        return _exit_item(
            exit_record, error, progress=PROGRESS_BROADCAST, status_label="Broadcasting"
        )

    return _exit_item(exit_record, error, progress=PROGRESS_BROADCAST, status_label="Processing")


def round_title(round_record: PendingRound) -> str:
    vtxos = round_record.input_vtxos or []
    if len(vtxos) > 1:
        return f"Consolidating {len(vtxos)} VTXOs"
    if len(vtxos) == 1:
        return f"Refreshing VTXO {truncate_id(vtxos[0])}"
    return f"Active Round: #{round_record.id}"


def classify_round(round_record: PendingRound) -> ActivityItem:
    """Classify one pending round by kind and round txid."""
    base = {
        "id": f"round-{round_record.id}",
        "type": "round",
        "title": round_title(round_record),
        "vtxo_ids": list(round_record.input_vtxos or []),
        "txid": round_record.round_txid or None,
    }

    if round_record.kind == ROUND_FINISHED:
        return ActivityItem(**base, progress=100, status_label="Completed")

    if round_record.kind == ROUND_PENDING_CONFIRMATION and round_record.round_txid:
        return ActivityItem(
            **base,
            progress=80,
            status_label="Mining on L1 (Waiting for Block)",
            info=MINING_INFO,
            is_mining=True,
        )

    label = "Waiting for L1" if round_record.round_txid else "Waiting for ASP Broadcast"
    return ActivityItem(**base, progress=75, status_label=label)


def build_activity_feed(
    exits: Iterable[ExitProgress],
    rounds: Iterable[PendingRound],
    current_height: int,
) -> list[ActivityItem]:
    """Exits first, then rounds, each in daemon order."""
    items = [classify_exit(exit_record, current_height) for exit_record in exits]
    items.extend(classify_round(round_record) for round_record in rounds)
    return items


def spendable_count(vtxos: Iterable[Vtxo], current_height: int = 0) -> int:
    """
    Number of spendable, unexpired VTXOs.

    With an unknown tip (0) every spendable VTXO counts.
    """
    count = 0
    for vtxo in vtxos:
        if vtxo.state is None or vtxo.state.type != "spendable":
            continue
        if current_height and vtxo.expiry_height is not None and vtxo.expiry_height <= current_height:
            continue
        count += 1
    return count


def _mempool_base(network: Optional[str]) -> str:
    if not network or network == "mainnet":
        return "https://mempool.space/"
    return f"https://mempool.space/{network}/"


def mempool_tx_url(txid: str, network: Optional[str] = None) -> str:
    return f"{_mempool_base(network)}tx/{txid}"


def mempool_block_url(height: int, network: Optional[str] = None) -> str:
    return f"{_mempool_base(network)}block/{height}"
