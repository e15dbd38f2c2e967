"""End-to-end token workflows built on the instruction codec.

``plan_*`` helpers only build unfinalized batches; the single network read
they make is the rent-exempt balance per account kind. ``execute_batch``
handles the rest: freshness token, finalization, signing, submission and
confirmation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .batch import Batch
from .decoder import decode_payload
from .errors import DomainViolationError
from .instructions import (
    FreezeAuthorityOption,
    initialize_account,
    initialize_mint,
    mint_to,
    transfer,
)
from .rent import AccountKind, RentSource, allocate_account
from .rpc_client import SolanaRPCClient
from .schema import program_name
from .signing import sign_batch
from .submitter import BatchSubmitter, Confirmation

logger = logging.getLogger(__name__)


def ui_amount_to_base_units(amount: str | int | Decimal, decimals: int) -> int:
    """Convert a human token amount (``"10.5"``) into base units for ``decimals``."""

    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise DomainViolationError(f"invalid token amount: {amount}") from exc
    if not value.is_finite() or value < 0:
        raise DomainViolationError(f"token amount must be a non-negative number, got {amount}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise DomainViolationError(
            f"token amount {amount} has more precision than {decimals} decimals allow"
        )
    return int(scaled)


def plan_create_mint(
    rent_source: RentSource,
    payer: Pubkey,
    mint: Pubkey,
    decimals: int,
    freeze_authority: FreezeAuthorityOption | Pubkey | None = None,
) -> Batch:
    """Allocate and initialize a new mint whose mint authority is ``payer``."""

    return Batch().append(
        allocate_account(rent_source, payer, mint, AccountKind.MINT),
        initialize_mint(mint, decimals, payer, freeze_authority),
    )


def plan_token_flow(
    rent_source: RentSource,
    payer: Pubkey,
    mint: Pubkey,
    source_account: Pubkey,
    destination_account: Pubkey,
    receiver: Pubkey,
    decimals: int,
    mint_amount: int,
    transfer_amount: int,
) -> Batch:
    """Create a mint and two token accounts, mint to the first and transfer to the second.

    All allocations come first, then initializations, then ``MintTo`` and
    finally the ``Transfer`` that spends what was minted.
    """

    if transfer_amount > mint_amount:
        raise DomainViolationError(
            f"transfer amount {transfer_amount} exceeds minted amount {mint_amount}"
        )
    return Batch().append(
        allocate_account(rent_source, payer, mint, AccountKind.MINT),
        allocate_account(rent_source, payer, source_account, AccountKind.TOKEN_ACCOUNT),
        allocate_account(rent_source, payer, destination_account, AccountKind.TOKEN_ACCOUNT),
        initialize_mint(mint, decimals, payer),
        initialize_account(source_account, mint, payer),
        initialize_account(destination_account, mint, receiver),
        mint_to(mint, source_account, payer, mint_amount),
        transfer(source_account, destination_account, payer, transfer_amount),
    )


def summarize_batch(batch: Batch) -> List[Dict[str, Any]]:
    """Return one row per instruction for console display."""

    rows = []
    for index, descriptor in enumerate(batch.instructions):
        decoded = decode_payload(descriptor.program_id, descriptor.data)
        rows.append(
            {
                "index": index,
                "program": program_name(descriptor.program_id),
                "instruction": decoded.kind.value,
                "payload_bytes": len(descriptor.data),
                "signers": [str(pubkey) for pubkey in descriptor.signers],
                "fields": {key: str(value) for key, value in decoded.fields.items()},
            }
        )
    return rows


def format_batch_summary(batch: Batch) -> str:
    lines = ["# | program | instruction | bytes | signers"]
    for row in summarize_batch(batch):
        lines.append(
            f"{row['index']} | {row['program']} | {row['instruction']} | "
            f"{row['payload_bytes']} | {len(row['signers'])}"
        )
    lines.append(f"required signers: {', '.join(str(p) for p in batch.required_signers)}")
    return "\n".join(lines)


@dataclass(frozen=True)
class BatchReceipt:
    signature: str
    confirmation: Confirmation
    batch: Batch


def execute_batch(
    rpc: SolanaRPCClient,
    submitter: BatchSubmitter,
    batch: Batch,
    payer: Keypair,
    extra_signers: Iterable[Keypair] = (),
) -> BatchReceipt:
    """Finalize ``batch`` against a fresh blockhash, sign, submit and confirm it."""

    keypairs = [payer, *extra_signers]
    latest = rpc.get_latest_blockhash(submitter.commitment)
    logger.info("Recent blockhash: %s", latest.blockhash)
    finalized = batch.finalize(
        payer.pubkey(), latest.blockhash, signers=[kp.pubkey() for kp in keypairs]
    )
    signed = sign_batch(finalized, keypairs)
    confirmation = submitter.submit_and_confirm(signed, latest.last_valid_block_height)
    return BatchReceipt(signature=confirmation.signature, confirmation=confirmation, batch=finalized)
