"""Compile finalized batches into signed legacy transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from solders.hash import Hash, ParseHashError
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction

from .batch import Batch
from .errors import BatchStateError, DomainViolationError
from .instructions import InstructionDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedBatch:
    """A signed transaction ready for submission."""

    batch: Batch
    transaction: Transaction

    @property
    def signature(self) -> Signature:
        # The fee payer's signature identifies the transaction.
        return self.transaction.signatures[0]

    @property
    def wire(self) -> bytes:
        return bytes(self.transaction)


def to_solders_instruction(descriptor: InstructionDescriptor) -> Instruction:
    metas = [
        AccountMeta(pubkey=ref.pubkey, is_signer=ref.is_signer, is_writable=ref.is_writable)
        for ref in descriptor.accounts
    ]
    return Instruction(descriptor.program_id, descriptor.data, metas)


def _blockhash(batch: Batch) -> Hash:
    try:
        return Hash.from_string(batch.freshness_token)
    except (ParseHashError, ValueError) as exc:
        raise DomainViolationError(
            f"freshness token is not a base58 blockhash: {batch.freshness_token}"
        ) from exc


def compile_message(batch: Batch) -> Message:
    """Compile a finalized batch into a legacy message."""

    if not batch.finalized:
        raise BatchStateError("only finalized batches can be compiled")
    instructions = [to_solders_instruction(descriptor) for descriptor in batch.instructions]
    return Message.new_with_blockhash(instructions, batch.fee_payer, _blockhash(batch))


def sign_batch(batch: Batch, keypairs: Iterable[Keypair]) -> SignedBatch:
    """Sign ``batch`` with the keypairs covering its signing identities.

    Missing signers are reported before any signing happens; keypairs the
    batch does not reference are ignored.
    """

    by_pubkey = {keypair.pubkey(): keypair for keypair in keypairs}
    batch.check_signers(by_pubkey)
    message = compile_message(batch)

    signers = [by_pubkey[pubkey] for pubkey in batch.signing_identities]
    unused = set(by_pubkey).difference(batch.signing_identities)
    if unused:
        logger.debug("Ignoring %d keypair(s) not referenced by the batch", len(unused))

    transaction = Transaction(signers, message, _blockhash(batch))
    logger.debug(
        "Signed batch of %d instructions with %d signer(s); wire size %d bytes",
        len(batch),
        len(signers),
        len(bytes(transaction)),
    )
    return SignedBatch(batch=batch, transaction=transaction)
