"""Atomic batch composition.

A :class:`Batch` is an ordered, all-or-nothing sequence of instruction
descriptors. The ledger executes the instructions strictly in the order they
were appended and either applies every effect or none, so callers must append
in dependency order: an account is allocated and initialized before any
instruction that reads it (a mint before ``MintTo``, a ``MintTo`` before the
``Transfer`` that spends its result). The composer never reorders.

Batches are immutable values. ``append`` and ``finalize`` return new batches;
once finalized, a batch only changes hands and is never patched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Tuple

from solders.pubkey import Pubkey

from .errors import BatchStateError, DomainViolationError, UnsatisfiedSignerError
from .instructions import InstructionDescriptor

logger = logging.getLogger(__name__)


def _dedupe(pubkeys: Iterable[Pubkey]) -> Tuple[Pubkey, ...]:
    seen = set()
    ordered = []
    for pubkey in pubkeys:
        if pubkey not in seen:
            seen.add(pubkey)
            ordered.append(pubkey)
    return tuple(ordered)


@dataclass(frozen=True)
class Batch:
    instructions: Tuple[InstructionDescriptor, ...] = ()
    fee_payer: Pubkey | None = None
    freshness_token: str | None = None
    finalized: bool = False

    def __len__(self) -> int:
        return len(self.instructions)

    def append(self, *descriptors: InstructionDescriptor) -> "Batch":
        """Return a new batch with ``descriptors`` appended in order."""

        if self.finalized:
            raise BatchStateError("cannot append to a finalized batch; build a new batch instead")
        for descriptor in descriptors:
            if not isinstance(descriptor, InstructionDescriptor):
                raise DomainViolationError(
                    f"batches hold InstructionDescriptor values, got {type(descriptor).__name__}"
                )
        return replace(self, instructions=self.instructions + tuple(descriptors))

    @property
    def required_signers(self) -> Tuple[Pubkey, ...]:
        """Identities flagged as signers by any instruction, first-seen order, no repeats."""

        return _dedupe(
            ref.pubkey
            for descriptor in self.instructions
            for ref in descriptor.accounts
            if ref.is_signer
        )

    @property
    def signing_identities(self) -> Tuple[Pubkey, ...]:
        """Required signers with the fee payer first, as the ledger orders signatures."""

        if self.fee_payer is None:
            return self.required_signers
        return _dedupe((self.fee_payer, *self.required_signers))

    def check_signers(self, available: Iterable[Pubkey]) -> None:
        """Raise :class:`UnsatisfiedSignerError` unless every signing identity is available."""

        have = set(available)
        missing = [pubkey for pubkey in self.signing_identities if pubkey not in have]
        if missing:
            raise UnsatisfiedSignerError(missing)

    def finalize(
        self,
        fee_payer: Pubkey | None,
        freshness_token: str | None,
        signers: Iterable[Pubkey] | None = None,
    ) -> "Batch":
        """Attach the fee payer and freshness token, returning an immutable batch.

        Finalizing an already-finalized batch with the same fee payer and token
        returns it unchanged. A different token means the batch went stale and
        must be rebuilt, so that raises :class:`BatchStateError`. When
        ``signers`` is given, every signing identity must be among them.
        """

        if self.finalized:
            if freshness_token != self.freshness_token or fee_payer != self.fee_payer:
                raise BatchStateError(
                    "batch is already finalized with a different fee payer or freshness token; "
                    "rebuild it instead of patching"
                )
            if signers is not None:
                self.check_signers(signers)
            return self

        if not self.instructions:
            raise BatchStateError("cannot finalize a batch with no instructions")
        if fee_payer is None:
            raise BatchStateError("cannot finalize a batch without a fee payer")
        if not isinstance(fee_payer, Pubkey):
            raise DomainViolationError(f"fee payer must be a Pubkey, got {type(fee_payer).__name__}")
        if not freshness_token:
            raise BatchStateError("cannot finalize a batch without a freshness token")

        finalized = replace(
            self, fee_payer=fee_payer, freshness_token=freshness_token, finalized=True
        )
        if signers is not None:
            finalized.check_signers(signers)
        logger.debug(
            "Finalized batch of %d instructions with %d signing identities",
            len(finalized.instructions),
            len(finalized.signing_identities),
        )
        return finalized
