"""Error taxonomy for the instruction codec and batch composer.

Every error raised here is local, synchronous, and non-retryable: rebuilding a
malformed instruction with the same inputs produces the same malformed
instruction. Failures reported by the ledger itself (transport problems,
preflight rejection, execution errors) live in :mod:`spl_batch.rpc_client` and
:mod:`spl_batch.submitter`.
"""

from __future__ import annotations

from typing import Iterable

from solders.pubkey import Pubkey


class SchemaViolationError(RuntimeError):
    """Raised when an encoded payload disagrees with its opcode schema.

    This always indicates a codec bug and construction is aborted immediately.
    """


class DomainViolationError(ValueError):
    """Raised when a caller supplies a value outside an instruction field's domain."""


class BatchStateError(RuntimeError):
    """Raised when a batch operation is not valid for the batch's current state."""


class UnsatisfiedSignerError(RuntimeError):
    """Raised when a required signer has no matching authorization."""

    def __init__(self, missing: Iterable[Pubkey]) -> None:
        self.missing = tuple(missing)
        listed = ", ".join(str(pubkey) for pubkey in self.missing)
        super().__init__(f"Missing signature for required signer(s): {listed}")


class InstructionDecodeError(ValueError):
    """Raised when a payload cannot be decoded against any known opcode schema."""
