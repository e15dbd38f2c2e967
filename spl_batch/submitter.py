"""Submission and confirmation of signed batches.

Failures here belong to the ledger, not to the codec: a preflight rejection
means the node simulated the batch and refused it (nothing applied), an
execution error means the batch landed and failed atomically (nothing
applied either), and a confirmation timeout means the freshness token expired
before the batch was observed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

from .rpc_client import PREFLIGHT_FAILURE_CODE, RPCError, SolanaRPCClient, format_rpc_hint
from .signing import SignedBatch

logger = logging.getLogger(__name__)

EXPLORER_BASE_URL = "https://explorer.solana.com"
DEFAULT_POLL_INTERVAL_SECONDS = 1.0

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class SubmissionError(RuntimeError):
    """Base class for failures reported by the ledger after handoff."""


class PreflightError(SubmissionError):
    """Raised when preflight simulation rejects a batch."""

    def __init__(self, message: str, logs: list[str] | None = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])


class ExecutionError(SubmissionError):
    """Raised when a landed batch reports an execution error."""

    def __init__(self, signature: str, err: Any) -> None:
        super().__init__(f"Transaction {signature} failed on-chain: {err}")
        self.signature = signature
        self.err = err


class ConfirmationTimeoutError(SubmissionError):
    """Raised when the freshness token expires before confirmation."""


@dataclass(frozen=True)
class Confirmation:
    signature: str
    slot: int | None
    confirmation_status: str | None


def explorer_url(signature: str, cluster: str | None = "devnet") -> str:
    url = f"{EXPLORER_BASE_URL}/tx/{signature}"
    if cluster and cluster != "mainnet-beta":
        url += f"?cluster={cluster}"
    return url


class BatchSubmitter:
    """Send signed batches and poll until the configured commitment is reached."""

    def __init__(
        self,
        rpc: SolanaRPCClient,
        *,
        commitment: str = "confirmed",
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        skip_preflight: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if commitment not in _COMMITMENT_RANK:
            raise ValueError(f"Unknown commitment level: {commitment}")
        self.rpc = rpc
        self.commitment = commitment
        self.poll_interval = poll_interval
        self.skip_preflight = skip_preflight
        self._sleep = sleep

    def submit(self, signed: SignedBatch) -> str:
        """Broadcast ``signed`` and return its signature string."""

        if self.skip_preflight:
            logger.warning("Skipping preflight simulation; failures will only surface on-chain")
        try:
            signature = self.rpc.send_transaction(
                signed.wire,
                skip_preflight=self.skip_preflight,
                preflight_commitment=self.commitment,
            )
        except RPCError as exc:
            hint = format_rpc_hint(exc)
            for line in exc.logs:
                logger.error("Program log: %s", line)
            message = f"Broadcast failed: {exc}"
            if hint:
                message = f"{message}\nHint: {hint}"
            if exc.code == PREFLIGHT_FAILURE_CODE:
                raise PreflightError(message, exc.logs) from exc
            raise SubmissionError(message) from exc
        logger.info("Submitted batch of %d instructions: %s", len(signed.batch), signature)
        return signature

    def _reached(self, status: Dict[str, Any]) -> bool:
        observed = status.get("confirmationStatus")
        if observed is None:
            # Nodes omit confirmationStatus once a transaction is rooted.
            return status.get("confirmations") is None
        return _COMMITMENT_RANK.get(observed, -1) >= _COMMITMENT_RANK[self.commitment]

    def confirm(self, signature: str, last_valid_block_height: int) -> Confirmation:
        """Poll the signature until confirmed, failed, or expired."""

        while True:
            statuses = self.rpc.get_signature_statuses([signature])
            status = statuses[0] if statuses else None
            if status is not None:
                if status.get("err") is not None:
                    raise ExecutionError(signature, status["err"])
                if self._reached(status):
                    logger.info(
                        "Transaction %s reached %s at slot %s",
                        signature,
                        status.get("confirmationStatus") or "finalized",
                        status.get("slot"),
                    )
                    return Confirmation(
                        signature=signature,
                        slot=status.get("slot"),
                        confirmation_status=status.get("confirmationStatus"),
                    )
            block_height = self.rpc.get_block_height(self.commitment)
            if block_height > last_valid_block_height:
                raise ConfirmationTimeoutError(
                    f"Transaction {signature} was not confirmed before block height "
                    f"{last_valid_block_height} (now {block_height}); the blockhash expired"
                )
            logger.debug(
                "Waiting for %s (block height %d of %d)",
                signature,
                block_height,
                last_valid_block_height,
            )
            self._sleep(self.poll_interval)

    def submit_and_confirm(self, signed: SignedBatch, last_valid_block_height: int) -> Confirmation:
        signature = self.submit(signed)
        return self.confirm(signature, last_valid_block_height)
