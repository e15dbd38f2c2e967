"""Typed JSON-RPC client for Solana-compatible ledger nodes.

The client backs every network-facing step around the instruction codec:
rent-exempt balances, freshness tokens (recent blockhashes), submission and
signature status polling. It forwards well-typed requests and surfaces errors
clearly; no ledger semantics are implemented here.
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import requests
from requests import RequestException, Response
from solders.pubkey import Pubkey

from .config import ClusterConfig

logger = logging.getLogger(__name__)

PREFLIGHT_FAILURE_CODE = -32002
BLOCKHASH_NOT_FOUND_CODE = -32003


class RPCError(RuntimeError):
    """Raised when the node responds with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data

    @property
    def logs(self) -> list[str]:
        """Program logs attached to a failed preflight simulation, if any."""

        if isinstance(self.data, dict):
            logs = self.data.get("logs")
            if isinstance(logs, list):
                return [str(line) for line in logs]
        return []


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a human-friendly hint for common ledger JSON-RPC failures."""

    if error_obj is None:
        return None

    code = None
    message = ""
    logs: list[str] = []
    if isinstance(error_obj, RPCError):
        code = error_obj.code
        message = error_obj.message
        logs = error_obj.logs
    elif isinstance(error_obj, dict):
        code = error_obj.get("code")
        message = str(error_obj.get("message", ""))

    haystack = " ".join([message, *logs]).lower()
    if code == BLOCKHASH_NOT_FOUND_CODE or "blockhash not found" in haystack:
        return (
            "The freshness token (recent blockhash) expired before the node saw the transaction. "
            "Rebuild and re-sign the batch with a new blockhash; do not patch the old one."
        )
    if "insufficient funds for rent" in haystack or "insufficient lamports" in haystack:
        return (
            "The fee payer cannot fund the new accounts' rent-exempt balances plus fees. "
            "Fund the payer (devnet: solana airdrop) and retry."
        )
    if "already in use" in haystack:
        return (
            "One of the accounts being allocated already exists. Generate fresh keypairs for "
            "the mint and token accounts."
        )
    if code == PREFLIGHT_FAILURE_CODE:
        return (
            "Preflight simulation rejected the batch, so nothing was applied. Inspect the "
            "program logs above; use --skip-preflight only to reproduce on-chain failures."
        )
    return None


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: str
    last_valid_block_height: int


class SolanaRPCClient:
    """Typed JSON-RPC client for Solana-compatible nodes.

    Each helper maps directly to an RPC method exposed by the node and returns
    the parsed ``result``. Commitment defaults to the configured level and can
    be overridden per call.
    """

    def __init__(self, config: ClusterConfig) -> None:
        self.config = config
        self._session = requests.Session()

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.config.rpc_url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.config.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection to {self.config.rpc_url} failed. Check SPL_BATCH_RPC_URL/RPC_URL "
                "(or ~/.spl_batch.yaml) and your network connection."
            ) from exc
        try:
            self._raise_for_status(response)
        except requests.HTTPError as exc:
            raise RPCTransportError(
                "RPC server returned an HTTP error; check the endpoint URL and any rate limits.",
                status_code=response.status_code,
            ) from exc
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object JSON response")
        if result.get("error"):
            error = result["error"]
            raise RPCError(
                error.get("code", -1), error.get("message", "unknown"), error.get("data")
            )
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            logger.error("RPC error body: %s", response.text)
            if response.status_code == 429:
                raise RPCTransportError(
                    "Rate limited by the RPC endpoint (429). Retry later or use a dedicated endpoint.",
                    status_code=response.status_code,
                )
        response.raise_for_status()

    def _commitment(self, commitment: str | None) -> Dict[str, Any]:
        return {"commitment": commitment or self.config.commitment}

    # Convenience wrappers -------------------------------------------------

    def get_minimum_balance_for_rent_exemption(
        self, size: int, commitment: str | None = None
    ) -> int:
        return int(
            self.call("getMinimumBalanceForRentExemption", [size, self._commitment(commitment)])
        )

    def get_latest_blockhash(self, commitment: str | None = None) -> LatestBlockhash:
        result = self.call("getLatestBlockhash", [self._commitment(commitment)])
        try:
            value = result["value"]
            return LatestBlockhash(
                blockhash=str(value["blockhash"]),
                last_valid_block_height=int(value["lastValidBlockHeight"]),
            )
        except (TypeError, KeyError, ValueError) as exc:
            raise RPCTransportError(f"Unexpected getLatestBlockhash response: {result}") from exc

    def get_block_height(self, commitment: str | None = None) -> int:
        return int(self.call("getBlockHeight", [self._commitment(commitment)]))

    def get_balance(self, pubkey: Pubkey, commitment: str | None = None) -> int:
        result = self.call("getBalance", [str(pubkey), self._commitment(commitment)])
        return int(result["value"])

    def get_token_account_balance(
        self, pubkey: Pubkey, commitment: str | None = None
    ) -> Dict[str, Any]:
        result = self.call("getTokenAccountBalance", [str(pubkey), self._commitment(commitment)])
        return result["value"]

    def send_transaction(
        self,
        wire: bytes,
        *,
        skip_preflight: bool = False,
        preflight_commitment: str | None = None,
    ) -> str:
        options = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment or self.config.commitment,
        }
        encoded = base64.b64encode(wire).decode("ascii")
        return str(self.call("sendTransaction", [encoded, options]))

    def get_signature_statuses(
        self, signatures: Sequence[str], search_transaction_history: bool = False
    ) -> list[Dict[str, Any] | None]:
        result = self.call(
            "getSignatureStatuses",
            [list(signatures), {"searchTransactionHistory": search_transaction_history}],
        )
        return result["value"]
