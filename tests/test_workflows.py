from __future__ import annotations

from decimal import Decimal

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from spl_batch.decoder import decode_instruction
from spl_batch.errors import DomainViolationError, UnsatisfiedSignerError
from spl_batch.instructions import MintToParams, TransferParams
from spl_batch.rpc_client import LatestBlockhash
from spl_batch.schema import OperationKind
from spl_batch.submitter import BatchSubmitter
from spl_batch.workflows import (
    execute_batch,
    format_batch_summary,
    plan_create_mint,
    plan_token_flow,
    summarize_batch,
    ui_amount_to_base_units,
)

BLOCKHASH = str(Hash.default())


class StubRPC:
    def __init__(self) -> None:
        self.sent = []

    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return {82: 1_461_600, 165: 2_039_280}[size]

    def get_latest_blockhash(self, commitment=None) -> LatestBlockhash:
        return LatestBlockhash(blockhash=BLOCKHASH, last_valid_block_height=500)

    def send_transaction(self, wire, *, skip_preflight=False, preflight_commitment=None):
        self.sent.append(wire)
        return "sig-flow"

    def get_signature_statuses(self, signatures):
        return [{"slot": 11, "confirmations": 1, "err": None, "confirmationStatus": "confirmed"}]

    def get_block_height(self, commitment=None):
        return 400


def _flow(payer, mint, account_a, account_b, receiver, mint_amount=10_000_000_000, transfer_amount=3_000_000_000):
    return plan_token_flow(
        StubRPC(),
        payer.pubkey(),
        mint.pubkey(),
        account_a.pubkey(),
        account_b.pubkey(),
        receiver,
        9,
        mint_amount,
        transfer_amount,
    )


@pytest.mark.parametrize(
    ("amount", "decimals", "expected"),
    [("10", 9, 10_000_000_000), ("0.5", 2, 50), (3, 0, 3), (Decimal("1.000000001"), 9, 1_000_000_001)],
)
def test_ui_amount_to_base_units(amount, decimals, expected) -> None:
    assert ui_amount_to_base_units(amount, decimals) == expected


@pytest.mark.parametrize(("amount", "decimals"), [("0.001", 2), ("-1", 9), ("ten", 9), ("NaN", 9)])
def test_ui_amount_rejects_bad_values(amount, decimals) -> None:
    with pytest.raises(DomainViolationError):
        ui_amount_to_base_units(amount, decimals)


def test_token_flow_orders_instructions_by_dependency() -> None:
    payer, mint, account_a, account_b = Keypair(), Keypair(), Keypair(), Keypair()
    receiver = Keypair().pubkey()

    batch = _flow(payer, mint, account_a, account_b, receiver)
    kinds = [row["instruction"] for row in summarize_batch(batch)]

    assert kinds == [
        OperationKind.CREATE_ACCOUNT.value,
        OperationKind.CREATE_ACCOUNT.value,
        OperationKind.CREATE_ACCOUNT.value,
        OperationKind.INITIALIZE_MINT.value,
        OperationKind.INITIALIZE_ACCOUNT.value,
        OperationKind.INITIALIZE_ACCOUNT.value,
        OperationKind.MINT_TO.value,
        OperationKind.TRANSFER.value,
    ]
    assert decode_instruction(batch.instructions[6]) == MintToParams(
        mint.pubkey(), account_a.pubkey(), payer.pubkey(), 10_000_000_000
    )
    assert decode_instruction(batch.instructions[7]) == TransferParams(
        account_a.pubkey(), account_b.pubkey(), payer.pubkey(), 3_000_000_000
    )
    assert batch.required_signers == (
        payer.pubkey(),
        mint.pubkey(),
        account_a.pubkey(),
        account_b.pubkey(),
    )
    assert receiver not in batch.required_signers


def test_token_flow_rejects_overspending_transfer() -> None:
    keys = [Keypair() for _ in range(4)]
    with pytest.raises(DomainViolationError):
        _flow(*keys, Keypair().pubkey(), mint_amount=1, transfer_amount=2)


def test_format_batch_summary_lists_signers() -> None:
    payer, mint = Keypair(), Keypair()
    batch = plan_create_mint(StubRPC(), payer.pubkey(), mint.pubkey(), 9)
    text = format_batch_summary(batch)

    assert "0 | system | create_account | 52 | 2" in text
    assert "1 | token | initialize_mint | 35 | 0" in text
    assert str(mint.pubkey()) in text


def test_execute_batch_signs_submits_and_confirms() -> None:
    payer, mint, account_a, account_b = Keypair(), Keypair(), Keypair(), Keypair()
    rpc = StubRPC()
    batch = _flow(payer, mint, account_a, account_b, Keypair().pubkey())
    submitter = BatchSubmitter(rpc, sleep=lambda _seconds: None)  # type: ignore[arg-type]

    receipt = execute_batch(rpc, submitter, batch, payer, [mint, account_a, account_b])  # type: ignore[arg-type]

    assert receipt.signature == "sig-flow"
    assert receipt.confirmation.slot == 11
    assert receipt.batch.finalized
    assert receipt.batch.freshness_token == BLOCKHASH
    assert len(rpc.sent) == 1


def test_execute_batch_without_all_keys_sends_nothing() -> None:
    payer, mint = Keypair(), Keypair()
    rpc = StubRPC()
    batch = plan_create_mint(rpc, payer.pubkey(), mint.pubkey(), 9)
    submitter = BatchSubmitter(rpc, sleep=lambda _seconds: None)  # type: ignore[arg-type]

    with pytest.raises(UnsatisfiedSignerError):
        execute_batch(rpc, submitter, batch, payer)  # type: ignore[arg-type]
    assert rpc.sent == []
