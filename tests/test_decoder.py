from __future__ import annotations

from dataclasses import replace

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from spl_batch.decoder import decode_instruction, decode_payload, identify
from spl_batch.errors import InstructionDecodeError
from spl_batch.instructions import (
    NO_FREEZE_AUTHORITY,
    CreateAccountParams,
    FreezeAuthority,
    InitializeAccountParams,
    InitializeMintParams,
    MintToParams,
    TransferParams,
    create_account,
    encode_instruction,
    initialize_mint,
    transfer,
)
from spl_batch.schema import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID, OperationKind


def _pubkey() -> Pubkey:
    return Keypair().pubkey()


@pytest.mark.parametrize(
    "params",
    [
        CreateAccountParams(_pubkey(), _pubkey(), 2_039_280, 165, TOKEN_PROGRAM_ID),
        InitializeMintParams(_pubkey(), 9, _pubkey()),
        InitializeMintParams(_pubkey(), 0, _pubkey(), FreezeAuthority(_pubkey())),
        InitializeAccountParams(_pubkey(), _pubkey(), _pubkey()),
        MintToParams(_pubkey(), _pubkey(), _pubkey(), 10_000_000_000),
        TransferParams(_pubkey(), _pubkey(), _pubkey(), 3),
    ],
)
def test_decode_recovers_parameters(params) -> None:
    assert decode_instruction(encode_instruction(params)) == params


def test_identify_distinguishes_programs() -> None:
    # Tag 0 means CreateAccount to the system program and InitializeMint to the token program.
    system = identify(SYSTEM_PROGRAM_ID, b"\x00" * 52)
    token = identify(TOKEN_PROGRAM_ID, b"\x00" * 35)
    assert system.kind is OperationKind.CREATE_ACCOUNT
    assert token.kind is OperationKind.INITIALIZE_MINT


def test_decode_payload_reports_fields() -> None:
    authority = _pubkey()
    descriptor = initialize_mint(_pubkey(), 6, authority)
    decoded = decode_payload(descriptor.program_id, descriptor.data)

    assert decoded.kind is OperationKind.INITIALIZE_MINT
    assert decoded.fields == {
        "decimals": 6,
        "mint_authority": authority,
        "freeze_authority": NO_FREEZE_AUTHORITY,
    }


def test_invalid_option_discriminant_is_rejected() -> None:
    descriptor = initialize_mint(_pubkey(), 9, _pubkey())
    corrupted = descriptor.data[:34] + b"\x02"
    with pytest.raises(InstructionDecodeError):
        decode_payload(TOKEN_PROGRAM_ID, corrupted)


def test_unknown_opcode_and_program() -> None:
    with pytest.raises(InstructionDecodeError):
        decode_payload(TOKEN_PROGRAM_ID, b"\x09")
    with pytest.raises(InstructionDecodeError):
        decode_payload(_pubkey(), b"\x03" + bytes(8))
    with pytest.raises(InstructionDecodeError):
        decode_payload(TOKEN_PROGRAM_ID, b"")


def test_length_mismatch_is_rejected() -> None:
    descriptor = transfer(_pubkey(), _pubkey(), _pubkey(), 5)
    with pytest.raises(InstructionDecodeError):
        decode_payload(TOKEN_PROGRAM_ID, descriptor.data[:-1])
    with pytest.raises(InstructionDecodeError):
        decode_payload(TOKEN_PROGRAM_ID, descriptor.data + b"\x00")


def test_reordered_accounts_are_rejected() -> None:
    descriptor = create_account(_pubkey(), _pubkey(), 1, 82, TOKEN_PROGRAM_ID)
    flipped = transfer(_pubkey(), _pubkey(), _pubkey(), 1)
    reordered = replace(flipped, accounts=tuple(reversed(flipped.accounts)))

    with pytest.raises(InstructionDecodeError):
        decode_instruction(reordered)
    with pytest.raises(InstructionDecodeError):
        decode_instruction(replace(descriptor, accounts=descriptor.accounts[:1]))


def test_rent_sysvar_slot_is_checked() -> None:
    descriptor = initialize_mint(_pubkey(), 9, _pubkey())
    mint_ref, rent_ref = descriptor.accounts
    swapped = replace(descriptor, accounts=(mint_ref, replace(rent_ref, pubkey=_pubkey())))
    with pytest.raises(InstructionDecodeError):
        decode_instruction(swapped)
