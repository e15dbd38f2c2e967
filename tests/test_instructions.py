from __future__ import annotations

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from spl_batch.errors import DomainViolationError
from spl_batch.instructions import (
    AccountReference,
    FreezeAuthority,
    MintToParams,
    create_account,
    encode_instruction,
    initialize_account,
    initialize_mint,
    mint_to,
    transfer,
)
from spl_batch.layout import U64_MAX
from spl_batch.schema import SCHEMAS, SYSTEM_PROGRAM_ID, SYSVAR_RENT_PUBKEY, TOKEN_PROGRAM_ID


def _pubkey() -> Pubkey:
    return Keypair().pubkey()


def test_create_account_layout() -> None:
    payer, new_account = _pubkey(), _pubkey()
    descriptor = create_account(payer, new_account, 1_461_600, 82, TOKEN_PROGRAM_ID)

    assert descriptor.program_id == SYSTEM_PROGRAM_ID
    assert len(descriptor.data) == 52
    assert descriptor.data[:4] == b"\x00\x00\x00\x00"
    assert int.from_bytes(descriptor.data[4:12], "little") == 1_461_600
    assert int.from_bytes(descriptor.data[12:20], "little") == 82
    assert descriptor.data[20:] == bytes(TOKEN_PROGRAM_ID)
    assert descriptor.accounts == (
        AccountReference(payer, is_signer=True, is_writable=True),
        AccountReference(new_account, is_signer=True, is_writable=True),
    )


def test_initialize_mint_without_freeze_authority() -> None:
    mint, authority = _pubkey(), _pubkey()
    descriptor = initialize_mint(mint, 9, authority)

    assert descriptor.program_id == TOKEN_PROGRAM_ID
    assert len(descriptor.data) == 35
    assert descriptor.data[0] == 0
    assert descriptor.data[1] == 9
    assert descriptor.data[2:34] == bytes(authority)
    assert descriptor.data[34] == 0
    assert descriptor.accounts == (
        AccountReference(mint, is_signer=False, is_writable=True),
        AccountReference(SYSVAR_RENT_PUBKEY, is_signer=False, is_writable=False),
    )


def test_initialize_mint_with_freeze_authority() -> None:
    mint, authority, freezer = _pubkey(), _pubkey(), _pubkey()
    from_pubkey = initialize_mint(mint, 6, authority, freezer)
    from_variant = initialize_mint(mint, 6, authority, FreezeAuthority(freezer))

    assert len(from_pubkey.data) == 67
    assert from_pubkey.data[34] == 1
    assert from_pubkey.data[35:] == bytes(freezer)
    assert from_pubkey == from_variant


def test_initialize_account_layout() -> None:
    account, mint, owner = _pubkey(), _pubkey(), _pubkey()
    descriptor = initialize_account(account, mint, owner)

    assert descriptor.data == b"\x01"
    assert [ref.pubkey for ref in descriptor.accounts] == [account, mint, owner, SYSVAR_RENT_PUBKEY]
    assert [ref.is_writable for ref in descriptor.accounts] == [True, False, False, False]
    assert descriptor.signers == ()


@pytest.mark.parametrize(
    "amount", [0, 1, 2**8, 2**16, 2**24, 2**32, 2**40, 2**48, 2**56, U64_MAX]
)
def test_mint_to_amount_encoding(amount: int) -> None:
    mint, destination, authority = _pubkey(), _pubkey(), _pubkey()
    descriptor = mint_to(mint, destination, authority, amount)

    assert len(descriptor.data) == 9
    assert descriptor.data[0] == 7
    assert descriptor.data[1:] == amount.to_bytes(8, "little")
    assert descriptor.signers == (authority,)


def test_transfer_layout() -> None:
    source, destination, owner = _pubkey(), _pubkey(), _pubkey()
    descriptor = transfer(source, destination, owner, 3_000_000_000)

    assert descriptor.data == b"\x03" + (3_000_000_000).to_bytes(8, "little")
    assert descriptor.accounts == (
        AccountReference(source, is_signer=False, is_writable=True),
        AccountReference(destination, is_signer=False, is_writable=True),
        AccountReference(owner, is_signer=True, is_writable=False),
    )


@pytest.mark.parametrize("amount", [-1, U64_MAX + 1])
def test_amount_out_of_range_is_rejected(amount: int) -> None:
    with pytest.raises(DomainViolationError):
        transfer(_pubkey(), _pubkey(), _pubkey(), amount)
    with pytest.raises(DomainViolationError):
        mint_to(_pubkey(), _pubkey(), _pubkey(), amount)


def test_decimals_must_fit_u8() -> None:
    with pytest.raises(DomainViolationError):
        initialize_mint(_pubkey(), 256, _pubkey())


def test_missing_identity_is_rejected() -> None:
    with pytest.raises(DomainViolationError):
        initialize_account(_pubkey(), None, _pubkey())  # type: ignore[arg-type]
    with pytest.raises(DomainViolationError):
        create_account(_pubkey(), "not-a-key", 1, 1, TOKEN_PROGRAM_ID)  # type: ignore[arg-type]


def test_freeze_authority_rejects_strings() -> None:
    with pytest.raises(DomainViolationError):
        initialize_mint(_pubkey(), 9, _pubkey(), "freeze")  # type: ignore[arg-type]


def test_encode_instruction_matches_constructor() -> None:
    mint, destination, authority = _pubkey(), _pubkey(), _pubkey()
    params = MintToParams(mint, destination, authority, 42)
    assert encode_instruction(params) == mint_to(mint, destination, authority, 42)


def test_encode_instruction_rejects_foreign_params() -> None:
    with pytest.raises(DomainViolationError):
        encode_instruction(object())  # type: ignore[arg-type]


def test_schema_lengths_are_fixed() -> None:
    lengths = {kind.value: schema.payload_length() for kind, schema in SCHEMAS.items()}
    assert lengths == {
        "create_account": 52,
        "initialize_mint": 35,
        "initialize_account": 1,
        "mint_to": 9,
        "transfer": 9,
    }
    mint_schema = [s for s in SCHEMAS.values() if s.optional_fields][0]
    assert mint_schema.payload_length(["freeze_authority"]) == 67
