from __future__ import annotations

import pytest
from solders.keypair import Keypair

from spl_batch.errors import DomainViolationError
from spl_batch.rent import (
    MINT_ACCOUNT_SIZE,
    TOKEN_ACCOUNT_SIZE,
    AccountKind,
    allocate_account,
    rent_exempt_balance,
)
from spl_batch.schema import TOKEN_PROGRAM_ID


class StubRentSource:
    def __init__(self, balances=None) -> None:
        self.balances = balances or {82: 1_461_600, 165: 2_039_280}
        self.requested = []

    def get_minimum_balance_for_rent_exemption(self, size: int):
        self.requested.append(size)
        return self.balances[size]


def test_account_sizes_match_token_program_layouts() -> None:
    assert MINT_ACCOUNT_SIZE == 82
    assert TOKEN_ACCOUNT_SIZE == 165
    assert AccountKind.MINT.size == 82
    assert AccountKind.TOKEN_ACCOUNT.size == 165


def test_rent_exempt_balance_asks_for_kind_size() -> None:
    source = StubRentSource()
    assert rent_exempt_balance(source, AccountKind.TOKEN_ACCOUNT) == 2_039_280
    assert source.requested == [165]


@pytest.mark.parametrize("bad", [-1, None, "1461600", True])
def test_rent_exempt_balance_rejects_bad_answers(bad) -> None:
    source = StubRentSource({82: bad})
    with pytest.raises(DomainViolationError):
        rent_exempt_balance(source, AccountKind.MINT)


def test_allocate_account_funds_and_sizes_the_account() -> None:
    payer, mint = Keypair().pubkey(), Keypair().pubkey()
    descriptor = allocate_account(StubRentSource(), payer, mint, AccountKind.MINT)

    assert int.from_bytes(descriptor.data[4:12], "little") == 1_461_600
    assert int.from_bytes(descriptor.data[12:20], "little") == 82
    assert descriptor.data[20:] == bytes(TOKEN_PROGRAM_ID)
    assert descriptor.signers == (payer, mint)
