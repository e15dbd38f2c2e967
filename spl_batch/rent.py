"""Account sizes and rent-exempt funding for allocated token accounts.

The byte sizes live next to the opcode schemas so that the allocation size can
never drift from the token program's account layout. The rent-exempt balance
itself is always asked of the ledger.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from solders.pubkey import Pubkey

from .errors import DomainViolationError
from .instructions import InstructionDescriptor, create_account
from .schema import TOKEN_PROGRAM_ID

logger = logging.getLogger(__name__)

MINT_ACCOUNT_SIZE = 82
TOKEN_ACCOUNT_SIZE = 165


class AccountKind(Enum):
    MINT = MINT_ACCOUNT_SIZE
    TOKEN_ACCOUNT = TOKEN_ACCOUNT_SIZE

    @property
    def size(self) -> int:
        return self.value


class RentSource(Protocol):
    def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        ...


def rent_exempt_balance(source: RentSource, kind: AccountKind) -> int:
    """Return the lamports ``kind`` needs to be rent exempt, as reported by ``source``."""

    lamports = source.get_minimum_balance_for_rent_exemption(kind.size)
    if isinstance(lamports, bool) or not isinstance(lamports, int) or lamports < 0:
        raise DomainViolationError(
            f"rent source returned an invalid balance for {kind.size} bytes: {lamports!r}"
        )
    logger.debug("Rent-exempt balance for %s (%d bytes): %d lamports", kind.name, kind.size, lamports)
    return lamports


def allocate_account(
    source: RentSource,
    payer: Pubkey,
    new_account: Pubkey,
    kind: AccountKind,
) -> InstructionDescriptor:
    """Build a rent-exempt ``CreateAccount`` for a token-program account of ``kind``."""

    lamports = rent_exempt_balance(source, kind)
    return create_account(payer, new_account, lamports, kind.size, TOKEN_PROGRAM_ID)
