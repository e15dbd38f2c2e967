"""Static opcode schemas for the supported system and token program instructions.

Each :class:`OperationKind` maps to exactly one :class:`OpcodeSchema` that
fixes the target program, the opcode tag and its width, the ordered payload
fields, and the positional account template with its signer/writable roles.
The table is checked for completeness at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Tuple

from solders.pubkey import Pubkey

from .errors import SchemaViolationError
from .layout import PUBKEY_WIDTH, U8_WIDTH, U32_WIDTH, U64_WIDTH

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
SYSVAR_RENT_PUBKEY = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

PROGRAM_NAMES: Dict[Pubkey, str] = {
    SYSTEM_PROGRAM_ID: "system",
    TOKEN_PROGRAM_ID: "token",
}

# The system program tags instructions with a u32 index, the token program with a u8.
PROGRAM_OPCODE_WIDTHS: Dict[Pubkey, int] = {
    SYSTEM_PROGRAM_ID: U32_WIDTH,
    TOKEN_PROGRAM_ID: U8_WIDTH,
}


def program_name(program_id: Pubkey) -> str:
    return PROGRAM_NAMES.get(program_id, str(program_id))


# System program instruction index, encoded as u32.
SYSTEM_CREATE_ACCOUNT = 0

# Token program instruction tags, encoded as u8.
TOKEN_INITIALIZE_MINT = 0
TOKEN_INITIALIZE_ACCOUNT = 1
TOKEN_TRANSFER = 3
TOKEN_MINT_TO = 7

OPTION_NONE = 0
OPTION_SOME = 1


class OperationKind(Enum):
    CREATE_ACCOUNT = "create_account"
    INITIALIZE_MINT = "initialize_mint"
    INITIALIZE_ACCOUNT = "initialize_account"
    MINT_TO = "mint_to"
    TRANSFER = "transfer"


class FieldKind(Enum):
    U8 = "u8"
    U64 = "u64"
    PUBKEY = "pubkey"
    OPTIONAL_PUBKEY = "optional_pubkey"


_FIELD_WIDTHS = {
    FieldKind.U8: U8_WIDTH,
    FieldKind.U64: U64_WIDTH,
    FieldKind.PUBKEY: PUBKEY_WIDTH,
}


@dataclass(frozen=True)
class FieldSpec:
    """One payload field following the opcode tag."""

    name: str
    kind: FieldKind

    def width(self, present: bool = False) -> int:
        if self.kind is FieldKind.OPTIONAL_PUBKEY:
            return U8_WIDTH + (PUBKEY_WIDTH if present else 0)
        return _FIELD_WIDTHS[self.kind]


@dataclass(frozen=True)
class AccountRole:
    """Positional account slot; ``fixed`` pins the slot to a well-known address."""

    name: str
    is_signer: bool
    is_writable: bool
    fixed: Pubkey | None = None


@dataclass(frozen=True)
class OpcodeSchema:
    kind: OperationKind
    program_id: Pubkey
    opcode: int
    opcode_width: int
    fields: Tuple[FieldSpec, ...]
    accounts: Tuple[AccountRole, ...]

    @property
    def optional_fields(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.kind is FieldKind.OPTIONAL_PUBKEY)

    def payload_length(self, present: Iterable[str] = ()) -> int:
        """Return the exact payload length given the optional fields that are present."""

        present_set = frozenset(present)
        unknown = present_set.difference(self.optional_fields)
        if unknown:
            raise SchemaViolationError(
                f"{self.kind.value} has no optional field(s) {sorted(unknown)}"
            )
        return self.opcode_width + sum(f.width(f.name in present_set) for f in self.fields)

    @property
    def caller_accounts(self) -> Tuple[AccountRole, ...]:
        """Account slots whose identity the caller supplies."""

        return tuple(role for role in self.accounts if role.fixed is None)


SCHEMAS: Mapping[OperationKind, OpcodeSchema] = {
    OperationKind.CREATE_ACCOUNT: OpcodeSchema(
        kind=OperationKind.CREATE_ACCOUNT,
        program_id=SYSTEM_PROGRAM_ID,
        opcode=SYSTEM_CREATE_ACCOUNT,
        opcode_width=U32_WIDTH,
        fields=(
            FieldSpec("lamports", FieldKind.U64),
            FieldSpec("space", FieldKind.U64),
            FieldSpec("owner", FieldKind.PUBKEY),
        ),
        accounts=(
            AccountRole("payer", is_signer=True, is_writable=True),
            AccountRole("new_account", is_signer=True, is_writable=True),
        ),
    ),
    OperationKind.INITIALIZE_MINT: OpcodeSchema(
        kind=OperationKind.INITIALIZE_MINT,
        program_id=TOKEN_PROGRAM_ID,
        opcode=TOKEN_INITIALIZE_MINT,
        opcode_width=U8_WIDTH,
        fields=(
            FieldSpec("decimals", FieldKind.U8),
            FieldSpec("mint_authority", FieldKind.PUBKEY),
            FieldSpec("freeze_authority", FieldKind.OPTIONAL_PUBKEY),
        ),
        accounts=(
            AccountRole("mint", is_signer=False, is_writable=True),
            AccountRole("rent_sysvar", is_signer=False, is_writable=False, fixed=SYSVAR_RENT_PUBKEY),
        ),
    ),
    OperationKind.INITIALIZE_ACCOUNT: OpcodeSchema(
        kind=OperationKind.INITIALIZE_ACCOUNT,
        program_id=TOKEN_PROGRAM_ID,
        opcode=TOKEN_INITIALIZE_ACCOUNT,
        opcode_width=U8_WIDTH,
        fields=(),
        accounts=(
            AccountRole("account", is_signer=False, is_writable=True),
            AccountRole("mint", is_signer=False, is_writable=False),
            AccountRole("owner", is_signer=False, is_writable=False),
            AccountRole("rent_sysvar", is_signer=False, is_writable=False, fixed=SYSVAR_RENT_PUBKEY),
        ),
    ),
    OperationKind.MINT_TO: OpcodeSchema(
        kind=OperationKind.MINT_TO,
        program_id=TOKEN_PROGRAM_ID,
        opcode=TOKEN_MINT_TO,
        opcode_width=U8_WIDTH,
        fields=(FieldSpec("amount", FieldKind.U64),),
        accounts=(
            AccountRole("mint", is_signer=False, is_writable=True),
            AccountRole("destination", is_signer=False, is_writable=True),
            AccountRole("authority", is_signer=True, is_writable=False),
        ),
    ),
    OperationKind.TRANSFER: OpcodeSchema(
        kind=OperationKind.TRANSFER,
        program_id=TOKEN_PROGRAM_ID,
        opcode=TOKEN_TRANSFER,
        opcode_width=U8_WIDTH,
        fields=(FieldSpec("amount", FieldKind.U64),),
        accounts=(
            AccountRole("source", is_signer=False, is_writable=True),
            AccountRole("destination", is_signer=False, is_writable=True),
            AccountRole("owner", is_signer=True, is_writable=False),
        ),
    ),
}


def _check_table(table: Mapping[OperationKind, OpcodeSchema]) -> None:
    missing = [kind.value for kind in OperationKind if kind not in table]
    if missing:
        raise SchemaViolationError(f"opcode schema table is missing {missing}")
    seen: Dict[Tuple[Pubkey, int], OperationKind] = {}
    for kind, schema in table.items():
        if PROGRAM_OPCODE_WIDTHS.get(schema.program_id) != schema.opcode_width:
            raise SchemaViolationError(
                f"{kind.value} uses a {schema.opcode_width}-byte opcode, "
                f"which does not match the {program_name(schema.program_id)} program convention"
            )
        if schema.kind is not kind:
            raise SchemaViolationError(f"schema registered under {kind.value} describes {schema.kind.value}")
        key = (schema.program_id, schema.opcode)
        if key in seen:
            raise SchemaViolationError(
                f"{kind.value} reuses opcode {schema.opcode} of {seen[key].value}"
            )
        seen[key] = kind


_check_table(SCHEMAS)

_BY_OPCODE: Dict[Tuple[Pubkey, int], OpcodeSchema] = {
    (schema.program_id, schema.opcode): schema for schema in SCHEMAS.values()
}


def schema_for(kind: OperationKind) -> OpcodeSchema:
    return SCHEMAS[kind]


def schema_for_opcode(program_id: Pubkey, opcode: int) -> OpcodeSchema | None:
    """Return the schema registered for ``opcode`` on ``program_id``, if any."""

    return _BY_OPCODE.get((program_id, opcode))
