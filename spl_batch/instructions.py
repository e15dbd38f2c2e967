"""Instruction constructors for account allocation and token operations.

Every constructor is a pure function: it validates its typed arguments,
allocates a payload at the length the opcode schema dictates, fills it, and
returns an immutable :class:`InstructionDescriptor`. Signer and writable flags
always come from the schema's account template; callers only supply
identities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Tuple, Type, Union

from solders.pubkey import Pubkey

from .errors import DomainViolationError, SchemaViolationError
from .layout import U32_WIDTH, check_pubkey, encode_payload
from .schema import (
    OPTION_NONE,
    OPTION_SOME,
    FieldKind,
    OpcodeSchema,
    OperationKind,
    schema_for,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountReference:
    pubkey: Pubkey
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class InstructionDescriptor:
    """Target program, positional account references, and payload bytes."""

    program_id: Pubkey
    accounts: Tuple[AccountReference, ...]
    data: bytes

    @property
    def signers(self) -> Tuple[Pubkey, ...]:
        return tuple(ref.pubkey for ref in self.accounts if ref.is_signer)


@dataclass(frozen=True)
class NoFreezeAuthority:
    discriminant: ClassVar[int] = OPTION_NONE
    pubkey: ClassVar[None] = None


@dataclass(frozen=True)
class FreezeAuthority:
    discriminant: ClassVar[int] = OPTION_SOME
    pubkey: Pubkey


FreezeAuthorityOption = Union[NoFreezeAuthority, FreezeAuthority]

NO_FREEZE_AUTHORITY = NoFreezeAuthority()


def freeze_authority_option(value: FreezeAuthorityOption | Pubkey | None) -> FreezeAuthorityOption:
    """Normalize ``None``/``Pubkey`` shorthands to the freeze-authority variant."""

    if value is None:
        return NO_FREEZE_AUTHORITY
    if isinstance(value, (NoFreezeAuthority, FreezeAuthority)):
        return value
    if isinstance(value, Pubkey):
        return FreezeAuthority(value)
    raise DomainViolationError(
        f"freeze_authority must be a Pubkey or None, got {type(value).__name__}"
    )


# Typed parameter records ----------------------------------------------------
# Attribute names match the schema's account role and field names.


@dataclass(frozen=True)
class CreateAccountParams:
    kind: ClassVar[OperationKind] = OperationKind.CREATE_ACCOUNT

    payer: Pubkey
    new_account: Pubkey
    lamports: int
    space: int
    owner: Pubkey


@dataclass(frozen=True)
class InitializeMintParams:
    kind: ClassVar[OperationKind] = OperationKind.INITIALIZE_MINT

    mint: Pubkey
    decimals: int
    mint_authority: Pubkey
    freeze_authority: FreezeAuthorityOption = NO_FREEZE_AUTHORITY


@dataclass(frozen=True)
class InitializeAccountParams:
    kind: ClassVar[OperationKind] = OperationKind.INITIALIZE_ACCOUNT

    account: Pubkey
    mint: Pubkey
    owner: Pubkey


@dataclass(frozen=True)
class MintToParams:
    kind: ClassVar[OperationKind] = OperationKind.MINT_TO

    mint: Pubkey
    destination: Pubkey
    authority: Pubkey
    amount: int


@dataclass(frozen=True)
class TransferParams:
    kind: ClassVar[OperationKind] = OperationKind.TRANSFER

    source: Pubkey
    destination: Pubkey
    owner: Pubkey
    amount: int


InstructionParams = Union[
    CreateAccountParams,
    InitializeMintParams,
    InitializeAccountParams,
    MintToParams,
    TransferParams,
]

PARAMS_BY_KIND: Dict[OperationKind, Type[Any]] = {
    CreateAccountParams.kind: CreateAccountParams,
    InitializeMintParams.kind: InitializeMintParams,
    InitializeAccountParams.kind: InitializeAccountParams,
    MintToParams.kind: MintToParams,
    TransferParams.kind: TransferParams,
}

_missing_params = [kind.value for kind in OperationKind if kind not in PARAMS_BY_KIND]
if _missing_params:
    raise SchemaViolationError(f"no parameter record for {_missing_params}")


def _build_accounts(schema: OpcodeSchema, values: Mapping[str, Any]) -> Tuple[AccountReference, ...]:
    refs = []
    for role in schema.accounts:
        pubkey = role.fixed if role.fixed is not None else check_pubkey(values.get(role.name), role.name)
        refs.append(AccountReference(pubkey, role.is_signer, role.is_writable))
    return tuple(refs)


def _encode(schema: OpcodeSchema, values: Mapping[str, Any]) -> bytes:
    present = []
    for name in schema.optional_fields:
        option = values[name]
        if not isinstance(option, (NoFreezeAuthority, FreezeAuthority)):
            raise DomainViolationError(f"{name} must be an option variant, got {type(option).__name__}")
        if option.discriminant == OPTION_SOME:
            present.append(name)

    length = schema.payload_length(present)
    with encode_payload(length) as cursor:
        if schema.opcode_width == U32_WIDTH:
            cursor.write_u32(schema.opcode, "opcode")
        else:
            cursor.write_u8(schema.opcode, "opcode")
        for field_spec in schema.fields:
            value = values[field_spec.name]
            if field_spec.kind is FieldKind.U8:
                cursor.write_u8(value, field_spec.name)
            elif field_spec.kind is FieldKind.U64:
                cursor.write_u64(value, field_spec.name)
            elif field_spec.kind is FieldKind.PUBKEY:
                cursor.write_pubkey(value, field_spec.name)
            elif field_spec.kind is FieldKind.OPTIONAL_PUBKEY:
                cursor.write_u8(value.discriminant, f"{field_spec.name} option")
                if value.discriminant == OPTION_SOME:
                    cursor.write_pubkey(value.pubkey, field_spec.name)
            else:  # pragma: no cover - FieldKind is closed
                raise SchemaViolationError(f"unhandled field kind {field_spec.kind}")
        data = cursor.finish()

    if len(data) != length:  # pragma: no cover - cursor.finish enforces this
        raise SchemaViolationError(f"{schema.kind.value} payload is {len(data)} bytes, expected {length}")
    return data


def encode_instruction(params: InstructionParams) -> InstructionDescriptor:
    """Encode any typed parameter record into an instruction descriptor."""

    kind = getattr(params, "kind", None)
    if kind not in PARAMS_BY_KIND or not isinstance(params, PARAMS_BY_KIND[kind]):
        raise DomainViolationError(f"unsupported instruction parameters: {type(params).__name__}")
    schema = schema_for(kind)
    values = {f.name: getattr(params, f.name) for f in fields(params)}
    accounts = _build_accounts(schema, values)
    data = _encode(schema, values)
    logger.debug("Encoded %s instruction (%d bytes): %s", kind.value, len(data), data.hex())
    return InstructionDescriptor(program_id=schema.program_id, accounts=accounts, data=data)


def create_account(
    payer: Pubkey,
    new_account: Pubkey,
    lamports: int,
    space: int,
    owner: Pubkey,
) -> InstructionDescriptor:
    """Allocate ``space`` bytes for ``new_account`` funded by ``payer`` and owned by ``owner``."""

    return encode_instruction(CreateAccountParams(payer, new_account, lamports, space, owner))


def initialize_mint(
    mint: Pubkey,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: FreezeAuthorityOption | Pubkey | None = None,
) -> InstructionDescriptor:
    """Initialize ``mint`` with ``decimals`` and its authorities.

    ``freeze_authority`` may be a variant, a bare ``Pubkey`` or ``None``. The
    payload is 35 bytes without a freeze authority and 67 bytes with one.
    """

    return encode_instruction(
        InitializeMintParams(mint, decimals, mint_authority, freeze_authority_option(freeze_authority))
    )


def initialize_account(account: Pubkey, mint: Pubkey, owner: Pubkey) -> InstructionDescriptor:
    return encode_instruction(InitializeAccountParams(account, mint, owner))


def mint_to(mint: Pubkey, destination: Pubkey, authority: Pubkey, amount: int) -> InstructionDescriptor:
    return encode_instruction(MintToParams(mint, destination, authority, amount))


def transfer(source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> InstructionDescriptor:
    return encode_instruction(TransferParams(source, destination, owner, amount))
