"""Decode instruction payloads back into typed parameter records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from solders.pubkey import Pubkey

from .errors import InstructionDecodeError
from .instructions import (
    PARAMS_BY_KIND,
    FreezeAuthority,
    InstructionDescriptor,
    InstructionParams,
    NO_FREEZE_AUTHORITY,
)
from .layout import U32_WIDTH, PayloadReader
from .schema import (
    OPTION_NONE,
    OPTION_SOME,
    FieldKind,
    PROGRAM_OPCODE_WIDTHS,
    OpcodeSchema,
    OperationKind,
    program_name,
    schema_for,
    schema_for_opcode,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedPayload:
    kind: OperationKind
    fields: Dict[str, Any]


def _read_opcode(reader: PayloadReader, width: int) -> int:
    if width == U32_WIDTH:
        return reader.read_u32("opcode")
    return reader.read_u8("opcode")


def identify(program_id: Pubkey, data: bytes) -> OpcodeSchema:
    """Return the schema matching ``data`` sent to ``program_id``."""

    width = PROGRAM_OPCODE_WIDTHS.get(program_id)
    if width is None:
        raise InstructionDecodeError(f"no instruction schemas for program {program_id}")
    if not data:
        raise InstructionDecodeError("empty payload")
    opcode = _read_opcode(PayloadReader(data), width)
    schema = schema_for_opcode(program_id, opcode)
    if schema is None:
        raise InstructionDecodeError(
            f"unknown opcode {opcode} for {program_name(program_id)} program"
        )
    return schema


def decode_payload(program_id: Pubkey, data: bytes) -> DecodedPayload:
    """Decode the payload fields of an instruction without its accounts."""

    schema = identify(program_id, data)
    reader = PayloadReader(data)
    _read_opcode(reader, schema.opcode_width)

    values: Dict[str, Any] = {}
    for field_spec in schema.fields:
        if field_spec.kind is FieldKind.U8:
            values[field_spec.name] = reader.read_u8(field_spec.name)
        elif field_spec.kind is FieldKind.U64:
            values[field_spec.name] = reader.read_u64(field_spec.name)
        elif field_spec.kind is FieldKind.PUBKEY:
            values[field_spec.name] = reader.read_pubkey(field_spec.name)
        elif field_spec.kind is FieldKind.OPTIONAL_PUBKEY:
            discriminant = reader.read_u8(f"{field_spec.name} option")
            if discriminant == OPTION_NONE:
                values[field_spec.name] = NO_FREEZE_AUTHORITY
            elif discriminant == OPTION_SOME:
                values[field_spec.name] = FreezeAuthority(reader.read_pubkey(field_spec.name))
            else:
                raise InstructionDecodeError(
                    f"invalid option discriminant {discriminant} for {field_spec.name}"
                )
    reader.expect_end()
    logger.debug("Decoded %s payload (%d bytes)", schema.kind.value, len(data))
    return DecodedPayload(kind=schema.kind, fields=values)


def decode_instruction(descriptor: InstructionDescriptor) -> InstructionParams:
    """Rebuild the typed parameters that produced ``descriptor``.

    Account roles are checked against the schema template, so a descriptor
    with reordered or re-flagged accounts is rejected rather than misread.
    """

    decoded = decode_payload(descriptor.program_id, descriptor.data)
    schema = schema_for(decoded.kind)
    if len(descriptor.accounts) != len(schema.accounts):
        raise InstructionDecodeError(
            f"{decoded.kind.value} expects {len(schema.accounts)} accounts, "
            f"got {len(descriptor.accounts)}"
        )

    values = dict(decoded.fields)
    for position, (role, ref) in enumerate(zip(schema.accounts, descriptor.accounts)):
        if (ref.is_signer, ref.is_writable) != (role.is_signer, role.is_writable):
            raise InstructionDecodeError(
                f"account {position} ({role.name}) of {decoded.kind.value} has "
                f"signer={ref.is_signer} writable={ref.is_writable}, expected "
                f"signer={role.is_signer} writable={role.is_writable}"
            )
        if role.fixed is not None:
            if ref.pubkey != role.fixed:
                raise InstructionDecodeError(
                    f"account {position} ({role.name}) must be {role.fixed}, got {ref.pubkey}"
                )
            continue
        values[role.name] = ref.pubkey

    return PARAMS_BY_KIND[decoded.kind](**values)
