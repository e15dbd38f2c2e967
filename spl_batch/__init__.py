"""Byte-exact instruction codec and atomic batch composer for SPL token workflows."""

from .batch import Batch
from .decoder import DecodedPayload, decode_instruction, decode_payload, identify
from .errors import (
    BatchStateError,
    DomainViolationError,
    InstructionDecodeError,
    SchemaViolationError,
    UnsatisfiedSignerError,
)
from .instructions import (
    NO_FREEZE_AUTHORITY,
    AccountReference,
    CreateAccountParams,
    FreezeAuthority,
    InitializeAccountParams,
    InitializeMintParams,
    InstructionDescriptor,
    MintToParams,
    NoFreezeAuthority,
    TransferParams,
    create_account,
    encode_instruction,
    initialize_account,
    initialize_mint,
    mint_to,
    transfer,
)
from .rent import MINT_ACCOUNT_SIZE, TOKEN_ACCOUNT_SIZE, AccountKind, allocate_account, rent_exempt_balance
from .schema import (
    SCHEMAS,
    SYSTEM_PROGRAM_ID,
    SYSVAR_RENT_PUBKEY,
    TOKEN_PROGRAM_ID,
    OpcodeSchema,
    OperationKind,
)

__all__ = [
    "AccountKind",
    "AccountReference",
    "Batch",
    "BatchStateError",
    "CreateAccountParams",
    "DecodedPayload",
    "DomainViolationError",
    "FreezeAuthority",
    "InitializeAccountParams",
    "InitializeMintParams",
    "InstructionDecodeError",
    "InstructionDescriptor",
    "MINT_ACCOUNT_SIZE",
    "MintToParams",
    "NO_FREEZE_AUTHORITY",
    "NoFreezeAuthority",
    "OpcodeSchema",
    "OperationKind",
    "SCHEMAS",
    "SYSTEM_PROGRAM_ID",
    "SYSVAR_RENT_PUBKEY",
    "SchemaViolationError",
    "TOKEN_ACCOUNT_SIZE",
    "TOKEN_PROGRAM_ID",
    "TransferParams",
    "UnsatisfiedSignerError",
    "allocate_account",
    "create_account",
    "decode_instruction",
    "decode_payload",
    "encode_instruction",
    "identify",
    "initialize_account",
    "initialize_mint",
    "mint_to",
    "rent_exempt_balance",
    "transfer",
]
