"""Command line interface for building and submitting token batches."""

from __future__ import annotations

import argparse
import base64
import binascii
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .batch import Batch
from .config import AppConfig, ConfigurationError, load_config
from .decoder import decode_payload
from .errors import (
    BatchStateError,
    DomainViolationError,
    InstructionDecodeError,
    SchemaViolationError,
    UnsatisfiedSignerError,
)
from .keys import (
    KeyLoadError,
    generate_keypair,
    keypair_from_base58,
    load_receiver_pubkey,
    load_sender_keypair,
    parse_pubkey,
    write_keystore,
)
from .rent import AccountKind, rent_exempt_balance
from .rpc_client import RPCError, RPCTransportError, SolanaRPCClient
from .schema import PROGRAM_NAMES
from .submitter import BatchSubmitter, SubmissionError, explorer_url
from .workflows import (
    execute_batch,
    format_batch_summary,
    plan_create_mint,
    plan_token_flow,
    summarize_batch,
    ui_amount_to_base_units,
)

logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")

ACCOUNT_KINDS = {
    "mint": AccountKind.MINT,
    "token-account": AccountKind.TOKEN_ACCOUNT,
}


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _add_cluster_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rpc-url", help="RPC endpoint URL or cluster name (devnet, testnet, ...)")
    parser.add_argument(
        "--commitment",
        choices=("processed", "confirmed", "finalized"),
        help="Commitment level for queries and confirmation",
    )


def _add_submit_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the planned batch without signing or sending it",
    )
    parser.add_argument(
        "--skip-preflight",
        dest="skip_preflight",
        action="store_const",
        const=True,
        help="Send without preflight simulation",
    )
    parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SPL token batch builder")
    parser.add_argument("--config", help="Path to a YAML config file (default ~/.spl_batch.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    mint_parser = subparsers.add_parser(
        "create-mint", help="Allocate and initialize a new mint in one atomic batch"
    )
    mint_parser.add_argument("--decimals", type=int, help="Mint decimals (default from config, 9)")
    mint_parser.add_argument(
        "--freeze-authority", help="Optional freeze authority public key"
    )
    _add_cluster_arguments(mint_parser)
    _add_submit_arguments(mint_parser)

    flow_parser = subparsers.add_parser(
        "token-flow",
        help="Create a mint and two token accounts, mint, and transfer in one atomic batch",
    )
    flow_parser.add_argument("--receiver", help="Owner of the destination token account")
    flow_parser.add_argument("--decimals", type=int, help="Mint decimals (default from config, 9)")
    flow_parser.add_argument("--mint-amount", default="10", help="Tokens to mint (UI units)")
    flow_parser.add_argument("--transfer-amount", default="3", help="Tokens to transfer (UI units)")
    _add_cluster_arguments(flow_parser)
    _add_submit_arguments(flow_parser)

    decode_parser = subparsers.add_parser(
        "decode", help="Decode an instruction payload offline"
    )
    decode_parser.add_argument(
        "--program",
        required=True,
        help="Target program: 'system', 'token', or a program public key",
    )
    decode_parser.add_argument("payload", help="Instruction payload as hex (or base64 with --base64)")
    decode_parser.add_argument("--base64", dest="is_base64", action="store_true")

    rent_parser = subparsers.add_parser(
        "rent", help="Show the rent-exempt balance for an account kind"
    )
    rent_parser.add_argument("--kind", choices=sorted(ACCOUNT_KINDS), default="mint")
    _add_cluster_arguments(rent_parser)

    balance_parser = subparsers.add_parser("balance", help="Show a lamport or token balance")
    balance_parser.add_argument("pubkey", help="Account public key")
    balance_parser.add_argument(
        "--token", action="store_true", help="Treat the account as a token account"
    )
    _add_cluster_arguments(balance_parser)

    keystore_parser = subparsers.add_parser(
        "keystore", help="Write the sender key to an encrypted keystore file"
    )
    keystore_parser.add_argument("output", help="Keystore path to write")
    keystore_parser.add_argument(
        "--passphrase", help="Keystore passphrase (default SPL_BATCH_KEYSTORE_PASSPHRASE)"
    )
    keystore_parser.add_argument(
        "--generate",
        action="store_true",
        help="Encrypt a freshly generated keypair instead of SENDER_SECRET_KEY",
    )
    keystore_parser.add_argument(
        "--force", action="store_true", help="Overwrite an existing keystore file"
    )

    return parser


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    overrides: dict[str, Any] = {}
    for name in ("rpc_url", "commitment", "skip_preflight"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return load_config(config_path=args.config, overrides=overrides)


def _program_id(raw: str) -> Pubkey:
    for program_id, name in PROGRAM_NAMES.items():
        if raw == name:
            return program_id
    return parse_pubkey(raw, "program id")


def _decode_bytes(raw: str, is_base64: bool) -> bytes:
    try:
        if is_base64:
            return base64.b64decode(raw, validate=True)
        return bytes.fromhex(raw.strip().removeprefix("0x"))
    except (binascii.Error, ValueError) as exc:
        raise CLIError(f"invalid {'base64' if is_base64 else 'hex'} payload: {raw}") from exc


def _print_plan(batch: Batch, as_json: bool) -> None:
    if as_json:
        print(json.dumps({"instructions": summarize_batch(batch)}, indent=2))
    else:
        print(format_batch_summary(batch))


def _submit(
    args: argparse.Namespace,
    app: AppConfig,
    rpc: SolanaRPCClient,
    batch: Batch,
    payer: Keypair,
    extra_signers: list[Keypair],
) -> None:
    submitter = BatchSubmitter(
        rpc,
        commitment=app.cluster.commitment,
        skip_preflight=app.cluster.skip_preflight,
    )
    receipt = execute_batch(rpc, submitter, batch, payer, extra_signers)
    url = explorer_url(receipt.signature, app.cluster.cluster)
    if args.as_json:
        print(
            json.dumps(
                {"signature": receipt.signature, "slot": receipt.confirmation.slot, "explorer": url},
                separators=COMPACT_JSON_SEPARATORS,
            )
        )
    else:
        print(f"Submitted transaction signature: {receipt.signature}")
        print(f"Explorer: {url}")


def cmd_create_mint(args: argparse.Namespace) -> None:
    app = _load_app_config(args)
    rpc = SolanaRPCClient(app.cluster)
    payer = load_sender_keypair(app.keys)
    mint = generate_keypair()
    decimals = args.decimals if args.decimals is not None else app.decimals
    freeze = parse_pubkey(args.freeze_authority, "freeze authority") if args.freeze_authority else None

    logger.info("Payer (mint authority): %s", payer.pubkey())
    logger.info("New mint: %s", mint.pubkey())
    batch = plan_create_mint(rpc, payer.pubkey(), mint.pubkey(), decimals, freeze)

    if args.dry_run:
        _print_plan(batch, args.as_json)
        return
    _submit(args, app, rpc, batch, payer, [mint])
    if not args.as_json:
        print(f"Mint: {mint.pubkey()}")


def cmd_token_flow(args: argparse.Namespace) -> None:
    app = _load_app_config(args)
    rpc = SolanaRPCClient(app.cluster)
    payer = load_sender_keypair(app.keys)
    receiver = load_receiver_pubkey(app.keys, args.receiver)
    decimals = args.decimals if args.decimals is not None else app.decimals
    mint_amount = ui_amount_to_base_units(args.mint_amount, decimals)
    transfer_amount = ui_amount_to_base_units(args.transfer_amount, decimals)

    mint = generate_keypair()
    account_a = generate_keypair()
    account_b = generate_keypair()
    logger.info("Payer (mint authority): %s", payer.pubkey())
    logger.info("Receiver (owner of token account B): %s", receiver)
    logger.info("Mint: %s", mint.pubkey())
    logger.info("Token account A: %s", account_a.pubkey())
    logger.info("Token account B: %s", account_b.pubkey())

    batch = plan_token_flow(
        rpc,
        payer.pubkey(),
        mint.pubkey(),
        account_a.pubkey(),
        account_b.pubkey(),
        receiver,
        decimals,
        mint_amount,
        transfer_amount,
    )
    if args.dry_run:
        _print_plan(batch, args.as_json)
        return
    _submit(args, app, rpc, batch, payer, [mint, account_a, account_b])

    if not args.as_json:
        source_balance = rpc.get_token_account_balance(account_a.pubkey())
        destination_balance = rpc.get_token_account_balance(account_b.pubkey())
        print(f"Mint: {mint.pubkey()}")
        print(f"Token account A: {account_a.pubkey()} balance {source_balance.get('uiAmountString')}")
        print(f"Token account B: {account_b.pubkey()} balance {destination_balance.get('uiAmountString')}")


def cmd_decode(args: argparse.Namespace) -> None:
    program_id = _program_id(args.program)
    data = _decode_bytes(args.payload, args.is_base64)
    decoded = decode_payload(program_id, data)
    result = {
        "instruction": decoded.kind.value,
        "payload_bytes": len(data),
        "fields": {key: str(value) for key, value in decoded.fields.items()},
    }
    print(json.dumps(result, indent=2))


def cmd_rent(args: argparse.Namespace) -> None:
    app = _load_app_config(args)
    rpc = SolanaRPCClient(app.cluster)
    kind = ACCOUNT_KINDS[args.kind]
    lamports = rent_exempt_balance(rpc, kind)
    print(f"{args.kind} ({kind.size} bytes): {lamports} lamports")


def cmd_balance(args: argparse.Namespace) -> None:
    app = _load_app_config(args)
    rpc = SolanaRPCClient(app.cluster)
    pubkey = parse_pubkey(args.pubkey, "account")
    if args.token:
        value = rpc.get_token_account_balance(pubkey)
        print(f"{pubkey}: {value.get('uiAmountString')} (raw {value.get('amount')})")
    else:
        print(f"{pubkey}: {rpc.get_balance(pubkey)} lamports")


def cmd_keystore(args: argparse.Namespace) -> None:
    app = _load_app_config(args)
    passphrase = args.passphrase or app.keys.keystore_passphrase
    if not passphrase:
        raise CLIError("a passphrase is required: pass --passphrase or set SPL_BATCH_KEYSTORE_PASSPHRASE")
    output = Path(args.output).expanduser()
    if output.exists() and not args.force:
        raise CLIError(f"{output} already exists; pass --force to overwrite it")

    if args.generate:
        keypair = generate_keypair()
    elif app.keys.sender_secret_key:
        keypair = keypair_from_base58(app.keys.sender_secret_key)
    else:
        raise CLIError("set SENDER_SECRET_KEY or pass --generate")

    write_keystore(output, keypair, passphrase)
    print(f"Keystore for {keypair.pubkey()} written to {output}")
    print(f"Set SPL_BATCH_KEYSTORE={output} (or keys.sender_keystore) to sign with it")


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        if args.command == "create-mint":
            cmd_create_mint(args)
        elif args.command == "token-flow":
            cmd_token_flow(args)
        elif args.command == "decode":
            cmd_decode(args)
        elif args.command == "rent":
            cmd_rent(args)
        elif args.command == "balance":
            cmd_balance(args)
        elif args.command == "keystore":
            cmd_keystore(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except SchemaViolationError:
        logger.exception("Internal codec error")
        parser.exit(2, "error: internal codec error; please report this with --verbose output\n")
    except (
        CLIError,
        ConfigurationError,
        KeyLoadError,
        DomainViolationError,
        InstructionDecodeError,
        BatchStateError,
        UnsatisfiedSignerError,
        RPCError,
        RPCTransportError,
        SubmissionError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
