"""Signing-key loading for batch submission.

Keys come from a base58-encoded 64-byte secret (the format wallets export), a
``solana-keygen`` style JSON byte-array file, or an encrypted keystore. The
keystore wraps the secret with scrypt + AES-GCM and binds the public key as
associated data so a swapped file fails to decrypt.

Keystores are written with ``spl-batch keystore``, which calls
:func:`write_keystore`.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

import base58
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import KeyConfig

logger = logging.getLogger(__name__)

SECRET_KEY_LENGTH = 64

_AESGCM_NONCE_SIZE = 12
_SCRYPT_SALT_SIZE = 16
_SCRYPT_KEY_LENGTH = 32
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


class KeyLoadError(RuntimeError):
    """Raised when a signing key or public key cannot be loaded."""


@dataclass
class EncryptedKeystore:
    """Serialized form of an encrypted signing key."""

    algorithm: str
    kdf: str
    salt: str
    nonce: str
    ciphertext: str
    pubkey: str


def generate_keypair() -> Keypair:
    """Return a fresh keypair for a new mint or token account."""

    return Keypair()


def keypair_from_secret(secret: bytes) -> Keypair:
    if len(secret) != SECRET_KEY_LENGTH:
        raise KeyLoadError(
            f"secret key must be {SECRET_KEY_LENGTH} bytes, got {len(secret)}"
        )
    try:
        return Keypair.from_bytes(secret)
    except ValueError as exc:
        raise KeyLoadError(f"secret key is not a valid ed25519 keypair: {exc}") from exc


def keypair_from_base58(secret_b58: str) -> Keypair:
    try:
        secret = base58.b58decode(secret_b58.strip())
    except ValueError as exc:
        raise KeyLoadError("secret key is not valid base58") from exc
    return keypair_from_secret(secret)


def keypair_from_json_file(path: str | Path) -> Keypair:
    """Load a keypair stored as a JSON array of 64 byte values."""

    path = Path(path).expanduser()
    try:
        raw = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        raise KeyLoadError(f"cannot read keypair file {path}: {exc}") from exc
    if not isinstance(raw, list) or not all(isinstance(item, int) and 0 <= item <= 255 for item in raw):
        raise KeyLoadError(f"keypair file {path} must contain a JSON array of byte values")
    return keypair_from_secret(bytes(raw))


def parse_pubkey(value: str, label: str = "public key") -> Pubkey:
    if not isinstance(value, str):
        raise KeyLoadError(f"{label} must be a base58 string, got {type(value).__name__}")
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as exc:
        raise KeyLoadError(f"{label} is not a valid base58 public key: {value}") from exc


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(
        salt=salt,
        length=_SCRYPT_KEY_LENGTH,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_keypair(keypair: Keypair, passphrase: str) -> EncryptedKeystore:
    salt = os.urandom(_SCRYPT_SALT_SIZE)
    nonce = os.urandom(_AESGCM_NONCE_SIZE)
    pubkey = keypair.pubkey()
    ciphertext = AESGCM(_derive_key(passphrase, salt)).encrypt(nonce, bytes(keypair), bytes(pubkey))
    return EncryptedKeystore(
        algorithm="aes-gcm",
        kdf="scrypt",
        salt=base64.b64encode(salt).decode("ascii"),
        nonce=base64.b64encode(nonce).decode("ascii"),
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        pubkey=str(pubkey),
    )


def _keystore_field(keystore: EncryptedKeystore, name: str) -> bytes:
    raw = getattr(keystore, name)
    if not isinstance(raw, str):
        raise KeyLoadError(f"keystore field {name} must be a base64 string")
    try:
        return base64.b64decode(raw.encode("ascii"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyLoadError(f"keystore field {name} is not valid base64") from exc


def decrypt_keypair(keystore: EncryptedKeystore, passphrase: str) -> Keypair:
    if keystore.algorithm != "aes-gcm" or keystore.kdf != "scrypt":
        raise KeyLoadError(f"unsupported keystore format {keystore.algorithm}/{keystore.kdf}")
    pubkey = parse_pubkey(keystore.pubkey, "keystore public key")
    salt = _keystore_field(keystore, "salt")
    nonce = _keystore_field(keystore, "nonce")
    ciphertext = _keystore_field(keystore, "ciphertext")
    try:
        secret = AESGCM(_derive_key(passphrase, salt)).decrypt(nonce, ciphertext, bytes(pubkey))
    except InvalidTag as exc:
        raise KeyLoadError("failed to decrypt keystore; wrong passphrase or tampered file") from exc
    except ValueError as exc:
        raise KeyLoadError(f"keystore is malformed: {exc}") from exc
    keypair = keypair_from_secret(secret)
    if keypair.pubkey() != pubkey:  # pragma: no cover - AES-GCM binds the pubkey
        raise KeyLoadError("keystore public key does not match the decrypted secret")
    return keypair


def write_keystore(path: str | Path, keypair: Keypair, passphrase: str) -> Path:
    path = Path(path).expanduser()
    keystore = encrypt_keypair(keypair, passphrase)
    path.write_text(json.dumps(asdict(keystore), indent=2))
    logger.info("Wrote encrypted keystore for %s to %s", keystore.pubkey, path)
    return path


def read_keystore(path: str | Path, passphrase: str) -> Keypair:
    path = Path(path).expanduser()
    try:
        data = json.loads(path.read_text())
        keystore = EncryptedKeystore(**data)
    except (OSError, ValueError, TypeError) as exc:
        raise KeyLoadError(f"cannot read keystore {path}: {exc}") from exc
    return decrypt_keypair(keystore, passphrase)


def load_sender_keypair(keys: KeyConfig) -> Keypair:
    """Resolve the sender keypair from configuration."""

    if keys.sender_secret_key:
        keypair = keypair_from_base58(keys.sender_secret_key)
        logger.debug("Loaded sender key %s from secret", keypair.pubkey())
        return keypair
    if keys.sender_keystore is not None:
        if not keys.keystore_passphrase:
            raise KeyLoadError(
                "SPL_BATCH_KEYSTORE_PASSPHRASE must be set to unlock the sender keystore"
            )
        keypair = read_keystore(keys.sender_keystore, keys.keystore_passphrase)
        logger.debug("Loaded sender key %s from keystore", keypair.pubkey())
        return keypair
    raise KeyLoadError(
        "Missing sender key: set SENDER_SECRET_KEY or configure keys.sender_keystore"
    )


def load_receiver_pubkey(keys: KeyConfig, explicit: str | None = None) -> Pubkey:
    raw = explicit or keys.receiver_public_key
    if not raw:
        raise KeyLoadError("Missing receiver: pass --receiver or set RECEIVER_PUBLIC_KEY")
    return parse_pubkey(raw, "receiver public key")
