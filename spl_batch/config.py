"""Shared configuration loader for spl_batch."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".spl_batch.yaml"

CLUSTER_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "localnet": "http://127.0.0.1:8899",
}
DEFAULT_CLUSTER = "devnet"
DEFAULT_COMMITMENT = "confirmed"
COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DECIMALS = 9


@dataclass
class ClusterConfig:
    """Connection details for a ledger JSON-RPC endpoint."""

    rpc_url: str = CLUSTER_URLS[DEFAULT_CLUSTER]
    commitment: str = DEFAULT_COMMITMENT
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    skip_preflight: bool = False

    @property
    def cluster(self) -> str | None:
        """Return the well-known cluster moniker for ``rpc_url``, if any."""

        for name, url in CLUSTER_URLS.items():
            if url == self.rpc_url.rstrip("/"):
                return name
        return None


@dataclass
class KeyConfig:
    """Where the sender's signing key and the default receiver come from."""

    sender_secret_key: str | None = field(default=None, repr=False)
    sender_keystore: Path | None = None
    keystore_passphrase: str | None = field(default=None, repr=False)
    receiver_public_key: str | None = None


@dataclass
class AppConfig:
    cluster: ClusterConfig
    keys: KeyConfig
    decimals: int = DEFAULT_DECIMALS


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(
            f"Expected {path} to contain a YAML object with 'cluster' and 'keys' sections"
        )
    return loaded


def _section(file_config: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_float(raw: Any, *, name: str, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {name} in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} in {source} must be positive, got {raw}")
    return value


def _coerce_decimals(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid decimals in {source}: {raw}") from exc
    if not 0 <= value <= 255:
        raise ConfigurationError(f"decimals in {source} must be between 0 and 255, got {raw}")
    return value


def _coerce_str(raw: Any, *, name: str) -> str | None:
    if raw is None or isinstance(raw, str):
        return raw
    raise ConfigurationError(f"{name} must be a string, got {raw!r}")


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def resolve_rpc_url(raw: str) -> str:
    """Expand cluster monikers and validate explicit endpoint URLs."""

    if not isinstance(raw, str):
        raise ConfigurationError(f"Invalid RPC endpoint: {raw!r}; expected a URL or cluster name")
    candidate = raw.strip()
    if candidate in CLUSTER_URLS:
        return CLUSTER_URLS[candidate]
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(
            f"Invalid RPC endpoint: {raw}. Use an http(s) URL or one of {', '.join(CLUSTER_URLS)}"
        )
    return candidate


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load cluster and key configuration from overrides, environment, and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None
    path = Path(config_path).expanduser() if explicit_path else DEFAULT_CONFIG_PATH

    file_config = _load_config_file(path, required=explicit_path)
    cluster_section = _section(file_config, "cluster", path)
    keys_section = _section(file_config, "keys", path)
    override_map = dict(overrides or {})

    env_rpc_url = env_map.get("SPL_BATCH_RPC_URL") or env_map.get("RPC_URL")
    rpc_url = resolve_rpc_url(
        _first_value(
            override_map.get("rpc_url"),
            env_rpc_url,
            cluster_section.get("rpc_url"),
            cluster_section.get("name"),
            DEFAULT_CLUSTER,
        )
    )

    commitment = _first_value(
        override_map.get("commitment"),
        env_map.get("SPL_BATCH_COMMITMENT"),
        cluster_section.get("commitment"),
        DEFAULT_COMMITMENT,
    )
    if commitment not in COMMITMENT_LEVELS:
        raise ConfigurationError(
            f"Invalid commitment '{commitment}'; expected one of {', '.join(COMMITMENT_LEVELS)}"
        )

    timeout = _first_value(
        _coerce_float(override_map.get("timeout"), name="timeout", source="overrides"),
        _coerce_float(env_map.get("SPL_BATCH_TIMEOUT"), name="timeout", source="environment"),
        _coerce_float(cluster_section.get("timeout"), name="timeout", source=f"{path} cluster.timeout"),
        DEFAULT_TIMEOUT_SECONDS,
    )
    skip_preflight = _first_value(
        _coerce_bool(override_map.get("skip_preflight")),
        _coerce_bool(env_map.get("SPL_BATCH_SKIP_PREFLIGHT")),
        _coerce_bool(cluster_section.get("skip_preflight")),
        False,
    )
    decimals = _first_value(
        _coerce_decimals(override_map.get("decimals"), source="overrides"),
        _coerce_decimals(env_map.get("SPL_BATCH_DECIMALS"), source="environment"),
        _coerce_decimals(file_config.get("decimals"), source=str(path)),
        DEFAULT_DECIMALS,
    )

    keystore = _first_value(
        override_map.get("sender_keystore"),
        env_map.get("SPL_BATCH_KEYSTORE"),
        _coerce_str(keys_section.get("sender_keystore"), name="keys.sender_keystore"),
    )

    keys = KeyConfig(
        sender_secret_key=_first_value(
            override_map.get("sender_secret_key"),
            env_map.get("SENDER_SECRET_KEY"),
            _coerce_str(keys_section.get("sender_secret_key"), name="keys.sender_secret_key"),
        ),
        sender_keystore=Path(keystore).expanduser() if keystore else None,
        keystore_passphrase=_first_value(
            override_map.get("keystore_passphrase"),
            env_map.get("SPL_BATCH_KEYSTORE_PASSPHRASE"),
        ),
        receiver_public_key=_first_value(
            override_map.get("receiver_public_key"),
            env_map.get("RECEIVER_PUBLIC_KEY"),
            _coerce_str(keys_section.get("receiver_public_key"), name="keys.receiver_public_key"),
        ),
    )

    return AppConfig(
        cluster=ClusterConfig(
            rpc_url=rpc_url,
            commitment=commitment,
            timeout=timeout,
            skip_preflight=bool(skip_preflight),
        ),
        keys=keys,
        decimals=decimals,
    )
