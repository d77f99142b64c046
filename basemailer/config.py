# basemailer/config.py
"""
BaseMailer: Configuration

Every recognised option is listed here with its default and validated when
the dataclass is constructed. `from_dict` accepts both snake_case and the
camelCase keys used in `basemailer.service.config.json` files.

Usage:
    config = load_client_config("basemailer.config.json")
    client = MailerClient.from_config(config, recipient_resolver=resolver)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

from .errors import ConfigError


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

T = TypeVar("T")


# =============================================================================
# Helpers
# =============================================================================

def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _positive(value: float, name: str) -> None:
    _require(isinstance(value, (int, float)) and value > 0, f"{name} must be positive, got {value!r}")


def _build(cls: Type[T], data: Dict[str, Any], nested: Optional[Dict[str, type]] = None) -> T:
    """Construct a config dataclass from a dict, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ConfigError(f"{cls.__name__} must be a JSON object")
    nested = nested or {}
    known = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _snake(raw_key)
        if key not in known:
            raise ConfigError(f"Unknown {cls.__name__} option: {raw_key!r}")
        if key in nested and value is not None and not isinstance(value, nested[key]):
            value = nested[key].from_dict(value)
        kwargs[key] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigError(f"Invalid {cls.__name__}: {e}") from e


# =============================================================================
# Component Configs
# =============================================================================

@dataclass
class IPFSConfig:
    """IPFS HTTP API settings."""
    endpoint: str = "/dns/localhost/tcp/5001/http"
    project_id: Optional[str] = None
    project_secret: Optional[str] = None
    pin: bool = True
    compress: bool = True
    timeout: float = 30.0

    def __post_init__(self):
        _require(bool(self.endpoint), "IPFS endpoint is required")
        _require(
            (self.project_id is None) == (self.project_secret is None),
            "IPFS project_id and project_secret must be given together",
        )
        _positive(self.timeout, "IPFS timeout")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IPFSConfig:
        return _build(cls, data)


@dataclass
class ProofConfig:
    """Groth16 prover/verifier settings (snarkjs). Verify-only configs omit the proving paths."""
    circuit_path: Optional[str] = None
    proving_key_path: Optional[str] = None
    verification_key_path: Optional[str] = None
    snarkjs_bin: str = "snarkjs"
    timeout: float = 120.0

    def __post_init__(self):
        _require(
            bool(self.circuit_path) == bool(self.proving_key_path),
            "ProofConfig needs circuit_path and proving_key_path together",
        )
        _require(
            bool(self.circuit_path) or bool(self.verification_key_path),
            "ProofConfig needs proving paths, a verification key, or both",
        )
        _positive(self.timeout, "proof timeout")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProofConfig:
        return _build(cls, data)


@dataclass
class LedgerConfig:
    """Chain connection and contract addresses."""
    rpc_url: str
    registry_address: str
    mailer_address: str
    private_key: Optional[str] = None
    chain_id: Optional[int] = None
    gas_limit: int = 500000
    tx_timeout: float = 120.0
    email_domain: str = "basemailer.com"

    def __post_init__(self):
        _require(bool(self.rpc_url), "rpc_url is required")
        _require(bool(_ADDRESS_RE.match(self.registry_address or "")),
                 f"registry_address is not an address: {self.registry_address!r}")
        _require(bool(_ADDRESS_RE.match(self.mailer_address or "")),
                 f"mailer_address is not an address: {self.mailer_address!r}")
        if self.private_key is not None:
            _require(bool(_PRIVATE_KEY_RE.match(self.private_key)), "private_key must be 32-byte hex")
        if self.chain_id is not None:
            _require(isinstance(self.chain_id, int) and self.chain_id > 0, "chain_id must be a positive int")
        _require(isinstance(self.gas_limit, int) and self.gas_limit > 0, "gas_limit must be a positive int")
        _positive(self.tx_timeout, "tx_timeout")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LedgerConfig:
        data = dict(data)
        # service configs name the key signerPrivateKey
        if "signerPrivateKey" in data:
            data["privateKey"] = data.pop("signerPrivateKey")
        return _build(cls, data)


@dataclass
class BackendConfig:
    """Backend index HTTP API."""
    base_url: str
    api_key: Optional[str] = None
    timeout: float = 30.0

    def __post_init__(self):
        _require(self.base_url.startswith(("http://", "https://")),
                 f"backend base_url must be http(s): {self.base_url!r}")
        self.base_url = self.base_url.rstrip("/")
        _positive(self.timeout, "backend timeout")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BackendConfig:
        return _build(cls, data)


# =============================================================================
# Top-level Configs
# =============================================================================

@dataclass
class ClientConfig:
    """Sender/reader SDK configuration."""
    ledger: LedgerConfig
    ipfs: IPFSConfig = field(default_factory=IPFSConfig)
    proof: Optional[ProofConfig] = None
    backend: Optional[BackendConfig] = None
    commitment_store_path: Optional[str] = None

    def __post_init__(self):
        _require(isinstance(self.ledger, LedgerConfig), "ledger config is required")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ClientConfig:
        return _build(cls, data, nested={
            "ledger": LedgerConfig,
            "ipfs": IPFSConfig,
            "proof": ProofConfig,
            "backend": BackendConfig,
        })


@dataclass
class ServiceConfig:
    """
    Relay service configuration.

    `port` is accepted from service config files for the HTTP front end that
    hosts RelayService; RelayService itself does not listen on it.
    """
    ledger: LedgerConfig
    ipfs: IPFSConfig = field(default_factory=IPFSConfig)
    port: int = 3000
    verification_key_path: Optional[str] = None
    event_start_block: Optional[int] = None
    poll_interval: float = 2.0
    commitment_store_path: Optional[str] = None
    snarkjs_bin: str = "snarkjs"

    def __post_init__(self):
        _require(isinstance(self.ledger, LedgerConfig), "ledger config is required")
        _require(self.ledger.private_key is not None, "service requires a signer private key")
        _require(isinstance(self.port, int) and 0 < self.port < 65536, f"invalid port: {self.port!r}")
        if self.event_start_block is not None:
            _require(isinstance(self.event_start_block, int) and self.event_start_block >= 0,
                     "event_start_block must be a non-negative int")
        _positive(self.poll_interval, "poll_interval")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ServiceConfig:
        data = dict(data)
        # flat service files keep chain settings at top level
        ledger_keys = ("rpcUrl", "registryAddress", "mailerAddress", "signerPrivateKey", "chainId")
        if "ledger" not in data:
            data["ledger"] = {k: data.pop(k) for k in ledger_keys if k in data}
        return _build(cls, data, nested={"ledger": LedgerConfig, "ipfs": IPFSConfig})


# =============================================================================
# Loading
# =============================================================================

def _read_json(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read config at {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config at {path} is not valid JSON: {e}") from e


def load_client_config(path: Union[str, Path]) -> ClientConfig:
    return ClientConfig.from_dict(_read_json(path))


def load_service_config(path: Union[str, Path]) -> ServiceConfig:
    return ServiceConfig.from_dict(_read_json(path))
