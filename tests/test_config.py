"""Configuration dataclasses: defaults, camelCase loading, validation."""

import json

import pytest

from basemailer.config import (
    BackendConfig,
    ClientConfig,
    IPFSConfig,
    LedgerConfig,
    ProofConfig,
    ServiceConfig,
    load_client_config,
    load_service_config,
)
from basemailer.errors import ConfigError


REGISTRY = "0x" + "11" * 20
MAILER = "0x" + "22" * 20
SIGNER = "0x" + "33" * 32


def _ledger(**overrides):
    fields = dict(rpc_url="http://localhost:8545", registry_address=REGISTRY, mailer_address=MAILER)
    fields.update(overrides)
    return LedgerConfig(**fields)


def test_defaults():
    ipfs = IPFSConfig()
    assert ipfs.endpoint == "/dns/localhost/tcp/5001/http"
    assert ipfs.pin and ipfs.compress
    ledger = _ledger()
    assert ledger.gas_limit == 500000
    assert ledger.email_domain == "basemailer.com"


@pytest.mark.parametrize("overrides", [
    dict(rpc_url=""),
    dict(registry_address="0x1234"),
    dict(mailer_address="not-an-address"),
    dict(private_key="0x1234"),
    dict(chain_id=0),
    dict(gas_limit=-1),
    dict(tx_timeout=0),
])
def test_invalid_ledger_config(overrides):
    with pytest.raises(ConfigError):
        _ledger(**overrides)


def test_ipfs_credentials_come_in_pairs():
    with pytest.raises(ConfigError):
        IPFSConfig(project_id="id")
    assert IPFSConfig(project_id="id", project_secret="secret").project_secret == "secret"


def test_proof_config_modes():
    assert ProofConfig(circuit_path="c.wasm", proving_key_path="c.zkey").verification_key_path is None
    assert ProofConfig(verification_key_path="vk.json").circuit_path is None
    with pytest.raises(ConfigError):
        ProofConfig(circuit_path="c.wasm")
    with pytest.raises(ConfigError):
        ProofConfig()


def test_backend_url_validated_and_trimmed():
    assert BackendConfig(base_url="https://relay.example/").base_url == "https://relay.example"
    with pytest.raises(ConfigError):
        BackendConfig(base_url="ftp://relay.example")


def test_client_config_from_camel_case():
    config = ClientConfig.from_dict({
        "ledger": {"rpcUrl": "http://localhost:8545", "registryAddress": REGISTRY, "mailerAddress": MAILER},
        "ipfs": {"endpoint": "/dns/ipfs.example/tcp/5001/https", "projectId": "id", "projectSecret": "s"},
        "proof": {"circuitPath": "c.wasm", "provingKeyPath": "c.zkey"},
        "backend": {"baseUrl": "https://relay.example", "apiKey": "k"},
        "commitmentStorePath": "state/commitments.json",
    })
    assert config.ledger.registry_address == REGISTRY
    assert config.ipfs.project_id == "id"
    assert config.proof.proving_key_path == "c.zkey"
    assert config.backend.api_key == "k"
    assert config.commitment_store_path == "state/commitments.json"


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="cidStore"):
        ClientConfig.from_dict({
            "ledger": {"rpcUrl": "http://x", "registryAddress": REGISTRY, "mailerAddress": MAILER},
            "cidStore": {},
        })


def test_missing_required_key_rejected():
    with pytest.raises(ConfigError):
        LedgerConfig.from_dict({"rpcUrl": "http://x"})


def test_flat_service_config(tmp_path):
    path = tmp_path / "basemailer.service.config.json"
    path.write_text(json.dumps({
        "rpcUrl": "http://localhost:8545",
        "registryAddress": REGISTRY,
        "mailerAddress": MAILER,
        "signerPrivateKey": SIGNER,
        "port": 4000,
        "verificationKeyPath": "vk.json",
        "eventStartBlock": 100,
        "ipfs": {"pin": False},
    }))
    config = load_service_config(path)
    assert config.ledger.private_key == SIGNER
    assert config.port == 4000
    assert config.event_start_block == 100
    assert config.ipfs.pin is False
    assert config.poll_interval == 2.0


def test_service_requires_signer():
    with pytest.raises(ConfigError, match="signer"):
        ServiceConfig(ledger=_ledger())


@pytest.mark.parametrize("overrides", [dict(port=0), dict(port=70000), dict(event_start_block=-1), dict(poll_interval=0)])
def test_invalid_service_config(overrides):
    with pytest.raises(ConfigError):
        ServiceConfig(ledger=_ledger(private_key=SIGNER), **overrides)


def test_load_client_config(tmp_path):
    path = tmp_path / "basemailer.config.json"
    path.write_text(json.dumps({
        "ledger": {"rpcUrl": "http://localhost:8545", "registryAddress": REGISTRY, "mailerAddress": MAILER},
    }))
    config = load_client_config(path)
    assert config.proof is None
    assert isinstance(config.ipfs, IPFSConfig)


def test_unreadable_config(tmp_path):
    with pytest.raises(ConfigError):
        load_client_config(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigError):
        load_client_config(bad)
