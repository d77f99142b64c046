# basemailer/__init__.py
"""
BaseMailer: Secure Envelope Protocol

Encrypted mail for on-chain registered email identities.
- Hybrid encryption: AES-256-GCM content, secp256k1 ECIES key wrap
- Content-addressed storage (IPFS) with keccak256 commitments on-chain
- Groth16 ownership proofs gating submission
- Gap-free event ingestion into a local index

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │  basemailer                                             │
    │  ├── crypto/        # kdf, envelope, engine             │
    │  ├── storage/       # IPFSStorage, MemoryStorage        │
    │  ├── zkproof/       # Proof encoding, snarkjs prover    │
    │  ├── ledger/        # Registry/mailer contracts         │
    │  ├── commitment.py  # handle <-> commitment map         │
    │  ├── index.py       # local IndexedMail store           │
    │  ├── backend.py     # backend index HTTP client         │
    │  ├── dispatch.py    # outbound state machine            │
    │  ├── ingestion.py   # MailSent catch-up + subscription  │
    │  ├── client.py      # MailerClient facade               │
    │  └── service.py     # RelayService                      │
    └─────────────────────────────────────────────────────────┘

Library code only logs through `logging.getLogger("basemailer...")`;
call configure_logging() in scripts to see it.
"""

import logging
from typing import Optional, Union

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

# =============================================================================
# Errors & Config
# =============================================================================

from .errors import (
    MailerError,
    ConfigError,
    DerivationError,
    EnvelopeError,
    IntegrityError,
    UnsupportedVersionError,
    EnvelopeFormatError,
    HandleNotFound,
    StorageError,
    ProofError,
    ProofInvalid,
    ProofEncodingError,
    LedgerError,
    BackendError,
    DispatchStepFailure,
    RecipientUnregistered,
)

from .config import (
    IPFSConfig,
    ProofConfig,
    LedgerConfig,
    BackendConfig,
    ClientConfig,
    ServiceConfig,
    load_client_config,
    load_service_config,
)

# =============================================================================
# Protocol
# =============================================================================

from .crypto import (
    AttachmentMeta,
    MessageContent,
    Envelope,
    HybridEncryptionEngine,
    generate_keypair,
    public_key_from_private,
)

from .commitment import (
    CommitmentMapper,
    JsonFileCommitmentMapper,
    compute_commitment,
)

from .index import (
    IndexedMail,
    MailIndex,
    InMemoryMailIndex,
)

from .dispatch import (
    DispatchStep,
    DispatchResult,
    MailDispatcher,
    RecipientKey,
    RecipientResolver,
    CallableRecipientResolver,
    StaticRecipientResolver,
)

from .ingestion import (
    MailIngestor,
    Subscription,
)

from .client import MailerClient
from .service import RelayService


def configure_logging(level: Union[int, str] = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the package logger (for scripts)."""
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = [
    "__version__",
    "configure_logging",
    # Errors
    "MailerError",
    "ConfigError",
    "DerivationError",
    "EnvelopeError",
    "IntegrityError",
    "UnsupportedVersionError",
    "EnvelopeFormatError",
    "HandleNotFound",
    "StorageError",
    "ProofError",
    "ProofInvalid",
    "ProofEncodingError",
    "LedgerError",
    "BackendError",
    "DispatchStepFailure",
    "RecipientUnregistered",
    # Config
    "IPFSConfig",
    "ProofConfig",
    "LedgerConfig",
    "BackendConfig",
    "ClientConfig",
    "ServiceConfig",
    "load_client_config",
    "load_service_config",
    # Crypto
    "AttachmentMeta",
    "MessageContent",
    "Envelope",
    "HybridEncryptionEngine",
    "generate_keypair",
    "public_key_from_private",
    # Protocol
    "CommitmentMapper",
    "JsonFileCommitmentMapper",
    "compute_commitment",
    "IndexedMail",
    "MailIndex",
    "InMemoryMailIndex",
    "DispatchStep",
    "DispatchResult",
    "MailDispatcher",
    "RecipientKey",
    "RecipientResolver",
    "CallableRecipientResolver",
    "StaticRecipientResolver",
    "MailIngestor",
    "Subscription",
    "MailerClient",
    "RelayService",
]
