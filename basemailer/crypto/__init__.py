# basemailer/crypto/__init__.py
"""
BaseMailer Crypto

Modules:
    kdf       - HKDF-SHA256 purpose-separated key derivation
    envelope  - MessageContent / Envelope data model and JSON wire format
    engine    - HybridEncryptionEngine (AES-256-GCM + secp256k1 key wrap)
"""

from .kdf import (
    HKDF,
    derive,
    MASK_LABEL,
    MAC_LABEL,
    MAX_OUTPUT_LEN,
)

from .envelope import (
    AttachmentMeta,
    MessageContent,
    EncryptedContent,
    EncryptedKey,
    EnvelopeMetadata,
    Envelope,
    PROTOCOL_VERSION,
    SUPPORTED_VERSIONS,
    CONTENT_ALGORITHM,
    KEY_ALGORITHM,
    to_hex,
    from_hex,
    now_ms,
)

from .engine import (
    HybridEncryptionEngine,
    generate_keypair,
    public_key_from_private,
    load_private_key,
    load_public_key,
)

__all__ = [
    "HKDF",
    "derive",
    "MASK_LABEL",
    "MAC_LABEL",
    "MAX_OUTPUT_LEN",
    "AttachmentMeta",
    "MessageContent",
    "EncryptedContent",
    "EncryptedKey",
    "EnvelopeMetadata",
    "Envelope",
    "PROTOCOL_VERSION",
    "SUPPORTED_VERSIONS",
    "CONTENT_ALGORITHM",
    "KEY_ALGORITHM",
    "to_hex",
    "from_hex",
    "now_ms",
    "HybridEncryptionEngine",
    "generate_keypair",
    "public_key_from_private",
    "load_private_key",
    "load_public_key",
]
