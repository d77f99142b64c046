# basemailer/crypto/engine.py
"""
BaseMailer Crypto: Hybrid Encryption Engine

AES-256-GCM payload encryption + ECIES-style secp256k1 key wrapping.

Architecture:
    content ──canonicalize──► JSON ──AES-256-GCM(K, nonce)──► ciphertext || tag

    ephemeral (e, E=eG) ──ECDH(e, P_recipient)──► shared_secret (x-coord)
        mask_key = HKDF(shared_secret, "basemailer-mask")
        mac_key  = HKDF(shared_secret, "basemailer-mac")
        wrapped  = K XOR keystream(mask_key)
        mac      = HMAC-SHA256(mac_key, wrapped)

Security Properties:
    - Forward secrecy per message (fresh ephemeral key, discarded after use)
    - Body integrity from the GCM tag only
    - Wrapped key checked with HMAC (constant time) before any AEAD work
    - Fails closed: IntegrityError, never partial plaintext

Usage:
    from basemailer.crypto import HybridEncryptionEngine, generate_keypair

    priv, pub = generate_keypair()
    engine = HybridEncryptionEngine()
    envelope = engine.encrypt(content, pub)
    content = engine.decrypt(envelope, priv)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Optional, Tuple, Union

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import IntegrityError, UnsupportedVersionError
from .envelope import (
    CONTENT_ALGORITHM,
    CONTENT_TYPE,
    KEY_ALGORITHM,
    NONCE_SIZE,
    PROTOCOL_VERSION,
    SUPPORTED_VERSIONS,
    SYMMETRIC_KEY_SIZE,
    TAG_SIZE,
    EncryptedContent,
    EncryptedKey,
    Envelope,
    EnvelopeMetadata,
    MessageContent,
)
from .kdf import MAC_LABEL, MASK_LABEL, derive


# =============================================================================
# Constants
# =============================================================================

CURVE = ec.SECP256K1()

# secp256k1 group order
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PRIVATE_KEY_SIZE = 32

KeyInput = Union[str, bytes]


# =============================================================================
# Key Helpers
# =============================================================================

def _key_bytes(value: KeyInput, label: str) -> bytes:
    """Accept raw bytes or (0x-prefixed) hex."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ValueError(f"{label} must be hex: {e}") from e


def _sample_scalar() -> int:
    """Random scalar in [1, n-1]; resamples on zero or overflow."""
    while True:
        scalar = int.from_bytes(secrets.token_bytes(PRIVATE_KEY_SIZE), "big")
        if 0 < scalar < CURVE_ORDER:
            return scalar


def load_private_key(value: KeyInput) -> ec.EllipticCurvePrivateKey:
    """Load a 32-byte secp256k1 private key."""
    raw = _key_bytes(value, "private key")
    if len(raw) != PRIVATE_KEY_SIZE:
        raise ValueError(f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(raw)}")
    scalar = int.from_bytes(raw, "big")
    if not 0 < scalar < CURVE_ORDER:
        raise ValueError("Private key is not a valid secp256k1 scalar")
    return ec.derive_private_key(scalar, CURVE)


def load_public_key(value: KeyInput) -> ec.EllipticCurvePublicKey:
    """Load a SEC1 (33B compressed or 65B uncompressed) secp256k1 public key."""
    raw = _key_bytes(value, "public key")
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, raw)


def encode_public_key(key: ec.EllipticCurvePublicKey) -> bytes:
    """Compressed SEC1 encoding (33 bytes)."""
    return key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )


def public_key_from_private(private_key: KeyInput) -> str:
    """Compressed public key hex for a private key."""
    return "0x" + encode_public_key(load_private_key(private_key).public_key()).hex()


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a secp256k1 keypair.

    Returns:
        (private_key_hex, compressed_public_key_hex), both 0x-prefixed
    """
    private_key = ec.derive_private_key(_sample_scalar(), CURVE)
    scalar = private_key.private_numbers().private_value
    return (
        "0x" + scalar.to_bytes(PRIVATE_KEY_SIZE, "big").hex(),
        "0x" + encode_public_key(private_key.public_key()).hex(),
    )


def _xor_keystream(data: bytes, mask: bytes) -> bytes:
    """XOR data with mask repeated to data's length."""
    buf = np.frombuffer(data, dtype=np.uint8)
    stream = np.resize(np.frombuffer(mask, dtype=np.uint8), buf.shape)
    return np.bitwise_xor(buf, stream).tobytes()


def _derive_wrap_keys(shared_secret: bytes) -> Tuple[bytes, bytes]:
    return (
        derive(shared_secret, MASK_LABEL, SYMMETRIC_KEY_SIZE),
        derive(shared_secret, MAC_LABEL, 32),
    )


# =============================================================================
# HybridEncryptionEngine
# =============================================================================

class HybridEncryptionEngine:
    """
    Encrypts MessageContent into an Envelope for a secp256k1 public key.

    Stateless apart from configuration; safe to share across threads.
    """

    def __init__(
        self,
        version: str = PROTOCOL_VERSION,
        logger: Optional[logging.Logger] = None,
    ):
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError("version", version)
        self.version = version
        self._log = logger or logging.getLogger(__name__)

    # =========================================================================
    # Public API
    # =========================================================================

    def encrypt(
        self,
        content: MessageContent,
        recipient_public_key: KeyInput,
        timestamp: Optional[int] = None,
    ) -> Envelope:
        """
        Encrypt content for a recipient.

        Args:
            content: Mail content (timestamp assigned if absent)
            recipient_public_key: secp256k1 public key (hex or bytes)
            timestamp: Explicit timestamp for canonicalization (ms)

        Returns:
            Envelope with fresh key, nonce and ephemeral keypair
        """
        canonical = content.canonicalize(timestamp)
        plaintext = canonical.to_canonical_bytes()

        recipient = load_public_key(recipient_public_key)

        symmetric_key = AESGCM.generate_key(bit_length=256)
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = AESGCM(symmetric_key).encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

        encrypted_key = self.wrap_key(symmetric_key, recipient)

        envelope = Envelope(
            version=self.version,
            encrypted_content=EncryptedContent(
                algorithm=CONTENT_ALGORITHM,
                ciphertext=ciphertext,
                nonce=nonce,
                tag=tag,
            ),
            encrypted_key=encrypted_key,
            metadata=EnvelopeMetadata(
                version=self.version,
                timestamp=canonical.timestamp,
                size=len(ciphertext) + len(encrypted_key.ciphertext),
                content_type=CONTENT_TYPE,
            ),
        )
        self._log.debug("Encrypted %d bytes (timestamp=%d)", len(plaintext), canonical.timestamp)
        return envelope

    def decrypt(self, envelope: Envelope, recipient_private_key: KeyInput) -> MessageContent:
        """
        Decrypt an envelope.

        Raises:
            UnsupportedVersionError: Unknown version or algorithm tag
            IntegrityError: Wrap MAC or GCM tag mismatch, or invalid ephemeral key
        """
        self._check_supported(envelope)

        symmetric_key = self.unwrap_key(envelope.encrypted_key, recipient_private_key)

        content = envelope.encrypted_content
        try:
            plaintext = AESGCM(symmetric_key).decrypt(
                content.nonce, content.ciphertext + content.tag, None
            )
        except (InvalidTag, ValueError) as e:
            self._log.warning("Content authentication failed")
            raise IntegrityError("content authentication tag mismatch") from e

        return MessageContent.from_bytes(plaintext)

    # =========================================================================
    # Key Wrapping
    # =========================================================================

    def wrap_key(
        self,
        symmetric_key: bytes,
        recipient_public_key: Union[KeyInput, ec.EllipticCurvePublicKey],
    ) -> EncryptedKey:
        """Wrap a symmetric key under a fresh ephemeral ECDH secret."""
        if not isinstance(recipient_public_key, ec.EllipticCurvePublicKey):
            recipient_public_key = load_public_key(recipient_public_key)

        ephemeral = ec.derive_private_key(_sample_scalar(), CURVE)
        ephemeral_public = encode_public_key(ephemeral.public_key())
        shared_secret = ephemeral.exchange(ec.ECDH(), recipient_public_key)
        del ephemeral

        mask_key, mac_key = _derive_wrap_keys(shared_secret)
        wrapped = _xor_keystream(symmetric_key, mask_key)
        mac = hmac.new(mac_key, wrapped, hashlib.sha256).digest()

        return EncryptedKey(
            algorithm=KEY_ALGORITHM,
            ephemeral_public_key=ephemeral_public,
            ciphertext=wrapped,
            mac=mac,
        )

    def unwrap_key(self, encrypted_key: EncryptedKey, recipient_private_key: KeyInput) -> bytes:
        """
        Verify the wrap MAC, then unwrap.

        Raises:
            IntegrityError: MAC mismatch or invalid ephemeral public key
        """
        private_key = load_private_key(recipient_private_key)

        try:
            ephemeral_public = load_public_key(encrypted_key.ephemeral_public_key)
        except ValueError as e:
            self._log.warning("Envelope carries an invalid ephemeral public key")
            raise IntegrityError("invalid ephemeral public key") from e

        shared_secret = private_key.exchange(ec.ECDH(), ephemeral_public)
        mask_key, mac_key = _derive_wrap_keys(shared_secret)

        expected = hmac.new(mac_key, encrypted_key.ciphertext, hashlib.sha256).digest()
        if not hmac.compare_digest(expected, encrypted_key.mac):
            self._log.warning("MAC verification failed while unwrapping symmetric key")
            raise IntegrityError("encrypted key MAC mismatch")

        return _xor_keystream(encrypted_key.ciphertext, mask_key)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _check_supported(envelope: Envelope) -> None:
        if envelope.version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError("version", envelope.version)
        if envelope.metadata.version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError("metadata version", envelope.metadata.version)
        if envelope.encrypted_content.algorithm != CONTENT_ALGORITHM:
            raise UnsupportedVersionError("content algorithm", envelope.encrypted_content.algorithm)
        if envelope.encrypted_key.algorithm != KEY_ALGORITHM:
            raise UnsupportedVersionError("key algorithm", envelope.encrypted_key.algorithm)
