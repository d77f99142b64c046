# basemailer/crypto/kdf.py
"""
BaseMailer Crypto: Key Derivation

HKDF-SHA256 (RFC 5869) used to split one ECDH shared secret into
purpose-separated sub-keys:

    mask_key = derive(shared_secret, "basemailer-mask")
    mac_key  = derive(shared_secret, "basemailer-mac")

Same (secret, label) always yields the same output; different labels yield
independent outputs.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from ..errors import DerivationError


# =============================================================================
# Constants
# =============================================================================

HASH_LEN: int = 32
MAX_OUTPUT_LEN: int = 255 * HASH_LEN

MASK_LABEL = "basemailer-mask"
MAC_LABEL = "basemailer-mac"


# =============================================================================
# HKDF (RFC 5869)
# =============================================================================

class HKDF:
    """HMAC-based Key Derivation Function (RFC 5869)."""

    HASH_LEN: int = HASH_LEN

    def __init__(self, salt: Optional[bytes] = None):
        self.salt = salt if salt else b"\x00" * self.HASH_LEN

    def extract(self, ikm: bytes) -> bytes:
        """HKDF-Extract: PRK = HMAC(salt, IKM)"""
        return hmac.new(self.salt, ikm, hashlib.sha256).digest()

    def expand(self, prk: bytes, info: bytes = b"", length: int = 32) -> bytes:
        """HKDF-Expand: OKM = T(1) || T(2) || ... truncated to length"""
        if length <= 0 or length > MAX_OUTPUT_LEN:
            raise DerivationError(length, MAX_OUTPUT_LEN)

        n_blocks = (length + self.HASH_LEN - 1) // self.HASH_LEN
        okm = b""
        t_prev = b""
        for i in range(1, n_blocks + 1):
            t_prev = hmac.new(prk, t_prev + info + bytes([i]), hashlib.sha256).digest()
            okm += t_prev
        return okm[:length]

    def derive(self, ikm: bytes, info: bytes = b"", length: int = 32) -> bytes:
        """One-shot derivation: Extract then Expand."""
        return self.expand(self.extract(ikm), info, length)


def derive(
    shared_secret: bytes,
    purpose_label: str,
    output_length: int = 32,
    salt: Optional[bytes] = None,
) -> bytes:
    """
    Derive a purpose-bound sub-key from a shared secret.

    Args:
        shared_secret: Input keying material (e.g. ECDH x-coordinate)
        purpose_label: Domain separation label, used as HKDF info
        output_length: Bytes to produce (1..8160)
        salt: Optional HKDF salt (default: zero salt)

    Raises:
        DerivationError: If output_length is outside the HKDF bound
    """
    return HKDF(salt).derive(bytes(shared_secret), purpose_label.encode("utf-8"), output_length)
