# basemailer/crypto/envelope.py
"""
BaseMailer Crypto: Envelope Wire Format

Data model for mail content and the encrypted package that carries it.

Wire Format (JSON, byte fields as lowercase 0x-hex):
    ┌──────────────────────────────────────────────────────────────┐
    │ version             "1.0"                                    │
    │ encryptedContent    algorithm  "AES-256-GCM"                 │
    │                     ciphertext                               │
    │                     nonce      (12B)                         │
    │                     tag        (16B)                         │
    │ encryptedKey        algorithm  "ECIES-secp256k1"             │
    │                     ephemeralPublicKey (33B compressed)      │
    │                     ciphertext (32B wrapped key)             │
    │                     mac        (32B HMAC-SHA256)             │
    │ metadata            version, timestamp, size, contentType    │
    └──────────────────────────────────────────────────────────────┘

Only HybridEncryptionEngine builds or opens an Envelope; every other
component moves it around as opaque bytes (to_bytes / from_bytes).

Usage:
    content = MessageContent(sender="a@x", recipient="b@x", subject="hi", body="hello")
    wire = envelope.to_bytes()
    envelope = Envelope.from_bytes(wire)
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from ..errors import EnvelopeFormatError


# =============================================================================
# Constants
# =============================================================================

PROTOCOL_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({PROTOCOL_VERSION})

CONTENT_ALGORITHM = "AES-256-GCM"
KEY_ALGORITHM = "ECIES-secp256k1"
CONTENT_TYPE = "mail"

NONCE_SIZE = 12
TAG_SIZE = 16
SYMMETRIC_KEY_SIZE = 32
MAC_SIZE = 32

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")


# =============================================================================
# Hex Helpers
# =============================================================================

def to_hex(data: bytes) -> str:
    """Encode bytes as lowercase 0x-prefixed hex."""
    return "0x" + bytes(data).hex()


def from_hex(value: str, label: str = "value") -> bytes:
    """Decode 0x-prefixed hex; raises EnvelopeFormatError on anything else."""
    if not isinstance(value, str) or not _HEX_RE.match(value) or len(value) % 2:
        raise EnvelopeFormatError(f"{label} must be a 0x-prefixed hex string")
    return bytes.fromhex(value[2:])


def now_ms() -> int:
    """Current time in milliseconds since epoch."""
    return int(time.time() * 1000)


# =============================================================================
# Mail Content
# =============================================================================

@dataclass(frozen=True)
class AttachmentMeta:
    """Attachment descriptor (content itself lives in storage)."""
    name: str
    mime_type: str
    size: int
    handle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
        }
        if self.handle is not None:
            data["cid"] = self.handle
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AttachmentMeta:
        return cls(
            name=data["name"],
            mime_type=data["mimeType"],
            size=int(data["size"]),
            handle=data.get("cid"),
        )


@dataclass(frozen=True)
class MessageContent:
    """
    Plaintext mail content.

    Attributes:
        sender: Sender email identifier
        recipient: Recipient email identifier
        subject: Subject line
        body: Message body
        timestamp: Milliseconds since epoch (None = assigned on canonicalize)
        attachments: Attachment descriptors
    """
    sender: str
    recipient: str
    subject: str
    body: str
    timestamp: Optional[int] = None
    attachments: Optional[Tuple[AttachmentMeta, ...]] = None

    def __post_init__(self):
        if self.attachments is not None and not isinstance(self.attachments, tuple):
            object.__setattr__(self, "attachments", tuple(self.attachments))

    def canonicalize(self, timestamp: Optional[int] = None) -> MessageContent:
        """Return a copy with the timestamp fixed."""
        if self.timestamp is not None:
            return self
        return replace(self, timestamp=timestamp if timestamp is not None else now_ms())

    def to_dict(self) -> Dict[str, Any]:
        """Stable-order dict (from, to, subject, body, timestamp, attachments)."""
        data: Dict[str, Any] = {
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "body": self.body,
            "timestamp": self.timestamp,
        }
        if self.attachments is not None:
            data["attachments"] = [a.to_dict() for a in self.attachments]
        return data

    def to_canonical_bytes(self) -> bytes:
        """Deterministic UTF-8 JSON serialization. Requires a fixed timestamp."""
        if self.timestamp is None:
            raise ValueError("Content must be canonicalized before serialization")
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MessageContent:
        attachments = data.get("attachments")
        return cls(
            sender=data["from"],
            recipient=data["to"],
            subject=data["subject"],
            body=data["body"],
            timestamp=data.get("timestamp"),
            attachments=(
                tuple(AttachmentMeta.from_dict(a) for a in attachments)
                if attachments is not None else None
            ),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> MessageContent:
        return cls.from_dict(json.loads(data.decode("utf-8")))


# =============================================================================
# Envelope
# =============================================================================

@dataclass(frozen=True)
class EncryptedContent:
    """AEAD-encrypted message body."""
    ciphertext: bytes
    nonce: bytes
    tag: bytes
    algorithm: str = CONTENT_ALGORITHM


@dataclass(frozen=True)
class EncryptedKey:
    """Symmetric key wrapped to the recipient."""
    ephemeral_public_key: bytes
    ciphertext: bytes
    mac: bytes
    algorithm: str = KEY_ALGORITHM


@dataclass(frozen=True)
class EnvelopeMetadata:
    """Clear-text envelope metadata."""
    timestamp: int
    size: int
    version: str = PROTOCOL_VERSION
    content_type: str = CONTENT_TYPE


@dataclass(frozen=True)
class Envelope:
    """Versioned encrypted mail package."""
    encrypted_content: EncryptedContent
    encrypted_key: EncryptedKey
    metadata: EnvelopeMetadata
    version: str = PROTOCOL_VERSION

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "encryptedContent": {
                "algorithm": self.encrypted_content.algorithm,
                "ciphertext": to_hex(self.encrypted_content.ciphertext),
                "nonce": to_hex(self.encrypted_content.nonce),
                "tag": to_hex(self.encrypted_content.tag),
            },
            "encryptedKey": {
                "algorithm": self.encrypted_key.algorithm,
                "ephemeralPublicKey": to_hex(self.encrypted_key.ephemeral_public_key),
                "ciphertext": to_hex(self.encrypted_key.ciphertext),
                "mac": to_hex(self.encrypted_key.mac),
            },
            "metadata": {
                "version": self.metadata.version,
                "timestamp": self.metadata.timestamp,
                "size": self.metadata.size,
                "contentType": self.metadata.content_type,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Envelope:
        """
        Parse envelope dict.

        Accepts the legacy `iv` / `authTag` keys for nonce and tag.

        Raises:
            EnvelopeFormatError: Missing field or malformed hex
        """
        try:
            content = data["encryptedContent"]
            key = data["encryptedKey"]
            meta = data["metadata"]
            nonce_hex = content["nonce"] if "nonce" in content else content["iv"]
            tag_hex = content["tag"] if "tag" in content else content["authTag"]
            return cls(
                version=str(data["version"]),
                encrypted_content=EncryptedContent(
                    algorithm=content["algorithm"],
                    ciphertext=from_hex(content["ciphertext"], "encryptedContent.ciphertext"),
                    nonce=from_hex(nonce_hex, "encryptedContent.nonce"),
                    tag=from_hex(tag_hex, "encryptedContent.tag"),
                ),
                encrypted_key=EncryptedKey(
                    algorithm=key["algorithm"],
                    ephemeral_public_key=from_hex(key["ephemeralPublicKey"], "encryptedKey.ephemeralPublicKey"),
                    ciphertext=from_hex(key["ciphertext"], "encryptedKey.ciphertext"),
                    mac=from_hex(key["mac"], "encryptedKey.mac"),
                ),
                metadata=EnvelopeMetadata(
                    version=str(meta["version"]),
                    timestamp=int(meta["timestamp"]),
                    size=int(meta["size"]),
                    content_type=meta.get("contentType", CONTENT_TYPE),
                ),
            )
        except (KeyError, TypeError) as e:
            raise EnvelopeFormatError(f"Malformed envelope: missing or invalid field {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_bytes(self) -> bytes:
        return self.to_json().encode("utf-8")

    @classmethod
    def from_json(cls, text: str) -> Envelope:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise EnvelopeFormatError(f"Envelope is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise EnvelopeFormatError("Envelope JSON must be an object")
        return cls.from_dict(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> Envelope:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EnvelopeFormatError(f"Envelope is not UTF-8: {e}") from e
        return cls.from_json(text)

    @property
    def total_size(self) -> int:
        return self.metadata.size

    def __repr__(self) -> str:
        return (
            f"Envelope(version={self.version!r}, "
            f"ciphertext={len(self.encrypted_content.ciphertext)}B, "
            f"epk={self.encrypted_key.ephemeral_public_key.hex()[:16]}..., "
            f"timestamp={self.metadata.timestamp})"
        )
