# basemailer/storage/base.py
"""
BaseMailer Storage: Backend Interface

Content-addressed storage as seen by the envelope protocol:

    put(bytes) -> handle
    get(handle) -> bytes
    pin(handle)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..crypto.envelope import Envelope


class StorageBackend(ABC):
    """Abstract content-addressed storage."""

    @abstractmethod
    def put(self, data: bytes) -> str:
        """Store bytes, return the content handle."""
        pass

    @abstractmethod
    def get(self, handle: str) -> bytes:
        """Fetch bytes by handle."""
        pass

    @abstractmethod
    def pin(self, handle: str) -> None:
        """Ask the backend to retain the content."""
        pass

    def put_envelope(self, envelope: Envelope) -> str:
        """Store an envelope's wire bytes."""
        return self.put(envelope.to_bytes())

    def get_envelope(self, handle: str) -> Envelope:
        """Fetch and parse an envelope."""
        return Envelope.from_bytes(self.get(handle))
