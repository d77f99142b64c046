# basemailer/storage/ipfs.py
"""
BaseMailer Storage: IPFS

IPFS HTTP API backend. Envelopes are gzip-compressed before upload when
`compress` is enabled and pinned on upload when `pin` is enabled.

Requirements:
    pip install ipfshttpclient

Usage:
    storage = IPFSStorage(IPFSConfig(endpoint="/dns/localhost/tcp/5001/http"))
    cid = storage.put(envelope.to_bytes())
    data = storage.get(cid)
"""

from __future__ import annotations

import gzip
import logging
from typing import Any, Optional

import ipfshttpclient

from ..config import IPFSConfig
from ..errors import StorageError
from .base import StorageBackend


class IPFSStorage(StorageBackend):
    """IPFS client wrapper."""

    def __init__(
        self,
        config: Optional[IPFSConfig] = None,
        client: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: IPFS settings (defaults to a local daemon)
            client: Pre-built ipfshttpclient client (skips connect)
            logger: Logger (default: module logger)
        """
        self.config = config or IPFSConfig()
        self._client = client
        self._log = logger or logging.getLogger(__name__)

    # =========================================================================
    # Connection
    # =========================================================================

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._connect()
        return self._client

    def _connect(self) -> Any:
        auth = None
        if self.config.project_id and self.config.project_secret:
            auth = (self.config.project_id, self.config.project_secret)
        try:
            client = ipfshttpclient.connect(
                self.config.endpoint,
                auth=auth,
                timeout=self.config.timeout,
            )
        except Exception as e:
            raise StorageError(f"IPFS connection to {self.config.endpoint} failed: {e}") from e
        self._log.info("Connected to IPFS: %s", self.config.endpoint)
        return client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # =========================================================================
    # StorageBackend
    # =========================================================================

    def put(self, data: bytes) -> str:
        payload = gzip.compress(data) if self.config.compress else data
        try:
            cid = self.client.add_bytes(payload, opts={"pin": self.config.pin})
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"IPFS add failed: {e}") from e
        self._log.info("Uploaded %d bytes to IPFS (CID: %s)", len(payload), cid)
        return cid

    def get(self, handle: str) -> bytes:
        try:
            data = self.client.cat(handle)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"IPFS cat {handle} failed: {e}") from e
        if not self.config.compress:
            return data
        try:
            return gzip.decompress(data)
        except OSError as e:
            raise StorageError(f"Content {handle} is not gzip-compressed: {e}") from e

    def pin(self, handle: str) -> None:
        if not self.config.pin:
            return
        try:
            self.client.pin.add(handle)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"IPFS pin {handle} failed: {e}") from e
        self._log.debug("Pinned %s", handle)
