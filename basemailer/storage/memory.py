# basemailer/storage/memory.py
"""
BaseMailer Storage: In-Memory Backend (for testing without IPFS)
"""

from __future__ import annotations

import hashlib
import threading
from typing import Dict, Set

from ..errors import StorageError
from .base import StorageBackend


class MemoryStorage(StorageBackend):
    """
    In-memory content-addressed store.

    Handles are `sha256-<hex>` of the stored bytes, so identical content
    always maps to the same handle.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._blobs: Dict[str, bytes] = {}
        self.pinned: Set[str] = set()
        self.put_count = 0

    def put(self, data: bytes) -> str:
        handle = "sha256-" + hashlib.sha256(data).hexdigest()
        with self._lock:
            self._blobs[handle] = bytes(data)
            self.put_count += 1
        return handle

    def get(self, handle: str) -> bytes:
        with self._lock:
            if handle not in self._blobs:
                raise StorageError(f"Unknown handle: {handle}")
            return self._blobs[handle]

    def pin(self, handle: str) -> None:
        with self._lock:
            if handle not in self._blobs:
                raise StorageError(f"Cannot pin unknown handle: {handle}")
            self.pinned.add(handle)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._blobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)
