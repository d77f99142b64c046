# basemailer/storage/__init__.py
"""
BaseMailer Storage: content-addressed backends

Modules:
    base    - StorageBackend interface
    ipfs    - IPFSStorage (ipfshttpclient)
    memory  - MemoryStorage (tests)
"""

from .base import StorageBackend
from .memory import MemoryStorage
from .ipfs import IPFSStorage

__all__ = [
    "StorageBackend",
    "MemoryStorage",
    "IPFSStorage",
]
