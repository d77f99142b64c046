# basemailer/commitment.py
"""
BaseMailer: Commitment Mapper

Bidirectional bookkeeping between opaque storage handles (IPFS CIDs) and
the fixed-size commitments the mailer contract accepts:

    commitment = keccak256(utf8(handle))      # bytes32, one-way

The ledger only ever sees the commitment, so some party must keep the
commitment -> handle map or the content becomes unreachable while its
proof of existence stays on chain.

Usage:
    mapper = CommitmentMapper()
    commitment = mapper.commit(cid)
    mapper.remember(commitment, cid)
    mapper.resolve(commitment)  # -> cid, or None on a miss
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Union

from web3 import Web3


COMMITMENT_SIZE = 32


# =============================================================================
# Helpers
# =============================================================================

def normalize_commitment(value: Union[str, bytes]) -> str:
    """
    Canonical commitment form: 0x + 64 lowercase hex chars.

    Raises:
        ValueError: Not a 32-byte value
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value[2:] if value.startswith(("0x", "0X")) else value
        raw = bytes.fromhex(text)
    if len(raw) != COMMITMENT_SIZE:
        raise ValueError(f"Commitment must be {COMMITMENT_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def compute_commitment(handle: str) -> str:
    """keccak256 of the UTF-8 handle, as 0x-hex bytes32."""
    return "0x" + bytes(Web3.keccak(text=handle)).hex()


# =============================================================================
# CommitmentMapper
# =============================================================================

class CommitmentMapper:
    """
    Thread-safe in-memory commitment -> handle map.

    Last writer wins; two writers of the same commitment always agree on
    the handle because the mapping is a pure function of the handle.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._lock = threading.Lock()
        self._handles: Dict[str, str] = {}
        self._log = logger or logging.getLogger(__name__)

    @staticmethod
    def commit(handle: str) -> str:
        """Pure, deterministic commitment for a handle."""
        return compute_commitment(handle)

    def remember(self, commitment: Union[str, bytes], handle: str) -> None:
        """Record commitment -> handle."""
        key = normalize_commitment(commitment)
        with self._lock:
            previous = self._handles.get(key)
            self._handles[key] = handle
            try:
                self._on_update()
            except BaseException:
                if previous is None:
                    del self._handles[key]
                else:
                    self._handles[key] = previous
                raise
        self._log.debug("Remembered %s -> %s", key, handle)

    def resolve(self, commitment: Union[str, bytes]) -> Optional[str]:
        """Handle for a commitment, or None if unknown locally."""
        key = normalize_commitment(commitment)
        with self._lock:
            return self._handles.get(key)

    def __contains__(self, commitment: object) -> bool:
        if not isinstance(commitment, (str, bytes)):
            return False
        return self.resolve(commitment) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def _on_update(self) -> None:
        """Hook called under the lock after each remember(); raising undoes the entry."""
        pass


# =============================================================================
# JsonFileCommitmentMapper
# =============================================================================

class JsonFileCommitmentMapper(CommitmentMapper):
    """
    CommitmentMapper persisted to a JSON file.

    The file is rewritten atomically after every remember(), so a crash
    between upload and submission cannot orphan the mapping.
    """

    def __init__(self, path: Union[str, Path], logger: Optional[logging.Logger] = None):
        super().__init__(logger=logger)
        self.path = Path(path)
        if self.path.exists():
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            self._handles = {normalize_commitment(k): v for k, v in data.items()}
            self._log.info("Loaded %d commitments from %s", len(self._handles), self.path)

    def _on_update(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".commitments-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._handles, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise
