# basemailer/index.py
"""
BaseMailer: Local Mail Index

Locally queryable view of ledger mail records, keyed by mail id.
Upserts are idempotent, so replaying the same event any number of times
leaves exactly one entry.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class IndexedMail:
    """
    Indexed mail record.

    handle is None when neither the commitment map nor the backend knew
    the commitment at ingestion time.
    """
    mail_id: int
    commitment: str
    sender: str
    recipient: str
    timestamp: int
    handle: Optional[str] = None
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MailIndex(ABC):
    """Mail id -> IndexedMail store."""

    @abstractmethod
    def upsert(self, mail: IndexedMail) -> IndexedMail:
        pass

    @abstractmethod
    def get(self, mail_id: int) -> Optional[IndexedMail]:
        pass

    @abstractmethod
    def inbox(self, email: str) -> List[IndexedMail]:
        pass

    @abstractmethod
    def sentbox(self, email: str) -> List[IndexedMail]:
        pass


class InMemoryMailIndex(MailIndex):
    """Thread-safe dict-backed index; listings are ordered by mail id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._mails: Dict[int, IndexedMail] = {}

    def upsert(self, mail: IndexedMail) -> IndexedMail:
        with self._lock:
            existing = self._mails.get(mail.mail_id)
            # a later replay without a handle must not erase one found earlier
            if existing is not None and mail.handle is None and existing.handle is not None:
                mail = IndexedMail(**{**mail.to_dict(), "handle": existing.handle})
            self._mails[mail.mail_id] = mail
            return mail

    def get(self, mail_id: int) -> Optional[IndexedMail]:
        with self._lock:
            return self._mails.get(int(mail_id))

    def _select(self, field_name: str, email: str) -> List[IndexedMail]:
        with self._lock:
            return [
                self._mails[k] for k in sorted(self._mails)
                if getattr(self._mails[k], field_name) == email
            ]

    def inbox(self, email: str) -> List[IndexedMail]:
        return self._select("recipient", email)

    def sentbox(self, email: str) -> List[IndexedMail]:
        return self._select("sender", email)

    def __len__(self) -> int:
        with self._lock:
            return len(self._mails)

    def __contains__(self, mail_id: object) -> bool:
        with self._lock:
            return mail_id in self._mails
