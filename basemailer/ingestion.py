# basemailer/ingestion.py
"""
BaseMailer: Ingestion Protocol

Turns MailSent ledger events into IndexedMail entries.

    catch_up(from, to)     replay a closed block range
    subscribe(from)        poll for new blocks from `from` onward
    start(last_known)      catch_up(last_known, head) then subscribe(head)

The subscription starts at the same block the catch-up ended on, so the
boundary block is read twice and never skipped; the index upsert is
idempotent and replays are not re-delivered, so the overlap is harmless.

Usage:
    ingestor = MailIngestor(ledger, mapper, index, backend=backend_client)
    with ingestor.start(last_known_block=1200, poll_interval=2.0) as sub:
        mail = sub.get(timeout=30)
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import List, Optional

from .backend import BackendClient
from .commitment import CommitmentMapper, compute_commitment
from .errors import BackendError, MailerError
from .index import IndexedMail, MailIndex
from .ledger import Ledger, MailSentEvent


# =============================================================================
# Subscription
# =============================================================================

class Subscription:
    """
    Live polling subscription.

    Each poll reads [next_block, head] and advances next_block to head + 1.
    Mails that are new to the index (or whose entry changed) are pushed onto
    `mails`; replays of rows already indexed are not.
    """

    def __init__(
        self,
        ingestor: MailIngestor,
        from_block: int,
        poll_interval: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._ingestor = ingestor
        self.next_block = from_block
        self.poll_interval = poll_interval
        self.mails: "queue.Queue[IndexedMail]" = queue.Queue()
        self.last_error: Optional[Exception] = None

        self._log = logger or logging.getLogger(__name__)
        self._poll_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def poll_once(self) -> List[IndexedMail]:
        """Ingest everything between next_block and the current head."""
        with self._poll_lock:
            head = self._ingestor.ledger.block_number()
            if head < self.next_block:
                return []
            events = self._ingestor.ledger.get_mail_events(self.next_block, head)
            indexed = []
            for event in events:
                mail = self._ingestor.ingest_new(event)
                if mail is not None:
                    indexed.append(mail)
                    self.mails.put(mail)
            self._log.debug("Polled blocks %d..%d: %d mails", self.next_block, head, len(indexed))
            self.next_block = head + 1
            return indexed

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
                self.last_error = None
            except MailerError as e:
                # next_block is unchanged, so the range is retried on the next poll
                self.last_error = e
                self._log.error("Subscription poll failed at block %d: %s", self.next_block, e)
            except Exception as e:
                self.last_error = e
                self._log.error("Unexpected error polling from block %d", self.next_block, exc_info=True)
            self._stop.wait(self.poll_interval)

    def start(self) -> Subscription:
        """Poll on a daemon thread until cancel()."""
        if self.running:
            return self
        if self._stop.is_set():
            raise RuntimeError("Subscription was cancelled")
        self._thread = threading.Thread(target=self._run, name="basemailer-subscription", daemon=True)
        self._thread.start()
        return self

    def cancel(self, timeout: Optional[float] = None) -> None:
        """Stop polling; an in-flight poll finishes first."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def get(self, timeout: Optional[float] = None) -> IndexedMail:
        """Next newly indexed mail. Raises queue.Empty on timeout."""
        return self.mails.get(timeout=timeout)

    def drain(self) -> List[IndexedMail]:
        """All mails currently queued."""
        drained = []
        while True:
            try:
                drained.append(self.mails.get_nowait())
            except queue.Empty:
                return drained

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


# =============================================================================
# MailIngestor
# =============================================================================

class MailIngestor:
    """Indexes MailSent events, resolving each commitment to its handle."""

    def __init__(
        self,
        ledger: Ledger,
        mapper: CommitmentMapper,
        index: MailIndex,
        backend: Optional[BackendClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.mapper = mapper
        self.index = index
        self.backend = backend
        self._log = logger or logging.getLogger(__name__)

    def _lookup_backend(self, event: MailSentEvent) -> Optional[str]:
        if self.backend is None:
            return None
        try:
            handle = self.backend.lookup_handle(event.mail_id)
        except BackendError as e:
            self._log.warning("Backend lookup for mail %d failed: %s", event.mail_id, e)
            return None
        if handle is not None and compute_commitment(handle) != event.commitment:
            self._log.warning("Backend handle %s does not match commitment %s; ignored", handle, event.commitment)
            return None
        return handle

    def ingest(self, event: MailSentEvent) -> Optional[IndexedMail]:
        """
        Index one event.

        Events without a mail id or commitment are dropped (returns None).
        An unresolvable commitment is still indexed, with handle=None.
        """
        if event.mail_id is None or not event.commitment:
            self._log.warning("Dropping incomplete MailSent event (block=%s, tx=%s)",
                              event.block_number, event.tx_hash)
            return None

        handle = self.mapper.resolve(event.commitment)
        if handle is None:
            handle = self._lookup_backend(event)
            if handle is not None:
                self.mapper.remember(event.commitment, handle)
        if handle is None:
            self._log.warning("No handle for mail %d (commitment %s); indexed as orphan",
                              event.mail_id, event.commitment)

        return self.index.upsert(IndexedMail(
            mail_id=event.mail_id,
            commitment=event.commitment,
            sender=event.sender,
            recipient=event.recipient,
            timestamp=event.timestamp,
            handle=handle,
            block_number=event.block_number,
            tx_hash=event.tx_hash,
        ))

    def ingest_new(self, event: MailSentEvent) -> Optional[IndexedMail]:
        """Like ingest(), but None when the index already held this exact row."""
        previous = self.index.get(event.mail_id) if event.mail_id is not None else None
        mail = self.ingest(event)
        if mail is None or mail == previous:
            return None
        return mail

    def catch_up(self, from_block: int, to_block: int) -> int:
        """Ingest every event in [from_block, to_block]; returns how many were indexed."""
        if to_block < from_block:
            return 0
        count = 0
        for event in self.ledger.get_mail_events(from_block, to_block):
            if self.ingest(event) is not None:
                count += 1
        self._log.info("Caught up blocks %d..%d: %d mails", from_block, to_block, count)
        return count

    def subscribe(self, from_block: int, poll_interval: float = 2.0) -> Subscription:
        """Subscription handle starting at from_block (inclusive); call .start() to run it."""
        return Subscription(self, from_block, poll_interval, logger=self._log)

    def start(
        self,
        last_known_block: Optional[int] = None,
        poll_interval: float = 2.0,
        run: bool = True,
    ) -> Subscription:
        """
        Catch up from last_known_block, then follow the chain.

        The head is fixed before the catch-up query and the subscription
        begins at that same block.
        """
        head = self.ledger.block_number()
        if last_known_block is not None:
            self.catch_up(last_known_block, head)
        subscription = self.subscribe(head, poll_interval)
        if run:
            subscription.start()
        return subscription
