# basemailer/service.py
"""
BaseMailer: Relay Service

Server-side half of the protocol: accepts proven submissions from senders
that cannot (or prefer not to) hold a funded key, anchors them on the
ledger, and keeps a local index fed from MailSent events so that handles
can be served back to readers.

    relay_submission(proof, handle, sender, recipient)
        sender registered?  -> remember commitment -> verify proof
        -> pin handle -> submit -> index

    start()  catch up from event_start_block, then follow new blocks
    stop()   cancel the live subscription

Usage:
    service = RelayService.from_config(load_service_config("basemailer.service.config.json"))
    service.start()
    result = service.relay_submission(proof_hex, cid, "alice@basemailer.com", "bob@basemailer.com")
    service.inbox("bob@basemailer.com")
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from .commitment import CommitmentMapper, JsonFileCommitmentMapper
from .config import ProofConfig, ServiceConfig
from .crypto.envelope import now_ms
from .dispatch import DispatchResult
from .errors import LedgerError, ProofInvalid
from .index import IndexedMail, InMemoryMailIndex, MailIndex
from .ingestion import MailIngestor, Subscription
from .ledger import Ledger, Web3Ledger
from .storage import IPFSStorage, StorageBackend
from .zkproof import Proof, ProofBackend, ProofInputs, SnarkjsProver


ProofInput = Union[bytes, str]


class RelayService:
    """Relay submissions and maintain a MailSent-fed index."""

    def __init__(
        self,
        ledger: Ledger,
        storage: StorageBackend,
        verifier: Optional[ProofBackend] = None,
        mapper: Optional[CommitmentMapper] = None,
        index: Optional[MailIndex] = None,
        event_start_block: Optional[int] = None,
        poll_interval: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.storage = storage
        self.verifier = verifier
        self.mapper = mapper if mapper is not None else CommitmentMapper()
        self.index = index if index is not None else InMemoryMailIndex()
        self.event_start_block = event_start_block
        self.poll_interval = poll_interval
        self._log = logger or logging.getLogger(__name__)

        self.ingestor = MailIngestor(ledger, self.mapper, self.index, logger=self._log)
        self._subscription: Optional[Subscription] = None

    @classmethod
    def from_config(cls, config: ServiceConfig, logger: Optional[logging.Logger] = None) -> RelayService:
        verifier = None
        if config.verification_key_path:
            verifier = SnarkjsProver(ProofConfig(
                verification_key_path=config.verification_key_path,
                snarkjs_bin=config.snarkjs_bin,
            ), logger=logger)
        if config.commitment_store_path:
            mapper: CommitmentMapper = JsonFileCommitmentMapper(config.commitment_store_path)
        else:
            mapper = CommitmentMapper()
        return cls(
            ledger=Web3Ledger(config.ledger),
            storage=IPFSStorage(config.ipfs),
            verifier=verifier,
            mapper=mapper,
            event_start_block=config.event_start_block,
            poll_interval=config.poll_interval,
            logger=logger,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.running

    def start(self) -> Subscription:
        """Replay from event_start_block (or the current head) and follow the chain."""
        if self._subscription is not None:
            return self._subscription
        start_block = self.event_start_block
        if start_block is None:
            start_block = self.ledger.block_number()
        self._subscription = self.ingestor.start(start_block, poll_interval=self.poll_interval)
        self._log.info("Relay service following MailSent from block %d", start_block)
        return self._subscription

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
            self._log.info("Relay service stopped")

    # =========================================================================
    # Relay
    # =========================================================================

    def relay_submission(self, proof: ProofInput, handle: str, sender: str, recipient: str) -> DispatchResult:
        """
        Anchor a sender-built submission on the ledger.

        Raises:
            LedgerError: Sender not registered, or the submission failed
            ProofInvalid: Proof rejected by the configured verifier
            ProofEncodingError: Proof is not a well-formed encoded proof
        """
        if not proof or not handle or not sender or not recipient:
            raise ValueError("proof, handle, sender and recipient are all required")

        owner = self.ledger.resolve_owner(sender)
        if not owner:
            raise LedgerError(f"Sender email not registered: {sender}")

        commitment = self.mapper.commit(handle)
        self.mapper.remember(commitment, handle)

        decoded = Proof.decode(proof)
        if self.verifier is not None:
            signals = ProofInputs(owner, commitment, sender).public_signals()
            if not self.verifier.verify(decoded, signals):
                raise ProofInvalid(f"Proof rejected for {sender} / {commitment}")

        self.storage.pin(handle)

        receipt = self.ledger.submit(decoded.encode(), commitment, sender, recipient)
        timestamp = now_ms()
        self.index.upsert(IndexedMail(
            mail_id=receipt.mail_id,
            commitment=commitment,
            sender=sender,
            recipient=recipient,
            timestamp=timestamp // 1000,
            handle=handle,
            block_number=receipt.block_number,
            tx_hash=receipt.tx_hash,
        ))
        self._log.info("Relayed mail %d for %s -> %s (%s)", receipt.mail_id, sender, recipient, receipt.tx_hash)
        return DispatchResult(
            mail_id=receipt.mail_id,
            handle=handle,
            commitment=commitment,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            timestamp=timestamp,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def inbox(self, email: str) -> List[IndexedMail]:
        return self.index.inbox(email)

    def sentbox(self, email: str) -> List[IndexedMail]:
        return self.index.sentbox(email)

    def mail(self, mail_id: int) -> Optional[IndexedMail]:
        return self.index.get(mail_id)
