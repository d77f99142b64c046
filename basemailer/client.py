# basemailer/client.py
"""
BaseMailer: Client

Sender/reader facade over the dispatch protocol and the ledger.

Usage:
    from basemailer import MailerClient, load_client_config
    from basemailer.dispatch import StaticRecipientResolver

    client = MailerClient.from_config(
        load_client_config("basemailer.config.json"),
        recipient_resolver=StaticRecipientResolver({"bob@basemailer.com": bob_pub}),
    )
    email = client.register_email("alice")
    result = client.send_mail(email, "bob@basemailer.com", "hi", "hello")

    # as bob
    content = client.retrieve_mail(result.mail_id, bob_priv)
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .backend import BackendClient
from .commitment import CommitmentMapper, JsonFileCommitmentMapper, compute_commitment
from .config import ClientConfig
from .crypto.engine import HybridEncryptionEngine, KeyInput
from .crypto.envelope import AttachmentMeta, MessageContent
from .dispatch import DispatchResult, MailDispatcher, RecipientResolver
from .errors import BackendError, ConfigError, HandleNotFound
from .index import InMemoryMailIndex, MailIndex
from .ledger import Ledger, MailRecord, Web3Ledger
from .storage import IPFSStorage, StorageBackend
from .zkproof import ProofBackend, SnarkjsProver


class MailerClient:
    """
    Register, send, list and read mail.

    Capabilities are injected; from_config() wires the web3, IPFS and
    snarkjs implementations.
    """

    def __init__(
        self,
        ledger: Ledger,
        storage: StorageBackend,
        prover: ProofBackend,
        recipient_resolver: Optional[RecipientResolver] = None,
        engine: Optional[HybridEncryptionEngine] = None,
        mapper: Optional[CommitmentMapper] = None,
        backend: Optional[BackendClient] = None,
        index: Optional[MailIndex] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.storage = storage
        self.prover = prover
        self.recipient_resolver = recipient_resolver
        self.engine = engine or HybridEncryptionEngine()
        self.mapper = mapper if mapper is not None else CommitmentMapper()
        self.backend = backend
        self.index = index if index is not None else InMemoryMailIndex()
        self._log = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        recipient_resolver: Optional[RecipientResolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> MailerClient:
        if config.proof is None:
            raise ConfigError("Proof configuration must be provided")
        if config.commitment_store_path:
            mapper: CommitmentMapper = JsonFileCommitmentMapper(config.commitment_store_path)
        else:
            mapper = CommitmentMapper()
        return cls(
            ledger=Web3Ledger(config.ledger),
            storage=IPFSStorage(config.ipfs),
            prover=SnarkjsProver(config.proof),
            recipient_resolver=recipient_resolver,
            mapper=mapper,
            backend=BackendClient(config.backend) if config.backend else None,
            logger=logger,
        )

    # =========================================================================
    # Registry
    # =========================================================================

    def register_email(self, basename: str) -> str:
        return self.ledger.register_email(basename)

    def is_email_registered(self, email: str) -> bool:
        return self.ledger.is_registered(email)

    def resolve_owner(self, email: str) -> Optional[str]:
        return self.ledger.resolve_owner(email)

    # =========================================================================
    # Sending
    # =========================================================================

    def _dispatcher(self) -> MailDispatcher:
        if self.recipient_resolver is None:
            raise ConfigError("recipient_resolver is not configured; cannot derive public key")
        return MailDispatcher(
            ledger=self.ledger,
            engine=self.engine,
            storage=self.storage,
            mapper=self.mapper,
            prover=self.prover,
            recipient_resolver=self.recipient_resolver,
            index=self.index,
            logger=self._log,
        )

    def send_mail(
        self,
        sender: str,
        recipient: str,
        subject: str,
        body: str,
        attachments: Optional[Sequence[AttachmentMeta]] = None,
    ) -> DispatchResult:
        """Encrypt, store, prove and submit one message."""
        content = MessageContent(
            sender=sender,
            recipient=recipient,
            subject=subject,
            body=body,
            attachments=tuple(attachments) if attachments else None,
        )
        return self._dispatcher().dispatch(content)

    # =========================================================================
    # Reading
    # =========================================================================

    def get_inbox(self, email: str) -> List[MailRecord]:
        return self.ledger.get_inbox(email)

    def get_sentbox(self, email: str) -> List[MailRecord]:
        return self.ledger.get_sentbox(email)

    def get_mail(self, mail_id: int) -> MailRecord:
        return self.ledger.get_mail(mail_id)

    def retrieve_mail(self, mail_id: int, private_key: KeyInput) -> MessageContent:
        """
        Fetch and decrypt a mail.

        The handle comes from the local commitment map, then the backend.
        A backend envelope is used only when the backend offers no handle
        matching the commitment; otherwise storage is read through the handle.

        Raises:
            HandleNotFound: Neither source knows the commitment
            IntegrityError: Envelope fails authentication for this key
        """
        record = self.ledger.get_mail(mail_id)
        handle = self.mapper.resolve(record.commitment)

        if handle is None and self.backend is not None:
            try:
                remote = self.backend.get_mail(mail_id)
            except BackendError as e:
                if e.status != 404:
                    raise
                remote = None
            if remote is not None:
                if remote.handle and compute_commitment(remote.handle) == record.commitment:
                    handle = remote.handle
                    self.mapper.remember(record.commitment, handle)
                elif remote.envelope is not None:
                    # nothing ties this envelope to the on-chain commitment
                    self._log.warning("Mail %d: decrypting backend envelope not anchored to %s",
                                      mail_id, record.commitment)
                    return self.engine.decrypt(remote.envelope, private_key)

        if handle is None:
            raise HandleNotFound(record.commitment, mail_id)

        self._log.debug("Retrieving mail %d from %s", mail_id, handle)
        return self.engine.decrypt(self.storage.get_envelope(handle), private_key)
