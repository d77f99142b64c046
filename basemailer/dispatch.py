# basemailer/dispatch.py
"""
BaseMailer: Dispatch Protocol

Outbound flow for one message, strictly in order:

    RESOLVE  recipient email -> owner -> public key (caller's resolver)
    ENCRYPT  MessageContent -> Envelope
    STORE    envelope bytes -> storage handle
    COMMIT   handle -> commitment, remembered before submission
    PROVE    ownership proof over [senderAddress, commitment, senderEmailHash]
    SUBMIT   ledger.submit(...) -> mail id from the MailSent log
    INDEX    local IndexedMail upsert

Any failure aborts the remaining steps and raises DispatchStepFailure naming
the step. Nothing before SUBMIT touches the ledger, so a failed dispatch
never leaves a partial on-chain record; a failure after STORE leaves only
an unreferenced stored object. There are no internal retries; re-running
dispatch produces a fresh envelope and handle.

Usage:
    dispatcher = MailDispatcher(
        ledger=ledger,
        engine=HybridEncryptionEngine(),
        storage=IPFSStorage(config.ipfs),
        mapper=CommitmentMapper(),
        prover=SnarkjsProver(config.proof),
        recipient_resolver=StaticRecipientResolver({"bob@basemailer.com": bob_pub}),
        index=InMemoryMailIndex(),
    )
    result = dispatcher.dispatch(MessageContent(
        sender="alice@basemailer.com",
        recipient="bob@basemailer.com",
        subject="hi",
        body="hello",
    ))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from .commitment import CommitmentMapper
from .crypto.engine import HybridEncryptionEngine
from .crypto.envelope import MessageContent
from .errors import DispatchStepFailure, RecipientUnregistered
from .index import IndexedMail, MailIndex
from .ledger import Ledger
from .storage import StorageBackend
from .zkproof import ProofBackend, ProofInputs


class DispatchStep(Enum):
    RESOLVE = "resolve"
    ENCRYPT = "encrypt"
    STORE = "store"
    COMMIT = "commit"
    PROVE = "prove"
    SUBMIT = "submit"
    INDEX = "index"


# =============================================================================
# Recipient Resolution
# =============================================================================

@dataclass(frozen=True)
class RecipientKey:
    """Public key material for a registered recipient."""
    email: str
    owner: str
    public_key: str


class RecipientResolver(ABC):
    """Caller-supplied mapping from (email, owner) to an encryption key."""

    @abstractmethod
    def resolve(self, email: str, owner: str) -> RecipientKey:
        pass


class CallableRecipientResolver(RecipientResolver):
    """Adapt a plain function `fn(email, owner) -> RecipientKey | public_key`."""

    def __init__(self, fn: Callable[[str, str], object]):
        self._fn = fn

    def resolve(self, email: str, owner: str) -> RecipientKey:
        result = self._fn(email, owner)
        if isinstance(result, RecipientKey):
            return result
        return RecipientKey(email=email, owner=owner, public_key=str(result))


class StaticRecipientResolver(RecipientResolver):
    """Fixed email -> public key table."""

    def __init__(self, keys: Dict[str, str]):
        self._keys = dict(keys)

    def resolve(self, email: str, owner: str) -> RecipientKey:
        try:
            return RecipientKey(email=email, owner=owner, public_key=self._keys[email])
        except KeyError:
            raise LookupError(f"No public key known for {email}") from None


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class DispatchResult:
    """
    Completed dispatch.

    Attributes:
        mail_id: Ledger-assigned id
        handle: Storage handle of the envelope
        commitment: keccak256(handle), as anchored on the ledger
        tx_hash: Submission transaction
        block_number: Block that included the submission
        timestamp: Envelope timestamp (ms)
    """
    mail_id: int
    handle: str
    commitment: str
    tx_hash: str
    block_number: int
    timestamp: int


# =============================================================================
# MailDispatcher
# =============================================================================

class MailDispatcher:
    """Runs the dispatch steps for one message at a time; holds no per-message state."""

    def __init__(
        self,
        ledger: Ledger,
        engine: HybridEncryptionEngine,
        storage: StorageBackend,
        mapper: CommitmentMapper,
        prover: ProofBackend,
        recipient_resolver: RecipientResolver,
        index: Optional[MailIndex] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.engine = engine
        self.storage = storage
        self.mapper = mapper
        self.prover = prover
        self.recipient_resolver = recipient_resolver
        self.index = index
        self._log = logger or logging.getLogger(__name__)

    @contextmanager
    def _step(self, step: DispatchStep) -> Iterator[None]:
        self._log.debug("Dispatch step %s", step.name)
        try:
            yield
        except DispatchStepFailure as e:
            self._log.warning("%s", e)
            raise
        except Exception as e:
            failure = DispatchStepFailure(step, cause=e)
            self._log.warning("%s", failure)
            raise failure from e

    def dispatch(self, content: MessageContent) -> DispatchResult:
        """
        Send one message.

        Raises:
            RecipientUnregistered: Recipient email has no owner
            DispatchStepFailure: Any other step failed (see .step / .cause)
        """
        with self._step(DispatchStep.RESOLVE):
            owner = self.ledger.resolve_owner(content.recipient)
            if not owner:
                raise RecipientUnregistered(content.recipient)
            recipient = self.recipient_resolver.resolve(content.recipient, owner)

        with self._step(DispatchStep.ENCRYPT):
            envelope = self.engine.encrypt(content, recipient.public_key)

        with self._step(DispatchStep.STORE):
            handle = self.storage.put(envelope.to_bytes())

        with self._step(DispatchStep.COMMIT):
            commitment = self.mapper.commit(handle)
            self.mapper.remember(commitment, handle)

        with self._step(DispatchStep.PROVE):
            sender_address = self.ledger.resolve_owner(content.sender)
            if not sender_address:
                raise LookupError(f"sender {content.sender} is not registered")
            result = self.prover.prove(ProofInputs(
                sender_address=sender_address,
                commitment=commitment,
                sender_email=content.sender,
            ))
            proof_bytes = result.encoded

        with self._step(DispatchStep.SUBMIT):
            receipt = self.ledger.submit(proof_bytes, commitment, content.sender, content.recipient)

        timestamp = envelope.metadata.timestamp
        if self.index is not None:
            with self._step(DispatchStep.INDEX):
                self.index.upsert(IndexedMail(
                    mail_id=receipt.mail_id,
                    commitment=commitment,
                    sender=content.sender,
                    recipient=content.recipient,
                    # ledger timestamps are seconds
                    timestamp=timestamp // 1000,
                    handle=handle,
                    block_number=receipt.block_number,
                    tx_hash=receipt.tx_hash,
                ))

        self._log.info("Dispatched mail %d (%s) in %s", receipt.mail_id, handle, receipt.tx_hash)
        return DispatchResult(
            mail_id=receipt.mail_id,
            handle=handle,
            commitment=commitment,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            timestamp=timestamp,
        )
