# basemailer/ledger/mailer.py
"""
BaseMailer Ledger: Registry and Mailer Contract Interface

Two contracts back the protocol:

    BaseMailerRegistry  email -> owner address
    NameBasedMailer     sendMail(proof, commitment, from, to), MailSent events

Ledger is the interface the dispatcher, ingestor and services depend on.
Web3Ledger talks to a JSON-RPC node; MockLedger keeps everything in memory
and mines one block per submission.

Usage:
    ledger = Web3Ledger(LedgerConfig(
        rpc_url="https://sepolia.base.org",
        registry_address="0x...",
        mailer_address="0x...",
        private_key="0x...",
    ))
    owner = ledger.resolve_owner("alice@basemailer.com")
    receipt = ledger.submit(proof_bytes, commitment, "alice@basemailer.com", "bob@basemailer.com")
    print(receipt.mail_id, receipt.tx_hash)
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from ..commitment import normalize_commitment
from ..config import LedgerConfig
from ..errors import LedgerError, ProofEncodingError
from ..zkproof import Proof, ProofInputs
from .events import (
    MAIL_SENT_TOPIC,
    ZERO_ADDRESS,
    MailRecord,
    MailSentEvent,
    SubmitReceipt,
    decode_mail_sent_log,
    extract_mail_id,
)


# =============================================================================
# Constants
# =============================================================================

ABI_DIR = Path(__file__).parent / "contracts" / "abi"

REGISTRY_ABI_PATH = ABI_DIR / "BaseMailerRegistry.json"
MAILER_ABI_PATH = ABI_DIR / "NameBasedMailer.json"


def _load_abi(path: Path) -> List[Dict]:
    """Load contract ABI from JSON file."""
    if path.exists():
        with open(path) as f:
            data = json.load(f)
            return data.get("abi", data)
    return []


REGISTRY_ABI = _load_abi(REGISTRY_ABI_PATH)
MAILER_ABI = _load_abi(MAILER_ABI_PATH)

# Transient RPC failures surface as these; contract reverts as ContractLogicError
_RPC_ERRORS = (Web3Exception, ValueError, OSError)


def _is_zero_address(address: Optional[str]) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


# =============================================================================
# Interface
# =============================================================================

class Ledger(ABC):
    """Registry + mailer contract operations."""

    @abstractmethod
    def resolve_owner(self, email: str) -> Optional[str]:
        """Owner address of a registered email, or None."""

    @abstractmethod
    def is_registered(self, email: str) -> bool:
        pass

    @abstractmethod
    def register_email(self, basename: str) -> str:
        """Register `basename` for the signing account; returns the full email."""

    @abstractmethod
    def submit(self, proof: bytes, commitment: str, sender: str, recipient: str) -> SubmitReceipt:
        """Submit sendMail and wait for confirmation."""

    @abstractmethod
    def get_mail(self, mail_id: int) -> MailRecord:
        pass

    @abstractmethod
    def get_inbox(self, email: str) -> List[MailRecord]:
        pass

    @abstractmethod
    def get_sentbox(self, email: str) -> List[MailRecord]:
        pass

    @abstractmethod
    def block_number(self) -> int:
        pass

    @abstractmethod
    def get_mail_events(self, from_block: int, to_block: int) -> List[MailSentEvent]:
        """MailSent events in [from_block, to_block], in chain order."""


# =============================================================================
# Web3Ledger
# =============================================================================

class Web3Ledger(Ledger):
    """
    Ledger backed by deployed contracts over JSON-RPC.

    Write operations need a signing key in the config.
    """

    def __init__(
        self,
        config: LedgerConfig,
        web3: Optional[Web3] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self._log = logger or logging.getLogger(__name__)

        self._w3 = web3 or Web3(Web3.HTTPProvider(
            config.rpc_url,
            request_kwargs={"timeout": config.tx_timeout},
        ))

        self.registry_address = Web3.to_checksum_address(config.registry_address)
        self.mailer_address = Web3.to_checksum_address(config.mailer_address)
        self._registry = self._w3.eth.contract(address=self.registry_address, abi=REGISTRY_ABI)
        self._mailer = self._w3.eth.contract(address=self.mailer_address, abi=MAILER_ABI)

        self._account = Account.from_key(config.private_key) if config.private_key else None
        self._chain_id = config.chain_id
        self._tx_lock = threading.Lock()

    @property
    def account_address(self) -> Optional[str]:
        """Signing account address (if private key provided)."""
        return self._account.address if self._account else None

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self._w3.eth.chain_id
        return self._chain_id

    # =========================================================================
    # Transactions
    # =========================================================================

    def _transact(self, fn: Any, label: str) -> Any:
        """Build, sign, send and confirm a contract call. Returns the receipt."""
        if not self._account:
            raise LedgerError("Private key required for write operations")

        # nonce allocation and send must not interleave across threads
        with self._tx_lock:
            try:
                tx = fn.build_transaction({
                    "from": self._account.address,
                    "chainId": self.chain_id,
                    "nonce": self._w3.eth.get_transaction_count(self._account.address, "pending"),
                    "gas": self.config.gas_limit,
                    "gasPrice": self._w3.eth.gas_price,
                })
                signed = self._account.sign_transaction(tx)
                tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except ContractLogicError as e:
                raise LedgerError(f"{label} reverted: {e}") from e
            except _RPC_ERRORS as e:
                raise LedgerError(f"{label} failed to send: {e}") from e

        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.tx_timeout,
            )
        except TimeExhausted as e:
            raise LedgerError(f"{label} not confirmed within {self.config.tx_timeout}s: 0x{bytes(tx_hash).hex()}") from e
        except _RPC_ERRORS as e:
            raise LedgerError(f"{label} receipt unavailable: {e}") from e

        if receipt["status"] != 1:
            raise LedgerError(f"{label} transaction failed: 0x{bytes(tx_hash).hex()}")
        return receipt

    def _call(self, fn: Any, label: str) -> Any:
        try:
            return fn.call()
        except ContractLogicError as e:
            raise LedgerError(f"{label} reverted: {e}") from e
        except _RPC_ERRORS as e:
            raise LedgerError(f"{label} failed: {e}") from e

    # =========================================================================
    # Registry
    # =========================================================================

    def resolve_owner(self, email: str) -> Optional[str]:
        owner = self._call(self._registry.functions.resolveEmail(email), "resolveEmail")
        if _is_zero_address(owner):
            return None
        return Web3.to_checksum_address(owner)

    def is_registered(self, email: str) -> bool:
        return bool(self._call(self._registry.functions.isEmailRegistered(email), "isEmailRegistered"))

    def register_email(self, basename: str) -> str:
        self._transact(self._registry.functions.registerEmail(basename), "registerEmail")
        email = f"{basename}@{self.config.email_domain}"
        self._log.info("Registered %s for %s", email, self.account_address)
        return email

    # =========================================================================
    # Mailer
    # =========================================================================

    def submit(self, proof: bytes, commitment: str, sender: str, recipient: str) -> SubmitReceipt:
        fn = self._mailer.functions.sendMail(
            bytes(proof),
            bytes.fromhex(normalize_commitment(commitment)[2:]),
            sender,
            recipient,
        )
        receipt = self._transact(fn, "sendMail")

        mail_id = extract_mail_id(receipt["logs"])
        tx_hash = "0x" + bytes(receipt["transactionHash"]).hex()
        if mail_id is None:
            raise LedgerError(f"sendMail receipt carries no MailSent event: {tx_hash}")

        self._log.info("Mail %d submitted in block %d (%s)", mail_id, receipt["blockNumber"], tx_hash)
        return SubmitReceipt(mail_id=mail_id, tx_hash=tx_hash, block_number=receipt["blockNumber"])

    def get_mail(self, mail_id: int) -> MailRecord:
        data = self._call(self._mailer.functions.getMail(int(mail_id)), "getMail")
        return MailRecord.from_contract_tuple(data, mail_id=mail_id)

    def get_inbox(self, email: str) -> List[MailRecord]:
        rows = self._call(self._mailer.functions.getInbox(email), "getInbox")
        return [MailRecord.from_contract_tuple(row) for row in rows]

    def get_sentbox(self, email: str) -> List[MailRecord]:
        rows = self._call(self._mailer.functions.getSentbox(email), "getSentbox")
        return [MailRecord.from_contract_tuple(row) for row in rows]

    # =========================================================================
    # Events
    # =========================================================================

    def block_number(self) -> int:
        try:
            return self._w3.eth.block_number
        except _RPC_ERRORS as e:
            raise LedgerError(f"block_number failed: {e}") from e

    def get_mail_events(self, from_block: int, to_block: int) -> List[MailSentEvent]:
        if to_block < from_block:
            return []
        try:
            logs = self._w3.eth.get_logs({
                "address": self.mailer_address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [MAIL_SENT_TOPIC],
            })
        except _RPC_ERRORS as e:
            raise LedgerError(f"get_logs [{from_block}, {to_block}] failed: {e}") from e

        events = []
        for log in logs:
            event = decode_mail_sent_log(log)
            events.append(self._enrich(event))
        return events

    def _enrich(self, event: MailSentEvent) -> MailSentEvent:
        """Indexed strings arrive as hashes; read the plain emails back from getMail."""
        if event.mail_id is None:
            return event
        try:
            record = self.get_mail(event.mail_id)
        except LedgerError as e:
            self._log.warning("Could not enrich mail %s: %s", event.mail_id, e)
            return event
        return MailSentEvent(
            mail_id=event.mail_id,
            commitment=event.commitment,
            sender=record.sender,
            recipient=record.recipient,
            timestamp=event.timestamp,
            block_number=event.block_number,
            tx_hash=event.tx_hash,
            log_index=event.log_index,
        )


# =============================================================================
# MockLedger (for testing without a chain)
# =============================================================================

class MockLedger(Ledger):
    """
    In-memory ledger.

    Each successful submit mines one block holding exactly one MailSent
    event. Mail ids are a single counter shared by all senders, starting
    at 1. When a verifier is supplied, proofs are checked the way the
    contract would check them.
    """

    def __init__(
        self,
        email_domain: str = "basemailer.com",
        verifier: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.email_domain = email_domain
        self._verifier = verifier
        self._clock = clock
        self._lock = threading.Lock()

        self._owners: Dict[str, str] = {}
        self._mails: Dict[int, MailRecord] = {}
        self._events: List[MailSentEvent] = []
        self._next_id = 1
        self._block = 0
        self._current_address = "0x" + "1" * 40  # Mock address

        self.submissions: List[Dict[str, Any]] = []
        self.fail_next_submit: Optional[Exception] = None

    def set_account(self, address: str) -> None:
        """Set current account address."""
        self._current_address = Web3.to_checksum_address(address)

    @property
    def account_address(self) -> str:
        return self._current_address

    # -- registry --------------------------------------------------------------

    def register_email(self, basename: str) -> str:
        email = f"{basename}@{self.email_domain}"
        with self._lock:
            if email in self._owners:
                raise LedgerError(f"registerEmail reverted: {email} already registered")
            self._owners[email] = self._current_address
        return email

    def resolve_owner(self, email: str) -> Optional[str]:
        return self._owners.get(email)

    def is_registered(self, email: str) -> bool:
        return email in self._owners

    # -- mailer ----------------------------------------------------------------

    def submit(self, proof: bytes, commitment: str, sender: str, recipient: str) -> SubmitReceipt:
        commitment = normalize_commitment(commitment)
        with self._lock:
            if self.fail_next_submit is not None:
                error, self.fail_next_submit = self.fail_next_submit, None
                raise error
            if sender not in self._owners:
                raise LedgerError(f"sendMail reverted: sender {sender} not registered")
            if recipient not in self._owners:
                raise LedgerError(f"sendMail reverted: recipient {recipient} not registered")
            verified = self._check_proof(proof, commitment, sender)

            mail_id = self._next_id
            self._next_id += 1
            self._block += 1
            timestamp = int(self._clock())
            tx_hash = "0x" + bytes(Web3.keccak(text=f"mock-tx-{mail_id}")).hex()

            self._mails[mail_id] = MailRecord(
                mail_id=mail_id,
                commitment=commitment,
                sender=sender,
                recipient=recipient,
                timestamp=timestamp,
                verified=verified,
            )
            self._events.append(MailSentEvent(
                mail_id=mail_id,
                commitment=commitment,
                sender=sender,
                recipient=recipient,
                timestamp=timestamp,
                block_number=self._block,
                tx_hash=tx_hash,
                log_index=0,
            ))
            self.submissions.append({
                "proof": bytes(proof),
                "commitment": commitment,
                "sender": sender,
                "recipient": recipient,
            })
            return SubmitReceipt(mail_id=mail_id, tx_hash=tx_hash, block_number=self._block)

    def _check_proof(self, proof: bytes, commitment: str, sender: str) -> bool:
        if self._verifier is None:
            return False
        try:
            decoded = Proof.decode(proof)
        except ProofEncodingError as e:
            raise LedgerError(f"sendMail reverted: {e}") from e
        signals = ProofInputs(self._owners[sender], commitment, sender).public_signals()
        if not self._verifier.verify(decoded, signals):
            raise LedgerError("sendMail reverted: invalid proof")
        return True

    def get_mail(self, mail_id: int) -> MailRecord:
        try:
            return self._mails[int(mail_id)]
        except KeyError:
            raise LedgerError(f"getMail reverted: mail {mail_id} does not exist") from None

    def get_inbox(self, email: str) -> List[MailRecord]:
        return [m for m in self._mails.values() if m.recipient == email]

    def get_sentbox(self, email: str) -> List[MailRecord]:
        return [m for m in self._mails.values() if m.sender == email]

    # -- events ----------------------------------------------------------------

    def block_number(self) -> int:
        return self._block

    def mine(self, blocks: int = 1) -> int:
        """Advance the chain by empty blocks."""
        with self._lock:
            self._block += blocks
            return self._block

    def emit_event(self, event: MailSentEvent) -> MailSentEvent:
        """Append a raw event in a new block (used to simulate malformed logs)."""
        with self._lock:
            self._block += 1
            stamped = MailSentEvent(
                mail_id=event.mail_id,
                commitment=event.commitment,
                sender=event.sender,
                recipient=event.recipient,
                timestamp=event.timestamp,
                block_number=self._block,
                tx_hash=event.tx_hash,
                log_index=event.log_index,
            )
            self._events.append(stamped)
            return stamped

    def get_mail_events(self, from_block: int, to_block: int) -> List[MailSentEvent]:
        with self._lock:
            return [
                e for e in self._events
                if e.block_number is not None and from_block <= e.block_number <= to_block
            ]
