# basemailer/ledger/events.py
"""
BaseMailer Ledger: Records and MailSent Event Decoding

    event MailSent(
        uint256 indexed mailId,
        string  indexed recipientEmail,
        string  indexed senderEmail,
        bytes32 contentCID,
        uint256 timestamp
    )

Log layout:
    topics[0]  keccak256("MailSent(uint256,string,string,bytes32,uint256)")
    topics[1]  mailId
    topics[2]  keccak256(recipientEmail)   (indexed strings are hashed)
    topics[3]  keccak256(senderEmail)
    data       abi.encode(contentCID, timestamp)

The mail id is assigned by the contract and is only observable here; it is
never returned to the sender directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..errors import LedgerError


MAIL_SENT_SIGNATURE = "MailSent(uint256,string,string,bytes32,uint256)"
MAIL_SENT_TOPIC = "0x" + bytes(Web3.keccak(text=MAIL_SENT_SIGNATURE)).hex()

ZERO_ADDRESS = "0x" + "0" * 40


def _hex(value: Any) -> str:
    """0x-hex for bytes/HexBytes/str."""
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(value).hex()


def _bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class MailRecord:
    """
    Ledger-visible mail record.

    Attributes:
        mail_id: Contract-assigned id (None for inbox/sentbox rows, which omit it)
        commitment: bytes32 content commitment (0x-hex)
        sender: Sender email
        recipient: Recipient email
        timestamp: Block timestamp recorded by the contract
        verified: Proof verified on submission
    """
    mail_id: Optional[int]
    commitment: str
    sender: str
    recipient: str
    timestamp: int
    verified: bool = False

    @classmethod
    def from_contract_tuple(cls, data: Any, mail_id: Optional[int] = None) -> MailRecord:
        """Create from (contentCID, senderEmail, recipientEmail, timestamp, verified)."""
        return cls(
            mail_id=int(mail_id) if mail_id is not None else None,
            commitment=_hex(data[0]),
            sender=data[1],
            recipient=data[2],
            timestamp=int(data[3]),
            verified=bool(data[4]),
        )


@dataclass(frozen=True)
class MailSentEvent:
    """
    Decoded MailSent log.

    sender / recipient hold the plain emails when known, otherwise the
    keccak topic hashes of the indexed strings.
    """
    mail_id: Optional[int]
    commitment: Optional[str]
    sender: str
    recipient: str
    timestamp: int
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None
    log_index: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.mail_id is not None and bool(self.commitment)


@dataclass(frozen=True)
class SubmitReceipt:
    """Confirmed sendMail transaction."""
    mail_id: int
    tx_hash: str
    block_number: int


# =============================================================================
# Log Decoding
# =============================================================================

def is_mail_sent_log(log: Mapping[str, Any]) -> bool:
    topics = log.get("topics") or []
    return len(topics) > 0 and _hex(topics[0]) == MAIL_SENT_TOPIC


def decode_mail_sent_log(log: Mapping[str, Any]) -> MailSentEvent:
    """
    Decode a raw MailSent log.

    Raises:
        LedgerError: Not a MailSent log or malformed payload
    """
    if not is_mail_sent_log(log):
        raise LedgerError("Log is not a MailSent event")
    topics = log["topics"]
    if len(topics) != 4:
        raise LedgerError(f"MailSent log must have 4 topics, got {len(topics)}")
    try:
        commitment, timestamp = abi_decode(["bytes32", "uint256"], _bytes(log.get("data", b"")))
    except DecodingError as e:
        raise LedgerError(f"Malformed MailSent data: {e}") from e

    tx_hash = log.get("transactionHash")
    return MailSentEvent(
        mail_id=int.from_bytes(_bytes(topics[1]), "big"),
        commitment=_hex(commitment),
        recipient=_hex(topics[2]),
        sender=_hex(topics[3]),
        timestamp=int(timestamp),
        block_number=log.get("blockNumber"),
        tx_hash=_hex(tx_hash) if tx_hash is not None else None,
        log_index=log.get("logIndex"),
    )


def extract_mail_id(logs: Optional[Iterable[Mapping[str, Any]]]) -> Optional[int]:
    """
    Mail id from a receipt's logs.

    Scans for the MailSent topic; the first matching log wins.
    """
    if not logs:
        return None
    for log in logs:
        if is_mail_sent_log(log):
            return decode_mail_sent_log(log).mail_id
    return None
