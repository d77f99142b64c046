# basemailer/ledger/__init__.py
"""
BaseMailer Ledger Layer

Registry (email -> owner) and mailer (sendMail, MailSent) contracts.

Components:
    Ledger: Interface used by dispatch, ingestion and services
    Web3Ledger: JSON-RPC implementation
    MockLedger: In-memory implementation for tests
    decode_mail_sent_log / extract_mail_id: Raw log decoding

Usage:
    from basemailer.ledger import Web3Ledger

    ledger = Web3Ledger(config.ledger)
    for event in ledger.get_mail_events(100, ledger.block_number()):
        print(event.mail_id, event.commitment)
"""

from .events import (
    MAIL_SENT_SIGNATURE,
    MAIL_SENT_TOPIC,
    ZERO_ADDRESS,
    MailRecord,
    MailSentEvent,
    SubmitReceipt,
    decode_mail_sent_log,
    extract_mail_id,
    is_mail_sent_log,
)

from .mailer import (
    Ledger,
    Web3Ledger,
    MockLedger,
)

__all__ = [
    # Events
    "MAIL_SENT_SIGNATURE",
    "MAIL_SENT_TOPIC",
    "ZERO_ADDRESS",
    "MailRecord",
    "MailSentEvent",
    "SubmitReceipt",
    "decode_mail_sent_log",
    "extract_mail_id",
    "is_mail_sent_log",
    # Ledgers
    "Ledger",
    "Web3Ledger",
    "MockLedger",
]
