# basemailer/errors.py
"""
BaseMailer: Error Taxonomy

All errors raised by the envelope protocol derive from MailerError.

Hierarchy:
    MailerError
     ├─ ConfigError
     ├─ DerivationError
     ├─ EnvelopeError
     │   ├─ IntegrityError
     │   ├─ UnsupportedVersionError
     │   └─ EnvelopeFormatError
     ├─ HandleNotFound
     ├─ ProofError
     │   ├─ ProofInvalid
     │   └─ ProofEncodingError
     ├─ StorageError
     ├─ LedgerError
     ├─ BackendError
     └─ DispatchStepFailure
         └─ RecipientUnregistered
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .dispatch import DispatchStep


class MailerError(Exception):
    """Base BaseMailer error."""
    pass


class ConfigError(MailerError, ValueError):
    """Invalid or incomplete configuration."""
    pass


class DerivationError(MailerError):
    """Key derivation request exceeds the HKDF expansion bound."""
    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Cannot derive {length} bytes (limit: {limit})")


# =============================================================================
# Envelope Errors
# =============================================================================

class EnvelopeError(MailerError):
    """Base envelope error."""
    pass


class IntegrityError(EnvelopeError):
    """MAC or authentication tag mismatch. Never carries plaintext."""
    pass


class UnsupportedVersionError(EnvelopeError):
    """Unknown envelope version or algorithm tag."""
    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Unsupported {field}: {value!r}")


class EnvelopeFormatError(EnvelopeError, ValueError):
    """Envelope JSON is malformed (missing field, bad hex, bad length)."""
    pass


# =============================================================================
# Storage / Commitment Errors
# =============================================================================

class HandleNotFound(MailerError):
    """Commitment cannot be resolved to a storage handle."""
    def __init__(self, commitment: str, mail_id: Optional[int] = None):
        self.commitment = commitment
        self.mail_id = mail_id
        where = f" (mail {mail_id})" if mail_id is not None else ""
        super().__init__(f"No handle known for commitment {commitment}{where}")


class StorageError(MailerError):
    """Content-addressed storage operation failed."""
    pass


# =============================================================================
# Proof Errors
# =============================================================================

class ProofError(MailerError):
    """Base proof error."""
    pass


class ProofInvalid(ProofError):
    """Verifier rejected the proof."""
    pass


class ProofEncodingError(ProofError, ValueError):
    """Encoded proof does not match the (uint256[2], uint256[2][2], uint256[2]) shape."""
    pass


# =============================================================================
# Ledger / Backend Errors
# =============================================================================

class LedgerError(MailerError):
    """Ledger call or transaction failed."""
    pass


class BackendError(MailerError):
    """Backend index request failed."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


# =============================================================================
# Dispatch Errors
# =============================================================================

class DispatchStepFailure(MailerError):
    """A dispatch step failed; `step` names which one."""
    def __init__(self, step: "DispatchStep", cause: Optional[BaseException] = None, message: str = ""):
        self.step = step
        self.cause = cause
        detail = message or (f"{type(cause).__name__}: {cause}" if cause else "failed")
        super().__init__(f"Dispatch failed at step {step.name}: {detail}")


class RecipientUnregistered(DispatchStepFailure):
    """Recipient has no on-chain owner."""
    def __init__(self, recipient: str):
        from .dispatch import DispatchStep
        self.recipient = recipient
        super().__init__(DispatchStep.RESOLVE, message=f"recipient {recipient} is not registered")
