# basemailer/zkproof/__init__.py
"""
BaseMailer ZK Proof: email-ownership proofs

Modules:
    proof   - Proof ABI encoding, ProofInputs and public-signal order
    prover  - ProofBackend, SnarkjsProver, MockProver
"""

from .proof import (
    Proof,
    ProofInputs,
    ProofResult,
    PROOF_ABI_TYPES,
    PUBLIC_SIGNAL_ORDER,
    email_hash,
)

from .prover import (
    ProofBackend,
    SnarkjsProver,
    MockProver,
)

__all__ = [
    "Proof",
    "ProofInputs",
    "ProofResult",
    "PROOF_ABI_TYPES",
    "PUBLIC_SIGNAL_ORDER",
    "email_hash",
    "ProofBackend",
    "SnarkjsProver",
    "MockProver",
]
