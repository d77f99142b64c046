# basemailer/zkproof/proof.py
"""
BaseMailer ZK Proof: Encoding and Public Signals

Groth16 proofs travel to the mailer contract ABI-encoded as

    (uint256[2] a, uint256[2][2] b, uint256[2] c)

and are checked against three public signals in a circuit-defined order:

    [0] senderAddress      owner of the sender's email on the registry
    [1] contentCommitment  keccak256(handle)
    [2] senderEmailHash    keccak256(utf8(sender email))

The verifier checks signals by position, so this order must never change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..errors import ProofEncodingError


PROOF_ABI_TYPES = ["uint256[2]", "uint256[2][2]", "uint256[2]"]
PROOF_ENCODED_SIZE = 8 * 32

UINT256_MAX = 2**256 - 1

PUBLIC_SIGNAL_ORDER = ("senderAddress", "contentCommitment", "senderEmailHash")


def _hex_to_int(value: str) -> int:
    return int(value[2:] if value.startswith(("0x", "0X")) else value, 16)


def email_hash(email: str) -> str:
    """keccak256 of a UTF-8 email, 0x-hex."""
    return "0x" + bytes(Web3.keccak(text=email)).hex()


# =============================================================================
# Proof Inputs
# =============================================================================

@dataclass(frozen=True)
class ProofInputs:
    """
    Ownership-proof inputs bound to the sender and the content commitment.

    Attributes:
        sender_address: Registry owner of sender_email (0x address)
        commitment: Content commitment (0x bytes32)
        sender_email: Sender email identifier
    """
    sender_address: str
    commitment: str
    sender_email: str

    @property
    def sender_email_hash(self) -> str:
        return email_hash(self.sender_email)

    def public_signals(self) -> List[str]:
        """Decimal public signals in PUBLIC_SIGNAL_ORDER."""
        return [
            str(_hex_to_int(self.sender_address)),
            str(_hex_to_int(self.commitment)),
            str(_hex_to_int(self.sender_email_hash)),
        ]

    def circuit_inputs(self) -> Dict[str, str]:
        """Named circuit input dict, keys in PUBLIC_SIGNAL_ORDER."""
        return dict(zip(PUBLIC_SIGNAL_ORDER, self.public_signals()))


# =============================================================================
# Proof
# =============================================================================

@dataclass(frozen=True)
class Proof:
    """Groth16 proof as three group elements of uint256 coordinates."""
    a: Tuple[int, int]
    b: Tuple[Tuple[int, int], Tuple[int, int]]
    c: Tuple[int, int]

    def __post_init__(self):
        try:
            a = tuple(int(x) for x in self.a)
            b = tuple(tuple(int(x) for x in row) for row in self.b)
            c = tuple(int(x) for x in self.c)
        except (TypeError, ValueError) as e:
            raise ProofEncodingError(f"Proof elements must be integers: {e}") from e
        if len(a) != 2 or len(c) != 2 or len(b) != 2 or any(len(row) != 2 for row in b):
            raise ProofEncodingError("Proof must have shape a[2], b[2][2], c[2]")
        for value in (*a, *b[0], *b[1], *c):
            if not 0 <= value <= UINT256_MAX:
                raise ProofEncodingError("Proof coordinates must be uint256")
        object.__setattr__(self, "a", a)
        object.__setattr__(self, "b", b)
        object.__setattr__(self, "c", c)

    def encode(self) -> bytes:
        """ABI-encode as (uint256[2], uint256[2][2], uint256[2])."""
        return abi_encode(PROOF_ABI_TYPES, [list(self.a), [list(r) for r in self.b], list(self.c)])

    @classmethod
    def decode(cls, data: bytes) -> Proof:
        """
        Decode an ABI-encoded proof.

        Raises:
            ProofEncodingError: Input is not exactly one encoded proof tuple
        """
        if isinstance(data, str):
            try:
                data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
            except ValueError as e:
                raise ProofEncodingError(f"Proof hex is malformed: {e}") from e
        if len(data) != PROOF_ENCODED_SIZE:
            raise ProofEncodingError(f"Encoded proof must be {PROOF_ENCODED_SIZE} bytes, got {len(data)}")
        try:
            a, b, c = abi_decode(PROOF_ABI_TYPES, data)
        except DecodingError as e:
            raise ProofEncodingError(f"Proof decoding failed: {e}") from e
        return cls(a=a, b=b, c=c)

    @classmethod
    def from_snarkjs(cls, proof: Dict[str, Any]) -> Proof:
        """Build from snarkjs JSON (projective pi_a / pi_b / pi_c)."""
        try:
            return cls(
                a=(proof["pi_a"][0], proof["pi_a"][1]),
                b=(
                    (proof["pi_b"][0][0], proof["pi_b"][0][1]),
                    (proof["pi_b"][1][0], proof["pi_b"][1][1]),
                ),
                c=(proof["pi_c"][0], proof["pi_c"][1]),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise ProofEncodingError(f"Malformed snarkjs proof: {e}") from e

    def to_snarkjs(self) -> Dict[str, Any]:
        """snarkjs JSON with the affine coordinates lifted back to projective form."""
        return {
            "pi_a": [str(self.a[0]), str(self.a[1]), "1"],
            "pi_b": [
                [str(self.b[0][0]), str(self.b[0][1])],
                [str(self.b[1][0]), str(self.b[1][1])],
                ["1", "0"],
            ],
            "pi_c": [str(self.c[0]), str(self.c[1]), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }


@dataclass(frozen=True)
class ProofResult:
    """Prover output."""
    proof: Proof
    public_signals: Sequence[str]

    @property
    def encoded(self) -> bytes:
        return self.proof.encode()
