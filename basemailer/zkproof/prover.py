# basemailer/zkproof/prover.py
"""
BaseMailer ZK Proof: Prover Backends

The proving system is external; this module only drives it.

    ProofBackend.prove(inputs) -> ProofResult
    ProofBackend.verify(proof, public_signals) -> bool

SnarkjsProver shells out to the snarkjs CLI:

    snarkjs groth16 fullprove input.json circuit.wasm circuit.zkey proof.json public.json
    snarkjs groth16 verify verification_key.json public.json proof.json
"""

from __future__ import annotations

import hashlib
import json
import logging
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import ProofConfig
from ..errors import ProofError
from .proof import Proof, ProofInputs, ProofResult


class ProofBackend(ABC):
    """Abstract Groth16 prover/verifier."""

    @abstractmethod
    def prove(self, inputs: ProofInputs) -> ProofResult:
        pass

    @abstractmethod
    def verify(self, proof: Proof, public_signals: Sequence[str]) -> bool:
        pass


# =============================================================================
# SnarkjsProver
# =============================================================================

class SnarkjsProver(ProofBackend):
    """Groth16 via the snarkjs command line tool."""

    def __init__(self, config: ProofConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self._log = logger or logging.getLogger(__name__)

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.config.snarkjs_bin, *args]
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProofError(f"snarkjs invocation failed: {e}") from e

    def prove(self, inputs: ProofInputs) -> ProofResult:
        if not self.config.circuit_path or not self.config.proving_key_path:
            raise ProofError("Proving requires circuit_path and proving_key_path")
        with tempfile.TemporaryDirectory(prefix="basemailer-proof-") as tmp:
            work = Path(tmp)
            input_path = work / "input.json"
            proof_path = work / "proof.json"
            public_path = work / "public.json"
            input_path.write_text(json.dumps(inputs.circuit_inputs()), encoding="utf-8")

            result = self._run([
                "groth16", "fullprove",
                str(input_path),
                self.config.circuit_path,
                self.config.proving_key_path,
                str(proof_path),
                str(public_path),
            ])
            if result.returncode != 0:
                raise ProofError(f"snarkjs fullprove failed: {result.stderr.strip() or result.stdout.strip()}")

            proof = Proof.from_snarkjs(json.loads(proof_path.read_text(encoding="utf-8")))
            public_signals = [str(s) for s in json.loads(public_path.read_text(encoding="utf-8"))]

        self._log.info("Generated proof (%d public signals)", len(public_signals))
        return ProofResult(proof=proof, public_signals=public_signals)

    def verify(self, proof: Proof, public_signals: Sequence[str]) -> bool:
        if not self.config.verification_key_path:
            raise ProofError("Verification key path not provided")

        with tempfile.TemporaryDirectory(prefix="basemailer-verify-") as tmp:
            work = Path(tmp)
            proof_path = work / "proof.json"
            public_path = work / "public.json"
            proof_path.write_text(json.dumps(proof.to_snarkjs()), encoding="utf-8")
            public_path.write_text(json.dumps([str(s) for s in public_signals]), encoding="utf-8")

            result = self._run([
                "groth16", "verify",
                self.config.verification_key_path,
                str(public_path),
                str(proof_path),
            ])

        ok = result.returncode == 0 and "OK" in result.stdout
        self._log.debug("snarkjs verify -> %s", ok)
        return ok


# =============================================================================
# MockProver (for testing without snarkjs)
# =============================================================================

class MockProver(ProofBackend):
    """
    Deterministic stand-in prover.

    The "proof" is a hash expansion of the public signals, so verify()
    accepts exactly the signals the proof was made for.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.calls: List[ProofInputs] = []

    @staticmethod
    def _coordinates(public_signals: Sequence[str]) -> List[int]:
        seed = json.dumps([str(s) for s in public_signals]).encode()
        return [
            int.from_bytes(hashlib.sha256(seed + bytes([i])).digest(), "big")
            for i in range(8)
        ]

    def prove(self, inputs: ProofInputs) -> ProofResult:
        with self._lock:
            self.calls.append(inputs)
        signals = inputs.public_signals()
        x = self._coordinates(signals)
        proof = Proof(a=(x[0], x[1]), b=((x[2], x[3]), (x[4], x[5])), c=(x[6], x[7]))
        return ProofResult(proof=proof, public_signals=signals)

    def verify(self, proof: Proof, public_signals: Sequence[str]) -> bool:
        x = self._coordinates(public_signals)
        return proof == Proof(a=(x[0], x[1]), b=((x[2], x[3]), (x[4], x[5])), c=(x[6], x[7]))
