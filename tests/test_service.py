"""RelayService: proven submission relay and event-fed index."""

import time

import pytest

from basemailer.commitment import CommitmentMapper, JsonFileCommitmentMapper, compute_commitment
from basemailer.crypto import MessageContent
from basemailer.errors import LedgerError, ProofEncodingError, ProofInvalid
from basemailer.service import RelayService
from basemailer.zkproof import ProofInputs

from conftest import ALICE, BOB, CAROL


HANDLE = "bafy-relayed"


@pytest.fixture
def service(ledger, storage, prover):
    return RelayService(ledger, storage, verifier=prover, poll_interval=0.01)


def _proof(prover, ledger, handle=HANDLE, sender=ALICE):
    inputs = ProofInputs(ledger.resolve_owner(sender), compute_commitment(handle), sender)
    return prover.prove(inputs).encoded


def _stored(storage, engine, bob_keys):
    envelope = engine.encrypt(MessageContent(ALICE, BOB, "hi", "hello"), bob_keys[1])
    return storage.put_envelope(envelope)


def test_relay_submission(service, ledger, storage, prover, engine, bob_keys):
    handle = _stored(storage, engine, bob_keys)
    result = service.relay_submission(_proof(prover, ledger, handle), handle, ALICE, BOB)

    assert result.commitment == compute_commitment(handle)
    assert ledger.get_mail(result.mail_id).commitment == result.commitment
    assert handle in storage.pinned
    assert service.mapper.resolve(result.commitment) == handle
    assert service.mail(result.mail_id).handle == handle
    assert [m.mail_id for m in service.inbox(BOB)] == [result.mail_id]
    assert [m.mail_id for m in service.sentbox(ALICE)] == [result.mail_id]


def test_relay_accepts_hex_proof(service, ledger, storage, prover, engine, bob_keys):
    handle = _stored(storage, engine, bob_keys)
    proof_hex = "0x" + _proof(prover, ledger, handle).hex()
    assert service.relay_submission(proof_hex, handle, ALICE, BOB).mail_id == 1


def test_unregistered_sender_rejected(service, ledger, prover):
    with pytest.raises(LedgerError, match="not registered"):
        service.relay_submission(b"\x00" * 256, HANDLE, CAROL, BOB)
    assert ledger.block_number() == 0


def test_invalid_proof_rejected_before_submission(service, ledger, storage, prover, engine, bob_keys):
    handle = _stored(storage, engine, bob_keys)
    wrong = _proof(prover, ledger, "some-other-handle")
    with pytest.raises(ProofInvalid):
        service.relay_submission(wrong, handle, ALICE, BOB)
    assert ledger.block_number() == 0
    assert handle not in storage.pinned


def test_malformed_proof_rejected(service):
    with pytest.raises(ProofEncodingError):
        service.relay_submission(b"\x01\x02", HANDLE, ALICE, BOB)


def test_missing_fields_rejected(service):
    with pytest.raises(ValueError):
        service.relay_submission(b"", HANDLE, ALICE, BOB)


def test_without_verifier_ledger_decides(ledger, storage, prover, engine, bob_keys):
    service = RelayService(ledger, storage)
    handle = _stored(storage, engine, bob_keys)
    with pytest.raises(LedgerError, match="invalid proof"):
        service.relay_submission(_proof(prover, ledger, "other"), handle, ALICE, BOB)


def test_start_indexes_history_and_follows(ledger, storage, prover, dispatcher):
    first = dispatcher.dispatch(MessageContent(ALICE, BOB, "one", "1"))
    mapper = CommitmentMapper()
    mapper.remember(first.commitment, first.handle)
    service = RelayService(ledger, storage, verifier=prover, mapper=mapper,
                           event_start_block=1, poll_interval=0.01)

    service.start()
    try:
        assert service.running
        assert service.mail(first.mail_id).handle == first.handle

        second = dispatcher.dispatch(MessageContent(ALICE, BOB, "two", "2"))
        deadline = time.time() + 5
        while service.mail(second.mail_id) is None and time.time() < deadline:
            time.sleep(0.01)
        indexed = service.mail(second.mail_id)
        assert indexed is not None
        # this service never saw the handle
        assert indexed.handle is None
    finally:
        service.stop()
    assert not service.running


def test_start_is_idempotent(service):
    first = service.start()
    try:
        assert service.start() is first
    finally:
        service.stop()


def test_injected_empty_file_mapper_persists_relayed_handles(ledger, storage, prover, engine, bob_keys, tmp_path):
    path = tmp_path / "commitments.json"
    mapper = JsonFileCommitmentMapper(path)
    service = RelayService(ledger, storage, verifier=prover, mapper=mapper)
    assert service.mapper is mapper
    assert service.ingestor.mapper is mapper

    handle = _stored(storage, engine, bob_keys)
    result = service.relay_submission(_proof(prover, ledger, handle), handle, ALICE, BOB)

    assert JsonFileCommitmentMapper(path).resolve(result.commitment) == handle
