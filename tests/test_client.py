"""MailerClient: registration, send, listing and retrieval."""

import pytest

from basemailer.backend import BackendMail
from basemailer.client import MailerClient
from basemailer.commitment import CommitmentMapper, JsonFileCommitmentMapper
from basemailer.config import ClientConfig, LedgerConfig
from basemailer.crypto import AttachmentMeta, MessageContent
from basemailer.errors import BackendError, ConfigError, HandleNotFound, IntegrityError

from conftest import ALICE, BOB


class StubBackend:
    def __init__(self, mail=None, error=None):
        self.mail = mail
        self.error = error

    def get_mail(self, mail_id):
        if self.error is not None:
            raise self.error
        return self.mail


@pytest.fixture
def client(ledger, storage, prover, resolver, mapper):
    return MailerClient(ledger, storage, prover, recipient_resolver=resolver, mapper=mapper)


def _reader(client, mapper=None, backend=None):
    """Second client sharing chain and storage but not the sender's commitment map."""
    return MailerClient(
        client.ledger, client.storage, client.prover,
        mapper=mapper if mapper is not None else CommitmentMapper(), backend=backend,
    )


def test_registry_passthrough(client, ledger):
    ledger.set_account("0x" + "c3" * 20)
    assert client.register_email("carol") == "carol@basemailer.com"
    assert client.is_email_registered("carol@basemailer.com")
    assert client.resolve_owner("carol@basemailer.com") == ledger.resolve_owner("carol@basemailer.com")
    assert client.resolve_owner("nobody@basemailer.com") is None


def test_send_and_retrieve(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    content = client.retrieve_mail(result.mail_id, bob_keys[0])
    assert (content.sender, content.recipient, content.subject, content.body) == (ALICE, BOB, "hi", "hello")


def test_attachments_are_encrypted_with_content(client, bob_keys):
    attachment = AttachmentMeta("report.pdf", "application/pdf", 2048, handle="bafy-att")
    result = client.send_mail(ALICE, BOB, "files", "attached", attachments=[attachment])
    assert client.retrieve_mail(result.mail_id, bob_keys[0]).attachments == (attachment,)


def test_inbox_and_sentbox(client):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    assert [m.commitment for m in client.get_inbox(BOB)] == [result.commitment]
    assert [m.commitment for m in client.get_sentbox(ALICE)] == [result.commitment]
    assert client.get_inbox(ALICE) == []
    assert client.get_mail(result.mail_id).recipient == BOB


def test_wrong_key_fails_closed(client, alice_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    with pytest.raises(IntegrityError):
        client.retrieve_mail(result.mail_id, alice_keys[0])


def test_unknown_commitment_raises_handle_not_found(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    with pytest.raises(HandleNotFound) as exc:
        _reader(client).retrieve_mail(result.mail_id, bob_keys[0])
    assert exc.value.commitment == result.commitment
    assert exc.value.mail_id == result.mail_id


def test_backend_supplies_handle(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    mapper = CommitmentMapper()
    backend = StubBackend(BackendMail(record={}, handle=result.handle))

    assert _reader(client, mapper, backend).retrieve_mail(result.mail_id, bob_keys[0]).body == "hello"
    assert mapper.resolve(result.commitment) == result.handle


def test_backend_handle_for_other_commitment_ignored(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    backend = StubBackend(BackendMail(record={}, handle="bafy-unrelated"))
    with pytest.raises(HandleNotFound):
        _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0])


def test_backend_supplies_envelope(client, storage, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    envelope = storage.get_envelope(result.handle)
    backend = StubBackend(BackendMail(record={}, envelope=envelope))
    assert _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0]).body == "hello"


def test_backend_envelope_logged_as_unanchored(client, storage, bob_keys, caplog):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    backend = StubBackend(BackendMail(record={}, envelope=storage.get_envelope(result.handle)))
    _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0])
    assert "not anchored" in caplog.text


def test_matching_handle_preferred_over_backend_envelope(client, engine, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    forged = engine.encrypt(MessageContent(ALICE, BOB, "hi", "forged"), bob_keys[1])
    backend = StubBackend(BackendMail(record={}, handle=result.handle, envelope=forged))
    assert _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0]).body == "hello"


def test_injected_empty_file_mapper_is_used(ledger, storage, prover, resolver, tmp_path, bob_keys):
    path = tmp_path / "commitments.json"
    mapper = JsonFileCommitmentMapper(path)
    client = MailerClient(ledger, storage, prover, recipient_resolver=resolver, mapper=mapper)
    assert client.mapper is mapper

    result = client.send_mail(ALICE, BOB, "hi", "hello")

    assert path.exists()
    assert JsonFileCommitmentMapper(path).resolve(result.commitment) == result.handle
    reader = MailerClient(ledger, storage, prover, mapper=JsonFileCommitmentMapper(path))
    assert reader.retrieve_mail(result.mail_id, bob_keys[0]).body == "hello"


def test_backend_404_is_handle_not_found(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    backend = StubBackend(error=BackendError("Mail not found", status=404))
    with pytest.raises(HandleNotFound):
        _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0])


def test_backend_outage_propagates(client, bob_keys):
    result = client.send_mail(ALICE, BOB, "hi", "hello")
    backend = StubBackend(error=BackendError("bad gateway", status=502))
    with pytest.raises(BackendError):
        _reader(client, backend=backend).retrieve_mail(result.mail_id, bob_keys[0])


def test_send_requires_resolver(client):
    with pytest.raises(ConfigError):
        _reader(client).send_mail(ALICE, BOB, "hi", "hello")


def test_from_config_requires_proof_config():
    config = ClientConfig(ledger=LedgerConfig(
        rpc_url="http://localhost:8545",
        registry_address="0x" + "11" * 20,
        mailer_address="0x" + "22" * 20,
    ))
    with pytest.raises(ConfigError):
        MailerClient.from_config(config)
