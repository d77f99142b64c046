"""
Shared fixtures: keypairs, in-memory ledger/storage/prover and a wired
dispatcher. Nothing here touches a network.
"""

import pytest

from basemailer.commitment import CommitmentMapper
from basemailer.crypto import HybridEncryptionEngine, generate_keypair
from basemailer.dispatch import MailDispatcher, StaticRecipientResolver
from basemailer.index import InMemoryMailIndex
from basemailer.ingestion import MailIngestor
from basemailer.ledger import MockLedger
from basemailer.storage import MemoryStorage
from basemailer.zkproof import MockProver


ALICE = "alice@basemailer.com"
BOB = "bob@basemailer.com"
CAROL = "carol@basemailer.com"

ALICE_ADDRESS = "0x" + "a1" * 20
BOB_ADDRESS = "0x" + "b2" * 20


@pytest.fixture
def alice_keys():
    return generate_keypair()


@pytest.fixture
def bob_keys():
    return generate_keypair()


@pytest.fixture
def engine():
    return HybridEncryptionEngine()


@pytest.fixture
def prover():
    return MockProver()


@pytest.fixture
def ledger(prover):
    ledger = MockLedger(verifier=prover)
    ledger.set_account(ALICE_ADDRESS)
    ledger.register_email("alice")
    ledger.set_account(BOB_ADDRESS)
    ledger.register_email("bob")
    return ledger


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def mapper():
    return CommitmentMapper()


@pytest.fixture
def index():
    return InMemoryMailIndex()


@pytest.fixture
def resolver(alice_keys, bob_keys):
    return StaticRecipientResolver({ALICE: alice_keys[1], BOB: bob_keys[1]})


@pytest.fixture
def dispatcher(ledger, engine, storage, mapper, prover, resolver, index):
    return MailDispatcher(
        ledger=ledger,
        engine=engine,
        storage=storage,
        mapper=mapper,
        prover=prover,
        recipient_resolver=resolver,
        index=index,
    )


@pytest.fixture
def ingestor(ledger, mapper, index):
    return MailIngestor(ledger, mapper, index)
