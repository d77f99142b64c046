"""Hybrid encryption: round trip, tamper detection, freshness, versioning."""

import dataclasses

import pytest

from basemailer.crypto import HybridEncryptionEngine, MessageContent, generate_keypair, public_key_from_private
from basemailer.crypto.envelope import Envelope
from basemailer.errors import IntegrityError, UnsupportedVersionError


def _flip(data: bytes, index: int = 0) -> bytes:
    buf = bytearray(data)
    buf[index] ^= 0x01
    return bytes(buf)


def _content(**overrides):
    fields = dict(sender="a@x", recipient="b@x", subject="hi", body="hello")
    fields.update(overrides)
    return MessageContent(**fields)


@pytest.fixture
def keys():
    return generate_keypair()


@pytest.fixture
def envelope(engine, keys):
    return engine.encrypt(_content(), keys[1], timestamp=1700000000000)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def test_keypair_shapes(keys):
    priv, pub = keys
    assert priv.startswith("0x") and len(priv) == 2 + 64
    assert pub.startswith("0x") and len(pub) == 2 + 66
    assert pub[2:4] in ("02", "03")
    assert public_key_from_private(priv) == pub


def test_private_key_must_be_32_bytes(engine, envelope):
    with pytest.raises(ValueError):
        engine.decrypt(envelope, "0x" + "11" * 31)


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

def test_concrete_scenario(engine, keys):
    priv, pub = keys
    envelope = engine.encrypt(_content(), pub)
    opened = engine.decrypt(envelope, priv)
    assert (opened.sender, opened.recipient, opened.subject, opened.body) == ("a@x", "b@x", "hi", "hello")
    assert opened.timestamp == envelope.metadata.timestamp


def test_round_trip_through_wire_bytes(engine, keys, envelope):
    restored = Envelope.from_bytes(envelope.to_bytes())
    assert engine.decrypt(restored, keys[0]) == _content(timestamp=1700000000000)


@pytest.mark.parametrize("body", ["", "x" * 100000, "多言語 ✉ ünïcödé"])
def test_round_trip_bodies(engine, keys, body):
    envelope = engine.encrypt(_content(body=body), keys[1])
    assert engine.decrypt(envelope, keys[0]).body == body


def test_round_trip_bytes_public_key(engine, keys):
    envelope = engine.encrypt(_content(), bytes.fromhex(keys[1][2:]))
    assert engine.decrypt(envelope, bytes.fromhex(keys[0][2:])).body == "hello"


def test_envelope_field_sizes(envelope):
    assert len(envelope.encrypted_content.nonce) == 12
    assert len(envelope.encrypted_content.tag) == 16
    assert len(envelope.encrypted_key.ephemeral_public_key) == 33
    assert len(envelope.encrypted_key.ciphertext) == 32
    assert len(envelope.encrypted_key.mac) == 32
    assert envelope.metadata.size == len(envelope.encrypted_content.ciphertext) + 32
    assert envelope.metadata.timestamp == 1700000000000


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------

def test_same_content_encrypts_differently(engine, keys):
    first = engine.encrypt(_content(), keys[1], timestamp=1)
    second = engine.encrypt(_content(), keys[1], timestamp=1)
    assert first.encrypted_content.nonce != second.encrypted_content.nonce
    assert first.encrypted_key.ephemeral_public_key != second.encrypted_key.ephemeral_public_key
    assert first.encrypted_content.ciphertext != second.encrypted_content.ciphertext


def test_wrapping_same_key_twice_differs(engine, keys):
    symmetric_key = bytes(range(32))
    first = engine.wrap_key(symmetric_key, keys[1])
    second = engine.wrap_key(symmetric_key, keys[1])
    assert first.ciphertext != second.ciphertext
    assert engine.unwrap_key(first, keys[0]) == symmetric_key
    assert engine.unwrap_key(second, keys[0]) == symmetric_key


# ---------------------------------------------------------------------------
# Tamper detection
# ---------------------------------------------------------------------------

def _tamper_content(envelope, **changes):
    return dataclasses.replace(envelope, encrypted_content=dataclasses.replace(envelope.encrypted_content, **changes))


def _tamper_key(envelope, **changes):
    return dataclasses.replace(envelope, encrypted_key=dataclasses.replace(envelope.encrypted_key, **changes))


def test_tampered_ciphertext(engine, keys, envelope):
    bad = _tamper_content(envelope, ciphertext=_flip(envelope.encrypted_content.ciphertext))
    with pytest.raises(IntegrityError):
        engine.decrypt(bad, keys[0])


def test_tampered_nonce(engine, keys, envelope):
    bad = _tamper_content(envelope, nonce=_flip(envelope.encrypted_content.nonce))
    with pytest.raises(IntegrityError):
        engine.decrypt(bad, keys[0])


def test_tampered_tag(engine, keys, envelope):
    bad = _tamper_content(envelope, tag=_flip(envelope.encrypted_content.tag, 15))
    with pytest.raises(IntegrityError):
        engine.decrypt(bad, keys[0])


def test_tampered_wrapped_key(engine, keys, envelope):
    bad = _tamper_key(envelope, ciphertext=_flip(envelope.encrypted_key.ciphertext, 5))
    with pytest.raises(IntegrityError, match="MAC"):
        engine.decrypt(bad, keys[0])


def test_tampered_mac(engine, keys, envelope):
    bad = _tamper_key(envelope, mac=_flip(envelope.encrypted_key.mac, 31))
    with pytest.raises(IntegrityError, match="MAC"):
        engine.decrypt(bad, keys[0])


def test_invalid_ephemeral_point(engine, keys, envelope):
    bad = _tamper_key(envelope, ephemeral_public_key=b"\x05" + b"\x00" * 32)
    with pytest.raises(IntegrityError):
        engine.decrypt(bad, keys[0])


def test_wrong_private_key(engine, envelope):
    other_priv, _ = generate_keypair()
    with pytest.raises(IntegrityError):
        engine.decrypt(envelope, other_priv)


# ---------------------------------------------------------------------------
# Versioning
# ---------------------------------------------------------------------------

def test_unknown_envelope_version(engine, keys, envelope):
    with pytest.raises(UnsupportedVersionError):
        engine.decrypt(dataclasses.replace(envelope, version="2.0"), keys[0])


def test_unknown_content_algorithm(engine, keys, envelope):
    with pytest.raises(UnsupportedVersionError):
        engine.decrypt(_tamper_content(envelope, algorithm="ChaCha20-Poly1305"), keys[0])


def test_unknown_key_algorithm(engine, keys, envelope):
    with pytest.raises(UnsupportedVersionError):
        engine.decrypt(_tamper_key(envelope, algorithm="ECIES-P256"), keys[0])


def test_engine_rejects_unknown_version():
    with pytest.raises(UnsupportedVersionError):
        HybridEncryptionEngine(version="0.9")
