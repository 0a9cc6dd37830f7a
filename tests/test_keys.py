# tests/test_keys.py
import pytest

from agentid.crypto.hashing import signature_hash
from agentid.crypto.keys import (
    AgentKeyPair,
    Ed25519,
    generate_key_pair,
    sign_message,
    verify_signature,
)
from agentid.did.document import extract_public_key


@pytest.fixture
def keys() -> AgentKeyPair:
    return AgentKeyPair.generate()


def test_generate_key_pair_sizes():
    kp = generate_key_pair()
    assert len(kp.public_key) == 32
    assert len(kp.private_key) == 32
    assert "private_key" not in repr(kp)


def test_generated_keys_differ():
    assert generate_key_pair().private_key != generate_key_pair().private_key


def test_signature_is_deterministic(keys):
    msg = b"same message"
    sig1 = keys.sign_bytes(msg)
    sig2 = keys.sign_bytes(msg)
    assert len(sig1) == 64
    assert sig1 == sig2


def test_different_messages_or_keys_differ(keys):
    other = AgentKeyPair.generate()
    assert keys.sign_bytes(b"a") != keys.sign_bytes(b"b")
    assert keys.sign_bytes(b"a") != other.sign_bytes(b"a")


def test_verify_roundtrip(keys):
    sig = sign_message(b"payload", keys.private_key)
    assert verify_signature(b"payload", sig, keys.public_key)
    assert not verify_signature(b"payload!", sig, keys.public_key)


def test_verify_never_raises_on_malformed_input(keys):
    assert not Ed25519().verify(b"payload", b"short", keys.public_key)
    assert not Ed25519().verify(b"payload", bytes(64), b"bad key")


def test_private_b64url_import_derives_public(keys):
    restored = AgentKeyPair.from_private_b64url(keys.private_key_b64url())
    assert restored.public_key == keys.public_key
    assert restored.sign_bytes(b"x") == keys.sign_bytes(b"x")


def test_verify_only_pair(keys):
    verifier = AgentKeyPair.from_public_b64url(keys.public_key_b64url())
    assert not verifier.can_sign
    assert verifier.verify_bytes(keys.sign_bytes(b"msg"), b"msg")
    with pytest.raises(ValueError, match="verify-only"):
        verifier.sign_bytes(b"msg")


def test_rejects_wrong_key_length():
    with pytest.raises(ValueError, match="32 bytes"):
        AgentKeyPair(b"\x00" * 31)


def test_signature_hash_is_hex_sha256():
    digest = signature_hash("abc")
    assert len(digest) == 64
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_did_document_from_key_pair(keys):
    document = keys.did_document("example.com", "agents/claude")
    assert document.id == "did:web:example.com:agents:claude"
    assert extract_public_key(document) == keys.public_key
