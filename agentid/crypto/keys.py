# agentid/crypto/keys.py
from typing import Iterable, Optional, Protocol

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from agentid.core.encoding import b64url_decode, b64url_encode
from agentid.core.types import DIDDocument, KeyPair, ServiceEndpoint
from agentid.did.document import create_did_document

PRIVATE_KEY_LENGTH = 32
PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


class Signer(Protocol):
    def sign(self, message: bytes, private_key: bytes) -> bytes:
        ...


class Verifier(Protocol):
    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        ...


class Ed25519:
    """PyNaCl-backed Ed25519 implementing both :class:`Signer` and :class:`Verifier`."""

    def generate(self) -> KeyPair:
        sk = SigningKey.generate()          # seeded from the OS CSPRNG
        return KeyPair(public_key=bytes(sk.verify_key), private_key=bytes(sk))

    def public_key(self, private_key: bytes) -> bytes:
        return bytes(SigningKey(bytes(private_key)).verify_key)

    def sign(self, message: bytes, private_key: bytes) -> bytes:
        return SigningKey(bytes(private_key)).sign(message).signature

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        # Malformed lengths are just "not valid", never a fault
        try:
            VerifyKey(bytes(public_key)).verify(message, bytes(signature))
        except (BadSignatureError, ValueError, TypeError):
            return False
        return True


ED25519 = Ed25519()


def generate_key_pair() -> KeyPair:
    return ED25519.generate()


def sign_message(message: bytes, private_key: bytes) -> bytes:
    return ED25519.sign(message, private_key)


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    return ED25519.verify(message, signature, public_key)


class AgentKeyPair:
    """
    An identity's key material. May be verify-only when constructed from a
    public key alone.
    """

    def __init__(self, public_key: bytes, private_key: Optional[bytes] = None):
        if len(public_key) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}")
        if private_key is not None and len(private_key) != PRIVATE_KEY_LENGTH:
            raise ValueError(f"private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(private_key)}")
        self.public_key = bytes(public_key)
        self._private_key = bytes(private_key) if private_key is not None else None

    @classmethod
    def generate(cls) -> "AgentKeyPair":
        kp = generate_key_pair()
        return cls(kp.public_key, kp.private_key)

    @classmethod
    def from_key_pair(cls, kp: KeyPair) -> "AgentKeyPair":
        return cls(kp.public_key, kp.private_key)

    @classmethod
    def from_private_b64url(cls, encoded: str) -> "AgentKeyPair":
        private_key = b64url_decode(encoded)
        if len(private_key) != PRIVATE_KEY_LENGTH:
            raise ValueError(f"private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(private_key)}")
        return cls(ED25519.public_key(private_key), private_key)

    @classmethod
    def from_public_b64url(cls, encoded: str) -> "AgentKeyPair":
        return cls(b64url_decode(encoded))

    @property
    def can_sign(self) -> bool:
        return self._private_key is not None

    @property
    def private_key(self) -> bytes:
        if self._private_key is None:
            raise ValueError("verify-only key pair has no private key")
        return self._private_key

    def key_pair(self) -> KeyPair:
        return KeyPair(public_key=self.public_key, private_key=self.private_key)

    def public_key_b64url(self) -> str:
        return b64url_encode(self.public_key)

    def private_key_b64url(self) -> str:
        return b64url_encode(self.private_key)

    def sign_bytes(self, message: bytes) -> bytes:
        return ED25519.sign(message, self.private_key)

    def verify_bytes(self, signature: bytes, message: bytes) -> bool:
        return ED25519.verify(message, signature, self.public_key)

    def did_document(
        self,
        domain: str,
        path: Optional[str] = None,
        controller: Optional[str] = None,
        service_endpoints: Optional[Iterable[ServiceEndpoint]] = None,
    ) -> DIDDocument:
        return create_did_document(domain, self.public_key_b64url(), path, controller, service_endpoints)

    def __repr__(self) -> str:
        return f"AgentKeyPair(public_key={self.public_key_b64url()!r}, can_sign={self.can_sign})"
