# agentid/crypto/__init__.py
"""
Ed25519 signing capability and key handling.

Curve math is delegated to PyNaCl; everything above this package talks to the
narrow :class:`Signer` / :class:`Verifier` protocols.
"""

from .keys import (
    AgentKeyPair,
    Ed25519,
    Signer,
    Verifier,
    generate_key_pair,
    sign_message,
    verify_signature,
)
from .hashing import signature_hash

__all__ = [
    "AgentKeyPair",
    "Ed25519",
    "Signer",
    "Verifier",
    "generate_key_pair",
    "sign_message",
    "verify_signature",
    "signature_hash",
]
