# agentid/__init__.py
"""
agentid: verifiable agent identities.

did:web documents over Ed25519 keys, signed requests with replay defense,
and an atomic per-identity credit ledger.
"""

__version__ = "0.1.0.dev0"

from agentid.crypto import AgentKeyPair, generate_key_pair
from agentid.did import create_did_document, generate_did, get_well_known_url, resolve_did
from agentid.ledger import CreditLedger
from agentid.storage import create_storage
from agentid.verify import AgentVerifier, ReplayCache, sign_request, verify_request

__all__ = [
    "AgentKeyPair",
    "generate_key_pair",
    "generate_did",
    "create_did_document",
    "get_well_known_url",
    "resolve_did",
    "CreditLedger",
    "create_storage",
    "AgentVerifier",
    "ReplayCache",
    "sign_request",
    "verify_request",
]
