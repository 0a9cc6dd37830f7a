# agentid/did/__init__.py
"""
did:web identifiers: generation, documents, and resolution.
"""

from .document import create_did_document, extract_public_key
from .generate import generate_did, get_well_known_url, is_valid_did
from .resolve import aresolve_did, resolve_did

__all__ = [
    "generate_did",
    "get_well_known_url",
    "is_valid_did",
    "create_did_document",
    "extract_public_key",
    "resolve_did",
    "aresolve_did",
]
