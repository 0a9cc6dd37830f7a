# agentid/did/generate.py
import re
from typing import Optional
from urllib.parse import unquote

from agentid.core.errors import MethodNotSupported

DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[a-zA-Z0-9._:%-]+$")
DID_WEB_PREFIX = "did:web:"

_SCHEME = re.compile(r"^https?://")


def is_valid_did(did: str) -> bool:
    return bool(DID_PATTERN.match(did))


def generate_did(domain: str, path: Optional[str] = None) -> str:
    """
    did:web identifier for a domain and optional slash-delimited path.

        generate_did("example.com")                    -> "did:web:example.com"
        generate_did("example.com", "agents//claude/") -> "did:web:example.com:agents:claude"
    """
    did = DID_WEB_PREFIX + _SCHEME.sub("", domain)
    if path:
        segments = [s for s in path.split("/") if s]
        if segments:
            did += ":" + ":".join(segments)
    return did


def get_well_known_url(did: str) -> str:
    """
    did:web:example.com              -> https://example.com/.well-known/did.json
    did:web:example.com:agents:claude -> https://example.com/agents/claude/did.json
    """
    if not did.startswith(DID_WEB_PREFIX):
        raise MethodNotSupported("Only did:web method is supported")

    domain, *path_parts = did[len(DID_WEB_PREFIX):].split(":")
    # A port is percent-encoded in the domain segment (example.com%3A8443)
    domain = unquote(domain)

    if not path_parts:
        return f"https://{domain}/.well-known/did.json"
    return f"https://{domain}/{'/'.join(path_parts)}/did.json"
