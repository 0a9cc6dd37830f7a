# agentid/core/types.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from agentid.core.canon import canonical_json_str
from agentid.core.errors import ErrorKind

DID_CONTEXT = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/ed25519-2020/v1",
]

SIGNATURE_HEADER = "X-Agent-Signature"
DID_HEADER = "X-Agent-DID"
TIMESTAMP_HEADER = "X-Agent-Timestamp"
METHOD_HEADER = "X-Agent-Method"
URL_HEADER = "X-Agent-URL"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class CreditEventType(str, Enum):
    REGISTRATION = "registration"
    PR_MERGED = "pr_merged"
    PR_REJECTED = "pr_rejected"
    TEST_FAILURE = "test_failure"
    SECURITY_ISSUE = "security_issue"
    MANUAL_ADJUSTMENT = "manual_adjustment"


@dataclass(frozen=True)
class KeyPair:
    """Raw Ed25519 key material: 32-byte seed and 32-byte public key."""
    public_key: bytes
    private_key: bytes = field(repr=False)


@dataclass(frozen=True)
class SignableRequest:
    method: str
    url: str
    body: Optional[str] = None
    timestamp: Optional[int] = None     # epoch millis; filled in at signing time if None


@dataclass(frozen=True)
class SignedHeaders:
    signature: str                      # base64url, 64-byte Ed25519 sig
    did: str
    timestamp: str                      # decimal epoch millis

    def to_headers(self) -> Dict[str, str]:
        return {
            SIGNATURE_HEADER: self.signature,
            DID_HEADER: self.did,
            TIMESTAMP_HEADER: self.timestamp,
        }


@dataclass(frozen=True)
class VerificationMethod:
    id: str
    controller: str
    public_key_multibase: str
    type: str = "Ed25519VerificationKey2020"

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
            "publicKeyMultibase": self.public_key_multibase,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationMethod":
        return cls(
            id=data["id"],
            type=data.get("type", "Ed25519VerificationKey2020"),
            controller=data["controller"],
            public_key_multibase=data["publicKeyMultibase"],
        )


@dataclass(frozen=True)
class ServiceEndpoint:
    id: str
    type: str
    service_endpoint: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "type": self.type, "serviceEndpoint": self.service_endpoint}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceEndpoint":
        return cls(id=data["id"], type=data["type"], service_endpoint=data["serviceEndpoint"])


@dataclass(frozen=True)
class DIDDocument:
    """did:web document as published at the well-known location."""
    id: str
    verification_method: List[VerificationMethod] = field(default_factory=list)
    authentication: List[str] = field(default_factory=list)
    assertion_method: List[str] = field(default_factory=list)
    context: List[str] = field(default_factory=lambda: list(DID_CONTEXT))
    controller: Optional[str] = None
    service: Optional[List[ServiceEndpoint]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "@context": list(self.context),
            "id": self.id,
            "verificationMethod": [vm.to_dict() for vm in self.verification_method],
            "authentication": list(self.authentication),
            "assertionMethod": list(self.assertion_method),
        }
        if self.controller is not None:
            d["controller"] = self.controller
        if self.service:
            d["service"] = [s.to_dict() for s in self.service]
        return d

    def to_json(self) -> str:
        """RFC 8785 canonical JSON of :meth:`to_dict`."""
        return canonical_json_str(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DIDDocument":
        """Raises KeyError / TypeError / ValueError on a malformed document."""
        if not isinstance(data, dict):
            raise TypeError("DID document must be a JSON object")
        doc_id = data["id"]
        if not isinstance(doc_id, str):
            raise TypeError("DID document id must be a string")
        service = data.get("service")
        return cls(
            id=doc_id,
            context=list(data.get("@context") or []),
            verification_method=[
                VerificationMethod.from_dict(vm) for vm in data.get("verificationMethod") or []
            ],
            authentication=list(data.get("authentication") or []),
            assertion_method=list(data.get("assertionMethod") or []),
            controller=data.get("controller"),
            service=[ServiceEndpoint.from_dict(s) for s in service] if service else None,
        )


@dataclass(frozen=True)
class DIDResolutionResult:
    """
    Outcome of resolving a DID. ``did_document`` is None exactly when
    ``error`` is set.
    """
    did_document: Optional[DIDDocument] = None
    error: Optional[ErrorKind] = None
    content_type: Optional[str] = None
    updated: Optional[str] = None       # Last-Modified of the fetched document

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Agent:
    """Registered identity with its denormalized credit balance."""
    id: str
    did: str
    public_key: str                     # base64url raw Ed25519 public key
    name: str
    status: AgentStatus = AgentStatus.ACTIVE
    credits: int = 100
    description: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    revoked_at: Optional[str] = None
    revocation_reason: Optional[str] = None


@dataclass(frozen=True)
class CreditLedgerEntry:
    """Append-only ledger row. ``amount`` is the raw delta, never clamped."""
    id: str
    agent_id: str
    type: CreditEventType
    amount: int
    balance_after: int
    reason: str
    related_url: Optional[str] = None
    created_at: str = ""


@dataclass(frozen=True)
class ReplayCacheEntry:
    signature_hash: str                 # hex sha256 of the signature string
    agent_did: str
    timestamp: int                      # epoch millis carried by the signed request
    inserted_at: str = ""
