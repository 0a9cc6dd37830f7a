# agentid/did/document.py
from typing import Iterable, Optional

from agentid.core.encoding import b64url_decode, multibase_to_public_key, public_key_to_multibase
from agentid.core.errors import NoVerificationMethod
from agentid.core.types import DIDDocument, ServiceEndpoint, VerificationMethod
from agentid.did.generate import generate_did


def create_did_document(
    domain: str,
    public_key: str,
    path: Optional[str] = None,
    controller: Optional[str] = None,
    service_endpoints: Optional[Iterable[ServiceEndpoint]] = None,
) -> DIDDocument:
    """
    Build the did:web document for a base64url Ed25519 public key.

    The single verification method is ``<did>#key-1`` and is referenced from
    both ``authentication`` and ``assertionMethod``. Its controller is the
    given controller (e.g. a guardian's DID) or the document's own DID; the
    document-level ``controller`` is only emitted when one was given.
    """
    did = generate_did(domain, path)
    key_id = f"{did}#key-1"

    method = VerificationMethod(
        id=key_id,
        controller=controller or did,
        public_key_multibase=public_key_to_multibase(b64url_decode(public_key)),
    )
    services = list(service_endpoints or [])

    return DIDDocument(
        id=did,
        verification_method=[method],
        authentication=[key_id],
        assertion_method=[key_id],
        controller=controller,
        service=services or None,
    )


def extract_public_key(document: DIDDocument) -> bytes:
    """
    Raw public key of the FIRST verification method. Callers that need a
    specific key id search ``document.verification_method`` themselves.
    """
    if not document.verification_method:
        raise NoVerificationMethod("No verification methods found in DID document")
    return multibase_to_public_key(document.verification_method[0].public_key_multibase)
