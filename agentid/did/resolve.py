# agentid/did/resolve.py
"""
did:web resolution over HTTPS.

Each call performs exactly one GET of the well-known URL. Nothing is cached:
a caller that keeps a resolved document owns its invalidation.
"""

import logging
from typing import Optional

import httpx

from agentid.core.errors import ErrorKind
from agentid.core.types import DIDDocument, DIDResolutionResult
from agentid.did.generate import DID_WEB_PREFIX, get_well_known_url, is_valid_did

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _precheck(did: str) -> Optional[DIDResolutionResult]:
    if not is_valid_did(did):
        return DIDResolutionResult(error=ErrorKind.INVALID_DID)
    if not did.startswith(DID_WEB_PREFIX):
        return DIDResolutionResult(error=ErrorKind.METHOD_NOT_SUPPORTED)
    return None


def _from_response(did: str, response: httpx.Response) -> DIDResolutionResult:
    if not response.is_success:
        logger.info("DID %s resolution failed with HTTP %s", did, response.status_code)
        kind = ErrorKind.NOT_FOUND if response.status_code == 404 else ErrorKind.INTERNAL_ERROR
        return DIDResolutionResult(error=kind)

    try:
        document = DIDDocument.from_dict(response.json())
    except (ValueError, KeyError, TypeError) as e:
        logger.info("DID %s returned an unusable document: %s", did, e)
        return DIDResolutionResult(error=ErrorKind.INVALID_DID_DOCUMENT)

    if document.id != did:
        logger.info("DID %s returned a document for %s", did, document.id)
        return DIDResolutionResult(error=ErrorKind.INVALID_DID_DOCUMENT)

    return DIDResolutionResult(
        did_document=document,
        content_type=response.headers.get("content-type"),
        updated=response.headers.get("last-modified"),
    )


def resolve_did(
    did: str,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> DIDResolutionResult:
    """Resolve a did:web identifier. Never raises for network or document problems."""
    failed = _precheck(did)
    if failed:
        return failed

    url = get_well_known_url(did)
    try:
        if client is not None:
            response = client.get(url, timeout=timeout)
        else:
            with httpx.Client(follow_redirects=True) as c:
                response = c.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("DID %s: fetch of %s failed: %s", did, url, e)
        return DIDResolutionResult(error=ErrorKind.INTERNAL_ERROR)

    return _from_response(did, response)


async def aresolve_did(
    did: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> DIDResolutionResult:
    """Cooperative variant of :func:`resolve_did`; safe to gather many at once."""
    failed = _precheck(did)
    if failed:
        return failed

    url = get_well_known_url(did)
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as c:
                response = await c.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("DID %s: fetch of %s failed: %s", did, url, e)
        return DIDResolutionResult(error=ErrorKind.INTERNAL_ERROR)

    return _from_response(did, response)
