# agentid/core/errors.py
"""
Error taxonomy shared by every component.

Codec and lookup failures raise one of the exceptions below. Resolution and
request verification never raise for caller-supplied input; they return a
result object carrying an ``ErrorKind`` instead.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_DID = "invalidDid"
    METHOD_NOT_SUPPORTED = "methodNotSupported"
    NOT_FOUND = "notFound"
    INVALID_DID_DOCUMENT = "invalidDidDocument"
    INTERNAL_ERROR = "internalError"
    INVALID_MULTIBASE_PREFIX = "invalidMultibasePrefix"
    INVALID_KEY_CODEC = "invalidKeyCodec"
    NO_VERIFICATION_METHOD = "noVerificationMethod"
    MISSING_SIGNATURE = "missingSignature"
    MISSING_TIMESTAMP = "missingTimestamp"
    INVALID_TIMESTAMP_FORMAT = "invalidTimestampFormat"
    EXPIRED_TIMESTAMP = "expiredTimestamp"
    INVALID_SIGNATURE = "invalidSignature"
    REPLAY_DETECTED = "replayDetected"
    AGENT_NOT_FOUND = "agentNotFound"
    AGENT_INACTIVE = "agentInactive"
    DATABASE_ERROR = "databaseError"


class AgentIDError(Exception):
    """Base class; ``kind`` is the stable machine-readable code."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class InvalidDid(AgentIDError):
    kind = ErrorKind.INVALID_DID


class MethodNotSupported(AgentIDError):
    kind = ErrorKind.METHOD_NOT_SUPPORTED


class InvalidMultibasePrefix(AgentIDError, ValueError):
    kind = ErrorKind.INVALID_MULTIBASE_PREFIX


class InvalidKeyCodec(AgentIDError, ValueError):
    kind = ErrorKind.INVALID_KEY_CODEC


class NoVerificationMethod(AgentIDError):
    kind = ErrorKind.NO_VERIFICATION_METHOD


class ReplayDetected(AgentIDError):
    kind = ErrorKind.REPLAY_DETECTED


class AgentNotFound(AgentIDError, LookupError):
    kind = ErrorKind.AGENT_NOT_FOUND

    def __init__(self, did: str):
        super().__init__(f"Agent not found: {did}")
        self.did = did


class DatabaseError(AgentIDError):
    kind = ErrorKind.DATABASE_ERROR
