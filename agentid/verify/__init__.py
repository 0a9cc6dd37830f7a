# agentid/verify/__init__.py
from .replay import ReplayCache
from .request import VerificationResult, sign_request, verify_request
from .verifier import AgentVerifier

__all__ = ["ReplayCache", "VerificationResult", "sign_request", "verify_request", "AgentVerifier"]
