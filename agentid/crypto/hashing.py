# agentid/crypto/hashing.py
import hashlib


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def signature_hash(signature: str) -> str:
    """
    Replay-cache key for a signature: hex SHA-256 of the encoded signature
    string exactly as it arrived in the header.
    """
    return sha256_hex(signature.encode("utf-8"))
