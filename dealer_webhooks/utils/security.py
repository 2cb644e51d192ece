import hmac
import hashlib
import secrets
from typing import Union

from ..config import SECRET_BYTES
from ..exceptions import InvalidSignature

def _to_bytes(value: Union[bytes, str]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8')

def generate_secret() -> str:
    """Generate a random hex-encoded signing secret."""
    return secrets.token_hex(SECRET_BYTES)

def sign(payload: Union[bytes, str], secret: str) -> str:
    """
    Generate a signature for the webhook payload.

    Args:
        payload: The exact body bytes that will be sent
        secret: The subscription secret

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=_to_bytes(secret),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256
    ).hexdigest()

def verify(payload: Union[bytes, str], signature: str, secret: str) -> bool:
    """
    Verify that a signature matches the expected value.

    The comparison is constant-time. Signatures of the wrong length or
    type are rejected without raising.

    Args:
        payload: The raw payload
        signature: The provided signature to verify
        secret: The subscription secret

    Returns:
        Boolean indicating if signature is valid
    """
    if not isinstance(signature, (str, bytes)):
        return False
    expected = sign(payload, secret).encode('ascii')
    supplied = _to_bytes(signature)
    if len(supplied) != len(expected):
        return False
    return hmac.compare_digest(expected, supplied)

def require_valid_signature(payload: Union[bytes, str], signature: str, secret: str) -> None:
    """Raise InvalidSignature unless ``signature`` matches ``payload``."""
    if not verify(payload, signature, secret):
        raise InvalidSignature("Invalid signature")
