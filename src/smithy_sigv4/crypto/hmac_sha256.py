"""
HMAC-SHA256 primitives and SigV4 signing key derivation

This module provides the keyed-hash operations used by the SigV4 algorithm,
including the four-step signing key derivation chain.
"""

from typing import Union

from cryptography.hazmat.primitives import hashes, hmac

# Constants for key derivation
SIGNING_KEY_LENGTH = 32
KEY_PREFIX = b"AWS4"
SCOPE_TERMINATOR = "aws4_request"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def hmac_sha256(key: bytes, message: Union[str, bytes]) -> bytes:
    """
    Compute HMAC-SHA256 of a message.

    Args:
        key: HMAC key bytes
        message: Message to authenticate (str is UTF-8 encoded)

    Returns:
        bytes: 32-byte MAC
    """
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(_to_bytes(message))
    return mac.finalize()


def hmac_sha256_hex(key: bytes, message: Union[str, bytes]) -> str:
    """Compute HMAC-SHA256 and return it as lowercase hex."""
    return hmac_sha256(key, message).hex()


def derive_signing_key(
    secret_access_key: Union[str, bytes],
    scope_date: str,
    region: str,
    service: str
) -> bytes:
    """
    Derive the SigV4 signing key.

    kDate = HMAC("AWS4" + secret, date), kRegion = HMAC(kDate, region),
    kService = HMAC(kRegion, service), kSigning = HMAC(kService, "aws4_request").

    Args:
        secret_access_key: Secret access key
        scope_date: Scope date in YYYYMMDD form
        region: Signing region
        service: Signing service name

    Returns:
        bytes: 32-byte signing key
    """
    k_date = hmac_sha256(KEY_PREFIX + _to_bytes(secret_access_key), scope_date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, SCOPE_TERMINATOR)
