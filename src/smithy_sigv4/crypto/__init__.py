"""
Cryptographic operations for the SigV4 signing SDK
"""

from .hmac_sha256 import (
    SIGNING_KEY_LENGTH,
    SCOPE_TERMINATOR,
    hmac_sha256,
    hmac_sha256_hex,
    derive_signing_key,
)

__all__ = [
    'SIGNING_KEY_LENGTH',
    'SCOPE_TERMINATOR',
    'hmac_sha256',
    'hmac_sha256_hex',
    'derive_signing_key',
]
