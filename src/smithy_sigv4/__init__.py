"""
SigV4 Signing SDK
AWS Signature Version 4 request, chunk and event-stream signing
"""

from .version import __version__
from .exceptions import (
    ErrorKind,
    SigV4Error,
    InvalidConfigurationError,
    CredentialsUnavailableError,
    MalformedHeaderValueError,
    ChunkOrderingViolationError,
    PayloadReadError,
    InvalidRequestError,
)
from .signing import (
    Credentials,
    SigningConfig,
    SignedBodyHeader,
    SigningVariant,
    SignableRequest,
    CanonicalRequest,
    SignedRequest,
    ChunkSignContext,
    EventSignature,
    RequestSigner,
    ChunkSigner,
    AsyncChunkWriter,
    SigningKeyCache,
    FixedClock,
    SystemClock,
    create_signer,
    sign_request,
    presign_url,
    create_signing_config,
    create_from_profile,
    SigV4Auth,
    create_signing_session,
)
from .identity import (
    IdentityResolver,
    StaticCredentialsResolver,
    EnvironmentCredentialsResolver,
    resolve_credentials,
)

__all__ = [
    '__version__',
    # Errors
    'ErrorKind',
    'SigV4Error',
    'InvalidConfigurationError',
    'CredentialsUnavailableError',
    'MalformedHeaderValueError',
    'ChunkOrderingViolationError',
    'PayloadReadError',
    'InvalidRequestError',
    # Identity
    'IdentityResolver',
    'StaticCredentialsResolver',
    'EnvironmentCredentialsResolver',
    'resolve_credentials',
    # Signing
    'Credentials',
    'SigningConfig',
    'SignedBodyHeader',
    'SigningVariant',
    'SignableRequest',
    'CanonicalRequest',
    'SignedRequest',
    'ChunkSignContext',
    'EventSignature',
    'RequestSigner',
    'ChunkSigner',
    'AsyncChunkWriter',
    'SigningKeyCache',
    'FixedClock',
    'SystemClock',
    'create_signer',
    'sign_request',
    'presign_url',
    'create_signing_config',
    'create_from_profile',
    'SigV4Auth',
    'create_signing_session',
]
