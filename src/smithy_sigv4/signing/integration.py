"""
HTTP client integration for request signing

This module connects SigV4 signing to the requests library: an auth hook
that signs every outgoing request, a helper to sign an already prepared
request, and helpers for aws-chunked streaming uploads.
"""

import logging
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union

import requests
from requests.auth import AuthBase
from requests.models import PreparedRequest
from requests.sessions import Session

from ..exceptions import InvalidRequestError
from ..identity import IdentityResolver, resolve_credentials
from .chunk_signer import DEFAULT_CHUNK_SIZE, ChunkSigner, TrailerHeaders, iter_stream
from .key_cache import SigningKeyCache
from .sigv4_signer import RequestSigner
from .types import (
    UNSIGNED_PAYLOAD,
    Credentials,
    SignableRequest,
    SignedRequest,
    SigningConfig,
)

logger = logging.getLogger(__name__)


class SigV4Auth(AuthBase):
    """
    requests auth hook that signs each request with SigV4.

    Credentials are resolved on every call so rotating identities are
    picked up.
    """

    def __init__(
        self,
        config: SigningConfig,
        identity_resolver: IdentityResolver,
        key_cache: Optional[SigningKeyCache] = None
    ):
        """
        Initialize the auth hook.

        Args:
            config: Signing configuration
            identity_resolver: Source of credentials
            key_cache: Optional signing key cache shared with other signers
        """
        self.signer = RequestSigner(config, key_cache)
        self.identity_resolver = identity_resolver

    def __call__(self, prepared_request: PreparedRequest) -> PreparedRequest:
        credentials = resolve_credentials(self.identity_resolver)
        return sign_prepared_request(prepared_request, credentials, self.signer)


def _payload_hash_for_body(body) -> Optional[str]:
    if body is None or isinstance(body, (str, bytes, bytearray)):
        return None
    seekable = getattr(body, "seekable", None)
    if callable(seekable) and seekable():
        return None
    # Generators and other one-shot iterables cannot be hashed without consuming them
    logger.warning("Request body is not seekable; signing with %s", UNSIGNED_PAYLOAD)
    return UNSIGNED_PAYLOAD


def sign_prepared_request(
    prepared_request: PreparedRequest,
    credentials: Credentials,
    signer: RequestSigner
) -> PreparedRequest:
    """
    Sign a prepared request in place.

    Args:
        prepared_request: Prepared request to sign
        credentials: Signing credentials
        signer: Request signer

    Returns:
        PreparedRequest: Request with signing headers added

    Raises:
        SigV4Error: If signing fails
    """
    headers = dict(prepared_request.headers) if prepared_request.headers else {}
    body = prepared_request.body

    signable_request = SignableRequest(
        method=prepared_request.method,
        url=prepared_request.url,
        headers=headers,
        body=body
    )

    result = signer.sign_request(
        signable_request,
        credentials,
        payload_hash=_payload_hash_for_body(body)
    )

    prepared_request.headers.update(result.headers)
    logger.debug("Signed %s request to %s", prepared_request.method, prepared_request.url)
    return prepared_request


def create_signing_session(
    config: SigningConfig,
    identity_resolver: IdentityResolver,
    session: Optional[Session] = None,
    key_cache: Optional[SigningKeyCache] = None
) -> Session:
    """
    Create a requests session that signs every request.

    Args:
        config: Signing configuration
        identity_resolver: Source of credentials
        session: Optional existing session to configure
        key_cache: Optional shared signing key cache

    Returns:
        requests.Session: Session with SigV4Auth installed
    """
    session = session or requests.Session()
    session.auth = SigV4Auth(config, identity_resolver, key_cache)
    return session


def prepare_chunked_upload(
    chunk_signer: ChunkSigner,
    request: SignableRequest,
    credentials: Credentials,
    payload: Union[Iterable[bytes], object],
    decoded_length: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    trailers: Optional[Union[TrailerHeaders, Callable[[], TrailerHeaders]]] = None,
    trailer_names: Optional[Sequence[str]] = None
) -> Tuple[SignedRequest, Iterator[bytes]]:
    """
    Sign an aws-chunked upload and build its framed body.

    Args:
        chunk_signer: Chunk signer sharing the request signer's cache
        request: Upload request (method, url, headers)
        credentials: Signing credentials
        payload: Binary stream or iterable of byte strings
        decoded_length: Total payload length
        chunk_size: Framed chunk size
        trailers: Optional trailing headers, or a callable producing them
            after the payload is consumed
        trailer_names: Trailer names announced up front (required when
            trailers is a callable)

    Returns:
        tuple: (SignedRequest, generator of framed body bytes)
    """
    trailer_names = _trailer_names(trailers, trailer_names)
    signed, context = chunk_signer.begin_chunked_upload(
        request,
        credentials,
        decoded_length,
        chunk_size=chunk_size,
        trailer_names=trailer_names,
    )

    chunks = iter_stream(payload, chunk_size) if hasattr(payload, "read") else payload
    body = chunk_signer.encode_chunked_body(context, chunks, chunk_size, trailers)
    return signed, body


def upload_chunked(
    session: Session,
    chunk_signer: ChunkSigner,
    request: SignableRequest,
    credentials: Credentials,
    payload: Union[Iterable[bytes], object],
    decoded_length: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    **kwargs
) -> requests.Response:
    """
    Send an aws-chunked upload through a requests session.

    Args:
        session: Session used for the request (must not sign again)
        chunk_signer: Chunk signer
        request: Upload request
        credentials: Signing credentials
        payload: Binary stream or iterable of byte strings
        decoded_length: Total payload length
        chunk_size: Framed chunk size
        **kwargs: Additional arguments for session.request

    Returns:
        requests.Response: HTTP response
    """
    signed, body = prepare_chunked_upload(
        chunk_signer, request, credentials, payload, decoded_length, chunk_size
    )
    data = SizedBody(body, int(signed.headers["content-length"]))
    return session.request(signed.method, signed.url, headers=signed.headers, data=data, **kwargs)


class SizedBody:
    """
    Framed body iterator that reports its encoded length.

    requests sizes streaming bodies with len(); without it a generator is
    sent with Transfer-Encoding: chunked next to the signed Content-Length.
    """

    def __init__(self, frames: Iterable[bytes], length: int):
        self._frames = frames
        self._length = length

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._frames)

    def __len__(self) -> int:
        return self._length


def _trailer_names(trailers, trailer_names: Optional[Sequence[str]]) -> Optional[Sequence[str]]:
    if trailer_names is not None:
        return list(trailer_names)
    if trailers is None:
        return None
    if callable(trailers):
        raise InvalidRequestError(
            "trailer_names is required when trailers are computed after the payload"
        )
    if isinstance(trailers, Mapping):
        return list(trailers.keys())
    return [name for name, _ in trailers]
