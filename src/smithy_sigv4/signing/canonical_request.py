"""
Canonical request construction for AWS Signature Version 4

This module builds the canonical request from a SignableRequest: the
canonical URI, sorted query string, canonical header block, signed header
list and payload hash.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

from ..exceptions import MalformedHeaderValueError, SigV4Error, InvalidRequestError
from .types import (
    HOST_HEADER,
    UNSIGNED_PAYLOAD,
    CanonicalRequest,
    SignableRequest,
    SigningConfig,
)
from .utils import (
    canonical_query_string,
    canonical_uri,
    hash_payload,
    normalize_header_name,
    normalize_header_value,
    parse_query_string,
    parse_url,
)

logger = logging.getLogger(__name__)


class CanonicalRequestBuilder:
    """
    Canonical request builder for SigV4 signatures
    """

    def __init__(self, config: SigningConfig):
        """
        Initialize canonical request builder.

        Args:
            config: Signing configuration (path and header rules)
        """
        self.config = config

    def build(
        self,
        request: SignableRequest,
        payload_hash: Optional[str] = None,
        extra_query: Optional[Sequence[Tuple[str, str]]] = None,
        extra_headers: Optional[Sequence[Tuple[str, str]]] = None
    ) -> CanonicalRequest:
        """
        Build the canonical request.

        Args:
            request: Request to canonicalize
            payload_hash: Precomputed payload hash or sentinel; the body is
                hashed when omitted
            extra_query: Additional query parameters (presigning)
            extra_headers: Headers added by the signer; they replace request
                headers of the same name

        Returns:
            CanonicalRequest: Canonical request

        Raises:
            MalformedHeaderValueError: If a header value cannot be canonicalized
            InvalidRequestError: If the URL or body cannot be processed
        """
        try:
            url_parts = parse_url(request.url)

            uri = canonical_uri(
                url_parts["path"],
                normalize_path=self.config.normalize_path,
                double_uri_encode=self.config.double_uri_encode,
            )

            params = parse_query_string(url_parts["query"])
            if extra_query:
                params.extend(extra_query)
            query = canonical_query_string(params)

            headers = self.build_headers(request, extra_headers)
            resolved_hash = self.resolve_payload_hash(request, payload_hash)

            canonical = CanonicalRequest(
                method=request.method,
                canonical_uri=uri,
                canonical_query_string=query,
                canonical_headers=headers,
                signed_headers=tuple(name for name, _ in headers),
                payload_hash=resolved_hash,
            )

        except Exception as e:
            if isinstance(e, SigV4Error):
                raise

            raise InvalidRequestError(
                f"Canonical request construction failed: {e}",
                details={"original_error": str(e)}
            ) from e

        logger.debug("Canonical request:\n%s", canonical.to_string())
        return canonical

    def build_headers(
        self,
        request: SignableRequest,
        extra_headers: Optional[Sequence[Tuple[str, str]]] = None
    ) -> Tuple[Tuple[str, str], ...]:
        """
        Build the sorted canonical header pairs.

        Unsigned headers are skipped. A host header is synthesized from the
        URL when the request has none.

        Raises:
            MalformedHeaderValueError: If a signed header appears twice or has
                an invalid value
        """
        unsigned = self.config.unsigned_headers
        headers: Dict[str, str] = {}

        for name, value in request.headers:
            normalized_name = normalize_header_name(name)
            if normalized_name in unsigned:
                continue
            if normalized_name in headers:
                raise MalformedHeaderValueError(
                    f"Header '{normalized_name}' appears more than once",
                    details={"header": normalized_name}
                )
            headers[normalized_name] = normalize_header_value(normalized_name, value)

        for name, value in extra_headers or ():
            normalized_name = normalize_header_name(name)
            headers[normalized_name] = normalize_header_value(normalized_name, value)

        if HOST_HEADER not in headers:
            headers[HOST_HEADER] = parse_url(request.url)["host"]

        return tuple(sorted(headers.items()))

    def resolve_payload_hash(self, request: SignableRequest, payload_hash: Optional[str] = None) -> str:
        """
        Pick the payload hash for a request.

        An explicit hash or sentinel wins; otherwise UNSIGNED-PAYLOAD when the
        configuration disables payload signing, else the body's SHA-256.
        """
        if payload_hash is not None:
            return payload_hash
        if not self.config.sign_payload:
            return UNSIGNED_PAYLOAD
        return hash_payload(request.body)


def build_canonical_request(
    request: SignableRequest,
    config: SigningConfig,
    payload_hash: Optional[str] = None
) -> CanonicalRequest:
    """
    Build canonical request for signing.

    Args:
        request: Request to canonicalize
        config: Signing configuration
        payload_hash: Optional precomputed payload hash

    Returns:
        CanonicalRequest: Canonical request

    Raises:
        SigV4Error: If canonicalization fails
    """
    builder = CanonicalRequestBuilder(config)
    return builder.build(request, payload_hash=payload_hash)
