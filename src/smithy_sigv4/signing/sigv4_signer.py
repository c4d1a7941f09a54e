"""
AWS Signature Version 4 request signer

This module provides the main signer implementation: header-based signing
(Authorization header), query-based signing (presigned URLs) and the
primitives both share: credential scope, string-to-sign and signature
computation.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence, Tuple

from ..crypto import hmac_sha256_hex
from ..exceptions import CredentialsUnavailableError, InvalidConfigurationError, SigV4Error, InvalidRequestError
from .canonical_request import CanonicalRequestBuilder
from .key_cache import SigningKeyCache
from .signing_config import validate_signing_config
from .types import (
    ALGORITHM,
    AUTHORIZATION_HEADER,
    CONTENT_SHA256_HEADER,
    DATE_HEADER,
    DEFAULT_PRESIGN_EXPIRES,
    HOST_HEADER,
    MAX_PRESIGN_EXPIRES,
    SECURITY_TOKEN_HEADER,
    STREAMING_PAYLOAD_HASHES,
    UNSIGNED_PAYLOAD,
    CanonicalRequest,
    Credentials,
    HeaderSignature,
    QueryParameters,
    SignableRequest,
    SignedBodyHeader,
    SignedRequest,
    SigningConfig,
    SigningKey,
    SigningVariant,
)
from .utils import (
    PerformanceTimer,
    build_scope,
    encode_query_parameters,
    format_amz_datetime,
    format_scope_date,
    merge_headers,
    parse_url,
    replace_query,
)

logger = logging.getLogger(__name__)

# Signing slower than this is logged as a warning
SLOW_SIGNING_THRESHOLD_MS = 10


class RequestSigner:
    """
    SigV4 request signer

    One signer is shared by all requests of a client. It holds the signing
    configuration and a signing key cache; per-request state lives only in
    the call stack.
    """

    def __init__(self, config: SigningConfig, key_cache: Optional[SigningKeyCache] = None):
        """
        Initialize the signer with configuration.

        Args:
            config: Signing configuration
            key_cache: Shared signing key cache (a private one by default)

        Raises:
            InvalidConfigurationError: If configuration is invalid
        """
        validate_signing_config(config)
        self.config = config
        self.key_cache = key_cache if key_cache is not None else SigningKeyCache(clock=config.clock)
        self.canonical_builder = CanonicalRequestBuilder(config)

    # Primitives

    def credential_scope(self, timestamp: datetime) -> str:
        return build_scope(format_scope_date(timestamp), self.config.region, self.config.service)

    def string_to_sign(self, canonical_request: CanonicalRequest, timestamp: datetime) -> str:
        """
        Build the string to sign for a canonical request.

        Returns:
            str: "AWS4-HMAC-SHA256\\n<datetime>\\n<scope>\\n<hex sha256(canonical)>"
        """
        return "\n".join([
            ALGORITHM,
            format_amz_datetime(timestamp),
            self.credential_scope(timestamp),
            canonical_request.hash(),
        ])

    def signing_key(self, credentials: Optional[Credentials], timestamp: datetime) -> SigningKey:
        """Return the (cached) signing key for the timestamp's scope date."""
        return self.key_cache.derive(
            credentials,
            format_scope_date(timestamp),
            self.config.region,
            self.config.service,
        )

    @staticmethod
    def compute_signature(signing_key: SigningKey, string_to_sign: str) -> str:
        return hmac_sha256_hex(signing_key.key_bytes, string_to_sign)

    # Variants

    def sign_headers(
        self,
        canonical_request: CanonicalRequest,
        credentials: Optional[Credentials],
        timestamp: datetime
    ) -> HeaderSignature:
        """
        Produce an Authorization header for a canonical request.

        Args:
            canonical_request: Canonical request, already containing x-amz-date
            credentials: Signing credentials
            timestamp: Signing timestamp

        Returns:
            HeaderSignature: Authorization value, date and signature

        Raises:
            CredentialsUnavailableError: If credentials are missing
        """
        _require_credentials(credentials)
        signing_key = self.signing_key(credentials, timestamp)
        string_to_sign = self.string_to_sign(canonical_request, timestamp)
        logger.debug("String to sign:\n%s", string_to_sign)
        signature = self.compute_signature(signing_key, string_to_sign)

        scope = signing_key.scope
        authorization = (
            f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
            f"SignedHeaders={canonical_request.signed_headers_string}, "
            f"Signature={signature}"
        )

        return HeaderSignature(
            authorization=authorization,
            x_amz_date=format_amz_datetime(timestamp),
            signature=signature,
            string_to_sign=string_to_sign,
            scope=scope,
        )

    def presign_parameters(
        self,
        credentials: Credentials,
        timestamp: datetime,
        expires: int,
        signed_headers: Sequence[str]
    ) -> QueryParameters:
        """
        Build the X-Amz-* query parameters covered by a presigned signature.

        Raises:
            InvalidConfigurationError: If expires is outside 1..604800 seconds
        """
        _require_credentials(credentials)
        _validate_expires(expires)

        params = [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", f"{credentials.access_key_id}/{self.credential_scope(timestamp)}"),
            ("X-Amz-Date", format_amz_datetime(timestamp)),
            ("X-Amz-Expires", str(expires)),
            ("X-Amz-SignedHeaders", ";".join(signed_headers)),
        ]
        if credentials.session_token and not self.config.omit_session_token:
            params.append(("X-Amz-Security-Token", credentials.session_token))
        return params

    def sign_query(
        self,
        canonical_request: CanonicalRequest,
        credentials: Optional[Credentials],
        timestamp: datetime,
        expires: int = DEFAULT_PRESIGN_EXPIRES
    ) -> QueryParameters:
        """
        Produce the presigned query parameters for a canonical request.

        The canonical request must already include the parameters returned
        by presign_parameters for the same inputs.

        Returns:
            list: X-Amz-* parameters ending with X-Amz-Signature

        Raises:
            InvalidConfigurationError: If expires is out of range
            CredentialsUnavailableError: If credentials are missing
        """
        _require_credentials(credentials)
        params = self.presign_parameters(credentials, timestamp, expires, canonical_request.signed_headers)

        signing_key = self.signing_key(credentials, timestamp)
        string_to_sign = self.string_to_sign(canonical_request, timestamp)
        logger.debug("String to sign:\n%s", string_to_sign)
        params.append(("X-Amz-Signature", self.compute_signature(signing_key, string_to_sign)))

        if credentials.session_token and self.config.omit_session_token:
            params.append(("X-Amz-Security-Token", credentials.session_token))
        return params

    # Request-level operations

    def sign_request(
        self,
        request: SignableRequest,
        credentials: Optional[Credentials],
        payload_hash: Optional[str] = None,
        extra_headers: Optional[Sequence[Tuple[str, str]]] = None
    ) -> SignedRequest:
        """
        Sign a request with an Authorization header.

        Adds x-amz-date, the session token (signed unless the configuration
        omits it), x-amz-content-sha256 when required and the host header
        when the request has none.

        Args:
            request: Request to sign
            credentials: Signing credentials
            payload_hash: Precomputed payload hash or streaming sentinel
            extra_headers: Further headers to add and sign

        Returns:
            SignedRequest: Request with signing headers

        Raises:
            SigV4Error: If signing fails
        """
        timer = PerformanceTimer()
        _require_credentials(credentials)

        try:
            timestamp = self.config.clock.now()
            resolved_hash = self.canonical_builder.resolve_payload_hash(request, payload_hash)

            added = [(DATE_HEADER, format_amz_datetime(timestamp))]
            if credentials.session_token and not self.config.omit_session_token:
                added.append((SECURITY_TOKEN_HEADER, credentials.session_token))
            if self._sends_content_sha256(resolved_hash):
                added.append((CONTENT_SHA256_HEADER, resolved_hash))
            added.extend(extra_headers or ())

            canonical = self.canonical_builder.build(
                request,
                payload_hash=resolved_hash,
                extra_headers=added,
            )
            header_signature = self.sign_headers(canonical, credentials, timestamp)

            updates = list(added)
            if not any(str(name).lower() == HOST_HEADER for name, _ in request.headers):
                updates.append((HOST_HEADER, canonical.header_value(HOST_HEADER)))
            if credentials.session_token and self.config.omit_session_token:
                updates.append((SECURITY_TOKEN_HEADER, credentials.session_token))
            updates.append((AUTHORIZATION_HEADER, header_signature.authorization))

            signed = SignedRequest(
                method=request.method,
                url=request.url,
                headers=merge_headers(request.headers, updates),
                signature=header_signature.signature,
                canonical_request=canonical,
                string_to_sign=header_signature.string_to_sign,
                timestamp=timestamp,
                variant=SigningVariant.HEADER,
                body=request.body,
            )

        except Exception as e:
            if isinstance(e, SigV4Error):
                raise

            raise InvalidRequestError(
                f"Request signing failed: {e}",
                details={"original_error": str(e)}
            ) from e

        self._check_elapsed(timer, "sign_request")
        return signed

    def presign_request(
        self,
        request: SignableRequest,
        credentials: Optional[Credentials],
        expires: int = DEFAULT_PRESIGN_EXPIRES
    ) -> SignedRequest:
        """
        Presign a request by moving the signature into the query string.

        The payload is UNSIGNED-PAYLOAD and no x-amz-date header is added.

        Args:
            request: Request to presign
            credentials: Signing credentials
            expires: Validity of the URL in seconds (1..604800)

        Returns:
            SignedRequest: Request whose url is the presigned URL

        Raises:
            InvalidConfigurationError: If expires is out of range
            CredentialsUnavailableError: If credentials are missing
        """
        timer = PerformanceTimer()
        _require_credentials(credentials)
        _validate_expires(expires)

        try:
            timestamp = self.config.clock.now()
            signed_headers = [name for name, _ in self.canonical_builder.build_headers(request)]
            presign_params = self.presign_parameters(credentials, timestamp, expires, signed_headers)

            canonical = self.canonical_builder.build(
                request,
                payload_hash=UNSIGNED_PAYLOAD,
                extra_query=presign_params,
            )
            params = self.sign_query(canonical, credentials, timestamp, expires)

            url_parts = parse_url(request.url)
            query = encode_query_parameters(params)
            if url_parts["query"]:
                query = f"{url_parts['query']}&{query}"

            signature = dict(params)["X-Amz-Signature"]
            signed = SignedRequest(
                method=request.method,
                url=replace_query(request.url, query),
                headers=merge_headers(request.headers, []),
                signature=signature,
                canonical_request=canonical,
                string_to_sign=self.string_to_sign(canonical, timestamp),
                timestamp=timestamp,
                variant=SigningVariant.QUERY,
                body=request.body,
            )

        except Exception as e:
            if isinstance(e, SigV4Error):
                raise

            raise InvalidRequestError(
                f"Request presigning failed: {e}",
                details={"original_error": str(e)}
            ) from e

        self._check_elapsed(timer, "presign_request")
        return signed

    def _sends_content_sha256(self, payload_hash: str) -> bool:
        if payload_hash in STREAMING_PAYLOAD_HASHES:
            return True
        return self.config.signed_body_header == SignedBodyHeader.SHA256_HEADER

    @staticmethod
    def _check_elapsed(timer: PerformanceTimer, operation: str) -> None:
        elapsed_ms = timer.elapsed_ms()
        if elapsed_ms > SLOW_SIGNING_THRESHOLD_MS:
            logger.warning(
                "%s took %.2fms (target: <%dms)",
                operation, elapsed_ms, SLOW_SIGNING_THRESHOLD_MS
            )


def _require_credentials(credentials: Optional[Credentials]) -> None:
    if credentials is None:
        raise CredentialsUnavailableError("No credentials available for signing")
    if not isinstance(credentials, Credentials):
        raise CredentialsUnavailableError(
            f"Expected Credentials, got {type(credentials).__name__}",
            details={"credentials_type": type(credentials).__name__}
        )


def _validate_expires(expires: int) -> None:
    if isinstance(expires, bool) or not isinstance(expires, int) or not 1 <= expires <= MAX_PRESIGN_EXPIRES:
        raise InvalidConfigurationError(
            f"Presigned URL expiry must be between 1 and {MAX_PRESIGN_EXPIRES} seconds",
            details={"expires": expires}
        )


def create_signer(config: SigningConfig, key_cache: Optional[SigningKeyCache] = None) -> RequestSigner:
    """
    Create a new SigV4 request signer.

    Args:
        config: Signing configuration
        key_cache: Optional shared signing key cache

    Returns:
        RequestSigner: Configured signer instance
    """
    return RequestSigner(config, key_cache)


def sign_request(
    request: SignableRequest,
    credentials: Credentials,
    config: SigningConfig,
    payload_hash: Optional[str] = None
) -> SignedRequest:
    """
    Convenience function to sign a single request.

    Args:
        request: Request to sign
        credentials: Signing credentials
        config: Signing configuration
        payload_hash: Optional precomputed payload hash

    Returns:
        SignedRequest: Signed request
    """
    return RequestSigner(config).sign_request(request, credentials, payload_hash=payload_hash)


def presign_url(
    request: SignableRequest,
    credentials: Credentials,
    config: SigningConfig,
    expires: int = DEFAULT_PRESIGN_EXPIRES
) -> str:
    """
    Convenience function returning a presigned URL.

    Args:
        request: Request to presign
        credentials: Signing credentials
        config: Signing configuration
        expires: Validity in seconds

    Returns:
        str: Presigned URL
    """
    return RequestSigner(config).presign_request(request, credentials, expires).url
