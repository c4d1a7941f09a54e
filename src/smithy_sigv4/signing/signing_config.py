"""
Configuration management for request signing

This module provides configuration management for SigV4 signing, including
signing profiles, a fluent configuration builder, and validation.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..exceptions import InvalidConfigurationError
from .clock import ClockSource, DEFAULT_CLOCK
from .types import (
    DEFAULT_UNSIGNED_HEADERS,
    SignedBodyHeader,
    SigningConfig,
)

# Region and service names end up inside the slash-delimited credential scope
_SCOPE_COMPONENT = re.compile(r'^[A-Za-z0-9._-]+$')


@dataclass
class SigningProfile:
    """
    Signing profile for different service families

    Attributes:
        name: Profile name
        description: Profile description
        double_uri_encode: Encode the path a second time
        normalize_path: Normalize dot segments and slashes in the path
        signed_body_header: Whether to send x-amz-content-sha256
        sign_payload: Hash the body instead of using UNSIGNED-PAYLOAD
    """
    name: str
    description: str
    double_uri_encode: bool
    normalize_path: bool
    signed_body_header: SignedBodyHeader
    sign_payload: bool


# Predefined signing profiles
SIGNING_PROFILES: Dict[str, SigningProfile] = {
    'standard': SigningProfile(
        name='Standard',
        description='Default SigV4 rules used by most services',
        double_uri_encode=True,
        normalize_path=True,
        signed_body_header=SignedBodyHeader.NONE,
        sign_payload=True
    ),

    's3': SigningProfile(
        name='S3',
        description='Object keys are signed as sent, payload hash sent as a header',
        double_uri_encode=False,
        normalize_path=False,
        signed_body_header=SignedBodyHeader.SHA256_HEADER,
        sign_payload=True
    ),

    'unsigned-payload': SigningProfile(
        name='Unsigned payload',
        description='Body excluded from the signature (large or streamed uploads over TLS)',
        double_uri_encode=True,
        normalize_path=True,
        signed_body_header=SignedBodyHeader.SHA256_HEADER,
        sign_payload=False
    )
}


class SigningConfigBuilder:
    """
    Builder for creating signing configurations with fluent API
    """

    def __init__(self):
        self._region: Optional[str] = None
        self._service: Optional[str] = None
        self._clock: ClockSource = DEFAULT_CLOCK
        self._double_uri_encode = True
        self._normalize_path = True
        self._signed_body_header = SignedBodyHeader.NONE
        self._omit_session_token = False
        self._sign_payload = True
        self._unsigned_headers = set(DEFAULT_UNSIGNED_HEADERS)

    def region(self, region: str) -> 'SigningConfigBuilder':
        """
        Set signing region.

        Args:
            region: Region name, e.g. "us-east-1"

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._region = region
        return self

    def service(self, service: str) -> 'SigningConfigBuilder':
        """
        Set signing service name.

        Args:
            service: Signing name of the service, e.g. "s3"

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._service = service
        return self

    def clock(self, clock: ClockSource) -> 'SigningConfigBuilder':
        self._clock = clock
        return self

    def double_uri_encode(self, enabled: bool = True) -> 'SigningConfigBuilder':
        self._double_uri_encode = enabled
        return self

    def normalize_path(self, enabled: bool = True) -> 'SigningConfigBuilder':
        self._normalize_path = enabled
        return self

    def signed_body_header(self, mode: SignedBodyHeader) -> 'SigningConfigBuilder':
        self._signed_body_header = SignedBodyHeader(mode)
        return self

    def omit_session_token(self, enabled: bool = True) -> 'SigningConfigBuilder':
        """
        Attach the session token after signing instead of signing it.

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._omit_session_token = enabled
        return self

    def sign_payload(self, enabled: bool = True) -> 'SigningConfigBuilder':
        self._sign_payload = enabled
        return self

    def unsigned_headers(self, headers: Iterable[str]) -> 'SigningConfigBuilder':
        """
        Replace the set of headers excluded from signing.

        Args:
            headers: Header names (case-insensitive)

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._unsigned_headers = {name.lower() for name in headers}
        return self

    def add_unsigned_header(self, header: str) -> 'SigningConfigBuilder':
        self._unsigned_headers.add(header.lower())
        return self

    def profile(self, profile_name: str) -> 'SigningConfigBuilder':
        """
        Apply signing profile.

        Args:
            profile_name: Name of signing profile ('standard', 's3', 'unsigned-payload')

        Returns:
            SigningConfigBuilder: Self for method chaining

        Raises:
            InvalidConfigurationError: If profile name is invalid
        """
        profile = get_signing_profile(profile_name)
        self._double_uri_encode = profile.double_uri_encode
        self._normalize_path = profile.normalize_path
        self._signed_body_header = profile.signed_body_header
        self._sign_payload = profile.sign_payload
        return self

    def build(self) -> SigningConfig:
        """
        Build the signing configuration.

        Returns:
            SigningConfig: Complete signing configuration

        Raises:
            InvalidConfigurationError: If configuration is invalid
        """
        if self._region is None:
            raise InvalidConfigurationError("Signing region is required")

        if self._service is None:
            raise InvalidConfigurationError("Signing service name is required")

        config = SigningConfig(
            region=self._region,
            service=self._service,
            clock=self._clock,
            double_uri_encode=self._double_uri_encode,
            normalize_path=self._normalize_path,
            signed_body_header=self._signed_body_header,
            omit_session_token=self._omit_session_token,
            sign_payload=self._sign_payload,
            unsigned_headers=frozenset(self._unsigned_headers)
        )
        validate_signing_config(config)
        return config


def create_signing_config() -> SigningConfigBuilder:
    """
    Create a new signing configuration builder.

    Returns:
        SigningConfigBuilder: New configuration builder
    """
    return SigningConfigBuilder()


def create_from_profile(
    profile_name: str,
    region: str,
    service: str,
    clock: Optional[ClockSource] = None
) -> SigningConfig:
    """
    Create signing configuration from signing profile.

    Args:
        profile_name: Signing profile name
        region: Signing region
        service: Signing service name
        clock: Optional clock source

    Returns:
        SigningConfig: Complete signing configuration

    Raises:
        InvalidConfigurationError: If profile or parameters are invalid
    """
    builder = (create_signing_config()
               .profile(profile_name)
               .region(region)
               .service(service))
    if clock is not None:
        builder.clock(clock)
    return builder.build()


def validate_signing_config(config: SigningConfig) -> None:
    """
    Validate signing configuration.

    Args:
        config: Signing configuration to validate

    Raises:
        InvalidConfigurationError: If configuration is invalid
    """
    if not isinstance(config, SigningConfig):
        raise InvalidConfigurationError("Configuration must be SigningConfig instance")

    if not _SCOPE_COMPONENT.match(config.region):
        raise InvalidConfigurationError(
            f"Invalid signing region: {config.region!r}",
            details={"region": config.region}
        )

    if not _SCOPE_COMPONENT.match(config.service):
        raise InvalidConfigurationError(
            f"Invalid signing service name: {config.service!r}",
            details={"service": config.service}
        )

    if not callable(getattr(config.clock, "now", None)):
        raise InvalidConfigurationError("Clock must provide a now() method")

    # The host header identifies the endpoint and is always signed
    if "host" in config.unsigned_headers:
        raise InvalidConfigurationError(
            "The host header cannot be excluded from signing",
            details={"unsigned_headers": sorted(config.unsigned_headers)}
        )


def get_signing_profile(name: str) -> SigningProfile:
    """
    Get signing profile by name.

    Args:
        name: Profile name

    Returns:
        SigningProfile: Signing profile

    Raises:
        InvalidConfigurationError: If profile name is invalid
    """
    if name not in SIGNING_PROFILES:
        raise InvalidConfigurationError(
            f"Unknown signing profile: {name}",
            details={"available_profiles": list(SIGNING_PROFILES.keys())}
        )

    return SIGNING_PROFILES[name]


def list_signing_profiles() -> List[str]:
    """
    List available signing profile names.

    Returns:
        list: List of available profile names
    """
    return list(SIGNING_PROFILES.keys())
