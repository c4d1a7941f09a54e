"""
Exception classes for the SigV4 signing SDK
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Error kinds surfaced by signing operations"""
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    CREDENTIALS_UNAVAILABLE = "CREDENTIALS_UNAVAILABLE"
    MALFORMED_HEADER_VALUE = "MALFORMED_HEADER_VALUE"
    CHUNK_ORDERING_VIOLATION = "CHUNK_ORDERING_VIOLATION"
    PAYLOAD_READ_FAILURE = "PAYLOAD_READ_FAILURE"
    INVALID_REQUEST = "INVALID_REQUEST"


class SigV4Error(Exception):
    """
    Base exception for all signing errors

    Attributes:
        message: Error message
        kind: ErrorKind for programmatic handling
        details: Optional additional error details
    """

    default_kind = ErrorKind.INVALID_REQUEST

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details or {}

    @property
    def error_code(self) -> str:
        return self.kind.value

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (code: {self.error_code}, details: {self.details})"
        return f"{self.message} (code: {self.error_code})"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message='{self.message}', "
            f"code='{self.error_code}', details={self.details})"
        )


class InvalidConfigurationError(SigV4Error):
    """Raised when region, service or another signing setting is missing or invalid"""
    default_kind = ErrorKind.INVALID_CONFIGURATION


class CredentialsUnavailableError(SigV4Error):
    """Raised when credentials are missing or the identity resolver fails"""
    default_kind = ErrorKind.CREDENTIALS_UNAVAILABLE


class MalformedHeaderValueError(SigV4Error):
    """Raised for header values that cannot be canonicalized unambiguously"""
    default_kind = ErrorKind.MALFORMED_HEADER_VALUE


class ChunkOrderingViolationError(SigV4Error):
    """Raised when a chunk signature chain is reused, skipped or shared"""
    default_kind = ErrorKind.CHUNK_ORDERING_VIOLATION


class PayloadReadError(SigV4Error):
    """Raised when reading a streamed body for hashing fails"""
    default_kind = ErrorKind.PAYLOAD_READ_FAILURE


class InvalidRequestError(SigV4Error):
    """Raised for requests that cannot be signed as given"""
    default_kind = ErrorKind.INVALID_REQUEST
