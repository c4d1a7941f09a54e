"""
Identity resolvers supplying credentials for signing

Resolvers are called once per signing operation. Any failure surfaces as
CredentialsUnavailableError; resolvers are never retried here.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from .exceptions import CredentialsUnavailableError, SigV4Error
from .signing.types import Credentials

logger = logging.getLogger(__name__)

ACCESS_KEY_ENV = "AWS_ACCESS_KEY_ID"
SECRET_KEY_ENV = "AWS_SECRET_ACCESS_KEY"
SESSION_TOKEN_ENV = "AWS_SESSION_TOKEN"


class IdentityResolver(ABC):
    """Source of signing credentials"""

    @abstractmethod
    def get_credentials(self) -> Credentials:
        """
        Return current credentials.

        Raises:
            CredentialsUnavailableError: If no credentials can be produced
        """


class StaticCredentialsResolver(IdentityResolver):
    """Always returns the same credentials"""

    def __init__(self, credentials: Credentials):
        if not isinstance(credentials, Credentials):
            raise CredentialsUnavailableError("Static resolver requires Credentials")
        self._credentials = credentials

    def get_credentials(self) -> Credentials:
        return self._credentials


class EnvironmentCredentialsResolver(IdentityResolver):
    """
    Reads credentials from AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and
    the optional AWS_SESSION_TOKEN on every call.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ

    def get_credentials(self) -> Credentials:
        environ = self._environ if self._environ is not None else os.environ

        access_key = environ.get(ACCESS_KEY_ENV)
        secret_key = environ.get(SECRET_KEY_ENV)
        if not access_key or not secret_key:
            raise CredentialsUnavailableError(
                f"{ACCESS_KEY_ENV} and {SECRET_KEY_ENV} must be set",
                details={"missing": [
                    name for name, value in ((ACCESS_KEY_ENV, access_key), (SECRET_KEY_ENV, secret_key))
                    if not value
                ]}
            )

        return Credentials(
            access_key_id=access_key,
            secret_access_key=secret_key,
            session_token=environ.get(SESSION_TOKEN_ENV) or None,
        )


def resolve_credentials(resolver: IdentityResolver) -> Credentials:
    """
    Ask a resolver for credentials.

    Args:
        resolver: Identity resolver

    Returns:
        Credentials: Resolved credentials

    Raises:
        CredentialsUnavailableError: If the resolver fails or returns
            something other than Credentials
    """
    try:
        credentials = resolver.get_credentials()
    except SigV4Error:
        raise
    except Exception as e:
        logger.error("Identity resolver %s failed: %s", type(resolver).__name__, e)
        raise CredentialsUnavailableError(
            f"Identity resolver failed: {e}",
            details={"resolver": type(resolver).__name__, "original_error": str(e)}
        ) from e

    if not isinstance(credentials, Credentials):
        raise CredentialsUnavailableError(
            "Identity resolver returned no credentials",
            details={"resolver": type(resolver).__name__}
        )
    return credentials
