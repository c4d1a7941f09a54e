"""
Signing key derivation cache

Derived signing keys depend only on the secret, scope date, region and
service, so one derivation per day serves every request with that scope.
"""

import logging
import re
import threading
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from ..crypto import derive_signing_key
from ..exceptions import CredentialsUnavailableError, InvalidConfigurationError
from .clock import ClockSource, DEFAULT_CLOCK
from .types import Credentials, SigningKey
from .utils import SCOPE_DATE_FORMAT

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str, str]
DeriveFunction = Callable[[bytes, str, str, str], bytes]

DEFAULT_RETENTION_DAYS = 1
_SCOPE_DATE = re.compile(r'^\d{8}$')


class SigningKeyCache:
    """
    Thread-safe cache of derived signing keys

    Keys are indexed by (credential fingerprint, scope date, region, service).
    Entries whose scope date is older than the retention window relative to
    the clock are evicted on every access. Concurrent requests for the same
    key derive it once.
    """

    def __init__(
        self,
        clock: Optional[ClockSource] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        derive_function: Optional[DeriveFunction] = None
    ):
        """
        Initialize the cache.

        Args:
            clock: Clock used for eviction (system clock by default)
            retention_days: Days before today whose keys are still retained
            derive_function: Key derivation function, replaceable in tests
        """
        if retention_days < 0:
            raise InvalidConfigurationError(
                "Key cache retention must not be negative",
                details={"retention_days": retention_days}
            )

        self.clock = clock or DEFAULT_CLOCK
        self.retention_days = retention_days
        self._derive = derive_function or derive_signing_key
        self._entries: Dict[CacheKey, SigningKey] = {}
        self._locks: Dict[CacheKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def derive(
        self,
        credentials: Optional[Credentials],
        scope_date: str,
        region: str,
        service: str
    ) -> SigningKey:
        """
        Return the signing key for a scope, deriving it on a cache miss.

        Args:
            credentials: Credentials whose secret is used
            scope_date: Scope date (YYYYMMDD)
            region: Signing region
            service: Signing service name

        Returns:
            SigningKey: Derived key

        Raises:
            InvalidConfigurationError: If region, service or date is invalid
            CredentialsUnavailableError: If credentials are missing
        """
        cache_key = self._cache_key(credentials, scope_date, region, service)

        with self._guard:
            self._evict_expired_locked()
            cached = self._entries.get(cache_key)
            if cached is not None:
                return cached
            key_lock = self._locks.setdefault(cache_key, threading.Lock())

        with key_lock:
            with self._guard:
                cached = self._entries.get(cache_key)
            if cached is not None:
                return cached

            logger.debug("Deriving signing key for scope %s/%s/%s", scope_date, region, service)
            try:
                signing_key = SigningKey(
                    key_bytes=self._derive(credentials.secret_access_key, scope_date, region, service),
                    scope_date=scope_date,
                    region=region,
                    service=service,
                )
                with self._guard:
                    self._entries[cache_key] = signing_key
            finally:
                with self._guard:
                    if self._locks.get(cache_key) is key_lock:
                        del self._locks[cache_key]

        return signing_key

    def peek(
        self,
        credentials: Credentials,
        scope_date: str,
        region: str,
        service: str
    ) -> Optional[SigningKey]:
        """Return a cached key without deriving, or None."""
        cache_key = self._cache_key(credentials, scope_date, region, service)
        with self._guard:
            self._evict_expired_locked()
            return self._entries.get(cache_key)

    def evict_expired(self) -> int:
        """
        Drop entries older than the retention window.

        Returns:
            int: Number of entries removed
        """
        with self._guard:
            return self._evict_expired_locked()

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _evict_expired_locked(self) -> int:
        cutoff = (self.clock.now() - timedelta(days=self.retention_days)).strftime(SCOPE_DATE_FORMAT)
        expired = [key for key in self._entries if key[1] < cutoff]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired signing keys", len(expired))
        return len(expired)

    @staticmethod
    def _cache_key(
        credentials: Optional[Credentials],
        scope_date: str,
        region: str,
        service: str
    ) -> CacheKey:
        if not region:
            raise InvalidConfigurationError("Signing region is required")
        if not service:
            raise InvalidConfigurationError("Signing service name is required")
        if not isinstance(scope_date, str) or not _SCOPE_DATE.match(scope_date):
            raise InvalidConfigurationError(
                f"Invalid scope date: {scope_date!r}",
                details={"scope_date": scope_date}
            )
        if credentials is None:
            raise CredentialsUnavailableError("No credentials available for signing")

        return (credentials.fingerprint, scope_date, region, service)
