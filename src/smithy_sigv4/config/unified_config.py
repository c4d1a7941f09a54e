"""
Unified configuration management for the signing SDK

Loads environment-specific signing and logging settings from a JSON
document (string, file, URL or default locations) or from environment
variables, and converts them into a SigningConfig.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Mapping, Union

import requests

from ..exceptions import InvalidConfigurationError
from ..signing.clock import ClockSource
from ..signing.key_cache import DEFAULT_RETENTION_DAYS, SigningKeyCache
from ..signing.signing_config import SIGNING_PROFILES, create_signing_config
from ..signing.types import DEFAULT_PRESIGN_EXPIRES, DEFAULT_UNSIGNED_HEADERS, MAX_PRESIGN_EXPIRES, SigningConfig

CONFIG_PATH_ENV = "SMITHY_SIGV4_CONFIG"
REGION_ENV = "AWS_REGION"
DEFAULT_REGION_ENV = "AWS_DEFAULT_REGION"
SERVICE_ENV = "SMITHY_SIGV4_SERVICE"
PROFILE_ENV = "SMITHY_SIGV4_PROFILE"
LOG_LEVEL_ENV = "SMITHY_SIGV4_LOG_LEVEL"

FROM_ENVIRONMENT = "environment"
PACKAGE_LOGGER = "smithy_sigv4"
OUTPUT_FORMATS = ("text", "json")


class UnifiedConfigError(InvalidConfigurationError):
    """Configuration loading and validation error"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, details={"code": code} if code else None)
        self.code = code


@dataclass
class UnifiedSigningConfig:
    """Signing settings for one environment"""
    region: str
    service: str
    profile: str = "standard"
    omit_session_token: bool = False
    unsigned_headers: List[str] = field(default_factory=lambda: sorted(DEFAULT_UNSIGNED_HEADERS))
    presign_expires: int = DEFAULT_PRESIGN_EXPIRES


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "WARNING"
    log_canonical_requests: bool = False


@dataclass
class KeyCacheConfig:
    """Signing key cache configuration"""
    retention_days: int = DEFAULT_RETENTION_DAYS


@dataclass
class EnvironmentConfig:
    """Environment-specific configuration"""
    signing: UnifiedSigningConfig
    logging: LoggingConfig
    key_cache: KeyCacheConfig


@dataclass
class DefaultConfig:
    """Default configuration values"""
    environment: str
    output_format: str = "text"


@dataclass
class UnifiedConfig:
    """Unified configuration structure"""
    config_format_version: str
    environments: Dict[str, EnvironmentConfig]
    defaults: DefaultConfig


class UnifiedConfigManager:
    """Unified configuration manager"""

    def __init__(self, config: UnifiedConfig, environment: Optional[str] = None):
        self.config = config
        self.current_environment = environment or config.defaults.environment
        self._validate()

    @classmethod
    def from_json(cls, json_string: str, environment: Optional[str] = None) -> 'UnifiedConfigManager':
        """Load unified configuration from JSON string"""
        try:
            data = json.loads(json_string)
            config = cls._parse_config_dict(data)
        except json.JSONDecodeError as e:
            raise UnifiedConfigError(f"Failed to parse configuration JSON: {e}", "PARSE_ERROR") from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UnifiedConfigError(f"Invalid configuration format: {e}", "INVALID_FORMAT") from e
        return cls(config, environment)

    @classmethod
    def from_file(cls, file_path: Union[str, Path], environment: Optional[str] = None) -> 'UnifiedConfigManager':
        """Load unified configuration from file"""
        try:
            path = Path(file_path)
            with open(path, 'r', encoding='utf-8') as f:
                json_string = f.read()
        except OSError as e:
            raise UnifiedConfigError(f"Failed to read configuration file: {e}", "FILE_ERROR") from e
        return cls.from_json(json_string, environment)

    @classmethod
    def from_url(cls, url: str, environment: Optional[str] = None, timeout: float = 10.0) -> 'UnifiedConfigManager':
        """Load unified configuration from URL"""
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise UnifiedConfigError(f"Failed to fetch configuration from URL: {e}", "URL_ERROR") from e
        return cls.from_json(response.text, environment)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> 'UnifiedConfigManager':
        """
        Build a single-environment configuration from environment variables.

        Reads AWS_REGION (or AWS_DEFAULT_REGION), SMITHY_SIGV4_SERVICE and the
        optional SMITHY_SIGV4_PROFILE and SMITHY_SIGV4_LOG_LEVEL.
        """
        environ = os.environ if environ is None else environ

        region = environ.get(REGION_ENV) or environ.get(DEFAULT_REGION_ENV)
        if not region:
            raise UnifiedConfigError(
                f"{REGION_ENV} or {DEFAULT_REGION_ENV} must be set", "MISSING_REGION"
            )
        service = environ.get(SERVICE_ENV)
        if not service:
            raise UnifiedConfigError(f"{SERVICE_ENV} must be set", "MISSING_SERVICE")

        env_config = EnvironmentConfig(
            signing=UnifiedSigningConfig(
                region=region,
                service=service,
                profile=environ.get(PROFILE_ENV, "standard"),
            ),
            logging=LoggingConfig(level=environ.get(LOG_LEVEL_ENV, "WARNING")),
            key_cache=KeyCacheConfig(),
        )
        config = UnifiedConfig(
            config_format_version="1.0",
            environments={FROM_ENVIRONMENT: env_config},
            defaults=DefaultConfig(environment=FROM_ENVIRONMENT),
        )
        return cls(config)

    @classmethod
    def load_default(cls, environment: Optional[str] = None) -> 'UnifiedConfigManager':
        """Load default configuration"""
        default_paths = [
            Path("config/smithy-sigv4.json"),
            Path.home() / ".smithy-sigv4" / "config.json",
        ]
        explicit = os.environ.get(CONFIG_PATH_ENV)
        if explicit:
            default_paths.insert(0, Path(explicit))

        for path in default_paths:
            if path.exists():
                return cls.from_file(path, environment)

        raise UnifiedConfigError("Default configuration file not found", "FILE_NOT_FOUND")

    def set_environment(self, environment: str) -> None:
        """Set current environment"""
        if environment not in self.config.environments:
            raise UnifiedConfigError(f"Environment '{environment}' not found", "ENVIRONMENT_NOT_FOUND")
        self.current_environment = environment

    def get_current_environment_config(self) -> EnvironmentConfig:
        """Get current environment configuration"""
        env_config = self.config.environments.get(self.current_environment)
        if not env_config:
            raise UnifiedConfigError(f"Environment '{self.current_environment}' not found", "ENVIRONMENT_NOT_FOUND")
        return env_config

    def to_signing_config(self, clock: Optional[ClockSource] = None, profile: Optional[str] = None) -> SigningConfig:
        """Convert the current environment into a SigningConfig, optionally under another profile"""
        signing = self.get_current_environment_config().signing

        builder = (create_signing_config()
                   .profile(profile or signing.profile)
                   .region(signing.region)
                   .service(signing.service)
                   .omit_session_token(signing.omit_session_token)
                   .unsigned_headers(signing.unsigned_headers))
        if clock is not None:
            builder.clock(clock)
        return builder.build()

    def create_key_cache(self, clock: Optional[ClockSource] = None) -> SigningKeyCache:
        """Create a signing key cache with the environment's retention"""
        retention = self.get_current_environment_config().key_cache.retention_days
        return SigningKeyCache(clock=clock, retention_days=retention)

    def apply_logging(self) -> None:
        """Apply the environment's logging level to the package logger"""
        logging_config = self.get_logging_config()
        level = logging.DEBUG if logging_config.log_canonical_requests else logging_config.level.upper()
        logging.getLogger(PACKAGE_LOGGER).setLevel(level)

    def list_environments(self) -> List[str]:
        """List available environments"""
        return list(self.config.environments.keys())

    def get_current_environment(self) -> str:
        """Get current environment name"""
        return self.current_environment

    def get_config(self) -> UnifiedConfig:
        """Get the full unified configuration"""
        return self.config

    def get_signing_settings(self) -> UnifiedSigningConfig:
        """Get signing settings for current environment"""
        return self.get_current_environment_config().signing

    def get_output_format(self) -> str:
        """Get the default CLI output format"""
        return self.config.defaults.output_format

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration for current environment"""
        return self.get_current_environment_config().logging

    def _validate(self) -> None:
        """Validate the configuration"""
        if self.current_environment not in self.config.environments:
            raise UnifiedConfigError(
                f"Default environment '{self.current_environment}' not found",
                "INVALID_DEFAULT_ENVIRONMENT"
            )

        if self.config.defaults.output_format not in OUTPUT_FORMATS:
            raise UnifiedConfigError(
                f"Unknown output format '{self.config.defaults.output_format}'",
                "INVALID_OUTPUT_FORMAT"
            )

        for env_name, env_config in self.config.environments.items():
            signing = env_config.signing
            if signing.profile not in SIGNING_PROFILES:
                raise UnifiedConfigError(
                    f"Environment '{env_name}' references unknown signing profile '{signing.profile}'",
                    "INVALID_SIGNING_PROFILE"
                )

            if not signing.region or not signing.service:
                raise UnifiedConfigError(
                    f"Environment '{env_name}' must set region and service",
                    "INVALID_SIGNING_CONFIG"
                )

            expires = signing.presign_expires
            if isinstance(expires, bool) or not isinstance(expires, int) or not 1 <= expires <= MAX_PRESIGN_EXPIRES:
                raise UnifiedConfigError(
                    f"Environment '{env_name}' presign_expires must be between 1 and {MAX_PRESIGN_EXPIRES}",
                    "INVALID_SIGNING_CONFIG"
                )

            if env_config.key_cache.retention_days < 0:
                raise UnifiedConfigError(
                    f"Environment '{env_name}' has invalid key cache retention",
                    "INVALID_KEY_CACHE_CONFIG"
                )

            if not isinstance(logging.getLevelName(env_config.logging.level.upper()), int):
                raise UnifiedConfigError(
                    f"Environment '{env_name}' has unknown logging level '{env_config.logging.level}'",
                    "INVALID_LOGGING_CONFIG"
                )

    @staticmethod
    def _parse_config_dict(data: Dict[str, Any]) -> UnifiedConfig:
        """Parse configuration dictionary into structured objects"""
        environments = {}
        for env_name, env_data in data['environments'].items():
            environments[env_name] = EnvironmentConfig(
                signing=UnifiedSigningConfig(**env_data['signing']),
                logging=LoggingConfig(**env_data.get('logging', {})),
                key_cache=KeyCacheConfig(**env_data.get('key_cache', {}))
            )

        defaults = DefaultConfig(**data['defaults'])

        return UnifiedConfig(
            config_format_version=data.get('config_format_version', '1.0'),
            environments=environments,
            defaults=defaults
        )


def create_unified_config(config: UnifiedConfig, environment: Optional[str] = None) -> UnifiedConfigManager:
    """Create unified configuration manager from configuration object"""
    return UnifiedConfigManager(config, environment)


def load_unified_config_from_json(json_string: str, environment: Optional[str] = None) -> UnifiedConfigManager:
    """Load unified configuration from JSON string"""
    return UnifiedConfigManager.from_json(json_string, environment)


def load_unified_config_from_file(file_path: Union[str, Path], environment: Optional[str] = None) -> UnifiedConfigManager:
    """Load unified configuration from file"""
    return UnifiedConfigManager.from_file(file_path, environment)


def load_unified_config_from_url(url: str, environment: Optional[str] = None) -> UnifiedConfigManager:
    """Load unified configuration from URL"""
    return UnifiedConfigManager.from_url(url, environment)


def load_default_unified_config(environment: Optional[str] = None) -> UnifiedConfigManager:
    """Load default unified configuration"""
    return UnifiedConfigManager.load_default(environment)
