"""
Configuration management for the SigV4 signing SDK

This module provides unified configuration management: environment-specific
signing, logging and key cache settings loaded from JSON or the environment.
"""

from .unified_config import (
    UnifiedConfig,
    UnifiedConfigManager,
    EnvironmentConfig,
    UnifiedSigningConfig,
    LoggingConfig,
    KeyCacheConfig,
    DefaultConfig,
    UnifiedConfigError,
    create_unified_config,
    load_unified_config_from_json,
    load_unified_config_from_file,
    load_unified_config_from_url,
    load_default_unified_config,
)

__all__ = [
    'UnifiedConfig',
    'UnifiedConfigManager',
    'EnvironmentConfig',
    'UnifiedSigningConfig',
    'LoggingConfig',
    'KeyCacheConfig',
    'DefaultConfig',
    'UnifiedConfigError',
    'create_unified_config',
    'load_unified_config_from_json',
    'load_unified_config_from_file',
    'load_unified_config_from_url',
    'load_default_unified_config',
]
