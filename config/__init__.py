"""
Identity Service Configuration Module

Provides centralized configuration management for the identity service.
"""

from .schema import ServiceConfig, IdentityConfig, PermissionConfig, StoreConfig
from .loader import load_config, load_config_from_file

__all__ = [
    "ServiceConfig",
    "IdentityConfig",
    "PermissionConfig",
    "StoreConfig",
    "load_config",
    "load_config_from_file",
]
