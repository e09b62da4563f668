"""
Configuration loading and hot reload.
"""

from .config_loader import SyncConfig, parse_document
from .reloader import ConfigReloader, OAuthTokenProvider

__all__ = [
    "SyncConfig",
    "parse_document",
    "ConfigReloader",
    "OAuthTokenProvider",
]
