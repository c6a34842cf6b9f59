"""
Key provider implementations for resolving JWT signing keys.

This package contains implementations of the KeyProvider protocol,
together with the provider metadata they are loaded alongside.
"""

from .discovery import DiscoveryKeyProvider, ProviderMetadata, require_domain

__all__ = ["DiscoveryKeyProvider", "ProviderMetadata", "require_domain"]
