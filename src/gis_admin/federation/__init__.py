"""Portal-to-server federated token handling."""

from .token_cache import (
    FederationTokenCache,
    FederatedTokenEntry,
    PortalTokenGenerator,
    is_server_federated,
    normalize_server_url,
)

__all__ = [
    'FederationTokenCache',
    'FederatedTokenEntry',
    'PortalTokenGenerator',
    'is_server_federated',
    'normalize_server_url',
]
