"""
Providers Package

Identity provider implementations for redirect sign-in.

- LocalIdentityProvider: In-process provider for development and tests
- GoogleRedirectProvider: Google OAuth (imported from providers.google on demand)
"""

from .base_provider import (
    AuthStateCallback,
    IdentityProvider,
    PageContext,
    ProviderConfig,
    ProviderIdentity,
    Unsubscribe,
)
from .local_provider import LocalIdentityProvider

__all__ = [
    "IdentityProvider",
    "ProviderIdentity",
    "ProviderConfig",
    "PageContext",
    "AuthStateCallback",
    "Unsubscribe",
    "LocalIdentityProvider",
]
