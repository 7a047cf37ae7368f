"""
Google Provider Package

Redirect sign-in against Google OAuth 2.0 / OpenID Connect.
"""

from .config import GoogleSettings, get_google_settings
from .provider import GoogleRedirectProvider

__all__ = [
    "GoogleRedirectProvider",
    "GoogleSettings",
    "get_google_settings",
]
