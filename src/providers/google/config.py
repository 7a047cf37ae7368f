"""
Google Provider Configuration

Google-specific settings for the redirect sign-in provider.
These settings are only loaded when IDENTITY_PROVIDER=google.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the directory for .env file (project root)
_CONFIG_DIR = Path(__file__).parent.parent.parent.parent


class GoogleSettings(BaseSettings):
    """
    Google OAuth client settings.

    Loaded from environment variables when the Google provider is used.
    """

    model_config = SettingsConfigDict(
        env_file=_CONFIG_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str = "https://jointrek.com/api/auth/callback"

    # Signs the OAuth state parameter (generate with: openssl rand -hex 32)
    google_state_secret: str

    # Pending redirects older than this are refused on return
    google_state_max_age_seconds: int = 900


@lru_cache
def get_google_settings() -> GoogleSettings:
    """Get cached Google settings."""
    return GoogleSettings()
