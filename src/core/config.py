"""
Application Configuration

Centralized configuration using Pydantic Settings for type-safe
environment variable management with validation.

This module contains ONLY provider-agnostic settings.
Provider-specific settings (Google OAuth) are managed by their respective providers.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the directory containing this file, then go up to the project root
_CONFIG_DIR = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Example: REDIRECT_ATTEMPT_LIMIT=5 or redirect_attempt_limit=5
    """

    model_config = SettingsConfigDict(
        env_file=_CONFIG_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    debug: bool = False
    cors_allowed_origins: str = "https://jointrek.com,https://www.jointrek.com"  # Comma-separated

    # Identity Provider
    identity_provider: Literal["local", "google"] = "local"
    provider_prompt_mode: str = "select_account"
    provider_domain_hint: str = "ufl.edu"  # Narrows the account chooser, does not enforce anything
    provider_call_timeout_seconds: float = 10.0
    local_request_ttl_seconds: float = 900.0  # Pending states and codes of the local provider

    # Origin and Domain Rules
    production_hostnames: str = "jointrek.com,www.jointrek.com"  # Comma-separated
    allowed_email_domains: str = "ufl.edu"  # Comma-separated

    # Redirect Circuit Breaker
    redirect_attempt_limit: int = 3
    redirect_attempt_window_seconds: float = 300.0  # 5 minutes
    redirect_in_progress_ttl_seconds: float = 60.0

    # Reconciliation Timeouts
    redirect_check_timeout_seconds: float = 5.0
    auth_state_timeout_seconds: float = 5.0

    # Durable redirect-tracking state (survives restarts of the app shell)
    storage_path: str = "./.trek_auth_state.json"

    # Browser Clients (each browser gets its own session, attempts and flags)
    client_cookie_name: str = "trek_auth_client"
    client_cookie_secret: str = ""  # Signs the client cookie; random per process when empty
    client_cookie_secure: bool = True
    client_cookie_max_age_seconds: int = 30 * 24 * 3600
    max_active_clients: int = 1000  # Least recently seen clients are unloaded beyond this

    # Route the client navigates to once a redirect sign-in is admitted
    landing_route: str = "/profile"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused throughout the application lifecycle.
    """
    return Settings()


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_production_hostnames(settings: Settings | None = None) -> list[str]:
    """Parse production hostnames from comma-separated string."""
    settings = settings or get_settings()
    return [host.lower() for host in _split_csv(settings.production_hostnames)]


def get_allowed_email_domains(settings: Settings | None = None) -> list[str]:
    """Parse allowed institutional email domains from comma-separated string."""
    settings = settings or get_settings()
    return [domain.lower().lstrip("@") for domain in _split_csv(settings.allowed_email_domains)]


def get_allowed_origins(settings: Settings | None = None) -> list[str]:
    """Parse CORS origins from comma-separated string."""
    settings = settings or get_settings()
    return _split_csv(settings.cors_allowed_origins)
