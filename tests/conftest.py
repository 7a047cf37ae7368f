"""
Shared pytest fixtures for the Trek auth tests.

Provides settings, an in-memory store, a controllable clock, the local
identity provider and a fully wired runtime.
"""
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

# Add src/ to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from auth import MemoryStore  # noqa: E402
from core.config import Settings  # noqa: E402
from providers import LocalIdentityProvider  # noqa: E402
from services import AuthRuntime  # noqa: E402


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ==============================================================================
# Core Fixtures
# ==============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        identity_provider="local",
        storage_path=str(tmp_path / "auth_state.json"),
        production_hostnames="jointrek.com,www.jointrek.com",
        allowed_email_domains="ufl.edu",
        redirect_attempt_limit=3,
        redirect_attempt_window_seconds=300,
        redirect_in_progress_ttl_seconds=60,
        redirect_check_timeout_seconds=1.0,
        auth_state_timeout_seconds=1.0,
        client_cookie_secret="test-cookie-secret",
        client_cookie_secure=False,
    )


@pytest.fixture
def provider():
    return LocalIdentityProvider()


@pytest.fixture
def runtime(settings, store, provider, clock):
    return AuthRuntime(settings, store, provider=provider, clock=clock)


@pytest.fixture
def recorded_statuses(runtime):
    """Every session status the publisher emits, in order."""
    statuses = []
    runtime.publisher.subscribe(lambda session: statuses.append(session.status))
    return statuses


# ==============================================================================
# Flow Helpers
# ==============================================================================

def state_from_url(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def redirect_round_trip(runtime, provider):
    """Sign in from ``hostname``, pick ``email`` at the provider, load the callback page."""

    async def _round_trip(email: str, hostname: str = "jointrek.com"):
        url = await runtime.sign_in.start(hostname)
        callback = provider.authorize(state_from_url(url), email, display_name="Test Student")
        return await runtime.load_page(f"https://{hostname}{callback}")

    return _round_trip
