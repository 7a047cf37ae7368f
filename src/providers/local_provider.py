"""
Local Identity Provider

In-process stand-in for the external provider, used for local development
and tests. ``authorize`` plays the provider's account chooser: it accepts
the email the user "picked" and returns the callback URL the browser would
be sent back to.
"""

import secrets
import time
from collections.abc import Callable
from urllib.parse import urlencode

from auth.errors import ProviderError
from core.logger import get_logger

from .base_provider import (
    AuthStateCallback,
    IdentityProvider,
    PageContext,
    ProviderConfig,
    ProviderIdentity,
    Unsubscribe,
)

logger = get_logger(__name__)


class LocalIdentityProvider(IdentityProvider):
    """
    Args:
        authorize_url: Where initiate_redirect_sign_in sends the browser
        callback_url: Where authorize sends the browser back to
        request_ttl_seconds: Lifetime of pending states and unredeemed codes
        clock: Time source for request expiry
    """

    def __init__(
        self,
        authorize_url: str = "/api/auth/local/authorize",
        callback_url: str = "/api/auth/callback",
        request_ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.time,
    ):
        self.authorize_url = authorize_url
        self.callback_url = callback_url
        self.request_ttl_seconds = request_ttl_seconds
        self._clock = clock

        # Issue time alongside each entry; expired ones are pruned on access
        self._pending_states: dict[str, tuple[float, ProviderConfig]] = {}
        self._issued_codes: dict[str, tuple[float, ProviderIdentity]] = {}
        self._current: ProviderIdentity | None = None
        self._listeners: list[AuthStateCallback] = []

        # Call counters, handy for the debug page and tests
        self.initiate_calls = 0
        self.check_calls = 0
        self.sign_out_calls = 0

    @property
    def name(self) -> str:
        return "local"

    @property
    def current_identity(self) -> ProviderIdentity | None:
        return self._current

    @property
    def outstanding_requests(self) -> int:
        """Pending states plus unredeemed codes still held in memory."""
        self._prune_expired()
        return len(self._pending_states) + len(self._issued_codes)

    def _prune_expired(self) -> None:
        cutoff = self._clock() - self.request_ttl_seconds
        for entries in (self._pending_states, self._issued_codes):
            expired = [key for key, (issued_at, _) in entries.items() if issued_at <= cutoff]
            for key in expired:
                del entries[key]
            if expired:
                logger.debug(f"Dropped {len(expired)} expired local sign-in request(s)")

    async def initiate_redirect_sign_in(self, config: ProviderConfig) -> str:
        self.initiate_calls += 1
        self._prune_expired()
        state = secrets.token_urlsafe(16)
        self._pending_states[state] = (self._clock(), config)
        params = {"state": state, "prompt": config.prompt_mode}
        if config.domain_hint:
            params["hd"] = config.domain_hint
        return f"{self.authorize_url}?{urlencode(params)}"

    def authorize(self, state: str, email: str, display_name: str = "", verified: bool = True) -> str:
        """
        Complete the account chooser for a pending redirect.

        Returns:
            Callback URL carrying the one-time code

        Raises:
            ProviderError: Unknown, expired or already used state
        """
        self._prune_expired()
        if self._pending_states.pop(state, None) is None:
            raise ProviderError("Sign-in request expired. Please try again.")
        code = secrets.token_urlsafe(16)
        self._issued_codes[code] = (
            self._clock(),
            ProviderIdentity(
                email=email.strip(),
                verified=verified,
                display_name=display_name,
                uid=f"local-{secrets.token_hex(6)}",
            ),
        )
        return f"{self.callback_url}?{urlencode({'code': code, 'state': state})}"

    async def check_redirect_result(self, page: PageContext) -> ProviderIdentity | None:
        self.check_calls += 1
        error = page.param("error")
        if error:
            raise ProviderError(f"Sign-in was cancelled ({error}).")

        code = page.param("code")
        if not code:
            return None
        self._prune_expired()
        entry = self._issued_codes.pop(code, None)
        if entry is None:
            # Reloaded callback URL, or a code left unredeemed past its lifetime.
            logger.debug("Ignoring unknown or expired local sign-in code")
            return None

        _, identity = entry
        self._set_current(identity)
        return identity

    def subscribe_auth_state(self, callback: AuthStateCallback) -> Unsubscribe:
        self._listeners.append(callback)
        callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self._set_current(None)

    def expire_session(self) -> None:
        """Simulate token expiry or a sign-out in another tab."""
        self._set_current(None)

    def restore_session(self, identity: ProviderIdentity) -> None:
        """Simulate a provider session persisted from an earlier visit."""
        self._set_current(identity)

    def _set_current(self, identity: ProviderIdentity | None) -> None:
        changed = identity != self._current
        self._current = identity
        if not changed:
            return
        for callback in list(self._listeners):
            callback(identity)
