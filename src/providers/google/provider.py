"""
Google Redirect Provider

Authorization-code flow against Google's OAuth endpoints. The pending
state and nonce, and the signed-in identity, live in the durable store so
they survive the navigation to Google and back.
"""

import asyncio
import secrets
import time
from collections.abc import Callable

from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.requests_client import OAuth2Session
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from auth.errors import ProviderError
from auth.storage import KeyValueStore
from core.logger import get_logger

from ..base_provider import (
    AuthStateCallback,
    IdentityProvider,
    PageContext,
    ProviderConfig,
    ProviderIdentity,
    Unsubscribe,
)
from .config import GoogleSettings

logger = get_logger(__name__)

AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

PENDING_KEY = "trek_google_pending"
IDENTITY_KEY = "trek_google_identity"


class GoogleRedirectProvider(IdentityProvider):
    """
    Args:
        settings: Google OAuth client settings
        store: Durable storage shared with the auth package
        clock: Time source for identity expiry
    """

    def __init__(
        self,
        settings: GoogleSettings,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store
        self._clock = clock
        self._serializer = URLSafeTimedSerializer(settings.google_state_secret, salt="trek-google-oauth-state")
        self._listeners: list[AuthStateCallback] = []

    @property
    def name(self) -> str:
        return "google"

    def _oauth_session(self, scopes: tuple[str, ...]) -> OAuth2Session:
        return OAuth2Session(
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            scope=list(scopes),
            redirect_uri=self.settings.google_redirect_uri,
        )

    # ==================== Redirect ====================

    async def initiate_redirect_sign_in(self, config: ProviderConfig) -> str:
        nonce = secrets.token_urlsafe(16)
        state = self._serializer.dumps({"nonce": nonce})
        params = {"prompt": config.prompt_mode}
        if config.domain_hint:
            params["hd"] = config.domain_hint

        oauth = self._oauth_session(config.scopes)
        url, _ = oauth.create_authorization_url(AUTHORIZATION_ENDPOINT, state=state, nonce=nonce, **params)
        self.store.set(PENDING_KEY, {"state": state, "nonce": nonce, "scopes": list(config.scopes)})
        logger.info(f"Google authorization URL created (hd={config.domain_hint or '-'})")
        return url

    async def check_redirect_result(self, page: PageContext) -> ProviderIdentity | None:
        error = page.param("error")
        if error:
            self.store.delete(PENDING_KEY)
            raise ProviderError(f"Google sign-in was not completed ({error}).")

        code = page.param("code")
        if not code:
            return None

        pending = self.store.get(PENDING_KEY)
        if not isinstance(pending, dict):
            # Callback URL reloaded after the code was redeemed.
            logger.debug("Google callback without a pending redirect, ignoring")
            return None

        state = page.param("state")
        if state != pending.get("state"):
            self.store.delete(PENDING_KEY)
            raise ProviderError("Invalid login state. Please try again.")
        try:
            self._serializer.loads(state, max_age=self.settings.google_state_max_age_seconds)
        except SignatureExpired as e:
            self.store.delete(PENDING_KEY)
            raise ProviderError("Sign-in request expired. Please try again.") from e
        except BadSignature as e:
            self.store.delete(PENDING_KEY)
            raise ProviderError("Invalid login state. Please try again.") from e

        self.store.delete(PENDING_KEY)
        scopes = tuple(pending.get("scopes") or ProviderConfig().scopes)
        identity, expires_at = await asyncio.to_thread(self._exchange_code, code, pending.get("nonce"), scopes)

        self.store.set(IDENTITY_KEY, {"identity": identity.to_dict(), "expires_at": expires_at})
        self._notify(identity)
        return identity

    def _exchange_code(
        self,
        code: str,
        expected_nonce: str | None,
        scopes: tuple[str, ...],
    ) -> tuple[ProviderIdentity, float]:
        oauth = self._oauth_session(scopes)
        try:
            token = oauth.fetch_token(TOKEN_ENDPOINT, code=code, redirect_uri=self.settings.google_redirect_uri)
        except OAuthError as e:
            detail = getattr(e, "description", "") or getattr(e, "error", "") or str(e)
            logger.error(f"Google token exchange failed: {detail}")
            raise ProviderError("Login failed. Please try again.") from e

        raw_id_token = token.get("id_token")
        if not raw_id_token:
            raise ProviderError("Login failed: missing id_token.")

        try:
            idinfo = google_id_token.verify_oauth2_token(
                raw_id_token,
                google_requests.Request(),
                self.settings.google_client_id,
            )
        except ValueError as e:
            logger.error(f"Google id_token verification failed: {e}")
            raise ProviderError("Login failed: invalid id_token.") from e

        if idinfo.get("iss") not in GOOGLE_ISSUERS:
            raise ProviderError("Login failed: invalid issuer.")
        if expected_nonce and idinfo.get("nonce") != expected_nonce:
            raise ProviderError("Login failed: invalid nonce.")

        identity = ProviderIdentity(
            email=idinfo.get("email") or "",
            verified=bool(idinfo.get("email_verified")),
            display_name=idinfo.get("name") or idinfo.get("given_name") or "",
            uid=idinfo.get("sub") or "",
        )
        return identity, float(idinfo.get("exp") or self._clock() + 3600)

    # ==================== Session ====================

    def _stored_identity(self) -> ProviderIdentity | None:
        record = self.store.get(IDENTITY_KEY)
        if not isinstance(record, dict) or not isinstance(record.get("identity"), dict):
            return None
        if float(record.get("expires_at") or 0) <= self._clock():
            logger.info("Stored Google identity expired")
            self.store.delete(IDENTITY_KEY)
            return None
        data = record["identity"]
        return ProviderIdentity(
            email=data.get("email", ""),
            verified=bool(data.get("verified")),
            display_name=data.get("display_name", ""),
            uid=data.get("uid", ""),
        )

    def subscribe_auth_state(self, callback: AuthStateCallback) -> Unsubscribe:
        self._listeners.append(callback)
        callback(self._stored_identity())

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sign_out(self) -> None:
        self.store.delete(IDENTITY_KEY, PENDING_KEY)
        self._notify(None)

    def _notify(self, identity: ProviderIdentity | None) -> None:
        for callback in list(self._listeners):
            callback(identity)
