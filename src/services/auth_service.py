"""
Auth Service

Wires the gatekeeper, guard, reconciler and publisher around one identity
provider chosen by configuration. Every browser client gets its own
runtime over its own namespace of the shared store; the registry of those
runtimes is the process-wide object.
"""

import secrets
import time
from collections import OrderedDict
from collections.abc import Callable

from itsdangerous import BadSignature, URLSafeSerializer

from auth import (
    AuthDiagnostics,
    DomainGatekeeper,
    JsonFileStore,
    KeyValueStore,
    NamespacedStore,
    ReconcileOutcome,
    RedirectAttemptGuard,
    RedirectResultReconciler,
    RedirectSignIn,
    SessionFlags,
    SessionPublisher,
)
from core.config import Settings, get_allowed_email_domains, get_production_hostnames, get_settings
from core.logger import get_logger
from providers import IdentityProvider, LocalIdentityProvider, PageContext, ProviderConfig

logger = get_logger(__name__)

ProviderFactory = Callable[[KeyValueStore], IdentityProvider]


def create_identity_provider(
    settings: Settings,
    store: KeyValueStore,
    clock: Callable[[], float] = time.time,
) -> IdentityProvider:
    """
    Create the identity provider named by ``settings.identity_provider``.

    Raises:
        ValueError: Unknown provider name
    """
    provider_type = settings.identity_provider

    if provider_type == "local":
        return LocalIdentityProvider(request_ttl_seconds=settings.local_request_ttl_seconds, clock=clock)
    if provider_type == "google":
        from providers.google import GoogleRedirectProvider, get_google_settings

        return GoogleRedirectProvider(get_google_settings(), store, clock=clock)
    raise ValueError(f"Unknown identity_provider: {provider_type}. Supported: local, google")


class AuthRuntime:
    """
    Auth state of one browser client.

    The store, guard and publisher live as long as the client. A new
    reconciler is created for every page load, since the redirect check
    runs once per page lifetime.
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        provider: IdentityProvider | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store
        self.provider = provider or create_identity_provider(settings, store, clock=clock)
        self.allowed_domains = get_allowed_email_domains(settings)

        self.gatekeeper = DomainGatekeeper(get_production_hostnames(settings))
        self.guard = RedirectAttemptGuard(
            store,
            max_attempts=settings.redirect_attempt_limit,
            window_seconds=settings.redirect_attempt_window_seconds,
            clock=clock,
        )
        self.flags = SessionFlags(store, clock=clock)
        self.publisher = SessionPublisher(self.provider, self.allowed_domains, clock=clock)
        self.sign_in = RedirectSignIn(
            provider=self.provider,
            gatekeeper=self.gatekeeper,
            guard=self.guard,
            flags=self.flags,
            publisher=self.publisher,
            provider_config=ProviderConfig(
                prompt_mode=settings.provider_prompt_mode,
                domain_hint=settings.provider_domain_hint,
            ),
            in_progress_ttl=settings.redirect_in_progress_ttl_seconds,
            call_timeout=settings.provider_call_timeout_seconds,
        )
        self.reconciler: RedirectResultReconciler | None = None
        self.diagnostics = AuthDiagnostics(
            gatekeeper=self.gatekeeper,
            guard=self.guard,
            flags=self.flags,
            publisher=self.publisher,
            current_reconciler=lambda: self.reconciler,
        )

    def start(self) -> None:
        """Attach the ambient auth-state listener. Must run inside the event loop."""
        self.publisher.start_auth_listener(settle_timeout=self.settings.auth_state_timeout_seconds)

    def stop(self) -> None:
        self.publisher.stop_auth_listener()

    def new_page(self) -> RedirectResultReconciler:
        """Begin a new page lifetime."""
        self.reconciler = RedirectResultReconciler(
            provider=self.provider,
            publisher=self.publisher,
            guard=self.guard,
            flags=self.flags,
            allowed_domains=self.allowed_domains,
            landing_route=self.settings.landing_route,
            check_timeout=self.settings.redirect_check_timeout_seconds,
        )
        return self.reconciler

    async def load_page(self, url: str) -> ReconcileOutcome:
        """Run the page-load reconciliation for ``url`` in a fresh page lifetime."""
        reconciler = self.new_page()
        return await reconciler.reconcile(PageContext.from_url(url))


class AuthRuntimeRegistry:
    """
    One AuthRuntime per browser client.

    Clients are identified by a random id carried in a signed cookie. Each
    runtime sees only its own namespace of the shared store, so sessions,
    attempt budgets and redirect flags never leak between browsers. Only the
    ``max_active_clients`` most recently seen runtimes stay in memory;
    durable state of unloaded clients stays in the store.

    Args:
        settings: Application settings
        store: Backing store shared by all clients
        provider_factory: Builds a client's provider from its namespaced store
        clock: Time source shared by every runtime
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        provider_factory: ProviderFactory | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store
        self._provider_factory = provider_factory or (
            lambda client_store: create_identity_provider(settings, client_store, clock=clock)
        )
        self._clock = clock

        secret = settings.client_cookie_secret
        if not secret:
            logger.warning("CLIENT_COOKIE_SECRET is not set, client cookies will not survive a restart")
            secret = secrets.token_hex(32)
        self._serializer = URLSafeSerializer(secret, salt="trek-auth-client")

        self._runtimes: OrderedDict[str, AuthRuntime] = OrderedDict()
        self._started = False

    def __len__(self) -> int:
        return len(self._runtimes)

    def issue_client_id(self) -> tuple[str, str]:
        """
        Create a new client id.

        Returns:
            (client_id, signed cookie value)
        """
        client_id = secrets.token_urlsafe(16)
        return client_id, self._serializer.dumps(client_id)

    def client_id_from_cookie(self, cookie: str | None) -> str | None:
        """Verify a client cookie; None when missing or tampered with."""
        if not cookie:
            return None
        try:
            client_id = self._serializer.loads(cookie)
        except BadSignature:
            logger.warning("Ignoring client cookie with a bad signature")
            return None
        return client_id if isinstance(client_id, str) and client_id else None

    def get(self, client_id: str) -> AuthRuntime:
        """Get or create the runtime of ``client_id``."""
        runtime = self._runtimes.get(client_id)
        if runtime is not None:
            self._runtimes.move_to_end(client_id)
            return runtime

        client_store = NamespacedStore(self.store, client_id)
        runtime = AuthRuntime(
            self.settings,
            client_store,
            provider=self._provider_factory(client_store),
            clock=self._clock,
        )
        self._runtimes[client_id] = runtime
        if self._started:
            runtime.start()

        while len(self._runtimes) > self.settings.max_active_clients:
            _, evicted = self._runtimes.popitem(last=False)
            evicted.stop()
            logger.info("Unloaded least recently seen client runtime")
        return runtime

    def start(self) -> None:
        """Attach listeners for loaded and future runtimes. Must run inside the event loop."""
        self._started = True
        for runtime in self._runtimes.values():
            runtime.start()

    def stop(self) -> None:
        self._started = False
        for runtime in self._runtimes.values():
            runtime.stop()


# Global registry instance
_registry: AuthRuntimeRegistry | None = None


def get_runtime_registry(settings: Settings | None = None) -> AuthRuntimeRegistry:
    """
    Get or create the client runtime registry based on configuration.

    Args:
        settings: Application settings (uses defaults if not provided)

    Returns:
        Runtime registry instance
    """
    global _registry

    if _registry is None:
        settings = settings or get_settings()
        _registry = AuthRuntimeRegistry(settings, JsonFileStore(settings.storage_path))
        logger.info(
            f"Runtime registry created (provider={settings.identity_provider}, state={settings.storage_path})"
        )

    return _registry


def set_runtime_registry(registry: AuthRuntimeRegistry | None) -> None:
    """Replace the global registry (None drops it so the next call rebuilds)."""
    global _registry
    _registry = registry
