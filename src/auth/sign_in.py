"""
Redirect sign-in initiation.

Gatekeeper -> Guard -> provider redirect. Every refusal happens before the
provider is contacted; once the browser follows the returned URL the flow
cannot be cancelled, so refusing up front is the only brake there is.
"""

import asyncio

from core.logger import get_logger
from providers.base_provider import IdentityProvider, ProviderConfig

from .attempt_guard import RedirectAttemptGuard
from .errors import AttemptLimitError, ProviderError, RedirectInProgressError, UnsafeOriginError
from .gatekeeper import DomainGatekeeper
from .reconciler import SessionFlags
from .session import SessionPublisher, SessionStatus

logger = get_logger(__name__)


def attempt_limit_message(retry_after: float) -> str:
    minutes = max(1, int(round(retry_after / 60))) if retry_after > 0 else 1
    return (
        "Too many sign-in attempts. Wait about "
        f"{minutes} minute{'s' if minutes != 1 else ''} and try again, "
        "or clear the sign-in state from the troubleshooting page."
    )


class RedirectSignIn:
    """
    Starts redirect-based sign-in when origin and circuit breaker allow it.

    Args:
        provider: Identity provider
        gatekeeper: Origin classifier
        guard: Redirect attempt circuit breaker
        flags: Durable session flags
        publisher: Session publisher
        provider_config: Account chooser parameters
        in_progress_ttl: Seconds during which a started redirect blocks a new one
        call_timeout: Upper bound for the provider's initiate call
    """

    def __init__(
        self,
        provider: IdentityProvider,
        gatekeeper: DomainGatekeeper,
        guard: RedirectAttemptGuard,
        flags: SessionFlags,
        publisher: SessionPublisher,
        provider_config: ProviderConfig,
        in_progress_ttl: float = 60.0,
        call_timeout: float = 10.0,
    ):
        self.provider = provider
        self.gatekeeper = gatekeeper
        self.guard = guard
        self.flags = flags
        self.publisher = publisher
        self.provider_config = provider_config
        self.in_progress_ttl = in_progress_ttl
        self.call_timeout = call_timeout

    def _refuse(self, message: str) -> None:
        if self.publisher.get_session().status is not SessionStatus.AUTHENTICATED:
            self.publisher.publish(SessionStatus.NONE, message=message)

    async def start(self, hostname: str) -> str:
        """
        Start a redirect sign-in from the page served at ``hostname``.

        Returns:
            URL the browser must navigate to

        Raises:
            UnsafeOriginError: Origin is not a production hostname
            AttemptLimitError: Circuit breaker is open
            RedirectInProgressError: A redirect was started moments ago
            ProviderError: The provider could not start the redirect
        """
        if not self.gatekeeper.is_redirect_safe(hostname):
            message = self.gatekeeper.blocked_message(hostname)
            logger.warning(f"Redirect refused for origin {hostname!r}")
            self._refuse(message)
            raise UnsafeOriginError(message, hostname=hostname)

        if not self.guard.may_attempt():
            retry_after = self.guard.retry_after()
            message = attempt_limit_message(retry_after)
            self._refuse(message)
            raise AttemptLimitError(message, retry_after=retry_after)

        age = self.flags.redirect_in_progress_age()
        if age is not None and age < self.in_progress_ttl:
            logger.warning(f"Redirect already in progress ({age:.1f}s ago), refusing duplicate")
            raise RedirectInProgressError("Sign-in is already in progress. Please wait a moment.")

        self.guard.record_attempt()
        self.flags.mark_redirect_started()
        self.publisher.publish(SessionStatus.AUTHENTICATING)

        try:
            url = await asyncio.wait_for(
                self.provider.initiate_redirect_sign_in(self.provider_config),
                timeout=self.call_timeout,
            )
        except Exception as e:
            logger.error(f"Could not start {self.provider.name} redirect: {e}")
            self.flags.clear_redirect_in_progress()
            error = e if isinstance(e, ProviderError) else ProviderError()
            self.publisher.publish(SessionStatus.NONE, message=error.user_message)
            raise error from e

        logger.info(f"Redirecting to {self.provider.name} for sign-in")
        return url
