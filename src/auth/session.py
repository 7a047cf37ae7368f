"""
Session Publisher

Owns the single authoritative session value and pushes it to subscribers.
It also hosts the one listener on the provider's ambient auth-state
notifications (token refresh, sign-out in another tab, expiry), which must
not overwrite a redirect reconciliation that is still running.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from core.logger import get_logger
from providers.base_provider import IdentityProvider, ProviderIdentity, Unsubscribe

from .email_domain import domain_restriction_message, is_email_allowed_by_domain

logger = get_logger(__name__)

SESSION_UNDETERMINED_MESSAGE = "We couldn't confirm your sign-in status. Please sign in again."


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    NONE = "none"


@dataclass(frozen=True)
class ReconciledSession:
    status: SessionStatus = SessionStatus.UNKNOWN
    identity: ProviderIdentity | None = None
    message: str | None = None
    updated_at: float = field(default_factory=time.time)

    @property
    def is_loading(self) -> bool:
        return self.status in (SessionStatus.UNKNOWN, SessionStatus.AUTHENTICATING)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "identity": self.identity.to_dict() if self.identity else None,
            "message": self.message,
            "updated_at": self.updated_at,
        }


SessionCallback = Callable[[ReconciledSession], None]

# Sentinel for "no ambient notification buffered"
_NOTHING = object()


class SessionPublisher:
    """
    Single writer of the reconciled session.

    Args:
        provider: Identity provider used for sign-out and ambient notifications
        allowed_domains: Email domains permitted to hold a session
        clock: Time source for session timestamps
    """

    def __init__(
        self,
        provider: IdentityProvider,
        allowed_domains: list[str],
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.allowed_domains = list(allowed_domains)
        self._clock = clock
        self._session = ReconciledSession(updated_at=clock())
        self._subscribers: list[SessionCallback] = []

        # Ambient listener state
        self._provider_unsubscribe: Unsubscribe | None = None
        self._reconciling = 0
        self._pending_ambient: object = _NOTHING
        self._settle_handle: asyncio.TimerHandle | None = None
        self._background_tasks: set[asyncio.Task] = set()

    # ==================== Session Value ====================

    def get_session(self) -> ReconciledSession:
        return self._session

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Register a session observer.

        Returns:
            Function that removes the observer; calling it twice is harmless
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(
        self,
        status: SessionStatus,
        identity: ProviderIdentity | None = None,
        message: str | None = None,
    ) -> ReconciledSession:
        """
        Replace the session value and notify observers.

        Raises:
            ValueError: When asked to go back to UNKNOWN after leaving it
        """
        current = self._session
        if status is SessionStatus.UNKNOWN and current.status is not SessionStatus.UNKNOWN:
            raise ValueError(f"Session cannot return to unknown from {current.status.value}")

        if status is not SessionStatus.AUTHENTICATED:
            identity = None
        session = ReconciledSession(status=status, identity=identity, message=message, updated_at=self._clock())
        self._session = session
        logger.info(
            f"Session {current.status.value} -> {status.value}"
            + (f" ({identity.email})" if identity else "")
        )
        self._notify(session)
        return session

    def clear_message(self) -> None:
        """Drop the user-facing message once the toast surface has shown it."""
        if self._session.message:
            self._session = replace(self._session, message=None, updated_at=self._clock())
            self._notify(self._session)

    def _notify(self, session: ReconciledSession) -> None:
        for callback in list(self._subscribers):
            try:
                callback(session)
            except Exception as e:
                logger.error(f"Session subscriber failed: {e}", exc_info=True)

    async def sign_out(self) -> None:
        """Sign out at the provider, then publish NONE."""
        await self.provider.sign_out()
        self.publish(SessionStatus.NONE)

    # ==================== Reconciliation Gate ====================

    @property
    def is_reconciling(self) -> bool:
        return self._reconciling > 0

    def begin_reconciliation(self) -> None:
        self._reconciling += 1

    def end_reconciliation(self, apply_pending: bool) -> bool:
        """
        Close a reconciliation pass.

        Args:
            apply_pending: Apply the ambient notification buffered meanwhile

        Returns:
            True when a buffered notification was applied
        """
        self._reconciling = max(0, self._reconciling - 1)
        if self._reconciling:
            return False

        pending, self._pending_ambient = self._pending_ambient, _NOTHING
        if pending is _NOTHING:
            return False
        if not apply_pending:
            logger.debug("Dropping ambient auth-state notification superseded by redirect result")
            return False
        self._apply_ambient(pending)
        return True

    # ==================== Ambient Listener ====================

    def start_auth_listener(self, settle_timeout: float | None = None) -> None:
        """
        Subscribe to the provider's auth-state notifications.

        Args:
            settle_timeout: Publish NONE if the session is still UNKNOWN after this many seconds
        """
        if self._provider_unsubscribe is not None:
            return
        logger.info(f"Listening for {self.provider.name} auth-state changes")
        self._provider_unsubscribe = self.provider.subscribe_auth_state(self._on_auth_state)

        if settle_timeout is not None and self._session.status is SessionStatus.UNKNOWN:
            loop = asyncio.get_running_loop()
            self._settle_handle = loop.call_later(settle_timeout, self._settle_unknown)

    def stop_auth_listener(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        if self._provider_unsubscribe is not None:
            self._provider_unsubscribe()
            self._provider_unsubscribe = None
        for task in list(self._background_tasks):
            task.cancel()

    def _settle_unknown(self) -> None:
        self._settle_handle = None
        if self._session.status is SessionStatus.UNKNOWN and not self.is_reconciling:
            logger.warning("Auth state did not settle in time, treating session as signed out")
            self.publish(SessionStatus.NONE, message=SESSION_UNDETERMINED_MESSAGE)

    def _on_auth_state(self, identity: ProviderIdentity | None) -> None:
        logger.debug(f"Ambient auth state: {identity.email if identity else 'none'}")
        if self.is_reconciling:
            self._pending_ambient = identity
            return
        self._apply_ambient(identity)

    def _apply_ambient(self, identity: ProviderIdentity | None) -> None:
        current = self._session
        if identity is None:
            if current.status is SessionStatus.AUTHENTICATING:
                # Browser is on its way to the provider; the return leg decides.
                return
            if current.status is not SessionStatus.NONE:
                self.publish(SessionStatus.NONE)
            return

        if is_email_allowed_by_domain(identity.email, self.allowed_domains):
            if current.status is not SessionStatus.AUTHENTICATED or current.identity != identity:
                self.publish(SessionStatus.AUTHENTICATED, identity)
            return

        logger.warning(f"Ambient identity {identity.email} is outside the allowed domains, signing out")
        message = domain_restriction_message(self.allowed_domains)
        self.publish(SessionStatus.REJECTED, message=message)
        self.publish(SessionStatus.NONE, message=message)
        task = asyncio.get_running_loop().create_task(self._sign_out_rejected())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _sign_out_rejected(self) -> None:
        try:
            await self.provider.sign_out()
        except Exception as e:
            logger.error(f"Provider sign-out after domain rejection failed: {e}")
