"""
Redirect Result Reconciler

Runs once per page load. Asks the provider whether the page is the return
leg of a sign-in redirect, validates the returned identity against the
institutional email domain and drives the session to a terminal state.

State machine: idle -> checking -> {admitted, rejected, absent}
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from core.logger import get_logger
from providers.base_provider import IdentityProvider, PageContext, ProviderIdentity

from .attempt_guard import RedirectAttemptGuard
from .email_domain import domain_restriction_message, is_email_allowed_by_domain
from .errors import DomainMismatchError, ProviderError, TrekAuthError
from .session import ReconciledSession, SessionPublisher, SessionStatus
from .storage import KeyValueStore, StorageKeys

logger = get_logger(__name__)

AUTH_FAILED_MESSAGE = "Authentication failed. Please try again."
AUTH_TIMEOUT_MESSAGE = "Sign-in is taking too long. Please try again."


class ReconcilerState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    ADMITTED = "admitted"
    REJECTED = "rejected"
    ABSENT = "absent"


@dataclass(frozen=True)
class ReconcileOutcome:
    state: ReconcilerState
    session: ReconciledSession
    navigate_to: str | None = None
    message: str | None = None
    identity: ProviderIdentity | None = None
    error: TrekAuthError | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "navigate_to": self.navigate_to,
            "message": self.message,
            "error": self.error.kind if self.error else None,
            "session": self.session.to_dict(),
        }


class SessionFlags:
    """
    Session-scoped redirect flags kept in durable storage.

    Only the reconciliation side writes these; the guard clears them on
    force reset.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    def mark_redirect_started(self) -> None:
        self.store.set(StorageKeys.REDIRECT_IN_PROGRESS, self._clock())
        self.store.delete(StorageKeys.REDIRECT_CHECKED)

    def clear_redirect_in_progress(self) -> None:
        self.store.delete(StorageKeys.REDIRECT_IN_PROGRESS)

    def redirect_in_progress_age(self) -> float | None:
        """Seconds since the in-flight redirect started, or None when none is in flight."""
        started = self.store.get(StorageKeys.REDIRECT_IN_PROGRESS)
        if not isinstance(started, (int, float)) or isinstance(started, bool):
            return None
        return max(0.0, self._clock() - started)

    def mark_page_loaded(self) -> None:
        self.store.set(StorageKeys.PAGE_LOADED, self._clock())

    def mark_redirect_checked(self) -> None:
        self.store.set(StorageKeys.REDIRECT_CHECKED, self._clock())

    def snapshot(self) -> dict:
        return self.store.snapshot(StorageKeys.SESSION_FLAGS)


class RedirectResultReconciler:
    """
    One page lifetime's redirect-result check.

    The provider is consulted at most once per instance; duplicate or
    concurrent ``reconcile`` calls (re-run mount effects) share the first
    call's outcome.

    Args:
        provider: Identity provider
        publisher: Session publisher, the only writer of the session value
        guard: Redirect attempt guard, reset on admission
        flags: Durable session flags
        allowed_domains: Email domains permitted to hold a session
        landing_route: Where the client navigates after admission
        check_timeout: Upper bound for the provider's redirect-result check
    """

    def __init__(
        self,
        provider: IdentityProvider,
        publisher: SessionPublisher,
        guard: RedirectAttemptGuard,
        flags: SessionFlags,
        allowed_domains: list[str],
        landing_route: str = "/profile",
        check_timeout: float = 5.0,
    ):
        self.provider = provider
        self.publisher = publisher
        self.guard = guard
        self.flags = flags
        self.allowed_domains = list(allowed_domains)
        self.landing_route = landing_route
        self.check_timeout = check_timeout

        self._state = ReconcilerState.IDLE
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def has_processed(self) -> bool:
        return self._task is not None

    async def reconcile(self, page: PageContext) -> ReconcileOutcome:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run(page))
        else:
            logger.debug("Redirect result already checked for this page, skipping")
        return await asyncio.shield(self._task)

    async def _run(self, page: PageContext) -> ReconcileOutcome:
        self._state = ReconcilerState.CHECKING
        self.flags.mark_page_loaded()
        self.publisher.begin_reconciliation()
        logger.info(f"Checking redirect result for {page.hostname or page.url}")

        outcome: ReconcileOutcome | None = None
        try:
            try:
                identity = await asyncio.wait_for(
                    self.provider.check_redirect_result(page),
                    timeout=self.check_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Redirect result check timed out after {self.check_timeout}s")
                outcome = self._fail(ProviderError(AUTH_TIMEOUT_MESSAGE))
            except ProviderError as e:
                logger.error(f"Provider rejected redirect result: {e.user_message}")
                outcome = self._fail(e)
            except Exception as e:
                logger.error(f"Redirect result check failed: {e}", exc_info=True)
                outcome = self._fail(ProviderError(AUTH_FAILED_MESSAGE))
            else:
                if identity is None:
                    outcome = self._absent()
                elif is_email_allowed_by_domain(identity.email, self.allowed_domains):
                    outcome = self._admit(identity)
                else:
                    outcome = await self._reject(identity)
        finally:
            self.flags.mark_redirect_checked()
            self.flags.clear_redirect_in_progress()
            if outcome is None:
                # Cancelled mid-check; never leave the machine in CHECKING.
                self._state = ReconcilerState.REJECTED
                self.publisher.end_reconciliation(apply_pending=False)

        self.publisher.end_reconciliation(apply_pending=outcome.state is ReconcilerState.ABSENT)
        if outcome.state is ReconcilerState.ABSENT:
            current = self.publisher.get_session()
            if current.is_loading:
                self.publisher.publish(SessionStatus.NONE)
            outcome = ReconcileOutcome(state=outcome.state, session=self.publisher.get_session())
        return outcome

    def _absent(self) -> ReconcileOutcome:
        logger.info("No redirect result on this page load")
        self._state = ReconcilerState.ABSENT
        return ReconcileOutcome(state=ReconcilerState.ABSENT, session=self.publisher.get_session())

    def _admit(self, identity: ProviderIdentity) -> ReconcileOutcome:
        logger.info(f"Redirect sign-in admitted for {identity.email}")
        self._state = ReconcilerState.ADMITTED
        self.guard.reset()
        session = self.publisher.publish(SessionStatus.AUTHENTICATED, identity)
        return ReconcileOutcome(
            state=ReconcilerState.ADMITTED,
            session=session,
            navigate_to=self.landing_route,
            identity=identity,
        )

    async def _reject(self, identity: ProviderIdentity) -> ReconcileOutcome:
        logger.warning(f"Redirect identity {identity.email} is outside the allowed domains, signing out")
        error = DomainMismatchError(domain_restriction_message(self.allowed_domains), email=identity.email)
        try:
            await asyncio.wait_for(self.provider.sign_out(), timeout=self.check_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Provider sign-out after domain rejection timed out after {self.check_timeout}s")
        except Exception as e:
            logger.error(f"Provider sign-out after domain rejection failed: {e}")
        self._state = ReconcilerState.REJECTED
        self.publisher.publish(SessionStatus.REJECTED, message=error.user_message)
        session = self.publisher.publish(SessionStatus.NONE, message=error.user_message)
        return ReconcileOutcome(
            state=ReconcilerState.REJECTED,
            session=session,
            message=error.user_message,
            error=error,
        )

    def _fail(self, error: ProviderError) -> ReconcileOutcome:
        self._state = ReconcilerState.REJECTED
        session = self.publisher.publish(SessionStatus.NONE, message=error.user_message)
        return ReconcileOutcome(
            state=ReconcilerState.REJECTED,
            session=session,
            message=error.user_message,
            error=error,
        )
