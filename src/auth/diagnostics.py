"""
Diagnostic surface for the troubleshooting page.
"""

from collections.abc import Callable

from core.logger import get_logger

from .attempt_guard import RedirectAttemptGuard
from .gatekeeper import DomainGatekeeper
from .reconciler import RedirectResultReconciler, SessionFlags
from .session import SessionPublisher

logger = get_logger(__name__)


class AuthDiagnostics:
    """Read-only state snapshot plus the last-resort reset."""

    def __init__(
        self,
        gatekeeper: DomainGatekeeper,
        guard: RedirectAttemptGuard,
        flags: SessionFlags,
        publisher: SessionPublisher,
        current_reconciler: Callable[[], RedirectResultReconciler | None],
    ):
        self.gatekeeper = gatekeeper
        self.guard = guard
        self.flags = flags
        self.publisher = publisher
        self._current_reconciler = current_reconciler

    def snapshot(self, hostname: str | None = None) -> dict:
        reconciler = self._current_reconciler()
        attempts = self.guard.attempts()
        return {
            "session": self.publisher.get_session().to_dict(),
            "reconciler": reconciler.state.value if reconciler else None,
            "origin": self.gatekeeper.classify(hostname).to_dict(),
            "redirect_safe": self.gatekeeper.is_redirect_safe(hostname),
            "attempts": {
                "count": len(attempts),
                "limit": self.guard.max_attempts,
                "window_seconds": self.guard.window_seconds,
                "timestamps": attempts,
                "may_attempt": len(attempts) < self.guard.max_attempts,
                "retry_after": self.guard.retry_after(),
            },
            "flags": self.flags.snapshot(),
        }

    def force_reset(self) -> None:
        logger.warning("Force reset requested from diagnostics")
        self.guard.force_reset()
