"""
Authentication error taxonomy.

Each error carries a machine-readable ``kind`` and a ``user_message``
suitable for the toast surface.
"""


class TrekAuthError(Exception):
    """Base class for sign-in and reconciliation failures."""

    kind = "auth_error"

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message


class UnsafeOriginError(TrekAuthError):
    """Redirect sign-in refused because the page is not served from production."""

    kind = "unsafe_origin"

    def __init__(self, user_message: str, hostname: str):
        super().__init__(user_message)
        self.hostname = hostname


class AttemptLimitError(TrekAuthError):
    """Redirect sign-in refused by the circuit breaker."""

    kind = "attempt_limit"

    def __init__(self, user_message: str, retry_after: float):
        super().__init__(user_message)
        self.retry_after = retry_after


class RedirectInProgressError(TrekAuthError):
    """A redirect was started moments ago and has not come back yet."""

    kind = "redirect_in_progress"


class DomainMismatchError(TrekAuthError):
    """Provider identity is outside the institutional email domain."""

    kind = "domain_mismatch"

    def __init__(self, user_message: str, email: str):
        super().__init__(user_message)
        self.email = email


class ProviderError(TrekAuthError):
    """The identity provider failed or could not be reached."""

    kind = "provider_error"

    def __init__(self, user_message: str = "Authentication failed. Please try again."):
        super().__init__(user_message)
