"""
Abstract Identity Provider Interface

Defines the interface for external identity providers that authenticate
users through a browser redirect. The provider is an opaque capability:
it starts redirects, reports whether a page load is the return leg of one,
pushes ambient auth-state notifications and signs users out.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse


@dataclass(frozen=True)
class ProviderIdentity:
    """Identity asserted by the provider after a successful sign-in."""
    email: str
    verified: bool = False
    display_name: str = ""
    uid: str = ""

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "verified": self.verified,
            "display_name": self.display_name,
            "uid": self.uid,
        }


@dataclass(frozen=True)
class ProviderConfig:
    """
    Parameters passed to the provider's account chooser.

    domain_hint only narrows which accounts the chooser offers; the
    reconciler still validates the returned email afterwards.
    """
    prompt_mode: str = "select_account"
    domain_hint: str = ""
    scopes: tuple[str, ...] = ("openid", "email", "profile")


@dataclass(frozen=True)
class PageContext:
    """The page being loaded, as seen by the provider's redirect-result check."""
    url: str
    query: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_url(cls, url: str) -> "PageContext":
        parsed = urlparse(url)
        query = {key: values[0] for key, values in parse_qs(parsed.query).items() if values}
        return cls(url=url, query=query)

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    def param(self, name: str) -> str | None:
        return self.query.get(name)


AuthStateCallback = Callable[[ProviderIdentity | None], None]
Unsubscribe = Callable[[], None]


class IdentityProvider(ABC):
    """
    Abstract base class for redirect-capable identity providers.

    Implementations hold no session policy: domain restrictions,
    loop protection and session publishing live in the auth package.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name used in logs and diagnostics."""
        pass

    @abstractmethod
    async def initiate_redirect_sign_in(self, config: ProviderConfig) -> str:
        """
        Start a redirect-based sign-in.

        Args:
            config: Account chooser parameters

        Returns:
            URL the browser must navigate to
        """
        pass

    @abstractmethod
    async def check_redirect_result(self, page: PageContext) -> ProviderIdentity | None:
        """
        Check whether the page load is returning from a sign-in redirect.

        Args:
            page: The page being loaded

        Returns:
            The signed-in identity, or None when the page is not a redirect return

        Raises:
            ProviderError: The provider rejected the sign-in or could not be reached
        """
        pass

    @abstractmethod
    def subscribe_auth_state(self, callback: AuthStateCallback) -> Unsubscribe:
        """
        Subscribe to ambient auth-state notifications.

        The callback fires with the current identity (or None) right after
        subscribing and again on every provider-side change.

        Returns:
            Function that removes the subscription
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the provider-side session."""
        pass
