"""
Domain Gatekeeper

Classifies the hosting origin and decides whether a redirect-based
sign-in may be attempted from it. The provider only returns redirects to
the production hostnames reliably; everywhere else the redirect comes
back without a result and the browser loops.
"""

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from core.logger import get_logger

logger = get_logger(__name__)

SANDBOX_SUFFIXES = ("replit.dev", "replit.app", "replit.com", "repl.co")
PROVIDER_HOSTING_SUFFIXES = ("firebaseapp.com", "web.app")
LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1", "0.0.0.0")

_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


class OriginKind(str, Enum):
    PRODUCTION = "production"
    STAGING_SANDBOX = "staging-sandbox"
    LOCAL = "local"
    UNKNOWN = "unknown"


class OriginFamily(str, Enum):
    SANDBOX = "sandbox"
    PROVIDER_HOSTING = "provider-hosting"
    LOOPBACK = "loopback"


@dataclass(frozen=True)
class OriginClassification:
    kind: OriginKind
    hostname: str
    family: OriginFamily | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "hostname": self.hostname,
            "family": self.family.value if self.family else None,
        }


def normalize_hostname(raw: str | None) -> str:
    """
    Reduce a hostname, host:port or full URL to a bare lower-case hostname.

    Returns '' for anything that is not a syntactically valid hostname.
    """
    if not raw or not isinstance(raw, str):
        return ""
    value = raw.strip().lower()
    if not value or any(ch.isspace() for ch in value):
        return ""

    try:
        if "://" in value:
            host = urlsplit(value).hostname or ""
        elif value.startswith("[") or value.count(":") == 1:
            host = urlsplit(f"//{value}").hostname or ""
        else:
            host = value
    except ValueError:
        return ""

    host = host.rstrip(".")
    if host == "::1":
        return host
    labels = host.split(".")
    if not host or not all(_LABEL.match(label) for label in labels):
        return ""
    return host


def _matches_suffix(host: str, suffixes: tuple[str, ...]) -> bool:
    return any(host == suffix or host.endswith(f".{suffix}") for suffix in suffixes)


class DomainGatekeeper:
    """
    Pure classifier of the current hostname.

    Args:
        production_hostnames: Exact hostnames where redirect sign-in is supported
    """

    def __init__(self, production_hostnames: list[str]):
        self.production_hostnames = tuple(
            host for host in (normalize_hostname(h) for h in production_hostnames) if host
        )

    @property
    def primary_hostname(self) -> str:
        return self.production_hostnames[0] if self.production_hostnames else ""

    def classify(self, hostname: str | None) -> OriginClassification:
        host = normalize_hostname(hostname)
        if not host:
            return OriginClassification(OriginKind.UNKNOWN, "")
        if host in self.production_hostnames:
            return OriginClassification(OriginKind.PRODUCTION, host)
        if host in LOOPBACK_HOSTS or host.endswith(".localhost"):
            return OriginClassification(OriginKind.LOCAL, host, OriginFamily.LOOPBACK)
        if _matches_suffix(host, SANDBOX_SUFFIXES):
            return OriginClassification(OriginKind.STAGING_SANDBOX, host, OriginFamily.SANDBOX)
        if _matches_suffix(host, PROVIDER_HOSTING_SUFFIXES):
            return OriginClassification(OriginKind.STAGING_SANDBOX, host, OriginFamily.PROVIDER_HOSTING)
        return OriginClassification(OriginKind.UNKNOWN, host)

    def is_redirect_safe(self, hostname: str | None) -> bool:
        classification = self.classify(hostname)
        safe = classification.kind is OriginKind.PRODUCTION
        logger.debug(f"Origin check: {classification.to_dict()} redirect_safe={safe}")
        return safe

    def blocked_message(self, hostname: str | None) -> str:
        """User-facing explanation for a refused redirect from this origin."""
        classification = self.classify(hostname)
        current = classification.hostname or (hostname or "").strip() or "an unknown address"
        required = f"https://{self.primary_hostname}" if self.primary_hostname else "the production site"

        if classification.family is OriginFamily.SANDBOX:
            where = f"development sandbox domains ({current})"
        elif classification.family is OriginFamily.PROVIDER_HOSTING:
            where = f"provider hosting domains ({current})"
        elif classification.family is OriginFamily.LOOPBACK:
            where = f"localhost ({current})"
        else:
            return f"Sign-in is only supported on {required}. Current domain: {current}"
        return f"Sign-in is blocked on {where}. Please open the app from {required} to sign in."
