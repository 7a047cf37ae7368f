"""
Authentication Module

Redirect sign-in reconciliation in four stages:
1. Domain Gatekeeper - Redirect only from production hostnames
2. Redirect Attempt Guard - Sliding-window circuit breaker against redirect loops
3. Redirect Result Reconciler - Validate the returned identity on page load
4. Session Publisher - Single source of truth for the signed-in user
"""

from .attempt_guard import RedirectAttemptGuard
from .diagnostics import AuthDiagnostics
from .email_domain import domain_restriction_message, is_email_allowed_by_domain
from .errors import (
    AttemptLimitError,
    DomainMismatchError,
    ProviderError,
    RedirectInProgressError,
    TrekAuthError,
    UnsafeOriginError,
)
from .gatekeeper import DomainGatekeeper, OriginClassification, OriginFamily, OriginKind
from .reconciler import ReconcileOutcome, ReconcilerState, RedirectResultReconciler, SessionFlags
from .session import ReconciledSession, SessionPublisher, SessionStatus
from .sign_in import RedirectSignIn
from .storage import JsonFileStore, KeyValueStore, MemoryStore, NamespacedStore, StorageKeys

__all__ = [
    # Gatekeeper
    "DomainGatekeeper",
    "OriginClassification",
    "OriginFamily",
    "OriginKind",
    # Guard
    "RedirectAttemptGuard",
    # Reconciler
    "RedirectResultReconciler",
    "ReconcilerState",
    "ReconcileOutcome",
    "SessionFlags",
    # Session
    "SessionPublisher",
    "ReconciledSession",
    "SessionStatus",
    # Sign-in and diagnostics
    "RedirectSignIn",
    "AuthDiagnostics",
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "NamespacedStore",
    "StorageKeys",
    # Email checks
    "is_email_allowed_by_domain",
    "domain_restriction_message",
    # Errors
    "TrekAuthError",
    "UnsafeOriginError",
    "AttemptLimitError",
    "RedirectInProgressError",
    "DomainMismatchError",
    "ProviderError",
]
