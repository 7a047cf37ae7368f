"""
Unit tests for the page-load redirect result reconciler.
"""
import asyncio

import pytest

from auth import (
    DomainMismatchError,
    RedirectResultReconciler,
    ReconcilerState,
    SessionFlags,
    SessionPublisher,
    SessionStatus,
    StorageKeys,
)
from auth.reconciler import AUTH_FAILED_MESSAGE, AUTH_TIMEOUT_MESSAGE
from providers import LocalIdentityProvider, PageContext, ProviderConfig, ProviderIdentity
from services import AuthRuntime

from conftest import state_from_url

STUDENT = ProviderIdentity(email="student@ufl.edu", verified=True, uid="u1")


class SlowProvider(LocalIdentityProvider):
    async def check_redirect_result(self, page):
        self.check_calls += 1
        await asyncio.sleep(10)


class BrokenProvider(LocalIdentityProvider):
    async def check_redirect_result(self, page):
        self.check_calls += 1
        raise RuntimeError("network unreachable")


class HangingSignOutProvider(LocalIdentityProvider):
    async def sign_out(self):
        self.sign_out_calls += 1
        await asyncio.sleep(3600)


class AmbientDuringCheckProvider(LocalIdentityProvider):
    """Reports a restored session while the redirect check is running."""

    async def check_redirect_result(self, page):
        self.check_calls += 1
        self.restore_session(STUDENT)
        return None


def _reconciler_for(provider, runtime, check_timeout=1.0):
    return RedirectResultReconciler(
        provider=provider,
        publisher=SessionPublisher(provider, ["ufl.edu"]),
        guard=runtime.guard,
        flags=runtime.flags,
        allowed_domains=["ufl.edu"],
        check_timeout=check_timeout,
    )


async def _callback_page(runtime, provider, email):
    url = await runtime.sign_in.start("jointrek.com")
    callback = provider.authorize(state_from_url(url), email)
    return PageContext.from_url(f"https://jointrek.com{callback}")


# ==============================================================================
# Outcomes
# ==============================================================================

def test_admits_institutional_identity(runtime, redirect_round_trip, store):
    outcome = asyncio.run(redirect_round_trip("student@ufl.edu"))

    assert outcome.state is ReconcilerState.ADMITTED
    assert outcome.navigate_to == "/profile"
    assert outcome.identity.email == "student@ufl.edu"
    assert outcome.session.status is SessionStatus.AUTHENTICATED
    assert runtime.guard.attempts() == []
    assert store.get(StorageKeys.REDIRECT_IN_PROGRESS) is None
    assert store.get(StorageKeys.REDIRECT_CHECKED) is not None
    assert store.get(StorageKeys.PAGE_LOADED) is not None


def test_plain_page_load_is_absent(runtime, provider):
    outcome = asyncio.run(runtime.load_page("https://jointrek.com/"))

    assert outcome.state is ReconcilerState.ABSENT
    assert outcome.session.status is SessionStatus.NONE
    assert outcome.navigate_to is None
    assert provider.check_calls == 1


def test_rejects_outside_domain(runtime, provider, redirect_round_trip, recorded_statuses):
    outcome = asyncio.run(redirect_round_trip("someone@gmail.com"))

    assert outcome.state is ReconcilerState.REJECTED
    assert isinstance(outcome.error, DomainMismatchError)
    assert outcome.error.email == "someone@gmail.com"
    assert "@ufl.edu" in outcome.message
    assert outcome.session.status is SessionStatus.NONE
    assert provider.sign_out_calls == 1
    assert provider.current_identity is None
    assert recorded_statuses == [SessionStatus.AUTHENTICATING, SessionStatus.REJECTED, SessionStatus.NONE]
    # Rejection does not forgive the attempt
    assert len(runtime.guard.attempts()) == 1


def test_provider_error_fails_closed(runtime):
    async def scenario():
        await runtime.sign_in.start("jointrek.com")
        return await runtime.load_page("https://jointrek.com/api/auth/callback?error=access_denied")

    outcome = asyncio.run(scenario())

    assert outcome.state is ReconcilerState.REJECTED
    assert outcome.error.kind == "provider_error"
    assert "cancelled" in outcome.message
    assert outcome.session.status is SessionStatus.NONE
    assert outcome.to_dict()["error"] == "provider_error"


def test_check_timeout_fails_closed(runtime):
    reconciler = _reconciler_for(SlowProvider(), runtime, check_timeout=0.01)
    outcome = asyncio.run(reconciler.reconcile(PageContext.from_url("https://jointrek.com/")))

    assert outcome.state is ReconcilerState.REJECTED
    assert outcome.message == AUTH_TIMEOUT_MESSAGE
    assert outcome.session.status is SessionStatus.NONE
    assert reconciler.state is ReconcilerState.REJECTED


def test_unexpected_provider_failure_fails_closed(runtime):
    reconciler = _reconciler_for(BrokenProvider(), runtime)
    outcome = asyncio.run(reconciler.reconcile(PageContext.from_url("https://jointrek.com/")))

    assert outcome.state is ReconcilerState.REJECTED
    assert outcome.message == AUTH_FAILED_MESSAGE


def test_stalled_sign_out_still_settles(runtime):
    provider = HangingSignOutProvider()
    reconciler = _reconciler_for(provider, runtime, check_timeout=0.05)
    statuses = []
    reconciler.publisher.subscribe(lambda session: statuses.append(session.status))

    async def scenario():
        url = await provider.initiate_redirect_sign_in(ProviderConfig())
        callback = provider.authorize(state_from_url(url), "user@gmail.com")
        page = PageContext.from_url(f"https://jointrek.com{callback}")
        return await asyncio.wait_for(reconciler.reconcile(page), timeout=2)

    outcome = asyncio.run(scenario())

    assert outcome.state is ReconcilerState.REJECTED
    assert reconciler.state is ReconcilerState.REJECTED
    assert outcome.session.status is SessionStatus.NONE
    assert statuses == [SessionStatus.REJECTED, SessionStatus.NONE]
    assert reconciler.publisher.is_reconciling is False
    assert provider.sign_out_calls == 1


def test_reloaded_callback_keeps_existing_session(runtime, provider):
    async def scenario():
        page = await _callback_page(runtime, provider, "student@ufl.edu")
        first = await runtime.load_page(page.url)
        reloaded = await runtime.load_page(page.url)
        return first, reloaded

    first, reloaded = asyncio.run(scenario())

    assert first.state is ReconcilerState.ADMITTED
    # The one-time code was already redeemed
    assert reloaded.state is ReconcilerState.ABSENT
    assert reloaded.session.status is SessionStatus.AUTHENTICATED


# ==============================================================================
# Once Per Page Lifetime
# ==============================================================================

def test_sequential_calls_share_first_outcome(runtime, provider):
    async def scenario():
        page = await _callback_page(runtime, provider, "student@ufl.edu")
        reconciler = runtime.new_page()
        assert reconciler.state is ReconcilerState.IDLE
        assert reconciler.has_processed is False
        first = await reconciler.reconcile(page)
        second = await reconciler.reconcile(page)
        return reconciler, first, second

    reconciler, first, second = asyncio.run(scenario())

    assert first is second
    assert reconciler.has_processed is True
    assert provider.check_calls == 1


def test_concurrent_calls_consult_provider_once(runtime, provider):
    async def scenario():
        page = await _callback_page(runtime, provider, "student@ufl.edu")
        reconciler = runtime.new_page()
        return await asyncio.gather(reconciler.reconcile(page), reconciler.reconcile(page))

    first, second = asyncio.run(scenario())

    assert first is second
    assert first.state is ReconcilerState.ADMITTED
    assert provider.check_calls == 1


def test_new_page_lifetime_checks_again(runtime, provider):
    async def scenario():
        await runtime.load_page("https://jointrek.com/")
        await runtime.load_page("https://jointrek.com/")

    asyncio.run(scenario())
    assert provider.check_calls == 2


# ==============================================================================
# Ambient Notifications
# ==============================================================================

def test_ambient_notification_applied_when_absent(settings, store, clock):
    provider = AmbientDuringCheckProvider()
    runtime = AuthRuntime(settings, store, provider=provider, clock=clock)

    async def scenario():
        runtime.start()
        try:
            return await runtime.load_page("https://jointrek.com/")
        finally:
            runtime.stop()

    outcome = asyncio.run(scenario())

    assert outcome.state is ReconcilerState.ABSENT
    assert outcome.session.status is SessionStatus.AUTHENTICATED
    assert outcome.session.identity == STUDENT


def test_flags_cleared_even_on_failure(runtime, store):
    store.set(StorageKeys.REDIRECT_IN_PROGRESS, 1.0)
    reconciler = _reconciler_for(BrokenProvider(), runtime)

    asyncio.run(reconciler.reconcile(PageContext.from_url("https://jointrek.com/")))

    assert store.get(StorageKeys.REDIRECT_IN_PROGRESS) is None
    assert store.get(StorageKeys.REDIRECT_CHECKED) is not None


@pytest.mark.parametrize("email", ["student@ufl.edu", "someone@gmail.com"])
def test_outcome_serializes(redirect_round_trip, email):
    data = asyncio.run(redirect_round_trip(email)).to_dict()
    assert set(data) == {"state", "navigate_to", "message", "error", "session"}
    assert data["session"]["status"] in ("authenticated", "none")


def test_session_flags_in_progress_age(store, clock):
    flags = SessionFlags(store, clock=clock)
    assert flags.redirect_in_progress_age() is None

    flags.mark_redirect_started()
    clock.advance(12)
    assert flags.redirect_in_progress_age() == pytest.approx(12)
