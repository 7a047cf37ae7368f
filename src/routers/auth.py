"""
Auth Router

HTTP endpoints for redirect sign-in, the page-load reconciliation on the
callback leg, session reads, sign-out and the troubleshooting surface.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from auth import (
    AttemptLimitError,
    ProviderError,
    RedirectInProgressError,
    TrekAuthError,
    UnsafeOriginError,
)
from core.logger import get_logger
from providers import LocalIdentityProvider
from services import AuthRuntime

from routers.clients import get_client_runtime

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_ERROR_STATUS = {
    UnsafeOriginError: 403,
    AttemptLimitError: 429,
    RedirectInProgressError: 409,
    ProviderError: 502,
}


class SignInRequest(BaseModel):
    """Optional override of the hostname the sign-in page is served from."""
    hostname: str | None = None


def _request_hostname(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-host")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.url.hostname or ""


def _auth_http_error(error: TrekAuthError) -> HTTPException:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(error, error_type)),
        400,
    )
    detail = {"kind": error.kind, "message": error.user_message}
    if isinstance(error, AttemptLimitError):
        detail["retry_after"] = round(error.retry_after, 1)
    return HTTPException(status_code=status_code, detail=detail)


@router.post("/sign-in")
async def sign_in(
    request: Request,
    body: SignInRequest | None = None,
    runtime: AuthRuntime = Depends(get_client_runtime),
):
    """
    Start a redirect sign-in.

    Returns:
        {"redirect_url": "...", "session": {...}}

    Raises:
        403: Origin is not a production hostname
        429: Too many redirect attempts in the window
        409: A redirect is already in flight
        502: Provider could not start the redirect
    """
    hostname = (body.hostname if body else None) or _request_hostname(request)

    try:
        redirect_url = await runtime.sign_in.start(hostname)
    except TrekAuthError as e:
        raise _auth_http_error(e) from e

    return {
        "redirect_url": redirect_url,
        "session": runtime.publisher.get_session().to_dict(),
    }


@router.get("/callback")
async def callback(request: Request, runtime: AuthRuntime = Depends(get_client_runtime)):
    """
    Page load on the return leg of a redirect.

    Always answers 200: a rejected or absent result is a session state,
    not an HTTP failure.
    """
    outcome = await runtime.load_page(str(request.url))
    return outcome.to_dict()


@router.get("/local/authorize")
async def local_authorize(
    state: str,
    email: str,
    name: str = "",
    runtime: AuthRuntime = Depends(get_client_runtime),
):
    """Account chooser of the local development provider."""
    provider = runtime.provider
    if not isinstance(provider, LocalIdentityProvider):
        raise HTTPException(status_code=404, detail="Local provider is not enabled")

    try:
        callback_url = provider.authorize(state, email, display_name=name)
    except ProviderError as e:
        raise HTTPException(status_code=400, detail={"kind": e.kind, "message": e.user_message}) from e
    return RedirectResponse(callback_url, status_code=303)


@router.get("/session")
async def get_session(runtime: AuthRuntime = Depends(get_client_runtime)):
    """Current reconciled session of the calling browser."""
    return runtime.publisher.get_session().to_dict()


@router.post("/sign-out")
async def sign_out(runtime: AuthRuntime = Depends(get_client_runtime)):
    try:
        await runtime.publisher.sign_out()
    except ProviderError as e:
        raise _auth_http_error(e) from e
    return runtime.publisher.get_session().to_dict()


@router.get("/debug")
async def debug_snapshot(
    request: Request,
    hostname: str | None = None,
    runtime: AuthRuntime = Depends(get_client_runtime),
):
    """State snapshot for the troubleshooting page."""
    return runtime.diagnostics.snapshot(hostname or _request_hostname(request))


@router.post("/debug/reset")
async def debug_force_reset(request: Request, runtime: AuthRuntime = Depends(get_client_runtime)):
    """Last-resort recovery: clear attempts and every redirect flag."""
    runtime.diagnostics.force_reset()
    return runtime.diagnostics.snapshot(_request_hostname(request))
