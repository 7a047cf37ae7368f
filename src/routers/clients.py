"""
Browser client resolution.

Every HTTP request is tied to a client id from a signed cookie; a request
without a valid cookie gets a new id and the cookie is set on its response,
whatever the status code. Routes then work on that client's runtime only.
"""

from fastapi import Request, WebSocket

from core.logger import get_logger
from services import AuthRuntime, get_runtime_registry

logger = get_logger(__name__)


async def client_cookie_middleware(request: Request, call_next):
    """Attach ``request.state.client_id``, issuing a cookie for new clients."""
    registry = get_runtime_registry()
    settings = registry.settings

    client_id = registry.client_id_from_cookie(request.cookies.get(settings.client_cookie_name))
    cookie = None
    if client_id is None:
        client_id, cookie = registry.issue_client_id()
        logger.debug(f"New browser client from {request.client.host if request.client else 'unknown'}")
    request.state.client_id = client_id

    response = await call_next(request)
    if cookie is not None:
        response.set_cookie(
            settings.client_cookie_name,
            cookie,
            max_age=settings.client_cookie_max_age_seconds,
            httponly=True,
            secure=settings.client_cookie_secure,
            samesite="lax",
        )
    return response


async def get_client_runtime(request: Request) -> AuthRuntime:
    """FastAPI dependency: the auth runtime of the calling browser."""
    return get_runtime_registry().get(request.state.client_id)


def websocket_client_runtime(websocket: WebSocket) -> AuthRuntime | None:
    """Runtime of the browser behind a WebSocket; None without a valid client cookie."""
    registry = get_runtime_registry()
    client_id = registry.client_id_from_cookie(websocket.cookies.get(registry.settings.client_cookie_name))
    if client_id is None:
        return None
    return registry.get(client_id)
