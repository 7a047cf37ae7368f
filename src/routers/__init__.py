"""
Routers Package

Contains FastAPI router modules for:
- Redirect sign-in, callback reconciliation and diagnostics
- Session WebSocket stream
- Browser client resolution (signed client cookie)
"""

from routers.auth import router as auth_router
from routers.clients import client_cookie_middleware
from routers.session import router as session_router

__all__ = ["auth_router", "session_router", "client_cookie_middleware"]
