"""
Services Package

Contains service layer classes for:
- Identity provider selection
- Per-client auth runtime composition
"""

from services.auth_service import (
    AuthRuntime,
    AuthRuntimeRegistry,
    create_identity_provider,
    get_runtime_registry,
    set_runtime_registry,
)

__all__ = [
    "AuthRuntime",
    "AuthRuntimeRegistry",
    "create_identity_provider",
    "get_runtime_registry",
    "set_runtime_registry",
]
