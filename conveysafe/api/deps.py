"""Shared API dependencies: service key and actor role checks"""

import hmac
import logging
from typing import Callable

from fastapi import Depends, Header, Request

from conveysafe.container import ServiceContainer, get_container
from conveysafe.services.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Reject calls without the shared service key"""
    expected = container.settings.service_api_key
    if not x_api_key or not hmac.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(
            "Denied request with missing or invalid API key",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "method": request.method,
                "path": request.url.path,
            },
        )
        raise AuthenticationError("unauthorized", "Missing or invalid API key")


def require_role(*allowed_roles: str) -> Callable[..., str]:
    """Build a dependency that admits only the given `X-Actor-Role` values"""
    allowed = frozenset(allowed_roles)

    def dependency(
        request: Request,
        x_actor_role: str | None = Header(default=None),
        _: None = Depends(require_api_key),
    ) -> str:
        if not x_actor_role:
            logger.warning("Missing actor role", extra={"path": request.url.path})
            raise AuthorizationError("forbidden", "X-Actor-Role header is required")
        if x_actor_role not in allowed:
            logger.warning(
                "Role blocked for action",
                extra={"path": request.url.path, "actor_role": x_actor_role},
            )
            raise AuthorizationError("forbidden", f"Role {x_actor_role} may not perform this action")
        request.state.actor_role = x_actor_role
        return x_actor_role

    return dependency
