"""Gateway identity handling.

Authentication happens upstream. The gateway forwards the authenticated
identity in three headers:

    X-Actor-Id:    stable user identifier (required)
    X-Actor-Name:  display name used for attribution (optional)
    X-Actor-Roles: comma-separated role names (optional)

GatewayIdentityMiddleware turns them into an Actor on request.state without
blocking anonymous requests; routes that change state depend on
require_actor, which rejects requests without an identity.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hydrotrack.api.middleware.errors import AuthenticationError
from hydrotrack.services.authz import Actor

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_NAME_HEADER = "X-Actor-Name"
ACTOR_ROLES_HEADER = "X-Actor-Roles"

MAX_HEADER_VALUE_LENGTH = 255


def parse_roles(value: str | None) -> frozenset[str]:
    """Split a comma-separated role header into normalized role names."""
    if not value:
        return frozenset()
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def actor_from_headers(request: Request) -> Actor | None:
    """Build an Actor from gateway headers, or None when absent/invalid."""
    actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    if not actor_id or len(actor_id) > MAX_HEADER_VALUE_LENGTH:
        return None
    name = (request.headers.get(ACTOR_NAME_HEADER) or "").strip()[:MAX_HEADER_VALUE_LENGTH]
    return Actor(
        actor_id=actor_id,
        display_name=name or None,
        roles=parse_roles(request.headers.get(ACTOR_ROLES_HEADER)),
    )


class GatewayIdentityMiddleware(BaseHTTPMiddleware):
    """Attach the gateway-provided actor (or None) to request.state.actor."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request.state.actor = actor_from_headers(request)
        return await call_next(request)


async def require_actor(request: Request) -> Actor:
    """Dependency returning the current actor.

    Raises:
        AuthenticationError: If the request carries no identity.
    """
    actor = getattr(request.state, "actor", None)
    if actor is None:
        actor = actor_from_headers(request)
    if actor is None:
        logger.info(
            "Request without actor identity",
            extra={"method": request.method, "path": request.url.path},
        )
        raise AuthenticationError(f"Missing {ACTOR_ID_HEADER} header")
    return actor
