from typing import Callable, Optional

from fastapi import Depends, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from editorial.db.models import ActorRole
from editorial.utils.errors import AuthenticationError, RoleNotPermittedError
from editorial.utils.logging import get_logger
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

logger = get_logger()

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"

# Roles a caller may claim; "system" is reserved for internal work
CLAIMABLE_ROLES = frozenset(role for role in ActorRole if role != ActorRole.SYSTEM)


class ActorMiddleware(BaseHTTPMiddleware):
    """
    Reads the caller identity forwarded by the authenticating gateway.

    Identity is trusted as claimed. Requests without identity headers pass
    through with ``request.state.actor = None``; endpoints that need an actor
    reject them through ``get_current_actor``. A malformed role is rejected
    here.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.actor = None
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        role_value = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

        if actor_id or role_value:
            try:
                request.state.actor = self._parse_actor(actor_id, role_value)
            except AuthenticationError as e:
                logger.warning(f"Rejected caller identity on {request.url.path}: {e.message}")
                return ResponseBuilder.from_error(request, e)

        return await call_next(request)

    @staticmethod
    def _parse_actor(actor_id: str, role_value: str) -> Actor:
        if not actor_id:
            raise AuthenticationError(f"{ACTOR_ID_HEADER} header is required", "ACTOR_ID_MISSING")
        try:
            role = ActorRole(role_value)
        except ValueError:
            raise AuthenticationError(
                f"Unknown role '{role_value}' in {ACTOR_ROLE_HEADER}", "INVALID_ACTOR_ROLE"
            )
        if role not in CLAIMABLE_ROLES:
            raise AuthenticationError(f"Role '{role_value}' cannot be claimed", "INVALID_ACTOR_ROLE")
        return Actor(actor_id=actor_id, role=role)


def get_current_actor(request: Request) -> Actor:
    """Dependency to get the calling actor from request state"""
    actor: Optional[Actor] = getattr(request.state, "actor", None)
    if actor is None:
        raise AuthenticationError("Caller identity is required", "NOT_AUTHENTICATED")
    return actor


def require_roles(*allowed_roles: ActorRole):
    """Create dependency that requires one of ``allowed_roles``"""

    def check_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise RoleNotPermittedError(
                f"Role {actor.role.value} may not access this resource"
            )
        return actor

    return check_role


require_staff = require_roles(ActorRole.CONTENT_MANAGER, ActorRole.ADMIN)
