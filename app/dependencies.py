"""FastAPI dependencies."""

from collections.abc import Callable, Coroutine
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import AsyncSessionLocal
from app.schemas.actors import Actor, ActorRole
from app.services.appointment_service import AppointmentService
from app.services.change_broker import ChangeBroker


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory used by the scheduling engine."""
    return AsyncSessionLocal


def get_change_broker(request: Request) -> ChangeBroker:
    """Application-wide change broker created at startup."""
    return request.app.state.change_broker


def get_appointment_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    broker: Annotated[ChangeBroker, Depends(get_change_broker)],
) -> AppointmentService:
    """Build the scheduling engine for a request."""
    return AppointmentService(session_factory, broker)


def _role_from_authorization(header: str | None) -> str | None:
    """Extract the role from an ``Authorization: Bearer role:<role>`` header."""
    if not header:
        return None
    token = header.replace("Bearer", "", 1).strip()
    if token.startswith("role:"):
        return token.split(":", 1)[1].strip().lower() or None
    return None


async def get_current_actor(
    x_user_role: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """
    Resolve the caller identity forwarded by the gateway.

    Raises:
        HTTPException: If no known role is supplied
    """
    role = (x_user_role or "").strip().lower() or _role_from_authorization(authorization)

    try:
        actor_role = ActorRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing_credentials",
        )

    return Actor(id=(x_user_id or "").strip() or "anonymous", role=actor_role)


def require_roles(*roles: ActorRole) -> Callable[..., Coroutine[Any, Any, Actor]]:
    """
    Build a dependency admitting only the given roles.

    Args:
        roles: Roles allowed on the route

    Returns:
        Dependency returning the current actor
    """
    allowed = frozenset(roles)

    async def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="forbidden",
            )
        return actor

    return dependency


# Type aliases for dependency injection
SchedulingService = Annotated[AppointmentService, Depends(get_appointment_service)]
ChangeFeed = Annotated[ChangeBroker, Depends(get_change_broker)]
StaffMember = Annotated[
    Actor,
    Depends(require_roles(ActorRole.ASSISTANT, ActorRole.PRACTITIONER, ActorRole.ADMIN)),
]
Clinician = Annotated[Actor, Depends(require_roles(ActorRole.PRACTITIONER, ActorRole.ADMIN))]
