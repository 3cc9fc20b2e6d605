from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from coursework.core.clock import system_clock
from coursework.db.engine import async_session_factory, session_scope
from coursework.models.principal import Principal
from coursework.repos.access_gate import InMemoryAccessGate, PgAccessGate
from coursework.repos.assignment_repo import InMemoryAssignmentCatalog
from coursework.repos.attempt_repo import InMemoryAttemptRepo
from coursework.repos.pg_assignment_repo import PgAssignmentCatalog
from coursework.repos.pg_attempt_repo import PgAttemptRepo
from coursework.services import token_service
from coursework.services.attempt_lifecycle import AttemptLifecycle
from coursework.services.deadline_sweeper import DeadlineSweeper
from coursework.services.notifications import NotificationPort, QueuedNotificationPort
from coursework.services.task_queue import task_queue

logger = logging.getLogger(__name__)

# Tokens are issued by the platform identity provider, not by this service.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# ---------------------------------------------------------------------------
# In-memory backing stores (used when DATABASE_URL is not set)
# ---------------------------------------------------------------------------

attempt_repo = InMemoryAttemptRepo()
catalog = InMemoryAssignmentCatalog()
access_gate = InMemoryAccessGate(catalog)
notifier: NotificationPort = QueuedNotificationPort(task_queue)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug("Token validated for user=%s roles=%s", principal.user_id, principal.roles)
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


# ---------------------------------------------------------------------------
# Core services, one per request
# ---------------------------------------------------------------------------


async def get_lifecycle() -> AsyncGenerator[AttemptLifecycle, None]:
    """AttemptLifecycle bound to this request's unit of work."""
    if async_session_factory is None:
        yield AttemptLifecycle(
            attempts=attempt_repo,
            catalog=catalog,
            access=access_gate,
            notifier=notifier,
            clock=system_clock,
        )
        return

    async with session_scope() as session:
        yield AttemptLifecycle(
            attempts=PgAttemptRepo(session),
            catalog=PgAssignmentCatalog(session),
            access=PgAccessGate(session),
            notifier=notifier,
            clock=system_clock,
        )


async def get_sweeper() -> AsyncGenerator[DeadlineSweeper, None]:
    if async_session_factory is None:
        yield DeadlineSweeper(catalog=catalog, notifier=notifier, clock=system_clock)
        return

    async with session_scope() as session:
        yield DeadlineSweeper(
            catalog=PgAssignmentCatalog(session), notifier=notifier, clock=system_clock
        )
