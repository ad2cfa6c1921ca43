from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from exam_service.db import engine as db_engine
from exam_service.middleware.request_context import user_id_var
from exam_service.models.principal import STAFF_ROLES, Principal
from exam_service.repos.registry import Repositories
from exam_service.services.audit import AuditLog, audit_log
from exam_service.services.cache import CacheService, cache_service

logger = logging.getLogger(__name__)

# Shared store for dev and tests (no DATABASE_URL).
in_memory_repos = Repositories.in_memory()


def require_user(
    request: Request,
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_roles: Annotated[str | None, Header()] = None,
) -> Principal:
    """Build the caller's Principal from the gateway identity headers.

    The gateway authenticates the user and forwards X-User-Id (UUID)
    and X-User-Roles (comma-separated).  Missing or malformed → 401.
    """
    if not x_user_id:
        logger.warning("Rejected request without X-User-Id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        logger.warning("Rejected malformed X-User-Id=%r", x_user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        ) from None

    roles = frozenset(r.strip() for r in (x_user_roles or "").split(",") if r.strip())
    principal = Principal(
        user_id=user_id,
        roles=roles,
        ip=request.client.host if request.client else None,
    )
    user_id_var.set(str(user_id))
    logger.debug("Identity accepted user=%s roles=%s", principal.user_id, principal.roles)
    return principal


def require_any_role(roles: set[str] | frozenset[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


require_staff = require_any_role(STAFF_ROLES)


async def get_repos() -> AsyncGenerator[Repositories, None]:
    """Request-scoped repositories.

    With a database, every repo shares one session: the request commits
    on success and rolls back if the handler raises.
    """
    if db_engine.async_session_factory is None:
        yield in_memory_repos
        return
    async with db_engine.session_scope() as session:
        yield Repositories.for_session(session)


def get_audit() -> AuditLog:
    return audit_log


def get_cache() -> CacheService:
    return cache_service


CurrentUser = Annotated[Principal, Depends(require_user)]
StaffUser = Annotated[Principal, Depends(require_staff)]
Repos = Annotated[Repositories, Depends(get_repos)]
Audit = Annotated[AuditLog, Depends(get_audit)]
Cache = Annotated[CacheService, Depends(get_cache)]
