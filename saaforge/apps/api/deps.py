from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.config import get_settings
from saaforge.core.errors import Forbidden, Unauthenticated
from saaforge.persistence.db import SessionLocal
from saaforge.services.access import PrincipalContext, Role, authorize
from saaforge.services.auth.sessions import parse_bearer_token
from saaforge.services.identity import resolve_principal


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request, closed when the response is sent.
    async with SessionLocal() as session:
        yield session


def get_raw_token(request: Request) -> str | None:
    settings = get_settings()
    return parse_bearer_token(request.headers.get(settings.auth_header))


async def get_optional_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PrincipalContext | None:
    # Resolved fresh per request; handlers receive it explicitly instead of reading shared state.
    principal = await resolve_principal(db, get_raw_token(request))
    request.state.principal_id = principal.principal_id if principal else None
    return principal


async def require_principal(
    principal: PrincipalContext | None = Depends(get_optional_principal),
) -> PrincipalContext:
    decision = authorize(principal, None)
    if principal is None or not decision.allowed:
        raise Unauthenticated("Sign in to continue", redirect_to=decision.redirect_to)
    return principal


def require_role(required_role: Role):
    # Dependency factory that applies the guard's decision at the route level.
    async def _dependency(
        request: Request,
        principal: PrincipalContext | None = Depends(get_optional_principal),
    ) -> PrincipalContext:
        decision = authorize(principal, required_role)
        if decision.allowed and principal is not None:
            return principal
        if principal is None:
            raise Unauthenticated("Sign in to continue", redirect_to=decision.redirect_to)
        logger.info(
            "access_denied principal_id=%s role=%s required_role=%s path=%s",
            principal.principal_id,
            principal.role.value,
            required_role.value,
            request.url.path,
        )
        raise Forbidden(
            "Insufficient role for this page",
            required_role=required_role.value,
            redirect_to=decision.redirect_to,
        )

    return _dependency
