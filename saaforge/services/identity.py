from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.config import get_settings
from saaforge.core.errors import TransientStoreFailure, Unauthenticated
from saaforge.domain.models import Principal, TeamProfile
from saaforge.persistence.repos import principals as principals_repo
from saaforge.services.access import PrincipalContext, Role, normalize_role
from saaforge.services.auth.passwords import verify_password
from saaforge.services.auth.sessions import create_auth_session, lookup_auth_session, revoke_auth_session


logger = logging.getLogger(__name__)


def effective_role(principal: Principal) -> Role:
    # Configured owner emails always resolve to owner regardless of the stored role.
    settings = get_settings()
    if principal.email.strip().lower() in settings.owner_email_set():
        return Role.OWNER
    try:
        return normalize_role(principal.role)
    except ValueError:
        logger.warning("principal_role_unknown principal_id=%s role=%s", principal.id, principal.role)
        return Role.USER


async def resolve_team_profile(session: AsyncSession, principal: Principal) -> TeamProfile | None:
    """Find the principal's team profile, adopting a legacy email-keyed row.

    Profiles created before principal ids existed are keyed only by email.
    The first time such a principal is resolved, the legacy row is re-keyed
    onto the principal id so later lookups go through ``user_id``.
    """
    profile = await principals_repo.get_profile_for_user(session, principal.id)
    if profile is not None:
        return profile
    legacy = await principals_repo.get_legacy_profile(session, principal.email)
    if legacy is None:
        return None
    legacy.user_id = principal.id
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        # Migration is opportunistic; keep serving the legacy row if it fails.
        await session.rollback()
        logger.warning("team_profile_migration_failed principal_id=%s", principal.id, exc_info=exc)
        return await principals_repo.get_legacy_profile(session, principal.email)
    logger.info("team_profile_migrated principal_id=%s profile_id=%s", principal.id, legacy.id)
    return legacy


async def build_context(session: AsyncSession, principal: Principal) -> PrincipalContext:
    role = effective_role(principal)
    is_approved = False
    if role is Role.TEAM:
        profile = await resolve_team_profile(session, principal)
        is_approved = profile is not None and profile.is_approved is True
    return PrincipalContext(
        principal_id=principal.id,
        email=principal.email,
        role=role,
        is_approved=is_approved,
    )


async def resolve_principal(session: AsyncSession, raw_token: str | None) -> PrincipalContext | None:
    # Pull role and approval fresh for every request; nothing is cached in-process.
    if not raw_token:
        return None
    try:
        found = await lookup_auth_session(session=session, raw_token=raw_token)
        if found is None:
            return None
        _auth_session, principal = found
        context = await build_context(session, principal)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Authentication unavailable") from exc
    return context


async def login(session: AsyncSession, *, email: str, password: str) -> tuple[str, PrincipalContext]:
    settings = get_settings()
    try:
        principal = await principals_repo.get_by_email(session, email)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Authentication unavailable") from exc
    if principal is None or not verify_password(password, principal.password_hash, principal.password_salt):
        raise Unauthenticated("Invalid email or password")
    try:
        raw_token, _row = await create_auth_session(
            session=session,
            principal_id=principal.id,
            ttl_hours=settings.session_ttl_hours,
        )
        context = await build_context(session, principal)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Login could not be completed") from exc
    return raw_token, context


async def logout(session: AsyncSession, *, raw_token: str) -> bool:
    try:
        revoked = await revoke_auth_session(session=session, raw_token=raw_token)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Logout could not be completed") from exc
    return revoked
