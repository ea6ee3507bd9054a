from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import secrets
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.domain.models import AuthSession, Principal


TOKEN_PREFIX = "sfs_"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_session_token(raw_token: str) -> str:
    # Use SHA-256 for deterministic, non-reversible token storage.
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_session_token() -> tuple[str, str, str, str]:
    # Embed the session id so operators can trace a token without its secret.
    token_id = uuid4().hex
    secret = secrets.token_urlsafe(32)
    raw_token = f"{TOKEN_PREFIX}{token_id}_{secret}"
    token_prefix = raw_token[:12]
    return token_id, raw_token, token_prefix, hash_session_token(raw_token)


def parse_bearer_token(header_value: str | None) -> str | None:
    # Accept only "Bearer <token>"; anything else is treated as anonymous.
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def create_auth_session(
    *,
    session: AsyncSession,
    principal_id: str,
    ttl_hours: int | None,
) -> tuple[str, AuthSession]:
    token_id, raw_token, token_prefix, token_hash = generate_session_token()
    now = _utc_now()
    row = AuthSession(
        id=token_id,
        principal_id=principal_id,
        token_prefix=token_prefix,
        token_hash=token_hash,
        created_at=now,
        last_seen_at=None,
        expires_at=None if ttl_hours is None else now + timedelta(hours=ttl_hours),
        revoked_at=None,
    )
    session.add(row)
    await session.flush()
    return raw_token, row


async def lookup_auth_session(
    *,
    session: AsyncSession,
    raw_token: str,
) -> tuple[AuthSession, Principal] | None:
    # Return the live session and its principal, or None for unknown/expired/revoked tokens.
    if not raw_token.startswith(TOKEN_PREFIX):
        return None
    result = await session.execute(
        select(AuthSession, Principal)
        .join(Principal, Principal.id == AuthSession.principal_id)
        .where(AuthSession.token_hash == hash_session_token(raw_token))
    )
    row = result.first()
    if row is None:
        return None
    auth_session, principal = row
    now = _utc_now()
    if auth_session.revoked_at is not None:
        return None
    if auth_session.expires_at is not None and auth_session.expires_at <= now:
        return None
    await session.execute(
        update(AuthSession)
        .where(AuthSession.id == auth_session.id)
        .values(last_seen_at=now)
        .execution_options(synchronize_session=False)
    )
    return auth_session, principal


async def revoke_auth_session(*, session: AsyncSession, raw_token: str) -> bool:
    result = await session.execute(
        update(AuthSession)
        .where(
            AuthSession.token_hash == hash_session_token(raw_token),
            AuthSession.revoked_at.is_(None),
        )
        .values(revoked_at=_utc_now())
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1
