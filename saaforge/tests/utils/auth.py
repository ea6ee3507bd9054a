from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from saaforge.domain.models import Principal, TeamProfile
from saaforge.persistence.db import SessionLocal
from saaforge.services.access import PrincipalContext, Role, normalize_role
from saaforge.services.auth.passwords import hash_password
from saaforge.services.auth.sessions import create_auth_session


TEST_PASSWORD = "correct-horse"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def create_test_principal(
    *,
    role: str = "team",
    approved: bool = True,
    email: str | None = None,
    password: str = TEST_PASSWORD,
    with_profile: bool = True,
) -> tuple[PrincipalContext, dict[str, str]]:
    # Provision a principal, its team profile and a live session token for integration tests.
    normalized_role = normalize_role(role)
    address = email or f"{normalized_role.value}-{uuid4().hex[:8]}@example.com"
    password_hash, password_salt = hash_password(password)
    now = _utc_now()

    async with SessionLocal() as session:
        principal = Principal(
            email=address,
            password_hash=password_hash,
            password_salt=password_salt,
            role=normalized_role.value,
            created_at=now,
            updated_at=now,
        )
        session.add(principal)
        await session.flush()
        if normalized_role is Role.TEAM and with_profile:
            session.add(
                TeamProfile(
                    user_id=principal.id,
                    email=address,
                    name=address.split("@", 1)[0],
                    is_approved=approved,
                    created_at=now,
                    updated_at=now,
                )
            )
        raw_token, _row = await create_auth_session(session=session, principal_id=principal.id, ttl_hours=24)
        await session.commit()
        context = PrincipalContext(
            principal_id=principal.id,
            email=address,
            role=normalized_role,
            is_approved=normalized_role is Role.TEAM and approved and with_profile,
        )

    return context, {"Authorization": f"Bearer {raw_token}"}


def owner_context(principal_id: str = "owner-1", email: str = "owner@example.com") -> PrincipalContext:
    return PrincipalContext(principal_id=principal_id, email=email, role=Role.OWNER)


def team_context(principal_id: str = "member-1", email: str = "member@example.com", approved: bool = True) -> PrincipalContext:
    return PrincipalContext(principal_id=principal_id, email=email, role=Role.TEAM, is_approved=approved)
