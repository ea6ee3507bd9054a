from __future__ import annotations

import argparse

import pytest
from sqlalchemy import select

from saaforge.domain.models import AuditLog, InviteCode, Principal, TeamProfile
from saaforge.persistence.db import SessionLocal
from saaforge.services.auth.passwords import verify_password
from scripts.cleanup_duplicate_profiles import _cleanup
from scripts.create_invite_code import _upsert
from scripts.create_principal import _build_parser, _create


@pytest.mark.asyncio
async def test_create_invite_code_resets_wildcard(capsys) -> None:
    assert await _upsert("join@sasforge_02", 365) == 0
    async with SessionLocal() as session:
        invite = await session.get(InviteCode, "join@sasforge_02")
        invite.is_used = True
        invite.used_by = "someone"
        await session.commit()

    assert await _upsert("join@sasforge_02", 30) == 0
    async with SessionLocal() as session:
        invite = await session.get(InviteCode, "join@sasforge_02")
    assert invite.is_used is False
    assert invite.used_by is None
    assert invite.ignore_email is True
    assert (invite.expires_at - invite.created_at).days == 30
    assert "join@sasforge_02" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_create_principal_provisions_team_member() -> None:
    args = _build_parser().parse_args(["--email", "New@Example.com", "--role", "team", "--unapproved"])
    assert await _create(args, "s3cret-pass") == 0

    async with SessionLocal() as session:
        principal = (await session.execute(select(Principal))).scalar_one()
        profile = (await session.execute(select(TeamProfile))).scalar_one()
        audit = (await session.execute(select(AuditLog))).scalar_one()
    assert principal.email == "new@example.com"
    assert principal.role == "team"
    assert verify_password("s3cret-pass", principal.password_hash, principal.password_salt)
    assert profile.user_id == principal.id
    assert profile.is_approved is False
    assert audit.action == "user.created"
    assert "password" not in audit.details


@pytest.mark.asyncio
async def test_create_principal_updates_existing_owner() -> None:
    args = argparse.Namespace(email="boss@example.com", role="owner", password=None, unapproved=False)
    assert await _create(args, "first-pass") == 0
    assert await _create(args, "second-pass") == 0

    async with SessionLocal() as session:
        rows = (await session.execute(select(Principal))).scalars().all()
    assert len(rows) == 1
    assert verify_password("second-pass", rows[0].password_hash, rows[0].password_salt)


@pytest.mark.asyncio
async def test_cleanup_script_reports_removed_profiles(capsys) -> None:
    args = argparse.Namespace(email="dup@example.com", role="team", password=None, unapproved=False)
    await _create(args, "longpass")
    async with SessionLocal() as session:
        session.add(TeamProfile(user_id=None, email="dup@example.com", name="Legacy"))
        await session.commit()

    assert await _cleanup(dry_run=False) == 0
    assert "removed_profiles=1" in capsys.readouterr().out
    async with SessionLocal() as session:
        remaining = (await session.execute(select(TeamProfile))).scalars().all()
    assert [row.user_id is not None for row in remaining] == [True]
