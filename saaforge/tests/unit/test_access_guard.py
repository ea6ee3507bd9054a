from __future__ import annotations

import pytest

from saaforge.core.config import get_settings
from saaforge.services.access import ACCESS_TABLE, Decision, PrincipalContext, Role, authorize, normalize_role


def _principal(role: Role, approved: bool = False) -> PrincipalContext:
    return PrincipalContext(principal_id="p-1", email="p@example.com", role=role, is_approved=approved)


def test_anonymous_is_sent_to_login() -> None:
    for required in (None, Role.OWNER, Role.TEAM, Role.USER):
        decision = authorize(None, required)
        assert decision == Decision(allowed=False, redirect_to="/login")


def test_no_required_role_allows_any_principal() -> None:
    for role in Role:
        assert authorize(_principal(role), None).allowed is True


@pytest.mark.parametrize(
    ("role", "required", "allowed"),
    [
        (Role.OWNER, Role.OWNER, True),
        (Role.OWNER, Role.TEAM, True),
        (Role.OWNER, Role.USER, False),
        (Role.TEAM, Role.OWNER, False),
        (Role.TEAM, Role.USER, False),
        (Role.USER, Role.USER, True),
        (Role.USER, Role.OWNER, False),
        (Role.USER, Role.TEAM, False),
    ],
)
def test_role_table(role: Role, required: Role, allowed: bool) -> None:
    decision = authorize(_principal(role, approved=True), required)
    assert decision.allowed is allowed
    if not allowed:
        assert decision.redirect_to == "/"


def test_team_resources_require_approval() -> None:
    assert authorize(_principal(Role.TEAM, approved=True), Role.TEAM).allowed is True
    pending = authorize(_principal(Role.TEAM, approved=False), Role.TEAM)
    assert pending.allowed is False
    assert pending.redirect_to == "/"


def test_table_only_lists_granted_pairs() -> None:
    assert (Role.TEAM, Role.OWNER) not in ACCESS_TABLE
    assert (Role.OWNER, Role.USER) not in ACCESS_TABLE


def test_redirect_for_skips_current_page() -> None:
    denied = authorize(_principal(Role.USER), Role.OWNER)
    assert denied.redirect_for("/dashboard/owner") == "/"
    # Already on the target: no second redirect.
    assert denied.redirect_for("/") is None
    assert authorize(None, Role.TEAM).redirect_for("/login") is None
    assert authorize(_principal(Role.OWNER), Role.OWNER).redirect_for("/anything") is None


def test_redirect_targets_follow_settings(monkeypatch) -> None:
    monkeypatch.setenv("LOGIN_REDIRECT_PATH", "/sign-in")
    monkeypatch.setenv("HOME_REDIRECT_PATH", "/home")
    get_settings.cache_clear()
    assert authorize(None, Role.OWNER).redirect_to == "/sign-in"
    assert authorize(_principal(Role.USER), Role.OWNER).redirect_to == "/home"


def test_normalize_role() -> None:
    assert normalize_role(" Owner ") is Role.OWNER
    with pytest.raises(ValueError):
        normalize_role("admin")
