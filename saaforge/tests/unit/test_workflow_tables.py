from __future__ import annotations

import pytest

from saaforge.core.errors import ValidationFailed
from saaforge.services.tasks import TASK_STATUSES, TASK_TRANSITIONS
from saaforge.services.workflows import WORKFLOW_KINDS, get_kind, transition_allowed


@pytest.mark.parametrize("kind", ["application", "join_request", "idea"])
def test_review_kinds_only_leave_pending(kind: str) -> None:
    assert transition_allowed(kind, "pending", "approved")
    assert transition_allowed(kind, "pending", "rejected")
    assert not transition_allowed(kind, "approved", "pending")
    assert not transition_allowed(kind, "approved", "rejected")
    assert not transition_allowed(kind, "rejected", "approved")
    assert not transition_allowed(kind, "pending", "pending")


def test_order_transitions() -> None:
    assert transition_allowed("order", "new", "reviewing")
    assert transition_allowed("order", "new", "converted")
    assert transition_allowed("order", "reviewing", "rejected")
    assert not transition_allowed("order", "reviewing", "new")
    assert not transition_allowed("order", "converted", "reviewing")
    assert not transition_allowed("order", "rejected", "new")


def test_every_target_status_has_an_audit_action() -> None:
    for workflow in WORKFLOW_KINDS.values():
        targets = {status for edges in workflow.transitions.values() for status in edges}
        assert targets <= set(workflow.audit_actions)
        assert targets <= workflow.statuses


def test_unknown_kind() -> None:
    with pytest.raises(ValidationFailed):
        get_kind("invoice")


def test_task_statuses_only_move_forward() -> None:
    assert set(TASK_TRANSITIONS) == TASK_STATUSES
    assert TASK_TRANSITIONS["completed"] == set()
    assert "todo" not in {status for edges in TASK_TRANSITIONS.values() for status in edges}
