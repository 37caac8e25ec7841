"""
BonusFlow - Approval State Machine Tests

Level initialization, ordered transitions and the overall chain summary.
"""

import pytest
from sqlalchemy import update

from bonusflow import db
from bonusflow.errors import (
    AlreadyProcessedError,
    BonusNotEnteredError,
    NotAuthorizedError,
    PreviousLevelPendingError,
    ValidationError,
)
from bonusflow.models import AuditLog, BonusLevelApproval, LevelStatus, Role
from bonusflow.services import approval_engine, reconciler


def enter(employee, actor):
    discarded = approval_engine.initialize_for_bonus_entry(employee, actor.id)
    db.session.commit()
    return discarded


class TestInitialization:
    """Bonus entry sets each level from its approver assignment."""

    def test_assigned_levels_pending_others_not_required(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        statuses = approval_engine.level_statuses(employee)

        assert statuses[1] is LevelStatus.PENDING
        assert statuses[2] is LevelStatus.PENDING
        assert statuses[3] is LevelStatus.NOT_REQUIRED
        assert statuses[4] is LevelStatus.NOT_REQUIRED
        assert statuses[5] is LevelStatus.NOT_REQUIRED
        assert employee.entered_by_id == chain["supervisor"].id
        assert employee.entered_at is not None

    def test_no_approvers_is_not_required_overall(self, make_employee):
        supervisor = make_employee("S100", "Sue", "Boss")
        employee = make_employee("E100", supervisor_id=supervisor.id)
        enter(employee, supervisor)

        assert approval_engine.overall_status(employee)["status"] == "not_required"
        assert approval_engine.next_pending_level(employee) is None

    def test_reentry_restarts_and_returns_discarded(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        approval_engine.transition(employee, 1, "approve", chain["a"].id)

        discarded = enter(employee, chain["supervisor"])

        assert [entry["level"] for entry in discarded] == [1]
        assert discarded[0]["status"] == "approved"
        assert approval_engine.level_status(employee, 1) is LevelStatus.PENDING
        assert employee.approval_for(1).approved_by_id is None


class TestTransition:
    """Approve/reject walks the chain strictly in order."""

    def test_full_chain(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        with pytest.raises(PreviousLevelPendingError) as excinfo:
            approval_engine.transition(employee, 2, "approve", chain["b"].id)
        assert excinfo.value.blocking_level == 1

        approval_engine.transition(employee, 1, "approve", chain["a"].id, "Looks good")
        status = approval_engine.transition(employee, 2, "approve", chain["b"].id)

        assert status["level1"]["status"] == "approved"
        assert status["level1"]["comments"] == "Looks good"
        assert status["level2"]["status"] == "approved"
        assert status["level2"]["approved_by"] == chain["b"].id
        assert approval_engine.overall_status(employee) == {
            "status": "approved",
            "approved": 2,
            "required": 2,
            "current_level": None,
        }

    def test_second_decision_is_already_processed(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        approval_engine.transition(employee, 1, "reject", chain["a"].id)

        with pytest.raises(AlreadyProcessedError) as excinfo:
            approval_engine.transition(employee, 1, "approve", chain["a"].id)

        assert "rejected" in excinfo.value.message
        assert approval_engine.level_status(employee, 1) is LevelStatus.REJECTED

    def test_rejection_stops_the_chain(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        approval_engine.transition(employee, 1, "reject", chain["a"].id)

        with pytest.raises(PreviousLevelPendingError):
            approval_engine.transition(employee, 2, "approve", chain["b"].id)
        summary = approval_engine.overall_status(employee)
        assert summary["status"] == "rejected"
        assert summary["current_level"] == 1
        assert approval_engine.next_pending_level(employee) is None

    def test_wrong_approver_not_authorized(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        with pytest.raises(NotAuthorizedError):
            approval_engine.transition(employee, 1, "approve", chain["b"].id)

    def test_unassigned_level_not_authorized(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        with pytest.raises(NotAuthorizedError):
            approval_engine.transition(employee, 3, "approve", chain["a"].id)

    def test_bonus_not_entered(self, chain):
        with pytest.raises(BonusNotEnteredError):
            approval_engine.transition(chain["employee"], 1, "approve", chain["a"].id)

    @pytest.mark.parametrize("level", [0, 6, "1", None])
    def test_invalid_level(self, chain, level):
        enter(chain["employee"], chain["supervisor"])

        with pytest.raises(ValidationError):
            approval_engine.transition(chain["employee"], level, "approve", chain["a"].id)

    def test_invalid_action(self, chain):
        enter(chain["employee"], chain["supervisor"])

        with pytest.raises(ValidationError):
            approval_engine.transition(chain["employee"], 1, "maybe", chain["a"].id)

    def test_decision_is_audited(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        approval_engine.transition(employee, 1, "approve", chain["a"].id)

        entry = AuditLog.query.filter_by(action="bonus_approved").one()
        assert entry.entity_id == employee.id
        assert entry.user_id == chain["a"].id
        assert entry.extra_data["level"] == 1


class TestPendingQueue:
    """Employees waiting on an approver at their current level."""

    def test_queue_follows_the_chain(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        assert approval_engine.pending_bonus_approvals(chain["a"].id) == [employee]
        assert approval_engine.pending_bonus_approvals(chain["b"].id) == []

        approval_engine.transition(employee, 1, "approve", chain["a"].id)

        assert approval_engine.pending_bonus_approvals(chain["a"].id) == []
        assert approval_engine.pending_bonus_approvals(chain["b"].id) == [employee]
        assert approval_engine.overall_status(employee)["current_level"] == 2


class TestConcurrentDecision:
    def test_stale_pending_level_loses_to_committed_decision(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        assert approval_engine.level_status(employee, 1) is LevelStatus.PENDING

        # Another request decides level 1 behind this session's back.
        db.session.execute(
            update(BonusLevelApproval)
            .where(BonusLevelApproval.employee_id == employee.id, BonusLevelApproval.level == 1)
            .values(status=LevelStatus.APPROVED, approved_by_id=chain["a"].id)
            .execution_options(synchronize_session=False)
        )
        assert approval_engine.level_status(employee, 1) is LevelStatus.PENDING

        with pytest.raises(AlreadyProcessedError):
            approval_engine.transition(employee, 1, "reject", chain["a"].id)

        assert AuditLog.query.filter_by(action="bonus_rejected").count() == 0


class TestApproverChangesAfterEntry:
    """Open levels follow approver links that change after bonus entry."""

    def test_added_approver_opens_level(self, chain, make_employee):
        carol = make_employee("C001", "Carol", "Cole", role=Role.APPROVER)
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        employee.level3_approver_name = "Cole, Carol"
        reconciler.link_employee(employee)
        db.session.commit()

        assert employee.level3_approver_id == carol.id
        assert approval_engine.level_status(employee, 3) is LevelStatus.PENDING

        approval_engine.transition(employee, 1, "approve", chain["a"].id)
        approval_engine.transition(employee, 2, "approve", chain["b"].id)
        summary = approval_engine.overall_status(employee)
        assert summary["status"] == "pending"
        assert summary["required"] == 3
        assert summary["current_level"] == 3

        approval_engine.transition(employee, 3, "approve", carol.id)
        assert approval_engine.overall_status(employee)["status"] == "approved"

    def test_removed_approver_closes_level(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])

        employee.level2_approver_name = None
        reconciler.link_employee(employee)
        db.session.commit()

        assert employee.level2_approver_id is None
        assert employee.level1_approver_id == chain["a"].id
        assert approval_engine.level_status(employee, 2) is LevelStatus.NOT_REQUIRED

        approval_engine.transition(employee, 1, "approve", chain["a"].id)
        assert approval_engine.overall_status(employee) == {
            "status": "approved",
            "approved": 1,
            "required": 1,
            "current_level": None,
        }

    def test_decided_level_is_kept(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        approval_engine.transition(employee, 1, "approve", chain["a"].id)

        employee.level1_approver_name = ""
        reconciler.link_employee(employee)
        db.session.commit()

        assert approval_engine.level_status(employee, 1) is LevelStatus.APPROVED

    def test_earlier_level_without_approver_is_skipped(self, chain):
        employee = chain["employee"]
        enter(employee, chain["supervisor"])
        # Level 1 still reads pending but no longer has an approver.
        employee.level1_approver_id = None
        db.session.commit()

        assert approval_engine.check_preconditions(employee, 2, chain["b"].id) is None

    def test_unsynced_earlier_assignment_still_blocks(self, make_employee):
        supervisor = make_employee("S100", "Sue", "Boss")
        approver_a = make_employee("A100", "Al", "First", role=Role.APPROVER)
        approver_b = make_employee("B100", "Bea", "Second", role=Role.APPROVER)
        employee = make_employee("E100", supervisor_id=supervisor.id, level2_approver_id=approver_b.id)
        enter(employee, supervisor)

        employee.level1_approver_id = approver_a.id
        db.session.commit()

        with pytest.raises(PreviousLevelPendingError) as excinfo:
            approval_engine.transition(employee, 2, "approve", approver_b.id)
        assert excinfo.value.blocking_level == 1
