"""Approval orchestration against a real SQLite store"""
import threading

import pytest

from app.database.databse import SessionLocal
from app.database.models.approval import ApprovalHistory
from app.database.models.expense import Expense
from app.database.services.approval_history_service import ApprovalHistoryService
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.database.services.expense_service import ExpenseService
from app.database.services.user_service import UserService
from app.logic.exceptions import (
    AlreadyDecidedError,
    ExpenseNotFoundError,
    ForbiddenStepError,
    PersistenceError,
    UserNotFoundError
)
from app.logic.expense_locks import ExpenseLockRegistry, expense_locks
from app.logic.workflow_types import EventType

from conftest import make_company, make_expense, make_step, make_user


def history_count(db, expense_id):
    return db.query(ApprovalHistory).filter(ApprovalHistory.expense_id == expense_id).count()


def reload(db, expense_id):
    db.expire_all()
    return db.query(Expense).filter(Expense.id == expense_id).first()


@pytest.fixture
def team(db):
    company = make_company(db)
    return {
        "company": company,
        "employee": make_user(db, company, "Erin", "employee"),
        "manager": make_user(db, company, "Max", "manager"),
        "admin": make_user(db, company, "Ada", "admin"),
    }


def test_no_flow_single_approval_completes(db, team):
    expense = make_expense(db, team["employee"])

    outcome = ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved")

    assert outcome.result.status == "approved"
    assert outcome.result.is_complete is True
    assert outcome.result.approvers is None
    row = reload(db, expense.id)
    assert row.status == "approved"
    assert row.approver_id == team["manager"].id
    assert history_count(db, expense.id) == 1


def test_two_step_sequential_flow(db, team):
    make_step(db, team["company"], 1, "manager")
    make_step(db, team["company"], 2, "admin")
    expense = make_expense(db, team["employee"])

    first = ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved")

    assert first.result.next_step == 2
    assert first.result.is_complete is False
    assert [a.id for a in first.result.approvers] == [team["admin"].id]
    assert reload(db, expense.id).approval_flow_step == 2
    assert first.events[0].type == EventType.APPROVAL_REQUESTED

    second = ExpenseApprovalService.process_approval(db, expense.id, team["admin"].id, "approved")

    assert second.result.status == "approved"
    assert second.result.is_complete is True
    assert reload(db, expense.id).status == "approved"
    assert ApprovalHistoryService.count_by_step_and_action(db, expense.id, 1, "approved") == 1
    assert ApprovalHistoryService.count_by_step_and_action(db, expense.id, 2, "approved") == 1


def test_rejection_at_first_step_never_reaches_second(db, team):
    make_step(db, team["company"], 1, "manager")
    make_step(db, team["company"], 2, "admin")
    expense = make_expense(db, team["employee"])

    outcome = ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "rejected", "Missing receipt")

    assert outcome.result.status == "rejected"
    assert outcome.result.is_complete is True
    row = reload(db, expense.id)
    assert row.status == "rejected"
    assert row.approval_flow_step == 1
    entries = ApprovalHistoryService.list_for_expense(db, expense.id)
    assert [(e.step_order, e.action, e.comments) for e in entries] == [(1, "rejected", "Missing receipt")]


def test_forbidden_actor_leaves_no_trace(db, team):
    make_step(db, team["company"], 1, "manager")
    expense = make_expense(db, team["employee"])

    with pytest.raises(ForbiddenStepError):
        ExpenseApprovalService.process_approval(db, expense.id, team["employee"].id, "approved")

    row = reload(db, expense.id)
    assert row.status == "pending"
    assert row.approval_flow_step == 0
    assert row.approver_id is None
    assert history_count(db, expense.id) == 0


def test_decided_expense_refuses_further_actions(db, team):
    expense = make_expense(db, team["employee"])
    ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "rejected")

    with pytest.raises(AlreadyDecidedError):
        ExpenseApprovalService.process_approval(db, expense.id, team["admin"].id, "approved")

    assert reload(db, expense.id).status == "rejected"
    assert history_count(db, expense.id) == 1


def test_unknown_expense_and_approver(db, team):
    expense = make_expense(db, team["employee"])

    with pytest.raises(ExpenseNotFoundError):
        ExpenseApprovalService.process_approval(db, 9999, team["manager"].id, "approved")
    with pytest.raises(UserNotFoundError):
        ExpenseApprovalService.process_approval(db, expense.id, 9999, "approved")

    assert history_count(db, expense.id) == 0


def test_failed_expense_update_rolls_back_history(db, team, monkeypatch):
    expense = make_expense(db, team["employee"])

    def broken_update(*args, **kwargs):
        raise PersistenceError("store unavailable")

    monkeypatch.setattr(ExpenseService, "update_status_and_step", staticmethod(broken_update))

    with pytest.raises(PersistenceError):
        ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved")

    assert reload(db, expense.id).status == "pending"
    assert history_count(db, expense.id) == 0
    assert expense_locks.active_count() == 0


def test_history_is_listed_newest_first(db, team):
    company = team["company"]
    make_step(db, company, 1, "manager", is_sequential=False, min_approval_percentage=100)
    second_manager = make_user(db, company, "Mia", "manager")
    expense = make_expense(db, team["employee"])

    ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved", "first")
    ExpenseApprovalService.process_approval(db, expense.id, second_manager.id, "approved", "second")

    entries = ApprovalHistoryService.list_for_expense(db, expense.id)
    assert [e.comments for e in entries] == ["second", "first"]
    assert reload(db, expense.id).status == "approved"


def test_parallel_votes_from_many_threads_are_all_counted(db, team):
    company = team["company"]
    make_step(db, company, 1, "manager", is_sequential=False, min_approval_percentage=100)
    managers = [team["manager"]] + [make_user(db, company, f"Manager {i}", "manager") for i in range(4)]
    expense = make_expense(db, team["employee"])
    barrier = threading.Barrier(len(managers))
    errors = []

    def vote(manager_id):
        session = SessionLocal()
        try:
            barrier.wait()
            ExpenseApprovalService.process_approval(session, expense.id, manager_id, "approved")
        except Exception as e:  # collected for the assertion below
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=vote, args=(m.id,)) for m in managers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert ApprovalHistoryService.count_by_step_and_action(db, expense.id, 1, "approved") == len(managers)
    assert reload(db, expense.id).status == "approved"
    assert expense_locks.active_count() == 0


def test_approval_status_reports_current_step_and_tally(db, team):
    company = team["company"]
    make_step(db, company, 1, "manager", is_sequential=False, min_approval_percentage=67)
    make_user(db, company, "Mia", "manager")
    make_user(db, company, "Mo", "manager")
    expense = make_expense(db, team["employee"])
    ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved")

    status = ExpenseApprovalService.get_approval_status(db, expense.id)

    assert status.current_step == 1
    assert status.is_complete is False
    assert status.total_steps == 1
    assert len(status.approvers) == 3
    assert status.tally.approved == 1
    assert status.tally.eligible == 3
    assert status.tally.percentage == 33.33


def test_pending_reviews_follow_the_current_step(db, team):
    company = team["company"]
    make_step(db, company, 1, "manager")
    make_step(db, company, 2, "admin")
    expense = make_expense(db, team["employee"], amount="80.00")
    reviewer = UserService.get_user_ref(db, team["manager"].id)
    admin = UserService.get_user_ref(db, team["admin"].id)
    employee = UserService.get_user_ref(db, team["employee"].id)

    before = ExpenseApprovalService.get_pending_reviews(db, reviewer)
    ExpenseApprovalService.process_approval(db, expense.id, team["manager"].id, "approved")
    after = ExpenseApprovalService.get_pending_reviews(db, reviewer)

    assert [r.expense_id for r in before.pending_reviews] == [expense.id]
    assert before.pending_reviews[0].current_step == 1
    assert after.total_count == 0
    assert [r.current_step for r in ExpenseApprovalService.get_pending_reviews(db, admin).pending_reviews] == [2]
    assert ExpenseApprovalService.get_pending_reviews(db, employee).total_count == 0


def test_submission_events_reach_submitter_and_first_approvers(db, team):
    make_step(db, team["company"], 1, "manager")
    expense = make_expense(db, team["employee"])

    events = ExpenseApprovalService.submission_events(db, expense.id)

    assert [e.type for e in events] == [EventType.EXPENSE_SUBMITTED, EventType.APPROVAL_REQUESTED]
    assert events[0].recipient_ids == (team["employee"].id,)
    assert events[1].recipient_ids == (team["manager"].id,)


def test_lock_wait_times_out_as_persistence_error():
    registry = ExpenseLockRegistry(timeout=0.05)

    with registry.hold(1):
        with pytest.raises(PersistenceError):
            with registry.hold(1):
                pass
        with registry.hold(2):
            assert registry.active_count() == 2

    assert registry.active_count() == 0


def test_status_and_history_are_scoped_to_the_company(db, team, monkeypatch):
    expense = make_expense(db, team["employee"])
    other = make_company(db, "Globex")

    def unexpected(*args, **kwargs):
        raise AssertionError("another company's approval data was loaded")

    monkeypatch.setattr(ApprovalHistoryService, "get_history", staticmethod(unexpected))
    monkeypatch.setattr(ApprovalHistoryService, "tallies_for_expense", staticmethod(unexpected))

    with pytest.raises(ExpenseNotFoundError):
        ExpenseApprovalService.get_approval_status(db, expense.id, company_id=other.id)
    with pytest.raises(ExpenseNotFoundError):
        ExpenseApprovalService.get_approval_history(db, expense.id, company_id=other.id)
