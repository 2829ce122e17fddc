from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.database.models.expense import Expense
from app.database.services.approval_flow_service import ApprovalFlowService
from app.database.services.approval_history_service import ApprovalHistoryService
from app.database.services.expense_service import ExpenseService
from app.database.services.user_service import UserService
from app.ReqResModels.approvalmodels import (
    ApprovalHistoryResponse,
    ApprovalResult,
    ApprovalTallyResponse,
    ExpenseApprovalStatusResponse,
    PendingReviewRequest,
    PendingReviewsResponse,
    UserRefResponse
)
from app.logic.approval_engine import ApprovalWorkflowEngine
from app.logic.expense_locks import expense_locks
from app.logic.workflow_types import (
    ApprovalDecision,
    ApprovalEvent,
    ApprovalTally,
    EventType,
    ExpenseState,
    ExpenseStatus,
    UserRef
)
from app.logic.exceptions import (
    BaseCustomError,
    ExpenseNotFoundError,
    UserNotFoundError,
    PersistenceError
)

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class ApprovalOutcome:
    result: ApprovalResult
    events: Tuple[ApprovalEvent, ...] = ()

class ExpenseApprovalService:

    @staticmethod
    def process_approval(
        db: Session,
        expense_id: int,
        approver_id: int,
        action,
        comments: Optional[str] = None
    ) -> ApprovalOutcome:
        """Apply one approve/reject action to an expense.

        Everything from reading the expense to the final write happens under
        the expense's lock and inside one transaction. Failures before the
        write leave no trace; failures during it roll the whole action back.
        """
        logger.info(f"Processing approval: expense_id={expense_id}, approver_id={approver_id}, action={action}")

        with expense_locks.hold(expense_id):
            try:
                decision = ExpenseApprovalService._decide(db, expense_id, approver_id, action, comments)
            except BaseCustomError as e:
                db.rollback()
                logger.warning(f"Approval of expense {expense_id} by {approver_id} refused: {e.message}")
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to load approval state for expense {expense_id}: {e}")
                raise PersistenceError(f"Failed to load approval state: {str(e)}")

            try:
                ApprovalHistoryService.append(db, decision.history)
                ExpenseService.update_status_and_step(
                    db,
                    expense_id,
                    status=decision.expense.status,
                    approval_flow_step=decision.expense.approval_flow_step,
                    approver_id=decision.expense.approver_id
                )
                db.commit()
            except BaseCustomError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to apply approval decision for expense {expense_id}: {e}")
                raise PersistenceError(f"Failed to apply approval decision: {str(e)}")

        logger.info(
            f"Expense {expense_id} now {decision.expense.status} at step {decision.expense.approval_flow_step}: "
            f"{decision.message}"
        )
        return ApprovalOutcome(
            result=ExpenseApprovalService._build_result(decision),
            events=decision.events
        )

    @staticmethod
    def _decide(db: Session, expense_id: int, approver_id: int, action, comments: Optional[str]) -> ApprovalDecision:
        expense = ExpenseService.get_for_update(db, expense_id)
        if not expense:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

        actor = UserService.get_user_ref(db, approver_id)
        if not actor:
            raise UserNotFoundError(f"Approver with ID {approver_id} not found")

        steps = ApprovalFlowService.list_steps(db, expense.company_id)
        directory = UserService.load_directory(db, expense.company_id, steps)
        tallies = ApprovalHistoryService.tallies_for_expense(db, expense_id)

        return ApprovalWorkflowEngine.decide(
            expense=expense,
            steps=steps,
            actor=actor,
            action=action,
            directory=directory,
            tallies=tallies,
            comments=comments
        )

    @staticmethod
    def get_approval_status(db: Session, expense_id: int, company_id: Optional[int] = None) -> ExpenseApprovalStatusResponse:
        """Where the expense stands and who must act next"""
        expense = ExpenseApprovalService._scoped_expense(db, expense_id, company_id)

        steps = ApprovalFlowService.list_steps(db, expense.company_id)
        directory = UserService.load_directory(db, expense.company_id, steps)
        tallies = ApprovalHistoryService.tallies_for_expense(db, expense_id)
        view = ApprovalWorkflowEngine.describe(expense, steps, directory, tallies)

        return ExpenseApprovalStatusResponse(
            expense_id=expense.id,
            status=expense.status,
            current_step=view.current_step.step_order if view.current_step else None,
            required_role=view.current_step.required_role if view.current_step else None,
            is_sequential=view.current_step.is_sequential if view.current_step else None,
            total_steps=view.total_steps,
            is_complete=expense.status != ExpenseStatus.PENDING.value,
            approvers=[ExpenseApprovalService._user_ref_response(u) for u in view.approvers],
            tally=ExpenseApprovalService._tally_response(view.tally)
        )

    @staticmethod
    def get_approval_history(db: Session, expense_id: int, company_id: Optional[int] = None) -> ApprovalHistoryResponse:
        ExpenseApprovalService._scoped_expense(db, expense_id, company_id)
        return ApprovalHistoryService.get_history(db, expense_id)

    @staticmethod
    def _scoped_expense(db: Session, expense_id: int, company_id: Optional[int]) -> ExpenseState:
        """The expense, reported missing when it belongs to another company"""
        expense = ExpenseService.get(db, expense_id)
        if not expense or (company_id is not None and expense.company_id != company_id):
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
        return expense

    @staticmethod
    def get_pending_reviews(db: Session, reviewer: UserRef) -> PendingReviewsResponse:
        """Pending expenses in the reviewer's company whose current step the reviewer may act on"""
        steps = ApprovalFlowService.list_steps(db, reviewer.company_id)
        pending = db.query(Expense).options(
            joinedload(Expense.submitted_by_user)
        ).filter(
            Expense.company_id == reviewer.company_id,
            Expense.status == ExpenseStatus.PENDING.value
        ).order_by(Expense.created_at, Expense.id).all()

        reviews: List[PendingReviewRequest] = []
        for expense in pending:
            state = ExpenseService.to_state(expense)
            active_steps = ApprovalWorkflowEngine.active_steps(steps, state)
            if not active_steps:
                if not ApprovalWorkflowEngine.can_act_without_flow(reviewer):
                    continue
                current_step, required_role = 0, None
            else:
                current = ApprovalWorkflowEngine.current_step(state, active_steps)
                if current is None:
                    logger.error(f"Expense {expense.id} points at step {state.approval_flow_step} which is not configured")
                    continue
                if not ApprovalWorkflowEngine.can_act(reviewer, current):
                    continue
                current_step, required_role = current.step_order, current.required_role

            reviews.append(PendingReviewRequest(
                expense_id=expense.id,
                submitted_by_id=expense.submitted_by,
                submitted_by_name=expense.submitted_by_user.name if expense.submitted_by_user else None,
                amount=expense.amount,
                currency_code=expense.currency_code,
                category=expense.category,
                description=expense.description,
                expense_date=expense.expense_date,
                submitted_date=expense.created_at,
                current_step=current_step,
                required_role=required_role
            ))

        return PendingReviewsResponse(
            pending_reviews=reviews,
            total_count=len(reviews),
            total_amount=sum((r.amount for r in reviews), Decimal("0"))
        )

    @staticmethod
    def submission_events(db: Session, expense_id: int) -> Tuple[ApprovalEvent, ...]:
        """Events for a freshly submitted expense: one for the submitter, one for the first approvers"""
        status = ExpenseApprovalService.get_approval_status(db, expense_id)
        expense = ExpenseService.get(db, expense_id)
        events = [ApprovalEvent(
            type=EventType.EXPENSE_SUBMITTED,
            expense_id=expense_id,
            actor_id=expense.submitted_by,
            recipient_ids=(expense.submitted_by,),
            message=f"Your expense #{expense_id} has been submitted for approval."
        )]
        if status.approvers:
            events.append(ApprovalEvent(
                type=EventType.APPROVAL_REQUESTED,
                expense_id=expense_id,
                actor_id=expense.submitted_by,
                recipient_ids=tuple(u.id for u in status.approvers),
                step_order=status.current_step or 0,
                message=f"Expense #{expense_id} is waiting for your approval."
            ))
        return tuple(events)

    @staticmethod
    def _build_result(decision: ApprovalDecision) -> ApprovalResult:
        # Only report approvers while the expense is still waiting on someone
        approvers = None
        if not decision.is_complete:
            approvers = [ExpenseApprovalService._user_ref_response(u) for u in decision.approvers]

        return ApprovalResult(
            success=True,
            message=decision.message,
            expense_id=decision.expense.id,
            status=decision.expense.status,
            next_step=decision.next_step,
            is_complete=decision.is_complete,
            approvers=approvers,
            tally=ExpenseApprovalService._tally_response(decision.tally)
        )

    @staticmethod
    def _user_ref_response(user: UserRef) -> UserRefResponse:
        return UserRefResponse(id=user.id, name=user.name, email=user.email, role=user.role)

    @staticmethod
    def _tally_response(tally: Optional[ApprovalTally]) -> Optional[ApprovalTallyResponse]:
        if tally is None:
            return None
        return ApprovalTallyResponse(
            approved=tally.approved,
            eligible=tally.eligible,
            percentage=round(tally.percentage, 2),
            required_percentage=tally.required_percentage
        )
