"""Multi-step approval workflow engine.

Pure decision logic: takes snapshots of the expense, the company's flow
steps, the acting user, the approver directory and the ledger tallies, and
returns an ``ApprovalDecision`` describing the new expense state, the
history record to append and the events to emit. Nothing here touches the
database; the caller applies the decision inside the per-expense lock.

State per expense::

    NOT_STARTED (step 0) -> AWAITING_STEP(n) -> ... -> APPROVED | REJECTED

A single rejection at any step rejects the whole expense. Sequential steps
complete on one qualifying approval, parallel steps once the share of
distinct approving voters reaches ``min_approval_percentage``.
"""
import logging
from dataclasses import replace
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Mapping, Optional, Sequence

from app.logic.approver_resolution import resolve_approvers
from app.logic.exceptions import AlreadyDecidedError, ForbiddenStepError, InvalidStepError, ValidationError
from app.logic.workflow_types import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalEvent,
    ApprovalStatusView,
    ApprovalTally,
    ApproverDirectory,
    EventType,
    ExpenseState,
    ExpenseStatus,
    FlowStep,
    HistoryRecord,
    Role,
    StepTally,
    UserRef,
)

logger = logging.getLogger(__name__)

EMPTY_TALLY = StepTally()


class ApprovalWorkflowEngine:

    @staticmethod
    def decide(
        expense: ExpenseState,
        steps: Sequence[FlowStep],
        actor: UserRef,
        action,
        directory: ApproverDirectory,
        tallies: Mapping[int, StepTally],
        comments: Optional[str] = None
    ) -> ApprovalDecision:
        """Decide the outcome of one approve/reject action"""
        action = ApprovalWorkflowEngine._parse_action(action)

        if expense.status != ExpenseStatus.PENDING.value:
            raise AlreadyDecidedError(expense.status)

        if actor.company_id != expense.company_id:
            raise ForbiddenStepError("Approver does not belong to the expense's company")

        active_steps = ApprovalWorkflowEngine.active_steps(steps, expense)

        # No applicable steps: a single decision by a manager or admin settles the expense
        if not active_steps:
            if not ApprovalWorkflowEngine.can_act_without_flow(actor):
                raise ForbiddenStepError(
                    "Expenses outside an approval flow need a manager or admin decision",
                    required_role=Role.MANAGER.value
                )
            history = HistoryRecord(expense.id, actor.id, action.value, 0, comments)
            if action == ApprovalAction.REJECTED:
                return ApprovalWorkflowEngine._reject(expense, actor, history, 0, "Expense rejected")
            return ApprovalWorkflowEngine._approve(expense, actor, history, 0, "Expense approved")

        cursor = expense.approval_flow_step or active_steps[0].step_order
        index = ApprovalWorkflowEngine._index_of(active_steps, cursor)
        if index is None:
            logger.error(f"Expense {expense.id} points at step {cursor} which is not configured")
            raise InvalidStepError(cursor)
        current = active_steps[index]

        if actor.role != current.required_role and actor.role != Role.ADMIN.value:
            raise ForbiddenStepError(
                f"This step requires {current.required_role} role",
                required_role=current.required_role
            )

        history = HistoryRecord(expense.id, actor.id, action.value, current.step_order, comments)
        # NOT_STARTED -> AWAITING_STEP(first) is written together with the action
        expense = replace(expense, approval_flow_step=current.step_order)

        if action == ApprovalAction.REJECTED:
            return ApprovalWorkflowEngine._reject(expense, actor, history, current.step_order, "Expense rejected")

        if current.is_sequential:
            return ApprovalWorkflowEngine._advance(
                expense, actor, history, active_steps, index, directory,
                "Approval recorded"
            )

        return ApprovalWorkflowEngine._decide_parallel(
            expense, actor, history, active_steps, index, directory,
            tallies.get(current.step_order, EMPTY_TALLY)
        )

    @staticmethod
    def describe(
        expense: ExpenseState,
        steps: Sequence[FlowStep],
        directory: ApproverDirectory,
        tallies: Mapping[int, StepTally]
    ) -> ApprovalStatusView:
        """Read-only view of where an expense stands and who must act on it"""
        active_steps = ApprovalWorkflowEngine.active_steps(steps, expense)
        if expense.status != ExpenseStatus.PENDING.value or not active_steps:
            return ApprovalStatusView(expense=expense, current_step=None, total_steps=len(active_steps))

        current = ApprovalWorkflowEngine.current_step(expense, active_steps)
        if current is None:
            raise InvalidStepError(expense.approval_flow_step)

        approvers = resolve_approvers(current, directory)
        tally = None
        if not current.is_sequential:
            step_tally = tallies.get(current.step_order, EMPTY_TALLY)
            tally = ApprovalWorkflowEngine._tally(len(step_tally.approved_by), len(approvers), current)
        return ApprovalStatusView(
            expense=expense,
            current_step=current,
            approvers=approvers,
            tally=tally,
            total_steps=len(active_steps)
        )

    @staticmethod
    def active_steps(steps: Sequence[FlowStep], expense: ExpenseState) -> List[FlowStep]:
        """Steps that apply to this expense's amount, in step order"""
        ordered = sorted(steps, key=lambda s: s.step_order)
        return [s for s in ordered if s.applies_to(expense.amount)]

    @staticmethod
    def current_step(expense: ExpenseState, active_steps: Sequence[FlowStep]) -> Optional[FlowStep]:
        if not active_steps:
            return None
        cursor = expense.approval_flow_step or active_steps[0].step_order
        index = ApprovalWorkflowEngine._index_of(active_steps, cursor)
        return active_steps[index] if index is not None else None

    @staticmethod
    def can_act(actor: UserRef, step: FlowStep) -> bool:
        return actor.role == Role.ADMIN.value or actor.role == step.required_role

    @staticmethod
    def can_act_without_flow(actor: UserRef) -> bool:
        return actor.role in (Role.ADMIN.value, Role.MANAGER.value)

    @staticmethod
    def _decide_parallel(
        expense: ExpenseState,
        actor: UserRef,
        history: HistoryRecord,
        active_steps: Sequence[FlowStep],
        index: int,
        directory: ApproverDirectory,
        step_tally: StepTally
    ) -> ApprovalDecision:
        current = active_steps[index]

        # A rejection already on record at this step vetoes it
        if step_tally.rejected_by:
            return ApprovalWorkflowEngine._reject(
                expense, actor, history, current.step_order,
                "Expense rejected by parallel approver"
            )

        approvers = resolve_approvers(current, directory)
        approved_by = step_tally.approved_by | {actor.id}
        tally = ApprovalWorkflowEngine._tally(len(approved_by), len(approvers), current)

        if tally.eligible and ApprovalWorkflowEngine.threshold_met(tally):
            return ApprovalWorkflowEngine._advance(
                expense, actor, history, active_steps, index, directory,
                f"Parallel approval threshold met ({tally.percentage:.1f}%)",
                tally=tally
            )

        waiting_on = tuple(u.id for u in approvers if u.id not in approved_by)
        message = (
            f"Approval recorded. {tally.approved}/{tally.eligible} approved "
            f"({tally.percentage:.1f}% of {current.min_approval_percentage}% required)"
        )
        event = ApprovalEvent(
            type=EventType.VOTE_RECORDED,
            expense_id=expense.id,
            actor_id=actor.id,
            recipient_ids=waiting_on,
            step_order=current.step_order,
            message=message
        )
        return ApprovalDecision(
            expense=replace(expense, approver_id=actor.id),
            history=history,
            message=message,
            is_complete=False,
            next_step=None,
            approvers=approvers,
            tally=tally,
            events=(event,)
        )

    @staticmethod
    def _advance(
        expense: ExpenseState,
        actor: UserRef,
        history: HistoryRecord,
        active_steps: Sequence[FlowStep],
        index: int,
        directory: ApproverDirectory,
        message: str,
        tally: Optional[ApprovalTally] = None
    ) -> ApprovalDecision:
        """Complete the current step and move to its positional successor"""
        if index + 1 >= len(active_steps):
            decision = ApprovalWorkflowEngine._approve(
                expense, actor, history, active_steps[index].step_order,
                f"{message}. Expense approved - all steps completed"
            )
            return replace(decision, tally=tally)

        next_flow = active_steps[index + 1]
        approvers = resolve_approvers(next_flow, directory)
        message = f"{message}. Moving to step {next_flow.step_order} ({next_flow.required_role} approval required)"
        event = ApprovalEvent(
            type=EventType.APPROVAL_REQUESTED,
            expense_id=expense.id,
            actor_id=actor.id,
            recipient_ids=tuple(u.id for u in approvers),
            step_order=next_flow.step_order,
            message=message
        )
        return ApprovalDecision(
            expense=replace(expense, approval_flow_step=next_flow.step_order, approver_id=actor.id),
            history=history,
            message=message,
            is_complete=False,
            next_step=next_flow.step_order,
            approvers=approvers,
            tally=tally,
            events=(event,)
        )

    @staticmethod
    def _approve(expense: ExpenseState, actor: UserRef, history: HistoryRecord, step_order: int, message: str) -> ApprovalDecision:
        event = ApprovalEvent(
            type=EventType.EXPENSE_APPROVED,
            expense_id=expense.id,
            actor_id=actor.id,
            recipient_ids=(expense.submitted_by,),
            step_order=step_order,
            message=message
        )
        return ApprovalDecision(
            expense=replace(expense, status=ExpenseStatus.APPROVED.value, approver_id=actor.id),
            history=history,
            message=message,
            is_complete=True,
            events=(event,)
        )

    @staticmethod
    def _reject(expense: ExpenseState, actor: UserRef, history: HistoryRecord, step_order: int, message: str) -> ApprovalDecision:
        event = ApprovalEvent(
            type=EventType.EXPENSE_REJECTED,
            expense_id=expense.id,
            actor_id=actor.id,
            recipient_ids=(expense.submitted_by,),
            step_order=step_order,
            message=message
        )
        return ApprovalDecision(
            expense=replace(expense, status=ExpenseStatus.REJECTED.value, approver_id=actor.id),
            history=history,
            message=message,
            is_complete=True,
            events=(event,)
        )

    @staticmethod
    def threshold_met(tally: ApprovalTally) -> bool:
        """Compare on whole percents, rounded half up, so 2 of 3 satisfies 67%.

        A 100% step still needs every eligible approver.
        """
        if tally.required_percentage >= 100:
            return tally.eligible > 0 and tally.approved >= tally.eligible
        whole = Decimal(str(tally.percentage)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return whole >= tally.required_percentage

    @staticmethod
    def _tally(approved: int, eligible: int, step: FlowStep) -> ApprovalTally:
        percentage = (approved / eligible * 100) if eligible > 0 else 0.0
        return ApprovalTally(
            approved=approved,
            eligible=eligible,
            percentage=percentage,
            required_percentage=step.min_approval_percentage
        )

    @staticmethod
    def _index_of(active_steps: Sequence[FlowStep], step_order: int) -> Optional[int]:
        return next((i for i, s in enumerate(active_steps) if s.step_order == step_order), None)

    @staticmethod
    def _parse_action(action) -> ApprovalAction:
        try:
            return ApprovalAction(getattr(action, "value", action))
        except ValueError:
            raise ValidationError(f"Invalid action '{action}', expected 'approved' or 'rejected'")
