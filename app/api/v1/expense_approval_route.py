from fastapi import APIRouter, Depends
from typing import Optional
from sqlalchemy.orm import Session
import logging

from app.api.deps import get_current_user
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.database.services.notification_service import NotificationService
from app.ReqResModels.approvalmodels import (
    ApprovalActionRequest,
    ApprovalActionType,
    ApprovalCommentRequest,
    ApprovalResult,
    ApprovalHistoryResponse,
    ExpenseApprovalStatusResponse,
    PendingReviewsResponse,
    ApprovalErrorResponse
)
from app.logic.workflow_types import UserRef
from app.logic.exceptions import BaseCustomError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/expense-approval",
    tags=["expense-approval"],
    responses={
        404: {"model": ApprovalErrorResponse, "description": "Expense or approver not found"},
        403: {"model": ApprovalErrorResponse, "description": "Approver may not act on the current step"},
        409: {"model": ApprovalErrorResponse, "description": "Expense already approved or rejected"},
        500: {"model": ApprovalErrorResponse, "description": "Approval flow configuration drift"},
        503: {"model": ApprovalErrorResponse, "description": "Store unavailable, the action may be retried"}
    }
)

def _run_action(db: Session, expense_id: int, current_user: UserRef, action, comments) -> ApprovalResult:
    try:
        outcome = ExpenseApprovalService.process_approval(db, expense_id, current_user.id, action, comments)
    except BaseCustomError as e:
        raise to_http_exception(e)

    # Delivery happens after the decision is committed and never undoes it
    try:
        NotificationService.dispatch(db, outcome.events)
    except BaseCustomError as e:
        logger.error(f"Failed to deliver notifications for expense {expense_id}: {e.message}")

    return outcome.result

@router.post(
    "/{expense_id}/action",
    response_model=ApprovalResult,
    summary="Approve or reject an expense",
    description="Apply an approval action for the authenticated user at the expense's current step"
)
def process_approval(
    expense_id: int,
    request: ApprovalActionRequest,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Approve or reject an expense"""
    return _run_action(db, expense_id, current_user, request.action, request.comments)

@router.post(
    "/{expense_id}/approve",
    response_model=ApprovalResult,
    summary="Approve an expense"
)
def approve_expense(
    expense_id: int,
    request: Optional[ApprovalCommentRequest] = None,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _run_action(db, expense_id, current_user, ApprovalActionType.APPROVED, request.comments if request else None)

@router.post(
    "/{expense_id}/reject",
    response_model=ApprovalResult,
    summary="Reject an expense"
)
def reject_expense(
    expense_id: int,
    request: Optional[ApprovalCommentRequest] = None,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _run_action(db, expense_id, current_user, ApprovalActionType.REJECTED, request.comments if request else None)

@router.get(
    "/status/{expense_id}",
    response_model=ExpenseApprovalStatusResponse,
    summary="Check expense approval status",
    description="Current step, who must act next and the parallel vote tally"
)
def get_expense_approval_status(
    expense_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Check the approval status of an expense"""
    try:
        return ExpenseApprovalService.get_approval_status(db, expense_id, current_user.company_id)
    except BaseCustomError as e:
        raise to_http_exception(e)

@router.get(
    "/history/{expense_id}",
    response_model=ApprovalHistoryResponse,
    summary="Get expense approval history",
    description="Every approval and rejection recorded for the expense, newest first"
)
def get_expense_approval_history(
    expense_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the approval history for an expense"""
    try:
        return ExpenseApprovalService.get_approval_history(db, expense_id, current_user.company_id)
    except BaseCustomError as e:
        raise to_http_exception(e)

@router.get(
    "/pending/me",
    response_model=PendingReviewsResponse,
    summary="Get my pending reviews",
    description="Pending expenses whose current step the authenticated user may act on"
)
def get_my_pending_reviews(
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return ExpenseApprovalService.get_pending_reviews(db, current_user)
    except BaseCustomError as e:
        raise to_http_exception(e)
