from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.api.deps import get_current_user
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.expense_service import ExpenseService
from app.database.services.expense_approval_service import ExpenseApprovalService
from app.database.services.notification_service import NotificationService
from app.ReqResModels.expensemodels import (
    ExpenseSubmitRequest,
    ExpenseResponse,
    ExpenseListResponse,
    ExpenseSubmitResponse,
    ExpenseQueryParams,
    ExpenseErrorResponse
)
from app.logic.workflow_types import Role, UserRef
from app.logic.exceptions import (
    BaseCustomError,
    ExpenseNotFoundError,
    ValidationError,
    PersistenceError
)

logger = logging.getLogger(__name__)

REVIEWER_ROLES = (Role.ADMIN.value, Role.MANAGER.value)

router = APIRouter(
    prefix="/expenses",
    tags=["expenses"],
    responses={
        404: {"model": ExpenseErrorResponse, "description": "Expense not found"},
        400: {"model": ExpenseErrorResponse, "description": "Bad request"},
        500: {"model": ExpenseErrorResponse, "description": "Internal server error"}
    }
)

@router.post(
    "/submit",
    response_model=ExpenseSubmitResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Submit a new expense",
    description="Submit a new expense for approval"
)
def submit_expense(
    request: ExpenseSubmitRequest,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Submit a new expense"""
    try:
        response = ExpenseService.create_expense(db, current_user, request)
    except (ValidationError, PersistenceError) as e:
        raise to_http_exception(e)

    try:
        NotificationService.dispatch(db, ExpenseApprovalService.submission_events(db, response.id))
    except BaseCustomError as e:
        logger.error(f"Failed to send submission notifications for expense {response.id}: {e.message}")

    return response

@router.get(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Get expense by ID",
    description="Retrieve a specific expense by its ID"
)
def get_expense(
    expense_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get expense by ID"""
    try:
        expense = ExpenseService.get_expense_by_id(db, expense_id)
    except ExpenseNotFoundError as e:
        raise to_http_exception(e)
    if expense.company_id != current_user.company_id or not _may_see(current_user, expense.submitted_by):
        raise to_http_exception(ExpenseNotFoundError(f"Expense with ID {expense_id} not found"))
    return expense

@router.get(
    "/",
    response_model=ExpenseListResponse,
    summary="Get company expenses",
    description="Admins and managers see the whole company, employees only their own submissions"
)
def get_expenses(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Number of items per page"),
    status: Optional[str] = Query(None, description="Filter by expense status"),
    submitted_by: Optional[int] = Query(None, description="Filter by submitter user ID"),
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get expenses with filtering and pagination"""
    if current_user.role not in REVIEWER_ROLES:
        submitted_by = current_user.id
    params = ExpenseQueryParams(
        page=page,
        page_size=page_size,
        status=status,
        submitted_by=submitted_by
    )
    return ExpenseService.get_company_expenses(db, current_user.company_id, params)

def _may_see(user: UserRef, submitted_by: int) -> bool:
    return user.role in REVIEWER_ROLES or user.id == submitted_by
