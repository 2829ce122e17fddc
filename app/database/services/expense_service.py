from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
from datetime import datetime
import logging

from app.database.models.expense import Expense
from app.database.models.users import User
from app.ReqResModels.expensemodels import (
    ExpenseSubmitRequest,
    ExpenseResponse,
    ExpenseListResponse,
    ExpenseSubmitResponse,
    ExpenseQueryParams
)
from app.logic.workflow_types import ExpenseState, ExpenseStatus, UserRef
from app.logic.exceptions import (
    ExpenseNotFoundError,
    ValidationError,
    PersistenceError
)

logger = logging.getLogger(__name__)

class ExpenseService:
    """Service class for handling expense-related operations"""

    @staticmethod
    def create_expense(db: Session, submitter: UserRef, request: ExpenseSubmitRequest) -> ExpenseSubmitResponse:
        """Create a new expense, pending and not yet in the approval flow"""
        try:
            paid_by = request.paid_by or submitter.id
            if paid_by != submitter.id:
                paid_by_user = db.query(User).filter(User.id == paid_by).first()
                if not paid_by_user or paid_by_user.company_id != submitter.company_id:
                    raise ValidationError(f"Paid by user with ID {paid_by} not found in the same company")

            expense = Expense(
                submitted_by=submitter.id,
                paid_by=paid_by,
                company_id=submitter.company_id,
                amount=request.amount,
                currency_code=request.currency_code.upper(),
                category=request.category,
                description=request.description,
                expense_date=request.expense_date,
                status=ExpenseStatus.PENDING.value,
                approval_flow_step=0,
                created_at=datetime.utcnow()
            )

            db.add(expense)
            db.commit()
            db.refresh(expense)

            logger.info(f"Expense {expense.id} submitted by user {submitter.id}")
            return ExpenseSubmitResponse(
                id=expense.id,
                message="Expense submitted successfully",
                status=expense.status,
                approval_flow_step=expense.approval_flow_step,
                created_at=expense.created_at
            )
        except Exception as e:
            db.rollback()
            if isinstance(e, ValidationError):
                raise e
            raise PersistenceError(f"Failed to submit expense: {str(e)}")

    @staticmethod
    def get(db: Session, expense_id: int) -> Optional[ExpenseState]:
        expense = db.query(Expense).filter(Expense.id == expense_id).first()
        return ExpenseService.to_state(expense) if expense else None

    @staticmethod
    def get_for_update(db: Session, expense_id: int) -> Optional[ExpenseState]:
        """Load the expense holding its row lock until the transaction ends"""
        expense = db.query(Expense).filter(Expense.id == expense_id).with_for_update().first()
        return ExpenseService.to_state(expense) if expense else None

    @staticmethod
    def update_status_and_step(
        db: Session,
        expense_id: int,
        status: Optional[str] = None,
        approval_flow_step: Optional[int] = None,
        approver_id: Optional[int] = None
    ) -> None:
        """Write the given fields in one statement inside the caller's transaction"""
        values = {"updated_at": datetime.utcnow()}
        if status is not None:
            values["status"] = status
        if approval_flow_step is not None:
            values["approval_flow_step"] = approval_flow_step
        if approver_id is not None:
            values["approver_id"] = approver_id

        try:
            updated = db.query(Expense).filter(Expense.id == expense_id).update(values, synchronize_session="fetch")
            db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update expense {expense_id}: {e}")
            raise PersistenceError(f"Failed to update expense: {str(e)}")
        if not updated:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

    @staticmethod
    def get_expense_by_id(db: Session, expense_id: int) -> ExpenseResponse:
        expense = db.query(Expense).options(
            joinedload(Expense.submitted_by_user),
            joinedload(Expense.approver)
        ).filter(Expense.id == expense_id).first()

        if not expense:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

        return ExpenseService._build_expense_response(expense)

    @staticmethod
    def get_company_expenses(db: Session, company_id: int, params: ExpenseQueryParams) -> ExpenseListResponse:
        """Get a company's expenses with filtering and pagination"""
        query = db.query(Expense).options(
            joinedload(Expense.submitted_by_user),
            joinedload(Expense.approver)
        ).filter(Expense.company_id == company_id)

        if params.status:
            query = query.filter(Expense.status == params.status)

        if params.submitted_by:
            query = query.filter(Expense.submitted_by == params.submitted_by)

        total_count = query.count()

        offset = (params.page - 1) * params.page_size
        expenses = query.order_by(Expense.id).offset(offset).limit(params.page_size).all()

        total_pages = (total_count + params.page_size - 1) // params.page_size

        return ExpenseListResponse(
            expenses=[ExpenseService._build_expense_response(expense) for expense in expenses],
            total_count=total_count,
            page=params.page,
            page_size=params.page_size,
            total_pages=total_pages
        )

    @staticmethod
    def to_state(expense: Expense) -> ExpenseState:
        return ExpenseState(
            id=expense.id,
            company_id=expense.company_id,
            submitted_by=expense.submitted_by,
            amount=expense.amount,
            status=expense.status,
            approval_flow_step=expense.approval_flow_step or 0,
            approver_id=expense.approver_id
        )

    @staticmethod
    def _build_expense_response(expense: Expense) -> ExpenseResponse:
        """Build expense response from database model"""
        return ExpenseResponse(
            id=expense.id,
            submitted_by=expense.submitted_by,
            paid_by=expense.paid_by,
            company_id=expense.company_id,
            amount=expense.amount,
            currency_code=expense.currency_code,
            category=expense.category,
            description=expense.description,
            expense_date=expense.expense_date,
            status=expense.status,
            approval_flow_step=expense.approval_flow_step or 0,
            approver_id=expense.approver_id,
            created_at=expense.created_at,
            updated_at=expense.updated_at,
            submitted_by_name=expense.submitted_by_user.name if expense.submitted_by_user else None,
            approver_name=expense.approver.name if expense.approver else None
        )
