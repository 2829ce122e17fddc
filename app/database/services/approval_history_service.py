from typing import Dict, List
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import and_, desc, func
from datetime import datetime
import logging

from app.database.models.approval import ApprovalHistory
from app.ReqResModels.approvalmodels import ApprovalHistoryEntryResponse, ApprovalHistoryResponse
from app.logic.workflow_types import ApprovalAction, HistoryRecord, StepTally
from app.logic.exceptions import PersistenceError

logger = logging.getLogger(__name__)

class ApprovalHistoryService:
    """Append-only ledger of approval actions.

    Rows are only ever inserted. ``append`` joins the caller's transaction;
    committing or rolling back is the caller's job.
    """

    @staticmethod
    def append(db: Session, record: HistoryRecord) -> ApprovalHistory:
        try:
            entry = ApprovalHistory(
                expense_id=record.expense_id,
                approver_id=record.approver_id,
                action=record.action,
                step_order=record.step_order,
                comments=record.comments,
                created_at=datetime.utcnow()
            )
            db.add(entry)
            db.flush()
            return entry
        except SQLAlchemyError as e:
            logger.error(f"Failed to append approval history for expense {record.expense_id}: {e}")
            raise PersistenceError(f"Failed to record approval action: {str(e)}")

    @staticmethod
    def count_by_step_and_action(db: Session, expense_id: int, step_order: int, action: str) -> int:
        """Distinct approvers who took ``action`` at the step"""
        return db.query(func.count(func.distinct(ApprovalHistory.approver_id))).filter(
            and_(
                ApprovalHistory.expense_id == expense_id,
                ApprovalHistory.step_order == step_order,
                ApprovalHistory.action == action
            )
        ).scalar() or 0

    @staticmethod
    def tallies_for_expense(db: Session, expense_id: int) -> Dict[int, StepTally]:
        rows = db.query(
            ApprovalHistory.step_order, ApprovalHistory.action, ApprovalHistory.approver_id
        ).filter(ApprovalHistory.expense_id == expense_id).all()

        approved: Dict[int, set] = {}
        rejected: Dict[int, set] = {}
        for step_order, action, approver_id in rows:
            bucket = approved if action == ApprovalAction.APPROVED.value else rejected
            bucket.setdefault(step_order, set()).add(approver_id)

        return {
            step: StepTally(
                approved_by=frozenset(approved.get(step, ())),
                rejected_by=frozenset(rejected.get(step, ()))
            )
            for step in set(approved) | set(rejected)
        }

    @staticmethod
    def list_for_expense(db: Session, expense_id: int) -> List[ApprovalHistory]:
        """Entries newest first"""
        return db.query(ApprovalHistory).options(
            joinedload(ApprovalHistory.approver)
        ).filter(
            ApprovalHistory.expense_id == expense_id
        ).order_by(desc(ApprovalHistory.created_at), desc(ApprovalHistory.id)).all()

    @staticmethod
    def get_history(db: Session, expense_id: int) -> ApprovalHistoryResponse:
        entries = [
            ApprovalHistoryEntryResponse(
                id=entry.id,
                expense_id=entry.expense_id,
                approver_id=entry.approver_id,
                approver_name=entry.approver.name if entry.approver else None,
                action=entry.action,
                step_order=entry.step_order,
                comments=entry.comments,
                created_at=entry.created_at
            )
            for entry in ApprovalHistoryService.list_for_expense(db, expense_id)
        ]
        return ApprovalHistoryResponse(expense_id=expense_id, entries=entries, total=len(entries))
