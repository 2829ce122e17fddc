from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_
from datetime import datetime
import json
import logging

from app.database.models.approval import ApprovalFlowStep
from app.database.models.users import User
from app.ReqResModels.approvalmodels import (
    CreateApprovalFlowStepRequest,
    UpdateApprovalFlowStepRequest,
    ApprovalFlowStepResponse,
    ApprovalFlowListResponse
)
from app.logic.approver_resolution import parse_approver_ids
from app.logic.workflow_types import FlowStep
from app.logic.exceptions import (
    ApprovalFlowStepNotFoundError,
    ValidationError,
    PersistenceError
)

logger = logging.getLogger(__name__)

class ApprovalFlowService:
    """Ordered approval-step rules per company"""

    @staticmethod
    def list_steps(db: Session, company_id: int) -> List[FlowStep]:
        """Snapshot of the company's steps, ascending by step order"""
        rows = db.query(ApprovalFlowStep).filter(
            ApprovalFlowStep.company_id == company_id
        ).order_by(ApprovalFlowStep.step_order).all()

        return [ApprovalFlowService.to_snapshot(row) for row in rows]

    @staticmethod
    def to_snapshot(row: ApprovalFlowStep) -> FlowStep:
        return FlowStep(
            step_order=row.step_order,
            required_role=row.required_role,
            amount_threshold=row.amount_threshold,
            is_sequential=bool(row.is_sequential),
            min_approval_percentage=row.min_approval_percentage or 100,
            approver_ids=parse_approver_ids(row.approver_ids)
        )

    @staticmethod
    def create_step(db: Session, company_id: int, request: CreateApprovalFlowStepRequest) -> ApprovalFlowStepResponse:
        """Add a step to the company's approval chain"""
        try:
            ApprovalFlowService._check_step_order_free(db, company_id, request.step_order)
            ApprovalFlowService._check_approvers(db, company_id, request.approver_ids)

            step = ApprovalFlowStep(
                company_id=company_id,
                step_order=request.step_order,
                required_role=request.required_role.value,
                amount_threshold=request.amount_threshold,
                is_sequential=request.is_sequential,
                min_approval_percentage=request.min_approval_percentage,
                approver_ids=json.dumps(request.approver_ids) if request.approver_ids else None,
                created_at=datetime.utcnow()
            )
            db.add(step)
            db.commit()
            db.refresh(step)

            logger.info(f"Created approval step {step.step_order} for company {company_id}")
            return ApprovalFlowService._model_to_response(step)

        except Exception as e:
            db.rollback()
            if isinstance(e, ValidationError):
                raise e
            raise PersistenceError(f"Failed to create approval step: {str(e)}")

    @staticmethod
    def get_steps(db: Session, company_id: int) -> ApprovalFlowListResponse:
        rows = db.query(ApprovalFlowStep).filter(
            ApprovalFlowStep.company_id == company_id
        ).order_by(ApprovalFlowStep.step_order).all()

        return ApprovalFlowListResponse(
            steps=[ApprovalFlowService._model_to_response(row) for row in rows],
            total=len(rows)
        )

    @staticmethod
    def update_step(db: Session, company_id: int, step_id: int, request: UpdateApprovalFlowStepRequest) -> ApprovalFlowStepResponse:
        """Edit a step; only the fields sent are changed"""
        try:
            step = ApprovalFlowService._get_row(db, company_id, step_id)
            update_data = request.model_dump(exclude_unset=True)

            if "step_order" in update_data and update_data["step_order"] != step.step_order:
                ApprovalFlowService._check_step_order_free(db, company_id, update_data["step_order"])
            if "approver_ids" in update_data:
                ApprovalFlowService._check_approvers(db, company_id, update_data["approver_ids"])
                update_data["approver_ids"] = json.dumps(update_data["approver_ids"]) if update_data["approver_ids"] else None
            if update_data.get("required_role") is not None:
                update_data["required_role"] = request.required_role.value

            for field, value in update_data.items():
                if field in ("step_order", "required_role", "is_sequential", "min_approval_percentage") and value is None:
                    continue
                setattr(step, field, value)

            setattr(step, 'updated_at', datetime.utcnow())
            db.commit()
            db.refresh(step)

            return ApprovalFlowService._model_to_response(step)

        except Exception as e:
            db.rollback()
            if isinstance(e, (ApprovalFlowStepNotFoundError, ValidationError)):
                raise e
            raise PersistenceError(f"Failed to update approval step: {str(e)}")

    @staticmethod
    def delete_step(db: Session, company_id: int, step_id: int) -> bool:
        try:
            step = ApprovalFlowService._get_row(db, company_id, step_id)
            db.delete(step)
            db.commit()
            logger.info(f"Deleted approval step {step_id} for company {company_id}")
            return True

        except Exception as e:
            db.rollback()
            if isinstance(e, ApprovalFlowStepNotFoundError):
                raise e
            raise PersistenceError(f"Failed to delete approval step: {str(e)}")

    @staticmethod
    def _get_row(db: Session, company_id: int, step_id: int) -> ApprovalFlowStep:
        step = db.query(ApprovalFlowStep).filter(
            and_(ApprovalFlowStep.id == step_id, ApprovalFlowStep.company_id == company_id)
        ).first()
        if not step:
            raise ApprovalFlowStepNotFoundError(f"Approval flow step with ID {step_id} not found")
        return step

    @staticmethod
    def _check_step_order_free(db: Session, company_id: int, step_order: int):
        existing = db.query(ApprovalFlowStep).filter(
            and_(ApprovalFlowStep.company_id == company_id, ApprovalFlowStep.step_order == step_order)
        ).first()
        if existing:
            raise ValidationError(f"Step order {step_order} already exists for this company")

    @staticmethod
    def _check_approvers(db: Session, company_id: int, approver_ids: Optional[List[int]]):
        if not approver_ids:
            return
        found = {
            u.id for u in db.query(User).filter(
                and_(User.id.in_(approver_ids), User.company_id == company_id)
            ).all()
        }
        missing = sorted(set(approver_ids) - found)
        if missing:
            raise ValidationError(f"Approvers with IDs {missing} not found in this company")

    @staticmethod
    def _model_to_response(step: ApprovalFlowStep) -> ApprovalFlowStepResponse:
        approver_ids = parse_approver_ids(step.approver_ids)
        return ApprovalFlowStepResponse(
            id=step.id,
            company_id=step.company_id,
            step_order=step.step_order,
            required_role=step.required_role,
            amount_threshold=step.amount_threshold,
            is_sequential=bool(step.is_sequential),
            min_approval_percentage=step.min_approval_percentage,
            approver_ids=list(approver_ids) if approver_ids else None,
            created_at=step.created_at,
            updated_at=step.updated_at
        )
