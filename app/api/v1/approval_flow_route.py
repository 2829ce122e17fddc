from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import require_admin
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.approval_flow_service import ApprovalFlowService
from app.ReqResModels.approvalmodels import (
    CreateApprovalFlowStepRequest,
    UpdateApprovalFlowStepRequest,
    ApprovalFlowStepResponse,
    ApprovalFlowListResponse,
    ApprovalErrorResponse
)
from app.logic.workflow_types import UserRef
from app.logic.exceptions import (
    ApprovalFlowStepNotFoundError,
    ValidationError,
    PersistenceError
)

router = APIRouter(
    prefix="/approval-flows",
    tags=["approval-flows"],
    responses={
        404: {"model": ApprovalErrorResponse, "description": "Approval flow step not found"},
        400: {"model": ApprovalErrorResponse, "description": "Bad request"},
        403: {"model": ApprovalErrorResponse, "description": "Admin role required"},
        503: {"model": ApprovalErrorResponse, "description": "Store unavailable"}
    }
)

@router.post(
    "/",
    response_model=ApprovalFlowStepResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Add an approval step",
    description="Add a step to the admin's company approval chain"
)
def create_approval_step(
    request: CreateApprovalFlowStepRequest,
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a new approval flow step"""
    try:
        return ApprovalFlowService.create_step(db, current_user.company_id, request)
    except (ValidationError, PersistenceError) as e:
        raise to_http_exception(e)

@router.get(
    "/",
    response_model=ApprovalFlowListResponse,
    summary="List approval steps",
    description="The company's approval chain in step order"
)
def get_approval_steps(
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return ApprovalFlowService.get_steps(db, current_user.company_id)

@router.patch(
    "/{step_id}",
    response_model=ApprovalFlowStepResponse,
    summary="Update an approval step"
)
def update_approval_step(
    step_id: int,
    request: UpdateApprovalFlowStepRequest,
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update an approval flow step"""
    try:
        return ApprovalFlowService.update_step(db, current_user.company_id, step_id, request)
    except (ApprovalFlowStepNotFoundError, ValidationError, PersistenceError) as e:
        raise to_http_exception(e)

@router.delete(
    "/{step_id}",
    summary="Delete an approval step"
)
def delete_approval_step(
    step_id: int,
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete an approval flow step"""
    try:
        ApprovalFlowService.delete_step(db, current_user.company_id, step_id)
        return {"message": "Approval flow step deleted"}
    except (ApprovalFlowStepNotFoundError, PersistenceError) as e:
        raise to_http_exception(e)
