from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import get_current_user, require_admin, require_reviewer
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.user_service import UserService
from app.ReqResModels.usermodels import (
    CreateUserRequest,
    UpdateUserRoleRequest,
    UserResponse,
    UserListResponse,
    UserRole,
    UserErrorResponse
)
from app.logic.workflow_types import UserRef
from app.logic.exceptions import (
    UserNotFoundError,
    AlreadyExistsError,
    CompanyNotFoundError,
    ValidationError,
    PersistenceError
)

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={
        404: {"model": UserErrorResponse, "description": "User or company not found"},
        400: {"model": UserErrorResponse, "description": "Bad request"},
        403: {"model": UserErrorResponse, "description": "Role not allowed"},
        503: {"model": UserErrorResponse, "description": "Store unavailable"}
    }
)

@router.post(
    "/",
    response_model=UserResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Add a company member",
    description="Admin only; the user joins the admin's company"
)
def create_user(
    request: CreateUserRequest,
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """The role decides which approval steps the user may act on"""
    try:
        return UserService.create_user(db, current_user.company_id, request)
    except (CompanyNotFoundError, AlreadyExistsError, ValidationError, PersistenceError) as e:
        raise to_http_exception(e)

@router.get(
    "/company/{company_id}",
    response_model=UserListResponse,
    summary="List company members",
    description="Admins and managers, own company only"
)
def get_company_users(
    company_id: int,
    role: Optional[UserRole] = Query(None, description="Only members holding this role"),
    current_user: UserRef = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    if company_id != current_user.company_id:
        raise to_http_exception(CompanyNotFoundError(f"Company with ID {company_id} not found"))
    try:
        return UserService.get_company_users(db, company_id, role.value if role else None)
    except CompanyNotFoundError as e:
        raise to_http_exception(e)

@router.patch(
    "/{user_id}/role",
    response_model=UserResponse,
    summary="Change a member's role",
    description="Admin only; decides which approval steps the member may act on from now on"
)
def update_user_role(
    user_id: int,
    request: UpdateUserRoleRequest,
    current_user: UserRef = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        return UserService.update_role(db, current_user.company_id, user_id, request.role.value)
    except (UserNotFoundError, PersistenceError) as e:
        raise to_http_exception(e)

@router.get("/{user_id}", response_model=UserResponse, summary="Get a member of your company")
def get_user(
    user_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return UserService.get_user_by_id(db, user_id, current_user.company_id)
    except UserNotFoundError as e:
        raise to_http_exception(e)
