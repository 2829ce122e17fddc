from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.company_service import CompanyService
from app.ReqResModels.companymodels import (
    CreateCompanyRequest,
    CreateCompanyResponse,
    CompanyResponse,
    ErrorResponse
)
from app.logic.workflow_types import UserRef
from app.logic.exceptions import CompanyNotFoundError, AlreadyExistsError, PersistenceError

router = APIRouter(
    prefix="/companies",
    tags=["companies"],
    responses={
        404: {"model": ErrorResponse, "description": "Company not found"},
        400: {"model": ErrorResponse, "description": "Company name or admin email already taken"},
        503: {"model": ErrorResponse, "description": "Store unavailable"}
    }
)

@router.post(
    "/",
    response_model=CreateCompanyResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Register a company",
    description="Creates the company together with its first admin user"
)
def create_company(request: CreateCompanyRequest, db: Session = Depends(get_db)):
    try:
        return CompanyService.create_company(db, request)
    except (AlreadyExistsError, PersistenceError) as e:
        raise to_http_exception(e)

@router.get(
    "/{company_id}",
    response_model=CompanyResponse,
    summary="Get company by ID",
    description="Company details with member and approval step counts; members only"
)
def get_company(
    company_id: int,
    current_user: UserRef = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if company_id != current_user.company_id:
        raise to_http_exception(CompanyNotFoundError(f"Company with ID {company_id} not found"))
    try:
        return CompanyService.get_company_by_id(db, company_id)
    except CompanyNotFoundError as e:
        raise to_http_exception(e)
