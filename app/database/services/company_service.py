from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime
import logging

from app.database.models.approval import ApprovalFlowStep
from app.database.models.users import Company, User
from app.database.services.user_service import UserService
from app.ReqResModels.companymodels import CreateCompanyRequest, CompanyResponse, CreateCompanyResponse
from app.ReqResModels.usermodels import UserResponse
from app.logic.workflow_types import Role
from app.logic.exceptions import (
    CompanyNotFoundError,
    AlreadyExistsError,
    PersistenceError
)

logger = logging.getLogger(__name__)

class CompanyService:

    @staticmethod
    def create_company(db: Session, request: CreateCompanyRequest) -> CreateCompanyResponse:
        """Register a company and its first admin in one transaction; it starts without an approval flow"""
        if db.query(Company).filter(Company.name == request.name).first():
            raise AlreadyExistsError(f"Company with name '{request.name}' already exists")
        if db.query(User).filter(User.email == request.admin_email).first():
            raise AlreadyExistsError(f"User with email '{request.admin_email}' already exists")

        try:
            now = datetime.utcnow()
            company = Company(
                name=request.name,
                country=request.country,
                currency_code=request.currency_code,
                created_at=now
            )
            db.add(company)
            db.flush()

            admin = User(
                company_id=company.id,
                name=request.admin_name,
                email=request.admin_email,
                password_hash=UserService.hash_password(request.admin_password),
                role=Role.ADMIN.value,
                created_at=now
            )
            db.add(admin)
            db.commit()
            db.refresh(company)
            db.refresh(admin)
        except Exception as e:
            db.rollback()
            raise PersistenceError(f"Failed to create company: {str(e)}")

        logger.info(f"Created company {company.id} ({company.name}) with admin {admin.id}")
        return CreateCompanyResponse(
            **CompanyService._to_response(db, company).model_dump(),
            admin=UserResponse.model_validate(admin)
        )

    @staticmethod
    def get_company_by_id(db: Session, company_id: int) -> CompanyResponse:
        company = db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")
        return CompanyService._to_response(db, company)

    @staticmethod
    def _to_response(db: Session, company: Company) -> CompanyResponse:
        response = CompanyResponse.model_validate(company)
        response.member_count = db.query(func.count(User.id)).filter(User.company_id == company.id).scalar() or 0
        response.approval_step_count = db.query(func.count(ApprovalFlowStep.id)).filter(
            ApprovalFlowStep.company_id == company.id
        ).scalar() or 0
        return response
