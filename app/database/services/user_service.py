from typing import Iterable, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_
from datetime import datetime
import logging
import bcrypt

from app.database.models.users import User, Company
from app.ReqResModels.usermodels import CreateUserRequest, UserResponse, UserListResponse
from app.logic.workflow_types import ApproverDirectory, FlowStep, UserRef
from app.logic.exceptions import (
    UserNotFoundError,
    AlreadyExistsError,
    CompanyNotFoundError,
    ValidationError,
    PersistenceError
)

logger = logging.getLogger(__name__)

class UserService:
    """Company membership: who exists and which role they hold"""

    @staticmethod
    def create_user(db: Session, company_id: int, request: CreateUserRequest) -> UserResponse:
        if db.query(User).filter(User.email == request.email).first():
            raise AlreadyExistsError(f"User with email '{request.email}' already exists")

        if not db.query(Company).filter(Company.id == company_id).first():
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")

        if request.manager_id:
            manager = db.query(User).filter(
                and_(User.id == request.manager_id, User.company_id == company_id)
            ).first()
            if not manager:
                raise ValidationError(f"Manager with ID {request.manager_id} not found in the same company")

        try:
            user = User(
                company_id=company_id,
                name=request.name,
                email=request.email,
                password_hash=UserService.hash_password(request.password),
                role=request.role.value,
                manager_id=request.manager_id,
                created_at=datetime.utcnow()
            )
            db.add(user)
            db.commit()
            db.refresh(user)
        except Exception as e:
            db.rollback()
            raise PersistenceError(f"Failed to create user: {str(e)}")

        logger.info(f"Created {user.role} {user.id} in company {user.company_id}")
        return UserResponse.model_validate(user)

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def get_user_by_id(db: Session, user_id: int, company_id: Optional[int] = None) -> UserResponse:
        return UserResponse.model_validate(UserService._get_row(db, user_id, company_id))

    @staticmethod
    def update_role(db: Session, company_id: int, user_id: int, role: str) -> UserResponse:
        """Change a member's role; role based approval steps pick it up on their next resolution"""
        user = UserService._get_row(db, user_id, company_id)
        previous = user.role
        try:
            user.role = role
            user.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(user)
        except Exception as e:
            db.rollback()
            raise PersistenceError(f"Failed to update user role: {str(e)}")

        logger.info(f"User {user_id} in company {company_id} changed role {previous} -> {role}")
        return UserResponse.model_validate(user)

    @staticmethod
    def _get_row(db: Session, user_id: int, company_id: Optional[int] = None) -> User:
        query = db.query(User).filter(User.id == user_id)
        if company_id is not None:
            query = query.filter(User.company_id == company_id)
        user = query.first()
        if not user:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return user

    @staticmethod
    def get_company_users(db: Session, company_id: int, role: Optional[str] = None) -> UserListResponse:
        """Members of a company ordered by id, optionally only one role"""
        if not db.query(Company).filter(Company.id == company_id).first():
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")

        query = db.query(User).filter(User.company_id == company_id)
        if role:
            query = query.filter(User.role == role)
        users = query.order_by(User.id).all()

        return UserListResponse(
            company_id=company_id,
            role=role,
            users=[UserResponse.model_validate(u) for u in users],
            total=len(users)
        )

    @staticmethod
    def get_user_ref(db: Session, user_id: int) -> Optional[UserRef]:
        user = db.query(User).filter(User.id == user_id).first()
        return UserService.to_ref(user) if user else None

    @staticmethod
    def load_directory(db: Session, company_id: int, steps: Iterable[FlowStep] = ()) -> ApproverDirectory:
        """Snapshot of company membership plus the users named by explicit approver lists"""
        company_users = db.query(User).filter(User.company_id == company_id).order_by(User.id).all()
        known = {u.id: UserService.to_ref(u) for u in company_users}

        explicit_ids = {uid for step in steps for uid in (step.approver_ids or ()) if uid not in known}
        if explicit_ids:
            for user in db.query(User).filter(User.id.in_(explicit_ids)).all():
                known[user.id] = UserService.to_ref(user)

        return ApproverDirectory(
            company_id=company_id,
            company_users=tuple(UserService.to_ref(u) for u in company_users),
            known_users=known
        )

    @staticmethod
    def to_ref(user: User) -> UserRef:
        return UserRef(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            company_id=user.company_id
        )
