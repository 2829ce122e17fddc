from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.database.databse import get_db
from app.database.services.user_service import UserService
from app.logic.workflow_types import Role, UserRef
from app.logic.exceptions import AuthenticationError, AuthorizationError

def get_current_user(
    x_user_id: Optional[str] = Header(None, description="Authenticated user id, set by the auth middleware"),
    db: Session = Depends(get_db)
) -> UserRef:
    """Resolve the actor from the upstream auth middleware, never from the request body"""
    if not x_user_id:
        raise to_http_exception(AuthenticationError("Missing authenticated user"))
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise to_http_exception(AuthenticationError("Invalid authenticated user"))

    user = UserService.get_user_ref(db, user_id)
    if not user:
        raise to_http_exception(AuthenticationError("Unknown authenticated user"))
    return user

def require_admin(current_user: UserRef = Depends(get_current_user)) -> UserRef:
    if current_user.role != Role.ADMIN.value:
        raise to_http_exception(AuthorizationError("Admin role required"))
    return current_user

def require_reviewer(current_user: UserRef = Depends(get_current_user)) -> UserRef:
    """Admins and managers, the roles that review a whole company's expenses"""
    if current_user.role not in (Role.ADMIN.value, Role.MANAGER.value):
        raise to_http_exception(AuthorizationError("Admin or manager role required"))
    return current_user
