from pydantic import BaseModel, Field, EmailStr, ConfigDict
from datetime import datetime
from typing import Optional, List
from enum import Enum

class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

class CreateUserRequest(BaseModel):
    """The user joins the acting admin's company"""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=5, max_length=100)
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="Decides which approval steps the user may act on")
    manager_id: Optional[int] = Field(None, gt=0, description="Direct manager in the same company")

class UpdateUserRoleRequest(BaseModel):
    role: UserRole = Field(..., description="New role; changes which approval steps the user may act on")

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str
    email: str
    role: str
    manager_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class UserListResponse(BaseModel):
    company_id: int
    role: Optional[str] = None
    users: List[UserResponse]
    total: int

class UserErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Optional[dict] = None
