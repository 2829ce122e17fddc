from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator
from datetime import datetime
from typing import Optional

from app.ReqResModels.usermodels import UserResponse

class CreateCompanyRequest(BaseModel):
    """A company is registered together with its first admin"""
    name: str = Field(..., min_length=1, max_length=255, description="Company name")
    country: str = Field(..., min_length=2, max_length=100, description="Country name")
    currency_code: str = Field(default="USD", min_length=3, max_length=3, description="Base currency (ISO 4217)")
    admin_name: str = Field(..., min_length=1, max_length=255)
    admin_email: EmailStr
    admin_password: str = Field(..., min_length=5, max_length=100)

    @field_validator('currency_code')
    @classmethod
    def normalize_currency(cls, v):
        return v.upper()

class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    country: str
    currency_code: str
    member_count: int = 0
    approval_step_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

class CreateCompanyResponse(CompanyResponse):
    admin: UserResponse

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Optional[dict] = None
