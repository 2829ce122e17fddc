from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

# Request Models
class ExpenseSubmitRequest(BaseModel):
    paid_by: Optional[int] = Field(None, description="ID of the user who paid for the expense, defaults to the submitter")
    amount: Decimal = Field(..., gt=0, description="Amount of the expense")
    currency_code: str = Field(default="USD", max_length=10, description="Currency code")
    category: str = Field(..., max_length=100, description="Expense category")
    description: Optional[str] = Field(None, description="Expense description")
    expense_date: date = Field(..., description="Date when the expense occurred")

    @field_validator('expense_date')
    @classmethod
    def validate_expense_date(cls, v):
        if v > date.today():
            raise ValueError('Expense date cannot be in the future')
        return v

# Response Models
class ExpenseResponse(BaseModel):
    id: int
    submitted_by: int
    paid_by: int
    company_id: int
    amount: Decimal
    currency_code: str
    category: str
    description: Optional[str]
    expense_date: date
    status: str
    approval_flow_step: int
    approver_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime]

    # User information
    submitted_by_name: Optional[str] = None
    approver_name: Optional[str] = None

class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int

class ExpenseSubmitResponse(BaseModel):
    id: int
    message: str
    status: str
    approval_flow_step: int
    created_at: datetime

class ExpenseQueryParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=10, ge=1, le=100, description="Number of items per page")
    status: Optional[str] = Field(None, description="Filter by expense status")
    submitted_by: Optional[int] = Field(None, description="Filter by submitter user ID")

# Error Response
class ExpenseErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Optional[dict] = None
