from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from enum import Enum

class ApprovalRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

class ApprovalActionType(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"

# Approval flow configuration
class CreateApprovalFlowStepRequest(BaseModel):
    step_order: int = Field(..., ge=1, description="Position of the step in the company's chain")
    required_role: ApprovalRole = Field(..., description="Role an approver must hold (admins always qualify)")
    amount_threshold: Optional[Decimal] = Field(None, ge=0, description="Step applies only to expenses at or above this amount")
    is_sequential: bool = Field(default=True, description="True: one approval completes the step. False: parallel voting")
    min_approval_percentage: int = Field(default=100, ge=1, le=100, description="Share of eligible approvers needed on a parallel step")
    approver_ids: Optional[List[int]] = Field(None, description="Explicit approvers; overrides the required role")

    @field_validator('step_order', 'min_approval_percentage', mode='before')
    @classmethod
    def parse_int_fields(cls, v):
        if isinstance(v, str):
            return int(v)
        return v

    @field_validator('approver_ids', mode='before')
    @classmethod
    def parse_approver_ids(cls, v):
        if v is not None and isinstance(v, list):
            return [int(i) if isinstance(i, str) else i for i in v]
        return v

class UpdateApprovalFlowStepRequest(BaseModel):
    step_order: Optional[int] = Field(None, ge=1)
    required_role: Optional[ApprovalRole] = None
    amount_threshold: Optional[Decimal] = Field(None, ge=0)
    is_sequential: Optional[bool] = None
    min_approval_percentage: Optional[int] = Field(None, ge=1, le=100)
    approver_ids: Optional[List[int]] = None

class ApprovalFlowStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    step_order: int
    required_role: str
    amount_threshold: Optional[Decimal] = None
    is_sequential: bool
    min_approval_percentage: int
    approver_ids: Optional[List[int]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class ApprovalFlowListResponse(BaseModel):
    steps: List[ApprovalFlowStepResponse]
    total: int

# Approval actions
class ApprovalActionRequest(BaseModel):
    action: ApprovalActionType = Field(..., description="approved or rejected")
    comments: Optional[str] = Field(None, max_length=1000, description="Optional comments")

class ApprovalCommentRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000, description="Optional comments")

class UserRefResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str

class ApprovalTallyResponse(BaseModel):
    approved: int
    eligible: int
    percentage: float
    required_percentage: int

class ApprovalResult(BaseModel):
    success: bool
    message: str
    expense_id: int
    status: str
    next_step: Optional[int] = None
    is_complete: Optional[bool] = None
    approvers: Optional[List[UserRefResponse]] = None
    tally: Optional[ApprovalTallyResponse] = None

class ApprovalHistoryEntryResponse(BaseModel):
    id: int
    expense_id: int
    approver_id: int
    approver_name: Optional[str] = None
    action: str
    step_order: int
    comments: Optional[str] = None
    created_at: datetime

class ApprovalHistoryResponse(BaseModel):
    expense_id: int
    entries: List[ApprovalHistoryEntryResponse]
    total: int

class ExpenseApprovalStatusResponse(BaseModel):
    expense_id: int
    status: str
    current_step: Optional[int] = None
    required_role: Optional[str] = None
    is_sequential: Optional[bool] = None
    total_steps: int
    is_complete: bool
    approvers: List[UserRefResponse] = []
    tally: Optional[ApprovalTallyResponse] = None

class PendingReviewRequest(BaseModel):
    """Expense waiting on a step the current user may act on"""
    expense_id: int
    submitted_by_id: int
    submitted_by_name: Optional[str] = None
    amount: Decimal
    currency_code: str
    category: str
    description: Optional[str] = None
    expense_date: date
    submitted_date: datetime
    current_step: int
    required_role: Optional[str] = None

class PendingReviewsResponse(BaseModel):
    pending_reviews: List[PendingReviewRequest]
    total_count: int
    total_amount: Decimal

# Error Response Models
class ApprovalErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Optional[dict] = None
