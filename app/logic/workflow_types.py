"""Immutable snapshots handed to the approval workflow engine.

Rows are converted into these at the store boundary so the decision logic
never touches ORM objects or a session.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class EventType(str, Enum):
    EXPENSE_SUBMITTED = "expense_submitted"
    APPROVAL_REQUESTED = "approval_requested"
    VOTE_RECORDED = "vote_recorded"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"


@dataclass(frozen=True)
class UserRef:
    id: int
    name: str
    email: str
    role: str
    company_id: int


@dataclass(frozen=True)
class FlowStep:
    step_order: int
    required_role: str
    amount_threshold: Optional[Decimal] = None
    is_sequential: bool = True
    min_approval_percentage: int = 100
    approver_ids: Optional[Tuple[int, ...]] = None

    def applies_to(self, amount: Decimal) -> bool:
        """A step without a threshold always applies"""
        return self.amount_threshold is None or amount >= self.amount_threshold


@dataclass(frozen=True)
class ExpenseState:
    id: int
    company_id: int
    submitted_by: int
    amount: Decimal
    status: str
    approval_flow_step: int = 0
    approver_id: Optional[int] = None


@dataclass(frozen=True)
class StepTally:
    """Distinct voters recorded in the ledger for one step"""
    approved_by: FrozenSet[int] = frozenset()
    rejected_by: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class ApproverDirectory:
    """Company membership plus any users named explicitly by flow steps"""
    company_id: int
    company_users: Tuple[UserRef, ...] = ()
    known_users: Dict[int, UserRef] = field(default_factory=dict)

    def get(self, user_id: int) -> Optional[UserRef]:
        return self.known_users.get(user_id)


@dataclass(frozen=True)
class HistoryRecord:
    expense_id: int
    approver_id: int
    action: str
    step_order: int
    comments: Optional[str] = None


@dataclass(frozen=True)
class ApprovalEvent:
    type: EventType
    expense_id: int
    actor_id: Optional[int]
    recipient_ids: Tuple[int, ...]
    step_order: int = 0
    message: str = ""


@dataclass(frozen=True)
class ApprovalTally:
    approved: int
    eligible: int
    percentage: float
    required_percentage: int


@dataclass(frozen=True)
class ApprovalDecision:
    expense: ExpenseState
    history: HistoryRecord
    message: str
    is_complete: bool
    next_step: Optional[int] = None
    approvers: Tuple[UserRef, ...] = ()
    tally: Optional[ApprovalTally] = None
    events: Tuple[ApprovalEvent, ...] = ()


@dataclass(frozen=True)
class ApprovalStatusView:
    expense: ExpenseState
    current_step: Optional[FlowStep]
    approvers: Tuple[UserRef, ...] = ()
    tally: Optional[ApprovalTally] = None
    total_steps: int = 0
