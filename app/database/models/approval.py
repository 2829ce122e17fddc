from sqlalchemy import Column, Integer, Numeric, String, ForeignKey, Text, Boolean, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database.databse import Base
from datetime import datetime

class ApprovalFlowStep(Base):
    __tablename__ = "approval_flow_steps"
    __table_args__ = (
        UniqueConstraint("company_id", "step_order", name="uq_approval_flow_steps_company_step"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    required_role = Column(String(50), nullable=False)
    amount_threshold = Column(Numeric(12, 2), nullable=True)  # step applies only when amount >= threshold
    is_sequential = Column(Boolean, nullable=False, default=True)
    min_approval_percentage = Column(Integer, nullable=False, default=100)  # parallel steps only
    approver_ids = Column(Text, nullable=True)  # JSON list of user ids
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)


class ApprovalHistory(Base):
    __tablename__ = "approval_history"
    
    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(20), nullable=False)  # approved, rejected
    step_order = Column(Integer, nullable=False, default=0)
    comments = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    
    expense = relationship("Expense")
    approver = relationship("User")
