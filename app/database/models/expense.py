from sqlalchemy import Column, Integer, Numeric, String, ForeignKey, Text, Date, TIMESTAMP
from sqlalchemy.orm import relationship
from app.database.databse import Base
from datetime import datetime

class Expense(Base):
    __tablename__ = "expenses"
    
    id = Column(Integer, primary_key=True, index=True)
    submitted_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency_code = Column(String(10), nullable=False, default="USD")
    category = Column(String(100), nullable=False)
    description = Column(Text)
    expense_date = Column(Date, nullable=False)
    status = Column(String(50), nullable=False, default="pending")  # pending, approved, rejected
    approval_flow_step = Column(Integer, nullable=False, default=0)  # 0 = not yet entered the flow
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # last user who acted
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)
    
    # Relationships
    submitted_by_user = relationship("User", foreign_keys=[submitted_by])
    paid_by_user = relationship("User", foreign_keys=[paid_by])
    approver = relationship("User", foreign_keys=[approver_id])
