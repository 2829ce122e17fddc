import os
import tempfile

# Point the app at a throwaway SQLite file before any app module reads the environment
_db_dir = tempfile.mkdtemp(prefix="approval-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'approval.db')}"
os.environ.setdefault("EXPENSE_LOCK_TIMEOUT_SECONDS", "10")

from datetime import date, datetime
from decimal import Decimal
import json

import pytest
from fastapi.testclient import TestClient

from app.database.databse import Base, SessionLocal, engine
from app.database import migration  # noqa: F401  registers every model on Base
from app.database.models.approval import ApprovalFlowStep
from app.database.models.expense import Expense
from app.database.models.users import Company, User
from main import app


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def headers_for(user):
    return {"X-User-Id": str(user.id)}


def make_company(db, name="Acme"):
    company = Company(name=name, country="India", currency_code="USD", created_at=datetime.utcnow())
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def make_user(db, company, name, role="employee"):
    user = User(
        company_id=company.id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}.{company.id}@example.com",
        password_hash="not-a-real-hash",
        role=role,
        created_at=datetime.utcnow()
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_step(db, company, step_order, required_role, is_sequential=True,
              min_approval_percentage=100, amount_threshold=None, approver_ids=None):
    step = ApprovalFlowStep(
        company_id=company.id,
        step_order=step_order,
        required_role=required_role,
        is_sequential=is_sequential,
        min_approval_percentage=min_approval_percentage,
        amount_threshold=amount_threshold,
        approver_ids=json.dumps(approver_ids) if approver_ids else None,
        created_at=datetime.utcnow()
    )
    db.add(step)
    db.commit()
    db.refresh(step)
    return step


def make_expense(db, submitter, amount="120.00"):
    expense = Expense(
        submitted_by=submitter.id,
        paid_by=submitter.id,
        company_id=submitter.company_id,
        amount=Decimal(amount),
        currency_code="USD",
        category="Travel",
        description="Client visit",
        expense_date=date(2024, 3, 1),
        status="pending",
        approval_flow_step=0,
        created_at=datetime.utcnow()
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense
