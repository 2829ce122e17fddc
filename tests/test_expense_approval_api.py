from app.database.models.expense import Expense

from conftest import headers_for, make_company, make_expense, make_step, make_user

ACTION_URL = "/api/v1/expense-approval/{}/action"


def setup_flow(db):
    company = make_company(db)
    employee = make_user(db, company, "Erin", "employee")
    manager = make_user(db, company, "Max", "manager")
    admin = make_user(db, company, "Ada", "admin")
    make_step(db, company, 1, "manager")
    make_step(db, company, 2, "admin")
    return company, employee, manager, admin


def test_actor_header_is_required(client, db):
    _, employee, _, _ = setup_flow(db)
    expense = make_expense(db, employee)

    response = client.post(ACTION_URL.format(expense.id), json={"action": "approved"})

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "AUTHENTICATION_ERROR"


def test_unknown_actor_is_unauthenticated(client, db):
    _, employee, _, _ = setup_flow(db)
    expense = make_expense(db, employee)

    response = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers={"X-User-Id": "404"})

    assert response.status_code == 401


def test_sequential_approval_through_both_steps(client, db):
    _, employee, manager, admin = setup_flow(db)
    expense = make_expense(db, employee)

    first = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers=headers_for(manager))
    second = client.post(f"/api/v1/expense-approval/{expense.id}/approve", headers=headers_for(admin))

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["next_step"] == 2
    assert body["is_complete"] is False
    assert body["approvers"][0]["id"] == admin.id
    assert second.status_code == 200
    assert second.json()["status"] == "approved"
    assert second.json()["is_complete"] is True


def test_wrong_role_gets_structured_forbidden(client, db):
    _, employee, _, _ = setup_flow(db)
    expense = make_expense(db, employee)

    response = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers=headers_for(employee))

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["success"] is False
    assert detail["error"] == "FORBIDDEN_STEP"
    assert detail["details"]["required_role"] == "manager"


def test_decided_expense_conflicts(client, db):
    _, employee, manager, admin = setup_flow(db)
    expense = make_expense(db, employee)
    client.post(f"/api/v1/expense-approval/{expense.id}/reject", json={"comments": "No receipt"}, headers=headers_for(manager))

    response = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers=headers_for(admin))

    assert response.status_code == 409
    assert response.json()["detail"]["details"]["status"] == "rejected"


def test_missing_expense_is_not_found(client, db):
    _, _, manager, _ = setup_flow(db)

    response = client.post(ACTION_URL.format(9999), json={"action": "approved"}, headers=headers_for(manager))

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "EXPENSE_NOT_FOUND"


def test_invalid_action_is_unprocessable(client, db):
    _, employee, manager, _ = setup_flow(db)
    expense = make_expense(db, employee)

    response = client.post(ACTION_URL.format(expense.id), json={"action": "maybe"}, headers=headers_for(manager))

    assert response.status_code == 422


def test_drifted_step_cursor_is_a_server_error(client, db):
    _, employee, manager, _ = setup_flow(db)
    expense = make_expense(db, employee)
    db.query(Expense).filter(Expense.id == expense.id).update({"approval_flow_step": 7})
    db.commit()

    response = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers=headers_for(manager))

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "INVALID_STEP"


def test_status_history_and_pending_reviews(client, db):
    _, employee, manager, admin = setup_flow(db)
    expense = make_expense(db, employee)
    client.post(ACTION_URL.format(expense.id), json={"action": "approved", "comments": "ok"}, headers=headers_for(manager))

    status = client.get(f"/api/v1/expense-approval/status/{expense.id}", headers=headers_for(employee))
    history = client.get(f"/api/v1/expense-approval/history/{expense.id}", headers=headers_for(employee))
    pending = client.get("/api/v1/expense-approval/pending/me", headers=headers_for(admin))

    assert status.status_code == 200
    assert status.json()["current_step"] == 2
    assert status.json()["required_role"] == "admin"
    assert history.json()["total"] == 1
    assert history.json()["entries"][0]["approver_name"] == "Max"
    assert history.json()["entries"][0]["comments"] == "ok"
    assert [r["expense_id"] for r in pending.json()["pending_reviews"]] == [expense.id]


def test_other_company_cannot_see_expense(client, db):
    _, employee, _, _ = setup_flow(db)
    other = make_company(db, "Globex")
    stranger = make_user(db, other, "Stan", "admin")
    expense = make_expense(db, employee)

    status = client.get(f"/api/v1/expense-approval/status/{expense.id}", headers=headers_for(stranger))
    history = client.get(f"/api/v1/expense-approval/history/{expense.id}", headers=headers_for(stranger))
    action = client.post(ACTION_URL.format(expense.id), json={"action": "approved"}, headers=headers_for(stranger))

    assert status.status_code == 404
    assert history.status_code == 404
    assert action.status_code == 403


def test_employee_cannot_approve_own_expense_without_flow(client, db):
    company = make_company(db)
    employee = make_user(db, company, "Erin", "employee")
    expense = make_expense(db, employee)

    response = client.post(f"/api/v1/expense-approval/{expense.id}/approve", headers=headers_for(employee))

    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "FORBIDDEN_STEP"
    assert db.query(Expense).filter(Expense.id == expense.id).first().status == "pending"
