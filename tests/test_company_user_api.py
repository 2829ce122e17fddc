from conftest import headers_for, make_company, make_expense, make_step, make_user


def create_company(client, name="Acme", admin_email="ada@acme.io"):
    return client.post("/api/v1/companies/", json={
        "name": name,
        "country": "India",
        "currency_code": "inr",
        "admin_name": "Ada",
        "admin_email": admin_email,
        "admin_password": "s3cret-pass",
    })


def create_user(client, admin, name, role="employee", **extra):
    payload = {
        "name": name,
        "email": f"{name.lower()}@acme.io",
        "password": "s3cret-pass",
        "role": role,
    }
    payload.update(extra)
    return client.post("/api/v1/users/", json=payload, headers=headers_for(admin))


def change_role(client, actor, user_id, role):
    return client.patch(f"/api/v1/users/{user_id}/role", json={"role": role}, headers=headers_for(actor))


class Actor:
    def __init__(self, id):
        self.id = id


def test_company_signup_creates_first_admin(client):
    created = create_company(client)
    duplicate_name = create_company(client, admin_email="other@acme.io")
    duplicate_admin = create_company(client, name="Globex")

    assert created.status_code == 201
    body = created.json()
    assert body["currency_code"] == "INR"
    assert body["admin"]["role"] == "admin"
    assert body["admin"]["company_id"] == body["id"]
    assert duplicate_name.status_code == 400
    assert duplicate_admin.status_code == 400

    admin = Actor(body["admin"]["id"])
    fetched = client.get(f"/api/v1/companies/{body['id']}", headers=headers_for(admin))
    assert fetched.json()["name"] == "Acme"
    assert fetched.json()["member_count"] == 1


def test_company_details_need_membership(client, db):
    company = make_company(db)
    outsider = make_user(db, make_company(db, "Globex"), "Stan", "admin")

    assert client.get(f"/api/v1/companies/{company.id}").status_code == 401
    assert client.get(f"/api/v1/companies/{company.id}", headers=headers_for(outsider)).status_code == 404


def test_admin_adds_users_to_own_company(client):
    body = create_company(client).json()
    admin = Actor(body["admin"]["id"])

    manager = create_user(client, admin, "Max", "manager").json()
    employee = create_user(client, admin, "Erin", manager_id=manager["id"]).json()

    assert manager["company_id"] == body["id"]
    assert employee["manager_id"] == manager["id"]
    everyone = client.get(f"/api/v1/users/company/{body['id']}", headers=headers_for(admin)).json()
    managers = client.get(
        f"/api/v1/users/company/{body['id']}", params={"role": "manager"}, headers=headers_for(admin)
    ).json()
    assert everyone["total"] == 3
    assert [u["name"] for u in managers["users"]] == ["Max"]
    fetched = client.get(f"/api/v1/users/{manager['id']}", headers=headers_for(Actor(employee["id"])))
    assert fetched.json()["role"] == "manager"


def test_user_creation_requires_an_admin(client, db):
    company = make_company(db)
    manager = make_user(db, company, "Max", "manager")

    anonymous = client.post("/api/v1/users/", json={
        "name": "Eve", "email": "eve@acme.io", "password": "s3cret-pass", "role": "admin"
    })
    by_manager = create_user(client, manager, "Eve", "admin")

    assert anonymous.status_code == 401
    assert by_manager.status_code == 403
    assert by_manager.json()["detail"]["error"] == "AUTHORIZATION_ERROR"


def test_user_creation_errors(client, db):
    company = make_company(db)
    admin = make_user(db, company, "Ada", "admin")
    stranger = make_user(db, make_company(db, "Globex"), "Stan", "employee")
    create_user(client, admin, "Max")

    assert create_user(client, admin, "Max").status_code == 400
    assert create_user(client, admin, "Erin", manager_id=999).status_code == 400
    assert create_user(client, admin, "Erin", manager_id=stranger.id).status_code == 400
    assert client.get("/api/v1/users/999", headers=headers_for(admin)).status_code == 404


def test_user_reads_are_scoped_to_the_company(client, db):
    company = make_company(db)
    admin = make_user(db, company, "Ada", "admin")
    employee = make_user(db, company, "Erin", "employee")
    other = make_company(db, "Globex")
    stranger = make_user(db, other, "Stan", "employee")

    assert client.get(f"/api/v1/users/company/{company.id}").status_code == 401
    assert client.get(f"/api/v1/users/company/{other.id}", headers=headers_for(admin)).status_code == 404
    assert client.get(f"/api/v1/users/company/{company.id}", headers=headers_for(employee)).status_code == 403
    assert client.get(f"/api/v1/users/{stranger.id}", headers=headers_for(admin)).status_code == 404
    assert client.get(f"/api/v1/users/{employee.id}").status_code == 401


def test_role_change_is_admin_only_and_company_scoped(client, db):
    company = make_company(db)
    admin = make_user(db, company, "Ada", "admin")
    manager = make_user(db, company, "Max", "manager")
    employee = make_user(db, company, "Erin", "employee")
    stranger = make_user(db, make_company(db, "Globex"), "Stan", "employee")

    promoted = change_role(client, admin, employee.id, "manager")

    assert promoted.status_code == 200
    assert promoted.json()["role"] == "manager"
    assert change_role(client, manager, employee.id, "admin").status_code == 403
    assert change_role(client, admin, stranger.id, "manager").status_code == 404
    assert change_role(client, admin, employee.id, "hr").status_code == 422
    assert client.patch(f"/api/v1/users/{employee.id}/role", json={"role": "admin"}).status_code == 401


def test_role_change_updates_step_approvers(client, db):
    company = make_company(db)
    admin = make_user(db, company, "Ada", "admin")
    manager = make_user(db, company, "Max", "manager")
    submitter = make_user(db, company, "Erin", "employee")
    colleague = make_user(db, company, "Eli", "employee")
    make_step(db, company, 1, "manager")
    expense = make_expense(db, submitter)
    status_url = f"/api/v1/expense-approval/status/{expense.id}"

    before = client.get(status_url, headers=headers_for(admin)).json()
    change_role(client, admin, colleague.id, "manager")
    change_role(client, admin, manager.id, "employee")
    after = client.get(status_url, headers=headers_for(admin)).json()

    assert [a["id"] for a in before["approvers"]] == [manager.id]
    assert [a["id"] for a in after["approvers"]] == [colleague.id]
    demoted = client.post(f"/api/v1/expense-approval/{expense.id}/approve", headers=headers_for(manager))
    promoted = client.post(f"/api/v1/expense-approval/{expense.id}/approve", headers=headers_for(colleague))
    assert demoted.status_code == 403
    assert promoted.status_code == 200
    assert promoted.json()["status"] == "approved"
