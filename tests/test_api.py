import pytest

from app.models.models import Notification
from app.services import payments

from conftest import auth_headers


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_register_login_and_me(client):
    resp = client.post(
        "/api/auth/register",
        json={"name": "Meena Iyer", "email": "Meena@Example.com", "password": "longenough1"},
    )
    assert resp.status_code == 201
    assert resp.json()["token_type"] == "bearer"

    resp = client.post("/api/auth/login", json={"email": "meena@example.com", "password": "longenough1"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "meena@example.com"
    assert me["role"] == "CUSTOMER"

    bad = client.post("/api/auth/login", json={"email": "meena@example.com", "password": "wrong-password"})
    assert bad.status_code == 401


def test_duplicate_registration_is_a_conflict(client, customer):
    resp = client.post(
        "/api/auth/register",
        json={"name": "Again", "email": customer.email, "password": "longenough1"},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "precondition_failed"


def test_refresh_token_is_not_an_access_token(client, customer):
    tokens = client.post("/api/auth/login", json={"email": customer.email, "password": "secret123"}).json()
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert resp.status_code == 401

    resp = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200


def test_authentication_and_roles(client, customer, admin):
    assert client.get("/api/projects").status_code == 401
    assert client.get("/api/vendors", headers=auth_headers(customer)).status_code == 403
    assert client.get("/api/vendors", headers=auth_headers(admin)).status_code == 200


def test_super_admin_passes_admin_routes(client, super_admin):
    assert client.get("/api/payments/milestones/stats", headers=auth_headers(super_admin)).status_code == 200


def test_customer_sees_only_own_projects(client, project, customer, make_user):
    other = make_user("CUSTOMER")
    mine = client.get("/api/projects", headers=auth_headers(customer)).json()
    assert [p["name"] for p in mine] == ["Verma Villa"]
    assert client.get("/api/projects", headers=auth_headers(other)).json() == []
    assert client.get(f"/api/projects/{project.id}", headers=auth_headers(other)).status_code == 403


def test_create_project_and_update_stages(client, admin, customer):
    resp = client.post(
        "/api/projects",
        json={"name": "Kapoor House", "client_id": str(customer.id), "budget": 500000},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["client_name"] == customer.name
    assert body["status"] == "PLANNING"
    assert body["progress"] == 0

    stages = [{"name": "Foundation", "status": "COMPLETED"}, {"name": "Structure", "status": "IN_PROGRESS"}]
    resp = client.put(f"/api/projects/{body['id']}/stages", json={"stages": stages}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["progress"] == 50
    assert resp.json()["status"] == "STRUCTURE"


def test_validation_errors_are_422(client, admin, project):
    resp = client.post(
        "/api/payments/milestones",
        json={"project_id": str(project.id), "stage_name": "Extra", "amount": -5},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 422


def test_unknown_milestone_is_404(client, admin):
    resp = client.get("/api/payments/milestones/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin))
    assert resp.status_code == 404


def test_milestone_workflow_over_http(client, db, project, admin, customer, catalog):
    milestones = payments.setup_milestones(db, project_id=project.id, schedule=catalog.milestones, actor=admin)
    mid = str(milestones[0].id)
    base = f"/api/payments/milestones/{mid}"

    resp = client.post(f"{base}/confirm", json={}, headers=auth_headers(admin))
    assert resp.status_code == 409
    assert resp.json()["code"] == "precondition_failed"

    resp = client.post(f"{base}/request-acknowledgment", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["status"] == "AWAITING_CLIENT"
    assert resp.json()["admin_acknowledged"] is True

    # Customers cannot drive admin transitions
    assert client.post(f"{base}/confirm", json={}, headers=auth_headers(customer)).status_code == 403

    resp = client.post(f"{base}/client-acknowledge", json={"accepted": True}, headers=auth_headers(customer))
    assert resp.status_code == 200
    assert resp.json()["client_acknowledged"] is True

    resp = client.post(f"{base}/confirm", json={}, headers=auth_headers(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "PAID"
    assert body["remaining_amount"] == 0
    assert body["paid_amount"] == body["amount"]

    overview = client.get(f"/api/payments/projects/{project.id}", headers=auth_headers(customer)).json()
    assert overview["summary"]["paid_milestones"] == 1
    assert overview["summary"]["paid_till_date"] == body["amount"]

    assert client.get(f"/api/projects/{project.id}", headers=auth_headers(customer)).json()["spent"] == body["amount"]


def test_only_project_client_can_acknowledge(client, db, project, admin, make_user, catalog):
    milestones = payments.setup_milestones(db, project_id=project.id, schedule=catalog.milestones, actor=admin)
    payments.request_acknowledgment(db, milestones[0].id, admin)
    stranger = make_user("CUSTOMER")
    resp = client.post(
        f"/api/payments/milestones/{milestones[0].id}/client-acknowledge",
        json={"accepted": True},
        headers=auth_headers(stranger),
    )
    assert resp.status_code == 403


def test_notification_inbox(client, db, customer, admin):
    for title in ("Payment requested", "Payment confirmed"):
        db.add(Notification(user_id=customer.id, title=title, message="...", category="PAYMENT"))
    db.add(Notification(user_id=admin.id, title="Not yours", message="...", category="ALERT"))
    db.commit()
    headers = auth_headers(customer)

    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 2}
    inbox = client.get("/api/notifications", headers=headers).json()
    assert len(inbox) == 2

    resp = client.put(f"/api/notifications/{inbox[0]['id']}/read", headers=headers)
    assert resp.json()["read"] is True
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 1}

    resp = client.put("/api/notifications/read-all", headers=headers)
    assert resp.json()["updated"] == 1
    assert client.get("/api/notifications?unread_only=true", headers=headers).json() == []

    theirs = db.query(Notification).filter(Notification.user_id == admin.id).one()
    assert client.delete(f"/api/notifications/{theirs.id}", headers=headers).status_code == 404
    assert client.delete(f"/api/notifications/{inbox[1]['id']}", headers=headers).status_code == 200


def test_workflow_notifies_the_client(client, db, project, admin, customer, catalog):
    milestones = payments.setup_milestones(db, project_id=project.id, schedule=catalog.milestones, actor=admin)
    client.post(f"/api/payments/milestones/{milestones[0].id}/request-acknowledgment", headers=auth_headers(admin))
    assert client.get("/api/notifications/unread-count", headers=auth_headers(customer)).json()["count"] >= 1


def test_material_payment_over_http(client, admin):
    headers = auth_headers(admin)
    vendor = client.post("/api/vendors", json={"name": "Jain Steel", "phone": ""}, headers=headers).json()
    assert vendor["phone"] is None

    order = client.post(
        "/api/materials",
        json={"item": "TMT 8mm", "vendor_id": vendor["id"], "quantity": 10, "unit_price": 100},
        headers=headers,
    ).json()
    assert order["total_cost"] == 1000
    assert order["payment_status"] == "PENDING"

    resp = client.post(f"/api/materials/{order['id']}/payments", json={"amount": 400}, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["material"]["remaining_amount"] == 600
    assert resp.json()["payment"]["balance_after"] == 600

    assert client.post(f"/api/materials/{order['id']}/payments", json={"amount": 0}, headers=headers).status_code == 422

    detail = client.get(f"/api/vendors/{vendor['id']}", headers=headers).json()
    assert detail["vendor"]["pending_amount"] == 600
    assert detail["vendor"]["total_paid"] == 400


def test_workforce_log_over_http(client, admin):
    headers = auth_headers(admin)
    resp = client.post(
        "/api/workforce/logs",
        json={"category": "MASON", "count": 5, "hours_worked": 10, "date": "2024-01-03"},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["total_wage"] == 5500
    assert resp.json()["week_number"] == 1

    weekly = client.get("/api/workforce/weekly?week_number=1&week_year=2024", headers=headers).json()
    assert weekly["total_wage"] == 5500

    resp = client.post("/api/workforce/weekly/pay", json={"week_number": 1, "week_year": 2024}, headers=headers)
    assert resp.json()["paid_logs"] == 1


@pytest.mark.parametrize("field", ["count", "shift", "rate_per_worker", "date"])
def test_worker_log_patch_rejects_null_wage_input(client, admin, field):
    headers = auth_headers(admin)
    created = client.post(
        "/api/workforce/logs",
        json={"category": "MASON", "count": 2, "date": "2024-01-03"},
        headers=headers,
    ).json()

    resp = client.patch(f"/api/workforce/logs/{created['id']}", json={field: None}, headers=headers)
    assert resp.status_code == 422

    unchanged = client.get(f"/api/workforce/logs/{created['id']}", headers=headers).json()
    assert unchanged["total_wage"] == created["total_wage"]
    assert unchanged[field] == created[field]


def test_worker_log_patch_keeps_omitted_fields(client, admin):
    headers = auth_headers(admin)
    created = client.post(
        "/api/workforce/logs",
        json={"category": "MASON", "count": 2, "date": "2024-01-03"},
        headers=headers,
    ).json()
    resp = client.patch(f"/api/workforce/logs/{created['id']}", json={"count": 4, "notes": None}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["total_wage"] == pytest.approx(2 * created["total_wage"])
    assert resp.json()["shift"] == created["shift"]


@pytest.mark.parametrize("field", ["stage_name", "amount", "reminder_days", "reminder_enabled"])
def test_milestone_patch_rejects_null_required_field(client, db, project, admin, field):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=300.0, actor=admin)
    resp = client.patch(f"/api/payments/milestones/{m.id}", json={field: None}, headers=auth_headers(admin))
    assert resp.status_code == 422

    body = client.get(f"/api/payments/milestones/{m.id}", headers=auth_headers(admin)).json()
    assert body["stage_name"] == "Plinth"
    assert body["amount"] == 300.0


def test_milestone_patch_allows_clearing_optional_fields(client, db, project, admin):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=300.0, notes="call first", actor=admin)
    resp = client.patch(f"/api/payments/milestones/{m.id}", json={"notes": None, "due_date": None}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["notes"] is None


def test_milestone_audit_trail(client, db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=300.0, actor=admin)
    payments.request_acknowledgment(db, m.id, admin)
    payments.client_acknowledge(db, m.id, customer, True)
    payments.confirm_payment(db, m.id, admin)
    url = f"/api/payments/milestones/{m.id}/audit"

    assert client.get(url, headers=auth_headers(customer)).status_code == 403

    trail = client.get(url, headers=auth_headers(admin)).json()
    assert {e["action"] for e in trail} == {"CREATE", "REQUEST_ACK", "CLIENT_ACCEPT", "CONFIRM"}
    assert all(e["entity_id"] == str(m.id) for e in trail)
    assert all(e["integrity_hash"] for e in trail)
    assert len(client.get(f"{url}?limit=2", headers=auth_headers(admin)).json()) == 2

    missing = "/api/payments/milestones/00000000-0000-0000-0000-000000000000/audit"
    assert client.get(missing, headers=auth_headers(admin)).status_code == 404


def test_analytics_overview(client, admin):
    resp = client.get("/api/analytics/overview", headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["profit"]["margin"] == 0.0
