from datetime import date
from unittest.mock import patch

import pytest
import requests

from tests.conftest import PASSWORD, api_response, make_rule


def login(app, user):
    client = app.test_client()
    response = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    return client


def expense_payload(**overrides):
    payload = {
        "amount": "120.50",
        "currency": "USD",
        "category": "travel",
        "expense_date": date.today().isoformat(),
        "description": "Airport taxi",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def rule(company, mgr1, mgr2):
    return make_rule(company, [(mgr1, 1), (mgr2, 2)])


def test_signup_logs_the_new_admin_in(client):
    with patch("app.services.currency_service.requests.get") as get:
        get.return_value.json.return_value = [
            {"name": {"common": "Japan"}, "currencies": {"JPY": {"name": "Japanese yen", "symbol": "¥"}}}
        ]
        response = client.post(
            "/auth/signup",
            json={
                "company_name": "Umbrella",
                "country": "Japan",
                "first_name": "Alice",
                "email": "alice@umbrella.test",
                "password": PASSWORD,
            },
        )

    assert response.status_code == 201
    assert response.get_json()["company"]["currency_code"] == "JPY"
    me = client.get("/auth/me").get_json()
    assert me["user"]["role"] == "admin"


def test_signup_requires_fields(client):
    response = client.post("/auth/signup", json={"company_name": "Umbrella"})

    assert response.status_code == 400
    assert "country" in response.get_json()["error"]


def test_login_rejects_bad_credentials(client, employee):
    response = client.post("/auth/login", json={"email": employee.email, "password": "nope"})

    assert response.status_code == 401


def test_anonymous_requests_get_json_401(client):
    response = client.get("/employee/expenses")

    assert response.status_code == 401
    assert response.get_json() == {"error": "Authentication required."}


def test_expense_approval_over_http(app, employee, mgr1, mgr2, rule):
    staff = login(app, employee)
    created = staff.post("/employee/expenses", json=expense_payload())
    assert created.status_code == 201
    expense = created.get_json()["expense"]
    assert expense["status"] == "draft"
    assert expense["amount_in_base_currency"] == 120.5

    submitted = staff.post(f"/employee/expenses/{expense['id']}/submit")
    assert submitted.get_json()["expense"]["current_approver"]["id"] == mgr1.id

    first = login(app, mgr1)
    pending = first.get("/manager/pending").get_json()["expenses"]
    assert [item["id"] for item in pending] == [expense["id"]]
    assert first.post(f"/manager/approve/{expense['id']}", json={"comment": "ok"}).status_code == 200

    second = login(app, mgr2)
    approved = second.post(f"/manager/approve/{expense['id']}", json={}).get_json()["expense"]
    assert approved["status"] == "approved"
    assert approved["is_terminal"] is True
    assert [entry["comment"] for entry in approved["approval_history"]] == ["ok", "Approved"]

    again = second.post(f"/manager/approve/{expense['id']}", json={})
    assert again.status_code == 409


def test_wrong_approver_and_short_rejection(app, employee, mgr1, mgr2, rule):
    staff = login(app, employee)
    expense_id = staff.post("/employee/expenses", json=expense_payload()).get_json()["expense"]["id"]
    staff.post(f"/employee/expenses/{expense_id}/submit")

    assert login(app, mgr2).post(f"/manager/reject/{expense_id}", json={"comment": "Not mine"}).status_code == 403

    approver = login(app, mgr1)
    assert approver.post(f"/manager/reject/{expense_id}", json={"comment": "no"}).status_code == 400
    assert approver.post(f"/manager/reject/{expense_id}", json={}).status_code == 400
    rejected = approver.post(f"/manager/reject/{expense_id}", json={"comment": "Duplicate claim"})
    assert rejected.get_json()["expense"]["status"] == "rejected"


def test_expense_form_errors_are_reported_per_field(app, employee):
    response = login(app, employee).post(
        "/employee/expenses", json=expense_payload(amount="abc", category="yacht")
    )

    body = response.get_json()
    assert response.status_code == 400
    assert set(body["details"]) == {"amount", "category"}


def test_roles_are_enforced_at_the_edge(app, employee, mgr1):
    assert login(app, mgr1).post("/employee/expenses", json=expense_payload()).status_code == 403
    assert login(app, employee).get("/manager/pending").status_code == 403
    assert login(app, employee).get("/admin/approval-rules").status_code == 403


def test_draft_edit_and_missing_expense(app, employee):
    staff = login(app, employee)
    expense_id = staff.post("/employee/expenses", json=expense_payload()).get_json()["expense"]["id"]

    updated = staff.put(f"/employee/expenses/{expense_id}", json={"amount": "99.99", "remarks": "corrected"})
    assert updated.status_code == 200
    assert updated.get_json()["expense"]["amount"] == 99.99
    assert updated.get_json()["expense"]["description"] == "Airport taxi"

    assert staff.get("/employee/expenses/9999").status_code == 404


def test_admin_manages_rules_over_http(app, admin, mgr1, mgr2):
    client = login(app, admin)

    approvers = client.get("/admin/approvers").get_json()["approvers"]
    assert {item["id"] for item in approvers} == {admin.id, mgr1.id, mgr2.id}

    created = client.post(
        "/admin/approval-rules",
        json={
            "name": "Everything",
            "conditions": {"amount_threshold": 0},
            "approval_flow": {"type": "sequential", "approvers": [{"user": mgr1.id, "order": 1}]},
        },
    )
    assert created.status_code == 201
    rule_id = created.get_json()["rule"]["id"]

    invalid = client.put(f"/admin/approval-rules/{rule_id}", json={"approval_flow": {"approvers": []}})
    assert invalid.status_code == 400

    assert client.delete(f"/admin/approval-rules/{rule_id}").status_code == 200
    inactive = client.get("/admin/approval-rules?is_active=false").get_json()["rules"]
    assert [item["id"] for item in inactive] == [rule_id]


def test_user_detail_and_team_over_http(app, employee, other_employee, mgr1, outsider):
    manager = login(app, mgr1)

    detail = manager.get(f"/admin/users/{employee.id}").get_json()
    assert detail["user"]["email"] == employee.email
    assert detail["manager"]["id"] == mgr1.id

    team = manager.get(f"/admin/users/{mgr1.id}/team").get_json()["team"]
    assert [member["id"] for member in team] == [employee.id]
    assert manager.get(f"/admin/users/{outsider.id}/team").status_code == 404

    staff = login(app, employee)
    assert staff.get(f"/admin/users/{other_employee.id}").status_code == 403
    assert staff.get(f"/admin/users/{mgr1.id}/team").status_code == 403


def test_countries_listing_is_public(client):
    payload = [{"name": {"common": "Kenya"}, "currencies": {"KES": {"name": "Kenyan shilling", "symbol": "Sh"}}}]
    with patch("app.services.currency_service.requests.get", return_value=api_response(payload)):
        response = client.get("/auth/countries")

    assert response.status_code == 200
    assert response.get_json()["countries"][0]["currency_code"] == "KES"


def test_countries_listing_reports_upstream_failure(client):
    with patch("app.services.currency_service.requests.get", side_effect=requests.ConnectionError("down")):
        response = client.get("/auth/countries")

    assert response.status_code == 503
