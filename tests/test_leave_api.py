import pytest
from datetime import date, timedelta
from fastapi import status

START = date.today() + timedelta(days=30)


def _payload(offset=0, days=3, leave_type="vacation", **extra):
    start = START + timedelta(days=offset)
    return {
        "leave_type_id": leave_type,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=days - 1)).isoformat(),
        **extra,
    }

def _error_code(response):
    return response.json()["errors"][0]["code"]


@pytest.fixture
def staff(leave_types, admin_user, manager_user, employee_user):
    return {"admin": admin_user, "manager": manager_user, "employee": employee_user}


def test_requests_require_a_token(client):
    response = client.get("/api/leaves/requests")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["success"] is False

def test_garbage_token_is_rejected(client):
    response = client.get("/api/leaves/requests", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

def test_inactive_user_is_forbidden(client, db_session, staff, get_token):
    employee = staff["employee"]
    employee.is_active = False
    db_session.commit()
    response = client.get("/api/leaves/requests", headers=get_token(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN

def test_submit_and_read_back(client, staff, get_token):
    headers = get_token(staff["employee"])
    response = client.post("/api/leaves/requests", json=_payload(reason="Family trip"), headers=headers)

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["status"] == "pending"
    assert body["total_days"] == 3

    detail = client.get(f"/api/leaves/requests/{body['id']}", headers=headers).json()
    assert detail["leave_type_code"] == "vacation"
    assert detail["reason"] == "Family trip"
    assert detail["manager_id"] == staff["manager"].id

    listing = client.get("/api/leaves/requests", headers=headers).json()
    assert listing["pagination"]["total_requests"] == 1
    assert listing["requests"][0]["id"] == body["id"]

def test_business_errors_use_the_error_envelope(client, staff, get_token):
    headers = get_token(staff["employee"])

    response = client.post("/api/leaves/requests", json=_payload(leave_type="sabbatical"), headers=headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert _error_code(response) == "INVALID_LEAVE_TYPE"

    past = date.today() - timedelta(days=1)
    response = client.post(
        "/api/leaves/requests",
        json={"leave_type_id": "vacation", "start_date": past.isoformat(), "end_date": past.isoformat()},
        headers=headers,
    )
    assert _error_code(response) == "INVALID_DATE_RANGE"

    response = client.post("/api/leaves/requests", json=_payload(days=11), headers=headers)
    assert _error_code(response) == "EXCEEDS_MAX_CONSECUTIVE_DAYS"

    client.post("/api/leaves/requests", json=_payload(), headers=headers)
    response = client.post("/api/leaves/requests", json=_payload(offset=1), headers=headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert _error_code(response) == "OVERLAPPING_REQUEST"

def test_malformed_body_is_a_validation_error(client, staff, get_token):
    response = client.post(
        "/api/leaves/requests",
        json={"leave_type_id": "vacation", "start_date": "soon"},
        headers=get_token(staff["employee"]),
    )
    assert response.status_code == 422
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"start_date", "end_date"} <= fields

def test_inverted_date_window_is_a_validation_error(client, staff, get_token):
    response = client.get(
        "/api/leaves/requests",
        params={"start_date": "2031-03-10", "end_date": "2031-03-01"},
        headers=get_token(staff["employee"]),
    )
    assert response.status_code == 422
    assert _error_code(response) == "VALIDATION_ERROR"
    assert "end_date must be on or after start_date" in response.json()["errors"][0]["msg"]

def test_two_stage_approval_over_http(client, staff, get_token):
    employee, manager, admin = staff["employee"], staff["manager"], staff["admin"]
    request_id = client.post("/api/leaves/requests", json=_payload(), headers=get_token(employee)).json()["id"]

    queue = client.get("/api/leaves/approvals/pending", headers=get_token(manager)).json()
    assert [r["id"] for r in queue] == [request_id]

    response = client.post(
        f"/api/leaves/requests/{request_id}/transition",
        json={"action": "approve_manager", "comments": "ok"},
        headers=get_token(manager),
    )
    assert response.json()["status"] == "hr_pending"

    response = client.post(
        f"/api/leaves/requests/{request_id}/transition",
        json={"action": "approve_admin"},
        headers=get_token(admin),
    )
    assert response.json()["status"] == "admin_approved"

    balances = client.get(
        "/api/leaves/balances", params={"year": START.year}, headers=get_token(employee)
    ).json()
    vacation = next(b for b in balances["balances"] if b["leave_type"] == "vacation")
    assert (vacation["used"], vacation["pending"], vacation["remaining"]) == (3, 0, 9)

    response = client.post(f"/api/leaves/requests/{request_id}/cancel", headers=get_token(employee))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["errors"][0]["details"]["current_status"] == "admin_approved"

def test_employee_cannot_use_approval_actions(client, staff, get_token):
    headers = get_token(staff["employee"])
    request_id = client.post("/api/leaves/requests", json=_payload(), headers=headers).json()["id"]
    response = client.post(
        f"/api/leaves/requests/{request_id}/transition", json={"action": "approve_admin"}, headers=headers
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert client.get("/api/leaves/approvals/pending", headers=headers).status_code == status.HTTP_403_FORBIDDEN

def test_owner_can_cancel_with_empty_body(client, staff, get_token):
    headers = get_token(staff["employee"])
    request_id = client.post("/api/leaves/requests", json=_payload(), headers=headers).json()["id"]
    response = client.post(f"/api/leaves/requests/{request_id}/cancel", headers=headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "cancelled"

def test_balances_initialize_on_first_read(client, staff, get_token):
    response = client.get("/api/leaves/balances", params={"year": 2031}, headers=get_token(staff["employee"]))
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["year"] == 2031
    assert body["total"] == 24
    assert sorted(b["leave_type"] for b in body["balances"]) == ["casual", "health"]

def test_balances_of_other_users(client, staff, other_manager, get_token):
    employee = staff["employee"]
    params = {"year": 2031, "user_id": employee.id}
    assert client.get("/api/leaves/balances", params=params, headers=get_token(staff["manager"])).status_code == 200
    assert client.get("/api/leaves/balances", params=params, headers=get_token(staff["admin"])).status_code == 200
    assert client.get("/api/leaves/balances", params=params, headers=get_token(other_manager)).status_code == 403

def test_monthly_usage_endpoint(client, staff, get_token):
    headers = get_token(staff["employee"])
    client.post("/api/leaves/requests", json=_payload(days=1, leave_type="casual"), headers=headers)
    response = client.get(
        "/api/leaves/monthly-usage", params={"year": START.year, "month": START.month}, headers=headers
    )
    assert response.json() == [{
        "leave_type_id": response.json()[0]["leave_type_id"],
        "leave_type": "casual",
        "year": START.year,
        "month": START.month,
        "used": 1,
        "max_allowed": 1,
    }]

def test_statistics_is_admin_only(client, staff, get_token):
    client.post("/api/leaves/requests", json=_payload(), headers=get_token(staff["employee"]))
    response = client.get("/api/leaves/statistics", params={"year": START.year}, headers=get_token(staff["admin"]))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["overall"]["total_requests"] == 1

    response = client.get("/api/leaves/statistics", headers=get_token(staff["manager"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN

def test_leave_type_management(client, staff, get_token):
    admin_headers = get_token(staff["admin"])
    codes = [lt["code"] for lt in client.get("/api/leave-types/", headers=admin_headers).json()]
    assert codes == ["casual", "health", "vacation"]

    response = client.post(
        "/api/leave-types/",
        json={"code": "parental", "name": "Parental Leave", "annual_days": 20},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    created = response.json()

    response = client.patch(f"/api/leave-types/{created['id']}", json={"annual_days": 25}, headers=admin_headers)
    assert response.json()["annual_days"] == 25
    assert client.get("/api/leave-types/parental", headers=admin_headers).json()["id"] == created["id"]

    response = client.post(
        "/api/leave-types/", json={"code": "sneaky", "name": "Sneaky"}, headers=get_token(staff["employee"])
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

def test_leave_type_patch_rejects_null_for_required_fields(client, staff, leave_types, get_token):
    admin_headers = get_token(staff["admin"])
    vacation_id = leave_types["vacation"].id

    for field in ("name", "annual_days", "notice_period_days", "carry_forward_days"):
        response = client.patch(f"/api/leave-types/{vacation_id}", json={field: None}, headers=admin_headers)
        assert response.status_code == 422, field
        assert _error_code(response) == "VALIDATION_ERROR"

    unchanged = client.get("/api/leave-types/vacation", headers=admin_headers).json()
    assert unchanged["name"] == leave_types["vacation"].name
    assert unchanged["annual_days"] == 12

    response = client.patch(
        f"/api/leave-types/{vacation_id}", json={"max_consecutive_days": None}, headers=admin_headers
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["max_consecutive_days"] is None

def test_notification_inbox_over_http(client, staff, get_token):
    client.post("/api/leaves/requests", json=_payload(), headers=get_token(staff["employee"]))
    headers = get_token(staff["manager"])

    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread": 1}
    inbox = client.get("/api/notifications/", headers=headers).json()
    assert inbox[0]["type"] == "request_submitted"

    response = client.patch(f"/api/notifications/{inbox[0]['id']}/read", headers=headers)
    assert response.json()["is_read"] is True
    assert client.post("/api/notifications/mark-all-read", headers=headers).json() == {"updated": 0}

    response = client.patch(f"/api/notifications/{inbox[0]['id']}/read", headers=get_token(staff["employee"]))
    assert response.status_code == status.HTTP_404_NOT_FOUND

def test_annual_reset_endpoint(client, staff, get_token):
    response = client.post("/api/admin/annual-reset", json={"year": 2031}, headers=get_token(staff["employee"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    admin_headers = get_token(staff["admin"])
    response = client.post("/api/admin/annual-reset", json={"year": 2031}, headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data == {"year": 2031, "users_reset": 3, "errors": []}

    setting = client.get("/api/admin/settings/last_annual_reset", headers=admin_headers).json()
    assert setting["category"] == "system_audit"
    assert setting["value"]["reset_year"] == 2031

    response = client.get("/api/admin/settings/nope", headers=admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND

def test_rollover_endpoint(client, staff, get_token):
    client.post("/api/leaves/requests", json=_payload(), headers=get_token(staff["employee"]))
    response = client.post(
        "/api/admin/rollover", json={"from_year": START.year}, headers=get_token(staff["admin"])
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["to_year"] == START.year + 1
    assert data["balances_written"] == 1
