from fastapi import status

START = "2030-03-04"
END = "2030-03-06"


def _submit(client, as_user, user, pto_type, start=START, end=END, **extra):
    return client.post(
        "/api/pto-requests",
        headers=as_user(user),
        json={"pto_type_id": pto_type.id, "start_date": start, "end_date": end, **extra},
    )


def test_missing_identity_is_unauthorized(client):
    response = client.get("/api/pto-requests")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["success"] is False


def test_unknown_user_is_unauthorized(client):
    response = client.get("/api/pto-requests", headers={"X-User-ID": "999999"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_inactive_user_is_forbidden(client, db_session, as_user, employee):
    employee.is_active = False
    db_session.commit()
    response = client.get("/api/pto-requests", headers=as_user(employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_submit_and_approve(client, as_user, employee, manager, vacation, vacation_balance):
    response = _submit(client, as_user, employee, vacation)
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    assert body["data"]["request"]["status"] == "pending"
    assert body["data"]["request"]["total_days"] == 3.0
    assert body["data"]["balance"]["available"] == 7.0
    assert body["data"]["blackout"]["can_submit"] is True
    request_id = body["data"]["request"]["id"]

    pending = client.get("/api/pto-approvals/pending", headers=as_user(manager)).json()
    assert [r["id"] for r in pending["data"]] == [request_id]

    approved = client.post(f"/api/pto-requests/{request_id}/approve", headers=as_user(manager),
                           json={"comments": "Have fun"})
    assert approved.status_code == status.HTTP_200_OK
    assert approved.json()["data"]["request"]["status"] == "approved"
    assert approved.json()["data"]["balance"] == {
        "balance_id": vacation_balance.id, "user_id": employee.id, "pto_type_id": vacation.id, "year": 2030,
        "balance": 7.0, "pending": 0.0, "used": 3.0, "available": 7.0,
    }

    again = client.post(f"/api/pto-requests/{request_id}/approve", headers=as_user(manager))
    assert again.status_code == 422
    assert again.json()["errors"][0]["code"] == "NO_PENDING_APPROVAL"


def test_insufficient_balance_envelope(client, as_user, employee, manager, vacation, give_balance):
    give_balance(employee, vacation, "1")
    response = _submit(client, as_user, employee, vacation)
    assert response.status_code == 422
    error = response.json()["errors"][0]
    assert error["code"] == "INSUFFICIENT_BALANCE"
    assert error["details"] == {"available": 1.0, "current_balance": 1.0, "pending": 0.0, "requested": 3.0}


def test_payload_validation_errors(client, as_user, employee, vacation, vacation_balance):
    response = _submit(client, as_user, employee, vacation, start_time="evening")
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "start_time"

    reversed_range = _submit(client, as_user, employee, vacation, start=END, end=START)
    assert reversed_range.status_code == 422
    assert reversed_range.json()["errors"][0]["code"] == "VALIDATION_ERROR"


def test_request_visibility(client, as_user, employee, colleague, manager, hr_admin, vacation, vacation_balance):
    request_id = _submit(client, as_user, employee, vacation).json()["data"]["request"]["id"]

    assert client.get(f"/api/pto-requests/{request_id}", headers=as_user(colleague)).status_code == 403
    for viewer in (employee, manager, hr_admin):
        assert client.get(f"/api/pto-requests/{request_id}", headers=as_user(viewer)).status_code == 200

    approvals = client.get(f"/api/pto-requests/{request_id}/approvals", headers=as_user(employee)).json()
    assert [a["approver_id"] for a in approvals["data"]] == [manager.id]
    assert client.get("/api/pto-requests/424242", headers=as_user(hr_admin)).status_code == 404


def test_deny_and_cancel_routes(client, as_user, employee, manager, vacation, vacation_balance):
    first = _submit(client, as_user, employee, vacation).json()["data"]["request"]["id"]
    second = _submit(client, as_user, employee, vacation, start="2030-04-01", end="2030-04-01").json()

    missing_reason = client.post(f"/api/pto-requests/{first}/deny", headers=as_user(manager), json={})
    assert missing_reason.status_code == 422

    denied = client.post(f"/api/pto-requests/{first}/deny", headers=as_user(manager), json={"comments": "No"})
    assert denied.json()["data"]["request"]["status"] == "denied"

    second_id = second["data"]["request"]["id"]
    cancelled = client.post(f"/api/pto-requests/{second_id}/cancel", headers=as_user(employee),
                            json={"reason": "Changed my mind"})
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["request"]["status"] == "cancelled"
    assert cancelled.json()["data"]["balance"]["pending"] == 0.0


def test_update_route(client, as_user, employee, vacation, vacation_balance):
    request_id = _submit(client, as_user, employee, vacation).json()["data"]["request"]["id"]
    response = client.put(f"/api/pto-requests/{request_id}", headers=as_user(employee),
                          json={"end_date": "2030-03-08"})
    assert response.status_code == 200
    assert response.json()["data"]["request"]["total_days"] == 5.0
    assert response.json()["data"]["balance"]["pending"] == 5.0


def test_balances_are_private(client, as_user, employee, colleague, hr_admin, vacation, vacation_balance):
    own = client.get("/api/pto-balances?year=2030", headers=as_user(employee))
    assert own.status_code == 200
    assert own.json()["data"][0]["balance"] == 10.0
    assert own.json()["metadata"]["count"] == 1

    other = client.get(f"/api/pto-balances?user_id={employee.id}", headers=as_user(colleague))
    assert other.status_code == 403
    assert client.get(f"/api/pto-balances?user_id={employee.id}", headers=as_user(hr_admin)).status_code == 200


def test_balance_adjust_and_history(client, as_user, employee, hr_admin, vacation, vacation_balance):
    payload = {"user_id": employee.id, "pto_type_id": vacation.id, "year": 2030, "delta": 2, "reason": "Award"}
    assert client.post("/api/pto-balances/adjust", headers=as_user(employee), json=payload).status_code == 403

    adjusted = client.post("/api/pto-balances/adjust", headers=as_user(hr_admin), json=payload)
    assert adjusted.status_code == 200
    assert adjusted.json()["data"]["balance"] == 12.0

    history = client.get(f"/api/pto-balances/{vacation_balance.id}/transactions", headers=as_user(employee))
    assert [t["type"] for t in history.json()["data"]] == ["adjustment"]


def test_policy_creation_and_reset(client, as_user, employee, hr_admin, vacation):
    created = client.post("/api/pto-policies", headers=as_user(hr_admin), json={
        "user_id": employee.id, "pto_type_id": vacation.id, "initial_days": 8,
        "annual_accrual_amount": 10, "bonus_days_per_year": 1, "effective_date": "2029-01-01",
    })
    assert created.status_code == status.HTTP_201_CREATED
    assert created.json()["data"]["balance"]["balance"] == 8.0

    duplicate = client.post("/api/pto-policies", headers=as_user(hr_admin), json={
        "user_id": employee.id, "pto_type_id": vacation.id, "initial_days": 8, "annual_accrual_amount": 10,
    })
    assert duplicate.status_code == 422

    projection = client.get(
        f"/api/pto-policies/project?user_id={employee.id}&pto_type_id={vacation.id}&to_year=2030",
        headers=as_user(employee),
    )
    assert projection.json()["data"]["projected_balance"] == 13.0

    reset = client.post("/api/pto-balances/reset-for-new-year", headers=as_user(hr_admin), json={"year": 2030})
    assert reset.status_code == 200
    assert reset.json()["data"]["created"] == 1
    assert reset.json()["data"]["balances"][0]["balance"] == 13.0


def test_pto_type_management(client, as_user, employee, hr_admin, vacation, vacation_balance):
    payload = {"name": "Bereavement", "code": "BRV", "uses_balance": False}
    assert client.post("/api/pto-types", headers=as_user(employee), json=payload).status_code == 403

    created = client.post("/api/pto-types", headers=as_user(hr_admin), json=payload)
    assert created.status_code == 201
    type_id = created.json()["data"]["id"]

    duplicate = client.post("/api/pto-types", headers=as_user(hr_admin), json=payload)
    assert duplicate.status_code == 422

    updated = client.put(f"/api/pto-types/{type_id}", headers=as_user(hr_admin), json={"color": "#000000"})
    assert updated.json()["data"]["color"] == "#000000"

    in_use = client.delete(f"/api/pto-types/{vacation.id}", headers=as_user(hr_admin))
    assert in_use.status_code == 422
    assert in_use.json()["errors"][0]["details"]["balances"] == 1

    assert client.delete(f"/api/pto-types/{type_id}", headers=as_user(hr_admin)).status_code == 200
    codes = [t["code"] for t in client.get("/api/pto-types", headers=as_user(employee)).json()["data"]]
    assert codes == ["VAC"]


def test_blackout_management_and_check(client, as_user, employee, hr_admin, vacation, vacation_balance):
    blackout = {
        "name": "Audit week", "start_date": "2030-03-06", "end_date": "2030-03-08",
        "is_company_wide": True, "is_strict": True,
    }
    assert client.post("/api/pto-blackouts", headers=as_user(employee), json=blackout).status_code == 403
    created = client.post("/api/pto-blackouts", headers=as_user(hr_admin), json=blackout)
    assert created.status_code == 201
    assert created.json()["data"]["formatted_range"] == "Mar 06, 2030 - Mar 08, 2030"

    check = client.post("/api/pto-blackouts/check", headers=as_user(employee), json={
        "pto_type_id": vacation.id, "start_date": START, "end_date": END,
    })
    assert check.json()["data"]["can_submit"] is False
    assert check.json()["data"]["strict"] is True

    blocked = _submit(client, as_user, employee, vacation)
    assert blocked.status_code == 422
    assert blocked.json()["errors"][0]["code"] == "BLACKOUT_CONFLICT"

    no_scope = {**blackout, "is_company_wide": False}
    assert client.post("/api/pto-blackouts", headers=as_user(hr_admin), json=no_scope).status_code == 422

    blackout_id = created.json()["data"]["id"]
    assert client.delete(f"/api/pto-blackouts/{blackout_id}", headers=as_user(hr_admin)).status_code == 200
    assert _submit(client, as_user, employee, vacation).status_code == 201


def test_historical_route_is_admin_only(client, as_user, employee, manager, hr_admin, vacation, vacation_balance):
    payload = {"user_id": employee.id, "pto_type_id": vacation.id, "start_date": "2025-01-06",
               "end_date": "2025-01-08"}
    assert client.post("/api/pto-requests/historical", headers=as_user(manager), json=payload).status_code == 403


def test_holiday_calendar(client, as_user, employee, hr_admin):
    payload = {"name": "Founders Day", "date": "2030-03-06", "type": "company"}
    assert client.post("/api/pto-blackouts/holidays", headers=as_user(employee), json=payload).status_code == 403

    created = client.post("/api/pto-blackouts/holidays", headers=as_user(hr_admin), json=payload)
    assert created.status_code == status.HTTP_201_CREATED
    assert created.json()["data"]["type"] == "company"

    in_range = client.get("/api/pto-blackouts/holidays?start_date=2030-03-04&end_date=2030-03-08",
                          headers=as_user(employee)).json()
    assert [h["name"] for h in in_range["data"]] == ["Founders Day"]
    assert in_range["metadata"]["dates"] == ["2030-03-06"]

    outside = client.get("/api/pto-blackouts/holidays?start_date=2030-04-01&end_date=2030-04-30",
                         headers=as_user(employee)).json()
    assert outside["data"] == []
