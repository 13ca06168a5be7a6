"""HTTP API — routing, auth, problem+json errors and end-to-end flows."""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.common.constants import LeaveStatus
from tests.conftest import (
    auth_headers,
    create_access_token,
    principal_for,
    seed_request,
)

LEAVE = "/api/v1/leave"
EMPLOYEES = "/api/v1/employees"
DEPARTMENTS = "/api/v1/departments"
ADMIN = "/api/v1/admin"


@pytest.fixture
async def seeded(db: AsyncSession, admin, employee, colleague, outsider):
    """Commit the seeded world so request-scoped sessions can see it."""
    await db.commit()
    return {"admin": admin, "employee": employee, "colleague": colleague, "outsider": outsider}


def _vacation(start: str, end: str, **extra) -> dict:
    return {"leave_type": "vacation", "start_date": start, "end_date": end, **extra}


# ═════════════════════════════════════════════════════════════════════
# System / auth
# ═════════════════════════════════════════════════════════════════════


class TestSystem:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{LEAVE}/requests")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, seeded):
        token = create_access_token(principal_for(seeded["employee"]), expired=True)
        resp = await client.get(f"{LEAVE}/requests", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired."

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get(f"{LEAVE}/requests", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# Leave requests
# ═════════════════════════════════════════════════════════════════════


class TestLeaveApi:

    async def test_create_get_list(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        resp = await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05", notes="Lisbon"), headers=headers,
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["working_days"] == 5
        assert body["department_id"] == str(seeded["employee"].department_id)

        resp = await client.get(f"{LEAVE}/requests/{body['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["notes"] == "Lisbon"

        resp = await client.get(f"{LEAVE}/requests", headers=headers)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]] == [body["id"]]
        assert resp.json()["meta"]["total"] == 1

    async def test_problem_detail_for_business_error(self, client: AsyncClient, seeded):
        resp = await client.post(
            f"{LEAVE}/requests",
            json={"leave_type": "sick", "start_date": "2025-07-01", "end_date": "2025-07-02"},
            headers=auth_headers(seeded["employee"]),
        )
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/medical-certificate-required")
        assert body["instance"] == f"{LEAVE}/requests"
        assert "certificate" in body["errors"]

    async def test_request_validation_error(self, client: AsyncClient, seeded):
        resp = await client.post(
            f"{LEAVE}/requests",
            json={"leave_type": "holiday", "start_date": "soon", "end_date": "2025-07-02"},
            headers=auth_headers(seeded["employee"]),
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"].endswith("/validation-error")
        assert "leave_type" in body["errors"]
        assert "start_date" in body["errors"]

    async def test_unknown_request_404(self, client: AsyncClient, seeded):
        resp = await client.get(f"{LEAVE}/requests/{uuid.uuid4()}", headers=auth_headers(seeded["admin"]))
        assert resp.status_code == 404
        assert resp.json()["type"].endswith("/not-found")

    async def test_approval_flow_and_overlap(self, client: AsyncClient, seeded):
        emp_headers = auth_headers(seeded["employee"])
        admin_headers = auth_headers(seeded["admin"])

        first = (await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05"), headers=emp_headers,
        )).json()

        resp = await client.post(f"{LEAVE}/requests/{first['id']}/approve", headers=emp_headers)
        assert resp.status_code == 403

        resp = await client.post(f"{LEAVE}/requests/{first['id']}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        assert resp.json()["resolved_by"] == str(seeded["admin"].id)

        resp = await client.get(f"{LEAVE}/balance/vacation", headers=emp_headers)
        assert resp.status_code == 200
        assert resp.json()["used"] == 5
        assert resp.json()["available"] == 15

        second = (await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-03", "2025-09-04"), headers=emp_headers,
        )).json()
        assert second["overlap_warning"]["request_ids"] == [first["id"]]

        resp = await client.post(f"{LEAVE}/requests/{second['id']}/approve", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/overlap-conflict")
        assert resp.json()["retryable"] is True

        resp = await client.get(f"{LEAVE}/requests/{second['id']}", headers=emp_headers)
        assert resp.json()["status"] == "pending"

    async def test_reject_and_reopen(self, client: AsyncClient, seeded):
        admin_headers = auth_headers(seeded["admin"])
        created = (await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-01"),
            headers=auth_headers(seeded["employee"]),
        )).json()

        resp = await client.post(
            f"{LEAVE}/requests/{created['id']}/reject", json={"reason": "Release week"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["rejection_reason"] == "Release week"

        resp = await client.post(f"{LEAVE}/requests/{created['id']}/reopen", json={}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "pending"

        resp = await client.post(f"{LEAVE}/requests/{created['id']}/reopen", json={}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/not-reopenable")

    async def test_edit_and_cancel(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        created = (await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05"), headers=headers,
        )).json()

        resp = await client.patch(
            f"{LEAVE}/requests/{created['id']}", json={"end_date": "2025-09-02"}, headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["working_days"] == 2

        resp = await client.post(f"{LEAVE}/requests/{created['id']}/cancel", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        resp = await client.post(f"{LEAVE}/requests/{created['id']}/cancel", headers=headers)
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/not-cancellable")

        resp = await client.patch(
            f"{LEAVE}/requests/{created['id']}", json={"notes": "late"}, headers=headers,
        )
        assert resp.status_code == 409

    async def test_delete_keeps_audit_snapshot(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        created = (await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05", notes="Wedding"), headers=headers,
        )).json()

        resp = await client.delete(f"{LEAVE}/requests/{created['id']}", headers=headers)
        assert resp.status_code == 204

        resp = await client.get(f"{LEAVE}/requests/{created['id']}", headers=headers)
        assert resp.status_code == 404

        resp = await client.get(
            f"{ADMIN}/audit",
            params={"action": "leave_request_deleted", "resource_id": created["id"]},
            headers=auth_headers(seeded["admin"]),
        )
        assert resp.status_code == 200
        (entry,) = resp.json()["data"]
        assert entry["details"]["previous_request"]["notes"] == "Wedding"
        assert entry["actor_id"] == str(seeded["employee"].id)

    async def test_failed_operation_leaves_no_audit(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        resp = await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-06", "2025-09-07"), headers=headers,
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/no-working-days")

        resp = await client.get(f"{ADMIN}/audit", headers=auth_headers(seeded["admin"]))
        assert resp.json()["meta"]["total"] == 0

    async def test_stats(self, client: AsyncClient, seeded):
        resp = await client.get(f"{LEAVE}/balance", headers=auth_headers(seeded["employee"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["year"] == 2025
        assert body["vacation"]["allowance"] == 20
        assert body["sick"]["available"] is None

        resp = await client.get(
            f"{LEAVE}/balance", params={"employee_id": str(seeded["colleague"].id)},
            headers=auth_headers(seeded["employee"]),
        )
        assert resp.status_code == 403


# ═════════════════════════════════════════════════════════════════════
# Admin settings / visibility
# ═════════════════════════════════════════════════════════════════════


class TestAdminApi:

    async def test_visibility_setting_changes_listing(self, client: AsyncClient, db: AsyncSession, seeded):
        await seed_request(db, seeded["colleague"], date(2025, 9, 1), date(2025, 9, 2))
        await seed_request(db, seeded["outsider"], date(2025, 9, 3), date(2025, 9, 4), status=LeaveStatus.approved)
        await db.commit()

        emp_headers = auth_headers(seeded["employee"])
        resp = await client.get(f"{LEAVE}/requests", headers=emp_headers)
        assert resp.json()["meta"]["total"] == 0

        resp = await client.put(
            f"{ADMIN}/settings/holidays.visibility_mode",
            json={"value": "department_only"},
            headers=auth_headers(seeded["admin"]),
        )
        assert resp.status_code == 200
        assert resp.json()["value"] == "department_only"

        resp = await client.get(f"{LEAVE}/requests", headers=emp_headers)
        assert resp.json()["meta"]["total"] == 1

        resp = await client.get(f"{EMPLOYEES}", headers=emp_headers)
        names = {e["name"] for e in resp.json()["data"]}
        assert names == {"Ada Admin", "Eve Employee", "Carl Colleague"}

    async def test_settings_listing_and_effective(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        resp = await client.get(f"{ADMIN}/settings", headers=headers)
        assert resp.status_code == 200
        assert all(s["is_default"] for s in resp.json())

        resp = await client.get(f"{ADMIN}/settings/effective", headers=headers)
        assert resp.json()["approval_mode"] == "manual"

    async def test_invalid_setting_value(self, client: AsyncClient, seeded):
        resp = await client.put(
            f"{ADMIN}/settings/holidays.max_consecutive_days",
            json={"value": "forever"},
            headers=auth_headers(seeded["admin"]),
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/invalid-setting-value")

    async def test_employee_cannot_change_settings_or_read_audit(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["employee"])
        resp = await client.put(
            f"{ADMIN}/settings/holidays.approval_mode", json={"value": "auto"}, headers=headers,
        )
        assert resp.status_code == 403
        resp = await client.get(f"{ADMIN}/audit", headers=headers)
        assert resp.status_code == 403

    async def test_auto_approval_mode(self, client: AsyncClient, seeded):
        await client.put(
            f"{ADMIN}/settings/holidays.approval_mode", json={"value": "auto"},
            headers=auth_headers(seeded["admin"]),
        )
        resp = await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05"),
            headers=auth_headers(seeded["employee"]),
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "approved"


# ═════════════════════════════════════════════════════════════════════
# Employees / departments
# ═════════════════════════════════════════════════════════════════════


class TestEmployeeApi:

    async def test_register_and_approve(self, client: AsyncClient, seeded):
        resp = await client.post(
            f"{EMPLOYEES}/register", json={"email": "Nina@Example.com", "name": "Nina"},
        )
        assert resp.status_code == 201
        new = resp.json()
        assert new["status"] == "pending"
        assert new["email"] == "nina@example.com"

        resp = await client.post(
            f"{EMPLOYEES}/register", json={"email": "nina@example.com", "name": "Nina 2"},
        )
        assert resp.status_code == 409

        resp = await client.post(
            f"{EMPLOYEES}/{new['id']}/approve", headers=auth_headers(seeded["admin"]),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    async def test_register_rejects_bad_email(self, client: AsyncClient):
        resp = await client.post(f"{EMPLOYEES}/register", json={"email": "nope", "name": "N"})
        assert resp.status_code == 422

    async def test_allowance_override_applies(self, client: AsyncClient, seeded):
        emp = seeded["employee"]
        resp = await client.put(
            f"{EMPLOYEES}/{emp.id}/allowances", json={"vacation_allowance": 2},
            headers=auth_headers(seeded["admin"]),
        )
        assert resp.status_code == 200

        resp = await client.post(
            f"{LEAVE}/requests", json=_vacation("2025-09-01", "2025-09-05"), headers=auth_headers(emp),
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/insufficient-allowance")

    async def test_department_crud(self, client: AsyncClient, seeded):
        headers = auth_headers(seeded["admin"])
        resp = await client.post(f"{DEPARTMENTS}", json={"name": "Finance"}, headers=headers)
        assert resp.status_code == 201
        dept_id = resp.json()["id"]

        resp = await client.patch(f"{DEPARTMENTS}/{dept_id}", json={"location": "Porto"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["location"] == "Porto"

        resp = await client.get(f"{DEPARTMENTS}", headers=headers)
        assert {d["name"] for d in resp.json()} == {"Finance", "Marketing", "Sales"}

        resp = await client.delete(f"{DEPARTMENTS}/{dept_id}", headers=headers)
        assert resp.status_code == 204

        resp = await client.post(f"{DEPARTMENTS}", json={"name": "sales"}, headers=headers)
        assert resp.status_code == 409
