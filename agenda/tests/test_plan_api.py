"""Tests for plan-info and plan-gated company endpoints."""

import asyncio

from fastapi.testclient import TestClient

from agenda.api import appointments as appointments_api
from agenda.features.plans.service import create_company, create_plan
from agenda.main import app
from agenda.models.appointment import NEW_APPOINTMENT
from agenda.models.plan import CompanyCreate, PlanCreate, PlanPermissions
from agenda.realtime.hub import EventHub


def _headers(company_id: int) -> dict:
    return {"X-Company-Id": str(company_id)}


def test_plan_info_payload_shape(company_factory):
    company_id = company_factory("Professional")
    client = TestClient(app)

    resp = client.get("/api/company/plan-info", headers=_headers(company_id))
    assert resp.status_code == 200
    body = resp.json()
    assert body["plan"]["name"] == "Professional"
    assert body["plan"]["maxProfessionals"] == 5
    assert body["plan"]["permissions"]["reports"] is True
    assert body["plan"]["permissions"]["pointsProgram"] is False
    assert body["usage"] == {"professionalsCount": 0, "professionalsLimit": 5}


def test_plan_info_requires_company_header():
    client = TestClient(app)
    resp = client.get("/api/company/plan-info")
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"]["code"] == "unauthorized"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")


def test_plan_info_rejects_malformed_company_header():
    client = TestClient(app)
    resp = client.get("/api/company/plan-info", headers={"X-Company-Id": "abc"})
    assert resp.status_code == 401


def test_company_without_plan_gets_plan_not_loaded():
    company_id = create_company(CompanyCreate(name="Planless"))
    client = TestClient(app)

    resp = client.get("/api/company/professionals", headers=_headers(company_id))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "plan_not_loaded"


def test_professional_limit_enforced_server_side(company_factory):
    company_id = company_factory("Basic")
    client = TestClient(app)

    first = client.post(
        "/api/company/professionals", headers=_headers(company_id), json={"name": "Ana"}
    )
    assert first.status_code == 201
    assert first.json()["companyId"] == company_id

    second = client.post(
        "/api/company/professionals", headers=_headers(company_id), json={"name": "Bruno"}
    )
    assert second.status_code == 403
    error = second.json()["error"]
    assert error["code"] == "professional_limit_reached"
    assert error["limit"] == 1
    assert error["current"] == 1

    listed = client.get("/api/company/professionals", headers=_headers(company_id))
    assert [p["name"] for p in listed.json()] == ["Ana"]


def test_permission_denied_payload():
    plan = create_plan(PlanCreate(
        name="Front desk",
        max_professionals=2,
        permissions=PlanPermissions(dashboard=True, professionals=True),
    ))
    company_id = create_company(CompanyCreate(name="Desk", plan_id=plan.id))
    client = TestClient(app)

    resp = client.get("/api/company/appointments", headers=_headers(company_id))
    assert resp.status_code == 403
    error = resp.json()["error"]
    assert error["code"] == "plan_permission_denied"
    assert error["required_permission"] == "appointments"
    assert '"Front desk"' in error["message"]


def test_plans_catalogue_lists_defaults(seeded_plans):
    client = TestClient(app)
    resp = client.get("/api/plans")
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()] == ["Basic", "Professional", "Premium"]


def test_creating_appointment_notifies_company_streams(company_factory, monkeypatch):
    company_id = company_factory("Basic")
    other_company = company_factory("Basic", name="Other")
    event_hub = EventHub(queue_max=10)
    monkeypatch.setattr(appointments_api, "hub", event_hub)

    mine = asyncio.run(event_hub.register(company_id))
    theirs = asyncio.run(event_hub.register(other_company))

    client = TestClient(app)
    resp = client.post(
        "/api/company/appointments",
        headers=_headers(company_id),
        json={"clientName": "Maria", "scheduledAt": "2026-10-20T14:00:00+00:00"},
    )
    assert resp.status_code == 201
    created = resp.json()

    message = mine.queue.get_nowait()
    assert message["type"] == NEW_APPOINTMENT
    assert message["appointment"]["id"] == created["id"]
    assert message["appointment"]["clientName"] == "Maria"
    assert theirs.queue.empty()

    listed = client.get("/api/company/appointments", headers=_headers(company_id))
    assert [a["id"] for a in listed.json()] == [created["id"]]


def test_appointment_with_foreign_professional_is_rejected(company_factory):
    owner = company_factory("Basic")
    intruder = company_factory("Basic", name="Intruder")
    client = TestClient(app)

    professional = client.post(
        "/api/company/professionals", headers=_headers(owner), json={"name": "Ana"}
    ).json()

    resp = client.post(
        "/api/company/appointments",
        headers=_headers(intruder),
        json={
            "clientName": "Maria",
            "professionalId": professional["id"],
            "scheduledAt": "2026-10-20T14:00:00+00:00",
        },
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"
