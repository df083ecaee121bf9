from datetime import date

import pytest
from sqlalchemy import select

from helpline.models.audit import AuditLog
from helpline.models.health_profile import HealthProfile
from helpline.services.health_profiles import export_filename


@pytest.mark.anyio("asyncio")
async def test_create_and_read_profile(client, make_user, headers_for, health_payload, db_session):
    user = make_user()
    headers = headers_for(user)

    resp = await client.post("/api/health", json=health_payload(), headers=headers)
    assert resp.status_code == 201
    profile = resp.json()["healthProfile"]
    assert profile["bloodType"] == "O+"
    assert profile["bmi"] == 22.9
    assert profile["emergencyContacts"]["primary"]["name"] == "Pat Doe"
    assert profile["medicalConditions"][0]["name"] == "Asthma"
    assert profile["medicalConditions"][0]["id"]
    assert profile["age"] >= 16

    again = await client.post("/api/health", json=health_payload(), headers=headers)
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "HEALTH_PROFILE_EXISTS"

    read = await client.get("/api/health", headers=headers)
    assert read.status_code == 200
    assert read.json()["residence"] == "Cary Quadrangle"

    audit = db_session.scalars(select(AuditLog).where(AuditLog.action == "HEALTH_PROFILE_CREATED")).first()
    assert audit.entity == "HealthProfile"


@pytest.mark.anyio("asyncio")
async def test_profile_validation(client, make_user, headers_for, health_payload):
    headers = headers_for(make_user())

    too_young = await client.post(
        "/api/health", json=health_payload(dateOfBirth=date.today().isoformat()), headers=headers
    )
    assert too_young.status_code == 400
    assert too_young.json()["error"]["code"] == "VALIDATION_ERROR"

    bad_blood = await client.post("/api/health", json=health_payload(bloodType="C+"), headers=headers)
    assert bad_blood.status_code == 400

    bad_phone = health_payload()
    bad_phone["emergencyContacts"]["primary"]["phone"] = "call me"
    assert (await client.post("/api/health", json=bad_phone, headers=headers)).status_code == 400


@pytest.mark.anyio("asyncio")
async def test_missing_profile(client, make_user, headers_for):
    headers = headers_for(make_user())
    resp = await client.get("/api/health", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "HEALTH_PROFILE_NOT_FOUND"

    qr = await client.get("/api/health/qr-data", headers=headers)
    assert qr.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_partial_update_is_revalidated(client, student_headers):
    resp = await client.put(
        "/api/health",
        json={"residence": "Owen Hall", "weight": 72.5, "emergencyNotes": "Carries an inhaler"},
        headers=student_headers,
    )
    assert resp.status_code == 200
    profile = resp.json()["healthProfile"]
    assert profile["residence"] == "Owen Hall"
    assert profile["weight"] == 72.5
    assert profile["bloodType"] == "O+"
    assert profile["lastUpdated"] is not None

    invalid = await client.put("/api/health", json={"height": 20}, headers=student_headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "VALIDATION_ERROR"
    assert invalid.json()["error"]["details"]


@pytest.mark.anyio("asyncio")
async def test_delete_profile(client, student, student_headers, db_session):
    resp = await client.delete("/api/health", headers=student_headers)
    assert resp.status_code == 200
    assert db_session.scalars(select(HealthProfile).where(HealthProfile.user_id == student.id)).first() is None

    assert (await client.get("/api/health", headers=student_headers)).status_code == 404


@pytest.mark.anyio("asyncio")
async def test_qr_payload(client, student, student_headers):
    resp = await client.get("/api/health/qr-data", headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["type"] == "helpline_emergency"
    assert body["personal"]["name"] == "Jordan Lee"
    assert body["personal"]["bloodType"] == "O+"
    assert body["personal"]["allergies"][0]["name"] == "Peanuts"
    assert body["emergencyContacts"]["primary"]["phone"] == "+17655550100"
    assert body["purdueResources"]["emergency"] == "911"
    assert body["instructions"].startswith("In emergency")


@pytest.mark.anyio("asyncio")
async def test_export_is_an_attachment(client, student, student_headers):
    resp = await client.get("/api/health/export", headers=student_headers)
    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == f'attachment; filename="{export_filename(student)}"'
    body = resp.json()
    assert body["user"]["purdueId"] == student.purdue_id
    assert body["healthProfile"]["bloodType"] == "O+"
    assert body["metadata"]["exportedBy"] == "helpline-api"


def test_export_filename(make_user):
    user = make_user()
    assert export_filename(user, today=date(2026, 10, 16)) == (
        f"helpline-health-data-{user.purdue_id}-2026-10-16.json"
    )


@pytest.mark.anyio("asyncio")
async def test_summary(client, student_headers):
    resp = await client.get("/api/health/summary", headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["medicalSummary"] == {"allergiesCount": 1, "medicationsCount": 1, "conditionsCount": 1}
    assert body["personalInfo"]["campusLocation"] == "Academic Campus"


@pytest.mark.anyio("asyncio")
async def test_emergency_contacts_update(client, student_headers):
    contacts = {
        "primary": {"name": "Pat Doe", "relationship": "Parent", "phone": "+17655550100"},
        "secondary": {"name": "Alex Roe", "relationship": "Roommate", "phone": "7655550199"},
    }
    resp = await client.put("/api/health/emergency-contacts", json=contacts, headers=student_headers)
    assert resp.status_code == 200
    assert resp.json()["emergencyContacts"]["secondary"]["name"] == "Alex Roe"

    notify = await client.post(
        "/api/emergency/test-notification", json={"contactType": "secondary"}, headers=student_headers
    )
    assert notify.status_code == 200


@pytest.mark.anyio("asyncio")
async def test_medical_conditions(client, student_headers):
    added = await client.post(
        "/api/health/medical-conditions",
        json={"name": "Migraine", "symptoms": ["aura"]},
        headers=student_headers,
    )
    assert added.status_code == 201
    condition = added.json()["medicalCondition"]
    assert condition["isActive"] is True

    updated = await client.put(
        f"/api/health/medical-conditions/{condition['id']}",
        json={"isActive": False},
        headers=student_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["medicalCondition"]["isActive"] is False
    assert updated.json()["medicalCondition"]["symptoms"] == ["aura"]
    assert updated.json()["medicalCondition"]["id"] == condition["id"]

    missing = await client.put(
        "/api/health/medical-conditions/does-not-exist", json={"isActive": False}, headers=student_headers
    )
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "MEDICAL_CONDITION_NOT_FOUND"

    profile = await client.get("/api/health", headers=student_headers)
    assert len(profile.json()["medicalConditions"]) == 2
