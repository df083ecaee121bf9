from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from helpline.models.audit import AuditLog
from helpline.models.emergency_alert import AlertStatus, AlertType, EmergencyAlert
from helpline.schemas.alert import BeaconActivate, BeaconExtend
from helpline.services import beacon as beacon_service
from helpline.services.health_profiles import get_profile
from helpline.utils.time import ensure_utc, parse_iso_utc, utcnow

PURDUE_MALL = [-86.9212, 40.4237]
NEARBY_SPOT = [-86.9200, 40.4240]
INDIANAPOLIS = [-86.1581, 39.7684]


def _activate(db_session, user, *, now=None, duration=300, coordinates=PURDUE_MALL, share=True):
    payload = BeaconActivate.model_validate(
        {"location": {"coordinates": coordinates}, "duration": duration, "shareWithCampus": share}
    )
    return beacon_service.activate_beacon(db_session, user, get_profile(db_session, user), payload, now=now)


def _live_count(db_session, user_id):
    return db_session.scalar(
        select(func.count(EmergencyAlert.id)).where(
            EmergencyAlert.user_id == user_id,
            EmergencyAlert.beacon_active.is_(True),
            EmergencyAlert.status == AlertStatus.ACTIVE,
        )
    )


@pytest.mark.anyio("asyncio")
async def test_activate_then_status_reports_remaining_time(client, student_headers):
    resp = await client.post(
        "/api/beacon/activate",
        json={"location": {"coordinates": PURDUE_MALL, "building": "PMU"}, "duration": 600},
        headers={**student_headers, "User-Agent": "pytest-client", "X-App-Version": "2.1.0"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["beaconActive"] is True
    assert body["duration"] == "600 seconds"
    assert body["expiresAt"].endswith("Z")

    status_resp = await client.get("/api/beacon/status", headers=student_headers)
    assert status_resp.status_code == 200
    status = status_resp.json()
    assert status["beaconActive"] is True
    assert status["alertId"] == body["alertId"]
    assert 595 <= status["timeRemaining"] <= 600
    assert status["location"]["coordinates"] == PURDUE_MALL
    assert status["location"]["building"] == "PMU"


@pytest.mark.anyio("asyncio")
async def test_activation_stores_device_metadata(client, student_headers, db_session):
    resp = await client.post(
        "/api/beacon/activate",
        json={"location": {"coordinates": PURDUE_MALL}},
        headers={**student_headers, "User-Agent": "pytest-client", "X-App-Version": "2.1.0"},
    )
    assert resp.status_code == 201

    beacon = db_session.get(EmergencyAlert, resp.json()["alertId"])
    assert beacon.user_agent == "pytest-client"
    assert beacon.app_version == "2.1.0"
    assert beacon.alert_type == AlertType.BEACON_ACTIVATION
    assert beacon.description == beacon_service.DEFAULT_DESCRIPTION


@pytest.mark.anyio("asyncio")
async def test_second_activation_is_rejected(client, student, student_headers, db_session):
    payload = {"location": {"coordinates": PURDUE_MALL}}
    first = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
    assert first.status_code == 201

    second = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "BEACON_ALREADY_ACTIVE"
    assert _live_count(db_session, student.id) == 1


def test_racing_activation_is_stopped_by_unique_index(monkeypatch, db_session, student):
    _activate(db_session, student)
    # Simulate a concurrent request that read "no active beacon" before the first insert.
    monkeypatch.setattr(beacon_service, "get_active_beacon", lambda db, user_id: None)

    with pytest.raises(HTTPException) as excinfo:
        _activate(db_session, student)
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["error"]["code"] == "BEACON_ALREADY_ACTIVE"
    assert _live_count(db_session, student.id) == 1


def test_unique_index_rejects_two_live_beacons(db_session, student):
    first = _activate(db_session, student)
    clone = EmergencyAlert(
        user_id=student.id,
        alert_type=AlertType.BEACON_ACTIVATION,
        status=AlertStatus.ACTIVE,
        longitude=first.longitude,
        latitude=first.latitude,
        beacon_active=True,
    )
    with pytest.raises(IntegrityError):
        with db_session.begin_nested():
            db_session.add(clone)


@pytest.mark.anyio("asyncio")
async def test_status_without_beacon(client, student_headers):
    resp = await client.get("/api/beacon/status", headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["beaconActive"] is False
    assert "alertId" not in body


@pytest.mark.anyio("asyncio")
async def test_activation_requires_valid_coordinates(client, student_headers):
    resp = await client.post(
        "/api/beacon/activate",
        json={"location": {"coordinates": [-86.9]}},
        headers=student_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    missing = await client.post("/api/beacon/activate", json={}, headers=student_headers)
    assert missing.status_code == 400


@pytest.mark.anyio("asyncio")
async def test_activation_duration_is_capped(client, student_headers):
    resp = await client.post(
        "/api/beacon/activate",
        json={"location": {"coordinates": PURDUE_MALL}, "duration": 2 * 24 * 60 * 60},
        headers=student_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_DURATION"


def test_beacon_expires_after_duration(db_session, student):
    start = utcnow() - timedelta(hours=1)
    beacon = _activate(db_session, student, now=start, duration=60)

    assert beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=59)) == 0
    assert beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=61)) == 1

    db_session.refresh(beacon)
    assert beacon.status == AlertStatus.RESOLVED
    assert beacon.beacon_active is False
    assert beacon.resolution_time is not None
    assert beacon.resolution_notes == beacon_service.AUTO_EXPIRY_NOTE

    audit = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "BEACON_EXPIRED", AuditLog.entity_id == beacon.id)
    ).first()
    assert audit is not None
    assert audit.actor == "system"


@pytest.mark.anyio("asyncio")
async def test_overdue_beacon_is_resolved_on_read(client, student, student_headers, db_session):
    beacon = _activate(db_session, student, now=utcnow() - timedelta(minutes=10), duration=60)

    resp = await client.get("/api/beacon/status", headers=student_headers)
    assert resp.json()["beaconActive"] is False

    db_session.refresh(beacon)
    assert beacon.status == AlertStatus.RESOLVED


def test_expiry_does_not_overwrite_manual_stop(db_session, student):
    start = utcnow() - timedelta(hours=1)
    beacon = _activate(db_session, student, now=start, duration=60)
    beacon_service.deactivate_beacon(db_session, student, now=start + timedelta(seconds=10))

    assert beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=120)) == 0
    db_session.refresh(beacon)
    assert beacon.status == AlertStatus.RESOLVED
    assert beacon.resolution_notes == beacon_service.MANUAL_STOP_NOTE
    assert ensure_utc(beacon.beacon_end_time) == start + timedelta(seconds=10)


def test_extend_adds_exact_duration_and_moves_expiry(db_session, student):
    start = utcnow() - timedelta(hours=1)
    beacon = _activate(db_session, student, now=start, duration=300)

    extended = beacon_service.extend_beacon(
        db_session, student, BeaconExtend(additional_duration=120), now=start + timedelta(seconds=30)
    )
    assert extended.id == beacon.id
    assert ensure_utc(extended.beacon_end_time) == start + timedelta(seconds=420)
    assert extended.beacon_active is True

    # The old end time no longer expires the beacon.
    assert beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=301)) == 0
    assert beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=421)) == 1


@pytest.mark.anyio("asyncio")
async def test_extend_endpoint(client, student_headers):
    activated = await client.post(
        "/api/beacon/activate", json={"location": {"coordinates": PURDUE_MALL}}, headers=student_headers
    )
    expires_at = parse_iso_utc(activated.json()["expiresAt"])

    resp = await client.put("/api/beacon/extend", json={}, headers=student_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["additionalDuration"] == "300 seconds"
    assert parse_iso_utc(body["newEndTime"]) - expires_at == timedelta(seconds=300)


@pytest.mark.anyio("asyncio")
async def test_extend_cannot_pass_the_maximum_duration(client, student_headers):
    await client.post(
        "/api/beacon/activate",
        json={"location": {"coordinates": PURDUE_MALL}, "duration": 24 * 60 * 60 - 60},
        headers=student_headers,
    )

    for additional in (61, 10**9, 10**12):
        resp = await client.put(
            "/api/beacon/extend", json={"additionalDuration": additional}, headers=student_headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_DURATION"

    status = await client.get("/api/beacon/status", headers=student_headers)
    assert status.json()["timeRemaining"] <= 24 * 60 * 60 - 60


def test_extend_up_to_the_maximum_is_allowed(db_session, student):
    start = utcnow()
    beacon = _activate(db_session, student, now=start, duration=60)
    extended = beacon_service.extend_beacon(
        db_session, student, BeaconExtend(additional_duration=24 * 60 * 60 - 60), now=start
    )
    assert extended.id == beacon.id
    assert ensure_utc(extended.beacon_end_time) == start + timedelta(days=1)

    with pytest.raises(HTTPException) as excinfo:
        beacon_service.extend_beacon(db_session, student, BeaconExtend(additional_duration=1), now=start)
    assert excinfo.value.status_code == 400


@pytest.mark.anyio("asyncio")
async def test_deactivate(client, student_headers):
    none_yet = await client.put("/api/beacon/deactivate", headers=student_headers)
    assert none_yet.status_code == 404
    assert none_yet.json()["error"]["code"] == "NO_ACTIVE_BEACON"

    await client.post("/api/beacon/activate", json={"location": {"coordinates": PURDUE_MALL}}, headers=student_headers)
    resp = await client.put("/api/beacon/deactivate", headers=student_headers)
    assert resp.status_code == 200
    assert resp.json()["beaconActive"] is False
    assert resp.json()["deactivatedAt"].endswith("Z")

    status = await client.get("/api/beacon/status", headers=student_headers)
    assert status.json()["beaconActive"] is False


@pytest.mark.anyio("asyncio")
async def test_location_update(client, student_headers):
    missing = await client.put(
        "/api/beacon/location", json={"location": {"coordinates": NEARBY_SPOT}}, headers=student_headers
    )
    assert missing.status_code == 404

    await client.post("/api/beacon/activate", json={"location": {"coordinates": PURDUE_MALL}}, headers=student_headers)
    resp = await client.put(
        "/api/beacon/location",
        json={"location": {"coordinates": NEARBY_SPOT, "room": "B12"}},
        headers=student_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["location"]["coordinates"] == NEARBY_SPOT
    assert resp.json()["location"]["room"] == "B12"


@pytest.mark.anyio("asyncio")
async def test_nearby_returns_only_live_shared_beacons(
    client, db_session, make_user, make_profile, student_headers
):
    def _owner(first_name):
        user = make_user(first_name=first_name)
        make_profile(user)
        return user

    close = _owner("Close")
    far = _owner("Far")
    hidden = _owner("Hidden")
    stopped = _owner("Stopped")

    _activate(db_session, close, coordinates=NEARBY_SPOT)
    _activate(db_session, far, coordinates=INDIANAPOLIS)
    _activate(db_session, hidden, coordinates=NEARBY_SPOT, share=False)
    _activate(db_session, stopped, coordinates=NEARBY_SPOT)
    beacon_service.deactivate_beacon(db_session, stopped)

    resp = await client.get(
        "/api/beacon/nearby",
        params={"coordinates": "[-86.9212,40.4237]", "maxDistance": 500},
        headers=student_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalActive"] == 1
    assert body["searchRadius"] == 500
    assert body["coordinates"] == PURDUE_MALL
    [match] = body["nearbyBeacons"]
    assert match["owner"] == {"firstName": "Close", "lastName": "Lee"}
    assert match["beaconActive"] is True
    assert match["status"] == "Active"
    assert 0 < match["distanceM"] < 500


@pytest.mark.anyio("asyncio")
async def test_nearby_requires_coordinates(client, student_headers):
    resp = await client.get("/api/beacon/nearby", headers=student_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_COORDINATES"

    bad = await client.get("/api/beacon/nearby", params={"coordinates": "200,10"}, headers=student_headers)
    assert bad.status_code == 400


@pytest.mark.anyio("asyncio")
async def test_history_and_stats(client, db_session, student, student_headers):
    start = utcnow() - timedelta(hours=2)
    _activate(db_session, student, now=start, duration=60)
    beacon_service.expire_due_beacons(db_session, reference_time=start + timedelta(seconds=61))
    _activate(db_session, student, duration=120)

    history = await client.get("/api/beacon/history", params={"limit": 1}, headers=student_headers)
    assert history.status_code == 200
    body = history.json()
    assert len(body["beacons"]) == 1
    assert body["beacons"][0]["beaconActive"] is True
    assert body["pagination"] == {"current": 1, "total": 2, "hasNext": True, "hasPrev": False}

    stats = await client.get("/api/beacon/stats", headers=student_headers)
    summary = stats.json()["summary"]
    assert summary == {"totalBeacons": 2, "activeBeacons": 1, "totalDuration": 180}
    assert stats.json()["averageDuration"] == 90


@pytest.mark.anyio("asyncio")
async def test_stats_do_not_count_overdue_beacons_as_active(client, db_session, student, student_headers):
    _activate(db_session, student, now=utcnow() - timedelta(minutes=5), duration=60)

    stats = await client.get("/api/beacon/stats", headers=student_headers)
    assert stats.json()["summary"]["activeBeacons"] == 0
    assert stats.json()["summary"]["totalBeacons"] == 1


@pytest.mark.anyio("asyncio")
async def test_gate_order(client, make_user, headers_for):
    no_token = await client.get("/api/beacon/status")
    assert no_token.status_code == 401
    assert no_token.json()["error"]["code"] == "NOT_AUTHORIZED_NO_TOKEN"

    bad_token = await client.get("/api/beacon/status", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad_token.status_code == 401
    assert bad_token.json()["error"]["code"] == "NOT_AUTHORIZED_TOKEN_FAILED"

    unverified = make_user(verified=False)
    forbidden = await client.post(
        "/api/beacon/activate", json={"location": {"coordinates": PURDUE_MALL}}, headers=headers_for(unverified)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "ACCOUNT_NOT_VERIFIED"

    no_profile = make_user()
    missing = await client.post(
        "/api/beacon/activate", json={"location": {"coordinates": PURDUE_MALL}}, headers=headers_for(no_profile)
    )
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "HEALTH_PROFILE_NOT_FOUND"

    deactivated = make_user(active=False)
    gone = await client.get("/api/beacon/status", headers=headers_for(deactivated))
    assert gone.status_code == 401
    assert gone.json()["error"]["code"] == "USER_DEACTIVATED"
