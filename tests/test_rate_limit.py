from datetime import timedelta

import pytest
from sqlalchemy import func, select

from helpline.models.rate_limit import RateLimitHit
from helpline.services.rate_limit import (
    DatabaseRateLimitStore,
    MemoryRateLimitStore,
    build_rate_limit_store,
    get_rate_limit_store,
    set_rate_limit_store,
)
from helpline.utils.time import utcnow


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_memory_store_sliding_window():
    clock = FakeClock()
    store = MemoryRateLimitStore(clock=clock)

    assert store.hit("user:1:sos_alert", 3, 60).allowed
    clock.advance(10)
    assert store.hit("user:1:sos_alert", 3, 60).allowed
    assert store.hit("user:1:sos_alert", 3, 60).allowed

    blocked = store.hit("user:1:sos_alert", 3, 60)
    assert blocked.allowed is False
    assert blocked.retry_after == 50

    # Another identity has its own window.
    assert store.hit("user:2:sos_alert", 3, 60).allowed

    clock.advance(50)
    assert store.hit("user:1:sos_alert", 3, 60).allowed
    assert store.hit("user:1:sos_alert", 3, 60).allowed is False


def test_memory_store_does_not_record_rejected_calls():
    clock = FakeClock()
    store = MemoryRateLimitStore(clock=clock)
    store.hit("k", 1, 30)
    for _ in range(5):
        clock.advance(5)
        assert store.hit("k", 1, 30).allowed is False

    clock.advance(5)
    assert store.hit("k", 1, 30).allowed


def test_memory_store_is_bounded():
    store = MemoryRateLimitStore(max_keys=2, clock=FakeClock())
    store.hit("a", 1, 60)
    store.hit("b", 1, 60)
    store.hit("a", 1, 60)
    store.hit("c", 1, 60)

    assert len(store) == 2
    # "b" was least recently used and has been evicted.
    assert store.hit("b", 1, 60).allowed
    assert store.hit("a", 1, 60).allowed


def test_memory_store_reset():
    store = MemoryRateLimitStore(clock=FakeClock())
    store.hit("k", 1, 60)
    store.reset()
    assert len(store) == 0
    assert store.hit("k", 1, 60).allowed


def test_database_store_sliding_window(db_session):
    start = utcnow()
    moments = iter([start, start + timedelta(seconds=5), start + timedelta(seconds=10), start + timedelta(seconds=61)])
    store = DatabaseRateLimitStore(clock=lambda: next(moments))

    assert store.hit("ip:10.0.0.1:login", 2, 60, db_session=db_session).allowed
    assert store.hit("ip:10.0.0.1:login", 2, 60, db_session=db_session).allowed
    blocked = store.hit("ip:10.0.0.1:login", 2, 60, db_session=db_session)
    assert blocked.allowed is False
    assert blocked.retry_after == 50

    # The first hit has left the window and is pruned.
    assert store.hit("ip:10.0.0.1:login", 2, 60, db_session=db_session).allowed
    remaining = db_session.scalar(
        select(func.count(RateLimitHit.id)).where(RateLimitHit.key == "ip:10.0.0.1:login")
    )
    assert remaining == 2


def test_database_store_reset(db_session):
    store = DatabaseRateLimitStore()
    store.hit("user:9:beacon_activation", 5, 3600, db_session=db_session)
    store.reset(db_session=db_session)
    assert db_session.scalar(select(func.count(RateLimitHit.id))) == 0


def test_store_selection(monkeypatch):
    assert isinstance(build_rate_limit_store("memory"), MemoryRateLimitStore)
    assert isinstance(build_rate_limit_store("database"), DatabaseRateLimitStore)
    with pytest.raises(ValueError):
        build_rate_limit_store("redis")

    custom = MemoryRateLimitStore(max_keys=5)
    set_rate_limit_store(custom)
    assert get_rate_limit_store() is custom


@pytest.mark.anyio("asyncio")
async def test_sos_limit_returns_429_with_retry_after(client, student_headers):
    payload = {"location": {"coordinates": [-86.9212, 40.4237]}}
    for _ in range(3):
        resp = await client.post("/api/emergency/sos", json=payload, headers=student_headers)
        assert resp.status_code == 201

    blocked = await client.post("/api/emergency/sos", json=payload, headers=student_headers)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["code"] == "RATE_LIMITED"
    assert blocked.json()["error"]["message"] == "Too many sos_alert attempts. Please try again later."
    assert 1 <= int(blocked.headers["Retry-After"]) <= 3600


@pytest.mark.anyio("asyncio")
async def test_window_reopens_after_it_elapses(client, student_headers):
    clock = FakeClock()
    set_rate_limit_store(MemoryRateLimitStore(clock=clock))
    payload = {"location": {"coordinates": [-86.9212, 40.4237]}}

    first = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
    assert first.status_code == 201
    for _ in range(4):
        resp = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
        assert resp.status_code == 400

    blocked = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
    assert blocked.status_code == 429

    clock.advance(3601)
    await client.put("/api/beacon/deactivate", headers=student_headers)
    reopened = await client.post("/api/beacon/activate", json=payload, headers=student_headers)
    assert reopened.status_code == 201


@pytest.mark.anyio("asyncio")
async def test_limits_are_per_user(client, student_headers, make_user, make_profile, headers_for):
    other = make_user()
    make_profile(other)
    for _ in range(2):
        assert (await client.post("/api/emergency/test-notification", json={}, headers=student_headers)).status_code == 200
    assert (await client.post("/api/emergency/test-notification", json={}, headers=student_headers)).status_code == 429
    assert (await client.post("/api/emergency/test-notification", json={}, headers=headers_for(other))).status_code == 200


@pytest.mark.anyio("asyncio")
async def test_login_is_limited_by_client_ip(client):
    payload = {"email": "nobody@purdue.edu", "password": "whatever123"}
    for _ in range(5):
        resp = await client.post("/api/auth/login", json=payload)
        assert resp.status_code == 401

    blocked = await client.post("/api/auth/login", json=payload)
    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers

    spoofed = await client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "203.0.113.9"})
    assert spoofed.status_code == 429


@pytest.mark.anyio("asyncio")
async def test_rotating_forwarded_header_does_not_reset_the_login_limit(client):
    payload = {"email": "nobody@purdue.edu", "password": "whatever123"}
    codes = []
    for i in range(8):
        resp = await client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": f"10.0.0.{i}"})
        codes.append(resp.status_code)
    assert codes == [401] * 5 + [429] * 3


@pytest.mark.anyio("asyncio")
async def test_trusted_proxy_keys_on_forwarded_address(client, trusted_proxy):
    payload = {"email": "nobody@purdue.edu", "password": "whatever123"}
    for _ in range(5):
        await client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"})
    blocked = await client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "198.51.100.7"})
    assert blocked.status_code == 429

    other = await client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "203.0.113.9"})
    assert other.status_code == 401
