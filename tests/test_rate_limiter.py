"""Tests for the Redis-backed rate limiter middleware."""

import pytest
import redis
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from conftest import FakeRedis, bearer, make_user
from redis_rate_limiter import RedisRateLimiter, user_id_from_header


def build_app(redis_client, ip_limit=100, user_limit=100):
    app = FastAPI()
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_minute_ip=ip_limit,
        requests_per_minute_user=user_limit,
    )

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/denied")
    async def denied():
        raise HTTPException(status_code=401, detail="nope")

    return app


class BrokenRedis(FakeRedis):
    def pipeline(self):
        raise redis.ConnectionError("redis is down")

    def zadd(self, key, mapping):
        raise redis.ConnectionError("redis is down")


class TestRateLimiter:
    def test_limits_per_ip(self):
        client = TestClient(build_app(FakeRedis(), ip_limit=3))

        statuses = [client.get("/ping").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_rejection_body_and_retry_after(self):
        client = TestClient(build_app(FakeRedis(), ip_limit=1))
        client.get("/ping")

        response = client.get("/ping")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["status"] == 429

    def test_limits_per_user(self, db):
        user = make_user(db, "busy@example.com")
        other = make_user(db, "calm@example.com")
        client = TestClient(build_app(FakeRedis(), user_limit=2))

        statuses = [client.get("/ping", headers=bearer(user)).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        assert client.get("/ping", headers=bearer(other)).status_code == 200

    def test_fails_open_when_redis_unavailable(self):
        client = TestClient(build_app(BrokenRedis(), ip_limit=1))

        assert [client.get("/ping").status_code for _ in range(3)] == [200, 200, 200]

    def test_tracks_failed_authentications(self):
        fake = FakeRedis()
        client = TestClient(build_app(fake))

        for _ in range(5):
            client.get("/denied")

        assert fake.zcard("suspicious:401:testclient") == 5
        assert fake.zcard("suspicious:4xx:testclient") == 5


class TestUserIdFromHeader:
    def test_reads_subject_without_verification(self, db):
        user = make_user(db, "someone@example.com")

        assert user_id_from_header(bearer(user)["Authorization"]) == str(user.id)

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer not-a-jwt"])
    def test_ignores_missing_or_malformed(self, header):
        assert user_id_from_header(header) is None
