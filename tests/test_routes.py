"""
HTTP surface of the recommendation API

Startup is not run: the AI cache is placed on app.state directly and the
generator is swapped through dependency_overrides.
"""

import time
import uuid

import jwt
import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_generator
from app.main import app
from app.middleware import auth
from app.routes import recommendations
from app.services.openrouter_client import GenerationError


class StubGenerator:

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def generate_career_recommendations(self, profile):
        self.calls += 1
        if self.error:
            raise self.error
        return [
            {"title": "Civil Engineer", "matchPercentage": 72, "growth": "Moderate"},
            {"title": "Architect", "matchPercentage": 88, "education": "BArch"},
        ]

    async def generate_career_details(self, profile, career_name):
        self.calls += 1
        if self.error:
            raise self.error
        return {"overview": f"All about {career_name}"}

    async def generate_course_recommendations(self, profile):
        self.calls += 1
        if self.error:
            raise self.error
        return [{"title": "AutoCAD Basics", "free": True}]


@pytest.fixture
def generator():
    return StubGenerator()


@pytest.fixture
def client(cache, generator):
    app.state.ai_cache = cache
    app.dependency_overrides[get_generator] = lambda: generator
    recommendations.limiter.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    recommendations.limiter.enabled = True
    del app.state.ai_cache


@pytest.fixture
def headers(user_id):
    return {"X-User-ID": user_id}


PROFILE = {"profile": {"name": "Kamau", "subjects": ["Mathematics", "Art"]}}


class TestAuth:

    def test_missing_user_is_401(self, client):
        resp = client.post("/api/recommendations/careers", json=PROFILE)

        assert resp.status_code == 401

    def test_malformed_user_id_is_400(self, client):
        resp = client.post("/api/recommendations/careers", json=PROFILE, headers={"X-User-ID": "not-a-uuid"})

        assert resp.status_code == 400

    def test_supabase_token_is_verified(self, client, monkeypatch):
        secret = "test-jwt-secret-with-at-least-32-bytes!"
        settings = auth.get_settings().model_copy(update={"supabase_jwt_secret": secret})
        monkeypatch.setattr(auth, "get_settings", lambda: settings)
        subject = str(uuid.uuid4())
        token = jwt.encode(
            {"sub": subject, "aud": "authenticated", "exp": int(time.time()) + 600},
            secret,
            algorithm="HS256",
        )

        ok = client.post("/api/recommendations/invalidate", json={}, headers={"Authorization": f"Bearer {token}"})
        no_token = client.post("/api/recommendations/invalidate", json={}, headers={"X-User-ID": subject})
        bad_token = client.post("/api/recommendations/invalidate", json={}, headers={"Authorization": "Bearer nope"})

        assert ok.status_code == 200
        assert no_token.status_code == 401
        assert bad_token.status_code == 401

    def test_wrong_audience_is_rejected(self, client, monkeypatch):
        secret = "test-jwt-secret-with-at-least-32-bytes!"
        settings = auth.get_settings().model_copy(update={"supabase_jwt_secret": secret})
        monkeypatch.setattr(auth, "get_settings", lambda: settings)
        token = jwt.encode({"sub": str(uuid.uuid4()), "aud": "anon"}, secret, algorithm="HS256")

        resp = client.delete("/api/recommendations/cache", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401


class TestCareerRoutes:

    def test_miss_then_hit(self, client, headers, generator):
        first = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)
        second = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert generator.calls == 1
        names = [r["career_name"] for r in second.json()["recommendations"]]
        assert names == ["Architect", "Civil Engineer"]

    def test_force_refresh(self, client, headers, generator, store):
        client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        resp = client.post("/api/recommendations/careers", json={**PROFILE, "force_refresh": True}, headers=headers)
        after = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        assert resp.json()["cached"] is False
        assert after.json()["cached"] is True
        assert generator.calls == 2
        assert store.rows("cache_invalidation") == []

    def test_dashboard_row_fields(self, client, headers):
        resp = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        architect = resp.json()["recommendations"][0]
        assert architect["career_name"] == "Architect"
        assert architect["match_percentage"] == 88
        assert architect["education_required"] == "BArch"
        assert "skills_required" not in architect
        assert architect["expires_at"]

    def test_empty_body_uses_blank_profile(self, client, headers):
        resp = client.post("/api/recommendations/careers", json={}, headers=headers)

        assert resp.status_code == 200

    def test_generation_failure_is_502(self, client, headers):
        app.dependency_overrides[get_generator] = lambda: StubGenerator(error=GenerationError("model offline"))

        resp = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        assert resp.status_code == 502

    def test_career_details(self, client, headers):
        resp = client.post("/api/recommendations/careers/Architect/details", json=PROFILE, headers=headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["career_name"] == "Architect"
        assert body["details"] == {"overview": "All about Architect"}
        assert body["cached"] is False

    def test_courses(self, client, headers):
        client.post("/api/recommendations/courses", json=PROFILE, headers=headers)
        resp = client.post("/api/recommendations/courses", json=PROFILE, headers=headers)

        assert resp.json() == {"courses": [{"title": "AutoCAD Basics", "free": True}], "cached": True}


class TestInvalidationRoutes:

    def test_invalidate_single_type(self, client, headers, store):
        resp = client.post(
            "/api/recommendations/invalidate",
            json={"cache_type": "career_details", "reason": "grades_updated"},
            headers=headers,
        )

        assert resp.json() == {"success": True, "invalidated": ["career_details"], "reason": "grades_updated"}
        assert [m["cache_type"] for m in store.rows("cache_invalidation")] == ["career_details"]

    def test_invalidate_everything(self, client, headers, store):
        resp = client.post("/api/recommendations/invalidate", json={"reason": "profile_updated"}, headers=headers)

        assert set(resp.json()["invalidated"]) == {"career_recommendations", "career_details", "course_recommendations"}
        assert len(store.rows("cache_invalidation")) == 3

    def test_invalidate_hides_cached_rows(self, client, headers, generator):
        client.post("/api/recommendations/careers", json=PROFILE, headers=headers)
        client.post("/api/recommendations/invalidate", json={"reason": "profile_updated"}, headers=headers)

        resp = client.post("/api/recommendations/careers", json=PROFILE, headers=headers)

        assert resp.json()["cached"] is False
        assert generator.calls == 2

    def test_unknown_cache_type_is_422(self, client, headers):
        resp = client.post("/api/recommendations/invalidate", json={"cache_type": "grades"}, headers=headers)

        assert resp.status_code == 422

    def test_invalidate_succeeds_when_store_is_down(self, client, headers, store):
        store.fail_on("upsert")

        resp = client.post("/api/recommendations/invalidate", json={}, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_clear_cache(self, client, headers, store, user_id):
        client.post("/api/recommendations/courses", json=PROFILE, headers=headers)
        client.post("/api/recommendations/invalidate", json={}, headers=headers)

        resp = client.delete("/api/recommendations/cache", headers=headers)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert store.rows("cached_course_recommendations") == []
        assert store.rows("cache_invalidation") == []


class TestOperationalRoutes:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_metrics_reports_cache_hits(self, client, headers):
        client.post("/api/recommendations/courses", json=PROFILE, headers=headers)
        client.post("/api/recommendations/courses", json=PROFILE, headers=headers)

        summary = client.get("/metrics").json()["ai_cache"]["course_recommendations"]

        assert summary["hits"] == 1
        assert summary["misses"] == 1

    def test_correlation_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Correlation-ID": "trace-123"})

        assert resp.headers["X-Correlation-ID"] == "trace-123"

    def test_correlation_id_is_generated(self, client):
        resp = client.get("/health")

        assert uuid.UUID(resp.headers["X-Correlation-ID"])
