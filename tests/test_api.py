"""Test suite for the API endpoints."""

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from career_chat.api.app import create_app
from career_chat.api.rate_limiter import RateLimiter
from career_chat.config import Settings
from career_chat.repositories.memory import InMemoryRepository
from career_chat.services.orchestrator import SessionOrchestrator

from conftest import FailingProvider


@pytest.fixture
def settings():
    return Settings(rate_limit=1000, rate_window=60)


@pytest.fixture
def app(settings, orchestrator):
    return create_app(settings=settings, orchestrator=orchestrator)


def client_for(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _create_session(client, title="Test", user_id="u1", **extra):
    response = await client.post(
        "/sessions", json={"title": title, "user_id": user_id, **extra}
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_create_session(app):
    """Test creating a new session."""
    async with client_for(app) as client:
        data = await _create_session(client, description="First chat")
        assert data["title"] == "Test"
        assert data["user_id"] == "u1"
        assert data["description"] == "First chat"
        assert "id" in data
        assert "created_at" in data
        assert "updated_at" in data


@pytest.mark.asyncio
async def test_send_message_round_trip(app):
    """Sending a message returns the stored user and assistant turns."""
    async with client_for(app) as client:
        session = await _create_session(client)

        response = await client.post(
            f"/sessions/{session['id']}/messages",
            json={"content": "How do I negotiate salary?"},
        )
        assert response.status_code == 200
        exchange = response.json()
        assert exchange["user_message"]["role"] == "user"
        assert exchange["user_message"]["content"] == "How do I negotiate salary?"
        assert exchange["assistant_message"]["role"] == "assistant"
        assert exchange["assistant_message"]["content"]

        response = await client.get(f"/sessions/{session['id']}/messages")
        assert response.status_code == 200
        messages = response.json()
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["id"] == exchange["user_message"]["id"]


@pytest.mark.asyncio
async def test_list_sessions_with_preview(app):
    async with client_for(app) as client:
        first = await _create_session(client, title="A")
        second = await _create_session(client, title="B")
        await _create_session(client, title="Elsewhere", user_id="u2")
        await client.post(f"/sessions/{first['id']}/messages", json={"content": "Hi"})

        response = await client.get("/sessions", params={"user_id": "u1"})
        assert response.status_code == 200
        sessions = response.json()
        assert [s["id"] for s in sessions] == [first["id"], second["id"]]
        assert sessions[0]["message_count"] == 2
        assert sessions[0]["last_message"]["role"] == "assistant"
        assert sessions[1]["last_message"] is None


@pytest.mark.asyncio
async def test_list_sessions_pagination(app):
    async with client_for(app) as client:
        for i in range(5):
            await _create_session(client, title=f"Chat {i}")

        response = await client.get("/sessions?user_id=u1&limit=2&offset=0")
        assert len(response.json()) == 2
        response = await client.get("/sessions?user_id=u1&limit=3&offset=2")
        assert len(response.json()) == 3


@pytest.mark.asyncio
async def test_get_and_rename_session(app):
    async with client_for(app) as client:
        session = await _create_session(client)

        response = await client.get(f"/sessions/{session['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == session["id"]

        response = await client.patch(
            f"/sessions/{session['id']}", json={"title": "Offer review"}
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Offer review"


@pytest.mark.asyncio
async def test_delete_session(app):
    async with client_for(app) as client:
        session = await _create_session(client)
        await client.post(f"/sessions/{session['id']}/messages", json={"content": "Hi"})

        response = await client.delete(f"/sessions/{session['id']}")
        assert response.status_code == 204

        response = await client.get(f"/sessions/{session['id']}/messages")
        assert response.status_code == 200
        assert response.json() == []
        assert (await client.get("/sessions")).json() == []

        response = await client.delete(f"/sessions/{session['id']}")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"


@pytest.mark.asyncio
async def test_error_handling(app):
    """Test error handling in various scenarios."""
    async with client_for(app) as client:
        # Invalid session ID format
        response = await client.get("/sessions/invalid-uuid")
        assert response.status_code == 422

        # Unknown session
        response = await client.get(f"/sessions/{uuid4()}")
        assert response.status_code == 404
        response = await client.post(f"/sessions/{uuid4()}/messages", json={"content": "Hi"})
        assert response.status_code == 404

        session = await _create_session(client)
        url = f"/sessions/{session['id']}/messages"

        # Missing, empty, blank and oversized content
        assert (await client.post(url, json={})).status_code == 422
        assert (await client.post(url, json={"content": ""})).status_code == 422
        response = await client.post(url, json={"content": "   "})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"
        assert (await client.post(url, json={"content": "x" * 2001})).status_code == 422

        # Missing user and blank title
        assert (await client.post("/sessions", json={"title": "No owner"})).status_code == 422
        response = await client.post("/sessions", json={"title": " ", "user_id": "u1"})
        assert response.status_code == 422

        # None of the rejected requests left a trace
        assert (await client.get(url)).json() == []


@pytest.mark.asyncio
async def test_generation_failure_then_retry(settings):
    repository = InMemoryRepository()
    orchestrator = SessionOrchestrator(repository, FailingProvider(failures=1))
    app = create_app(settings=settings, orchestrator=orchestrator)

    async with client_for(app) as client:
        session = await _create_session(client)
        url = f"/sessions/{session['id']}/messages"

        response = await client.post(url, json={"content": "Review my resume"})
        assert response.status_code == 502
        assert response.json()["error"] == "GenerationError"

        messages = (await client.get(url)).json()
        assert [m["role"] for m in messages] == ["user"]

        response = await client.post(f"/sessions/{session['id']}/retry")
        assert response.status_code == 200
        assert response.json()["user_message"]["id"] == messages[0]["id"]

        messages = (await client.get(url)).json()
        assert [m["role"] for m in messages] == ["user", "assistant"]

        response = await client.post(f"/sessions/{session['id']}/retry")
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_rate_limit(settings, orchestrator):
    app = create_app(
        settings=settings,
        orchestrator=orchestrator,
        rate_limiter=RateLimiter(rate_limit=2, time_window=60),
    )
    async with client_for(app) as client:
        assert (await client.get("/health")).status_code == 200
        assert (await client.get("/health")).status_code == 200
        response = await client.get("/health")
        assert response.status_code == 429
        assert "Retry-After" in response.headers


@pytest.mark.asyncio
async def test_rate_limit_ignores_user_header(settings, orchestrator):
    """Changing the x-user-id header on every request does not reset the limit."""
    app = create_app(
        settings=settings,
        orchestrator=orchestrator,
        rate_limiter=RateLimiter(rate_limit=2, time_window=60),
    )
    async with client_for(app) as client:
        codes = [
            (await client.get("/sessions", headers={"x-user-id": f"user-{i}"})).status_code
            for i in range(5)
        ]
        assert codes[:2] == [200, 200]
        assert codes[2:] == [429, 429, 429]


@pytest.mark.asyncio
async def test_service_types(app):
    async with client_for(app) as client:
        response = await client.get("/service-types")
        assert response.status_code == 200
        keys = [t["key"] for t in response.json()]
        assert keys == [
            "general",
            "career_strategy",
            "resume_review",
            "interview_prep",
            "salary_guidance",
        ]


@pytest.mark.asyncio
async def test_metrics(app):
    async with client_for(app) as client:
        session = await _create_session(client)
        await client.post(f"/sessions/{session['id']}/messages", json={"content": "Hi"})

        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "chat_exchanges_total" in response.text
