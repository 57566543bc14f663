import asyncio
import json
import uuid

import httpx
import pytest
from conftest import FakeEmbeddings, repeating_model
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from searchmind.application.api.api_server import create_app
from searchmind.application.container import build_services
from searchmind.domain.models.memory_records import ActionRecord
from searchmind.domain.orchestration.subagent.base_subagent import PROPERTY_REQUIRED
from searchmind.infrastructure.gsc.search_console_client import SearchConsoleClient

GSC_ROWS = {
    "rows": [
        {"keys": ["2024-06-05", "seo audit", "https://example.com/audit", "usa", "MOBILE"],
         "clicks": 12, "impressions": 300, "ctr": 0.04, "position": 4.2},
    ]
}


async def token_provider(user_id):
    return "token"


@pytest.fixture
def services(settings):
    search_console = SearchConsoleClient(
        token_provider,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=GSC_ROWS))),
        max_attempts=1,
    )
    return build_services(
        settings,
        chat_model=repeating_model("ok"),
        embeddings=FakeEmbeddings(),
        search_console=search_console,
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def register(client, property_id="prop-1", user_id="user-1"):
    response = client.post(
        "/api/v1/properties",
        json={"id": property_id, "site_url": "https://example.com/", "user_id": user_id},
    )
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["active_connections"] == 0
    assert body["agents"] == ["ANALYST", "AUDITOR", "RESEARCH", "OPTIMIZER", "PLANNER", "MEMORY", "ASSISTANT"]
    assert body["last_sleep_cycle"] is None


def test_register_property(client, services):
    body = register(client)
    assert body == {"id": "prop-1", "site_url": "https://example.com/", "user_id": "user-1"}
    assert asyncio.run(services.analytics_store.get_property("prop-1")) is not None


def test_register_property_requires_site_url(client):
    assert client.post("/api/v1/properties", json={"site_url": ""}).status_code == 422


class TestChat:
    def test_unroutable_message_falls_back_to_analyst(self, client):
        response = client.post("/api/v1/agent/chat", json={"message": "why did traffic drop?", "session_id": "s-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["session_id"] == "s-1"
        assert body["routing"]["primary_agent"] == "ANALYST"
        assert body["routing"]["reasoning"] == "fallback due to classification error"
        assert body["results"] == [{"agent": "ANALYST", "output": PROPERTY_REQUIRED, "data": None, "steps": None}]
        assert body["error"] is None

    def test_empty_message_is_rejected(self, client):
        assert client.post("/api/v1/agent/chat", json={"message": ""}).status_code == 422

    def test_stream(self, client):
        response = client.post("/api/v1/agent/chat/stream", json={"message": "hello"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = [json.loads(line[len("data: "):]) for line in response.text.split("\n\n") if line]
        assert frames[0]["payload"] == "Analyzing request..."
        assert (frames[-1]["type"], frames[-1]["payload"]) == ("status", "Complete")


def test_create_session(client):
    body = client.post("/api/v1/agent/session/create", json={"property_id": "prop-1"}).json()
    uuid.UUID(body["session_id"])
    assert body["websocket_url"] == f"/ws/agent/prop-1/{body['session_id']}"
    assert body["expires_at"] > 0


def test_sleep_cycle_report_is_exposed_by_health(client):
    report = client.post("/api/v1/memory/sleep-cycle").json()
    assert (report["merged"], report["promoted"], report["deleted"]) == (0, 0, 0)
    assert report["errors"] == {}
    assert client.get("/health").json()["last_sleep_cycle"]["merged"] == 0


class TestActionImpact:
    def test_unknown_action(self, client):
        response = client.post("/api/v1/actions/missing/impact", json={"success_score": 0.9})
        assert response.status_code == 404

    def test_records_score(self, client, services):
        action = ActionRecord(property_id="prop-1", agent_type="OPTIMIZER", action_type="meta_rewrite")
        asyncio.run(services.action_log.record(action))

        response = client.post(
            f"/api/v1/actions/{action.id}/impact",
            json={"success_score": 0.9, "measured_impact": {"ctr_delta": 0.01}},
        )

        assert response.status_code == 200
        assert response.json()["success_score"] == 0.9
        assert response.json()["measured_impact"] == {"ctr_delta": 0.01}

    def test_score_must_be_a_fraction(self, client):
        assert client.post("/api/v1/actions/any/impact", json={"success_score": 1.5}).status_code == 422


class TestSync:
    def test_unknown_property(self, client):
        assert client.post("/api/v1/properties/missing/sync").status_code == 404

    def test_sync_registered_property(self, client):
        register(client)

        response = client.post("/api/v1/properties/prop-1/sync", json={"days": 30, "lag_days": 0})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["rows"] == 1


class TestWebSocket:
    def test_turn_is_streamed_until_complete(self, client):
        session_id = str(uuid.uuid4())
        with client.websocket_connect(f"/ws/agent/prop-1/{session_id}") as websocket:
            connected = websocket.receive_json()
            assert (connected["type"], connected["status"]) == ("connection", "connected")
            assert websocket.receive_json()["payload"] == "Agent ready"

            websocket.send_json({"type": "user_message", "content": "how is my site doing?"})
            events = []
            while True:
                event = websocket.receive_json()
                events.append(event)
                if event["type"] == "error" or event.get("payload") == "Complete":
                    break

        types = [e["type"] for e in events]
        assert "routing" in types
        results = [e["payload"] for e in events if e["type"] == "agent_result"]
        assert results[0]["agent"] == "ANALYST"
        assert results[0]["output"] == "ok"
        assert all(e["session_id"] == session_id for e in events)

    def test_invalid_messages_keep_the_session_open(self, client):
        with client.websocket_connect(f"/ws/agent/prop-1/{uuid.uuid4()}") as websocket:
            websocket.receive_json()
            websocket.receive_json()

            websocket.send_text("not json")
            invalid = websocket.receive_json()
            websocket.send_json({"type": "status", "payload": "hi"})
            unsupported = websocket.receive_json()

        assert invalid["error_code"] == "INVALID_MESSAGE"
        assert unsupported["error_code"] == "UNSUPPORTED_EVENT"
        assert unsupported["payload"]["message"] == "Unsupported event type: status"

    def test_invalid_session_id_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/agent/prop-1/not-a-uuid"):
                pass
        assert exc_info.value.code == 1008
