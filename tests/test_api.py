"""Tests for API endpoints."""

import httpx
import pytest

from hookdesk.debug_log import debug_log
from hookdesk.gateway import gateway
from hookdesk.main import app
from hookdesk.models import DebugLogEntry, SessionStatus, TokenUsage
from hookdesk.registry import registry
from hookdesk.statistics import statistics_store
from hookdesk.transcripts import archive_transcript


class TestHealthEndpoint:
    @pytest.mark.anyio
    async def test_health_returns_ok(self, api_client: httpx.AsyncClient) -> None:
        gateway.submit_request("s1", "Bash", "/work/proj")

        response = await api_client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["pending_permissions"] == 1
        assert "version" in data


class TestSessionsEndpoints:
    @pytest.mark.anyio
    async def test_list_sessions_empty(self, api_client: httpx.AsyncClient) -> None:
        response = await api_client.get("/api/sessions")

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.anyio
    async def test_list_sessions_in_display_order(self, api_client: httpx.AsyncClient) -> None:
        registry.upsert_start("s1", "/work/alpha")
        registry.upsert_start("s2", "/work/beta")
        registry.update_status("s2", SessionStatus.RUNNING, prompt="go")

        response = await api_client.get("/api/sessions")

        data = response.json()
        assert [s["id"] for s in data] == ["s2", "s1"]
        assert data[0]["status"] == "running"
        assert data[0]["status_label"] == "Running"
        assert data[0]["last_prompt"] == "go"
        assert data[1]["name"] == "alpha"

    @pytest.mark.anyio
    async def test_get_unknown_session(self, api_client: httpx.AsyncClient) -> None:
        response = await api_client.get("/api/sessions/ghost")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.anyio
    async def test_rename(self, api_client: httpx.AsyncClient) -> None:
        registry.upsert_start("s1", "/work/alpha")

        response = await api_client.patch("/api/sessions/s1", json={"name": "  Refactor  "})

        assert response.status_code == 200
        assert response.json()["name"] == "Refactor"
        assert registry.get("s1").name == "Refactor"

    @pytest.mark.anyio
    async def test_rename_blank_rejected(self, api_client: httpx.AsyncClient) -> None:
        registry.upsert_start("s1", "/work/alpha")

        response = await api_client.patch("/api/sessions/s1", json={"name": "   "})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert registry.get("s1").name == "alpha"

    @pytest.mark.anyio
    async def test_unseen_until_marked(self, api_client: httpx.AsyncClient) -> None:
        registry.upsert_start("s1", "/work/alpha")
        registry.update_status("s1", SessionStatus.FINISHED)

        before = await api_client.get("/api/sessions/s1")
        marked = await api_client.post("/api/sessions/s1/seen")

        assert before.json()["unseen"] is True
        assert marked.status_code == 200
        assert marked.json()["unseen"] is False

    @pytest.mark.anyio
    async def test_delete_removes_session_pending_and_archive(
        self, api_client: httpx.AsyncClient, write_transcript
    ) -> None:
        registry.upsert_start("s1", "/work/alpha")
        gateway.submit_request("s1", "Bash", "/work/alpha")
        archive_transcript("s1", write_transcript([{"type": "user", "message": {"role": "user", "content": "hi"}}]))

        response = await api_client.delete("/api/sessions/s1")

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert registry.get("s1") is None
        assert gateway.list_pending() == []
        assert (await api_client.get("/api/sessions/s1/transcript")).status_code == 404


class TestTranscriptEndpoint:
    @pytest.fixture
    def archived(self, write_transcript) -> None:
        path = write_transcript(
            [
                {"type": "user", "message": {"role": "user", "content": "question"}, "timestamp": 1},
                {
                    "type": "assistant",
                    "requestId": "r1",
                    "message": {"role": "assistant", "content": "working", "usage": {"input_tokens": 4, "output_tokens": 1}},
                    "timestamp": 2,
                },
                {"type": "user", "message": {"role": "user", "content": [{"type": "tool_result", "content": "ok"}]}, "timestamp": 3},
                {
                    "type": "assistant",
                    "requestId": "r2",
                    "message": {"role": "assistant", "content": "answer", "usage": {"input_tokens": 6, "output_tokens": 2}},
                    "timestamp": 4,
                },
            ]
        )
        archive_transcript("s1", path)

    @pytest.mark.anyio
    async def test_summary_view(self, api_client: httpx.AsyncClient, archived) -> None:
        response = await api_client.get("/api/sessions/s1/transcript")

        assert response.status_code == 200
        data = response.json()
        assert [e["text"] for e in data["entries"]] == ["question", "answer"]
        assert data["last_response"] == "answer"
        final = data["entries"][-1]
        assert final["is_intermediate"] is False
        assert final["cumulative_usage"]["input_tokens"] == 10

    @pytest.mark.anyio
    async def test_detail_view(self, api_client: httpx.AsyncClient, archived) -> None:
        response = await api_client.get("/api/sessions/s1/transcript", params={"detail": "true"})

        entries = response.json()["entries"]
        assert len(entries) == 4
        assert entries[1]["is_intermediate"] is True
        assert entries[1]["cumulative_usage"] is None


class TestPermissionsEndpoints:
    @pytest.mark.anyio
    async def test_list_and_respond(self, api_client: httpx.AsyncClient) -> None:
        request_id = gateway.submit_request("s1", "Bash", "/work/proj")

        listed = await api_client.get("/api/permissions")
        assert [p["id"] for p in listed.json()] == [request_id]

        response = await api_client.post(
            f"/api/permissions/{request_id}/respond",
            json={"decision": "deny", "message": "not now"},
        )

        assert response.status_code == 200
        assert gateway.list_pending() == []
        stored = gateway.load_response(request_id)
        assert stored.message == "not now"

    @pytest.mark.anyio
    async def test_respond_unknown(self, api_client: httpx.AsyncClient) -> None:
        response = await api_client.post(
            "/api/permissions/nope/respond", json={"decision": "allow"}
        )

        assert response.status_code == 404

    @pytest.mark.anyio
    async def test_respond_invalid_decision(self, api_client: httpx.AsyncClient) -> None:
        request_id = gateway.submit_request("s1", "Bash", None)

        response = await api_client.post(
            f"/api/permissions/{request_id}/respond", json={"decision": "maybe"}
        )

        assert response.status_code == 422
        assert gateway.pending_exists(request_id)


class TestStatisticsEndpoint:
    @pytest.mark.anyio
    async def test_totals(self, api_client: httpx.AsyncClient) -> None:
        statistics_store.record("s1", "/work/alpha", TokenUsage(input_tokens=10, output_tokens=5))

        response = await api_client.get("/api/statistics")

        data = response.json()
        assert data["total"]["total_sessions"] == 1
        assert data["total"]["total_tokens"] == 15
        assert data["projects"][0]["path"] == "/work/alpha"
        assert data["projects"][0]["name"] == "alpha"


class TestDebugEndpoints:
    @pytest.mark.anyio
    async def test_list_newest_first_and_clear(self, api_client: httpx.AsyncClient) -> None:
        debug_log.append(DebugLogEntry(hook_name="SessionStart", raw_payload="{}"))
        debug_log.append(DebugLogEntry(hook_name="Stop", raw_payload="{}"))

        listed = await api_client.get("/api/debug/logs")
        assert [e["hook_name"] for e in listed.json()] == ["Stop", "SessionStart"]

        cleared = await api_client.delete("/api/debug/logs")
        assert cleared.status_code == 200
        assert (await api_client.get("/api/debug/logs")).json() == []


class TestAuth:
    @pytest.fixture
    def token(self):
        app.state.agent_token = "secret"
        yield "secret"
        app.state.agent_token = ""

    @pytest.mark.anyio
    async def test_missing_token_rejected(self, api_client: httpx.AsyncClient, token) -> None:
        response = await api_client.get("/api/sessions")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.anyio
    async def test_valid_token_accepted(self, api_client: httpx.AsyncClient, token) -> None:
        response = await api_client.get(
            "/api/sessions", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200

    @pytest.mark.anyio
    async def test_health_is_open(self, api_client: httpx.AsyncClient, token) -> None:
        response = await api_client.get("/api/health")

        assert response.status_code == 200
