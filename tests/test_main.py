import asyncio

import pytest
import structlog
from fastapi.testclient import TestClient

from fakes import FakeModel, FakeResponse, Round, SingleSessionFactory, text_block, tool_block
from vaultproxy.errors import ModelTransportError
from vaultproxy.main import create_app, ndjson_stream
from vaultproxy.schemas import DoneEvent, TextEvent, decode_event
from vaultproxy.settings import Settings
from vaultproxy.vault.pool import SessionPool

SETTINGS = Settings(vault_addr="http://vault.test:8200", anthropic_api_key="sk-test")
TOKEN_HEADERS = {"X-Vault-Token": "s.test-token"}


def _events(response):
    return [decode_event(line) for line in response.text.splitlines() if line.strip()]


@pytest.fixture
def vault_factory():
    return SingleSessionFactory({("GET", "sys/mounts"): FakeResponse(200, {"data": {"secret/": {"type": "kv"}}})})


def _client(model, vault_factory) -> TestClient:
    app = create_app(settings=SETTINGS, model=model, pool=SessionPool(factory=vault_factory))
    return TestClient(app)


class TestHealth:
    def test_reports_configured_store_address(self, vault_factory) -> None:
        with _client(FakeModel([]), vault_factory) as client:
            r = client.get("/health")

        assert r.status_code == 200
        assert r.json() == {"status": "ok", "vault_addr": "http://vault.test:8200"}


class TestChatValidation:
    def test_missing_token_is_401(self, vault_factory) -> None:
        model = FakeModel([])
        with _client(model, vault_factory) as client:
            r = client.post("/chat", json={"message": "hi"})

        assert r.status_code == 401
        assert r.json() == {"error": "Missing X-Vault-Token header"}
        assert model.calls == []

    def test_missing_message_is_400(self, vault_factory) -> None:
        with _client(FakeModel([]), vault_factory) as client:
            r = client.post("/chat", json={"history": []}, headers=TOKEN_HEADERS)

        assert r.status_code == 400
        assert r.json() == {"error": "Missing message in request body"}

    def test_empty_message_is_400(self, vault_factory) -> None:
        with _client(FakeModel([]), vault_factory) as client:
            r = client.post("/chat", json={"message": ""}, headers=TOKEN_HEADERS)

        assert r.status_code == 400

    def test_invalid_json_is_400(self, vault_factory) -> None:
        headers = {**TOKEN_HEADERS, "Content-Type": "application/json"}
        with _client(FakeModel([]), vault_factory) as client:
            r = client.post("/chat", content=b"{not json", headers=headers)

        assert r.status_code == 400
        assert "error" in r.json()

    def test_bad_history_role_is_400(self, vault_factory) -> None:
        body = {"message": "hi", "history": [{"role": "system", "content": "x"}]}
        with _client(FakeModel([]), vault_factory) as client:
            r = client.post("/chat", json=body, headers=TOKEN_HEADERS)

        assert r.status_code == 400
        assert r.json()["error"].startswith("Invalid request body at history")

    def test_whitespace_message_streams_error_then_done(self, vault_factory) -> None:
        model = FakeModel([])
        with _client(model, vault_factory) as client:
            r = client.post("/chat", json={"message": "   "}, headers=TOKEN_HEADERS)

        assert r.status_code == 200
        assert [e.type for e in _events(r)] == ["error", "done"]
        assert model.calls == []


class TestChatStream:
    def test_list_mounts_exchange_streams_ndjson(self, vault_factory) -> None:
        model = FakeModel(
            [
                text_block("Let me check.") + tool_block("tu_1", "list_mounts", "{}"),
                text_block("You have one mount."),
            ]
        )
        with _client(model, vault_factory) as client:
            r = client.post("/chat", json={"message": "list all mounts", "history": []}, headers=TOKEN_HEADERS)

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/x-ndjson")
        assert r.headers["cache-control"] == "no-cache"
        assert r.headers["x-accel-buffering"] == "no"

        events = _events(r)
        assert [e.type for e in events] == ["text", "tool_call", "tool_result", "text", "done"]
        assert events[2].result[0]["name"] == "secret/"
        assert events[2].result[0]["type"] == "kv"

    def test_request_token_is_forwarded_to_the_store(self, vault_factory) -> None:
        model = FakeModel([tool_block("tu_1", "list_mounts", "{}"), text_block("ok")])
        with _client(model, vault_factory) as client:
            client.post("/chat", json={"message": "list"}, headers={"X-Vault-Token": "s.caller"})

        calls = [c for s in vault_factory.created for c in s.calls]
        assert [c.token for c in calls] == ["s.caller"]

    def test_history_is_passed_to_the_model(self, vault_factory) -> None:
        model = FakeModel([text_block("sure")])
        body = {
            "message": "and now?",
            "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        }
        with _client(model, vault_factory) as client:
            client.post("/chat", json=body, headers=TOKEN_HEADERS)

        assert model.calls[0] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "and now?"},
        ]

    def test_mcp_alias_serves_the_same_stream(self, vault_factory) -> None:
        with _client(FakeModel([text_block("hi")]), vault_factory) as client:
            r = client.post("/mcp/chat", json={"message": "hello"}, headers=TOKEN_HEADERS)

        assert r.status_code == 200
        assert [e.type for e in _events(r)] == ["text", "done"]

    def test_model_failure_still_ends_with_done(self, vault_factory) -> None:
        model = FakeModel([Round(events=[], fail_with=ModelTransportError("HTTP 401: invalid x-api-key"))])
        with _client(model, vault_factory) as client:
            r = client.post("/chat", json={"message": "hi"}, headers=TOKEN_HEADERS)

        events = _events(r)
        assert [e.type for e in events] == ["error", "done"]
        assert "invalid x-api-key" in events[0].error


class TestCreateApp:
    def test_injected_empty_pool_is_used(self, vault_factory) -> None:
        pool = SessionPool(factory=vault_factory)
        model = FakeModel([tool_block("tu_1", "list_mounts", "{}"), text_block("ok")])
        app = create_app(settings=SETTINGS, model=model, pool=pool)

        assert app.state.pool is pool
        with TestClient(app) as client:
            client.post("/chat", json={"message": "list"}, headers=TOKEN_HEADERS)

        assert len(vault_factory.created) == 1


class TestNdjsonStream:
    def _collect(self, events, disconnect_after: int):
        checks = []

        async def is_disconnected() -> bool:
            checks.append(True)
            return len(checks) >= disconnect_after

        async def run():
            return [line async for line in ndjson_stream(events, is_disconnected, structlog.get_logger())]

        return asyncio.run(run()), checks

    def test_gone_client_stops_the_engine_between_events(self) -> None:
        state = {"pulled": 0, "closed": False}

        def engine_events():
            try:
                for i in range(5):
                    state["pulled"] += 1
                    yield TextEvent(content=str(i))
                yield DoneEvent()
            finally:
                state["closed"] = True

        lines, _ = self._collect(engine_events(), disconnect_after=2)

        assert [decode_event(line).content for line in lines] == ["0", "1"]
        assert state == {"pulled": 2, "closed": True}

    def test_connected_client_gets_every_line(self) -> None:
        def engine_events():
            yield TextEvent(content="hi")
            yield DoneEvent()

        lines, checks = self._collect(engine_events(), disconnect_after=99)

        assert [decode_event(line).type for line in lines] == ["text", "done"]
        assert all(line.endswith("\n") for line in lines)
        # No check is needed after done
        assert len(checks) == 1
