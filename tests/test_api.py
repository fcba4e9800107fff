"""HTTP-level tests for the Trinity API, with providers faked out."""

import json

from httpx import AsyncClient

from conftest import BLENDED_TEXT, HISTORY

ALL = ("analytical", "creative", "factual")


def sse_events(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        lines = block.splitlines()
        data = next(line[len("data: "):] for line in lines if line.startswith("data: "))
        events.append(json.loads(data))
    return events


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_default_config(client: AsyncClient) -> None:
    resp = await client.get("/trinity/config/default")
    assert resp.status_code == 200
    body = resp.json()
    assert set(body["agents"]) == set(ALL)
    assert body["orchestrator"]["blending_strategy"] == "synthesis"


async def test_validate_config(client: AsyncClient) -> None:
    valid = (await client.get("/trinity/config/default")).json()
    resp = await client.post("/trinity/config/validate", json=valid)
    assert resp.json() == {"valid": True, "errors": []}

    valid["timeout_ms"] = 5
    resp = await client.post("/trinity/config/validate", json=valid)
    assert resp.status_code == 200
    assert resp.json()["valid"] is False
    assert resp.json()["errors"]


async def test_presets(client: AsyncClient) -> None:
    resp = await client.get("/trinity/presets")
    assert "research-analysis" in resp.json()["presets"]


async def test_execute_persists_thread(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/execute",
        json={"messages": HISTORY, "thread_id": "thread-1", "execution_mode": "hybrid"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["thread_id"] == "thread-1"
    assert body["final_response"] == BLENDED_TEXT
    assert body["meta"]["execution_mode"] == "hybrid"
    assert len(body["agent_results"]) == 3
    assert set(body["attribution"]) == set(ALL)

    messages = (await client.get("/threads/thread-1/messages")).json()["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == HISTORY[0]["content"]
    assert messages[1]["content"] == BLENDED_TEXT
    assert messages[1]["model"] == "gpt-4o"


async def test_execute_with_preset(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/execute",
        json={"messages": HISTORY, "preset": "research-analysis"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert [r["specialization"] for r in body["agent_results"]] == ["analytical", "factual"]
    assert body["meta"]["blending_strategy"] == "hierarchical"


async def test_unknown_thread_is_404(client: AsyncClient) -> None:
    resp = await client.get("/threads/missing/messages")
    assert resp.status_code == 404


async def test_empty_messages_rejected(client: AsyncClient) -> None:
    resp = await client.post("/trinity/execute", json={"messages": []})
    assert resp.status_code == 422


async def test_no_enabled_agents_is_400(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/execute",
        json={
            "messages": HISTORY,
            "custom_config": {"agents": {role: {"enabled": False} for role in ALL}},
        },
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "NoEnabledAgents"


async def test_invalid_config_is_400(client: AsyncClient) -> None:
    resp = await client.post("/trinity/execute", json={"messages": HISTORY, "preset": "nope"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidConfig"


async def test_missing_credential_is_400(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/execute",
        json={
            "messages": HISTORY,
            "custom_config": {"agent_models": {"creative": {"provider": "mistral", "model": "mistral-large-latest"}}},
        },
    )
    assert resp.status_code == 400
    assert resp.json()["providers"] == ["mistral"]


async def test_all_agents_failed_is_502(client: AsyncClient, llm) -> None:
    llm.errors.update({role: RuntimeError("down") for role in ALL})

    resp = await client.post(
        "/trinity/execute",
        json={"messages": HISTORY, "custom_config": {"fallback_to_single_agent": False}},
    )

    assert resp.status_code == 502
    assert resp.json()["error"] == "AllAgentsFailed"


async def test_fallback_exhausted_is_502(client: AsyncClient, llm) -> None:
    llm.errors.update({role: RuntimeError("down") for role in ALL})

    resp = await client.post("/trinity/execute", json={"messages": HISTORY})

    assert resp.status_code == 502
    assert resp.json()["error"] == "FallbackExhausted"


async def test_stream_sends_sse_events(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/stream",
        json={"messages": HISTORY, "thread_id": "stream-1"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = sse_events(resp.text)
    assert [e["type"] for e in events[:3]] == ["agent_start"] * 3
    assert events[-1]["type"] == "trinity_complete"
    assert events[-1]["content"] == BLENDED_TEXT

    messages = (await client.get("/threads/stream-1/messages")).json()["messages"]
    assert messages[-1]["content"] == BLENDED_TEXT


async def test_stream_precondition_errors_are_http_errors(client: AsyncClient) -> None:
    resp = await client.post(
        "/trinity/stream",
        json={"messages": HISTORY, "custom_config": {"agents": {role: {"enabled": False} for role in ALL}}},
    )
    assert resp.status_code == 400


async def test_stream_failure_after_start_is_an_error_event(client: AsyncClient, llm) -> None:
    llm.errors.update({role: RuntimeError("down") for role in ALL})

    resp = await client.post("/trinity/stream", json={"messages": HISTORY})

    assert resp.status_code == 200
    events = sse_events(resp.text)
    assert events[-1]["type"] == "error"
    assert events[-1]["error"] == "FallbackExhausted"


async def test_degraded_blend_is_credited_to_chosen_agent(client: AsyncClient, llm) -> None:
    llm.errors["orchestrator"] = RuntimeError("overloaded")
    claude = {"provider": "anthropic", "model": "claude-sonnet-4-20250514"}

    resp = await client.post(
        "/trinity/execute",
        json={"messages": HISTORY, "thread_id": "degraded", "custom_config": {"orchestrator": claude}},
    )

    assert resp.status_code == 200
    meta = resp.json()["meta"]
    assert meta["blend_degraded"] is True
    assert meta["blending_strategy"] == "best_of_three"
    assert meta["answered_by"] in ALL

    answer = (await client.get("/threads/degraded/messages")).json()["messages"][-1]
    assert answer["provider"] == "openai"
    expected_model = {"analytical": "gpt-4o", "creative": "gpt-4o", "factual": "gpt-4o-mini"}
    assert answer["model"] == expected_model[meta["answered_by"]]


async def test_stream_credits_single_survivor_model(client: AsyncClient, llm) -> None:
    llm.errors.update({"analytical": RuntimeError("down"), "creative": RuntimeError("down")})
    claude = {"provider": "anthropic", "model": "claude-sonnet-4-20250514"}

    resp = await client.post(
        "/trinity/stream",
        json={
            "messages": HISTORY,
            "thread_id": "stream-single",
            "custom_config": {"agent_models": {"factual": claude}},
        },
    )

    events = sse_events(resp.text)
    assert events[-1]["type"] == "trinity_complete"
    assert events[-1]["metadata"]["meta"]["answered_by"] == "factual"

    answer = (await client.get("/threads/stream-single/messages")).json()["messages"][-1]
    assert answer["model"] == "claude-sonnet-4-20250514"
    assert answer["provider"] == "anthropic"


async def test_execute_only_needs_a_message_sink(client: AsyncClient) -> None:
    from api.main import app, get_message_store

    class RecordingSink:
        def __init__(self):
            self.records = []

        def persist(self, thread_id, role, content, model=None, provider=None):
            self.records.append((thread_id, role, model))

    sink = RecordingSink()
    app.dependency_overrides[get_message_store] = lambda: sink

    resp = await client.post("/trinity/execute", json={"messages": HISTORY, "thread_id": "sink"})

    assert resp.status_code == 200
    assert sink.records == [("sink", "user", None), ("sink", "assistant", "gpt-4o")]
