"""Tests for the HTTP surface."""

import json

import pytest
from conftest import FakeLLM, make_manifest
from fastapi.testclient import TestClient

from opentolk.config import Settings
from opentolk.dependencies import build_engine
from opentolk.main import create_app
from opentolk.schemas.result import LoadedPlugin


@pytest.fixture
def engine(tmp_path):
    config = Settings(plugins_dir=tmp_path / "plugins", data_dir=tmp_path / "data")
    return build_engine(config, llm=FakeLLM(chunks=["Hi", " there"]), load=False)


@pytest.fixture
def add_plugin(engine, tmp_path):
    def _add(plugin_id, enabled=True, **kwargs):
        directory = tmp_path / "plugins" / plugin_id
        directory.mkdir(parents=True, exist_ok=True)
        plugin = LoadedPlugin(make_manifest(plugin_id, **kwargs), directory, enabled)
        engine.registry.register(plugin)
        return plugin

    return _add


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_unmatched_text_is_pasted(client):
    resp = client.post("/command", json={"text": "just dictation"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["matched"] is False
    assert body["actions"] == [
        {"mode": "paste", "text": "just dictation", "title": None, "format": "plain",
         "plugin_id": None},
    ]


def test_matched_plugin_output_delivered(client, add_plugin):
    add_plugin(
        "shout",
        trigger={"type": "keyword", "keywords": ["shout"], "strip_trigger": True},
        execution={"type": "script", "inline": 'printf "%s" "$OPENTOLK_INPUT" | tr a-z A-Z'},
        output={"mode": "clipboard", "also": ["notify"]},
    )

    body = client.post("/command", json={"text": "shout hello world"}).json()

    assert body["matched"] is True
    assert body["plugin_id"] == "shout"
    assert [(a["mode"], a["text"]) for a in body["actions"]] == [
        ("clipboard", "HELLO WORLD"), ("notify", "HELLO WORLD"),
    ]
    assert body["error"] is None


def test_runner_failure_pastes_raw_text(client, add_plugin):
    add_plugin(
        "broken",
        trigger={"type": "keyword", "keywords": ["broken"], "strip_trigger": True},
        execution={"type": "script", "inline": "echo bad >&2; exit 4"},
    )

    body = client.post("/command", json={"text": "broken thing"}).json()

    assert body["error"]["kind"] == "process_failed"
    assert body["error"]["plugin_id"] == "broken"
    assert [(a["mode"], a["text"]) for a in body["actions"]] == [("paste", "broken thing")]


def test_streaming_result_is_ndjson(client, add_plugin):
    add_plugin(
        "chat",
        trigger={"type": "keyword", "keywords": ["chat"]},
        execution={"type": "ai", "system_prompt": "x", "streaming": True},
    )

    resp = client.post("/command", json={"text": "chat hello"})

    assert resp.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in resp.text.splitlines() if line]
    assert events == [
        {"type": "delta", "text": "Hi"},
        {"type": "delta", "text": " there"},
        {"type": "done", "text": "Hi there"},
    ]


def test_stream_failure_pastes_raw_text(client, add_plugin, engine):
    add_plugin(
        "chat",
        trigger={"type": "keyword", "keywords": ["chat"]},
        execution={"type": "ai", "system_prompt": "x", "streaming": True},
    )
    engine.llm.error = RuntimeError("connection reset")

    resp = client.post("/command", json={"text": "chat hello"})

    events = [json.loads(line) for line in resp.text.splitlines() if line]
    assert events[-2]["type"] == "error"
    assert events[-2]["kind"] == "ai_request_failed"
    assert events[-1] == {"type": "paste", "text": "chat hello"}


def test_reply_runs_plugin_on_reply_text(client, add_plugin):
    add_plugin(
        "echo",
        trigger={"type": "keyword", "keywords": ["echo"], "strip_trigger": True},
        execution={"type": "script", "inline": 'printf "%s|%s" "$OPENTOLK_TRIGGER" "$OPENTOLK_INPUT"'},
    )

    body = client.post("/command/reply", json={"plugin_id": "echo", "text": "follow up"}).json()

    assert body["actions"][0]["text"] == "|follow up"


def test_reply_to_unknown_plugin(client):
    resp = client.post("/command/reply", json={"plugin_id": "ghost", "text": "x"})
    assert resp.status_code == 404


def test_clear_session(client):
    resp = client.post("/command/session/clear", json={"plugin_id": "chat"})
    assert resp.json() == {"status": "cleared"}


def test_list_plugins_masks_secrets(client, add_plugin):
    add_plugin(
        "api",
        permissions=["network"],
        settings=[
            {"key": "token", "label": "Token", "type": "secret", "default": "abc"},
            {"key": "lang", "label": "Language", "default": "French"},
        ],
    )

    [summary] = client.get("/plugins").json()

    assert summary["id"] == "api"
    assert summary["trigger"] == "keyword"
    assert summary["execution"] == "script"
    assert summary["unapproved_permissions"] == ["network"]
    assert summary["permission_descriptions"] == {"network": "Make internet requests"}
    assert summary["settings"] == {"token": "********", "lang": "French"}


def test_approve_then_run(client, add_plugin):
    add_plugin("net", permissions=["network"])

    denied = client.post("/command", json={"text": "net go"}).json()
    assert denied["error"]["kind"] == "permission_denied"

    approved = client.post("/plugins/net/permissions/approve").json()
    assert approved["unapproved_permissions"] == []

    body = client.post("/command", json={"text": "net go"}).json()
    assert body["error"] is None
    assert body["actions"][0]["text"] == "ok"

    revoked = client.post("/plugins/net/permissions/revoke").json()
    assert revoked["unapproved_permissions"] == ["network"]


def test_enable_second_catch_all_conflicts(client, add_plugin):
    add_plugin("a", trigger={"type": "catch_all"})
    add_plugin("b", trigger={"type": "catch_all"}, enabled=False)

    assert client.post("/plugins/b/enable").status_code == 409
    assert client.post("/plugins/a/disable").json()["enabled"] is False
    assert client.post("/plugins/b/enable").json()["enabled"] is True


def test_update_settings(client, add_plugin):
    add_plugin("t", settings=[
        {"key": "lang", "label": "Language", "type": "select", "options": ["French", "German"]},
    ])

    ok = client.put("/plugins/t/settings", json={"values": {"lang": "German"}})
    assert ok.json()["settings"] == {"lang": "German"}

    assert client.put("/plugins/t/settings", json={"values": {"lang": "Klingon"}}).status_code == 422
    assert client.put("/plugins/t/settings", json={"values": {"nope": 1}}).status_code == 422


def test_unknown_plugin_404(client):
    assert client.post("/plugins/ghost/enable").status_code == 404
