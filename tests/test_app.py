from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

import app as server
from companion.config import AdapterConfig, AppConfig
from companion.service import HeadlessService
from roblox_mcp.codec import decode

from .conftest import SAMPLE_PLACE

PLAN = {
    "operations": [
        {"type": "createInstance", "className": "Folder", "parent": "Workspace", "name": "Props"},
    ]
}


@pytest.fixture()
def client():
    return TestClient(server.app)


@pytest.fixture()
def echo_service():
    svc = HeadlessService(
        AppConfig(
            default_adapter="canned",
            adapters=[AdapterConfig(name="canned", type="echo", settings={"response": PLAN})],
        )
    )
    server.set_service(svc)
    yield svc
    server.set_service(None)


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["endpoints"]["place_apply"] == "/place/apply"


def test_summary(client):
    res = client.post("/place/summary", json={"xml": SAMPLE_PLACE, "maxLines": 1})
    assert res.status_code == 200
    summary = res.json()["summary"]
    assert summary["instanceCount"] == 5
    assert len(summary["tree"]) == 2


def test_decode_error_maps_to_422(client):
    res = client.post("/place/summary", json={"xml": "<nope/>"})
    assert res.status_code == 422
    detail = res.json()["detail"]
    assert detail["kind"] == "InvalidStructure"
    assert detail["stage"] == "decode"


def test_validate_reports_type_mismatch(client):
    plan = {
        "operations": [
            {"type": "setProperty", "target": "Workspace/House/Door", "property": "Anchored", "value": {"type": "Number", "value": 1}},
        ]
    }
    res = client.post("/place/validate", json={"xml": SAMPLE_PLACE, "plan": plan})
    assert res.status_code == 422
    assert res.json()["detail"]["kind"] == "TypeMismatch"
    assert res.json()["detail"]["operationIndex"] == 0


def test_validate_ok_with_warnings(client):
    plan = {"operations": [{"type": "deleteInstance", "target": "Workspace/House/Door"}]}
    res = client.post("/place/validate", json={"xml": SAMPLE_PLACE, "plan": plan, "checkReferences": True})
    assert res.status_code == 200
    body = res.json()
    assert body["operationCount"] == 1
    assert body["warnings"][0]["property"] == "PrimaryPart"


def test_apply_returns_edited_xml(client):
    res = client.post("/place/apply", json={"xml": SAMPLE_PLACE, "plan": PLAN})
    assert res.status_code == 200
    doc = decode(res.json()["xml"])
    assert doc.find_by_path("Workspace/Props").class_name == "Folder"


def test_edit_uses_companion_adapter(client, echo_service):
    res = client.post("/place/edit", json={"xml": SAMPLE_PLACE, "prompt": "add a props folder"})
    assert res.status_code == 200
    body = res.json()
    assert body["adapter"] == "canned"
    assert body["model"] is None
    assert decode(body["xml"]).find_by_path("Workspace/Props") is not None


def test_edit_unknown_adapter(client, echo_service):
    res = client.post("/place/edit", json={"xml": SAMPLE_PLACE, "prompt": "x", "adapter": "missing"})
    assert res.status_code == 500


def _rpc(client, method, params=None, req_id=1):
    payload = {"jsonrpc": "2.0", "method": method, "params": params or {}}
    if req_id is not None:
        payload["id"] = req_id
    return client.post("/mcp", json=payload)


def test_mcp_tools_list(client):
    res = _rpc(client, "tools/list")
    names = [t["name"] for t in res.json()["result"]["tools"]]
    assert names == ["get_place_summary", "validate_plan", "apply_plan"]


def test_mcp_apply_plan(client):
    res = _rpc(client, "tools/call", {"name": "apply_plan", "arguments": {"xml": SAMPLE_PLACE, "plan": PLAN}})
    result = res.json()["result"]
    assert "isError" not in result
    body = json.loads(result["content"][0]["text"])
    assert decode(body["xml"]).find_by_path("Workspace/Props") is not None


def test_mcp_errors_are_tool_errors(client):
    res = _rpc(client, "tools/call", {"name": "get_place_summary", "arguments": {"xml": "<broken"}})
    result = res.json()["result"]
    assert result["isError"] is True
    assert json.loads(result["content"][0]["text"])["kind"] == "InvalidStructure"


def test_mcp_notification_gets_no_body(client):
    res = _rpc(client, "notifications/initialized", req_id=None)
    assert res.status_code == 204


def test_mcp_unknown_method(client):
    assert _rpc(client, "resources/read").json()["error"]["code"] == -32601
